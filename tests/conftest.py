"""
Shared fixtures for transcript processor tests.
"""

import csv
import json
from pathlib import Path
from types import SimpleNamespace
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest
from openpyxl import Workbook

from transcript_processor import config
from transcript_processor.config import ExtractionConfig

ENV_VARS = [
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "EXTRACTION_TEMPERATURE",
    "JSON_MODE",
    "NOT_FOUND_SENTINEL",
    "TRANSCRIPT_API_ENDPOINT",
    "TRANSCRIPT_API_KEY",
    "OUTPUT_DIR",
    "TIMESTAMP_FORMAT",
    "DISPLAY_TIMEZONE",
    "LOG_LEVEL",
    "LOG_FILE_PATH",
    "DEV_MODE",
]

HEADERS = ["Customer Name", "Budget", "Next Step"]


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch, tmp_path):
    """Isolate every test from the caller's environment and .env file."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    config.reset_settings()
    yield
    config.reset_settings()


@pytest.fixture
def temp_dir(tmp_path) -> Path:
    return tmp_path


@pytest.fixture
def raw_entries() -> List[dict]:
    """A short call, deliberately out of order, with one unusable entry."""
    return [
        {"speaker": "Bob", "transcript": "Hello, thanks for calling.", "timestamp": "2024-03-01T10:00:05Z"},
        {"speaker": "Alice", "transcript": "Hi Bob.", "timestamp": "2024-03-01T10:00:00Z"},
        {"speaker": "", "transcript": "static", "timestamp": "2024-03-01T10:00:06Z"},
        {"speaker": "Alice", "transcript": "My budget is 5000.", "timestamp": "2024-03-01T10:00:10Z"},
        {"speaker": "Alice", "transcript": "Call me Friday.", "timestamp": "2024-03-01T10:00:12Z"},
    ]


@pytest.fixture
def sample_file(temp_dir, raw_entries) -> Path:
    path = temp_dir / "sample-transcript.json"
    path.write_text(json.dumps(raw_entries), encoding="utf-8")
    return path


@pytest.fixture
def xlsx_file(temp_dir) -> Path:
    """Workbook with a header row and one existing data row."""
    path = temp_dir / "leads.xlsx"
    wb = Workbook()
    ws = wb.active
    ws.title = "Leads"
    ws.append(HEADERS)
    ws.append(["Existing Co", "100", "Email"])
    wb.save(path)
    return path


@pytest.fixture
def csv_file(temp_dir) -> Path:
    path = temp_dir / "leads.csv"
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(HEADERS)
        writer.writerow(["Existing Co", "100", "Email"])
    return path


@pytest.fixture
def extraction_config() -> ExtractionConfig:
    return ExtractionConfig(api_key="sk-test")


def make_completion(content: str) -> SimpleNamespace:
    """Shape of an OpenAI chat completion as far as the extractor reads it."""
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def fake_openai():
    """
    Stand-in for AsyncOpenAI.

    Set `fake_openai.reply` to change the response text.
    """
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=make_completion('{"Customer Name": "Alice"}'))

    def reply(content: str) -> None:
        client.chat.completions.create.return_value = make_completion(content)

    client.reply = reply
    return client
