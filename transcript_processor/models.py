"""
Data models for the transcript processor.

These models represent the transcript entries read from the transcript API,
the normalized document built from them, and the result of a pipeline run.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

# extracted_data.json key for the unparsed model response when no JSON was found.
RAW_RESPONSE_KEY = "raw_response"

# Field name -> extracted value.
ExtractionResult = Dict[str, Any]


class TranscriptEntry(BaseModel):
    """One utterance as delivered by the transcript source"""
    model_config = ConfigDict(extra="ignore", frozen=True)

    speaker: Optional[str] = None
    transcript: Optional[str] = None
    timestamp: Optional[Any] = Field(None, description="ISO-8601 string or Unix epoch")

    @property
    def is_complete(self) -> bool:
        """True when the entry has both a speaker and some text."""
        return bool(self.speaker) and bool(self.transcript)


class TimedEntry(BaseModel):
    """A kept transcript entry with its timestamp parsed"""
    model_config = ConfigDict(frozen=True)

    speaker: str
    transcript: str
    timestamp: datetime


class Turn(BaseModel):
    """A maximal run of consecutive utterances from one speaker"""
    speaker: str
    text: str


class NormalizedDocument(BaseModel):
    """Merged turns plus the sorted entries they were built from"""
    turns: List[Turn] = Field(default_factory=list)
    entries: List[TimedEntry] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.turns


@dataclass
class Extraction:
    """
    What one extraction call produced.

    `raw_response` is set only when no JSON object could be recovered from
    the model output; `values` is then empty.
    """
    values: ExtractionResult = field(default_factory=dict)
    raw_response: Optional[str] = None

    @property
    def used_fallback(self) -> bool:
        return self.raw_response is not None

    def to_json(self) -> Dict[str, Any]:
        """Payload for extracted_data.json."""
        if self.used_fallback:
            return {RAW_RESPONSE_KEY: self.raw_response}
        return dict(self.values)


@dataclass
class PipelineResult:
    """Outcome of one pipeline run."""
    entry_count: int
    turn_count: int
    headers: List[str]
    extraction: ExtractionResult
    row: List[str]
    document_path: Path
    extraction_path: Path
    used_fallback: bool = False
    warnings: List[str] = field(default_factory=list)
