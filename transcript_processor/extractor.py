"""
Field extraction.

Asks a chat model to pull the spreadsheet's fields out of a transcript and
turns its free-text answer back into a field -> value mapping.
"""

import json
import re
from typing import Any, Dict, List, Optional, Sequence

from openai import AsyncOpenAI, OpenAIError

from transcript_processor.config import ExtractionConfig
from transcript_processor.models import Extraction, ExtractionResult
from transcript_processor.utils.errors import ExtractionServiceError
from transcript_processor.utils.logging import get_logger

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are an assistant specialized in extracting structured information "
    "from conversation transcripts."
)

_JSON_FENCE = re.compile(r"```json[ \t]*\r?\n(.*?)\r?\n?```", re.DOTALL | re.IGNORECASE)
_ANY_FENCE = re.compile(r"```[^\n`]*\r?\n(.*?)\r?\n?```", re.DOTALL)


def build_prompt(document: str, fields: Sequence[str], not_found: str) -> str:
    """Build the extraction prompt for the given fields."""
    field_list = "\n".join(f"- {name}" for name in fields)
    return f"""
I need to extract specific information from the following transcript.
Please extract the following fields from the transcript:
{field_list}

Return the data in a valid JSON format where each field corresponds to the extracted information.
If a field cannot be found, indicate with "{not_found}".

Transcript:
{document}
"""


def _decode_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _first_brace_object(content: str) -> Optional[Dict[str, Any]]:
    start = content.find("{")
    if start == -1:
        return None
    try:
        data, _ = json.JSONDecoder().raw_decode(content, start)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def parse_response(content: str) -> Optional[Dict[str, Any]]:
    """
    Locate and decode the JSON object in a model response.

    Tries, in order: a ```json fenced block, any fenced block, the first
    brace-delimited object. The first pattern that matches decides; if its
    text does not decode to a JSON object the result is None.

    Args:
        content: Raw response text

    Returns:
        Decoded object, or None if no structured data could be recovered
    """
    for pattern in (_JSON_FENCE, _ANY_FENCE):
        match = pattern.search(content)
        if match:
            return _decode_object(match.group(1).strip())

    if "{" in content:
        return _first_brace_object(content)
    return None


def _field_key(name: str) -> str:
    return " ".join(name.split()).casefold()


def map_to_fields(data: Dict[str, Any], fields: Sequence[str]) -> ExtractionResult:
    """
    Keep only the keys that name a requested field.

    Exact matches win; otherwise keys are compared ignoring case and runs of
    whitespace and stored under the canonical field name.
    """
    canonical = {_field_key(name): name for name in fields}
    result: ExtractionResult = {}
    dropped: List[str] = []

    for key, value in data.items():
        if key in fields:
            result[key] = value
            continue
        name = canonical.get(_field_key(str(key)))
        if name is not None and name not in data:
            result.setdefault(name, value)
        else:
            dropped.append(str(key))

    if dropped:
        logger.debug(f"Ignoring keys that match no spreadsheet header: {dropped}")
    return result


class TranscriptExtractor:
    """Prompt-based field extraction over a normalized transcript."""

    def __init__(self, config: ExtractionConfig, client: Optional[AsyncOpenAI] = None):
        """
        Initialize the extractor.

        Args:
            config: Model, temperature and key for the generation service
            client: Optional preconfigured client (tests inject a fake here)
        """
        self.config = config
        self.client = client or AsyncOpenAI(api_key=config.api_key)

    async def extract(self, document: str, fields: Sequence[str]) -> Extraction:
        """
        Extract the given fields from a transcript document.

        Issues exactly one request. A response without recoverable JSON is
        not an error: the result then carries the response text in
        `raw_response` and the caller decides how loudly to warn.

        Args:
            document: Rendered transcript
            fields: Field names in spreadsheet order

        Returns:
            Extraction with the field values, or the raw response text

        Raises:
            ExtractionServiceError: If the generation service call fails
        """
        prompt = build_prompt(document, fields, self.config.not_found_sentinel)
        content = await self._call_openai(prompt)

        data = parse_response(content)
        if data is None:
            logger.debug("No JSON object found in model response")
            return Extraction(raw_response=content)

        values = map_to_fields(data, fields)
        logger.info(f"Extracted {len(values)} of {len(fields)} fields")
        return Extraction(values=values)

    async def _call_openai(self, prompt: str) -> str:
        """Call OpenAI API and return the response text."""
        params: Dict[str, Any] = {"temperature": self.config.temperature}
        if self.config.json_mode:
            params["response_format"] = {"type": "json_object"}

        try:
            response = await self.client.chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                **params,
            )
        except OpenAIError as e:
            logger.error(f"OpenAI API call failed: {e}")
            raise ExtractionServiceError(self.config.model, str(e)) from e

        return response.choices[0].message.content or ""
