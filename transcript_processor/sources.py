"""
Transcript sources.

Transcript entries come either from the transcript API for a given bot or
from a local JSON file holding the same array of entries.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, List, Optional, Union

import aiohttp
from pydantic import ValidationError

from transcript_processor.config import TranscriptAPIConfig
from transcript_processor.models import TranscriptEntry
from transcript_processor.utils.errors import (
    InputError,
    TranscriptFormatError,
    TranscriptRetrievalError,
    TranscriptSourceError,
)
from transcript_processor.utils.logging import get_logger

logger = get_logger(__name__)

TRANSCRIPT_PATH = "/api/v1/bots/{bot_id}/get_transcript"


def parse_entries(payload: Any, source: str) -> List[TranscriptEntry]:
    """
    Validate a decoded JSON payload as a list of transcript entries.

    Raises:
        TranscriptFormatError: If the payload is not an array of objects
    """
    if not isinstance(payload, list):
        raise TranscriptFormatError(
            f"Transcript from {source} must be a JSON array, got {type(payload).__name__}",
            {"source": source},
        )

    entries = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            raise TranscriptFormatError(
                f"Transcript entry {index} from {source} is not an object",
                {"source": source, "index": index},
            )
        try:
            entries.append(TranscriptEntry.model_validate(item))
        except ValidationError as e:
            raise TranscriptFormatError(
                f"Transcript entry {index} from {source} is malformed",
                {"source": source, "index": index, "error": e.errors()[0]["msg"]},
            ) from e
    return entries


def load_transcript_file(path: Union[str, Path]) -> List[TranscriptEntry]:
    """
    Read transcript entries from a local JSON file.

    Args:
        path: Path to a JSON file containing an array of entries

    Returns:
        List of TranscriptEntry

    Raises:
        TranscriptSourceError: If the file is missing or not valid JSON
    """
    path = Path(path)
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise TranscriptSourceError(f"Sample file not found: {path}", {"path": str(path)}) from e
    except json.JSONDecodeError as e:
        raise TranscriptSourceError(
            f"Sample file is not valid JSON: {path}",
            {"path": str(path), "line": e.lineno, "column": e.colno},
        ) from e
    except OSError as e:
        raise TranscriptSourceError(f"Could not read sample file {path}: {e}", {"path": str(path)}) from e

    return parse_entries(payload, str(path))


class TranscriptAPIClient:
    """Client for the transcript API."""

    def __init__(self, config: TranscriptAPIConfig, session: Optional[aiohttp.ClientSession] = None):
        """
        Initialize the client.

        Args:
            config: Endpoint and API key
            session: Optional session to reuse; a new one is opened per fetch otherwise
        """
        self.config = config
        self._session = session

    def transcript_url(self, bot_id: str) -> str:
        return self.config.endpoint.rstrip("/") + TRANSCRIPT_PATH.format(bot_id=bot_id)

    @property
    def headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Token {self.config.api_key}",
        }

    async def fetch(self, bot_id: str) -> List[TranscriptEntry]:
        """
        Fetch the transcript for a bot.

        Makes exactly one request; there is no retry.

        Args:
            bot_id: Bot identifier

        Returns:
            List of TranscriptEntry

        Raises:
            TranscriptRetrievalError: On non-200 status, connection failure or timeout
            TranscriptFormatError: If the response body has the wrong shape
        """
        url = self.transcript_url(bot_id)
        logger.info(f"Fetching transcript for bot {bot_id}")

        if self._session is not None:
            payload = await self._get(self._session, url, bot_id)
        else:
            async with aiohttp.ClientSession() as session:
                payload = await self._get(session, url, bot_id)

        return parse_entries(payload, f"bot {bot_id}")

    async def _get(self, session: aiohttp.ClientSession, url: str, bot_id: str) -> Any:
        try:
            async with session.get(url, headers=self.headers) as response:
                if response.status != 200:
                    raise TranscriptRetrievalError(
                        bot_id, f"API returned status code {response.status}", status=response.status
                    )
                return await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise TranscriptRetrievalError(bot_id, str(e) or type(e).__name__) from e
        except asyncio.TimeoutError as e:
            raise TranscriptRetrievalError(bot_id, "request timed out") from e
        except json.JSONDecodeError as e:
            raise TranscriptRetrievalError(bot_id, f"response is not valid JSON: {e}") from e


async def load_entries(
    bot_id: Optional[str] = None,
    sample_file: Optional[Union[str, Path]] = None,
    api_config: Optional[TranscriptAPIConfig] = None,
) -> List[TranscriptEntry]:
    """
    Load transcript entries from exactly one source.

    Args:
        bot_id: Bot identifier for the transcript API
        sample_file: Local JSON file with transcript entries
        api_config: Required when bot_id is given

    Raises:
        InputError: If neither or both sources are given
    """
    if bot_id and sample_file:
        raise InputError("Provide either --bot-id or --sample-file, not both")
    if bot_id:
        if api_config is None:
            raise InputError("Transcript API configuration is required to fetch by bot id")
        return await TranscriptAPIClient(api_config).fetch(bot_id)
    if sample_file:
        logger.info(f"Reading transcript data from sample file: {sample_file}")
        return load_transcript_file(sample_file)
    raise InputError("Either --bot-id or --sample-file must be provided")
