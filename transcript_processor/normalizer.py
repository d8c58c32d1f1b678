"""
Transcript normalization.

Turns raw transcript entries into a chronological document where consecutive
utterances from the same speaker are merged, and renders it as markdown.
"""

from datetime import datetime, timezone, tzinfo
from typing import Any, Iterable, List, Optional

from pydantic import TypeAdapter, ValidationError

from transcript_processor.models import NormalizedDocument, TimedEntry, TranscriptEntry, Turn
from transcript_processor.utils.errors import TranscriptFormatError
from transcript_processor.utils.logging import get_logger

logger = get_logger(__name__)

DOCUMENT_TITLE = "# Conversation Transcript"
DETAILED_HEADING = "## Detailed Transcript (with timestamps)"
DEFAULT_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S %Z"

_datetime_adapter = TypeAdapter(datetime)


def parse_timestamp(value: Any, index: Optional[int] = None) -> datetime:
    """
    Parse an entry timestamp into an aware datetime.

    Accepts ISO-8601 strings and Unix epoch numbers. Naive values are taken
    as UTC so every entry compares on the same clock.

    Raises:
        TranscriptFormatError: If the value is missing or cannot be parsed
    """
    where = f"entry {index}" if index is not None else "entry"
    if value is None or (isinstance(value, str) and not value.strip()):
        raise TranscriptFormatError(f"Missing timestamp on {where}", {"index": index})
    if isinstance(value, bool):
        raise TranscriptFormatError(f"Unparseable timestamp on {where}: {value!r}", {"index": index})

    try:
        parsed = _datetime_adapter.validate_python(value)
    except ValidationError as e:
        raise TranscriptFormatError(
            f"Unparseable timestamp on {where}: {value!r}",
            {"index": index, "error": e.errors()[0]["msg"]},
        ) from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize(entries: Iterable[TranscriptEntry]) -> NormalizedDocument:
    """
    Build a normalized document from raw transcript entries.

    Entries without a speaker or text are dropped, the rest are sorted by
    timestamp (stable, so ties keep input order) and adjacent entries from
    the same speaker are merged into one turn.

    Args:
        entries: Raw transcript entries in source order

    Returns:
        NormalizedDocument with merged turns and the sorted entries

    Raises:
        TranscriptFormatError: If a kept entry has a bad timestamp
    """
    kept: List[TimedEntry] = []
    dropped = 0
    for index, entry in enumerate(entries):
        if not entry.is_complete:
            dropped += 1
            continue
        kept.append(
            TimedEntry(
                speaker=entry.speaker,
                transcript=entry.transcript,
                timestamp=parse_timestamp(entry.timestamp, index),
            )
        )

    if dropped:
        logger.debug(f"Dropped {dropped} entries without speaker or transcript")

    ordered = sorted(kept, key=lambda e: e.timestamp)

    turns: List[Turn] = []
    current_speaker: Optional[str] = None
    current_text = ""
    for entry in ordered:
        if entry.speaker == current_speaker:
            current_text += " " + entry.transcript
            continue
        if current_speaker is not None:
            turns.append(Turn(speaker=current_speaker, text=current_text))
        current_speaker = entry.speaker
        current_text = entry.transcript

    if current_speaker is not None:
        turns.append(Turn(speaker=current_speaker, text=current_text))

    logger.info(f"Normalized {len(ordered)} entries into {len(turns)} turns")
    return NormalizedDocument(turns=turns, entries=ordered)


def render_compact(document: NormalizedDocument) -> str:
    """One `**Speaker**: text` block per merged turn."""
    return "".join(f"**{turn.speaker}**: {turn.text}\n\n" for turn in document.turns)


def format_timestamp(
    value: datetime,
    tz: Optional[tzinfo] = None,
    timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
) -> str:
    """Format a timestamp in `tz`, or local time when no timezone is given."""
    return value.astimezone(tz).strftime(timestamp_format).strip()


def render_detailed(
    document: NormalizedDocument,
    tz: Optional[tzinfo] = None,
    timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
) -> str:
    """Every kept entry on its own, labelled with its timestamp."""
    return "".join(
        f"**{entry.speaker}** ({format_timestamp(entry.timestamp, tz, timestamp_format)}):\n"
        f"{entry.transcript}\n\n"
        for entry in document.entries
    )


def render_markdown(
    document: NormalizedDocument,
    tz: Optional[tzinfo] = None,
    timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
) -> str:
    """
    Render the full markdown document: compact section first, then detailed.

    Args:
        document: Normalized document
        tz: Timezone for timestamp labels (local time if None)
        timestamp_format: strftime pattern for timestamp labels

    Returns:
        Markdown text
    """
    return (
        f"{DOCUMENT_TITLE}\n\n"
        + render_compact(document)
        + f"{DETAILED_HEADING}\n\n"
        + render_detailed(document, tz, timestamp_format)
    )
