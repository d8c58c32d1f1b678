"""
Transcript Processor

Turns a timestamped conversation transcript into a readable markdown document,
asks an OpenAI model to extract the fields named by a spreadsheet's header row,
and appends the result to that spreadsheet as a new row.
"""

__version__ = "0.1.0"

from .models import (
    RAW_RESPONSE_KEY,
    Extraction,
    NormalizedDocument,
    PipelineResult,
    TranscriptEntry,
    Turn,
)

__all__ = [
    "RAW_RESPONSE_KEY",
    "Extraction",
    "NormalizedDocument",
    "PipelineResult",
    "TranscriptEntry",
    "Turn",
]
