"""
Custom exceptions for the transcript processor.

Every fatal condition in the pipeline is raised as one of these so the CLI can
report it with a single readable message and a non-zero exit status.
"""

from typing import Any, Optional


class TranscriptProcessorError(Exception):
    """Base exception for all transcript-processor errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Error message
            details: Optional dictionary with additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# Input Exceptions
# =============================================================================


class InputError(TranscriptProcessorError):
    """The run was started without a usable transcript source."""

    pass


# =============================================================================
# Transcript Source Exceptions
# =============================================================================


class TranscriptSourceError(TranscriptProcessorError):
    """Base exception for loading transcript entries."""

    pass


class TranscriptRetrievalError(TranscriptSourceError):
    """Fetching the transcript from the transcript API failed."""

    def __init__(self, bot_id: str, reason: str, status: Optional[int] = None) -> None:
        """Initialize with the bot being fetched and the failure reason."""
        message = f"Failed to fetch transcript data for bot '{bot_id}': {reason}"
        details: dict[str, Any] = {"bot_id": bot_id}
        if status is not None:
            details["status"] = status
        super().__init__(message, details)


class TranscriptFormatError(TranscriptSourceError):
    """Transcript payload or one of its entries has an unexpected shape."""

    pass


# =============================================================================
# Extraction Exceptions
# =============================================================================


class ExtractionError(TranscriptProcessorError):
    """Base exception for field extraction."""

    pass


class ExtractionServiceError(ExtractionError):
    """The call to the generation service failed."""

    def __init__(self, model: str, error: str) -> None:
        """Initialize with model information."""
        message = f"Failed to extract data with OpenAI: {error}"
        super().__init__(message, {"model": model})


# =============================================================================
# Spreadsheet Exceptions
# =============================================================================


class SpreadsheetError(TranscriptProcessorError):
    """Spreadsheet is missing, unreadable, unwritable or has no header row."""

    def __init__(self, path: Any, reason: str) -> None:
        """Initialize with the spreadsheet path."""
        message = f"Spreadsheet '{path}': {reason}"
        super().__init__(message, {"path": str(path)})


class UnsupportedFormatError(SpreadsheetError):
    """Spreadsheet file type has no table store backend."""

    def __init__(self, path: Any, supported: list[str]) -> None:
        """Initialize with format information."""
        reason = f"unsupported file type. Supported formats: {', '.join(supported)}"
        super().__init__(path, reason)
        self.details["supported"] = supported


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationError(TranscriptProcessorError):
    """Configuration error."""

    pass


class MissingConfigurationError(ConfigurationError):
    """Required configuration missing."""

    def __init__(self, config_name: str) -> None:
        """Initialize with config name."""
        message = f"Required configuration '{config_name}' is missing"
        super().__init__(message, {"config_name": config_name})
