"""
Configuration for the transcript processor.

Settings are read from the environment (and a local `.env` file). Only the
CLI touches the process-wide instance; everything below it receives an
explicit config object built from it.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from transcript_processor.utils.errors import MissingConfigurationError

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TEMPERATURE = 0.3
NOT_FOUND_SENTINEL = "Not found in transcript"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Logging
    log_level: str = "INFO"
    log_file_path: Optional[Path] = None
    dev_mode: bool = False

    # Generation service
    openai_api_key: Optional[str] = None
    openai_model: str = DEFAULT_MODEL
    extraction_temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=2.0)
    json_mode: bool = False
    not_found_sentinel: str = NOT_FOUND_SENTINEL

    # Transcript API
    transcript_api_endpoint: Optional[str] = None
    transcript_api_key: Optional[str] = None

    # Output
    output_dir: Path = Path("./output")
    timestamp_format: str = "%Y-%m-%d %H:%M:%S %Z"
    display_timezone: Optional[str] = None

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"log_level must be a standard logging level, got {v!r}")
        return level

    @field_validator("transcript_api_endpoint")
    @classmethod
    def strip_endpoint(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().rstrip("/")
        return v or None

    @field_validator("display_timezone")
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"display_timezone is not a known IANA timezone: {v!r}")
        return v

    @property
    def tzinfo(self) -> Optional[ZoneInfo]:
        """Timezone for rendered timestamps; None means local time."""
        return ZoneInfo(self.display_timezone) if self.display_timezone else None

    def get_log_file_path(self) -> Optional[Path]:
        if self.log_file_path is None:
            return None
        self.log_file_path.parent.mkdir(parents=True, exist_ok=True)
        return self.log_file_path


@dataclass
class TranscriptAPIConfig:
    """Connection details for the transcript API - passed explicitly."""
    endpoint: str
    api_key: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "TranscriptAPIConfig":
        if not settings.transcript_api_endpoint:
            raise MissingConfigurationError("TRANSCRIPT_API_ENDPOINT")
        if not settings.transcript_api_key:
            raise MissingConfigurationError("TRANSCRIPT_API_KEY")
        return cls(endpoint=settings.transcript_api_endpoint, api_key=settings.transcript_api_key)


@dataclass
class ExtractionConfig:
    """Configuration for extraction - passed explicitly."""
    api_key: str
    model: str = DEFAULT_MODEL
    temperature: float = DEFAULT_TEMPERATURE
    json_mode: bool = False
    not_found_sentinel: str = NOT_FOUND_SENTINEL

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExtractionConfig":
        if not settings.openai_api_key:
            raise MissingConfigurationError("OPENAI_API_KEY")
        return cls(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            temperature=settings.extraction_temperature,
            json_mode=settings.json_mode,
            not_found_sentinel=settings.not_found_sentinel,
        )


# Singleton instance
_settings = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
