"""
Transcript processing pipeline - owns control flow explicitly.

Steps run strictly one after another:
load entries -> normalize -> write markdown -> read headers -> extract
-> write extraction JSON -> append spreadsheet row.
"""

import json
from dataclasses import dataclass
from datetime import tzinfo
from pathlib import Path
from typing import List, Optional, Union

from transcript_processor.config import ExtractionConfig, Settings, TranscriptAPIConfig
from transcript_processor.extractor import TranscriptExtractor
from transcript_processor.models import Extraction, PipelineResult, TranscriptEntry
from transcript_processor.normalizer import DEFAULT_TIMESTAMP_FORMAT, normalize, render_markdown
from transcript_processor.row_writer import append_row
from transcript_processor.sources import load_entries
from transcript_processor.spreadsheet import open_table_store
from transcript_processor.utils.errors import TranscriptProcessorError
from transcript_processor.utils.logging import get_logger, log_step, run_context

logger = get_logger(__name__)

DOCUMENT_FILENAME = "transcript.md"
EXTRACTION_FILENAME = "extracted_data.json"


@dataclass
class PipelineConfig:
    """Everything the pipeline needs - passed explicitly."""
    extraction: ExtractionConfig
    transcript_api: Optional[TranscriptAPIConfig] = None
    display_timezone: Optional[tzinfo] = None
    timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT

    @classmethod
    def from_settings(cls, settings: Settings, needs_api: bool = False) -> "PipelineConfig":
        """
        Build the pipeline config from settings.

        Args:
            settings: Loaded settings
            needs_api: Whether the run fetches from the transcript API
        """
        return cls(
            extraction=ExtractionConfig.from_settings(settings),
            transcript_api=TranscriptAPIConfig.from_settings(settings) if needs_api else None,
            display_timezone=settings.tzinfo,
            timestamp_format=settings.timestamp_format,
        )


@dataclass
class RunRequest:
    """Inputs for one run."""
    spreadsheet: Path
    output_dir: Path
    bot_id: Optional[str] = None
    sample_file: Optional[Path] = None


class TranscriptPipeline:
    """
    Transcript processing pipeline.

    One instance can process several transcripts, one run at a time.
    """

    def __init__(self, config: PipelineConfig, extractor: Optional[TranscriptExtractor] = None):
        self.config = config
        self.extractor = extractor or TranscriptExtractor(config.extraction)

    async def run(
        self,
        spreadsheet: Union[str, Path],
        output_dir: Union[str, Path],
        bot_id: Optional[str] = None,
        sample_file: Optional[Union[str, Path]] = None,
    ) -> PipelineResult:
        """
        Process one transcript end to end.

        Artifacts written before a failing step stay on disk.

        Args:
            spreadsheet: Spreadsheet whose headers define the fields
            output_dir: Directory for transcript.md and extracted_data.json
            bot_id: Bot identifier for the transcript API
            sample_file: Local transcript JSON file (instead of bot_id)

        Returns:
            PipelineResult describing the run

        Raises:
            TranscriptProcessorError: On any fatal step failure
        """
        request = RunRequest(
            spreadsheet=Path(spreadsheet),
            output_dir=Path(output_dir),
            bot_id=bot_id,
            sample_file=Path(sample_file) if sample_file else None,
        )
        warnings: List[str] = []
        source = f"bot:{bot_id}" if bot_id else f"file:{sample_file}"

        with run_context(source=source, spreadsheet=str(request.spreadsheet)):
            logger.info("Starting transcript processing...")

            # Step 1: Load transcript entries
            entries = await self.load(request)
            logger.info(f"Retrieved {len(entries)} transcript entries.")

            # Step 2: Normalize and write the markdown document
            with run_context(step="render"):
                document = normalize(entries)
                markdown = render_markdown(
                    document,
                    tz=self.config.display_timezone,
                    timestamp_format=self.config.timestamp_format,
                )
                self._prepare_output_dir(request.output_dir)
                document_path = request.output_dir / DOCUMENT_FILENAME
                self._write_text(document_path, markdown)
                logger.info(f"Markdown saved to: {document_path}")

            # Step 3: Read the field schema
            with run_context(step="read_headers"):
                store = open_table_store(request.spreadsheet)
                headers = store.read_headers()
                logger.info(f"Extracted {len(headers)} headers: {', '.join(headers)}")

            # Step 4: Extract
            extraction = await self.extract(markdown, headers)
            with run_context(step="extract"):
                if extraction.used_fallback:
                    message = "Could not parse JSON from OpenAI response. Returning raw response."
                    logger.warning(message)
                    warnings.append(message)

                extraction_path = request.output_dir / EXTRACTION_FILENAME
                self._write_text(extraction_path, json.dumps(extraction.to_json(), indent=2, ensure_ascii=False))
                logger.info(f"Extracted data saved to: {extraction_path}")

            # Step 5: Append the row
            with run_context(step="append_row"):
                row = append_row(extraction.values, headers, store)
                logger.info(f"Data written to spreadsheet: {request.spreadsheet}")

        return PipelineResult(
            entry_count=len(entries),
            turn_count=len(document.turns),
            headers=headers,
            extraction=extraction.to_json(),
            row=row,
            document_path=document_path,
            extraction_path=extraction_path,
            used_fallback=extraction.used_fallback,
            warnings=warnings,
        )

    @log_step("load")
    async def load(self, request: RunRequest) -> List[TranscriptEntry]:
        return await load_entries(
            bot_id=request.bot_id,
            sample_file=request.sample_file,
            api_config=self.config.transcript_api,
        )

    @log_step("extract")
    async def extract(self, markdown: str, headers: List[str]) -> Extraction:
        return await self.extractor.extract(markdown, headers)

    @staticmethod
    def _prepare_output_dir(path: Path) -> None:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TranscriptProcessorError(f"Could not create output directory {path}: {e}", {"path": str(path)}) from e

    @staticmethod
    def _write_text(path: Path, content: str) -> None:
        try:
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise TranscriptProcessorError(f"Could not write {path}: {e}", {"path": str(path)}) from e
