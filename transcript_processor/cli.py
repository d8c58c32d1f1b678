"""
Command-line interface for the transcript processor.

`process` runs the whole pipeline for one transcript; `headers` shows the
fields a spreadsheet would ask the model to extract.
"""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from transcript_processor.config import get_settings
from transcript_processor.pipeline import PipelineConfig, TranscriptPipeline
from transcript_processor.spreadsheet import open_table_store
from transcript_processor.utils.errors import ConfigurationError, InputError, TranscriptProcessorError
from transcript_processor.utils.logging import get_logger, setup_logging

app = typer.Typer(
    name="transcript-processor",
    help="Extract spreadsheet fields from a conversation transcript with OpenAI",
    add_completion=False,
)
console = Console()
err_console = Console(stderr=True)

logger = get_logger(__name__)


def _fail(error: Exception) -> None:
    logger.debug("Fatal error", exc_info=error)
    err_console.print(f"[red]Error during transcript processing:[/red] {escape(str(error))}")
    raise typer.Exit(1)


@app.command()
def process(
    spreadsheet: Path = typer.Option(
        ...,
        "--spreadsheet",
        "-s",
        help="Path to the spreadsheet file (.xlsx or .csv)",
    ),
    bot_id: Optional[str] = typer.Option(
        None,
        "--bot-id",
        "-b",
        help="Bot ID for transcript retrieval",
    ),
    sample_file: Optional[Path] = typer.Option(
        None,
        "--sample-file",
        "-f",
        help="Path to a sample transcript JSON file",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Directory for output files (default: ./output)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
):
    """Process a transcript and append the extracted fields to the spreadsheet."""

    try:
        settings = get_settings()
        setup_logging(log_level="DEBUG" if verbose else None)

        if bot_id and sample_file:
            raise InputError("Provide either --bot-id or --sample-file, not both")
        if not bot_id and not sample_file:
            raise InputError("Either --bot-id or --sample-file must be provided")

        config = PipelineConfig.from_settings(settings, needs_api=bool(bot_id))
        pipeline = TranscriptPipeline(config)
        output_dir = output or settings.output_dir

        result = asyncio.run(
            pipeline.run(
                spreadsheet=spreadsheet,
                output_dir=output_dir,
                bot_id=bot_id,
                sample_file=sample_file,
            )
        )
    except ValidationError as e:
        _fail(ConfigurationError(f"Invalid settings: {e}"))
        return
    except TranscriptProcessorError as e:
        _fail(e)
        return

    extracted_note = " (raw response only)" if result.used_fallback else ""
    console.print(
        f"[green]✓[/green] Transcript processing completed successfully!\n"
        f"  Entries: {result.entry_count} ({result.turn_count} turns)\n"
        f"  Markdown: {result.document_path}\n"
        f"  Extracted data: {result.extraction_path}{extracted_note}\n"
        f"  Row appended to: {spreadsheet}"
    )


@app.command()
def headers(
    spreadsheet: Path = typer.Option(
        ...,
        "--spreadsheet",
        "-s",
        help="Path to the spreadsheet file (.xlsx or .csv)",
    ),
):
    """List the fields a spreadsheet defines."""

    try:
        store = open_table_store(spreadsheet)
        columns = store.header_columns()
    except TranscriptProcessorError as e:
        _fail(e)
        return

    table = Table(title=f"Fields in {spreadsheet.name} ({len(columns)})")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Column", justify="center")
    table.add_column("Field", style="cyan")

    for position, (column, name) in enumerate(columns, start=1):
        table.add_row(str(position), str(column + 1), name)

    console.print(table)
    console.print(f"Data rows: {store.row_count - 1}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
