import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from ..chunking.assurance import build_chunk_assurance
from ..chunking.engine import ChunkingEngine
from ..chunking.hierarchy import get_children, root_chunks
from ..chunking.validator import ChunkValidator
from ..core.config import OutputFormat, Settings, preset
from ..core.errors import ChunkingError
from ..core.logging import log, setup_logging
from ..core.models import Chunk, ChunkingResult

app = typer.Typer(add_completion=False, help="Chunktree CLI")
console = Console()


@app.callback()
def _init(
    log_format: str | None = typer.Option(None, "--log-format", help="json|plain|auto"),
    log_level: str | None = typer.Option(None, "--log-level", help="debug|info|warning|error"),
) -> None:
    settings = Settings()
    setup_logging(log_format or settings.LOG_FORMAT, log_level or settings.LOG_LEVEL)  # type: ignore[arg-type]


@app.command()
def version() -> None:
    from .. import __version__

    typer.echo(__version__)


@app.command()
def config(
    config_file: str | None = typer.Option(
        None, "--config", help="Config file (.chunktree.yaml auto-discovered)"
    ),
) -> None:
    """Print the effective settings."""
    try:
        settings = Settings.load_config(config_file)
    except Exception as e:
        console.print(f"[bold red]❌ Config error: {e}[/bold red]")
        raise typer.Exit(1) from e

    for k, v in settings.model_dump(mode="json").items():
        typer.echo(f"{k}={v}")


def _summary_table(result: ChunkingResult) -> Table:
    stats = result.statistics
    table = Table(title="Chunking Summary")
    table.add_column("Metric", style="bold cyan")
    table.add_column("Value", style="bold green", justify="right")

    table.add_row("Chunks", str(stats.total_chunks))
    table.add_row("Sections", str(stats.structural_chunks))
    table.add_row("Content", str(stats.content_chunks))
    table.add_row("Split", str(stats.split_chunks))
    table.add_row("Max depth", str(stats.max_depth))
    table.add_row("Total tokens", str(stats.total_tokens))
    table.add_row("Avg tokens", str(stats.average_tokens_per_chunk))
    table.add_row("Min / max tokens", f"{stats.min_tokens_in_chunk} / {stats.max_tokens_in_chunk}")
    if result.validation is not None:
        table.add_row("Valid", "yes" if result.validation.is_valid else "no")
    return table


def _outline(chunks: list[Chunk]) -> Tree:
    tree = Tree("[bold]document[/bold]")

    def add(node: Tree, chunk: Chunk) -> None:
        style = "bold cyan" if chunk.is_container else "white"
        branch = node.add(f"[{style}]{chunk.chunk_type.value}[/{style}] {chunk.label}")
        for child in get_children(chunk, chunks):
            add(branch, child)

    for root in root_chunks(chunks):
        add(tree, root)
    return tree


@app.command()
def chunk(
    input_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Plain text file"),
    config_file: str | None = typer.Option(
        None, "--config", help="Config file (.chunktree.yaml auto-discovered)"
    ),
    preset_name: str | None = typer.Option(None, "--preset", help="Named preset, e.g. rag"),
    max_tokens: int | None = typer.Option(None, "--max-tokens", help="Override token budget"),
    overlap_tokens: int | None = typer.Option(None, "--overlap-tokens", help="Override overlap"),
    output_format: OutputFormat | None = typer.Option(None, "--format", help="Output format"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write chunks as NDJSON"),
    report: Path | None = typer.Option(None, "--report", help="Write assurance report JSON"),
    ndjson: bool = typer.Option(False, "--ndjson", help="Print chunks as NDJSON to stdout"),
    show_tree: bool = typer.Option(False, "--tree", help="Print the section outline"),
) -> None:
    """
    Chunk a plain text file.

    Config precedence: config file < env vars < CLI flags
    """
    try:
        settings = Settings.load_config(config_file)
        options = preset(preset_name) if preset_name else settings.to_options()
        if max_tokens is not None:
            options.max_tokens = max_tokens
        if overlap_tokens is not None:
            options.overlap_tokens = overlap_tokens
        if output_format is not None:
            options.output_format = output_format

        engine = ChunkingEngine(options)
        result = engine.chunk_text(input_file.read_text(encoding="utf-8"))
    except (ChunkingError, ValueError) as e:
        console.print(f"[bold red]❌ Chunking failed: {e}[/bold red]")
        raise typer.Exit(1) from e

    log.info("cli.chunk.done", file=str(input_file), chunks=len(result.chunks))

    if output is not None:
        with open(output, "w", encoding="utf-8") as f:
            for c in result.chunks:
                f.write(c.model_dump_json() + "\n")

    if report is not None:
        assurance = build_chunk_assurance(
            result.chunks,
            engine.counter,
            options.max_tokens,
            options.overlap_tokens,
            result.validation,
        )
        with open(report, "w", encoding="utf-8") as f:
            json.dump(assurance, f, indent=2, sort_keys=True)

    if ndjson:
        for c in result.chunks:
            typer.echo(c.model_dump_json())
        return

    console.print(_summary_table(result))
    if show_tree:
        console.print(_outline(result.chunks))
    for warning in result.warnings:
        console.print(f"[yellow]⚠️  {warning.code}: {warning.message}[/yellow]")
    if output is not None:
        console.print(f"📄 Chunks written to: {output}")
    if report is not None:
        console.print(f"📄 Assurance report written to: {report}")


@app.command()
def validate(
    chunks_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Chunks NDJSON"),
    max_tokens: int | None = typer.Option(None, "--max-tokens", help="Flag chunks over this size"),
    config_file: str | None = typer.Option(
        None, "--config", help="Config file (.chunktree.yaml auto-discovered)"
    ),
) -> None:
    """Validate a chunk NDJSON file; exits 1 when issues are found."""
    try:
        settings = Settings.load_config(config_file)
        options = settings.to_options()
        engine = ChunkingEngine(options)
        with open(chunks_file, encoding="utf-8") as f:
            chunks = [Chunk.model_validate_json(line) for line in f if line.strip()]
    except (ChunkingError, ValueError) as e:
        console.print(f"[bold red]❌ Could not load chunks: {e}[/bold red]")
        raise typer.Exit(1) from e

    result = ChunkValidator(engine.counter, max_tokens or options.max_tokens).validate(chunks)

    if result.is_valid:
        console.print(f"✅ {len(chunks)} chunks, no issues")
        return

    table = Table(title="Validation Issues")
    table.add_column("Severity", style="bold red")
    table.add_column("Code", style="bold cyan")
    table.add_column("Chunk")
    table.add_column("Message")
    for issue in result.issues:
        table.add_row(issue.severity.value, issue.code, issue.chunk_id or "", issue.message)
    console.print(table)
    raise typer.Exit(1)


if __name__ == "__main__":
    app()
