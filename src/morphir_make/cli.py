"""CLI for morphir-make."""

from pathlib import Path
from typing import Optional
import asyncio
import json
import logging
import os

import typer
from rich.console import Console

from .config import MakeConfig, load_make_config
from .constants import DEFAULT_TARGET_VERSION, IR_FILE
from .context import ProjectContext
from .core import BuildMode, BuildOptions, GenerateOptions
from .engine import CompilationEngine, SubprocessEngine
from .errors import MakeError
from .ops import gen as ops_gen, make as ops_make


app = typer.Typer(help="""\
Incremental front end for the Morphir compiler. Detects source changes,
builds the Morphir IR from scratch or incrementally, and generates code
into an output directory without leaving stale files behind.""")

console = Console()


class ConsoleProgress:
    """Prints engine progress messages as they arrive."""

    def on_progress(self, message: str) -> None:
        console.print(f"[dim]{message}[/dim]")


def _get_engine(config: MakeConfig) -> CompilationEngine:
    """Create the compilation engine from configuration."""
    return SubprocessEngine(config.require_engine_command())


def _report_failure(e: BaseException) -> None:
    """Print a single human-readable failure line (traceback with DEBUG=1)."""
    if isinstance(e, FileNotFoundError):
        console.print(f"[red]✗[/red] Could not find file at '{e.filename}'")
    elif isinstance(e, MakeError):
        console.print(f"[red]✗[/red] {e}")
    elif isinstance(e, json.JSONDecodeError):
        console.print(f"[red]✗[/red] Invalid JSON: {e}")
    else:
        console.print(f"[red]✗[/red] Error: {e}")

    if os.environ.get("DEBUG"):
        import traceback
        traceback.print_exception(type(e), e, e.__traceback__)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Configure logging for all commands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def make(
    project_dir: Path = typer.Option(
        Path("."), "--project-dir", "-p",
        help="Root directory of the project where morphir.json is located.",
    ),
    output: Path = typer.Option(
        Path(IR_FILE), "--output", "-o",
        help="Target file location where the Morphir IR will be saved (relative to the project).",
    ),
    types_only: bool = typer.Option(
        False, "--types-only", "-t",
        help="Only include type information in the IR, no values.",
    ),
):
    """Translate sources to Morphir IR, incrementally when possible."""
    ctx = ProjectContext(project_dir)
    if not output.is_absolute():
        output = ctx.root / output

    try:
        engine = _get_engine(ctx.get_config())
        result = asyncio.run(ops_make(
            engine,
            ctx,
            output=output,
            options=BuildOptions(types_only=types_only),
            progress=ConsoleProgress(),
        ))
    except (MakeError, OSError, ValueError) as e:
        _report_failure(e)
        raise typer.Exit(1)

    stats = result.build.stats
    if result.mode == BuildMode.UP_TO_DATE:
        console.print("[green]✓[/green] No file changes were detected. No actions needed.")
    else:
        label = "from scratch" if result.mode == BuildMode.FULL else "incrementally"
        console.print(f"[green]✓[/green] Built {label} ({stats.summary()})")
    if result.written:
        console.print(f"  Wrote [cyan]{result.output_path}[/cyan]")


@app.command()
def gen(
    input_path: Path = typer.Option(
        Path(IR_FILE), "--input", "-i",
        help="Source location where the Morphir IR will be loaded from.",
    ),
    output: Path = typer.Option(
        Path("dist"), "--output", "-o",
        help="Target location where the generated code will be saved.",
    ),
    modules_to_include: Optional[str] = typer.Option(
        None, "--modules-to-include", "-m",
        help="Comma separated list of modules to limit generation to.",
    ),
    target_version: str = typer.Option(
        DEFAULT_TARGET_VERSION, "--target-version", "-s",
        help="Target version selecting which redistributables are copied.",
    ),
    project_dir: Path = typer.Option(
        Path("."), "--project-dir", "-p",
        help="Directory holding morphir-make.yaml.",
    ),
):
    """Generate code from Morphir IR and reconcile the output directory."""
    try:
        config = load_make_config(project_dir)
        engine = _get_engine(config)
        result = asyncio.run(ops_gen(
            engine,
            input_path,
            output,
            options=GenerateOptions.from_module_filter(modules_to_include),
            target_version=target_version,
            redistributable_dir=config.redistributable_dir,
            max_concurrent=config.max_concurrent,
            progress=ConsoleProgress(),
        ))
    except (MakeError, OSError, ValueError) as e:
        _report_failure(e)
        raise typer.Exit(1)

    for path in result.inserted:
        console.print(f"[green]INSERT[/green] - {path}")
    for path in result.updated:
        console.print(f"[yellow]UPDATE[/yellow] - {path}")
    for path in result.deleted:
        console.print(f"[red]DELETE[/red] - {path}")
    for path in result.copied:
        console.print(f"[cyan]COPY[/cyan] - {path}")
    console.print(f"[green]✓[/green] {result.summary()}")


app.command("generate", help="Alias for gen.")(gen)


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
