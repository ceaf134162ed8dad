"""
CLI for scene detection.

Groups bursts, near-identical sequences and folder events, and names the best
shot of each group.
"""

import sys
from pathlib import Path
from typing import Optional

import click
from rich.markup import escape
from rich.table import Table

from ..analysis.fingerprinter import CorpusFingerprinter
from ..analysis.metadata import populate_metadata
from ..analysis.scene_detector import SceneClusteringEngine
from ..core.cancellation import CancellationToken
from ..core.config import settings
from ..core.exceptions import OperationCancelledError
from ..shared.media_utils import format_bytes
from .common import build_corpus, console, print_errors, setup_logging, track, write_report


@click.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.option(
    "--recursive/--no-recursive",
    "-r/-R",
    default=True,
    help="Scan directories recursively",
)
@click.option(
    "-s",
    "--similarity-threshold",
    type=click.IntRange(0, 64),
    default=None,
    help="Perceptual distance for sequence shots (default: 12)",
)
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write a JSON report to this file",
)
@click.option(
    "-w",
    "--workers",
    type=click.IntRange(min=1),
    default=None,
    help="Number of fingerprinting threads (default: based on CPU count)",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging")
def scenes(
    directory: str,
    recursive: bool,
    similarity_threshold: Optional[int],
    output: Optional[str],
    workers: Optional[int],
    verbose: bool,
) -> None:
    """
    Detect bursts, sequences and events.

    DIRECTORY: Path to directory containing recovered media
    """
    setup_logging(verbose)

    run_settings = settings
    if similarity_threshold is not None:
        run_settings = settings.model_copy(
            update={"scene_similarity_threshold": similarity_threshold}
        )

    console.print("\n[bold cyan]Scene Detector[/bold cyan]\n")
    directory_path = Path(directory).resolve()
    files = build_corpus(directory_path, recursive=recursive)
    console.print(f"Found [bold]{len(files)}[/bold] media files in {directory_path}\n")

    token = CancellationToken()
    fingerprinter = CorpusFingerprinter(max_workers=workers, settings=run_settings)
    engine = SceneClusteringEngine(run_settings)

    try:
        track(populate_metadata(files, cancel_token=token), "Reading metadata...", len(files))
        track(fingerprinter.run(files, token), "Fingerprinting...", len(files))
        groups = engine.detect_scenes(files, token)
    except KeyboardInterrupt:
        token.cancel()
        console.print("[yellow]Cancelled[/yellow]")
        sys.exit(130)
    except OperationCancelledError as e:
        console.print(f"[yellow]{e}[/yellow]")
        sys.exit(130)

    if not groups:
        console.print("[green]No scenes found.[/green]")
    else:
        table = Table(title="Scene Groups")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Type", style="cyan")
        table.add_column("Files", justify="right")
        table.add_column("Span")
        table.add_column("Best shot", style="green")
        table.add_column("Location")
        table.add_column("Reclaimable", justify="right")

        for i, group in enumerate(groups, 1):
            best = group.best_file
            table.add_row(
                str(i),
                group.group_type.value,
                str(group.file_count),
                group.formatted_time_span,
                escape(best.file_name) if best else "-",
                escape(group.location or "-"),
                format_bytes(group.potential_space_saved),
            )
        console.print(table)

    print_errors(files)
    write_report(output, {"files": files, "scene_groups": groups})
