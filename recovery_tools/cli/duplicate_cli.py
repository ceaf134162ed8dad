"""
CLI for duplicate detection and metadata merge recommendations.

Finds exact and rotated/re-encoded duplicates in a recovered photo directory.
"""

import sys
from pathlib import Path
from typing import List, Optional, Tuple

import click
from rich.markup import escape
from rich.table import Table

from ..analysis.duplicate_detector import DuplicateGroupingEngine
from ..analysis.fingerprinter import CorpusFingerprinter
from ..analysis.metadata import populate_metadata
from ..analysis.metadata_merge import MetadataMergeAdvisor
from ..core.cancellation import CancellationToken
from ..core.config import Settings, settings
from ..core.exceptions import OperationCancelledError
from ..core.types import DuplicateGroup, FileDescriptor
from ..shared.media_utils import format_bytes
from .common import build_corpus, console, print_errors, setup_logging, track, write_report


def _scan(
    directory: str,
    recursive: bool,
    run_settings: Settings,
    enable_visual_matching: bool,
    workers: Optional[int],
) -> Tuple[List[FileDescriptor], List[DuplicateGroup]]:
    directory_path = Path(directory).resolve()
    files = build_corpus(directory_path, recursive=recursive)
    console.print(f"Found [bold]{len(files)}[/bold] media files in {directory_path}\n")
    if len(files) < 2:
        return files, []

    token = CancellationToken()
    fingerprinter = CorpusFingerprinter(
        max_workers=workers,
        enable_visual_matching=enable_visual_matching,
        settings=run_settings,
    )
    engine = DuplicateGroupingEngine(run_settings)

    try:
        track(populate_metadata(files, cancel_token=token), "Reading metadata...", len(files))
        track(fingerprinter.run(files, token), "Fingerprinting...", len(files))
        groups = engine.find_duplicates(files, token, enable_visual_matching)
    except KeyboardInterrupt:
        token.cancel()
        console.print("[yellow]Cancelled[/yellow]")
        sys.exit(130)
    except OperationCancelledError as e:
        console.print(f"[yellow]{e}[/yellow]")
        sys.exit(130)

    return files, groups


def _print_groups(groups: List[DuplicateGroup]) -> None:
    table = Table(title="Duplicate Groups")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Kind", style="cyan")
    table.add_column("Files", justify="right")
    table.add_column("Members")
    table.add_column("Space saved", justify="right", style="green")

    for i, group in enumerate(groups, 1):
        names = []
        for member in group.members:
            name = escape(member.file_name)
            if member.suggested_rotation:
                name += f" [yellow](rotate {member.suggested_rotation:+d})[/yellow]"
            names.append(name)
        table.add_row(
            str(i),
            group.match_kind.value,
            str(group.file_count),
            "\n".join(names),
            format_bytes(group.potential_space_saved),
        )

    console.print(table)
    total_saved = sum(g.potential_space_saved for g in groups)
    console.print(
        f"\nPotential space savings: [bold green]{format_bytes(total_saved)}[/bold green]"
    )


@click.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.option(
    "--recursive/--no-recursive",
    "-r/-R",
    default=True,
    help="Scan directories recursively",
)
@click.option(
    "-t",
    "--threshold",
    type=click.IntRange(0, 64),
    default=None,
    help="Perceptual distance threshold (0-64, lower = more strict)",
)
@click.option(
    "--no-visual",
    is_flag=True,
    help="Only report byte-identical duplicates",
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
def duplicates(
    directory: str,
    recursive: bool,
    threshold: Optional[int],
    no_visual: bool,
    output: Optional[str],
    workers: Optional[int],
    verbose: bool,
) -> None:
    """
    Find exact and perceptual duplicates.

    Byte-identical files are grouped first; the remaining images are compared
    visually, including rotated copies.

    DIRECTORY: Path to directory containing recovered media
    """
    setup_logging(verbose)

    run_settings = settings
    if threshold is not None:
        run_settings = settings.model_copy(update={"duplicate_threshold": threshold})

    console.print("\n[bold cyan]Duplicate Finder[/bold cyan]\n")
    files, groups = _scan(directory, recursive, run_settings, not no_visual, workers)

    if not groups:
        console.print("[green]No duplicates found.[/green]")
    else:
        _print_groups(groups)
    print_errors(files)

    write_report(output, {"files": files, "duplicate_groups": groups})


@click.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.option(
    "--recursive/--no-recursive",
    "-r/-R",
    default=True,
    help="Scan directories recursively",
)
@click.option(
    "-w",
    "--workers",
    type=click.IntRange(min=1),
    default=None,
    help="Number of fingerprinting threads (default: based on CPU count)",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging")
def merge(directory: str, recursive: bool, workers: Optional[int], verbose: bool) -> None:
    """
    Recommend consolidated metadata for every duplicate group.

    DIRECTORY: Path to directory containing recovered media
    """
    setup_logging(verbose)

    console.print("\n[bold cyan]Metadata Merge Advisor[/bold cyan]\n")
    files, groups = _scan(directory, recursive, settings, True, workers)

    if not groups:
        console.print("[green]No duplicates found, nothing to merge.[/green]")
        return

    advisor = MetadataMergeAdvisor()
    for i, group in enumerate(groups, 1):
        recommendation = advisor.recommend_for_group(group)
        if recommendation is None:
            continue

        table = Table(
            title=(
                f"Group {i}: keep {escape(recommendation.target.file_name)}, "
                f"merge from {escape(recommendation.source.file_name)}"
            )
        )
        table.add_column("Field", style="cyan")
        table.add_column("Target")
        table.add_column("Source")
        table.add_column("Recommended", style="green")
        table.add_column("Reason", style="dim")

        for rec in recommendation.recommendations:
            table.add_row(
                rec.field.value,
                escape(_display(rec.target_value)),
                escape(_display(rec.source_value)),
                escape(_display(rec.recommended_value)),
                rec.reason,
            )
        console.print(table)

    print_errors(files)


def _display(value) -> str:
    if value is None:
        return "-"
    if isinstance(value, tuple):
        return " x ".join(str(v) for v in value)
    return str(value)
