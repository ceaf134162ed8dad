"""
Helpers shared by the recovery-tools commands.
"""

import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional

from pydantic import BaseModel
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeRemainingColumn,
)

from ..core.cancellation import ProgressEvent
from ..core.types import FileDescriptor
from ..shared.media_utils import collect_media_files

console = Console()
logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Setup logging with rich handler."""
    level = logging.DEBUG if verbose else logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, console=console)],
    )


def build_corpus(directory: Path, recursive: bool = True) -> List[FileDescriptor]:
    """
    Collect media files and wrap them in descriptors, in sorted path order.

    Files that vanish between listing and stat are logged and left out.
    """
    descriptors: List[FileDescriptor] = []
    for path in collect_media_files(directory, recursive=recursive):
        try:
            descriptors.append(FileDescriptor.from_path(path))
        except OSError as e:
            logger.warning(f"Skipping {path}: {e}")
    return descriptors


def track(events: Iterable[ProgressEvent], description: str, total: int) -> None:
    """Drain a progress event stream into a rich progress bar."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TimeRemainingColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task(description, total=total)
        for event in events:
            progress.update(task, completed=event.completed)


def write_report(output: Optional[str], payload: dict) -> None:
    """Write a JSON report if an output path was given."""
    if not output:
        return

    def encode(value):
        if isinstance(value, BaseModel):
            return value.model_dump(mode="json")
        return value

    report = {}
    for key, value in payload.items():
        if isinstance(value, list):
            report[key] = [encode(v) for v in value]
        else:
            report[key] = encode(value)

    output_path = Path(output)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2)
    console.print(f"Report written to [cyan]{output_path}[/cyan]")


def print_errors(files: List[FileDescriptor]) -> None:
    undecodable = sum(1 for f in files if f.decode_error and not f.error)
    if undecodable:
        console.print(
            f"\n[yellow]{undecodable} images could not be decoded "
            f"and were matched by content only[/yellow]"
        )

    failed = [f for f in files if f.error]
    if not failed:
        return
    console.print(f"\n[yellow]{len(failed)} files could not be processed:[/yellow]")
    for descriptor in failed[:10]:
        console.print(f"  [dim]{escape(str(descriptor.path))}[/dim]: {escape(descriptor.error)}")
    if len(failed) > 10:
        console.print(f"  ... and {len(failed) - 10} more")
