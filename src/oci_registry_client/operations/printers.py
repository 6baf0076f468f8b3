"""
Human-readable output formatting.

Centralizes all CLI output formatting (manifest dumps, platform tables, live
download progress) so commands stay thin.
"""
from __future__ import annotations

import json
from typing import Optional, Sequence

import typer
from rich.console import Console
from rich.live import Live
from rich.table import Table

from ..download import LayerProgress, TaskState
from ..errors import APIError, DownloadIncomplete
from ..models import ManifestList
from .facade import InspectResult, PullResult

_console = Console()
_err_console = Console(stderr=True)

_STATE_STYLES = {
    TaskState.UNKNOWN: "dim",
    TaskState.DOWNLOADING: "yellow",
    TaskState.COMPLETED: "green",
    TaskState.FAILED: "red",
    TaskState.CANCELLED: "magenta",
}


def print_inspect_result(result: InspectResult) -> None:
    """Print manifest and image config as JSON documents, one per line."""
    typer.echo(result.manifest.model_dump_json(by_alias=True, exclude_none=True))
    typer.echo(result.config.model_dump_json(exclude_none=True))


def print_platforms(manifest_list: ManifestList, image: str) -> None:
    table = Table(title=f"Platforms for {image}")
    table.add_column("OS", style="cyan")
    table.add_column("Architecture", style="cyan")
    table.add_column("Variant")
    table.add_column("Digest", style="dim")
    table.add_column("Size", justify="right")

    for item in manifest_list.manifests:
        platform = item.platform
        table.add_row(platform.os, platform.architecture, platform.variant or "",
                      str(item.digest), _format_bytes(item.size))

    _console.print(table)


def render_progress_table(progress: Sequence[LayerProgress]) -> Table:
    """
    Build the progress table for one snapshot.

    Rows with an unknown total show byte counts only, never a percentage.
    """
    table = Table(show_header=True, header_style="bold")
    table.add_column("Layer", style="dim")
    table.add_column("State")
    table.add_column("Downloaded", justify="right")
    table.add_column("Progress", justify="right")

    for entry in progress:
        style = _STATE_STYLES[entry.state]
        if entry.total is not None:
            amount = f"{_format_bytes(entry.downloaded)} / {_format_bytes(entry.total)}"
        else:
            amount = _format_bytes(entry.downloaded)
        percent = entry.percent
        table.add_row(
            _short_digest(str(entry.digest)),
            f"[{style}]{entry.state.value}[/]",
            amount,
            f"{percent:.2f}%" if percent is not None else "",
        )
    return table


class ProgressRenderer:
    """
    Re-render the full progress table after every update.

    Used as the orchestrator's ``on_progress`` callback inside a ``with``
    block. In CI mode nothing is drawn live.
    """

    def __init__(self, ci: bool = False, console: Optional[Console] = None):
        self.ci = ci
        self._console = console or _console
        self._live: Optional[Live] = None
        self.last: Sequence[LayerProgress] = ()

    def __enter__(self) -> ProgressRenderer:
        if not self.ci:
            self._live = Live(render_progress_table(()), console=self._console, refresh_per_second=10)
            self._live.__enter__()
        return self

    def __call__(self, progress: Sequence[LayerProgress]) -> None:
        self.last = progress
        if self._live is not None:
            self._live.update(render_progress_table(progress))

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._live is not None:
            self._live.__exit__(exc_type, exc_val, exc_tb)
            self._live = None


def print_pull_summary(result: PullResult) -> None:
    download = result.download
    sep = "@" if ":" in result.reference else ":"
    typer.echo(f"Pulled {result.image}{sep}{result.reference} to {result.dest}")
    typer.echo(f"Layers: {len(result.manifest.layers)} ({len(download.progress)} unique)")
    total = sum(p.downloaded for p in download.progress)
    typer.echo(f"Downloaded: {_format_bytes(total)}")


def print_error(exc: BaseException) -> None:
    """Print an error to stderr, keeping registry error details intact."""
    _err_console.print(f"[red]Error:[/] {type(exc).__name__}", highlight=False)
    if isinstance(exc, APIError):
        for entry in exc.errors:
            detail = f" ({json.dumps(entry.detail)})" if entry.detail is not None else ""
            _err_console.print(f"  {entry.code}: {entry.message}{detail}", highlight=False, markup=False)
        return
    _err_console.print(f"  {exc}", highlight=False, markup=False)
    if isinstance(exc, DownloadIncomplete):
        for failure in exc.failures:
            _err_console.print(f"  - {failure}", highlight=False, markup=False)


def _short_digest(digest: str) -> str:
    return digest[:19] + "…" if len(digest) > 20 else digest


def _format_bytes(size_bytes: int) -> str:
    """
    Format byte count as human-readable string.

    Returns:
        Formatted string (e.g., "1.5 MB", "42 KB")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.1f} GB"
