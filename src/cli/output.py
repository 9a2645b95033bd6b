"""Terminal output handling using Rich library.

This module provides the OutputHandler class for all CLI terminal output.
Uses Rich library for progress bars, spinners, colored output, and formatted
text. Supports verbosity levels and --no-color flag.
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from rich.console import Console
from rich.live import Live
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
)
from rich.spinner import Spinner

from src.cli.models import ChangeSet, SyncSummary


class OutputHandler:
    """Handles all terminal output using Rich library.

    Provides methods for displaying messages, progress bars, spinners,
    and summaries with color coding and verbosity level control.

    Attributes:
        verbosity: Logging verbosity level (0=summary, 1=info, 2=debug)
        console: Rich Console instance for output
        logger: Python logger for verbose output

    Example:
        >>> handler = OutputHandler(verbosity=1, no_color=False)
        >>> handler.success("Operation completed")
        >>> with handler.spinner("Processing..."):
        ...     # Do work
        ...     pass
    """

    def __init__(self, verbosity: int = 0, no_color: bool = False):
        """Initialize output handler.

        Args:
            verbosity: Verbosity level (0=summary, 1=info, 2=debug)
            no_color: Disable color output if True
        """
        self.verbosity = verbosity
        self.console = Console(
            force_terminal=not no_color,
            no_color=no_color,
            highlight=False,
        )
        self.logger = self._setup_logger()

    def _setup_logger(self) -> logging.Logger:
        logger = logging.getLogger("portal-sync")

        if self.verbosity >= 2:
            logger.setLevel(logging.DEBUG)
        elif self.verbosity >= 1:
            logger.setLevel(logging.INFO)
        else:
            logger.setLevel(logging.WARNING)

        logger.handlers.clear()
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        logger.addHandler(handler)

        return logger

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {message}")

    def error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {message}", style="red")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]⚠[/yellow] {message}", style="yellow")

    def info(self, message: str) -> None:
        """Display info message (only if verbosity >= 1)."""
        if self.verbosity >= 1:
            self.console.print(message)

    def debug(self, message: str) -> None:
        """Display debug message (only if verbosity >= 2)."""
        if self.verbosity >= 2:
            self.console.print(f"[dim]{message}[/dim]")

    def print(self, message: str) -> None:
        self.console.print(message)

    @contextmanager
    def spinner(self, message: str) -> Iterator[None]:
        """Display spinner for single operations.

        Example:
            >>> with handler.spinner("Connecting to Dynamics..."):
            ...     pass
        """
        spinner = Spinner("dots", text=message)
        with Live(spinner, console=self.console, refresh_per_second=10):
            yield

    @contextmanager
    def progress_bar(self, total: int, description: str = "Processing") -> Iterator[Progress]:
        """Display progress bar for multi-step operations.

        Args:
            total: Total amount of work (100 for percentage based reporting)
            description: Description text for progress bar

        Yields:
            Progress instance for updating progress

        Example:
            >>> with handler.progress_bar(100, "Downloading") as progress:
            ...     task = progress.add_task("Downloading", total=100)
            ...     progress.update(task, advance=10)
        """
        progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=self.console,
        )
        with progress:
            yield progress

    def print_pull_summary(self, summary: SyncSummary, portal_name: str) -> None:
        """Display the result of writing a snapshot into the workspace."""
        self.console.print(f"\n[bold]Pull Summary ({portal_name}):[/bold]")
        self.console.print(f"  [blue]↓[/blue] Written: {summary.pulled_count} document(s)")
        if summary.failed_count > 0:
            self.console.print(f"  [red]✗[/red] Failed: {summary.failed_count} document(s)")

    def print_status(self, changes: ChangeSet) -> None:
        """Display local changes grouped by kind."""
        if changes.is_empty:
            self.console.print("\n[green]Workspace is in sync with the portal.[/green]")
            return

        groups = (
            ("green", "Added", changes.added),
            ("yellow", "Modified", changes.modified),
            ("red", "Deleted", changes.deleted),
        )
        for color, title, entries in groups:
            if not entries:
                continue
            self.console.print(f"\n[{color}]{title} ({len(entries)}):[/{color}]")
            for entry in entries:
                self.console.print(f"  • {entry.relative_path}")

    def print_push_summary(self, summary: SyncSummary) -> None:
        """Display push summary with color coding."""
        self.console.print("\n[bold]Push Summary:[/bold]")

        if summary.added_count > 0:
            self.console.print(f"  [green]+[/green] Added: {summary.added_count} document(s)")

        if summary.updated_count > 0:
            self.console.print(f"  [yellow]↑[/yellow] Updated: {summary.updated_count} document(s)")

        if summary.deleted_count > 0:
            self.console.print(f"  [red]−[/red] Deleted: {summary.deleted_count} document(s)")

        if summary.failed_count > 0:
            self.console.print(f"  [red]✗[/red] Failed: {summary.failed_count} document(s)")

        total = summary.added_count + summary.updated_count + summary.deleted_count
        if summary.failed_count > 0:
            self.console.print("\n[red]Push completed with errors[/red]")
        elif total == 0:
            self.console.print("\n[green]Nothing to push. No changes detected.[/green]")
        else:
            self.console.print("\n[green]Push completed successfully[/green]")
