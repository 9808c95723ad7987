"""
Progress reporters.

A reporter is a one-way sink for human-readable status lines. Nothing in
a run depends on what a reporter does with them.
"""

from abc import ABC, abstractmethod
from typing import Optional

from rich.console import Console
from rich.markup import escape


class Reporter(ABC):
    """Sink for progress messages."""

    @abstractmethod
    def say(self, message: str) -> None:
        """Report a phase headline."""
        pass

    @abstractmethod
    def message(self, message: str) -> None:
        """Report a detail line within the current phase."""
        pass

    @abstractmethod
    def error(self, message: str) -> None:
        """Report a failure."""
        pass


class NullReporter(Reporter):
    """Discards all progress messages."""

    def say(self, message: str) -> None:
        pass

    def message(self, message: str) -> None:
        pass

    def error(self, message: str) -> None:
        pass


class ConsoleReporter(Reporter):
    """Prints progress to the terminal with rich."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def say(self, message: str) -> None:
        self.console.rule(f"[bold blue]{escape(message)}[/bold blue]")

    def message(self, message: str) -> None:
        self.console.print(f"[bold cyan]ℹ[/bold cyan] {escape(message)}", highlight=False)

    def error(self, message: str) -> None:
        self.console.print(f"[bold red]✗[/bold red] {escape(message)}", highlight=False)

    def success(self, message: str) -> None:
        self.console.print(f"[bold green]✓[/bold green] {escape(message)}", highlight=False)
