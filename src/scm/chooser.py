"""Interactive selection and text input used by the repository and the wizard.

The repository only depends on the Chooser interface; the CLI supplies the
Rich console implementation and tests supply mocks.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

# Returns an error message for invalid input, or None when the input is valid
Validator = Callable[[str], Optional[str]]


@dataclass
class PickItem:
    """One entry of a pick list.

    Attributes:
        label: Text shown to the user
        description: Secondary text shown next to the label
        value: Payload returned to the caller (defaults to the label)
    """
    label: str
    description: str = ""
    value: Any = None

    def __post_init__(self):
        if self.value is None:
            self.value = self.label


class Chooser(ABC):
    """Capability to ask the user for a selection or a text value.

    Both methods return None when the user dismisses the prompt.
    """

    @abstractmethod
    def pick(self, items: List[PickItem], placeholder: str = "") -> Optional[PickItem]:
        """Let the user choose one of the items."""

    @abstractmethod
    def ask(
        self,
        prompt: str,
        validate: Optional[Validator] = None,
        value: Optional[str] = None,
        password: bool = False,
    ) -> Optional[str]:
        """Ask the user for a text value."""


class ConsoleChooser(Chooser):
    """Chooser rendering numbered lists and prompts on a Rich console.

    An empty answer dismisses the prompt. Invalid answers are reported and
    asked again.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def pick(self, items: List[PickItem], placeholder: str = "") -> Optional[PickItem]:
        if not items:
            return None

        table = Table(show_header=False, box=None)
        for index, item in enumerate(items, start=1):
            table.add_row(f"[cyan]{index}[/cyan]", item.label, f"[dim]{item.description}[/dim]")
        if placeholder:
            self.console.print(f"[bold]{placeholder}[/bold]")
        self.console.print(table)

        while True:
            answer = Prompt.ask("Select a number (empty to dismiss)", console=self.console, default="")
            answer = answer.strip()
            if not answer:
                return None
            if answer.isdigit() and 1 <= int(answer) <= len(items):
                return items[int(answer) - 1]
            self.console.print(f"[red]Please enter a number between 1 and {len(items)}[/red]")

    def ask(
        self,
        prompt: str,
        validate: Optional[Validator] = None,
        value: Optional[str] = None,
        password: bool = False,
    ) -> Optional[str]:
        while True:
            answer = Prompt.ask(
                prompt,
                console=self.console,
                password=password,
                default=value or "",
                show_default=not password,
            )
            answer = answer.strip()
            if not answer:
                return None
            error = validate(answer) if validate else None
            if error is None:
                return answer
            self.console.print(f"[red]{error}[/red]")
