import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

from rich.box import ROUNDED, SIMPLE
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from quotaguard.domain.models.common import ClassifiedError, ErrorKind, QueueStatus, VendorContact

logger = logging.getLogger(__name__)

KIND_STYLES = {
    ErrorKind.RATE_LIMITED: "yellow",
    ErrorKind.TRANSIENT: "yellow",
    ErrorKind.AUTH_EXPIRED: "red",
    ErrorKind.QUOTA_EXCEEDED: "magenta",
    ErrorKind.UNKNOWN: "red",
}


class ConsoleDisplay:
    """Renders command results with the rich library."""

    def __init__(self, console: Optional[Console] = None):
        self._console = console or Console()

    @property
    def console(self) -> Console:
        """Get the Rich console instance for direct operations."""
        return self._console

    def display_error(self, message: str) -> None:
        self._console.print(f"[bold red]Error:[/bold red] {escape(message)}")

    def display_classification(self, classified: ClassifiedError, user_text: str) -> None:
        style = KIND_STYLES.get(classified.kind, "white")
        table = Table(box=SIMPLE, show_header=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        table.add_row("Kind", f"[{style}]{classified.kind.value}[/{style}]")
        table.add_row("Retryable", "yes" if classified.retryable else "no")
        table.add_row("Status", str(classified.status) if classified.status is not None else "-")
        table.add_row(
            "Retry-After",
            f"{classified.retry_after_ms} ms" if classified.retry_after_ms is not None else "-",
        )
        table.add_row("User message", escape(user_text))
        self._console.print(Panel(table, title="Classification", box=ROUNDED))

    def display_schedule(self, delays: Sequence[Tuple[int, int]]) -> None:
        table = Table(title="Backoff schedule", box=ROUNDED)
        table.add_column("Retry", justify="right")
        table.add_column("Delay (ms)", justify="right")
        table.add_column("Cumulative (ms)", justify="right")
        total = 0
        for attempt, delay in delays:
            total += delay
            table.add_row(str(attempt), str(delay), str(total))
        self._console.print(table)

    def display_outcomes(self, outcomes: Mapping[str, Any]) -> None:
        table = Table(title="Results", box=ROUNDED)
        table.add_column("Key")
        table.add_column("Outcome")
        table.add_column("Detail")
        for key, outcome in outcomes.items():
            if isinstance(outcome, ClassifiedError):
                style = KIND_STYLES.get(outcome.kind, "white")
                table.add_row(escape(key), f"[{style}]{outcome.kind.value}[/{style}]", escape(outcome.message))
            else:
                table.add_row(escape(key), "[green]ok[/green]", escape(str(outcome)))
        self._console.print(table)

    def display_contacts(self, contacts: Iterable[VendorContact]) -> None:
        table = Table(title="Vendor contacts", box=ROUNDED)
        for column in ("Place", "Name", "Email", "Phone", "Website"):
            table.add_column(column)
        for contact in contacts:
            table.add_row(
                contact.place_id,
                contact.name or "-",
                contact.email or "-",
                contact.phone or "-",
                contact.website or "-",
            )
        self._console.print(table)

    def display_status(self, status: QueueStatus) -> None:
        data: Dict[str, Any] = status.to_dict()
        lines = "\n".join(f"[bold]{name}[/bold]: {value}" for name, value in data.items())
        self._console.print(Panel(lines, title="Queue status", box=ROUNDED))
