import logging
from typing import Any, List, Optional

from rich.box import HEAVY, ROUNDED, SIMPLE
from rich.console import Console
from rich.json import JSON
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from notiontui.domain.interfaces.user_interface import UserInterface
from notiontui.domain.models.cache import CacheStats
from notiontui.domain.models.notion import SearchResult

logger = logging.getLogger(__name__)


class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output."""

    def __init__(self, console: Optional[Console] = None):
        """Initializes the rich Console (a custom one can be passed for capture)."""
        self._console = console or Console()

    @property
    def console(self) -> Console:
        """Get the Rich console instance for direct operations."""
        return self._console

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message in a distinct style.

        Args:
            error_message: The error message to display.
        """
        panel = Panel(
            Text(error_message, style="white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            box=HEAVY,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        panel = Panel(
            Text(info_message, style="white"),
            title="[bold blue]Info[/bold blue]",
            border_style="blue",
            box=SIMPLE,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        logger.warning(f"Display warning: {warning_message}")
        panel = Panel(
            Text(warning_message, style="white"),
            title="[bold yellow]Warning[/bold yellow]",
            border_style="yellow",
            box=HEAVY,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_json(self, data: Any, title: str = "") -> None:
        """Pretty-prints an API object, optionally inside a titled panel."""
        rendered = JSON.from_data(data, default=str)
        if title:
            self.console.print(Panel(rendered, title=f"[bold cyan]{title}[/bold cyan]", box=ROUNDED, border_style="cyan"))
        else:
            self.console.print(rendered)

    def display_search_results(self, results: List[SearchResult]) -> None:
        if not results:
            self.display_info("No results found.")
            return

        table = Table(show_header=True, box=ROUNDED, border_style="cyan", padding=(0, 1))
        table.add_column("Type", style="magenta", no_wrap=True)
        table.add_column("Title", style="bold white")
        table.add_column("ID", style="dim", no_wrap=True)
        table.add_column("Parent", style="green")
        table.add_column("Last edited", style="dim")

        for result in results:
            parent = result.parent_type if not result.parent_id else f"{result.parent_type} {result.parent_id}"
            edited = result.last_edited.strftime("%Y-%m-%d %H:%M") if result.last_edited else "-"
            table.add_row(result.object_type, result.title, result.id, parent, edited)

        self.console.print(table)

    def display_cache_stats(self, stats: CacheStats) -> None:
        table = Table(show_header=False, box=SIMPLE, border_style="cyan", padding=(0, 1))
        table.add_column("Metric", style="bold cyan")
        table.add_column("Value", style="white", justify="right")
        table.add_row("Entries", str(stats.size))
        table.add_row("Hits", str(stats.hit_count))
        table.add_row("Misses", str(stats.miss_count))
        table.add_row("Hit ratio", f"{stats.hit_ratio:.1%}")
        self.console.print(Panel(table, title="[bold cyan]Cache[/bold cyan]", box=ROUNDED, border_style="cyan"))
