"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from p1doks_cli.core.mapping_generator import MappingReport
from p1doks_cli.core.resolver import ResolutionResult
from p1doks_cli.models.config import Preferences
from p1doks_cli.models.stats import DownloadStats
from p1doks_cli.utils.formatting import format_duration, format_size

BANNER = """\
╔═══════════════════════════════════════╗
║              p1doks-cli               ║
║       P1Doks → iRacing Setups         ║
╚═══════════════════════════════════════╝"""


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "AuthenticationError": [
            "• Verify your P1Doks e-mail and password.",
            "• Run `p1doks logout` and sign in again.",
        ],
        "IdentityProviderError": [
            "• Verify your P1Doks e-mail and password.",
            "• Check your account status on p1doks.com.",
        ],
        "RefreshExpiredError": [
            "• Your saved session has expired. Sign in again with your password.",
        ],
        "TokenExpiredError": [
            "• Your session could not be renewed.",
            "• Run the command again and sign in with your password.",
        ],
        "ConfigurationError": [
            "• Check the P1DOKS_* environment variables and your .env file.",
            "• Run `p1doks --show-config` to see the saved preferences.",
        ],
        "ClientResponseError": [
            "• The P1Doks API might be temporarily unavailable.",
            "• Please try again in a few minutes.",
        ],
        "ClientConnectorError": [
            "• Could not reach P1Doks. Check your internet connection.",
        ],
        "TimeoutError": [
            "• The request timed out. Check your internet connection.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_banner(console: Console):
    console.print(f"[bold cyan]{BANNER}[/bold cyan]")


def print_preferences(preferences_path: Path, preferences: Preferences | None):
    """Displays the saved preferences, hiding the refresh token."""
    console = Console()
    if preferences is None:
        content = "[yellow]No saved preferences.[/yellow]"
    else:
        token_state = "********" if preferences.refresh_token else "(none)"
        content = (
            f"username = {preferences.username}\n"
            f"refresh_token = {token_state}\n"
            f"setups_path = {preferences.setups_path}"
        )

    console.print(
        Panel(
            content,
            title=f"Preferences ([dim]{preferences_path}[/dim])",
            border_style="cyan",
        )
    )


def print_resolution(car_name: str, result: ResolutionResult):
    """Displays how a car name resolves to a folder."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Car:", car_name)
    table.add_row("Folder:", f"[green]{result.folder_id}[/green]")
    table.add_row("Tier:", result.tier.value)
    table.add_row("Matched entry:", result.matched_name or "[dim]-[/dim]")

    style = "green" if result.matched else "yellow"
    title = "✓ Matched" if result.matched else "⚠ No match, review manually"
    console.print(Panel(table, title=f"[bold {style}]{title}[/]", border_style=style))


def print_mapping_report(report: MappingReport, output_path: Path):
    """Summarizes a mapping generation run, listing names to review."""
    console = Console()
    console.print(
        f"\n[bold green]✓ {report.total_cars} mappings from "
        f"{report.series_count} series saved to[/bold green] [dim]{output_path}[/dim]"
    )
    if not report.unmatched:
        console.print("[green]✓ All cars matched successfully![/green]")
        return

    console.print(
        f"\n[yellow]⚠ {len(report.unmatched)} cars had no match "
        "(using sanitized names):[/yellow]"
    )
    for car_name in report.unmatched:
        console.print(f"[dim]  - {car_name}[/dim]")
    console.print("[cyan]Please review these mappings and update manually.[/cyan]")


def print_summary_panel(stats: DownloadStats, duration: float):
    """Displays the final summary of a download session."""
    console = Console()
    table = Table(show_header=False, box=box.SIMPLE, padding=(0, 2))
    table.add_column(style="bold")
    table.add_column(justify="right")

    table.add_row(
        "[green]✓ Downloaded[/green]",
        f"{stats.packs_downloaded}/{stats.packs_requested} datapacks",
    )
    table.add_row("[cyan]Files saved[/cyan]", str(stats.files_saved))
    if stats.packs_skipped_not_included:
        table.add_row(
            "[yellow]⊘ Not in subscription[/yellow]",
            str(stats.packs_skipped_not_included),
        )
    if stats.packs_failed or stats.files_failed:
        table.add_row(
            "[red]✗ Failed[/red]",
            f"{stats.packs_failed} datapacks, {stats.files_failed} files",
        )
    table.add_row("Size", format_size(stats.total_size_downloaded))
    table.add_row("Duration", format_duration(duration))

    console.print(
        Panel(table, title="[bold cyan]All done![/bold cyan]", border_style="cyan")
    )

    if stats.unmatched_cars:
        console.print(
            "[yellow]⚠ These cars used a sanitized folder name; run "
            "`p1doks generate-mappings` or edit the mapping file:[/yellow]"
        )
        for car_name in sorted(stats.unmatched_cars):
            console.print(f"[dim]  - {car_name}[/dim]")
