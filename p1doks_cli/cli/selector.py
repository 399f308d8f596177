"""
Interactive prompts for choosing the week, series and cars, and for
collecting credentials.
"""

import os
from typing import Dict, List

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, IntPrompt, Prompt

from p1doks_cli.api.client import group_by_class
from p1doks_cli.models.catalog import DataPack, Series
from p1doks_cli.utils.formatting import format_pack_label
from p1doks_cli.utils.season import next_week

# Classes not listed here follow in alphabetical order
PREFERRED_CLASS_ORDER = ["GTP", "GT3", "GT4", "LMP2", "LMP3", "Porsche Cup"]


def order_classes(class_names: List[str]) -> List[str]:
    """Sorts car classes: preferred classes first, then the rest A-Z."""
    preferred = [c for c in PREFERRED_CLASS_ORDER if c in class_names]
    others = sorted(c for c in class_names if c not in PREFERRED_CLASS_ORDER)
    return preferred + others


def parse_selection(answer: str, max_index: int) -> List[int]:
    """
    Parses '1,3,5-7' into 1-based indexes.

    Raises:
        ValueError: On malformed input or indexes out of range.
    """
    indexes: List[int] = []
    for part in answer.replace(" ", "").split(","):
        if not part:
            continue
        if "-" in part:
            start, end = (int(p) for p in part.split("-", 1))
            chosen = range(start, end + 1)
        else:
            chosen = [int(part)]
        for index in chosen:
            if not 1 <= index <= max_index:
                raise ValueError(f"{index} is not between 1 and {max_index}")
            if index not in indexes:
                indexes.append(index)
    return indexes


class SetupSelector:
    """Prompts the user through the download choices."""

    def __init__(self, console: Console):
        self.console = console

    def select_week(self, current_week: int) -> int:
        upcoming = next_week(current_week)
        self.console.print("\n[bold]📅 Select Week:[/bold]")
        self.console.print(f"  1. Current Week (Week {current_week})")
        self.console.print(f"  2. Next Week (Week {upcoming})")
        choice = IntPrompt.ask(
            "Week", choices=["1", "2"], default=1, console=self.console
        )
        return current_week if choice == 1 else upcoming

    def select_series(self, available_series: List[Series]) -> Series:
        self.console.print("\n[bold]🏁 Select Racing Series:[/bold]")
        for index, series in enumerate(available_series, start=1):
            self.console.print(
                f"  {index:>2}. {escape(series.name)} [dim]({escape(series.track)})[/dim]"
            )
        choice = IntPrompt.ask(
            "Series",
            choices=[str(i) for i in range(1, len(available_series) + 1)],
            default=1,
            console=self.console,
        )
        return available_series[choice - 1]

    def select_cars(
        self, data_packs: List[DataPack], track_name: str | None = None
    ) -> List[DataPack]:
        """Lists cars grouped by class and returns the packs of the chosen cars."""
        if track_name:
            self.console.print(f"\n[bold cyan]📍 Track: {escape(track_name)}[/bold cyan]")

        grouped = group_by_class(data_packs)
        listed: List[DataPack] = []
        for class_name in order_classes(list(grouped)):
            self.console.print(f"\n[bold cyan]──────── {class_name} ────────[/bold cyan]")
            seen_cars = set()
            for pack in grouped[class_name]:
                if pack.car in seen_cars:
                    continue
                seen_cars.add(pack.car)
                listed.append(pack)
                label = escape(format_pack_label(pack))
                if pack.included:
                    self.console.print(f"  {len(listed):>2}. [green]✓[/green] {label}")
                else:
                    self.console.print(
                        f"  {len(listed):>2}. [red]✗[/red] [dim]{label} "
                        "(Not in subscription)[/dim]"
                    )

        while True:
            answer = Prompt.ask(
                "\n🏎️  Select cars to download (e.g. 1,3,5-7 or 'all')",
                console=self.console,
            )
            if answer.strip().lower() == "all":
                chosen = [pack for pack in listed if pack.included]
            else:
                try:
                    chosen = [listed[i - 1] for i in parse_selection(answer, len(listed))]
                except ValueError as e:
                    self.console.print(f"[red]Invalid selection: {e}[/red]")
                    continue
                chosen = [pack for pack in chosen if pack.included]

            if chosen:
                break
            self.console.print("[red]Please select at least one available car.[/red]")

        chosen_cars = {pack.car for pack in chosen}
        return [pack for pack in data_packs if pack.car in chosen_cars]

    def confirm_download(self, count: int) -> bool:
        return Confirm.ask(
            f"📥 Ready to download {count} datapacks. Continue?",
            default=True,
            console=self.console,
        )

    def prompt_credentials(self) -> Dict[str, str]:
        """Asks for the e-mail, password and setups path on first use."""
        self.console.print("\n[bold cyan]🔑 First Time Setup[/bold cyan]")
        self.console.print(
            "[dim]You need to provide your P1Doks credentials and iRacing setups "
            "path. The password is never saved.[/dim]\n"
        )

        username = ""
        while "@" not in username:
            username = Prompt.ask("📧 P1Doks Email", console=self.console).strip()

        password = self.prompt_password()

        default_path = os.path.join("~", "Documents", "iRacing", "setups")
        setups_path = Prompt.ask(
            "📁 iRacing Setups Path", default=default_path, console=self.console
        )
        return {
            "username": username,
            "password": password,
            "setups_path": os.path.expanduser(setups_path.strip()),
        }

    def prompt_password(self) -> str:
        password = ""
        while len(password) < 6:
            password = Prompt.ask(
                "🔐 P1Doks Password", password=True, console=self.console
            )
        return password
