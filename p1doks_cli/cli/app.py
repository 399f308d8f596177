"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import time
from datetime import date
from pathlib import Path

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from p1doks_cli import __version__
from p1doks_cli.api.auth import CognitoIdentityProvider
from p1doks_cli.api.client import P1doksAPIClient
from p1doks_cli.api.rate_limiter import RequestPacer
from p1doks_cli.api.session import SessionManager
from p1doks_cli.core.download_manager import SeriesListing, SetupDownloadManager
from p1doks_cli.core.mapping_generator import MappingGenerator
from p1doks_cli.core.resolver import resolve
from p1doks_cli.exceptions import (
    AuthenticationError,
    RefreshExpiredError,
    TokenExpiredError,
)
from p1doks_cli.models.catalog import DownloadContext
from p1doks_cli.models.config import AppSettings
from p1doks_cli.storage.mappings import (
    OVERRIDE_FILE_NAME,
    load_bundled_mapping,
    load_reference_mapping,
)
from p1doks_cli.storage.preferences import (
    PREFERENCES_FILE_NAME,
    PreferencesStore,
    get_config_dir,
)
from p1doks_cli.transfer.downloader import close_connection_pool
from p1doks_cli.utils.season import current_season, current_week, next_week

from .formatters import (
    print_banner,
    print_mapping_report,
    print_preferences,
    print_resolution,
    print_summary_panel,
)
from .selector import SetupSelector

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("p1doks_cli")

app = typer.Typer(
    name="p1doks",
    help=(
        "Download P1Doks setups straight into your iRacing setups folder. Use"
        " 'p1doks <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)

CONFIG_DIR = get_config_dir()
PREFERENCES_FILE = CONFIG_DIR / PREFERENCES_FILE_NAME
OVERRIDE_MAPPING_FILE = CONFIG_DIR / OVERRIDE_FILE_NAME


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the saved preferences."
    ),
):
    """P1Doks setup downloader"""
    if version:
        console.print(f"[bold]p1doks-cli[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    load_dotenv()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("p1doks_cli").setLevel(log_level)

    if show_config:
        store = PreferencesStore(PREFERENCES_FILE)
        print_preferences(PREFERENCES_FILE, store.load())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


def _build_identity_provider(settings: AppSettings) -> CognitoIdentityProvider:
    return CognitoIdentityProvider(
        settings.cognito_region,
        settings.cognito_client_id,
        timeout=settings.request_timeout,
    )


async def _sign_in(
    settings: AppSettings, store: PreferencesStore, selector: SetupSelector
) -> tuple[SessionManager, Path]:
    """
    Opens an authenticated session from, in order: saved preferences, the
    .env developer credentials, or first-time prompts.
    """
    provider = _build_identity_provider(settings)
    store.load()

    if store.has_credentials():
        saved = store.get_credentials()
        setups_path = saved.setups_path

        def persist(credentials):
            store.save_credentials(saved.username, credentials.refresh_token, setups_path)

        session = SessionManager(
            saved.username,
            provider,
            refresh_token=saved.refresh_token,
            on_credentials=persist,
            timeout=settings.request_timeout,
        )
        console.print("[green]✓ Using saved session[/green]")
        try:
            console.print("[blue]🔐 Refreshing authentication...[/blue]")
            await session.authenticate()
            console.print("[green]✓ Session refreshed successfully[/green]")
        except RefreshExpiredError:
            console.print("\n[yellow]⚠ Session expired, please sign in again[/yellow]")
            session.supply_password(selector.prompt_password())
            console.print("[blue]🔐 Authenticating with P1Doks...[/blue]")
            await session.authenticate()
            console.print("[green]✓ Authentication successful[/green]")
        return session, Path(setups_path)

    env_username = os.getenv("PIDOKS_USERNAME")
    env_password = os.getenv("PIDOKS_PASSWORD")
    env_setups_path = os.getenv("IRACING_SETUPS_PATH")
    if env_username and env_password and env_setups_path:
        console.print("[green]✓ Using .env credentials[/green]")
        session = SessionManager(
            env_username,
            provider,
            password=env_password,
            timeout=settings.request_timeout,
        )
        console.print("[blue]🔐 Authenticating with P1Doks...[/blue]")
        await session.authenticate()
        console.print("[green]✓ Authentication successful[/green]")
        return session, Path(env_setups_path)

    console.print("\n[yellow]⚠ No credentials found[/yellow]")
    answers = selector.prompt_credentials()
    setups_path = answers["setups_path"]
    if not Path(setups_path).is_dir():
        console.print("\n[red]✗ iRacing setups path does not exist![/red]")
        console.print(f"[yellow]Path: {setups_path}[/yellow]")
        raise typer.Exit(code=1)

    session = SessionManager(
        answers["username"],
        provider,
        password=answers["password"],
        on_credentials=lambda credentials: store.save_credentials(
            answers["username"], credentials.refresh_token, setups_path
        ),
        timeout=settings.request_timeout,
    )
    console.print("[blue]🔐 Authenticating with P1Doks...[/blue]")
    await session.authenticate()
    console.print("[green]✓ Authentication successful, session saved[/green]")
    return session, Path(setups_path)


def _handle_auth_failure(store: PreferencesStore, error: AuthenticationError):
    """Forgets the saved session so the next run asks for a password."""
    console.print(f"\n[red]✗ Authentication failed: {error}[/red]")
    console.print("[yellow]Your credentials may be incorrect or expired.[/yellow]")
    store.clear_credentials()
    console.print("[cyan]💡 Please run the app again and sign in.[/cyan]")
    raise typer.Exit(code=1) from error


@app.command(name="download")
def download_command(
    week: int | None = typer.Option(
        None, "--week", "-w", min=1, max=12, help="Race week to download."
    ),
    use_next_week: bool = typer.Option(
        False, "--next-week", help="Download the setups of the upcoming week."
    ),
    series_name: str | None = typer.Option(
        None, "--series", "-s", help="Series name; prompts when omitted."
    ),
    all_cars: bool = typer.Option(
        False, "--all-cars", help="Download every car included in your subscription."
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation."),
):
    """Download setups for a series and file them into iRacing."""
    settings = AppSettings.from_env()
    store = PreferencesStore(PREFERENCES_FILE)
    selector = SetupSelector(console)
    print_banner(console)

    async def _download_async():
        session = None
        manager = None
        duration = 0.0
        try:
            session, setups_path = await _sign_in(settings, store, selector)
            api_client = P1doksAPIClient(
                session, settings.api_base_url, settings.fetch_limit
            )

            today = date.today()
            this_week = current_week(
                today, settings.season_reference_start, settings.weeks_per_season
            )
            season = current_season(today)
            console.print(
                f"\n[bold]📅 Current iRacing Week: {this_week}, "
                f"Season: {season}[/bold]"
            )

            if week is not None:
                selected_week = week
            elif use_next_week:
                selected_week = next_week(this_week, settings.weeks_per_season)
            else:
                selected_week = selector.select_week(this_week)

            available = await SeriesListing(api_client).get(selected_week, season)
            if not available:
                console.print(
                    "[yellow]⚠ No series found for this week/season. Exiting.[/yellow]"
                )
                return

            if series_name:
                matches = [s for s in available if s.name.lower() == series_name.lower()]
                if not matches:
                    console.print(f"[red]✗ Series '{series_name}' not found.[/red]")
                    raise typer.Exit(code=1)
                selected_series = matches[0]
            else:
                selected_series = selector.select_series(available)

            packs = await api_client.fetch_data_packs(
                selected_series.name, selected_week, season
            )
            if not packs:
                console.print("[yellow]⚠ No datapacks found. Exiting.[/yellow]")
                return

            if all_cars:
                selected_packs = [pack for pack in packs if pack.included]
            else:
                selected_packs = selector.select_cars(packs, selected_series.track)
            if not selected_packs:
                console.print("[yellow]⚠ No cars selected. Exiting.[/yellow]")
                return

            if not yes and not selector.confirm_download(len(selected_packs)):
                console.print("[yellow]⚠ Download cancelled.[/yellow]")
                return

            manager = SetupDownloadManager(
                api_client,
                setups_path,
                load_reference_mapping(OVERRIDE_MAPPING_FILE),
                pacer=RequestPacer(settings.download_delay),
            )
            context = DownloadContext(
                track=selected_series.track,
                series=selected_series.name,
                season=season,
                week=selected_week,
                year=today.year,
            )
            start_time = time.monotonic()
            await manager.download_and_organize(selected_packs, context)
            duration = time.monotonic() - start_time

        except TokenExpiredError:
            store.clear_credentials()
            raise
        except AuthenticationError as e:
            _handle_auth_failure(store, e)
        finally:
            await close_connection_pool()
            if session:
                await session.close()

        if manager:
            print_summary_panel(manager.stats, duration)

    asyncio.run(_download_async())


@app.command(name="generate-mappings")
def generate_mappings(
    week: int | None = typer.Option(
        None, "--week", "-w", min=1, max=12, help="Race week to scan (default: current)."
    ),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Where to write the mapping file."
    ),
):
    """Build the P1Doks car name -> iRacing folder mapping file."""
    settings = AppSettings.from_env()
    store = PreferencesStore(PREFERENCES_FILE)
    output_path = output or OVERRIDE_MAPPING_FILE
    console.print("\n[bold cyan]🔧 P1Doks Car Mapping Generator[/bold cyan]\n")

    async def _generate_async():
        session = None
        try:
            session, _ = await _sign_in(settings, store, SetupSelector(console))
            api_client = P1doksAPIClient(
                session, settings.api_base_url, settings.fetch_limit
            )
            today = date.today()
            selected_week = week or current_week(
                today, settings.season_reference_start, settings.weeks_per_season
            )
            season = current_season(today)
            console.print(f"[dim]Using Week {selected_week}, Season {season}[/dim]")

            generator = MappingGenerator(
                api_client,
                load_bundled_mapping(),
                pacer=RequestPacer(settings.mapping_delay),
            )
            return await generator.generate(selected_week, season, output_path)
        except TokenExpiredError:
            store.clear_credentials()
            raise
        except AuthenticationError as e:
            _handle_auth_failure(store, e)
        finally:
            if session:
                await session.close()

    report = asyncio.run(_generate_async())
    if report:
        print_mapping_report(report, output_path)


@app.command(name="resolve")
def resolve_command(
    car_name: str = typer.Argument(..., help="Car name as shown on P1Doks."),
    mapping: Path | None = typer.Option(
        None, "--mapping", "-m", help="Override mapping file to use."
    ),
):
    """Show which setups folder a car name resolves to."""
    reference = load_reference_mapping(mapping or OVERRIDE_MAPPING_FILE)
    print_resolution(car_name, resolve(car_name, reference))


@app.command()
def logout():
    """Forget the saved P1Doks session."""
    PreferencesStore(PREFERENCES_FILE).clear_credentials()
    console.print("[green]✓ Saved session removed.[/green]")

