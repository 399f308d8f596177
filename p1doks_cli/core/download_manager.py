"""
The orchestrator that downloads the selected data packs and files them into
the iRacing setups folder.
"""

import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

import aiohttp
from rich.markup import escape

from p1doks_cli.api.client import P1doksAPIClient
from p1doks_cli.api.rate_limiter import RequestPacer
from p1doks_cli.exceptions import AuthenticationError
from p1doks_cli.models.catalog import DataPack, DownloadContext, Series, SetupFile
from p1doks_cli.models.stats import DownloadStats
from p1doks_cli.transfer.downloader import FileDownloader
from p1doks_cli.utils.path import build_target_dir, create_dir, safe_filename

from .resolver import resolve

log = logging.getLogger(__name__)


class SeriesListing:
    """
    Fetches the series listing once per week and season and keeps it until
    reset.
    """

    def __init__(self, api_client: P1doksAPIClient):
        self.api_client = api_client
        self._cache: Dict[Tuple[int, int], List[Series]] = {}

    async def get(self, week: int, season: int) -> List[Series]:
        key = (week, season)
        if key not in self._cache:
            series = await self.api_client.fetch_available_series(week, season)
            if not series:
                # Nothing to remember, a failed fetch should be retried
                return series
            self._cache[key] = series
        return self._cache[key]

    def reset(self) -> None:
        self._cache.clear()


class SetupDownloadManager:
    """Downloads data packs one at a time and organizes their files."""

    def __init__(
        self,
        api_client: P1doksAPIClient,
        setups_path: Path,
        reference_mapping: Mapping[str, str],
        downloader: Optional[FileDownloader] = None,
        pacer: Optional[RequestPacer] = None,
    ):
        self.api_client = api_client
        self.setups_path = Path(setups_path)
        self.reference_mapping = reference_mapping
        self.downloader = downloader or FileDownloader()
        self.pacer = pacer or RequestPacer()
        self.stats = DownloadStats()

    def resolve_car_folder(self, car_name: str) -> str:
        """Returns the setups folder for a car, noting names with no match."""
        result = resolve(car_name, self.reference_mapping)
        if not result.matched:
            self.stats.unmatched_cars.add(car_name)
            log.warning(
                f"[yellow]⚠ No folder mapping for '{escape(car_name)}', using "
                f"'{result.folder_id}'. Please review.[/yellow]"
            )
        else:
            log.debug(
                f"Resolved '{car_name}' -> '{result.folder_id}' "
                f"({result.tier.value} match on '{result.matched_name}')"
            )
        return result.folder_id

    async def download_and_organize(
        self, packs: List[DataPack], context: Optional[DownloadContext] = None
    ) -> DownloadStats:
        """
        Downloads every included pack in order, pausing between packs.

        Raises:
            TokenExpiredError: The session could not be kept authorized.
        """
        log.info(f"[bold]📥 Starting download of {len(packs)} datapacks...[/bold]")
        self.stats.packs_requested += len(packs)

        for pack in packs:
            if not pack.included:
                log.info(
                    f"[yellow]⊘ Skipping {escape(pack.car)} "
                    "(not included in subscription)[/yellow]"
                )
                self.stats.packs_skipped_not_included += 1
                continue

            await self.pacer.acquire()
            if await self.download_pack(pack, context):
                self.stats.packs_downloaded += 1
            else:
                self.stats.packs_failed += 1

        log.info(
            f"[bold green]✓ Download complete![/bold green] "
            f"{self.stats.packs_downloaded}/{len(packs)} datapacks"
        )
        return self.stats

    async def download_pack(
        self, pack: DataPack, context: Optional[DownloadContext] = None
    ) -> bool:
        """
        Downloads all setup files of one pack into its target folder.

        Returns:
            True if at least one file was saved.
        """
        user_id = self.api_client.session.get_user_id()
        if not user_id:
            raise AuthenticationError(
                "User ID not available. Please check your authentication."
            )

        log.info(f"[dim]Downloading: {escape(pack.car)}...[/dim]")
        try:
            files = await self.api_client.fetch_data_pack_files(pack.id)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.error(f"[red]✗ Failed to download {escape(pack.car)}: {e}[/red]")
            return False

        if not files.all_files:
            log.warning(f"[yellow]⚠ {escape(pack.car)} has no setup files[/yellow]")
            return False

        log.info(
            f"[cyan]  Found {len(files.all_files)} setup files "
            f"({len(files.dry)} dry, {len(files.wet)} wet)[/cyan]"
        )

        target_dir = build_target_dir(
            self.setups_path, self.resolve_car_folder(pack.car), context
        )
        await asyncio.to_thread(create_dir, target_dir)

        saved_any = False
        for setup_file in files.all_files:
            if await self._download_setup_file(user_id, pack, setup_file, target_dir):
                saved_any = True
        return saved_any

    async def _download_setup_file(
        self, user_id: str, pack: DataPack, setup_file: SetupFile, target_dir: Path
    ) -> bool:
        target_path = target_dir / safe_filename(setup_file.filename)
        try:
            url = await self.api_client.fetch_signed_url(user_id, pack.id, setup_file)
            size = await self.downloader.download_file(url, target_path)
        except aiohttp.ClientResponseError as e:
            if e.status == 429:
                await self.pacer.on_429()
            log.error(
                f"[red]✗ Failed to download file {escape(setup_file.filename)}: "
                f"HTTP {e.status}[/red]"
            )
            self.stats.files_failed += 1
            return False
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            log.error(
                f"[red]✗ Failed to download file {escape(setup_file.filename)}: "
                f"{e}[/red]"
            )
            self.stats.files_failed += 1
            return False

        self.stats.files_saved += 1
        self.stats.total_size_downloaded += size
        self.stats.saved_paths.append(str(target_path))
        log.info(
            f"[blue]  → {escape(str(target_path.relative_to(self.setups_path)))}[/blue]"
        )
        return True
