"""
Client for the P1Doks catalog: series, data packs, setup files and signed
download URLs. Every call is authorized through the session manager.
"""

import asyncio
import logging
from typing import Any, Dict, List

import aiohttp

from p1doks_cli.models.catalog import DataPack, DataPackFiles, Series, SetupFile

from .session import SessionManager

log = logging.getLogger(__name__)

# Substrings identifying each IMSA class, checked in this order
IMSA_CLASSES = {
    "GTP": [
        "GTP",
        "PORSCHE 963",
        "BMW M HYBRID",
        "CADILLAC V-SERIES",
        "FERRARI 499P",
        "ACURA ARX-06",
    ],
    "GT3": [
        "GT3",
        "LAMBORGHINI",
        "FERRARI 296",
        "CORVETTE",
        "PORSCHE 911",
        "BMW M4",
        "MERCEDES",
    ],
    "LMP2": ["LMP2", "DALLARA P217", "DALLARA LMP2"],
}

GENERIC_CLASSES = ("GT3", "GT4", "GTP", "LMP2", "LMP3")


def determine_car_class(car_name: str, series: str) -> str:
    """Guesses the class of a car from its name and the series it runs in."""
    if not car_name:
        return "Other"

    car_upper = car_name.upper()
    series = series or ""

    if series == "IMSA":
        for class_name, markers in IMSA_CLASSES.items():
            if any(marker in car_upper for marker in markers):
                return class_name

    if "GT" in series or "VRS" in series:
        if "GT3" in car_upper:
            return "GT3"
        if "GT4" in car_upper:
            return "GT4"

    if "Porsche" in series and ("CUP" in car_upper or "992" in car_upper):
        return "Porsche Cup"

    if "Prototype" in series:
        if "LMP2" in car_upper:
            return "LMP2"
        if "LMP3" in car_upper:
            return "LMP3"

    for class_name in GENERIC_CLASSES:
        if class_name in car_upper:
            return class_name

    return "Other"


def group_by_class(packs: List[DataPack]) -> Dict[str, List[DataPack]]:
    """Groups data packs by car class, keeping their order."""
    grouped: Dict[str, List[DataPack]] = {}
    for pack in packs:
        grouped.setdefault(pack.car_class, []).append(pack)
    return grouped


class P1doksAPIClient:
    """
    Async client for the P1Doks catalog API.
    """

    def __init__(
        self,
        session: SessionManager,
        base_url: str = "https://api.p1doks.com",
        fetch_limit: int = 100,
    ):
        """
        Initializes the API client.

        Args:
            session: Authorizes every outbound call.
            base_url: Root URL of the P1Doks API.
            fetch_limit: Page size for data pack listings.
        """
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.fetch_limit = fetch_limit

    async def _query_data_packs(
        self, filters: Dict[str, Any], sort: List[str]
    ) -> List[Dict[str, Any]]:
        response = await self.session.make_authenticated_request(
            f"{self.base_url}/ql/data-packs",
            method="POST",
            data={
                "limit": self.fetch_limit,
                "offset": 0,
                "filters": filters,
                "sort": sort,
            },
        )
        # The listing key is singular
        return (response or {}).get("data_pack") or []

    @staticmethod
    def _week_filters(week: int, season: int) -> Dict[str, Any]:
        return {"Week": {"_eq": str(week)}, "Season": {"_eq": str(season)}}

    async def fetch_available_series(self, week: int, season: int) -> List[Series]:
        """
        Lists the series that have setups for a week, with their track.

        Transport failures are logged and yield an empty list.
        """
        log.info("[dim]Fetching available series...[/dim]")
        try:
            packs = await self._query_data_packs(
                self._week_filters(week, season), sort=["Series"]
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.error(f"[red]Error fetching available series: {e}[/red]")
            return []

        # All setups of a series in one week share the same track
        tracks: Dict[str, str] = {}
        for pack in packs:
            if pack.get("Series") and pack.get("Track"):
                tracks.setdefault(pack["Series"], pack["Track"])

        available = [Series(name=name, track=tracks[name]) for name in sorted(tracks)]
        log.info(f"[green]✓ Found {len(available)} series with setups[/green]")
        return available

    async def fetch_data_packs(
        self, series: str, week: int, season: int
    ) -> List[DataPack]:
        """Lists the data packs of a series for a week, fastest lap first."""
        log.info(
            f"[blue]Fetching {series} datapacks for Week {week}, "
            f"Season {season}...[/blue]"
        )
        filters = self._week_filters(week, season)
        filters["Series"] = {"_eq": series}
        try:
            packs = await self._query_data_packs(
                filters, sort=["lap_minutes", "lap_seconds", "lap_hundredths"]
            )
        except aiohttp.ClientResponseError as e:
            log.error(f"[red]Error fetching datapacks (HTTP {e.status}): {e}[/red]")
            raise

        data_packs = [
            DataPack.from_api(
                pack,
                determine_car_class(
                    pack.get("Car") or pack.get("car") or pack.get("title") or "",
                    series,
                ),
            )
            for pack in packs
        ]
        log.info(f"[green]✓ Found {len(data_packs)} datapacks[/green]")
        for class_name, members in group_by_class(data_packs).items():
            log.debug(f"  - {class_name} datapacks: {len(members)}")
        return data_packs

    async def fetch_data_pack_files(self, data_pack_id: str) -> DataPackFiles:
        """Lists the dry and wet setup files of a data pack."""
        response = await self.session.make_authenticated_request(
            f"{self.base_url}/ql/data-packs/files/consolidated/{data_pack_id}"
        )
        files = (response or {}).get("files") or []

        def _to_setup_files(file_type: str, kind: str) -> List[SetupFile]:
            return [
                SetupFile(
                    filename=f.get("filename_download") or "",
                    disk_filename=f.get("filename_disk") or "",
                    title=f.get("title"),
                    kind=kind,
                )
                for f in files
                if f.get("type") == file_type
            ]

        return DataPackFiles(
            dry=_to_setup_files("dry_files", "dry"),
            wet=_to_setup_files("wet_files", "wet"),
        )

    async def fetch_signed_url(
        self, user_id: str, data_pack_id: str, setup_file: SetupFile
    ) -> str:
        """Requests a short-lived signed URL for one setup file."""
        response = await self.session.make_authenticated_request(
            f"{self.base_url}/api/files/download/signed-url",
            method="POST",
            data={
                "userId": user_id,
                "dataPackId": data_pack_id,
                "filename": setup_file.filename,
                "filename_disk": setup_file.disk_filename,
            },
        )
        url = (response or {}).get("url")
        if not url:
            raise aiohttp.ClientPayloadError(
                f"No signed URL returned for '{setup_file.filename}'."
            )
        return url
