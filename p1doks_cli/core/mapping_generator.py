"""
Builds the P1Doks car name -> iRacing folder override mapping by collecting
every car currently published and resolving it against the official table.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import aiohttp
from rich.markup import escape

from p1doks_cli.api.client import P1doksAPIClient
from p1doks_cli.api.rate_limiter import RequestPacer
from p1doks_cli.storage.mappings import save_mapping_file

from .resolver import resolve

log = logging.getLogger(__name__)


@dataclass
class MappingReport:
    """The outcome of a mapping generation run."""

    mappings: Dict[str, str] = field(default_factory=dict)
    unmatched: List[str] = field(default_factory=list)
    series_count: int = 0

    @property
    def total_cars(self) -> int:
        return len(self.mappings)


class MappingGenerator:
    """Collects car names across all series and maps them to folders."""

    def __init__(
        self,
        api_client: P1doksAPIClient,
        reference_mapping: Mapping[str, str],
        pacer: Optional[RequestPacer] = None,
    ):
        self.api_client = api_client
        self.reference_mapping = reference_mapping
        self.pacer = pacer or RequestPacer(delay_seconds=0.3)

    async def collect_car_names(self, week: int, season: int) -> tuple[set[str], int]:
        """
        Returns the unique car names of every series for a week, and the
        number of series seen. Series that fail to load are skipped.
        """
        available_series = await self.api_client.fetch_available_series(week, season)
        car_names: set[str] = set()

        for series in available_series:
            await self.pacer.acquire()
            log.info(f"[dim]  Fetching {escape(series.name)}...[/dim]")
            try:
                packs = await self.api_client.fetch_data_packs(
                    series.name, week, season
                )
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                log.warning(
                    f"[yellow]⚠ Error fetching {escape(series.name)}: {e}[/yellow]"
                )
                continue
            car_names.update(pack.car for pack in packs if pack.car)

        return car_names, len(available_series)

    def build_mappings(self, car_names: set[str]) -> MappingReport:
        """Resolves each car name in sorted order."""
        report = MappingReport()
        for car_name in sorted(car_names):
            result = resolve(car_name, self.reference_mapping)
            report.mappings[car_name] = result.folder_id
            if result.matched:
                log.info(f"[green]✓ {escape(car_name)} → {result.folder_id}[/green]")
            else:
                report.unmatched.append(car_name)
                log.warning(
                    f"[yellow]⚠ {escape(car_name)} → {result.folder_id} "
                    "(no match, using sanitized)[/yellow]"
                )
        return report

    async def generate(self, week: int, season: int, output_path: Path) -> MappingReport:
        """Collects, resolves and writes the override mapping file."""
        car_names, series_count = await self.collect_car_names(week, season)
        log.info(f"[green]✓ Total unique cars found: {len(car_names)}[/green]")

        report = self.build_mappings(car_names)
        report.series_count = series_count

        save_mapping_file(
            output_path,
            report.mappings,
            generated_from={
                "week": week,
                "season": season,
                "seriesCount": series_count,
                "totalCars": report.total_cars,
            },
        )
        log.info(f"[bold green]✓ Mappings saved to {output_path}[/bold green]")
        return report
