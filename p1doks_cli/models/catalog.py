"""
Data structures for the P1Doks catalog: series, data packs and setup files.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Series:
    """A racing series with setups for a given week, and the track it runs on."""

    name: str
    track: str


@dataclass
class DataPack:
    """One car's setup package for a series, week and season."""

    id: str
    car: str
    lap_time: str | None = None
    track: str | None = None
    author: str | None = None
    included: bool = False
    car_class: str = "Other"
    week: str | None = None
    season: str | None = None
    year: str | None = None
    lap_count: int | None = None

    @classmethod
    def from_api(cls, pack: dict[str, Any], car_class: str) -> "DataPack":
        """Builds a data pack from one 'data_pack' entry of the API."""
        car_name = pack.get("Car") or pack.get("car") or pack.get("title") or ""
        stripe_product_id = pack.get("stripe_product_id") or ""
        return cls(
            id=str(pack.get("id", "")),
            car=car_name,
            lap_time=pack.get("lap_time_formatted") or pack.get("lap_time"),
            track=pack.get("Track"),
            author=pack.get("creator"),
            included=pack.get("price") == 0 or "prod_" in stripe_product_id,
            car_class=car_class,
            week=pack.get("Week"),
            season=pack.get("Season"),
            year=pack.get("Year"),
            lap_count=pack.get("Lap_Count_Achieved"),
        )


@dataclass(frozen=True)
class SetupFile:
    """A single downloadable setup file of a data pack."""

    filename: str
    disk_filename: str
    title: str | None
    kind: str  # 'dry' or 'wet'


@dataclass
class DataPackFiles:
    """The dry and wet setup files of a data pack."""

    dry: list[SetupFile] = field(default_factory=list)
    wet: list[SetupFile] = field(default_factory=list)

    @property
    def all_files(self) -> list[SetupFile]:
        return [*self.dry, *self.wet]


@dataclass(frozen=True)
class DownloadContext:
    """Where a batch of data packs comes from; drives the subfolder name."""

    track: str
    series: str
    season: int
    week: int
    year: int
