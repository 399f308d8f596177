"""
Utilities for building the setup folder layout.
"""

import re
from pathlib import Path

from pathvalidate import sanitize_filename

from p1doks_cli.models.catalog import DownloadContext

SETUPS_SUBFOLDER = "p1doks"

_NON_NAME_CHARS = re.compile(r"[^a-zA-Z0-9\s\-_]")
_WHITESPACE = re.compile(r"\s+")


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)


def sanitize_name(name: str) -> str:
    """
    Keeps letters, digits, '-' and '_' of a track or series name and joins
    words with underscores.
    """
    cleaned = _NON_NAME_CHARS.sub("", name or "")
    return _WHITESPACE.sub("_", cleaned.strip())


def build_subfolder_name(context: DownloadContext | None) -> str:
    """
    Builds '<year>_S<season>_W<week>_<track>_<series>', which sorts the newest
    setups last. Without a context the generic subfolder name is used.
    """
    if context is None:
        return SETUPS_SUBFOLDER
    return (
        f"{context.year}_S{context.season:02}_W{context.week:02}_"
        f"{sanitize_name(context.track)}_{sanitize_name(context.series)}"
    )


def build_target_dir(
    setups_path: Path, car_folder: str, context: DownloadContext | None
) -> Path:
    """Returns '<setups>/<car folder>/p1doks/<subfolder>'."""
    return setups_path / car_folder / SETUPS_SUBFOLDER / build_subfolder_name(context)


def safe_filename(filename: str, fallback: str = "setup.sto") -> str:
    """Strips path components and invalid characters from a served filename."""
    name = Path(filename.replace("\\", "/")).name if filename else ""
    return sanitize_filename(name, platform="auto") or fallback
