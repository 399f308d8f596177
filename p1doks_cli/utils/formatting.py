"""
Helper functions for formatting data into human-readable strings.
"""

from p1doks_cli.models.catalog import DataPack


def format_size(bytes_size: float) -> str:
    """Formats bytes into a human-readable size string (e.g., '14.3 KB')."""
    if bytes_size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    i = 0
    while bytes_size >= 1024 and i < len(units) - 1:
        bytes_size /= 1024
        i += 1
    return f"{bytes_size:.1f} {units[i]}"


def format_duration(seconds: float) -> str:
    """Formats a duration in seconds (e.g., '1m 12s')."""
    minutes, secs = divmod(int(seconds), 60)
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_pack_label(pack: DataPack) -> str:
    """Builds the '<car> - <lap time>' label shown in selection lists."""
    if pack.lap_time:
        return f"{pack.car} - {pack.lap_time}"
    return pack.car
