"""
Dataclass for tracking download session statistics.
"""

from dataclasses import dataclass, field


@dataclass
class DownloadStats:
    """Tracks the outcome of one download-and-organize session."""

    packs_requested: int = 0
    packs_downloaded: int = 0
    packs_skipped_not_included: int = 0
    packs_failed: int = 0
    files_saved: int = 0
    files_failed: int = 0
    total_size_downloaded: int = 0
    # Car names that fell back to a sanitized folder and need manual review
    unmatched_cars: set[str] = field(default_factory=set)
    saved_paths: list[str] = field(default_factory=list, repr=False)
