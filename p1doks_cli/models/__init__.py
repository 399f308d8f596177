"""
Data Models Layer.

This package contains the pydantic settings models and the dataclasses that
describe catalog entries and download statistics.
"""

from .catalog import DataPack, DataPackFiles, DownloadContext, Series, SetupFile
from .config import AppSettings, Preferences
from .stats import DownloadStats

__all__ = [
    "AppSettings",
    "DataPack",
    "DataPackFiles",
    "DownloadContext",
    "DownloadStats",
    "Preferences",
    "Series",
    "SetupFile",
]
