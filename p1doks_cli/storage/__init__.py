"""
Storage Layer.

This package handles all data persistence: the preferences file and the car
name mapping files.
"""

from .mappings import load_reference_mapping, save_mapping_file
from .preferences import PreferencesStore, get_config_dir

__all__ = [
    "PreferencesStore",
    "get_config_dir",
    "load_reference_mapping",
    "save_mapping_file",
]
