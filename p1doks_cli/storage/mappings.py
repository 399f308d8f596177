"""
Loads and writes the car name -> iRacing folder mapping files.

The bundled table holds official iRacing car names. A generated override file
holds the names as P1Doks publishes them and wins on key collision.
"""

import json
import logging
from datetime import date
from importlib import resources
from pathlib import Path
from typing import Any

from p1doks_cli.core.resolver import merge_mappings
from p1doks_cli.exceptions import ConfigurationError

log = logging.getLogger(__name__)

OVERRIDE_FILE_NAME = "p1doks_to_iracing.json"
MAPPING_FILE_VERSION = "2.0.0"


def _read_mapping_file(path: Path) -> dict[str, str]:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    mappings = data.get("mappings") if isinstance(data, dict) else None
    if not isinstance(mappings, dict):
        raise ConfigurationError(f"Mapping file '{path}' has no 'mappings' table.")
    return {str(k): str(v) for k, v in mappings.items()}


def load_bundled_mapping() -> dict[str, str]:
    """Returns the official iRacing car table shipped with the package."""
    source = resources.files("p1doks_cli.data").joinpath("iracing_cars.json")
    with resources.as_file(source) as path:
        return _read_mapping_file(path)


def load_override_mapping(path: Path | None) -> dict[str, str]:
    """
    Loads a generated override mapping. A missing or unreadable file yields an
    empty mapping.
    """
    if path is None or not path.is_file():
        return {}
    try:
        return _read_mapping_file(path)
    except (OSError, json.JSONDecodeError, ConfigurationError) as e:
        log.warning(f"[yellow]Ignoring override mapping {path}: {e}[/yellow]")
        return {}


def load_reference_mapping(override_path: Path | None = None) -> dict[str, str]:
    """Returns the bundled table merged with the override file."""
    return merge_mappings(load_bundled_mapping(), load_override_mapping(override_path))


def save_mapping_file(
    path: Path, mappings: dict[str, str], generated_from: dict[str, Any]
) -> None:
    """
    Writes a generated mapping file.

    Raises:
        ConfigurationError: If the file cannot be written.
    """
    output = {
        "description": "P1Doks car name to iRacing folder path mappings",
        "note": (
            "Keys are car names as they appear in the P1Doks API, values are "
            "iRacing folder paths"
        ),
        "lastUpdated": date.today().isoformat(),
        "version": MAPPING_FILE_VERSION,
        "generatedFrom": generated_from,
        "mappings": mappings,
    }
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(output, f, indent=2, ensure_ascii=False)
    except OSError as e:
        raise ConfigurationError(f"Failed to save mapping file: {e}") from e
