"""
Movement catalog loading and normalization.

The catalog is a static YAML list of candidate movements. Records only need a
name; everything else is optional and explicit fields override keyword
inference during classification.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .errors import CatalogError

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent / 'config' / 'catalog.yaml'

PHASES = ("warmup", "mobility", "strength", "core", "cooldown")

PHASE_ALIASES = {
    "warm-up": "warmup",
    "warm_up": "warmup",
    "stretch": "cooldown",
    "cool-down": "cooldown",
    "core-control": "core",
    "core_control": "core",
}


def slugify(name: str) -> str:
    """Lower-case, dash-separated identifier for a movement name."""
    slug = re.sub(r'[^a-z0-9]+', '-', name.lower()).strip('-')
    return slug or "movement"


def normalize_movement(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalize a raw catalog record for stable consumption.

    Args:
        raw: Catalog record (only 'name' is required)

    Returns:
        Normalized record with id, name, phase, tags, equipment and the
        optional override fields set to None when absent
    """
    name = str(raw.get("name") or raw.get("title") or "Unnamed movement").strip()

    phase = str(raw.get("phase") or raw.get("category") or "strength").strip().lower()
    phase = PHASE_ALIASES.get(phase, phase)
    if phase not in PHASES:
        logger.debug(f"Unknown phase {phase!r} for {name}, treating as strength")
        phase = "strength"

    equipment = raw.get("equipment") or ["bodyweight"]
    if isinstance(equipment, str):
        equipment = [equipment]

    adapted_version = raw.get("adapted_version")
    if adapted_version is not None and not isinstance(adapted_version, dict):
        adapted_version = {"name": str(adapted_version)}

    return {
        "id": str(raw.get("id") or raw.get("slug") or slugify(name)),
        "name": name,
        "phase": phase,
        "tags": [str(t).lower() for t in (raw.get("tags") or [])],
        "equipment": [str(e).lower() for e in equipment],
        "pattern": raw.get("pattern"),
        "family": raw.get("family"),
        "dose_type": raw.get("dose_type"),
        "requires_anchor": raw.get("requires_anchor"),
        "allowed_max_resistance": raw.get("allowed_max_resistance"),
        "adapted_id": raw.get("adapted_id"),
        "adapted_version": adapted_version,
    }


def load_catalog(path: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Load the movement catalog from YAML.

    Args:
        path: YAML file. Defaults to $BANDCOACH_CATALOG, then the bundled config/catalog.yaml.

    Returns:
        List of normalized movement records, in file order

    Raises:
        CatalogError: If the file cannot be read or parsed
    """
    load_dotenv()

    if path is None:
        path = os.getenv("BANDCOACH_CATALOG", str(DEFAULT_CATALOG_PATH))

    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or []
    except OSError as e:
        raise CatalogError(f"Could not read catalog {path}: {e}") from e
    except yaml.YAMLError as e:
        raise CatalogError(f"Invalid catalog YAML in {path}: {e}") from e

    if isinstance(raw, dict):
        raw = raw.get("movements", [])

    movements = [normalize_movement(r) for r in raw if isinstance(r, dict)]
    logger.info(f"Loaded {len(movements)} movements from {path}")
    return movements
