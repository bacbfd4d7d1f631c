import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Sequence

logger = logging.getLogger(__name__)

SpeciesEntry = Mapping[str, Any]


def _freeze(raw: dict) -> SpeciesEntry:
    if "name" not in raw or "scientific_name" not in raw:
        raise ValueError(f"Species entry missing name/scientific_name: {raw!r:.120}")
    return MappingProxyType(dict(raw))


def load_species_dataset(path: str | Path) -> tuple[SpeciesEntry, ...]:
    """Load the reference dataset (a JSON array of species records) as read-only mappings."""
    dataset_path = Path(path)
    if not dataset_path.exists():
        raise FileNotFoundError(f"Species dataset not found: {dataset_path}")

    with open(dataset_path, "r", encoding="utf-8") as f:
        raw = json.load(f)

    if not isinstance(raw, list):
        raise ValueError(f"Species dataset must be a JSON array: {dataset_path}")

    dataset = tuple(_freeze(item) for item in raw)
    logger.info(f"Loaded {len(dataset)} species from {dataset_path}")
    return dataset


def find_by_scientific_name(dataset: Sequence[SpeciesEntry], scientific_name: str) -> SpeciesEntry | None:
    for entry in dataset:
        if entry["scientific_name"] == scientific_name:
            return entry
    return None
