"""
Resolve free-text candidate names against the reference species dataset.

Lookup results are always widened with the species each match is commonly
confused with, and with the dangerous species listed for its genus, so the
verification prompt can never lose a deadly lookalike.
"""

import logging
import re
from typing import Iterable, List, Optional, Sequence

from foragelens.constants import SAFETY_SPECIES_BY_GENUS
from foragelens.services.species_dataset import SpeciesEntry, find_by_scientific_name
from foragelens.services.species_pruning import prune_for_prompt

logger = logging.getLogger(__name__)

CONFUSION_NAME_PATTERN = re.compile(r"\(([A-Z][a-z]+\s+[a-z]+(?:\s+var\.\s+[a-z]+)?)\)")
_LEADING_THE = re.compile(r"^the\s+")
_SPACES_AND_HYPHENS = re.compile(r"[\s\-]")


def normalize_name(name: str) -> str:
    lowered = _LEADING_THE.sub("", name.lower())
    return _SPACES_AND_HYPHENS.sub("", lowered)


def _genus(entry: SpeciesEntry) -> str:
    parts = entry["scientific_name"].split()
    return parts[0] if parts else ""


def _first(dataset: Sequence[SpeciesEntry], predicate) -> Optional[SpeciesEntry]:
    return next((entry for entry in dataset if predicate(entry)), None)


def _matches_slash_alias(entry: SpeciesEntry, lowered: str) -> bool:
    scientific_name = entry["scientific_name"]
    if "/" not in scientific_name:
        return False
    return any(part.strip().lower() == lowered for part in scientific_name.split("/"))


def find_species_by_name(name: str, dataset: Sequence[SpeciesEntry]) -> Optional[SpeciesEntry]:
    """Exact, then case-insensitive, then normalized, then slash-alias match."""
    exact = _first(dataset, lambda s: s["name"] == name or s["scientific_name"] == name)
    if exact:
        return exact

    lowered = name.lower()
    case_insensitive = _first(
        dataset,
        lambda s: s["name"].lower() == lowered or s["scientific_name"].lower() == lowered,
    )
    if case_insensitive:
        return case_insensitive

    normalized = normalize_name(name)
    fuzzy = _first(
        dataset,
        lambda s: normalize_name(s["name"]) == normalized
        or normalize_name(s["scientific_name"]) == normalized,
    )
    if fuzzy:
        return fuzzy

    return _first(dataset, lambda s: _matches_slash_alias(s, lowered))


def extract_confusion_species_names(entry: SpeciesEntry) -> List[str]:
    text = entry.get("possible_confusion")
    if not text:
        return []

    names: List[str] = []
    for match in CONFUSION_NAME_PATTERN.finditer(text):
        scientific_name = match.group(1)
        if scientific_name not in names:
            names.append(scientific_name)
    return names


def _direct_matches(names: Iterable[str], dataset: Sequence[SpeciesEntry], seen: set[str]) -> List[SpeciesEntry]:
    matches = []
    for name in names:
        species = find_species_by_name(name, dataset)
        if species is None or species["scientific_name"] in seen:
            continue
        matches.append(species)
        seen.add(species["scientific_name"])
    return matches


def _confusion_matches(
    direct: List[SpeciesEntry], dataset: Sequence[SpeciesEntry], seen: set[str]
) -> List[SpeciesEntry]:
    matches = []
    for species in direct:
        for confusion_name in extract_confusion_species_names(species):
            if confusion_name in seen:
                continue
            confused = find_species_by_name(confusion_name, dataset)
            if confused is None or confused["scientific_name"] in seen:
                continue
            matches.append(confused)
            seen.add(confused["scientific_name"])
    return matches


def _safety_matches(
    direct: List[SpeciesEntry], dataset: Sequence[SpeciesEntry], seen: set[str]
) -> List[SpeciesEntry]:
    matches = []
    for species in direct:
        for safety_name in SAFETY_SPECIES_BY_GENUS.get(_genus(species), ()):
            if safety_name in seen:
                continue
            dangerous = find_by_scientific_name(dataset, safety_name)
            if dangerous is None:
                logger.warning(f"Safety species {safety_name} missing from dataset")
                continue
            matches.append(dangerous)
            seen.add(safety_name)
    return matches


def lookup_candidate_species(
    candidate_names: Iterable[str],
    dataset: Sequence[SpeciesEntry],
    max_results: Optional[int] = None,
) -> List[SpeciesEntry]:
    """
    Resolve candidate names to dataset entries, deduplicated by scientific name.

    Ordering is direct matches, then confusion species, then genus safety
    species. A ``max_results`` of None or less than 1 means no cap. When it
    caps the list, direct matches are kept first and the remaining slots are
    filled from confusion then safety entries.
    """
    seen: set[str] = set()
    direct = _direct_matches(candidate_names, dataset, seen)
    confusion = _confusion_matches(direct, dataset, seen)
    safety = _safety_matches(direct, dataset, seen)

    combined = direct + confusion + safety
    if max_results is None or max_results <= 0 or len(combined) <= max_results:
        return combined

    if len(direct) >= max_results:
        return direct[:max_results]
    extras = (confusion + safety)[: max_results - len(direct)]
    return direct + extras


def serialize_for_verification(species: Sequence[SpeciesEntry]) -> str:
    return prune_for_prompt(species)
