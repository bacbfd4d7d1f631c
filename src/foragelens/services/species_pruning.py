import json
import math
from typing import Any, Iterable, Mapping

# Not useful for identification, or too bulky for the prompt.
FIELDS_TO_STRIP = frozenset(
    {
        "source_url",
        "other_facts",
        "synonyms",
        "common_names",
        "extra_features",
        "frequency",
    }
)

REQUIRED_FIELDS = (
    "name",
    "scientific_name",
    "edibility",
    "cap",
    "under_cap_description",
    "stem",
    "flesh",
    "habitat",
    "possible_confusion",
    "spore_print",
    "taste",
    "smell",
    "edibility_detail",
    "diagnostic_features",
    "safety_checks",
)

CHARS_PER_TOKEN = 3.5


def prune_entry(entry: Mapping[str, Any]) -> dict[str, Any]:
    return {
        key: value
        for key, value in entry.items()
        if key not in FIELDS_TO_STRIP and value is not None
    }


def prune_for_prompt(entries: Iterable[Mapping[str, Any]]) -> str:
    """Serialize species entries as minified JSON without stripped fields or nulls."""
    pruned = [prune_entry(entry) for entry in entries]
    return json.dumps(pruned, ensure_ascii=False, separators=(",", ":"))


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)
