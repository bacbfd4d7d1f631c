import json

import pytest

from foragelens.services.species_dataset import find_by_scientific_name, load_species_dataset
from foragelens.services.species_lookup import (
    extract_confusion_species_names,
    find_species_by_name,
    lookup_candidate_species,
    normalize_name,
    serialize_for_verification,
)


def _scientific(entries):
    return [entry["scientific_name"] for entry in entries]


class TestLoadSpeciesDataset:
    def test_loads_read_only_entries(self, species_dataset):
        assert len(species_dataset) == 10
        with pytest.raises(TypeError):
            species_dataset[0]["name"] = "changed"

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_species_dataset(tmp_path / "nope.json")

    def test_non_array_raises(self, tmp_path):
        path = tmp_path / "species.json"
        path.write_text(json.dumps({"name": "x"}), encoding="utf-8")
        with pytest.raises(ValueError):
            load_species_dataset(path)

    def test_entry_without_scientific_name_raises(self, tmp_path):
        path = tmp_path / "species.json"
        path.write_text(json.dumps([{"name": "x"}]), encoding="utf-8")
        with pytest.raises(ValueError):
            load_species_dataset(path)

    def test_find_by_scientific_name_is_exact(self, species_dataset):
        assert find_by_scientific_name(species_dataset, "Amanita virosa")["name"] == "Destroying Angel"
        assert find_by_scientific_name(species_dataset, "amanita virosa") is None


class TestNormalizeName:
    def test_strips_leading_the_spaces_and_hyphens(self):
        assert normalize_name("The Blusher") == "blusher"
        assert normalize_name("Death-Cap") == "deathcap"
        assert normalize_name("Death Cap") == "deathcap"

    def test_the_only_removed_at_start(self):
        assert normalize_name("Feather the Nest") == "featherthenest"


class TestFindSpeciesByName:
    def test_exact_common_name(self, species_dataset):
        assert find_species_by_name("Field Mushroom", species_dataset)["scientific_name"] == "Agaricus campestris"

    def test_exact_scientific_name(self, species_dataset):
        assert find_species_by_name("Amanita phalloides", species_dataset)["name"] == "Deathcap"

    def test_case_insensitive(self, species_dataset):
        assert find_species_by_name("field mushroom", species_dataset)["name"] == "Field Mushroom"

    def test_normalized_variant(self, species_dataset):
        assert find_species_by_name("Death Cap", species_dataset)["scientific_name"] == "Amanita phalloides"
        assert find_species_by_name("Blusher", species_dataset)["scientific_name"] == "Amanita rubescens"

    def test_slash_alias(self, species_dataset):
        entry = find_species_by_name("Boletus satanas", species_dataset)
        assert entry["name"] == "Devil's Bolete"

    def test_unknown_name_returns_none(self, species_dataset):
        assert find_species_by_name("Penny Bun", species_dataset) is None


class TestExtractConfusionSpeciesNames:
    def test_extracts_parenthesised_binomials_in_order(self, species_dataset):
        field = find_species_by_name("Field Mushroom", species_dataset)
        assert extract_confusion_species_names(field) == ["Agaricus xanthodermus", "Amanita virosa"]

    def test_null_confusion(self, species_dataset):
        angel = find_species_by_name("Destroying Angel", species_dataset)
        assert extract_confusion_species_names(angel) == []

    def test_variety_names(self):
        entry = {"possible_confusion": "Lookalike (Agaricus arvensis var. macrosporus)"}
        assert extract_confusion_species_names(entry) == ["Agaricus arvensis var. macrosporus"]

    def test_duplicates_removed(self):
        entry = {"possible_confusion": "(Amanita virosa) and again (Amanita virosa)"}
        assert extract_confusion_species_names(entry) == ["Amanita virosa"]

    def test_non_binomial_parentheses_ignored(self):
        entry = {"possible_confusion": "Various (see notes) and (amanita virosa)"}
        assert extract_confusion_species_names(entry) == []


class TestLookupCandidateSpecies:
    def test_agaricus_candidate_pulls_in_confusion_and_safety_species(self, species_dataset):
        result = lookup_candidate_species(["Field Mushroom", "Agaricus campestris"], species_dataset)

        assert _scientific(result) == [
            "Agaricus campestris",
            "Agaricus xanthodermus",
            "Amanita virosa",
            "Amanita phalloides",
            "Clitocybe rivulosa",
        ]

    def test_results_unique_by_scientific_name(self, species_dataset):
        result = lookup_candidate_species(
            ["Panthercap", "The Blusher", "Amanita pantherina", "Fly Agaric"], species_dataset
        )
        names = _scientific(result)
        assert len(names) == len(set(names))
        assert names[:3] == ["Amanita pantherina", "Amanita rubescens", "Amanita muscaria"]
        assert set(names[3:]) == {"Amanita phalloides", "Amanita virosa"}

    def test_missing_safety_species_skipped(self, species_dataset):
        # Galerina marginata is present; Cortinarius rubellus is not in the dataset.
        result = lookup_candidate_species(["Funeral Bell"], species_dataset)
        assert _scientific(result) == ["Galerina marginata"]

    def test_unknown_names_produce_empty_result(self, species_dataset):
        assert lookup_candidate_species(["Penny Bun", "Boletus edulis"], species_dataset) == []

    def test_empty_candidates(self, species_dataset):
        assert lookup_candidate_species([], species_dataset) == []

    def test_cap_fills_remaining_slots_from_extras(self, species_dataset):
        result = lookup_candidate_species(["Field Mushroom"], species_dataset, max_results=3)
        assert _scientific(result) == ["Agaricus campestris", "Agaricus xanthodermus", "Amanita virosa"]

    def test_cap_smaller_than_direct_matches_keeps_direct_only(self, species_dataset):
        result = lookup_candidate_species(
            ["Field Mushroom", "Deathcap", "Fool's Funnel"], species_dataset, max_results=2
        )
        assert _scientific(result) == ["Agaricus campestris", "Amanita phalloides"]

    def test_zero_cap_means_unlimited(self, species_dataset):
        assert len(lookup_candidate_species(["Field Mushroom"], species_dataset, max_results=0)) == 5

    def test_serialize_for_verification_prunes_entries(self, species_dataset):
        species = lookup_candidate_species(["Field Mushroom"], species_dataset)
        payload = json.loads(serialize_for_verification(species))

        assert payload[0]["scientific_name"] == "Agaricus campestris"
        assert "source_url" not in payload[0]
        assert "other_facts" not in payload[0]
        assert "possible_confusion" not in payload[2]


def test_negative_cap_means_unlimited(species_dataset):
    result = lookup_candidate_species(["Field Mushroom", "Deathcap"], species_dataset, max_results=-1)

    assert _scientific(result)[:2] == ["Agaricus campestris", "Amanita phalloides"]
    assert len(result) == len(lookup_candidate_species(["Field Mushroom", "Deathcap"], species_dataset))
