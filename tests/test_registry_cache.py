"""Tests for the registry working set."""

import pytest

from genet_registry.registry import (
    DuplicateIdentifierError,
    RegistryCache,
    RegistryName,
    UnknownRegistryError,
    get_definition,
)


def genets_cache():
    return RegistryCache(
        [
            {"id": "g1", "orgId": "org1", "speciesCode": "ACER"},
            {"id": "g2", "orgId": "org1", "speciesCode": "APAL"},
        ],
        revision="rev-1",
    )


class TestDefinitions:
    def test_species_identified_by_code(self):
        assert get_definition("species").id_field == "code"

    def test_genets_reference_organizations_and_species(self):
        definition = get_definition(RegistryName.GENETS)
        targets = {rule.field: rule.target for rule in definition.foreign_keys}
        assert targets == {
            "orgId": RegistryName.ORGANIZATIONS,
            "speciesCode": RegistryName.SPECIES,
        }
        assert definition.data_path() == "data/genets.json"

    def test_unknown_registry(self):
        with pytest.raises(UnknownRegistryError):
            get_definition("reefs")


class TestUpsert:
    def test_create_appends(self):
        cache = genets_cache()
        cache.upsert({"id": "g3", "orgId": "org1", "speciesCode": "ACER"}, "id", is_edit=False)
        assert [record["id"] for record in cache.records] == ["g1", "g2", "g3"]

    def test_create_duplicate_rejected(self):
        cache = genets_cache()
        with pytest.raises(DuplicateIdentifierError) as exc_info:
            cache.upsert({"id": "g1", "orgId": "org2", "speciesCode": "ACER"}, "id", is_edit=False)
        assert str(exc_info.value) == 'Item with id "g1" already exists.'
        assert len(cache) == 2

    def test_edit_replaces_in_place(self):
        cache = genets_cache()
        cache.upsert({"id": "g1", "orgId": "org9", "speciesCode": "ACER"}, "id", is_edit=True)
        assert cache.records[0] == {"id": "g1", "orgId": "org9", "speciesCode": "ACER"}
        assert len(cache) == 2

    def test_edit_of_missing_record_appends(self):
        cache = genets_cache()
        cache.upsert({"id": "g7", "orgId": "org1", "speciesCode": "ACER"}, "id", is_edit=True)
        assert cache.records[-1]["id"] == "g7"
        assert len(cache) == 3

    def test_edit_renaming_identifier(self):
        cache = genets_cache()
        cache.upsert(
            {"id": "g1-renamed", "orgId": "org1", "speciesCode": "ACER"},
            "id",
            is_edit=True,
            previous_id="g1",
        )
        assert [record["id"] for record in cache.records] == ["g1-renamed", "g2"]

    def test_edit_renaming_onto_existing_identifier(self):
        cache = genets_cache()
        with pytest.raises(DuplicateIdentifierError):
            cache.upsert(
                {"id": "g2", "orgId": "org1", "speciesCode": "ACER"},
                "id",
                is_edit=True,
                previous_id="g1",
            )


class TestCache:
    def test_replace_all_sets_revision(self):
        cache = genets_cache()
        cache.replace_all([{"id": "x"}], "rev-2")
        assert cache.records == [{"id": "x"}]
        assert cache.revision == "rev-2"

    def test_copy_is_independent(self):
        cache = genets_cache()
        cache.set_related(RegistryName.ORGANIZATIONS, [{"id": "org1"}])
        clone = cache.copy()
        clone.upsert({"id": "g3"}, "id", is_edit=False)
        clone.set_related(RegistryName.ORGANIZATIONS, [])
        assert len(cache) == 2
        assert cache.related_organizations == [{"id": "org1"}]
        assert clone.revision == "rev-1"

    def test_related_defaults_to_empty(self):
        cache = RegistryCache()
        assert cache.related_species == []
        assert cache.revision is None

    def test_records_is_a_copy(self):
        cache = genets_cache()
        cache.records.append({"id": "ghost"})
        assert len(cache) == 2
