"""Tests for terrain collection import, export and replace."""

import asyncio
import json

import pytest

from terrain_mapper.config.config import settings
from terrain_mapper.core import transfer
from terrain_mapper.core.collection import TerrainCollection
from terrain_mapper.core.errors import (
    InvalidDocumentError,
    MissingUploadError,
    PersistenceError,
    ReplaceError,
)
from terrain_mapper.db.connection import Database
from terrain_mapper.db.store import DatabaseAttributeStore


def make_collection(store, names):
    container = asyncio.run(store.create_container("Terrains"))
    collection = TerrainCollection(store, container)
    for name in names:
        asyncio.run(collection.create({"name": name, "offset": len(name)}))
    return collection


def names(collection):
    return [terrain.name for terrain in collection.terrains()]


class TestCollection:
    """Test the owning collection."""

    def setup_method(self):
        self.database = Database()
        self.database.initialize("sqlite://")
        self.store = DatabaseAttributeStore(self.database)

    def teardown_method(self):
        self.database.dispose()

    def test_create_allocates_ids(self):
        collection = make_collection(self.store, ["Forest", "Swamp", "Hill"])

        assert list(collection.terrain_map) == [1, 2, 3]
        assert names(collection) == ["Forest", "Swamp", "Hill"]

    def test_delete_releases_id(self):
        collection = make_collection(self.store, ["Forest", "Swamp", "Hill"])

        assert asyncio.run(collection.delete(2)) is True
        assert asyncio.run(collection.delete(2)) is False
        assert len(self.store.records(collection.container_ref)) == 2
        assert asyncio.run(collection.create({"name": "Lake"})) == 2

    def test_create_explicit_id(self):
        collection = make_collection(self.store, ["Forest"])

        assert asyncio.run(collection.create({"name": "Snow"}, terrain_id=9)) == 9
        assert collection.get(9).name == "Snow"

    def test_create_invalid_id_persists_nothing(self):
        collection = make_collection(self.store, ["Forest"])

        with pytest.raises(ValueError):
            asyncio.run(collection.create({"name": "Bad"}, terrain_id=1))
        with pytest.raises(ValueError):
            asyncio.run(collection.create({"name": "Bad"}, terrain_id=0))

        assert len(self.store.records(collection.container_ref)) == 1

    def test_create_override_replaces_record(self):
        collection = make_collection(self.store, ["Forest", "Swamp"])
        old_ref = collection.get(1).record_ref

        asyncio.run(collection.create({"name": "Jungle"}, terrain_id=1, override=True))

        assert collection.get(1).name == "Jungle"
        assert old_ref not in self.store.records(collection.container_ref)
        assert len(collection) == 2

    def test_override_delete_failure_keeps_store_and_map_in_step(self):
        collection = make_collection(self.store, [])
        asyncio.run(collection.create({"name": "Old"}, terrain_id=1))
        old_ref = collection.get(1).record_ref
        real_delete_many = self.store.delete_many

        async def fail_for_old(container_ref, record_refs):
            if old_ref in record_refs:
                raise PersistenceError("locked")
            return await real_delete_many(container_ref, record_refs)

        self.store.delete_many = fail_for_old

        with pytest.raises(PersistenceError):
            asyncio.run(collection.create({"name": "New"}, terrain_id=1, override=True))

        assert collection.get(1).name == "Old"
        assert self.store.records(collection.container_ref) == [old_ref]
        reloaded = TerrainCollection(self.store, collection.container_ref).load()
        assert names(reloaded) == ["Old"]

    def test_load_from_store(self):
        collection = make_collection(self.store, ["Forest", "Swamp"])

        reloaded = TerrainCollection(self.store, collection.container_ref).load()

        assert names(reloaded) == ["Forest", "Swamp"]
        assert list(reloaded.terrain_map) == [1, 2]


class TestExport:
    """Test building export documents."""

    def setup_method(self):
        self.database = Database()
        self.database.initialize("sqlite://")
        self.store = DatabaseAttributeStore(self.database)
        self.collection = make_collection(self.store, ["Forest", "Swamp"])

    def teardown_method(self):
        self.database.dispose()

    def test_export_all(self):
        document = transfer.export_all(self.collection)

        assert [entry["name"] for entry in document["terrains"]] == ["Forest", "Swamp"]
        assert [entry["id"] for entry in document["terrains"]] == [1, 2]
        assert document["terrains"][0]["activeEffect"]["name"] == "Forest"

        source = document["flags"]["exportSource"]
        assert source == {
            "originWorld": settings.world_id,
            "originSystem": settings.system_id,
            "coreVersion": settings.core_version,
            "systemVersion": settings.system_version,
            "moduleVersion": settings.module_version,
        }

    def test_export_is_json_serializable(self):
        document = transfer.export_all(self.collection)

        parsed = transfer.parse_document(json.dumps(document))

        assert len(parsed.terrains) == 2
        assert parsed.export_source.origin_world == settings.world_id

    def test_export_terrain(self):
        terrain = self.collection.get(2)

        document = transfer.export_terrain(terrain, 2)

        assert document["name"] == "Swamp"
        assert document["id"] == 2
        assert "exportSource" in document["flags"]

    def test_filenames(self):
        assert transfer.export_filename() == f"{settings.module_id}_terrains.json"
        assert transfer.export_filename("Deep Water") == f"{settings.module_id}_Deep Water.json"
        assert "/" not in transfer.export_filename("a/b")

    def test_save_and_read(self, tmp_path):
        document = transfer.export_all(self.collection)

        path = transfer.save_document(document, transfer.export_filename(), tmp_path)

        assert path.parent == tmp_path
        assert json.loads(transfer.read_document(path)) == document


class TestImportAdditive:
    """Test adding the terrains of a document to an existing collection."""

    def setup_method(self):
        self.database = Database()
        self.database.initialize("sqlite://")
        self.store = DatabaseAttributeStore(self.database)
        self.source = make_collection(self.store, ["Forest", "Swamp"])
        self.target = make_collection(self.store, ["Desert", "Tundra", "Lava"])

    def teardown_method(self):
        self.database.dispose()

    def test_import_appends_with_new_ids(self):
        document = transfer.export_all(self.source)

        ids = asyncio.run(transfer.import_additive(self.target, document))

        assert ids == [4, 5]
        assert names(self.target) == ["Desert", "Tundra", "Lava", "Forest", "Swamp"]
        assert self.target.get(4).offset == len("Forest")
        # Source records are untouched
        assert names(self.source) == ["Forest", "Swamp"]

    def test_import_fills_gaps(self):
        asyncio.run(self.target.delete(2))
        document = transfer.export_all(self.source)

        ids = asyncio.run(transfer.import_additive(self.target, document))

        assert ids == [2, 4]

    def test_import_json_text(self):
        text = json.dumps(transfer.export_all(self.source))

        ids = asyncio.run(transfer.import_additive(self.target, text))

        assert len(ids) == 2

    def test_attributes_win_over_snapshot(self):
        document = transfer.export_all(self.source)
        document["terrains"][0]["name"] = "Renamed"
        document["terrains"][0]["rangeAbove"] = 99

        ids = asyncio.run(transfer.import_additive(self.target, document))

        imported = self.target.get(ids[0])
        assert imported.name == "Renamed"
        assert imported.range_above == 99

    def test_import_without_snapshot(self):
        document = {"terrains": [{"name": "Moss", "color": "#00aa00"}]}

        ids = asyncio.run(transfer.import_additive(self.target, document))

        assert self.target.get(ids[0]).color == "#00aa00"

    @pytest.mark.parametrize("missing", [None, "", b"  "])
    def test_missing_upload(self, missing):
        with pytest.raises(MissingUploadError):
            asyncio.run(transfer.import_additive(self.target, missing))

        assert len(self.target) == 3

    @pytest.mark.parametrize("bad", ["{not json", "[1, 2]", {"terrains": [{"anchor": 7}]}])
    def test_invalid_document(self, bad):
        with pytest.raises(InvalidDocumentError):
            asyncio.run(transfer.import_additive(self.target, bad))

        assert len(self.store.records(self.target.container_ref)) == 3


class TestReplaceAll:
    """Test replacing a collection's contents."""

    def setup_method(self):
        self.database = Database()
        self.database.initialize("sqlite://")
        self.store = DatabaseAttributeStore(self.database)
        self.source = make_collection(self.store, ["Forest", "Swamp"])
        self.target = make_collection(self.store, ["Desert", "Tundra", "Lava"])
        self.document = transfer.export_all(self.source)

    def teardown_method(self):
        self.database.dispose()

    def test_replace(self):
        ids = asyncio.run(transfer.replace_all(self.target, self.document))

        assert ids == [1, 2]
        assert names(self.target) == ["Forest", "Swamp"]
        assert len(self.store.records(self.target.container_ref)) == 2

    def test_replace_with_empty_document(self):
        ids = asyncio.run(transfer.replace_all(self.target, {"terrains": []}))

        assert ids == []
        assert len(self.target) == 0
        assert self.store.records(self.target.container_ref) == []

    def test_replace_compacts_ids(self):
        asyncio.run(self.target.delete(1))

        asyncio.run(transfer.replace_all(self.target, self.document))

        assert list(self.target.terrain_map) == [1, 2]

    def test_invalid_document_changes_nothing(self):
        with pytest.raises(InvalidDocumentError):
            asyncio.run(transfer.replace_all(self.target, "{broken"))
        with pytest.raises(MissingUploadError):
            asyncio.run(transfer.replace_all(self.target, None))

        assert names(self.target) == ["Desert", "Tundra", "Lava"]

    def test_failure_after_deletion_restores(self):
        """A failure while recreating raises and restores the previous terrains."""
        real_create_many = self.store.create_many
        calls = []

        async def fail_first(container_ref, records):
            calls.append(len(records))
            if len(calls) == 1:
                raise PersistenceError("disk full")
            return await real_create_many(container_ref, records)

        self.store.create_many = fail_first

        with pytest.raises(ReplaceError) as excinfo:
            asyncio.run(transfer.replace_all(self.target, self.document))

        assert excinfo.value.restored is True
        assert isinstance(excinfo.value.cause, PersistenceError)
        assert calls == [2, 3]
        assert names(self.target) == ["Desert", "Tundra", "Lava"]
        assert list(self.target.terrain_map) == [1, 2, 3]
        assert len(self.store.records(self.target.container_ref)) == 3

    def test_restore_keeps_previous_ids(self):
        asyncio.run(self.target.delete(2))
        real_create_many = self.store.create_many
        calls = []

        async def fail_first(container_ref, records):
            calls.append(1)
            if len(calls) == 1:
                raise PersistenceError("disk full")
            return await real_create_many(container_ref, records)

        self.store.create_many = fail_first

        with pytest.raises(ReplaceError):
            asyncio.run(transfer.replace_all(self.target, self.document))

        assert list(self.target.terrain_map) == [1, 3]
        assert self.target.get(3).name == "Lava"

    def test_failure_without_restore_still_raises(self):
        """If restoring fails too, the error is raised rather than reporting an empty success."""
        async def always_fail(container_ref, records):
            raise PersistenceError("disk full")

        self.store.create_many = always_fail

        with pytest.raises(ReplaceError) as excinfo:
            asyncio.run(transfer.replace_all(self.target, self.document))

        assert excinfo.value.restored is False
        assert len(self.target) == 0

    def test_failure_during_deletion(self):
        async def fail_delete(container_ref, record_refs):
            raise PersistenceError("locked")

        self.store.delete_many = fail_delete

        with pytest.raises(PersistenceError) as excinfo:
            asyncio.run(transfer.replace_all(self.target, self.document))

        assert not isinstance(excinfo.value, ReplaceError)
        assert names(self.target) == ["Desert", "Tundra", "Lava"]


class TestImportTerrain:
    """Test merging a single-terrain document onto one terrain."""

    def setup_method(self):
        self.database = Database()
        self.database.initialize("sqlite://")
        self.store = DatabaseAttributeStore(self.database)
        self.collection = make_collection(self.store, ["Forest", "Swamp"])

    def teardown_method(self):
        self.database.dispose()

    def test_import_onto_terrain(self):
        forest = self.collection.get(1)
        swamp = self.collection.get(2)
        document = transfer.export_terrain(forest, 1)

        asyncio.run(transfer.import_terrain(swamp, json.dumps(document)))

        assert swamp.name == "Forest"
        assert swamp.offset == len("Forest")
        assert self.collection.id_for(swamp) == 2
        assert swamp.record_ref != forest.record_ref

    def test_partial_document(self):
        swamp = self.collection.get(2)

        asyncio.run(transfer.import_terrain(swamp, {"color": "#123456"}))

        assert swamp.color == "#123456"
        assert swamp.name == "Swamp"

    def test_missing_upload(self):
        with pytest.raises(MissingUploadError):
            asyncio.run(transfer.import_terrain(self.collection.get(1), None))
