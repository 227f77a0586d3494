"""Tests for the module settings registry."""

import asyncio

import pytest

from terrain_mapper.config.module_settings import (
    TERRAINS_ITEM_NAME,
    AutoTerrainChoice,
    ModuleSettings,
    SettingKeys,
    SettingScope,
)
from terrain_mapper.core.errors import UnknownSettingError
from terrain_mapper.db.connection import Database
from terrain_mapper.db.store import DatabaseAttributeStore


class TestModuleSettings:
    """Test registration, defaults and persistence of settings."""

    def setup_method(self):
        self.database = Database()
        self.database.initialize("sqlite://")
        self.settings = ModuleSettings(self.database)
        self.settings.register_all()

    def teardown_method(self):
        self.database.dispose()

    def test_registered_keys(self):
        for key in (SettingKeys.FAVORITES, SettingKeys.TERRAINS_ITEM, SettingKeys.AUTO_TERRAIN,
                    SettingKeys.EXPANDED_FOLDERS, SettingKeys.CHANGELOG):
            assert self.settings.is_registered(key)

        assert self.settings.definition(SettingKeys.FAVORITES).scope is SettingScope.CLIENT
        assert self.settings.definition(SettingKeys.AUTO_TERRAIN).config is True

    def test_unknown_key(self):
        with pytest.raises(UnknownSettingError):
            self.settings.get("nonexistent")
        with pytest.raises(KeyError):
            asyncio.run(self.settings.set("nonexistent", 1))

    def test_defaults(self):
        assert self.settings.get(SettingKeys.FAVORITES) == []
        assert self.settings.get(SettingKeys.TERRAINS_ITEM) is None
        assert self.settings.get(SettingKeys.AUTO_TERRAIN) == AutoTerrainChoice.COMBAT.value
        assert self.settings.get(SettingKeys.AUTO_TERRAIN_DISPLAY_ICON) is True

    def test_default_is_a_copy(self):
        self.settings.get(SettingKeys.FAVORITES).append("leak")

        assert self.settings.get(SettingKeys.FAVORITES) == []

    def test_set_and_get(self):
        asyncio.run(self.settings.set(SettingKeys.AUTO_TERRAIN, AutoTerrainChoice.ALWAYS.value))
        asyncio.run(self.settings.set(SettingKeys.CURRENT_LAYER, 3))

        assert self.settings.get(SettingKeys.AUTO_TERRAIN) == "auto_terrain_always"
        assert self.settings.get(SettingKeys.CURRENT_LAYER) == 3

    def test_overwrite(self):
        asyncio.run(self.settings.set(SettingKeys.CURRENT_TERRAIN, "a"))
        asyncio.run(self.settings.set(SettingKeys.CURRENT_TERRAIN, "b"))

        assert self.settings.get(SettingKeys.CURRENT_TERRAIN) == "b"

    def test_invalid_choice(self):
        with pytest.raises(ValueError):
            asyncio.run(self.settings.set(SettingKeys.AUTO_TERRAIN, "sometimes"))

        assert self.settings.get(SettingKeys.AUTO_TERRAIN) == AutoTerrainChoice.COMBAT.value

    def test_wrong_type(self):
        with pytest.raises(TypeError):
            asyncio.run(self.settings.set(SettingKeys.FAVORITES, "not a list"))

    def test_bool_is_not_an_int(self):
        with pytest.raises(TypeError):
            asyncio.run(self.settings.set(SettingKeys.CURRENT_LAYER, True))

        asyncio.run(self.settings.set(SettingKeys.AUTO_TERRAIN_DIALOG, True))

        assert self.settings.get(SettingKeys.CURRENT_LAYER) == 0
        assert self.settings.get(SettingKeys.AUTO_TERRAIN_DIALOG) is True

    def test_values_shared_between_registries(self):
        asyncio.run(self.settings.set(SettingKeys.CURRENT_TERRAIN, "swamp"))

        other = ModuleSettings(self.database)
        other.register_all()

        assert other.get(SettingKeys.CURRENT_TERRAIN) == "swamp"


class TestFavoritesAndFolders:
    """Test the list-valued client settings."""

    def setup_method(self):
        self.database = Database()
        self.database.initialize("sqlite://")
        self.settings = ModuleSettings(self.database)
        self.settings.register_all()

    def teardown_method(self):
        self.database.dispose()

    def test_favorites(self):
        asyncio.run(self.settings.add_to_favorites("abc"))
        asyncio.run(self.settings.add_to_favorites("def"))
        asyncio.run(self.settings.add_to_favorites("abc"))

        assert self.settings.get(SettingKeys.FAVORITES) == ["abc", "def"]
        assert self.settings.is_favorite("abc")

        asyncio.run(self.settings.remove_from_favorites("abc"))

        assert not self.settings.is_favorite("abc")
        assert self.settings.get(SettingKeys.FAVORITES) == ["def"]

    def test_remove_missing_favorite(self):
        asyncio.run(self.settings.remove_from_favorites("missing"))

        assert self.settings.get(SettingKeys.FAVORITES) == []

    def test_expanded_folders(self):
        asyncio.run(self.settings.add_expanded_folder("f1"))
        asyncio.run(self.settings.add_expanded_folder("f2"))
        asyncio.run(self.settings.add_expanded_folder("f1"))

        assert self.settings.expanded_folders == ["f1", "f2"]
        assert self.settings.is_folder_expanded("f2")

        asyncio.run(self.settings.remove_expanded_folder("f1"))
        assert self.settings.expanded_folders == ["f2"]

        asyncio.run(self.settings.clear_expanded_folders())
        assert self.settings.expanded_folders == []


class TestTerrainsItem:
    """Test creation of the container holding terrain records."""

    def setup_method(self):
        self.database = Database()
        self.database.initialize("sqlite://")
        self.settings = ModuleSettings(self.database)
        self.settings.register_all()
        self.store = DatabaseAttributeStore(self.database)

    def teardown_method(self):
        self.database.dispose()

    def test_creates_item_once(self):
        first = asyncio.run(self.settings.initialize_terrains_item(self.store))
        second = asyncio.run(self.settings.initialize_terrains_item(self.store))

        assert first == second
        assert self.settings.get(SettingKeys.TERRAINS_ITEM) == first
        assert self.store.container_exists(first)

    def test_recreates_missing_item(self):
        """A stored id pointing at a deleted container gets a new container."""
        asyncio.run(self.settings.set(SettingKeys.TERRAINS_ITEM, "gone"))

        item_id = asyncio.run(self.settings.initialize_terrains_item(self.store))

        assert item_id != "gone"
        assert self.store.container_exists(item_id)

    def test_item_name(self):
        from terrain_mapper.db.models import TerrainItem

        item_id = asyncio.run(self.settings.initialize_terrains_item(self.store))

        with self.database.get_session() as session:
            assert session.get(TerrainItem, item_id).name == TERRAINS_ITEM_NAME
