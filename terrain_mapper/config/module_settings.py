"""
Module settings registry.

Settings are registered once with their scope, default and value type, and
persisted in the ``module_settings`` table. Reading a setting that was never
written returns its registered default.
"""

from __future__ import annotations

import copy
from enum import Enum
from typing import Any, Dict, List, Optional, Type

import structlog
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from ..core.errors import PersistenceError, UnknownSettingError
from ..db.connection import Database, db
from ..db.models import ModuleSetting

logger = structlog.get_logger()

TERRAINS_ITEM_NAME = "Terrains"
TERRAINS_ITEM_IMG = "icons/svg/mountain.svg"


class SettingScope(str, Enum):
    """Where a setting value applies."""

    WORLD = "world"
    CLIENT = "client"


class AutoTerrainChoice(str, Enum):
    """When terrain is applied to tokens automatically."""

    NO = "auto_terrain_no"
    COMBAT = "auto_terrain_combat"
    ALWAYS = "auto_terrain_always"


class SettingKeys:
    """Keys for all the settings used in this module."""

    TERRAINS_ITEM = "terrains_item"  # Container holding terrain records
    FAVORITES = "favorites"  # Favorite terrains, by record id
    CURRENT_TERRAIN = "current_terrain"  # Current terrain on the terrain layer
    CURRENT_LAYER = "current_layer"  # Current layer on the terrain layer

    # Automatically set terrain on tokens
    AUTO_TERRAIN = "auto_terrain"
    AUTO_TERRAIN_DIALOG = "auto_terrain_dialog"  # Should the GM get a terrain dialog on terrain addition?
    AUTO_TERRAIN_DISPLAY_ICON = "auto_terrain_display_icon"  # Display icon when adding terrain

    # Terrain listing application
    EXPANDED_FOLDERS = "app_expanded_folders"

    # Announcements re major updates
    CHANGELOG = "changelog"


class SettingDefinition(BaseModel):
    """Registration data for one setting."""

    key: str = Field(description="Setting key")
    name: Optional[str] = Field(default=None, description="User-facing name")
    hint: Optional[str] = Field(default=None, description="User-facing hint")
    scope: SettingScope = Field(default=SettingScope.WORLD, description="Where the value applies")
    config: bool = Field(default=False, description="Whether the setting appears in the settings form")
    default: Any = Field(default=None, description="Value returned when nothing is stored")
    value_type: Optional[Type[Any]] = Field(default=None, description="Python type of the value")
    choices: Optional[List[str]] = Field(default=None, description="Allowed values")
    requires_reload: bool = Field(default=False, description="Whether changing the value needs a reload")

    def validate_value(self, value: Any) -> None:
        if value is None:
            return
        # bool is an int subclass but never a valid int setting
        wrong_bool = isinstance(value, bool) and self.value_type is not bool
        if self.value_type is not None and (wrong_bool or not isinstance(value, self.value_type)):
            raise TypeError(f"Setting {self.key} expects {self.value_type.__name__}, got {type(value).__name__}")
        if self.choices is not None and value not in self.choices:
            raise ValueError(f"Setting {self.key} must be one of {self.choices}, got {value!r}")


class ModuleSettings:
    """Registered module settings backed by the database."""

    KEYS = SettingKeys

    def __init__(self, database: Optional[Database] = None):
        self.database = database or db
        self._definitions: Dict[str, SettingDefinition] = {}

    # Registration

    def register(self, key: str, **options: Any) -> SettingDefinition:
        """Register a setting."""
        definition = SettingDefinition(key=key, **options)
        self._definitions[key] = definition
        return definition

    def is_registered(self, key: str) -> bool:
        return key in self._definitions

    def definition(self, key: str) -> SettingDefinition:
        try:
            return self._definitions[key]
        except KeyError:
            raise UnknownSettingError(key) from None

    def register_all(self) -> None:
        """Register all settings."""
        KEYS = self.KEYS

        self.register(KEYS.FAVORITES, name="Favorites", scope=SettingScope.CLIENT, default=[], value_type=list)

        self.register(KEYS.TERRAINS_ITEM, scope=SettingScope.WORLD, default=None, value_type=str)

        self.register(
            KEYS.EXPANDED_FOLDERS, name="Expanded Folders", scope=SettingScope.CLIENT, default=[], value_type=list
        )

        self.register(KEYS.CURRENT_TERRAIN, name="Current Terrain", scope=SettingScope.CLIENT, default="", value_type=str)

        self.register(KEYS.CURRENT_LAYER, name="Current Layer", scope=SettingScope.CLIENT, default=0, value_type=int)

        self.register(
            KEYS.AUTO_TERRAIN,
            name="Automatic terrain",
            hint="When to apply terrain to tokens automatically.",
            scope=SettingScope.WORLD,
            config=True,
            default=AutoTerrainChoice.COMBAT.value,
            value_type=str,
            choices=[choice.value for choice in AutoTerrainChoice],
        )

        self.register(
            KEYS.AUTO_TERRAIN_DIALOG,
            name="Terrain dialog",
            hint="Ask the GM before applying terrain to a token.",
            scope=SettingScope.WORLD,
            config=True,
            default=False,
            value_type=bool,
        )

        self.register(
            KEYS.AUTO_TERRAIN_DISPLAY_ICON,
            name="Display terrain icon",
            hint="Display an icon on the token when terrain is applied.",
            scope=SettingScope.WORLD,
            config=True,
            default=True,
            value_type=bool,
        )

        self.register(KEYS.CHANGELOG, scope=SettingScope.CLIENT, default=None)

        logger.info("Module settings registered", count=len(self._definitions))

    # Values

    def get(self, key: str) -> Any:
        """Return the stored value, or the registered default."""
        definition = self.definition(key)
        try:
            with self.database.get_session() as session:
                row = session.get(ModuleSetting, key)
                value = None if row is None else row.value
        except SQLAlchemyError as e:
            logger.error("Failed to read setting", key=key, error=str(e))
            raise PersistenceError(f"Reading setting {key} failed: {e}") from e

        if value is None:
            return copy.deepcopy(definition.default)
        return value

    async def set(self, key: str, value: Any) -> None:
        """Validate and persist a setting value."""
        definition = self.definition(key)
        definition.validate_value(value)
        try:
            with self.database.get_session() as session:
                row = session.get(ModuleSetting, key)
                if row is None:
                    session.add(ModuleSetting(key=key, scope=definition.scope.value, value=copy.deepcopy(value)))
                else:
                    row.value = copy.deepcopy(value)
        except SQLAlchemyError as e:
            logger.error("Failed to write setting", key=key, error=str(e))
            raise PersistenceError(f"Writing setting {key} failed: {e}") from e

    # Terrains item

    async def initialize_terrains_item(self, store) -> str:
        """Create the container holding terrain records, unless it already exists."""
        existing = self.get(self.KEYS.TERRAINS_ITEM)
        if store.container_exists(existing):
            return existing

        item_id = await store.create_container(TERRAINS_ITEM_NAME, img=TERRAINS_ITEM_IMG)
        await self.set(self.KEYS.TERRAINS_ITEM, item_id)
        logger.info("Terrains item initialized", container_ref=item_id)
        return item_id

    # Expanded folders

    @property
    def expanded_folders(self) -> List[str]:
        return self.get(self.KEYS.EXPANDED_FOLDERS)

    async def add_expanded_folder(self, folder_id: str) -> None:
        """Add a given folder id to the saved expanded folders."""
        folders = self.expanded_folders
        if folder_id not in folders:
            folders.append(folder_id)
        await self.set(self.KEYS.EXPANDED_FOLDERS, folders)

    async def remove_expanded_folder(self, folder_id: str) -> None:
        """Remove a given folder id from the saved expanded folders."""
        folders = [folder for folder in self.expanded_folders if folder != folder_id]
        await self.set(self.KEYS.EXPANDED_FOLDERS, folders)

    async def clear_expanded_folders(self) -> None:
        await self.set(self.KEYS.EXPANDED_FOLDERS, [])

    def is_folder_expanded(self, folder_id: str) -> bool:
        return folder_id in self.expanded_folders

    # Favorites

    def is_favorite(self, record_ref: str) -> bool:
        return record_ref in self.get(self.KEYS.FAVORITES)

    async def add_to_favorites(self, record_ref: str) -> None:
        favorites = self.get(self.KEYS.FAVORITES)
        if record_ref not in favorites:
            favorites.append(record_ref)
        await self.set(self.KEYS.FAVORITES, favorites)

    async def remove_from_favorites(self, record_ref: str) -> None:
        favorites = [ref for ref in self.get(self.KEYS.FAVORITES) if ref != record_ref]
        await self.set(self.KEYS.FAVORITES, favorites)
