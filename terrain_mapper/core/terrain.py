"""
Terrain entity.

A ``Terrain`` is a typed view over one backing record in an attribute store.
Every read goes to the store and every write is forwarded to it; nothing is
cached on the terrain itself. Scenes refer to terrains through a
``TerrainMap`` that links each terrain to a small integer id.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field

from ..config.config import settings
from ..utils.tasks import fire_and_forget
from .attributes import DEFAULTS, RECORD_FIELDS, AnchorMode, AttributeStore, TerrainAttribute
from .errors import PersistenceError

logger = structlog.get_logger()

NUMERIC_ATTRIBUTES = frozenset({
    TerrainAttribute.OFFSET,
    TerrainAttribute.RANGE_ABOVE,
    TerrainAttribute.RANGE_BELOW,
})


class TerrainConfig(BaseModel):
    """Terrain configuration data."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(default=DEFAULTS[TerrainAttribute.NAME], description="User-facing name of the terrain")
    description: str = Field(default=DEFAULTS[TerrainAttribute.DESCRIPTION], description="Longer description")
    icon: str = Field(default=DEFAULTS[TerrainAttribute.ICON], description="URL of icon representing the terrain")
    color: str = Field(default=DEFAULTS[TerrainAttribute.COLOR], description="Hex color representing the terrain")
    anchor: AnchorMode = Field(
        default=DEFAULTS[TerrainAttribute.ANCHOR],
        description="Measure elevation as fixed, from terrain, or from layer",
    )
    offset: float = Field(default=0, description="Offset elevation from anchor")
    range_above: float = Field(default=0, alias="rangeAbove", description="How far above the offset the terrain extends")
    range_below: float = Field(default=0, alias="rangeBelow", description="How far below the offset the terrain extends")
    user_visible: bool = Field(default=False, alias="userVisible", description="Is this terrain visible to the user?")

    def attribute_values(self) -> Dict[TerrainAttribute, Any]:
        """Return the configuration keyed by terrain attribute."""
        data = self.model_dump(by_alias=True, mode="json")
        return {attribute: data[attribute.value] for attribute in TerrainAttribute}


def coerce_attribute(attribute: TerrainAttribute, value: Any) -> Any:
    """Validate a value for an attribute and convert it to its stored form."""
    if attribute is TerrainAttribute.ANCHOR:
        return int(AnchorMode(value))
    if attribute in NUMERIC_ATTRIBUTES:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"{attribute.value} must be a number, got {value!r}")
        return value
    if attribute is TerrainAttribute.USER_VISIBLE:
        return bool(value)
    if not isinstance(value, str):
        raise TypeError(f"{attribute.value} must be a string, got {value!r}")
    return value


def record_data(config: Union[TerrainConfig, Mapping[str, Any]], module_id: Optional[str] = None) -> Dict[str, Any]:
    """Build the backing-record data for a terrain configuration."""
    module_id = module_id or settings.module_id
    if not isinstance(config, TerrainConfig):
        config = TerrainConfig.model_validate(config)

    values = config.attribute_values()
    data: Dict[str, Any] = {attribute.value: values[attribute] for attribute in RECORD_FIELDS}
    data["flags"] = {
        module_id: {
            attribute.value: value for attribute, value in values.items() if attribute.is_flag
        }
    }
    return data


class TerrainField:
    """Class attribute that reads and writes one terrain attribute on the backing record."""

    def __init__(self, attribute: TerrainAttribute):
        self.attribute = attribute

    def __set_name__(self, owner, name):
        self.name = name

    def __get__(self, instance, owner=None):
        if instance is None:
            return self
        return instance.get_attribute(self.attribute)

    def __set__(self, instance, value):
        instance.set_attribute(self.attribute, value)


class Terrain:
    """
    Terrain data is used here, but ultimately stored in a record in the
    attribute store, comparable to an active effect on a hidden item.
    """

    name = TerrainField(TerrainAttribute.NAME)
    description = TerrainField(TerrainAttribute.DESCRIPTION)
    icon = TerrainField(TerrainAttribute.ICON)
    color = TerrainField(TerrainAttribute.COLOR)
    anchor = TerrainField(TerrainAttribute.ANCHOR)
    offset = TerrainField(TerrainAttribute.OFFSET)
    range_above = TerrainField(TerrainAttribute.RANGE_ABOVE)
    range_below = TerrainField(TerrainAttribute.RANGE_BELOW)
    user_visible = TerrainField(TerrainAttribute.USER_VISIBLE)

    def __init__(self, store: AttributeStore, record_ref: Optional[str] = None, module_id: Optional[str] = None):
        self.store = store
        self.record_ref = record_ref
        self.module_id = module_id or settings.module_id

    def __repr__(self) -> str:
        return f"Terrain(record_ref={self.record_ref!r})"

    @classmethod
    def from_record(cls, store: AttributeStore, record_ref: str, module_id: Optional[str] = None) -> "Terrain":
        """Construct a Terrain for an existing record."""
        return cls(store, record_ref, module_id=module_id)

    @classmethod
    def get_all(cls, store: AttributeStore, container_ref: str, module_id: Optional[str] = None) -> List["Terrain"]:
        """Load all terrains stored in a container."""
        return [cls(store, ref, module_id=module_id) for ref in store.records(container_ref)]

    async def initialize(
        self,
        config: Union[TerrainConfig, Mapping[str, Any], None] = None,
        container_ref: Optional[str] = None,
    ) -> None:
        """
        Apply an initial configuration to the backing record.

        Creates the record (in ``container_ref`` if given) when the terrain
        has none yet; otherwise writes every attribute to the existing one.
        """
        if not isinstance(config, TerrainConfig):
            config = TerrainConfig.model_validate(config or {})

        if self.record_ref is None:
            self.record_ref = await self.store.from_portable(record_data(config, self.module_id), container_ref)
            logger.debug("Created terrain record", record_ref=self.record_ref)
            return

        for attribute, value in config.attribute_values().items():
            await self.set_attribute_async(attribute, value)

    # Attribute access

    def get_attribute(self, attribute: Union[TerrainAttribute, str]) -> Any:
        """Read an attribute from the backing record."""
        attribute = TerrainAttribute(attribute)
        value = self.store.get(self._require_record(), attribute.store_key(self.module_id))
        if value is None:
            value = DEFAULTS[attribute]
        if attribute is TerrainAttribute.ANCHOR:
            return AnchorMode(value)
        return value

    def set_attribute(self, attribute: Union[TerrainAttribute, str], value: Any) -> None:
        """
        Write an attribute without waiting for the store to persist it.

        The value is validated before the write is scheduled, so a bad value
        raises here. Store failures surface from ``drain_pending``.
        """
        attribute = TerrainAttribute(attribute)
        stored = coerce_attribute(attribute, value)
        fire_and_forget(self.set_attribute_async(attribute, stored), description=f"set {attribute.value}")

    async def set_attribute_async(self, attribute: Union[TerrainAttribute, str], value: Any) -> None:
        """Write an attribute and wait until the store has persisted it."""
        attribute = TerrainAttribute(attribute)
        stored = coerce_attribute(attribute, value)
        await self.store.set(self._require_record(), attribute.store_key(self.module_id), stored)

    async def update(self, values: Mapping[str, Any]) -> None:
        """Write several attributes, keyed by attribute name, in order."""
        for key, value in values.items():
            await self.set_attribute_async(TerrainAttribute(key), value)

    @property
    def config(self) -> TerrainConfig:
        """Current configuration, read from the store."""
        return TerrainConfig.model_validate(
            {attribute.value: self.get_attribute(attribute) for attribute in TerrainAttribute}
        )

    def _require_record(self) -> str:
        if self.record_ref is None:
            raise PersistenceError("Terrain has no backing record.")
        return self.record_ref

    # Elevation

    def elevation_min_max(self, anchor_elevation: float) -> Dict[str, float]:
        """
        Calculate the elevation band for a given anchor elevation.

        Resolving which elevation corresponds to the anchor mode is up to the
        caller. The band is not clamped, so a positive range below or a
        negative range above yields an inverted band.

        Args:
            anchor_elevation: Elevation of the anchor point

        Returns:
            Dict with "min" and "max" elevation
        """
        offset = self.offset
        elevation = anchor_elevation + offset
        return {"min": elevation + self.range_below, "max": elevation + self.range_above}

    # Portable form

    def to_portable_form(self) -> Dict[str, Any]:
        """Serialize every attribute plus a snapshot of the backing record."""
        out: Dict[str, Any] = {}
        for attribute in TerrainAttribute:
            value = self.get_attribute(attribute)
            out[attribute.value] = int(value) if attribute is TerrainAttribute.ANCHOR else value
        out["activeEffect"] = self.store.to_portable(self.record_ref) if self.record_ref is not None else None
        return out

    async def update_from_portable_form(self, data: Mapping[str, Any], container_ref: Optional[str] = None) -> None:
        """
        Apply a portable form to this terrain.

        The id is never taken from the data. A terrain without a backing
        record gets a new one built from the record snapshot.
        """
        snapshot = data.get("activeEffect")
        if self.record_ref is None:
            self.record_ref = await self.store.from_portable(snapshot or {}, container_ref)
        elif snapshot is not None:
            await self.store.update_from_portable(self.record_ref, snapshot)

        for key, value in data.items():
            if key in ("id", "activeEffect"):
                continue
            try:
                attribute = TerrainAttribute(key)
            except ValueError:
                logger.debug("Skipping unknown terrain key", key=key)
                continue
            await self.set_attribute_async(attribute, value)
