"""
Attribute keys and the attribute store capability.

Terrain data is not held by ``Terrain`` objects. It lives on a backing record
in an external store, comparable to an active effect carried by a hidden
item. Display fields are top-level record fields; the typed configuration is
kept in module-scoped flags addressed by a dotted key
(``flags.<module_id>.<attribute>``).
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence


class AnchorMode(IntEnum):
    """Reference point that a terrain's elevation offset is measured from."""

    FIXED = 0
    FROM_TERRAIN = 1
    FROM_LAYER = 2


class TerrainAttribute(str, Enum):
    """Attributes of a terrain, named as they appear in portable documents."""

    NAME = "name"
    DESCRIPTION = "description"
    ICON = "icon"
    COLOR = "color"
    ANCHOR = "anchor"
    OFFSET = "offset"
    RANGE_ABOVE = "rangeAbove"
    RANGE_BELOW = "rangeBelow"
    USER_VISIBLE = "userVisible"

    @property
    def is_flag(self) -> bool:
        """Whether the attribute is stored in the module flags of the record."""
        return self not in RECORD_FIELDS

    def store_key(self, module_id: str) -> str:
        """Key used to address this attribute in the attribute store."""
        if self.is_flag:
            return flag_key(module_id, self.value)
        return self.value


RECORD_FIELDS = frozenset({TerrainAttribute.NAME, TerrainAttribute.DESCRIPTION, TerrainAttribute.ICON})

DEFAULTS: Dict[TerrainAttribute, Any] = {
    TerrainAttribute.NAME: "Terrain",
    TerrainAttribute.DESCRIPTION: "",
    TerrainAttribute.ICON: "icons/svg/mountain.svg",
    TerrainAttribute.COLOR: "#ffffff",
    TerrainAttribute.ANCHOR: AnchorMode.FIXED,
    TerrainAttribute.OFFSET: 0,
    TerrainAttribute.RANGE_ABOVE: 0,
    TerrainAttribute.RANGE_BELOW: 0,
    TerrainAttribute.USER_VISIBLE: False,
}


def flag_key(module_id: str, name: str) -> str:
    """Build the dotted store key for a module flag."""
    return f"flags.{module_id}.{name}"


class AttributeStore(Protocol):
    """
    Key/value storage attached to opaque persisted records.

    Record and container references are opaque strings. Reads are
    synchronous; anything that persists may suspend.
    """

    def get(self, record_ref: str, key: str) -> Any:
        """Return the value stored under a key, or None when unset."""

    async def set(self, record_ref: str, key: str, value: Any) -> None:
        """Persist a value under a key."""

    async def create_many(self, container_ref: str, records: Sequence[Mapping[str, Any]]) -> List[str]:
        """Create records in a container and return their refs in order."""

    async def delete_many(self, container_ref: str, record_refs: Sequence[str]) -> int:
        """Delete records from a container and return how many were removed."""

    def records(self, container_ref: str) -> List[str]:
        """Return the refs of every record in a container, in stored order."""

    def to_portable(self, record_ref: str) -> Dict[str, Any]:
        """Return a JSON-compatible snapshot of a record."""

    async def from_portable(self, document: Mapping[str, Any], container_ref: Optional[str] = None) -> str:
        """Create a record from a snapshot and return its ref."""

    async def update_from_portable(self, record_ref: str, document: Mapping[str, Any]) -> None:
        """Overwrite a record's data with a snapshot."""
