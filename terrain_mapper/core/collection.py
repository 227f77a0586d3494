"""
Owning collection of terrains.

Binds the records of one container in the attribute store to a
``TerrainMap``, so every stored terrain has a small integer id.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

import structlog

from ..config.config import settings
from .attributes import AttributeStore
from .terrain import Terrain, TerrainConfig
from .terrain_map import TerrainMap

logger = structlog.get_logger()


class TerrainCollection:
    """Terrains stored in one container, keyed by terrain id."""

    def __init__(
        self,
        store: AttributeStore,
        container_ref: str,
        max_terrains: Optional[int] = None,
        module_id: Optional[str] = None,
    ):
        self.store = store
        self.container_ref = container_ref
        self.module_id = module_id or settings.module_id
        self.terrain_map = TerrainMap(max_terrains)

    def __len__(self) -> int:
        return len(self.terrain_map)

    def __contains__(self, terrain_id: object) -> bool:
        return terrain_id in self.terrain_map

    def load(self) -> "TerrainCollection":
        """(Re)build the id map from the records currently in the container."""
        self.terrain_map = self.build_map(self.store.records(self.container_ref))
        logger.info("Loaded terrains", container_ref=self.container_ref, count=len(self.terrain_map))
        return self

    def build_map(self, record_refs: Sequence[str], terrain_ids: Optional[Sequence[int]] = None) -> TerrainMap:
        """
        Wrap records as terrains in a new map.

        Ids are allocated in record order unless ``terrain_ids`` gives the id
        for each record.
        """
        terrain_map = TerrainMap(self.terrain_map.max_terrains)
        for index, ref in enumerate(record_refs):
            terrain = Terrain.from_record(self.store, ref, module_id=self.module_id)
            if terrain_ids is None:
                terrain_map.allocate(terrain)
            else:
                terrain_map.set_explicit(terrain_ids[index], terrain)
        return terrain_map

    def swap_map(self, terrain_map: TerrainMap) -> None:
        """Replace the id map in one step."""
        self.terrain_map = terrain_map

    def terrains(self) -> List[Terrain]:
        """All terrains ordered by id."""
        return [self.terrain_map[terrain_id] for terrain_id in self.terrain_map]

    def items(self) -> List[Tuple[int, Terrain]]:
        """(id, terrain) pairs ordered by id."""
        return [(terrain_id, self.terrain_map[terrain_id]) for terrain_id in self.terrain_map]

    def get(self, terrain_id: int) -> Optional[Terrain]:
        return self.terrain_map.get(terrain_id)

    def id_for(self, terrain: Terrain) -> Optional[int]:
        return self.terrain_map.id_for(terrain)

    def record_refs(self) -> List[str]:
        return [terrain.record_ref for terrain in self.terrains()]

    async def create(
        self,
        config: Union[TerrainConfig, Mapping[str, Any], None] = None,
        terrain_id: Optional[int] = None,
        override: bool = False,
    ) -> int:
        """
        Create a terrain record and give it an id.

        With ``terrain_id`` the id is validated before anything is persisted.
        With ``override`` the replaced terrain's record is deleted before the
        map changes; if that fails the new record is removed again and the
        map keeps the replaced terrain.
        """
        if terrain_id is not None:
            self.terrain_map.check_explicit(terrain_id, override)

        terrain = Terrain(self.store, module_id=self.module_id)
        await terrain.initialize(config, container_ref=self.container_ref)

        if terrain_id is None:
            assigned = self.terrain_map.allocate(terrain)
        else:
            replaced = self.terrain_map.get(terrain_id)
            if replaced is not None:
                try:
                    await self.store.delete_many(self.container_ref, [replaced.record_ref])
                except Exception:
                    logger.error("Replacing terrain failed", terrain_id=terrain_id)
                    await self.store.delete_many(self.container_ref, [terrain.record_ref])
                    raise
            assigned = self.terrain_map.set_explicit(terrain_id, terrain, override=override)

        logger.info("Created terrain", terrain_id=assigned, record_ref=terrain.record_ref)
        return assigned

    async def delete(self, terrain_id: int) -> bool:
        """Delete a terrain's record and release its id."""
        terrain = self.terrain_map.get(terrain_id)
        if terrain is None:
            return False
        await self.store.delete_many(self.container_ref, [terrain.record_ref])
        self.terrain_map.release(terrain_id)
        logger.info("Deleted terrain", terrain_id=terrain_id)
        return True

    async def add_records(self, records: Sequence[Mapping[str, Any]]) -> List[int]:
        """Create records in the container and allocate an id for each."""
        refs = await self.store.create_many(self.container_ref, records)
        return [
            self.terrain_map.allocate(Terrain.from_record(self.store, ref, module_id=self.module_id))
            for ref in refs
        ]

