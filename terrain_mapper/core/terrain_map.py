"""
Terrain identifier map.

Assigns small positive integer ids to terrains. Ids are meant to fit in a
fixed bit width (5 bits by default, so 1-31 with 0 reserved for "no terrain")
and are handed out compactly: the next automatic id is always the smallest
one not in use, so ids freed by a release are reused before higher ones.
"""

from collections.abc import Mapping
from typing import Any, Dict, Iterator, Optional

import structlog

from .errors import InvalidIdentifierError, OccupiedIdentifierError

logger = structlog.get_logger()


class TerrainMap(Mapping):
    """
    Bounded id -> terrain map that owns its allocation policy.

    Read access follows the ``Mapping`` protocol. All mutation goes through
    ``set_explicit``, ``allocate``, ``release`` and ``reset`` so the
    next-candidate pointer can never drift from the stored ids.
    """

    MAX_TERRAINS = 2 ** 5 - 1  # No 0 id.

    def __init__(self, max_terrains: Optional[int] = None):
        self.max_terrains = max_terrains if max_terrains is not None else self.MAX_TERRAINS
        self._terrains: Dict[int, Any] = {}
        self._next_id = 1

    # Mapping protocol

    def __getitem__(self, terrain_id: int) -> Any:
        return self._terrains[terrain_id]

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._terrains))

    def __len__(self) -> int:
        return len(self._terrains)

    def __repr__(self) -> str:
        return f"TerrainMap(ids={sorted(self._terrains)}, next_id={self._next_id})"

    @property
    def next_id(self) -> int:
        """Id the next ``allocate`` call will use."""
        return self._next_id

    def id_for(self, terrain: Any) -> Optional[int]:
        """Return the id a terrain is stored under, or None."""
        for terrain_id, stored in self._terrains.items():
            if stored is terrain:
                return terrain_id
        return None

    # Mutation

    def set_explicit(self, terrain_id: Optional[int], terrain: Any, override: bool = False) -> int:
        """
        Store a terrain under a specific id.

        Args:
            terrain_id: Id to use. None means the next candidate id.
            terrain: Terrain to store
            override: Replace a terrain already stored under the id

        Returns:
            The id used

        Raises:
            OccupiedIdentifierError: The id is in use and override is False
            InvalidIdentifierError: The id is not a positive integer
        """
        if terrain_id is None:
            terrain_id = self._next_id

        self.check_explicit(terrain_id, override)
        self._warn_if_exceeds_max(terrain_id)
        self._terrains[terrain_id] = terrain
        self._next_id = self._find_next_id()
        return terrain_id

    def check_explicit(self, terrain_id: Any, override: bool = False) -> None:
        """Raise the error ``set_explicit`` would raise for this id, without storing anything."""
        if not override and self._is_valid_id(terrain_id) and terrain_id in self._terrains:
            logger.error("Terrain id already present and override is false", terrain_id=terrain_id)
            raise OccupiedIdentifierError(terrain_id)

        if not self._is_valid_id(terrain_id):
            logger.error("Terrain id is invalid", terrain_id=repr(terrain_id))
            raise InvalidIdentifierError(terrain_id)

    def allocate(self, terrain: Any) -> int:
        """Store a terrain under the next candidate id and return that id."""
        terrain_id = self._next_id
        self._warn_if_exceeds_max(terrain_id)
        self._terrains[terrain_id] = terrain
        self._next_id = self._find_next_id()
        return terrain_id

    def release(self, terrain_id: int) -> bool:
        """Remove the terrain stored under an id. Returns whether one was removed."""
        if terrain_id not in self._terrains:
            return False
        del self._terrains[terrain_id]
        if self._next_id > terrain_id:
            self._next_id = self._find_next_id()
        return True

    def reset(self) -> None:
        """Remove every terrain and start allocating from 1 again."""
        self._terrains.clear()
        self._next_id = 1

    # Helpers

    @staticmethod
    def _is_valid_id(terrain_id: Any) -> bool:
        return isinstance(terrain_id, int) and not isinstance(terrain_id, bool) and terrain_id >= 1

    def _warn_if_exceeds_max(self, terrain_id: int) -> None:
        if terrain_id > self.max_terrains:
            logger.warning(
                "Terrain id exceeds maximum terrains",
                terrain_id=terrain_id,
                max_terrains=self.max_terrains,
            )

    def _find_next_id(self) -> int:
        """
        Locate the smallest id not in use.

        The pointer always holds the smallest free id, so ids below it form a
        dense prefix. If the pointer was just filled and nothing else is
        stored, the prefix now ends at the pointer and the answer is one past
        it. Otherwise scan the sorted ids for the first gap.
        """
        size = len(self._terrains)
        if size == self._next_id and self._next_id in self._terrains:
            return self._next_id + 1

        keys = sorted(self._terrains)
        if not keys or keys[0] != 1:
            return 1
        for key, following in zip(keys, keys[1:]):
            if following != key + 1:
                return key + 1

        # Fully dense, no gap.
        return size + 1
