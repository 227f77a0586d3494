"""Exceptions raised by the terrain core."""

from typing import Any, Optional


class TerrainMapperError(Exception):
    """Base class for all terrain mapper errors."""


class InvalidIdentifierError(TerrainMapperError, ValueError):
    """Terrain id is not a positive integer."""

    def __init__(self, terrain_id: Any):
        self.terrain_id = terrain_id
        super().__init__(f"Id {terrain_id!r} is invalid.")


class OccupiedIdentifierError(TerrainMapperError, ValueError):
    """Terrain id is already in use and override was not requested."""

    def __init__(self, terrain_id: int):
        self.terrain_id = terrain_id
        super().__init__(f"Id {terrain_id} already present and override is false.")


class MissingUploadError(TerrainMapperError):
    """Import or replace was requested without a document."""

    def __init__(self, message: str = "You did not upload a data file!"):
        super().__init__(message)


class InvalidDocumentError(TerrainMapperError, ValueError):
    """Document could not be parsed as a portable terrain document."""


class PersistenceError(TerrainMapperError):
    """The attribute store rejected a read or write."""


class ReplaceError(PersistenceError):
    """Replacing a terrain collection failed after deletion had begun."""

    def __init__(self, message: str, restored: bool, cause: Optional[BaseException] = None):
        self.restored = restored
        self.cause = cause
        super().__init__(message)


class UnknownSettingError(TerrainMapperError, KeyError):
    """Module setting key was never registered."""
