"""
Core terrain functionality.
"""

from .attributes import AnchorMode, AttributeStore, TerrainAttribute
from .collection import TerrainCollection
from .errors import (
    InvalidDocumentError, InvalidIdentifierError, MissingUploadError, OccupiedIdentifierError,
    PersistenceError, ReplaceError, TerrainMapperError, UnknownSettingError
)
from .terrain import Terrain, TerrainConfig
from .terrain_map import TerrainMap
from .transfer import (
    export_all, export_terrain, import_additive, import_terrain, replace_all,
    read_document, save_document
)

__all__ = ['AnchorMode', 'AttributeStore', 'TerrainAttribute', 'TerrainCollection',
           'InvalidDocumentError', 'InvalidIdentifierError', 'MissingUploadError',
           'OccupiedIdentifierError', 'PersistenceError', 'ReplaceError', 'TerrainMapperError',
           'UnknownSettingError', 'Terrain', 'TerrainConfig', 'TerrainMap',
           'export_all', 'export_terrain', 'import_additive', 'import_terrain', 'replace_all',
           'read_document', 'save_document']
