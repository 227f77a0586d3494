"""
Import, export and merge of terrain collections.

Export builds a portable document from every terrain in a collection (or
from a single terrain) and stamps it with provenance. Import either adds the
document's terrains to the existing collection as new records or replaces
the collection's contents outright. All operations take an already-read
document; reading and writing files is done by ``read_document`` and
``save_document``.
"""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..config.config import settings
from .collection import TerrainCollection
from .errors import InvalidDocumentError, MissingUploadError, ReplaceError
from .terrain import Terrain, TerrainConfig, record_data

logger = structlog.get_logger()

DocumentInput = Union[Mapping[str, Any], str, bytes, None]


class ExportSource(BaseModel):
    """Provenance stamped into exported documents."""

    model_config = ConfigDict(populate_by_name=True)

    origin_world: str = Field(alias="originWorld")
    origin_system: str = Field(alias="originSystem")
    core_version: str = Field(alias="coreVersion")
    system_version: str = Field(alias="systemVersion")
    module_version: str = Field(alias="moduleVersion")

    @classmethod
    def current(cls) -> "ExportSource":
        return cls(
            origin_world=settings.world_id,
            origin_system=settings.system_id,
            core_version=settings.core_version,
            system_version=settings.system_version,
            module_version=settings.module_version,
        )


class PortableTerrain(TerrainConfig):
    """One terrain entry of a portable document."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[int] = Field(default=None, description="Terrain id at export time; never imported")
    active_effect: Optional[Dict[str, Any]] = Field(
        default=None, alias="activeEffect", description="Snapshot of the backing record"
    )


class PortableDocument(BaseModel):
    """Exported collection of terrains."""

    terrains: List[PortableTerrain] = Field(default_factory=list)
    flags: Dict[str, Any] = Field(default_factory=dict)

    @property
    def export_source(self) -> Optional[ExportSource]:
        source = self.flags.get("exportSource")
        return ExportSource.model_validate(source) if source else None


# Parsing

def _load_json(document: DocumentInput) -> Mapping[str, Any]:
    if document is None or (isinstance(document, (str, bytes)) and not document.strip()):
        raise MissingUploadError()

    if isinstance(document, (str, bytes)):
        try:
            document = json.loads(document)
        except json.JSONDecodeError as e:
            raise InvalidDocumentError(f"Document is not valid JSON: {e}") from e

    if not isinstance(document, Mapping):
        raise InvalidDocumentError("Document must be a JSON object.")
    return document


def parse_document(document: DocumentInput) -> PortableDocument:
    """Parse a collection document from a dict or JSON text."""
    data = _load_json(document)
    try:
        return PortableDocument.model_validate(data)
    except ValidationError as e:
        raise InvalidDocumentError(f"Document is not a terrain collection: {e}") from e


def parse_terrain_document(document: DocumentInput) -> PortableTerrain:
    """Parse a single-terrain document from a dict or JSON text."""
    data = _load_json(document)
    try:
        return PortableTerrain.model_validate(data)
    except ValidationError as e:
        raise InvalidDocumentError(f"Document is not a terrain: {e}") from e


def portable_to_record(entry: PortableTerrain, module_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Build record data for a document entry.

    Starts from the record snapshot and lays the entry's attributes over it,
    so the flattened attributes win over stale snapshot values.
    """
    module_id = module_id or settings.module_id
    record = copy.deepcopy(entry.active_effect or {})
    record.pop("_id", None)

    attributes = record_data(TerrainConfig.model_validate(entry.model_dump(by_alias=True)), module_id)
    flags = record.get("flags") or {}
    module_flags = dict(flags.get(module_id) or {})
    module_flags.update(attributes.pop("flags")[module_id])
    flags[module_id] = module_flags
    record.update(attributes)
    record["flags"] = flags
    return record


# Export

def export_filename(name: Optional[str] = None) -> str:
    """Filename for an export of the whole collection, or of one named terrain."""
    suffix = "terrains" if name is None else name.replace("/", "_").replace("\\", "_")
    return f"{settings.module_id}_{suffix}.json"


def export_all(collection: TerrainCollection) -> Dict[str, Any]:
    """Serialize every terrain in the collection into one document."""
    terrains = []
    for terrain_id, terrain in collection.items():
        entry = terrain.to_portable_form()
        entry["id"] = terrain_id
        terrains.append(entry)

    document = {
        "terrains": terrains,
        "flags": {"exportSource": ExportSource.current().model_dump(by_alias=True)},
    }
    logger.info("Exported terrains", count=len(terrains))
    return document


def export_terrain(terrain: Terrain, terrain_id: Optional[int] = None) -> Dict[str, Any]:
    """Serialize a single terrain into a document."""
    document = terrain.to_portable_form()
    if terrain_id is not None:
        document["id"] = terrain_id
    document["flags"] = {"exportSource": ExportSource.current().model_dump(by_alias=True)}
    return document


def save_document(document: Mapping[str, Any], filename: str, directory: Union[str, Path, None] = None) -> Path:
    """Write a document as pretty-printed JSON and return the file path."""
    directory = Path(directory if directory is not None else settings.export_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    with open(path, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=2)
        f.write("\n")
    logger.info("Saved terrain document", path=str(path))
    return path


def read_document(path: Union[str, Path]) -> str:
    """Read a document file as text."""
    with open(path, encoding="utf-8") as f:
        return f.read()


# Import

async def import_additive(collection: TerrainCollection, document: DocumentInput) -> List[int]:
    """
    Add every terrain in the document to the collection as new records.

    Ids in the document are ignored; the collection allocates its own.

    Returns:
        Ids assigned to the imported terrains
    """
    parsed = parse_document(document)
    records = [portable_to_record(entry, collection.module_id) for entry in parsed.terrains]
    if not records:
        logger.info("Nothing to import")
        return []

    ids = await collection.add_records(records)
    logger.info("Imported terrains", count=len(ids), ids=ids)
    return ids


async def replace_all(collection: TerrainCollection, document: DocumentInput) -> List[int]:
    """
    Replace the collection's contents with the document's terrains.

    The document is fully parsed before anything is deleted. The collection's
    id map is swapped only once the new records exist. If creating the new
    records fails after the old ones were deleted, the old records are
    recreated under their previous ids and ``ReplaceError`` is raised.

    Returns:
        Ids of the terrains now in the collection
    """
    parsed = parse_document(document)
    records = [portable_to_record(entry, collection.module_id) for entry in parsed.terrains]

    store = collection.store
    container_ref = collection.container_ref
    previous_refs = store.records(container_ref)
    id_by_ref = {terrain.record_ref: terrain_id for terrain_id, terrain in collection.items()}
    previous = [(id_by_ref.get(ref), store.to_portable(ref)) for ref in previous_refs]

    logger.info("Replacing terrains", previous=len(previous), incoming=len(records))

    await store.delete_many(container_ref, previous_refs)
    try:
        refs = await store.create_many(container_ref, records) if records else []
    except Exception as e:
        logger.error("Terrain replacement failed after deletion", error=str(e))
        restored = await _restore(collection, previous)
        raise ReplaceError(
            "Replacing terrains failed; previous terrains were "
            + ("restored." if restored else "NOT restored."),
            restored=restored,
            cause=e,
        ) from e

    collection.swap_map(collection.build_map(refs))
    logger.info("Replaced terrains", count=len(refs))
    return list(collection.terrain_map)


async def _restore(collection: TerrainCollection, previous: List[tuple]) -> bool:
    snapshots = []
    for _, snapshot in previous:
        snapshot = dict(snapshot)
        snapshot.pop("_id", None)
        snapshots.append(snapshot)

    try:
        refs = await collection.store.create_many(collection.container_ref, snapshots) if snapshots else []
        if all(terrain_id is not None for terrain_id, _ in previous):
            terrain_map = collection.build_map(refs, [terrain_id for terrain_id, _ in previous])
        else:
            terrain_map = collection.build_map(refs)
    except Exception as e:
        logger.error("Restoring terrains failed", error=str(e))
        collection.swap_map(collection.build_map([]))
        return False

    collection.swap_map(terrain_map)
    logger.warning("Restored previous terrains", count=len(refs))
    return True


async def import_terrain(terrain: Terrain, document: DocumentInput, container_ref: Optional[str] = None) -> None:
    """Merge a single-terrain document onto an existing terrain. Its id is left alone."""
    entry = parse_terrain_document(document)
    data = entry.model_dump(by_alias=True, exclude_unset=True, mode="json")
    data.pop("flags", None)
    await terrain.update_from_portable_form(data, container_ref=container_ref)
    logger.info("Imported terrain", record_ref=terrain.record_ref)
