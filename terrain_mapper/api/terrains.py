"""
Terrain endpoints.

Exposes the terrain identifier map (allocate, explicit assignment, release,
reset) and collection import/export/replace over HTTP.
"""

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
import structlog

from ..core.attributes import AnchorMode
from ..core.collection import TerrainCollection
from ..core.errors import (
    InvalidDocumentError,
    InvalidIdentifierError,
    MissingUploadError,
    OccupiedIdentifierError,
    PersistenceError,
)
from ..core.terrain import Terrain, TerrainConfig
from ..core import transfer

logger = structlog.get_logger()

# Create router for terrain endpoints
router = APIRouter(prefix="/terrains", tags=["Terrains"])


def get_collection() -> TerrainCollection:
    """Dependency returning the loaded terrain collection. Replaced by the app."""
    raise HTTPException(status_code=503, detail="Terrains not loaded")


# Pydantic models for terrain operations
class TerrainCreate(TerrainConfig):
    """Request to create a terrain."""

    id: Optional[int] = Field(default=None, description="Explicit terrain id; next free id when omitted")
    override: bool = Field(default=False, description="Replace a terrain already using the id")


class TerrainUpdate(BaseModel):
    """Partial terrain update."""

    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    anchor: Optional[AnchorMode] = None
    offset: Optional[float] = None
    range_above: Optional[float] = Field(default=None, alias="rangeAbove")
    range_below: Optional[float] = Field(default=None, alias="rangeBelow")
    user_visible: Optional[bool] = Field(default=None, alias="userVisible")


class TerrainResponse(TerrainConfig):
    """Terrain with its id and backing record."""

    id: int
    record_ref: str


class ElevationBand(BaseModel):
    """Elevation band of a terrain for an anchor elevation."""

    min: float
    max: float


class ImportResponse(BaseModel):
    """Ids of the terrains created by an import."""

    ids: List[int]
    count: int


def _terrain_response(terrain_id: int, terrain: Terrain) -> TerrainResponse:
    data = terrain.config.model_dump()
    return TerrainResponse(id=terrain_id, record_ref=terrain.record_ref, **data)


def _get_terrain(collection: TerrainCollection, terrain_id: int) -> Terrain:
    terrain = collection.get(terrain_id)
    if terrain is None:
        raise HTTPException(status_code=404, detail="Terrain not found")
    return terrain


def _http_error(error: Exception, operation: str) -> HTTPException:
    if isinstance(error, (InvalidIdentifierError, OccupiedIdentifierError, InvalidDocumentError,
                          MissingUploadError, TypeError, ValueError)):
        logger.warning("Terrain request rejected", operation=operation, error=str(error))
        return HTTPException(status_code=400, detail=str(error))
    logger.error("Terrain operation failed", operation=operation, error=str(error))
    return HTTPException(status_code=500, detail=str(error))


def _download(document: Dict[str, Any], filename: str) -> JSONResponse:
    return JSONResponse(
        content=document,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# Collection endpoints

@router.get("", response_model=List[TerrainResponse])
async def list_terrains(collection: TerrainCollection = Depends(get_collection)):
    """List all terrains ordered by id."""
    return [_terrain_response(terrain_id, terrain) for terrain_id, terrain in collection.items()]


@router.post("", response_model=TerrainResponse, status_code=201)
async def create_terrain(request: TerrainCreate, collection: TerrainCollection = Depends(get_collection)):
    """Create a terrain under the next free id, or under an explicit id."""
    config = TerrainConfig.model_validate(request.model_dump(exclude={"id", "override"}))
    try:
        terrain_id = await collection.create(config, terrain_id=request.id, override=request.override)
    except (InvalidIdentifierError, OccupiedIdentifierError, PersistenceError) as e:
        raise _http_error(e, "create")
    return _terrain_response(terrain_id, collection.get(terrain_id))


@router.get("/export")
async def export_terrains(collection: TerrainCollection = Depends(get_collection)):
    """Download every terrain as one document."""
    try:
        document = transfer.export_all(collection)
    except PersistenceError as e:
        raise _http_error(e, "export")
    return _download(document, transfer.export_filename())


@router.post("/import", response_model=ImportResponse)
async def import_terrains(
    document: Optional[Dict[str, Any]] = Body(default=None),
    collection: TerrainCollection = Depends(get_collection),
):
    """Add the terrains in a document to the existing terrains."""
    try:
        ids = await transfer.import_additive(collection, document)
    except (MissingUploadError, InvalidDocumentError, PersistenceError) as e:
        raise _http_error(e, "import")
    return ImportResponse(ids=ids, count=len(ids))


@router.post("/replace", response_model=ImportResponse)
async def replace_terrains(
    document: Optional[Dict[str, Any]] = Body(default=None),
    collection: TerrainCollection = Depends(get_collection),
):
    """Replace all terrains with the terrains in a document. Cannot be undone."""
    try:
        ids = await transfer.replace_all(collection, document)
    except (MissingUploadError, InvalidDocumentError, PersistenceError) as e:
        raise _http_error(e, "replace")
    return ImportResponse(ids=ids, count=len(ids))


@router.post("/reset", response_model=List[TerrainResponse])
async def reset_terrain_ids(collection: TerrainCollection = Depends(get_collection)):
    """Clear the id map and reassign compact ids to the stored terrains."""
    collection.terrain_map.reset()
    collection.load()
    return [_terrain_response(terrain_id, terrain) for terrain_id, terrain in collection.items()]


# Single terrain endpoints

@router.get("/{terrain_id}", response_model=TerrainResponse)
async def get_terrain(terrain_id: int, collection: TerrainCollection = Depends(get_collection)):
    return _terrain_response(terrain_id, _get_terrain(collection, terrain_id))


@router.patch("/{terrain_id}", response_model=TerrainResponse)
async def update_terrain(
    terrain_id: int,
    request: TerrainUpdate,
    collection: TerrainCollection = Depends(get_collection),
):
    """Update some attributes of a terrain."""
    terrain = _get_terrain(collection, terrain_id)
    values = request.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)
    try:
        await terrain.update(values)
    except (TypeError, ValueError, PersistenceError) as e:
        raise _http_error(e, "update")
    return _terrain_response(terrain_id, terrain)


@router.delete("/{terrain_id}")
async def delete_terrain(terrain_id: int, collection: TerrainCollection = Depends(get_collection)):
    """Delete a terrain and release its id."""
    _get_terrain(collection, terrain_id)
    try:
        await collection.delete(terrain_id)
    except PersistenceError as e:
        raise _http_error(e, "delete")
    return {"deleted": terrain_id, "next_id": collection.terrain_map.next_id}


@router.get("/{terrain_id}/elevation", response_model=ElevationBand)
async def get_elevation_band(
    terrain_id: int,
    anchor: float = 0.0,
    collection: TerrainCollection = Depends(get_collection),
):
    """Elevation band of a terrain for an anchor elevation resolved by the caller."""
    terrain = _get_terrain(collection, terrain_id)
    return ElevationBand(**terrain.elevation_min_max(anchor))


@router.get("/{terrain_id}/export")
async def export_terrain(terrain_id: int, collection: TerrainCollection = Depends(get_collection)):
    """Download a single terrain as a document."""
    terrain = _get_terrain(collection, terrain_id)
    document = transfer.export_terrain(terrain, terrain_id)
    return _download(document, transfer.export_filename(terrain.name))


@router.post("/{terrain_id}/import", response_model=TerrainResponse)
async def import_terrain(
    terrain_id: int,
    document: Optional[Dict[str, Any]] = Body(default=None),
    collection: TerrainCollection = Depends(get_collection),
):
    """Update a terrain from a single-terrain document. Cannot be undone."""
    terrain = _get_terrain(collection, terrain_id)
    try:
        await transfer.import_terrain(terrain, document)
    except (MissingUploadError, InvalidDocumentError, TypeError, ValueError, PersistenceError) as e:
        raise _http_error(e, "import_terrain")
    return _terrain_response(terrain_id, terrain)
