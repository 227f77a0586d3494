"""FastAPI main application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
import structlog

from ..bootstrap import Bootstrap
from ..config.config import settings
from ..core.collection import TerrainCollection
from ..db.connection import db
from . import terrains

logger = structlog.get_logger()

runtime = Bootstrap(database=db)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the initialization sequence on startup."""
    logger.info("Starting Terrain Mapper API")
    await runtime.run()
    logger.info("API startup complete")
    yield
    logger.info("Shutting down Terrain Mapper API")


# Initialize FastAPI app
app = FastAPI(
    title="Terrain Mapper API",
    description="Terrain definitions with compact ids, elevation bands and import/export",
    version=settings.module_version,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_collection() -> TerrainCollection:
    """Loaded terrain collection."""
    if runtime.collection is None:
        raise HTTPException(status_code=503, detail="Terrains not loaded")
    return runtime.collection


app.dependency_overrides[terrains.get_collection] = get_collection
app.include_router(terrains.router)


# API endpoints
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Terrain Mapper API",
        "version": settings.module_version,
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    try:
        # Test database connection
        with db.get_session() as session:
            session.execute(text("SELECT 1"))

        return {"status": "healthy", "database": "connected", "terrains": len(get_collection())}
    except Exception as e:
        logger.error("Health check failed", error=str(e))
        raise HTTPException(status_code=503, detail="Service unhealthy")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
