from pathlib import Path
from dotenv import dotenv_values
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

import os

# Explicitly load .env for local/dev environments only if values are missing from the environment
BASE_DIR = Path(__file__).resolve().parent.parent.parent
env_file = BASE_DIR / ".env"

if env_file.exists():
    file_env = dotenv_values(env_file)
    missing_keys = {k: v for k, v in file_env.items() if k not in os.environ and v is not None}
    for k, v in missing_keys.items():
        os.environ[k] = v


class Settings(BaseSettings):
    """Application settings pulled from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TERRAIN_MAPPER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///./terrain_mapper.db", description="SQLAlchemy database URL"
    )

    # Module identity, stamped into exported documents
    module_id: str = Field(default="terrainmapper", description="Module identifier used for flags and filenames")
    module_version: str = Field(default="0.1.0", description="Module version")
    core_version: str = Field(default="11.315", description="Host core version")
    world_id: str = Field(default="world", description="Identifier of the current world")
    system_id: str = Field(default="generic", description="Identifier of the game system")
    system_version: str = Field(default="1.0.0", description="Version of the game system")

    # Terrain identifier space
    terrain_id_bits: int = Field(default=5, ge=1, le=16, description="Bit width of terrain identifiers")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Export Configuration
    export_dir: str = Field(default="./exports", description="Directory for exported terrain files")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Logging format (json or console)")

    @property
    def max_terrains(self) -> int:
        """Largest terrain id that fits the identifier width. Id 0 is reserved."""
        return 2 ** self.terrain_id_bits - 1


# Instantiate singleton settings object
settings = Settings()
