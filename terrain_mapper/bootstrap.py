"""
Initialization sequence.

Startup runs four phases in a fixed order:

1. patch - configure logging
2. register_config - load settings and open the database
3. register_settings - register module settings
4. load_persistent_item - make sure the terrains container exists and load
   its terrains
"""

from enum import Enum
from typing import List, Optional

import structlog

from .config.config import Settings, settings as default_settings
from .config.module_settings import ModuleSettings
from .core.collection import TerrainCollection
from .db.connection import Database, db
from .db.store import DatabaseAttributeStore
from .utils.logging import configure_logging

logger = structlog.get_logger()


class Phase(str, Enum):
    """Initialization phases, in the order they run."""

    PATCH = "patch"
    REGISTER_CONFIG = "register_config"
    REGISTER_SETTINGS = "register_settings"
    LOAD_PERSISTENT_ITEM = "load_persistent_item"


PHASES = list(Phase)


class Bootstrap:
    """Runs the initialization phases and holds what they produce."""

    def __init__(self, config: Optional[Settings] = None, database: Optional[Database] = None,
                 configure_logs: bool = True):
        self.config = config
        self.database = database or db
        self.configure_logs = configure_logs
        self.module_settings: Optional[ModuleSettings] = None
        self.store: Optional[DatabaseAttributeStore] = None
        self.collection: Optional[TerrainCollection] = None
        self.completed: List[Phase] = []

    @property
    def done(self) -> bool:
        return len(self.completed) == len(PHASES)

    def _enter(self, phase: Phase) -> None:
        if phase in self.completed:
            raise RuntimeError(f"Phase {phase.value} already ran.")
        expected = PHASES[len(self.completed)]
        if phase is not expected:
            raise RuntimeError(f"Phase {phase.value} cannot run before {expected.value}.")
        logger.debug("Entering initialization phase", phase=phase.value)

    def _finish(self, phase: Phase) -> None:
        self.completed.append(phase)
        logger.info("Initialization phase complete", phase=phase.value)

    def patch(self) -> None:
        self._enter(Phase.PATCH)
        if self.configure_logs:
            source = self.config or default_settings
            configure_logging(source.log_level, source.log_format)
        self._finish(Phase.PATCH)

    def register_config(self) -> None:
        self._enter(Phase.REGISTER_CONFIG)
        if self.config is None:
            self.config = default_settings
        if not self.database.initialized:
            self.database.initialize(self.config.database_url)
        self.store = DatabaseAttributeStore(self.database)
        self._finish(Phase.REGISTER_CONFIG)

    def register_settings(self) -> None:
        self._enter(Phase.REGISTER_SETTINGS)
        self.module_settings = ModuleSettings(self.database)
        self.module_settings.register_all()
        self._finish(Phase.REGISTER_SETTINGS)

    async def load_persistent_item(self) -> None:
        self._enter(Phase.LOAD_PERSISTENT_ITEM)
        container_ref = await self.module_settings.initialize_terrains_item(self.store)
        self.collection = TerrainCollection(
            self.store,
            container_ref,
            max_terrains=self.config.max_terrains,
            module_id=self.config.module_id,
        ).load()
        self._finish(Phase.LOAD_PERSISTENT_ITEM)

    async def run(self) -> TerrainCollection:
        """Run every phase that has not run yet and return the loaded collection."""
        if self.done:
            return self.collection

        steps = {
            Phase.PATCH: self.patch,
            Phase.REGISTER_CONFIG: self.register_config,
            Phase.REGISTER_SETTINGS: self.register_settings,
        }
        for phase in PHASES[len(self.completed):]:
            if phase is Phase.LOAD_PERSISTENT_ITEM:
                await self.load_persistent_item()
            else:
                steps[phase]()

        logger.info("Terrain mapper ready", terrains=len(self.collection))
        return self.collection
