"""Database connection utilities."""

from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
import structlog
from contextlib import contextmanager

from ..config.config import settings
from .models import Base

logger = structlog.get_logger()


class Database:
    """Database connection manager."""

    def __init__(self):
        self.engine = None
        self.SessionLocal = None

    @property
    def initialized(self) -> bool:
        return self.SessionLocal is not None

    def initialize(self, url: Optional[str] = None):
        """Initialize database connection."""
        url = url or settings.database_url
        logger.info("Initializing database connection", url=url)

        engine_args = {"echo": False}  # Set echo to True for SQL debugging
        if url.startswith("sqlite"):
            # Share one connection so in-memory databases survive across sessions
            engine_args.update(poolclass=StaticPool, connect_args={"check_same_thread": False})

        # Create engine
        self.engine = create_engine(url, **engine_args)

        # Create session factory
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine
        )

        # Create tables
        self.create_tables()

        logger.info("Database connection initialized")

    def create_tables(self):
        """Create all tables."""
        try:
            Base.metadata.create_all(bind=self.engine)
            logger.info("Database tables created")

        except Exception as e:
            logger.error("Failed to create tables", error=str(e))
            raise

    def dispose(self):
        """Close every pooled connection."""
        if self.engine is not None:
            self.engine.dispose()
        self.engine = None
        self.SessionLocal = None

    @contextmanager
    def get_session(self):
        """Get database session with automatic cleanup."""
        if not self.SessionLocal:
            raise RuntimeError("Database not initialized. Call initialize() first.")

        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


# Global database instance
db = Database()
