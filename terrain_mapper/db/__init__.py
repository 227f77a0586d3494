"""
Database utilities and models.

This package provides:
- SQLAlchemy models for terrain containers, records and module settings
- Database connection management
- The database-backed attribute store
"""

from .connection import Database, db
from .models import Base, ModuleSetting, TerrainEffect, TerrainItem
from .store import DatabaseAttributeStore

__all__ = [
    # Connection management
    'Database', 'db',

    # Attribute store
    'DatabaseAttributeStore',

    # Models
    'Base', 'ModuleSetting', 'TerrainEffect', 'TerrainItem'
]
