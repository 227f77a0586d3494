"""
Configuration for the terrain mapper.

Module settings live in ``module_settings`` and are imported from there
directly, since they depend on the database layer.
"""

from .config import Settings, settings

__all__ = ['Settings', 'settings']
