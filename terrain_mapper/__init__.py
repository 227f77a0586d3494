"""
Terrain mapper: terrain definitions with compact integer ids.
"""

__version__ = "0.1.0"
