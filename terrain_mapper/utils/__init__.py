"""
Shared utilities.
"""

from .logging import configure_logging
from .tasks import drain_pending, fire_and_forget

__all__ = ['configure_logging', 'drain_pending', 'fire_and_forget']
