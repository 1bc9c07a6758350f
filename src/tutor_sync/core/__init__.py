"""Core utilities for tutor-sync"""

from tutor_sync.core.config import settings
from tutor_sync.core.logging import configure_logging

__all__ = ["settings", "configure_logging"]
