"""Shared service instances for the HTTP layer."""

import threading

from tutor_sync.core.config import get_settings
from tutor_sync.core.logging import get_logger
from tutor_sync.sync import (
    RetryPolicy,
    SQLMessageStore,
    SyncOrchestrator,
    create_cache,
)

logger = get_logger(__name__)

# Global orchestrator instance (lazy loaded, thread-safe)
_orchestrator: SyncOrchestrator | None = None
_orchestrator_lock = threading.Lock()


def build_orchestrator() -> SyncOrchestrator:
    """Create an orchestrator from the current settings."""
    settings = get_settings()
    policy = RetryPolicy(
        max_attempts=settings.retry_max_attempts,
        base_delay=settings.retry_base_delay,
        multiplier=settings.retry_multiplier,
    )
    logger.info(
        "initializing_orchestrator",
        cache_dir=str(settings.cache_dir) if settings.cache_dir else "memory",
        retry_max_attempts=policy.max_attempts,
        retry_base_delay=policy.base_delay,
    )
    return SyncOrchestrator(
        store=SQLMessageStore(),
        cache=create_cache(settings.cache_dir),
        retry_policy=policy,
    )


def get_orchestrator() -> SyncOrchestrator:
    """Get or create the global orchestrator instance (thread-safe)."""
    global _orchestrator
    if _orchestrator is None:
        with _orchestrator_lock:
            # Double-check locking pattern
            if _orchestrator is None:
                _orchestrator = build_orchestrator()
    return _orchestrator


def reset_orchestrator() -> None:
    """Drop the global instance so the next request builds a fresh one."""
    global _orchestrator
    with _orchestrator_lock:
        _orchestrator = None
