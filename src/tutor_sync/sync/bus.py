"""In-process event channel for sync notifications.

Subscribers register handlers for ``messages_loaded`` and
``messages_saved`` instead of listening on a global event target.
"""

import inspect
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from tutor_sync.core.logging import get_logger
from tutor_sync.sync.models import SyncMessage

logger = get_logger(__name__)

MESSAGES_LOADED = "messages_loaded"
MESSAGES_SAVED = "messages_saved"


@dataclass(frozen=True)
class SyncEvent:
    """Notification published by the orchestrator."""

    name: str
    conversation_id: str
    messages: tuple[SyncMessage, ...] = field(default_factory=tuple)
    source: str | None = None


Handler = Callable[[SyncEvent], Awaitable[None] | None]


class MessageBus:
    """Publish/subscribe registry keyed by event name."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, name: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``name``.

        Returns:
            A callable that removes the subscription.
        """
        self._handlers[name].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[name]:
                self._handlers[name].remove(handler)

        return unsubscribe

    async def publish(self, event: SyncEvent) -> None:
        """Deliver ``event`` to every handler, in subscription order.

        A failing handler is logged and does not stop the others.
        """
        for handler in list(self._handlers.get(event.name, ())):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    "bus_handler_error",
                    event_name=event.name,
                    conversation_id=event.conversation_id,
                    error=str(e),
                )
