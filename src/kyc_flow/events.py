"""
Event channel between the flow and its callers.

Handlers are registered per event name and may be plain functions or
coroutines. A failing handler is logged and never breaks the flow.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

STEP_CHANGED = "step_changed"
PROGRESS_UPDATED = "progress_updated"
VERIFICATION_COMPLETE = "verification_complete"
ERROR = "error"

EVENTS = (STEP_CHANGED, PROGRESS_UPDATED, VERIFICATION_COMPLETE, ERROR)


class EventBus:
    """Listener registry the flow publishes to"""

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {}

    def on(self, event: str, handler: Callable) -> None:
        """Register event handler"""
        if event not in EVENTS:
            raise ValueError(f"Unknown event: {event}")
        self._handlers.setdefault(event, []).append(handler)

    def off(self, event: str, handler: Callable) -> None:
        """Remove a previously registered handler"""
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def has_handlers(self, event: str) -> bool:
        return bool(self._handlers.get(event))

    async def emit(self, event: str, *args: Any) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                if asyncio.iscoroutinefunction(handler):
                    await handler(*args)
                else:
                    handler(*args)
            except Exception as e:
                logger.error(f"Event handler error ({event}): {e}")


class ErrorSink:
    """
    Destination for errors raised by navigation-style operations.

    Errors go to the registered "error" handlers; with none registered they
    are dropped after a log line at ``drop_level``.
    """

    def __init__(self, bus: EventBus, drop_level: int = logging.DEBUG):
        self._bus = bus
        self.drop_level = drop_level

    async def report(self, error: BaseException) -> None:
        if self._bus.has_handlers(ERROR):
            await self._bus.emit(ERROR, error)
        else:
            logger.log(self.drop_level, f"KYC flow error: {error}")
