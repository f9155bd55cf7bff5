"""
auth/events.py -- Fire-and-forget event emission.

The credential core announces side effects (passcodes to deliver) through
emit(event_type, payload) and never observes what happens next. Delivery
collaborators subscribe with on(event_type, handler).

Handlers run on a single background worker thread, in emission order, after
emit() has already returned. A handler that raises is logged and skipped; the
exception never reaches the emitter or the other handlers.

Usage:
    emitter = EventEmitter()
    emitter.on(PASSCODE_SENT_EVENT, deliver_passcodes)
    emitter.emit(PASSCODE_SENT_EVENT, payload)
    emitter.close()      # drains queued deliveries on shutdown
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from auth.models import PasscodeSent

logger = logging.getLogger("authn.events")

Handler = Callable[[str, Any], None]


class EventEmitter:
    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="authn-events")

    def on(self, event_type: str, handler: Handler) -> None:
        """Subscribe handler(event_type, payload) to event_type."""
        self._handlers[event_type].append(handler)

    def emit(self, event_type: str, payload: Any) -> None:
        """Queue delivery of payload to every handler of event_type and return immediately."""
        handlers = list(self._handlers.get(event_type, ()))
        if not handlers:
            logger.debug("No handlers for %s", event_type)
            return
        self._executor.submit(self._deliver, event_type, payload, handlers)

    def _deliver(self, event_type: str, payload: Any, handlers: list[Handler]) -> None:
        for handler in handlers:
            try:
                handler(event_type, payload)
            except Exception:
                logger.exception("Event handler %r failed for %s", handler, event_type)

    def close(self) -> None:
        """Wait for queued deliveries to finish and stop the worker."""
        self._executor.shutdown(wait=True)


def log_passcode_sent(event_type: str, payload: PasscodeSent) -> None:
    """Stand-in delivery handler: records that passcodes were issued, never their values."""
    logger.info(
        "%s usage=%s contact_point=%s identities=%d",
        event_type,
        payload.usage.value,
        payload.contact_point,
        len(payload.passcodes),
    )
