"""Lifecycle notifications emitted by the relay client."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class EnvelopingEvent(str, Enum):
    INIT = "init"
    REFRESH_RELAYS = "refresh-relays"
    REFRESHED_RELAYS = "refreshed-relays"
    NEXT_RELAY = "next-relay"
    SIGN_REQUEST = "sign-request"
    VALIDATE_REQUEST = "validate-request"
    SEND_TO_RELAYER = "send-to-relayer"
    RELAYER_RESPONSE = "relayer-response"


EventListener = Callable[..., None]


class EnvelopingEventEmitter:
    """Call registered listeners with ``(event, *args)`` in registration order."""

    def __init__(self) -> None:
        self._listeners: list[EventListener] = []

    def register_event_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def unregister_event_listener(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, event: EnvelopingEvent, *args: Any) -> bool:
        logger.debug("Enveloping event %s", event.value)
        for listener in list(self._listeners):
            listener(event, *args)
        return bool(self._listeners)
