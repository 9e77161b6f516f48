from __future__ import annotations

from collections import deque
from datetime import datetime, timezone
from typing import Any

from app.context import get_correlation_id
from app.core.config import get_settings
from app.core.events import event_bus


def _new_buffer() -> deque[dict[str, Any]]:
    return deque(maxlen=get_settings().event_buffer_size)


# Most recent envelopes only; subscribers on ``event_bus`` see every one.
published_events: deque[dict[str, Any]] = _new_buffer()


def reset_buffer() -> None:
    global published_events
    published_events = _new_buffer()


def publish(envelope: dict[str, Any]) -> None:
    if envelope.get("correlation_id") is None:
        envelope["correlation_id"] = get_correlation_id()
    envelope.setdefault("occurred_at", datetime.now(timezone.utc).isoformat())

    published_events.append(envelope)
    event_type = envelope.get("event_type")
    if isinstance(event_type, str) and event_type:
        event_bus.publish(event_type, envelope)
