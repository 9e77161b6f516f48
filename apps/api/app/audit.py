"""In-process audit trail for quote mutations.

Entries live in a ring buffer of ``audit_buffer_size`` items; once it is
full the oldest entry is dropped on every append.
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any

from app.context import get_correlation_id
from app.core.config import get_settings

logger = logging.getLogger("app.audit")

AuditEntry = dict[str, Any]


def _new_buffer() -> deque[AuditEntry]:
    return deque(maxlen=get_settings().audit_buffer_size)


audit_entries: deque[AuditEntry] = _new_buffer()


def reset_buffer() -> None:
    """Drop every entry and resize the buffer from the current settings."""

    global audit_entries
    audit_entries = _new_buffer()


def record(
    actor_user_id: str,
    entity_type: str,
    entity_id: str,
    action: str,
    before: dict[str, Any] | None,
    after: dict[str, Any] | None,
    correlation_id: str | None = None,
) -> AuditEntry:
    entry: AuditEntry = {
        "id": str(uuid.uuid4()),
        "actor_user_id": actor_user_id,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "action": action,
        "before": before,
        "after": after,
        "correlation_id": correlation_id or get_correlation_id(),
        "occurred_at": datetime.now(timezone.utc).isoformat(),
    }
    audit_entries.append(entry)
    logger.debug("audit.recorded", extra={"entity_type": entity_type, "entity_id": entity_id, "action": action})
    return entry
