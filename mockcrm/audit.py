from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any

from mockcrm.context import get_correlation_id

logger = logging.getLogger("mockcrm.audit")

# Recent entries only; the mockcrm.audit log line is the durable trail.
AUDIT_BUFFER_SIZE = 1000
audit_entries: deque[dict[str, Any]] = deque(maxlen=AUDIT_BUFFER_SIZE)


def record(
    *,
    actor_user_id: int | None,
    account_id: int,
    entity_type: str,
    entity_id: int | str,
    action: str,
    before: dict[str, Any] | None = None,
    after: dict[str, Any] | None = None,
) -> None:
    entry = {
        "actor_user_id": actor_user_id,
        "account_id": account_id,
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "action": action,
        "before": before,
        "after": after,
        "correlation_id": get_correlation_id(),
        "occurred_at": datetime.now(timezone.utc).isoformat(),
    }
    audit_entries.append(entry)
    logger.info(
        f"{entity_type}.{action}",
        extra={"account_id": account_id, "user_id": actor_user_id, "resource": entity_type, "resource_id": entry["entity_id"]},
    )
