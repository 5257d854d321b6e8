from __future__ import annotations

import logging
import uuid
from typing import Any

from tenant_billing.context import get_correlation_id
from tenant_billing.platform.clock import utcnow

logger = logging.getLogger("tenant_billing.audit")

audit_entries: list[dict[str, Any]] = []


def _changed_fields(before: dict[str, Any] | None, after: dict[str, Any] | None) -> list[str]:
    if before is None or after is None:
        return sorted((after or before or {}).keys())
    keys = set(before) | set(after)
    return sorted(key for key in keys if before.get(key) != after.get(key))


def record(
    actor_user_id: str,
    tenant_id: str | None,
    entity_type: str,
    entity_id: str,
    action: str,
    before: dict[str, Any] | None,
    after: dict[str, Any] | None,
    correlation_id: str | None = None,
) -> None:
    entry = {
        "id": str(uuid.uuid4()),
        "actor_user_id": actor_user_id,
        "tenant_id": tenant_id,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "action": action,
        "before": before,
        "after": after,
        "changed_fields": _changed_fields(before, after),
        "correlation_id": correlation_id or get_correlation_id(),
        "occurred_at": utcnow().isoformat(),
    }
    audit_entries.append(entry)
    logger.debug(
        "audit.recorded",
        extra={"tenant_id": tenant_id, "entity_type": entity_type, "entity_id": entity_id, "action": action},
    )
