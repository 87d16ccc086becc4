"""Audit log for critical actions."""

from typing import Any

from app.models.audit_log import AuditLog


async def log_event(
    user_id: str | None,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    new_values: dict[str, Any] | None = None,
    old_values: dict[str, Any] | None = None,
) -> AuditLog:
    """Append to audit_logs collection."""
    entry = AuditLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        old_values=old_values or {},
        new_values=new_values or {},
    )
    await entry.insert()
    return entry
