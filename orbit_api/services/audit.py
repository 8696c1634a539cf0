# orbit_api/services/audit.py
"""Append-only audit trail for tenant data.

Entries are added to the caller's session, so an entry commits or rolls back
together with the change it describes. Recording is skipped entirely when
``FEATURE_AUDIT_LOGS`` is off.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple
from uuid import UUID

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from orbit_api.core.config import settings
from orbit_api.core.logging import get_structlog_logger
from orbit_api.db.base import Base
from orbit_api.models.audit import AuditLog

logger = get_structlog_logger(__name__)

SKIP_FIELDS = frozenset({"updated_at"})

Values = Optional[Dict[str, Any]]


def snapshot(row: Base) -> Dict[str, Any]:
    """JSON-safe column values of a row."""
    return row.to_dict()


def compute_changes(action: str, old: Values, new: Values) -> Tuple[Values, Values, Optional[list]]:
    """Return (old_values, new_values, changed_fields) for an entry.

    Updates keep only the fields whose value changed; an update that changed
    nothing yields three Nones.
    """
    if action == "create":
        return None, new, None
    if action == "delete":
        return old, None, None
    if old is None or new is None:
        return old, new, None

    changed = [k for k in new if k not in SKIP_FIELDS and old.get(k) != new[k]]
    if not changed:
        return None, None, None
    return {k: old.get(k) for k in changed}, {k: new[k] for k in changed}, changed


def _actor_id(actor: Optional[Dict]) -> Optional[UUID]:
    value = (actor or {}).get("id")
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


async def record(
    session: AsyncSession,
    *,
    action: str,
    entity_type: str,
    entity_id: UUID,
    organization_id: UUID,
    actor: Optional[Dict] = None,
    old: Values = None,
    new: Values = None,
    metadata: Values = None,
) -> Optional[AuditLog]:
    if not settings.feature_audit_logs:
        return None

    old_values, new_values, changed_fields = compute_changes(action, old, new)
    if action == "update" and not changed_fields:
        return None

    actor = actor or {}
    entry = AuditLog(
        organization_id=organization_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        user_id=_actor_id(actor),
        user_email=actor.get("email"),
        ip_address=actor.get("ip_address"),
        user_agent=actor.get("user_agent"),
        old_values=old_values,
        new_values=new_values,
        changed_fields=changed_fields,
        extra=metadata,
    )
    session.add(entry)
    return entry


def _org_of(row: Base) -> UUID:
    # An organization row is its own tenant.
    return getattr(row, "organization_id", None) or row.id


async def log_create(
    session: AsyncSession,
    entity_type: str,
    row: Base,
    actor: Optional[Dict] = None,
    metadata: Values = None,
) -> Optional[AuditLog]:
    """Record a create; flushes first so server-side defaults are captured."""
    await session.flush()
    return await record(
        session,
        action="create",
        entity_type=entity_type,
        entity_id=row.id,
        organization_id=_org_of(row),
        actor=actor,
        new=snapshot(row),
        metadata=metadata,
    )


async def log_update(
    session: AsyncSession,
    entity_type: str,
    row: Base,
    before: Dict[str, Any],
    actor: Optional[Dict] = None,
    metadata: Values = None,
) -> Optional[AuditLog]:
    """Record an update against a `snapshot()` taken before the change."""
    return await record(
        session,
        action="update",
        entity_type=entity_type,
        entity_id=row.id,
        organization_id=_org_of(row),
        actor=actor,
        old=before,
        new=snapshot(row),
        metadata=metadata,
    )


async def log_delete(
    session: AsyncSession,
    entity_type: str,
    row: Base,
    actor: Optional[Dict] = None,
    metadata: Values = None,
) -> Optional[AuditLog]:
    return await record(
        session,
        action="delete",
        entity_type=entity_type,
        entity_id=row.id,
        organization_id=_org_of(row),
        actor=actor,
        old=snapshot(row),
        metadata=metadata,
    )


async def purge_audit_logs(
    session: AsyncSession,
    older_than_days: int,
    now: Optional[datetime] = None,
) -> int:
    """Delete entries older than the retention window. The caller commits."""
    cutoff = (now or datetime.utcnow()) - timedelta(days=older_than_days)
    result = await session.execute(delete(AuditLog).where(AuditLog.created_at < cutoff))
    purged = result.rowcount or 0
    logger.info("audit.purged", older_than_days=older_than_days, purged=purged)
    return purged
