# orbit_api/db/queries.py
"""Query helpers shared by the tenant-scoped routes."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Type, TypeVar
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from orbit_api.core.exceptions import BadRequestError, ConflictError, NotFoundError
from orbit_api.db.base import Base
from orbit_api.schemas.common import PaginationParams

ModelT = TypeVar("ModelT", bound=Base)

# Fields a client may never write through a PATCH body.
PROTECTED_FIELDS = ("id", "organization_id", "created_at", "updated_at", "deleted_at")


def _label(model: Type[Base]) -> str:
    return model.__name__


def live(model: Type[ModelT]) -> Select:
    """Select rows of `model` that are not soft deleted."""
    stmt = select(model)
    if hasattr(model, "deleted_at"):
        stmt = stmt.where(model.deleted_at.is_(None))
    return stmt


def tenant_query(model: Type[ModelT], organization_id: UUID) -> Select:
    return live(model).where(model.organization_id == organization_id)


async def get_tenant_row_or_404(
    session: AsyncSession,
    model: Type[ModelT],
    row_id: UUID,
    organization_id: UUID,
    label: Optional[str] = None,
) -> ModelT:
    """Fetch a live row owned by the tenant; rows of other tenants look missing."""
    stmt = tenant_query(model, organization_id).where(model.id == row_id)
    row = (await session.execute(stmt)).scalar_one_or_none()

    if row is None:
        name = label or _label(model)
        raise NotFoundError(
            message=f"{name} not found",
            details={"id": str(row_id), "resource": name.lower()},
        )
    return row


async def ensure_in_org(
    session: AsyncSession,
    model: Type[Base],
    row_id: Optional[UUID],
    organization_id: UUID,
    label: Optional[str] = None,
) -> None:
    """Raise NotFoundError unless `row_id` is empty or a live row of the tenant."""
    if row_id is None:
        return
    await get_tenant_row_or_404(session, model, row_id, organization_id, label)


async def paginate(
    session: AsyncSession,
    stmt: Select,
    pagination: PaginationParams,
) -> Tuple[List[Any], int]:
    total_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = (await session.execute(total_stmt)).scalar() or 0

    result = await session.execute(stmt.offset(pagination.skip).limit(pagination.limit))
    return list(result.scalars().all()), total


async def count_live_references(
    session: AsyncSession,
    row_id: UUID,
    references: Iterable[Tuple[str, Type[Base], str]],
) -> Dict[str, int]:
    """Count live child rows per (label, model, fk column) that point at `row_id`."""
    counts: Dict[str, int] = {}
    for label, model, column in references:
        stmt = select(func.count()).select_from(model).where(getattr(model, column) == row_id)
        if hasattr(model, "deleted_at"):
            stmt = stmt.where(model.deleted_at.is_(None))
        count = (await session.execute(stmt)).scalar() or 0
        if count:
            counts[label] = count
    return counts


async def ensure_not_referenced(
    session: AsyncSession,
    row: Base,
    references: Sequence[Tuple[str, Type[Base], str]],
    label: Optional[str] = None,
) -> None:
    counts = await count_live_references(session, row.id, references)
    if counts:
        name = label or _label(type(row))
        summary = ", ".join(f"{count} {what}" for what, count in counts.items())
        raise ConflictError(
            message=f"Cannot delete {name.lower()}: still referenced by {summary}",
            code="RESOURCE_IN_USE",
            details={"references": counts},
        )


def apply_update(row: Base, values: Dict[str, Any]) -> Dict[str, Any]:
    """Apply a partial update, refusing empty bodies and protected fields."""
    changes = {key: value for key, value in values.items() if key not in PROTECTED_FIELDS}
    if not changes:
        raise BadRequestError(message="No fields to update")
    row.update(**changes)
    return changes


def soft_delete(row: Base) -> None:
    row.deleted_at = datetime.utcnow()
