# orbit_api/routes/markets.py
from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession

from orbit_api.core.exceptions import ConflictError
from orbit_api.core.logging import get_structlog_logger
from orbit_api.db.queries import (
    apply_update,
    ensure_not_referenced,
    get_tenant_row_or_404,
    paginate,
    soft_delete,
    tenant_query,
)
from orbit_api.db.session import get_session
from orbit_api.middleware.auth import WRITE_ROLES, get_current_org_id, get_current_user, require_role
from orbit_api.models.campaign import Campaign
from orbit_api.models.company import Company
from orbit_api.models.market import Market
from orbit_api.schemas.common import PaginatedResponse, PaginationParams
from orbit_api.services import audit
from orbit_api.services.validation import clean_state

logger = get_structlog_logger()

router = APIRouter(prefix="/markets", tags=["markets"])

PE_ACTIVITY_PATTERN = "^(none|low|moderate|high|critical)$"

MARKET_REFERENCES = (
    ("companies", Company, "market_id"),
    ("campaigns", Campaign, "market_id"),
)


class MarketCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, description="Market name, e.g. 'Madison, WI'")
    state: Optional[str] = Field(None, description="State code (2 letters)")
    metro_population: Optional[int] = Field(None, ge=0)
    market_size_estimate: Optional[int] = Field(None, ge=0)
    pe_activity_level: Optional[str] = Field(None, pattern=PE_ACTIVITY_PATTERN)
    notes: Optional[str] = None

    @field_validator("state")
    def validate_state(cls, v):
        return clean_state(v)


class MarketUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    state: Optional[str] = None
    metro_population: Optional[int] = Field(None, ge=0)
    market_size_estimate: Optional[int] = Field(None, ge=0)
    pe_activity_level: Optional[str] = Field(None, pattern=PE_ACTIVITY_PATTERN)
    notes: Optional[str] = None

    @field_validator("state")
    def validate_state(cls, v):
        return clean_state(v)


class MarketResponse(BaseModel):
    id: UUID
    organization_id: UUID
    name: str
    state: Optional[str] = None
    metro_population: Optional[int] = None
    market_size_estimate: Optional[int] = None
    pe_activity_level: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


async def check_market_conflicts(
    session: AsyncSession,
    organization_id: UUID,
    name: str,
    state: Optional[str],
    exclude_id: Optional[UUID] = None,
) -> None:
    stmt = tenant_query(Market, organization_id).where(func.lower(Market.name) == name.lower())
    stmt = stmt.where(Market.state.is_(None) if state is None else Market.state == state)
    if exclude_id:
        stmt = stmt.where(Market.id != exclude_id)

    existing = (await session.execute(stmt)).scalars().first()
    if existing:
        raise ConflictError(
            message=f"Market '{name}' already exists",
            details={"name": name, "state": state, "existing_id": str(existing.id)},
        )


@router.get("", response_model=PaginatedResponse[MarketResponse])
async def list_markets(
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
    pagination: PaginationParams = Depends(),
    state: Optional[str] = Query(None, min_length=2, max_length=2),
    pe_activity_level: Optional[str] = Query(None, pattern=PE_ACTIVITY_PATTERN),
    search: Optional[str] = Query(None, min_length=1, max_length=100),
):
    stmt = tenant_query(Market, organization_id)

    if state:
        stmt = stmt.where(Market.state == state.upper())
    if pe_activity_level:
        stmt = stmt.where(Market.pe_activity_level == pe_activity_level)
    if search:
        stmt = stmt.where(Market.name.ilike(f"%{search}%"))

    items, total = await paginate(session, stmt.order_by(Market.created_at.desc()), pagination)
    return PaginatedResponse[MarketResponse].build(items, total, pagination)


@router.post("", response_model=MarketResponse, status_code=status.HTTP_201_CREATED)
async def create_market(
    market_data: MarketCreate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    await check_market_conflicts(session, organization_id, market_data.name, market_data.state)

    market = Market(organization_id=organization_id, **market_data.model_dump())
    session.add(market)

    try:
        await audit.log_create(session, "market", market, current_user)
        await session.commit()
        await session.refresh(market)

        logger.info("market.created", market_id=str(market.id), name=market.name)
        return market

    except Exception as e:
        await session.rollback()
        logger.error("market.creation_failed", error=str(e))
        raise


@router.get("/{market_id}", response_model=MarketResponse)
async def get_market(
    market_id: UUID,
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
):
    return await get_tenant_row_or_404(session, Market, market_id, organization_id)


@router.patch("/{market_id}", response_model=MarketResponse)
async def update_market(
    market_id: UUID,
    market_data: MarketUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    market = await get_tenant_row_or_404(session, Market, market_id, organization_id)

    update_data = market_data.model_dump(exclude_unset=True)
    if "name" in update_data or "state" in update_data:
        await check_market_conflicts(
            session,
            organization_id,
            update_data.get("name") or market.name,
            update_data.get("state", market.state),
            exclude_id=market.id,
        )

    before = audit.snapshot(market)
    apply_update(market, update_data)
    await audit.log_update(session, "market", market, before, current_user)
    await session.commit()
    await session.refresh(market)

    logger.info("market.updated", market_id=str(market.id), fields=list(update_data.keys()))
    return market


@router.delete("/{market_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_market(
    market_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    market = await get_tenant_row_or_404(session, Market, market_id, organization_id)
    await ensure_not_referenced(session, market, MARKET_REFERENCES)

    soft_delete(market)
    await audit.log_delete(session, "market", market, current_user)
    await session.commit()

    logger.info("market.deleted", market_id=str(market_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
