# orbit_api/routes/companies.py
from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from orbit_api.core.exceptions import ConflictError
from orbit_api.core.logging import get_structlog_logger
from orbit_api.db.queries import (
    apply_update,
    ensure_in_org,
    ensure_not_referenced,
    get_tenant_row_or_404,
    paginate,
    soft_delete,
    tenant_query,
)
from orbit_api.db.session import get_session
from orbit_api.middleware.auth import WRITE_ROLES, get_current_org_id, get_current_user, require_role
from orbit_api.models.asset import Asset
from orbit_api.models.campaign import Campaign
from orbit_api.models.company import COMPANY_STATUSES, OWNERSHIP_TYPES, QUALIFYING_TIERS, Company
from orbit_api.models.contact import Contact
from orbit_api.models.digital_snapshot import DigitalSnapshot
from orbit_api.models.document import GeneratedDocument
from orbit_api.models.market import Market
from orbit_api.models.pe_platform import PEPlatform
from orbit_api.models.vertical import Vertical
from orbit_api.schemas.common import PaginatedResponse, PaginationParams
from orbit_api.services import audit
from orbit_api.services.normalization import extract_domain
from orbit_api.services.validation import clean_choice, clean_phone, clean_state, clean_website, clean_zip

logger = get_structlog_logger()

router = APIRouter(prefix="/companies", tags=["companies"])

COMPANY_REFERENCES = (
    ("contacts", Contact, "company_id"),
    ("campaigns", Campaign, "company_id"),
    ("digital_snapshots", DigitalSnapshot, "company_id"),
    ("assets", Asset, "company_id"),
    ("generated_documents", GeneratedDocument, "company_id"),
)


class CompanyFields(BaseModel):
    market_id: Optional[UUID] = None
    vertical_id: Optional[UUID] = None
    pe_platform_id: Optional[UUID] = None
    website: Optional[str] = Field(None, max_length=500)
    phone: Optional[str] = None
    address_line1: Optional[str] = Field(None, max_length=255)
    address_line2: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=128)
    state: Optional[str] = None
    zip: Optional[str] = None
    estimated_revenue: Optional[int] = Field(None, ge=0)
    employee_count: Optional[int] = Field(None, ge=0)
    year_founded: Optional[int] = Field(None, ge=1800, le=2100)
    qualifying_tier: Optional[str] = None
    manufacturer_affiliations: Optional[str] = None
    certifications: Optional[str] = None
    awards: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("website")
    def validate_website(cls, v):
        return clean_website(v)

    @field_validator("phone")
    def validate_phone(cls, v):
        return clean_phone(v)

    @field_validator("state")
    def validate_state(cls, v):
        return clean_state(v)

    @field_validator("zip")
    def validate_zip(cls, v):
        return clean_zip(v)

    @field_validator("qualifying_tier")
    def validate_tier(cls, v):
        return clean_choice(v, QUALIFYING_TIERS, "qualifying_tier")


class CompanyCreate(CompanyFields):
    name: str = Field(..., min_length=1, max_length=255)
    ownership_type: str = "independent"
    status: str = "prospect"

    @field_validator("ownership_type")
    def validate_ownership(cls, v):
        return clean_choice(v, OWNERSHIP_TYPES, "ownership_type")

    @field_validator("status")
    def validate_status(cls, v):
        return clean_choice(v, COMPANY_STATUSES, "status")


class CompanyUpdate(CompanyFields):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    ownership_type: Optional[str] = None
    status: Optional[str] = None

    @field_validator("ownership_type")
    def validate_ownership(cls, v):
        return clean_choice(v, OWNERSHIP_TYPES, "ownership_type")

    @field_validator("status")
    def validate_status(cls, v):
        return clean_choice(v, COMPANY_STATUSES, "status")


class CompanyResponse(BaseModel):
    id: UUID
    organization_id: UUID
    name: str
    market_id: Optional[UUID] = None
    vertical_id: Optional[UUID] = None
    pe_platform_id: Optional[UUID] = None
    website: Optional[str] = None
    domain: Optional[str] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    estimated_revenue: Optional[int] = None
    employee_count: Optional[int] = None
    year_founded: Optional[int] = None
    ownership_type: str
    qualifying_tier: Optional[str] = None
    status: str
    manufacturer_affiliations: Optional[str] = None
    certifications: Optional[str] = None
    awards: Optional[str] = None
    notes: Optional[str] = None
    readiness_score: Optional[int] = None
    last_researched_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


async def check_company_conflicts(
    session: AsyncSession,
    organization_id: UUID,
    name: Optional[str] = None,
    domain: Optional[str] = None,
    exclude_id: Optional[UUID] = None,
) -> None:
    """Company names and website domains are unique among the tenant's live companies."""
    base = tenant_query(Company, organization_id)
    if exclude_id:
        base = base.where(Company.id != exclude_id)

    if domain:
        existing = (await session.execute(base.where(Company.domain == domain))).scalars().first()
        if existing:
            raise ConflictError(
                message=f"A company with domain '{domain}' already exists ({existing.name})",
                details={"domain": domain, "existing_id": str(existing.id)},
            )

    if name:
        stmt = base.where(func.lower(Company.name) == name.strip().lower())
        existing = (await session.execute(stmt)).scalars().first()
        if existing:
            raise ConflictError(
                message=f"A company named '{name}' already exists",
                details={"name": name, "existing_id": str(existing.id)},
            )


async def check_company_references(session: AsyncSession, organization_id: UUID, values: Dict) -> None:
    await ensure_in_org(session, Market, values.get("market_id"), organization_id)
    await ensure_in_org(session, Vertical, values.get("vertical_id"), organization_id)
    await ensure_in_org(session, PEPlatform, values.get("pe_platform_id"), organization_id, "PE platform")


@router.get("", response_model=PaginatedResponse[CompanyResponse])
async def list_companies(
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
    pagination: PaginationParams = Depends(),
    market_id: Optional[UUID] = Query(None),
    vertical_id: Optional[UUID] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = Query(None, min_length=1, max_length=100),
):
    stmt = tenant_query(Company, organization_id)

    if market_id:
        stmt = stmt.where(Company.market_id == market_id)
    if vertical_id:
        stmt = stmt.where(Company.vertical_id == vertical_id)
    if status_filter:
        stmt = stmt.where(Company.status == status_filter)
    if search:
        search_term = f"%{search}%"
        stmt = stmt.where(
            or_(
                Company.name.ilike(search_term),
                Company.domain.ilike(search_term),
                Company.city.ilike(search_term),
            )
        )

    items, total = await paginate(session, stmt.order_by(Company.created_at.desc()), pagination)
    return PaginatedResponse[CompanyResponse].build(items, total, pagination)


@router.post("", response_model=CompanyResponse, status_code=status.HTTP_201_CREATED)
async def create_company(
    company_data: CompanyCreate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)

    values = company_data.model_dump()
    values["domain"] = extract_domain(values.get("website"))

    await check_company_references(session, organization_id, values)
    await check_company_conflicts(session, organization_id, name=values["name"], domain=values["domain"])

    company = Company(organization_id=organization_id, **values)
    session.add(company)

    try:
        await audit.log_create(session, "company", company, current_user)
        await session.commit()
        await session.refresh(company)

        logger.info(
            "company.created",
            company_id=str(company.id),
            name=company.name,
            domain=company.domain,
            user_id=current_user.get("id"),
        )
        return company

    except Exception as e:
        await session.rollback()
        logger.error("company.creation_failed", error=str(e))
        raise


@router.get("/{company_id}", response_model=CompanyResponse)
async def get_company(
    company_id: UUID,
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
):
    return await get_tenant_row_or_404(session, Company, company_id, organization_id)


@router.patch("/{company_id}", response_model=CompanyResponse)
async def update_company(
    company_id: UUID,
    company_data: CompanyUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    company = await get_tenant_row_or_404(session, Company, company_id, organization_id)

    update_data = company_data.model_dump(exclude_unset=True)
    if "website" in update_data:
        update_data["domain"] = extract_domain(update_data["website"])

    await check_company_references(session, organization_id, update_data)

    new_name = update_data.get("name")
    new_domain = update_data.get("domain")
    await check_company_conflicts(
        session,
        organization_id,
        name=new_name if new_name and new_name.lower() != company.name.lower() else None,
        domain=new_domain if new_domain and new_domain != company.domain else None,
        exclude_id=company.id,
    )

    before = audit.snapshot(company)
    apply_update(company, update_data)
    await audit.log_update(session, "company", company, before, current_user)

    try:
        await session.commit()
        await session.refresh(company)

        logger.info("company.updated", company_id=str(company.id), fields=list(update_data.keys()))
        return company

    except Exception as e:
        await session.rollback()
        logger.error("company.update_failed", company_id=str(company_id), error=str(e))
        raise


@router.delete("/{company_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_company(
    company_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    company = await get_tenant_row_or_404(session, Company, company_id, organization_id)
    await ensure_not_referenced(session, company, COMPANY_REFERENCES)

    soft_delete(company)
    await audit.log_delete(session, "company", company, current_user)
    await session.commit()

    logger.info("company.deleted", company_id=str(company_id), user_id=current_user.get("id"))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
