# orbit_api/routes/activities.py
from __future__ import annotations

from datetime import date, datetime
from typing import Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from orbit_api.core.logging import get_structlog_logger
from orbit_api.db.queries import (
    apply_update,
    ensure_in_org,
    get_tenant_row_or_404,
    paginate,
    soft_delete,
    tenant_query,
)
from orbit_api.db.session import get_session
from orbit_api.middleware.auth import WRITE_ROLES, get_current_org_id, get_current_user, require_role
from orbit_api.models.activity import (
    ACTIVITY_OUTCOMES,
    ACTIVITY_STATUSES,
    ACTIVITY_TYPES,
    RESULT_TYPES,
    Activity,
    Result,
)
from orbit_api.models.campaign import Campaign
from orbit_api.models.contact import Contact
from orbit_api.models.playbook import CHANNELS, PlaybookStep
from orbit_api.schemas.common import PaginatedResponse, PaginationParams
from orbit_api.services import audit
from orbit_api.services.validation import clean_choice

logger = get_structlog_logger()

router = APIRouter(tags=["activities"])


class ActivityFields(BaseModel):
    campaign_id: Optional[UUID] = None
    playbook_step_id: Optional[UUID] = None
    contact_id: Optional[UUID] = None
    channel: Optional[str] = None
    scheduled_date: Optional[date] = None
    completed_date: Optional[date] = None
    outcome: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("channel")
    def validate_channel(cls, v):
        return clean_choice(v, CHANNELS, "channel")

    @field_validator("outcome")
    def validate_outcome(cls, v):
        return clean_choice(v, ACTIVITY_OUTCOMES, "outcome")


class ActivityCreate(ActivityFields):
    activity_type: str
    status: str = "scheduled"

    @field_validator("activity_type")
    def validate_activity_type(cls, v):
        return clean_choice(v, ACTIVITY_TYPES, "activity_type")

    @field_validator("status")
    def validate_status(cls, v):
        return clean_choice(v, ACTIVITY_STATUSES, "status")


class ActivityUpdate(ActivityFields):
    activity_type: Optional[str] = None
    status: Optional[str] = None

    @field_validator("activity_type")
    def validate_activity_type(cls, v):
        return clean_choice(v, ACTIVITY_TYPES, "activity_type")

    @field_validator("status")
    def validate_status(cls, v):
        return clean_choice(v, ACTIVITY_STATUSES, "status")


class ActivityResponse(BaseModel):
    id: UUID
    organization_id: UUID
    campaign_id: Optional[UUID] = None
    playbook_step_id: Optional[UUID] = None
    contact_id: Optional[UUID] = None
    activity_type: str
    channel: Optional[str] = None
    scheduled_date: Optional[date] = None
    completed_date: Optional[date] = None
    status: str
    outcome: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ResultCreate(BaseModel):
    campaign_id: UUID
    result_type: str
    result_date: date
    contract_value_monthly: Optional[float] = Field(None, ge=0)
    contract_term_months: Optional[int] = Field(None, ge=0)
    total_contract_value: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None

    @field_validator("result_type")
    def validate_result_type(cls, v):
        return clean_choice(v, RESULT_TYPES, "result_type")


class ResultUpdate(BaseModel):
    result_type: Optional[str] = None
    result_date: Optional[date] = None
    contract_value_monthly: Optional[float] = Field(None, ge=0)
    contract_term_months: Optional[int] = Field(None, ge=0)
    total_contract_value: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None

    @field_validator("result_type")
    def validate_result_type(cls, v):
        return clean_choice(v, RESULT_TYPES, "result_type")


class ResultResponse(BaseModel):
    id: UUID
    organization_id: UUID
    campaign_id: UUID
    result_type: str
    result_date: date
    contract_value_monthly: Optional[float] = None
    contract_term_months: Optional[int] = None
    total_contract_value: Optional[float] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


async def check_activity_references(session: AsyncSession, organization_id: UUID, values: Dict) -> None:
    await ensure_in_org(session, Campaign, values.get("campaign_id"), organization_id)
    await ensure_in_org(session, Contact, values.get("contact_id"), organization_id)
    await ensure_in_org(session, PlaybookStep, values.get("playbook_step_id"), organization_id, "Playbook step")


def fill_contract_value(values: Dict) -> Dict:
    """Derive the total from monthly value and term when the caller did not send one."""
    if values.get("total_contract_value") is None:
        monthly = values.get("contract_value_monthly")
        term = values.get("contract_term_months")
        if monthly is not None and term is not None:
            values["total_contract_value"] = monthly * term
    return values


# Activities
@router.get("/activities", response_model=PaginatedResponse[ActivityResponse])
async def list_activities(
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
    pagination: PaginationParams = Depends(),
    campaign_id: Optional[UUID] = Query(None),
    contact_id: Optional[UUID] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    activity_type: Optional[str] = Query(None),
):
    stmt = tenant_query(Activity, organization_id)

    if campaign_id:
        stmt = stmt.where(Activity.campaign_id == campaign_id)
    if contact_id:
        stmt = stmt.where(Activity.contact_id == contact_id)
    if status_filter:
        stmt = stmt.where(Activity.status == status_filter)
    if activity_type:
        stmt = stmt.where(Activity.activity_type == activity_type)

    items, total = await paginate(session, stmt.order_by(Activity.created_at.desc()), pagination)
    return PaginatedResponse[ActivityResponse].build(items, total, pagination)


@router.post("/activities", response_model=ActivityResponse, status_code=status.HTTP_201_CREATED)
async def create_activity(
    activity_data: ActivityCreate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)

    values = activity_data.model_dump()
    await check_activity_references(session, organization_id, values)

    activity = Activity(organization_id=organization_id, **values)
    session.add(activity)

    try:
        await audit.log_create(session, "activity", activity, current_user)
        await session.commit()
        await session.refresh(activity)

        logger.info(
            "activity.created",
            activity_id=str(activity.id),
            activity_type=activity.activity_type,
            campaign_id=str(activity.campaign_id) if activity.campaign_id else None,
        )
        return activity

    except Exception as e:
        await session.rollback()
        logger.error("activity.creation_failed", error=str(e))
        raise


@router.get("/activities/{activity_id}", response_model=ActivityResponse)
async def get_activity(
    activity_id: UUID,
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
):
    return await get_tenant_row_or_404(session, Activity, activity_id, organization_id)


@router.patch("/activities/{activity_id}", response_model=ActivityResponse)
async def update_activity(
    activity_id: UUID,
    activity_data: ActivityUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    activity = await get_tenant_row_or_404(session, Activity, activity_id, organization_id)

    update_data = activity_data.model_dump(exclude_unset=True)
    await check_activity_references(session, organization_id, update_data)

    # Completing an activity stamps the day unless the caller chose one.
    if update_data.get("status") == "completed" and not activity.completed_date:
        update_data.setdefault("completed_date", date.today())

    before = audit.snapshot(activity)
    apply_update(activity, update_data)
    await audit.log_update(session, "activity", activity, before, current_user)
    await session.commit()
    await session.refresh(activity)

    logger.info("activity.updated", activity_id=str(activity.id), fields=list(update_data.keys()))
    return activity


@router.delete("/activities/{activity_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_activity(
    activity_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    activity = await get_tenant_row_or_404(session, Activity, activity_id, organization_id)

    soft_delete(activity)
    await audit.log_delete(session, "activity", activity, current_user)
    await session.commit()

    logger.info("activity.deleted", activity_id=str(activity_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Results
@router.get("/results", response_model=PaginatedResponse[ResultResponse])
async def list_results(
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
    pagination: PaginationParams = Depends(),
    campaign_id: Optional[UUID] = Query(None),
    result_type: Optional[str] = Query(None),
):
    stmt = tenant_query(Result, organization_id)

    if campaign_id:
        stmt = stmt.where(Result.campaign_id == campaign_id)
    if result_type:
        stmt = stmt.where(Result.result_type == result_type)

    items, total = await paginate(session, stmt.order_by(Result.created_at.desc()), pagination)
    return PaginatedResponse[ResultResponse].build(items, total, pagination)


@router.post("/results", response_model=ResultResponse, status_code=status.HTTP_201_CREATED)
async def create_result(
    result_data: ResultCreate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    await ensure_in_org(session, Campaign, result_data.campaign_id, organization_id)

    result = Result(organization_id=organization_id, **fill_contract_value(result_data.model_dump()))
    session.add(result)

    try:
        await audit.log_create(session, "result", result, current_user)
        await session.commit()
        await session.refresh(result)

        logger.info(
            "result.created",
            result_id=str(result.id),
            campaign_id=str(result.campaign_id),
            result_type=result.result_type,
        )
        return result

    except Exception as e:
        await session.rollback()
        logger.error("result.creation_failed", error=str(e))
        raise


@router.get("/results/{result_id}", response_model=ResultResponse)
async def get_result(
    result_id: UUID,
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
):
    return await get_tenant_row_or_404(session, Result, result_id, organization_id)


@router.patch("/results/{result_id}", response_model=ResultResponse)
async def update_result(
    result_id: UUID,
    result_data: ResultUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    result = await get_tenant_row_or_404(session, Result, result_id, organization_id)

    update_data = result_data.model_dump(exclude_unset=True)
    if "total_contract_value" not in update_data and (
        "contract_value_monthly" in update_data or "contract_term_months" in update_data
    ):
        merged = fill_contract_value(
            {
                "contract_value_monthly": update_data.get("contract_value_monthly", result.contract_value_monthly),
                "contract_term_months": update_data.get("contract_term_months", result.contract_term_months),
            }
        )
        if merged.get("total_contract_value") is not None:
            update_data["total_contract_value"] = merged["total_contract_value"]

    before = audit.snapshot(result)
    apply_update(result, update_data)
    await audit.log_update(session, "result", result, before, current_user)
    await session.commit()
    await session.refresh(result)

    logger.info("result.updated", result_id=str(result.id), fields=list(update_data.keys()))
    return result


@router.delete("/results/{result_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_result(
    result_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    result = await get_tenant_row_or_404(session, Result, result_id, organization_id)

    soft_delete(result)
    await audit.log_delete(session, "result", result, current_user)
    await session.commit()

    logger.info("result.deleted", result_id=str(result_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
