# orbit_api/routes/documents.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from orbit_api.core.exceptions import BadRequestError
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
from orbit_api.models.campaign import Campaign
from orbit_api.models.company import Company
from orbit_api.models.document import DOCUMENT_STATUSES, DOCUMENT_TYPES, DocumentTemplate, GeneratedDocument
from orbit_api.models.vertical import Vertical
from orbit_api.schemas.common import PaginatedResponse, PaginationParams
from orbit_api.services import audit, research
from orbit_api.services.validation import clean_choice

logger = get_structlog_logger()

router = APIRouter(tags=["documents"])

TEMPLATE_LABEL = "Document template"
DOCUMENT_LABEL = "Generated document"


def _research_errors(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(loc) for loc in error['loc']) or 'content'}: {error['msg']}" for error in exc.errors()
    )


def check_document_content(document_type: Optional[str], content: Optional[dict]) -> Optional[dict]:
    """Research documents must carry well-formed research content."""
    if document_type != research.RESEARCH_DOCUMENT_TYPE or content is None:
        return content
    try:
        return research.validate_research_content(content)
    except ValidationError as e:
        raise BadRequestError(
            message=f"Invalid research content: {_research_errors(e)}",
            details={"errors": e.errors(include_url=False, include_context=False)},
        )


# Pydantic Models
class DocumentTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    document_type: str
    vertical_id: Optional[UUID] = None
    template_structure: Dict[str, Any] = Field(default_factory=dict)
    version: int = Field(default=1, ge=1)
    is_active: bool = True

    @field_validator("document_type")
    def validate_document_type(cls, v):
        return clean_choice(v, DOCUMENT_TYPES, "document_type")


class DocumentTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    document_type: Optional[str] = None
    vertical_id: Optional[UUID] = None
    template_structure: Optional[Dict[str, Any]] = None
    version: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None

    @field_validator("document_type")
    def validate_document_type(cls, v):
        return clean_choice(v, DOCUMENT_TYPES, "document_type")


class DocumentTemplateResponse(DocumentTemplateCreate):
    id: UUID
    organization_id: UUID
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class GeneratedDocumentCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    document_type: str
    document_template_id: Optional[UUID] = None
    company_id: Optional[UUID] = None
    campaign_id: Optional[UUID] = None
    status: str = "draft"
    content: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("document_type")
    def validate_document_type(cls, v):
        return clean_choice(v, DOCUMENT_TYPES, "document_type")

    @field_validator("status")
    def validate_status(cls, v):
        return clean_choice(v, DOCUMENT_STATUSES, "status")

    @model_validator(mode="after")
    def research_needs_company(self):
        if self.document_type == research.RESEARCH_DOCUMENT_TYPE and self.company_id is None:
            raise ValueError("prospect_research documents require a company_id")
        return self


class GeneratedDocumentUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    status: Optional[str] = None
    content: Optional[Dict[str, Any]] = None
    campaign_id: Optional[UUID] = None
    version: Optional[int] = Field(None, ge=1)

    @field_validator("status")
    def validate_status(cls, v):
        return clean_choice(v, DOCUMENT_STATUSES, "status")


class GeneratedDocumentResponse(BaseModel):
    id: UUID
    organization_id: UUID
    document_template_id: Optional[UUID] = None
    company_id: Optional[UUID] = None
    campaign_id: Optional[UUID] = None
    title: str
    document_type: str
    status: str
    content: Dict[str, Any]
    readiness_score: Optional[int] = None
    version: int
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    last_generated_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ReadinessUpdate(BaseModel):
    checks: Dict[str, bool]


class SectionUpdate(BaseModel):
    content: str


class ResearchResponse(BaseModel):
    document_id: UUID
    readiness_score: int
    max_score: int
    band: str
    content: Dict[str, Any]


class SectionDefinitionResponse(BaseModel):
    id: str
    title: str
    type: str
    placeholder: Optional[str] = None


class CriterionResponse(BaseModel):
    id: str
    label: str
    points: int
    category: str


class ResearchDefinitionsResponse(BaseModel):
    sections: List[SectionDefinitionResponse]
    criteria: List[CriterionResponse]
    max_score: int


def research_response(document: GeneratedDocument, content: dict) -> ResearchResponse:
    score = content["readiness_score"]
    return ResearchResponse(
        document_id=document.id,
        readiness_score=score,
        max_score=research.MAX_READINESS_SCORE,
        band=research.score_band(score),
        content=content,
    )


# Document templates
@router.get("/document-templates", response_model=PaginatedResponse[DocumentTemplateResponse])
async def list_document_templates(
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
    pagination: PaginationParams = Depends(),
    document_type: Optional[str] = Query(None),
    vertical_id: Optional[UUID] = Query(None),
):
    stmt = tenant_query(DocumentTemplate, organization_id)

    if document_type:
        stmt = stmt.where(DocumentTemplate.document_type == document_type)
    if vertical_id:
        stmt = stmt.where(DocumentTemplate.vertical_id == vertical_id)

    items, total = await paginate(session, stmt.order_by(DocumentTemplate.created_at.desc()), pagination)
    return PaginatedResponse[DocumentTemplateResponse].build(items, total, pagination)


@router.post(
    "/document-templates",
    response_model=DocumentTemplateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_document_template(
    template_data: DocumentTemplateCreate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    await ensure_in_org(session, Vertical, template_data.vertical_id, organization_id)

    template = DocumentTemplate(organization_id=organization_id, **template_data.model_dump())
    session.add(template)

    try:
        await audit.log_create(session, "document_template", template, current_user)
        await session.commit()
        await session.refresh(template)

        logger.info("document_template.created", document_template_id=str(template.id), name=template.name)
        return template

    except Exception as e:
        await session.rollback()
        logger.error("document_template.creation_failed", error=str(e))
        raise


@router.get("/document-templates/{template_id}", response_model=DocumentTemplateResponse)
async def get_document_template(
    template_id: UUID,
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
):
    return await get_tenant_row_or_404(session, DocumentTemplate, template_id, organization_id, TEMPLATE_LABEL)


@router.patch("/document-templates/{template_id}", response_model=DocumentTemplateResponse)
async def update_document_template(
    template_id: UUID,
    template_data: DocumentTemplateUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    template = await get_tenant_row_or_404(session, DocumentTemplate, template_id, organization_id, TEMPLATE_LABEL)

    update_data = template_data.model_dump(exclude_unset=True)
    await ensure_in_org(session, Vertical, update_data.get("vertical_id"), organization_id)

    before = audit.snapshot(template)
    apply_update(template, update_data)
    await audit.log_update(session, "document_template", template, before, current_user)
    await session.commit()
    await session.refresh(template)

    logger.info("document_template.updated", document_template_id=str(template.id))
    return template


@router.delete("/document-templates/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document_template(
    template_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    template = await get_tenant_row_or_404(session, DocumentTemplate, template_id, organization_id, TEMPLATE_LABEL)
    await ensure_not_referenced(
        session,
        template,
        [("generated_documents", GeneratedDocument, "document_template_id")],
        TEMPLATE_LABEL,
    )

    soft_delete(template)
    await audit.log_delete(session, "document_template", template, current_user)
    await session.commit()

    logger.info("document_template.deleted", document_template_id=str(template_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Generated documents
@router.get("/generated-documents", response_model=PaginatedResponse[GeneratedDocumentResponse])
async def list_generated_documents(
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
    pagination: PaginationParams = Depends(),
    company_id: Optional[UUID] = Query(None),
    campaign_id: Optional[UUID] = Query(None),
    document_type: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
):
    stmt = tenant_query(GeneratedDocument, organization_id)

    if company_id:
        stmt = stmt.where(GeneratedDocument.company_id == company_id)
    if campaign_id:
        stmt = stmt.where(GeneratedDocument.campaign_id == campaign_id)
    if document_type:
        stmt = stmt.where(GeneratedDocument.document_type == document_type)
    if status_filter:
        stmt = stmt.where(GeneratedDocument.status == status_filter)

    items, total = await paginate(session, stmt.order_by(GeneratedDocument.created_at.desc()), pagination)
    return PaginatedResponse[GeneratedDocumentResponse].build(items, total, pagination)


@router.post(
    "/generated-documents",
    response_model=GeneratedDocumentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_generated_document(
    document_data: GeneratedDocumentCreate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)

    values = document_data.model_dump()
    await ensure_in_org(session, Company, values.get("company_id"), organization_id)
    await ensure_in_org(session, Campaign, values.get("campaign_id"), organization_id)
    await ensure_in_org(session, DocumentTemplate, values.get("document_template_id"), organization_id, TEMPLATE_LABEL)
    values["content"] = check_document_content(values["document_type"], values["content"])
    if values["document_type"] == research.RESEARCH_DOCUMENT_TYPE:
        values["readiness_score"] = values["content"]["readiness_score"]

    document = GeneratedDocument(organization_id=organization_id, **values)
    session.add(document)

    try:
        await audit.log_create(session, "generated_document", document, current_user)
        await session.commit()
        await session.refresh(document)

        logger.info(
            "generated_document.created",
            document_id=str(document.id),
            document_type=document.document_type,
            company_id=str(document.company_id) if document.company_id else None,
        )
        return document

    except Exception as e:
        await session.rollback()
        logger.error("generated_document.creation_failed", error=str(e))
        raise


@router.get("/generated-documents/{document_id}", response_model=GeneratedDocumentResponse)
async def get_generated_document(
    document_id: UUID,
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
):
    return await get_tenant_row_or_404(session, GeneratedDocument, document_id, organization_id, DOCUMENT_LABEL)


@router.patch("/generated-documents/{document_id}", response_model=GeneratedDocumentResponse)
async def update_generated_document(
    document_id: UUID,
    document_data: GeneratedDocumentUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    document = await get_tenant_row_or_404(session, GeneratedDocument, document_id, organization_id, DOCUMENT_LABEL)

    update_data = document_data.model_dump(exclude_unset=True)
    await ensure_in_org(session, Campaign, update_data.get("campaign_id"), organization_id)
    if "content" in update_data:
        update_data["content"] = check_document_content(document.document_type, update_data["content"] or {})
        if document.document_type == research.RESEARCH_DOCUMENT_TYPE:
            update_data["readiness_score"] = update_data["content"]["readiness_score"]

    # Approval is stamped by the server.
    if update_data.get("status") == "approved" and document.status != "approved":
        update_data["approved_by"] = UUID(str(current_user["id"])) if current_user.get("id") else None
        update_data["approved_at"] = datetime.utcnow()

    before = audit.snapshot(document)
    apply_update(document, update_data)
    await audit.log_update(session, "generated_document", document, before, current_user)
    await session.commit()
    await session.refresh(document)

    logger.info("generated_document.updated", document_id=str(document.id), fields=list(update_data.keys()))
    return document


@router.delete("/generated-documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_generated_document(
    document_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    document = await get_tenant_row_or_404(session, GeneratedDocument, document_id, organization_id, DOCUMENT_LABEL)

    soft_delete(document)
    await audit.log_delete(session, "generated_document", document, current_user)
    await session.commit()

    logger.info("generated_document.deleted", document_id=str(document_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Research
@router.get("/research/definitions", response_model=ResearchDefinitionsResponse)
async def get_research_definitions():
    """Section layout and readiness criteria used by research documents."""
    return ResearchDefinitionsResponse(
        sections=[SectionDefinitionResponse(**vars(s)) for s in research.SECTION_DEFINITIONS],
        criteria=[CriterionResponse(**vars(c)) for c in research.READINESS_CRITERIA],
        max_score=research.MAX_READINESS_SCORE,
    )


@router.post("/generated-documents/{document_id}/research/auto-populate", response_model=ResearchResponse)
async def auto_populate_research(
    document_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    document = await get_tenant_row_or_404(session, GeneratedDocument, document_id, organization_id, DOCUMENT_LABEL)

    try:
        content = await research.auto_populate(session, organization_id=organization_id, document=document)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    return research_response(document, content)


@router.patch("/generated-documents/{document_id}/research/readiness", response_model=ResearchResponse)
async def update_research_readiness(
    document_id: UUID,
    readiness_data: ReadinessUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    document = await get_tenant_row_or_404(session, GeneratedDocument, document_id, organization_id, DOCUMENT_LABEL)

    content = await research.update_readiness(
        session,
        organization_id=organization_id,
        document=document,
        checks=readiness_data.checks,
    )
    await session.commit()

    logger.info("research.readiness_updated", document_id=str(document_id), readiness_score=content["readiness_score"])
    return research_response(document, content)


@router.patch(
    "/generated-documents/{document_id}/research/sections/{section_id}",
    response_model=ResearchResponse,
)
async def update_research_section(
    document_id: UUID,
    section_id: str,
    section_data: SectionUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    document = await get_tenant_row_or_404(session, GeneratedDocument, document_id, organization_id, DOCUMENT_LABEL)

    content = await research.update_section(
        session,
        document=document,
        section_id=section_id,
        text=section_data.content,
    )
    await session.commit()

    logger.info("research.section_updated", document_id=str(document_id), section_id=section_id)
    return research_response(document, content)


@router.get("/generated-documents/{document_id}/research/export.md", response_class=PlainTextResponse)
async def export_research_markdown(
    document_id: UUID,
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
):
    document = await get_tenant_row_or_404(session, GeneratedDocument, document_id, organization_id, DOCUMENT_LABEL)
    research.ensure_research_document(document)

    markdown = research.export_markdown(document.title, document.content)
    filename = f"research_{document.id}.md"
    return PlainTextResponse(
        markdown,
        media_type="text/markdown; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
