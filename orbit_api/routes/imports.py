# orbit_api/routes/imports.py
from __future__ import annotations

from typing import Any, Dict, List
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Request, Response, UploadFile
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from orbit_api.core.config import settings
from orbit_api.core.exceptions import BadRequestError
from orbit_api.core.logging import get_structlog_logger
from orbit_api.db.session import get_session
from orbit_api.middleware.auth import WRITE_ROLES, get_current_org_id, get_current_user, require_role
from orbit_api.models.organization import Organization
from orbit_api.services.csv_export import export_csv, export_filename, template_csv
from orbit_api.services.csv_import import IMPORT_MODES, import_counts, import_records
from orbit_api.utils.csv_parser import parse_csv_rows
from orbit_api.utils.excel_parser import parse_excel_rows

logger = get_structlog_logger()

router = APIRouter(tags=["import-export"])

IMPORT_ENTITY_PATTERN = "^(companies|contacts|markets|verticals)$"
EXPORT_ENTITY_PATTERN = "^(companies|contacts|markets)$"


class ImportRequest(BaseModel):
    data: List[Dict[str, Any]] = Field(default_factory=list)
    mode: str = Field("append", pattern="^(append|overwrite)$")


class ImportResponse(BaseModel):
    mode: str
    created: int
    updated: int
    total: int
    protected_skipped: int
    errors: List[str]
    markets_created: List[str]
    verticals_created: List[str]


async def read_upload(file: UploadFile) -> List[Dict[str, Any]]:
    """Parse an uploaded .csv or .xlsx file into raw rows."""
    file_ext = "." + file.filename.rsplit(".", 1)[-1].lower() if file.filename and "." in file.filename else ""
    allowed = settings.file_types()
    if file_ext not in allowed:
        raise BadRequestError(
            message="Invalid file format. Supported formats: " + ", ".join(allowed),
            details={"file_type": file_ext or None},
        )

    file_content = await file.read()
    max_bytes = settings.max_upload_size_mb * 1024 * 1024
    if len(file_content) > max_bytes:
        raise BadRequestError(
            message=f"File exceeds the {settings.max_upload_size_mb} MB upload limit",
            details={"size": len(file_content), "max_size": max_bytes},
        )

    try:
        if file_ext == ".csv":
            return parse_csv_rows(file_content)
        return parse_excel_rows(file_content)
    except ValueError as e:
        logger.error("import.parse_failed", filename=file.filename, error=str(e))
        raise BadRequestError(message="Failed to parse file", details={"error": str(e)})


async def read_import_request(request: Request) -> ImportRequest:
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        upload = form.get("file")
        if upload is None or isinstance(upload, str):
            raise BadRequestError(message="A file upload is required")
        mode = form.get("mode") or "append"
        rows = await read_upload(upload)
        payload: Any = {"data": rows, "mode": mode}
    else:
        try:
            payload = await request.json()
        except ValueError:
            raise BadRequestError(message="Request body must be JSON or a multipart file upload")

    try:
        return ImportRequest.model_validate(payload)
    except PydanticValidationError as e:
        raise BadRequestError(
            message=f"Invalid import request; mode must be one of {', '.join(IMPORT_MODES)}",
            details={"errors": e.errors(include_url=False, include_context=False)},
        )


@router.post("/{entity}/import", response_model=ImportResponse)
async def import_entity(
    request: Request,
    entity: str = Path(..., pattern=IMPORT_ENTITY_PATTERN),
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    """Import rows from JSON or an uploaded CSV/XLSX file."""
    await require_role(current_user, WRITE_ROLES)
    import_request = await read_import_request(request)

    try:
        result = await import_records(
            session,
            organization_id=organization_id,
            entity=entity,
            rows=import_request.data,
            mode=import_request.mode,
            actor=current_user,
        )
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.error("import.failed", entity=entity, error=str(e))
        raise

    logger.info(
        "import.committed",
        entity=entity,
        mode=result.mode,
        total=result.total,
        errors=len(result.errors),
        user_id=current_user.get("id"),
    )
    return result.to_dict()


@router.get("/import/counts")
async def get_import_counts(
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
) -> Dict[str, int]:
    return await import_counts(session, organization_id)


@router.get("/import/templates/{entity}")
async def download_import_template(entity: str = Path(..., pattern=IMPORT_ENTITY_PATTERN)):
    return Response(
        content=template_csv(entity),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{entity}_template.csv"'},
    )


@router.get("/{entity}/export")
async def export_entity(
    entity: str = Path(..., pattern=EXPORT_ENTITY_PATTERN),
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
):
    organization = await session.get(Organization, organization_id)
    content = await export_csv(session, organization_id, entity)
    filename = export_filename(entity, organization.slug if organization else None)

    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
