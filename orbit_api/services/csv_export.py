# orbit_api/services/csv_export.py
"""CSV export of companies, contacts and markets.

Exports use the import column keys, so a downloaded file can be edited and
imported back. Foreign keys are written as the referenced record's name.
"""
from __future__ import annotations

import csv
import io
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from orbit_api.core.exceptions import BadRequestError
from orbit_api.core.logging import get_structlog_logger
from orbit_api.db.queries import tenant_query
from orbit_api.models.company import Company
from orbit_api.models.contact import Contact
from orbit_api.models.market import Market
from orbit_api.models.vertical import Vertical
from orbit_api.services.csv_import import IMPORT_FIELDS, TEMPLATE_ROWS

logger = get_structlog_logger(__name__)

EXPORT_ENTITIES = ("companies", "contacts", "markets")


def render_csv(columns: Sequence[str], rows: Iterable[Dict[str, Any]]) -> str:
    """Write rows as RFC 4180 CSV; None becomes an empty cell."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")
    writer.writerow(columns)
    for row in rows:
        writer.writerow([_cell(row.get(column)) for column in columns])
    return buffer.getvalue()


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def export_filename(entity: str, org_slug: Optional[str], on: Optional[date] = None) -> str:
    on = on or date.today()
    return f"{entity}_{org_slug or 'export'}_{on.isoformat()}.csv"


def template_csv(entity: str) -> str:
    if entity not in TEMPLATE_ROWS:
        raise BadRequestError(
            message=f"No import template for '{entity}'",
            details={"supported": sorted(TEMPLATE_ROWS)},
        )
    sample = TEMPLATE_ROWS[entity]
    return render_csv(list(sample.keys()), [sample])


async def _names_by_id(session: AsyncSession, model, organization_id: UUID) -> Dict[UUID, str]:
    result = await session.execute(tenant_query(model, organization_id))
    return {row.id: row.name for row in result.scalars().all()}


async def collect_export_rows(session: AsyncSession, organization_id: UUID, entity: str) -> List[Dict[str, Any]]:
    if entity not in EXPORT_ENTITIES:
        raise BadRequestError(
            message=f"Unsupported export entity '{entity}'",
            details={"supported": list(EXPORT_ENTITIES)},
        )

    if entity == "companies":
        markets = await _names_by_id(session, Market, organization_id)
        verticals = await _names_by_id(session, Vertical, organization_id)
        stmt = tenant_query(Company, organization_id).order_by(Company.name)
        rows = []
        for company in (await session.execute(stmt)).scalars().all():
            row = _columns_of(company, IMPORT_FIELDS["companies"])
            row["market"] = markets.get(company.market_id)
            row["vertical"] = verticals.get(company.vertical_id)
            rows.append(row)
        return rows

    if entity == "contacts":
        companies = await _names_by_id(session, Company, organization_id)
        stmt = tenant_query(Contact, organization_id).order_by(Contact.last_name, Contact.first_name)
        rows = []
        for contact in (await session.execute(stmt)).scalars().all():
            row = _columns_of(contact, IMPORT_FIELDS["contacts"])
            row["company"] = companies.get(contact.company_id)
            rows.append(row)
        return rows

    stmt = tenant_query(Market, organization_id).order_by(Market.name)
    return [_columns_of(market, IMPORT_FIELDS["markets"]) for market in (await session.execute(stmt)).scalars().all()]


def _columns_of(record: Any, columns: Sequence[str]) -> Dict[str, Any]:
    return {column: getattr(record, column, None) for column in columns}


async def export_csv(session: AsyncSession, organization_id: UUID, entity: str) -> str:
    rows = await collect_export_rows(session, organization_id, entity)
    logger.info("export.completed", entity=entity, organization_id=str(organization_id), rows=len(rows))
    return render_csv(IMPORT_FIELDS[entity], rows)
