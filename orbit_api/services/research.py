# orbit_api/services/research.py
"""Prospect research documents: sections, readiness scoring and markdown export."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, List, Literal, Optional, Sequence
from uuid import UUID

from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from orbit_api.core.exceptions import BadRequestError
from orbit_api.core.logging import get_structlog_logger
from orbit_api.db.queries import get_tenant_row_or_404, tenant_query
from orbit_api.models.company import Company
from orbit_api.models.contact import Contact
from orbit_api.models.digital_snapshot import DigitalSnapshot
from orbit_api.models.document import GeneratedDocument
from orbit_api.models.market import Market
from orbit_api.models.vertical import Vertical

logger = get_structlog_logger(__name__)

RESEARCH_DOCUMENT_TYPE = "prospect_research"


@dataclass(frozen=True)
class SectionDefinition:
    id: str
    title: str
    type: Literal["auto", "manual", "hybrid", "calculated"]
    placeholder: Optional[str] = None


@dataclass(frozen=True)
class ReadinessCriterion:
    id: str
    label: str
    points: int
    category: str


SECTION_DEFINITIONS = (
    SectionDefinition("company_overview", "1. Company Overview", "auto"),
    SectionDefinition(
        "market_context",
        "2. Market Context & Opportunity",
        "manual",
        "Describe the market dynamics, growth trends, and opportunity this company represents.\n\n"
        "- What macro trends affect this vertical?\n"
        "- How is the competitive landscape shifting?\n"
        "- What is the total addressable market?",
    ),
    SectionDefinition(
        "value_proposition",
        "3. Value Proposition & Wedge",
        "manual",
        "Define the primary value proposition and entry wedge for this prospect.\n\n"
        "- What specific pain point can we address?\n"
        "- What is our unique angle vs. competitors?\n"
        "- What proof points support our approach?",
    ),
    SectionDefinition("competitive_landscape", "4. Competitive Landscape", "auto"),
    SectionDefinition("decision_making_unit", "5. Decision-Making Unit (DMU)", "hybrid"),
    SectionDefinition(
        "engagement_strategy",
        "6. Engagement Strategy",
        "manual",
        "Outline the multi-channel engagement strategy for this prospect.\n\n"
        "- Which channels will be primary (mail, email, LinkedIn, phone)?\n"
        "- What is the recommended cadence?\n"
        "- What triggers should prompt escalation or pivot?",
    ),
    SectionDefinition(
        "objection_handling",
        "7. Objection Handling",
        "manual",
        "List anticipated objections and prepared responses.\n\n"
        '- "We already have an agency"\n'
        "- \"We don't have the budget\"\n"
        "- \"Now isn't a good time\"\n"
        "- Custom objections specific to this prospect...",
    ),
    SectionDefinition("readiness_score", "8. Readiness Score", "calculated"),
)
EDITABLE_SECTION_IDS = tuple(s.id for s in SECTION_DEFINITIONS if s.type != "calculated")

READINESS_CRITERIA = (
    ReadinessCriterion(
        "company_data_complete",
        "Company profile data is complete (revenue, employees, website)",
        2,
        "Data Quality",
    ),
    ReadinessCriterion(
        "digital_snapshot_exists",
        "At least one digital snapshot has been captured",
        2,
        "Data Quality",
    ),
    ReadinessCriterion(
        "dmu_identified",
        "Decision-making unit contacts identified (2+ contacts)",
        3,
        "Contacts",
    ),
    ReadinessCriterion(
        "primary_contact_verified",
        "Primary contact email is verified",
        2,
        "Contacts",
    ),
    ReadinessCriterion(
        "value_prop_defined",
        "Value proposition and engagement strategy are authored",
        1,
        "Strategy",
    ),
)
CRITERION_IDS = tuple(c.id for c in READINESS_CRITERIA)
MAX_READINESS_SCORE = sum(c.points for c in READINESS_CRITERIA)

NO_COMPETITORS = "_No competitors found in the same market and vertical._"
NO_CONTACTS = "_No contacts on file. Add contacts to populate this section._"

OWNERSHIP_LABELS = {
    "independent": "Independent",
    "pe_backed": "PE-Backed",
    "franchise": "Franchise",
    "corporate": "Corporate",
}


class ResearchSection(BaseModel):
    content: str = ""
    source: Literal["auto_generated", "human_edited"] = "auto_generated"
    updated_at: Optional[str] = None


class ResearchContent(BaseModel):
    sections: Dict[str, ResearchSection] = Field(default_factory=dict)
    readiness_checks: Dict[str, bool] = Field(default_factory=dict)
    readiness_score: int = Field(default=0, ge=0, le=MAX_READINESS_SCORE)

    @field_validator("sections")
    @classmethod
    def known_sections(cls, v: Dict[str, ResearchSection]) -> Dict[str, ResearchSection]:
        unknown = sorted(set(v) - set(EDITABLE_SECTION_IDS))
        if unknown:
            raise ValueError(f"unknown research sections: {', '.join(unknown)}")
        return v

    @field_validator("readiness_checks")
    @classmethod
    def known_criteria(cls, v: Dict[str, bool]) -> Dict[str, bool]:
        unknown = sorted(set(v) - set(CRITERION_IDS))
        if unknown:
            raise ValueError(f"unknown readiness criteria: {', '.join(unknown)}")
        return v


def validate_research_content(content: Optional[dict]) -> dict:
    """Parse stored or submitted content into the canonical research shape."""
    return ResearchContent.model_validate(content or {}).model_dump()


def calculate_readiness_score(checks: Dict[str, bool]) -> int:
    return sum(c.points for c in READINESS_CRITERIA if checks.get(c.id))


def score_band(score: int) -> str:
    if score >= 7:
        return "green"
    if score >= 4:
        return "amber"
    return "red"


def format_currency(value: Optional[float]) -> str:
    if not value:
        return "N/A"
    return f"${int(round(value)):,}"


def format_number(value: Optional[int]) -> str:
    if not value:
        return "N/A"
    return f"{value:,}"


def format_ownership(value: Optional[str]) -> str:
    return OWNERSHIP_LABELS.get(value or "", value or "N/A")


def company_overview_markdown(
    company: Company,
    market: Optional[Market] = None,
    vertical: Optional[Vertical] = None,
) -> str:
    location = ", ".join(part for part in (company.city, company.state) if part) or "N/A"
    rows = [
        ("Name", company.name),
        ("Website", company.website or "N/A"),
        ("HQ", location),
        ("Founded", str(company.year_founded) if company.year_founded else "N/A"),
        ("Revenue", format_currency(company.estimated_revenue)),
        ("Employees", format_number(company.employee_count)),
        ("Vertical", vertical.name if vertical else "N/A"),
        ("Market", market.name if market else "N/A"),
        ("Status", company.status or "N/A"),
        ("Ownership", format_ownership(company.ownership_type)),
    ]
    lines = ["| Field | Value |", "|-------|-------|"]
    lines.extend(f"| {field} | {value} |" for field, value in rows)
    return "\n".join(lines)


def competitive_landscape_markdown(
    competitors: Sequence[Company],
    snapshots: Dict[UUID, DigitalSnapshot],
) -> str:
    if not competitors:
        return NO_COMPETITORS

    lines = [
        "| Company | Revenue | Employees | Ownership | Google Rating | Reviews |",
        "|---------|---------|-----------|-----------|--------------|---------|",
    ]
    for competitor in competitors:
        snap = snapshots.get(competitor.id)
        rating = snap.google_rating if snap is not None and snap.google_rating is not None else "N/A"
        reviews = format_number(snap.google_review_count if snap is not None else None)
        lines.append(
            f"| {competitor.name} | {format_currency(competitor.estimated_revenue)} "
            f"| {format_number(competitor.employee_count)} | {format_ownership(competitor.ownership_type)} "
            f"| {rating} | {reviews} |"
        )
    return "\n".join(lines)


def dmu_markdown(contacts: Sequence[Contact]) -> str:
    if not contacts:
        return NO_CONTACTS

    lines = [
        "| Name | Title | DMU Role | Email | Verified |",
        "|------|-------|----------|-------|----------|",
    ]
    for contact in contacts:
        role = contact.dmu_role.replace("_", " ") if contact.dmu_role else "Unknown"
        verified = "Yes" if contact.email_verified else "No"
        lines.append(
            f"| {contact.first_name} {contact.last_name} | {contact.title or 'N/A'} "
            f"| {role} | {contact.email or 'N/A'} | {verified} |"
        )
    return "\n".join(lines)


def export_markdown(title: str, content: dict, generated_on: Optional[date] = None) -> str:
    content = validate_research_content(content)
    generated_on = generated_on or datetime.utcnow().date()
    lines: List[str] = [f"# {title}", ""]

    for section in SECTION_DEFINITIONS:
        lines.extend([f"## {section.title}", ""])
        if section.id == "readiness_score":
            lines.extend([f"**Score: {content['readiness_score']} / {MAX_READINESS_SCORE}**", ""])
            for criterion in READINESS_CRITERIA:
                mark = "x" if content["readiness_checks"].get(criterion.id) else " "
                lines.append(f"- [{mark}] {criterion.label} ({criterion.points} pts)")
        else:
            body = content["sections"].get(section.id, {}).get("content")
            lines.append(body or "_No content._")
        lines.append("")

    lines.append("---")
    lines.append(f"_Generated {generated_on.isoformat()}_")
    return "\n".join(lines)


def _section_text(content: dict, section_id: str) -> str:
    return (content["sections"].get(section_id, {}).get("content") or "").strip()


def ensure_research_document(document: GeneratedDocument) -> None:
    if document.document_type != RESEARCH_DOCUMENT_TYPE:
        raise BadRequestError(
            message="Document is not a prospect research document",
            details={"document_type": document.document_type},
        )
    if document.company_id is None:
        raise BadRequestError(message="Research document has no company")


async def _store(
    session: AsyncSession,
    document: GeneratedDocument,
    company: Company,
    content: dict,
) -> dict:
    now = datetime.utcnow()
    content["readiness_score"] = calculate_readiness_score(content["readiness_checks"])
    # Reassign so the JSON column registers the change.
    document.content = content
    document.readiness_score = content["readiness_score"]
    company.readiness_score = content["readiness_score"]
    company.last_researched_at = now
    await session.flush()
    return content


async def auto_populate(
    session: AsyncSession,
    *,
    organization_id: UUID,
    document: GeneratedDocument,
) -> dict:
    """Regenerate the data-driven sections and readiness checks.

    Sections a person has edited are left alone. The caller commits.
    """
    ensure_research_document(document)
    company = await get_tenant_row_or_404(session, Company, document.company_id, organization_id)
    market = await session.get(Market, company.market_id) if company.market_id else None
    vertical = await session.get(Vertical, company.vertical_id) if company.vertical_id else None

    contacts = list(
        (
            await session.execute(
                tenant_query(Contact, organization_id)
                .where(Contact.company_id == company.id)
                .order_by(Contact.is_primary.desc(), Contact.last_name, Contact.first_name)
            )
        ).scalars().all()
    )

    snapshot_count = len(
        (
            await session.execute(
                tenant_query(DigitalSnapshot, organization_id).where(DigitalSnapshot.company_id == company.id)
            )
        ).scalars().all()
    )

    competitors: List[Company] = []
    latest: Dict[UUID, DigitalSnapshot] = {}
    if company.market_id and company.vertical_id:
        competitors = list(
            (
                await session.execute(
                    tenant_query(Company, organization_id)
                    .where(
                        Company.market_id == company.market_id,
                        Company.vertical_id == company.vertical_id,
                        Company.id != company.id,
                    )
                    .order_by(Company.name)
                )
            ).scalars().all()
        )
        if competitors:
            snaps = (
                await session.execute(
                    tenant_query(DigitalSnapshot, organization_id)
                    .where(DigitalSnapshot.company_id.in_([c.id for c in competitors]))
                    .order_by(DigitalSnapshot.snapshot_date.desc())
                )
            ).scalars().all()
            for snap in snaps:
                latest.setdefault(snap.company_id, snap)

    content = validate_research_content(document.content)
    now = datetime.utcnow()
    generated = {
        "company_overview": company_overview_markdown(company, market, vertical),
        "competitive_landscape": competitive_landscape_markdown(competitors, latest),
        "decision_making_unit": dmu_markdown(contacts),
    }
    for section_id, text in generated.items():
        existing = content["sections"].get(section_id)
        if existing and existing.get("source") == "human_edited":
            continue
        content["sections"][section_id] = {
            "content": text,
            "source": "auto_generated",
            "updated_at": now.isoformat(),
        }

    content["readiness_checks"] = {
        "company_data_complete": bool(
            company.estimated_revenue and company.employee_count and company.website
        ),
        "digital_snapshot_exists": snapshot_count > 0,
        "dmu_identified": len(contacts) >= 2,
        "primary_contact_verified": any(c.is_primary and c.email_verified for c in contacts),
        "value_prop_defined": bool(
            _section_text(content, "value_proposition") and _section_text(content, "engagement_strategy")
        ),
    }

    document.last_generated_at = now
    content = await _store(session, document, company, content)

    logger.info(
        "research.auto_populated",
        document_id=str(document.id),
        company_id=str(company.id),
        readiness_score=content["readiness_score"],
        competitors=len(competitors),
        contacts=len(contacts),
    )
    return content


async def update_readiness(
    session: AsyncSession,
    *,
    organization_id: UUID,
    document: GeneratedDocument,
    checks: Dict[str, bool],
) -> dict:
    ensure_research_document(document)
    unknown = sorted(set(checks) - set(CRITERION_IDS))
    if unknown:
        raise BadRequestError(
            message=f"Unknown readiness criteria: {', '.join(unknown)}",
            details={"allowed": list(CRITERION_IDS)},
        )

    company = await get_tenant_row_or_404(session, Company, document.company_id, organization_id)
    content = validate_research_content(document.content)
    content["readiness_checks"] = {**content["readiness_checks"], **checks}
    return await _store(session, document, company, content)


async def update_section(
    session: AsyncSession,
    *,
    document: GeneratedDocument,
    section_id: str,
    text: str,
) -> dict:
    """Record a person's edit; auto-populate will not overwrite it afterwards."""
    ensure_research_document(document)
    if section_id not in EDITABLE_SECTION_IDS:
        raise BadRequestError(
            message=f"Unknown research section '{section_id}'",
            details={"allowed": list(EDITABLE_SECTION_IDS)},
        )

    content = validate_research_content(document.content)
    content["sections"][section_id] = {
        "content": text,
        "source": "human_edited",
        "updated_at": datetime.utcnow().isoformat(),
    }
    document.content = content
    await session.flush()
    return content
