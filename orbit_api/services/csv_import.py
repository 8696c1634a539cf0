# orbit_api/services/csv_import.py
"""Bulk import of companies, contacts, markets and verticals.

Rows arrive either as JSON objects or parsed from an uploaded CSV/XLSX file.
Headers are auto-mapped onto entity fields, each row is cleaned, and the row
is written inside its own savepoint so one bad row never aborts the batch.

Two modes:

* ``append`` merges into an existing record: blank CSV cells keep the stored
  value.
* ``overwrite`` replaces stored values, except on records other rows still
  reference, which are skipped and counted in ``protected_skipped``.
"""
from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orbit_api.core.config import settings
from orbit_api.core.exceptions import BadRequestError, normalize_error
from orbit_api.core.logging import get_structlog_logger
from orbit_api.db.queries import count_live_references, tenant_query
from orbit_api.models.asset import Asset
from orbit_api.models.campaign import Campaign
from orbit_api.models.company import Company, COMPANY_STATUSES, QUALIFYING_TIERS
from orbit_api.models.contact import Contact, RELATIONSHIP_STATUSES
from orbit_api.models.digital_snapshot import DigitalSnapshot
from orbit_api.models.document import GeneratedDocument
from orbit_api.models.market import Market, PE_ACTIVITY_LEVELS
from orbit_api.models.playbook import PlaybookTemplate
from orbit_api.models.vertical import B2B_B2C_VALUES, VERTICAL_TIERS, Vertical
from orbit_api.services import audit
from orbit_api.services.normalization import (
    extract_domain,
    extract_state_from_name,
    normalize_email,
    normalize_name,
    normalize_phone,
    normalize_website,
)

logger = get_structlog_logger(__name__)

IMPORT_ENTITIES = ("companies", "contacts", "markets", "verticals")
IMPORT_MODES = ("append", "overwrite")
IMPORT_SOURCE = "csv_import"
# Markets and verticals created on the fly for a company row.
AUTO_SOURCE = "csv_import_auto"

AUDITED_MODELS = {Company: "company", Contact: "contact", Market: "market", Vertical: "vertical"}

IMPORT_FIELDS: Dict[str, Tuple[str, ...]] = {
    "companies": (
        "name",
        "market",
        "vertical",
        "website",
        "phone",
        "address_line1",
        "address_line2",
        "city",
        "state",
        "zip",
        "estimated_revenue",
        "employee_count",
        "year_founded",
        "ownership_type",
        "qualifying_tier",
        "status",
        "manufacturer_affiliations",
        "certifications",
        "awards",
        "notes",
    ),
    "contacts": (
        "first_name",
        "last_name",
        "company",
        "title",
        "email",
        "phone",
        "linkedin_url",
        "is_primary",
        "relationship_status",
        "notes",
    ),
    "markets": (
        "name",
        "state",
        "metro_population",
        "market_size_estimate",
        "pe_activity_level",
        "notes",
    ),
    "verticals": (
        "name",
        "sector",
        "b2b_b2c",
        "naics_code",
        "revenue_floor",
        "typical_revenue_range",
        "typical_marketing_budget_pct",
        "key_decision_maker_title",
        "tier",
        "notes",
    ),
}

REQUIRED_FIELDS: Dict[str, Tuple[str, ...]] = {
    "companies": ("name",),
    "contacts": ("first_name", "last_name"),
    "markets": ("name",),
    "verticals": ("name",),
}

COLUMN_ALIASES: Dict[str, Dict[str, str]] = {
    "companies": {
        "company": "name",
        "company_name": "name",
        "market_name": "market",
        "vertical_name": "vertical",
        "industry": "vertical",
        "url": "website",
        "website_url": "website",
        "phone_number": "phone",
        "address": "address_line1",
        "street": "address_line1",
        "zip_code": "zip",
        "postal_code": "zip",
        "revenue": "estimated_revenue",
        "employees": "employee_count",
        "founded": "year_founded",
        "ownership": "ownership_type",
        "tier": "qualifying_tier",
    },
    "contacts": {
        "first": "first_name",
        "firstname": "first_name",
        "last": "last_name",
        "lastname": "last_name",
        "company_name": "company",
        "job_title": "title",
        "email_address": "email",
        "phone_number": "phone",
        "linkedin": "linkedin_url",
        "primary": "is_primary",
        "status": "relationship_status",
    },
    "markets": {
        "market": "name",
        "market_name": "name",
        "population": "metro_population",
        "metro_pop": "metro_population",
        "market_size": "market_size_estimate",
        "pe_activity": "pe_activity_level",
    },
    "verticals": {
        "vertical": "name",
        "vertical_name": "name",
        "naics": "naics_code",
        "b2b/b2c": "b2b_b2c",
        "marketing_budget_pct": "typical_marketing_budget_pct",
        "decision_maker_title": "key_decision_maker_title",
    },
}

OWNERSHIP_TYPE_MAP = {
    "independent": "independent",
    "pe_backed": "pe_backed",
    "franchise": "franchise",
    "corporate": "corporate",
    "private": "independent",
    "privately held": "independent",
    "pe backed": "pe_backed",
    "pe-backed": "pe_backed",
    "private equity": "pe_backed",
}

# (label, model, fk column) of the live rows that protect a record in overwrite mode.
IN_USE_REFERENCES = {
    "companies": (
        ("contacts", Contact, "company_id"),
        ("campaigns", Campaign, "company_id"),
        ("digital_snapshots", DigitalSnapshot, "company_id"),
        ("assets", Asset, "company_id"),
        ("generated_documents", GeneratedDocument, "company_id"),
    ),
    "markets": (
        ("companies", Company, "market_id"),
        ("campaigns", Campaign, "market_id"),
    ),
    "verticals": (
        ("companies", Company, "vertical_id"),
        ("campaigns", Campaign, "vertical_id"),
        ("playbook_templates", PlaybookTemplate, "vertical_id"),
    ),
}

# Row-level counts per table, reported by the import overview.
COUNTED_TABLES = (
    ("companies", Company),
    ("contacts", Contact),
    ("markets", Market),
    ("verticals", Vertical),
    ("digital_snapshots", DigitalSnapshot),
)

TEMPLATE_ROWS: Dict[str, Dict[str, str]] = {
    "companies": {
        "name": "Example HVAC Company",
        "market": "Fort Wayne, IN",
        "vertical": "HVAC Companies",
        "website": "https://example-hvac.com",
        "phone": "(260) 555-0123",
        "address_line1": "123 Main Street",
        "address_line2": "Suite 100",
        "city": "Fort Wayne",
        "state": "IN",
        "zip": "46802",
        "estimated_revenue": "2500000",
        "employee_count": "25",
        "year_founded": "2010",
        "ownership_type": "independent",
        "qualifying_tier": "qualified",
        "status": "prospect",
        "manufacturer_affiliations": "Carrier, Trane",
        "certifications": "NATE Certified",
        "awards": "Best of Fort Wayne 2023",
        "notes": "Strong digital presence, active on social media",
    },
    "contacts": {
        "first_name": "John",
        "last_name": "Smith",
        "company": "Example HVAC Company",
        "title": "Owner",
        "email": "john@example-hvac.com",
        "phone": "(260) 555-0123",
        "linkedin_url": "https://linkedin.com/in/johnsmith",
        "is_primary": "true",
        "relationship_status": "identified",
        "notes": "Decision maker for marketing initiatives",
    },
    "markets": {
        "name": "Example City, ST",
        "state": "ST",
        "metro_population": "250000",
        "market_size_estimate": "1500000000",
        "pe_activity_level": "moderate",
        "notes": "Growing market with good HVAC demand",
    },
    "verticals": {
        "name": "Example Vertical",
        "sector": "Home Services",
        "b2b_b2c": "B2C",
        "naics_code": "238220",
        "revenue_floor": "2000000",
        "typical_revenue_range": "$2M - $10M",
        "typical_marketing_budget_pct": "4",
        "key_decision_maker_title": "Owner/President",
        "tier": "tier_1",
        "notes": "High-value vertical with strong ROI potential",
    },
}

_HEADER_SEPARATORS = re.compile(r"[\s\-]+")
_LEADING_INT = re.compile(r"^[+-]?\d+")
_LEADING_FLOAT = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)")
_STATE_CODE = re.compile(r"^[A-Z]{2}$")


@dataclass
class ImportResult:
    mode: str
    created: int = 0
    updated: int = 0
    protected_skipped: int = 0
    errors: List[str] = field(default_factory=list)
    markets_created: List[str] = field(default_factory=list)
    verticals_created: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.created + self.updated

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["total"] = self.total
        return data


# Cleaning

def clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_int(value: Any) -> Optional[int]:
    """Lenient integer parse: `"$2,500,000"` -> 2500000, `"25 staff"` -> 25."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip().replace(",", "").lstrip("$")
    match = _LEADING_INT.match(text)
    return int(match.group(0)) if match else None


def parse_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", "").lstrip("$")
    match = _LEADING_FLOAT.match(text)
    return float(match.group(0)) if match else None


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def clean_state_code(value: Any) -> Optional[str]:
    text = clean_str(value)
    if text is None:
        return None
    text = text.upper()
    return text if _STATE_CODE.match(text) else None


def choice(value: Any, choices: Iterable[str], default: Optional[str] = None) -> Optional[str]:
    text = clean_str(value)
    return text if text in choices else default


def normalize_ownership_type(value: Any) -> str:
    text = clean_str(value)
    if not text:
        return "independent"
    return OWNERSHIP_TYPE_MAP.get(text.lower(), "independent")


# Column mapping

def normalize_header(header: str) -> str:
    return _HEADER_SEPARATORS.sub("_", header.strip().lower())


def build_column_mapping(headers: Iterable[str], entity: str) -> Dict[str, str]:
    """Map raw headers to entity fields; unmapped headers are dropped."""
    fields = IMPORT_FIELDS[entity]
    aliases = COLUMN_ALIASES.get(entity, {})
    mapping: Dict[str, str] = {}
    taken = set()

    for header in headers:
        if not isinstance(header, str):
            continue
        key = normalize_header(header)
        target = key if key in fields else aliases.get(key)
        if target and target not in taken:
            mapping[header] = target
            taken.add(target)
    return mapping


def map_rows(rows: Sequence[Dict[str, Any]], entity: str) -> List[Dict[str, Any]]:
    headers: List[str] = []
    for row in rows:
        for header in row.keys():
            if header not in headers:
                headers.append(header)
    mapping = build_column_mapping(headers, entity)
    return [{mapping[k]: v for k, v in row.items() if k in mapping} for row in rows]


def missing_required(row: Dict[str, Any], entity: str) -> List[str]:
    return [name for name in REQUIRED_FIELDS[entity] if clean_str(row.get(name)) is None]


# Row builders

def company_values(row: Dict[str, Any]) -> Dict[str, Any]:
    website = normalize_website(clean_str(row.get("website")))
    phone = clean_str(row.get("phone"))
    year_founded = parse_int(row.get("year_founded"))
    if year_founded is not None and not 1800 <= year_founded <= 2100:
        year_founded = None

    return {
        "name": clean_str(row.get("name")),
        "website": website,
        "domain": extract_domain(website),
        "phone": normalize_phone(phone) or phone,
        "address_line1": clean_str(row.get("address_line1")),
        "address_line2": clean_str(row.get("address_line2")),
        "city": clean_str(row.get("city")),
        "state": clean_state_code(row.get("state")),
        "zip": clean_str(row.get("zip")),
        "estimated_revenue": parse_int(row.get("estimated_revenue")),
        "employee_count": parse_int(row.get("employee_count")),
        "year_founded": year_founded,
        "ownership_type": normalize_ownership_type(row.get("ownership_type")),
        "qualifying_tier": choice(row.get("qualifying_tier"), QUALIFYING_TIERS),
        "status": choice(row.get("status"), COMPANY_STATUSES, "prospect"),
        "manufacturer_affiliations": clean_str(row.get("manufacturer_affiliations")),
        "certifications": clean_str(row.get("certifications")),
        "awards": clean_str(row.get("awards")),
        "notes": clean_str(row.get("notes")),
    }


def contact_values(row: Dict[str, Any]) -> Dict[str, Any]:
    email = clean_str(row.get("email"))
    phone = clean_str(row.get("phone"))
    return {
        "first_name": clean_str(row.get("first_name")),
        "last_name": clean_str(row.get("last_name")),
        "title": clean_str(row.get("title")),
        "email": email.lower() if email else None,
        "phone": normalize_phone(phone) or phone,
        "linkedin_url": clean_str(row.get("linkedin_url")),
        "is_primary": parse_bool(row.get("is_primary")),
        "relationship_status": choice(row.get("relationship_status"), RELATIONSHIP_STATUSES, "unknown"),
        "notes": clean_str(row.get("notes")),
    }


def market_values(row: Dict[str, Any]) -> Dict[str, Any]:
    name = clean_str(row.get("name"))
    pe_level = clean_str(row.get("pe_activity_level"))
    return {
        "name": name,
        "state": clean_state_code(row.get("state")) or extract_state_from_name(name),
        "metro_population": parse_int(row.get("metro_population")),
        "market_size_estimate": parse_int(row.get("market_size_estimate")),
        "pe_activity_level": choice(pe_level.lower() if pe_level else None, PE_ACTIVITY_LEVELS),
        "notes": clean_str(row.get("notes")),
    }


def vertical_values(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": clean_str(row.get("name")),
        "sector": clean_str(row.get("sector")),
        "b2b_b2c": choice(row.get("b2b_b2c"), B2B_B2C_VALUES),
        "naics_code": clean_str(row.get("naics_code")),
        "revenue_floor": parse_int(row.get("revenue_floor")),
        "typical_revenue_range": clean_str(row.get("typical_revenue_range")),
        "typical_marketing_budget_pct": parse_float(row.get("typical_marketing_budget_pct")),
        "key_decision_maker_title": clean_str(row.get("key_decision_maker_title")),
        "tier": choice(row.get("tier"), VERTICAL_TIERS),
        "notes": clean_str(row.get("notes")),
    }


def merge_missing(values: Dict[str, Any], existing: Any, fields: Iterable[str]) -> Dict[str, Any]:
    """Fill null CSV values from the stored row (append mode)."""
    merged = dict(values)
    for name in fields:
        if merged.get(name) is None:
            merged[name] = getattr(existing, name)
    return merged


class CsvImporter:
    """Runs one import batch for one tenant. The caller commits."""

    def __init__(self, session: AsyncSession, organization_id: UUID, mode: str, actor: Optional[Dict] = None):
        if mode not in IMPORT_MODES:
            raise BadRequestError(
                message=f"mode must be one of: {', '.join(IMPORT_MODES)}",
                details={"mode": mode},
            )
        self.session = session
        self.organization_id = organization_id
        self.mode = mode
        self.actor = actor
        self.result = ImportResult(mode=mode)

    async def _all(self, model) -> List[Any]:
        stmt = tenant_query(model, self.organization_id).order_by(model.created_at)
        return list((await self.session.execute(stmt)).scalars().all())

    async def _in_use(self, entity: str, row_id: UUID) -> bool:
        counts = await count_live_references(self.session, row_id, IN_USE_REFERENCES[entity])
        return bool(counts)

    async def _write(self, row_number: int, apply) -> Optional[Any]:
        """Run `apply` in a savepoint; integrity failures become row errors."""
        try:
            async with self.session.begin_nested():
                return await apply()
        except IntegrityError as e:
            error = normalize_error(e)
            self.result.errors.append(f"Row {row_number}: {error.message}")
            logger.warning("import.row_failed", row=row_number, error=error.message)
            return None

    def _add(self, model, values: Dict[str, Any], source: str = IMPORT_SOURCE):
        async def apply():
            row = model(organization_id=self.organization_id, **values)
            self.session.add(row)
            await audit.log_create(self.session, AUDITED_MODELS[model], row, self.actor, {"source": source})
            return row

        return apply

    def _change(self, row, values: Dict[str, Any]):
        async def apply():
            before = audit.snapshot(row)
            row.update(**values)
            await self.session.flush()
            await audit.log_update(
                self.session, AUDITED_MODELS[type(row)], row, before, self.actor, {"source": IMPORT_SOURCE}
            )
            return row

        return apply

    async def _upsert(
        self,
        entity: str,
        row_number: int,
        model,
        values: Dict[str, Any],
        existing,
        merge_fields: Iterable[str],
    ):
        """Create, merge or overwrite one record according to the mode."""
        if existing is None:
            row = await self._write(row_number, self._add(model, values))
            if row is not None:
                self.result.created += 1
            return row

        if self.mode == "append":
            values = merge_missing(values, existing, merge_fields)
        elif entity in IN_USE_REFERENCES and await self._in_use(entity, existing.id):
            uses = "/".join(label for label, _, _ in IN_USE_REFERENCES[entity][:2])
            self.result.errors.append(
                f'Row {row_number}: {model.__name__} "{values.get("name")}" is in use '
                f"(has {uses}), skipped in overwrite mode"
            )
            self.result.protected_skipped += 1
            return None

        row = await self._write(row_number, self._change(existing, values))
        if row is not None:
            self.result.updated += 1
        return row

    async def run(self, entity: str, rows: Sequence[Dict[str, Any]]) -> ImportResult:
        if entity not in IMPORT_ENTITIES:
            raise BadRequestError(
                message=f"Unsupported import entity '{entity}'",
                details={"supported": list(IMPORT_ENTITIES)},
            )
        if not rows:
            raise BadRequestError(message="No rows to import")
        if len(rows) > settings.import_max_rows:
            raise BadRequestError(
                message=f"Import is limited to {settings.import_max_rows} rows per batch",
                details={"rows": len(rows), "max_rows": settings.import_max_rows},
            )

        mapped = map_rows(rows, entity)
        handler = getattr(self, f"_import_{entity}")
        await handler(mapped)

        logger.info(
            "import.completed",
            entity=entity,
            mode=self.mode,
            organization_id=str(self.organization_id),
            created=self.result.created,
            updated=self.result.updated,
            protected_skipped=self.result.protected_skipped,
            errors=len(self.result.errors),
        )
        return self.result

    def _required_ok(self, row: Dict[str, Any], entity: str, row_number: int) -> bool:
        missing = missing_required(row, entity)
        if missing:
            self.result.errors.append(f"Row {row_number}: Missing required field(s): {', '.join(missing)}")
            return False
        return True

    # Companies

    async def _resolve_market(self, cache: Dict[str, Market], name: str, state: Optional[str], row_number: int):
        key = f"{name.lower()}|{(state or '').lower()}"
        market = cache.get(key)
        if market is None:
            market = await self._write(row_number, self._add(Market, {"name": name, "state": state}, AUTO_SOURCE))
            if market is not None:
                cache[key] = market
                self.result.markets_created.append(name)
        return market

    async def _resolve_vertical(self, cache: Dict[str, Vertical], name: str, row_number: int):
        vertical = cache.get(name.lower())
        if vertical is None:
            vertical = await self._write(row_number, self._add(Vertical, {"name": name}, AUTO_SOURCE))
            if vertical is not None:
                cache[name.lower()] = vertical
                self.result.verticals_created.append(name)
        return vertical

    async def _import_companies(self, rows: List[Dict[str, Any]]) -> None:
        companies = await self._all(Company)
        by_name = {c.name.lower(): c for c in companies}
        by_domain = {c.domain: c for c in companies if c.domain}
        markets = {f"{m.name.lower()}|{(m.state or '').lower()}": m for m in await self._all(Market)}
        verticals = {v.name.lower(): v for v in await self._all(Vertical)}
        seen_domains: Dict[str, int] = {}
        merge_fields = [f for f in company_values({}) if f != "name"] + ["market_id", "vertical_id"]

        for i, raw in enumerate(rows):
            row_number = i + 1
            if not self._required_ok(raw, "companies", row_number):
                continue

            values = company_values(raw)
            name = values["name"]
            domain = values["domain"]

            if domain:
                if domain in seen_domains:
                    self.result.errors.append(
                        f"Row {row_number}: Duplicate domain '{domain}' "
                        f"(already in row {seen_domains[domain]}), skipping"
                    )
                    continue
                seen_domains[domain] = row_number

                owner = by_domain.get(domain)
                if owner is not None and owner.name.lower() != name.lower():
                    self.result.errors.append(
                        f"Row {row_number}: Domain '{domain}' already belongs to company "
                        f'"{owner.name}", skipping'
                    )
                    continue

            values["market_id"] = None
            market_name = clean_str(raw.get("market"))
            if market_name:
                state = extract_state_from_name(market_name) or values["state"]
                market = await self._resolve_market(markets, market_name, state, row_number)
                values["market_id"] = market.id if market is not None else None

            values["vertical_id"] = None
            vertical_name = clean_str(raw.get("vertical"))
            if vertical_name:
                vertical = await self._resolve_vertical(verticals, vertical_name, row_number)
                values["vertical_id"] = vertical.id if vertical is not None else None

            existing = by_name.get(name.lower())
            row = await self._upsert("companies", row_number, Company, values, existing, merge_fields)
            if row is not None:
                by_name[row.name.lower()] = row
                if row.domain:
                    by_domain[row.domain] = row

    # Contacts

    async def _import_contacts(self, rows: List[Dict[str, Any]]) -> None:
        companies = {c.name.lower(): c for c in await self._all(Company)}
        contacts = await self._all(Contact)

        def key_of(first: str, last: str, company_id: Optional[UUID]) -> str:
            return f"{first.lower()}|{last.lower()}|{company_id or ''}"

        by_key = {key_of(c.first_name, c.last_name, c.company_id): c for c in contacts}
        by_email = {c.email.lower(): c for c in contacts if c.email}
        merge_fields = ("title", "email", "phone", "linkedin_url", "notes")

        for i, raw in enumerate(rows):
            row_number = i + 1
            if not self._required_ok(raw, "contacts", row_number):
                continue

            company_id = None
            company_name = clean_str(raw.get("company"))
            if company_name:
                company = companies.get(company_name.lower())
                if company is None:
                    self.result.errors.append(f'Row {row_number}: Company "{company_name}" not found, skipping row')
                    continue
                company_id = company.id

            values = contact_values(raw)
            values["company_id"] = company_id

            if values["email"] and normalize_email(values["email"]) is None:
                self.result.errors.append(f"Row {row_number}: Invalid email '{values['email']}', skipping")
                continue

            existing = by_key.get(key_of(values["first_name"], values["last_name"], company_id))

            owner = by_email.get(values["email"]) if values["email"] else None
            if owner is not None and owner is not existing:
                self.result.errors.append(
                    f"Row {row_number}: Email '{values['email']}' already belongs to "
                    f"{owner.first_name} {owner.last_name}, skipping"
                )
                continue

            row = await self._upsert("contacts", row_number, Contact, values, existing, merge_fields)
            if row is not None:
                by_key[key_of(row.first_name, row.last_name, row.company_id)] = row
                if row.email:
                    by_email[row.email.lower()] = row

    # Markets and verticals

    async def _import_named(self, entity: str, model, rows: List[Dict[str, Any]], build) -> None:
        existing_rows = await self._all(model)
        by_name = {r.name.lower(): r for r in existing_rows}
        by_normalized = {normalize_name(r.name): r for r in existing_rows if normalize_name(r.name)}
        seen: Dict[str, int] = {}
        label = model.__name__.lower()

        for i, raw in enumerate(rows):
            row_number = i + 1
            if not self._required_ok(raw, entity, row_number):
                continue

            values = build(raw)
            name = values["name"]
            normalized = normalize_name(name)

            if normalized:
                if normalized in seen:
                    self.result.errors.append(
                        f"Row {row_number}: Duplicate {label} name '{name}' is similar to "
                        f"row {seen[normalized]}, skipping"
                    )
                    continue
                seen[normalized] = row_number

                similar = by_normalized.get(normalized)
                if similar is not None and similar.name.lower() != name.lower():
                    self.result.errors.append(
                        f'Row {row_number}: {model.__name__} "{name}" is similar to existing '
                        f'{label} "{similar.name}", skipping'
                    )
                    continue

            merge_fields = [f for f in values if f != "name"]
            row = await self._upsert(entity, row_number, model, values, by_name.get(name.lower()), merge_fields)
            if row is not None:
                by_name[row.name.lower()] = row
                if normalized:
                    by_normalized[normalized] = row

    async def _import_markets(self, rows: List[Dict[str, Any]]) -> None:
        await self._import_named("markets", Market, rows, market_values)

    async def _import_verticals(self, rows: List[Dict[str, Any]]) -> None:
        await self._import_named("verticals", Vertical, rows, vertical_values)


async def import_records(
    session: AsyncSession,
    *,
    organization_id: UUID,
    entity: str,
    rows: Sequence[Dict[str, Any]],
    mode: str = "append",
    actor: Optional[Dict] = None,
) -> ImportResult:
    importer = CsvImporter(session, organization_id, mode, actor)
    return await importer.run(entity, rows)


async def import_counts(session: AsyncSession, organization_id: UUID) -> Dict[str, int]:
    counts = {}
    for name, model in COUNTED_TABLES:
        stmt = (
            select(func.count())
            .select_from(model)
            .where(model.organization_id == organization_id, model.deleted_at.is_(None))
        )
        counts[name] = (await session.execute(stmt)).scalar() or 0
    return counts
