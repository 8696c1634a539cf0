import os
import tempfile

# Settings and the engine are read at import time, so the environment must be
# in place before anything from orbit_api is imported.
_DB_DIR = tempfile.mkdtemp(prefix="orbit-tests-")
DB_PATH = os.path.join(_DB_DIR, "orbit_test.db")

os.environ["ENVIRONMENT"] = "testing"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{DB_PATH}"
os.environ["SECRET_KEY"] = "orbit-test-secret-key-0123456789abcdef"
os.environ["ORBIT_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["EMAIL_ENCRYPTION_KEY"] = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

import orbit_api.models  # noqa: F401  (registers every table on the metadata)
from orbit_api.db.base import Base
from orbit_api.db.session import get_sessionmaker
from orbit_api.main import app
from orbit_api.middleware.auth import TokenManager
from orbit_api.models.company import Company
from orbit_api.models.contact import Contact
from orbit_api.models.organization import Organization, Profile

sync_engine = create_engine(f"sqlite:///{DB_PATH}")

WEBHOOK_HEADERS = {"x-webhook-secret": "test-webhook-secret"}


@pytest.fixture(autouse=True)
def database():
    Base.metadata.create_all(sync_engine)
    yield
    sync_engine.dispose()
    if os.path.exists(DB_PATH):
        os.remove(DB_PATH)


def add_rows(*rows):
    """Persist rows through a synchronous session and return them detached."""
    with Session(sync_engine, expire_on_commit=False) as session:
        session.add_all(rows)
        session.commit()
    return rows[0] if len(rows) == 1 else rows


def fetch(model, row_id):
    with Session(sync_engine, expire_on_commit=False) as session:
        return session.get(model, row_id)


def make_org(slug: str, name: str = None) -> Organization:
    return add_rows(Organization(name=name or slug.title(), slug=slug, type="agency"))


def make_profile(org: Organization, role: str = "admin", email: str = None) -> Profile:
    return add_rows(
        Profile(
            organization_id=org.id,
            email=email or f"{role}@{org.slug}.test",
            full_name=f"{role.title()} User",
            role=role,
        )
    )


def auth_headers(profile: Profile, organization_id=None, platform_role: str = None) -> dict:
    token = TokenManager.create_access_token(
        {
            "sub": profile.id,
            "email": profile.email,
            "role": profile.role,
            "org_id": organization_id or profile.organization_id,
            "platform_role": platform_role,
        }
    )
    return {"Authorization": f"Bearer {token}"}


def make_company(org: Organization, name: str = "Summit Heating", **values) -> Company:
    return add_rows(Company(organization_id=org.id, name=name, **values))


def make_contact(org: Organization, company: Company, first: str = "Dana", last: str = "Reyes", **values) -> Contact:
    return add_rows(
        Contact(
            organization_id=org.id,
            company_id=company.id,
            first_name=first,
            last_name=last,
            **values,
        )
    )


@pytest.fixture
def org():
    return make_org("acme", "Acme Agency")


@pytest.fixture
def other_org():
    return make_org("rival", "Rival Agency")


@pytest.fixture
def admin(org):
    return make_profile(org, "admin")


@pytest.fixture
def headers(admin):
    return auth_headers(admin)


@pytest.fixture
def viewer_headers(org):
    return auth_headers(make_profile(org, "viewer"))


@pytest.fixture
def other_headers(other_org):
    return auth_headers(make_profile(other_org, "admin"))


@pytest.fixture
def client():
    return TestClient(app)


@pytest_asyncio.fixture
async def db_session():
    session = get_sessionmaker()()
    try:
        yield session
    finally:
        await session.close()
