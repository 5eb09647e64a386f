"""
Test configuration and fixtures for the Site Audit API.

The application database, log directory and admin token are pointed at
throwaway values before anything under `app` is imported.
"""

import os
import tempfile
from typing import Generator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

test_db_path = tempfile.mktemp(suffix=".db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{test_db_path}"
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="site-audit-logs-")
os.environ["ADMIN_TOKEN"] = "test-admin-token"
os.environ["BREVO_API_KEY"] = ""
os.environ["DEBUG"] = "false"

from app.features.audit.models import audit as audit_models  # noqa: E402,F401
from app.features.audit.schemas.audit import (  # noqa: E402
    AuditMode,
    AuditResult,
    LighthouseScores,
    SecurityResult,
    SeoBasic,
)
from app.platform.db.base import Base  # noqa: E402
from app.platform.utils.rate_limit import audit_rate_limiter, email_rate_limiter  # noqa: E402

ADMIN_TOKEN = "test-admin-token"


@pytest.fixture(scope="session")
def test_app():
    """Create FastAPI test application."""
    from app.main import app

    return app


@pytest.fixture(scope="function")
def client(test_app) -> Generator[TestClient, None, None]:
    """
    Create a test client for making HTTP requests.
    Entering the client runs the app lifespan, which creates the tables.
    """
    with TestClient(test_app) as test_client:
        yield test_client


@pytest.fixture(autouse=True)
def reset_rate_limiters():
    audit_rate_limiter.reset()
    email_rate_limiter.reset()
    yield
    audit_rate_limiter.reset()
    email_rate_limiter.reset()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """A fresh SQLite database with every table created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'audit.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False, autoflush=False)

    await engine.dispose()


def make_result(mode: AuditMode = AuditMode.fast, performance: int = 90, **overrides) -> AuditResult:
    values = dict(
        lighthouse=LighthouseScores(performance=performance, seo=80, accessibility=70, best_practices=60),
        seo_basic=SeoBasic(
            title="Example Domain",
            description="An example page",
            h1=["Example Domain"],
            canonical="https://example.com/",
            has_robots_txt=True,
            has_sitemap=False,
        ),
        security=SecurityResult(
            https=True,
            headers={"content-security-policy": True, "x-frame-options": False},
            header_score=50,
        ),
        recommendations=["Add an X-Frame-Options header"],
        execution_time=1234,
        mode=mode,
    )
    values.update(overrides)
    return AuditResult(**values)


@pytest.fixture
def sample_result() -> AuditResult:
    return make_result()


@pytest.fixture
def result_factory():
    return make_result
