"""Shared fixtures for the invoicing tests.

DATABASE_URL must point at SQLite before anything under app/ is imported,
since app.config reads it at import time.
"""
import os
import tempfile
import uuid

os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), 'invoicing_test.db')}",
)

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.database import Base, get_db, register_models
from app.services.invoicing.records import (
    GstRateRecord,
    JobRecord,
    ServiceChargeRecord,
)


# ==================== Record builders ====================

def make_job(job_id=None, **kwargs) -> JobRecord:
    """Closed Service_Reimbursement job billed in full, 9/9/18 GST."""
    defaults = dict(
        job_no="JOB-001",
        status="Closed",
        billing_type="Service_Reimbursement",
        invoice_type="full_invoice",
        gst_rate=GstRateRecord(sac_no="998212", cgst=9, sgst=9, igst=18),
    )
    defaults.update(kwargs)
    return JobRecord(id=job_id if job_id is not None else uuid.uuid4(), **defaults)


def make_charge(**kwargs) -> ServiceChargeRecord:
    remi = kwargs.pop("remi", {})
    return ServiceChargeRecord(remi=remi, **kwargs)


@pytest.fixture
def job_factory():
    return make_job


@pytest.fixture
def charge_factory():
    return make_charge


# ==================== Database / API ====================

@pytest.fixture
async def session_factory(tmp_path):
    """Fresh SQLite database per test."""
    register_models()
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'invoices.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield factory

    await engine.dispose()


@pytest.fixture
async def client(session_factory):
    from app.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
