"""Shared pytest fixtures: an isolated in-memory database per test."""

import os
import tempfile
from datetime import datetime
from decimal import Decimal

# Point config at a scratch directory before any shiprates module is imported
_TMP = tempfile.mkdtemp(prefix="shiprates-tests-")
os.environ.setdefault("SHIPRATES_DATA_DIR", _TMP)
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP}/rates.db")
os.environ.setdefault("SHIPRATES_ORIGIN_COUNTRY", "TR")
os.environ.setdefault("SHIPRATES_CURRENCY", "USD")
os.environ.pop("SHIPRATES_DUTY_API_URL", None)

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shiprates import models  # noqa: F401  (registers tables on Base)
from shiprates.db import Base
from shiprates.pricing.approval import approve_batch
from shiprates.pricing.ingest import ingest_batch
from shiprates.pricing.services import create_service_setting


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


def rate(country="DE", carrier="UPS", service="Express", weight="2", price=1000, **extra):
    """One ingest row; weight as a string so tiers stay exact."""
    row = {
        "country_code": country,
        "carrier": carrier,
        "service": service,
        "weight_tier_kg": Decimal(weight),
        "price_minor_units": price,
    }
    row.update(extra)
    return row


@pytest.fixture
def make_rate():
    return rate


@pytest.fixture
def stage(db):
    """Ingest rows as a pending batch and return its id."""

    def _stage(rows, scraped_at: datetime | None = None, **kwargs):
        return ingest_batch(db, rows, scraped_at=scraped_at, **kwargs).batch_id

    return _stage


@pytest.fixture
def publish(db, stage):
    """Ingest and approve rows in one go; returns the batch id."""

    def _publish(rows, scraped_at: datetime | None = None, replace_existing: bool = True):
        batch_id = stage(rows, scraped_at=scraped_at)
        approve_batch(db, batch_id, replace_existing=replace_existing)
        return batch_id

    return _publish


@pytest.fixture
def services(db):
    """Customer-facing services: UPS Express first, FEDEX Express second."""
    return [
        create_service_setting(db, "UPS", "Express", "UPS Express", sort_order=1),
        create_service_setting(db, "FEDEX", "Express", "FedEx Express", sort_order=2),
    ]
