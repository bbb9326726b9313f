from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    Boolean,
    Numeric,
    JSON,
    Enum as SAEnum,
    Index,
    UniqueConstraint,
    text,
)

from .db import Base


def utcnow() -> datetime:
    # Naive UTC everywhere; SQLite drops tzinfo on the way back anyway
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum_values(enum_cls):
    return [m.value for m in enum_cls]


class RateStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    DISABLED = "disabled"


class BatchStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AuditAction(str, Enum):
    APPROVED = "approved"
    DISABLED = "disabled"
    UPDATED = "updated"
    DELETED = "deleted"


class RateRow(Base):
    __tablename__ = "rate_row"

    id = Column(Integer, primary_key=True)

    country_code = Column(String(2), nullable=False)
    country_name = Column(String(128), nullable=False)
    weight_tier_kg = Column(Numeric(10, 3), nullable=False)  # upper bound of the bracket
    carrier = Column(String(64), nullable=False)
    service = Column(String(64), nullable=False)
    price_minor_units = Column(Integer, nullable=False)  # cents
    transit_days_text = Column(String(128), nullable=True)

    status = Column(
        SAEnum(RateStatus, values_callable=_enum_values, native_enum=False, length=16),
        nullable=False,
        default=RateStatus.PENDING,
    )
    is_visible_to_customers = Column(Boolean, nullable=False, default=False)

    # Back-reference only; promoted rows outlive their batch
    batch_id = Column(Integer, nullable=True, index=True)

    scraped_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    approved_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def promotion_key(self) -> tuple:
        return (self.country_code, self.carrier, self.service, self.weight_tier_kg)

    def snapshot(self) -> dict:
        """JSON-safe copy of the row for the audit log."""
        return {
            "id": self.id,
            "country_code": self.country_code,
            "weight_tier_kg": str(self.weight_tier_kg),
            "carrier": self.carrier,
            "service": self.service,
            "price_minor_units": self.price_minor_units,
            "transit_days_text": self.transit_days_text,
            "status": RateStatus(self.status).value,
            "is_visible_to_customers": self.is_visible_to_customers,
            "batch_id": self.batch_id,
        }


# At most one active row per promotion key; concurrent promotions of the same
# key fail on this index instead of silently overwriting each other.
Index(
    "uq_rate_row_active_key",
    RateRow.country_code,
    RateRow.carrier,
    RateRow.service,
    RateRow.weight_tier_kg,
    unique=True,
    sqlite_where=text("status = 'active'"),
    postgresql_where=text("status = 'active'"),
)
Index(
    "ix_rate_row_lookup",
    RateRow.country_code,
    RateRow.status,
    RateRow.carrier,
    RateRow.service,
    RateRow.weight_tier_kg,
)


class Batch(Base):
    __tablename__ = "rate_batch"

    id = Column(Integer, primary_key=True)
    country_code = Column(String(2), nullable=True)  # null = spans countries
    total_prices = Column(Integer, nullable=False, default=0)
    approved_prices = Column(Integer, nullable=False, default=0)
    skipped_prices = Column(Integer, nullable=False, default=0)
    status = Column(
        SAEnum(BatchStatus, values_callable=_enum_values, native_enum=False, length=16),
        nullable=False,
        default=BatchStatus.PENDING,
        index=True,
    )
    source = Column(String(64), nullable=False, default="chrome-extension")
    notes = Column(Text, nullable=True)

    scraped_at = Column(DateTime, nullable=False, default=utcnow)
    processed_at = Column(DateTime, nullable=True)
    processed_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class ServiceSetting(Base):
    __tablename__ = "service_setting"
    __table_args__ = (UniqueConstraint("carrier", "service", name="uq_service_setting_carrier_service"),)

    id = Column(Integer, primary_key=True)
    carrier = Column(String(64), nullable=False)
    service = Column(String(64), nullable=False)
    display_name = Column(String(128), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class RateAuditLog(Base):
    __tablename__ = "rate_audit_log"

    id = Column(Integer, primary_key=True)
    rate_id = Column(Integer, nullable=False, index=True)
    action = Column(
        SAEnum(AuditAction, values_callable=_enum_values, native_enum=False, length=16),
        nullable=False,
    )
    previous_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    actor_id = Column(Integer, nullable=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
