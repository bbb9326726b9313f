from __future__ import annotations
import logging
import math
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..errors import NotFound, ValidationError
from ..models import AuditAction, Batch, BatchStatus, RateAuditLog, RateRow, RateStatus, utcnow
from .audit import record_audit

logger = logging.getLogger(__name__)


def list_active_rates(
    db: Session,
    country: Optional[str] = None,
    carrier: Optional[str] = None,
    min_weight: Optional[Decimal] = None,
    max_weight: Optional[Decimal] = None,
    page: int = 1,
    limit: int = 100,
) -> dict:
    page = max(1, page)
    limit = max(1, min(limit, 1000))

    query = db.query(RateRow).filter(RateRow.status == RateStatus.ACTIVE)
    if country:
        query = query.filter(RateRow.country_code == country.strip().upper())
    if carrier:
        query = query.filter(RateRow.carrier == carrier)
    if min_weight is not None:
        query = query.filter(RateRow.weight_tier_kg >= min_weight)
    if max_weight is not None:
        query = query.filter(RateRow.weight_tier_kg <= max_weight)

    total = query.count()
    prices = (
        query.order_by(RateRow.country_code, RateRow.weight_tier_kg, RateRow.carrier, RateRow.service)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {"prices": prices, "total": total, "page": page, "total_pages": math.ceil(total / limit)}


def get_rate(db: Session, rate_id: int) -> RateRow:
    rate = db.get(RateRow, rate_id)
    if rate is None:
        raise NotFound(f"Rate #{rate_id} not found")
    return rate


def update_rate(
    db: Session,
    rate_id: int,
    price_minor_units: Optional[int] = None,
    transit_days_text: Optional[str] = None,
    is_visible_to_customers: Optional[bool] = None,
    admin_id: Optional[int] = None,
    reason: Optional[str] = None,
) -> RateRow:
    """Direct admin correction of one row, outside the batch flow."""
    rate = get_rate(db, rate_id)
    if price_minor_units is not None and (isinstance(price_minor_units, bool) or price_minor_units <= 0):
        raise ValidationError(
            "Invalid price",
            errors=[{"row": None, "field": "price_minor_units", "message": "must be greater than zero"}],
        )

    previous = rate.snapshot()
    if price_minor_units is not None:
        rate.price_minor_units = price_minor_units
    if transit_days_text is not None:
        rate.transit_days_text = transit_days_text.strip() or None
    if is_visible_to_customers is not None:
        rate.is_visible_to_customers = is_visible_to_customers
    rate.updated_at = utcnow()
    try:
        record_audit(db, rate, AuditAction.UPDATED, previous, admin_id, reason)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(rate)
    logger.info("Rate #%s updated by %s", rate_id, admin_id)
    return rate


def delete_rate(db: Session, rate_id: int, admin_id: Optional[int] = None) -> None:
    rate = get_rate(db, rate_id)
    try:
        record_audit(db, rate, AuditAction.DELETED, rate.snapshot(), admin_id)
        db.delete(rate)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Rate #%s deleted by %s", rate_id, admin_id)


def rate_history(db: Session, rate_id: int) -> list[RateAuditLog]:
    """Audit entries for a rate, newest first. Works for deleted rates too."""
    entries = (
        db.query(RateAuditLog)
        .filter(RateAuditLog.rate_id == rate_id)
        .order_by(RateAuditLog.created_at.desc(), RateAuditLog.id.desc())
        .all()
    )
    if not entries and db.get(RateRow, rate_id) is None:
        raise NotFound(f"Rate #{rate_id} not found")
    return entries


def countries_with_rates(db: Session) -> list[dict]:
    rows = (
        db.query(RateRow.country_code, RateRow.country_name, func.count(RateRow.id))
        .filter(RateRow.status == RateStatus.ACTIVE)
        .group_by(RateRow.country_code, RateRow.country_name)
        .order_by(RateRow.country_name)
        .all()
    )
    return [
        {"country_code": code, "country_name": name, "price_count": count}
        for code, name, count in rows
    ]


def carriers_with_rates(db: Session) -> list[str]:
    rows = (
        db.query(RateRow.carrier)
        .filter(RateRow.status == RateStatus.ACTIVE)
        .distinct()
        .order_by(RateRow.carrier)
        .all()
    )
    return [carrier for (carrier,) in rows]


def rate_statistics(db: Session) -> dict:
    total_active = db.query(RateRow).filter(RateRow.status == RateStatus.ACTIVE).count()
    total_pending = db.query(RateRow).filter(RateRow.status == RateStatus.PENDING).count()
    total_countries = (
        db.query(func.count(func.distinct(RateRow.country_code)))
        .filter(RateRow.status == RateStatus.ACTIVE)
        .scalar()
    )
    last_updated = (
        db.query(func.max(Batch.scraped_at))
        .filter(Batch.status == BatchStatus.APPROVED)
        .scalar()
    )
    return {
        "total_active": total_active,
        "total_pending": total_pending,
        "total_countries": total_countries or 0,
        "total_carriers": len(carriers_with_rates(db)),
        "last_updated": last_updated,
    }
