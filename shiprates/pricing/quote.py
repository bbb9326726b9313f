"""Customer quote computation over live rates.

All arithmetic is done in ``Decimal``: weights are rounded half-up to two
places, and customer multipliers are applied to the integer minor-unit price
and rounded half-up back to an integer. Prices never pass through a float.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..data.countries import normalize_country_code
from ..errors import DutyServiceUnavailable, ValidationError
from ..models import RateRow, RateStatus, ServiceSetting
from .duties import DutyEstimator
from .services import list_service_settings

logger = logging.getLogger(__name__)

VOLUMETRIC_DIVISOR = Decimal(5000)  # cm³ per kg
WEIGHT_PLACES = Decimal("0.01")
ONE = Decimal(1)


@dataclass
class Offer:
    carrier: str
    service: str
    display_name: str
    rate_id: int
    weight_tier_kg: Decimal
    base_price_minor: int
    multiplier: Decimal
    total_price_minor: int
    transit_days_text: Optional[str] = None


@dataclass
class Duties:
    available: bool
    duties_minor: Optional[int] = None
    taxes_minor: Optional[int] = None
    total_minor: Optional[int] = None
    currency: Optional[str] = None
    provider: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class QuoteResult:
    destination_country: str
    actual_weight_kg: Decimal
    volumetric_weight_kg: Decimal
    billable_weight_kg: Decimal
    currency: str
    offers: list[Offer] = field(default_factory=list)
    duties: Optional[Duties] = None


def _decimal(name: str, value: Any) -> Decimal:
    if isinstance(value, Decimal):
        d = value
    else:
        try:
            # str() keeps 0.1 as 0.1 instead of its binary float expansion
            d = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{name} must be a number", errors=[{"field": name, "message": "must be a number"}])
    if not d.is_finite():
        raise ValidationError(f"{name} must be a number", errors=[{"field": name, "message": "must be a number"}])
    return d


def volumetric_weight(length_cm, width_cm, height_cm) -> Decimal:
    return (_decimal("length_cm", length_cm) * _decimal("width_cm", width_cm) * _decimal("height_cm", height_cm)) / VOLUMETRIC_DIVISOR


def billable_weight(actual_kg, volumetric_kg) -> Decimal:
    """max(actual, volumetric) rounded half-up to 0.01 kg."""
    heavier = max(_decimal("weight_kg", actual_kg), _decimal("volumetric_kg", volumetric_kg))
    return heavier.quantize(WEIGHT_PLACES, rounding=ROUND_HALF_UP)


def apply_multiplier(price_minor_units: int, multiplier) -> int:
    if multiplier is None:
        return price_minor_units
    m = _decimal("multiplier", multiplier)
    if m == ONE:
        return price_minor_units
    return int((Decimal(price_minor_units) * m).quantize(ONE, rounding=ROUND_HALF_UP))


def select_tier(db: Session, country_code: str, carrier: str, service: str, billable_kg: Decimal) -> Optional[RateRow]:
    """Active row with the smallest tier that still covers ``billable_kg``.

    Tiers are inclusive: a 2 kg tier covers exactly 2.00 kg.
    """
    return (
        db.query(RateRow)
        .filter(
            RateRow.country_code == country_code,
            RateRow.carrier == carrier,
            RateRow.service == service,
            RateRow.status == RateStatus.ACTIVE,
            RateRow.weight_tier_kg >= billable_kg,
        )
        .order_by(RateRow.weight_tier_kg)
        .first()
    )


def _offer_for(db: Session, setting: ServiceSetting, country: str, billable_kg: Decimal, multiplier: Decimal) -> Optional[Offer]:
    row = select_tier(db, country, setting.carrier, setting.service, billable_kg)
    # A hidden tier is withheld rather than replaced by a pricier one
    if row is None or not row.is_visible_to_customers:
        return None
    return Offer(
        carrier=row.carrier,
        service=row.service,
        display_name=setting.display_name,
        rate_id=row.id,
        weight_tier_kg=row.weight_tier_kg,
        base_price_minor=row.price_minor_units,
        multiplier=multiplier,
        total_price_minor=apply_multiplier(row.price_minor_units, multiplier),
        transit_days_text=row.transit_days_text,
    )


def _estimate_duties(
    estimator: Optional[DutyEstimator], country: str, customs_value_minor: int, currency: str
) -> Duties:
    if estimator is None:
        return Duties(available=False, reason="duty estimation is not configured")
    try:
        est = estimator.estimate(country, customs_value_minor, currency)
    except DutyServiceUnavailable as e:
        logger.warning("Duty estimate unavailable for %s: %s", country, e)
        return Duties(available=False, reason=str(e))
    except Exception:
        logger.exception("Duty estimator failed for %s", country)
        return Duties(available=False, reason="duty estimation failed")
    return Duties(
        available=True,
        duties_minor=est.duties_minor,
        taxes_minor=est.taxes_minor,
        total_minor=est.total_minor,
        currency=est.currency,
        provider=est.provider,
    )


def compute_quote(
    db: Session,
    destination_country: str,
    length_cm,
    width_cm,
    height_cm,
    weight_kg,
    multiplier=None,
    customs_value_minor: Optional[int] = None,
    duty_estimator: Optional[DutyEstimator] = None,
) -> QuoteResult:
    """Price a parcel against every customer-visible carrier service.

    One offer per active service setting that has a covering tier for the
    destination, ordered by the setting's ``sort_order``. An empty offer list
    is a valid answer. Duties are only estimated for international parcels
    with a customs value; a failing duty service yields
    ``duties.available=False`` and never affects the shipping prices.
    """
    errors = []
    country = normalize_country_code(destination_country)
    if country is None:
        errors.append({"field": "destination_country", "message": f"unknown country {destination_country!r}"})
    dims = {
        "length_cm": _decimal("length_cm", length_cm),
        "width_cm": _decimal("width_cm", width_cm),
        "height_cm": _decimal("height_cm", height_cm),
        "weight_kg": _decimal("weight_kg", weight_kg),
    }
    for name, value in dims.items():
        if value <= 0:
            errors.append({"field": name, "message": "must be greater than zero"})
    m = ONE if multiplier is None else _decimal("multiplier", multiplier)
    if m <= 0:
        errors.append({"field": "multiplier", "message": "must be greater than zero"})
    if customs_value_minor is not None and customs_value_minor < 0:
        errors.append({"field": "customs_value_minor", "message": "must not be negative"})
    if errors:
        raise ValidationError("Invalid quote request", errors=errors)

    volumetric = volumetric_weight(dims["length_cm"], dims["width_cm"], dims["height_cm"])
    billable = billable_weight(dims["weight_kg"], volumetric)

    offers = []
    for setting in list_service_settings(db, active_only=True):
        offer = _offer_for(db, setting, country, billable, m)
        if offer is not None:
            offers.append(offer)

    logger.debug(
        "Quote %s: actual=%skg volumetric=%skg billable=%skg -> %d offer(s)",
        country, dims["weight_kg"], volumetric, billable, len(offers),
    )

    duties = None
    if customs_value_minor is not None and country != settings.origin_country:
        duties = _estimate_duties(duty_estimator, country, customs_value_minor, settings.currency)

    return QuoteResult(
        destination_country=country,
        actual_weight_kg=dims["weight_kg"],
        volumetric_weight_kg=volumetric.quantize(WEIGHT_PLACES, rounding=ROUND_HALF_UP),
        billable_weight_kg=billable,
        currency=settings.currency,
        offers=offers,
        duties=duties,
    )
