from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy.orm import Session

from ..data.countries import get_country_name, normalize_country_code
from ..errors import ValidationError
from ..models import Batch, BatchStatus, RateRow, RateStatus, utcnow

logger = logging.getLogger(__name__)

MAX_NAME_LEN = 64
MAX_TRANSIT_LEN = 128


@dataclass
class IngestResult:
    batch_id: int
    accepted: int


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        d = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not d.is_finite():
        return None
    return d


def _validate_row(idx: int, row: Mapping[str, Any], default_country: Optional[str], errors: list) -> Optional[dict]:
    def err(field: str, message: str) -> None:
        errors.append({"row": idx, "field": field, "message": message})

    before = len(errors)

    raw_country = row.get("country_code") or default_country
    country = normalize_country_code(raw_country) if isinstance(raw_country, str) else None
    if not raw_country:
        err("country_code", "is required")
    elif not isinstance(raw_country, str):
        err("country_code", f"must be text, got {raw_country!r}")
    elif country is None:
        err("country_code", f"unknown country {raw_country!r}")

    names = {}
    for field in ("carrier", "service"):
        value = row.get(field)
        if value is not None and not isinstance(value, str):
            err(field, f"must be text, got {value!r}")
            continue
        value = (value or "").strip()
        names[field] = value
        if not value:
            err(field, "must not be empty")
        elif len(value) > MAX_NAME_LEN:
            err(field, f"longer than {MAX_NAME_LEN} characters")
    carrier, service = names.get("carrier"), names.get("service")

    weight = _to_decimal(row.get("weight_tier_kg"))
    if weight is None:
        err("weight_tier_kg", "must be a number")
    elif weight <= 0:
        err("weight_tier_kg", "must be greater than zero")
    elif weight.normalize().as_tuple().exponent < -3:
        err("weight_tier_kg", "at most 3 decimal places")

    price = row.get("price_minor_units")
    if isinstance(price, bool) or not isinstance(price, int):
        err("price_minor_units", "must be an integer number of minor units")
    elif price <= 0:
        err("price_minor_units", "must be greater than zero")

    transit = row.get("transit_days_text")
    if transit is not None:
        transit = str(transit).strip() or None
        if transit and len(transit) > MAX_TRANSIT_LEN:
            err("transit_days_text", f"longer than {MAX_TRANSIT_LEN} characters")

    if len(errors) > before:
        return None

    given_name = row.get("country_name")
    given_name = given_name.strip() if isinstance(given_name, str) else ""
    country_name = given_name or get_country_name(country) or country
    return {
        "country_code": country,
        "country_name": country_name,
        "weight_tier_kg": weight,
        "carrier": carrier,
        "service": service,
        "price_minor_units": price,
        "transit_days_text": transit,
        "scraped_at": _naive_utc(row.get("scraped_at")),
    }


def ingest_batch(
    db: Session,
    rows: Iterable[Mapping[str, Any]],
    source: str = "chrome-extension",
    country_code: Optional[str] = None,
    notes: Optional[str] = None,
    scraped_at: Optional[datetime] = None,
) -> IngestResult:
    """Stage a submission of scraped rates as a new pending batch.

    Every row is validated before anything is written. A single bad row
    rejects the whole submission with a ``ValidationError`` listing all
    problems found. Duplicate promotion keys inside one submission are also
    rejected, since approving them would activate two rows for one key.

    Live rates are never touched here.
    """
    rows = list(rows)
    errors: list[dict] = []

    batch_country = None
    if country_code:
        batch_country = normalize_country_code(country_code)
        if batch_country is None:
            errors.append({"row": None, "field": "country_code", "message": f"unknown country {country_code!r}"})
    if not rows:
        errors.append({"row": None, "field": "rows", "message": "submission contains no rows"})

    clean: list[dict] = []
    seen: dict[tuple, int] = {}
    for idx, row in enumerate(rows):
        values = _validate_row(idx, row, batch_country, errors)
        if values is None:
            continue
        key = (values["country_code"], values["carrier"], values["service"], values["weight_tier_kg"])
        if key in seen:
            errors.append({
                "row": idx,
                "field": "weight_tier_kg",
                "message": f"duplicates row {seen[key]} for the same country/carrier/service/weight",
            })
            continue
        seen[key] = idx
        clean.append(values)

    if errors:
        logger.warning("Rejected ingest from %s: %d problem(s) in %d row(s)", source, len(errors), len(rows))
        raise ValidationError(f"Submission rejected: {len(errors)} problem(s)", errors=errors)

    batch_scraped_at = _naive_utc(scraped_at) or utcnow()
    try:
        batch = Batch(
            country_code=batch_country,
            total_prices=len(clean),
            status=BatchStatus.PENDING,
            source=source,
            notes=notes,
            scraped_at=batch_scraped_at,
        )
        db.add(batch)
        db.flush()

        for values in clean:
            db.add(
                RateRow(
                    status=RateStatus.PENDING,
                    is_visible_to_customers=False,
                    batch_id=batch.id,
                    scraped_at=values.pop("scraped_at") or batch_scraped_at,
                    **values,
                )
            )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Created batch #%s with %d prices from %s", batch.id, len(clean), source)
    return IngestResult(batch_id=batch.id, accepted=len(clean))
