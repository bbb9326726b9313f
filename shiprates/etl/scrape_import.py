from __future__ import annotations
import json
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from pathlib import Path
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..errors import ValidationError
from ..pricing.ingest import IngestResult, ingest_batch

logger = logging.getLogger(__name__)

CENTS = Decimal(100)


def _parse_decimal(s: Any) -> Optional[Decimal]:
    """Parse 158.60, "158.60", "158,60" or "1.234,50" into a Decimal."""
    if s is None or isinstance(s, bool):
        return None
    if isinstance(s, (int, float, Decimal)):
        return Decimal(str(s))
    s = str(s).strip().replace("\xa0", "").replace(" ", "")
    if not s:
        return None
    if "," in s:
        # decimal comma; dots are thousands separators
        s = s.replace(".", "").replace(",", ".")
    try:
        return Decimal(s)
    except InvalidOperation:
        return None


def _parse_timestamp(s: Any) -> Optional[datetime]:
    if not s:
        return None
    try:
        dt = datetime.fromisoformat(str(s).replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def to_minor_units(price: Any) -> Optional[int]:
    amount = _parse_decimal(price)
    if amount is None or not amount.is_finite():
        return None
    return int((amount * CENTS).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def load_scraped_rows(path: Path) -> list[dict]:
    """Convert the scraper's JSON export into ingest rows.

    Accepts a bare list or ``{"prices": [...]}``. Each entry looks like::

        {"country": "DE", "countryName": "Germany", "weight": 2.5,
         "carrier": "UPS", "service": "Express", "price": "158,60",
         "currency": "USD", "transitDays": "2-4", "timestamp": "..."}

    Prices are in major units and are converted to minor units half-up.
    Malformed values are passed through as None so ingestion reports them
    alongside every other problem in the file.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    entries = data.get("prices", []) if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise ValidationError(f"{path}: expected a list of prices")

    currency_errors = []
    rows = []
    for idx, p in enumerate(entries):
        if not isinstance(p, dict):
            currency_errors.append({"row": idx, "field": None, "message": "entry is not an object"})
            continue
        currency = str(p.get("currency") or settings.currency).strip().upper()
        if currency != settings.currency:
            currency_errors.append({
                "row": idx,
                "field": "currency",
                "message": f"expected {settings.currency}, got {currency}",
            })
        rows.append({
            "country_code": p.get("country"),
            "country_name": p.get("countryName"),
            "weight_tier_kg": _parse_decimal(p.get("weight")),
            "carrier": p.get("carrier"),
            "service": p.get("service") or "Standard",
            "price_minor_units": to_minor_units(p.get("price")),
            "transit_days_text": p.get("transitDays"),
            "scraped_at": _parse_timestamp(p.get("timestamp")),
        })
    if currency_errors:
        raise ValidationError(f"{path}: {len(currency_errors)} problem(s)", errors=currency_errors)
    return rows


def import_scraped_file(
    db: Session,
    path: Path,
    source: str = "chrome-extension",
    country_code: Optional[str] = None,
) -> IngestResult:
    rows = load_scraped_rows(path)
    logger.info("Read %d scraped prices from %s", len(rows), path)
    # The batch is as old as its oldest price
    stamps = [r["scraped_at"] for r in rows if r["scraped_at"]]
    return ingest_batch(
        db,
        rows,
        source=source,
        country_code=country_code,
        notes=f"imported from {path.name}",
        scraped_at=min(stamps) if stamps else None,
    )
