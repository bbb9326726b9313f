from __future__ import annotations
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..errors import NotFound
from ..models import Batch, BatchStatus, RateRow, RateStatus

logger = logging.getLogger(__name__)


def list_batches(
    db: Session,
    status: Optional[BatchStatus] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Batch], int]:
    """Batches newest scrape first, with the total matching count."""
    query = db.query(Batch)
    if status is not None:
        query = query.filter(Batch.status == status)
    total = query.count()
    rows = (
        query.order_by(Batch.scraped_at.desc(), Batch.id.desc())
        .offset(max(0, offset))
        .limit(max(1, min(limit, 500)))
        .all()
    )
    return rows, total


def get_batch(db: Session, batch_id: int) -> Batch:
    batch = db.get(Batch, batch_id)
    if batch is None:
        raise NotFound(f"Batch #{batch_id} not found")
    return batch


def batch_rows(db: Session, batch_id: int) -> list[RateRow]:
    get_batch(db, batch_id)
    return (
        db.query(RateRow)
        .filter(RateRow.batch_id == batch_id)
        .order_by(RateRow.country_code, RateRow.weight_tier_kg, RateRow.carrier, RateRow.service)
        .all()
    )


def delete_batch(db: Session, batch_id: int) -> int:
    """Delete a batch and the rows it still owns.

    Rows already promoted to active belong to the rate store now and are kept;
    their ``batch_id`` simply points at nothing afterwards. Returns the number
    of rows removed.
    """
    batch = get_batch(db, batch_id)
    try:
        removed = (
            db.query(RateRow)
            .filter(RateRow.batch_id == batch_id, RateRow.status != RateStatus.ACTIVE)
            .delete(synchronize_session=False)
        )
        db.delete(batch)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Deleted batch #%s and %d non-active row(s)", batch_id, removed)
    return removed
