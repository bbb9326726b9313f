"""Batch approval state machine.

A batch moves exactly once from ``pending`` to ``approved`` or ``rejected``.
Approval promotes the batch's staged rows to ``active`` and, when asked to,
disables the rows they supersede. Both happen in one transaction so a quote
running concurrently sees either the old or the new row for every promotion
key, never none and never two.

Nothing here retries. A failed approval rolls back completely and leaves the
batch pending for an admin to try again.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import Conflict, NotFound, PricingError
from ..models import AuditAction, Batch, BatchStatus, RateRow, RateStatus, utcnow
from .audit import record_audit

logger = logging.getLogger(__name__)


@dataclass
class ApprovalResult:
    batch_id: int
    approved_count: int
    skipped_count: int


def _load_pending_batch(db: Session, batch_id: int) -> Batch:
    batch = db.query(Batch).filter(Batch.id == batch_id).with_for_update().first()
    if batch is None:
        raise NotFound(f"Batch #{batch_id} not found")
    if batch.status != BatchStatus.PENDING:
        raise Conflict(f"Batch #{batch_id} is already {BatchStatus(batch.status).value}")
    return batch


def _claim_batch(db: Session, batch_id: int, **values) -> None:
    # Conditional on status so two concurrent decisions cannot both land
    claimed = (
        db.query(Batch)
        .filter(Batch.id == batch_id, Batch.status == BatchStatus.PENDING)
        .update(values, synchronize_session=False)
    )
    if claimed != 1:
        raise Conflict(f"Batch #{batch_id} was processed concurrently")


def _active_rows_for(db: Session, staged: list[RateRow]) -> dict[tuple, RateRow]:
    countries = {r.country_code for r in staged}
    carriers = {r.carrier for r in staged}
    candidates = (
        db.query(RateRow)
        .filter(
            RateRow.status == RateStatus.ACTIVE,
            RateRow.country_code.in_(countries),
            RateRow.carrier.in_(carriers),
        )
        .all()
    )
    wanted = {r.promotion_key for r in staged}
    return {r.promotion_key: r for r in candidates if r.promotion_key in wanted}


def _refuse_stale_supersede(db: Session, batch: Batch, superseded: Iterable[RateRow]) -> None:
    origin_ids = {r.batch_id for r in superseded if r.batch_id is not None and r.batch_id != batch.id}
    if not origin_ids:
        return
    newer = (
        db.query(Batch.id)
        .filter(Batch.id.in_(origin_ids), Batch.scraped_at > batch.scraped_at)
        .order_by(Batch.id)
        .all()
    )
    if newer:
        ids = ", ".join(f"#{bid}" for (bid,) in newer)
        raise Conflict(
            f"Batch #{batch.id} is older than active rates from batch(es) {ids}; "
            "approve a fresh batch instead"
        )


def approve_batch(
    db: Session,
    batch_id: int,
    replace_existing: bool = True,
    admin_id: Optional[int] = None,
) -> ApprovalResult:
    """Promote a pending batch's rows to live rates.

    With ``replace_existing`` every active row sharing a promotion key with an
    incoming row is disabled in the same transaction. Superseding rates that
    came from a batch scraped later than this one is refused with ``Conflict``.

    Without ``replace_existing`` incoming rows whose key already has an
    active row are skipped (left pending) and counted. That is a partial
    success, not an error.

    Raises:
        NotFound: unknown batch id.
        Conflict: batch not pending, stale supersede, or another approval
            activated an overlapping key first.
    """
    try:
        batch = _load_pending_batch(db, batch_id)
        staged = (
            db.query(RateRow)
            .filter(RateRow.batch_id == batch.id, RateRow.status == RateStatus.PENDING)
            .order_by(RateRow.id)
            .all()
        )
        if not staged:
            raise Conflict(f"Batch #{batch_id} has no staged prices to approve")

        logger.info(
            "Approving batch #%s (%d staged, replace_existing=%s)", batch_id, len(staged), replace_existing
        )
        now = utcnow()
        actives = _active_rows_for(db, staged)

        if replace_existing:
            _refuse_stale_supersede(db, batch, actives.values())
            for old in actives.values():
                previous = old.snapshot()
                old.status = RateStatus.DISABLED
                old.is_visible_to_customers = False
                old.updated_at = now
                record_audit(db, old, AuditAction.DISABLED, previous, admin_id, f"superseded by batch #{batch_id}")
            # Old rows must leave the active index before the new ones enter it
            db.flush()
            promoted, skipped = staged, []
        else:
            promoted = [r for r in staged if r.promotion_key not in actives]
            skipped = [r for r in staged if r.promotion_key in actives]

        for row in promoted:
            previous = row.snapshot()
            row.status = RateStatus.ACTIVE
            row.is_visible_to_customers = True
            row.approved_at = now
            row.approved_by = admin_id
            row.updated_at = now
            record_audit(db, row, AuditAction.APPROVED, previous, admin_id, f"batch #{batch_id}")
        db.flush()

        _claim_batch(
            db,
            batch_id,
            status=BatchStatus.APPROVED,
            approved_prices=len(promoted),
            skipped_prices=len(skipped),
            processed_at=now,
            processed_by=admin_id,
        )
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning("Batch #%s collided with a concurrent promotion: %s", batch_id, e.orig)
        raise Conflict(
            f"Batch #{batch_id} overlaps rates activated by a concurrent approval; batch left pending"
        ) from e
    except PricingError:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        logger.exception("Approval of batch #%s failed; batch left pending", batch_id)
        raise

    if skipped:
        logger.info("Batch #%s: skipped %d price(s) colliding with active rates", batch_id, len(skipped))
    logger.info("Batch #%s approved: %d prices activated", batch_id, len(promoted))
    return ApprovalResult(batch_id=batch_id, approved_count=len(promoted), skipped_count=len(skipped))


def reject_batch(
    db: Session,
    batch_id: int,
    reason: Optional[str] = None,
    admin_id: Optional[int] = None,
) -> None:
    """Close a pending batch without touching live rates.

    Staged rows stay pending for the audit trail; quotes only ever read
    active rows so they are unreachable from here on.
    """
    try:
        _load_pending_batch(db, batch_id)
        _claim_batch(
            db,
            batch_id,
            status=BatchStatus.REJECTED,
            notes=reason,
            processed_at=utcnow(),
            processed_by=admin_id,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Batch #%s rejected", batch_id)
