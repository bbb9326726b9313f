from __future__ import annotations
from typing import Optional

from sqlalchemy.orm import Session

from ..models import RateAuditLog, AuditAction, RateRow


def record_audit(
    db: Session,
    rate: RateRow,
    action: AuditAction,
    previous: Optional[dict],
    actor_id: Optional[int] = None,
    reason: Optional[str] = None,
) -> RateAuditLog:
    """Append a history entry for ``rate`` in the caller's transaction."""
    new_value = None if action == AuditAction.DELETED else rate.snapshot()
    entry = RateAuditLog(
        rate_id=rate.id,
        action=action,
        previous_value=previous,
        new_value=new_value,
        actor_id=actor_id,
        reason=reason,
    )
    db.add(entry)
    return entry
