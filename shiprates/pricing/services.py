from __future__ import annotations
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import Conflict, NotFound
from ..models import ServiceSetting, utcnow

logger = logging.getLogger(__name__)

DEFAULT_SERVICES = [
    {"carrier": "UPS", "service": "Express", "display_name": "UPS Express", "sort_order": 1},
    {"carrier": "FEDEX", "service": "Express", "display_name": "FedEx Express", "sort_order": 2},
    {"carrier": "THY", "service": "Ekonomi", "display_name": "THY Economy", "sort_order": 3},
    {"carrier": "ARAMEX", "service": "Express", "display_name": "Aramex Express", "sort_order": 4},
]


def list_service_settings(db: Session, active_only: bool = False) -> list[ServiceSetting]:
    query = db.query(ServiceSetting)
    if active_only:
        query = query.filter(ServiceSetting.is_active == True)  # noqa: E712
    return query.order_by(ServiceSetting.sort_order, ServiceSetting.carrier, ServiceSetting.service).all()


def get_service_setting(db: Session, setting_id: int) -> ServiceSetting:
    setting = db.get(ServiceSetting, setting_id)
    if setting is None:
        raise NotFound(f"Service setting #{setting_id} not found")
    return setting


def _find(db: Session, carrier: str, service: str) -> Optional[ServiceSetting]:
    return (
        db.query(ServiceSetting)
        .filter(ServiceSetting.carrier == carrier, ServiceSetting.service == service)
        .first()
    )


def create_service_setting(
    db: Session,
    carrier: str,
    service: str,
    display_name: str,
    is_active: bool = True,
    sort_order: int = 0,
) -> ServiceSetting:
    carrier, service = carrier.strip(), service.strip()
    if _find(db, carrier, service):
        raise Conflict(f"Service setting for {carrier} {service} already exists")
    setting = ServiceSetting(
        carrier=carrier,
        service=service,
        display_name=display_name.strip(),
        is_active=is_active,
        sort_order=sort_order,
    )
    db.add(setting)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise Conflict(f"Service setting for {carrier} {service} already exists") from e
    db.refresh(setting)
    return setting


def update_service_setting(
    db: Session,
    setting_id: int,
    display_name: Optional[str] = None,
    is_active: Optional[bool] = None,
    sort_order: Optional[int] = None,
    carrier: Optional[str] = None,
    service: Optional[str] = None,
) -> ServiceSetting:
    setting = get_service_setting(db, setting_id)
    new_carrier = carrier.strip() if carrier is not None else setting.carrier
    new_service = service.strip() if service is not None else setting.service
    if (new_carrier, new_service) != (setting.carrier, setting.service):
        other = _find(db, new_carrier, new_service)
        if other is not None and other.id != setting.id:
            raise Conflict(f"Service setting for {new_carrier} {new_service} already exists")
        setting.carrier, setting.service = new_carrier, new_service
    if display_name is not None:
        setting.display_name = display_name.strip()
    if is_active is not None:
        setting.is_active = is_active
    if sort_order is not None:
        setting.sort_order = sort_order
    setting.updated_at = utcnow()
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise Conflict(f"Service setting for {new_carrier} {new_service} already exists") from e
    db.refresh(setting)
    return setting


def set_service_active(db: Session, setting_id: int, is_active: bool) -> ServiceSetting:
    return update_service_setting(db, setting_id, is_active=is_active)


def upsert_service_setting(
    db: Session,
    carrier: str,
    service: str,
    display_name: str,
    is_active: bool = True,
    sort_order: int = 0,
) -> ServiceSetting:
    existing = _find(db, carrier.strip(), service.strip())
    if existing:
        return update_service_setting(
            db, existing.id, display_name=display_name, is_active=is_active, sort_order=sort_order
        )
    return create_service_setting(db, carrier, service, display_name, is_active, sort_order)


def delete_service_setting(db: Session, setting_id: int) -> None:
    setting = get_service_setting(db, setting_id)
    db.delete(setting)
    db.commit()


def seed_default_service_settings(db: Session) -> list[ServiceSetting]:
    """Create or refresh the default carrier services. Safe to run repeatedly."""
    seeded = [upsert_service_setting(db, is_active=True, **defaults) for defaults in DEFAULT_SERVICES]
    logger.info("Seeded %d default service settings", len(seeded))
    return seeded
