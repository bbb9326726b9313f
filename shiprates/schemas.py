from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Any

from pydantic import BaseModel, ConfigDict, Field

class RateStatus(str, Enum):
    pending = "pending"
    active = "active"
    disabled = "disabled"

class BatchStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"

# Ingest payload fields are loose on purpose: the ingestion step reports every
# bad row at once instead of failing on the first type error.
class IngestRow(BaseModel):
    country_code: Optional[str] = None
    country_name: Optional[str] = None
    weight_tier_kg: Optional[Decimal] = None
    carrier: Optional[str] = None
    service: Optional[str] = None
    price_minor_units: Optional[int] = None
    transit_days_text: Optional[str] = None
    scraped_at: Optional[datetime] = None

class IngestRequest(BaseModel):
    rows: List[IngestRow]
    source: str = "chrome-extension"
    country_code: Optional[str] = None
    notes: Optional[str] = None
    scraped_at: Optional[datetime] = None

class IngestResponse(BaseModel):
    batch_id: int
    accepted: int

class Batch(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    country_code: Optional[str] = None
    total_prices: int
    approved_prices: int
    skipped_prices: int
    status: BatchStatus
    source: str
    notes: Optional[str] = None
    scraped_at: datetime
    processed_at: Optional[datetime] = None
    processed_by: Optional[int] = None

class BatchList(BaseModel):
    batches: List[Batch]
    total: int

class ApproveRequest(BaseModel):
    replace_existing: bool = True
    admin_id: Optional[int] = None

class ApproveResponse(BaseModel):
    approved_count: int
    skipped_count: int

class RejectRequest(BaseModel):
    reason: Optional[str] = None
    admin_id: Optional[int] = None

class RateRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    country_code: str
    country_name: str
    weight_tier_kg: Decimal
    carrier: str
    service: str
    price_minor_units: int
    transit_days_text: Optional[str] = None
    status: RateStatus
    is_visible_to_customers: bool
    batch_id: Optional[int] = None
    scraped_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime

class RatePage(BaseModel):
    prices: List[RateRow]
    total: int
    page: int
    total_pages: int

class RateUpdate(BaseModel):
    price_minor_units: Optional[int] = None
    transit_days_text: Optional[str] = None
    is_visible_to_customers: Optional[bool] = None
    admin_id: Optional[int] = None
    reason: Optional[str] = None

class AuditEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    rate_id: int
    action: str
    previous_value: Optional[Any] = None
    new_value: Optional[Any] = None
    actor_id: Optional[int] = None
    reason: Optional[str] = None
    created_at: datetime

class CountrySummary(BaseModel):
    country_code: str
    country_name: str
    price_count: int

class RateStatistics(BaseModel):
    total_active: int
    total_pending: int
    total_countries: int
    total_carriers: int
    last_updated: Optional[datetime] = None

class ServiceSettingIn(BaseModel):
    carrier: str = Field(min_length=1, max_length=64)
    service: str = Field(min_length=1, max_length=64)
    display_name: str = Field(min_length=1, max_length=128)
    is_active: bool = True
    sort_order: int = 0

class ServiceSettingUpdate(BaseModel):
    carrier: Optional[str] = Field(default=None, min_length=1, max_length=64)
    service: Optional[str] = Field(default=None, min_length=1, max_length=64)
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None

class ServiceSetting(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    carrier: str
    service: str
    display_name: str
    is_active: bool
    sort_order: int

class QuoteRequest(BaseModel):
    destination_country: str
    length_cm: Decimal
    width_cm: Decimal
    height_cm: Decimal
    weight_kg: Decimal
    multiplier: Optional[Decimal] = None
    customs_value_minor: Optional[int] = None

class Offer(BaseModel):
    carrier: str
    service: str
    display_name: str
    rate_id: int
    weight_tier_kg: Decimal
    base_price_minor: int
    multiplier: Decimal
    total_price_minor: int
    transit_days_text: Optional[str] = None

class Duties(BaseModel):
    available: bool
    duties_minor: Optional[int] = None
    taxes_minor: Optional[int] = None
    total_minor: Optional[int] = None
    currency: Optional[str] = None
    provider: Optional[str] = None
    reason: Optional[str] = None

class Quote(BaseModel):
    destination_country: str
    actual_weight_kg: Decimal
    volumetric_weight_kg: Decimal
    billable_weight_kg: Decimal
    currency: str
    offers: List[Offer] = Field(default_factory=list)
    duties: Optional[Duties] = None
