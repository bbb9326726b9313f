from dataclasses import asdict
from decimal import Decimal

from fastapi import FastAPI, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..db import Base, engine, get_db
from .. import models, schemas
from ..config import settings
from ..errors import Conflict, NotFound, ValidationError
from ..logging_config import configure_logging
from ..pricing import approval, batches, rates, services
from ..pricing.duties import get_duty_estimator
from ..pricing.ingest import ingest_batch
from ..pricing.quote import compute_quote

configure_logging()

app = FastAPI(title="ShipRates API")

# Create tables on startup (dev only). In production, use migrations.
Base.metadata.create_all(bind=engine)


@app.exception_handler(ValidationError)
def _validation_error(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc), "errors": exc.errors})


@app.exception_handler(NotFound)
def _not_found(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(Conflict)
def _conflict(request: Request, exc: Conflict):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.get("/health")
def health():
    return {"status": "ok"}

@app.get("/debug/info")
def debug_info(db: Session = Depends(get_db)):
    return {
        "database_url": settings.database_url,
        "batch_count": db.query(models.Batch).count(),
        "rate_count": db.query(models.RateRow).count(),
        "service_count": db.query(models.ServiceSetting).count(),
        "origin_country": settings.origin_country,
        "currency": settings.currency,
        "duty_api_configured": bool(settings.duty_api_url),
    }

# ---- batches -----------------------------------------------------------

@app.post("/batches", response_model=schemas.IngestResponse, status_code=201)
def create_batch(body: schemas.IngestRequest, db: Session = Depends(get_db)):
    result = ingest_batch(
        db,
        [row.model_dump() for row in body.rows],
        source=body.source,
        country_code=body.country_code,
        notes=body.notes,
        scraped_at=body.scraped_at,
    )
    return schemas.IngestResponse(batch_id=result.batch_id, accepted=result.accepted)

@app.get("/batches", response_model=schemas.BatchList)
def list_batches(
    status: schemas.BatchStatus | None = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    rows, total = batches.list_batches(
        db,
        status=models.BatchStatus(status.value) if status else None,
        limit=limit,
        offset=offset,
    )
    return {"batches": rows, "total": total}

@app.get("/batches/{batch_id}", response_model=schemas.Batch)
def get_batch(batch_id: int, db: Session = Depends(get_db)):
    return batches.get_batch(db, batch_id)

@app.get("/batches/{batch_id}/rates", response_model=list[schemas.RateRow])
def get_batch_rates(batch_id: int, db: Session = Depends(get_db)):
    return batches.batch_rows(db, batch_id)

@app.post("/batches/{batch_id}/approve", response_model=schemas.ApproveResponse)
def approve_batch(batch_id: int, body: schemas.ApproveRequest | None = None, db: Session = Depends(get_db)):
    body = body or schemas.ApproveRequest()
    result = approval.approve_batch(db, batch_id, replace_existing=body.replace_existing, admin_id=body.admin_id)
    return schemas.ApproveResponse(approved_count=result.approved_count, skipped_count=result.skipped_count)

@app.post("/batches/{batch_id}/reject")
def reject_batch(batch_id: int, body: schemas.RejectRequest | None = None, db: Session = Depends(get_db)):
    body = body or schemas.RejectRequest()
    approval.reject_batch(db, batch_id, reason=body.reason, admin_id=body.admin_id)
    return {}

@app.delete("/batches/{batch_id}")
def delete_batch(batch_id: int, db: Session = Depends(get_db)):
    removed = batches.delete_batch(db, batch_id)
    return {"removed_rates": removed}

# ---- rates -------------------------------------------------------------

@app.get("/rates", response_model=schemas.RatePage)
def list_rates(
    country: str | None = None,
    carrier: str | None = None,
    min_weight: Decimal | None = None,
    max_weight: Decimal | None = None,
    page: int = 1,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    return rates.list_active_rates(
        db,
        country=country,
        carrier=carrier,
        min_weight=min_weight,
        max_weight=max_weight,
        page=page,
        limit=limit,
    )

@app.get("/rates/stats", response_model=schemas.RateStatistics)
def rate_stats(db: Session = Depends(get_db)):
    return rates.rate_statistics(db)

@app.get("/rates/countries", response_model=list[schemas.CountrySummary])
def rate_countries(db: Session = Depends(get_db)):
    return rates.countries_with_rates(db)

@app.get("/rates/carriers", response_model=list[str])
def rate_carriers(db: Session = Depends(get_db)):
    return rates.carriers_with_rates(db)

@app.get("/rates/{rate_id}", response_model=schemas.RateRow)
def get_rate(rate_id: int, db: Session = Depends(get_db)):
    return rates.get_rate(db, rate_id)

@app.put("/rates/{rate_id}", response_model=schemas.RateRow)
def update_rate(rate_id: int, body: schemas.RateUpdate, db: Session = Depends(get_db)):
    return rates.update_rate(
        db,
        rate_id,
        price_minor_units=body.price_minor_units,
        transit_days_text=body.transit_days_text,
        is_visible_to_customers=body.is_visible_to_customers,
        admin_id=body.admin_id,
        reason=body.reason,
    )

@app.delete("/rates/{rate_id}")
def delete_rate(rate_id: int, admin_id: int | None = None, db: Session = Depends(get_db)):
    rates.delete_rate(db, rate_id, admin_id=admin_id)
    return {}

@app.get("/rates/{rate_id}/history", response_model=list[schemas.AuditEntry])
def rate_history(rate_id: int, db: Session = Depends(get_db)):
    return rates.rate_history(db, rate_id)

# ---- service settings --------------------------------------------------

@app.get("/service-settings", response_model=list[schemas.ServiceSetting])
def list_service_settings(active_only: bool = False, db: Session = Depends(get_db)):
    return services.list_service_settings(db, active_only=active_only)

@app.post("/service-settings", response_model=schemas.ServiceSetting, status_code=201)
def create_service_setting(body: schemas.ServiceSettingIn, db: Session = Depends(get_db)):
    return services.create_service_setting(db, **body.model_dump())

@app.post("/service-settings/seed", response_model=list[schemas.ServiceSetting])
def seed_service_settings(db: Session = Depends(get_db)):
    return services.seed_default_service_settings(db)

@app.get("/service-settings/{setting_id}", response_model=schemas.ServiceSetting)
def get_service_setting(setting_id: int, db: Session = Depends(get_db)):
    return services.get_service_setting(db, setting_id)

@app.put("/service-settings/{setting_id}", response_model=schemas.ServiceSetting)
def update_service_setting(setting_id: int, body: schemas.ServiceSettingUpdate, db: Session = Depends(get_db)):
    return services.update_service_setting(db, setting_id, **body.model_dump())

@app.delete("/service-settings/{setting_id}")
def delete_service_setting(setting_id: int, db: Session = Depends(get_db)):
    services.delete_service_setting(db, setting_id)
    return {}

# ---- quotes ------------------------------------------------------------

def duty_estimator_dependency():
    return get_duty_estimator()

@app.post("/quotes", response_model=schemas.Quote)
def create_quote(
    body: schemas.QuoteRequest,
    db: Session = Depends(get_db),
    duty_estimator=Depends(duty_estimator_dependency),
):
    result = compute_quote(
        db,
        body.destination_country,
        body.length_cm,
        body.width_cm,
        body.height_cm,
        body.weight_kg,
        multiplier=body.multiplier,
        customs_value_minor=body.customs_value_minor,
        duty_estimator=duty_estimator,
    )
    return schemas.Quote(**asdict(result))
