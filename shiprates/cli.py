from pathlib import Path

import typer
from sqlalchemy.orm import Session

from .db import Base, engine, SessionLocal
from .errors import PricingError, ValidationError
from .logging_config import configure_logging
from .models import BatchStatus
from .etl.scrape_import import import_scraped_file
from .pricing import approval, batches, rates, services
from .pricing.duties import get_duty_estimator
from .pricing.quote import compute_quote

app = typer.Typer(help="Carrier rate ingestion, approval and quoting")


@app.callback()
def main(log_level: str = typer.Option(None, "--log-level", help="Override SHIPRATES_LOG_LEVEL")):
    configure_logging(log_level)


def _fail(exc: PricingError) -> None:
    typer.echo(f"Error: {exc}", err=True)
    if isinstance(exc, ValidationError):
        for e in exc.errors:
            typer.echo(f"  row {e.get('row')}: {e.get('field')}: {e.get('message')}", err=True)
    raise typer.Exit(code=1)


def _money(minor: int) -> str:
    return f"{minor // 100}.{minor % 100:02d}"


@app.command("init-db")
def init_db():
    """Create all tables."""
    Base.metadata.create_all(bind=engine)
    typer.echo("Database ready.")


@app.command("seed-services")
def seed_services():
    """Create or refresh the default carrier services."""
    Base.metadata.create_all(bind=engine)
    db: Session = SessionLocal()
    try:
        seeded = services.seed_default_service_settings(db)
        for s in seeded:
            typer.echo(f"{s.sort_order:>3}  {s.carrier} {s.service} -> {s.display_name}")
    finally:
        db.close()


@app.command("import-batch")
def import_batch(
    file: Path = typer.Option(..., "--file", help="Scraper JSON export"),
    source: str = typer.Option("chrome-extension", "--source", help="Provenance tag"),
    country: str | None = typer.Option(None, "--country", help="Country the batch covers"),
):
    """Stage a scraped price file as a pending batch."""
    if not file.exists():
        typer.echo(f"File does not exist: {file}", err=True)
        raise typer.Exit(code=1)
    Base.metadata.create_all(bind=engine)
    db: Session = SessionLocal()
    try:
        result = import_scraped_file(db, file, source=source, country_code=country)
        typer.echo(f"Batch #{result.batch_id} staged with {result.accepted} prices (pending approval).")
    except PricingError as e:
        _fail(e)
    finally:
        db.close()


@app.command("list-batches")
def list_batches(
    status: BatchStatus | None = typer.Option(None, "--status", case_sensitive=False),
    limit: int = typer.Option(50, "--limit"),
):
    """Show recent batches."""
    db: Session = SessionLocal()
    try:
        rows, total = batches.list_batches(db, status=status, limit=limit)
        for b in rows:
            typer.echo(
                f"#{b.id:<5} {BatchStatus(b.status).value:<9} {b.total_prices:>5} prices "
                f"{b.approved_prices:>5} approved  {b.source}  {b.scraped_at:%Y-%m-%d %H:%M}"
            )
        typer.echo(f"{len(rows)} of {total} batch(es).")
    finally:
        db.close()


@app.command("approve-batch")
def approve_batch(
    batch_id: int,
    replace: bool = typer.Option(True, "--replace/--no-replace", help="Supersede currently active rates"),
    admin_id: int | None = typer.Option(None, "--admin-id"),
):
    """Promote a pending batch to live rates."""
    db: Session = SessionLocal()
    try:
        result = approval.approve_batch(db, batch_id, replace_existing=replace, admin_id=admin_id)
        msg = f"Batch #{batch_id} approved: {result.approved_count} prices activated"
        if result.skipped_count:
            msg += f", {result.skipped_count} skipped (already active)"
        typer.echo(msg + ".")
    except PricingError as e:
        _fail(e)
    finally:
        db.close()


@app.command("reject-batch")
def reject_batch(
    batch_id: int,
    reason: str | None = typer.Option(None, "--reason"),
    admin_id: int | None = typer.Option(None, "--admin-id"),
):
    """Reject a pending batch; live rates are untouched."""
    db: Session = SessionLocal()
    try:
        approval.reject_batch(db, batch_id, reason=reason, admin_id=admin_id)
        typer.echo(f"Batch #{batch_id} rejected.")
    except PricingError as e:
        _fail(e)
    finally:
        db.close()


@app.command("quote")
def quote(
    country: str,
    length: str,
    width: str,
    height: str,
    weight: str,
    multiplier: str | None = typer.Option(None, "--multiplier"),
    customs_value: int | None = typer.Option(None, "--customs-value", help="Declared value in minor units"),
):
    """Price a parcel (cm / kg) against live rates."""
    db: Session = SessionLocal()
    try:
        result = compute_quote(
            db, country, length, width, height, weight,
            multiplier=multiplier,
            customs_value_minor=customs_value,
            duty_estimator=get_duty_estimator(),
        )
    except PricingError as e:
        _fail(e)
    finally:
        db.close()

    typer.echo(
        f"{result.destination_country}: billable {result.billable_weight_kg} kg "
        f"(actual {result.actual_weight_kg}, volumetric {result.volumetric_weight_kg})"
    )
    if not result.offers:
        typer.echo("No offers available for this destination and weight.")
    for o in result.offers:
        typer.echo(
            f"  {o.display_name:<24} {_money(o.total_price_minor):>10} {result.currency}"
            f"  (tier {o.weight_tier_kg} kg, base {_money(o.base_price_minor)})"
            f"  {o.transit_days_text or ''}"
        )
    if result.duties is not None:
        d = result.duties
        if d.available:
            typer.echo(f"  duties {_money(d.duties_minor)} + taxes {_money(d.taxes_minor)} {d.currency} (estimate)")
        else:
            typer.echo(f"  duties unavailable: {d.reason}")


@app.command("stats")
def stats():
    """Summary of live and pending rates."""
    db: Session = SessionLocal()
    try:
        s = rates.rate_statistics(db)
    finally:
        db.close()
    for key, value in s.items():
        typer.echo(f"{key}: {value}")


if __name__ == "__main__":
    app()
