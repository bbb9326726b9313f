"""Tests for the live rate store and service registry."""

from datetime import datetime
from decimal import Decimal

import pytest

from shiprates.errors import Conflict, NotFound, ValidationError
from shiprates.models import AuditAction, RateRow
from shiprates.pricing import rates
from shiprates.pricing import services as registry


class TestListActiveRates:
    @pytest.fixture
    def catalogue(self, publish, make_rate):
        publish([
            make_rate(country="DE", carrier="UPS", weight="1", price=800),
            make_rate(country="DE", carrier="UPS", weight="5", price=2000),
            make_rate(country="DE", carrier="FEDEX", weight="2", price=1100),
            make_rate(country="FR", carrier="UPS", weight="2", price=1200),
        ])

    def test_only_active_rows(self, db, catalogue, stage, make_rate) -> None:
        stage([make_rate(country="IT")])

        page = rates.list_active_rates(db)

        assert page["total"] == 4
        assert {r.country_code for r in page["prices"]} == {"DE", "FR"}

    def test_filters(self, db, catalogue) -> None:
        assert rates.list_active_rates(db, country="de")["total"] == 3
        assert rates.list_active_rates(db, carrier="FEDEX")["total"] == 1
        weights = [r.weight_tier_kg for r in rates.list_active_rates(db, min_weight=Decimal("2"), max_weight=Decimal("4"))["prices"]]
        assert weights == [Decimal("2"), Decimal("2")]

    def test_pagination(self, db, catalogue) -> None:
        first = rates.list_active_rates(db, page=1, limit=3)
        second = rates.list_active_rates(db, page=2, limit=3)

        assert first["total_pages"] == 2
        assert len(first["prices"]) == 3
        assert len(second["prices"]) == 1
        assert second["page"] == 2

    def test_countries_and_carriers(self, db, catalogue) -> None:
        assert rates.countries_with_rates(db) == [
            {"country_code": "FR", "country_name": "France", "price_count": 1},
            {"country_code": "DE", "country_name": "Germany", "price_count": 3},
        ]
        assert rates.carriers_with_rates(db) == ["FEDEX", "UPS"]


class TestAdminEdits:
    def test_update_records_history(self, db, publish, make_rate) -> None:
        publish([make_rate(price=1000)])
        rate = db.query(RateRow).one()

        updated = rates.update_rate(db, rate.id, price_minor_units=1250, admin_id=4, reason="carrier surcharge")

        assert updated.price_minor_units == 1250
        history = rates.rate_history(db, rate.id)
        assert [h.action for h in history] == [AuditAction.UPDATED, AuditAction.APPROVED]
        assert history[0].previous_value["price_minor_units"] == 1000
        assert history[0].new_value["price_minor_units"] == 1250
        assert history[0].actor_id == 4
        assert history[0].reason == "carrier surcharge"

    def test_update_rejects_non_positive_price(self, db, publish, make_rate) -> None:
        publish([make_rate(price=1000)])
        rate = db.query(RateRow).one()

        with pytest.raises(ValidationError):
            rates.update_rate(db, rate.id, price_minor_units=0)
        assert db.get(RateRow, rate.id).price_minor_units == 1000

    def test_delete_keeps_history(self, db, publish, make_rate) -> None:
        publish([make_rate()])
        rate_id = db.query(RateRow).one().id

        rates.delete_rate(db, rate_id, admin_id=2)

        assert db.get(RateRow, rate_id) is None
        history = rates.rate_history(db, rate_id)
        assert history[0].action == AuditAction.DELETED
        assert history[0].new_value is None

    def test_unknown_rate(self, db) -> None:
        with pytest.raises(NotFound):
            rates.get_rate(db, 1)
        with pytest.raises(NotFound):
            rates.rate_history(db, 1)


def test_statistics(db, publish, stage, make_rate) -> None:
    publish([make_rate(country="DE"), make_rate(country="FR", carrier="FEDEX")], scraped_at=datetime(2026, 4, 2))
    stage([make_rate(country="IT")], scraped_at=datetime(2026, 5, 1))

    stats = rates.rate_statistics(db)

    assert stats == {
        "total_active": 2,
        "total_pending": 1,
        "total_countries": 2,
        "total_carriers": 2,
        "last_updated": datetime(2026, 4, 2),
    }


def test_statistics_on_empty_store(db) -> None:
    stats = rates.rate_statistics(db)
    assert stats["total_active"] == 0
    assert stats["last_updated"] is None


class TestServiceSettings:
    def test_duplicate_carrier_service_conflicts(self, db, services) -> None:
        with pytest.raises(Conflict):
            registry.create_service_setting(db, "UPS", "Express", "Again")

    def test_list_orders_and_filters(self, db, services) -> None:
        registry.set_service_active(db, services[0].id, False)

        assert [s.carrier for s in registry.list_service_settings(db)] == ["UPS", "FEDEX"]
        assert [s.carrier for s in registry.list_service_settings(db, active_only=True)] == ["FEDEX"]

    def test_upsert_updates_in_place(self, db, services) -> None:
        setting = registry.upsert_service_setting(db, "UPS", "Express", "UPS Worldwide", sort_order=9)

        assert setting.id == services[0].id
        assert setting.display_name == "UPS Worldwide"
        assert setting.sort_order == 9

    def test_seed_is_idempotent(self, db) -> None:
        first = registry.seed_default_service_settings(db)
        second = registry.seed_default_service_settings(db)

        assert [s.id for s in first] == [s.id for s in second]
        assert [(s.carrier, s.service) for s in second] == [
            ("UPS", "Express"),
            ("FEDEX", "Express"),
            ("THY", "Ekonomi"),
            ("ARAMEX", "Express"),
        ]

    def test_delete_and_missing(self, db, services) -> None:
        registry.delete_service_setting(db, services[1].id)

        with pytest.raises(NotFound):
            registry.get_service_setting(db, services[1].id)

    def test_update_can_rename_carrier_and_service(self, db, services) -> None:
        setting = registry.update_service_setting(db, services[0].id, carrier="UPS", service="Saver")

        assert (setting.carrier, setting.service) == ("UPS", "Saver")
        assert setting.display_name == "UPS Express"

    def test_rename_onto_existing_pair_conflicts(self, db, services) -> None:
        with pytest.raises(Conflict):
            registry.update_service_setting(db, services[1].id, carrier="UPS")

        db.expire_all()
        assert registry.get_service_setting(db, services[1].id).carrier == "FEDEX"
