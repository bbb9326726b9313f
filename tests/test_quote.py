"""Tests for the quote calculator."""

from decimal import Decimal

import pytest

from shiprates.errors import DutyServiceUnavailable, ValidationError
from shiprates.models import RateRow
from shiprates.pricing.duties import DutyEstimate
from shiprates.pricing.quote import (
    apply_multiplier,
    billable_weight,
    compute_quote,
    volumetric_weight,
)
from shiprates.pricing.rates import update_rate
from shiprates.pricing.services import update_service_setting


class FailingEstimator:
    def __init__(self):
        self.calls = 0

    def estimate(self, destination_country, customs_value_minor, currency):
        self.calls += 1
        raise DutyServiceUnavailable("upstream timed out")


class FixedEstimator:
    def __init__(self):
        self.calls = []

    def estimate(self, destination_country, customs_value_minor, currency):
        self.calls.append((destination_country, customs_value_minor, currency))
        return DutyEstimate(duties_minor=1250, taxes_minor=980, currency=currency, provider="fake")


class TestWeights:
    def test_volumetric_weight(self) -> None:
        assert volumetric_weight(30, 20, 15) == Decimal("1.8")

    def test_billable_takes_actual_when_heavier(self) -> None:
        volumetric = volumetric_weight(30, 20, 15)
        assert billable_weight(2, volumetric) == Decimal("2.00")

    def test_billable_takes_volumetric_when_heavier(self) -> None:
        # 50*40*30/5000 = 12
        assert billable_weight(3, volumetric_weight(50, 40, 30)) == Decimal("12.00")

    def test_billable_rounds_half_up(self) -> None:
        assert billable_weight("1.005", 0) == Decimal("1.01")
        assert billable_weight("1.004", 0) == Decimal("1.00")

    def test_float_inputs_do_not_leak_binary_noise(self) -> None:
        assert billable_weight(0.1 + 0.2, 0) == Decimal("0.30")


class TestMultiplier:
    def test_exact_one_and_a_half(self) -> None:
        assert apply_multiplier(1000, Decimal("1.5")) == 1500

    def test_exact_over_many_repetitions(self) -> None:
        results = {apply_multiplier(1000, 1.5) for _ in range(10_000)}
        assert results == {1500}

    def test_rounds_to_nearest_cent_half_up(self) -> None:
        assert apply_multiplier(999, Decimal("1.15")) == 1149  # 1148.85
        assert apply_multiplier(1001, Decimal("0.5")) == 501  # 500.5

    def test_none_and_one_leave_price_alone(self) -> None:
        assert apply_multiplier(1234, None) == 1234
        assert apply_multiplier(1234, 1) == 1234


class TestTierSelection:
    def test_selects_smallest_covering_tier(self, db, publish, make_rate, services) -> None:
        publish([
            make_rate(weight="1", price=800),
            make_rate(weight="2", price=1000),
            make_rate(weight="5", price=2000),
        ])

        result = compute_quote(db, "DE", 10, 10, 10, "1.5")

        assert [o.weight_tier_kg for o in result.offers] == [Decimal("2")]
        assert result.offers[0].base_price_minor == 1000

    def test_boundary_is_inclusive(self, db, publish, make_rate, services) -> None:
        publish([make_rate(weight="1", price=800), make_rate(weight="2", price=1000)])

        result = compute_quote(db, "DE", 30, 20, 15, 2)

        assert result.billable_weight_kg == Decimal("2.00")
        assert result.offers[0].weight_tier_kg == Decimal("2")

    def test_uses_volumetric_weight(self, db, publish, make_rate, services) -> None:
        publish([make_rate(weight="2", price=1000), make_rate(weight="15", price=5000)])

        result = compute_quote(db, "DE", 50, 40, 30, 3)

        assert result.volumetric_weight_kg == Decimal("12.00")
        assert result.offers[0].weight_tier_kg == Decimal("15")

    def test_heavier_than_all_tiers_omits_offer(self, db, publish, make_rate, services) -> None:
        publish([make_rate(weight="2"), make_rate(carrier="FEDEX", weight="30", price=9000)])

        result = compute_quote(db, "DE", 10, 10, 10, 20)

        assert [o.carrier for o in result.offers] == ["FEDEX"]

    def test_unknown_destination_has_no_offers(self, db, publish, make_rate, services) -> None:
        publish([make_rate(country="DE")])

        result = compute_quote(db, "FR", 10, 10, 10, 1)

        assert result.offers == []
        assert result.destination_country == "FR"

    def test_pending_rows_are_never_quoted(self, db, stage, make_rate, services) -> None:
        stage([make_rate()])

        assert compute_quote(db, "DE", 10, 10, 10, 1).offers == []

    def test_hidden_tier_is_withheld_not_upgraded(self, db, publish, make_rate, services) -> None:
        publish([make_rate(weight="2", price=1000), make_rate(weight="5", price=2000)])
        two_kg = db.query(RateRow).filter(RateRow.weight_tier_kg == Decimal("2")).one()
        update_rate(db, two_kg.id, is_visible_to_customers=False)

        assert compute_quote(db, "DE", 10, 10, 10, "1.5").offers == []


class TestServiceVisibility:
    def test_inactive_services_are_filtered(self, db, publish, make_rate, services) -> None:
        publish([make_rate(carrier="UPS"), make_rate(carrier="FEDEX")])
        update_service_setting(db, services[0].id, is_active=False)

        result = compute_quote(db, "DE", 10, 10, 10, 1)

        assert [o.carrier for o in result.offers] == ["FEDEX"]

    def test_rates_without_a_service_setting_are_not_offered(self, db, publish, make_rate, services) -> None:
        publish([make_rate(carrier="DHL")])

        assert compute_quote(db, "DE", 10, 10, 10, 1).offers == []

    def test_offers_follow_sort_order(self, db, publish, make_rate, services) -> None:
        publish([make_rate(carrier="UPS", price=500), make_rate(carrier="FEDEX", price=900)])
        update_service_setting(db, services[0].id, sort_order=10)

        result = compute_quote(db, "DE", 10, 10, 10, 1)

        assert [o.carrier for o in result.offers] == ["FEDEX", "UPS"]
        assert result.offers[0].display_name == "FedEx Express"

    def test_settings_are_read_live(self, db, publish, make_rate, services) -> None:
        publish([make_rate(carrier="UPS")])
        assert len(compute_quote(db, "DE", 10, 10, 10, 1).offers) == 1

        update_service_setting(db, services[0].id, is_active=False)

        assert compute_quote(db, "DE", 10, 10, 10, 1).offers == []


class TestMultiplierInQuote:
    def test_total_reflects_multiplier(self, db, publish, make_rate, services) -> None:
        publish([make_rate(price=1000, transit_days_text="2-4 days")])

        offer = compute_quote(db, "DE", 10, 10, 10, 1, multiplier="1.5").offers[0]

        assert offer.base_price_minor == 1000
        assert offer.multiplier == Decimal("1.5")
        assert offer.total_price_minor == 1500
        assert offer.transit_days_text == "2-4 days"

    def test_no_multiplier_means_one(self, db, publish, make_rate, services) -> None:
        publish([make_rate(price=1234)])

        offer = compute_quote(db, "DE", 10, 10, 10, 1).offers[0]

        assert offer.multiplier == Decimal(1)
        assert offer.total_price_minor == 1234


class TestDuties:
    def test_duty_failure_keeps_shipping_price(self, db, publish, make_rate, services) -> None:
        publish([make_rate(price=1000)])
        estimator = FailingEstimator()

        result = compute_quote(db, "DE", 10, 10, 10, 1, customs_value_minor=5000, duty_estimator=estimator)

        assert estimator.calls == 1
        assert result.duties.available is False
        assert "timed out" in result.duties.reason
        assert result.offers[0].total_price_minor == 1000

    def test_unexpected_estimator_error_keeps_offers(self, db, publish, make_rate, services) -> None:
        publish([make_rate(price=1000)])

        class BrokenEstimator:
            def estimate(self, destination_country, customs_value_minor, currency):
                raise RuntimeError("duty backend exploded")

        result = compute_quote(db, "DE", 10, 10, 10, 1, customs_value_minor=5000, duty_estimator=BrokenEstimator())

        assert result.duties.available is False
        assert result.duties.reason == "duty estimation failed"
        assert [o.total_price_minor for o in result.offers] == [1000]

    def test_duty_breakdown_is_separate(self, db, publish, make_rate, services) -> None:
        publish([make_rate(price=1000)])
        estimator = FixedEstimator()

        result = compute_quote(db, "DE", 10, 10, 10, 1, customs_value_minor=5000, duty_estimator=estimator)

        assert estimator.calls == [("DE", 5000, "USD")]
        assert result.duties.available is True
        assert result.duties.duties_minor == 1250
        assert result.duties.taxes_minor == 980
        assert result.duties.total_minor == 2230
        assert result.offers[0].total_price_minor == 1000

    def test_no_estimator_configured(self, db, publish, make_rate, services) -> None:
        publish([make_rate()])

        result = compute_quote(db, "DE", 10, 10, 10, 1, customs_value_minor=5000)

        assert result.duties.available is False
        assert result.offers

    def test_domestic_quotes_skip_duties(self, db, services) -> None:
        estimator = FixedEstimator()

        result = compute_quote(db, "TR", 10, 10, 10, 1, customs_value_minor=5000, duty_estimator=estimator)

        assert result.duties is None
        assert estimator.calls == []

    def test_no_customs_value_skips_duties(self, db, services) -> None:
        estimator = FixedEstimator()

        assert compute_quote(db, "DE", 10, 10, 10, 1, duty_estimator=estimator).duties is None
        assert estimator.calls == []


class TestValidation:
    @pytest.mark.parametrize(
        "kwargs, field",
        [
            ({"length_cm": 0}, "length_cm"),
            ({"weight_kg": -1}, "weight_kg"),
            ({"multiplier": 0}, "multiplier"),
            ({"customs_value_minor": -5}, "customs_value_minor"),
            ({"destination_country": "Atlantis"}, "destination_country"),
        ],
    )
    def test_rejects_bad_input(self, db, kwargs, field) -> None:
        args = {
            "destination_country": "DE",
            "length_cm": 10,
            "width_cm": 10,
            "height_cm": 10,
            "weight_kg": 1,
        }
        args.update(kwargs)
        with pytest.raises(ValidationError) as exc:
            compute_quote(db, **args)
        assert field in [e["field"] for e in exc.value.errors]

    def test_non_numeric_dimension(self, db) -> None:
        with pytest.raises(ValidationError):
            compute_quote(db, "DE", "abc", 10, 10, 1)
