"""
Tests for the fare pricing engine: dynamic pricing, taxes and fees,
promotional codes and quotes.

The pinned clock is 45 days before the world's departures, so quotes on
an empty fare get only the low-demand discount of 10%.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from flightbook.database.models import Fare, PromotionalCode, TaxFee
from flightbook.exceptions import (
    BadRequestError,
    ConflictError,
    InsufficientInventoryError,
    InvalidPromoCodeError,
    NotFoundError,
)
from flightbook.models.enums import (
    FareClass,
    PromoCodeStatus,
    PromoCodeType,
    TaxCalculationType,
    TaxFeeType,
)
from flightbook.models.pricing import PromotionalCodeCreate
from flightbook.services.pricing import FarePricingEngine, days_until, occupancy
from flightbook.utils.config import PricingPolicy, PricingTier

from .conftest import NOW


def _promo(code, **overrides):
    data = {
        "code": code,
        "name": f"{code} promotion",
        "type": PromoCodeType.PERCENTAGE,
        "discount_value": Decimal("10"),
        "valid_from": NOW - timedelta(days=1),
        "valid_to": NOW + timedelta(days=30),
    }
    data.update(overrides)
    return PromotionalCodeCreate(**data)


class TestPriceComponents:
    """Pure calculations on unsaved fare and tax rows."""

    @pytest.mark.parametrize("booked, available, days, adjustment, expected", [
        (9, 1, 3, "0", "135.00"),     # high demand, last week
        (7, 3, 10, "0", "118.00"),    # moderate demand, two weeks out
        (8, 2, 30, "0", "110.00"),    # exactly 0.8 is not high demand
        (5, 5, 30, "0", "100.00"),    # neutral
        (1, 9, 90, "0", "85.00"),     # low demand, far out
        (0, 0, 30, "0", "90.00"),     # empty class counts as zero occupancy
        (5, 5, 30, "25.50", "125.50"),
        (5, 5, 30, "-200", "0"),      # floored at zero
    ])
    def test_dynamic_price(self, db, booked, available, days, adjustment, expected):
        engine = FarePricingEngine(db)
        fare = Fare(
            base_fare=Decimal("100.00"),
            dynamic_price_adjustment=Decimal(adjustment),
            booked_seats=booked,
            available_seats=available,
        )
        price = engine.calculate_dynamic_price(fare, NOW + timedelta(days=days), NOW)
        assert price == Decimal(expected)

    def test_custom_policy(self, db):
        policy = PricingPolicy(
            demand_tiers=[PricingTier(comparison="gt", threshold=0.5, rate=Decimal("0.50"))],
            departure_tiers=[],
        )
        engine = FarePricingEngine(db, policy=policy)
        fare = Fare(base_fare=Decimal("100"), dynamic_price_adjustment=Decimal("0"),
                    booked_seats=6, available_seats=4)
        assert engine.calculate_dynamic_price(fare, NOW + timedelta(days=3), NOW) == Decimal("150.00")

    def test_occupancy_and_days(self):
        assert occupancy(3, 1) == 0.75
        assert occupancy(0, 0) == 0.0
        assert days_until(NOW + timedelta(days=2, hours=1), NOW) == 3
        assert days_until(NOW + timedelta(days=2), NOW) == 2

    def test_taxes_and_fees(self):
        tax_fees = [
            TaxFee(type=TaxFeeType.AIRPORT_TAX, name="Airport tax",
                   calculation_type=TaxCalculationType.FIXED, amount=Decimal("10.00"), is_active=True),
            TaxFee(type=TaxFeeType.SECURITY_FEE, name="Security",
                   calculation_type=TaxCalculationType.PER_PASSENGER, amount=Decimal("5.60"), is_active=True),
            TaxFee(type=TaxFeeType.FUEL_SURCHARGE, name="Fuel",
                   calculation_type=TaxCalculationType.PERCENTAGE, amount=Decimal("10"),
                   max_amount=Decimal("20.00"), is_active=True),
            TaxFee(type=TaxFeeType.SERVICE_FEE, name="Service",
                   calculation_type=TaxCalculationType.PERCENTAGE, amount=Decimal("1"),
                   min_amount=Decimal("5.00"), is_active=True),
            TaxFee(type=TaxFeeType.OTHER, name="Retired",
                   calculation_type=TaxCalculationType.FIXED, amount=Decimal("99.00"), is_active=False),
        ]

        taxes, fees, lines = FarePricingEngine.calculate_taxes_and_fees(tax_fees, Decimal("270.00"), 2)

        assert taxes == Decimal("31.20")
        assert fees == Decimal("50.00")
        assert [line.amount for line in lines] == [
            Decimal("20.00"), Decimal("11.20"), Decimal("40.00"), Decimal("10.00"),
        ]
        assert [line.is_tax for line in lines] == [True, True, False, False]

    def test_percentage_discount_capped(self):
        promo = PromotionalCode(type=PromoCodeType.PERCENTAGE, discount_value=Decimal("50"),
                                max_discount_amount=Decimal("100.00"))
        assert FarePricingEngine.calculate_discount(promo, Decimal("540.00")) == Decimal("100.00")

    def test_fixed_discount_never_exceeds_amount(self):
        promo = PromotionalCode(type=PromoCodeType.FIXED_AMOUNT, discount_value=Decimal("1000.00"))
        assert FarePricingEngine.calculate_discount(promo, Decimal("540.00")) == Decimal("540.00")


class TestQuote:
    """Quotes against the world fixture."""

    def test_quote_without_charges(self, world, pricing_engine):
        quote = pricing_engine.quote(world.morning, FareClass.ECONOMY, 2)

        assert quote.base_fare == Decimal("300.00")
        assert quote.dynamic_adjustment == Decimal("-30.00")
        assert quote.price_per_passenger == Decimal("270.00")
        assert quote.subtotal == Decimal("540.00")
        assert quote.taxes == Decimal("0")
        assert quote.fees == Decimal("0")
        assert quote.total == Decimal("540.00")
        assert quote.currency == "USD"
        assert quote.quoted_at == NOW

    def test_quote_with_taxes_and_fees(self, world, catalog, pricing_engine):
        catalog.add_tax_fee(world.morning_economy, TaxFeeType.AIRPORT_TAX, "Airport tax",
                            TaxCalculationType.FIXED, Decimal("10.00"))
        catalog.add_tax_fee(world.morning_economy, TaxFeeType.FUEL_SURCHARGE, "Fuel",
                            TaxCalculationType.PERCENTAGE, Decimal("10"), max_amount=Decimal("20.00"))

        quote = pricing_engine.quote(world.morning, FareClass.ECONOMY, 2)

        assert quote.taxes == Decimal("20.00")
        assert quote.fees == Decimal("40.00")
        assert quote.total == Decimal("600.00")
        assert len(quote.charges) == 2

    def test_quote_reflects_demand(self, db, world, ledger, pricing_engine):
        with db.get_session_context() as session:
            ledger.reserve(session, world.morning, 2, FareClass.BUSINESS)

        # business is full now; economy unaffected by the business counters
        quote = pricing_engine.quote(world.morning, FareClass.ECONOMY, 1)
        assert quote.price_per_passenger == Decimal("270.00")

        with db.get_session_context() as session:
            ledger.reserve(session, world.morning, 2, FareClass.ECONOMY)
        quote = pricing_engine.quote(world.morning, FareClass.ECONOMY, 1)
        # 2 of 3 booked: occupancy 0.67 -> +10%
        assert quote.price_per_passenger == Decimal("330.00")

    def test_missing_fare_class(self, world, pricing_engine):
        with pytest.raises(NotFoundError) as exc_info:
            pricing_engine.quote(world.evening, FareClass.BUSINESS, 1)
        assert exc_info.value.message == f"Fare not found for flight {world.evening} with class business"

    def test_insufficient_fare_seats(self, world, pricing_engine):
        with pytest.raises(InsufficientInventoryError) as exc_info:
            pricing_engine.quote(world.morning, FareClass.ECONOMY, 4)
        assert exc_info.value.message == "Insufficient seats available. Available: 3, Requested: 4"

    def test_quote_does_not_touch_inventory(self, db, world, pricing_engine):
        pricing_engine.quote(world.morning, FareClass.ECONOMY, 3)
        with db.get_session_context() as session:
            fare = session.get(Fare, world.morning_economy)
            assert (fare.booked_seats, fare.available_seats) == (0, 3)

    def test_quote_with_percentage_promo(self, world, pricing_engine):
        pricing_engine.create_promo_code(_promo("summer10"))

        quote = pricing_engine.quote(world.morning, FareClass.ECONOMY, 2, promotional_code="summer10")

        assert quote.promotional_code == "SUMMER10"
        assert quote.discount == Decimal("54.00")
        assert quote.total == Decimal("486.00")

    def test_quote_with_fixed_promo_floors_total(self, world, pricing_engine):
        pricing_engine.create_promo_code(_promo(
            "BIGCREDIT", type=PromoCodeType.FIXED_AMOUNT, discount_value=Decimal("5000.00"),
        ))

        quote = pricing_engine.quote(world.morning, FareClass.ECONOMY, 1, promotional_code="BIGCREDIT")

        assert quote.discount == Decimal("270.00")
        assert quote.total == Decimal("0")

    def test_quote_rejects_promo_below_minimum(self, world, pricing_engine):
        pricing_engine.create_promo_code(_promo("BIGSPENDER", min_purchase_amount=Decimal("15000")))

        with pytest.raises(InvalidPromoCodeError) as exc_info:
            pricing_engine.quote(world.morning, FareClass.ECONOMY, 2, promotional_code="BIGSPENDER")

        assert isinstance(exc_info.value, BadRequestError)
        assert exc_info.value.reason.startswith("Minimum purchase amount of 15000")

    def test_fares_for_flight_ordered_by_cabin(self, world, pricing_engine):
        fares = pricing_engine.get_fares_for_flight(world.morning)
        assert [f.fare_class for f in fares] == [FareClass.ECONOMY, FareClass.BUSINESS]

    def test_passenger_count_must_be_positive(self, world, pricing_engine):
        with pytest.raises(BadRequestError):
            pricing_engine.quote(world.morning, FareClass.ECONOMY, 0)


class TestPromoCodes:
    """Validation order, creation and redemption of promotional codes."""

    def test_minimum_purchase_not_met(self, world, pricing_engine):
        pricing_engine.create_promo_code(_promo("BIGSPENDER", min_purchase_amount=Decimal("15000")))

        result = pricing_engine.validate_promo_code("BIGSPENDER", purchase_amount=Decimal("10000"))

        assert result.is_valid is False
        assert result.reason.startswith("Minimum purchase amount")

    def test_minimum_purchase_met(self, world, pricing_engine):
        pricing_engine.create_promo_code(_promo("BIGSPENDER", min_purchase_amount=Decimal("15000")))
        assert pricing_engine.validate_promo_code("bigspender", purchase_amount=Decimal("15000")).is_valid

    def test_unknown_code(self, world, pricing_engine):
        result = pricing_engine.validate_promo_code("NOPE")
        assert result.is_valid is False
        assert result.reason == "Promotional code not found"
        assert result.code == "NOPE"

    def test_validity_window(self, world, pricing_engine):
        pricing_engine.create_promo_code(_promo(
            "LATER", valid_from=NOW + timedelta(days=1), valid_to=NOW + timedelta(days=5),
        ))
        pricing_engine.create_promo_code(_promo(
            "BYGONE", valid_from=NOW - timedelta(days=10), valid_to=NOW - timedelta(days=1),
        ))

        assert pricing_engine.validate_promo_code("LATER").reason == "Promotional code is not yet valid"
        assert pricing_engine.validate_promo_code("BYGONE").reason == "Promotional code has expired"

    def test_inactive_code_checked_before_dates(self, db, world, pricing_engine):
        pricing_engine.create_promo_code(_promo(
            "PAUSED", valid_from=NOW - timedelta(days=10), valid_to=NOW - timedelta(days=1),
        ))
        with db.get_session_context() as session:
            promo = session.query(PromotionalCode).filter_by(code="PAUSED").one()
            promo.status = PromoCodeStatus.INACTIVE

        assert pricing_engine.validate_promo_code("PAUSED").reason == "Promotional code is not active"

    def test_fare_class_restriction(self, world, pricing_engine):
        pricing_engine.create_promo_code(_promo("BIZONLY", applicable_fare_class=FareClass.BUSINESS))

        assert pricing_engine.validate_promo_code("BIZONLY", fare_class=FareClass.BUSINESS).is_valid
        result = pricing_engine.validate_promo_code("BIZONLY", fare_class=FareClass.ECONOMY)
        assert result.reason == "Promotional code not applicable for economy class"

    def test_duplicate_code_conflicts(self, world, pricing_engine):
        pricing_engine.create_promo_code(_promo("ONCE"))
        with pytest.raises(ConflictError):
            pricing_engine.create_promo_code(_promo("once"))

    def test_window_must_be_ordered(self, world, pricing_engine):
        with pytest.raises(BadRequestError):
            pricing_engine.create_promo_code(_promo("BACKWARDS", valid_to=NOW - timedelta(days=2)))

    def test_redeem_until_used_up(self, world, pricing_engine):
        pricing_engine.create_promo_code(_promo("TWICE", max_uses=2))

        assert pricing_engine.redeem_promo_code("TWICE").current_uses == 1
        promo = pricing_engine.redeem_promo_code("twice", booking_id=1)
        assert promo.current_uses == 2
        assert promo.status == PromoCodeStatus.USED_UP

        with pytest.raises(InvalidPromoCodeError):
            pricing_engine.redeem_promo_code("TWICE")

    def test_max_uses_reported_before_status_change(self, db, world, pricing_engine):
        pricing_engine.create_promo_code(_promo("CAPPED", max_uses=1))
        with db.get_session_context() as session:
            promo = session.query(PromotionalCode).filter_by(code="CAPPED").one()
            promo.current_uses = 1

        result = pricing_engine.validate_promo_code("CAPPED")
        assert result.reason == "Promotional code has reached maximum uses"

    def test_per_user_limit(self, world, pricing_engine):
        pricing_engine.create_promo_code(_promo("ONEEACH", max_uses_per_user=1))
        pricing_engine.redeem_promo_code("ONEEACH", user_id="user-1")

        assert pricing_engine.validate_promo_code("ONEEACH", user_id="user-1").is_valid is False
        assert pricing_engine.validate_promo_code("ONEEACH", user_id="user-2").is_valid is True
        with pytest.raises(InvalidPromoCodeError):
            pricing_engine.redeem_promo_code("ONEEACH", user_id="user-1")

    def test_redeem_unknown_code(self, world, pricing_engine):
        with pytest.raises(NotFoundError):
            pricing_engine.redeem_promo_code("GHOST")

    def test_get_and_list(self, world, pricing_engine):
        pricing_engine.create_promo_code(_promo("FIRST"))
        pricing_engine.create_promo_code(_promo("SECOND", max_uses=1))
        pricing_engine.redeem_promo_code("SECOND")

        assert pricing_engine.get_promo_code("first").code == "FIRST"
        assert {p.code for p in pricing_engine.list_promo_codes()} == {"FIRST", "SECOND"}
        assert [p.code for p in pricing_engine.list_promo_codes(active_only=True)] == ["FIRST"]
        with pytest.raises(NotFoundError):
            pricing_engine.get_promo_code("MISSING")
