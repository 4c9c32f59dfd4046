"""
Fare pricing engine: dynamic fares, taxes and fees, promotional codes.

A quote is built in three steps:

1. Dynamic price. Two adjustments are looked up in the PricingPolicy
   tables, one for the fare-class occupancy and one for the days left
   before departure. Both rates apply to the base fare and are added
   (never compounded) together with the fare's stored manual adjustment.
   The per-passenger price is floored at zero.
2. Taxes and fees. Every active TaxFee on the fare is evaluated for the
   whole party and reported either under taxes or under fees.
3. Promotional discount on subtotal + taxes + fees, with the total
   floored at zero.

Quoting never touches seat counters.
"""

import logging
import math
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, List, Optional, Sequence, Tuple

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from ..database.config import DatabaseConfig
from ..database.models import Fare, PromoRedemption, PromotionalCode, TaxFee
from ..exceptions import (
    BadRequestError,
    ConflictError,
    InsufficientInventoryError,
    InvalidPromoCodeError,
    NotFoundError,
)
from ..models.enums import (
    TAX_BUCKET_TYPES,
    FareClass,
    PromoCodeStatus,
    PromoCodeType,
    TaxCalculationType,
)
from ..models.flight import FareModel
from ..models.pricing import (
    ChargeLine,
    PriceBreakdown,
    PromotionalCodeCreate,
    PromotionalCodeModel,
    PromoValidationResult,
)
from ..utils.config import PricingPolicy

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")

FARE_CLASS_ORDER = {
    FareClass.ECONOMY: 0,
    FareClass.PREMIUM_ECONOMY: 1,
    FareClass.BUSINESS: 2,
    FareClass.FIRST: 3,
}


def money(value: Decimal) -> Decimal:
    """Round a currency amount to cents."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def occupancy(booked_seats: int, available_seats: int) -> float:
    """Booked fraction of a counter pair; 0.0 when it has no seats at all."""
    total = booked_seats + available_seats
    return booked_seats / total if total > 0 else 0.0


def days_until(departure: datetime, now: datetime) -> int:
    """Whole days until departure, rounded up."""
    return math.ceil((departure - now).total_seconds() / 86400)


class FarePricingEngine:
    """
    Quotes fares and manages promotional codes.

    Args:
        db: Database configuration providing sessions
        policy: Threshold tables for dynamic pricing
        clock: Returns the current time; injected so tests can pin it
    """

    def __init__(
        self,
        db: DatabaseConfig,
        policy: Optional[PricingPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.policy = policy or PricingPolicy()
        self.clock = clock or datetime.now
        logger.info("FarePricingEngine initialized")

    # ------------------------------------------------------------------
    # Price components
    # ------------------------------------------------------------------

    def calculate_dynamic_price(self, fare: Fare, departure: datetime, now: datetime) -> Decimal:
        """
        Per-passenger price after demand, time-to-departure and manual adjustments.

        Args:
            fare: Fare whose base fare and class counters drive the price
            departure: Scheduled departure of the fare's flight
            now: Current time

        Returns:
            Price per passenger, never negative
        """
        base = Decimal(fare.base_fare)
        demand_rate = self.policy.demand_rate(occupancy(fare.booked_seats, fare.available_seats))
        departure_rate = self.policy.departure_rate(days_until(departure, now))

        adjustment = Decimal(fare.dynamic_price_adjustment or 0)
        adjustment += base * demand_rate
        adjustment += base * departure_rate

        return max(ZERO, money(base + adjustment))

    @staticmethod
    def calculate_taxes_and_fees(
        tax_fees: Sequence[TaxFee],
        price_per_passenger: Decimal,
        passenger_count: int,
    ) -> Tuple[Decimal, Decimal, List[ChargeLine]]:
        """
        Evaluate the active taxes and fees of a fare for a party.

        FIXED and PER_PASSENGER charges are amount x passengers. PERCENTAGE
        charges take amount percent of the per-passenger price, clamp it to
        [min_amount, max_amount] where set, then multiply by passengers.

        Returns:
            (taxes, fees, charge lines)
        """
        taxes = ZERO
        fees = ZERO
        lines: List[ChargeLine] = []

        for tax_fee in tax_fees:
            if not tax_fee.is_active:
                continue

            amount = Decimal(tax_fee.amount)
            if tax_fee.calculation_type == TaxCalculationType.PERCENTAGE:
                charge = price_per_passenger * amount / Decimal(100)
                if tax_fee.min_amount is not None:
                    charge = max(charge, Decimal(tax_fee.min_amount))
                if tax_fee.max_amount is not None:
                    charge = min(charge, Decimal(tax_fee.max_amount))
                charge = charge * passenger_count
            else:
                # FIXED and PER_PASSENGER are both charged once per passenger
                charge = amount * passenger_count

            charge = money(charge)
            is_tax = tax_fee.type in TAX_BUCKET_TYPES
            if is_tax:
                taxes += charge
            else:
                fees += charge

            lines.append(ChargeLine(name=tax_fee.name, type=tax_fee.type, amount=charge, is_tax=is_tax))

        return money(taxes), money(fees), lines

    @staticmethod
    def calculate_discount(promo: PromotionalCode, amount: Decimal) -> Decimal:
        """Discount a promotional code grants on amount, never more than amount."""
        if promo.type == PromoCodeType.PERCENTAGE:
            discount = amount * Decimal(promo.discount_value) / Decimal(100)
            if promo.max_discount_amount is not None:
                discount = min(discount, Decimal(promo.max_discount_amount))
        else:
            discount = Decimal(promo.discount_value)
        return money(min(discount, amount))

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------

    def quote(
        self,
        flight_id: int,
        fare_class: FareClass,
        passenger_count: int,
        promotional_code: Optional[str] = None,
        currency: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> PriceBreakdown:
        """
        Quote the price of passenger_count seats in one fare class of a flight.

        Raises:
            NotFoundError: If the flight has no active fare for the class
            InsufficientInventoryError: If the fare has fewer seats than passengers
            InvalidPromoCodeError: If the promotional code does not validate
        """
        with self.db.get_session_context() as session:
            return self.quote_in_session(
                session, flight_id, fare_class, passenger_count, promotional_code, currency, user_id
            )

    def quote_in_session(
        self,
        session: Session,
        flight_id: int,
        fare_class: FareClass,
        passenger_count: int,
        promotional_code: Optional[str] = None,
        currency: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> PriceBreakdown:
        """Same as quote() inside a caller-owned session."""
        fare_class = FareClass(fare_class)
        if passenger_count < 1:
            raise BadRequestError("Passenger count must be at least 1", {"passenger_count": passenger_count})

        fare = (
            session.query(Fare)
            .filter(Fare.flight_id == flight_id, Fare.fare_class == fare_class, Fare.is_active.is_(True))
            .first()
        )
        if fare is None:
            raise NotFoundError(
                f"Fare not found for flight {flight_id} with class {fare_class.value}",
                {"flight_id": flight_id, "fare_class": fare_class.value},
            )

        if fare.available_seats < passenger_count:
            raise InsufficientInventoryError(
                f"Insufficient seats available. Available: {fare.available_seats}, Requested: {passenger_count}",
                requested=passenger_count,
                available=fare.available_seats,
            )

        now = self.clock()
        price = self.calculate_dynamic_price(fare, fare.flight.scheduled_departure, now)
        subtotal = money(price * passenger_count)
        active_tax_fees = [tf for tf in fare.tax_fees if tf.is_active]
        taxes, fees, lines = self.calculate_taxes_and_fees(active_tax_fees, price, passenger_count)
        gross = subtotal + taxes + fees

        discount = ZERO
        code = None
        if promotional_code:
            result, promo = self._validate(session, promotional_code, gross, fare_class, user_id, now)
            if not result.is_valid:
                raise InvalidPromoCodeError(result.code, result.reason or "Invalid promotional code")
            discount = self.calculate_discount(promo, gross)
            code = promo.code

        total = max(ZERO, money(gross - discount))
        logger.debug(
            f"Quoted flight {flight_id} {fare_class.value} x{passenger_count}: "
            f"subtotal={subtotal} taxes={taxes} fees={fees} discount={discount} total={total}"
        )

        return PriceBreakdown(
            flight_id=flight_id,
            fare_class=fare_class,
            passenger_count=passenger_count,
            base_fare=money(fare.base_fare),
            dynamic_adjustment=money(price - Decimal(fare.base_fare)),
            price_per_passenger=price,
            subtotal=subtotal,
            taxes=taxes,
            fees=fees,
            discount=discount,
            total=total,
            currency=currency or fare.currency,
            promotional_code=code,
            charges=lines,
            quoted_at=now,
        )

    def get_fares_for_flight(self, flight_id: int) -> List[FareModel]:
        """Active fares of a flight, cheapest cabin first."""
        with self.db.get_session_context() as session:
            fares = (
                session.query(Fare)
                .filter(Fare.flight_id == flight_id, Fare.is_active.is_(True))
                .all()
            )
            fares.sort(key=lambda f: FARE_CLASS_ORDER[f.fare_class])
            return [FareModel.model_validate(f) for f in fares]

    # ------------------------------------------------------------------
    # Promotional codes
    # ------------------------------------------------------------------

    def _validate(
        self,
        session: Session,
        code: str,
        purchase_amount: Optional[Decimal],
        fare_class: Optional[FareClass],
        user_id: Optional[str],
        now: datetime,
    ) -> Tuple[PromoValidationResult, Optional[PromotionalCode]]:
        """Run the validation rules in order; the first failing rule decides the reason."""
        normalized = code.strip().upper()

        def rejected(reason: str) -> Tuple[PromoValidationResult, Optional[PromotionalCode]]:
            return PromoValidationResult(is_valid=False, reason=reason, code=normalized), promo

        promo = session.query(PromotionalCode).filter(PromotionalCode.code == normalized).first()
        if promo is None:
            return rejected("Promotional code not found")

        if promo.status != PromoCodeStatus.ACTIVE:
            return rejected("Promotional code is not active")

        if now < promo.valid_from:
            return rejected("Promotional code is not yet valid")
        if now > promo.valid_to:
            return rejected("Promotional code has expired")

        if promo.max_uses is not None and promo.current_uses >= promo.max_uses:
            return rejected("Promotional code has reached maximum uses")

        if (
            purchase_amount is not None
            and promo.min_purchase_amount is not None
            and Decimal(purchase_amount) < Decimal(promo.min_purchase_amount)
        ):
            return rejected(f"Minimum purchase amount of {promo.min_purchase_amount} required")

        if (
            promo.applicable_fare_class is not None
            and fare_class is not None
            and promo.applicable_fare_class != FareClass(fare_class)
        ):
            return rejected(f"Promotional code not applicable for {FareClass(fare_class).value} class")

        if user_id is not None and promo.max_uses_per_user is not None:
            used = (
                session.query(func.count(PromoRedemption.promo_redemption_id))
                .filter(
                    PromoRedemption.promotional_code_id == promo.promotional_code_id,
                    PromoRedemption.user_id == user_id,
                )
                .scalar()
            )
            if used >= promo.max_uses_per_user:
                return rejected("Promotional code usage limit reached for this user")

        return PromoValidationResult(is_valid=True, code=normalized), promo

    def validate_promo_code(
        self,
        code: str,
        purchase_amount: Optional[Decimal] = None,
        fare_class: Optional[FareClass] = None,
        user_id: Optional[str] = None,
    ) -> PromoValidationResult:
        """
        Check whether a promotional code can be applied.

        Returns:
            PromoValidationResult with is_valid and, when invalid, the reason
        """
        with self.db.get_session_context() as session:
            result, _ = self._validate(session, code, purchase_amount, fare_class, user_id, self.clock())
            return result

    def create_promo_code(self, data: PromotionalCodeCreate) -> PromotionalCodeModel:
        """
        Create an active promotional code. Codes are stored upper-cased.

        Raises:
            ConflictError: If the code already exists
            BadRequestError: If valid_to is not after valid_from
        """
        code = data.code.strip().upper()
        if data.valid_to <= data.valid_from:
            raise BadRequestError("valid_to must be after valid_from", {"code": code})

        with self.db.get_session_context() as session:
            exists = session.query(PromotionalCode.promotional_code_id).filter(
                PromotionalCode.code == code
            ).first()
            if exists is not None:
                raise ConflictError("Promotional code already exists", {"code": code})

            promo = PromotionalCode(
                **data.model_dump(exclude={"code"}),
                code=code,
                status=PromoCodeStatus.ACTIVE,
                current_uses=0,
            )
            session.add(promo)
            session.flush()

            logger.info(f"Created promotional code {code}")
            return PromotionalCodeModel.model_validate(promo)

    def get_promo_code(self, code: str) -> PromotionalCodeModel:
        """
        Raises:
            NotFoundError: If the code does not exist
        """
        normalized = code.strip().upper()
        with self.db.get_session_context() as session:
            promo = session.query(PromotionalCode).filter(PromotionalCode.code == normalized).first()
            if promo is None:
                raise NotFoundError(f"Promotional code {normalized} not found", {"code": normalized})
            return PromotionalCodeModel.model_validate(promo)

    def list_promo_codes(self, active_only: bool = False) -> List[PromotionalCodeModel]:
        with self.db.get_session_context() as session:
            query = session.query(PromotionalCode)
            if active_only:
                query = query.filter(PromotionalCode.status == PromoCodeStatus.ACTIVE)
            promos = query.order_by(PromotionalCode.promotional_code_id.desc()).all()
            return [PromotionalCodeModel.model_validate(p) for p in promos]

    def redeem_promo_code(
        self,
        code: str,
        user_id: Optional[str] = None,
        booking_id: Optional[int] = None,
    ) -> PromotionalCodeModel:
        """
        Record one use of a promotional code.

        The usage counter is incremented with a conditional UPDATE so that
        concurrent redemptions cannot exceed max_uses. The code is marked
        used_up once the cap is reached.

        Raises:
            NotFoundError: If the code does not exist
            InvalidPromoCodeError: If the code does not validate for this use
        """
        with self.db.get_session_context() as session:
            now = self.clock()
            result, promo = self._validate(session, code, None, None, user_id, now)
            if promo is None:
                raise NotFoundError(f"Promotional code {result.code} not found", {"code": result.code})
            if not result.is_valid:
                raise InvalidPromoCodeError(result.code, result.reason or "Invalid promotional code")

            claimed = session.execute(
                update(PromotionalCode)
                .where(
                    PromotionalCode.promotional_code_id == promo.promotional_code_id,
                    PromotionalCode.status == PromoCodeStatus.ACTIVE,
                    (PromotionalCode.max_uses.is_(None))
                    | (PromotionalCode.current_uses < PromotionalCode.max_uses),
                )
                .values(current_uses=PromotionalCode.current_uses + 1)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                raise InvalidPromoCodeError(result.code, "Promotional code has reached maximum uses")

            session.refresh(promo)
            if promo.max_uses is not None and promo.current_uses >= promo.max_uses:
                promo.status = PromoCodeStatus.USED_UP
                logger.info(f"Promotional code {promo.code} is now used up")

            session.add(PromoRedemption(
                promotional_code_id=promo.promotional_code_id,
                user_id=user_id,
                booking_id=booking_id,
                redeemed_at=now,
            ))
            session.flush()

            logger.info(
                f"Redeemed promotional code {promo.code} ({promo.current_uses}"
                f"{'/' + str(promo.max_uses) if promo.max_uses is not None else ''} uses)"
            )
            return PromotionalCodeModel.model_validate(promo)
