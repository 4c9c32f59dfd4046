"""
Pricing Pydantic models for the reservation core.

This module contains the quote breakdown returned by the fare pricing
engine and the promotional code models.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict

from .enums import FareClass, PromoCodeStatus, PromoCodeType, TaxFeeType


class ChargeLine(BaseModel):
    """One evaluated tax or fee, already multiplied by the passenger count."""

    name: str
    type: TaxFeeType
    amount: Decimal
    is_tax: bool = Field(..., description="True when reported under taxes, False for fees")


class PriceBreakdown(BaseModel):
    """
    Quoted price for a number of passengers on one flight and fare class.

    total = subtotal + taxes + fees - discount, floored at zero.
    """

    flight_id: int
    fare_class: FareClass
    passenger_count: int = Field(..., ge=1)
    base_fare: Decimal = Field(..., description="Stored base fare per passenger")
    dynamic_adjustment: Decimal = Field(..., description="Per-passenger adjustment applied to the base fare")
    price_per_passenger: Decimal = Field(..., ge=0)
    subtotal: Decimal
    taxes: Decimal
    fees: Decimal
    discount: Decimal = Decimal("0")
    total: Decimal = Field(..., ge=0)
    currency: str = "USD"
    promotional_code: Optional[str] = None
    charges: List[ChargeLine] = Field(default_factory=list)
    quoted_at: datetime


class PromoValidationResult(BaseModel):
    is_valid: bool
    reason: Optional[str] = None
    code: str


class PromotionalCodeModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    promotional_code_id: int
    code: str
    name: str
    description: Optional[str] = None
    type: PromoCodeType
    discount_value: Decimal
    max_discount_amount: Optional[Decimal] = None
    min_purchase_amount: Optional[Decimal] = None
    status: PromoCodeStatus
    valid_from: datetime
    valid_to: datetime
    max_uses: Optional[int] = None
    current_uses: int = 0
    max_uses_per_user: Optional[int] = None
    applicable_fare_class: Optional[FareClass] = None
    currency: str = "USD"


class PromotionalCodeCreate(BaseModel):
    """Fields accepted when a promotional code is created."""

    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    type: PromoCodeType
    discount_value: Decimal = Field(..., gt=0)
    max_discount_amount: Optional[Decimal] = Field(None, gt=0)
    min_purchase_amount: Optional[Decimal] = Field(None, ge=0)
    valid_from: datetime
    valid_to: datetime
    max_uses: Optional[int] = Field(None, ge=1)
    max_uses_per_user: Optional[int] = Field(None, ge=1)
    applicable_fare_class: Optional[FareClass] = None
    currency: str = "USD"
