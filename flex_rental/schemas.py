from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(BaseModel):
    ok: bool = True


class ErrorResponse(BaseModel):
    error: str
    code: Optional[str] = None


# --- Rentals ---


class StartRentalRequest(CamelModel):
    station_id: str = Field(min_length=1)
    powerbank_id: Optional[str] = Field(None, min_length=1)
    payment_method_id: Optional[str] = None


class EndRentalRequest(CamelModel):
    rental_id: str = Field(min_length=1)
    return_station_id: str = Field(min_length=1)


class PricingSummary(CamelModel):
    rate_per_half_hour: float
    daily_cap: float
    daily_cap_hours: int
    late_penalty_days: int
    late_penalty_amount: float
    validation_fee: float
    currency: str


class RentalStartedResponse(CamelModel):
    rental_id: str
    powerbank_id: str
    station_id: str
    start_time: datetime
    validation_fee_charged: bool
    validation_amount: float
    included_minutes: int
    pricing: PricingSummary


class UsageBreakdown(CamelModel):
    blocks: int
    rate_per_block: float
    capped_at_daily: bool
    daily_cap: float
    full_days: int = 0


class PenaltyBreakdown(CamelModel):
    rental_days: int
    rental_fee: float
    purchase_penalty: float
    total: float
    note: str


class RentalClosedResponse(CamelModel):
    rental_id: str
    status: str
    duration_minutes: int
    validation_fee_paid: float
    additional_charge: float
    total_charge: float
    is_late_penalty: bool
    is_purchase: bool
    charge_succeeded: bool
    breakdown: Union[UsageBreakdown, PenaltyBreakdown]


class RentalView(CamelModel):
    id: str
    powerbank_id: str
    station_start_id: str
    station_end_id: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    status: str
    total_minutes: Optional[int] = None
    usage_amount: Optional[float] = None
    penalty_amount: float = 0
    validation_amount: float = 0
    validation_charge_id: Optional[str] = None
    usage_charge_id: Optional[str] = None
    outstanding_debt: float = 0
    total_paid: float = 0


class RentalListResponse(CamelModel):
    rentals: List[RentalView]


class ActiveRentalsResponse(CamelModel):
    rentals: List[RentalView]
    has_active_rental: bool


# --- Points ---


class AwardPointsRequest(CamelModel):
    event_type: str = Field(min_length=1)
    reference_id: Optional[str] = None


class AwardPointsResponse(CamelModel):
    success: bool = True
    message: str
    points_awarded: int
    new_balance: int


class PointsBalanceResponse(CamelModel):
    user_id: str
    total_points: int = 0
    available_points: int = 0
    pending_points: int = 0
