"""
Usage pricing for flex rentals.

All amounts are integer cents. A rental is metered in fixed blocks, each
24h window is capped, and a rental held past the late threshold is treated
as a purchase: the flat late amount replaces the usage charge entirely.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pawa_shared.db.models import RentalStatus

from flex_rental.config.settings import Settings
from flex_rental.core.utils import ensure_aware


@dataclass(frozen=True)
class PricingPolicy:
    block_minutes: int = 30
    rate_per_block: int = 100
    daily_cap: int = 500
    daily_cap_hours: int = 24
    late_penalty_days: int = 5
    late_rental_fee: int = 2500
    purchase_penalty: int = 2500
    validation_fee: int = 100
    currency: str = "eur"

    @classmethod
    def from_settings(cls, settings: Settings) -> "PricingPolicy":
        return cls(
            block_minutes=settings.rental_block_minutes,
            rate_per_block=settings.rental_rate_per_block,
            daily_cap=settings.rental_daily_cap,
            daily_cap_hours=settings.rental_daily_cap_hours,
            late_penalty_days=settings.late_penalty_days,
            late_rental_fee=settings.late_rental_fee,
            purchase_penalty=settings.purchase_penalty,
            validation_fee=settings.validation_fee,
            currency=settings.currency,
        )

    @property
    def day_minutes(self) -> int:
        return self.daily_cap_hours * 60

    @property
    def late_threshold_minutes(self) -> int:
        return self.late_penalty_days * 24 * 60

    @property
    def late_penalty_amount(self) -> int:
        return self.late_rental_fee + self.purchase_penalty


DEFAULT_POLICY = PricingPolicy()


@dataclass(frozen=True)
class UsageCharge:
    blocks: int
    amount_due: int
    capped_at_daily_limit: bool
    full_days: int = 0


@dataclass(frozen=True)
class LatePenalty:
    is_late: bool
    is_purchase: bool
    penalty_amount: int
    rental_fee: int = 0
    purchase_fee: int = 0
    rental_days: int = 0


@dataclass(frozen=True)
class RentalCharge:
    duration_minutes: int
    penalty: LatePenalty
    usage: Optional[UsageCharge] = None

    @property
    def amount_owed(self) -> int:
        if self.penalty.is_late:
            return self.penalty.penalty_amount
        return self.usage.amount_due if self.usage else 0

    @property
    def target_status(self) -> str:
        if self.penalty.is_purchase:
            return RentalStatus.PURCHASED
        return RentalStatus.COMPLETED


def duration_minutes(start: datetime, end: datetime) -> int:
    """Elapsed minutes rounded up; a closed rental lasts at least one minute."""
    elapsed = (ensure_aware(end) - ensure_aware(start)).total_seconds()
    return max(1, math.ceil(elapsed / 60))


def calculate_usage_charge(
    duration_minutes: int, policy: PricingPolicy = DEFAULT_POLICY
) -> UsageCharge:
    if duration_minutes < 0:
        raise ValueError("duration_minutes must be non-negative")
    if duration_minutes == 0:
        return UsageCharge(blocks=0, amount_due=0, capped_at_daily_limit=False)

    blocks = math.ceil(duration_minutes / policy.block_minutes)

    # full days at the flat cap, the trailing partial day metered by blocks
    full_days, remainder = divmod(duration_minutes, policy.day_minutes)
    remainder_raw = math.ceil(remainder / policy.block_minutes) * policy.rate_per_block
    remainder_amount = min(remainder_raw, policy.daily_cap)

    blocks_per_day = math.ceil(policy.day_minutes / policy.block_minutes)
    full_day_capped = full_days > 0 and blocks_per_day * policy.rate_per_block > policy.daily_cap

    return UsageCharge(
        blocks=blocks,
        amount_due=full_days * policy.daily_cap + remainder_amount,
        capped_at_daily_limit=full_day_capped or remainder_raw > policy.daily_cap,
        full_days=full_days,
    )


def calculate_late_penalty(
    duration_minutes: int, policy: PricingPolicy = DEFAULT_POLICY
) -> LatePenalty:
    if duration_minutes <= policy.late_threshold_minutes:
        return LatePenalty(is_late=False, is_purchase=False, penalty_amount=0)

    return LatePenalty(
        is_late=True,
        is_purchase=True,
        penalty_amount=policy.late_penalty_amount,
        rental_fee=policy.late_rental_fee,
        purchase_fee=policy.purchase_penalty,
        rental_days=policy.late_penalty_days,
    )


def calculate_rental_charge(
    duration_minutes: int, policy: PricingPolicy = DEFAULT_POLICY
) -> RentalCharge:
    penalty = calculate_late_penalty(duration_minutes, policy)
    if penalty.is_late:
        return RentalCharge(duration_minutes=duration_minutes, penalty=penalty)

    return RentalCharge(
        duration_minutes=duration_minutes,
        penalty=penalty,
        usage=calculate_usage_charge(duration_minutes, policy),
    )
