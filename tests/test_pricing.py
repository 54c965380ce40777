from datetime import datetime, timedelta, timezone

import pytest

from pawa_shared.db.models import RentalStatus

from flex_rental.core.pricing import (
    DEFAULT_POLICY,
    PricingPolicy,
    calculate_late_penalty,
    calculate_rental_charge,
    calculate_usage_charge,
    duration_minutes,
)


@pytest.mark.parametrize(
    "minutes, blocks, amount",
    [
        (1, 1, 100),
        (29, 1, 100),
        (30, 1, 100),
        (31, 2, 200),
        (60, 2, 200),
        (120, 4, 400),
        (150, 5, 500),
        (151, 6, 500),
        (1440, 48, 500),
    ],
)
def test_usage_charge_within_first_day(minutes, blocks, amount):
    charge = calculate_usage_charge(minutes)
    assert charge.blocks == blocks
    assert charge.amount_due == amount
    assert charge.full_days == (1 if minutes == 1440 else 0)


def test_usage_charge_zero_duration_is_free():
    charge = calculate_usage_charge(0)
    assert charge.blocks == 0
    assert charge.amount_due == 0
    assert charge.capped_at_daily_limit is False


def test_usage_charge_rejects_negative_duration():
    with pytest.raises(ValueError):
        calculate_usage_charge(-1)


def test_cap_flag_only_when_blocks_exceed_cap():
    assert calculate_usage_charge(150).capped_at_daily_limit is False
    assert calculate_usage_charge(151).capped_at_daily_limit is True


def test_never_more_than_cap_in_first_day():
    for minutes in range(1, 1441, 7):
        assert calculate_usage_charge(minutes).amount_due <= DEFAULT_POLICY.daily_cap


def test_multi_day_charges_each_day_at_cap():
    # two full days plus 45 minutes
    charge = calculate_usage_charge(2 * 1440 + 45)
    assert charge.full_days == 2
    assert charge.amount_due == 2 * 500 + 200
    assert charge.capped_at_daily_limit is True


def test_late_penalty_threshold():
    threshold = DEFAULT_POLICY.late_threshold_minutes
    assert threshold == 7200

    on_time = calculate_late_penalty(threshold)
    assert on_time.is_late is False
    assert on_time.penalty_amount == 0

    late = calculate_late_penalty(threshold + 1)
    assert late.is_late is True
    assert late.is_purchase is True
    assert late.penalty_amount == 5000
    assert late.rental_fee == 2500
    assert late.purchase_fee == 2500


def test_rental_charge_normal_return():
    charge = calculate_rental_charge(29)
    assert charge.amount_owed == 100
    assert charge.target_status == RentalStatus.COMPLETED
    assert charge.usage is not None


def test_rental_charge_late_replaces_usage():
    charge = calculate_rental_charge(14400)
    assert charge.amount_owed == 5000
    assert charge.target_status == RentalStatus.PURCHASED
    assert charge.usage is None


def test_custom_policy_is_respected():
    policy = PricingPolicy(rate_per_block=50, daily_cap=300, validation_fee=50)
    assert calculate_usage_charge(45, policy).amount_due == 100
    assert calculate_usage_charge(600, policy).amount_due == 300


def test_duration_rounds_up_and_is_at_least_one_minute():
    start = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    assert duration_minutes(start, start) == 1
    assert duration_minutes(start, start + timedelta(seconds=61)) == 2
    assert duration_minutes(start, start + timedelta(minutes=29)) == 29


def test_duration_accepts_naive_timestamps_as_utc():
    start = datetime(2026, 1, 1, 12, 0)
    end = datetime(2026, 1, 1, 12, 30, tzinfo=timezone.utc)
    assert duration_minutes(start, end) == 30
