from datetime import datetime, timezone

from conftest import seed_active_rental, seed_user

from pawa_shared.db.models import PaymentAttempt, RentalStatus
from pawa_shared.db.repositories import (
    DebtRepository,
    IdempotencyRepository,
    PaymentMethodRepository,
    PaymentRepository,
    RentalRepository,
    UserRepository,
)


# ---------- IdempotencyRepository ----------


def test_idempotency_repository_empty(db_session):
    repo = IdempotencyRepository(db_session)

    assert repo.get_idempotency_key("no-such-key") is None
    assert repo.get_cached_response("no-such-key", "rentals:start", "user-1") is None


def test_idempotency_repository_create_and_get_cached_response(db_session):
    repo = IdempotencyRepository(db_session)
    response = {"rental_id": "r-123", "validation_amount": 1.0}

    repo.create_idempotency_key("idem-1", "rentals:start", "user-1", response)

    assert repo.get_cached_response("idem-1", "rentals:start", "user-1") == response
    assert repo.get_cached_response("idem-1", "rentals:start", "user-2") is None
    assert repo.get_cached_response("idem-1", "points:award", "user-1") is None


# ---------- PaymentRepository ----------


def test_payment_repository_total_paid_ignores_failures_and_refunds(db_session):
    repo = PaymentRepository(db_session)

    repo.create_payment_attempt("r1", "validation", 100, True, charge_id="pi_1")
    repo.create_payment_attempt("r1", "usage", 300, False, error="declined")
    repo.create_payment_attempt("r1", "usage", 300, True, charge_id="pi_2")
    repo.create_payment_attempt("r1", "refund", 100, True, charge_id="re_1")

    assert repo.get_total_paid("r1") == 400
    assert db_session.query(PaymentAttempt).filter_by(rental_id="r1").count() == 4
    assert repo.get_total_paid("unknown") == 0


def test_payment_repository_find_successful_charge(db_session):
    repo = PaymentRepository(db_session)
    repo.create_payment_attempt("r1", "usage", 300, False, error="declined")

    assert repo.find_successful_charge("r1", "usage") is None

    repo.create_payment_attempt("r1", "usage", 300, True, charge_id="pi_2")

    assert repo.find_successful_charge("r1", "usage").charge_id == "pi_2"
    assert repo.find_successful_charge("r1", "penalty") is None


# ---------- DebtRepository ----------


def test_debt_repository_accumulates(db_session):
    repo = DebtRepository(db_session)
    now = datetime.now(timezone.utc)

    assert repo.get_amount("r1") == 0

    repo.attach_debt("r1", 300, now=now)
    repo.attach_debt("r1", 200, now=now)

    debt = repo.get_by_rental_id("r1")
    assert debt.amount_total == 500
    assert debt.attempts == 2
    assert repo.get_amount("r1") == 500


# ---------- RentalRepository ----------


def test_rental_repository_close_only_once(db_session):
    seed_active_rental(db_session)
    repo = RentalRepository(db_session)
    now = datetime.now(timezone.utc)

    closed = repo.close_rental(
        "rental-1",
        status=RentalStatus.COMPLETED,
        station_end_id="station-2",
        end_time=now,
        total_minutes=10,
        usage_amount=100,
        penalty_amount=0,
        usage_charge_id=None,
    )
    assert closed is True

    rental = repo.get_by_id("rental-1")
    assert rental.status == RentalStatus.COMPLETED
    assert rental.station_end_id == "station-2"
    assert rental.end_time is not None

    closed_again = repo.close_rental(
        "rental-1",
        status=RentalStatus.PURCHASED,
        station_end_id="station-3",
        end_time=now,
        total_minutes=10,
        usage_amount=5000,
        penalty_amount=5000,
        usage_charge_id="pi_x",
    )
    assert closed_again is False
    assert repo.get_by_id("rental-1").status == RentalStatus.COMPLETED


def test_rental_repository_active_by_powerbank(db_session):
    seed_active_rental(db_session, powerbank_id="pb-7")
    repo = RentalRepository(db_session)

    assert repo.get_active_by_powerbank("pb-7").id == "rental-1"
    assert repo.get_active_by_powerbank("pb-8") is None
    assert repo.get_for_user("rental-1", "user-2") is None


# ---------- PaymentMethodRepository / UserRepository ----------


def test_payment_method_lookup_requires_active_status(db_session):
    seed_user(db_session)
    repo = PaymentMethodRepository(db_session)

    method = repo.get_primary_for_user("user-1")
    assert method.stripe_payment_method_id == "pm_card_visa"

    method.payment_method_status = "expired"
    db_session.commit()

    assert repo.get_primary_for_user("user-1") is None
    assert repo.get_active_for_user("user-1", "pm_card_visa") is None


def test_user_repository_points_and_customer(db_session):
    repo = UserRepository(db_session)

    assert repo.add_points("fresh-user", 30) == 30
    assert repo.add_points("fresh-user", 25) == 55

    repo.set_stripe_customer_id("fresh-user", "cus_1")
    assert repo.get_by_id("fresh-user").stripe_customer_id == "cus_1"
