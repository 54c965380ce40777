import pytest
from conftest import seed_user

from pawa_shared.db.repositories import PointsRepository, UserRepository

from flex_rental.core.exceptions import PointsAlreadyAwardedException, ValidationError
from flex_rental.services.points import PointsService


def _service(session):
    return PointsService(PointsRepository(session), UserRepository(session))


def test_award_known_event(db_session):
    seed_user(db_session)

    response = _service(db_session).award_points("user-1", "referral_activated", "friend-1")

    assert response.success is True
    assert response.points_awarded == 25
    assert response.new_balance == 25
    assert response.message == "Successfully awarded 25 points!"


def test_award_unknown_event(db_session):
    with pytest.raises(ValidationError) as exc:
        _service(db_session).award_points("user-1", "birthday")
    assert exc.value.code == "INVALID_EVENT_TYPE"


def test_same_reference_is_awarded_once(db_session):
    seed_user(db_session)
    service = _service(db_session)
    service.award_points("user-1", "booking_completed", "booking-1")

    with pytest.raises(PointsAlreadyAwardedException):
        service.award_points("user-1", "booking_completed", "booking-1")

    assert service.get_balance("user-1").available_points == 30


def test_welcome_bonus_is_once_per_user(db_session):
    service = _service(db_session)
    service.award_points("user-9", "welcome_new_joiner")

    with pytest.raises(PointsAlreadyAwardedException):
        service.award_points("user-9", "welcome_new_joiner")


def test_points_accumulate_for_unknown_user(db_session):
    service = _service(db_session)
    service.award_points("user-9", "welcome_new_joiner")
    db_session.commit()

    response = service.award_points("user-9", "booking_completed", "b-1")

    assert response.new_balance == 60
    balance = service.get_balance("user-9")
    assert balance.total_points == 60
    assert balance.pending_points == 0


def test_rental_completion_award_is_deduplicated(db_session):
    seed_user(db_session)
    service = _service(db_session)

    assert service.award_rental_completed("user-1", "rental-1") == 30
    assert service.award_rental_completed("user-1", "rental-1") is None
    assert PointsRepository(db_session).find_transaction("user-1", "rental", "rental-1")


def test_balance_for_unknown_user_is_zero(db_session):
    balance = _service(db_session).get_balance("nobody")
    assert balance.user_id == "nobody"
    assert balance.total_points == 0
    assert balance.available_points == 0
