import pytest
from conftest import make_gateway, seed_user

from pawa_shared.db.models import PaymentAttempt, User
from pawa_shared.db.repositories import DebtRepository, PaymentRepository, UserRepository

from flex_rental.clients.payment_gateway import ChargeFailure, ChargeResult
from flex_rental.core.exceptions import PaymentNotConfiguredException
from flex_rental.core.pricing import DEFAULT_POLICY
from flex_rental.services.payment import ChargePurpose, PaymentService


def _service(session, gateway):
    return PaymentService(
        PaymentRepository(session),
        DebtRepository(session),
        UserRepository(session),
        gateway,
        DEFAULT_POLICY,
    )


def _attempts(session, rental_id):
    return (
        session.query(PaymentAttempt)
        .filter(PaymentAttempt.rental_id == rental_id)
        .order_by(PaymentAttempt.id.desc())
        .all()
    )


def test_ensure_configured_raises_without_secret(db_session):
    service = _service(db_session, make_gateway(configured=False))
    with pytest.raises(PaymentNotConfiguredException) as exc:
        service.ensure_configured()
    assert exc.value.status_code == 503


def test_existing_customer_is_reused(db_session):
    seed_user(db_session, customer_id="cus_existing")
    gateway = make_gateway()

    result = _service(db_session, gateway).ensure_customer("user-1", None)

    assert result.charge_id == "cus_existing"
    gateway.create_customer.assert_not_called()


def test_customer_created_and_stored_on_first_use(db_session):
    gateway = make_gateway()

    result = _service(db_session, gateway).ensure_customer("user-2", "new@example.com")
    db_session.commit()

    assert result.charge_id == "cus_new"
    gateway.create_customer.assert_called_once_with("user-2", "new@example.com")
    assert db_session.get(User, "user-2").stripe_customer_id == "cus_new"


def test_charge_records_attempt_and_tags_metadata(db_session):
    gateway = make_gateway()
    service = _service(db_session, gateway)

    result = service.charge_for_rental(
        rental_id="r1",
        user_id="user-1",
        customer_ref="cus_test",
        payment_method_ref="pm_card_visa",
        amount=100,
        purpose=ChargePurpose.VALIDATION,
        metadata={"station_id": "station-1"},
    )

    assert result.success
    kwargs = gateway.charge.call_args.kwargs
    assert kwargs["idempotency_key"] == "rental:r1:validation"
    assert kwargs["currency"] == "eur"
    assert kwargs["metadata"]["type"] == "flex_rental_validation"
    assert kwargs["metadata"]["station_id"] == "station-1"

    attempts = _attempts(db_session, "r1")
    assert len(attempts) == 1
    assert attempts[0].success is True
    assert attempts[0].charge_id == "pi_ok"


def test_successful_charge_is_not_repeated(db_session):
    gateway = make_gateway()
    service = _service(db_session, gateway)

    for _ in range(2):
        result = service.charge_for_rental(
            "r1", "user-1", "cus_test", "pm_card_visa", 300, ChargePurpose.USAGE
        )
        assert result.charge_id == "pi_ok"

    assert gateway.charge.call_count == 1


def test_failed_closing_charge_becomes_debt(db_session):
    gateway = make_gateway(
        ChargeResult.failed(ChargeFailure.GATEWAY_UNAVAILABLE, "timeout")
    )
    service = _service(db_session, gateway)

    result = service.charge_with_debt_fallback(
        "r1", "user-1", "cus_test", "pm_card_visa", 400, ChargePurpose.USAGE
    )

    assert result.success is False
    assert service.get_outstanding_debt("r1") == 400
    attempt = _attempts(db_session, "r1")[0]
    assert attempt.success is False
    assert attempt.charge_id is None
    assert attempt.error == "timeout"


def test_refund_is_recorded_separately_from_payments(db_session):
    gateway = make_gateway()
    service = _service(db_session, gateway)
    service.charge_for_rental("r1", "user-1", "cus", "pm", 100, ChargePurpose.VALIDATION)

    result = service.refund_for_rental("r1", "pi_ok", 100)

    assert result.success
    gateway.refund.assert_called_once_with("pi_ok", idempotency_key="rental:r1:refund")
    repo = PaymentRepository(db_session)
    assert repo.get_total_paid("r1") == 100
    assert [a.purpose for a in _attempts(db_session, "r1")] == ["refund", "validation"]
