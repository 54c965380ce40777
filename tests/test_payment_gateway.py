from unittest.mock import Mock

import pytest
import requests

from flex_rental.clients.payment_gateway import ChargeFailure, PaymentGatewayClient
from flex_rental.config.settings import Settings


def _response(status_code: int, body: dict) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.json.return_value = body
    if status_code >= 500:
        response.raise_for_status.side_effect = requests.HTTPError(f"HTTP {status_code}")
    return response


@pytest.fixture
def client():
    settings = Settings(
        stripe_secret_key="sk_test_123",
        stripe_api_base="https://gateway.test",
        cb_payment_fail_max=3,
    )
    client = PaymentGatewayClient(settings)
    client._session = Mock()
    return client


def _charge(client, **overrides):
    kwargs = dict(
        customer_ref="cus_1",
        payment_method_ref="pm_1",
        amount=100,
        currency="eur",
        metadata={"type": "flex_rental_validation", "rental_id": "r1", "off": False},
        description="Powerbank rental",
        idempotency_key="rental:r1:validation",
    )
    kwargs.update(overrides)
    return client.charge(**kwargs)


def test_not_configured_without_secret_key():
    assert PaymentGatewayClient(Settings(stripe_secret_key=None)).is_configured is False


def test_successful_charge_sends_off_session_intent(client):
    client._session.request.return_value = _response(
        200, {"id": "pi_1", "status": "succeeded"}
    )

    result = _charge(client)

    assert result.success is True
    assert result.charge_id == "pi_1"

    method, url = client._session.request.call_args.args
    kwargs = client._session.request.call_args.kwargs
    assert method == "POST"
    assert url == "https://gateway.test/v1/payment_intents"
    assert kwargs["data"]["amount"] == "100"
    assert kwargs["data"]["confirm"] == "true"
    assert kwargs["data"]["off_session"] == "true"
    assert kwargs["data"]["metadata[rental_id]"] == "r1"
    assert kwargs["data"]["metadata[off]"] == "false"
    assert kwargs["headers"]["Authorization"] == "Bearer sk_test_123"
    assert kwargs["headers"]["Idempotency-Key"] == "rental:r1:validation"


def test_intent_requiring_action_is_not_a_success(client):
    client._session.request.return_value = _response(
        200, {"id": "pi_2", "status": "requires_action"}
    )

    result = _charge(client)

    assert result.success is False
    assert result.failure == ChargeFailure.NOT_COMPLETED
    assert result.status == "requires_action"


def test_card_decline_is_classified(client):
    client._session.request.return_value = _response(
        402, {"error": {"type": "card_error", "message": "Your card was declined."}}
    )

    result = _charge(client)

    assert result.success is False
    assert result.failure == ChargeFailure.CARD_DECLINED
    assert result.error == "Your card was declined."


def test_missing_customer_is_classified(client):
    client._session.request.return_value = _response(
        404, {"error": {"code": "resource_missing", "message": "No such customer"}}
    )

    assert _charge(client).failure == ChargeFailure.NOT_FOUND


def test_network_error_is_gateway_unavailable(client):
    client._session.request.side_effect = requests.ConnectionError("connection refused")

    result = _charge(client)

    assert result.success is False
    assert result.failure == ChargeFailure.GATEWAY_UNAVAILABLE


def test_non_json_success_body_is_gateway_unavailable(client):
    response = _response(200, {})
    response.json.side_effect = ValueError("Expecting value")
    client._session.request.return_value = response

    result = _charge(client)

    assert result.success is False
    assert result.failure == ChargeFailure.GATEWAY_UNAVAILABLE
    assert result.error == "Invalid response from payment gateway"


def test_declines_do_not_trip_the_breaker(client):
    client._session.request.return_value = _response(
        402, {"error": {"type": "card_error", "message": "declined"}}
    )

    for _ in range(5):
        assert _charge(client).failure == ChargeFailure.CARD_DECLINED

    assert client._session.request.call_count == 5
    stats = client.get_circuit_breaker_stats()
    assert stats["payment"]["state"] == "closed"


def test_server_errors_open_the_breaker(client):
    client._session.request.return_value = _response(503, {})

    for _ in range(3):
        assert _charge(client).failure == ChargeFailure.GATEWAY_UNAVAILABLE

    result = _charge(client)

    assert result.failure == ChargeFailure.GATEWAY_UNAVAILABLE
    assert client._session.request.call_count == 3
    assert client.get_circuit_breaker_stats()["payment"]["state"] == "open"


def test_create_customer(client):
    client._session.request.return_value = _response(200, {"id": "cus_9"})

    result = client.create_customer("user-1", "user@example.com")

    assert result.success is True
    assert result.charge_id == "cus_9"
    kwargs = client._session.request.call_args.kwargs
    assert kwargs["data"]["email"] == "user@example.com"
    assert kwargs["data"]["metadata[user_id]"] == "user-1"
    assert kwargs["headers"]["Idempotency-Key"] == "customer:user-1"


def test_refund_targets_payment_intent(client):
    client._session.request.return_value = _response(
        200, {"id": "re_1", "status": "succeeded"}
    )

    result = client.refund("pi_1", idempotency_key="rental:r1:refund")

    assert result.success is True
    assert result.charge_id == "re_1"
    method, url = client._session.request.call_args.args
    assert url == "https://gateway.test/v1/refunds"
    assert client._session.request.call_args.kwargs["data"] == {"payment_intent": "pi_1"}


def test_retrieve_charge(client):
    client._session.request.return_value = _response(
        200, {"id": "pi_1", "status": "succeeded"}
    )

    result = client.retrieve_charge("pi_1")

    assert result.success is True
    method, url = client._session.request.call_args.args
    assert method == "GET"
    assert url == "https://gateway.test/v1/payment_intents/pi_1"
