import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

import pybreaker
import requests
from loguru import logger
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from flex_rental.config.settings import Settings
from flex_rental.core.circuit_breaker import CircuitBreakerConfig
from flex_rental.monitoring.metrics import SERVICE, external_api_duration


class ChargeFailure(str, Enum):
    CARD_DECLINED = "card_declined"
    NOT_FOUND = "customer_or_method_not_found"
    GATEWAY_UNAVAILABLE = "gateway_unavailable"
    NOT_COMPLETED = "payment_not_completed"
    INVALID_REQUEST = "invalid_request"


@dataclass
class ChargeResult:
    success: bool
    charge_id: Optional[str] = None
    status: Optional[str] = None
    failure: Optional[ChargeFailure] = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, failure: ChargeFailure, error: str) -> "ChargeResult":
        return cls(success=False, failure=failure, error=error)


class PaymentGatewayClient:
    """
    Thin client for a Stripe-compatible API: customers, off-session
    payment intents and refunds. Server-side secret key only.

    Network errors, timeouts and 5xx count against the circuit breaker;
    declines and other 4xx answers do not.
    """

    def __init__(self, settings: Settings):
        self._secret_key = settings.stripe_secret_key
        self._api_base = settings.stripe_api_base
        self._timeout = settings.payment_timeout_sec
        self._session = self._build_session()

        self._cb_config = CircuitBreakerConfig(settings)
        self._payment_breaker = self._cb_config.get_payment_breaker()

    @property
    def is_configured(self) -> bool:
        return bool(self._secret_key)

    def _build_session(self) -> requests.Session:
        session = requests.Session()
        # charges are never re-sent automatically, only reads are retried
        retries = Retry(
            total=2,
            connect=2,
            read=2,
            backoff_factor=0.3,
            status_forcelist=(502, 503, 504),
            allowed_methods=frozenset({"GET"}),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retries)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update({"User-Agent": "flex-rental/1.0"})
        return session

    def _url(self, path: str) -> str:
        return f"{self._api_base.rstrip('/')}/{path.lstrip('/')}"

    def _headers(self, idempotency_key: Optional[str] = None) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self._secret_key}"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    def _request(
        self,
        method: str,
        path: str,
        data: Optional[dict] = None,
        idempotency_key: Optional[str] = None,
    ) -> requests.Response:
        @self._payment_breaker
        def _send():
            started = time.perf_counter()
            try:
                response = self._session.request(
                    method,
                    self._url(path),
                    data=data,
                    headers=self._headers(idempotency_key),
                    timeout=self._timeout,
                )
            finally:
                external_api_duration.labels(
                    service=SERVICE, api_service="payment_gateway", endpoint=path
                ).observe(time.perf_counter() - started)
            if response.status_code >= 500:
                response.raise_for_status()
            return response

        return _send()

    @staticmethod
    def _form(params: dict, metadata: Optional[dict] = None) -> dict:
        form = {}
        for key, value in params.items():
            if value is None:
                continue
            form[key] = str(value).lower() if isinstance(value, bool) else str(value)
        for key, value in (metadata or {}).items():
            if value is None:
                continue
            form[f"metadata[{key}]"] = (
                str(value).lower() if isinstance(value, bool) else str(value)
            )
        return form

    @staticmethod
    def _error_result(response: requests.Response) -> ChargeResult:
        try:
            error = response.json().get("error", {})
        except ValueError:
            error = {}
        message = error.get("message") or f"HTTP {response.status_code}"

        if response.status_code == 402 or error.get("type") == "card_error":
            return ChargeResult.failed(ChargeFailure.CARD_DECLINED, message)
        if response.status_code == 404 or error.get("code") == "resource_missing":
            return ChargeResult.failed(ChargeFailure.NOT_FOUND, message)
        return ChargeResult.failed(ChargeFailure.INVALID_REQUEST, message)

    def _call(
        self,
        method: str,
        path: str,
        data: Optional[dict] = None,
        idempotency_key: Optional[str] = None,
    ) -> tuple[Optional[dict], Optional[ChargeResult]]:
        try:
            response = self._request(method, path, data, idempotency_key)
        except pybreaker.CircuitBreakerError as e:
            logger.warning(f"Payment gateway circuit open for {path}: {e}")
            return None, ChargeResult.failed(
                ChargeFailure.GATEWAY_UNAVAILABLE, "Payment gateway circuit open"
            )
        except requests.RequestException as e:
            logger.warning(f"Payment gateway request to {path} failed: {e}")
            return None, ChargeResult.failed(ChargeFailure.GATEWAY_UNAVAILABLE, str(e))

        if not response.ok:
            return None, self._error_result(response)
        try:
            return response.json(), None
        except ValueError:
            logger.warning(f"Payment gateway returned a non-JSON body for {path}")
            return None, ChargeResult.failed(
                ChargeFailure.GATEWAY_UNAVAILABLE, "Invalid response from payment gateway"
            )

    def create_customer(self, user_id: str, email: Optional[str]) -> ChargeResult:
        body, failure = self._call(
            "POST",
            "/v1/customers",
            self._form({"email": email or ""}, {"user_id": user_id}),
            idempotency_key=f"customer:{user_id}",
        )
        if failure:
            return failure
        logger.info(f"Created gateway customer {body['id']} for user {user_id}")
        return ChargeResult(success=True, charge_id=body["id"])

    def charge(
        self,
        customer_ref: str,
        payment_method_ref: str,
        amount: int,
        currency: str,
        metadata: dict,
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> ChargeResult:
        """Confirms an off-session payment intent for `amount` minor units."""
        form = self._form(
            {
                "amount": amount,
                "currency": currency,
                "customer": customer_ref,
                "payment_method": payment_method_ref,
                "confirm": True,
                "off_session": True,
                "description": description,
            },
            metadata,
        )
        body, failure = self._call(
            "POST", "/v1/payment_intents", form, idempotency_key=idempotency_key
        )
        if failure:
            logger.warning(
                f"Charge of {amount} {currency} failed ({failure.failure.value}): {failure.error}"
            )
            return failure

        return self._intent_result(body)

    def retrieve_charge(self, charge_id: str) -> ChargeResult:
        body, failure = self._call("GET", f"/v1/payment_intents/{charge_id}")
        if failure:
            return failure
        return self._intent_result(body)

    def refund(self, charge_id: str, idempotency_key: Optional[str] = None) -> ChargeResult:
        body, failure = self._call(
            "POST",
            "/v1/refunds",
            self._form({"payment_intent": charge_id}),
            idempotency_key=idempotency_key,
        )
        if failure:
            logger.warning(f"Refund of {charge_id} failed: {failure.error}")
            return failure
        return ChargeResult(success=True, charge_id=body.get("id"), status=body.get("status"))

    @staticmethod
    def _intent_result(body: dict) -> ChargeResult:
        status = body.get("status")
        if status != "succeeded":
            return ChargeResult(
                success=False,
                charge_id=body.get("id"),
                status=status,
                failure=ChargeFailure.NOT_COMPLETED,
                error="Payment not completed",
            )
        return ChargeResult(success=True, charge_id=body.get("id"), status=status)

    def get_circuit_breaker_stats(self):
        return self._cb_config.get_breaker_stats()
