from dataclasses import dataclass
from typing import Optional

import pybreaker
import requests
from loguru import logger
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from flex_rental.config.settings import Settings
from flex_rental.core.circuit_breaker import CircuitBreakerConfig
from flex_rental.core.exceptions import GatewayUnavailableException


@dataclass
class AuthenticatedUser:
    id: str
    email: Optional[str] = None


class AuthClient:
    """Verifies bearer tokens against the auth provider's user endpoint."""

    def __init__(self, settings: Settings):
        self._base = settings.auth_base_url
        self._api_key = settings.auth_api_key
        self._timeout = settings.http_timeout_sec
        self._session = self._build_session()

        self._cb_config = CircuitBreakerConfig(settings)
        self._auth_breaker = self._cb_config.get_auth_breaker()

    def _build_session(self) -> requests.Session:
        session = requests.Session()
        retries = Retry(
            total=3,
            connect=3,
            read=3,
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

    def get_user(self, token: str) -> Optional[AuthenticatedUser]:
        @self._auth_breaker
        def _get_user():
            headers = {"Authorization": f"Bearer {token}"}
            if self._api_key:
                headers["apikey"] = self._api_key
            response = self._session.get(
                f"{self._base.rstrip('/')}/auth/v1/user",
                headers=headers,
                timeout=self._timeout,
            )
            if response.status_code >= 500:
                response.raise_for_status()
            return response

        try:
            response = _get_user()
        except (pybreaker.CircuitBreakerError, requests.RequestException) as e:
            logger.warning(f"Auth provider unavailable: {e}")
            raise GatewayUnavailableException(
                "Authentication provider unavailable", code="AUTH_UNAVAILABLE"
            )

        if not response.ok:
            logger.debug(f"Token rejected by auth provider: HTTP {response.status_code}")
            return None

        data = response.json()
        user_id = data.get("id")
        if not user_id:
            return None
        return AuthenticatedUser(id=user_id, email=data.get("email"))

    def get_circuit_breaker_stats(self):
        return self._cb_config.get_breaker_stats()
