from fastapi import APIRouter, Depends

from flex_rental.api.dependencies import get_auth_client, get_payment_gateway
from flex_rental.clients.auth import AuthClient
from flex_rental.clients.payment_gateway import PaymentGatewayClient
from flex_rental.schemas import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health_check():
    return HealthResponse(ok=True)


@router.get("/health/circuit-breakers")
def circuit_breaker_health(
    payment_gateway: PaymentGatewayClient = Depends(get_payment_gateway),
    auth_client: AuthClient = Depends(get_auth_client),
):
    return {
        "circuit_breakers": {
            **payment_gateway.get_circuit_breaker_stats(),
            **auth_client.get_circuit_breaker_stats(),
        },
        "payment_configured": payment_gateway.is_configured,
        "status": "ok",
    }
