from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from pawa_shared.db.repositories import (
    DebtRepository,
    IdempotencyRepository,
    PaymentMethodRepository,
    PaymentRepository,
    PointsRepository,
    RentalRepository,
    StationRepository,
    UserRepository,
)

from flex_rental.clients.auth import AuthClient, AuthenticatedUser
from flex_rental.clients.payment_gateway import PaymentGatewayClient
from flex_rental.config.settings import Settings
from flex_rental.core.exceptions import AuthorizationError, MissingAuthorizationException
from flex_rental.core.pricing import PricingPolicy
from flex_rental.db.database import get_sessionmaker
from flex_rental.services.history import RentalHistoryService
from flex_rental.services.inventory import InventoryLedger
from flex_rental.services.payment import PaymentService
from flex_rental.services.points import PointsService
from flex_rental.services.rental import RentalService


@lru_cache()
def get_settings() -> Settings:
    return Settings()


def get_session(request: Request, settings: Settings = Depends(get_settings)) -> Session:
    sessionmaker = getattr(request.app.state, "sessionmaker", None) or get_sessionmaker(settings)
    session = sessionmaker()
    try:
        yield session
    finally:
        session.close()


def get_pricing_policy(settings: Settings = Depends(get_settings)) -> PricingPolicy:
    return PricingPolicy.from_settings(settings)


def get_payment_gateway(request: Request) -> PaymentGatewayClient:
    return request.app.state.payment_gateway


def get_auth_client(request: Request) -> AuthClient:
    return request.app.state.auth_client


# --- repositories ---


def get_rental_repository(session: Session = Depends(get_session)) -> RentalRepository:
    return RentalRepository(session)


def get_station_repository(session: Session = Depends(get_session)) -> StationRepository:
    return StationRepository(session)


def get_user_repository(session: Session = Depends(get_session)) -> UserRepository:
    return UserRepository(session)


def get_payment_method_repository(
    session: Session = Depends(get_session),
) -> PaymentMethodRepository:
    return PaymentMethodRepository(session)


def get_payment_repository(session: Session = Depends(get_session)) -> PaymentRepository:
    return PaymentRepository(session)


def get_debt_repository(session: Session = Depends(get_session)) -> DebtRepository:
    return DebtRepository(session)


def get_points_repository(session: Session = Depends(get_session)) -> PointsRepository:
    return PointsRepository(session)


def get_idempotency_repository(
    session: Session = Depends(get_session),
) -> IdempotencyRepository:
    return IdempotencyRepository(session)


# --- services ---


def get_inventory_ledger(
    station_repo: StationRepository = Depends(get_station_repository),
) -> InventoryLedger:
    return InventoryLedger(station_repo)


def get_payment_service(
    payment_repo: PaymentRepository = Depends(get_payment_repository),
    debt_repo: DebtRepository = Depends(get_debt_repository),
    user_repo: UserRepository = Depends(get_user_repository),
    gateway: PaymentGatewayClient = Depends(get_payment_gateway),
    policy: PricingPolicy = Depends(get_pricing_policy),
) -> PaymentService:
    return PaymentService(payment_repo, debt_repo, user_repo, gateway, policy)


def get_points_service(
    points_repo: PointsRepository = Depends(get_points_repository),
    user_repo: UserRepository = Depends(get_user_repository),
) -> PointsService:
    return PointsService(points_repo, user_repo)


def get_history_service(
    rental_repo: RentalRepository = Depends(get_rental_repository),
    debt_repo: DebtRepository = Depends(get_debt_repository),
    payment_repo: PaymentRepository = Depends(get_payment_repository),
) -> RentalHistoryService:
    return RentalHistoryService(rental_repo, debt_repo, payment_repo)


def get_rental_service(
    session: Session = Depends(get_session),
    rental_repo: RentalRepository = Depends(get_rental_repository),
    payment_method_repo: PaymentMethodRepository = Depends(get_payment_method_repository),
    idempotency_repo: IdempotencyRepository = Depends(get_idempotency_repository),
    inventory: InventoryLedger = Depends(get_inventory_ledger),
    payment_service: PaymentService = Depends(get_payment_service),
    points_service: PointsService = Depends(get_points_service),
    policy: PricingPolicy = Depends(get_pricing_policy),
) -> RentalService:
    return RentalService(
        session,
        rental_repo,
        payment_method_repo,
        idempotency_repo,
        inventory,
        payment_service,
        points_service,
        policy,
    )


# --- request context ---


def get_current_user(
    authorization: Optional[str] = Header(None),
    auth_client: AuthClient = Depends(get_auth_client),
) -> AuthenticatedUser:
    if not authorization:
        raise MissingAuthorizationException()

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthorizationError()

    user = auth_client.get_user(token.strip())
    if not user:
        raise AuthorizationError()
    return user


def get_idempotency_key(
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
) -> Optional[str]:
    return idempotency_key or None
