from datetime import datetime, timedelta, timezone
from typing import Generator, Optional
from unittest.mock import Mock

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from pawa_shared.db.models import Base, PaymentMethod, Rental, RentalStatus, Station, User
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

from flex_rental.clients.payment_gateway import ChargeResult, PaymentGatewayClient
from flex_rental.core.pricing import DEFAULT_POLICY, PricingPolicy
from flex_rental.services.inventory import InventoryLedger
from flex_rental.services.payment import PaymentService
from flex_rental.services.points import PointsService
from flex_rental.services.rental import RentalService

TEST_USER_ID = "user-1"
TEST_STATION_ID = "station-1"
TEST_CARD_ID = "pm_card_visa"


def setup_sqlite(path: Optional[str] = None, immediate: bool = False):
    url = f"sqlite+pysqlite:///{path}" if path else "sqlite+pysqlite:///:memory:"
    eng = create_engine(
        url,
        future=True,
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    if immediate:
        # writers queue on BEGIN instead of failing on lock upgrade
        @event.listens_for(eng, "connect")
        def _disable_pysqlite_begin(dbapi_connection, connection_record):  # noqa: ARG001
            dbapi_connection.isolation_level = None

        @event.listens_for(eng, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(eng)
    Session = sessionmaker(
        bind=eng, autoflush=False, autocommit=False, expire_on_commit=False, future=True
    )
    return eng, Session


@pytest.fixture
def session_factory(tmp_path):
    eng, Session = setup_sqlite(str(tmp_path / "flex.db"))
    yield Session
    eng.dispose()


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def seed_station(
    session: Session,
    station_id: str = TEST_STATION_ID,
    available: int = 5,
    capacity: int = 10,
    return_slots: int = 0,
) -> Station:
    station = Station(
        id=station_id,
        name=f"Station {station_id}",
        total_capacity=capacity,
        pb_available=available,
        return_slots=return_slots,
    )
    session.add(station)
    session.commit()
    return station


def seed_user(
    session: Session,
    user_id: str = TEST_USER_ID,
    card_id: str = TEST_CARD_ID,
    customer_id: Optional[str] = "cus_test",
    primary: bool = True,
) -> User:
    user = User(id=user_id, email=f"{user_id}@example.com", stripe_customer_id=customer_id)
    session.add(user)
    session.add(
        PaymentMethod(
            user_id=user_id,
            stripe_payment_method_id=card_id,
            brand="visa",
            last4="4242",
            exp_month=12,
            exp_year=2030,
            is_primary=primary,
            payment_method_status="active",
        )
    )
    session.commit()
    return user


def seed_active_rental(
    session: Session,
    rental_id: str = "rental-1",
    user_id: str = TEST_USER_ID,
    station_id: str = TEST_STATION_ID,
    minutes_ago: float = 10,
    validation_amount: int = 100,
    powerbank_id: str = "pb-1",
) -> Rental:
    start = datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)
    rental = Rental(
        id=rental_id,
        user_id=user_id,
        powerbank_id=powerbank_id,
        station_start_id=station_id,
        start_time=start,
        status=RentalStatus.ACTIVE,
        penalty_amount=0,
        validation_amount=validation_amount,
        stripe_customer_id="cus_test",
        stripe_payment_method_id=TEST_CARD_ID,
        validation_charge_id="pi_validation",
        created_at=start,
        updated_at=start,
    )
    session.add(rental)
    session.commit()
    return rental


def make_gateway(
    charge_result: Optional[ChargeResult] = None,
    configured: bool = True,
) -> Mock:
    gateway = Mock(spec=PaymentGatewayClient)
    gateway.is_configured = configured
    gateway.create_customer.return_value = ChargeResult(success=True, charge_id="cus_new")
    gateway.charge.return_value = charge_result or ChargeResult(
        success=True, charge_id="pi_ok", status="succeeded"
    )
    gateway.refund.return_value = ChargeResult(success=True, charge_id="re_ok", status="succeeded")
    gateway.get_circuit_breaker_stats.return_value = {}
    return gateway


def build_rental_service(
    session: Session, gateway: Mock, policy: PricingPolicy = DEFAULT_POLICY
) -> RentalService:
    user_repo = UserRepository(session)
    payment_service = PaymentService(
        PaymentRepository(session), DebtRepository(session), user_repo, gateway, policy
    )
    return RentalService(
        session,
        RentalRepository(session),
        PaymentMethodRepository(session),
        IdempotencyRepository(session),
        InventoryLedger(StationRepository(session)),
        payment_service,
        PointsService(PointsRepository(session), user_repo),
        policy,
    )


@pytest.fixture
def gateway() -> Mock:
    return make_gateway()


@pytest.fixture
def seeded(db_session):
    seed_station(db_session)
    seed_user(db_session)
    return db_session


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "billing: mark test as billing-related")
