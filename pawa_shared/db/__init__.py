from .database import get_engine, get_sessionmaker
from .models import (
    Base,
    Debt,
    IdempotencyKey,
    PaymentAttempt,
    PaymentMethod,
    PointsTransaction,
    Rental,
    RentalStatus,
    Station,
    User,
)

__all__ = [
    "Base",
    "Rental",
    "RentalStatus",
    "Station",
    "User",
    "PaymentMethod",
    "PaymentAttempt",
    "Debt",
    "IdempotencyKey",
    "PointsTransaction",
    "get_sessionmaker",
    "get_engine",
]
