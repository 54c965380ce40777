from .debt import DebtRepository
from .idempotency import IdempotencyRepository
from .payment import PaymentRepository
from .payment_method import PaymentMethodRepository
from .points import PointsRepository
from .rental import RentalRepository
from .station import StationRepository
from .user import UserRepository

__all__ = [
    "RentalRepository",
    "StationRepository",
    "UserRepository",
    "PaymentMethodRepository",
    "DebtRepository",
    "PaymentRepository",
    "PointsRepository",
    "IdempotencyRepository",
]
