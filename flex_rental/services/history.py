from pawa_shared.db.models import Rental
from pawa_shared.db.repositories.debt import DebtRepository
from pawa_shared.db.repositories.payment import PaymentRepository
from pawa_shared.db.repositories.rental import RentalRepository

from flex_rental.core.exceptions import RentalNotFoundException
from flex_rental.core.utils import cents_to_euros
from flex_rental.schemas import ActiveRentalsResponse, RentalListResponse, RentalView

HISTORY_LIMIT = 50


class RentalHistoryService:
    def __init__(
        self,
        rental_repo: RentalRepository,
        debt_repo: DebtRepository,
        payment_repo: PaymentRepository,
    ):
        self.rental_repo = rental_repo
        self.debt_repo = debt_repo
        self.payment_repo = payment_repo

    def to_view(self, rental: Rental) -> RentalView:
        return RentalView(
            id=rental.id,
            powerbank_id=rental.powerbank_id,
            station_start_id=rental.station_start_id,
            station_end_id=rental.station_end_id,
            start_time=rental.start_time,
            end_time=rental.end_time,
            status=rental.status,
            total_minutes=rental.total_minutes,
            usage_amount=(
                cents_to_euros(rental.usage_amount)
                if rental.usage_amount is not None
                else None
            ),
            penalty_amount=cents_to_euros(rental.penalty_amount or 0),
            validation_amount=cents_to_euros(rental.validation_amount or 0),
            validation_charge_id=rental.validation_charge_id,
            usage_charge_id=rental.usage_charge_id,
            outstanding_debt=cents_to_euros(self.debt_repo.get_amount(rental.id)),
            total_paid=cents_to_euros(self.payment_repo.get_total_paid(rental.id)),
        )

    def list_rentals(self, user_id: str, limit: int = HISTORY_LIMIT) -> RentalListResponse:
        rentals = self.rental_repo.list_for_user(user_id, limit=limit)
        return RentalListResponse(rentals=[self.to_view(r) for r in rentals])

    def list_active_rentals(self, user_id: str) -> ActiveRentalsResponse:
        rentals = self.rental_repo.list_active_for_user(user_id)
        return ActiveRentalsResponse(
            rentals=[self.to_view(r) for r in rentals],
            has_active_rental=len(rentals) > 0,
        )

    def get_rental(self, user_id: str, rental_id: str) -> RentalView:
        rental = self.rental_repo.get_for_user(rental_id, user_id)
        if not rental:
            raise RentalNotFoundException()
        return self.to_view(rental)
