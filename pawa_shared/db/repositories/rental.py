from datetime import datetime, timezone
from typing import List, Optional

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from pawa_shared.db.models import Rental, RentalStatus


class RentalRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, rental_id: str) -> Optional[Rental]:
        return self.session.get(Rental, rental_id, populate_existing=True)

    def get_for_user(self, rental_id: str, user_id: str) -> Optional[Rental]:
        rental = self.get_by_id(rental_id)
        if not rental or rental.user_id != user_id:
            return None
        return rental

    def get_active_by_powerbank(self, powerbank_id: str) -> Optional[Rental]:
        return self.session.execute(
            select(Rental).where(
                Rental.powerbank_id == powerbank_id,
                Rental.status == RentalStatus.ACTIVE,
            )
        ).scalar_one_or_none()

    def create_rental(self, rental: Rental) -> None:
        self.session.add(rental)
        self.session.flush()

    def list_for_user(self, user_id: str, limit: int = 50) -> List[Rental]:
        result = self.session.execute(
            select(Rental)
            .where(Rental.user_id == user_id)
            .order_by(Rental.start_time.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    def list_active_for_user(self, user_id: str) -> List[Rental]:
        result = self.session.execute(
            select(Rental)
            .where(Rental.user_id == user_id, Rental.status == RentalStatus.ACTIVE)
            .order_by(Rental.start_time.desc())
        )
        return list(result.scalars().all())

    def close_rental(
        self,
        rental_id: str,
        status: str,
        station_end_id: str,
        end_time: datetime,
        total_minutes: int,
        usage_amount: int,
        penalty_amount: int,
        usage_charge_id: Optional[str],
    ) -> bool:
        """
        Moves an active rental into a terminal status.

        Guarded on status so that only one closer wins; returns False when
        the rental was not active anymore.
        """
        result = self.session.execute(
            update(Rental)
            .where(Rental.id == rental_id, Rental.status == RentalStatus.ACTIVE)
            .values(
                status=status,
                station_end_id=station_end_id,
                end_time=end_time,
                total_minutes=total_minutes,
                usage_amount=usage_amount,
                penalty_amount=penalty_amount,
                usage_charge_id=usage_charge_id,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )

        updated = result.rowcount > 0
        if updated:
            logger.info(f"Closed rental {rental_id} with status {status}")
        return updated
