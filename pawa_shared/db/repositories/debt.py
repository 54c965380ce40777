from datetime import datetime, timezone
from typing import Optional

from loguru import logger
from sqlalchemy.orm import Session

from pawa_shared.db.models import Debt


class DebtRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_by_rental_id(self, rental_id: str) -> Optional[Debt]:
        return self.session.get(Debt, rental_id)

    def get_amount(self, rental_id: str) -> int:
        debt = self.get_by_rental_id(rental_id)
        return int(debt.amount_total) if debt else 0

    def attach_debt(
        self, rental_id: str, amount: int, now: Optional[datetime] = None
    ) -> None:
        """
        Records an amount that could not be collected for a rental,
        adding to an existing debt row if there is one.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        debt = self.get_by_rental_id(rental_id)

        if debt:
            debt.amount_total += amount
            debt.updated_at = now
            debt.attempts = (debt.attempts or 0) + 1
            debt.last_attempt_at = now
            logger.debug(
                "attach_debt: updated rental {}: +{} (total={})",
                rental_id,
                amount,
                debt.amount_total,
            )
        else:
            debt = Debt(
                rental_id=rental_id,
                amount_total=amount,
                updated_at=now,
                attempts=1,
                last_attempt_at=now,
            )
            self.session.add(debt)
            logger.debug(
                "attach_debt: created rental {} with amount {}",
                rental_id,
                amount,
            )

        self.session.flush()
