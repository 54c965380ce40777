from datetime import datetime, timezone
from typing import Optional

from loguru import logger
from sqlalchemy import func
from sqlalchemy.orm import Session

from pawa_shared.db.models import PaymentAttempt


class PaymentRepository:
    def __init__(self, session: Session):
        self.session = session

    def create_payment_attempt(
        self,
        rental_id: str,
        purpose: str,
        amount: int,
        success: bool,
        charge_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> PaymentAttempt:
        attempt = PaymentAttempt(
            rental_id=rental_id,
            purpose=purpose,
            amount=amount,
            success=success,
            charge_id=charge_id,
            error=error,
            created_at=datetime.now(timezone.utc),
        )
        self.session.add(attempt)
        self.session.flush()

        status = "SUCCESS" if success else "FAILED"
        logger.info(
            f"Payment attempt {status}: rental={rental_id}, purpose={purpose}, amount={amount}"
        )
        if error:
            logger.warning(f"Payment error for rental {rental_id}: {error}")

        return attempt

    def get_total_paid(self, rental_id: str) -> int:
        total = (
            self.session.query(func.coalesce(func.sum(PaymentAttempt.amount), 0))
            .filter(
                PaymentAttempt.rental_id == rental_id,
                PaymentAttempt.success.is_(True),
                PaymentAttempt.purpose != "refund",
            )
            .scalar()
        )
        return total or 0

    def find_successful_charge(
        self, rental_id: str, purpose: str
    ) -> Optional[PaymentAttempt]:
        return (
            self.session.query(PaymentAttempt)
            .filter(
                PaymentAttempt.rental_id == rental_id,
                PaymentAttempt.purpose == purpose,
                PaymentAttempt.success.is_(True),
            )
            .order_by(PaymentAttempt.created_at.desc())
            .first()
        )
