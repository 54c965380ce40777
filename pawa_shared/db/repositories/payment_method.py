from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from pawa_shared.db.models import PaymentMethod

ACTIVE_STATUS = "active"


class PaymentMethodRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_active_for_user(
        self, user_id: str, stripe_payment_method_id: str
    ) -> Optional[PaymentMethod]:
        return self.session.execute(
            select(PaymentMethod)
            .where(
                PaymentMethod.stripe_payment_method_id == stripe_payment_method_id,
                PaymentMethod.user_id == user_id,
                PaymentMethod.payment_method_status == ACTIVE_STATUS,
            )
            .limit(1)
        ).scalar_one_or_none()

    def get_primary_for_user(self, user_id: str) -> Optional[PaymentMethod]:
        return self.session.execute(
            select(PaymentMethod)
            .where(
                PaymentMethod.user_id == user_id,
                PaymentMethod.is_primary.is_(True),
                PaymentMethod.payment_method_status == ACTIVE_STATUS,
            )
            .limit(1)
        ).scalar_one_or_none()
