from typing import Optional

from loguru import logger
from sqlalchemy import update
from sqlalchemy.orm import Session

from pawa_shared.db.models import User


class UserRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, user_id: str) -> Optional[User]:
        return self.session.get(User, user_id, populate_existing=True)

    def set_stripe_customer_id(self, user_id: str, customer_id: str) -> None:
        user = self.get_by_id(user_id)
        if user:
            user.stripe_customer_id = customer_id
        else:
            self.session.add(User(id=user_id, stripe_customer_id=customer_id))
        self.session.flush()
        logger.debug(f"Stored gateway customer {customer_id} for user {user_id}")

    def add_points(self, user_id: str, amount: int) -> int:
        """Credits earned points and returns the new available balance."""
        result = self.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(
                total_points=User.total_points + amount,
                available_points=User.available_points + amount,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.session.add(
                User(
                    id=user_id,
                    total_points=amount,
                    available_points=amount,
                    pending_points=0,
                )
            )
            self.session.flush()
            return amount

        user = self.get_by_id(user_id)
        return user.available_points
