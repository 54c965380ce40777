from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from pawa_shared.db.models import PointsTransaction


class PointsRepository:
    def __init__(self, session: Session):
        self.session = session

    def find_transaction(
        self, user_id: str, source: str, reference_id: str
    ) -> Optional[PointsTransaction]:
        return self.session.execute(
            select(PointsTransaction).where(
                PointsTransaction.user_id == user_id,
                PointsTransaction.source == source,
                PointsTransaction.reference_id == reference_id,
            )
        ).scalar_one_or_none()

    def create_transaction(
        self,
        user_id: str,
        amount: int,
        source: str,
        description: str,
        reference_id: Optional[str] = None,
    ) -> PointsTransaction:
        transaction = PointsTransaction(
            user_id=user_id,
            amount=amount,
            type="earned",
            source=source,
            reference_id=reference_id,
            description=description,
            created_at=datetime.now(timezone.utc),
        )
        self.session.add(transaction)
        self.session.flush()
        return transaction
