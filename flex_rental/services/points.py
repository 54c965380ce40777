from typing import Optional

from loguru import logger

from pawa_shared.db.repositories.points import PointsRepository
from pawa_shared.db.repositories.user import UserRepository

from flex_rental.core.exceptions import PointsAlreadyAwardedException, ValidationError
from flex_rental.monitoring.metrics import MetricsCollector
from flex_rental.schemas import AwardPointsResponse, PointsBalanceResponse

RENTAL_COMPLETED = "rental_completed"

POINTS_MAP = {
    "referral_activated": 25,
    RENTAL_COMPLETED: 30,
    "booking_completed": 30,
    "welcome_new_joiner": 30,
}

SOURCE_MAP = {
    "referral_activated": "referral",
    RENTAL_COMPLETED: "rental",
    "booking_completed": "booking",
    "welcome_new_joiner": "promo",
}

DESCRIPTION_MAP = {
    "referral_activated": "A new friend has joined using your referral code.",
    RENTAL_COMPLETED: "Thank you for returning the power bank to the hub.",
    "booking_completed": "Thank you for completing your booking.",
    "welcome_new_joiner": "Welcome to Pawatasty!",
}


class PointsService:
    def __init__(self, points_repo: PointsRepository, user_repo: UserRepository):
        self.points_repo = points_repo
        self.user_repo = user_repo

    def award_points(
        self, user_id: str, event_type: str, reference_id: Optional[str] = None
    ) -> AwardPointsResponse:
        if event_type not in POINTS_MAP:
            raise ValidationError("Invalid event type", code="INVALID_EVENT_TYPE")

        source = SOURCE_MAP[event_type]
        # the welcome bonus is once per user
        if event_type == "welcome_new_joiner" and reference_id is None:
            reference_id = user_id

        if reference_id is not None and self.points_repo.find_transaction(
            user_id, source, reference_id
        ):
            raise PointsAlreadyAwardedException()

        points = POINTS_MAP[event_type]
        self.points_repo.create_transaction(
            user_id=user_id,
            amount=points,
            source=source,
            description=DESCRIPTION_MAP[event_type],
            reference_id=reference_id,
        )
        new_balance = self.user_repo.add_points(user_id, points)
        MetricsCollector.record_points(event_type)

        logger.info(
            f"Awarded {points} points to user {user_id} for {event_type} (ref={reference_id})"
        )
        return AwardPointsResponse(
            message=f"Successfully awarded {points} points!",
            points_awarded=points,
            new_balance=new_balance,
        )

    def award_rental_completed(self, user_id: str, rental_id: str) -> Optional[int]:
        """Best-effort award on a normal return; returns points or None."""
        try:
            return self.award_points(user_id, RENTAL_COMPLETED, rental_id).points_awarded
        except PointsAlreadyAwardedException:
            logger.debug(f"Points for rental {rental_id} already awarded")
            return None

    def get_balance(self, user_id: str) -> PointsBalanceResponse:
        user = self.user_repo.get_by_id(user_id)
        if not user:
            return PointsBalanceResponse(user_id=user_id)

        return PointsBalanceResponse(
            user_id=user.id,
            total_points=user.total_points or 0,
            available_points=user.available_points or 0,
            pending_points=user.pending_points or 0,
        )
