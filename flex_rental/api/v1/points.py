from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from flex_rental.api.dependencies import get_current_user, get_points_service, get_session
from flex_rental.clients.auth import AuthenticatedUser
from flex_rental.schemas import AwardPointsRequest, AwardPointsResponse, PointsBalanceResponse
from flex_rental.services.points import PointsService

router = APIRouter()


@router.get("/points/balance", response_model=PointsBalanceResponse, response_model_by_alias=True)
def get_points_balance(
    user: AuthenticatedUser = Depends(get_current_user),
    points_service: PointsService = Depends(get_points_service),
):
    return points_service.get_balance(user.id)


@router.post("/points/award", response_model=AwardPointsResponse, response_model_by_alias=True)
def award_points(
    request: AwardPointsRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    points_service: PointsService = Depends(get_points_service),
    session: Session = Depends(get_session),
):
    try:
        response = points_service.award_points(user.id, request.event_type, request.reference_id)
        session.commit()
        return response
    except Exception:
        session.rollback()
        raise
