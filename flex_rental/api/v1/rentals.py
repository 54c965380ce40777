from typing import Optional

from fastapi import APIRouter, Depends, Query
from loguru import logger
from sqlalchemy.orm import Session

from flex_rental.api.dependencies import (
    get_current_user,
    get_history_service,
    get_idempotency_key,
    get_rental_service,
    get_session,
)
from flex_rental.clients.auth import AuthenticatedUser
from flex_rental.core.exceptions import RentalCoreException
from flex_rental.schemas import (
    ActiveRentalsResponse,
    EndRentalRequest,
    PricingSummary,
    RentalClosedResponse,
    RentalListResponse,
    RentalStartedResponse,
    RentalView,
    StartRentalRequest,
)
from flex_rental.services.history import HISTORY_LIMIT, RentalHistoryService
from flex_rental.services.rental import RentalService

router = APIRouter()


@router.post("/rentals/start", response_model=RentalStartedResponse, response_model_by_alias=True)
def start_rental(
    request: StartRentalRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    rental_service: RentalService = Depends(get_rental_service),
    session: Session = Depends(get_session),
):
    try:
        response = rental_service.start_rental(user.id, request, idempotency_key, email=user.email)
        session.commit()
        return response
    except RentalCoreException:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"Error starting rental: {e}")
        raise


@router.post("/rentals/end", response_model=RentalClosedResponse, response_model_by_alias=True)
def end_rental(
    request: EndRentalRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    rental_service: RentalService = Depends(get_rental_service),
    session: Session = Depends(get_session),
):
    try:
        response = rental_service.end_rental(user.id, request)
        session.commit()
        return response
    except RentalCoreException:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"Error ending rental {request.rental_id}: {e}")
        raise


@router.get("/rentals/pricing", response_model=PricingSummary, response_model_by_alias=True)
def get_pricing(rental_service: RentalService = Depends(get_rental_service)):
    return rental_service.get_pricing()


@router.get("/rentals", response_model=RentalListResponse, response_model_by_alias=True)
def list_rentals(
    limit: int = Query(HISTORY_LIMIT, ge=1, le=200),
    user: AuthenticatedUser = Depends(get_current_user),
    history_service: RentalHistoryService = Depends(get_history_service),
):
    return history_service.list_rentals(user.id, limit=limit)


@router.get("/rentals/active", response_model=ActiveRentalsResponse, response_model_by_alias=True)
def list_active_rentals(
    user: AuthenticatedUser = Depends(get_current_user),
    history_service: RentalHistoryService = Depends(get_history_service),
):
    return history_service.list_active_rentals(user.id)


@router.get("/rentals/{rental_id}", response_model=RentalView, response_model_by_alias=True)
def get_rental(
    rental_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    history_service: RentalHistoryService = Depends(get_history_service),
):
    return history_service.get_rental(user.id, rental_id)
