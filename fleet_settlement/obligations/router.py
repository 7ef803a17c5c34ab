# fleet_settlement/obligations/router.py

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from fleet_settlement.core.db import get_db
from fleet_settlement.obligations.exceptions import ObligationError
from fleet_settlement.obligations.models import ObligationClass
from fleet_settlement.obligations.schemas import ObligationQueueResponse, RegistrationResponse
from fleet_settlement.obligations.services import ObligationScheduler, get_obligation_scheduler
from fleet_settlement.settlements.schemas import (
    SelectionAction,
    SelectionRequest,
    SelectionResponse,
)
from fleet_settlement.utils.logger import get_logger
from fleet_settlement.vehicles.schemas import VehicleProfile

logger = get_logger(__name__)
router = APIRouter(prefix="/obligations", tags=["Obligations"])


def scheduler_dependency(db: Session = Depends(get_db)) -> ObligationScheduler:
    return get_obligation_scheduler(db)


@router.get(
    "/{vehicle_id}/{obligation_class}",
    response_model=ObligationQueueResponse,
    summary="Classified Obligation Queue",
)
def get_obligation_queue(
    vehicle_id: str,
    obligation_class: ObligationClass,
    today: Optional[date] = Query(None, description="Business date; defaults to today."),
    scheduler: ObligationScheduler = Depends(scheduler_dependency),
):
    """
    Lists a vehicle's EMI or rent obligations in due-date order, each
    classified against `today`, with the positions currently selectable.
    """
    try:
        return scheduler.queue_summary(vehicle_id, obligation_class, today or date.today())
    except ObligationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except Exception as e:
        logger.error("Unexpected error in get_obligation_queue: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while fetching obligations.",
        ) from e


@router.post(
    "/{vehicle_id}/{obligation_class}/selection",
    response_model=SelectionResponse,
    summary="Update Settlement Selection",
)
def update_selection(
    vehicle_id: str,
    obligation_class: ObligationClass,
    request: SelectionRequest,
    scheduler: ObligationScheduler = Depends(scheduler_dependency),
):
    """
    Applies a toggle, select-all or penalty change to the posted session and
    returns the new session. The selection always stays an oldest-first
    prefix of the eligible queue.
    """
    today = request.today or date.today()
    session = request.session

    if request.action in (SelectionAction.TOGGLE, SelectionAction.SET_PENALTY) and request.index is None:
        raise HTTPException(
            status_code=422,
            detail=f"'index' is required for {request.action.value}.",
        )

    if request.action == SelectionAction.TOGGLE:
        session = scheduler.toggle_selection(session, vehicle_id, obligation_class, request.index, today)
    elif request.action == SelectionAction.SELECT_ALL:
        session = scheduler.select_all(session, vehicle_id, obligation_class, today)
    elif request.index in session.selection_for(vehicle_id, obligation_class):
        session = session.with_penalty(vehicle_id, obligation_class, request.index, request.penalty)
    else:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Obligation {request.index} is not selected.",
        )

    return SelectionResponse(
        session=session,
        selected=list(session.selection_for(vehicle_id, obligation_class)),
        instructions=session.to_instructions(),
    )


@router.post(
    "/register",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register Obligation Queues",
)
def register_obligations(
    profile: VehicleProfile,
    scheduler: ObligationScheduler = Depends(scheduler_dependency),
):
    """
    Creates the EMI queue from the profile's loan schedule and the rent
    queue from its assignment. Queues that already exist are left as is.
    """
    try:
        emi = scheduler.register_loan(profile.vehicle_id, profile.loan) if profile.loan else []
        rent = scheduler.register_assignment(profile.vehicle_id, profile.assignment) if profile.assignment else []
        return RegistrationResponse(vehicle_id=profile.vehicle_id, emi_count=len(emi), rent_count=len(rent))
    except ObligationError as e:
        logger.warning("Obligation registration failed: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
