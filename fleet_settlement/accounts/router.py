# fleet_settlement/accounts/router.py

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from fleet_settlement.accounts.schemas import PeriodSummaryRequest, PeriodSummaryResponse
from fleet_settlement.accounts.services import AccountSummaryService
from fleet_settlement.core.db import get_db
from fleet_settlement.periods.exceptions import InvalidPeriodError
from fleet_settlement.periods.schemas import Period
from fleet_settlement.settlements.exceptions import VehicleProfileNotFoundError
from fleet_settlement.settlements.providers import FinancialDataProvider, get_data_provider
from fleet_settlement.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/accounts", tags=["Accounts"])


def account_service_dependency(
    db: Session = Depends(get_db),
    provider: FinancialDataProvider = Depends(get_data_provider),
) -> AccountSummaryService:
    return AccountSummaryService(db, provider)


@router.post("/period-summary", response_model=PeriodSummaryResponse, summary="Vehicle Period Summary")
def get_period_summary(
    request: PeriodSummaryRequest,
    service: AccountSummaryService = Depends(account_service_dependency),
):
    """
    Per-month profit and waterfall for the selected period, with each
    component's ledger status, what is actually payable, cash in hand and
    the EMI / rent queue summaries.
    """
    try:
        period = Period.from_selection(request.period_type, request.year, request.value)
        return service.period_summary(
            request.vehicle_id,
            period,
            today=request.today,
            profile=request.profile,
            earnings=request.earnings,
            expenses=request.expenses,
        )
    except InvalidPeriodError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except VehicleProfileNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except Exception as e:
        logger.error("Unexpected error in get_period_summary: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while building the period summary.",
        ) from e
