"""
Loan calculator endpoints
"""

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from .deps import DealerFinanceSystem, get_system, http_error
from .schemas import LoanCalculationRequest, PrepaymentRequest
from ..amortization import compute_payment, simulate_prepayment, LoanParameters
from ..export import schedule_to_csv


router = APIRouter()


def _parameters(request: LoanCalculationRequest, system: DealerFinanceSystem) -> LoanParameters:
    params = request.to_loan_parameters(system.config.default_interest_rate, system.currency)
    params.validate(max_term=system.config.max_loan_term)
    return params


def _true_frequency(request: LoanCalculationRequest, system: DealerFinanceSystem) -> bool:
    if request.true_frequency is not None:
        return request.true_frequency
    return system.config.true_frequency_schedule


@router.post("/calculate")
async def calculate_loan(
    request: LoanCalculationRequest,
    system: DealerFinanceSystem = Depends(get_system)
):
    """Calculate payment and amortization schedule"""
    try:
        params = _parameters(request, system)
        result = compute_payment(params, true_frequency=_true_frequency(request, system))
        return result.to_dict()

    except Exception as e:
        raise http_error(e)


@router.post("/calculate/export")
async def export_schedule(
    request: LoanCalculationRequest,
    system: DealerFinanceSystem = Depends(get_system)
):
    """Download the amortization schedule as CSV"""
    try:
        params = _parameters(request, system)
        result = compute_payment(params, true_frequency=_true_frequency(request, system))
        content = schedule_to_csv(result.schedule)

    except Exception as e:
        raise http_error(e)

    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="amortization_schedule.csv"'}
    )


@router.post("/prepayment")
async def calculate_prepayment(
    request: PrepaymentRequest,
    system: DealerFinanceSystem = Depends(get_system)
):
    """Simulate extra principal payments"""
    try:
        params = _parameters(request.loan, system)
        result = simulate_prepayment(
            params, request.to_plan(),
            true_frequency=_true_frequency(request.loan, system)
        )
        return result.to_dict()

    except Exception as e:
        raise http_error(e)
