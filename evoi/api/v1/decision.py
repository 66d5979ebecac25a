from typing import Optional

from fastapi import APIRouter, Depends, Query

from evoi.models.schemas import (
    EVPIRequest,
    EVPIResponse,
    EVSIRequest,
    EVSIResponse,
    NetValueRequest,
    NetValueResponse,
)
from evoi.services.decision.service import DecisionService

router = APIRouter()


def get_decision_service() -> DecisionService:
    return DecisionService()


@router.post("/evpi", response_model=EVPIResponse)
async def compute_evpi(request: EVPIRequest, service: DecisionService = Depends(get_decision_service)):
    """Value of knowing the true lift before deciding."""
    result = service.compute_evpi(request.to_inputs(), method=request.method)
    return EVPIResponse.from_result(result)


@router.post("/evsi", response_model=EVSIResponse)
async def compute_evsi(
    request: EVSIRequest,
    num_samples: Optional[int] = Query(None, description="Monte Carlo samples; ignored for Normal priors"),
    seed: Optional[int] = Query(None, ge=0, description="Seed for reproducible Monte Carlo runs"),
    service: DecisionService = Depends(get_decision_service),
):
    """Value of running the described test before deciding."""
    result = await service.compute_evsi(request.to_inputs(), num_samples=num_samples, seed=seed)
    return EVSIResponse.from_result(result)


@router.post("/net-value", response_model=NetValueResponse)
async def compute_net_value(
    request: NetValueRequest,
    num_samples: Optional[int] = Query(None, description="Monte Carlo samples"),
    seed: Optional[int] = Query(None, ge=0, description="Seed for reproducible Monte Carlo runs"),
    service: DecisionService = Depends(get_decision_service),
):
    """Test value net of its costs, with a test / don't test verdict."""
    result = await service.compute_net_value(request.to_inputs(), num_samples=num_samples, seed=seed)
    return NetValueResponse.from_result(result)
