"""
Decision engine for A/B test value of information.

This module provides:
- Prior distributions over relative lift (Normal, Student-t, Uniform)
- EVPI: the most it is worth paying to know the true lift
- EVSI: what a specific test design is worth before running it
- Net Value: EVSI net of test costs and the time spent testing
- DecisionService: runs cheap calculations inline and Monte Carlo off-loop
"""

from evoi.services.decision.distributions import (
    NormalPrior,
    PriorShape,
    StudentTPrior,
    UniformPrior,
    build_prior,
)
from evoi.services.decision.errors import ComputationError, DecisionEngineError, InvalidInputError
from evoi.services.decision.evpi import calculate_evpi
from evoi.services.decision.evsi import (
    calculate_evsi,
    calculate_evsi_monte_carlo,
    calculate_evsi_normal_fast_path,
)
from evoi.services.decision.inputs import (
    BusinessInputs,
    CostInputs,
    EVPIInputs,
    EVSIInputs,
    NetValueInputs,
    TestDesign,
    normalize_threshold,
)
from evoi.services.decision.net_value import calculate_net_value
from evoi.services.decision.results import EVPIResult, EVSIResult, NetValueResult
from evoi.services.decision.rules import Decision, decide
from evoi.services.decision.service import DecisionService

__all__ = [
    "NormalPrior",
    "StudentTPrior",
    "UniformPrior",
    "PriorShape",
    "build_prior",
    "DecisionEngineError",
    "InvalidInputError",
    "ComputationError",
    "BusinessInputs",
    "TestDesign",
    "CostInputs",
    "EVPIInputs",
    "EVSIInputs",
    "NetValueInputs",
    "normalize_threshold",
    "Decision",
    "decide",
    "calculate_evpi",
    "calculate_evsi",
    "calculate_evsi_normal_fast_path",
    "calculate_evsi_monte_carlo",
    "calculate_net_value",
    "EVPIResult",
    "EVSIResult",
    "NetValueResult",
    "DecisionService",
]
