from typing import Optional

import structlog

from evoi.config import Settings, get_settings
from evoi.core.worker import CalculationKind, ComputationRequest, ComputationWorker, get_worker
from evoi.services.decision.distributions import PriorShape
from evoi.services.decision.errors import InvalidInputError
from evoi.services.decision.evpi import calculate_evpi
from evoi.services.decision.evsi import calculate_evsi_normal_fast_path, check_num_samples
from evoi.services.decision.inputs import EVPIInputs, EVSIInputs, NetValueInputs
from evoi.services.decision.results import EVPIResult, EVSIResult, NetValueResult

logger = structlog.get_logger()


class DecisionService:
    """Entry point for callers: validates, then runs calculations in the right place.

    EVPI and the Normal EVSI fast path are cheap and run inline. Monte Carlo
    calculations are handed to the computation worker and awaited.
    """

    def __init__(self, worker: Optional[ComputationWorker] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._worker = worker

    @property
    def worker(self) -> ComputationWorker:
        if self._worker is None:
            self._worker = get_worker()
        return self._worker

    def _resolve_num_samples(self, num_samples: Optional[int]) -> int:
        if num_samples is None:
            num_samples = self.settings.DEFAULT_MC_SAMPLES
        check_num_samples(num_samples)
        if num_samples > self.settings.MAX_MC_SAMPLES:
            raise InvalidInputError(
                "num_samples", f"must be at most {self.settings.MAX_MC_SAMPLES}, got {num_samples}"
            )
        return num_samples

    def compute_evpi(self, inputs: EVPIInputs, method: Optional[str] = None) -> EVPIResult:
        result = calculate_evpi(inputs, method=method)
        logger.info(
            "evpi_computed",
            prior_shape=inputs.prior.shape.value,
            method=result.method,
            evpi=round(result.evpi_dollars, 2),
            default_decision=result.default_decision.value,
        )
        return result

    async def compute_evsi(
        self, inputs: EVSIInputs, num_samples: Optional[int] = None, seed: Optional[int] = None
    ) -> EVSIResult:
        num_samples = self._resolve_num_samples(num_samples)

        if inputs.prior.shape == PriorShape.NORMAL:
            result = calculate_evsi_normal_fast_path(inputs)
        else:
            request = ComputationRequest(
                kind=CalculationKind.EVSI,
                inputs=inputs,
                num_samples=num_samples,
                seed=seed,
                grid_size=self.settings.POSTERIOR_GRID_SIZE,
            )
            result = await self.worker.run(request)

        logger.info(
            "evsi_computed",
            prior_shape=inputs.prior.shape.value,
            path=result.method,
            evsi=round(result.evsi_dollars, 2),
            num_samples=result.num_samples,
            warnings=[w.code for w in result.warnings],
        )
        return result

    async def compute_net_value(
        self, inputs: NetValueInputs, num_samples: Optional[int] = None, seed: Optional[int] = None
    ) -> NetValueResult:
        request = ComputationRequest(
            kind=CalculationKind.NET_VALUE,
            inputs=inputs,
            num_samples=self._resolve_num_samples(num_samples),
            seed=seed,
            grid_size=self.settings.POSTERIOR_GRID_SIZE,
        )
        result = await self.worker.run(request)

        logger.info(
            "net_value_computed",
            prior_shape=inputs.prior.shape.value,
            net_value=round(result.net_value_dollars, 2),
            verdict=result.verdict,
            num_samples=result.num_samples,
        )
        return result
