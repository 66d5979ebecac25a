"""
Off-loop execution of Monte Carlo calculations.

Requests are immutable snapshots; every request produces exactly one
response. ``ComputationError`` raised inside the worker is turned into a
failed response and only re-raised on the caller's side by ``unwrap``;
input errors found inside the worker travel back the same way.
There is no cancellation, caching or timeout.
"""

import asyncio
import time
import uuid
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

import structlog

from evoi.config import get_settings
from evoi.services.decision.errors import ComputationError, DecisionEngineError, InvalidInputError
from evoi.services.decision.evsi import POSTERIOR_GRID_SIZE, calculate_evsi_monte_carlo
from evoi.services.decision.inputs import EVSIInputs, NetValueInputs
from evoi.services.decision.net_value import calculate_net_value
from evoi.services.decision.results import EVSIResult, NetValueResult

logger = structlog.get_logger()

WORKER_KINDS = ("process", "thread")


class CalculationKind(str, Enum):
    EVSI = "evsi"
    NET_VALUE = "net-value"


@dataclass(frozen=True)
class ComputationRequest:
    kind: CalculationKind
    inputs: Union[EVSIInputs, NetValueInputs]
    num_samples: int
    seed: Optional[int] = None
    grid_size: int = POSTERIOR_GRID_SIZE
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(frozen=True)
class ComputationResponse:
    request_id: str
    result: Optional[Union[EVSIResult, NetValueResult]] = None
    error: Optional[str] = None
    quantity: Optional[str] = None
    field: Optional[str] = None  # Set when the failure was an input error
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Union[EVSIResult, NetValueResult]:
        if self.error is not None and self.field is not None:
            raise InvalidInputError(self.field, self.error)
        if self.error is not None:
            raise ComputationError(self.error, quantity=self.quantity)
        return self.result


def run_request(request: ComputationRequest) -> ComputationResponse:
    """Executor entry point; must stay importable at module level for process pools."""
    start_time = time.perf_counter()
    try:
        if request.kind == CalculationKind.EVSI:
            result = calculate_evsi_monte_carlo(
                request.inputs,
                num_samples=request.num_samples,
                seed=request.seed,
                grid_size=request.grid_size,
            )
        elif request.kind == CalculationKind.NET_VALUE:
            result = calculate_net_value(
                request.inputs,
                num_samples=request.num_samples,
                seed=request.seed,
                grid_size=request.grid_size,
            )
        else:
            raise InvalidInputError("kind", f"unknown calculation kind {request.kind!r}")
    except DecisionEngineError as e:
        return ComputationResponse(
            request_id=request.request_id,
            error=e.message,
            quantity=getattr(e, "quantity", None),
            field=getattr(e, "field", None),
            elapsed_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )

    return ComputationResponse(
        request_id=request.request_id,
        result=result,
        elapsed_ms=round((time.perf_counter() - start_time) * 1000, 2),
    )


def ping() -> str:
    return "pong"


class ComputationWorker:
    def __init__(self, kind: str = "process", max_workers: Optional[int] = None):
        if kind not in WORKER_KINDS:
            raise ValueError(f"worker kind must be one of {WORKER_KINDS}, got {kind!r}")
        self.kind = kind
        self.max_workers = max_workers
        self._executor: Optional[Executor] = None

    @property
    def executor(self) -> Executor:
        if self._executor is None:
            if self.kind == "process":
                self._executor = ProcessPoolExecutor(max_workers=self.max_workers)
            else:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers, thread_name_prefix="evoi-worker"
                )
        return self._executor

    async def submit(self, request: ComputationRequest) -> ComputationResponse:
        loop = asyncio.get_running_loop()
        response = await loop.run_in_executor(self.executor, run_request, request)

        if response.ok:
            logger.info(
                "computation_completed",
                request_id=response.request_id,
                kind=request.kind.value,
                num_samples=request.num_samples,
                elapsed_ms=response.elapsed_ms,
            )
        else:
            logger.warning(
                "computation_failed",
                request_id=response.request_id,
                kind=request.kind.value,
                error=response.error,
                quantity=response.quantity,
                field=response.field,
            )
        return response

    async def ping(self) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, ping)

    async def run(self, request: ComputationRequest) -> Union[EVSIResult, NetValueResult]:
        response = await self.submit(request)
        return response.unwrap()

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None


computation_worker: Optional[ComputationWorker] = None


def get_worker() -> ComputationWorker:
    """Get the shared computation worker"""
    global computation_worker
    if computation_worker is None:
        settings = get_settings()
        computation_worker = ComputationWorker(
            kind=settings.WORKER_KIND,
            max_workers=settings.WORKER_MAX_WORKERS,
        )
    return computation_worker


async def close_worker():
    """Shut down the shared computation worker"""
    global computation_worker
    if computation_worker:
        computation_worker.shutdown()
        computation_worker = None
