from fastapi import APIRouter, Depends

from evoi.core.worker import ComputationWorker, get_worker

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "evoi-api"}


@router.get("/health/worker")
async def health_check_worker(worker: ComputationWorker = Depends(get_worker)):
    """Computation worker health check"""
    try:
        await worker.ping()
        return {"status": "healthy", "worker": worker.kind}
    except Exception as e:
        return {"status": "unhealthy", "worker": worker.kind, "error": str(e)}
