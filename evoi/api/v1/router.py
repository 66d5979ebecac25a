from fastapi import APIRouter

from evoi.api.v1 import decision, health

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(decision.router, prefix="/decision", tags=["decision"])
