import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from evoi.api.v1.router import api_router
from evoi.config import get_settings
from evoi.core.worker import close_worker, get_worker
from evoi.middleware import TelemetryMiddleware
from evoi.services.decision.errors import ComputationError, InvalidInputError

settings = get_settings()

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer() if settings.DEBUG else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(settings.LOG_LEVEL.upper())
    ),
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    worker = get_worker()
    logger.info("startup", app=settings.APP_NAME, worker=worker.kind, max_workers=worker.max_workers)
    yield
    # Shutdown
    await close_worker()
    logger.info("shutdown_complete")


app = FastAPI(
    title=settings.APP_NAME,
    description="Expected value of information for A/B test decisions",
    version="0.1.0",
    docs_url=f"{settings.API_V1_PREFIX}/docs",
    redoc_url=f"{settings.API_V1_PREFIX}/redoc",
    lifespan=lifespan,
)

# CORS middleware
if settings.CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(TelemetryMiddleware)


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    logger.warning("invalid_input", path=request.url.path, field=exc.field, error=exc.message)
    return JSONResponse(status_code=422, content={"detail": exc.message, "field": exc.field})


@app.exception_handler(ComputationError)
async def computation_error_handler(request: Request, exc: ComputationError):
    logger.error("computation_error", path=request.url.path, quantity=exc.quantity, error=exc.message)
    return JSONResponse(status_code=400, content={"detail": exc.message, "error": "computation_error"})


# Include routers
app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "version": "0.1.0",
        "environment": settings.ENVIRONMENT,
        "worker": settings.WORKER_KIND,
    }
