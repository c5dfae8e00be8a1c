from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from pointmart_api.core.settings import settings
from pointmart_api.db.session import async_session
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .services.accrual import AccrualClient, DynamicRateLimiter
from .workers import AccrualReconciliationWorker


APP_VERSION = "0.1.0"


def _session_factory():
    return async_session()


def build_accrual_worker() -> tuple[AccrualReconciliationWorker, AccrualClient, DynamicRateLimiter]:
    client = AccrualClient(
        settings.accrual_system_address,
        timeout_seconds=settings.accrual_request_timeout_seconds,
    )
    limiter = DynamicRateLimiter(
        settings.accrual_rate_interval_seconds,
        settings.accrual_rate_burst,
    )
    worker = AccrualReconciliationWorker(
        _session_factory,
        client=client,
        limiter=limiter,
        batch_size=settings.accrual_batch_size,
        poll_interval_seconds=settings.accrual_poll_interval_seconds,
        cooldown_seconds=settings.accrual_rate_limit_cooldown_seconds,
        backoff_step_seconds=settings.accrual_backoff_step_seconds,
        shutdown_timeout_seconds=settings.accrual_shutdown_timeout_seconds,
    )
    return worker, client, limiter


@asynccontextmanager
async def lifespan(app: FastAPI):
    worker, client, limiter = build_accrual_worker()
    app.state.accrual_worker = worker

    worker_enabled = settings.accrual_worker_enabled
    if worker_enabled:
        worker.start()
        logger.info(
            "Accrual worker enabled",
            accrual_system_address=settings.accrual_system_address,
            poll_interval_seconds=worker.poll_interval_seconds,
        )
    else:
        logger.info(
            "Accrual worker disabled",
            reason="accrual_worker_enabled is false",
        )

    try:
        yield
    finally:
        if worker_enabled:
            await worker.stop()
        await limiter.close()
        await client.aclose()


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


def create_app() -> FastAPI:
    """Application factory for the Pointmart FastAPI service."""
    configure_logging(
        service_name="pointmart-api",
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
    )

    app = FastAPI(
        title="Pointmart API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="pointmart-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.include_router(api_router)

    return app
