import structlog
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from nudge_ledger.api.routes.check_ins import router as check_ins_router
from nudge_ledger.api.routes.credits import router as credits_router
from nudge_ledger.api.routes.generations import router as generations_router
from nudge_ledger.api.routes.health import router as health_router
from nudge_ledger.api.routes.internal_generation_jobs import router as internal_generation_jobs_router
from nudge_ledger.api.routes.payments_webhook import router as payments_webhook_router
from nudge_ledger.core.config import get_settings
from nudge_ledger.core.logging import configure_logging
from nudge_ledger.economy.webhooks.catalog import get_price_catalog

logger = structlog.get_logger(__name__)


async def _storage_unavailable(request: Request, exc: Exception) -> JSONResponse:
    logger.warning(
        "request_storage_failed",
        path=request.url.path,
        error_type=type(exc).__name__,
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "retry"},
    )


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)
    # Fail at startup on a malformed PRICE_ACTIONS table rather than on the first webhook.
    price_catalog = get_price_catalog()
    logger.info("price_catalog_loaded", prices=len(price_catalog))

    app = FastAPI(
        title="Nudge Ledger API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.add_exception_handler(SQLAlchemyError, _storage_unavailable)
    app.include_router(health_router)
    app.include_router(payments_webhook_router)
    app.include_router(credits_router)
    app.include_router(generations_router)
    app.include_router(check_ins_router)
    app.include_router(internal_generation_jobs_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "nudge_ledger.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
