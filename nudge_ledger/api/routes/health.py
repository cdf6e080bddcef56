from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import Any

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy import text

from nudge_ledger.core.config import get_settings
from nudge_ledger.db.session import SessionLocal
from nudge_ledger.economy.webhooks.catalog import get_price_catalog
from nudge_ledger.workers.celery_app import celery_app

router = APIRouter(tags=["health"])
logger = structlog.get_logger(__name__)


def _ok_check(extra: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"status": "ok"}
    if extra:
        payload.update(extra)
    return payload


def _failed_check(error: str) -> dict[str, str]:
    return {"status": "failed", "error": error}


async def _check_database() -> dict[str, Any]:
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return _ok_check()
    except Exception as exc:
        # Driver errors can echo the DSN; log the type only.
        logger.warning("health_database_check_failed", error_type=type(exc).__name__)
        return _failed_check("database_unavailable")


async def _check_redis() -> dict[str, Any]:
    redis_client: Redis | None = None
    try:
        redis_client = Redis.from_url(get_settings().redis_url)
        if await redis_client.ping() is not True:
            return _failed_check("redis_unexpected_ping_response")
        return _ok_check()
    except Exception as exc:
        logger.warning("health_redis_check_failed", error_type=type(exc).__name__)
        return _failed_check("redis_unavailable")
    finally:
        if redis_client is not None:
            await redis_client.aclose()


def _check_sweep_worker_sync() -> dict[str, Any]:
    try:
        inspector = celery_app.control.inspect(timeout=1.0)
        if inspector is None:
            return _failed_check("celery_inspector_unavailable")

        replies = inspector.ping() or {}
        if not replies:
            return _failed_check("celery_no_workers")
        return _ok_check({"workers": len(replies)})
    except Exception as exc:
        logger.warning("health_celery_check_failed", error_type=type(exc).__name__)
        return _failed_check("celery_unavailable")


async def _check_sweep_worker() -> dict[str, Any]:
    return await asyncio.to_thread(_check_sweep_worker_sync)


async def _check_ledger_config() -> dict[str, Any]:
    settings = get_settings()
    # Without these every webhook is rejected and every generation request fails.
    if not settings.payment_webhook_secret:
        return _failed_check("payment_webhook_secret_missing")
    if not settings.generation_api_url:
        return _failed_check("generation_api_url_missing")
    return _ok_check({"prices": len(get_price_catalog())})


async def _run_checks(checks: dict[str, Awaitable[dict[str, Any]]]) -> tuple[bool, dict[str, dict[str, Any]]]:
    results = await asyncio.gather(*checks.values())
    named = dict(zip(checks.keys(), results))
    return all(result.get("status") == "ok" for result in results), named


@router.get("/health")
async def health() -> JSONResponse:
    is_healthy, checks = await _run_checks(
        {
            "database": _check_database(),
            "redis": _check_redis(),
            "celery": _check_sweep_worker(),
            "config": _check_ledger_config(),
        }
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if is_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ok" if is_healthy else "degraded", "checks": checks},
    )


@router.get("/ready")
async def ready() -> JSONResponse:
    # The sweep worker is not on the request path, so readiness ignores Celery.
    is_ready, checks = await _run_checks(
        {
            "database": _check_database(),
            "redis": _check_redis(),
        }
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if is_ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if is_ready else "not_ready", "checks": checks},
    )


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "live"}
