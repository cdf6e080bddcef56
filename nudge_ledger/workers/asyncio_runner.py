from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

import structlog

from nudge_ledger.db.session import dispose_engine

T = TypeVar("T")


async def _run_job(awaitable: Awaitable[T], *, job_name: str) -> T:
    # Every asyncio.run starts a new loop; asyncpg connections pooled on the old one are unusable.
    await dispose_engine()
    try:
        with structlog.contextvars.bound_contextvars(job=job_name):
            return await awaitable
    finally:
        await dispose_engine()


def run_async_job(awaitable: Awaitable[T], *, job_name: str) -> T:
    return asyncio.run(_run_job(awaitable, job_name=job_name))
