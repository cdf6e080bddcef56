from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog

from nudge_ledger.economy.jobs.errors import (
    GenerationGatewayError,
    GenerationJobNotFoundError,
    GenerationSubmitError,
)
from nudge_ledger.economy.jobs.types import (
    GenerationGateway,
    GenerationJobRequest,
    GenerationKind,
    GenerationRequestResult,
    GenerationRequestStatus,
)
from nudge_ledger.economy.ports import LedgerStore, ReservationRecord, StoreScope
from nudge_ledger.economy.reservations.service import ReservationService
from nudge_ledger.economy.reservations.types import RefundReason, ReservationTransitionResult

logger = structlog.get_logger(__name__)


class JobEnqueuer:
    """Couples a reservation with a job handed to the generation provider.

    The provider call never runs inside a ledger transaction: the reservation
    is committed to storage first, then the job is submitted, then the job id
    is attached in a second short transaction.
    """

    def __init__(
        self,
        *,
        gateway: GenerationGateway,
        store_scope: StoreScope,
        submit_timeout_seconds: float,
        weekly_limit: int,
    ) -> None:
        self.gateway = gateway
        self.store_scope = store_scope
        self.submit_timeout_seconds = submit_timeout_seconds
        self.weekly_limit = weekly_limit

    async def submit(
        self,
        *,
        user_id: str,
        kind: GenerationKind,
        payload: dict[str, Any],
        reservation_id: UUID,
        now_utc: datetime,
    ) -> str:
        request = GenerationJobRequest(
            user_id=user_id,
            kind=kind,
            reservation_id=reservation_id,
            payload=payload,
        )
        try:
            job_id = await asyncio.wait_for(
                self.gateway.submit(request),
                timeout=self.submit_timeout_seconds,
            )
        except (asyncio.TimeoutError, GenerationGatewayError) as exc:
            logger.warning(
                "generation_submit_failed",
                user_id=user_id,
                reservation_id=str(reservation_id),
                error_type=type(exc).__name__,
            )
            async with self.store_scope() as store:
                await ReservationService.refund(
                    store,
                    reservation_id=reservation_id,
                    reason=RefundReason.SUBMIT_FAILED,
                    now_utc=now_utc,
                )
            raise GenerationSubmitError from exc

        # The job is live at the provider; its callback can still resolve the
        # reservation through reference_id if this attach does not land.
        try:
            async with self.store_scope() as store:
                attached = await store.attach_job_id(reservation_id, job_id=job_id, now_utc=now_utc)
        except Exception:
            logger.exception(
                "generation_job_attach_failed",
                reservation_id=str(reservation_id),
                job_id=job_id,
            )
        else:
            if not attached:
                logger.warning(
                    "generation_job_attach_skipped",
                    reservation_id=str(reservation_id),
                    job_id=job_id,
                )

        logger.info(
            "generation_job_submitted",
            user_id=user_id,
            reservation_id=str(reservation_id),
            job_id=job_id,
            kind=kind.value,
        )
        return job_id

    async def reserve_and_submit(
        self,
        *,
        user_id: str,
        kind: GenerationKind,
        payload: dict[str, Any],
        now_utc: datetime,
        check_in_id: int | None = None,
    ) -> GenerationRequestResult:
        async with self.store_scope() as store:
            reservation = await ReservationService.reserve(
                store,
                user_id=user_id,
                now_utc=now_utc,
                weekly_limit=self.weekly_limit,
            )
            if reservation.allowed and check_in_id is not None:
                assert reservation.reservation_id is not None
                await store.link_check_in_reservation(
                    check_in_id,
                    reservation_id=reservation.reservation_id,
                )

        if not reservation.allowed:
            return GenerationRequestResult(
                status=GenerationRequestStatus.DENIED,
                denial_reason=reservation.denial_reason,
                reservation_id=None,
                job_id=None,
            )

        assert reservation.reservation_id is not None
        job_id = await self.submit(
            user_id=user_id,
            kind=kind,
            payload=payload,
            reservation_id=reservation.reservation_id,
            now_utc=now_utc,
        )
        return GenerationRequestResult(
            status=GenerationRequestStatus.ACCEPTED,
            denial_reason=None,
            reservation_id=reservation.reservation_id,
            job_id=job_id,
            credits_remaining=reservation.credits_remaining,
            weekly_usage_count=reservation.weekly_usage_count,
        )

    @staticmethod
    async def _resolve_reservation(
        store: LedgerStore,
        *,
        job_id: str,
        reference_id: UUID | None,
        now_utc: datetime,
    ) -> ReservationRecord:
        reservation = await store.get_reservation_by_job_id(job_id)
        if reservation is not None:
            return reservation
        if reference_id is None:
            raise GenerationJobNotFoundError

        # The callback may arrive before the submitting request attached the job id.
        reservation = await store.get_reservation(reference_id)
        if reservation is None:
            raise GenerationJobNotFoundError
        if reservation.job_id is None:
            await store.attach_job_id(reservation.id, job_id=job_id, now_utc=now_utc)
            logger.info(
                "generation_job_attached_from_callback",
                reservation_id=str(reservation.id),
                job_id=job_id,
            )
        elif reservation.job_id != job_id:
            logger.warning(
                "generation_job_reference_mismatch",
                reservation_id=str(reservation.id),
                job_id=job_id,
                attached_job_id=reservation.job_id,
            )
            raise GenerationJobNotFoundError
        return reservation

    async def report_completed(
        self,
        *,
        job_id: str,
        now_utc: datetime,
        reference_id: UUID | None = None,
        media_url: str | None = None,
    ) -> ReservationTransitionResult:
        async with self.store_scope() as store:
            reservation = await self._resolve_reservation(
                store,
                job_id=job_id,
                reference_id=reference_id,
                now_utc=now_utc,
            )
            return await ReservationService.commit(
                store,
                reservation_id=reservation.id,
                now_utc=now_utc,
                media_url=media_url,
            )

    async def report_failed(
        self,
        *,
        job_id: str,
        now_utc: datetime,
        reference_id: UUID | None = None,
    ) -> ReservationTransitionResult:
        async with self.store_scope() as store:
            reservation = await self._resolve_reservation(
                store,
                job_id=job_id,
                reference_id=reference_id,
                now_utc=now_utc,
            )
            return await ReservationService.refund(
                store,
                reservation_id=reservation.id,
                reason=RefundReason.JOB_FAILED,
                now_utc=now_utc,
            )
