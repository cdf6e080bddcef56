from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from zoneinfo import ZoneInfo

import structlog

from nudge_ledger.economy.check_ins.errors import (
    AlreadyCheckedInError,
    CheckInNotFoundError,
    CheckInValidationError,
)
from nudge_ledger.economy.check_ins.motivations import motivation_for_mood
from nudge_ledger.economy.check_ins.streak import current_streak, streak_window_start
from nudge_ledger.economy.entitlements.service import require_user_id
from nudge_ledger.economy.ports import CheckInRecord, LedgerStore
from nudge_ledger.economy.reservations.types import ReservationState

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class CheckInResult:
    check_in_id: int
    user_id: str
    check_in_date: date
    motivation: str
    streak: int


@dataclass(slots=True)
class TodayCheckIn:
    check_in: CheckInRecord
    streak: int
    audio_status: str | None
    audio_url: str | None


AUDIO_STATUS_BY_RESERVATION = {
    ReservationState.RESERVED.value: "pending",
    ReservationState.COMMITTED.value: "ready",
    ReservationState.REFUNDED.value: "failed",
}


def local_check_in_date(now_utc: datetime, timezone_name: str) -> date:
    """Calendar day of ``now_utc`` in the configured check-in timezone."""
    return now_utc.astimezone(ZoneInfo(timezone_name)).date()


class CheckInService:
    @staticmethod
    async def check_in(
        store: LedgerStore,
        *,
        user_id: str | None,
        mood: str | None,
        message: str | None,
        now_utc: datetime,
        timezone_name: str = "UTC",
    ) -> CheckInResult:
        resolved_user_id = require_user_id(user_id)
        normalized_mood = (mood or "").strip()
        normalized_message = (message or "").strip()
        if not normalized_mood or not normalized_message:
            raise CheckInValidationError

        check_in_date = local_check_in_date(now_utc, timezone_name)
        check_in_id = await store.try_create_check_in(
            resolved_user_id,
            check_in_date=check_in_date,
            mood=normalized_mood,
            message=normalized_message,
            now_utc=now_utc,
        )
        if check_in_id is None:
            logger.info(
                "check_in_duplicate",
                user_id=resolved_user_id,
                check_in_date=check_in_date.isoformat(),
            )
            raise AlreadyCheckedInError

        dates = await store.list_check_in_dates(resolved_user_id, since=streak_window_start(check_in_date))
        streak = max(1, current_streak(dates, today=check_in_date))

        logger.info(
            "check_in_saved",
            user_id=resolved_user_id,
            check_in_id=check_in_id,
            check_in_date=check_in_date.isoformat(),
            mood=normalized_mood,
            streak=streak,
        )
        return CheckInResult(
            check_in_id=check_in_id,
            user_id=resolved_user_id,
            check_in_date=check_in_date,
            motivation=motivation_for_mood(normalized_mood),
            streak=streak,
        )

    @staticmethod
    async def get_today(
        store: LedgerStore,
        *,
        user_id: str | None,
        now_utc: datetime,
        timezone_name: str = "UTC",
    ) -> TodayCheckIn:
        resolved_user_id = require_user_id(user_id)
        today = local_check_in_date(now_utc, timezone_name)
        check_in = await store.get_check_in(resolved_user_id, check_in_date=today)
        if check_in is None:
            raise CheckInNotFoundError

        dates = await store.list_check_in_dates(resolved_user_id, since=streak_window_start(today))
        audio_status = (
            AUDIO_STATUS_BY_RESERVATION.get(check_in.reservation_status)
            if check_in.reservation_status is not None
            else None
        )
        return TodayCheckIn(
            check_in=check_in,
            streak=current_streak(dates, today=today),
            audio_status=audio_status,
            audio_url=check_in.media_url if audio_status == "ready" else None,
        )
