from __future__ import annotations

from typing import Any

import httpx
import structlog

from nudge_ledger.core.config import get_settings
from nudge_ledger.economy.jobs.errors import GenerationGatewayError
from nudge_ledger.economy.jobs.types import GenerationJobRequest

logger = structlog.get_logger(__name__)


def _extract_job_id(body: Any) -> str | None:
    if not isinstance(body, dict):
        return None
    for key in ("job_id", "jobId", "id", "taskId"):
        value = body.get(key)
        if isinstance(value, (str, int)) and str(value).strip():
            return str(value).strip()
    data = body.get("data")
    if isinstance(data, dict):
        return _extract_job_id(data)
    return None


class HttpGenerationGateway:
    def __init__(
        self,
        *,
        api_url: str,
        api_key: str,
        timeout_seconds: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    @classmethod
    def from_settings(cls) -> HttpGenerationGateway:
        settings = get_settings()
        return cls(
            api_url=settings.generation_api_url,
            api_key=settings.generation_api_key,
            timeout_seconds=settings.generation_submit_timeout_ms / 1000,
        )

    async def submit(self, request: GenerationJobRequest) -> str:
        if not self.api_url:
            raise GenerationGatewayError("generation api url is not configured")

        body = {
            "kind": request.kind.value,
            "user_id": request.user_id,
            "reference_id": str(request.reservation_id),
            "payload": request.payload,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
                response = await client.post(self.api_url, json=body, headers=headers)
                response.raise_for_status()
                response_body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "generation_gateway_request_failed",
                url=self.api_url,
                reservation_id=str(request.reservation_id),
                error_type=type(exc).__name__,
            )
            raise GenerationGatewayError(str(exc)) from exc

        job_id = _extract_job_id(response_body)
        if job_id is None:
            logger.warning(
                "generation_gateway_job_id_missing",
                url=self.api_url,
                reservation_id=str(request.reservation_id),
            )
            raise GenerationGatewayError("provider response carries no job id")
        return job_id
