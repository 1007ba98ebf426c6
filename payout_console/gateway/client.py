"""Async client for the payout workflow service."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from payout_console.config import settings
from payout_console.gateway.errors import (
    ErrorKind,
    GatewayError,
    from_response,
    from_request_error,
)
from payout_console.models.schemas import (
    ConflictedDecision,
    DecisionRecord,
    HistoryFilters,
    HumanActionRequest,
    LearningApproval,
    ResolveReviewRequest,
    ReviewRationale,
    WeightsMap,
    WeightsPatch,
    WeightsResource,
)

logger = logging.getLogger(__name__)


class WorkflowGateway:
    """Sole point of contact with the workflow service.

    Every method is one request/response. Nothing is retried; failures
    surface as GatewayError.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.request_timeout_s
        self._transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Any:
        logger.debug(f"{method} {path} params={params}")
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, params=params, json=json)
        except httpx.RequestError as exc:
            error = from_request_error(exc)
            logger.warning(f"{method} {path} failed: {error!r}")
            raise error from exc

        if response.is_error:
            error = from_response(response)
            logger.warning(f"{method} {path} failed: {error!r}")
            raise error

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise GatewayError(
                ErrorKind.UNKNOWN,
                detail="Response body is not valid JSON",
                status_code=response.status_code,
            ) from exc

    @staticmethod
    def _parse(model, data: Any):
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise GatewayError(ErrorKind.UNKNOWN, detail=f"Unexpected response shape: {exc}") from exc

    async def check_health(self) -> bool:
        await self._request("GET", "/health")
        return True

    async def submit_decision(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Request an automated decision. The outcome is passed through untouched."""
        data = await self._request("POST", "/payout/decision", json=payload)
        return data if isinstance(data, dict) else {}

    async def list_decisions(self, filters: Optional[HistoryFilters] = None) -> List[DecisionRecord]:
        filters = filters or HistoryFilters(limit=settings.history_limit, days=settings.history_days)
        data = await self._request("GET", "/payout/history", params=filters.to_params())
        if not isinstance(data, list):
            return []
        return [self._parse(DecisionRecord, item) for item in data]

    async def submit_human_action(self, request: HumanActionRequest) -> Dict[str, Any]:
        data = await self._request(
            "POST",
            "/payout/human-action",
            json=request.model_dump(mode="json", exclude_none=True),
        )
        return data if isinstance(data, dict) else {}

    async def resolve_review(self, request: ResolveReviewRequest) -> Dict[str, Any]:
        data = await self._request(
            "POST",
            "/payout/resolve-review",
            json=request.model_dump(mode="json", exclude_none=True),
        )
        return data if isinstance(data, dict) else {}

    async def get_review_rationale(self, decision_id: str) -> str:
        data = await self._request("GET", f"/payout/{decision_id}/review-rationale")
        if isinstance(data, str):
            return data
        return self._parse(ReviewRationale, data).explanation

    async def get_weights(self) -> WeightsResource:
        data = await self._request("GET", "/admin/weights")
        return self._parse(WeightsResource, data or {})

    async def patch_weights(self, weights: WeightsMap, source_review_id: Optional[str] = None) -> WeightsResource:
        body = WeightsPatch(signal_weights=weights, source_review_id=source_review_id).model_dump(exclude_none=True)
        data = await self._request("PATCH", "/admin/weights", json=body)
        return self._parse(WeightsResource, data or {})

    async def list_conflicted_decisions(self) -> List[ConflictedDecision]:
        data = await self._request("GET", "/admin/conflicted-decisions")
        if isinstance(data, dict):
            data = data.get("conflicted_decisions")
        if not isinstance(data, list):
            return []
        return [self._parse(ConflictedDecision, item) for item in data]

    async def approve_for_learning(self, human_review_id: str) -> LearningApproval:
        data = await self._request("POST", f"/admin/conflicted-decisions/{human_review_id}/approve")
        return self._parse(LearningApproval, data or {})

    async def send_daily_summary(self, webhook_url: str) -> Dict[str, Any]:
        """Ask the service to push the daily summary to a chat webhook."""
        data = await self._request(
            "POST",
            "/metrics/daily-summary/send",
            json={"webhook_url": webhook_url},
        )
        return data if isinstance(data, dict) else {}
