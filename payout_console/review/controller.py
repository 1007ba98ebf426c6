"""Human review actions on automated payout decisions."""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from payout_console.config import settings
from payout_console.gateway.client import WorkflowGateway
from payout_console.gateway.errors import ErrorKind, GatewayError, describe, validation_error
from payout_console.models.schemas import (
    DecisionOutcome,
    DecisionRecord,
    FinalDecision,
    HistoryFilters,
    HumanAction,
    HumanActionRequest,
    ResolveReviewRequest,
    opposite_decision,
)
from payout_console.state.concurrency import InFlightRegistry, RequestSequencer
from payout_console.state.views import (
    ActionFailed,
    ActionStarted,
    ActionSucceeded,
    FetchFailed,
    FetchStarted,
    HistoryEvent,
    HistoryLoaded,
    HistoryViewState,
    RationaleFailed,
    RationaleLoaded,
    RationaleRequested,
    reduce_history,
)

logger = logging.getLogger(__name__)

HISTORY_ERRORS = {
    ErrorKind.NOT_FOUND: "Payout history endpoint not found.",
    ErrorKind.NETWORK: "Could not reach the workflow service.",
}

ACTION_ERRORS = {
    ErrorKind.VALIDATION: "Action rejected by the workflow service.",
    ErrorKind.NOT_FOUND: "Decision not found.",
    ErrorKind.UPSTREAM_FAILURE: "A downstream service failed while recording the action.",
    ErrorKind.NETWORK: "Could not reach the workflow service.",
}

RATIONALE_ERRORS = {
    ErrorKind.VALIDATION: "This decision was not routed to review.",
    ErrorKind.NOT_FOUND: "No rationale available for this decision.",
}


class ReviewResolutionController:
    """Drives pending → accepted / conflicted / resolved for each decision.

    One mutation per decision may be in flight. A click on a locked decision is
    a no-op. Every successful mutation is followed by a full history re-fetch
    before the lock is released.
    """

    def __init__(
        self,
        gateway: WorkflowGateway,
        reviewer_id: Optional[str] = None,
        filters: Optional[HistoryFilters] = None,
    ):
        self.gateway = gateway
        self.reviewer_id = reviewer_id or settings.reviewer_id
        self.state = HistoryViewState(
            filters=filters or HistoryFilters(limit=settings.history_limit, days=settings.history_days)
        )
        self._in_flight = InFlightRegistry()
        self._sequencer = RequestSequencer()

    def _dispatch(self, event: HistoryEvent) -> HistoryViewState:
        self.state = reduce_history(self.state, event)
        return self.state

    def is_locked(self, decision_id: str) -> bool:
        return self._in_flight.is_locked(decision_id)

    def actions_for(self, decision_id: str) -> List[HumanAction]:
        record = self.state.find(decision_id)
        if record is None:
            return []
        return record.available_actions

    async def refresh(self, filters: Optional[HistoryFilters] = None) -> HistoryViewState:
        """Replace the record list with a fresh read."""
        if filters is not None:
            self.state = replace(self.state, filters=filters)
        seq = self._sequencer.next()
        self._dispatch(FetchStarted(seq))
        try:
            records = await self.gateway.list_decisions(self.state.filters)
        except GatewayError as exc:
            self._dispatch(FetchFailed(seq, describe(exc, HISTORY_ERRORS, "Failed to load payout history."), exc.kind))
        else:
            self._dispatch(HistoryLoaded(seq, tuple(records), datetime.now()))
        return self.state

    async def accept(self, decision_id: str) -> bool:
        async def send(record: DecisionRecord) -> None:
            await self.gateway.submit_human_action(HumanActionRequest(
                decision_id=record.id,
                reviewer_id=self.reviewer_id,
                action=HumanAction.ACCEPT,
            ))

        return await self._mutate(decision_id, HumanAction.ACCEPT, send, "Decision accepted.")

    async def conflict(self, decision_id: str, note: str) -> bool:
        note = (note or "").strip()

        async def send(record: DecisionRecord) -> None:
            await self.gateway.submit_human_action(HumanActionRequest(
                decision_id=record.id,
                reviewer_id=self.reviewer_id,
                action=HumanAction.CONFLICT,
                final_decision=opposite_decision(record.decision),
                note=note,
            ))

        precheck = None if note else validation_error("A note is required to contest a decision.")
        return await self._mutate(decision_id, HumanAction.CONFLICT, send, "Decision contested.", precheck)

    async def resolve(
        self,
        decision_id: str,
        final_decision: FinalDecision,
        note: Optional[str] = None,
    ) -> bool:
        note = (note or "").strip() or None
        precheck = None
        try:
            final = FinalDecision(final_decision)
        except ValueError:
            final = None
            precheck = validation_error("Final decision must be approve or block.")

        async def send(record: DecisionRecord) -> None:
            await self.gateway.resolve_review(ResolveReviewRequest(
                decision_id=record.id,
                reviewer_id=self.reviewer_id,
                final_decision=final,
                note=note,
            ))

        return await self._mutate(decision_id, HumanAction.RESOLVE, send, "Review resolved.", precheck)

    async def fetch_rationale(self, decision_id: str) -> Optional[str]:
        """Why a decision was routed to review. Cached per decision."""
        cached = self.state.rationales.get(decision_id)
        if cached is not None:
            return cached
        self._dispatch(RationaleRequested(decision_id))
        try:
            text = await self.gateway.get_review_rationale(decision_id)
        except GatewayError as exc:
            self._dispatch(RationaleFailed(
                decision_id,
                describe(exc, RATIONALE_ERRORS, "Failed to load the review rationale."),
                exc.kind,
            ))
            return None
        self._dispatch(RationaleLoaded(decision_id, text))
        return text

    def _check_transition(self, decision_id: str, action: HumanAction) -> DecisionRecord:
        record = self.state.find(decision_id)
        if record is None:
            raise GatewayError(ErrorKind.NOT_FOUND, detail="Decision is not in the current list. Refresh and try again.")
        if record.human_final_decision is not None:
            raise validation_error("This decision already has a final human decision.")
        if action not in record.available_actions:
            if record.decision == DecisionOutcome.REVIEW:
                raise validation_error("Decisions routed to review can only be resolved.")
            raise validation_error("Only decisions routed to review can be resolved.")
        return record

    async def _mutate(
        self,
        decision_id: str,
        action: HumanAction,
        send: Callable[[DecisionRecord], Awaitable[None]],
        notice: str,
        precheck: Optional[GatewayError] = None,
    ) -> bool:
        if self._in_flight.is_locked(decision_id):
            logger.debug(f"Ignoring {action.value} on {decision_id}: mutation in flight")
            return False

        try:
            if precheck is not None:
                raise precheck
            record = self._check_transition(decision_id, action)
        except GatewayError as exc:
            logger.info(f"Rejected {action.value} on {decision_id}: {exc.detail}")
            self._dispatch(ActionFailed(decision_id, describe(exc, ACTION_ERRORS), exc.kind))
            return False

        self._in_flight.acquire(decision_id)
        try:
            self._dispatch(ActionStarted(decision_id))
            try:
                await send(record)
            except GatewayError as exc:
                self._dispatch(ActionFailed(
                    decision_id,
                    describe(exc, ACTION_ERRORS, f"Failed to {action.value} decision."),
                    exc.kind,
                ))
                return False
            self._dispatch(ActionSucceeded(decision_id, notice))
            await self.refresh()
            return True
        finally:
            self._in_flight.release(decision_id)
