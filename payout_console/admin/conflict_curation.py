"""Curation of contested decisions and the approve-for-learning gate."""
from __future__ import annotations

import logging
from typing import Optional

from payout_console.admin.weight_reconciler import WeightSuggestionReconciler
from payout_console.gateway.client import WorkflowGateway
from payout_console.gateway.errors import ErrorKind, GatewayError, describe, validation_error
from payout_console.models.schemas import LearningApproval
from payout_console.state.concurrency import InFlightRegistry, RequestSequencer
from payout_console.state.views import (
    ActionFailed,
    ActionStarted,
    ActionSucceeded,
    ConflictedLoaded,
    CurationEvent,
    CurationViewState,
    FetchFailed,
    FetchStarted,
    LearningApproved,
    reduce_curation,
)

logger = logging.getLogger(__name__)

LIST_ERRORS = {
    ErrorKind.NOT_FOUND: "Conflicted decisions endpoint not found.",
}

APPROVE_ERRORS = {
    ErrorKind.VALIDATION: "Invalid request (e.g. already approved).",
    ErrorKind.NOT_FOUND: "Review not found.",
}


class ConflictCurationView:
    """Read model over conflicted decisions.

    Approval is one-way: a row flips to approved only after the service
    confirms, and an approved row is never sent again.
    """

    def __init__(self, gateway: WorkflowGateway, reconciler: Optional[WeightSuggestionReconciler] = None):
        self.gateway = gateway
        self.reconciler = reconciler or WeightSuggestionReconciler(gateway)
        self.state = CurationViewState()
        self._in_flight = InFlightRegistry()
        self._sequencer = RequestSequencer()

    def _dispatch(self, event: CurationEvent) -> CurationViewState:
        self.state = reduce_curation(self.state, event)
        return self.state

    def is_locked(self, human_review_id: str) -> bool:
        return self._in_flight.is_locked(human_review_id)

    async def refresh(self) -> CurationViewState:
        seq = self._sequencer.next()
        self._dispatch(FetchStarted(seq))
        try:
            rows = await self.gateway.list_conflicted_decisions()
        except GatewayError as exc:
            self._dispatch(FetchFailed(seq, describe(exc, LIST_ERRORS, "Failed to load conflicted decisions."), exc.kind))
        else:
            self._dispatch(ConflictedLoaded(seq, tuple(rows)))
        return self.state

    async def approve_for_learning(self, human_review_id: str) -> Optional[LearningApproval]:
        """Promote one contested decision into the learning signal.

        Returns the service response, or None when nothing was approved.
        """
        if not self._in_flight.acquire(human_review_id):
            logger.debug(f"Ignoring approval of {human_review_id}: already in flight")
            return None
        try:
            row = self.state.find(human_review_id)
            if row is not None and row.approved_for_learning:
                exc = validation_error("Already approved for learning.")
                logger.info(f"Rejected approval of {human_review_id}: already approved")
                self._dispatch(ActionFailed(human_review_id, exc.detail, exc.kind))
                return None

            self._dispatch(ActionStarted(human_review_id))
            try:
                approval = await self.gateway.approve_for_learning(human_review_id)
            except GatewayError as exc:
                logger.warning(f"Approval of {human_review_id} failed: {exc!r}")
                self._dispatch(ActionFailed(
                    human_review_id,
                    describe(exc, APPROVE_ERRORS, "Failed to approve for learning."),
                    exc.kind,
                ))
                return None

            self._dispatch(LearningApproved(human_review_id))
            self._dispatch(ActionSucceeded(human_review_id, "Approved for learning."))
            if approval.suggested_weights:
                self.reconciler.present_suggested_weights(approval.suggested_weights, human_review_id)
            else:
                await self.reconciler.refresh()
            return approval
        finally:
            self._in_flight.release(human_review_id)
