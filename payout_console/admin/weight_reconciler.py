"""Reconcile committed signal weights, engine proposals and operator edits."""
from __future__ import annotations

import logging
import math
from typing import Any, List, Optional

from payout_console.gateway.client import WorkflowGateway
from payout_console.gateway.errors import ErrorKind, GatewayError, describe
from payout_console.models.schemas import WEIGHT_MAX, WEIGHT_MIN, WeightsMap
from payout_console.state.concurrency import InFlightRegistry, RequestSequencer
from payout_console.state.views import (
    ActionFailed,
    ActionStarted,
    FetchFailed,
    FetchStarted,
    SuggestedWeightsClosed,
    SuggestedWeightsPresented,
    SuggestionDismissed,
    WeightEdited,
    WeightsCommitted,
    WeightsEvent,
    WeightsLoaded,
    WeightsViewState,
    reduce_weights,
)

logger = logging.getLogger(__name__)

WEIGHTS_LOCK = "weights"

FETCH_ERRORS = {
    ErrorKind.NOT_FOUND: "Weights endpoint not found.",
}


def clamp_weight(raw: Any) -> float:
    """Coerce operator input into a valid weight. Non-numeric input becomes 0."""
    if isinstance(raw, bool):
        return WEIGHT_MIN
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return WEIGHT_MIN
    if math.isnan(value):
        return WEIGHT_MIN
    return min(WEIGHT_MAX, max(WEIGHT_MIN, value))


def signal_names(state: WeightsViewState) -> List[str]:
    """Committed signals, or the proposal's signals when nothing is committed yet."""
    resource = state.resource
    if resource is None:
        return []
    if resource.weights:
        return sorted(resource.weights)
    if resource.pending_suggestion:
        return sorted(resource.pending_suggestion)
    return []


def committed_value(state: WeightsViewState, signal: str) -> float:
    if state.resource is None:
        return 0.0
    return state.resource.weights.get(signal, 0.0)


def display_value(state: WeightsViewState, signal: str) -> float:
    if signal in state.overlay:
        return state.overlay[signal]
    return committed_value(state, signal)


def has_pending_edit(state: WeightsViewState) -> bool:
    return any(
        signal in state.overlay and state.overlay[signal] != committed_value(state, signal)
        for signal in signal_names(state)
    )


def edited_weights(state: WeightsViewState) -> WeightsMap:
    """Full replacement map: committed weights with the overlay applied."""
    merged: WeightsMap = dict(state.resource.weights) if state.resource else {}
    merged.update(state.overlay)
    return merged


class WeightSuggestionReconciler:
    """Signal-weights view: one authoritative display value per signal.

    Nothing is merged with the server. Every successful write adopts the
    server's response wholesale and drops the local overlay.
    """

    def __init__(self, gateway: WorkflowGateway):
        self.gateway = gateway
        self.state = WeightsViewState()
        self._in_flight = InFlightRegistry()
        self._sequencer = RequestSequencer()

    def _dispatch(self, event: WeightsEvent) -> WeightsViewState:
        self.state = reduce_weights(self.state, event)
        return self.state

    @property
    def signal_names(self) -> List[str]:
        return signal_names(self.state)

    @property
    def has_pending_edit(self) -> bool:
        return has_pending_edit(self.state)

    @property
    def is_saving(self) -> bool:
        return self._in_flight.is_locked(WEIGHTS_LOCK)

    def display_value(self, signal: str) -> float:
        return display_value(self.state, signal)

    async def refresh(self) -> WeightsViewState:
        seq = self._sequencer.next()
        self._dispatch(FetchStarted(seq))
        try:
            resource = await self.gateway.get_weights()
        except GatewayError as exc:
            self._dispatch(FetchFailed(seq, describe(exc, FETCH_ERRORS, "Failed to load signal weights."), exc.kind))
        else:
            self._dispatch(WeightsLoaded(seq, resource))
        return self.state

    def edit(self, signal: str, raw_value: Any) -> float:
        """Hold an operator edit in the overlay, already clamped."""
        value = clamp_weight(raw_value)
        self._dispatch(WeightEdited(signal, value))
        return value

    def dismiss_suggestion(self) -> None:
        """Hide the pending suggestion. Local only; committed weights are untouched."""
        self._dispatch(SuggestionDismissed())

    async def apply_suggestion(self) -> bool:
        resource = self.state.resource
        if resource is None or not resource.pending_suggestion:
            return False
        return await self._commit(
            dict(resource.pending_suggestion),
            "Suggestion applied.",
            "Failed to apply suggestion.",
        )

    async def save_manual_weights(self) -> bool:
        if self.state.resource is None or not self.has_pending_edit:
            return False
        return await self._commit(
            edited_weights(self.state),
            "Weights saved.",
            "Failed to save weights.",
        )

    def present_suggested_weights(self, weights: WeightsMap, source_review_id: Optional[str] = None) -> None:
        """Show a transient proposal from a learning approval."""
        self._dispatch(SuggestedWeightsPresented(weights, source_review_id))

    async def dismiss_suggested_weights(self) -> WeightsViewState:
        self._dispatch(SuggestedWeightsClosed())
        return await self.refresh()

    async def apply_suggested_weights(self) -> bool:
        """Persist the learning proposal. The proposal closes whatever the outcome."""
        proposal = self.state.suggested_weights
        if not proposal:
            return False
        if not self._in_flight.acquire(WEIGHTS_LOCK):
            return False
        try:
            self._dispatch(ActionStarted(WEIGHTS_LOCK))
            try:
                resource = await self.gateway.patch_weights(dict(proposal), source_review_id=self.state.suggested_source)
            except GatewayError as exc:
                self._dispatch(SuggestedWeightsClosed())
                await self.refresh()
                self._dispatch(ActionFailed(WEIGHTS_LOCK, describe(exc, default="Failed to apply suggested weights."), exc.kind))
                return False
            self._dispatch(WeightsCommitted(resource, "Suggested weights applied."))
            self._dispatch(SuggestedWeightsClosed())
            await self.refresh()
            return True
        finally:
            self._in_flight.release(WEIGHTS_LOCK)

    async def _commit(self, weights: WeightsMap, notice: str, failure: str) -> bool:
        if not self._in_flight.acquire(WEIGHTS_LOCK):
            logger.debug("Ignoring weights write: another write is in flight")
            return False
        try:
            self._dispatch(ActionStarted(WEIGHTS_LOCK))
            try:
                resource = await self.gateway.patch_weights(weights)
            except GatewayError as exc:
                self._dispatch(ActionFailed(WEIGHTS_LOCK, describe(exc, default=failure), exc.kind))
                return False
            logger.info(f"Committed weights for {len(resource.weights)} signals")
            self._dispatch(WeightsCommitted(resource, notice))
            return True
        finally:
            self._in_flight.release(WEIGHTS_LOCK)

    def describe_proposal(self, proposal: Optional[WeightsMap]) -> List[str]:
        """One line per signal: committed value → proposed value."""
        if not proposal:
            return []
        return [
            f"{name}: {committed_value(self.state, name):g} → {value:g}"
            for name, value in sorted(proposal.items())
        ]
