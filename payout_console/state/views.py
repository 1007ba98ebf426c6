"""Per-view state snapshots and the pure reducers that advance them.

Controllers never mutate a snapshot. They build an event, pass it through the
view's reducer, and keep the returned snapshot. Fetch events carry the
sequence tag they were issued with; a reducer drops any fetch result whose tag
is not the latest one it saw started.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Tuple, Union

from payout_console.gateway.errors import ErrorKind
from payout_console.models.schemas import (
    ConflictedDecision,
    DecisionRecord,
    HistoryFilters,
    WeightsMap,
    WeightsResource,
)


class RegionStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Region:
    """Status of one independently rendered area of a view."""
    status: RegionStatus = RegionStatus.IDLE
    message: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @classmethod
    def loading(cls) -> "Region":
        return cls(status=RegionStatus.LOADING)

    @classmethod
    def succeeded(cls, message: Optional[str] = None) -> "Region":
        return cls(status=RegionStatus.SUCCESS, message=message)

    @classmethod
    def failed(cls, message: str, kind: ErrorKind) -> "Region":
        return cls(status=RegionStatus.ERROR, message=message, error_kind=kind)

    @property
    def is_loading(self) -> bool:
        return self.status == RegionStatus.LOADING

    @property
    def error(self) -> Optional[str]:
        return self.message if self.status == RegionStatus.ERROR else None


# Events shared by every view

@dataclass(frozen=True)
class FetchStarted:
    seq: int


@dataclass(frozen=True)
class FetchFailed:
    seq: int
    message: str
    kind: ErrorKind


@dataclass(frozen=True)
class ActionStarted:
    key: str


@dataclass(frozen=True)
class ActionSucceeded:
    key: str
    notice: Optional[str] = None


@dataclass(frozen=True)
class ActionFailed:
    key: str
    message: str
    kind: ErrorKind


# Decision history

@dataclass(frozen=True)
class HistoryLoaded:
    seq: int
    records: Tuple[DecisionRecord, ...]
    loaded_at: datetime


@dataclass(frozen=True)
class RationaleRequested:
    decision_id: str


@dataclass(frozen=True)
class RationaleLoaded:
    decision_id: str
    text: str


@dataclass(frozen=True)
class RationaleFailed:
    decision_id: str
    message: str
    kind: ErrorKind


@dataclass(frozen=True)
class HistoryViewState:
    records: Tuple[DecisionRecord, ...] = ()
    filters: HistoryFilters = field(default_factory=HistoryFilters)
    list_region: Region = field(default_factory=Region)
    action_region: Region = field(default_factory=Region)
    action_key: Optional[str] = None
    rationales: Dict[str, str] = field(default_factory=dict)
    rationale_region: Region = field(default_factory=Region)
    last_refreshed: Optional[datetime] = None
    latest_seq: int = 0

    def find(self, decision_id: str) -> Optional[DecisionRecord]:
        for record in self.records:
            if record.id == decision_id:
                return record
        return None


HistoryEvent = Union[
    FetchStarted, HistoryLoaded, FetchFailed,
    ActionStarted, ActionSucceeded, ActionFailed,
    RationaleRequested, RationaleLoaded, RationaleFailed,
]


def reduce_history(state: HistoryViewState, event: HistoryEvent) -> HistoryViewState:
    if isinstance(event, FetchStarted):
        return replace(state, list_region=Region.loading(), latest_seq=event.seq)
    if isinstance(event, HistoryLoaded):
        if event.seq != state.latest_seq:
            return state
        return replace(
            state,
            records=tuple(event.records),
            list_region=Region.succeeded(),
            last_refreshed=event.loaded_at,
        )
    if isinstance(event, FetchFailed):
        if event.seq != state.latest_seq:
            return state
        return replace(state, list_region=Region.failed(event.message, event.kind))
    if isinstance(event, ActionStarted):
        return replace(state, action_region=Region.loading(), action_key=event.key)
    if isinstance(event, ActionSucceeded):
        return replace(state, action_region=Region.succeeded(event.notice), action_key=event.key)
    if isinstance(event, ActionFailed):
        return replace(state, action_region=Region.failed(event.message, event.kind), action_key=event.key)
    if isinstance(event, RationaleRequested):
        return replace(state, rationale_region=Region.loading())
    if isinstance(event, RationaleLoaded):
        rationales = dict(state.rationales)
        rationales[event.decision_id] = event.text
        return replace(state, rationales=rationales, rationale_region=Region.succeeded())
    if isinstance(event, RationaleFailed):
        return replace(state, rationale_region=Region.failed(event.message, event.kind))
    raise TypeError(f"Unhandled history event: {event!r}")


# Conflicted decisions

@dataclass(frozen=True)
class ConflictedLoaded:
    seq: int
    rows: Tuple[ConflictedDecision, ...]


@dataclass(frozen=True)
class LearningApproved:
    human_review_id: str


@dataclass(frozen=True)
class CurationViewState:
    rows: Tuple[ConflictedDecision, ...] = ()
    list_region: Region = field(default_factory=Region)
    approve_region: Region = field(default_factory=Region)
    latest_seq: int = 0

    def find(self, human_review_id: str) -> Optional[ConflictedDecision]:
        for row in self.rows:
            if row.human_review_id == human_review_id:
                return row
        return None


CurationEvent = Union[
    FetchStarted, ConflictedLoaded, FetchFailed,
    ActionStarted, ActionSucceeded, ActionFailed, LearningApproved,
]


def reduce_curation(state: CurationViewState, event: CurationEvent) -> CurationViewState:
    if isinstance(event, FetchStarted):
        return replace(state, list_region=Region.loading(), latest_seq=event.seq)
    if isinstance(event, ConflictedLoaded):
        if event.seq != state.latest_seq:
            return state
        return replace(state, rows=tuple(event.rows), list_region=Region.succeeded())
    if isinstance(event, FetchFailed):
        if event.seq != state.latest_seq:
            return state
        return replace(state, list_region=Region.failed(event.message, event.kind))
    if isinstance(event, ActionStarted):
        return replace(state, approve_region=Region.loading())
    if isinstance(event, ActionSucceeded):
        return replace(state, approve_region=Region.succeeded(event.notice))
    if isinstance(event, ActionFailed):
        return replace(state, approve_region=Region.failed(event.message, event.kind))
    if isinstance(event, LearningApproved):
        # Only the approval flag changes; every other field is left as fetched
        rows = tuple(
            row.model_copy(update={"approved_for_learning": True})
            if row.human_review_id == event.human_review_id else row
            for row in state.rows
        )
        return replace(state, rows=rows)
    raise TypeError(f"Unhandled curation event: {event!r}")


# Signal weights

@dataclass(frozen=True)
class WeightsLoaded:
    seq: int
    resource: WeightsResource


@dataclass(frozen=True)
class WeightsCommitted:
    resource: WeightsResource
    notice: Optional[str] = None


@dataclass(frozen=True)
class WeightEdited:
    signal: str
    value: float


@dataclass(frozen=True)
class SuggestionDismissed:
    pass


@dataclass(frozen=True)
class SuggestedWeightsPresented:
    weights: WeightsMap
    source_review_id: Optional[str] = None


@dataclass(frozen=True)
class SuggestedWeightsClosed:
    pass


@dataclass(frozen=True)
class WeightsViewState:
    resource: Optional[WeightsResource] = None
    overlay: Dict[str, float] = field(default_factory=dict)
    suggested_weights: Optional[WeightsMap] = None
    suggested_source: Optional[str] = None
    region: Region = field(default_factory=Region)
    save_region: Region = field(default_factory=Region)
    latest_seq: int = 0
    # Bumped whenever the committed weights are replaced
    revision: int = 0


WeightsEvent = Union[
    FetchStarted, WeightsLoaded, FetchFailed, WeightsCommitted, WeightEdited,
    SuggestionDismissed, SuggestedWeightsPresented, SuggestedWeightsClosed,
    ActionStarted, ActionFailed,
]


def reduce_weights(state: WeightsViewState, event: WeightsEvent) -> WeightsViewState:
    if isinstance(event, FetchStarted):
        return replace(state, region=Region.loading(), latest_seq=event.seq)
    if isinstance(event, WeightsLoaded):
        if event.seq != state.latest_seq:
            return state
        return replace(
            state,
            resource=event.resource,
            overlay={},
            region=Region.succeeded(),
            revision=state.revision + 1,
        )
    if isinstance(event, FetchFailed):
        if event.seq != state.latest_seq:
            return state
        return replace(state, region=Region.failed(event.message, event.kind))
    if isinstance(event, WeightsCommitted):
        return replace(
            state,
            resource=event.resource,
            overlay={},
            save_region=Region.succeeded(event.notice),
            revision=state.revision + 1,
        )
    if isinstance(event, WeightEdited):
        overlay = dict(state.overlay)
        overlay[event.signal] = event.value
        return replace(state, overlay=overlay)
    if isinstance(event, SuggestionDismissed):
        if state.resource is None:
            return state
        return replace(state, resource=state.resource.model_copy(update={"pending_suggestion": None}))
    if isinstance(event, SuggestedWeightsPresented):
        return replace(state, suggested_weights=dict(event.weights), suggested_source=event.source_review_id)
    if isinstance(event, SuggestedWeightsClosed):
        return replace(state, suggested_weights=None, suggested_source=None)
    if isinstance(event, ActionStarted):
        return replace(state, save_region=Region.loading())
    if isinstance(event, ActionFailed):
        return replace(state, save_region=Region.failed(event.message, event.kind))
    raise TypeError(f"Unhandled weights event: {event!r}")
