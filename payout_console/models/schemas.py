"""Pydantic schemas for data validation and serialization."""
from enum import Enum
from typing import List, Optional, Dict, Any, Union
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict, AliasChoices, model_validator


WeightsMap = Dict[str, float]

WEIGHT_MIN = 0.0
WEIGHT_MAX = 100.0


class DecisionOutcome(str, Enum):
    """Automated decision outcomes."""
    APPROVE = "approve"
    REVIEW = "review"
    BLOCK = "block"


class FinalDecision(str, Enum):
    """Outcomes a human can settle on."""
    APPROVE = "approve"
    BLOCK = "block"


class HumanAction(str, Enum):
    """Human actions on a decision record."""
    ACCEPT = "accept"
    CONFLICT = "conflict"
    RESOLVE = "resolve"


class ReviewState(str, Enum):
    """Lifecycle state of a decision record from the reviewer's point of view."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    CONFLICTED = "conflicted"
    RESOLVED = "resolved"


def opposite_decision(decision: DecisionOutcome) -> FinalDecision:
    """Return the contested outcome for an approve/block decision."""
    if decision == DecisionOutcome.APPROVE:
        return FinalDecision.BLOCK
    if decision == DecisionOutcome.BLOCK:
        return FinalDecision.APPROVE
    raise ValueError("Review decisions have no opposite outcome")


class DecisionRecord(BaseModel):
    """One automated decision on a payout, with its human-resolution fields."""
    model_config = ConfigDict(protected_namespaces=(), populate_by_name=True)
    id: str = Field(..., validation_alias=AliasChoices("id", "decision_id"), description="Decision identifier")
    created_at: datetime = Field(..., description="Creation timestamp")
    user_id: str = Field(..., description="Subject of the payout")
    amount: float = Field(..., description="Payout amount")
    currency: str = Field(..., description="Payout currency")
    decision: DecisionOutcome = Field(..., description="Automated decision")
    risk_score: float = Field(0.0, description="Risk score")
    confidence_score: float = Field(0.0, description="Decision confidence")
    regret_level: Optional[Union[float, str]] = Field(None, description="Regret level or band")
    triggered_signals: List[str] = Field(default_factory=list, description="Signals that fired")
    reasons: List[str] = Field(default_factory=list, description="Decision reasons")
    counterfactuals: List[str] = Field(default_factory=list, description="What would have changed the outcome")
    human_final_decision: Optional[FinalDecision] = Field(None, description="Human's final decision")
    human_overrode: bool = Field(False, description="Whether the human decision differs from the system")
    human_note: Optional[str] = Field(None, description="Human reviewer's note")

    @property
    def review_state(self) -> ReviewState:
        if self.human_final_decision is None:
            return ReviewState.PENDING
        if self.decision == DecisionOutcome.REVIEW:
            return ReviewState.RESOLVED
        if self.human_overrode:
            return ReviewState.CONFLICTED
        return ReviewState.ACCEPTED

    @property
    def available_actions(self) -> List[HumanAction]:
        """Actions a reviewer may still take on this record."""
        if self.human_final_decision is not None:
            return []
        if self.decision == DecisionOutcome.REVIEW:
            return [HumanAction.RESOLVE]
        return [HumanAction.ACCEPT, HumanAction.CONFLICT]


class ConflictedDecision(BaseModel):
    """Curation-side projection of a decision a human contested."""
    model_config = ConfigDict(protected_namespaces=())
    human_review_id: str = Field(..., description="Human review identifier")
    decision_id: Optional[str] = Field(None, description="Originating decision identifier")
    created_at: Optional[datetime] = Field(None, description="Decision timestamp")
    reviewed_at: Optional[datetime] = Field(None, description="Review timestamp")
    user_id: Optional[str] = Field(None, description="Subject of the payout")
    payout_summary: Optional[str] = Field(None, description="Free-text payout summary")
    amount: Optional[float] = Field(None, description="Payout amount")
    currency: Optional[str] = Field(None, description="Payout currency")
    system_decision: FinalDecision = Field(..., description="System's decision")
    human_decision: FinalDecision = Field(..., description="Human's contested decision")
    human_note: Optional[str] = Field(None, description="Human reviewer's note")
    system_explanation: Optional[str] = Field(None, description="System explanation of the decision")
    risk_score: float = Field(0.0, description="Risk score")
    triggered_signals: List[str] = Field(default_factory=list, description="Signals that fired")
    reasons: List[str] = Field(default_factory=list, description="Decision reasons")
    approved_for_learning: bool = Field(False, description="Promoted into the learning signal")
    approved_at: Optional[datetime] = Field(None, description="When the review was approved for learning")


class WeightsResource(BaseModel):
    """Signal weights resource with an optional engine proposal."""
    model_config = ConfigDict(protected_namespaces=())
    weights: WeightsMap = Field(default_factory=dict, description="Committed signal weights")
    pending_suggestion: Optional[WeightsMap] = Field(None, description="Engine-proposed weights awaiting apply/dismiss")
    system_score: Optional[float] = Field(None, description="Engine health score")


class WeightsPatch(BaseModel):
    """Full replacement map for the weights resource."""
    model_config = ConfigDict(protected_namespaces=())
    signal_weights: WeightsMap = Field(..., description="Complete signal weight map")
    source_review_id: Optional[str] = Field(None, description="Human review whose learning approval proposed this map")


class LearningApproval(BaseModel):
    """Response to an approve-for-learning call."""
    model_config = ConfigDict(protected_namespaces=())
    suggested_weights: Optional[WeightsMap] = Field(None, description="Transient weight proposal")


class HumanActionRequest(BaseModel):
    """Accept or contest an approve/block decision."""
    model_config = ConfigDict(protected_namespaces=())
    decision_id: str = Field(..., description="Decision identifier")
    reviewer_id: str = Field(..., description="Reviewer identity")
    action: HumanAction = Field(..., description="accept or conflict")
    final_decision: Optional[FinalDecision] = Field(None, description="Contested outcome (conflict only)")
    note: Optional[str] = Field(None, description="Reviewer note (required for conflict)")

    @model_validator(mode="after")
    def _check_action(self) -> "HumanActionRequest":
        if self.action == HumanAction.RESOLVE:
            raise ValueError("resolve is submitted through the resolve-review endpoint")
        if self.action == HumanAction.CONFLICT:
            if self.final_decision is None:
                raise ValueError("conflict requires final_decision")
            if not (self.note and self.note.strip()):
                raise ValueError("conflict requires a non-empty note")
        return self


class ResolveReviewRequest(BaseModel):
    """Settle a decision that was routed to review."""
    model_config = ConfigDict(protected_namespaces=())
    decision_id: str = Field(..., description="Decision identifier")
    action: HumanAction = Field(HumanAction.RESOLVE, description="Always resolve")
    reviewer_id: Optional[str] = Field(None, description="Reviewer identity")
    final_decision: FinalDecision = Field(..., description="Final outcome")
    note: Optional[str] = Field(None, description="Reviewer note")


class ReviewRationale(BaseModel):
    """Why a decision was routed to review."""
    model_config = ConfigDict(protected_namespaces=())
    decision_id: str = Field(..., description="Decision identifier")
    explanation: str = Field(..., description="Free-text explanation")


class HistoryFilters(BaseModel):
    """Decision history query."""
    model_config = ConfigDict(protected_namespaces=())
    limit: int = Field(100, ge=1, le=500, description="Maximum records")
    decision: Optional[DecisionOutcome] = Field(None, description="Only this decision type")
    user_id: Optional[str] = Field(None, description="Only this subject")
    days: int = Field(7, ge=1, le=90, description="Look-back window in days")

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"limit": self.limit, "days": self.days}
        if self.decision is not None:
            params["decision"] = self.decision.value
        if self.user_id and self.user_id.strip():
            params["user_id"] = self.user_id.strip()
        return params


class HumanActionPayload(BaseModel):
    """Human action body as received by the service.

    Transition rules are enforced by the review ledger so that they come back
    as 400 responses rather than schema errors.
    """
    model_config = ConfigDict(protected_namespaces=())
    decision_id: str = Field(..., description="Decision identifier")
    reviewer_id: str = Field(..., description="Reviewer identity")
    action: HumanAction = Field(..., description="accept or conflict")
    final_decision: Optional[FinalDecision] = Field(None, description="Contested outcome")
    note: Optional[str] = Field(None, description="Reviewer note")
