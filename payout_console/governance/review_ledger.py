"""Review ledger: decision records, reviewer actions and learning approvals."""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from payout_console.governance import weights_store
from payout_console.models.database import HumanReviewRow, PayoutDecisionRow
from payout_console.models.schemas import DecisionOutcome, HumanAction

logger = logging.getLogger(__name__)


class RecordNotFound(LookupError):
    """No decision or review with the given identifier."""


class InvalidTransition(ValueError):
    """The requested action is not allowed for the record in its current state."""


def _as_list(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(item) for item in value]
    return []


def decision_to_dict(row: PayoutDecisionRow) -> Dict[str, Any]:
    """Serialize a decision row the way GET /payout/history returns it."""
    return {
        "id": row.id,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "user_id": row.user_id,
        "amount": row.amount,
        "currency": row.currency,
        "decision": row.decision,
        "risk_score": row.risk_score,
        "confidence_score": row.confidence_score,
        "regret_level": row.regret_level,
        "triggered_signals": _as_list(row.triggered_signals_json),
        "reasons": _as_list(row.reasons_json),
        "counterfactuals": _as_list(row.counterfactuals_json),
        "human_final_decision": row.human_final_decision,
        "human_overrode": bool(row.human_overrode),
        "human_note": row.human_note,
    }


def conflicted_to_dict(review: HumanReviewRow) -> Dict[str, Any]:
    decision = review.decision
    return {
        "human_review_id": review.id,
        "decision_id": decision.id,
        "created_at": decision.created_at.isoformat() if decision.created_at else None,
        "reviewed_at": review.reviewed_at.isoformat() if review.reviewed_at else None,
        "user_id": decision.user_id,
        "payout_summary": f"{decision.amount:.2f} {decision.currency} to {decision.user_id}",
        "amount": decision.amount,
        "currency": decision.currency,
        "system_decision": decision.decision,
        "human_decision": review.final_decision,
        "human_note": review.note,
        "system_explanation": decision.explanation,
        "risk_score": decision.risk_score,
        "triggered_signals": _as_list(decision.triggered_signals_json),
        "reasons": _as_list(decision.reasons_json),
        "approved_for_learning": bool(review.approved_for_learning),
        "approved_at": review.approved_at.isoformat() if review.approved_at else None,
    }


class ReviewLedger:
    """Records reviewer actions against automated decisions."""

    def __init__(self, db: Session):
        self.db = db

    def log_decision(
        self,
        user_id: str,
        amount: float,
        decision: str,
        currency: str = "USD",
        risk_score: float = 0.0,
        confidence_score: float = 0.0,
        regret_level: Optional[str] = None,
        triggered_signals: Optional[List[str]] = None,
        reasons: Optional[List[str]] = None,
        counterfactuals: Optional[List[str]] = None,
        explanation: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> PayoutDecisionRow:
        """Store an automated decision. Used by the seed script and tests."""
        row = PayoutDecisionRow(
            user_id=user_id,
            amount=amount,
            currency=currency,
            decision=DecisionOutcome(decision).value,
            risk_score=risk_score,
            confidence_score=confidence_score,
            regret_level=regret_level,
            triggered_signals_json=list(triggered_signals or []),
            reasons_json=list(reasons or []),
            counterfactuals_json=list(counterfactuals or []),
            explanation=explanation,
            created_at=created_at or datetime.utcnow(),
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def get_decision(self, decision_id: str) -> PayoutDecisionRow:
        row = self.db.query(PayoutDecisionRow).filter(PayoutDecisionRow.id == decision_id).first()
        if not row:
            raise RecordNotFound(f"Decision {decision_id} not found")
        return row

    def list_decisions(
        self,
        limit: int = 100,
        decision: Optional[str] = None,
        user_id: Optional[str] = None,
        days: int = 7,
    ) -> List[PayoutDecisionRow]:
        query = self.db.query(PayoutDecisionRow).filter(
            PayoutDecisionRow.created_at >= datetime.utcnow() - timedelta(days=days)
        )
        if decision:
            query = query.filter(PayoutDecisionRow.decision == decision)
        if user_id:
            query = query.filter(PayoutDecisionRow.user_id == user_id)
        return query.order_by(PayoutDecisionRow.created_at.desc()).limit(limit).all()

    def record_human_action(
        self,
        decision_id: str,
        reviewer_id: str,
        action: str,
        final_decision: Optional[str] = None,
        note: Optional[str] = None,
    ) -> HumanReviewRow:
        """Accept or contest an approve/block decision."""
        row = self.get_decision(decision_id)
        self._ensure_open(row)
        if row.decision == DecisionOutcome.REVIEW.value:
            raise InvalidTransition("Decisions routed to review can only be resolved")

        note = (note or "").strip() or None
        if action == HumanAction.ACCEPT.value:
            final = row.decision
        elif action == HumanAction.CONFLICT.value:
            if not note:
                raise InvalidTransition("A note is required to contest a decision")
            final = "approve" if row.decision == "block" else "block"
            if final_decision and final_decision != final:
                raise InvalidTransition(f"A contested {row.decision} can only become {final}")
        else:
            raise InvalidTransition(f"Unsupported action: {action}")

        return self._finalize(row, reviewer_id, action, final, note)

    def resolve_review(
        self,
        decision_id: str,
        reviewer_id: str,
        final_decision: str,
        note: Optional[str] = None,
    ) -> HumanReviewRow:
        """Settle a decision routed to review."""
        row = self.get_decision(decision_id)
        self._ensure_open(row)
        if row.decision != DecisionOutcome.REVIEW.value:
            raise InvalidTransition("Only decisions routed to review can be resolved")
        if final_decision not in ("approve", "block"):
            raise InvalidTransition("Final decision must be approve or block")
        return self._finalize(row, reviewer_id, HumanAction.RESOLVE.value, final_decision, (note or "").strip() or None)

    def review_rationale(self, decision_id: str) -> str:
        """Deterministic explanation of why a decision was routed to review."""
        row = self.get_decision(decision_id)
        if row.decision != DecisionOutcome.REVIEW.value:
            raise InvalidTransition("Decision was not routed to review")

        lines = [
            f"Risk score {row.risk_score:.2f} with confidence {row.confidence_score:.2f} "
            f"fell between the approve and block thresholds."
        ]
        signals = _as_list(row.triggered_signals_json)
        if signals:
            lines.append("Triggered signals: " + ", ".join(signals) + ".")
        for reason in _as_list(row.reasons_json):
            lines.append(f"- {reason}")
        if row.explanation:
            lines.append(row.explanation)
        return "\n".join(lines)

    def list_conflicted(self) -> List[HumanReviewRow]:
        return (
            self.db.query(HumanReviewRow)
            .filter(HumanReviewRow.status == "conflicted")
            .order_by(HumanReviewRow.reviewed_at.desc())
            .all()
        )

    def approve_for_learning(self, human_review_id: str) -> Dict[str, float]:
        """Mark a contested review as a learning example and propose weights.

        The proposal is returned, not stored. It is computed before the
        review is flagged, so a failure leaves the review approvable.
        """
        review = (
            self.db.query(HumanReviewRow)
            .filter(HumanReviewRow.id == human_review_id, HumanReviewRow.status == "conflicted")
            .first()
        )
        if not review:
            raise RecordNotFound(f"Review {human_review_id} not found")
        if review.approved_for_learning:
            raise InvalidTransition("Already approved for learning")

        current = weights_store.get_weights_payload(self.db)["weights"]
        decision = review.decision
        suggestion = weights_store.suggest_weights(
            current,
            _as_list(decision.triggered_signals_json),
            decision.decision,
            review.final_decision,
        )

        review.approved_for_learning = True
        review.approved_at = datetime.utcnow()
        self.db.commit()
        logger.info(f"Review {human_review_id} approved for learning")
        return suggestion

    def _ensure_open(self, row: PayoutDecisionRow) -> None:
        if row.human_final_decision is not None:
            raise InvalidTransition("Decision already has a final human decision")

    def _finalize(
        self,
        row: PayoutDecisionRow,
        reviewer_id: str,
        action: str,
        final_decision: str,
        note: Optional[str],
    ) -> HumanReviewRow:
        row.human_final_decision = final_decision
        row.human_overrode = final_decision != row.decision
        row.human_note = note

        if action == HumanAction.RESOLVE.value:
            status = "resolved"
        elif row.human_overrode:
            status = "conflicted"
        else:
            status = "accepted"
        review = HumanReviewRow(
            decision_id=row.id,
            reviewer_id=reviewer_id,
            action=action,
            final_decision=final_decision,
            note=note,
            status=status,
            reviewed_at=datetime.utcnow(),
        )
        self.db.add(review)
        self.db.commit()
        self.db.refresh(review)
        logger.info(f"Decision {row.id}: {action} by {reviewer_id} -> {final_decision} ({status})")
        return review
