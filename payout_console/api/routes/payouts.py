"""Payout history and human review routes."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from payout_console.api.deps import get_db
from payout_console.config import settings
from payout_console.governance.review_ledger import (
    InvalidTransition,
    RecordNotFound,
    ReviewLedger,
    decision_to_dict,
)
from payout_console.models.schemas import (
    DecisionOutcome,
    HumanActionPayload,
    ResolveReviewRequest,
    ReviewRationale,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/payout/history")
async def list_history(
    limit: int = Query(100, ge=1, le=500),
    decision: Optional[DecisionOutcome] = None,
    user_id: Optional[str] = None,
    days: int = Query(7, ge=1, le=90),
    db: Session = Depends(get_db),
) -> List[dict]:
    """
    List recent payout decisions, newest first.

    Args:
        limit: Maximum number of records
        decision: Only this decision type
        user_id: Only this subject
        days: Look-back window

    Returns:
        Decision records
    """
    try:
        rows = ReviewLedger(db).list_decisions(
            limit=limit,
            decision=decision.value if decision else None,
            user_id=user_id,
            days=days,
        )
        return [decision_to_dict(row) for row in rows]
    except Exception as e:
        logger.error(f"Error listing payout history: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error listing payout history: {str(e)}")


@router.post("/payout/human-action")
async def submit_human_action(request: HumanActionPayload, db: Session = Depends(get_db)) -> dict:
    """
    Accept or contest an approve/block decision.

    Args:
        request: Human action

    Returns:
        Success confirmation
    """
    try:
        review = ReviewLedger(db).record_human_action(
            request.decision_id,
            request.reviewer_id,
            request.action.value,
            request.final_decision.value if request.final_decision else None,
            request.note,
        )
        return {"status": "success", "decision_id": request.decision_id, "human_review_id": review.id}
    except RecordNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error submitting human action: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error submitting human action: {str(e)}")


@router.post("/payout/resolve-review")
async def resolve_review(request: ResolveReviewRequest, db: Session = Depends(get_db)) -> dict:
    """Settle a decision routed to review."""
    try:
        review = ReviewLedger(db).resolve_review(
            request.decision_id,
            request.reviewer_id or settings.reviewer_id,
            request.final_decision.value,
            request.note,
        )
        return {"status": "success", "decision_id": request.decision_id, "human_review_id": review.id}
    except RecordNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error resolving review: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error resolving review: {str(e)}")


@router.get("/payout/{decision_id}/review-rationale", response_model=ReviewRationale)
async def get_review_rationale(decision_id: str, db: Session = Depends(get_db)) -> ReviewRationale:
    try:
        explanation = ReviewLedger(db).review_rationale(decision_id)
        return ReviewRationale(decision_id=decision_id, explanation=explanation)
    except RecordNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error building review rationale: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error building review rationale: {str(e)}")
