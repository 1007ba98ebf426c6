"""Signal weight and learning curation routes."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from payout_console.api.deps import get_db
from payout_console.governance import weights_store
from payout_console.governance.review_ledger import (
    InvalidTransition,
    RecordNotFound,
    ReviewLedger,
    conflicted_to_dict,
)
from payout_console.models.schemas import LearningApproval, WeightsPatch, WeightsResource

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin")


@router.get("/weights", response_model=WeightsResource)
async def get_weights(db: Session = Depends(get_db)) -> WeightsResource:
    """Active signal weights with any pending engine suggestion."""
    try:
        return WeightsResource(**weights_store.get_weights_payload(db))
    except Exception as e:
        logger.error(f"Error loading weights: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error loading weights: {str(e)}")


@router.patch("/weights", response_model=WeightsResource)
async def patch_weights(request: WeightsPatch, db: Session = Depends(get_db)) -> WeightsResource:
    """
    Replace the signal weights with a full map.

    Args:
        request: Complete signal weight map, tagged with the human review
            when it comes from a learning approval

    Returns:
        The new active weights. Any pending suggestion is cleared.
    """
    weights = weights_store.normalize_weights(request.signal_weights)
    if not weights:
        raise HTTPException(status_code=400, detail="signal_weights must contain at least one numeric weight")
    try:
        rationale = "Learning approval" if request.source_review_id else "Operator update"
        weights_store.create_weight_version(db, weights, rationale=rationale, source_review_id=request.source_review_id)
        return WeightsResource(**weights_store.get_weights_payload(db))
    except Exception as e:
        logger.error(f"Error saving weights: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error saving weights: {str(e)}")


@router.get("/conflicted-decisions")
async def list_conflicted_decisions(db: Session = Depends(get_db)) -> dict:
    try:
        reviews = ReviewLedger(db).list_conflicted()
        return {"conflicted_decisions": [conflicted_to_dict(review) for review in reviews]}
    except Exception as e:
        logger.error(f"Error listing conflicted decisions: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error listing conflicted decisions: {str(e)}")


@router.post("/conflicted-decisions/{human_review_id}/approve", response_model=LearningApproval)
async def approve_for_learning(human_review_id: str, db: Session = Depends(get_db)) -> LearningApproval:
    """
    Approve a contested decision as a learning example.

    Args:
        human_review_id: Human review ID

    Returns:
        Suggested weights, empty when no weight would move
    """
    try:
        suggested = ReviewLedger(db).approve_for_learning(human_review_id)
        return LearningApproval(suggested_weights=suggested)
    except RecordNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error approving review for learning: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error approving review for learning: {str(e)}")
