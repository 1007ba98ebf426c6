"""Signal weight version store and learning suggestions."""
from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from payout_console.config import settings
from payout_console.models.database import PayoutDecisionRow, SignalWeightVersion
from payout_console.models.schemas import WEIGHT_MAX, WEIGHT_MIN, WeightsMap

logger = logging.getLogger(__name__)


DEFAULT_SIGNAL_WEIGHTS: Dict[str, float] = {
    "velocity_abuse": 40.0,
    "new_payout_method": 25.0,
    "high_amount": 30.0,
    "device_mismatch": 35.0,
    "geo_anomaly": 20.0,
    "account_age": 15.0,
}


def clamp(value: float) -> float:
    return min(WEIGHT_MAX, max(WEIGHT_MIN, value))


def normalize_weights(value: Optional[Dict[str, Any]]) -> WeightsMap:
    """Keep numeric entries only, clamped to the weight range."""
    if not isinstance(value, dict):
        return {}
    normalized: WeightsMap = {}
    for key, raw in value.items():
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            continue
        if math.isnan(raw):
            continue
        normalized[str(key)] = clamp(float(raw))
    return normalized


def list_weight_versions(session: Session, limit: int = 50) -> List[SignalWeightVersion]:
    return (
        session.query(SignalWeightVersion)
        .order_by(SignalWeightVersion.id.desc())
        .limit(limit)
        .all()
    )


def get_active_version(session: Session) -> Optional[SignalWeightVersion]:
    return (
        session.query(SignalWeightVersion)
        .filter(SignalWeightVersion.active.is_(True))
        .order_by(SignalWeightVersion.id.desc())
        .first()
    )


def get_weights_payload(session: Session) -> Dict[str, Any]:
    """Weights resource as served by GET /admin/weights."""
    version = get_active_version(session)
    if not version:
        return {"weights": {}, "pending_suggestion": None, "system_score": None}
    pending = normalize_weights(version.pending_suggestion) or None
    return {
        "weights": normalize_weights(version.weights),
        "pending_suggestion": pending,
        "system_score": system_score(session),
    }


def system_score(session: Session) -> Optional[float]:
    """Share of finalized decisions the reviewer did not override, as a percentage."""
    finalized = (
        session.query(PayoutDecisionRow)
        .filter(PayoutDecisionRow.human_final_decision.isnot(None))
        .all()
    )
    if not finalized:
        return None
    agreed = sum(1 for row in finalized if not row.human_overrode)
    return round(100.0 * agreed / len(finalized), 1)


def activate_version(session: Session, version_id: int) -> bool:
    target = session.query(SignalWeightVersion).filter(SignalWeightVersion.id == version_id).first()
    if not target:
        return False
    session.query(SignalWeightVersion).update({SignalWeightVersion.active: False})
    target.active = True
    session.commit()
    return True


def create_weight_version(
    session: Session,
    weights: Dict[str, Any],
    rationale: Optional[str] = None,
    source_review_id: Optional[str] = None,
    pending_suggestion: Optional[Dict[str, Any]] = None,
    activate: bool = True,
) -> SignalWeightVersion:
    """Store a full weight map as a new version. A new version carries no pending suggestion unless given one."""
    version = SignalWeightVersion(
        weights=normalize_weights(weights),
        pending_suggestion=normalize_weights(pending_suggestion) or None,
        rationale=rationale,
        active=False,
        source_review_id=source_review_id,
    )
    session.add(version)
    session.commit()
    session.refresh(version)
    if activate:
        activate_version(session, version.id)
        session.refresh(version)
    logger.info(f"Created signal weight version {version.id} ({len(version.weights)} signals)")
    return version


def set_pending_suggestion(session: Session, suggestion: Optional[Dict[str, Any]]) -> Optional[SignalWeightVersion]:
    """Attach an engine proposal to the active version."""
    version = get_active_version(session)
    if not version:
        return None
    version.pending_suggestion = normalize_weights(suggestion) or None
    session.commit()
    session.refresh(version)
    return version


def ensure_default_weights(session: Session) -> SignalWeightVersion:
    version = get_active_version(session)
    if version:
        return version
    return create_weight_version(session, DEFAULT_SIGNAL_WEIGHTS, rationale="Default signal weights")


def suggest_weights(
    current: WeightsMap,
    triggered_signals: Iterable[str],
    system_decision: str,
    human_decision: str,
    step: Optional[float] = None,
) -> WeightsMap:
    """Nudge the weights of signals that fired on a contested decision.

    A block the reviewer approved lowers them; an approval the reviewer
    blocked raises them. Returns the full adjusted map, or an empty map
    when no weight moves.
    """
    step = settings.learning_weight_step if step is None else step
    if system_decision == "block" and human_decision == "approve":
        direction = -1.0
    elif system_decision == "approve" and human_decision == "block":
        direction = 1.0
    else:
        return {}

    suggestion: WeightsMap = {}
    for signal in triggered_signals:
        if signal not in current:
            continue
        nudged = clamp(current[signal] + direction * step)
        if nudged != current[signal]:
            suggestion[signal] = nudged
    if not suggestion:
        return {}
    merged = dict(current)
    merged.update(suggestion)
    return merged
