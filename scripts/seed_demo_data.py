#!/usr/bin/env python3
"""Seed the reference service database with demo payout decisions."""
import random
from datetime import datetime, timedelta

from payout_console.config import settings
from payout_console.governance import weights_store
from payout_console.governance.review_ledger import ReviewLedger
from payout_console.models.database import get_session_local

SIGNALS = list(weights_store.DEFAULT_SIGNAL_WEIGHTS)

REASONS = {
    "velocity_abuse": "Five payout requests in the last hour",
    "new_payout_method": "Payout method added less than 24 hours ago",
    "high_amount": "Amount is well above the user's usual payouts",
    "device_mismatch": "Request came from a device never seen on this account",
    "geo_anomaly": "Login country differs from the payout country",
    "account_age": "Account is younger than 7 days",
}


def _decision_for(score: float) -> str:
    if score >= 0.7:
        return "block"
    if score >= 0.4:
        return "review"
    return "approve"


def seed(count: int = 30, seed_value: int = 7) -> None:
    rng = random.Random(seed_value)
    session = get_session_local()()
    try:
        weights_store.ensure_default_weights(session)
        ledger = ReviewLedger(session)
        now = datetime.utcnow()
        for index in range(count):
            signals = rng.sample(SIGNALS, rng.randint(0, 3))
            score = min(0.99, 0.15 + 0.22 * len(signals) + rng.uniform(-0.1, 0.1))
            decision = _decision_for(score)
            ledger.log_decision(
                user_id=f"user_{rng.randint(1000, 1040)}",
                amount=round(rng.uniform(20, 5000), 2),
                currency=rng.choice(["USD", "EUR", "GBP"]),
                decision=decision,
                risk_score=round(score, 2),
                confidence_score=round(rng.uniform(0.55, 0.95), 2),
                regret_level=rng.choice(["low", "medium", "high"]),
                triggered_signals=signals,
                reasons=[REASONS[signal] for signal in signals],
                counterfactuals=[f"Without {signal} the score drops below the review threshold" for signal in signals[:1]],
                explanation=f"Scored {score:.2f} from {len(signals)} triggered signal(s).",
                created_at=now - timedelta(hours=index * 4),
            )

        suggestion = dict(weights_store.DEFAULT_SIGNAL_WEIGHTS)
        suggestion["velocity_abuse"] = 45.0
        suggestion["geo_anomaly"] = 15.0
        weights_store.set_pending_suggestion(session, suggestion)
        print(f"Seeded {count} decisions into {settings.sqlite_db_path}")
    finally:
        session.close()


if __name__ == "__main__":
    seed()
