"""Shared fixtures for console and service tests."""
from datetime import datetime
from unittest.mock import Mock

import pytest

from payout_console.gateway.client import WorkflowGateway
from payout_console.models.schemas import DecisionRecord, FinalDecision, WeightsResource


@pytest.fixture
def make_record():
    """Build a DecisionRecord, overriding any field."""
    def _make(**overrides) -> DecisionRecord:
        data = {
            "id": "d-1",
            "created_at": datetime(2026, 1, 5, 12, 0),
            "user_id": "user_1001",
            "amount": 250.0,
            "currency": "USD",
            "decision": "block",
            "risk_score": 91.0,
            "confidence_score": 0.8,
            "triggered_signals": ["velocity"],
            "reasons": ["Five payouts in the last hour"],
        }
        data.update(overrides)
        return DecisionRecord(**data)
    return _make


@pytest.fixture
def finalize():
    """The record as the service returns it after a human decision."""
    def _finalize(record: DecisionRecord, final: str, note=None) -> DecisionRecord:
        return record.model_copy(update={
            "human_final_decision": FinalDecision(final),
            "human_overrode": final != record.decision.value,
            "human_note": note,
        })
    return _finalize


@pytest.fixture
def gateway():
    """Gateway double. Async methods are AsyncMocks."""
    return Mock(spec=WorkflowGateway)


@pytest.fixture
def weights_resource():
    return WeightsResource(
        weights={"velocity": 40.0, "geo": 20.0},
        pending_suggestion={"velocity": 55.0, "geo": 20.0},
    )
