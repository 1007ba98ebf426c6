"""End-to-end tests: console controllers against the reference service."""
import httpx
import pytest

from payout_console.admin.conflict_curation import ConflictCurationView
from payout_console.admin.weight_reconciler import WeightSuggestionReconciler
from payout_console.api.main import create_app
from payout_console.config import settings
from payout_console.gateway.client import WorkflowGateway
from payout_console.gateway.errors import ErrorKind, GatewayError
from payout_console.governance import weights_store
from payout_console.governance.review_ledger import ReviewLedger
from payout_console.models.database import get_session_local
from payout_console.models.schemas import DecisionOutcome, FinalDecision, HistoryFilters, ReviewState
from payout_console.review.controller import ReviewResolutionController


@pytest.fixture
def session_factory():
    return get_session_local("sqlite://")


@pytest.fixture
def service_gateway(session_factory):
    app = create_app(session_factory=session_factory)
    return WorkflowGateway(base_url="http://service.test", transport=httpx.ASGITransport(app=app))


@pytest.fixture
def seeded(session_factory):
    """Three decisions, one per outcome. Returns their ids by outcome."""
    session = session_factory()
    try:
        ledger = ReviewLedger(session)
        ids = {}
        for decision, signals in (("block", ["velocity_abuse", "geo_anomaly"]), ("approve", ["high_amount"]), ("review", ["device_mismatch"])):
            row = ledger.log_decision(
                user_id=f"user_{decision}",
                amount=120.0,
                decision=decision,
                risk_score=0.5,
                confidence_score=0.7,
                triggered_signals=signals,
                reasons=[f"{signals[0]} fired"],
                explanation="Scored from triggered signals.",
            )
            ids[decision] = row.id
        return ids
    finally:
        session.close()


class TestReviewFlow:
    """Tests for the decision lifecycle against the service."""

    @pytest.mark.asyncio
    async def test_accept_and_conflict(self, service_gateway, seeded):
        controller = ReviewResolutionController(service_gateway, reviewer_id="ops")
        await controller.refresh()
        assert len(controller.state.records) == 3

        assert await controller.accept(seeded["approve"]) is True
        assert await controller.conflict(seeded["block"], "false positive, verified") is True

        accepted = controller.state.find(seeded["approve"])
        assert accepted.human_final_decision == FinalDecision.APPROVE
        assert accepted.human_overrode is False
        conflicted = controller.state.find(seeded["block"])
        assert conflicted.human_final_decision == FinalDecision.APPROVE
        assert conflicted.human_overrode is True
        assert conflicted.human_note == "false positive, verified"
        assert conflicted.review_state == ReviewState.CONFLICTED

    @pytest.mark.asyncio
    async def test_resolve_with_rationale(self, service_gateway, seeded):
        controller = ReviewResolutionController(service_gateway)
        await controller.refresh()

        rationale = await controller.fetch_rationale(seeded["review"])
        assert "device_mismatch" in rationale

        assert await controller.resolve(seeded["review"], "block", "confirmed mule") is True
        resolved = controller.state.find(seeded["review"])
        assert resolved.review_state == ReviewState.RESOLVED
        assert resolved.human_note == "confirmed mule"

    @pytest.mark.asyncio
    async def test_service_rejects_second_action(self, service_gateway, seeded):
        # A second console loads the list before the first one acts
        stale = ReviewResolutionController(service_gateway)
        await stale.refresh()
        controller = ReviewResolutionController(service_gateway)
        await controller.refresh()
        assert await controller.accept(seeded["approve"]) is True

        assert await stale.accept(seeded["approve"]) is False
        assert stale.state.action_region.error_kind == ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_filters_and_unknown_ids(self, service_gateway, seeded):
        controller = ReviewResolutionController(service_gateway)
        await controller.refresh(HistoryFilters(decision=DecisionOutcome.REVIEW))

        assert [record.id for record in controller.state.records] == [seeded["review"]]
        with pytest.raises(GatewayError) as exc_info:
            await service_gateway.get_review_rationale("missing")
        assert exc_info.value.kind == ErrorKind.NOT_FOUND
        with pytest.raises(GatewayError) as exc_info:
            await service_gateway.get_review_rationale(seeded["block"])
        assert exc_info.value.kind == ErrorKind.VALIDATION


class TestLearningFlow:
    """Tests for curation and weights against the service."""

    @pytest.mark.asyncio
    async def test_conflict_approve_and_apply(self, service_gateway, session_factory, seeded):
        review = ReviewResolutionController(service_gateway)
        await review.refresh()
        await review.conflict(seeded["block"], "false positive, verified")

        reconciler = WeightSuggestionReconciler(service_gateway)
        curation = ConflictCurationView(service_gateway, reconciler)
        await reconciler.refresh()
        await curation.refresh()
        assert len(curation.state.rows) == 1
        row = curation.state.rows[0]
        assert row.system_decision.value == "block"
        assert row.human_decision.value == "approve"

        step = settings.learning_weight_step
        defaults = weights_store.DEFAULT_SIGNAL_WEIGHTS
        await curation.approve_for_learning(row.human_review_id)

        proposal = reconciler.state.suggested_weights
        assert proposal["velocity_abuse"] == defaults["velocity_abuse"] - step
        assert proposal["geo_anomaly"] == defaults["geo_anomaly"] - step
        assert proposal["high_amount"] == defaults["high_amount"]
        assert curation.state.find(row.human_review_id).approved_for_learning is True

        assert await curation.approve_for_learning(row.human_review_id) is None
        assert curation.state.approve_region.error_kind == ErrorKind.VALIDATION

        assert await reconciler.apply_suggested_weights() is True
        assert reconciler.state.suggested_weights is None
        assert reconciler.state.resource.weights == proposal

        await curation.refresh()
        assert curation.state.find(row.human_review_id).approved_for_learning is True
        assert curation.state.find(row.human_review_id).approved_at is not None

        session = session_factory()
        try:
            active = next(version for version in weights_store.list_weight_versions(session) if version.active)
            assert active.source_review_id == row.human_review_id
            assert active.rationale == "Learning approval"
        finally:
            session.close()

    @pytest.mark.asyncio
    async def test_server_rejects_repeat_approval(self, service_gateway, seeded):
        review = ReviewResolutionController(service_gateway)
        await review.refresh()
        await review.conflict(seeded["block"], "false positive, verified")
        rows = await service_gateway.list_conflicted_decisions()

        await service_gateway.approve_for_learning(rows[0].human_review_id)
        with pytest.raises(GatewayError) as exc_info:
            await service_gateway.approve_for_learning(rows[0].human_review_id)

        assert exc_info.value.kind == ErrorKind.VALIDATION
        with pytest.raises(GatewayError) as exc_info:
            await service_gateway.approve_for_learning("missing")
        assert exc_info.value.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_apply_pending_suggestion(self, service_gateway, session_factory):
        session = session_factory()
        try:
            suggestion = dict(weights_store.DEFAULT_SIGNAL_WEIGHTS, velocity_abuse=55.0)
            weights_store.set_pending_suggestion(session, suggestion)
        finally:
            session.close()

        reconciler = WeightSuggestionReconciler(service_gateway)
        await reconciler.refresh()
        assert reconciler.state.resource.pending_suggestion == suggestion

        assert await reconciler.apply_suggestion() is True
        await reconciler.refresh()

        assert reconciler.state.resource.weights == suggestion
        assert reconciler.state.resource.pending_suggestion is None

    @pytest.mark.asyncio
    async def test_save_manual_weights_round_trip(self, service_gateway):
        reconciler = WeightSuggestionReconciler(service_gateway)
        await reconciler.refresh()
        reconciler.edit("geo_anomaly", "abc")
        reconciler.edit("velocity_abuse", 150)

        assert await reconciler.save_manual_weights() is True
        await reconciler.refresh()

        assert reconciler.display_value("geo_anomaly") == 0.0
        assert reconciler.display_value("velocity_abuse") == 100.0

    @pytest.mark.asyncio
    async def test_empty_patch_is_rejected(self, service_gateway):
        with pytest.raises(GatewayError) as exc_info:
            await service_gateway.patch_weights({})

        assert exc_info.value.kind == ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_health(self, service_gateway):
        assert await service_gateway.check_health() is True
