"""Tests for signal weight reconciliation."""
import pytest

from payout_console.admin.weight_reconciler import WeightSuggestionReconciler, clamp_weight
from payout_console.gateway.errors import ErrorKind, GatewayError
from payout_console.models.schemas import WeightsResource
from payout_console.state.views import RegionStatus


async def _loaded(gateway, resource):
    gateway.get_weights.return_value = resource
    reconciler = WeightSuggestionReconciler(gateway)
    await reconciler.refresh()
    return reconciler


class TestClampWeight:
    """Tests for edit-time clamping."""

    @pytest.mark.parametrize("raw,expected", [
        ("abc", 0.0),
        (150, 100.0),
        (-5, 0.0),
        ("42.5", 42.5),
        (None, 0.0),
        (float("nan"), 0.0),
        ("", 0.0),
        (100, 100.0),
    ])
    def test_clamp(self, raw, expected):
        assert clamp_weight(raw) == expected


class TestWeightDisplay:
    """Tests for display values and signal names."""

    @pytest.mark.asyncio
    async def test_signal_names_fall_back_to_suggestion(self, gateway):
        reconciler = await _loaded(gateway, WeightsResource(weights={}, pending_suggestion={"geo": 5, "amount": 10}))

        assert reconciler.signal_names == ["amount", "geo"]
        assert reconciler.display_value("geo") == 0.0

    @pytest.mark.asyncio
    async def test_overlay_wins_over_committed(self, gateway, weights_resource):
        reconciler = await _loaded(gateway, weights_resource)

        assert reconciler.edit("velocity", "150") == 100.0

        assert reconciler.display_value("velocity") == 100.0
        assert reconciler.display_value("geo") == 20.0
        assert reconciler.display_value("unknown") == 0.0
        assert reconciler.has_pending_edit

    @pytest.mark.asyncio
    async def test_edit_back_to_committed_is_not_pending(self, gateway, weights_resource):
        reconciler = await _loaded(gateway, weights_resource)

        reconciler.edit("velocity", 50)
        reconciler.edit("velocity", 40)

        assert not reconciler.has_pending_edit

    @pytest.mark.asyncio
    async def test_refresh_discards_unsaved_edit(self, gateway, weights_resource):
        reconciler = await _loaded(gateway, weights_resource)
        revision = reconciler.state.revision
        reconciler.edit("geo", 77)

        await reconciler.refresh()

        assert reconciler.state.overlay == {}
        assert reconciler.display_value("geo") == 20.0
        assert not reconciler.has_pending_edit
        # Same committed values, new revision
        assert reconciler.state.resource == weights_resource
        assert reconciler.state.revision == revision + 1

    @pytest.mark.asyncio
    async def test_load_failure(self, gateway):
        gateway.get_weights.side_effect = GatewayError(ErrorKind.NOT_FOUND, status_code=404)
        reconciler = WeightSuggestionReconciler(gateway)

        await reconciler.refresh()

        assert reconciler.state.region.message == "Weights endpoint not found."
        assert reconciler.signal_names == []


class TestPendingSuggestion:
    """Tests for the engine's pending suggestion."""

    @pytest.mark.asyncio
    async def test_dismiss_is_local(self, gateway, weights_resource):
        reconciler = await _loaded(gateway, weights_resource)

        reconciler.dismiss_suggestion()

        gateway.patch_weights.assert_not_called()
        assert reconciler.state.resource.pending_suggestion is None
        assert {name: reconciler.display_value(name) for name in reconciler.signal_names} == {
            "velocity": 40.0,
            "geo": 20.0,
        }

    @pytest.mark.asyncio
    async def test_apply_adopts_server_response(self, gateway, weights_resource):
        reconciler = await _loaded(gateway, weights_resource)
        reconciler.edit("geo", 70)
        gateway.patch_weights.return_value = WeightsResource(weights={"velocity": 55.0, "geo": 20.0})

        assert await reconciler.apply_suggestion() is True

        gateway.patch_weights.assert_called_once_with({"velocity": 55.0, "geo": 20.0})
        state = reconciler.state
        assert state.resource.weights == {"velocity": 55.0, "geo": 20.0}
        assert state.resource.pending_suggestion is None
        assert state.overlay == {}
        assert state.save_region.message == "Suggestion applied."

    @pytest.mark.asyncio
    async def test_apply_failure_keeps_state(self, gateway, weights_resource):
        reconciler = await _loaded(gateway, weights_resource)
        gateway.patch_weights.side_effect = GatewayError(ErrorKind.UNKNOWN, "boom", 500)

        assert await reconciler.apply_suggestion() is False

        assert reconciler.state.resource == weights_resource
        assert reconciler.state.save_region.message == "Failed to apply suggestion."
        assert not reconciler.is_saving

    @pytest.mark.asyncio
    async def test_apply_without_suggestion_is_noop(self, gateway):
        reconciler = await _loaded(gateway, WeightsResource(weights={"velocity": 40.0}))

        assert await reconciler.apply_suggestion() is False
        gateway.patch_weights.assert_not_called()


class TestManualSave:
    """Tests for saving operator edits."""

    @pytest.mark.asyncio
    async def test_save_sends_full_map(self, gateway, weights_resource):
        reconciler = await _loaded(gateway, weights_resource)
        reconciler.edit("geo", -3)
        gateway.patch_weights.return_value = WeightsResource(weights={"velocity": 40.0, "geo": 0.0})

        assert await reconciler.save_manual_weights() is True

        gateway.patch_weights.assert_called_once_with({"velocity": 40.0, "geo": 0.0})
        assert reconciler.state.overlay == {}
        assert reconciler.display_value("geo") == 0.0
        assert reconciler.state.save_region.message == "Weights saved."

    @pytest.mark.asyncio
    async def test_save_without_edits_sends_nothing(self, gateway, weights_resource):
        reconciler = await _loaded(gateway, weights_resource)

        assert await reconciler.save_manual_weights() is False
        gateway.patch_weights.assert_not_called()

    @pytest.mark.asyncio
    async def test_save_failure_keeps_overlay(self, gateway, weights_resource):
        reconciler = await _loaded(gateway, weights_resource)
        reconciler.edit("geo", 30)
        gateway.patch_weights.side_effect = GatewayError(ErrorKind.VALIDATION, "empty map", 400)

        assert await reconciler.save_manual_weights() is False

        assert reconciler.state.overlay == {"geo": 30.0}
        assert reconciler.state.save_region.status == RegionStatus.ERROR
        assert reconciler.state.save_region.message == "Failed to save weights."


class TestSuggestedWeightsModal:
    """Tests for proposals that come from a learning approval."""

    @pytest.mark.asyncio
    async def test_apply_closes_and_refreshes(self, gateway, weights_resource):
        reconciler = await _loaded(gateway, weights_resource)
        reconciler.present_suggested_weights({"velocity": 35.0, "geo": 20.0}, "r-7")
        committed = WeightsResource(weights={"velocity": 35.0, "geo": 20.0})
        gateway.patch_weights.return_value = committed
        gateway.get_weights.return_value = committed

        assert await reconciler.apply_suggested_weights() is True

        gateway.patch_weights.assert_called_once_with({"velocity": 35.0, "geo": 20.0}, source_review_id="r-7")
        assert gateway.get_weights.call_count == 2
        assert reconciler.state.suggested_weights is None
        assert reconciler.state.suggested_source is None
        assert reconciler.state.resource == committed

    @pytest.mark.asyncio
    async def test_apply_failure_still_closes_and_refreshes(self, gateway, weights_resource):
        reconciler = await _loaded(gateway, weights_resource)
        reconciler.present_suggested_weights({"velocity": 35.0})
        gateway.patch_weights.side_effect = GatewayError(ErrorKind.NETWORK, "connect failed")

        assert await reconciler.apply_suggested_weights() is False

        assert reconciler.state.suggested_weights is None
        assert gateway.get_weights.call_count == 2
        assert reconciler.state.save_region.message == "Failed to apply suggested weights."

    @pytest.mark.asyncio
    async def test_dismiss_closes_and_refreshes(self, gateway, weights_resource):
        reconciler = await _loaded(gateway, weights_resource)
        reconciler.present_suggested_weights({"velocity": 35.0})

        await reconciler.dismiss_suggested_weights()

        gateway.patch_weights.assert_not_called()
        assert reconciler.state.suggested_weights is None
        assert gateway.get_weights.call_count == 2

    @pytest.mark.asyncio
    async def test_two_proposals_are_kept_apart(self, gateway, weights_resource):
        reconciler = await _loaded(gateway, weights_resource)

        reconciler.present_suggested_weights({"velocity": 35.0})

        assert reconciler.state.suggested_weights == {"velocity": 35.0}
        assert reconciler.state.resource.pending_suggestion == {"velocity": 55.0, "geo": 20.0}
