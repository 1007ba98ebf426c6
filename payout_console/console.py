"""Wires the console views around one workflow gateway."""
from typing import Optional

from payout_console.admin.conflict_curation import ConflictCurationView
from payout_console.admin.weight_reconciler import WeightSuggestionReconciler
from payout_console.gateway.client import WorkflowGateway
from payout_console.gateway.errors import GatewayError
from payout_console.review.controller import ReviewResolutionController


class PayoutConsole:
    """Operator console: decision history, curation and signal weights."""

    def __init__(self, gateway: Optional[WorkflowGateway] = None, reviewer_id: Optional[str] = None):
        self.gateway = gateway or WorkflowGateway()
        self.review = ReviewResolutionController(self.gateway, reviewer_id=reviewer_id)
        self.weights = WeightSuggestionReconciler(self.gateway)
        self.curation = ConflictCurationView(self.gateway, self.weights)

    async def load_admin(self) -> None:
        await self.weights.refresh()
        await self.curation.refresh()

    async def is_service_healthy(self) -> bool:
        try:
            return await self.gateway.check_health()
        except GatewayError:
            return False
