"""FastAPI application for the reference payout workflow service."""
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from payout_console.api.routes import admin, payouts
from payout_console.config import configure_logging
from payout_console.governance.weights_store import ensure_default_weights
from payout_console.models.database import get_session_local

logger = logging.getLogger(__name__)


def create_app(session_factory=None, database_url: Optional[str] = None) -> FastAPI:
    """Build the service. Tests pass an in-memory session factory."""
    configure_logging()
    app = FastAPI(
        title="Payout Workflow API",
        description="Payout decision history, human review and signal weights",
        version="1.0.0",
    )
    app.state.session_factory = session_factory or get_session_local(database_url)

    session = app.state.session_factory()
    try:
        ensure_default_weights(session)
    finally:
        session.close()

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, specify actual origins
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(payouts.router, tags=["payouts"])
    app.include_router(admin.router, tags=["admin"])

    @app.get("/")
    def root():
        """Root endpoint."""
        return {"message": "Payout Workflow API", "version": "1.0.0"}

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app
