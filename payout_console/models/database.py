"""SQLAlchemy database models for the reference workflow service."""
import os
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, create_engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from payout_console.config import settings

Base = declarative_base()


def _new_id() -> str:
    return uuid.uuid4().hex


class PayoutDecisionRow(Base):
    """Database model for automated payout decisions."""
    __tablename__ = "payout_decisions"

    id = Column(String, primary_key=True, default=_new_id)
    user_id = Column(String, nullable=False, index=True)
    amount = Column(Float, nullable=False)
    currency = Column(String, nullable=False, default="USD")
    decision = Column(String, nullable=False, index=True)  # approve, review, block
    risk_score = Column(Float, nullable=False, default=0.0)
    confidence_score = Column(Float, nullable=False, default=0.0)
    regret_level = Column(String, nullable=True)
    explanation = Column(Text, nullable=True)

    triggered_signals_json = Column(JSON, nullable=True)
    reasons_json = Column(JSON, nullable=True)
    counterfactuals_json = Column(JSON, nullable=True)

    # Human resolution
    human_final_decision = Column(String, nullable=True)
    human_overrode = Column(Boolean, default=False)
    human_note = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    reviews = relationship("HumanReviewRow", back_populates="decision")


class HumanReviewRow(Base):
    """Database model for reviewer actions."""
    __tablename__ = "human_reviews"

    id = Column(String, primary_key=True, default=_new_id)
    decision_id = Column(String, ForeignKey("payout_decisions.id"), nullable=False, index=True)
    reviewer_id = Column(String, nullable=False)
    action = Column(String, nullable=False)  # accept, conflict, resolve
    final_decision = Column(String, nullable=False)
    note = Column(Text, nullable=True)

    status = Column(String, default="accepted")  # accepted, conflicted, resolved
    approved_for_learning = Column(Boolean, default=False)
    approved_at = Column(DateTime, nullable=True)
    reviewed_at = Column(DateTime, default=datetime.utcnow)

    decision = relationship("PayoutDecisionRow", back_populates="reviews")


class SignalWeightVersion(Base):
    """Database model for signal weight versions. One version is active."""
    __tablename__ = "signal_weight_versions"

    id = Column(Integer, primary_key=True, index=True)
    weights = Column(JSON, nullable=False)
    pending_suggestion = Column(JSON, nullable=True)
    rationale = Column(Text, nullable=True)
    active = Column(Boolean, default=False)
    source_review_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


# Database setup
def get_database_url() -> str:
    """Get database URL from settings."""
    return f"sqlite:///{settings.sqlite_db_path}"


def get_engine(database_url: Optional[str] = None):
    """Create SQLAlchemy engine. An in-memory URL shares one connection."""
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if database_url is None:
        database_url = get_database_url()
        # Ensure directory exists
        os.makedirs(os.path.dirname(settings.sqlite_db_path) or ".", exist_ok=True)
    return create_engine(database_url, connect_args={"check_same_thread": False})


def get_session_local(database_url: Optional[str] = None):
    """Create database session factory."""
    engine = get_engine(database_url)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
