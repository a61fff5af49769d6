"""Ledger of Stripe events that were reconciled successfully."""
from sqlalchemy import Column, DateTime, String

from detailing_billing.models.base import Base, utcnow


class ProcessedStripeEvent(Base):
    """
    Processed Stripe event.

    Inserted in the same transaction as the handler's writes, so a row exists
    only when reconciliation committed.
    """

    __tablename__ = "processed_stripe_events"

    stripe_event_id = Column(String, nullable=False, unique=True, index=True)
    event_type = Column(String, nullable=False, index=True)
    processed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        """String representation."""
        return f"<ProcessedStripeEvent(stripe_event_id={self.stripe_event_id}, event_type={self.event_type})>"
