"""Business model: the billable tenant of the detailing platform."""
import enum

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship

from detailing_billing.models.base import Base, JSONType, value_enum


class SubscriptionPlan(enum.Enum):
    """Plan tier granted at checkout."""

    STARTER = "starter"
    PRO = "pro"
    FLEET = "fleet"


class SubscriptionStatus(enum.Enum):
    """Primary subscription status, mirroring Stripe's subscription status."""

    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    TRIALING = "trialing"
    UNPAID = "unpaid"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    PAUSED = "paused"


class BillingPeriod(enum.Enum):
    """Billing cadence chosen at checkout."""

    MONTHLY = "monthly"
    YEARLY = "yearly"


class Business(Base):
    """
    Detailing business account.

    Created by the first completed subscription checkout for an owner and never
    hard-deleted; cancellation only moves ``subscription_status`` to canceled.
    """

    __tablename__ = "businesses"

    owner_id = Column(String, nullable=False, unique=True, index=True)  # auth user id
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    address = Column(String, nullable=True)
    city = Column(String, nullable=True)
    state = Column(String, nullable=True)
    zip = Column(String, nullable=True)
    subdomain = Column(String, nullable=True, unique=True)
    description = Column(Text, nullable=True)

    subscription_plan = Column(value_enum(SubscriptionPlan, "subscription_plan"), nullable=True)
    subscription_status = Column(value_enum(SubscriptionStatus, "subscription_status"), nullable=True, index=True)
    subscription_billing_period = Column(value_enum(BillingPeriod, "billing_period"), nullable=True)
    stripe_subscription_id = Column(String, nullable=True, unique=True, index=True)
    stripe_customer_id = Column(String, nullable=True, index=True)
    team_size = Column(Integer, nullable=False, default=1)
    subscription_started_at = Column(DateTime(timezone=True), nullable=True)
    subscription_ends_at = Column(DateTime(timezone=True), nullable=True)  # current period end
    condition_config = Column(JSONType, nullable=True)

    # Relationships
    addons = relationship("BusinessSubscriptionAddon", back_populates="business")
    features = relationship("BusinessFeature", back_populates="business", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        """String representation."""
        status = self.subscription_status.value if self.subscription_status else None
        return f"<Business(id={self.id}, owner_id={self.owner_id}, status={status})>"
