"""Subscription add-on models: paid capabilities attached to a business."""
import enum

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from detailing_billing.models.base import Base, utcnow, value_enum


class AddonKey(enum.Enum):
    """Known add-on identifiers."""

    MILEAGE_TRACKER = "mileage_tracker"
    AI_PHOTO_ANALYSIS = "ai_photo_analysis"
    AUTO_LEAD = "auto_lead"


class AddonStatus(enum.Enum):
    """Add-on lifecycle status."""

    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    TRIAL = "trial"


class BusinessSubscriptionAddon(Base):
    """
    Add-on subscription for a business.

    ``(business_id, addon_key)`` is the logical identity. The Stripe
    subscription item id is the binding used to detect removal from the
    primary subscription; trials have no binding.
    """

    __tablename__ = "business_subscription_addons"
    __table_args__ = (UniqueConstraint("business_id", "addon_key", name="uq_business_addon_key"),)

    business_id = Column(Uuid(as_uuid=True), ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    addon_key = Column(value_enum(AddonKey, "addon_key"), nullable=False)
    stripe_subscription_id = Column(String, nullable=True, index=True)  # subscription owning the item
    stripe_subscription_item_id = Column(String, nullable=True, index=True)
    status = Column(value_enum(AddonStatus, "addon_status"), nullable=False, default=AddonStatus.ACTIVE, index=True)
    started_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    canceled_at = Column(DateTime(timezone=True), nullable=True)
    trial_ends_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    business = relationship("Business", back_populates="addons")

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<BusinessSubscriptionAddon(business_id={self.business_id}, "
            f"addon_key={self.addon_key.value}, status={self.status.value})>"
        )


class BusinessFeature(Base):
    """
    Feature flag projection for a business.

    One row per enabled feature; add-on checkouts insert and add-on
    cancellations delete rows here.
    """

    __tablename__ = "business_features"
    __table_args__ = (UniqueConstraint("business_id", "feature_key", name="uq_business_feature_key"),)

    business_id = Column(Uuid(as_uuid=True), ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    feature_key = Column(String, nullable=False)

    # Relationships
    business = relationship("Business", back_populates="features")

    def __repr__(self) -> str:
        """String representation."""
        return f"<BusinessFeature(business_id={self.business_id}, feature_key={self.feature_key})>"
