"""Pydantic schemas for the Stripe objects the webhook consumes.

Only the fields reconciliation reads are declared; everything else in the
Stripe payload is ignored. Expandable references (``customer``,
``subscription``) are accepted either as ids or as expanded objects.
"""
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from detailing_billing.models.business import SubscriptionStatus


def _expandable_id(value: Any) -> Any:
    if isinstance(value, dict):
        return value.get("id")
    return value


def _string_metadata(value: Any) -> Any:
    if value is None:
        return {}
    if isinstance(value, dict):
        return {str(key): "" if item is None else str(item) for key, item in value.items()}
    return value


class StripeEventData(BaseModel):
    """``data`` member of the event envelope."""

    object: dict[str, Any]
    previous_attributes: dict[str, Any] | None = None


class StripeEvent(BaseModel):
    """Verified Stripe event envelope."""

    id: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    created: int | None = None
    livemode: bool = False
    api_version: str | None = None
    data: StripeEventData

    model_config = ConfigDict(frozen=True)

    @property
    def payload(self) -> dict[str, Any]:
        """The event's ``data.object``."""
        return self.data.object


class StripeCheckoutSession(BaseModel):
    """Completed checkout session."""

    id: str
    mode: str | None = None
    subscription: str | None = None
    customer: str | None = None
    customer_email: str | None = None
    customer_details: dict[str, Any] | None = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("subscription", "customer", mode="before")
    @classmethod
    def _collapse_expanded(cls, value: Any) -> Any:
        return _expandable_id(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def _coerce_metadata(cls, value: Any) -> Any:
        return _string_metadata(value)

    @property
    def email(self) -> str | None:
        """Customer email, from the session or the collected customer details."""
        if self.customer_email:
            return self.customer_email
        if self.customer_details:
            return self.customer_details.get("email")
        return None

    @property
    def is_addon_checkout(self) -> bool:
        return bool(self.metadata.get("addon_key") or self.metadata.get("addon_id"))

    @property
    def is_primary_checkout(self) -> bool:
        return bool(self.metadata.get("user_id")) and not self.is_addon_checkout


class StripeSubscriptionItem(BaseModel):
    """Subscription item (one price on a subscription)."""

    id: str
    current_period_end: int | None = None


class StripeSubscriptionItemList(BaseModel):
    """Stripe list object wrapping subscription items."""

    data: list[StripeSubscriptionItem] = Field(default_factory=list)


class StripeSubscription(BaseModel):
    """Subscription object from events or from ``Subscription.retrieve``."""

    id: str
    status: SubscriptionStatus
    customer: str | None = None
    current_period_end: int | None = None
    items: StripeSubscriptionItemList = Field(default_factory=StripeSubscriptionItemList)
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("customer", mode="before")
    @classmethod
    def _collapse_expanded(cls, value: Any) -> Any:
        return _expandable_id(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def _coerce_metadata(cls, value: Any) -> Any:
        return _string_metadata(value)

    @property
    def item_ids(self) -> list[str]:
        """Ids of the subscription items currently on the subscription."""
        return [item.id for item in self.items.data]

    @property
    def first_item_id(self) -> str | None:
        return self.items.data[0].id if self.items.data else None

    @property
    def period_end(self) -> datetime | None:
        """
        Renewal timestamp.

        Newer API versions moved ``current_period_end`` onto the items, so the
        first item is used when the subscription itself does not carry it.
        """
        timestamp = self.current_period_end
        if timestamp is None and self.items.data:
            timestamp = self.items.data[0].current_period_end
        if timestamp is None:
            return None
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)

    @property
    def is_standalone_addon(self) -> bool:
        """True when the subscription's own metadata names an add-on and a business."""
        has_addon = bool(self.metadata.get("addon_id") or self.metadata.get("addon_key"))
        return has_addon and bool(self.metadata.get("business_id"))


class StripeInvoice(BaseModel):
    """Invoice object from ``invoice.payment_*`` events."""

    id: str | None = None
    subscription: str | None = None
    parent: dict[str, Any] | None = None

    @field_validator("subscription", mode="before")
    @classmethod
    def _collapse_expanded(cls, value: Any) -> Any:
        return _expandable_id(value)

    @property
    def subscription_id(self) -> str | None:
        """Subscription id from the legacy field or from ``parent.subscription_details``."""
        if self.subscription:
            return self.subscription
        details = (self.parent or {}).get("subscription_details") or {}
        return _expandable_id(details.get("subscription"))
