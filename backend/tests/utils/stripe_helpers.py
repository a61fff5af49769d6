"""Stripe signing helpers and a fake gateway for tests."""
import hashlib
import hmac
import time
from typing import Any

import stripe

from detailing_billing.adapters.stripe_adapter import StripeGateway
from detailing_billing.schemas.stripe_event import StripeSubscription

WEBHOOK_SECRET = "whsec_test_secret"
JWT_SECRET = "test-supabase-jwt-secret"


def stripe_signature(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a ``Stripe-Signature`` header the way Stripe signs deliveries."""
    timestamp = timestamp if timestamp is not None else int(time.time())
    signed_payload = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


class FakeStripeGateway(StripeGateway):
    """
    Stripe gateway with real signature verification and canned API responses.

    Subscriptions returned by ``retrieve_subscription`` are registered with
    ``add_subscription``; deleted items are recorded in ``deleted_items``.
    """

    def __init__(self) -> None:
        super().__init__("sk_test_fake", WEBHOOK_SECRET)
        self.subscriptions: dict[str, dict[str, Any]] = {}
        self.deleted_items: list[str] = []
        self.retrieve_calls: list[str] = []

    def add_subscription(self, subscription: dict[str, Any]) -> dict[str, Any]:
        self.subscriptions[subscription["id"]] = subscription
        return subscription

    async def retrieve_subscription(self, subscription_id: str) -> StripeSubscription:
        self.retrieve_calls.append(subscription_id)
        if subscription_id not in self.subscriptions:
            raise stripe.InvalidRequestError(f"No such subscription: '{subscription_id}'", "id")
        return StripeSubscription.model_validate(self.subscriptions[subscription_id])

    async def delete_subscription_item(self, subscription_item_id: str) -> None:
        self.deleted_items.append(subscription_item_id)
