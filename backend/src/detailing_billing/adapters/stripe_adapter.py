"""Stripe payment gateway adapter."""
import json
from typing import Any, Protocol

import stripe
import structlog
from pydantic import ValidationError

from detailing_billing.config import Settings
from detailing_billing.errors import ConfigurationError, InvalidEventPayload, VerificationError
from detailing_billing.schemas.stripe_event import StripeEvent, StripeSubscription

logger = structlog.get_logger(__name__)


class PaymentGateway(Protocol):
    """Operations the reconcilers need from the payment provider."""

    async def construct_webhook_event(self, payload: bytes, signature: str | None) -> StripeEvent:
        ...

    async def retrieve_subscription(self, subscription_id: str) -> StripeSubscription:
        ...

    async def delete_subscription_item(self, subscription_item_id: str) -> None:
        ...


def _as_dict(obj: Any) -> dict[str, Any]:
    if isinstance(obj, dict):
        return obj
    to_dict = getattr(obj, "to_dict_recursive", None) or getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)


class StripeGateway:
    """
    Adapter for Stripe payment gateway integration.

    The API key and API version are sent as request options on every call, so
    ``stripe.api_key`` is never set. The network retry count is SDK-wide:
    constructing a gateway sets ``stripe.max_network_retries`` for the process.
    """

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        *,
        api_version: str | None = None,
        tolerance: int = 300,
        max_network_retries: int = 2,
    ):
        """
        Initialize Stripe gateway.

        Raises:
            ConfigurationError: If either secret is missing
        """
        if not secret_key:
            raise ConfigurationError("STRIPE_SECRET_KEY is not configured")
        if not webhook_secret:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not configured")

        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.api_version = api_version
        self.tolerance = tolerance
        # Resource calls have no per-request retry option
        stripe.max_network_retries = max_network_retries

    @classmethod
    def from_settings(cls, config: Settings) -> "StripeGateway":
        """Build the gateway from application settings."""
        return cls(
            config.stripe_secret_key or "",
            config.stripe_webhook_secret or "",
            api_version=config.stripe_api_version,
            tolerance=config.stripe_webhook_tolerance_seconds,
            max_network_retries=config.stripe_max_network_retries,
        )

    def _request_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {"api_key": self.secret_key}
        if self.api_version:
            options["stripe_version"] = self.api_version
        return options

    async def construct_webhook_event(self, payload: bytes, signature: str | None) -> StripeEvent:
        """
        Verify a webhook delivery and decode its event.

        Args:
            payload: Raw request body, exactly as received
            signature: ``Stripe-Signature`` header value

        Returns:
            Verified event

        Raises:
            VerificationError: If the header is missing or the signature does not match
            InvalidEventPayload: If the verified body is not a Stripe event
        """
        if not signature:
            raise VerificationError("Missing Stripe-Signature header")

        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret, tolerance=self.tolerance)
        except stripe.SignatureVerificationError as e:
            raise VerificationError(f"Invalid signature: {e}") from e
        except ValueError as e:
            raise VerificationError(f"Invalid payload: {e}") from e

        try:
            return StripeEvent.model_validate(json.loads(payload))
        except ValidationError as e:
            raise InvalidEventPayload(f"Malformed Stripe event: {e.error_count()} invalid field(s)") from e

    async def retrieve_subscription(self, subscription_id: str) -> StripeSubscription:
        """
        Fetch a subscription with its items.

        Raises:
            stripe.StripeError: If the Stripe API call fails
            InvalidEventPayload: If the returned object cannot be decoded
        """
        subscription = stripe.Subscription.retrieve(subscription_id, **self._request_options())
        try:
            return StripeSubscription.model_validate(_as_dict(subscription))
        except ValidationError as e:
            raise InvalidEventPayload(f"Malformed Stripe subscription {subscription_id}") from e

    async def delete_subscription_item(self, subscription_item_id: str) -> None:
        """
        Remove an item from its subscription.

        Stripe prorates the removal; the resulting ``customer.subscription.updated``
        event is reconciled like any other item removal.
        """
        stripe.SubscriptionItem.delete(subscription_item_id, **self._request_options())
        logger.info("stripe_subscription_item_deleted", subscription_item_id=subscription_item_id)
