"""Pydantic schemas for Stripe payloads and API request/response validation."""

from detailing_billing.schemas.checkout_metadata import (
    AddonMetadata,
    PrimaryCheckoutMetadata,
    SignupData,
    decode_metadata,
)
from detailing_billing.schemas.error import (
    ErrorCode,
    ErrorDetail,
    ErrorResponse,
    WebhookAck,
    WebhookErrorResponse,
)
from detailing_billing.schemas.stripe_event import (
    StripeCheckoutSession,
    StripeEvent,
    StripeInvoice,
    StripeSubscription,
    StripeSubscriptionItem,
)
from detailing_billing.schemas.subscription_addon import (
    AddonCatalog,
    AddonDefinition,
    BusinessSubscriptionAddon,
    BusinessSubscriptionAddonList,
    TrialEligibility,
)

__all__ = [
    "AddonCatalog",
    "AddonDefinition",
    "AddonMetadata",
    "BusinessSubscriptionAddon",
    "BusinessSubscriptionAddonList",
    "ErrorCode",
    "ErrorDetail",
    "ErrorResponse",
    "PrimaryCheckoutMetadata",
    "SignupData",
    "StripeCheckoutSession",
    "StripeEvent",
    "StripeInvoice",
    "StripeSubscription",
    "StripeSubscriptionItem",
    "TrialEligibility",
    "WebhookAck",
    "WebhookErrorResponse",
    "decode_metadata",
]
