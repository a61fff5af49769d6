"""Exception taxonomy for webhook processing.

Each class maps to one HTTP outcome at the webhook boundary:

- ``ConfigurationError``: operator must fix the deployment (500).
- ``VerificationError``: forged or malformed request, never retried (400).
- ``InvalidEventPayload``: verified event whose metadata cannot be decoded (400).
- ``ReconciliationError``: transient or data failure, Stripe retries (500).
"""


class BillingError(Exception):
    """Base class for billing reconciliation errors."""


class ConfigurationError(BillingError):
    """Required secret or client is missing."""


class VerificationError(BillingError):
    """Webhook signature header is missing or does not match the payload."""


class InvalidEventPayload(BillingError):
    """Event body or checkout metadata failed schema validation."""


class ReconciliationError(BillingError):
    """A reconciliation write could not be completed."""


class RelatedRecordNotFound(ReconciliationError):
    """A record the event refers to does not exist locally."""
