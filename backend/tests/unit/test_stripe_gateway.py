"""Unit tests for webhook signature verification and gateway configuration."""
import json
import time

import pytest
import stripe

from detailing_billing.adapters.stripe_adapter import StripeGateway
from detailing_billing.config import Settings
from detailing_billing.errors import ConfigurationError, InvalidEventPayload, VerificationError
from detailing_billing.main import create_app
from utils.factories import StripeSubscriptionFactory, stripe_event
from utils.stripe_helpers import WEBHOOK_SECRET, stripe_signature


@pytest.fixture
def gateway() -> StripeGateway:
    return StripeGateway("sk_test_fake", WEBHOOK_SECRET, tolerance=300)


def _payload() -> str:
    return json.dumps(stripe_event("customer.subscription.updated", StripeSubscriptionFactory.create(), "evt_1"))


@pytest.mark.asyncio
async def test_valid_signature_yields_event(gateway: StripeGateway) -> None:
    payload = _payload()

    event = await gateway.construct_webhook_event(payload.encode(), stripe_signature(payload))

    assert event.id == "evt_1"
    assert event.type == "customer.subscription.updated"
    assert event.payload["object"] == "subscription"


@pytest.mark.asyncio
async def test_missing_signature_is_rejected(gateway: StripeGateway) -> None:
    with pytest.raises(VerificationError, match="Missing"):
        await gateway.construct_webhook_event(_payload().encode(), None)


@pytest.mark.asyncio
async def test_wrong_secret_is_rejected(gateway: StripeGateway) -> None:
    payload = _payload()

    with pytest.raises(VerificationError):
        await gateway.construct_webhook_event(payload.encode(), stripe_signature(payload, secret="whsec_other"))


@pytest.mark.asyncio
async def test_tampered_body_is_rejected(gateway: StripeGateway) -> None:
    payload = _payload()
    header = stripe_signature(payload)

    with pytest.raises(VerificationError):
        await gateway.construct_webhook_event(payload.replace("evt_1", "evt_2").encode(), header)


@pytest.mark.asyncio
async def test_stale_timestamp_is_rejected(gateway: StripeGateway) -> None:
    payload = _payload()
    header = stripe_signature(payload, timestamp=int(time.time()) - 3600)

    with pytest.raises(VerificationError):
        await gateway.construct_webhook_event(payload.encode(), header)


@pytest.mark.asyncio
async def test_signed_non_event_body_is_invalid(gateway: StripeGateway) -> None:
    payload = json.dumps({"hello": "world"})

    with pytest.raises(InvalidEventPayload):
        await gateway.construct_webhook_event(payload.encode(), stripe_signature(payload))


@pytest.mark.parametrize(
    ("secret_key", "webhook_secret"),
    [(None, WEBHOOK_SECRET), ("sk_test_fake", None), ("", "")],
)
def test_missing_secrets_fail_at_construction(secret_key, webhook_secret) -> None:
    settings = Settings(_env_file=None, stripe_secret_key=secret_key, stripe_webhook_secret=webhook_secret)

    with pytest.raises(ConfigurationError):
        StripeGateway.from_settings(settings)


def test_create_app_requires_stripe_secrets() -> None:
    settings = Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite://",
        stripe_secret_key="sk_test_fake",
        stripe_webhook_secret=None,
    )

    with pytest.raises(ConfigurationError, match="STRIPE_WEBHOOK_SECRET"):
        create_app(settings=settings)


def test_credentials_are_per_request_and_retries_are_global(monkeypatch) -> None:
    monkeypatch.setattr(stripe, "api_key", None)
    monkeypatch.setattr(stripe, "max_network_retries", 0)

    first = StripeGateway("sk_test_one", WEBHOOK_SECRET, api_version="2024-06-20", max_network_retries=3)
    second = StripeGateway("sk_test_two", WEBHOOK_SECRET, max_network_retries=5)

    assert first._request_options() == {"api_key": "sk_test_one", "stripe_version": "2024-06-20"}
    assert second._request_options() == {"api_key": "sk_test_two"}
    assert stripe.api_key is None
    # The most recently built gateway sets the retry count for the process
    assert stripe.max_network_retries == 5
