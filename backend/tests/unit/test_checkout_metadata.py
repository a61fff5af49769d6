"""Unit tests for checkout metadata decoding and the add-on catalog."""
import json
from uuid import uuid4

import pytest

from detailing_billing.errors import InvalidEventPayload
from detailing_billing.models.business import BillingPeriod, SubscriptionPlan, SubscriptionStatus
from detailing_billing.models.subscription_addon import AddonKey
from detailing_billing.schemas.checkout_metadata import AddonMetadata, PrimaryCheckoutMetadata, decode_metadata
from detailing_billing.schemas.stripe_event import StripeCheckoutSession, StripeInvoice, StripeSubscription
from detailing_billing.services.addon_catalog import (
    get_available_addons_for_tier,
    get_subscription_addon,
    normalize_addon_key,
)


def _primary(**overrides) -> dict[str, str]:
    metadata = {
        "user_id": "user-1",
        "plan_id": "pro",
        "billing_period": "monthly",
        "team_size": "2",
        "signup_data": json.dumps({"businessName": "Ace Detailing", "state": "CA", "zip": 90210}),
    }
    metadata.update(overrides)
    return metadata


def test_primary_metadata_decodes_signup_json() -> None:
    metadata = decode_metadata(PrimaryCheckoutMetadata, _primary(), source="test")

    assert metadata.user_id == "user-1"
    assert metadata.plan_id == SubscriptionPlan.PRO
    assert metadata.billing_period == BillingPeriod.MONTHLY
    assert metadata.team_size == 2
    assert metadata.signup_data.business_name == "Ace Detailing"
    assert metadata.signup_data.state == "CA"
    assert metadata.signup_data.zip == "90210"
    assert metadata.resolved_business_name == "Ace Detailing"


def test_primary_metadata_defaults() -> None:
    """Team size defaults to 1 and the business name falls back to the metadata field."""
    metadata = decode_metadata(
        PrimaryCheckoutMetadata,
        _primary(team_size="", signup_data="", business_name="Fallback Name"),
        source="test",
    )

    assert metadata.team_size == 1
    assert metadata.signup_data.business_name is None
    assert metadata.resolved_business_name == "Fallback Name"
    assert metadata.signup_lead_id is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"plan_id": "enterprise"},
        {"billing_period": "weekly"},
        {"user_id": ""},
        {"team_size": "0"},
        {"team_size": "many"},
        {"signup_data": "{not json"},
        {"signup_data": "[1, 2]"},
    ],
)
def test_invalid_primary_metadata_fails_closed(overrides) -> None:
    with pytest.raises(InvalidEventPayload):
        decode_metadata(PrimaryCheckoutMetadata, _primary(**overrides), source="test")


def test_missing_plan_names_the_field() -> None:
    metadata = _primary()
    del metadata["plan_id"]

    with pytest.raises(InvalidEventPayload, match="plan_id"):
        decode_metadata(PrimaryCheckoutMetadata, metadata, source="checkout session cs_1")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("mileage_tracker", AddonKey.MILEAGE_TRACKER),
        ("mileage-tracker", AddonKey.MILEAGE_TRACKER),
        ("ai-photo-analysis", AddonKey.AI_PHOTO_ANALYSIS),
        ("photo-analysis", None),
        ("mileage", None),
        ("AI_PHOTO_ANALYSIS", AddonKey.AI_PHOTO_ANALYSIS),
        ("auto-lead", AddonKey.AUTO_LEAD),
        ("teleportation", None),
        (None, None),
    ],
)
def test_normalize_addon_key(raw, expected) -> None:
    assert normalize_addon_key(raw) == expected


def test_addon_metadata_accepts_legacy_addon_id() -> None:
    business_id = uuid4()

    current = decode_metadata(
        AddonMetadata, {"business_id": str(business_id), "addon_key": "ai_photo_analysis"}, source="test"
    )
    legacy = decode_metadata(AddonMetadata, {"business_id": str(business_id), "addon_id": "ai-photo-analysis"}, source="test")

    assert current.addon_key == legacy.addon_key == AddonKey.AI_PHOTO_ANALYSIS
    assert legacy.business_id == business_id


@pytest.mark.parametrize(
    "metadata",
    [
        {"business_id": "not-a-uuid", "addon_key": "mileage_tracker"},
        {"addon_key": "mileage_tracker"},
        {"business_id": "8a1f6a4e-2f7b-4c51-9f1e-0d1c2b3a4f5e", "addon_key": "unknown"},
    ],
)
def test_invalid_addon_metadata_fails_closed(metadata) -> None:
    with pytest.raises(InvalidEventPayload):
        decode_metadata(AddonMetadata, metadata, source="test")


def test_catalog_tiers() -> None:
    starter = {addon.key for addon in get_available_addons_for_tier(SubscriptionPlan.STARTER)}
    pro = {addon.key for addon in get_available_addons_for_tier(SubscriptionPlan.PRO)}

    assert starter == {AddonKey.MILEAGE_TRACKER, AddonKey.AI_PHOTO_ANALYSIS}
    assert pro == starter
    # auto_lead is reconciled from Stripe but is not sold from the catalog
    assert get_subscription_addon(AddonKey.AUTO_LEAD) is None
    assert get_available_addons_for_tier(None) == []
    assert get_subscription_addon("mileage-tracker").monthly_price == 9.99


def test_checkout_session_routing_properties() -> None:
    primary = StripeCheckoutSession.model_validate(
        {"id": "cs_1", "mode": "subscription", "customer_details": {"email": "a@b.co"}, "metadata": {"user_id": "u1"}}
    )
    addon = StripeCheckoutSession.model_validate(
        {"id": "cs_2", "mode": "subscription", "metadata": {"user_id": "u1", "addon_id": "mileage_tracker"}}
    )

    assert primary.is_primary_checkout and not primary.is_addon_checkout
    assert primary.email == "a@b.co"
    assert addon.is_addon_checkout and not addon.is_primary_checkout


def test_subscription_period_end_falls_back_to_first_item() -> None:
    subscription = StripeSubscription.model_validate(
        {
            "id": "sub_1",
            "status": "past_due",
            "customer": {"id": "cus_1", "object": "customer"},
            "items": {"data": [{"id": "si_1", "current_period_end": 1767225600}]},
            "metadata": {"business_id": str(uuid4()), "addon_id": "mileage_tracker"},
        }
    )

    assert subscription.status == SubscriptionStatus.PAST_DUE
    assert subscription.customer == "cus_1"
    assert subscription.item_ids == ["si_1"]
    assert subscription.period_end.timestamp() == 1767225600
    assert subscription.is_standalone_addon


def test_invoice_subscription_id_shapes() -> None:
    legacy = StripeInvoice.model_validate({"id": "in_1", "subscription": {"id": "sub_1"}})
    nested = StripeInvoice.model_validate(
        {"id": "in_2", "parent": {"subscription_details": {"subscription": "sub_2"}}}
    )
    standalone = StripeInvoice.model_validate({"id": "in_3"})

    assert legacy.subscription_id == "sub_1"
    assert nested.subscription_id == "sub_2"
    assert standalone.subscription_id is None
