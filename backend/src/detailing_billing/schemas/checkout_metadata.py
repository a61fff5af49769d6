"""Schemas for the metadata this application attaches to Stripe objects.

The checkout routes write these fields when they create a session; decoding
them is strict so a malformed event is rejected instead of producing a
partially populated business.
"""
import json
from typing import Any, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from detailing_billing.errors import InvalidEventPayload
from detailing_billing.models.business import BillingPeriod, SubscriptionPlan
from detailing_billing.models.subscription_addon import AddonKey
from detailing_billing.services.addon_catalog import normalize_addon_key

MetadataModel = TypeVar("MetadataModel", bound=BaseModel)


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class SignupData(BaseModel):
    """Signup form fields serialized into ``signup_data`` by the signup wizard."""

    business_name: str | None = Field(default=None, alias="businessName")
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    subdomain: str | None = None
    description: str | None = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("*", mode="before")
    @classmethod
    def _empty_strings_are_missing(cls, value: Any) -> Any:
        # zip codes and phone numbers sometimes arrive as JSON numbers
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return _blank_to_none(value)


class PrimaryCheckoutMetadata(BaseModel):
    """Metadata on a plan checkout session."""

    user_id: str = Field(..., min_length=1)
    plan_id: SubscriptionPlan
    billing_period: BillingPeriod
    team_size: int = Field(default=1, ge=1)
    business_name: str = ""
    signup_data: SignupData = Field(default_factory=SignupData)
    signup_lead_id: str | None = None

    model_config = ConfigDict(frozen=True)

    @field_validator("team_size", mode="before")
    @classmethod
    def _default_team_size(cls, value: Any) -> Any:
        return 1 if _blank_to_none(value) is None else value

    @field_validator("signup_lead_id", mode="before")
    @classmethod
    def _optional_lead(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("signup_data", mode="before")
    @classmethod
    def _decode_signup_json(cls, value: Any) -> Any:
        if value is None or value == "":
            return {}
        if isinstance(value, str):
            try:
                decoded = json.loads(value)
            except json.JSONDecodeError as exc:
                raise ValueError(f"signup_data is not valid JSON: {exc.msg}") from exc
            if not isinstance(decoded, dict):
                raise ValueError("signup_data must be a JSON object")
            return decoded
        return value

    @property
    def resolved_business_name(self) -> str:
        return self.signup_data.business_name or self.business_name


class AddonMetadata(BaseModel):
    """
    Metadata naming an add-on and its business.

    Found on add-on checkout sessions and on standalone add-on subscriptions.
    ``addon_key`` is the current shape; ``addon_id`` is the legacy one.
    """

    business_id: UUID
    addon_key: AddonKey
    addon_id: str | None = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _resolve_addon_key(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        raw = data.get("addon_key") or data.get("addon_id")
        resolved = normalize_addon_key(raw)
        if resolved is None:
            raise ValueError(f"unknown add-on identifier: {raw!r}")
        return {**data, "addon_key": resolved}


def decode_metadata(model: type[MetadataModel], metadata: dict[str, str], *, source: str) -> MetadataModel:
    """
    Validate ``metadata`` against ``model``.

    Raises:
        InvalidEventPayload: If a required field is missing or malformed
    """
    try:
        return model.model_validate(metadata)
    except ValidationError as exc:
        fields = sorted({".".join(str(part) for part in error["loc"]) or "metadata" for error in exc.errors()})
        raise InvalidEventPayload(
            f"Invalid {model.__name__} on {source}: {', '.join(fields)}"
        ) from exc
