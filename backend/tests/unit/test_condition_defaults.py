"""Unit tests for region-aware condition pricing defaults."""
import pytest

from detailing_billing.utils.condition_defaults import (
    get_default_condition_config,
    get_initial_condition_config,
    normalize_state_code,
    region_for_state,
)


@pytest.mark.parametrize(
    ("state", "expected"),
    [
        ("UT", "UT"),
        ("ut", "UT"),
        ("Utah", "UT"),
        ("  new   york ", "NY"),
        ("California", "CA"),
        ("Ontario", "ONTARIO"),
        ("", None),
        (None, None),
    ],
)
def test_normalize_state_code(state, expected) -> None:
    """State names and codes normalize to uppercase two-letter codes."""
    assert normalize_state_code(state) == expected


@pytest.mark.parametrize(
    ("state", "region"),
    [
        ("MI", "rust_belt"),
        ("CA", "beach"),
        ("Colorado", "mountain"),
        ("TX", "bugs_sun"),
        ("DE", "generic"),
        (None, "generic"),
    ],
)
def test_region_for_state(state, region) -> None:
    assert region_for_state(state) == region


def test_initial_config_has_four_tiers_with_regional_extreme() -> None:
    """The extreme tier carries the region's label; the other tiers are fixed."""
    config = get_initial_condition_config("CA")

    assert config["enabled"] is True
    assert [tier["id"] for tier in config["tiers"]] == ["clean", "moderate", "heavy", "extreme"]
    assert [tier["markup_percent"] for tier in config["tiers"]] == [0, 0.15, 0.25, 0.40]

    extreme = config["tiers"][3]
    assert extreme["label"] == "Sand & Surf"
    assert extreme["description"] == "Deep sand extraction, salt spray residue, and damp upholstery."


def test_rust_belt_and_unknown_states() -> None:
    assert get_initial_condition_config("Ohio")["tiers"][3]["label"] == "Winter Salt & Grime"
    assert get_initial_condition_config("PR")["tiers"][3]["label"] == "Disaster Detail"
    assert get_default_condition_config()["tiers"][3]["label"] == "Disaster Detail"


def test_configs_are_independent_copies() -> None:
    """Mutating one business's config never leaks into another's."""
    first = get_initial_condition_config("UT")
    first["tiers"][0]["markup_percent"] = 0.5

    assert get_initial_condition_config("UT")["tiers"][0]["markup_percent"] == 0
