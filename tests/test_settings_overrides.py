from __future__ import annotations

import pytest
from pydantic import ValidationError

from tripweaver.config.overrides import apply_settings_overrides, parse_override_assignments
from tripweaver.config.settings import get_settings


def test_apply_settings_overrides_returns_same_object_when_none():
    settings = get_settings()

    # No overrides is a no-op: the cached object comes back untouched (fast path).
    assert apply_settings_overrides(settings, None) is settings
    assert apply_settings_overrides(settings, {}) is settings


def test_apply_settings_overrides_can_override_engine_knobs():
    settings = get_settings()
    overrides = {
        "scheduling": {"max_daily_minutes": 480, "include_meals": False},
        "routing": {"objective_weights": {"fairness": 0.5, "quantity": 0.5}},
    }

    out = apply_settings_overrides(settings, overrides)

    assert out.scheduling.max_daily_minutes == 480
    assert out.scheduling.include_meals is False
    assert out.routing.objective_weights == {"fairness": 0.5, "quantity": 0.5}
    # Siblings that were not overridden keep their values.
    assert out.scheduling.day_start == settings.scheduling.day_start

    # The shared cached settings must not leak changes across requests.
    assert settings.scheduling.max_daily_minutes == 600
    assert settings.scheduling.include_meals is True


def test_apply_settings_overrides_rejects_disallowed_keys_with_clear_path():
    settings = get_settings()

    # App-level settings are not tunable per request.
    with pytest.raises(ValueError, match=r"'app\.timezone'"):
        apply_settings_overrides(settings, {"app": {"timezone": "Asia/Tokyo"}})

    # `pipeline` is restricted to a couple of keys.
    with pytest.raises(ValueError, match=r"'pipeline\.unknown'"):
        apply_settings_overrides(settings, {"pipeline": {"unknown": 1}})


def test_apply_settings_overrides_rejects_wrong_value_shapes_for_restricted_subtrees():
    settings = get_settings()

    with pytest.raises(ValueError, match=r"settings_overrides key 'pipeline' must be a mapping"):
        apply_settings_overrides(settings, {"pipeline": 1})


def test_apply_settings_overrides_revalidates_the_merged_settings():
    settings = get_settings()

    # Cross-field rules still hold after merging.
    with pytest.raises(ValidationError, match="day_end must be after"):
        apply_settings_overrides(settings, {"scheduling": {"day_start": "21:00"}})

    with pytest.raises(ValidationError):
        apply_settings_overrides(settings, {"scheduling": {"max_daily_minutes": 0}})


def test_parse_override_assignments_builds_nested_typed_mapping():
    parsed = parse_override_assignments(
        ["scheduling.max_daily_minutes=480", "scheduling.include_meals=false", "transport.long_haul_km=450.5"]
    )

    assert parsed == {
        "scheduling": {"max_daily_minutes": 480, "include_meals": False},
        "transport": {"long_haul_km": 450.5},
    }


def test_parse_override_assignments_merges_onto_base():
    parsed = parse_override_assignments(
        ["scheduling.day_start=12:00"],
        base={"scheduling": {"include_meals": False}},
    )
    assert parsed == {"scheduling": {"include_meals": False, "day_start": "12:00"}}


@pytest.mark.parametrize("bad", ["scheduling.max_daily_minutes", "=5", "scheduling=1,scheduling.x=2"])
def test_parse_override_assignments_rejects_malformed_items(bad):
    with pytest.raises(ValueError):
        parse_override_assignments(bad.split(","))


def test_get_settings_reads_config_path_and_env_overlay(tmp_path, monkeypatch):
    config = tmp_path / "settings.yaml"
    config.write_text("scheduling:\n  max_daily_minutes: 480\n", encoding="utf-8")
    monkeypatch.setenv("TRIPWEAVER_CONFIG_PATH", str(config))
    monkeypatch.setenv("TRIPWEAVER_TIMEZONE", "Asia/Tokyo")

    # The loader is cached; clear it on both sides so other tests see the packaged defaults.
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.scheduling.max_daily_minutes == 480
        assert settings.app.timezone == "Asia/Tokyo"
        # Sections missing from the file fall back to model defaults.
        assert settings.transport.long_haul_km == 300
    finally:
        get_settings.cache_clear()
