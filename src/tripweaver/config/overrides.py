"""
Per-request settings overrides (safe subset).

An optimization request may carry `settings_overrides` to tune engine knobs for one run
(daily cap, meal table, transport speeds, objective weights...). This module:
- validates the override payload against a whitelist,
- deep-merges the safe subset onto current settings,
- re-validates with Pydantic so ranges and cross-field rules still hold.

App-level settings (name, log level, default timezone) are not tunable per request.
"""

from __future__ import annotations

from typing import Any, Mapping

import yaml

from tripweaver.config.settings import Settings

# A value of True allows any key under that subtree; a nested dict allows only the listed keys.
ALLOWED_SETTINGS_OVERRIDES_TREE: dict[str, Any] = {
    "normalization": True,
    "fairness": True,
    "routing": True,
    "transport": True,
    "scheduling": True,
    "validation": True,
    "pipeline": {"record_timings": True, "min_destinations": True},
}


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = dict(base)
    for key, override_value in override.items():
        if isinstance(override_value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(dict(merged[key]), override_value)
            continue
        merged[key] = override_value
    return merged


def _filter_overrides(
    overrides: Mapping[str, Any],
    *,
    allowed_tree: Mapping[str, Any],
    path: tuple[str, ...] = (),
) -> dict[str, Any]:
    filtered: dict[str, Any] = {}
    for key, value in overrides.items():
        dotted_path = ".".join((*path, key))
        if key not in allowed_tree:
            raise ValueError(f"settings_overrides contains a disallowed key: '{dotted_path}'")

        allowed = allowed_tree[key]
        if allowed is True:
            filtered[key] = value
            continue

        if not isinstance(value, Mapping):
            raise ValueError(f"settings_overrides key '{dotted_path}' must be a mapping")
        filtered[key] = _filter_overrides(value, allowed_tree=allowed, path=(*path, key))
    return filtered


def apply_settings_overrides(settings: Settings, overrides: Mapping[str, Any] | None) -> Settings:
    """Return a new Settings with the whitelisted overrides applied (input is not modified)."""
    if not overrides:
        return settings

    safe_overrides = _filter_overrides(overrides, allowed_tree=ALLOWED_SETTINGS_OVERRIDES_TREE)
    merged_payload = _deep_merge(settings.model_dump(mode="python"), safe_overrides)
    return Settings.model_validate(merged_payload)


def parse_override_assignments(
    assignments: list[str], *, base: Mapping[str, Any] | None = None
) -> dict[str, Any]:
    """Turn CLI-style `section.key=value` strings into a nested override mapping.

    Values are parsed as YAML scalars, so `600`, `0.5` and `false` keep their types. Values
    containing a colon stay strings (YAML 1.1 would read `12:00` as a base-60 integer).
    """
    tree: dict[str, Any] = {}
    for item in assignments:
        dotted, sep, raw = item.partition("=")
        if not sep or not dotted.strip():
            raise ValueError(f"Override must look like section.key=value, got '{item}'")
        keys = [k.strip() for k in dotted.split(".")]
        node = tree
        for key in keys[:-1]:
            node = node.setdefault(key, {})
            if not isinstance(node, dict):
                raise ValueError(f"Override '{item}' conflicts with an earlier value")
        node[keys[-1]] = raw.strip() if ":" in raw else yaml.safe_load(raw)
    return _deep_merge(dict(base), tree) if base else tree
