"""Feature flag helpers for runtime configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Literal, TypedDict, cast


FeatureFlagKey = Literal[
    "feature_fulfillment_enabled",
    "feature_messaging_enabled",
    "feature_referral_commissions_enabled",
]


class FeatureFlagValues(TypedDict):
    feature_fulfillment_enabled: bool
    feature_messaging_enabled: bool
    feature_referral_commissions_enabled: bool


@dataclass(frozen=True)
class FeatureFlagDefinition:
    env_var: str
    default: bool


_FEATURE_FLAG_DEFINITIONS: Dict[FeatureFlagKey, FeatureFlagDefinition] = {
    "feature_fulfillment_enabled": FeatureFlagDefinition("FEATURE_FULFILLMENT_ENABLED", True),
    "feature_messaging_enabled": FeatureFlagDefinition("FEATURE_MESSAGING_ENABLED", True),
    "feature_referral_commissions_enabled": FeatureFlagDefinition("FEATURE_REFERRAL_COMMISSIONS_ENABLED", True),
}


def _normalize_bool(value: str | None, default: bool = True) -> bool:
    """Return normalized boolean from environment-style value."""
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"", "0", "false", "no", "off"}:
        return False
    if normalized in {"1", "true", "yes", "on"}:
        return True
    return default


@lru_cache(maxsize=None)
def get_feature_flags() -> FeatureFlagValues:
    """Return the cached feature flag state sourced from the environment."""
    values: Dict[FeatureFlagKey, bool] = {}
    for key, definition in _FEATURE_FLAG_DEFINITIONS.items():
        values[key] = _normalize_bool(os.getenv(definition.env_var), default=definition.default)
    return cast(FeatureFlagValues, values)


def is_feature_enabled(flag: FeatureFlagKey) -> bool:
    return get_feature_flags()[flag]


def fulfillment_enabled() -> bool:
    """Dispatch paid orders to Gelato."""
    return is_feature_enabled("feature_fulfillment_enabled")


def messaging_enabled() -> bool:
    """Enqueue templated email/SMS/inbox messages."""
    return is_feature_enabled("feature_messaging_enabled")


def referral_commissions_enabled() -> bool:
    """Compute partner commissions and customer credits on paid orders."""
    return is_feature_enabled("feature_referral_commissions_enabled")


def refresh_feature_flag_cache() -> None:
    """Invalidate cached feature flag values (useful for tests)."""
    get_feature_flags.cache_clear()
