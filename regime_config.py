"""
Regime Config — label → display configuration.

Resolution order:
  exact key → display-label alias → substring (bull, bear, volat) → range
"""

from dataclasses import dataclass
from typing import Optional

import settings as cfg


@dataclass(frozen=True)
class RegimeConfig:
    """Display configuration for one canonical regime."""
    key: str
    gradient: str     # filled elements
    solid: str        # borders, dots
    dim: str          # past / inactive tint
    label: str
    icon: str


REGIME_CONFIGS = {
    key: RegimeConfig(key=key, **display)
    for key, display in cfg.REGIME_DISPLAY.items()
}


def regime_key(label: Optional[str]) -> str:
    """Canonical regime key for a free-text label. Never fails."""
    r = (label or "").strip().lower()

    if r in REGIME_CONFIGS:
        return r

    alias = cfg.REGIME_LABEL_ALIASES.get(r)
    if alias in REGIME_CONFIGS:
        return alias

    for fragment, key in cfg.REGIME_SUBSTRING_MATCH:
        if fragment in r:
            return key

    return cfg.DEFAULT_REGIME


def get_regime_config(label: Optional[str]) -> RegimeConfig:
    """Lookup by key, display label, or partial match (defaults to range)."""
    return REGIME_CONFIGS[regime_key(label)]
