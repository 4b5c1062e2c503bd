"""
Shared test fixtures for the regime journal.

Provides:
- make_record / make_history: RegimeRecord factories (newest-first)
- portfolio: a BTC/ETH/ALTS/STABLE portfolio with holdings
- now: fixed reference time for signal grouping
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Ensure repo root modules are importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from feed_types import Allocation, PortfolioState, RegimeState  # noqa: E402
from regime_history import RegimeRecord  # noqa: E402

ANCHOR = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)


def make_record(day: int = 0, regime: str = "bull", confidence: float = 0.7,
                price_now=None, previous_regime=None, regime_changed=False,
                **extra) -> RegimeRecord:
    """`day` counts back from ANCHOR, so day=0 is the newest row."""
    return RegimeRecord(
        timestamp=(ANCHOR - timedelta(days=day)).isoformat(),
        regime=regime,
        confidence=confidence,
        price_now=price_now,
        previous_regime=previous_regime,
        regime_changed=regime_changed,
        **extra,
    )


def make_history(labels, confidence: float = 0.7):
    """Newest-first records from newest-first labels, change flags filled in."""
    records = []
    n = len(labels)
    for i, label in enumerate(labels):
        prev = labels[i + 1] if i + 1 < n else None
        records.append(make_record(
            day=i,
            regime=label,
            confidence=confidence,
            previous_regime=prev,
            regime_changed=prev is not None and prev != label,
        ))
    return records


@pytest.fixture
def now():
    return ANCHOR


@pytest.fixture
def portfolio():
    return PortfolioState(
        posture_label="Aligned",
        misalignment=0.08,
        allocations=[
            Allocation("BTC", 45, 50),
            Allocation("ETH", 25, 25),
            Allocation("ALTS", 20, 15),
            Allocation("STABLE", 10, 10),
        ],
    )


@pytest.fixture
def regime():
    return RegimeState(label="Bull Market", confidence=87, persistence=14)
