"""
Demo Data — three static scenarios for running without a database.

  bull      14-day bull run, aligned portfolio
  bear      21-day bear run, misaligned portfolio
  sideways  8-day range, aligned portfolio

Regime history is generated deterministically from segment tables, so the
analytics (runs, aggregates, transitions) have something real to chew on.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import numpy as np

from feed_types import (
    Allocation, FeedSources, LearnItem, MarketMetrics, PortfolioState,
    RegimeState, Signal,
)
from regime_config import regime_key

logger = logging.getLogger(__name__)

DEMO_ANCHOR = datetime(2026, 2, 11, 12, 0, tzinfo=timezone.utc)
DEFAULT_SCENARIO = "bull"

# Realized 7d vol (%) used for generated rows, per upstream regime value
_VOL_BY_REGIME = {"bull": 42.0, "bear": 68.0, "range": 31.0, "volatility": 75.0}

REGIME_EXPLAINERS = {
    "bull": LearnItem(
        summary=("A bull regime means trend, momentum and breadth agree on the upside. "
                 "Dips tend to be bought, and confidence usually builds over the first week."),
        slug="what-is-a-bull-regime",
    ),
    "bear": LearnItem(
        summary=("A bear regime means sustained downside with weak breadth. Rallies are "
                 "often sold, and capital preservation matters more than upside capture."),
        slug="what-is-a-bear-regime",
    ),
    "range": LearnItem(
        summary=("A sideways regime means price is oscillating without a clear trend. "
                 "Breakouts from long ranges often set the direction of the next regime."),
        slug="what-is-a-sideways-regime",
    ),
    "volatile": LearnItem(
        summary=("A high volatility regime means large swings in both directions. "
                 "Signals are noisier and regime labels change more often."),
        slug="what-is-a-volatile-regime",
    ),
}


def explainer_for(label: Optional[str]) -> LearnItem:
    return REGIME_EXPLAINERS[regime_key(label)]


@dataclass
class Scenario:
    id: str
    label: str
    rows: List[dict]                # newest first, `market_regimes` shape
    regime: RegimeState
    portfolio: PortfolioState
    signals: List[Signal] = field(default_factory=list)
    metrics: Optional[MarketMetrics] = None

    @property
    def explainer(self) -> LearnItem:
        return explainer_for(self.regime.label)

    def feed_sources(self, user_name: Optional[str] = None,
                     now: Optional[datetime] = None) -> FeedSources:
        latest, prev = self.rows[0], self.rows[1]
        return FeedSources(
            regime=self.regime,
            metrics=self.metrics,
            btc_price=latest["price_now"],
            btc_change=latest["r_1d"],
            eth_price=latest["eth_price_now"],
            eth_change=round((latest["eth_price_now"] / prev["eth_price_now"] - 1) * 100, 2),
            portfolio=self.portfolio if user_name else None,
            signals=self.signals if user_name else [],
            user_name=user_name,
            regime_explainer=self.explainer,
            now=now or DEMO_ANCHOR,
        )


# ============================================================
# HISTORY GENERATOR
# ============================================================

def build_history(segments, btc_start: float, eth_start: float,
                  end: datetime = DEMO_ANCHOR) -> List[dict]:
    """
    segments: oldest-first [(regime, days, conf_from, conf_to, daily_return), ...]
    Returns newest-first rows, one per day, ending at `end`.
    """
    regimes, confs, rets = [], [], []
    for regime, days, c0, c1, ret in segments:
        regimes += [regime] * days
        confs += list(np.linspace(c0, c1, days))
        rets += [ret] * days

    # Deterministic wobble so prices are not straight lines
    wobble = 0.004 * np.sin(np.arange(len(rets)) * 1.7)
    btc_rets = np.asarray(rets) + wobble
    eth_rets = np.asarray(rets) * 1.3 - wobble
    btc = btc_start * np.cumprod(1 + btc_rets)
    eth = eth_start * np.cumprod(1 + eth_rets)

    rows = []
    n = len(regimes)
    for i in range(n):
        prev = regimes[i - 1] if i > 0 else None
        r_7d = (btc[i] / btc[i - 7] - 1) * 100 if i >= 7 else None
        eth_r_7d = (eth[i] / eth[i - 7] - 1) * 100 if i >= 7 else None
        rows.append({
            "timestamp": (end - timedelta(days=n - 1 - i)).isoformat(),
            "regime": regimes[i],
            "previous_regime": prev,
            "regime_changed": prev is not None and prev != regimes[i],
            "confidence": round(float(confs[i]), 3),
            "price_now": round(float(btc[i]), 2),
            "r_1d": round(float(btc_rets[i]) * 100, 2),
            "r_7d": round(r_7d, 2) if r_7d is not None else None,
            "vol_7d": _VOL_BY_REGIME[regimes[i]],
            "eth_price_now": round(float(eth[i]), 2),
            "eth_r_7d": round(eth_r_7d, 2) if eth_r_7d is not None else None,
            "eth_vol_7d": _VOL_BY_REGIME[regimes[i]] * 1.2,
        })

    rows.reverse()
    return rows


# ============================================================
# SCENARIOS
# ============================================================

def _bull() -> Scenario:
    rows = build_history([
        ("range", 4, 0.55, 0.60, 0.001),
        ("volatility", 4, 0.50, 0.45, -0.006),
        ("bull", 6, 0.62, 0.70, 0.012),
        ("range", 2, 0.52, 0.50, 0.0),
        ("bull", 14, 0.66, 0.87, 0.009),
    ], btc_start=78000, eth_start=2900)
    return Scenario(
        id="bull",
        label="🟢 Bull Market",
        rows=rows,
        regime=RegimeState(label="Bull Market", confidence=87, persistence=14),
        portfolio=PortfolioState(
            posture_label="Aligned",
            misalignment=0.08,
            allocations=[
                Allocation("BTC", 45, 50),
                Allocation("ETH", 25, 25),
                Allocation("ALTS", 20, 15),
                Allocation("STABLE", 10, 10),
            ],
        ),
        signals=[
            Signal("BTC", "BUY", 3, "Strong uptrend + low misalignment", "2h ago"),
            Signal("ETH", "HOLD", 2, "Regime aligned, moderate confidence", "2h ago"),
            Signal("SOL", "BUY", 2, "ALT season indicators positive", "1d ago"),
        ],
        metrics=MarketMetrics(fear_greed=68, fear_greed_label="Greed",
                              btc_dominance=52.3, alt_season=72,
                              total_volume_usd=98.4e9),
    )


def _bear() -> Scenario:
    rows = build_history([
        ("bull", 5, 0.70, 0.62, 0.004),
        ("volatility", 4, 0.55, 0.50, -0.012),
        ("bear", 21, 0.60, 0.72, -0.009),
    ], btc_start=96000, eth_start=3600)
    return Scenario(
        id="bear",
        label="🔴 Bear Market",
        rows=rows,
        regime=RegimeState(label="Bear Market", confidence=72, persistence=21),
        portfolio=PortfolioState(
            posture_label="Misaligned",
            misalignment=0.34,
            allocations=[
                Allocation("BTC", 35, 30),
                Allocation("ETH", 20, 15),
                Allocation("ALTS", 25, 10),
                Allocation("STABLE", 20, 45),
            ],
        ),
        signals=[
            Signal("BTC", "SELL", 3, "Prolonged downtrend + high volatility", "1h ago"),
            Signal("ETH", "SELL", 3, "Breaking key support, regime bearish", "1h ago"),
            Signal("SOL", "HOLD", 2, "Relative strength vs market, monitor", "yesterday"),
        ],
        metrics=MarketMetrics(fear_greed=22, fear_greed_label="Extreme Fear",
                              btc_dominance=58.7, alt_season=28,
                              total_volume_usd=61.2e9),
    )


def _sideways() -> Scenario:
    rows = build_history([
        ("bear", 10, 0.64, 0.58, -0.005),
        ("volatility", 4, 0.50, 0.47, 0.003),
        ("bull", 8, 0.60, 0.66, 0.006),
        ("range", 8, 0.60, 0.65, 0.0005),
    ], btc_start=84000, eth_start=3100)
    return Scenario(
        id="sideways",
        label="🟡 Sideways",
        rows=rows,
        regime=RegimeState(label="Sideways", confidence=65, persistence=8),
        portfolio=PortfolioState(
            posture_label="Aligned",
            misalignment=0.12,
            allocations=[
                Allocation("BTC", 40, 40),
                Allocation("ETH", 22, 20),
                Allocation("ALTS", 18, 15),
                Allocation("STABLE", 20, 25),
            ],
        ),
        signals=[
            Signal("BTC", "HOLD", 2, "Range-bound, waiting for breakout", "3h ago"),
            Signal("ETH", "HOLD", 1, "Consolidating near support", "3h ago"),
            Signal("SOL", "HOLD", 2, "Low conviction, no clear signal", "3h ago"),
        ],
        metrics=MarketMetrics(fear_greed=50, fear_greed_label="Neutral",
                              btc_dominance=54.1, alt_season=48,
                              total_volume_usd=72.9e9),
    )


SCENARIOS = {
    "bull": _bull,
    "bear": _bear,
    "sideways": _sideways,
}


def get_scenario(scenario_id: str = DEFAULT_SCENARIO) -> Scenario:
    """Unknown ids fall back to the default scenario."""
    builder = SCENARIOS.get(scenario_id)
    if builder is None:
        logger.warning(f"Unknown demo scenario '{scenario_id}', using '{DEFAULT_SCENARIO}'")
        builder = SCENARIOS[DEFAULT_SCENARIO]
    return builder()
