"""
Regime History — run compression + period aggregation.

Pipeline:
  rows (newest-first) → runs (chronological) → breakdowns → period aggregate

Ordering contract:
  - every `newest_first` argument is ordered newest → oldest (API order)
  - compress_to_runs() returns runs oldest → newest
  - Run.confidences / Run.prices keep the newest-first order of the input
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Sequence

import numpy as np

import settings as cfg
from regime_config import RegimeConfig, get_regime_config

logger = logging.getLogger(__name__)


# ============================================================
# RECORDS
# ============================================================

def _to_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    """Coerce a raw cell to float; None/NaN/garbage → default."""
    if value is None or isinstance(value, bool):
        return default
    try:
        f = float(value)
    except (TypeError, ValueError):
        return default
    if np.isnan(f) or np.isinf(f):
        return default
    return f


def _to_label(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and np.isnan(value):
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class RegimeRecord:
    """One upstream regime classification row."""
    timestamp: str                  # ISO-8601
    regime: str
    confidence: float               # 0-1
    price_now: Optional[float] = None
    previous_regime: Optional[str] = None
    regime_changed: bool = False
    r_1d: Optional[float] = None
    r_7d: Optional[float] = None
    vol_7d: Optional[float] = None
    eth_price_now: Optional[float] = None
    eth_r_7d: Optional[float] = None
    eth_vol_7d: Optional[float] = None

    @classmethod
    def from_row(cls, row: dict) -> "RegimeRecord":
        """
        Build from a raw `market_regimes` row.
        Missing or malformed fields are treated as absent; confidence is
        clamped to [0, 1].
        """
        conf = _to_float(row.get("confidence"), 0.0)
        changed = row.get("regime_changed", False)

        return cls(
            timestamp=str(row.get("timestamp") or ""),
            regime=_to_label(row.get("regime")) or "",
            confidence=float(np.clip(conf, 0.0, 1.0)),
            price_now=_to_float(row.get("price_now")),
            previous_regime=_to_label(row.get("previous_regime")),
            regime_changed=changed is True or str(changed).lower() == "true",
            r_1d=_to_float(row.get("r_1d")),
            r_7d=_to_float(row.get("r_7d")),
            vol_7d=_to_float(row.get("vol_7d")),
            eth_price_now=_to_float(row.get("eth_price_now")),
            eth_r_7d=_to_float(row.get("eth_r_7d")),
            eth_vol_7d=_to_float(row.get("eth_vol_7d")),
        )


# ============================================================
# DERIVED TYPES
# ============================================================

class Trajectory(Enum):
    """Confidence direction within a regime."""
    UP = "↑"        # strengthening
    DOWN = "↓"      # weakening
    STABLE = "→"


@dataclass
class Run:
    """Maximal span of consecutive same-regime days."""
    regime: str
    days: int
    start_date: str
    end_date: str
    confidences: List[float] = field(default_factory=list)
    prices: List[Optional[float]] = field(default_factory=list)


@dataclass
class RegimeBreakdown:
    """Per-regime totals across a period."""
    regime: str
    total_days: int
    instances: int
    confidences: List[float]
    average_confidence: int     # percent
    percent_of_period: int
    trajectory: Trajectory

    @property
    def config(self) -> RegimeConfig:
        return get_regime_config(self.regime)


@dataclass
class PeriodAggregate:
    """Summary of a regime history window."""
    total_days: int
    transition_count: int
    average_confidence_percent: int
    breakdowns: List[RegimeBreakdown]
    dominant: Optional[RegimeBreakdown]
    btc_change_percent: Optional[float]

    def to_dict(self) -> dict:
        def bd(b: RegimeBreakdown) -> dict:
            return {
                "regime": b.regime,
                "label": b.config.label,
                "icon": b.config.icon,
                "total_days": b.total_days,
                "instances": b.instances,
                "average_confidence": b.average_confidence,
                "percent_of_period": b.percent_of_period,
                "trajectory": b.trajectory.value,
            }

        return {
            "total_days": self.total_days,
            "transition_count": self.transition_count,
            "average_confidence_percent": self.average_confidence_percent,
            "breakdowns": [bd(b) for b in self.breakdowns],
            "dominant": bd(self.dominant) if self.dominant else None,
            "btc_change_percent": self.btc_change_percent,
        }


def _round_half_up(x: float) -> int:
    return int(np.floor(x + 0.5))


# ============================================================
# RUN COMPRESSION
# ============================================================

def compress_to_runs(newest_first: Sequence[RegimeRecord]) -> List[Run]:
    """
    Collapse newest-first rows into runs of consecutive same-regime days.
    Returns runs in chronological order (oldest first).
    """
    if not newest_first:
        return []

    first = newest_first[0]
    runs = []
    cur = Run(
        regime=first.regime,
        days=1,
        start_date=first.timestamp,
        end_date=first.timestamp,
        confidences=[first.confidence],
        prices=[first.price_now],
    )

    for r in newest_first[1:]:
        if r.regime == cur.regime:
            cur.days += 1
            cur.start_date = r.timestamp    # walking backwards in time
            cur.confidences.append(r.confidence)
            cur.prices.append(r.price_now)
        else:
            runs.append(cur)
            cur = Run(
                regime=r.regime,
                days=1,
                start_date=r.timestamp,
                end_date=r.timestamp,
                confidences=[r.confidence],
                prices=[r.price_now],
            )
    runs.append(cur)

    runs.reverse()
    return runs


def compute_persistence(newest_first: Sequence[RegimeRecord]) -> int:
    """Consecutive most-recent days in the current regime."""
    if not newest_first:
        return 0
    current = newest_first[0].regime
    count = 0
    for r in newest_first:
        if r.regime != current:
            break
        count += 1
    return count


# ============================================================
# CONFIDENCE TRAJECTORY
# ============================================================

def confidence_trajectory(newest_first: Sequence[float]) -> Trajectory:
    """
    Compare the mean of the two end-thirds of a confidence sequence.
    Fewer than 3 points → STABLE. Threshold ±0.03.
    """
    if len(newest_first) < cfg.TRAJECTORY_MIN_POINTS:
        return Trajectory.STABLE

    chrono = np.asarray(newest_first, dtype=float)[::-1]
    t = int(np.ceil(len(chrono) / cfg.TRAJECTORY_SPLIT))

    head = float(np.mean(chrono[:t]))
    tail = float(np.mean(chrono[-t:]))
    delta = head - tail

    if delta > cfg.TRAJECTORY_THRESHOLD:
        return Trajectory.UP
    if delta < -cfg.TRAJECTORY_THRESHOLD:
        return Trajectory.DOWN
    return Trajectory.STABLE


# ============================================================
# AGGREGATION
# ============================================================

def build_aggregate(runs: Sequence[Run],
                    newest_first: Sequence[RegimeRecord]) -> PeriodAggregate:
    """Period summary from runs + the raw rows they came from."""
    td = len(newest_first)
    tc = max(0, len(runs) - 1)

    # Group by lowercase label, keep the first casing seen
    by = {}
    for run in runs:
        k = run.regime.lower()
        if k not in by:
            by[k] = {"regime": run.regime, "total_days": 0, "instances": 0, "confidences": []}
        by[k]["total_days"] += run.days
        by[k]["instances"] += 1
        by[k]["confidences"].extend(run.confidences)

    breakdowns = []
    for b in by.values():
        confs = b["confidences"]
        breakdowns.append(RegimeBreakdown(
            regime=b["regime"],
            total_days=b["total_days"],
            instances=b["instances"],
            confidences=confs,
            average_confidence=_round_half_up(np.mean(confs) * 100) if confs else 0,
            percent_of_period=_round_half_up(b["total_days"] / td * 100) if td else 0,
            trajectory=confidence_trajectory(confs),
        ))
    breakdowns.sort(key=lambda b: b.total_days, reverse=True)

    if td:
        ac = _round_half_up(np.mean([r.confidence for r in newest_first]) * 100)
    else:
        ac = 0

    prices = [r.price_now for r in newest_first if r.price_now is not None and r.price_now > 0]
    if len(prices) >= 2:
        btc_change = (prices[0] - prices[-1]) / prices[-1] * 100
    else:
        btc_change = None

    agg = PeriodAggregate(
        total_days=td,
        transition_count=tc,
        average_confidence_percent=ac,
        breakdowns=breakdowns,
        dominant=breakdowns[0] if breakdowns else None,
        btc_change_percent=btc_change,
    )
    logger.debug(f"Aggregate: {td}d, {tc} transitions, "
                 f"dominant={agg.dominant.regime if agg.dominant else None}")
    return agg


def summarize_history(newest_first: Sequence[RegimeRecord]) -> PeriodAggregate:
    """compress_to_runs → build_aggregate in one call."""
    return build_aggregate(compress_to_runs(newest_first), newest_first)
