"""
Insight Engine v1.1 — rule table for portfolio insights.

Each template = (id, match, build). Templates are tried in list order and
the first `max_results` matches win; a template that raises is skipped.
Several templates can match the same context, earlier ones claim the slots.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

import settings as cfg
from feed_types import EntryInsightData, PortfolioState, RegimeState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InsightContext:
    regime: RegimeState
    portfolio: PortfolioState


@dataclass(frozen=True)
class InsightTemplate:
    id: str
    match: Callable[[InsightContext], bool]
    build: Callable[[InsightContext], EntryInsightData]


# ============================================================
# HELPERS
# ============================================================

def _regime_label(ctx: InsightContext) -> str:
    return ctx.regime.label.lower()


def _alt_weight(ctx: InsightContext) -> float:
    """Everything outside BTC/ETH, stablecoins included."""
    return sum(a.current for a in ctx.portfolio.allocations if a.asset not in cfg.CORE_ASSETS)


def _stable_weight(ctx: InsightContext) -> float:
    return sum(a.current for a in ctx.portfolio.allocations if a.asset in cfg.STABLE_ASSETS)


def _fmt_pct(value: float) -> str:
    return f"{value:g}"


def _deviates(ctx: InsightContext, asset: str, threshold: float) -> bool:
    alloc = ctx.portfolio.find(asset)
    return alloc is not None and abs(alloc.current - alloc.target) > threshold


# ============================================================
# TEMPLATES
# ============================================================

def _build_btc_alloc(ctx: InsightContext) -> EntryInsightData:
    btc = ctx.portfolio.find("BTC")
    side = "above" if btc.current > btc.target else "below"
    return EntryInsightData(
        icon="zap",
        icon_variant="accent",
        text=(f"Your BTC allocation is {_fmt_pct(btc.current)}%, {side} the "
              f"{_fmt_pct(btc.target)}% target for a {_regime_label(ctx)} environment."),
        link=True,
    )


def _build_eth_alloc(ctx: InsightContext) -> EntryInsightData:
    eth = ctx.portfolio.find("ETH")
    diff = eth.current - eth.target
    side = "above" if diff > 0 else "below"
    return EntryInsightData(
        icon="shield",
        icon_variant="eth",
        text=f"ETH is at {_fmt_pct(eth.current)}%, {abs(diff):.0f}% {side} target for this regime.",
    )


def _build_alt_concentration(ctx: InsightContext) -> EntryInsightData:
    return EntryInsightData(
        icon="activity",
        icon_variant="accent",
        text=(f"ALT concentration at {round(_alt_weight(ctx))}%. Higher altcoin exposure "
              f"typically amplifies volatility in a {_regime_label(ctx)} regime."),
        subtext="Consider whether this matches your risk tolerance.",
    )


def _build_posture_aligned(ctx: InsightContext) -> EntryInsightData:
    return EntryInsightData(
        icon="shield",
        icon_variant="positive",
        text=(f"Your portfolio is well-aligned with the current {_regime_label(ctx)} regime. "
              f"Allocations are within target bands."),
        subtext="No adjustments suggested by the current model.",
    )


def _build_posture_misaligned(ctx: InsightContext) -> EntryInsightData:
    pct = round(ctx.portfolio.misalignment * 100)
    return EntryInsightData(
        icon="activity",
        icon_variant="accent",
        text=(f"Portfolio misalignment is {pct}%. Your allocations diverge significantly "
              f"from {_regime_label(ctx)} targets."),
        subtext="This is analytical context, not a rebalancing signal.",
    )


def _build_persistence(ctx: InsightContext) -> EntryInsightData:
    return EntryInsightData(
        icon="trending",
        icon_variant="positive",
        text=(f"The {_regime_label(ctx)} regime has held for {ctx.regime.persistence} days, "
              f"a sustained trend with {ctx.regime.confidence}% confidence."),
        subtext="Longer regimes tend to be more reliable for allocation decisions.",
    )


def _build_low_confidence(ctx: InsightContext) -> EntryInsightData:
    return EntryInsightData(
        icon="activity",
        icon_variant="neutral",
        text=(f"Regime confidence is {ctx.regime.confidence}%. The model is uncertain "
              f"about current conditions."),
        subtext="Low confidence periods often precede regime transitions.",
    )


def _build_stable_heavy(ctx: InsightContext) -> EntryInsightData:
    suffix = ""
    if "bull" in _regime_label(ctx):
        suffix = " that may limit upside capture in a bull regime"
    return EntryInsightData(
        icon="shield",
        icon_variant="neutral",
        text=f"Stablecoin allocation is {round(_stable_weight(ctx))}%, a defensive position{suffix}.",
    )


def _build_btc_dominant(ctx: InsightContext) -> EntryInsightData:
    btc = ctx.portfolio.find("BTC")
    subtext = None
    if "bear" in _regime_label(ctx):
        subtext = "In bear regimes, high BTC concentration provides relative stability vs alts."
    return EntryInsightData(
        icon="zap",
        icon_variant="accent",
        text=(f"BTC is {_fmt_pct(btc.current)}% of your portfolio, a concentrated position "
              f"that tracks closely with overall market direction."),
        subtext=subtext,
    )


def _build_regime_fresh(ctx: InsightContext) -> EntryInsightData:
    return EntryInsightData(
        icon="trending",
        icon_variant="accent",
        text=(f"New regime detected: {ctx.regime.label} (day {ctx.regime.persistence}). "
              f"Early regime shifts can be noisy, confidence is at {ctx.regime.confidence}%."),
        subtext="The model typically needs 3-5 days to confirm a regime change.",
    )


TEMPLATES: List[InsightTemplate] = [
    InsightTemplate(
        id="btc-alloc",
        match=lambda ctx: _deviates(ctx, "BTC", cfg.INSIGHT_BTC_DEVIATION_PP),
        build=_build_btc_alloc,
    ),
    InsightTemplate(
        id="eth-alloc",
        match=lambda ctx: _deviates(ctx, "ETH", cfg.INSIGHT_ETH_DEVIATION_PP),
        build=_build_eth_alloc,
    ),
    InsightTemplate(
        id="alt-concentration",
        match=lambda ctx: _alt_weight(ctx) > cfg.INSIGHT_ALT_CONCENTRATION_PCT,
        build=_build_alt_concentration,
    ),
    InsightTemplate(
        id="posture-aligned",
        match=lambda ctx: (ctx.portfolio.misalignment < cfg.INSIGHT_ALIGNED_MISALIGNMENT_MAX
                           and len(ctx.portfolio.allocations) > 0),
        build=_build_posture_aligned,
    ),
    InsightTemplate(
        id="posture-misaligned",
        match=lambda ctx: ctx.portfolio.misalignment > cfg.INSIGHT_MISALIGNED_MIN,
        build=_build_posture_misaligned,
    ),
    InsightTemplate(
        id="regime-persistence",
        match=lambda ctx: ctx.regime.persistence >= cfg.INSIGHT_PERSISTENCE_LONG_DAYS,
        build=_build_persistence,
    ),
    InsightTemplate(
        id="low-confidence",
        match=lambda ctx: 0 < ctx.regime.confidence < cfg.INSIGHT_LOW_CONFIDENCE_PCT,
        build=_build_low_confidence,
    ),
    InsightTemplate(
        id="stable-heavy",
        match=lambda ctx: _stable_weight(ctx) > cfg.INSIGHT_STABLE_HEAVY_PCT,
        build=_build_stable_heavy,
    ),
    InsightTemplate(
        id="btc-dominant",
        match=lambda ctx: (ctx.portfolio.find("BTC") is not None
                           and ctx.portfolio.find("BTC").current > cfg.INSIGHT_BTC_DOMINANT_PCT),
        build=_build_btc_dominant,
    ),
    InsightTemplate(
        id="regime-fresh",
        match=lambda ctx: 0 < ctx.regime.persistence <= cfg.INSIGHT_FRESH_REGIME_MAX_DAYS,
        build=_build_regime_fresh,
    ),
]

ALLOCATION_TEMPLATES: List[InsightTemplate] = [
    t for t in TEMPLATES if t.id in ("btc-alloc", "eth-alloc")
]


# ============================================================
# ENGINE
# ============================================================

def generate_insights(
    regime: RegimeState,
    portfolio: PortfolioState,
    max_results: int = cfg.INSIGHT_MAX_DEFAULT,
    templates: Optional[Sequence[InsightTemplate]] = None,
) -> List[EntryInsightData]:
    """
    Up to `max_results` insights, in template priority order.
    """
    ctx = InsightContext(regime=regime, portfolio=portfolio)
    results = []

    for tpl in TEMPLATES if templates is None else templates:
        if len(results) >= max_results:
            break
        try:
            if tpl.match(ctx):
                results.append(tpl.build(ctx))
        except Exception as e:
            logger.warning(f"Insight template '{tpl.id}' skipped: {e}")

    return results
