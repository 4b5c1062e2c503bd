"""
Feed Composer v1.3 — multi-source assembler.

  regime + prices + portfolio + metrics + signals + learn → FeedEntry[]

Section order is fixed:
  greeting → regime → price pair → posture / CTA → insights → divider
  → market snippets → signals (grouped by day) → learn

Anonymous users (no user_name) get market entries only.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import settings as cfg
from feed_types import (
    ComposedFeed, EntryAnonCtaData, EntryDividerData, EntryGreetingData,
    EntryLearnData, EntryMarketSnippetData, EntryPostureData,
    EntryPricePairData, EntryRegimeData, EntrySignalData, FeedEntry,
    FeedEntryType, FeedSources, LearnItem, MarketMetrics, PortfolioState,
    RegimeState, Signal,
)
from insight_engine import ALLOCATION_TEMPLATES, generate_insights

logger = logging.getLogger(__name__)


# ============================================================
# NARRATIVES
# ============================================================

def regime_narrative(regime: RegimeState) -> str:
    parts = []
    if regime.persistence > 0:
        parts.append(f"Day {regime.persistence} of {regime.label.lower()} conditions.")
    if regime.confidence >= cfg.FEED_CONFIDENCE_HIGH:
        parts.append("Signal strength is high.")
    elif regime.confidence >= cfg.FEED_CONFIDENCE_MODERATE:
        parts.append("Signal strength is moderate.")
    else:
        parts.append("Signal is weak, conditions may shift.")
    return " ".join(parts)


def posture_score(portfolio: PortfolioState) -> int:
    return round((1 - portfolio.misalignment) * 100)


def posture_band(score: int) -> str:
    if score >= cfg.POSTURE_ALIGNED_MIN:
        return "Aligned"
    if score >= cfg.POSTURE_MODERATE_MIN:
        return "Moderate"
    return "Misaligned"


def _fmt_pct(value: float) -> str:
    return f"{value:g}"


def _posture_entry(portfolio: PortfolioState) -> EntryPostureData:
    score = posture_score(portfolio)
    narrative = f"Your portfolio posture score is {score}."

    top = max(portfolio.allocations, key=lambda a: a.current)
    narrative += (f" {top.asset} is at {_fmt_pct(top.current)}% "
                  f"(target: {_fmt_pct(top.target)}%).")

    label = portfolio.posture_label
    if not label or label in ("Unknown", "No Data"):
        label = posture_band(score)

    return EntryPostureData(score=score, label=label, narrative=narrative)


# ============================================================
# MARKET SNIPPETS
# ============================================================

def format_usd_compact(value: float) -> str:
    for threshold, suffix in [(1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K")]:
        if abs(value) >= threshold:
            return f"${value / threshold:.1f}{suffix}"
    return f"${value:,.0f}"


def _market_snippets(m: MarketMetrics) -> List[EntryMarketSnippetData]:
    snippets = []

    if m.fear_greed is not None:
        value = str(m.fear_greed)
        if m.fear_greed_label:
            value = f"{m.fear_greed} · {m.fear_greed_label}"
        snippets.append(EntryMarketSnippetData(
            label="Fear & Greed",
            value=value,
            change=str(m.fear_greed - cfg.FEAR_GREED_NEUTRAL),
            positive=m.fear_greed >= cfg.FEAR_GREED_NEUTRAL,
        ))

    if m.btc_dominance is not None:
        snippets.append(EntryMarketSnippetData(
            label="BTC Dominance",
            value=f"{m.btc_dominance:.1f}%",
        ))

    if m.alt_season is not None:
        snippets.append(EntryMarketSnippetData(
            label="Alt Season",
            value=f"{m.alt_season}/100",
        ))

    if m.total_volume_usd is not None and m.total_volume_usd > 0:
        snippets.append(EntryMarketSnippetData(
            label="24h Volume",
            value=format_usd_compact(m.total_volume_usd),
        ))

    return snippets


# ============================================================
# SIGNAL GROUPING
# ============================================================

_RELATIVE_RE = re.compile(
    r"^(\d+)\s*(s|sec|secs|seconds?|m|min|mins|minutes?|h|hr|hrs|hours?|d|days?|w|wk|weeks?|mo|months?)\s+ago$"
)

_UNIT_DELTA = {
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
    "mo": timedelta(days=30),
}


def _unit_key(unit: str) -> str:
    if unit.startswith("mo"):
        return "mo"
    if unit.startswith("mi") or unit == "m":
        return "m"
    if unit.startswith("s"):
        return "s"
    if unit.startswith("h"):
        return "h"
    if unit.startswith("d"):
        return "d"
    return "w"


def _parse_signal_time(text: str, now: datetime) -> Optional[datetime]:
    """Resolve free text or ISO-8601 to an absolute time; None if unknown."""
    t = text.strip().lower()

    if t in ("just now", "now", "today"):
        return now
    if t.startswith("today"):
        return now
    if t.startswith("yesterday"):
        return now - timedelta(days=1)

    m = _RELATIVE_RE.match(t)
    if m:
        # Counts beyond the datetime range are treated as unknown
        try:
            return now - int(m.group(1)) * _UNIT_DELTA[_unit_key(m.group(2))]
        except (OverflowError, ValueError):
            return None

    try:
        ts = datetime.fromisoformat(text.strip().replace("Z", "+00:00"))
        if ts.tzinfo is None:
            return ts.replace(tzinfo=now.tzinfo)
        return ts.astimezone(now.tzinfo) if now.tzinfo else ts.replace(tzinfo=None)
    except (OverflowError, ValueError):
        return None


def signal_bucket(text: str, now: datetime) -> str:
    """today | yesterday | older (unparseable text counts as older)."""
    ts = _parse_signal_time(text or "", now)
    if ts is None:
        return "older"
    days = (now.date() - ts.date()).days
    if days <= 0:
        return "today"
    if days == 1:
        return "yesterday"
    return "older"


def _signal_entry(sig: Signal) -> EntrySignalData:
    return EntrySignalData(
        severity=cfg.SIGNAL_SEVERITY.get(sig.severity, "info"),
        title=sig.reason,
        text=f"{sig.action} · {sig.asset}",
        time=sig.time,
    )


def _newest_first(signals: List[Signal], now: datetime) -> List[Signal]:
    """Stable sort by resolved time, newest first; unknown times go last."""
    timed = [(_parse_signal_time(s.time or "", now), s) for s in signals]
    timed.sort(key=lambda p: (p[0] is not None, p[0] or now), reverse=True)
    return [s for _, s in timed]


def _signal_entries(signals: List[Signal], now: datetime) -> List[FeedEntry]:
    entries = []
    prev_bucket = None

    for sig in _newest_first(signals, now)[:cfg.FEED_MAX_SIGNALS]:
        bucket = signal_bucket(sig.time, now)
        if prev_bucket is not None and bucket != prev_bucket:
            entries.append(FeedEntry(
                FeedEntryType.DIVIDER,
                EntryDividerData(label=cfg.SIGNAL_BUCKET_LABELS[bucket]),
            ))
        entries.append(FeedEntry(FeedEntryType.SIGNAL, _signal_entry(sig)))
        prev_bucket = bucket

    return entries


# ============================================================
# LEARN
# ============================================================

def _learn_entry(item: LearnItem, regime: Optional[RegimeState]) -> EntryLearnData:
    topic = item.topic
    if not topic:
        topic = regime.label.lower() if regime and regime.label else "market regimes"
    return EntryLearnData(text=item.summary, topic=topic, slug=item.slug)


def _learn_entries(sources: FeedSources) -> List[EntryLearnData]:
    items = [i for i in sources.learn_items if i and i.summary]
    if len(items) > 1:
        return [_learn_entry(i, sources.regime) for i in items[:cfg.FEED_MAX_LEARN]]

    explainer = sources.regime_explainer or (items[0] if items else None)
    if explainer and explainer.summary:
        return [_learn_entry(explainer, sources.regime)]
    return []


# ============================================================
# COMPOSER
# ============================================================

def compose_feed(sources: FeedSources) -> ComposedFeed:
    """
    Build the ordered feed. Missing sources skip their section.
    Signals may arrive in any order; the 5 most recent by resolved time are kept.
    """
    entries = []
    show_empty_cta = False
    is_authed = bool(sources.user_name)
    now = sources.now or datetime.now(timezone.utc)
    portfolio = sources.portfolio
    has_holdings = portfolio is not None and portfolio.has_holdings

    # ── 1. Greeting ──────────────────────────────────────────
    entries.append(FeedEntry(
        FeedEntryType.GREETING,
        EntryGreetingData(name=sources.user_name or cfg.FEED_DEFAULT_NAME),
    ))

    # ── 2. Regime ────────────────────────────────────────────
    if sources.regime:
        r = sources.regime
        entries.append(FeedEntry(FeedEntryType.REGIME, EntryRegimeData(
            regime=r.label,
            confidence=r.confidence / 100,
            persistence=r.persistence,
            narrative=regime_narrative(r),
        )))

    # ── 3. Price pair ────────────────────────────────────────
    if sources.btc_price is not None and sources.eth_price is not None:
        entries.append(FeedEntry(FeedEntryType.PRICE_PAIR, EntryPricePairData(
            btc_price=sources.btc_price,
            btc_change=sources.btc_change or 0.0,
            eth_price=sources.eth_price,
            eth_change=sources.eth_change or 0.0,
        )))

    # ── 4. Posture / CTA ─────────────────────────────────────
    if is_authed and has_holdings:
        entries.append(FeedEntry(FeedEntryType.POSTURE, _posture_entry(portfolio)))
    elif is_authed:
        show_empty_cta = True
    else:
        entries.append(FeedEntry(FeedEntryType.ANON_CTA, EntryAnonCtaData(**cfg.FEED_ANON_CTA)))

    # ── 5. Allocation insights ───────────────────────────────
    if is_authed and has_holdings and sources.regime:
        for insight in generate_insights(
            sources.regime, portfolio,
            max_results=cfg.FEED_MAX_ALLOCATION_INSIGHTS,
            templates=ALLOCATION_TEMPLATES,
        ):
            entries.append(FeedEntry(FeedEntryType.INSIGHT, insight))

    # ── 6. Divider ───────────────────────────────────────────
    entries.append(FeedEntry(
        FeedEntryType.DIVIDER,
        EntryDividerData(label=cfg.FEED_MARKET_DIVIDER),
    ))

    # ── 7. Market snippets ───────────────────────────────────
    if sources.metrics:
        for snippet in _market_snippets(sources.metrics):
            entries.append(FeedEntry(FeedEntryType.MARKET_SNIPPET, snippet))

    # ── 8. Signals ───────────────────────────────────────────
    if is_authed and sources.signals:
        entries.extend(_signal_entries(sources.signals, now))

    # ── 9. Learn ─────────────────────────────────────────────
    for learn in _learn_entries(sources):
        entries.append(FeedEntry(FeedEntryType.LEARN, learn))

    logger.debug(f"Feed composed: {len(entries)} entries, authed={is_authed}, "
                 f"empty_cta={show_empty_cta}")
    return ComposedFeed(entries=entries, show_empty_portfolio_cta=show_empty_cta)
