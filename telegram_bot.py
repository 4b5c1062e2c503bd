"""
Telegram Bot — plain-text rendering of the feed + regime analytics.
One message per run.
"""

import os
import logging
from typing import List

import requests

import settings as cfg
from feed_types import ComposedFeed, FeedEntryType
from regime_config import get_regime_config
from regime_history import PeriodAggregate
from transitions import Transition

logger = logging.getLogger(__name__)

_SEVERITY_EMOJI = {"info": "⚪", "watch": "🟡", "action": "🔴"}


# ============================================================
# FORMAT FEED
# ============================================================

def format_feed(feed: ComposedFeed) -> str:
    """One line group per entry, in feed order."""
    lines = []

    for entry in feed.entries:
        d = entry.data
        t = entry.type

        if t == FeedEntryType.GREETING:
            lines.append(f"👋 Hey {d.name}")
            lines.append("")

        elif t == FeedEntryType.REGIME:
            rc = get_regime_config(d.regime)
            lines.append(f"{rc.icon} {d.regime} · Confidence: {round(d.confidence * 100)}%")
            lines.append(f"   {d.narrative}")

        elif t == FeedEntryType.PRICE_PAIR:
            lines.append(f"BTC ${d.btc_price:,.0f} ({d.btc_change:+.2f}%) · "
                         f"ETH ${d.eth_price:,.0f} ({d.eth_change:+.2f}%)")

        elif t == FeedEntryType.POSTURE:
            lines.append("")
            lines.append(f"Posture: {d.label} ({d.score}/100)")
            lines.append(f"   {d.narrative}")

        elif t == FeedEntryType.INSIGHT:
            lines.append(f"💡 {d.text}")
            if d.subtext:
                lines.append(f"   {d.subtext}")

        elif t == FeedEntryType.DIVIDER:
            lines.append("")
            lines.append(f"── {d.label} ──")

        elif t == FeedEntryType.MARKET_SNIPPET:
            change = f" ({d.change})" if d.change is not None else ""
            lines.append(f"   {d.label}: {d.value}{change}")

        elif t == FeedEntryType.SIGNAL:
            emoji = _SEVERITY_EMOJI.get(d.severity, "⚪")
            lines.append(f"{emoji} {d.title}")
            lines.append(f"   {d.text} · {d.time}")

        elif t == FeedEntryType.LEARN:
            lines.append("")
            topic = f" · {d.topic}" if d.topic else ""
            lines.append(f"📖 Learn{topic}")
            lines.append(f"   {d.text}")

        elif t == FeedEntryType.ANON_CTA:
            lines.append("")
            lines.append(f"→ {d.title}")
            lines.append(f"   {d.text}")

    if feed.show_empty_portfolio_cta:
        lines.append("")
        lines.append("→ Connect a portfolio to see posture and allocation insights.")

    return "\n".join(lines)


# ============================================================
# FORMAT ANALYTICS
# ============================================================

def format_analytics(aggregate: PeriodAggregate, transitions: List[Transition]) -> str:
    """Period breakdown + most frequent transitions."""
    lines = []
    lines.append(f"Regime history · {aggregate.total_days}d")

    if aggregate.total_days == 0:
        lines.append("   No data")
        return "\n".join(lines)

    btc = aggregate.btc_change_percent
    btc_txt = f" · BTC {btc:+.1f}%" if btc is not None else ""
    lines.append(f"   {aggregate.transition_count} transitions · "
                 f"avg conf {aggregate.average_confidence_percent}%{btc_txt}")

    def make_bar(pct, width=12):
        filled = int(pct / 100 * width)
        return "█" * filled + "░" * (width - filled)

    for b in aggregate.breakdowns:
        rc = b.config
        lines.append(f"   {rc.icon} {rc.label:<9} {make_bar(b.percent_of_period)} "
                     f"{b.percent_of_period}% · {b.total_days}d ×{b.instances} · "
                     f"{b.average_confidence}% {b.trajectory.value}")

    if transitions:
        lines.append("")
        lines.append("Transitions:")
        for tr in transitions:
            lines.append(f"   {get_regime_config(tr.from_regime).label} → "
                         f"{get_regime_config(tr.to_regime).label} ×{tr.count} "
                         f"(last {tr.last_seen[:10]})")

    return "\n".join(lines)


# ============================================================
# SEND
# ============================================================

def send_telegram(text: str) -> bool:
    token = os.getenv("TELEGRAM_BOT_TOKEN")
    chat_id = os.getenv("TELEGRAM_CHAT_ID")

    if not token or not chat_id:
        logger.warning("Telegram credentials not set.")
        return False

    if len(text) > cfg.TELEGRAM_MAX_LEN:
        text = text[:cfg.TELEGRAM_MAX_LEN - 6] + "\n..."

    url = f"https://api.telegram.org/bot{token}/sendMessage"
    payload = {
        "chat_id": chat_id,
        "text": text,
        "disable_web_page_preview": True,
    }

    try:
        resp = requests.post(url, json=payload, timeout=cfg.HTTP_TIMEOUT)
        if resp.status_code == 200:
            logger.info("✓ Telegram sent")
            return True
        else:
            logger.error(f"Telegram error: {resp.status_code}")
            return False
    except Exception as e:
        logger.error(f"Telegram failed: {e}")
        return False
