"""
Regime Journal v1.2 — regime analytics + personal feed.

Usage:
  python main.py                       # Live run: fetch → analytics → feed → Telegram
  python main.py --dry-run             # Compute and print, no Telegram
  python main.py --demo=bear           # Use a demo scenario (bull | bear | sideways)
  python main.py --days=90             # History window to fetch
  python main.py --user=Alex           # Compose the feed for a signed-in user
  python main.py --user-id=<uuid>      # Load that user's exposure + signals
"""

import sys
import json
import logging
from pathlib import Path

import pandas as pd
from dotenv import load_dotenv

# Load .env before settings reads the environment
load_dotenv()

import settings as cfg
from data_pipeline import fetch_all_data, records_from_frame
from demo_data import explainer_for, get_scenario
from feed_composer import compose_feed
from feed_types import FeedSources
from regime_history import summarize_history
from telegram_bot import format_analytics, format_feed, send_telegram
from transitions import aggregate_transitions

# ── Logging ───────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("main")


def _flag_value(args, name, default=None):
    """Value of a `--name=value` flag, else default."""
    prefix = f"{name}="
    for a in args:
        if a.startswith(prefix):
            return a[len(prefix):]
    return default


def load_sources(args) -> tuple:
    """(records, FeedSources, quality) from a demo scenario or live data."""
    user_name = _flag_value(args, "--user")
    scenario_id = _flag_value(args, "--demo")

    if scenario_id is None and "--demo" in args:
        scenario_id = "bull"

    if scenario_id is not None:
        scenario = get_scenario(scenario_id)
        logger.info(f"Demo scenario: {scenario.label}")
        records = records_from_frame(pd.DataFrame(scenario.rows))
        quality = {"completeness": 1.0, "sources_available": 0, "sources_total": 0}
        return records, scenario.feed_sources(user_name), quality

    try:
        days = int(_flag_value(args, "--days", cfg.HISTORY_DEFAULT_DAYS))
    except ValueError:
        logger.warning("Invalid --days, using default")
        days = cfg.HISTORY_DEFAULT_DAYS

    data = fetch_all_data(days=days, user_id=_flag_value(args, "--user-id"))
    regime = data["regime"]
    sources = FeedSources(
        regime=regime,
        metrics=data["metrics"],
        portfolio=data["portfolio"],
        signals=data["signals"],
        user_name=user_name,
        regime_explainer=explainer_for(regime.label) if regime else None,
        **data["prices"],
    )
    return data["records"], sources, data["quality"]


def main():
    args = set(sys.argv[1:])
    dry_run = "--dry-run" in args

    logger.info("=" * 50)
    logger.info("REGIME JOURNAL v1.2")
    logger.info("=" * 50)

    # ── 1. Load sources ───────────────────────────────────
    records, sources, quality = load_sources(args)

    # ── 2. Regime analytics ───────────────────────────────
    aggregates = {}
    transitions = []
    try:
        # Windows longer than the fetched history would repeat the longest one
        windows = [w for w in cfg.HISTORY_WINDOWS if w <= len(records)] or cfg.HISTORY_WINDOWS[:1]
        for window in windows:
            aggregates[window] = summarize_history(records[:window])
        transitions = aggregate_transitions(records)
    except Exception as e:
        logger.error(f"Regime analytics failed: {e}")

    # ── 3. Compose feed ───────────────────────────────────
    feed = compose_feed(sources)

    # ── 4. Print output ───────────────────────────────────
    text = format_feed(feed)
    if aggregates:
        longest = aggregates[max(aggregates)]
        text += "\n\n" + format_analytics(longest, transitions)
    print("\n" + text)

    # Save full JSON output for debugging
    output_file = Path(cfg.FEED_OUTPUT_FILE)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    output = {
        "feed": feed.to_dict(),
        "analytics": {f"{w}d": agg.to_dict() for w, agg in aggregates.items()},
        "transitions": [
            {"from": t.from_regime, "to": t.to_regime, "count": t.count, "last_seen": t.last_seen}
            for t in transitions
        ],
        "quality": quality,
    }

    with open(output_file, "w", encoding="utf-8") as f:
        json.dump(output, f, indent=2, default=str, ensure_ascii=False)
    logger.info(f"Full output saved to {output_file}")

    # ── 5. Send Telegram ──────────────────────────────────
    if dry_run:
        logger.info("Dry run — skipping Telegram")
    else:
        send_telegram(text)

    # ── 6. Summary ────────────────────────────────────────
    logger.info("-" * 50)
    if sources.regime:
        logger.info(f"REGIME: {sources.regime.label} | Conf: {sources.regime.confidence}% | "
                    f"Day {sources.regime.persistence}")
    else:
        logger.warning("REGIME: no data")
    logger.info(f"FEED: {len(feed.entries)} entries | "
                f"Transitions: {len(transitions)} | "
                f"Data: {quality['completeness']:.0%}")
    logger.info("Done.")


if __name__ == "__main__":
    main()
