"""
Data Pipeline — fetches feed/analytics inputs and maps them to core types.

Sources:
  Regime history, exposure, signals:
    Supabase REST (PostgREST) — needs SUPABASE_URL + SUPABASE_KEY
  Market data:
    CoinGecko: BTC dominance, 24h volume
  Sentiment:
    alternative.me: Fear & Greed Index

Every fetcher degrades gracefully: failures are logged and return an empty
frame / None, never raise.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

import numpy as np
import pandas as pd
import requests

import settings as cfg
from feed_types import (
    Allocation, MarketMetrics, PortfolioState, RegimeState, Signal,
)
from regime_history import RegimeRecord, compute_persistence

logger = logging.getLogger(__name__)


# ============================================================
# SUPABASE REST
# ============================================================

def _supabase_get(table: str, params: dict) -> Optional[list]:
    """GET /rest/v1/<table>. Returns rows or None on any failure."""
    if not cfg.SUPABASE_URL or not cfg.SUPABASE_KEY:
        logger.warning("Supabase credentials not set.")
        return None

    url = f"{cfg.SUPABASE_URL.rstrip('/')}/rest/v1/{table}"
    headers = {
        "apikey": cfg.SUPABASE_KEY,
        "Authorization": f"Bearer {cfg.SUPABASE_KEY}",
    }

    try:
        resp = requests.get(url, params=params, headers=headers, timeout=cfg.HTTP_TIMEOUT)
        resp.raise_for_status()
        return resp.json()
    except Exception as e:
        logger.error(f"Supabase {table} failed: {e}")
        return None


def fetch_regime_history(days: int = cfg.HISTORY_DEFAULT_DAYS) -> pd.DataFrame:
    """Regime rows, newest first."""
    rows = _supabase_get(cfg.REGIME_TABLE, {
        "select": ",".join(cfg.REGIME_COLUMNS),
        "order": "timestamp.desc",
        "limit": days,
    })
    if not rows:
        return pd.DataFrame(columns=cfg.REGIME_COLUMNS)
    return pd.DataFrame(rows)


def fetch_latest_exposure(user_id: str) -> Optional[dict]:
    rows = _supabase_get(cfg.EXPOSURE_TABLE, {
        "select": "*",
        "user_id": f"eq.{user_id}",
        "limit": 1,
    })
    return rows[0] if rows else None


def fetch_active_signals(user_id: str, limit: int = cfg.FEED_MAX_SIGNALS) -> List[dict]:
    rows = _supabase_get(cfg.SIGNALS_TABLE, {
        "select": "*",
        "user_id": f"eq.{user_id}",
        "order": "timestamp.desc",
        "limit": limit,
    })
    return rows or []


# ============================================================
# COINGECKO + FEAR & GREED (no auth)
# ============================================================

CG_BASE = "https://api.coingecko.com/api/v3"


def fetch_coingecko_global() -> dict:
    """Fetch global market data: BTC dominance, 24h volume."""
    url = f"{CG_BASE}/global"

    try:
        resp = requests.get(url, timeout=cfg.HTTP_TIMEOUT)
        resp.raise_for_status()
        data = resp.json()["data"]

        return {
            "btc_dominance": data.get("market_cap_percentage", {}).get("btc"),
            "total_volume_usd": data.get("total_volume", {}).get("usd"),
        }
    except Exception as e:
        logger.warning(f"CoinGecko global failed: {e}")
        return {"btc_dominance": None, "total_volume_usd": None}


def fetch_fear_greed(limit: int = 1) -> pd.DataFrame:
    """Fetch Crypto Fear & Greed Index (newest first)."""
    url = "https://api.alternative.me/fng/"
    params = {"limit": limit, "format": "json"}

    try:
        resp = requests.get(url, params=params, timeout=cfg.HTTP_TIMEOUT)
        resp.raise_for_status()
        data = resp.json()["data"]

        df = pd.DataFrame(data)
        df["date"] = pd.to_datetime(df["timestamp"].astype(int), unit="s").dt.date
        df["value"] = df["value"].astype(int)
        return df[["date", "value", "value_classification"]].rename(
            columns={"value": "fear_greed", "value_classification": "label"})
    except Exception as e:
        logger.warning(f"Fear & Greed failed: {e}")
        return pd.DataFrame(columns=["date", "fear_greed", "label"])


# ============================================================
# MAPPERS
# ============================================================

def records_from_frame(df: pd.DataFrame) -> List[RegimeRecord]:
    """
    Normalize a regime frame into newest-first RegimeRecords.
    Rows without a timestamp or regime are dropped.
    """
    if df is None or df.empty:
        return []

    frame = df.copy()
    for col in cfg.REGIME_COLUMNS:
        if col not in frame.columns:
            frame[col] = None

    frame = frame[frame["timestamp"].notna() & frame["regime"].notna()].copy()
    frame["_ts"] = pd.to_datetime(frame["timestamp"], utc=True, errors="coerce", format="ISO8601")
    frame = frame[frame["_ts"].notna()].sort_values("_ts", ascending=False, kind="stable")

    frame = frame.astype(object).where(frame.notna(), None)
    return [RegimeRecord.from_row(row) for row in frame[cfg.REGIME_COLUMNS].to_dict("records")]


def regime_display_label(raw: Optional[str]) -> str:
    if not raw:
        return "Unknown"
    return cfg.REGIME_ROW_LABELS.get(raw.lower(), raw)


def map_regime(record: RegimeRecord, persistence: int) -> RegimeState:
    return RegimeState(
        label=regime_display_label(record.regime),
        confidence=int(round(record.confidence * 100)),
        persistence=persistence,
    )


def map_exposure(row: dict) -> PortfolioState:
    """Exposure row (weights 0-1) → PortfolioState with fixed targets."""
    def weight(key):
        v = row.get(key)
        return int(round((v or 0) * 100))

    btc_w = weight("btc_weight_all")
    eth_w = weight("eth_weight_all")
    alt_w = weight("alt_weight_all")
    stable_w = max(0, 100 - btc_w - eth_w - alt_w)

    misalignment = float(np.clip(row.get("misalignment_score") or 0.0, 0.0, 1.0))

    return PortfolioState(
        posture_label=cfg.POSTURE_LABELS.get(row.get("misalignment_label") or "", "Unknown"),
        misalignment=misalignment,
        allocations=[
            Allocation("BTC", btc_w, cfg.ALLOCATION_TARGETS["BTC"]),
            Allocation("ETH", eth_w, cfg.ALLOCATION_TARGETS["ETH"]),
            Allocation("ALTS", alt_w, cfg.ALLOCATION_TARGETS["ALTS"]),
            Allocation("STABLE", stable_w, cfg.ALLOCATION_TARGETS["STABLE"]),
        ],
    )


def empty_exposure() -> PortfolioState:
    """Fallback when no exposure data exists yet."""
    return PortfolioState(
        posture_label="No Data",
        misalignment=0.0,
        allocations=[Allocation(asset, 0, target) for asset, target in cfg.ALLOCATION_TARGETS.items()],
    )


def time_ago(timestamp: str, now: datetime) -> str:
    ts = pd.to_datetime(timestamp, utc=True, errors="coerce")
    if pd.isna(ts):
        return "unknown"
    hours = int((now - ts.to_pydatetime()).total_seconds() // 3600)
    days = hours // 24
    if days > 0:
        return f"{days}d ago"
    if hours > 0:
        return f"{hours}h ago"
    return "just now"


def _signal_action(row: dict) -> str:
    if row.get("severity") == "actionable" and row.get("posture_mismatch"):
        return "SELL"
    if row.get("severity") == "actionable":
        return "BUY"
    return "HOLD"


def _severity_band(score: Optional[float]) -> int:
    """severity_score 0-1 → band 1-3."""
    s = 0.5 if score is None else float(score)
    if s >= 0.7:
        return 3
    if s >= 0.4:
        return 2
    return 1


def map_signals(rows: List[dict], now: Optional[datetime] = None) -> List[Signal]:
    now = now or datetime.now(timezone.utc)
    signals = []
    for row in rows:
        if row.get("from_regime"):
            asset = f"{row['from_regime']} → {row.get('to_regime')}"
        else:
            asset = "Market"
        signals.append(Signal(
            asset=asset,
            action=_signal_action(row),
            severity=_severity_band(row.get("severity_score")),
            reason=row.get("summary") or row.get("recommended_focus") or "No details",
            time=time_ago(row["timestamp"], now) if row.get("timestamp") else "unknown",
        ))
    return signals


def fear_greed_label(value: int) -> str:
    for threshold, label in cfg.FG_LABEL_BANDS:
        if value >= threshold:
            return label
    return cfg.FG_LABEL_BANDS[-1][1]


def compute_metrics(record: Optional[RegimeRecord],
                    global_data: Optional[dict] = None,
                    fear_greed: Optional[pd.DataFrame] = None) -> MarketMetrics:
    """
    Market metrics from live sources, with proxies from the latest regime row
    where a live value is missing.
    """
    global_data = global_data or {}
    confidence = round((record.confidence if record else 0.5) * 100)
    r7d = (record.r_7d if record else None) or 0.0
    vol = (record.vol_7d if record else None) or 0.0

    # Fear & Greed: live → proxy from confidence + trend
    if fear_greed is not None and not fear_greed.empty:
        fg = int(fear_greed.iloc[0]["fear_greed"])
        fg_label = fear_greed.iloc[0].get("label") or fear_greed_label(fg)
    else:
        fg = int(np.clip(round(50 + r7d * cfg.FG_PROXY_R7D_WEIGHT
                               + (confidence - 50) * cfg.FG_PROXY_CONF_WEIGHT), 0, 100))
        fg_label = fear_greed_label(fg)

    # BTC dominance: live → rough estimate from BTC/ETH prices → fallback
    btc_dom = global_data.get("btc_dominance")
    if btc_dom is None:
        if record and record.price_now and record.eth_price_now:
            btc_dom = round(record.price_now / (record.price_now + record.eth_price_now * 10) * 100, 1)
        else:
            btc_dom = cfg.BTC_DOMINANCE_FALLBACK

    # Alt season proxy: inverse of vol + positive trend
    alt_season = int(np.clip(round(50 - vol * cfg.ALT_SEASON_VOL_WEIGHT
                                   + r7d * cfg.ALT_SEASON_R7D_WEIGHT), 0, 100))

    return MarketMetrics(
        fear_greed=fg,
        fear_greed_label=fg_label,
        btc_dominance=float(btc_dom),
        alt_season=alt_season,
        total_volume_usd=global_data.get("total_volume_usd"),
    )


def price_pair(newest_first: List[RegimeRecord]) -> dict:
    """
    Latest BTC/ETH prices and 1d changes (%) from regime rows.
    BTC change prefers r_1d; ETH change comes from the previous row's price.
    """
    out = {"btc_price": None, "btc_change": None, "eth_price": None, "eth_change": None}
    if not newest_first:
        return out

    latest = newest_first[0]
    prev = newest_first[1] if len(newest_first) > 1 else None
    out["btc_price"] = latest.price_now
    out["eth_price"] = latest.eth_price_now

    if latest.r_1d is not None:
        out["btc_change"] = latest.r_1d
    elif prev and latest.price_now and prev.price_now:
        out["btc_change"] = round((latest.price_now / prev.price_now - 1) * 100, 2)

    if prev and latest.eth_price_now and prev.eth_price_now:
        out["eth_change"] = round((latest.eth_price_now / prev.eth_price_now - 1) * 100, 2)

    return out


# ============================================================
# AGGREGATE PIPELINE
# ============================================================

def fetch_all_data(days: int = cfg.HISTORY_DEFAULT_DAYS, user_id: Optional[str] = None) -> dict:
    """
    Fetch all sources and map them to core types. Handles failures gracefully.
    User-scoped sources (exposure, signals) are skipped without a user_id.
    """
    logger.info("Fetching data from all sources...")
    sources_total = 5 if user_id else 3
    sources_ok = 0
    result = {
        "records": [],
        "regime": None,
        "portfolio": None,
        "signals": [],
        "metrics": None,
        "prices": price_pair([]),
        "quality": {"completeness": 0.0, "sources_available": 0, "sources_total": sources_total},
        "fetch_time": datetime.now(timezone.utc).isoformat(),
    }

    # ── 1. Regime history ───────────────────────────────────
    logger.info(f"  [1/{sources_total}] Regime history ({days}d)...")
    records = records_from_frame(fetch_regime_history(days))
    if records:
        sources_ok += 1
        result["records"] = records
        result["regime"] = map_regime(records[0], compute_persistence(records))
        result["prices"] = price_pair(records)
        logger.info(f"  ✓ Regime history: {len(records)} rows, current={records[0].regime}")
    else:
        logger.error("  ✗ Regime history: no rows")

    # ── 2. CoinGecko global ─────────────────────────────────
    logger.info(f"  [2/{sources_total}] CoinGecko global...")
    glob = fetch_coingecko_global()
    if glob["btc_dominance"] is not None:
        sources_ok += 1
        logger.info(f"  ✓ BTC.D={glob['btc_dominance']:.1f}%")

    # ── 3. Fear & Greed ─────────────────────────────────────
    logger.info(f"  [3/{sources_total}] Fear & Greed...")
    fg_df = fetch_fear_greed()
    if not fg_df.empty:
        sources_ok += 1
        logger.info(f"  ✓ Fear & Greed: {fg_df.iloc[0]['fear_greed']}")

    result["metrics"] = compute_metrics(records[0] if records else None, glob, fg_df)

    # ── 4-5. User-scoped ────────────────────────────────────
    if user_id:
        logger.info(f"  [4/{sources_total}] Exposure...")
        exposure = fetch_latest_exposure(user_id)
        if exposure:
            sources_ok += 1
            result["portfolio"] = map_exposure(exposure)
            logger.info(f"  ✓ Exposure: {result['portfolio'].posture_label}")
        else:
            result["portfolio"] = empty_exposure()

        logger.info(f"  [5/{sources_total}] Signals...")
        signal_rows = fetch_active_signals(user_id)
        if signal_rows:
            sources_ok += 1
            result["signals"] = map_signals(signal_rows)
            logger.info(f"  ✓ Signals: {len(signal_rows)}")

    result["quality"]["sources_available"] = sources_ok
    result["quality"]["completeness"] = sources_ok / sources_total

    logger.info("=" * 50)
    logger.info(f"DATA: {sources_ok}/{sources_total} sources OK "
                f"({result['quality']['completeness']:.0%})")
    logger.info("=" * 50)

    return result
