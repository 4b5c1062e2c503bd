"""Tests for feed composition: section order, auth gating, signal grouping."""

from datetime import timedelta

import pytest

from feed_composer import (
    compose_feed, format_usd_compact, posture_band, regime_narrative,
    signal_bucket,
)
from feed_types import (
    Allocation, EntryDividerData, FeedEntry, FeedEntryType, FeedSources,
    LearnItem, MarketMetrics, PortfolioState, RegimeState, Signal,
)


def _types(feed):
    return [e.type for e in feed.entries]


@pytest.fixture
def metrics():
    return MarketMetrics(fear_greed=68, fear_greed_label="Greed", btc_dominance=52.34,
                         alt_season=72, total_volume_usd=98.4e9)


@pytest.fixture
def full_sources(regime, portfolio, metrics, now):
    return FeedSources(
        regime=regime,
        metrics=metrics,
        btc_price=97000.0, btc_change=1.2,
        eth_price=3400.0, eth_change=-0.4,
        portfolio=portfolio,
        signals=[
            Signal("BTC", "BUY", 3, "Strong uptrend", "2h ago"),
            Signal("ETH", "HOLD", 2, "Aligned", "3h ago"),
            Signal("SOL", "BUY", 1, "Alt breadth", "yesterday"),
        ],
        user_name="Alex",
        regime_explainer=LearnItem(summary="Bull regimes explained.", slug="bull-101"),
        now=now,
    )


class TestSectionOrder:

    def test_authenticated_full_feed(self, full_sources):
        feed = compose_feed(full_sources)
        T = FeedEntryType

        assert _types(feed) == [
            T.GREETING, T.REGIME, T.PRICE_PAIR, T.POSTURE, T.INSIGHT, T.DIVIDER,
            T.MARKET_SNIPPET, T.MARKET_SNIPPET, T.MARKET_SNIPPET, T.MARKET_SNIPPET,
            T.SIGNAL, T.SIGNAL, T.DIVIDER, T.SIGNAL, T.LEARN,
        ]
        assert feed.show_empty_portfolio_cta is False

    def test_minimal_sources(self):
        feed = compose_feed(FeedSources())
        assert _types(feed) == [FeedEntryType.GREETING, FeedEntryType.ANON_CTA, FeedEntryType.DIVIDER]
        assert feed.entries[0].data.name == "there"
        assert feed.entries[2].data.label == "Market context"

    def test_price_pair_needs_both_prices(self, full_sources):
        full_sources.eth_price = None
        assert FeedEntryType.PRICE_PAIR not in _types(compose_feed(full_sources))

    def test_price_changes_default_zero(self, full_sources):
        full_sources.btc_change = None
        pair = next(e for e in compose_feed(full_sources).entries if e.type == FeedEntryType.PRICE_PAIR)
        assert pair.data.btc_change == 0.0


class TestAuthGating:

    def test_anonymous_gets_market_only(self, full_sources):
        full_sources.user_name = None
        feed = compose_feed(full_sources)
        types = _types(feed)

        assert FeedEntryType.POSTURE not in types
        assert FeedEntryType.INSIGHT not in types
        assert FeedEntryType.SIGNAL not in types
        assert types.count(FeedEntryType.ANON_CTA) == 1
        assert feed.show_empty_portfolio_cta is False

    def test_authenticated_without_holdings_sets_cta(self, full_sources):
        full_sources.portfolio = PortfolioState(
            posture_label="No Data", misalignment=0.0,
            allocations=[Allocation("BTC", 0, 50), Allocation("ETH", 0, 25)],
        )
        feed = compose_feed(full_sources)

        assert feed.show_empty_portfolio_cta is True
        assert FeedEntryType.POSTURE not in _types(feed)
        assert FeedEntryType.INSIGHT not in _types(feed)
        assert FeedEntryType.ANON_CTA not in _types(feed)

    def test_authenticated_without_portfolio_sets_cta(self, full_sources):
        full_sources.portfolio = None
        assert compose_feed(full_sources).show_empty_portfolio_cta is True

    def test_insights_need_regime(self, full_sources):
        full_sources.regime = None
        types = _types(compose_feed(full_sources))
        assert FeedEntryType.INSIGHT not in types
        assert FeedEntryType.POSTURE in types


class TestRegimeAndPosture:

    def test_regime_entry(self, full_sources):
        entry = compose_feed(full_sources).entries[1]
        assert entry.data.confidence == pytest.approx(0.87)
        assert entry.data.narrative == "Day 14 of bull market conditions. Signal strength is high."

    @pytest.mark.parametrize("confidence,persistence,expected", [
        (60, 0, "Signal strength is moderate."),
        (40, 2, "Day 2 of bear market conditions. Signal is weak, conditions may shift."),
    ])
    def test_narrative_bands(self, confidence, persistence, expected):
        r = RegimeState(label="Bear Market", confidence=confidence, persistence=persistence)
        assert regime_narrative(r) == expected

    def test_posture_entry(self, full_sources):
        posture = next(e for e in compose_feed(full_sources).entries if e.type == FeedEntryType.POSTURE)
        assert posture.data.score == 92
        assert posture.data.label == "Aligned"
        assert "BTC is at 45% (target: 50%)" in posture.data.narrative

    def test_posture_label_falls_back_to_band(self, full_sources):
        full_sources.portfolio.posture_label = "Unknown"
        full_sources.portfolio.misalignment = 0.5
        posture = next(e for e in compose_feed(full_sources).entries if e.type == FeedEntryType.POSTURE)
        assert posture.data.score == 50
        assert posture.data.label == "Moderate"

    @pytest.mark.parametrize("score,band", [(70, "Aligned"), (69, "Moderate"), (40, "Moderate"), (39, "Misaligned")])
    def test_posture_band(self, score, band):
        assert posture_band(score) == band

    def test_insights_limited_to_allocation_deviation(self, full_sources):
        insights = [e for e in compose_feed(full_sources).entries if e.type == FeedEntryType.INSIGHT]
        # posture-aligned and regime-persistence would match too, but are not allocation rules
        assert len(insights) == 1
        assert "BTC allocation" in insights[0].data.text


class TestMarketSnippets:

    def test_snippet_values(self, full_sources):
        snippets = [e.data for e in compose_feed(full_sources).entries
                    if e.type == FeedEntryType.MARKET_SNIPPET]

        fg, dom, alt, vol = snippets
        assert (fg.label, fg.value, fg.change, fg.positive) == ("Fear & Greed", "68 · Greed", "18", True)
        assert dom.value == "52.3%"
        assert alt.value == "72/100"
        assert vol.value == "$98.4B"

    def test_snippets_independent(self, full_sources):
        full_sources.metrics = MarketMetrics(alt_season=30)
        snippets = [e.data for e in compose_feed(full_sources).entries
                    if e.type == FeedEntryType.MARKET_SNIPPET]
        assert [s.label for s in snippets] == ["Alt Season"]

    def test_fear_below_neutral(self, full_sources):
        full_sources.metrics = MarketMetrics(fear_greed=22)
        fg = next(e.data for e in compose_feed(full_sources).entries
                  if e.type == FeedEntryType.MARKET_SNIPPET)
        assert fg.value == "22"
        assert fg.change == "-28"
        assert fg.positive is False

    @pytest.mark.parametrize("value,expected", [
        (2.5e12, "$2.5T"), (61.24e9, "$61.2B"), (3.4e6, "$3.4M"), (1500, "$1.5K"), (999, "$999"),
    ])
    def test_format_usd_compact(self, value, expected):
        assert format_usd_compact(value) == expected


class TestSignalGrouping:

    def test_one_divider_at_day_boundary(self, full_sources):
        entries = compose_feed(full_sources).entries
        start = next(i for i, e in enumerate(entries) if e.type == FeedEntryType.SIGNAL)
        tail = entries[start:]

        dividers = [e for e in tail if e.type == FeedEntryType.DIVIDER]
        assert len(dividers) == 1
        assert dividers[0].data.label == "Yesterday"
        assert tail[0].type == FeedEntryType.SIGNAL

    def test_single_bucket_has_no_divider(self, full_sources):
        full_sources.signals = full_sources.signals[:2]
        types = _types(compose_feed(full_sources))
        assert types.count(FeedEntryType.DIVIDER) == 1

    def test_caps_at_five(self, full_sources):
        full_sources.signals = [Signal("BTC", "HOLD", 1, f"s{i}", "1h ago") for i in range(8)]
        types = _types(compose_feed(full_sources))
        assert types.count(FeedEntryType.SIGNAL) == 5

    def test_out_of_range_time_does_not_break_feed(self, full_sources):
        full_sources.signals = [
            Signal("BTC", "BUY", 2, "huge", "1000000000 days ago"),
            Signal("ETH", "HOLD", 1, "recent", "1h ago"),
        ]
        signals = [e.data for e in compose_feed(full_sources).entries if e.type == FeedEntryType.SIGNAL]
        assert [s.title for s in signals] == ["recent", "huge"]

    def test_keeps_most_recent_five(self, full_sources, now):
        full_sources.signals = [
            Signal("BTC", "HOLD", 1, "old", "3 days ago"),
            Signal("BTC", "HOLD", 1, "t1", "1h ago"),
            Signal("BTC", "HOLD", 1, "unknown", "sometime"),
            Signal("BTC", "HOLD", 1, "t0", "just now"),
            Signal("BTC", "HOLD", 1, "y", "yesterday"),
            Signal("BTC", "HOLD", 1, "t2", (now - timedelta(hours=2)).isoformat()),
            Signal("BTC", "HOLD", 1, "week", "1 week ago"),
        ]
        entries = [e for e in compose_feed(full_sources).entries
                   if e.type in (FeedEntryType.SIGNAL, FeedEntryType.DIVIDER)][1:]

        assert [e.data.title if e.type == FeedEntryType.SIGNAL else e.data.label for e in entries] == [
            "t0", "t1", "t2", "Yesterday", "y", "Earlier", "old",
        ]

    def test_severity_mapping(self, full_sources):
        full_sources.signals = [
            Signal("BTC", "SELL", 3, "a", "1h ago"),
            Signal("ETH", "HOLD", 2, "b", "1h ago"),
            Signal("SOL", "HOLD", 1, "c", "1h ago"),
            Signal("ADA", "HOLD", 9, "d", "1h ago"),
        ]
        signals = [e.data for e in compose_feed(full_sources).entries if e.type == FeedEntryType.SIGNAL]
        assert [s.severity for s in signals] == ["action", "watch", "info", "info"]
        assert signals[0].text == "SELL · BTC"

    def test_iso_timestamps(self, full_sources, now):
        full_sources.signals = [
            Signal("BTC", "HOLD", 1, "a", now.isoformat()),
            Signal("ETH", "HOLD", 1, "b", (now - timedelta(days=4)).isoformat().replace("+00:00", "Z")),
        ]
        entries = compose_feed(full_sources).entries
        dividers = [e.data.label for e in entries if e.type == FeedEntryType.DIVIDER]
        assert dividers == ["Market context", "Earlier"]

    @pytest.mark.parametrize("text,bucket", [
        ("just now", "today"),
        ("5 min ago", "today"),
        ("2h ago", "today"),
        ("16h ago", "yesterday"),
        ("1d ago", "yesterday"),
        ("Yesterday", "yesterday"),
        ("3 days ago", "older"),
        ("2 weeks ago", "older"),
        ("sometime", "older"),
        ("1000000000 days ago", "older"),
        ("99999999999 weeks ago", "older"),
        ("", "older"),
    ])
    def test_signal_bucket(self, text, bucket, now):
        # now is 15:00 UTC
        assert signal_bucket(text, now) == bucket


class TestLearn:

    def test_two_learn_items_win(self, full_sources):
        full_sources.learn_items = [
            LearnItem("one", "a", topic="basics"),
            LearnItem("two", "b"),
            LearnItem("three", "c"),
        ]
        learn = [e.data for e in compose_feed(full_sources).entries if e.type == FeedEntryType.LEARN]
        assert [l.text for l in learn] == ["one", "two"]
        assert learn[0].topic == "basics"
        assert learn[1].topic == "bull market"

    def test_explainer_when_fewer_than_two(self, full_sources):
        full_sources.learn_items = [LearnItem("solo", "s")]
        learn = [e.data for e in compose_feed(full_sources).entries if e.type == FeedEntryType.LEARN]
        assert [l.slug for l in learn] == ["bull-101"]

    def test_single_item_without_explainer(self, full_sources):
        full_sources.regime_explainer = None
        full_sources.learn_items = [LearnItem("solo", "s")]
        learn = [e.data for e in compose_feed(full_sources).entries if e.type == FeedEntryType.LEARN]
        assert [l.slug for l in learn] == ["s"]

    def test_no_learn(self, full_sources):
        full_sources.regime_explainer = None
        assert FeedEntryType.LEARN not in _types(compose_feed(full_sources))


class TestFeedEntry:

    def test_payload_type_enforced(self):
        with pytest.raises(TypeError):
            FeedEntry(FeedEntryType.GREETING, EntryDividerData(label="x"))

    def test_idempotent(self, full_sources):
        assert compose_feed(full_sources).to_dict() == compose_feed(full_sources).to_dict()

    def test_to_dict_shape(self, full_sources):
        d = compose_feed(full_sources).to_dict()
        assert d["entries"][0] == {"type": "greeting", "data": {"name": "Alex"}}
        assert d["show_empty_portfolio_cta"] is False
