"""Tests for Telegram text rendering and delivery."""

import pytest

import telegram_bot as tb
from conftest import make_history
from demo_data import get_scenario
from feed_composer import compose_feed
from regime_history import summarize_history
from transitions import aggregate_transitions


class FakeResponse:
    def __init__(self, status):
        self.status_code = status


class TestFormatFeed:

    def test_renders_sections(self):
        scenario = get_scenario("bull")
        text = tb.format_feed(compose_feed(scenario.feed_sources("Alex")))

        assert text.startswith("👋 Hey Alex")
        assert "Bull Market · Confidence: 87%" in text
        assert "── Market context ──" in text
        assert "Fear & Greed: 68 · Greed (18)" in text
        assert "📖 Learn" in text

    def test_anonymous_shows_cta(self):
        text = tb.format_feed(compose_feed(get_scenario("bear").feed_sources()))
        assert "Hey there" in text
        assert "→ Track your own portfolio" in text
        assert "Posture:" not in text

    def test_empty_portfolio_hint(self):
        sources = get_scenario("bull").feed_sources("Alex")
        sources.portfolio = None
        assert "Connect a portfolio" in tb.format_feed(compose_feed(sources))


class TestFormatAnalytics:

    def test_breakdown_and_transitions(self):
        records = make_history(["bull"] * 4 + ["bear"] * 3)
        text = tb.format_analytics(summarize_history(records), aggregate_transitions(records))

        assert text.splitlines()[0] == "Regime history · 7d"
        assert "1 transitions" in text
        assert "↗ Bull" in text
        assert "57%" in text
        assert "Bear → Bull ×1" in text

    def test_empty_history(self):
        text = tb.format_analytics(summarize_history([]), [])
        assert text == "Regime history · 0d\n   No data"


class TestSendTelegram:

    def test_skips_without_credentials(self, monkeypatch):
        monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
        monkeypatch.delenv("TELEGRAM_CHAT_ID", raising=False)
        monkeypatch.setattr(tb.requests, "post", lambda *a, **k: pytest.fail("no request expected"))
        assert tb.send_telegram("hello") is False

    def test_posts_truncated_text(self, monkeypatch):
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "t0k")
        monkeypatch.setenv("TELEGRAM_CHAT_ID", "42")
        sent = {}

        def fake_post(url, json=None, timeout=None):
            sent.update(url=url, payload=json)
            return FakeResponse(200)

        monkeypatch.setattr(tb.requests, "post", fake_post)
        assert tb.send_telegram("x" * 5000) is True
        assert sent["url"] == "https://api.telegram.org/bott0k/sendMessage"
        assert sent["payload"]["chat_id"] == "42"
        assert len(sent["payload"]["text"]) <= tb.cfg.TELEGRAM_MAX_LEN

    def test_error_status(self, monkeypatch):
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "t0k")
        monkeypatch.setenv("TELEGRAM_CHAT_ID", "42")
        monkeypatch.setattr(tb.requests, "post", lambda *a, **k: FakeResponse(400))
        assert tb.send_telegram("hello") is False
