"""Tests for the demo scenarios: generated history agrees with the stated regime."""

import pandas as pd
import pytest

from data_pipeline import records_from_frame
from demo_data import SCENARIOS, build_history, get_scenario
from regime_history import compute_persistence, summarize_history
from transitions import aggregate_transitions


@pytest.mark.parametrize("scenario_id", sorted(SCENARIOS))
class TestScenarios:

    def test_history_matches_regime(self, scenario_id):
        s = get_scenario(scenario_id)
        records = records_from_frame(pd.DataFrame(s.rows))

        assert len(records) == 30
        assert compute_persistence(records) == s.regime.persistence
        assert round(records[0].confidence * 100) == s.regime.confidence

    def test_transitions_are_consistent(self, scenario_id):
        records = records_from_frame(pd.DataFrame(get_scenario(scenario_id).rows))
        agg = summarize_history(records)
        changes = sum(t.count for t in aggregate_transitions(records))
        assert changes == agg.transition_count

    def test_anonymous_sources_hide_portfolio(self, scenario_id):
        sources = get_scenario(scenario_id).feed_sources()
        assert sources.portfolio is None
        assert sources.signals == []
        assert sources.regime_explainer is not None


def test_build_history_shape():
    rows = build_history([("range", 2, 0.5, 0.5, 0.0), ("bull", 3, 0.6, 0.9, 0.01)],
                         btc_start=100, eth_start=10)
    assert [r["regime"] for r in rows] == ["bull", "bull", "bull", "range", "range"]
    assert rows[2]["regime_changed"] is True
    assert rows[2]["previous_regime"] == "range"
    assert rows[-1]["previous_regime"] is None
    assert rows[0]["confidence"] == pytest.approx(0.9)
    assert rows[0]["timestamp"] > rows[1]["timestamp"]


def test_unknown_scenario_falls_back():
    assert get_scenario("crab").id == "bull"
