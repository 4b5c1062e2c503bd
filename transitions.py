"""
Transition Aggregator — from→to regime change frequencies.

Only rows flagged `regime_changed` with a known previous regime count.
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence

from regime_history import RegimeRecord

logger = logging.getLogger(__name__)


@dataclass
class Transition:
    """Tally of one ordered regime change."""
    from_regime: str
    to_regime: str
    count: int
    last_seen: str      # ISO-8601 timestamp of the most recent occurrence

    @property
    def key(self) -> str:
        return f"{self.from_regime}→{self.to_regime}"


def aggregate_transitions(newest_first: Sequence[RegimeRecord]) -> List[Transition]:
    """
    Count change events per (previous → current) pair.
    Sorted by count desc, then most recent first.
    """
    by_pair = {}

    for r in newest_first:
        if not r.regime_changed or r.previous_regime is None:
            continue

        key = (r.previous_regime, r.regime)
        t = by_pair.get(key)
        if t is None:
            # Newest-first scan: first sighting is the most recent one
            by_pair[key] = Transition(
                from_regime=r.previous_regime,
                to_regime=r.regime,
                count=1,
                last_seen=r.timestamp,
            )
        else:
            t.count += 1
            # Tolerate out-of-order input
            if r.timestamp > t.last_seen:
                t.last_seen = r.timestamp

    result = sorted(by_pair.values(), key=lambda t: t.last_seen, reverse=True)
    result.sort(key=lambda t: t.count, reverse=True)

    logger.debug(f"Transitions: {len(result)} pairs from {len(newest_first)} rows")
    return result
