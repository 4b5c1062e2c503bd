"""
Feed Types — source inputs + tagged feed entries.

FeedEntry is a (type, data) pair: FeedEntryType selects the payload class,
renderers switch on `entry.type`.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union


# ============================================================
# SOURCE INPUTS
# ============================================================

@dataclass
class RegimeState:
    """Current regime as shown to the user."""
    label: str
    confidence: int         # percent 0-100
    persistence: int        # days in current regime


@dataclass
class Allocation:
    asset: str
    current: float          # percent of portfolio
    target: float           # percent


@dataclass
class PortfolioState:
    posture_label: str
    misalignment: float     # 0-1
    allocations: List[Allocation] = field(default_factory=list)

    @property
    def has_holdings(self) -> bool:
        return any(a.current > 0 for a in self.allocations)

    def find(self, asset: str) -> Optional[Allocation]:
        for a in self.allocations:
            if a.asset == asset:
                return a
        return None


@dataclass
class Signal:
    asset: str
    action: str             # BUY | SELL | HOLD
    severity: int           # band 1-3
    reason: str
    time: str               # "2h ago", "Yesterday", or ISO-8601


@dataclass
class MarketMetrics:
    fear_greed: Optional[int] = None        # 0-100
    fear_greed_label: Optional[str] = None
    btc_dominance: Optional[float] = None   # percent
    alt_season: Optional[int] = None        # 0-100
    total_volume_usd: Optional[float] = None


@dataclass
class LearnItem:
    summary: str
    slug: str
    topic: Optional[str] = None


@dataclass
class FeedSources:
    """Everything the composer may draw from. Only `user_name` gates auth."""
    regime: Optional[RegimeState] = None
    metrics: Optional[MarketMetrics] = None
    btc_price: Optional[float] = None
    btc_change: Optional[float] = None
    eth_price: Optional[float] = None
    eth_change: Optional[float] = None
    portfolio: Optional[PortfolioState] = None
    signals: List[Signal] = field(default_factory=list)
    user_name: Optional[str] = None
    regime_explainer: Optional[LearnItem] = None
    learn_items: List[LearnItem] = field(default_factory=list)
    now: Optional[datetime] = None          # reference time for signal grouping


# ============================================================
# ENTRY PAYLOADS
# ============================================================

class FeedEntryType(Enum):
    GREETING = "greeting"
    REGIME = "regime"
    PRICE_PAIR = "price_pair"
    POSTURE = "posture"
    INSIGHT = "insight"
    MARKET_SNIPPET = "market_snippet"
    SIGNAL = "signal"
    LEARN = "learn"
    DIVIDER = "divider"
    ANON_CTA = "anon_cta"


@dataclass
class EntryGreetingData:
    name: str


@dataclass
class EntryRegimeData:
    regime: str
    confidence: float       # 0-1
    persistence: int
    narrative: str


@dataclass
class EntryPricePairData:
    btc_price: float
    btc_change: float
    eth_price: float
    eth_change: float


@dataclass
class EntryPostureData:
    score: int
    label: str
    narrative: str


@dataclass
class EntryInsightData:
    icon: str               # zap | shield | trending | activity
    icon_variant: str       # accent | positive | eth | neutral
    text: str
    subtext: Optional[str] = None
    link: bool = False


@dataclass
class EntryMarketSnippetData:
    label: str
    value: str
    change: Optional[str] = None
    positive: Optional[bool] = None


@dataclass
class EntrySignalData:
    severity: str           # info | watch | action
    title: str
    text: str
    time: str


@dataclass
class EntryLearnData:
    text: str
    topic: Optional[str] = None
    slug: Optional[str] = None


@dataclass
class EntryDividerData:
    label: str


@dataclass
class EntryAnonCtaData:
    title: str
    text: str


EntryData = Union[
    EntryGreetingData, EntryRegimeData, EntryPricePairData, EntryPostureData,
    EntryInsightData, EntryMarketSnippetData, EntrySignalData, EntryLearnData,
    EntryDividerData, EntryAnonCtaData,
]

PAYLOAD_TYPES = {
    FeedEntryType.GREETING: EntryGreetingData,
    FeedEntryType.REGIME: EntryRegimeData,
    FeedEntryType.PRICE_PAIR: EntryPricePairData,
    FeedEntryType.POSTURE: EntryPostureData,
    FeedEntryType.INSIGHT: EntryInsightData,
    FeedEntryType.MARKET_SNIPPET: EntryMarketSnippetData,
    FeedEntryType.SIGNAL: EntrySignalData,
    FeedEntryType.LEARN: EntryLearnData,
    FeedEntryType.DIVIDER: EntryDividerData,
    FeedEntryType.ANON_CTA: EntryAnonCtaData,
}


@dataclass
class FeedEntry:
    type: FeedEntryType
    data: EntryData

    def __post_init__(self):
        expected = PAYLOAD_TYPES[self.type]
        if not isinstance(self.data, expected):
            raise TypeError(f"{self.type.value} entry needs {expected.__name__}, "
                            f"got {type(self.data).__name__}")

    def to_dict(self) -> dict:
        return {"type": self.type.value, "data": asdict(self.data)}


@dataclass
class ComposedFeed:
    entries: List[FeedEntry]
    show_empty_portfolio_cta: bool = False

    def to_dict(self) -> dict:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "show_empty_portfolio_cta": self.show_empty_portfolio_cta,
        }
