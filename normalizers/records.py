"""
Canonical market-data records shared by every upstream provider.
"""

from dataclasses import asdict, dataclass, field
from typing import Dict, Optional

from normalizers.time_norm import date_label


HISTORICAL_PERIODS: Dict[str, int] = {
    "1d": 1,
    "1w": 7,
    "1m": 30,
    "1y": 365,
}


class PayloadError(ValueError):
    """Upstream answered, but the body is unusable."""


@dataclass(frozen=True)
class MarketSnapshot:
    id: str
    name: str
    symbol: str
    current_price: float = 0.0
    price_change_percentage_24h: float = 0.0
    market_cap: float = 0.0
    total_volume: float = 0.0
    image: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ChartPoint:
    date: str
    price: float
    timestamp: int  # epoch ms

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class HistoricalSnapshot:
    coin_id: str
    prices: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return dict(self.prices)


def as_float(value, default: float = 0.0) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def make_chart_point(ts, price, scale: int = 1) -> Optional[ChartPoint]:
    """(timestamp, price) -> ChartPoint, or None if the timestamp is unusable.

    ``scale`` converts the upstream unit to ms (1000 for epoch seconds).
    """
    try:
        ts_ms = int(ts) * scale
        label = date_label(ts_ms)
    except (TypeError, ValueError, OverflowError, OSError):
        return None
    return ChartPoint(date=label, price=round(as_float(price), 2), timestamp=ts_ms)
