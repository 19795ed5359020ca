"""pytest 공통 fixture.

가짜 시계, 기록용 sleep, 가격 소스 mock, CryptoCompare/CoinGecko 응답 샘플.
"""

import pytest
from unittest.mock import AsyncMock
from typing import Any

from normalizers.records import ChartPoint, MarketSnapshot


# =============================================================================
# 가짜 시계 / sleep
# =============================================================================


class FakeClock:
    """수동으로 진행시키는 시계."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """await sleep(d) 호출을 기록하고 (선택) 시계를 진행."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.delays: list[float] = []
        self._clock = clock

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self._clock is not None:
            self._clock.advance(delay)


# =============================================================================
# 가격 소스 Mock
# =============================================================================


_SAMPLE_MARKETS = [
    MarketSnapshot(
        id="bitcoin", name="Bitcoin", symbol="btc",
        current_price=67_000.0, price_change_percentage_24h=1.5,
        market_cap=1_300_000_000_000, total_volume=25_000_000_000,
    ),
    MarketSnapshot(
        id="ethereum", name="Ethereum", symbol="eth",
        current_price=3_400.0, price_change_percentage_24h=-0.4,
        market_cap=410_000_000_000, total_volume=12_000_000_000,
    ),
]


def make_series(days: int, end_ts: float, base: float = 100.0) -> list[ChartPoint]:
    """end_ts까지 일별 ChartPoint (오래된 순)."""
    points = []
    for i in range(days, -1, -1):
        ts_ms = int((end_ts - i * 86_400) * 1000)
        points.append(ChartPoint(date="x", price=base + (days - i), timestamp=ts_ms))
    return points


class FakeSource:
    """테스트용 PriceSource.

    fetch_markets / fetch_series는 AsyncMock이므로 side_effect로 실패 주입 가능.
    """

    name = "fake"

    def __init__(self, clock: FakeClock) -> None:
        self._clock = clock
        self.fetch_markets = AsyncMock(return_value=list(_SAMPLE_MARKETS))
        self.fetch_series = AsyncMock(side_effect=self._series)

    async def _series(self, client, coin_id, days, retry=None):
        return make_series(days, self._clock())


# =============================================================================
# 응답 샘플
# =============================================================================


_CC_PRICEMULTIFULL: dict[str, Any] = {
    "RAW": {
        "BTC": {
            "USD": {
                "PRICE": 67_123.45,
                "CHANGEPCT24HOUR": 2.1,
                "MKTCAP": 1_320_000_000_000,
                "TOTALVOLUME24H": 31_000_000_000,
                "IMAGEURL": "/media/37746251/btc.png",
            }
        },
        "ETH": {
            "USD": {
                "PRICE": 3_456.7,
                "CHANGEPCT24HOUR": -0.8,
                "MKTCAP": 415_000_000_000,
                "TOTALVOLUME24H": 14_000_000_000,
                "IMAGEURL": "/media/37746238/eth.png",
            }
        },
    }
}

_CC_HISTODAY: dict[str, Any] = {
    "Response": "Success",
    "Data": {
        "Aggregated": False,
        "TimeFrom": 1_704_067_200,
        "TimeTo": 1_704_240_000,
        "Data": [
            {"time": 1_704_240_000, "close": 45_100.129},
            {"time": 1_704_067_200, "close": 42_250.556},
            {"time": 1_704_153_600, "close": 44_900.0},
        ],
    },
}

_CG_MARKETS: list[dict[str, Any]] = [
    {
        "id": "ethereum",
        "symbol": "eth",
        "name": "Ethereum",
        "image": "https://assets.coingecko.com/coins/images/279/large/ethereum.png",
        "current_price": 3_450.1,
        "market_cap": 414_000_000_000,
        "total_volume": 13_500_000_000,
        "price_change_percentage_24h": -0.75,
    },
    {
        "id": "bitcoin",
        "symbol": "btc",
        "name": "Bitcoin",
        "image": "https://assets.coingecko.com/coins/images/1/large/bitcoin.png",
        "current_price": 67_010,
        "market_cap": 1_319_000_000_000,
        "total_volume": 30_000_000_000,
        "price_change_percentage_24h": None,
    },
]

_CG_MARKET_CHART: dict[str, Any] = {
    "prices": [
        [1_704_153_600_000, 44_900.0],
        [1_704_067_200_000, 42_250.556],
    ],
    "market_caps": [],
    "total_volumes": [],
}


# =============================================================================
# Pytest Fixtures
# =============================================================================


@pytest.fixture
def fake_clock():
    """수동 진행 시계 fixture."""
    return FakeClock()


@pytest.fixture
def recording_sleep(fake_clock):
    """시계를 진행시키는 기록용 sleep fixture."""
    return RecordingSleep(fake_clock)


@pytest.fixture
def fake_source(fake_clock):
    """가격 소스 mock fixture."""
    return FakeSource(fake_clock)


@pytest.fixture
def cc_pricemultifull():
    return _CC_PRICEMULTIFULL


@pytest.fixture
def cc_histoday():
    return _CC_HISTODAY


@pytest.fixture
def cg_markets():
    return _CG_MARKETS


@pytest.fixture
def cg_market_chart():
    return _CG_MARKET_CHART
