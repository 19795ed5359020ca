"""Fallback 정책 — 업스트림 실패 시 대체 데이터 공급.

우선순위 (병합 없음, 엄격한 순서):
  1. 캐시 엔트리 (stale 포함) → CACHED
  2. 절차적 생성기 (trend + noise) → SIMULATED
  3. 하드코딩 정적 테이블 → STATIC

Fresh가 아닌 응답에는 항상 사람이 읽을 수 있는 사유 문자열을 붙인다.
"""

from __future__ import annotations

import logging
import math
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Hashable, Optional, TypeVar

from collectors.api_client import FetchError
from normalizers.records import (
    HISTORICAL_PERIODS,
    ChartPoint,
    HistoricalSnapshot,
    MarketSnapshot,
)
from normalizers.time_norm import date_label
from store.cache import TTLCache

logger = logging.getLogger(__name__)

V = TypeVar("V")

_DAY_SEC = 86_400


class Provenance(Enum):
    """응답 데이터 출처."""
    FRESH = "fresh"
    CACHE_HIT = "cache_hit"      # TTL 안의 정상 캐시 응답
    CACHED = "cached"            # 실패 후 (stale 포함) 캐시 fallback
    SIMULATED = "simulated"
    STATIC = "static"


class NoFallbackError(Exception):
    """어떤 fallback 소스도 데이터를 만들지 못함."""


@dataclass(frozen=True)
class Resolution(Generic[V]):
    """Fallback 결과."""
    value: V
    provenance: Provenance
    reason: str
    stored_at: Optional[float] = None   # CACHED일 때 원본 저장 시각


# =============================================================================
# 정적 테이블
# =============================================================================

FALLBACK_MARKETS: list[MarketSnapshot] = [
    MarketSnapshot(
        id="bitcoin", name="Bitcoin", symbol="btc",
        current_price=43250.5, price_change_percentage_24h=2.45,
        market_cap=847_000_000_000, total_volume=15_600_000_000,
        image="https://assets.coingecko.com/coins/images/1/large/bitcoin.png",
    ),
    MarketSnapshot(
        id="ethereum", name="Ethereum", symbol="eth",
        current_price=2650.75, price_change_percentage_24h=-1.23,
        market_cap=318_000_000_000, total_volume=8_900_000_000,
        image="https://assets.coingecko.com/coins/images/279/large/ethereum.png",
    ),
    MarketSnapshot(
        id="solana", name="Solana", symbol="sol",
        current_price=98.45, price_change_percentage_24h=5.67,
        market_cap=42_000_000_000, total_volume=1_200_000_000,
        image="https://assets.coingecko.com/coins/images/4128/large/solana.png",
    ),
    MarketSnapshot(
        id="usd-coin", name="USD Coin", symbol="usdc",
        current_price=1.0, price_change_percentage_24h=0.01,
        market_cap=24_000_000_000, total_volume=3_400_000_000,
        image="https://assets.coingecko.com/coins/images/6319/large/USD_Coin_icon.png",
    ),
]

FALLBACK_HISTORICAL: dict[str, dict[str, float]] = {
    "bitcoin": {"1d": 42800, "1w": 41200, "1m": 38500, "1y": 16800},
    "ethereum": {"1d": 2680, "1w": 2520, "1m": 2200, "1y": 1200},
    "solana": {"1d": 95.2, "1w": 88.3, "1m": 75.6, "1y": 22.5},
    "usd-coin": {"1d": 1.0, "1w": 1.0, "1m": 1.0, "1y": 1.0},
}

# 시뮬레이션 기준가 (없는 코인은 1.0)
BASE_PRICES: dict[str, float] = {
    "bitcoin": 43000.0,
    "ethereum": 2600.0,
    "solana": 98.0,
}
DEFAULT_BASE_PRICE = 1.0


# =============================================================================
# 생성기
# =============================================================================


def simulate_chart(
    coin_id: str,
    days: int,
    rng: random.Random,
    now: float | None = None,
) -> list[ChartPoint]:
    """일별 가격 시계열 생성 (sin 추세 ±10% + 노이즈 ±2.5%).

    Args:
        coin_id: 코인 ID.
        days: 포인트 수.
        rng: 난수 생성기.
        now: 마지막 포인트 시각 (epoch 초).

    Returns:
        오래된 순서의 ChartPoint 목록.
    """
    base = BASE_PRICES.get(coin_id, DEFAULT_BASE_PRICE)
    n = max(1, int(days))
    now = time.time() if now is None else now

    points = []
    for i in range(n - 1, -1, -1):
        ts_ms = int((now - i * _DAY_SEC) * 1000)
        trend = math.sin((i / n) * math.pi) * 0.1
        noise = (rng.random() - 0.5) * 0.05
        price = base * (1 + trend + noise)
        points.append(
            ChartPoint(date=date_label(ts_ms), price=round(price, 2), timestamp=ts_ms)
        )
    return points


def simulate_historical(coin_id: str, rng: random.Random) -> HistoricalSnapshot:
    """기간별 과거 가격 생성 (정적 테이블 ±5% 변동).

    테이블에 없는 코인은 bitcoin 행의 비율을 기준가에 적용한다.
    """
    row = FALLBACK_HISTORICAL.get(coin_id)
    if row is None:
        base = BASE_PRICES.get(coin_id, DEFAULT_BASE_PRICE)
        ref = FALLBACK_HISTORICAL["bitcoin"]
        ref_base = BASE_PRICES["bitcoin"]
        row = {p: base * v / ref_base for p, v in ref.items()}

    prices = {
        period: round(row[period] * (0.95 + rng.random() * 0.1), 6)
        for period in HISTORICAL_PERIODS
    }
    return HistoricalSnapshot(coin_id=coin_id, prices=prices)


def static_historical(coin_id: str) -> Optional[HistoricalSnapshot]:
    row = FALLBACK_HISTORICAL.get(coin_id)
    if row is None:
        return None
    return HistoricalSnapshot(coin_id=coin_id, prices=dict(row))


# =============================================================================
# Policy
# =============================================================================


def describe_failure(error: BaseException | str | None) -> str:
    """실패 원인 → 사유 접두어."""
    if isinstance(error, FetchError) and error.rate_limited:
        return "Rate limited by API"
    if isinstance(error, str) and error:
        return error
    return "API unavailable"


class FallbackPolicy:
    """캐시 > 시뮬레이션 > 정적 테이블 순서의 fallback.

    사용법:
        policy = FallbackPolicy(rng=random.Random(42))
        res = policy.resolve(key, cache, generator=gen, static=table, failure=err)
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    @property
    def rng(self) -> random.Random:
        return self._rng

    def resolve(
        self,
        key: Hashable,
        cache: TTLCache[V],
        *,
        generator: Callable[[random.Random], Optional[V]] | None = None,
        static: V | None = None,
        failure: BaseException | str | None = None,
    ) -> Resolution[V]:
        """대체 데이터 결정.

        Args:
            key: 캐시 키.
            cache: 데이터셋 캐시.
            generator: 절차적 생성기 (rng를 받아 값 또는 None 반환).
            static: 정적 fallback 값.
            failure: 원인 예외 또는 설명.

        Returns:
            Resolution (값, 출처, 사유).

        Raises:
            NoFallbackError: 모든 소스가 비어 있음.
        """
        prefix = describe_failure(failure)

        entry = cache.get(key)
        if entry is not None:
            age = cache.now() - entry.stored_at
            logger.info(
                "[Fallback:%s] stale 캐시 반환: %s (age=%.0fs)",
                cache.name, key, age,
            )
            return Resolution(
                value=entry.value,
                provenance=Provenance.CACHED,
                reason=f"{prefix}, showing cached data",
                stored_at=entry.stored_at,
            )

        if generator is not None:
            value = self._generate(key, generator, cache.name)
            if value is not None:
                logger.info("[Fallback:%s] 시뮬레이션 데이터: %s", cache.name, key)
                return Resolution(
                    value=value,
                    provenance=Provenance.SIMULATED,
                    reason=f"{prefix}, showing simulated data",
                )

        if static is not None:
            logger.info("[Fallback:%s] 정적 데이터: %s", cache.name, key)
            return Resolution(
                value=static,
                provenance=Provenance.STATIC,
                reason=f"{prefix}, showing fallback data",
            )

        raise NoFallbackError(f"no fallback data for {cache.name}:{key}")

    def _generate(
        self,
        key: Hashable,
        generator: Callable[[random.Random], Optional[Any]],
        name: str,
    ) -> Optional[Any]:
        try:
            return generator(self._rng)
        except Exception as e:
            logger.warning(
                "[Fallback:%s] 생성기 실패: %s — %s", name, key, e,
            )
            return None
