"""가격 데이터 서비스 (composition root).

흐름:
  캐시 확인 → (hit) cached=True 반환
           → (miss) RequestQueue 등록 → pacing → fetch_with_retry
                    → 성공: 캐시 저장 후 fresh 반환
                    → 실패: FallbackPolicy (stale 캐시 > 시뮬레이션 > 정적)

모든 공개 메서드는 DataResponse를 반환하며, 업스트림 실패로 예외를 던지지 않는다.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Hashable, Optional, TypeVar

from collectors.api_client import (
    FetchError,
    RetryPolicy,
    UpstreamClient,
)
from collectors.price_sources import MAX_SERIES_DAYS, PriceSource, build_source
from collectors.rate_limiter import SlidingWindowLimiter
from collectors.request_queue import QueueResetError, RequestQueue
from normalizers.cryptocompare import historical_from_series
from normalizers.records import (
    ChartPoint,
    HistoricalSnapshot,
    MarketSnapshot,
    PayloadError,
)
from normalizers.symbol_map import normalize_coin_id
from normalizers.time_norm import iso_utc
from pipelines.fallback import (
    FALLBACK_MARKETS,
    FallbackPolicy,
    Provenance,
    simulate_chart,
    simulate_historical,
    static_historical,
)
from pipelines.settings import (
    DATASET_CHART,
    DATASET_HISTORICAL,
    DATASET_PRICES,
    ServiceSettings,
)
from store.cache import CacheEntry, TTLCache, make_key

logger = logging.getLogger(__name__)

V = TypeVar("V")

DEFAULT_COIN = "bitcoin"
DEFAULT_DAYS = 7
_HISTORICAL_LOOKBACK_DAYS = 365

# fallback 대상 실패 (그 외 예외는 버그로 간주하여 전파)
_RECOVERABLE = (FetchError, PayloadError, QueueResetError)


@dataclass
class DataResponse(Generic[V]):
    """UI로 전달되는 응답."""
    data: V
    cached: bool
    last_updated: float                  # epoch 초
    provenance: Provenance = Provenance.FRESH
    error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict:
        """JSON 응답 형태 ({data, cached, error?, lastUpdated})."""
        out: dict[str, Any] = {
            "data": _serialize(self.data),
            "cached": self.cached,
        }
        if self.error is not None:
            out["error"] = self.error
        out["lastUpdated"] = iso_utc(self.last_updated)
        return out


def _serialize(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    return value


@dataclass
class DatasetSpec(Generic[V]):
    """데이터셋별 캐시 + 재시도 정책."""
    name: str
    cache: TTLCache[V]
    retry: RetryPolicy


class MarketDataService:
    """가격/차트/과거가격 조회 서비스.

    사용법:
        async with MarketDataService(ServiceSettings()) as service:
            resp = await service.get_chart("bitcoin", 7)
            print(resp.to_dict())
    """

    def __init__(
        self,
        settings: ServiceSettings | None = None,
        *,
        source: PriceSource | None = None,
        client: UpstreamClient | None = None,
        queue: RequestQueue | None = None,
        fallback: FallbackPolicy | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Args:
            settings: 서비스 설정 (None이면 기본값).
            source: 가격 데이터 소스 (None이면 settings.provider).
            client: HTTP 클라이언트 (공유 가능).
            queue: 요청 큐 (공유 가능).
            fallback: fallback 정책.
            clock: 캐시/응답 시각 함수 (테스트 시 주입).
        """
        self._settings = settings or ServiceSettings()
        self._clock = clock
        self._source = source or build_source(
            self._settings.provider, currency=self._settings.currency,
        )

        if client is None:
            limiter = None
            if self._settings.quota_enabled:
                limiter = SlidingWindowLimiter(
                    self._settings.quota_max_requests,
                    self._settings.quota_window,
                    name=self._source.name,
                )
            client = UpstreamClient(
                self._settings.upstream_config(),
                limiter=limiter,
                name=self._source.name,
            )
            self._owns_client = True
        else:
            self._owns_client = False
        self._client = client

        self._queue = queue or RequestQueue(
            self._settings.min_interval, name=self._source.name,
        )
        rng = random.Random(self._settings.fallback_seed)
        self._fallback = fallback or FallbackPolicy(rng=rng)

        self._datasets: dict[str, DatasetSpec] = {
            name: DatasetSpec(
                name=name,
                cache=TTLCache(
                    ds.ttl,
                    name=name,
                    clock=clock,
                    max_entries=self._settings.cache_max_entries,
                ),
                retry=ds.retry_policy(),
            )
            for name, ds in self._settings.datasets.items()
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def queue(self) -> RequestQueue:
        return self._queue

    @property
    def client(self) -> UpstreamClient:
        return self._client

    def dataset(self, name: str) -> DatasetSpec:
        return self._datasets[name]

    async def get_prices(self) -> DataResponse[list[MarketSnapshot]]:
        """설정된 코인들의 현재가 스냅샷."""
        symbols = list(self._settings.symbols)
        key = make_key(*symbols)

        async def fetch(retry: RetryPolicy) -> list[MarketSnapshot]:
            return await self._source.fetch_markets(self._client, symbols, retry)

        return await self._resolve(
            DATASET_PRICES, key, fetch, static=list(FALLBACK_MARKETS),
        )

    async def get_chart(
        self, coin_id: str = DEFAULT_COIN, days: int | str = DEFAULT_DAYS,
    ) -> DataResponse[list[ChartPoint]]:
        """일별 차트 시계열."""
        coin_id = normalize_coin_id(coin_id) or DEFAULT_COIN
        days = _parse_days(days)
        key = make_key(coin_id, days)

        async def fetch(retry: RetryPolicy) -> list[ChartPoint]:
            points = await self._source.fetch_series(
                self._client, coin_id, days, retry,
            )
            if not points:
                raise PayloadError(f"empty chart series: {coin_id}")
            return points

        return await self._resolve(
            DATASET_CHART, key, fetch,
            generator=lambda rng: simulate_chart(coin_id, days, rng, now=self._clock()),
        )

    async def get_historical(
        self, coin_id: str = DEFAULT_COIN,
    ) -> DataResponse[HistoricalSnapshot]:
        """기간별 과거 가격 (1d/1w/1m/1y)."""
        coin_id = normalize_coin_id(coin_id) or DEFAULT_COIN
        key = make_key(coin_id)

        async def fetch(retry: RetryPolicy) -> HistoricalSnapshot:
            points = await self._source.fetch_series(
                self._client, coin_id, _HISTORICAL_LOOKBACK_DAYS, retry,
            )
            return historical_from_series(coin_id, points, now=self._clock())

        return await self._resolve(
            DATASET_HISTORICAL, key, fetch,
            generator=lambda rng: simulate_historical(coin_id, rng),
            static=static_historical(coin_id),
        )

    async def reset(self) -> None:
        """캐시/큐/limiter 초기화 (테스트용)."""
        for spec in self._datasets.values():
            spec.cache.clear()
        await self._queue.reset()
        self._client.reset_limiter()
        logger.info("[MarketDataService] reset")

    async def close(self) -> None:
        """큐 종료 및 (소유한 경우) 클라이언트 종료."""
        await self._queue.reset()
        if self._owns_client:
            await self._client.close()

    async def __aenter__(self) -> "MarketDataService":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _resolve(
        self,
        dataset: str,
        key: Hashable,
        fetch: Callable[[RetryPolicy], Awaitable[V]],
        *,
        generator: Callable[[random.Random], Optional[V]] | None = None,
        static: V | None = None,
    ) -> DataResponse[V]:
        spec: DatasetSpec[V] = self._datasets[dataset]

        entry = spec.cache.get_fresh(key)
        if entry is not None:
            logger.debug("[%s] Cache hit: %s", dataset, key)
            return DataResponse(
                data=entry.value, cached=True,
                last_updated=entry.stored_at, provenance=Provenance.CACHE_HIT,
            )

        async def operation() -> tuple[CacheEntry[V], bool]:
            # 대기 중 앞선 요청이 같은 키를 채웠으면 재호출하지 않음
            current = spec.cache.get_fresh(key)
            if current is not None:
                return current, True
            value = await fetch(spec.retry)
            return spec.cache.set(key, value), False

        try:
            entry, from_cache = await self._queue.enqueue(operation)
        except _RECOVERABLE as e:
            logger.warning("[%s] 조회 실패, fallback 사용: %s — %s", dataset, key, e)
            resolution = self._fallback.resolve(
                key, spec.cache, generator=generator, static=static, failure=e,
            )
            return DataResponse(
                data=resolution.value,
                cached=resolution.provenance is Provenance.CACHED,
                last_updated=(
                    resolution.stored_at
                    if resolution.stored_at is not None
                    else self._clock()
                ),
                provenance=resolution.provenance,
                error=resolution.reason,
            )

        return DataResponse(
            data=entry.value,
            cached=from_cache,
            last_updated=entry.stored_at,
            provenance=Provenance.CACHE_HIT if from_cache else Provenance.FRESH,
        )


def _parse_days(days: int | str) -> int:
    """일수 파싱 (잘못된 값은 기본 7일, 상한 MAX_SERIES_DAYS)."""
    try:
        value = int(days)
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_DAYS
    if value <= 0:
        return DEFAULT_DAYS
    return min(value, MAX_SERIES_DAYS)
