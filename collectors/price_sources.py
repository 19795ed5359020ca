"""가격 데이터 소스 (CryptoCompare / CoinGecko).

각 소스는 두 가지 엔드포인트만 사용한다:
  - fetch_markets: 다중 코인 현재가 스냅샷
  - fetch_series: 코인 1개 일별 시계열 (lookback 일수)

응답은 normalizers 모듈로 정규화하여 공통 레코드로 반환.
"""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from collectors.api_client import RetryPolicy, UpstreamClient, get_api_key
from normalizers import coingecko, cryptocompare
from normalizers.records import ChartPoint, MarketSnapshot
from normalizers.symbol_map import normalize_symbol, to_coin_id, to_symbol

logger = logging.getLogger(__name__)

CRYPTOCOMPARE_BASE = "https://min-api.cryptocompare.com"
COINGECKO_BASE = "https://api.coingecko.com/api/v3"

# 시계열 일수 상한 (CryptoCompare histoday limit 기준)
MAX_SERIES_DAYS = 2000


class PriceSource(Protocol):
    """가격 데이터 소스 인터페이스."""

    name: str

    async def fetch_markets(
        self,
        client: UpstreamClient,
        symbols: Sequence[str],
        retry: RetryPolicy | None = None,
    ) -> list[MarketSnapshot]:
        ...

    async def fetch_series(
        self,
        client: UpstreamClient,
        coin_id: str,
        days: int,
        retry: RetryPolicy | None = None,
    ) -> list[ChartPoint]:
        ...


class CryptoCompareSource:
    """CryptoCompare min-api."""

    name = "cryptocompare"

    def __init__(
        self,
        api_key: str | None = None,
        *,
        currency: str = "USD",
        base_url: str = CRYPTOCOMPARE_BASE,
    ) -> None:
        self._api_key = api_key if api_key is not None else get_api_key(
            "CRYPTOCOMPARE_API_KEY"
        )
        self._currency = currency.upper()
        self._base_url = base_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        if self._api_key:
            return {"Authorization": f"Apikey {self._api_key}"}
        return {}

    async def fetch_markets(
        self,
        client: UpstreamClient,
        symbols: Sequence[str],
        retry: RetryPolicy | None = None,
    ) -> list[MarketSnapshot]:
        syms = [normalize_symbol(s) for s in symbols]
        payload = await client.get_json(
            f"{self._base_url}/data/pricemultifull",
            params={"fsyms": ",".join(syms), "tsyms": self._currency},
            headers=self._headers(),
            retry=retry,
        )
        return cryptocompare.parse_price_multifull(payload, syms, self._currency)

    async def fetch_series(
        self,
        client: UpstreamClient,
        coin_id: str,
        days: int,
        retry: RetryPolicy | None = None,
    ) -> list[ChartPoint]:
        limit = max(1, min(int(days), MAX_SERIES_DAYS))
        payload = await client.get_json(
            f"{self._base_url}/data/v2/histoday",
            params={
                "fsym": to_symbol(coin_id),
                "tsym": self._currency,
                "limit": str(limit),
            },
            headers=self._headers(),
            retry=retry,
        )
        return cryptocompare.parse_histoday(payload)


class CoinGeckoSource:
    """CoinGecko v3 (Free tier, Pro 키 선택)."""

    name = "coingecko"

    def __init__(
        self,
        api_key: str | None = None,
        *,
        currency: str = "USD",
        base_url: str = COINGECKO_BASE,
    ) -> None:
        self._api_key = api_key if api_key is not None else get_api_key(
            "COINGECKO_API_KEY"
        )
        self._currency = currency.lower()
        self._base_url = base_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        if self._api_key:
            return {"x-cg-pro-api-key": self._api_key}
        return {}

    async def fetch_markets(
        self,
        client: UpstreamClient,
        symbols: Sequence[str],
        retry: RetryPolicy | None = None,
    ) -> list[MarketSnapshot]:
        ids = [to_coin_id(s) for s in symbols]
        payload = await client.get_json(
            f"{self._base_url}/coins/markets",
            params={
                "vs_currency": self._currency,
                "ids": ",".join(ids),
                "order": "market_cap_desc",
                "sparkline": "false",
            },
            headers=self._headers(),
            retry=retry,
        )
        snapshots = coingecko.parse_markets(payload)
        # 요청 순서 유지
        order = {cid: i for i, cid in enumerate(ids)}
        return sorted(snapshots, key=lambda s: order.get(s.id, len(order)))

    async def fetch_series(
        self,
        client: UpstreamClient,
        coin_id: str,
        days: int,
        retry: RetryPolicy | None = None,
    ) -> list[ChartPoint]:
        payload = await client.get_json(
            f"{self._base_url}/coins/{coin_id}/market_chart",
            params={
                "vs_currency": self._currency,
                "days": str(max(1, min(int(days), MAX_SERIES_DAYS))),
                "interval": "daily",
            },
            headers=self._headers(),
            retry=retry,
        )
        return coingecko.parse_market_chart(payload)


def build_source(provider: str, *, currency: str = "USD") -> PriceSource:
    """설정 이름 → PriceSource."""
    key = (provider or "").strip().lower()
    if key == CryptoCompareSource.name:
        return CryptoCompareSource(currency=currency)
    if key == CoinGeckoSource.name:
        return CoinGeckoSource(currency=currency)
    raise ValueError(f"unknown price provider: {provider!r}")
