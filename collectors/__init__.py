"""Collectors package.

외부 가격 API 수집 모듈:
  - rate_limiter: PacingLimiter / SlidingWindowLimiter
  - request_queue: FIFO 직렬화 요청 큐 (단일 drain loop)
  - api_client: UpstreamClient + fetch_with_retry (재시도/에러 분류)
  - price_sources: CryptoCompare / CoinGecko 소스

Note: aiohttp 의존 모듈은 lazy import (필요시 import)로 시작 시간 최적화.
      직접 사용 시: from collectors.api_client import UpstreamClient
"""

__all__ = [
    # Rate limiting / queue
    "Acquisition",
    "PacingLimiter",
    "SlidingWindowLimiter",
    "RequestQueue",
    "QueueResetError",
    # API Client Infrastructure (lazy import)
    "UpstreamClient",
    "UpstreamConfig",
    "RetryPolicy",
    "FetchAttempt",
    "OutcomeKind",
    "FetchError",
    "ClientRequestError",
    "ExhaustedRetriesError",
    "fetch_with_retry",
    "get_api_key",
    # Price sources (lazy import)
    "CryptoCompareSource",
    "CoinGeckoSource",
    "build_source",
]


def __getattr__(name: str):
    """Lazy import."""
    if name in ("Acquisition", "PacingLimiter", "SlidingWindowLimiter"):
        from collectors.rate_limiter import (
            Acquisition, PacingLimiter, SlidingWindowLimiter,
        )
        return locals()[name]
    elif name in ("RequestQueue", "QueueResetError"):
        from collectors.request_queue import RequestQueue, QueueResetError
        return locals()[name]
    elif name in ("UpstreamClient", "UpstreamConfig", "RetryPolicy",
                  "FetchAttempt", "OutcomeKind", "FetchError",
                  "ClientRequestError", "ExhaustedRetriesError",
                  "fetch_with_retry", "get_api_key"):
        from collectors.api_client import (
            UpstreamClient, UpstreamConfig, RetryPolicy, FetchAttempt,
            OutcomeKind, FetchError, ClientRequestError,
            ExhaustedRetriesError, fetch_with_retry, get_api_key,
        )
        return locals()[name]
    elif name in ("CryptoCompareSource", "CoinGeckoSource", "build_source"):
        from collectors.price_sources import (
            CryptoCompareSource, CoinGeckoSource, build_source,
        )
        return locals()[name]
    raise AttributeError(f"module 'collectors' has no attribute '{name}'")
