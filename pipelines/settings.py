"""파이프라인 설정 로드.

config/market_data.yaml → ServiceSettings.
파일 없음/파싱 실패 → warning 로그 후 기본값 사용.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from collectors.api_client import RetryPolicy, UpstreamConfig
from collectors.rate_limiter import (
    DEFAULT_MAX_REQUESTS,
    DEFAULT_MIN_INTERVAL,
    DEFAULT_WINDOW,
)
from store.cache import TTL_CHART, TTL_HISTORICAL, TTL_PRICES

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "market_data.yaml"

DATASET_PRICES = "prices"
DATASET_CHART = "chart"
DATASET_HISTORICAL = "historical"

_DEFAULT_TTLS = {
    DATASET_PRICES: TTL_PRICES,
    DATASET_CHART: TTL_CHART,
    DATASET_HISTORICAL: TTL_HISTORICAL,
}


def load_config(path: str | Path | None = None) -> dict:
    """YAML 설정 로드."""
    path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    if not path.exists():
        logger.warning("설정 파일 미발견, 기본값 사용: %s", path)
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("설정 파일 파싱 실패, 기본값 사용: %s (%s)", path, e)
        return {}


@dataclass
class DatasetSettings:
    """데이터셋별 TTL / 재시도 설정."""
    ttl: float
    max_retries: int = 3
    base_delay: float = 1.0
    rate_limit_backoff: float = 60.0
    max_retry_after: float = 300.0

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            rate_limit_backoff=self.rate_limit_backoff,
            max_retry_after=self.max_retry_after,
        )


@dataclass
class ServiceSettings:
    """MarketDataService 설정."""
    provider: str = "cryptocompare"
    currency: str = "USD"
    symbols: list[str] = field(default_factory=lambda: ["BTC", "ETH", "SOL", "USDC"])

    min_interval: float = DEFAULT_MIN_INTERVAL

    quota_enabled: bool = True
    quota_max_requests: int = DEFAULT_MAX_REQUESTS
    quota_window: float = DEFAULT_WINDOW

    total_timeout: float = 10.0
    connect_timeout: float = 5.0
    user_agent: str = "CryptoVault/1.0"

    cache_max_entries: Optional[int] = None
    fallback_seed: Optional[int] = None

    datasets: dict[str, DatasetSettings] = field(
        default_factory=lambda: {
            name: DatasetSettings(ttl=ttl) for name, ttl in _DEFAULT_TTLS.items()
        }
    )

    @classmethod
    def from_config(cls, config: dict | None) -> "ServiceSettings":
        """설정 dict → ServiceSettings (누락 항목은 기본값)."""
        config = config or {}
        queue = config.get("queue") or {}
        quota = config.get("quota") or {}
        http = config.get("http") or {}
        cache = config.get("cache") or {}
        fallback = config.get("fallback") or {}
        defaults = cls()

        datasets = {}
        raw_datasets = config.get("datasets") or {}
        for name, ttl in _DEFAULT_TTLS.items():
            datasets[name] = _dataset_from(raw_datasets.get(name) or {}, ttl)

        return cls(
            provider=str(config.get("provider", defaults.provider)),
            currency=str(config.get("currency", defaults.currency)),
            symbols=[str(s) for s in config.get("symbols") or defaults.symbols],
            min_interval=float(queue.get("min_interval", defaults.min_interval)),
            quota_enabled=bool(quota.get("enabled", defaults.quota_enabled)),
            quota_max_requests=int(
                quota.get("max_requests", defaults.quota_max_requests)
            ),
            quota_window=float(quota.get("window", defaults.quota_window)),
            total_timeout=float(http.get("total_timeout", defaults.total_timeout)),
            connect_timeout=float(
                http.get("connect_timeout", defaults.connect_timeout)
            ),
            user_agent=str(http.get("user_agent", defaults.user_agent)),
            cache_max_entries=_optional_int(cache.get("max_entries")),
            fallback_seed=_optional_int(fallback.get("seed")),
            datasets=datasets,
        )

    def upstream_config(self) -> UpstreamConfig:
        return UpstreamConfig(
            total_timeout=self.total_timeout,
            connect_timeout=self.connect_timeout,
            user_agent=self.user_agent,
        )


def _dataset_from(raw: dict[str, Any], default_ttl: float) -> DatasetSettings:
    base = DatasetSettings(ttl=default_ttl)
    return DatasetSettings(
        ttl=float(raw.get("ttl", base.ttl)),
        max_retries=int(raw.get("max_retries", base.max_retries)),
        base_delay=float(raw.get("base_delay", base.base_delay)),
        rate_limit_backoff=float(
            raw.get("rate_limit_backoff", base.rate_limit_backoff)
        ),
        max_retry_after=float(raw.get("max_retry_after", base.max_retry_after)),
    )


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    return int(value)
