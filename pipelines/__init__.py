"""파이프라인 모듈."""

from pipelines.fallback import FallbackPolicy, Provenance, Resolution
from pipelines.market_data import DataResponse, MarketDataService
from pipelines.settings import ServiceSettings, load_config

__all__ = [
    "DataResponse",
    "FallbackPolicy",
    "MarketDataService",
    "Provenance",
    "Resolution",
    "ServiceSettings",
    "load_config",
]
