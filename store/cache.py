"""데이터셋별 TTL 캐시.

3단계 TTL (데이터 변동성이 클수록 짧게):
  - prices(15s): 현재가 스냅샷
  - chart(15min): 일별 차트 시계열
  - historical(2h): 기간별 과거 가격 (1d/1w/1m/1y)

Stale 엔트리는 삭제하지 않고 덮어쓸 때까지 보존한다.
API 실패 시 첫 번째 fallback 소스로 사용된다.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Hashable, Optional, TypeVar

logger = logging.getLogger(__name__)

# TTL 상수 (초)
TTL_PRICES = 15.0          # 15초
TTL_CHART = 900.0          # 15분
TTL_HISTORICAL = 7_200.0   # 2시간

V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """캐시 엔트리."""
    value: V
    stored_at: float

    def age(self, now: float) -> float:
        return now - self.stored_at


def make_key(*parts: Any) -> str:
    """캐시 키 생성 (e.g., make_key("bitcoin", 7) → "bitcoin-7")."""
    return "-".join(str(p).lower() for p in parts)


class TTLCache(Generic[V]):
    """키 기반 인메모리 TTL 캐시.

    - get()은 만료 여부와 관계없이 엔트리 반환 (판정은 is_fresh)
    - max_entries 지정 시 새 키 추가 때 가장 오래된 엔트리 제거
    """

    def __init__(
        self,
        ttl: float,
        *,
        name: str = "default",
        clock: Callable[[], float] = time.time,
        max_entries: int | None = None,
    ) -> None:
        """
        Args:
            ttl: 유효 시간 (초).
            name: 로그 식별자.
            clock: 시각 함수 (테스트 시 주입).
            max_entries: 최대 엔트리 수 (None이면 무제한).
        """
        if ttl <= 0:
            raise ValueError("ttl must be > 0")
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._ttl = float(ttl)
        self._name = name
        self._clock = clock
        self._max_entries = max_entries
        self._entries: dict[Hashable, CacheEntry[V]] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    @property
    def name(self) -> str:
        return self._name

    def now(self) -> float:
        return self._clock()

    def get(self, key: Hashable) -> Optional[CacheEntry[V]]:
        """엔트리 조회 (stale 포함)."""
        return self._entries.get(key)

    def get_fresh(self, key: Hashable) -> Optional[CacheEntry[V]]:
        """유효한 엔트리만 조회."""
        entry = self._entries.get(key)
        if entry is not None and self.is_fresh(entry):
            return entry
        return None

    def set(self, key: Hashable, value: V) -> CacheEntry[V]:
        """값 저장 (기존 엔트리 덮어쓰기)."""
        if (
            self._max_entries is not None
            and key not in self._entries
            and len(self._entries) >= self._max_entries
        ):
            self._evict_oldest()
        entry = CacheEntry(value=value, stored_at=self._clock())
        self._entries[key] = entry
        return entry

    def is_fresh(self, entry: CacheEntry[V]) -> bool:
        return self._clock() - entry.stored_at < self._ttl

    def invalidate(self, key: Hashable) -> None:
        """특정 키 무효화."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        """전체 캐시 초기화."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def _evict_oldest(self) -> None:
        oldest = min(self._entries, key=lambda k: self._entries[k].stored_at)
        logger.debug(
            "[TTLCache:%s] max_entries=%d 초과, 제거: %s",
            self._name, self._max_entries, oldest,
        )
        del self._entries[oldest]
