"""Rate Limiter — 외부 가격 API 호출 간격/쿼터 관리.

두 가지 모델:
  - PacingLimiter: 마지막 디스패치 이후 최소 간격 보장 (RequestQueue 용)
  - SlidingWindowLimiter: window 초 동안 max_requests 회 (클라이언트 단독 사용)

공통 규칙:
  - try_acquire() 실패 시 상태 변경 없음 (쿼터 소모 X)
  - get_wait_time()은 다음 슬롯까지 정확한 대기 시간(초)
  - acquire()는 그만큼 sleep 후 재확인 (busy-spin 금지)
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

# CryptoCompare/CoinGecko free tier 기준
DEFAULT_MIN_INTERVAL = 1.2     # 1.2초 (분당 50회)
DEFAULT_MAX_REQUESTS = 10      # 분당 10회
DEFAULT_WINDOW = 60.0          # 1분


@dataclass(frozen=True)
class Acquisition:
    """try_acquire() 결과."""
    allowed: bool
    wait_time: float = 0.0     # 허용되지 않았을 때 다음 슬롯까지 대기(초)


class PacingLimiter:
    """최소 간격(pacing) 모델.

    마지막 디스패치 시각 하나만 기억한다. 슬롯을 얻은 직후의 호출은
    min_interval이 지날 때까지 항상 거부된다.
    """

    def __init__(
        self,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        *,
        clock: Callable[[], float] = time.monotonic,
        name: str = "pacing",
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self._min_interval = float(min_interval)
        self._clock = clock
        self._name = name
        self._last_dispatch: float | None = None

    @property
    def min_interval(self) -> float:
        return self._min_interval

    @property
    def last_dispatch(self) -> float | None:
        """마지막 디스패치 시각 (clock 기준)."""
        return self._last_dispatch

    def get_wait_time(self) -> float:
        """다음 디스패치까지 남은 시간(초)."""
        if self._last_dispatch is None:
            return 0.0
        elapsed = self._clock() - self._last_dispatch
        return max(0.0, self._min_interval - elapsed)

    def try_acquire(self) -> Acquisition:
        """슬롯 획득 시도. 실패 시 상태 변경 없음."""
        wait = self.get_wait_time()
        if wait > 0:
            return Acquisition(allowed=False, wait_time=wait)
        self._last_dispatch = self._clock()
        return Acquisition(allowed=True)

    async def acquire(self) -> None:
        """슬롯을 얻을 때까지 대기."""
        while True:
            result = self.try_acquire()
            if result.allowed:
                return
            logger.debug(
                "[RateLimiter:%s] 대기: %.3f초", self._name, result.wait_time,
            )
            await asyncio.sleep(result.wait_time)

    def reset(self) -> None:
        """상태 초기화 (테스트용)."""
        self._last_dispatch = None


class SlidingWindowLimiter:
    """슬라이딩 윈도우 쿼터 모델.

    window 초 안에 허용된 요청 타임스탬프만 보관한다. 거부된 시도는
    기록하지 않는다.
    """

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window: float = DEFAULT_WINDOW,
        *,
        clock: Callable[[], float] = time.monotonic,
        name: str = "window",
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window <= 0:
            raise ValueError("window must be > 0")
        self._max_requests = max_requests
        self._window = float(window)
        self._clock = clock
        self._name = name
        self._timestamps: deque[float] = deque()

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window(self) -> float:
        return self._window

    @property
    def in_window(self) -> int:
        """현재 윈도우 안의 요청 수."""
        self._prune(self._clock())
        return len(self._timestamps)

    def _prune(self, now: float) -> None:
        # 만료 타임스탬프 제거는 쿼터 소모가 아니다
        while self._timestamps and now - self._timestamps[0] >= self._window:
            self._timestamps.popleft()

    def get_wait_time(self) -> float:
        """가장 오래된 요청이 윈도우를 벗어날 때까지 남은 시간(초)."""
        now = self._clock()
        self._prune(now)
        if len(self._timestamps) < self._max_requests:
            return 0.0
        return max(0.0, self._window - (now - self._timestamps[0]))

    def try_acquire(self) -> Acquisition:
        """슬롯 획득 시도. 실패 시 쿼터 소모 없음."""
        wait = self.get_wait_time()
        if wait > 0:
            return Acquisition(allowed=False, wait_time=wait)
        self._timestamps.append(self._clock())
        return Acquisition(allowed=True)

    async def acquire(self) -> None:
        """쿼터가 열릴 때까지 대기."""
        while True:
            result = self.try_acquire()
            if result.allowed:
                return
            logger.debug(
                "[RateLimiter:%s] 쿼터 소진 (%d/%.0fs), 대기: %.2f초",
                self._name, self._max_requests, self._window, result.wait_time,
            )
            await asyncio.sleep(result.wait_time)

    def reset(self) -> None:
        """상태 초기화 (테스트용)."""
        self._timestamps.clear()
