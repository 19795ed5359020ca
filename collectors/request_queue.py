"""요청 직렬화 큐.

외부 API 호출을 FIFO로 한 번에 하나씩 실행하고, 각 디스패치 사이에
PacingLimiter의 min_interval을 보장한다.

규칙:
  - 큐 처리는 단일 drain loop가 담당 (동시에 두 개 실행 금지)
  - 유휴 상태에서 새 작업이 들어오면 drain loop 재시작
  - 개별 작업 실패 → warning 로그 후 다음 작업 진행,
    해당 호출자의 future에는 원래 예외 전달
  - 개별 작업 취소는 지원하지 않음 (필요 시 호출자가 asyncio.wait_for 사용)
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from collectors.rate_limiter import DEFAULT_MIN_INTERVAL, PacingLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class QueueResetError(Exception):
    """reset()으로 폐기된 대기 작업에 전달되는 예외."""


@dataclass
class QueuedTask:
    """대기 중인 작업."""
    operation: Callable[[], Awaitable[Any]]
    future: asyncio.Future


class RequestQueue:
    """Rate limit 준수를 위한 직렬화 요청 큐.

    사용법:
        queue = RequestQueue(min_interval=1.2)
        data = await queue.enqueue(lambda: client.get_json(url))
    """

    def __init__(
        self,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        *,
        limiter: PacingLimiter | None = None,
        name: str = "default",
    ) -> None:
        """
        Args:
            min_interval: 디스패치 간 최소 간격(초). limiter가 주어지면 무시.
            limiter: 공유 PacingLimiter.
            name: 로그 식별자.
        """
        self._limiter = limiter or PacingLimiter(min_interval, name=name)
        self._name = name
        self._tasks: deque[QueuedTask] = deque()
        self._drain_task: Optional[asyncio.Task] = None
        self._dispatched = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def limiter(self) -> PacingLimiter:
        return self._limiter

    @property
    def pending(self) -> int:
        """대기 중인 작업 수 (실행 중 제외)."""
        return len(self._tasks)

    @property
    def dispatched(self) -> int:
        """지금까지 디스패치된 작업 수."""
        return self._dispatched

    @property
    def is_draining(self) -> bool:
        """drain loop 실행 여부."""
        return self._drain_task is not None and not self._drain_task.done()

    async def enqueue(self, operation: Callable[[], Awaitable[T]]) -> T:
        """작업 등록 후 결과 대기.

        Args:
            operation: 인자 없는 코루틴 함수 (호출 시 awaitable 반환).

        Returns:
            operation 결과.

        Raises:
            operation이 발생시킨 예외 그대로.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._tasks.append(QueuedTask(operation=operation, future=future))
        self._ensure_draining()
        return await future

    async def join(self) -> None:
        """현재 drain loop 종료까지 대기."""
        if self._drain_task is not None:
            await asyncio.shield(self._drain_task)

    async def reset(self) -> None:
        """drain loop 중단, 대기 작업 폐기, limiter 초기화."""
        task, self._drain_task = self._drain_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        dropped = 0
        while self._tasks:
            queued = self._tasks.popleft()
            if not queued.future.done():
                queued.future.set_exception(
                    QueueResetError(f"queue '{self._name}' reset"),
                )
                dropped += 1
        self._limiter.reset()
        self._dispatched = 0
        if dropped:
            logger.info("[RequestQueue:%s] reset, %d건 폐기", self._name, dropped)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _ensure_draining(self) -> None:
        """drain loop가 없으면 시작 (재진입 방지)."""
        if self.is_draining:
            return
        self._drain_task = asyncio.create_task(
            self._drain(), name=f"request-queue-{self._name}",
        )

    async def _drain(self) -> None:
        """큐가 빌 때까지 작업을 하나씩 실행."""
        while self._tasks:
            await self._limiter.acquire()
            queued = self._tasks.popleft()
            self._dispatched += 1
            try:
                result = await queued.operation()
            except asyncio.CancelledError:
                if not queued.future.done():
                    queued.future.set_exception(
                        QueueResetError(f"queue '{self._name}' reset"),
                    )
                raise
            except Exception as e:
                logger.warning(
                    "[RequestQueue:%s] 작업 실패: %s: %s",
                    self._name, type(e).__name__, e,
                )
                if not queued.future.done():
                    queued.future.set_exception(e)
                continue

            if not queued.future.done():
                queued.future.set_result(result)
