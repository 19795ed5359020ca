"""요청 큐 테스트 (FIFO, pacing, 단일 drain loop, 실패 격리)."""

import asyncio
import time

import pytest

from collectors.request_queue import QueueResetError, RequestQueue


def _recorder(log: list, value, *, delay: float = 0.0):
    """실행 시각을 기록하는 operation."""

    async def operation():
        log.append((value, time.monotonic()))
        if delay:
            await asyncio.sleep(delay)
        return value

    return operation


class TestRequestQueueOrdering:
    """FIFO / pacing."""

    @pytest.mark.asyncio
    async def test_five_tasks_drain_in_order_with_spacing(self):
        """동시 5건 → 제출 순서대로, 총 소요 ≥ 4 × interval."""
        interval = 0.1
        queue = RequestQueue(min_interval=interval, name="test")
        log: list = []

        start = time.monotonic()
        results = await asyncio.gather(
            *(queue.enqueue(_recorder(log, i)) for i in range(5))
        )
        elapsed = time.monotonic() - start

        assert results == [0, 1, 2, 3, 4]
        assert [v for v, _ in log] == [0, 1, 2, 3, 4]
        assert elapsed >= 4 * interval - 0.005

    @pytest.mark.asyncio
    async def test_dispatch_spacing_invariant(self):
        """연속 디스패치 간격은 항상 min_interval 이상."""
        interval = 0.05
        queue = RequestQueue(min_interval=interval)
        log: list = []

        await asyncio.gather(*(queue.enqueue(_recorder(log, i)) for i in range(6)))

        times = [t for _, t in log]
        gaps = [b - a for a, b in zip(times, times[1:])]
        assert all(g >= interval - 0.002 for g in gaps), gaps

    @pytest.mark.asyncio
    async def test_at_most_one_in_flight(self):
        """동시 실행 작업은 최대 1개."""
        queue = RequestQueue(min_interval=0)
        state = {"running": 0, "peak": 0}

        async def operation():
            state["running"] += 1
            state["peak"] = max(state["peak"], state["running"])
            await asyncio.sleep(0.01)
            state["running"] -= 1
            return True

        await asyncio.gather(*(queue.enqueue(operation) for _ in range(8)))
        assert state["peak"] == 1
        assert queue.dispatched == 8


class TestRequestQueueFailures:
    """작업 실패 격리."""

    @pytest.mark.asyncio
    async def test_failure_rejects_only_its_caller(self):
        """실패한 작업의 호출자만 예외를 받고 큐는 계속 진행."""
        queue = RequestQueue(min_interval=0)

        async def boom():
            raise ValueError("upstream exploded")

        async def ok():
            return "ok"

        results = await asyncio.gather(
            queue.enqueue(ok),
            queue.enqueue(boom),
            queue.enqueue(ok),
            return_exceptions=True,
        )
        assert results[0] == "ok"
        assert isinstance(results[1], ValueError)
        assert str(results[1]) == "upstream exploded"
        assert results[2] == "ok"

    @pytest.mark.asyncio
    async def test_failure_is_logged(self, caplog):
        """실패는 warning 로그로 남음."""
        queue = RequestQueue(min_interval=0, name="logtest")

        async def boom():
            raise RuntimeError("nope")

        with pytest.raises(RuntimeError):
            await queue.enqueue(boom)
        assert any("logtest" in r.getMessage() for r in caplog.records)


class TestRequestQueueDrainLoop:
    """drain loop 재진입 방지 / 재시작."""

    @pytest.mark.asyncio
    async def test_single_drain_loop(self):
        """동시 enqueue 여러 건에도 drain loop는 하나."""
        queue = RequestQueue(min_interval=0)
        started = []
        original = queue._drain

        def counting_drain():
            started.append(1)
            return original()

        queue._drain = counting_drain
        log: list = []
        await asyncio.gather(
            *(queue.enqueue(_recorder(log, i, delay=0.005)) for i in range(5))
        )
        assert len(started) == 1

    @pytest.mark.asyncio
    async def test_restarts_after_idle(self):
        """유휴 후 새 작업이 오면 drain loop 재시작."""
        queue = RequestQueue(min_interval=0)

        async def one():
            return 1

        assert await queue.enqueue(one) == 1
        await queue.join()
        assert not queue.is_draining

        assert await queue.enqueue(one) == 1
        assert queue.dispatched == 2

    @pytest.mark.asyncio
    async def test_enqueue_while_draining_joins_existing_loop(self):
        """drain 중 추가된 작업은 같은 loop에서 처리."""
        queue = RequestQueue(min_interval=0)
        log: list = []

        first = asyncio.ensure_future(queue.enqueue(_recorder(log, "a", delay=0.02)))
        await asyncio.sleep(0)
        assert queue.is_draining
        task = queue._drain_task

        second = asyncio.ensure_future(queue.enqueue(_recorder(log, "b")))
        await asyncio.sleep(0)
        assert queue._drain_task is task

        assert await first == "a"
        assert await second == "b"

    @pytest.mark.asyncio
    async def test_reset_rejects_pending(self):
        """reset()은 대기 작업을 QueueResetError로 거부."""
        queue = RequestQueue(min_interval=10.0)

        async def one():
            return 1

        assert await queue.enqueue(one) == 1
        # 다음 작업은 10초 pacing 대기 중
        pending = asyncio.ensure_future(queue.enqueue(one))
        await asyncio.sleep(0.01)
        assert queue.pending == 1

        await queue.reset()
        with pytest.raises(QueueResetError):
            await pending
        assert queue.pending == 0
        assert queue.limiter.last_dispatch is None
