"""HTTP 클라이언트 인프라 — 가격 API 호출 + 재시도.

재시도 정책 (fetch_with_retry):
  - CLIENT_ERROR (429 제외 4xx): 즉시 실패, 재시도 없음
  - RATE_LIMITED (429): Retry-After 헤더 준수, 없으면 고정 백오프(60초)
  - SERVER_ERROR (5xx) / NETWORK_ERROR: base_delay * 시도횟수 만큼 대기 후 재시도
  - max_retries 소진 → ExhaustedRetriesError (마지막 결과 포함)

빈 데이터를 조용히 반환하지 않는다. Fallback은 호출자(MarketDataService) 책임.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional

import aiohttp

from collectors.rate_limiter import SlidingWindowLimiter

logger = logging.getLogger(__name__)


# =============================================================================
# Fetch Outcome
# =============================================================================


class OutcomeKind(Enum):
    """단일 업스트림 호출 결과 분류."""
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"     # 429
    SERVER_ERROR = "server_error"     # 5xx
    CLIENT_ERROR = "client_error"     # 429 외 4xx
    NETWORK_ERROR = "network_error"   # 연결 실패/타임아웃


@dataclass(frozen=True)
class FetchAttempt:
    """업스트림 호출 1회 결과."""
    kind: OutcomeKind
    status: Optional[int] = None
    payload: Any = None
    retry_after: Optional[float] = None   # 429 응답의 Retry-After (초)
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @classmethod
    def success(cls, payload: Any, status: int = 200) -> "FetchAttempt":
        return cls(OutcomeKind.SUCCESS, status=status, payload=payload)

    @classmethod
    def from_status(
        cls,
        status: int,
        *,
        retry_after: Optional[float] = None,
        detail: str = "",
    ) -> "FetchAttempt":
        """HTTP 상태 코드로 실패 결과 분류."""
        if status == 429:
            kind = OutcomeKind.RATE_LIMITED
        elif status >= 500:
            kind = OutcomeKind.SERVER_ERROR
        else:
            kind = OutcomeKind.CLIENT_ERROR
        return cls(kind, status=status, retry_after=retry_after, detail=detail)

    @classmethod
    def network_error(cls, detail: str) -> "FetchAttempt":
        return cls(OutcomeKind.NETWORK_ERROR, detail=detail)

    def describe(self) -> str:
        if self.status is not None:
            return f"{self.kind.value} (HTTP {self.status})"
        if self.detail:
            return f"{self.kind.value} ({self.detail})"
        return self.kind.value


class FetchError(Exception):
    """업스트림 호출 실패 (outcome 포함)."""

    def __init__(self, message: str, outcome: FetchAttempt) -> None:
        super().__init__(message)
        self.outcome = outcome

    @property
    def rate_limited(self) -> bool:
        return self.outcome.kind is OutcomeKind.RATE_LIMITED


class ClientRequestError(FetchError):
    """재시도 불가 4xx (요청 자체가 잘못됨)."""


class ExhaustedRetriesError(FetchError):
    """재시도 소진."""

    def __init__(self, message: str, outcome: FetchAttempt, attempts: int) -> None:
        super().__init__(message, outcome)
        self.attempts = attempts


# =============================================================================
# Retry
# =============================================================================


@dataclass
class RetryPolicy:
    """재시도 설정."""
    max_retries: int = 3                # 첫 시도 이후 재시도 횟수
    base_delay: float = 1.0             # 5xx/네트워크 오류: base_delay * 시도횟수
    rate_limit_backoff: float = 60.0    # 429 + Retry-After 없음
    max_retry_after: float = 300.0      # Retry-After 상한

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")

    def delay_for(self, outcome: FetchAttempt, attempt: int) -> float:
        """attempt번째 시도 실패 후 대기 시간(초)."""
        if outcome.kind is OutcomeKind.RATE_LIMITED:
            if outcome.retry_after is not None:
                return min(max(outcome.retry_after, 0.0), self.max_retry_after)
            return self.rate_limit_backoff
        return self.base_delay * attempt


def parse_retry_after(value: str | None, now: datetime | None = None) -> Optional[float]:
    """Retry-After 헤더 파싱 (초 단위 정수 또는 HTTP-date)."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (when - now).total_seconds())


async def fetch_with_retry(
    attempt_fn: Callable[[], Awaitable[FetchAttempt]],
    policy: RetryPolicy | None = None,
    *,
    limiter: SlidingWindowLimiter | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    name: str = "default",
) -> Any:
    """업스트림 호출 + 재시도.

    Args:
        attempt_fn: 1회 호출을 수행하고 FetchAttempt를 반환하는 코루틴 함수.
        policy: 재시도 정책.
        limiter: 시도마다 획득할 쿼터 limiter (선택).
        sleep: 대기 함수 (테스트 시 주입).
        name: 로그 식별자.

    Returns:
        성공 payload.

    Raises:
        ClientRequestError: 429 외 4xx.
        ExhaustedRetriesError: 재시도 소진.
    """
    policy = policy or RetryPolicy()
    total = policy.max_retries + 1
    attempt = 0

    while True:
        attempt += 1
        if limiter is not None:
            await limiter.acquire()

        outcome = await attempt_fn()
        if outcome.ok:
            return outcome.payload

        if outcome.kind is OutcomeKind.CLIENT_ERROR:
            logger.warning(
                "[%s] Client error, 재시도 안함: %s", name, outcome.describe(),
            )
            raise ClientRequestError(
                f"{name}: {outcome.describe()}", outcome,
            )

        if attempt >= total:
            logger.warning(
                "[%s] All retries failed (%d attempts): %s",
                name, total, outcome.describe(),
            )
            raise ExhaustedRetriesError(
                f"{name}: retries exhausted after {total} attempts: "
                f"{outcome.describe()}",
                outcome,
                attempts=total,
            )

        delay = policy.delay_for(outcome, attempt)
        logger.warning(
            "[%s] %s (attempt %d/%d), %.1f초 후 재시도",
            name, outcome.describe(), attempt, total, delay,
        )
        await sleep(delay)


# =============================================================================
# Upstream HTTP Client
# =============================================================================


@dataclass
class UpstreamConfig:
    """UpstreamClient 설정."""
    total_timeout: float = 10.0
    connect_timeout: float = 5.0
    user_agent: str = "CryptoVault/1.0"
    headers: dict[str, str] = field(default_factory=dict)
    retry: RetryPolicy = field(default_factory=RetryPolicy)


class UpstreamClient:
    """가격 API용 HTTP 클라이언트.

    - 세션 lazy 생성, 요청별 타임아웃 (hung 요청이 디스패치 슬롯을 막지 않도록)
    - 응답을 FetchAttempt로 분류 후 fetch_with_retry 적용

    사용법:
        client = UpstreamClient(UpstreamConfig(), name="cryptocompare")
        data = await client.get_json("https://min-api.cryptocompare.com/...")
        await client.close()
    """

    def __init__(
        self,
        config: UpstreamConfig | None = None,
        *,
        limiter: SlidingWindowLimiter | None = None,
        name: str = "default",
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config or UpstreamConfig()
        self._limiter = limiter
        self._name = name
        self._sleep = sleep
        self._session: Optional[aiohttp.ClientSession] = None
        self._calls = 0

    @property
    def calls(self) -> int:
        """실제 HTTP 요청 횟수 (재시도 포함)."""
        return self._calls

    @property
    def limiter(self) -> SlidingWindowLimiter | None:
        return self._limiter

    def reset_limiter(self) -> None:
        """쿼터 윈도우 초기화 (limiter 없으면 무시)."""
        if self._limiter is not None:
            self._limiter.reset()

    async def get_json(
        self,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        retry: RetryPolicy | None = None,
    ) -> Any:
        """GET 요청 (JSON).

        Args:
            url: 요청 URL.
            params: 쿼리 파라미터.
            headers: 추가 헤더.
            retry: 요청별 재시도 정책 (None이면 기본값).

        Returns:
            JSON 응답.

        Raises:
            ClientRequestError / ExhaustedRetriesError.
        """

        async def attempt() -> FetchAttempt:
            return await self._attempt(url, params=params, headers=headers)

        return await fetch_with_retry(
            attempt,
            retry or self._config.retry,
            limiter=self._limiter,
            sleep=self._sleep,
            name=self._name,
        )

    async def close(self) -> None:
        """세션 종료."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
        logger.info("[%s] HTTP client closed", self._name)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _get_session(self) -> aiohttp.ClientSession:
        """세션 lazy 생성."""
        if self._session is None or self._session.closed:
            headers = {
                "Accept": "application/json",
                "User-Agent": self._config.user_agent,
                **self._config.headers,
            }
            self._session = aiohttp.ClientSession(headers=headers)
        return self._session

    async def _attempt(
        self,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> FetchAttempt:
        """HTTP 요청 1회 → FetchAttempt."""
        self._calls += 1
        timeout = aiohttp.ClientTimeout(
            total=self._config.total_timeout,
            connect=self._config.connect_timeout,
        )
        try:
            session = await self._get_session()
            async with session.get(
                url, params=params, headers=headers, timeout=timeout,
            ) as resp:
                return await classify_response(resp)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("[%s] Request failed: %s — %r", self._name, url, e)
            return FetchAttempt.network_error(type(e).__name__)


async def classify_response(resp: aiohttp.ClientResponse) -> FetchAttempt:
    """HTTP 응답 → FetchAttempt."""
    if 200 <= resp.status < 300:
        try:
            payload = await resp.json(content_type=None)
        except ValueError as e:
            # 200이지만 JSON이 아님 → 일시적 서버 문제로 취급
            return FetchAttempt(
                OutcomeKind.SERVER_ERROR, status=resp.status,
                detail=f"invalid JSON: {e}",
            )
        return FetchAttempt.success(payload, status=resp.status)

    retry_after = None
    if resp.status == 429:
        retry_after = parse_retry_after(resp.headers.get("Retry-After"))
    return FetchAttempt.from_status(
        resp.status, retry_after=retry_after, detail=resp.reason or "",
    )


# =============================================================================
# Helper: 환경변수에서 API 키 로드
# =============================================================================


def get_api_key(env_name: str, required: bool = False) -> str | None:
    """환경변수에서 API 키 로드.

    Args:
        env_name: 환경변수 이름.
        required: 필수 여부.

    Returns:
        API 키 또는 None.

    Raises:
        ValueError: required=True인데 키가 없는 경우.
    """
    key = os.environ.get(env_name)
    if required and not key:
        raise ValueError(f"환경변수 {env_name} 필요")
    if key:
        logger.debug("API key loaded: %s=***%s", env_name, key[-4:])
    return key
