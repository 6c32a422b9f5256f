"""HTTP client with timeouts, retries and exponential backoff."""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from northstar import monitoring
from northstar.config import settings
from northstar.exceptions import (
    HTTPStatusFailure,
    InvalidResponseBody,
    NetworkFailure,
    RequestTimeout,
    TransportError,
)
from northstar.models.tracking_models import (
    APIResponse,
    AttemptOutcome,
    RequestAttempt,
    RequestConfig,
)
from northstar.services.notification_service import NotificationService, Notifier

logger = logging.getLogger(__name__)

# Generation endpoints run longer than tracking calls
MEDITATION_TIMEOUT_MS = 30000
EXERCISE_TIMEOUT_MS = 20000

PREFERENCES_ROUTE = "/users/{id}/preferences"

_OUTCOMES = {
    RequestTimeout: AttemptOutcome.TIMEOUT,
    HTTPStatusFailure: AttemptOutcome.HTTP_ERROR,
    InvalidResponseBody: AttemptOutcome.INVALID_BODY,
    NetworkFailure: AttemptOutcome.NETWORK_ERROR,
}


def log_attempt(attempt: RequestAttempt) -> None:
    """Default attempt sink: log the attempt and count it."""
    monitoring.request_attempts.labels(
        endpoint=attempt.route or attempt.endpoint,
        method=attempt.method,
        outcome=attempt.outcome.value,
    ).inc()
    if attempt.outcome is AttemptOutcome.SUCCESS:
        logger.info(f"[API] {attempt.method} {attempt.endpoint} - Attempt {attempt.attempt_number} - Success")
    else:
        logger.warning(
            f"[API] {attempt.method} {attempt.endpoint} - Attempt {attempt.attempt_number} - "
            f"{attempt.outcome.value}: {attempt.error}"
        )


def backoff_delay(attempt: int) -> int:
    """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
    return 2 ** attempt


class APIClient:
    """Single gateway for every remote call.

    A logical request is attempted at most ``retries + 1`` times. Attempts run
    one after another, each bounded by ``timeout`` milliseconds, with a
    ``2 ** attempt`` second pause between them. The first 2xx response with a
    JSON body wins. When every attempt fails the user is notified and a
    failed ``APIResponse`` is returned; nothing is raised.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        notifier: Optional[Notifier] = None,
        attempt_sink: Optional[Callable[[RequestAttempt], None]] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        default_timeout: Optional[int] = None,
        default_retries: Optional[int] = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.api.base_url).rstrip("/")
        # Timeouts are enforced per attempt, not by httpx defaults
        self._client = client if client is not None else httpx.AsyncClient(timeout=None)
        self._owns_client = client is None
        self.notifier = notifier if notifier is not None else NotificationService()
        self.attempt_sink = attempt_sink or log_attempt
        self._sleep = sleep or asyncio.sleep
        self.default_timeout = default_timeout if default_timeout is not None else settings.api.timeout_ms
        self.default_retries = default_retries if default_retries is not None else settings.api.retries

    async def __aenter__(self) -> "APIClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        config: Optional[RequestConfig] = None,
        route: Optional[str] = None,
    ) -> APIResponse:
        """Execute one logical request with bounded retries.

        ``route`` is the path template reported to metrics in place of
        ``endpoint`` when the path carries ids.
        """
        route = route or endpoint
        config = config or RequestConfig()
        timeout = config.timeout if config.timeout is not None else self.default_timeout
        retries = config.retries if config.retries is not None else self.default_retries
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        if retries < 0:
            raise ValueError(f"retries cannot be negative, got {retries}")

        method = method.upper()
        headers = {"Content-Type": "application/json", **config.headers}
        body = config.body if config.body is not None and method != "GET" else None

        attempt = 0
        while attempt <= retries:
            started = time.monotonic()
            try:
                data = await self._attempt(method, endpoint, headers, body, timeout)
            except TransportError as error:
                attempt += 1
                self._emit(RequestAttempt(
                    endpoint=endpoint,
                    method=method,
                    attempt_number=attempt,
                    outcome=_OUTCOMES.get(type(error), AttemptOutcome.NETWORK_ERROR),
                    error=str(error),
                    elapsed=time.monotonic() - started,
                    route=route,
                ))

                if attempt > retries:
                    message = self._failure_message(error)
                    monitoring.request_failures.labels(endpoint=route, method=method).inc()
                    logger.error(f"[API] {method} {endpoint} - Giving up after {attempt} attempts: {message}")
                    self.notifier.notify("Connection Error", message, variant="destructive")
                    return APIResponse(success=False, error=message)

                await self._sleep(backoff_delay(attempt))
                continue

            self._emit(RequestAttempt(
                endpoint=endpoint,
                method=method,
                attempt_number=attempt + 1,
                outcome=AttemptOutcome.SUCCESS,
                elapsed=time.monotonic() - started,
                route=route,
            ))
            return APIResponse(success=True, data=data)

        # Unreachable while retries >= 0
        return APIResponse(success=False, error="Max retries exceeded")

    async def _attempt(
        self,
        method: str,
        endpoint: str,
        headers: Dict[str, str],
        body: Any,
        timeout: int,
    ) -> Any:
        """Run a single attempt, translating every failure into a TransportError."""
        try:
            response = await asyncio.wait_for(
                self._client.request(
                    method,
                    f"{self.base_url}{endpoint}",
                    headers=headers,
                    json=body,
                    timeout=httpx.Timeout(timeout / 1000),
                ),
                timeout=timeout / 1000,
            )
        except asyncio.TimeoutError as e:
            raise RequestTimeout() from e
        except httpx.TimeoutException as e:
            raise RequestTimeout() from e
        except httpx.HTTPError as e:
            raise NetworkFailure(str(e) or "Network error") from e
        except OSError as e:
            raise NetworkFailure(str(e) or "Network error") from e

        if not response.is_success:
            raise HTTPStatusFailure(response.status_code, response.reason_phrase)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise InvalidResponseBody(f"Invalid JSON in response: {e}") from e

    def _emit(self, attempt: RequestAttempt) -> None:
        try:
            self.attempt_sink(attempt)
        except Exception as e:
            logger.error(f"Attempt sink failed for {attempt.method} {attempt.endpoint}: {e}")

    @staticmethod
    def _failure_message(error: TransportError) -> str:
        if isinstance(error, RequestTimeout):
            return "Request timed out"
        return str(error) or "Network error"

    # Content generation

    async def generate_meditation(self, prompt: str, preferences: Optional[Dict[str, Any]] = None) -> APIResponse:
        return await self.request("/generate/meditation", "POST", RequestConfig(
            body={"prompt": prompt, "preferences": preferences},
            timeout=MEDITATION_TIMEOUT_MS,
        ))

    async def generate_exercise(self, category: str, duration: int) -> APIResponse:
        return await self.request("/generate/exercise", "POST", RequestConfig(
            body={"category": category, "duration": duration},
            timeout=EXERCISE_TIMEOUT_MS,
        ))

    async def generate_personalized_tip(self, user_id: str, context: Optional[Dict[str, Any]] = None) -> APIResponse:
        return await self.request("/generate/tip", "POST", RequestConfig(
            body={"userId": user_id, "context": context},
        ))

    # Analytics and tracking

    async def track_session(self, session_data: Dict[str, Any]) -> APIResponse:
        return await self.request("/track/session", "POST", RequestConfig(body=session_data))

    async def track_interaction(self, interaction: Dict[str, Any]) -> APIResponse:
        return await self.request("/track/interaction", "POST", RequestConfig(body=interaction))

    # User preferences

    async def get_user_preferences(self, user_id: str) -> APIResponse:
        return await self.request(f"/users/{user_id}/preferences", route=PREFERENCES_ROUTE)

    async def update_user_preferences(self, user_id: str, preferences: Dict[str, Any]) -> APIResponse:
        return await self.request(
            f"/users/{user_id}/preferences", "PUT", RequestConfig(body=preferences), route=PREFERENCES_ROUTE
        )

    # Recommendations

    async def get_recommendations(self, user_id: str, context: Optional[Dict[str, Any]] = None) -> APIResponse:
        return await self.request("/recommendations", "POST", RequestConfig(
            body={"userId": user_id, "context": context},
        ))

    async def health_check(self) -> APIResponse:
        return await self.request("/health")
