"""Fire-and-forget task runner with a structured result channel."""
import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Coroutine, Deque, Optional, Set

from northstar import monitoring
from northstar.models.tracking_models import APIResponse

logger = logging.getLogger(__name__)


@dataclass
class TaskResult:
    """How a background task ended."""
    label: str
    ok: bool
    value: Any = None
    error: Optional[str] = None


class BackgroundTasks:
    """Runs coroutines without making the caller wait for them.

    Failures never reach the caller. They are logged, counted and published
    as ``TaskResult`` entries. Retrying is the job of the coroutine itself
    (the API client retries every remote call).
    """

    def __init__(
        self,
        on_result: Optional[Callable[[TaskResult], None]] = None,
        max_results: int = 100,
    ):
        self.on_result = on_result
        self.results: Deque[TaskResult] = deque(maxlen=max_results)
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], label: str) -> Optional[asyncio.Task]:
        """Schedule ``coro`` on the running loop and return immediately.

        Without a running loop the coroutine is closed unrun and None is
        returned.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning(f"Background task {label} dropped: no running event loop")
            monitoring.background_failures.labels(label=label).inc()
            return None
        task = loop.create_task(self._run(coro, label))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait until every spawned task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(self, coro: Awaitable[Any], label: str) -> TaskResult:
        try:
            value = await coro
        except asyncio.CancelledError:
            logger.info(f"Background task {label} cancelled")
            raise
        except Exception as e:
            logger.error(f"Background task {label} failed: {e}")
            result = TaskResult(label=label, ok=False, error=str(e))
        else:
            if isinstance(value, APIResponse) and not value.success:
                logger.warning(f"Background task {label} failed: {value.error}")
                result = TaskResult(label=label, ok=False, value=value, error=value.error)
            else:
                result = TaskResult(label=label, ok=True, value=value)

        if not result.ok:
            monitoring.background_failures.labels(label=label).inc()
        self._publish(result)
        return result

    def _publish(self, result: TaskResult) -> None:
        self.results.append(result)
        if self.on_result is None:
            return
        try:
            self.on_result(result)
        except Exception as e:
            logger.error(f"Result callback failed for {result.label}: {e}")
