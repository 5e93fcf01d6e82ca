import asyncio
import inspect
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")

# Seconds kept back from the host deadline so the outcome can still be returned.
DEADLINE_MARGIN = 0.5


class CompletionGate(Generic[T]):
    """Single-assignment result cell.

    The first ``resolve`` call sets the value and returns True. Every later
    call is a no-op that returns False, so racing signals can all report to
    the same gate without coordinating with each other.
    """

    def __init__(self):
        self._future: "asyncio.Future[T]" = asyncio.get_running_loop().create_future()

    @property
    def resolved(self) -> bool:
        return self._future.done()

    def resolve(self, value: T) -> bool:
        if self._future.done():
            return False
        self._future.set_result(value)
        return True

    def result(self) -> T:
        return self._future.result()

    async def wait(self, timeout: Optional[float] = None) -> T:
        # shield keeps the cell resolvable after a timeout
        return await asyncio.wait_for(asyncio.shield(self._future), timeout)


def invocation_timeout(context: Any, default: float) -> float:
    getter = getattr(context, "get_remaining_time_in_millis", None)
    if not callable(getter):
        return default
    try:
        remaining = float(getter()) / 1000.0
    except (TypeError, ValueError):
        return default
    return max(remaining - DEADLINE_MARGIN, 0.0)


def is_awaitable(value: Any) -> bool:
    return value is not None and inspect.isawaitable(value)
