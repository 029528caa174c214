import asyncio
import functools
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CommandSerializer:
    """Process-wide gate that lets one command touch session state at a time.

    Waiters are admitted in arrival order. The gate is released when the
    command returns, raises or is cancelled; a driver-side operation that
    timed out may still finish after release.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def acquire(self, name: str = "command") -> AsyncIterator[None]:
        async with self._lock:
            logger.debug("%s: acquired command gate", name)
            try:
                yield
            finally:
                logger.debug("%s: released command gate", name)

    async def run(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        async with self.acquire(getattr(fn, "__name__", "command")):
            return await fn(*args, **kwargs)

    def serialized(self, fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        """Decorator running every call of `fn` behind the gate"""

        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await self.run(fn, *args, **kwargs)

        return wrapper
