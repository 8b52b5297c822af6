# jurisdiction/services/retry.py
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar

from pymongo.errors import ConnectionFailure
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from jurisdiction.exceptions import StoreUnavailableError
from jurisdiction.services.store import StoreConnectionError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    """Only connectivity failures are retried; logical errors never are."""
    return isinstance(exc, (ConnectionFailure, StoreConnectionError))


@dataclass
class RetryPolicy:
    """Bounded exponential backoff applied at the store boundary."""

    max_attempts: int = 3
    initial_backoff: float = 1.0
    max_backoff: float = 8.0
    retryable: Callable[[BaseException], bool] = field(default=is_transient)

    @classmethod
    def from_config(cls, config: Optional[Mapping[str, Any]]) -> "RetryPolicy":
        config = config or {}
        return cls(
            max_attempts=int(config.get("max_attempts", 3)),
            initial_backoff=float(config.get("initial_backoff_seconds", 1.0)),
            max_backoff=float(config.get("max_backoff_seconds", 8.0)),
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.initial_backoff, max=self.max_backoff),
            retry=retry_if_exception(self.retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def run(self, fn: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        try:
            async for attempt in self._retrying():
                with attempt:
                    result = await fn(*args, **kwargs)
        except Exception as exc:
            if self.retryable(exc):
                logger.error(
                    f"Store call {getattr(fn, '__name__', fn)} failed after "
                    f"{self.max_attempts} attempts: {exc}"
                )
                raise StoreUnavailableError(
                    "The data store is temporarily unavailable"
                ) from exc
            raise
        return result
