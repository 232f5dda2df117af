"""Base class for external providers.

Every provider client inherits from IntegrationBase, which provides:
    - Health check and configuration check interface
    - Retry with exponential backoff for flaky HTTP calls
"""

import time
from abc import ABC, abstractmethod
from typing import Callable, Optional, TypeVar

from crmpilot.core.exceptions import IntegrationError
from crmpilot.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class IntegrationBase(ABC):
    """Abstract base class for provider clients.

    Subclasses must implement:
        - health_check(): Check if service is reachable
        - is_configured(): Check if credentials are present
    """

    #: Seconds slept between retries; tests shrink this to zero
    retry_sleep: Callable[[float], None] = staticmethod(time.sleep)

    @abstractmethod
    def health_check(self) -> bool:
        """Return True if the service is reachable and functioning."""

    @abstractmethod
    def is_configured(self) -> bool:
        """Return True if all required credentials are present."""

    def with_retry(
        self,
        func: Callable[[], T],
        operation: str = "request",
        max_retries: int = 2,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        exceptions: tuple = (Exception,),
    ) -> T:
        """Execute function with exponential backoff retry.

        Args:
            func: Zero-argument callable to execute
            operation: Name used in log lines
            max_retries: Maximum retry attempts after the first call
            base_delay: Initial delay between retries (seconds)
            max_delay: Maximum delay between retries
            exceptions: Exception types to catch and retry

        Returns:
            Function result

        Raises:
            IntegrationError: If all retries exhausted
        """
        last_exception: Optional[Exception] = None
        delay = base_delay

        for attempt in range(max_retries + 1):
            try:
                return func()
            except exceptions as e:
                last_exception = e
                if attempt < max_retries:
                    logger.warning(
                        f"{operation} failed, retry {attempt + 1}/{max_retries} in {delay}s: {e}",
                        extra={"context": {"operation": operation, "attempt": attempt + 1}},
                    )
                    self.retry_sleep(delay)
                    delay = min(delay * 2, max_delay)

        raise IntegrationError(
            f"{operation} failed after {max_retries + 1} attempts: {last_exception}"
        ) from last_exception
