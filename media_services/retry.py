"""Tenacity-backed retry policy used for the endpoint probe and data requests."""

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, TypeVar

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from media_services.errors import TransientServiceError

if TYPE_CHECKING:
    from media_services.settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_TRANSPORT_ERRORS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)


def is_transient_error(exc: BaseException) -> bool:
    """Return True for failures worth another attempt (network level only)."""
    return isinstance(exc, (*_TRANSIENT_TRANSPORT_ERRORS, TransientServiceError))


class RetryPolicy:
    """Runs an action, retrying errors the classifier marks as transient.

    The final error is re-raised unchanged once ``max_attempts`` is reached;
    errors that are not transient propagate on the first failure without any
    backoff delay.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 4,
        wait_initial: float = 1.0,
        wait_max: float = 30.0,
        jitter: float = 1.0,
        is_transient: Callable[[BaseException], bool] = is_transient_error,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")
        self.max_attempts = max_attempts
        self.wait_initial = wait_initial
        self.wait_max = wait_max
        self.jitter = jitter
        self._is_transient = is_transient
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: "Settings") -> "RetryPolicy":
        """Factory that builds the policy from Settings."""
        return cls(
            max_attempts=settings.retry_max_attempts,
            wait_initial=settings.retry_wait_initial,
            wait_max=settings.retry_wait_max,
        )

    def is_transient(self, exc: BaseException) -> bool:
        return self._is_transient(exc)

    def execute(self, action: Callable[[], T]) -> T:
        """Run ``action`` under the policy and return its result."""
        return self._build_retrying()(action)

    def _build_retrying(self) -> Retrying:
        return Retrying(
            retry=retry_if_exception(self._is_transient),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential_jitter(
                multiplier=self.wait_initial,
                max=self.wait_max,
                jitter=self.jitter,
            ),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
