"""Breaker-aware bounded retry loop around a single-attempt operation."""

from __future__ import annotations

import random
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from tenacity import RetryCallState

from cutline.circuit_breaker import CircuitBreaker, CircuitOpenError
from cutline.errors import describe_attempt_error
from cutline.logging import (
    StdlibLogger,
    StructuredLogger,
    get_logger,
    log_exception,
    log_warning,
)
from cutline.retry import RetryPolicy, build_policy_retrying

T = TypeVar("T")
P = ParamSpec("P")


class ResilientExecutor:
    """Run async operations under a retry policy and a shared circuit breaker.

    Every physical attempt consults the breaker first and reports its outcome
    afterwards, so one logical call that retries N times produces N breaker
    observations. An attempt rejected by the breaker never reaches the
    operation and is not counted as a breaker failure.
    """

    def __init__(
        self,
        *,
        retry_policy: RetryPolicy | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        logger: StructuredLogger | StdlibLogger | None = None,
        rng: Callable[[], float] = random.random,
    ) -> None:
        """Create an executor.

        Args:
            retry_policy: Retry decisions and backoff. Defaults to
                ``RetryPolicy()``.
            circuit_breaker: Breaker shared by every call of this executor.
                Defaults to a fresh ``CircuitBreaker()``.
            sleep: Async sleep used between attempts. Defaults to
                ``asyncio.sleep`` through tenacity.
            logger: Structured logger. Defaults to this module's structlog
                logger.
            rng: Random source used only when jitter is enabled.
        """
        self.retry_policy = RetryPolicy() if retry_policy is None else retry_policy
        self.circuit_breaker = (
            CircuitBreaker() if circuit_breaker is None else circuit_breaker
        )
        self._sleep = sleep
        self._logger = get_logger(__name__) if logger is None else logger
        self._rng = rng

    async def run(
        self,
        operation: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Invoke ``operation`` until it succeeds or the retry policy gives up.

        Args:
            operation: Async callable performing exactly one attempt.
            *args: Positional arguments forwarded to ``operation``.
            **kwargs: Keyword arguments forwarded to ``operation``.

        Returns:
            The result of the first successful attempt.

        Raises:
            CircuitOpenError: When the breaker rejected the last attempt.
            Exception: The last failure raised by ``operation``, unchanged.
        """
        retrying = build_policy_retrying(
            policy=self.retry_policy,
            sleep=self._sleep,
            before_sleep=self._log_retry_scheduled,
            rng=self._rng,
        )
        attempts = 0
        try:
            async for attempt in retrying:
                with attempt:
                    attempts += 1
                    return await self._attempt_once(operation, *args, **kwargs)
        except CircuitOpenError:
            raise
        except Exception as exc:
            described = describe_attempt_error(exc)
            log_exception(
                self._logger,
                "resilience.call_failed",
                breaker=self.circuit_breaker.name,
                attempts=attempts,
                error_type=exc.__class__.__name__,
                error_kind=str(described.kind),
                status_code=described.status_code,
                error_code=described.code,
            )
            raise

        raise RuntimeError("Retry loop exited unexpectedly.")

    async def _attempt_once(
        self,
        operation: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        breaker = self.circuit_breaker
        if not breaker.can_execute():
            retry_after = breaker.retry_after()
            self._emit_call_rejected()
            log_warning(
                self._logger,
                "resilience.call_rejected",
                breaker=breaker.name,
                retry_after=retry_after,
            )
            raise CircuitOpenError(breaker.name, retry_after=retry_after)

        try:
            result = await operation(*args, **kwargs)
        except Exception as exc:
            breaker.on_failure()
            self._emit_call_failed(exc)
            raise

        breaker.on_success()
        self._emit_call_succeeded()
        return result

    def _log_retry_scheduled(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        exc = None if outcome is None else outcome.exception()
        next_action = retry_state.next_action
        fields: dict[str, object] = {
            "breaker": self.circuit_breaker.name,
            "attempt": retry_state.attempt_number,
            "delay": None if next_action is None else next_action.sleep,
        }
        if exc is not None:
            described = describe_attempt_error(exc)
            fields["error_kind"] = str(described.kind)
            fields["status_code"] = described.status_code
            fields["error_code"] = described.code
        log_warning(self._logger, "resilience.retry_scheduled", **fields)

    def _emit_call_rejected(self) -> None:
        for listener in self.circuit_breaker.listeners:
            try:
                listener.on_call_rejected(self.circuit_breaker.name)
            except Exception:
                continue

    def _emit_call_succeeded(self) -> None:
        for listener in self.circuit_breaker.listeners:
            try:
                listener.on_call_succeeded(self.circuit_breaker.name)
            except Exception:
                continue

    def _emit_call_failed(self, exc: Exception) -> None:
        for listener in self.circuit_breaker.listeners:
            try:
                listener.on_call_failed(self.circuit_breaker.name, exc)
            except Exception:
                continue
