from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from types import TracebackType
from typing import Any

import httpx

from cutline.circuit_breaker import (
    BreakerListener,
    CircuitBreaker,
    CircuitBreakerConfig,
    LoggingBreakerListener,
    merge_circuit_breaker_config,
)
from cutline.executor import ResilientExecutor
from cutline.logging import StdlibLogger, StructuredLogger, get_logger
from cutline.retry import RetryConfig, RetryPolicy, merge_retry_config
from cutline.settings import CutlineSettings


class Cutline:
    """HTTP client that retries transient failures behind a circuit breaker.

    Each instance owns one breaker shared by every call it issues, modelling
    the health of one remote target. Non-2xx responses count as failed
    attempts and surface as ``httpx.HTTPStatusError``.
    """

    def __init__(
        self,
        *,
        base_url: httpx.URL | str = "",
        headers: Mapping[str, str] | None = None,
        timeout: httpx.Timeout | float | None = None,
        follow_redirects: bool = True,
        retry: RetryConfig | Mapping[str, Any] | None = None,
        circuit_breaker: CircuitBreakerConfig | Mapping[str, Any] | None = None,
        http_client: httpx.AsyncClient | None = None,
        name: str = "cutline",
        listeners: Sequence[BreakerListener] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        logger: StructuredLogger | StdlibLogger | None = None,
        **httpx_kwargs: Any,
    ) -> None:
        """Create a resilient client.

        Args:
            base_url: Base URL for relative request paths.
            headers: Default headers sent with every request.
            timeout: Transport timeout. Uses the httpx default when omitted.
            follow_redirects: Whether the transport follows redirects.
            retry: Retry configuration, or a partial mapping merged over the
                defaults.
            circuit_breaker: Breaker configuration, or a partial mapping merged
                over the defaults.
            http_client: Pre-built transport. When given, the transport options
                above are ignored and the caller keeps ownership of it.
            name: Breaker name used in logs and ``CircuitOpenError``.
            listeners: Breaker listeners. Defaults to a logging listener.
            sleep: Async sleep between attempts, mainly for tests.
            logger: Structured logger. Defaults to this module's logger.
            **httpx_kwargs: Extra options for the ``httpx.AsyncClient``.
        """
        self._logger = get_logger(__name__) if logger is None else logger
        retry_config = merge_retry_config(retry)
        breaker_config = merge_circuit_breaker_config(circuit_breaker)
        self._owns_http_client = http_client is None
        if http_client is None:
            client_options: dict[str, Any] = {
                "base_url": base_url,
                "headers": headers,
                "follow_redirects": follow_redirects,
                **httpx_kwargs,
            }
            if timeout is not None:
                client_options["timeout"] = timeout
            http_client = httpx.AsyncClient(**client_options)
        self._http = http_client

        if listeners is None:
            listeners = (LoggingBreakerListener(self._logger),)
        self._circuit_breaker = CircuitBreaker(
            name,
            config=breaker_config,
            listeners=listeners,
        )
        self._retry_policy = RetryPolicy(retry_config)
        self._executor = ResilientExecutor(
            retry_policy=self._retry_policy,
            circuit_breaker=self._circuit_breaker,
            sleep=sleep,
            logger=self._logger,
        )

    @classmethod
    def from_settings(cls, settings: CutlineSettings, **kwargs: Any) -> Cutline:
        """Build a client whose retry and breaker configs come from settings."""
        return cls(
            retry=settings.retry_config(),
            circuit_breaker=settings.circuit_breaker_config(),
            **kwargs,
        )

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Underlying transport and its configuration."""
        return self._http

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    @property
    def executor(self) -> ResilientExecutor:
        return self._executor

    def get_circuit_breaker_state(self) -> str:
        """Return ``"closed"``, ``"open"`` or ``"half_open"``."""
        return str(self._circuit_breaker.get_state())

    def reset_circuit_breaker(self) -> None:
        self._circuit_breaker.reset()

    def get_retry_config(self) -> RetryConfig:
        return self._retry_policy.config

    def get_circuit_breaker_config(self) -> CircuitBreakerConfig:
        return self._circuit_breaker.config

    async def request(
        self,
        method: str,
        url: httpx.URL | str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one logical request with retries and breaker protection.

        Args:
            method: HTTP method.
            url: Absolute URL, or a path relative to ``base_url``.
            **kwargs: Options forwarded to ``httpx.AsyncClient.request``.

        Returns:
            The first successful (2xx) response.

        Raises:
            CircuitOpenError: When the breaker rejected the attempt.
            httpx.HTTPStatusError: When the last attempt got a non-2xx response.
            httpx.RequestError: When the last attempt failed in the transport.
        """
        return await self._executor.run(self._send_once, method, url, **kwargs)

    async def get(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    async def head(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return await self.request("HEAD", url, **kwargs)

    async def options(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return await self.request("OPTIONS", url, **kwargs)

    async def aclose(self) -> None:
        """Close the transport if this client created it."""
        if self._owns_http_client:
            await self._http.aclose()

    async def __aenter__(self) -> Cutline:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def _send_once(
        self,
        method: str,
        url: httpx.URL | str,
        **kwargs: Any,
    ) -> httpx.Response:
        response = await self._http.request(method, url, **kwargs)
        response.raise_for_status()
        return response
