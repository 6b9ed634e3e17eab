"""Async HTTP client for the marketplace backend.

Wraps :class:`httpx.AsyncClient` with:

* **Explicit timeouts** — separate connect / read / write budgets so a
  stalled backend can never hang a screen.
* **Automatic retries** — exponential back-off with random jitter via
  :mod:`tenacity`, for transient faults only (5xx, 429, transport errors).
  POST is not idempotent, so it is only re-sent when the server cannot have
  acted on it: HTTP 429 or a connection that was never established.
* **Rate-limit awareness** — HTTP 429 waits for the ``Retry-After`` value
  before the next attempt.
* **Structured error mapping** — every failure leaves this module as a
  :class:`~listingsync.core.exceptions.BackendError` subclass:

  ==========================  ===============================================
  Outcome                     Raised
  ==========================  ===============================================
  401 / 403                   :class:`BackendAuthError` (no retry)
  other 4xx                   :class:`BackendRequestError` (no retry)
  429 after retries           :class:`BackendRateLimitError`
  5xx / network after retries :class:`BackendUnavailableError`
  ==========================  ===============================================

Typical usage::

    from listingsync.remote.http_client import BackendHttpClient

    async with BackendHttpClient(base_url="https://api.example.com") as client:
        response = await client.get("/market/fetch-properties-by-email/",
                                    params={"email": "v@example.com"})
"""

from __future__ import annotations

import logging
import random
from types import TracebackType
from typing import Any, Final

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
)

from listingsync import __version__
from listingsync.core.exceptions import (
    BackendAuthError,
    BackendRateLimitError,
    BackendRequestError,
    BackendUnavailableError,
)

__all__ = ["BackendHttpClient"]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: HTTP status codes that signal a transient server-side fault (safe to retry).
_RETRYABLE_STATUS: Final[frozenset[int]] = frozenset({500, 502, 503, 504})

#: Failures after which the request never reached the server.
_NOT_SENT_ERRORS: Final[tuple[type[Exception], ...]] = (httpx.ConnectError, httpx.ConnectTimeout)

#: Status codes meaning the vendor's credentials were rejected.
_AUTH_STATUS: Final[frozenset[int]] = frozenset({401, 403})

_DEFAULT_CONNECT_TIMEOUT: Final[float] = 10.0
_DEFAULT_READ_TIMEOUT: Final[float] = 20.0
_DEFAULT_WRITE_TIMEOUT: Final[float] = 30.0

#: Default total attempts (1 initial + 2 retries).
_DEFAULT_MAX_ATTEMPTS: Final[int] = 3

#: Hard cap on exponential back-off base before adding jitter (seconds).
_MAX_BACKOFF_BASE: Final[float] = 30.0

#: Upper bound on jitter added on top of the exponential base (seconds).
_MAX_BACKOFF_JITTER: Final[float] = 2.0

_USER_AGENT: Final[str] = f"listingsync/{__version__}"


# ---------------------------------------------------------------------------
# Internal sentinel exception
# ---------------------------------------------------------------------------


class _RetryableServerError(BackendUnavailableError):
    """Internal: signals a 5xx status for tenacity to retry.

    Never escapes :meth:`BackendHttpClient._request_with_retry`.
    """

    def __init__(self, endpoint: str, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(endpoint, f"Transient HTTP {status_code}")


# ---------------------------------------------------------------------------
# Retry wait strategy
# ---------------------------------------------------------------------------


def _backend_wait(retry_state: RetryCallState) -> float:
    """Compute the wait before the next attempt.

    A :class:`BackendRateLimitError` with a positive ``retry_after`` is
    honoured exactly; everything else backs off exponentially with jitter.
    """
    if retry_state.outcome is not None:
        exc = retry_state.outcome.exception()
        if (
            isinstance(exc, BackendRateLimitError)
            and exc.retry_after is not None
            and exc.retry_after > 0
        ):
            return exc.retry_after

    attempt = max(retry_state.attempt_number, 1)
    base = min(2.0 ** (attempt - 1), _MAX_BACKOFF_BASE)
    jitter = random.uniform(0.0, min(base, _MAX_BACKOFF_JITTER))
    return base + jitter


# ---------------------------------------------------------------------------
# Public client
# ---------------------------------------------------------------------------


class BackendHttpClient:
    """Async HTTP client for the marketplace backend.

    Each public request method returns the :class:`httpx.Response` on HTTP
    2xx and raises a :class:`~listingsync.core.exceptions.BackendError` on
    every other outcome.

    Use as an ``async with`` context manager to guarantee the connection
    pool is closed on exit.

    Args:
        base_url: Base URL prepended to all relative request paths.
        headers: Default headers merged into every request (e.g. the
            ``Authorization`` header of the signed-in vendor).
        connect_timeout: TCP connection establishment timeout in seconds.
        read_timeout: Timeout for receiving the response.
        write_timeout: Timeout for uploading the request body.
        max_attempts: Total attempts including the initial try (≥ 1).

    Raises:
        ValueError: If ``max_attempts`` is less than 1.
    """

    def __init__(
        self,
        *,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        connect_timeout: float = _DEFAULT_CONNECT_TIMEOUT,
        read_timeout: float = _DEFAULT_READ_TIMEOUT,
        write_timeout: float = _DEFAULT_WRITE_TIMEOUT,
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be ≥ 1, got {max_attempts!r}.")

        self._base_url = base_url
        self._default_headers: dict[str, str] = headers or {}
        self._max_attempts = max_attempts
        self._timeout = httpx.Timeout(
            connect=connect_timeout,
            read=read_timeout,
            write=write_timeout,
            pool=5.0,
        )
        self._http: httpx.AsyncClient | None = None

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> BackendHttpClient:
        await self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Public request methods
    # ------------------------------------------------------------------

    async def get(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Perform an HTTP GET request with retries.

        Raises:
            BackendError: See the module docstring for the mapping.
        """
        return await self._request_with_retry("GET", url, params=params, extra_headers=headers)

    async def post(
        self,
        url: str,
        *,
        json: Any | None = None,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        idempotent: bool = False,
    ) -> httpx.Response:
        """Perform an HTTP POST request.

        Args:
            url: The request URL or path (relative to ``base_url``).
            json: JSON-serialisable body.  Mutually exclusive with ``data``.
            data: Form-encoded body.  Mutually exclusive with ``json``.
            headers: Per-request headers that override session defaults.
            idempotent: Set when sending the request twice has the same
                effect as sending it once; the request is then retried on
                5xx and read failures like GET.

        Raises:
            BackendError: See the module docstring for the mapping.
        """
        return await self._request_with_retry(
            "POST", url, json=json, data=data, extra_headers=headers, idempotent=idempotent
        )

    async def delete(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Perform an HTTP DELETE request with retries.

        Raises:
            BackendError: See the module docstring for the mapping.
        """
        return await self._request_with_retry("DELETE", url, extra_headers=headers)

    async def close(self) -> None:
        """Close the underlying HTTP client.  Safe to call more than once."""
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
            logger.debug("BackendHttpClient session closed.")
        self._http = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Return the open HTTP client, creating it lazily if needed."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                follow_redirects=True,
                headers={
                    "Accept": "application/json",
                    "User-Agent": _USER_AGENT,
                    **self._default_headers,
                },
            )
            logger.debug(
                "BackendHttpClient session opened (base_url=%r).", self._base_url or "(none)"
            )
        return self._http

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any | None = None,
        data: dict[str, Any] | None = None,
        extra_headers: dict[str, str] | None = None,
        idempotent: bool = True,
    ) -> httpx.Response:
        """Execute one logical request with tenacity-managed retries.

        A non-idempotent request is retried only on HTTP 429 and on
        connection failures; a 5xx or a broken read is raised at once.

        Raises:
            BackendRateLimitError: HTTP 429 after exhausting retries.
            BackendUnavailableError: 5xx or transport failure after retries.
            BackendAuthError: HTTP 401/403.
            BackendRequestError: Any other non-2xx status.
        """
        retry_types: tuple[type[Exception], ...]
        if idempotent:
            retry_types = (_RetryableServerError, BackendRateLimitError, httpx.TransportError)
        else:
            retry_types = (BackendRateLimitError, *_NOT_SENT_ERRORS)

        def _before_sleep(rs: RetryCallState) -> None:
            exc = rs.outcome.exception() if rs.outcome else None
            logger.warning(
                "HTTP %s %s attempt %d/%d failed (%s). Retrying in %.1f s.",
                method,
                url,
                rs.attempt_number,
                self._max_attempts,
                type(exc).__name__ if exc else "?",
                _backend_wait(rs),
            )

        response: httpx.Response | None = None
        attempts = 0
        try:
            async for attempt in AsyncRetrying(
                wait=_backend_wait,
                stop=stop_after_attempt(self._max_attempts),
                retry=retry_if_exception_type(retry_types),
                reraise=True,
                before_sleep=_before_sleep,
            ):
                attempts = attempt.retry_state.attempt_number
                with attempt:
                    response = await self._single_request(
                        method=method,
                        url=url,
                        params=params,
                        json=json,
                        data=data,
                        extra_headers=extra_headers,
                    )
        except _RetryableServerError as exc:
            raise BackendUnavailableError(
                url, f"HTTP {exc.status_code} after {attempts} attempt(s)"
            ) from exc
        except httpx.TransportError as exc:
            raise BackendUnavailableError(
                url, f"{type(exc).__name__} after {attempts} attempt(s)"
            ) from exc

        assert response is not None, "tenacity exited without a response or exception"
        return response

    async def _single_request(
        self,
        *,
        method: str,
        url: str,
        params: dict[str, Any] | None,
        json: Any | None,
        data: dict[str, Any] | None,
        extra_headers: dict[str, str] | None,
    ) -> httpx.Response:
        """Perform exactly one HTTP request and map its status.

        Raises:
            BackendRateLimitError: On HTTP 429.
            _RetryableServerError: On HTTP 5xx (internal sentinel).
            BackendAuthError: On HTTP 401/403.
            BackendRequestError: On other non-2xx statuses.
            httpx.TransportError: Network-level failures (propagated for retry).
        """
        client = await self._ensure_client()

        logger.debug("HTTP %s %s", method, url)
        try:
            response = await client.request(
                method=method,
                url=url,
                params=params,
                json=json,
                data=data,
                headers=extra_headers,
            )
        except httpx.TransportError:
            logger.debug("Transport error on %s %s.", method, url, exc_info=True)
            raise

        logger.debug(
            "HTTP %s %s → %d (%.0f ms)",
            method,
            url,
            response.status_code,
            response.elapsed.total_seconds() * 1000 if response.elapsed else 0,
        )

        if response.is_success:
            return response

        if response.status_code == 429:
            retry_after = _parse_retry_after(response)
            logger.warning("Backend rate limit on %s, retry_after=%.1f s", url, retry_after)
            raise BackendRateLimitError(url, retry_after=retry_after)

        if response.status_code in _RETRYABLE_STATUS:
            raise _RetryableServerError(url, response.status_code)

        detail = _error_detail(response)
        if response.status_code in _AUTH_STATUS:
            raise BackendAuthError(url, f"HTTP {response.status_code}: {detail}")

        raise BackendRequestError(
            url, f"HTTP {response.status_code}: {detail}", status_code=response.status_code
        )


# ---------------------------------------------------------------------------
# Response parsing helpers
# ---------------------------------------------------------------------------


def _parse_retry_after(response: httpx.Response) -> float:
    """Extract the back-off duration from an HTTP 429 response (≥ 1.0 s)."""
    header = response.headers.get("retry-after", "")
    if header:
        try:
            return max(float(header), 1.0)
        except ValueError:
            logger.debug("Could not parse Retry-After header %r.", header)
    return 1.0


def _error_detail(response: httpx.Response) -> str:
    """Best human-readable error message from a failed response.

    The backend reports errors as ``{"error": ...}`` or ``{"detail": ...}``;
    anything else falls back to the start of the body text.
    """
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("error", "detail", "message"):
            value = body.get(key)
            if value:
                return str(value)
    return (response.text or "").strip()[:200] or "no detail"
