"""Classification of failures raised by a single transport attempt."""

from __future__ import annotations

import errno
import socket
from collections.abc import Iterator
from dataclasses import dataclass
from enum import StrEnum

import httpx

ABORTED_CODE = "ECONNABORTED"
NOT_FOUND_CODE = "ENOTFOUND"
TIMED_OUT_CODE = "ETIMEDOUT"


class AttemptErrorKind(StrEnum):
    """Shape of a failed attempt."""

    RESPONSE = "response"
    NETWORK = "network"
    GENERIC = "generic"


@dataclass(frozen=True)
class AttemptError:
    """Transport-independent description of one failed attempt.

    Attributes:
        kind: Which shape of failure this is.
        status_code: Response status, set for ``RESPONSE`` failures.
        code: Network error code such as ``"ECONNRESET"``, when known.
        message: Human-readable message of the original exception.
    """

    kind: AttemptErrorKind
    status_code: int | None = None
    code: str | None = None
    message: str = ""


def _iter_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _status_code_of(exc: BaseException) -> int | None:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    status = getattr(getattr(exc, "response", None), "status_code", None)
    if isinstance(status, int):
        return status
    return None


def _network_code_of(exc: BaseException) -> str | None:
    for link in _iter_chain(exc):
        if isinstance(link, httpx.TimeoutException):
            return ABORTED_CODE
        code = getattr(link, "code", None)
        if isinstance(code, str) and code:
            return code
        if isinstance(link, socket.gaierror):
            return NOT_FOUND_CODE
        if isinstance(link, OSError) and link.errno in errno.errorcode:
            return errno.errorcode[link.errno]
        if isinstance(link, TimeoutError):
            return TIMED_OUT_CODE
    return None


def describe_attempt_error(exc: BaseException) -> AttemptError:
    """Map any exception raised by an attempt onto an ``AttemptError``."""
    message = str(exc)
    code = _network_code_of(exc)
    status_code = _status_code_of(exc)
    if status_code is not None:
        # httpx status errors embed the request URL, so the message is not
        # used to classify response failures.
        return AttemptError(
            kind=AttemptErrorKind.RESPONSE,
            status_code=status_code,
            code=code,
            message=message,
        )
    if code is not None:
        return AttemptError(kind=AttemptErrorKind.NETWORK, code=code, message=message)
    return AttemptError(kind=AttemptErrorKind.GENERIC, message=message)
