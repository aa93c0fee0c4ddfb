"""Error types and checking helpers used throughout the package."""

from __future__ import annotations

from typing import IO, Any

PRINT_BUFFER = 1 << 12


class NetError(Exception):
    """Base class for every error raised by the package."""


class CheckError(NetError):
    """Raised when user input or configuration is not acceptable."""


class InternalError(NetError):
    """Raised when an internal consistency assertion fails."""


def _format(fmt: str, args: tuple[Any, ...]) -> str:
    message = fmt % args if args else fmt
    # Messages are limited to the size of the formatting buffer.
    return message[: PRINT_BUFFER - 1]


def check(exp: object, fmt: str, *args: Any) -> None:
    """Raise CheckError with a formatted message when ``exp`` is false."""
    if not exp:
        raise CheckError(_format(fmt, args))


def assert_that(exp: object, fmt: str, *args: Any) -> None:
    """Raise InternalError with a formatted message when ``exp`` is false."""
    if not exp:
        raise InternalError(_format(fmt, args))


def error(fmt: str, *args: Any) -> None:
    """Always raise CheckError with a formatted message."""
    raise CheckError(_format(fmt, args))


def fopen_check(fname: str, flag: str) -> IO[Any]:
    """Open a file, raising CheckError when it cannot be opened."""
    try:
        return open(fname, flag)
    except OSError as exc:
        raise CheckError(_format('can not open file "%s"\n', (fname,))) from exc