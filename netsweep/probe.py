from __future__ import annotations

import asyncio
import errno
import logging
from collections.abc import Callable

from netsweep.models import HostResult

logger = logging.getLogger(__name__)

DiagnosticHook = Callable[[str, BaseException], None]

# Failures that simply mean "nothing answered here". Names missing on the
# running platform are skipped.
_EXPECTED_ERRNO_NAMES = (
    "EACCES",
    "EADDRNOTAVAIL",
    "ECONNREFUSED",
    "ECONNRESET",
    "EHOSTDOWN",
    "EHOSTUNREACH",
    "ENETUNREACH",
    "ETIMEDOUT",
    "WSAEACCES",
    "WSAEADDRNOTAVAIL",
    "WSAECONNREFUSED",
    "WSAECONNRESET",
    "WSAEHOSTDOWN",
    "WSAEHOSTUNREACH",
    "WSAENETUNREACH",
    "WSAETIMEDOUT",
)

EXPECTED_ERRNOS: frozenset[int] = frozenset(
    getattr(errno, name) for name in _EXPECTED_ERRNO_NAMES if hasattr(errno, name)
)


def is_expected_failure(exc: BaseException) -> bool:
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return True
    if isinstance(exc, OSError):
        return exc.errno is None or exc.errno in EXPECTED_ERRNOS
    return False


def _report(host: str, exc: BaseException, on_diagnostic: DiagnosticHook | None) -> None:
    logger.warning("Unexpected transport error scanning %s: %r", host, exc)
    if on_diagnostic is None:
        return
    try:
        on_diagnostic(host, exc)
    except Exception:
        logger.exception("Diagnostic hook failed for %s", host)


async def _release(writer: asyncio.StreamWriter, host: str, timeout: float) -> None:
    try:
        writer.close()
        await asyncio.wait_for(writer.wait_closed(), timeout)
    except Exception as exc:
        logger.debug("Error closing connection to %s: %r", host, exc)


async def probe_host(
    host: str,
    port: int,
    timeout: float,
    *,
    on_diagnostic: DiagnosticHook | None = None,
) -> HostResult:
    """Try one TCP connect to ``host:port`` and report whether it completed in time.

    The connection is closed as soon as it is established. Every failure,
    including ones nobody anticipated, resolves to ``reachable=False``;
    unexpected transport errors are additionally logged and passed to
    ``on_diagnostic``.
    """
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
    except Exception as exc:
        if is_expected_failure(exc):
            logger.debug("%s:%s unreachable: %r", host, port, exc)
        else:
            _report(host, exc, on_diagnostic)
        return HostResult(address=host, reachable=False)

    await _release(writer, host, timeout)
    return HostResult(address=host, reachable=True)
