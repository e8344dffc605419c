from __future__ import annotations

import asyncio
import functools
from collections.abc import AsyncIterator

from netsweep.models import DEFAULT_CONCURRENCY, DEFAULT_TIMEOUT, HostResult, ScanRequest, sort_results
from netsweep.probe import DiagnosticHook, probe_host
from netsweep.scheduler import ScanSession
from netsweep.subnet import iter_subnet_hosts

SEQUENTIAL_TIMEOUT = 0.4


def open_session(request: ScanRequest, *, on_diagnostic: DiagnosticHook | None = None) -> ScanSession:
    probe = functools.partial(
        probe_host,
        port=request.port,
        timeout=request.timeout,
        on_diagnostic=on_diagnostic,
    )
    return ScanSession(iter_subnet_hosts(request.subnet), probe, request.concurrency_limit)


def discover_request(
    request: ScanRequest, *, on_diagnostic: DiagnosticHook | None = None
) -> AsyncIterator[HostResult]:
    return open_session(request, on_diagnostic=on_diagnostic).results()


def discover(
    subnet: str,
    port: int,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    concurrency_limit: int = DEFAULT_CONCURRENCY,
    on_diagnostic: DiagnosticHook | None = None,
) -> AsyncIterator[HostResult]:
    """Scan ``subnet.1`` .. ``subnet.254`` for ``port`` and stream the outcomes.

    The request is validated here, before anything touches the network, so a
    bad subnet or port raises ``ValueError`` (a ``pydantic.ValidationError``)
    at call time rather than from the returned iterator. Results arrive in
    completion order, not address order.
    """
    request = ScanRequest(subnet=subnet, port=port, timeout=timeout, concurrency_limit=concurrency_limit)
    return discover_request(request, on_diagnostic=on_diagnostic)


def discover_sequential(
    subnet: str,
    port: int,
    *,
    timeout: float = SEQUENTIAL_TIMEOUT,
    on_diagnostic: DiagnosticHook | None = None,
) -> AsyncIterator[HostResult]:
    """One probe at a time; results come back in address order."""
    return discover(subnet, port, timeout=timeout, concurrency_limit=1, on_diagnostic=on_diagnostic)


async def scan_subnet(
    request: ScanRequest, *, on_diagnostic: DiagnosticHook | None = None
) -> list[HostResult]:
    results = [result async for result in discover_request(request, on_diagnostic=on_diagnostic)]
    return sort_results(results)


def scan_network(
    subnet: str,
    port: int,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    concurrency_limit: int = DEFAULT_CONCURRENCY,
) -> list[HostResult]:
    request = ScanRequest(subnet=subnet, port=port, timeout=timeout, concurrency_limit=concurrency_limit)
    return asyncio.run(scan_subnet(request))
