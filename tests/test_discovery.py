from __future__ import annotations

import asyncio
import sys

import pytest
from pydantic import ValidationError

from netsweep import discovery
from netsweep.discovery import discover, discover_sequential, scan_network, scan_subnet
from netsweep.models import HostResult, ScanRequest


def _fake_probe(listeners: set[str], calls: list[str]):
    async def probe_host(host: str, port: int, timeout: float, *, on_diagnostic=None) -> HostResult:
        calls.append(host)
        await asyncio.sleep(0)
        return HostResult(address=host, reachable=host in listeners)

    return probe_host


@pytest.mark.parametrize(
    'kwargs',
    [
        {'subnet': '10.0.300', 'port': 80},
        {'subnet': '10.0.0', 'port': 0},
        {'subnet': '10.0.0', 'port': 65536},
        {'subnet': '10.0.0', 'port': 80, 'timeout': 0},
        {'subnet': '10.0.0', 'port': 80, 'concurrency_limit': 0},
    ],
)
def test_discover_rejects_invalid_requests_before_scanning(monkeypatch, kwargs) -> None:
    calls: list[str] = []
    monkeypatch.setattr(discovery, 'probe_host', _fake_probe(set(), calls))
    with pytest.raises(ValidationError):
        discover(**kwargs)
    assert calls == []


def test_scan_request_accepts_cidr() -> None:
    request = ScanRequest(subnet='192.168.7.0/24', port=22)
    assert request.subnet == '192.168.7'
    assert request.timeout == 5.0
    assert request.concurrency_limit == 50


def test_discover_streams_every_address(monkeypatch) -> None:
    calls: list[str] = []
    monkeypatch.setattr(discovery, 'probe_host', _fake_probe({'10.0.0.5'}, calls))

    async def runner() -> list[HostResult]:
        return [result async for result in discover('10.0.0', 9999, timeout=0.1, concurrency_limit=50)]

    results = asyncio.run(runner())
    assert len(results) == 254
    assert {result.address for result in results} == {f'10.0.0.{octet}' for octet in range(1, 255)}
    assert [result.address for result in results if result.reachable] == ['10.0.0.5']
    assert sorted(calls) == sorted(set(calls))


def test_discover_sequential_is_address_ordered(monkeypatch) -> None:
    calls: list[str] = []
    monkeypatch.setattr(discovery, 'probe_host', _fake_probe(set(), calls))

    async def runner() -> list[str]:
        return [result.address async for result in discover_sequential('10.0.0', 22)]

    addresses = asyncio.run(runner())
    assert addresses == [f'10.0.0.{octet}' for octet in range(1, 255)]
    assert calls == addresses


def test_scan_network_sorts_by_address(monkeypatch) -> None:
    calls: list[str] = []
    monkeypatch.setattr(discovery, 'probe_host', _fake_probe({'10.0.0.200', '10.0.0.30'}, calls))

    results = scan_network('10.0.0.0/24', 443, timeout=0.1, concurrency_limit=300)

    assert [result.octet for result in results] == list(range(1, 255))
    assert [result.address for result in results if result.reachable] == ['10.0.0.30', '10.0.0.200']


@pytest.mark.skipif(sys.platform != 'linux', reason='relies on 127.0.0.0/8 routing to loopback')
def test_scan_subnet_finds_loopback_listener() -> None:
    async def runner() -> list[HostResult]:
        async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            writer.close()

        server = await asyncio.start_server(handle, '127.0.0.1', 0)
        port = server.sockets[0].getsockname()[1]
        async with server:
            return await scan_subnet(ScanRequest(subnet='127.0.0', port=port, timeout=1.0, concurrency_limit=50))

    results = asyncio.run(runner())
    assert len(results) == 254
    assert [result.address for result in results if result.reachable] == ['127.0.0.1']
