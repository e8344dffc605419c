from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable

from netsweep.models import HostResult
from netsweep.result_stream import ResultStream, open_result_channel

logger = logging.getLogger(__name__)

Probe = Callable[[str], Awaitable[HostResult]]


class ScanSession:
    """Run state of one scan: admits probes under a cap and emits one result per host.

    A single coordinating task (:meth:`run`) owns every counter here, so no
    locking is needed. Admission is driven by probe completions, and the
    result stream is closed from exactly one place once the cursor is
    exhausted and nothing is in flight.
    """

    def __init__(self, hosts: Iterable[str], probe: Probe, concurrency_limit: int) -> None:
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be >= 1")
        self._hosts = list(dict.fromkeys(hosts))
        self._probe = probe
        self._limit = concurrency_limit
        self._cursor = 0
        self._remaining = set(self._hosts)
        self._in_flight = 0
        self._peak_in_flight = 0
        self._completed = 0
        self._started = False
        self._sink, self.stream = open_result_channel()

    @property
    def total(self) -> int:
        return len(self._hosts)

    @property
    def concurrency_limit(self) -> int:
        return self._limit

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def peak_in_flight(self) -> int:
        return self._peak_in_flight

    @property
    def completed(self) -> int:
        return self._completed

    @property
    def remaining(self) -> frozenset[str]:
        return frozenset(self._remaining)

    @property
    def finished(self) -> bool:
        return self._sink.closed

    def _admit(self, pending: dict[asyncio.Task[HostResult], str]) -> None:
        while self._in_flight < self._limit and self._cursor < len(self._hosts):
            if self._sink.abandoned:
                return
            host = self._hosts[self._cursor]
            self._cursor += 1
            pending[asyncio.ensure_future(self._probe(host))] = host
            self._in_flight += 1
            self._peak_in_flight = max(self._peak_in_flight, self._in_flight)

    def _resolve(self, host: str, result: HostResult) -> None:
        self._in_flight -= 1
        if result.address != host or host not in self._remaining:
            raise RuntimeError(f"unexpected or duplicate result for {result.address}")
        self._remaining.discard(host)
        self._completed += 1
        self._sink.publish(result)

    def _claim(self) -> None:
        if self._started:
            raise RuntimeError("scan session already started")
        self._started = True

    async def run(self) -> None:
        """Drive the scan to completion, publishing into :attr:`stream`."""
        self._claim()
        await self._run()

    async def _run(self) -> None:
        pending: dict[asyncio.Task[HostResult], str] = {}
        try:
            self._admit(pending)
            while pending:
                done, _ = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    host = pending.pop(task)
                    self._resolve(host, task.result())
                self._admit(pending)
        except BaseException as exc:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            self._in_flight = 0
            if isinstance(exc, Exception):
                self._sink.close(error=exc)
            else:
                self._sink.close(error=RuntimeError("scan was cancelled"))
            raise

        if self._sink.abandoned:
            logger.debug("scan abandoned after %d of %d hosts", self._completed, self.total)
        self._sink.close()

    async def results(self) -> AsyncIterator[HostResult]:
        """Run the scan in the background and yield results in completion order.

        Leaving early abandons the stream: no further probes are admitted,
        and the ones already in flight are awaited so their sockets are
        released before this generator finishes.
        """
        self._claim()
        runner = asyncio.ensure_future(self._run())
        try:
            async for result in self.stream:
                yield result
        except asyncio.CancelledError:
            runner.cancel()
            raise
        finally:
            if not self.stream.closed:
                self.stream.abandon()
            await asyncio.gather(runner, return_exceptions=True)
