from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from netsweep.models import HostResult

_END = object()


class _Channel:
    def __init__(self) -> None:
        self.queue: asyncio.Queue[object] = asyncio.Queue()
        self.closed = False
        self.abandoned = False
        self.error: BaseException | None = None
        self.published = 0
        self.dropped = 0

    def drain(self) -> None:
        while not self.queue.empty():
            if self.queue.get_nowait() is _END:
                self.queue.put_nowait(_END)
                return


class ResultSink:
    """Writer side of a result channel. Held only by the scan that fills it."""

    def __init__(self, channel: _Channel) -> None:
        self._channel = channel

    @property
    def abandoned(self) -> bool:
        return self._channel.abandoned

    @property
    def closed(self) -> bool:
        return self._channel.closed

    def publish(self, result: HostResult) -> bool:
        channel = self._channel
        if channel.closed:
            raise RuntimeError("publish on a closed result stream")
        if channel.abandoned:
            channel.dropped += 1
            return False
        channel.queue.put_nowait(result)
        channel.published += 1
        return True

    def close(self, error: BaseException | None = None) -> None:
        channel = self._channel
        if channel.closed:
            raise RuntimeError("result stream already closed")
        channel.closed = True
        channel.error = error
        channel.queue.put_nowait(_END)


class ResultStream:
    """Reader side of a result channel.

    Iterating yields each ``HostResult`` as it is published and stops at the
    close signal. If the writer closed with an error, it is raised once the
    results queued before it have been read.
    """

    def __init__(self, channel: _Channel) -> None:
        self._channel = channel

    @property
    def closed(self) -> bool:
        return self._channel.closed

    @property
    def abandoned(self) -> bool:
        return self._channel.abandoned

    @property
    def published(self) -> int:
        return self._channel.published

    @property
    def dropped(self) -> int:
        return self._channel.dropped

    def abandon(self) -> None:
        self._channel.abandoned = True
        self._channel.drain()

    def __aiter__(self) -> AsyncIterator[HostResult]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[HostResult]:
        channel = self._channel
        finished = False
        try:
            while True:
                item = await channel.queue.get()
                if item is _END:
                    finished = True
                    channel.queue.put_nowait(_END)
                    if channel.error is not None:
                        raise channel.error
                    return
                yield item
        finally:
            if not finished:
                self.abandon()


def open_result_channel() -> tuple[ResultSink, ResultStream]:
    channel = _Channel()
    return ResultSink(channel), ResultStream(channel)
