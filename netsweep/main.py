from __future__ import annotations

import asyncio
import logging
import os
from contextlib import aclosing
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, field_validator

from netsweep.discovery import discover_request, scan_subnet
from netsweep.log_stream import LogStream
from netsweep.models import DEFAULT_CONCURRENCY, DEFAULT_TIMEOUT, HostResult, ScanRequest
from netsweep.subnet import normalize_subnet

logger = logging.getLogger("netsweep")
logging.basicConfig(level=logging.INFO)

app = FastAPI(title="Subnet Port Discovery API")
log_stream = LogStream()


def _cors_origins() -> list[str]:
    raw_origins = os.environ.get("FRONTEND_ORIGINS", "")
    if not raw_origins:
        return ["http://localhost:5173", "http://127.0.0.1:5173"]
    return [origin.strip() for origin in raw_origins.split(",") if origin.strip()]


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _default_timeout() -> float:
    return float(os.environ.get("NETSWEEP_TIMEOUT", DEFAULT_TIMEOUT))


def _default_concurrency() -> int:
    return int(os.environ.get("NETSWEEP_CONCURRENCY", DEFAULT_CONCURRENCY))


def _configured_defaults() -> tuple[float, int]:
    """Return the env-configured timeout and concurrency, rejecting unusable values."""
    timeout = _default_timeout()
    concurrency = _default_concurrency()
    if timeout <= 0:
        raise ValueError(f"NETSWEEP_TIMEOUT must be > 0, got {timeout}")
    if concurrency < 1:
        raise ValueError(f"NETSWEEP_CONCURRENCY must be >= 1, got {concurrency}")
    return timeout, concurrency


class DiscoverRequest(BaseModel):
    subnet: str = Field(..., description="Subnet prefix (192.168.1) or /24 CIDR (192.168.1.0/24)")
    port: int = Field(..., ge=1, le=65535)
    timeout: float | None = Field(None, gt=0, description="Seconds per connection attempt")
    concurrency_limit: int | None = Field(None, gt=0)

    @field_validator("subnet")
    @classmethod
    def validate_subnet(cls, value: str) -> str:
        return normalize_subnet(value)

    def to_scan_request(self) -> ScanRequest:
        timeout, concurrency = _configured_defaults()
        return ScanRequest(
            subnet=self.subnet,
            port=self.port,
            timeout=self.timeout or timeout,
            concurrency_limit=self.concurrency_limit or concurrency,
        )


class DiscoverResponse(BaseModel):
    subnet: str
    port: int
    hosts: list[str]
    results: list[HostResult]


def _report_transport_error(host: str, exc: BaseException) -> None:
    log_stream.publish_nowait(f"Unexpected transport error scanning {host}: {exc!r}", level="warning")


@app.post("/api/discover", response_model=DiscoverResponse)
async def discover_hosts(payload: DiscoverRequest) -> DiscoverResponse:
    try:
        request = payload.to_scan_request()
    except ValueError as exc:
        logger.error("Invalid scan defaults: %s", exc)
        raise HTTPException(status_code=500, detail="Invalid scan defaults configured") from exc
    await log_stream.publish(f"Discovery started for {request.subnet}.0/24 port {request.port}")
    logger.info("Discovery started for %s.0/24 port %s", request.subnet, request.port)

    results = await scan_subnet(request, on_diagnostic=_report_transport_error)
    hosts = [result.address for result in results if result.reachable]

    await log_stream.publish(f"Discovery complete for {request.subnet}.0/24: {len(hosts)} reachable")
    logger.info("Discovery complete for %s.0/24: %d reachable", request.subnet, len(hosts))
    return DiscoverResponse(subnet=request.subnet, port=request.port, hosts=hosts, results=results)


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@app.websocket("/ws/discover")
async def websocket_discover(websocket: WebSocket) -> None:
    await websocket.accept()
    try:
        payload = DiscoverRequest.model_validate(await websocket.receive_json())
        request = payload.to_scan_request()
    except ValueError as exc:
        await websocket.send_json({"event": "error", "detail": str(exc)})
        await websocket.close()
        return
    except WebSocketDisconnect:
        return

    await log_stream.publish(f"Streaming discovery started for {request.subnet}.0/24 port {request.port}")
    disconnected = asyncio.ensure_future(_wait_for_disconnect(websocket))
    count = 0
    try:
        async with aclosing(discover_request(request, on_diagnostic=_report_transport_error)) as results:
            async for result in results:
                if disconnected.done():
                    raise WebSocketDisconnect()
                count += 1
                await websocket.send_json({"event": "result", **result.model_dump()})
    except WebSocketDisconnect:
        logger.info("Discovery client disconnected after %d results", count)
        await log_stream.publish(f"Streaming discovery abandoned after {count} results", level="warning")
        return
    finally:
        disconnected.cancel()

    await websocket.send_json({"event": "complete", "count": count})
    await websocket.close()


@app.websocket("/ws/logs")
async def websocket_logs(websocket: WebSocket) -> None:
    await websocket.accept()
    await websocket.send_json(
        {"timestamp": datetime.now(timezone.utc).isoformat(), "level": "info", "message": "Connected to live logs"}
    )
    try:
        async for event in log_stream.subscribe():
            await websocket.send_json(event)
    except WebSocketDisconnect:
        return


@app.get("/health")
async def health() -> dict[str, Any]:
    try:
        timeout, concurrency = _configured_defaults()
    except ValueError as exc:
        return {"status": "misconfigured", "detail": str(exc), "log_subscribers": log_stream.subscriber_count}
    return {
        "status": "ok",
        "default_timeout": timeout,
        "default_concurrency": concurrency,
        "log_subscribers": log_stream.subscriber_count,
    }
