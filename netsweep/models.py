from __future__ import annotations

import ipaddress
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field, field_validator

from netsweep.subnet import normalize_subnet

DEFAULT_TIMEOUT = 5.0
DEFAULT_CONCURRENCY = 50


class HostResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str
    reachable: bool

    @property
    def octet(self) -> int:
        return int(self.address.rsplit(".", 1)[1])


class ScanRequest(BaseModel):
    subnet: str = Field(..., description="Subnet prefix, e.g. 192.168.1, or a /24 CIDR")
    port: int = Field(..., ge=1, le=65535)
    timeout: float = Field(DEFAULT_TIMEOUT, gt=0, description="Seconds allowed per connection attempt")
    concurrency_limit: int = Field(DEFAULT_CONCURRENCY, gt=0)

    @field_validator("subnet")
    @classmethod
    def validate_subnet(cls, value: str) -> str:
        return normalize_subnet(value)


def sort_results(results: Iterable[HostResult]) -> list[HostResult]:
    return sorted(results, key=lambda result: ipaddress.IPv4Address(result.address))
