from __future__ import annotations

import ipaddress
from collections.abc import Iterator

HOST_OCTETS = range(1, 255)

_PREFIX_ERROR = "Invalid subnet format. Expected format: xxx.xxx.xxx"


def validate_subnet_prefix(value: str) -> str:
    parts = value.strip().split(".")
    if len(parts) != 3:
        raise ValueError(_PREFIX_ERROR)
    octets: list[int] = []
    for part in parts:
        if not (part.isascii() and part.isdigit()):
            raise ValueError(_PREFIX_ERROR)
        number = int(part)
        if number > 255:
            raise ValueError(_PREFIX_ERROR)
        octets.append(number)
    return ".".join(str(octet) for octet in octets)


def prefix_from_network(value: str) -> str:
    try:
        network = ipaddress.ip_network(value.strip(), strict=False)
    except ValueError as exc:
        raise ValueError("Invalid subnet format") from exc
    if not isinstance(network, ipaddress.IPv4Network):
        raise ValueError("Only IPv4 subnets are supported")
    if network.prefixlen != 24:
        raise ValueError("Only /24 subnets are supported")
    return str(network.network_address).rsplit(".", 1)[0]


def normalize_subnet(value: str) -> str:
    """Accept either ``192.168.1`` or ``192.168.1.0/24`` and return ``192.168.1``."""
    if "/" in value:
        return prefix_from_network(value)
    return validate_subnet_prefix(value)


def iter_subnet_hosts(prefix: str) -> Iterator[str]:
    for octet in HOST_OCTETS:
        yield f"{prefix}.{octet}"
