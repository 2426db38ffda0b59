"""IPv4 addresses and networks held as unsigned 32-bit integers."""

from __future__ import annotations

import ipaddress
import sys
from dataclasses import dataclass, field
from typing import Iterable, Union

_MAX_IP4 = 0xFFFFFFFF

AnyAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
AnyNetwork = Union[
    ipaddress.IPv4Network,
    ipaddress.IPv6Network,
    ipaddress.IPv4Interface,
    ipaddress.IPv6Interface,
]


def natively_little() -> bool:
    """Return True when the running machine stores integers little-endian."""
    return sys.byteorder == "little"


def _json_text(data: str | bytes) -> str:
    if isinstance(data, (bytes, bytearray)):
        data = bytes(data).decode()
    return data.strip('"')


class IP4(int):
    """An IPv4 address as an unsigned 32-bit integer in host order."""

    def __new__(cls, value: int = 0) -> "IP4":
        value = int(value)
        if not 0 <= value <= _MAX_IP4:
            raise ValueError(f"IPv4 address value out of range: {value}")
        return super().__new__(cls, value)

    def octets(self) -> tuple[int, int, int, int]:
        """Return the four octets, most significant first."""
        a, b, c, d = self.to_bytes(4, "big")
        return a, b, c, d

    def to_ip(self) -> ipaddress.IPv4Address:
        return ipaddress.IPv4Address(int(self))

    def network_order(self) -> int:
        """Return the value whose in-memory layout is big-endian on this machine."""
        if natively_little():
            return int.from_bytes(self.to_bytes(4, "big"), "little")
        return int(self)

    def string_sep(self, sep: str) -> str:
        return sep.join(str(octet) for octet in self.octets())

    def is_private(self) -> bool:
        """Report whether the address is private according to RFC 1918."""
        a, b, _, _ = self.octets()
        return a == 10 or (a == 172 and b & 0xF0 == 16) or (a == 192 and b == 168)

    def to_json(self) -> str:
        return f'"{self}"'

    @classmethod
    def from_json(cls, data: str | bytes) -> "IP4":
        return cls(parse_ip4(_json_text(data)))

    def __str__(self) -> str:
        return str(self.to_ip())

    def __repr__(self) -> str:
        return f"IP4('{self}')"

    def __format__(self, spec: str) -> str:
        return str(self) if not spec else int.__format__(self, spec)


def from_bytes(data: bytes) -> IP4:
    """Build an address from the first four bytes of ``data``, big-endian."""
    if len(data) < 4:
        raise ValueError("at least four bytes are needed for an IPv4 address")
    return IP4(int.from_bytes(bytes(data[:4]), "big"))


def from_ip(ip: AnyAddress) -> IP4:
    """Convert an IPv4 (or IPv4-mapped IPv6) address object."""
    if isinstance(ip, ipaddress.IPv6Address):
        mapped = ip.ipv4_mapped
        if mapped is None:
            raise ValueError("Address is not an IPv4 address")
        ip = mapped
    if not isinstance(ip, ipaddress.IPv4Address):
        raise TypeError(f"expected an IP address object, got {type(ip).__name__}")
    return IP4(int(ip))


def parse_ip4(s: str) -> IP4:
    try:
        address = ipaddress.ip_address(s)
    except ValueError:
        raise ValueError("Invalid IP address format") from None
    return from_ip(address)


def map_ip4_to_string(nets: Iterable["IP4Net"]) -> list[str]:
    return [str(net) for net in nets]


@dataclass
class IP4Net:
    """An IPv4 network: an address and a prefix length."""

    ip: IP4 = field(default_factory=IP4)
    prefix_len: int = 0

    def __post_init__(self) -> None:
        self.ip = IP4(self.ip)
        if not 0 <= self.prefix_len <= 32:
            raise ValueError(f"invalid IPv4 prefix length: {self.prefix_len}")

    def __str__(self) -> str:
        return f"{self.ip}/{self.prefix_len}"

    def string_sep(self, octet_sep: str, prefix_sep: str) -> str:
        return f"{self.ip.string_sep(octet_sep)}{prefix_sep}{self.prefix_len}"

    def network(self) -> "IP4Net":
        return IP4Net(IP4(self.ip & self.mask()), self.prefix_len)

    def next(self) -> "IP4Net":
        """Return the adjacent network of the same size (wrapping at 2**32)."""
        step = 1 << (32 - self.prefix_len)
        return IP4Net(IP4((self.ip + step) & _MAX_IP4), self.prefix_len)

    def increment_ip(self) -> None:
        self.ip = IP4((self.ip + 1) & _MAX_IP4)

    @classmethod
    def from_ipnet(cls, net: AnyNetwork) -> "IP4Net":
        if isinstance(net, (ipaddress.IPv4Interface, ipaddress.IPv6Interface)):
            return cls(from_ip(net.ip), net.network.prefixlen)
        if isinstance(net, (ipaddress.IPv4Network, ipaddress.IPv6Network)):
            return cls(from_ip(net.network_address), net.prefixlen)
        raise TypeError(f"expected a network object, got {type(net).__name__}")

    def to_ipnet(self) -> ipaddress.IPv4Interface:
        """Return the address with its prefix; host bits are kept."""
        return ipaddress.IPv4Interface((int(self.ip), self.prefix_len))

    def overlaps(self, other: "IP4Net") -> bool:
        mask = self.mask() if self.prefix_len < other.prefix_len else other.mask()
        return (self.ip & mask) == (other.ip & mask)

    def mask(self) -> int:
        return (_MAX_IP4 << (32 - self.prefix_len)) & _MAX_IP4

    def contains(self, ip: int) -> bool:
        mask = self.mask()
        return (self.ip & mask) == (int(ip) & mask)

    def contains_cidr(self, other: "IP4Net") -> bool:
        return self.mask() <= other.mask() and self.contains(other.ip)

    def is_empty(self) -> bool:
        return self.ip == 0 and self.prefix_len == 0

    def to_json(self) -> str:
        return f'"{self}"'

    @classmethod
    def from_json(cls, data: str | bytes) -> "IP4Net":
        text = _json_text(data)
        if "/" not in text:
            raise ValueError(f"invalid CIDR address: {text}")
        try:
            net = ipaddress.ip_network(text, strict=False)
        except ValueError as exc:
            raise ValueError(f"invalid CIDR address: {text}") from exc
        return cls.from_ipnet(net)