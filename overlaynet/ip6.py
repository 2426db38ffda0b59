"""IPv6 addresses and networks held as unsigned 128-bit integers."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

_MAX_IP6 = (1 << 128) - 1

AnyAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
AnyNetwork = Union[
    ipaddress.IPv4Network,
    ipaddress.IPv6Network,
    ipaddress.IPv4Interface,
    ipaddress.IPv6Interface,
]


def _json_text(data: str | bytes) -> str:
    if isinstance(data, (bytes, bytearray)):
        data = bytes(data).decode()
    return data.strip('"')


class IP6(int):
    """An IPv6 address as an unsigned 128-bit integer."""

    def __new__(cls, value: int = 0) -> "IP6":
        value = int(value)
        if not 0 <= value <= _MAX_IP6:
            raise ValueError(f"IPv6 address value out of range: {value}")
        return super().__new__(cls, value)

    def to_ip(self) -> AnyAddress:
        """Return an address object; values spanning exactly four bytes become IPv4."""
        value = int(self)
        if 1 << 24 <= value < 1 << 32:
            return ipaddress.IPv4Address(value)
        return ipaddress.IPv6Address(value)

    def is_private(self) -> bool:
        """Report whether the leading significant byte is in fc00::/7 (RFC 4193)."""
        value = int(self)
        if value == 0:
            return False
        leading = value.to_bytes((value.bit_length() + 7) // 8, "big")[0]
        return leading & 0xFE == 0xFC

    def to_json(self) -> str:
        return f'"{self}"'

    @classmethod
    def from_json(cls, data: str | bytes) -> "IP6":
        return cls(parse_ip6(_json_text(data)))

    def __str__(self) -> str:
        address = self.to_ip()
        if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
            return str(address.ipv4_mapped)
        return str(address)

    def __repr__(self) -> str:
        return f"IP6('{self}')"

    def __format__(self, spec: str) -> str:
        return str(self) if not spec else int.__format__(self, spec)


def from_ip16_bytes(data: bytes) -> IP6:
    return IP6(int.from_bytes(bytes(data), "big"))


def from_ip6(ip: AnyAddress) -> IP6:
    """Convert an address object; IPv4 addresses become IPv4-mapped IPv6."""
    if isinstance(ip, ipaddress.IPv4Address):
        return IP6((0xFFFF << 32) | int(ip))
    if isinstance(ip, ipaddress.IPv6Address):
        return IP6(int(ip))
    raise ValueError("Address is not an IPv6 address")


def parse_ip6(s: str) -> IP6:
    try:
        address = ipaddress.ip_address(s)
    except ValueError:
        raise ValueError("Invalid IP address format") from None
    return from_ip6(address)


def prefix_mask(prefix_len: int) -> int:
    """Return the 128-bit mask for ``prefix_len``, or 0 when it is out of range."""
    if not 0 <= prefix_len <= 128:
        return 0
    return ((1 << prefix_len) - 1) << (128 - prefix_len)


def is_empty(subnet: Optional[int]) -> bool:
    return subnet is None or int(subnet) == 0


def get_ipv6_subnet_min(network_ip: int, subnet_size: int) -> IP6:
    return IP6(int(network_ip) + int(subnet_size))


def get_ipv6_subnet_max(network_ip: int, subnet_size: int) -> IP6:
    return IP6(int(network_ip) - int(subnet_size))


def check_ipv6_subnet(subnet_ip: int, mask: int) -> bool:
    """Report whether ``subnet_ip`` has no bits outside ``mask``."""
    return int(subnet_ip) == int(subnet_ip) & int(mask)


def map_ip6_to_string(nets: Iterable["IP6Net"]) -> list[str]:
    return [str(net) for net in nets]


@dataclass
class IP6Net:
    """An IPv6 network: an address and a prefix length."""

    ip: IP6 = field(default_factory=IP6)
    prefix_len: int = 0

    def __post_init__(self) -> None:
        self.ip = IP6(self.ip)
        if not 0 <= self.prefix_len <= 128:
            raise ValueError(f"invalid IPv6 prefix length: {self.prefix_len}")

    def __str__(self) -> str:
        return f"{self.ip}/{self.prefix_len}"

    def string_sep(self, hex_sep: str, prefix_sep: str) -> str:
        """Render with ``prefix_sep`` before the length; the address keeps its colons."""
        return f"{self.ip}{prefix_sep}{self.prefix_len}"

    def network(self) -> "IP6Net":
        return IP6Net(IP6(self.ip & self.mask()), self.prefix_len)

    def next(self) -> "IP6Net":
        return IP6Net(IP6(self.ip + (1 << (128 - self.prefix_len))), self.prefix_len)

    def increment_ip(self) -> None:
        self.ip = IP6(self.ip + 1)

    @classmethod
    def from_ipnet(cls, net: AnyNetwork) -> "IP6Net":
        if isinstance(net, (ipaddress.IPv4Interface, ipaddress.IPv6Interface)):
            return cls(from_ip6(net.ip), net.network.prefixlen)
        if isinstance(net, (ipaddress.IPv4Network, ipaddress.IPv6Network)):
            return cls(from_ip6(net.network_address), net.prefixlen)
        raise TypeError(f"expected a network object, got {type(net).__name__}")

    def to_ipnet(self) -> ipaddress.IPv6Interface:
        """Return the address with its prefix; host bits are kept."""
        return ipaddress.IPv6Interface((int(self.ip), self.prefix_len))

    def overlaps(self, other: "IP6Net") -> bool:
        mask = self.mask() if self.prefix_len < other.prefix_len else other.mask()
        return (self.ip & mask) == (other.ip & mask)

    def mask(self) -> int:
        return prefix_mask(self.prefix_len)

    def contains(self, ip: int) -> bool:
        mask = self.mask()
        return (self.ip & mask) == (int(ip) & mask)

    def contains_cidr(self, other: "IP6Net") -> bool:
        return self.mask() <= other.mask() and self.contains(other.ip)

    def is_empty(self) -> bool:
        return is_empty(self.ip) and self.prefix_len == 0

    def to_json(self) -> str:
        return f'"{self}"'

    @classmethod
    def from_json(cls, data: str | bytes) -> "IP6Net":
        text = _json_text(data)
        if "/" not in text:
            raise ValueError(f"invalid CIDR address: {text}")
        try:
            net = ipaddress.ip_network(text, strict=False)
        except ValueError as exc:
            raise ValueError(f"invalid CIDR address: {text}") from exc
        return cls.from_ipnet(net)