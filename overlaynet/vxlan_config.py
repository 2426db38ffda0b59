"""VXLAN backend configuration and the lease attributes the backend publishes."""

from __future__ import annotations

import ipaddress
import json
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional, Union

from .ip4 import IP4, from_ip, parse_ip4
from .ip6 import IP6, from_ip6, parse_ip6

BACKEND_TYPE = "vxlan"
DEFAULT_VNI = 1
WINDOWS_DEFAULT_VNI = 4096
WINDOWS_VXLAN_PORT = 4789
WINDOWS_DEFAULT_MAC_PREFIX = "0E-2A"

_INT_MIN = -(1 << 63)
_INT_MAX = (1 << 63) - 1
_UINT16_MAX = 0xFFFF
_MAC_LENGTHS = (6, 8, 20)
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")

Document = Union[str, bytes, bytearray, Mapping[str, Any], None]
AddressLike = Union[str, int, ipaddress.IPv4Address, ipaddress.IPv6Address]


def format_mac(mac: bytes) -> str:
    """Render a hardware address as lower-case hex octets joined by colons."""
    return ":".join(f"{octet:02x}" for octet in bytes(mac))


def parse_mac(text: str) -> bytes:
    """Parse a 6, 8 or 20 octet hardware address.

    Accepted forms are colon or hyphen separated octets and dot separated
    groups of four hex digits.
    """
    invalid = ValueError(f"address {text}: invalid MAC address")
    if len(text) < 14:
        raise invalid
    if text[2] in ":-":
        if (len(text) + 1) % 3:
            raise invalid
        count = (len(text) + 1) // 3
        groups = text.split(text[2])
        if count not in _MAC_LENGTHS or len(groups) != count:
            raise invalid
        if any(len(group) != 2 for group in groups):
            raise invalid
    elif text[4] == ".":
        if (len(text) + 1) % 5:
            raise invalid
        count = 2 * (len(text) + 1) // 5
        quads = text.split(".")
        if count not in _MAC_LENGTHS or len(quads) != count // 2:
            raise invalid
        if any(len(quad) != 4 for quad in quads):
            raise invalid
        groups = [quad[start:start + 2] for quad in quads for start in (0, 2)]
    else:
        raise invalid
    if any(not set(group) <= _HEX_DIGITS for group in groups):
        raise invalid
    return bytes(int(group, 16) for group in groups)


def _load_object(data: Document, what: str) -> dict:
    if isinstance(data, Mapping):
        return dict(data)
    if isinstance(data, (bytes, bytearray)):
        data = bytes(data).decode()
    try:
        value = json.loads(data)
    except ValueError as exc:
        raise ValueError(f"{what}: {exc}") from None
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{what}: expected a JSON object, got {type(value).__name__}")
    return value


def _match_fields(obj: Mapping[str, Any], names: tuple[str, ...]) -> dict[str, Any]:
    """Map each JSON key onto a field name, exactly or ignoring case; later keys win."""
    folded = {name.casefold(): name for name in names}
    matched: dict[str, Any] = {}
    for key, value in obj.items():
        name = key if key in names else folded.get(key.casefold())
        if name is not None:
            matched[name] = value
    return matched


def _as_int(value: Any, name: str, what: str, low: int = _INT_MIN, high: int = _INT_MAX) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{what}: field {name} must be an integer")
    if not low <= value <= high:
        raise ValueError(f"{what}: field {name} value {value} out of range")
    return value


def _as_bool(value: Any, name: str, what: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{what}: field {name} must be a boolean")
    return value


def _as_str(value: Any, name: str, what: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{what}: field {name} must be a string")
    return value


def _is_blank(data: Document) -> bool:
    if data is None:
        return True
    return len(data) == 0


_CONFIG_ERROR = "error decoding VXLAN backend config"


@dataclass(frozen=True)
class VxlanConfig:
    """Backend settings for VXLAN on Linux hosts."""

    vni: int = DEFAULT_VNI
    port: int = 0
    mtu: int = 0
    gbp: bool = False
    learning: bool = False
    direct_routing: bool = False

    @classmethod
    def from_json(cls, data: Document, default_mtu: int) -> "VxlanConfig":
        """Decode the backend section; missing keys keep their defaults."""
        config = cls(mtu=default_mtu)
        if _is_blank(data):
            return config
        obj = _load_object(data, _CONFIG_ERROR)
        fields = _match_fields(obj, ("VNI", "Port", "MTU", "GBP", "Learning", "DirectRouting"))
        changes: dict[str, Any] = {}
        for name, attr in (("VNI", "vni"), ("Port", "port"), ("MTU", "mtu")):
            if fields.get(name) is not None:
                changes[attr] = _as_int(fields[name], name, _CONFIG_ERROR)
        for name, attr in (("GBP", "gbp"), ("Learning", "learning"), ("DirectRouting", "direct_routing")):
            if fields.get(name) is not None:
                changes[attr] = _as_bool(fields[name], name, _CONFIG_ERROR)
        return replace(config, **changes)


@dataclass(frozen=True)
class WindowsVxlanConfig:
    """Backend settings for VXLAN on Windows hosts, validated on decoding."""

    name: str = ""
    mac_prefix: str = WINDOWS_DEFAULT_MAC_PREFIX
    vni: int = WINDOWS_DEFAULT_VNI
    port: int = WINDOWS_VXLAN_PORT
    gbp: bool = False
    direct_routing: bool = False

    @classmethod
    def from_json(cls, data: Document) -> "WindowsVxlanConfig":
        """Decode and validate the backend section; the name defaults to flannel.<VNI>."""
        config = cls()
        if not _is_blank(data):
            obj = _load_object(data, _CONFIG_ERROR)
            fields = _match_fields(obj, ("Name", "MacPrefix", "VNI", "Port", "GBP", "DirectRouting"))
            changes: dict[str, Any] = {}
            for name, attr in (("Name", "name"), ("MacPrefix", "mac_prefix")):
                if fields.get(name) is not None:
                    changes[attr] = _as_str(fields[name], name, _CONFIG_ERROR)
            for name, attr in (("VNI", "vni"), ("Port", "port")):
                if fields.get(name) is not None:
                    changes[attr] = _as_int(fields[name], name, _CONFIG_ERROR)
            for name, attr in (("GBP", "gbp"), ("DirectRouting", "direct_routing")):
                if fields.get(name) is not None:
                    changes[attr] = _as_bool(fields[name], name, _CONFIG_ERROR)
            config = replace(config, **changes)

        if config.vni < WINDOWS_DEFAULT_VNI:
            raise ValueError(
                f"invalid VXLAN backend config. VNI [{config.vni}] must be greater than "
                f"or equal to {WINDOWS_DEFAULT_VNI} on Windows"
            )
        if config.port != WINDOWS_VXLAN_PORT:
            raise ValueError(
                f"invalid VXLAN backend config. Port [{config.port}] is not supported on "
                f"Windows. Omit the setting to default to port {WINDOWS_VXLAN_PORT}"
            )
        if config.direct_routing:
            raise ValueError(
                "invalid VXLAN backend config. DirectRouting is not supported on Windows"
            )
        if config.gbp:
            raise ValueError("invalid VXLAN backend config. GBP is not supported on Windows")
        prefix = config.mac_prefix.encode()
        if len(prefix) != 5 or prefix[2:3] != b"-":
            raise ValueError(
                f"invalid VXLAN backend config.MacPrefix [{config.mac_prefix}] is invalid, "
                "prefix must be of the format xx-xx e.g. 0E-2A"
            )
        if not config.name:
            config = replace(config, name=f"flannel.{config.vni}")
        return config


@dataclass(frozen=True)
class VxlanLeaseAttrs:
    """Backend data carried in a lease: the VNI and the VTEP hardware address."""

    vni: int = 0
    vtep_mac: bytes = b""

    def __post_init__(self) -> None:
        if not 0 <= self.vni <= _UINT16_MAX:
            raise ValueError(f"VNI out of range: {self.vni}")
        object.__setattr__(self, "vtep_mac", bytes(self.vtep_mac))

    def to_json(self) -> str:
        return json.dumps(
            {"VNI": self.vni, "VtepMAC": format_mac(self.vtep_mac)},
            separators=(",", ":"),
        )

    @classmethod
    def from_json(cls, data: Document) -> "VxlanLeaseAttrs":
        what = "error decoding VXLAN lease attributes"
        obj = _load_object(data, what)
        fields = _match_fields(obj, ("VNI", "VtepMAC"))
        vni = 0
        if fields.get("VNI") is not None:
            vni = _as_int(fields["VNI"], "VNI", what, 0, _UINT16_MAX)
        mac = b""
        if "VtepMAC" in fields:
            raw = fields["VtepMAC"]
            if not isinstance(raw, str):
                raise ValueError("error parsing hardware addr")
            mac = parse_mac(raw)
        return cls(vni, mac)


@dataclass
class LeaseAttrs:
    """Attributes a host attaches to the subnet lease it acquires."""

    backend_type: str = BACKEND_TYPE
    public_ip: IP4 = field(default_factory=IP4)
    public_ipv6: Optional[IP6] = None
    backend_data: Optional[str] = None
    backend_v6_data: Optional[str] = None


def _to_ip4(value: AddressLike) -> IP4:
    if isinstance(value, IP4):
        return value
    if isinstance(value, str):
        return parse_ip4(value)
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return from_ip(value)
    return IP4(value)


def _to_ip6(value: AddressLike) -> IP6:
    if isinstance(value, IP6):
        return value
    if isinstance(value, str):
        return parse_ip6(value)
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return from_ip6(value)
    return IP6(value)


def new_subnet_attrs(
    public_ip: Optional[AddressLike],
    public_ipv6: Optional[AddressLike],
    vni: int,
    mac: Optional[bytes],
    v6_mac: Optional[bytes],
) -> LeaseAttrs:
    """Build the lease attributes for the address families that have a device.

    A family is filled in only when both its public address and its VTEP
    hardware address are given; an empty hardware address is published as "".
    """
    attrs = LeaseAttrs()
    if public_ip is not None and mac is not None:
        attrs.public_ip = _to_ip4(public_ip)
        attrs.backend_data = VxlanLeaseAttrs(vni, mac).to_json()
    if public_ipv6 is not None and v6_mac is not None:
        attrs.public_ipv6 = _to_ip6(public_ipv6)
        attrs.backend_v6_data = VxlanLeaseAttrs(vni, v6_mac).to_json()
    return attrs