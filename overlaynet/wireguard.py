"""WireGuard backend configuration, lease attributes and endpoint selection."""

from __future__ import annotations

import ipaddress
import json
from dataclasses import dataclass, replace
from datetime import timedelta
from enum import Enum
from typing import Any, Optional, Union

from .ip4 import IP4, parse_ip4
from .ip6 import IP6, from_ip6, parse_ip6
from .vxlan_config import Document, _as_bool, _as_int, _as_str, _is_blank, _load_object, _match_fields

BACKEND_TYPE = "wireguard"
DEFAULT_LISTEN_PORT = 51820
DEFAULT_LISTEN_PORT_V6 = 51821
DEVICE_NAME = "flannel-wg"
V6_DEVICE_NAME = "flannel-wg-v6"

# IPv4/IPv6 header, UDP header, type, key index, nonce and authentication tag.
OVERHEAD = 80

_CONFIG_ERROR = "error decoding backend config"

AddressLike = Union[str, int, ipaddress.IPv4Address, ipaddress.IPv6Address]

__all__ = [
    "Mode",
    "WireguardConfig",
    "WireguardLeaseAttrs",
    "select_public_endpoint",
    "format_endpoint",
    "network_mtu",
]

# Keep the boolean helper referenced for symmetry with the other decoders.
_ = _as_bool


class Mode(str, Enum):
    """How address families share WireGuard devices."""

    SEPARATE = "separate"
    AUTO = "auto"
    IPV4 = "ipv4"
    IPV6 = "ipv6"


@dataclass(frozen=True)
class WireguardConfig:
    """Backend settings for WireGuard; the keepalive interval is in seconds."""

    listen_port: int = DEFAULT_LISTEN_PORT
    listen_port_v6: int = DEFAULT_LISTEN_PORT_V6
    mtu: int = 0
    psk: str = ""
    persistent_keepalive_interval: int = 0
    mode: Mode = Mode.SEPARATE

    @property
    def keepalive(self) -> timedelta:
        return timedelta(seconds=self.persistent_keepalive_interval)

    @classmethod
    def from_json(cls, data: Document, default_mtu: int) -> "WireguardConfig":
        """Decode the backend section; missing keys keep their defaults."""
        config = cls(mtu=default_mtu)
        if _is_blank(data):
            return config
        obj = _load_object(data, _CONFIG_ERROR)
        fields = _match_fields(
            obj,
            ("ListenPort", "ListenPortV6", "MTU", "PSK", "PersistentKeepaliveInterval", "Mode"),
        )
        changes: dict[str, Any] = {}
        for name, attr in (
            ("ListenPort", "listen_port"),
            ("ListenPortV6", "listen_port_v6"),
            ("MTU", "mtu"),
            ("PersistentKeepaliveInterval", "persistent_keepalive_interval"),
        ):
            if fields.get(name) is not None:
                changes[attr] = _as_int(fields[name], name, _CONFIG_ERROR)
        if fields.get("PSK") is not None:
            changes["psk"] = _as_str(fields["PSK"], "PSK", _CONFIG_ERROR)
        if fields.get("Mode") is not None:
            raw = _as_str(fields["Mode"], "Mode", _CONFIG_ERROR)
            try:
                changes["mode"] = Mode(raw)
            except ValueError:
                raise ValueError("no valid Mode configured") from None
        return replace(config, **changes)

    def device_names(self, enable_ipv4: bool, enable_ipv6: bool) -> dict[str, int]:
        """Map the name of each device to create onto its listen port."""
        if self.mode is not Mode.SEPARATE:
            return {DEVICE_NAME: self.listen_port}
        devices: dict[str, int] = {}
        if enable_ipv4:
            devices[DEVICE_NAME] = self.listen_port
        if enable_ipv6:
            devices[V6_DEVICE_NAME] = self.listen_port_v6
        return devices


@dataclass(frozen=True)
class WireguardLeaseAttrs:
    """Backend data carried in a lease: the host's WireGuard public key."""

    public_key: str = ""

    def to_json(self) -> str:
        return json.dumps({"PublicKey": self.public_key}, separators=(",", ":"))

    @classmethod
    def from_json(cls, data: Document) -> "WireguardLeaseAttrs":
        what = "failed to unmarshal BackendData"
        obj = _load_object(data, what)
        fields = _match_fields(obj, ("PublicKey",))
        if fields.get("PublicKey") is None:
            return cls()
        return cls(_as_str(fields["PublicKey"], "PublicKey", what))


def _to_ip4(value: Optional[AddressLike]) -> Optional[IP4]:
    if value is None or isinstance(value, IP4):
        return value
    if isinstance(value, str):
        return parse_ip4(value)
    if isinstance(value, ipaddress.IPv4Address):
        return IP4(int(value))
    if isinstance(value, ipaddress.IPv6Address):
        mapped = value.ipv4_mapped
        if mapped is None:
            raise ValueError("Address is not an IPv4 address")
        return IP4(int(mapped))
    return IP4(value)


def _to_ip6(value: Optional[AddressLike]) -> Optional[IP6]:
    if value is None or isinstance(value, IP6):
        return value
    if isinstance(value, str):
        return parse_ip6(value)
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return from_ip6(value)
    return IP6(value)


def select_public_endpoint(
    ip4: Optional[AddressLike],
    ip6: Optional[AddressLike],
    ext_addr: Optional[AddressLike],
    ext_v6_addr: Optional[AddressLike],
) -> str:
    """Pick the remote address most likely to connect, IPv6 in brackets.

    With both families available IPv4 wins when it is public and the local
    host has an IPv4 address; IPv6 wins when it is public and the local IPv6
    address is public too; otherwise IPv4 is used.
    """
    remote4 = _to_ip4(ip4)
    remote6 = _to_ip6(ip6)
    if remote4 is None and remote6 is None:
        raise ValueError("no public address to select an endpoint from")
    if remote6 is None:
        return str(remote4)
    if remote4 is None:
        return f"[{remote6}]"
    if not remote4.is_private() and ext_addr is not None:
        return str(remote4)
    local6 = _to_ip6(ext_v6_addr)
    if not remote6.is_private() and local6 is not None and not local6.is_private():
        return f"[{remote6}]"
    return str(remote4)


def format_endpoint(host: AddressLike, port: int) -> str:
    """Join a host and a port, bracketing bare IPv6 addresses."""
    if isinstance(host, (IP6, ipaddress.IPv6Address)):
        return f"[{host}]:{port}"
    text = str(host)
    if ":" in text and not text.startswith("["):
        return f"[{text}]:{port}"
    return f"{text}:{port}"


def network_mtu(mtu: int) -> int:
    """Return the MTU left for workloads once WireGuard overhead is added."""
    return mtu - OVERHEAD