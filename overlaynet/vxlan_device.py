"""VXLAN device attributes, link descriptions and neighbour entries."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import Optional, Union

from .ip4 import IP4
from .ip6 import IP6
from .vxlan_config import format_mac

ENCAP_OVERHEAD = 50
LINK_TYPE = "vxlan"

Address = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
AddressLike = Union[str, int, Address]


def _to_address(value: Optional[AddressLike]) -> Optional[Address]:
    if value is None:
        return None
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        address = value
    elif isinstance(value, IP4):
        address = value.to_ip()
    elif isinstance(value, IP6):
        address = ipaddress.IPv6Address(int(value))
    else:
        address = ipaddress.ip_address(value)
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        return address.ipv4_mapped
    return address


def _fmt(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def device_name(vni: int, ipv6: bool) -> str:
    """Return the name of the VXLAN device for ``vni`` and address family."""
    return f"flannel-v6.{vni}" if ipv6 else f"flannel.{vni}"


@dataclass
class VxlanLink:
    """The kernel-facing description of a VXLAN link."""

    name: str
    hardware_addr: bytes = b""
    mtu: int = 0
    vxlan_id: int = 0
    vtep_dev_index: int = 0
    src_addr: Optional[Address] = None
    port: int = 0
    learning: bool = False
    gbp: bool = False
    group: Optional[Address] = None
    l2miss: bool = False
    link_type: str = LINK_TYPE

    def __post_init__(self) -> None:
        self.hardware_addr = bytes(self.hardware_addr)
        self.src_addr = _to_address(self.src_addr)
        self.group = _to_address(self.group)


@dataclass(frozen=True)
class VxlanDeviceAttrs:
    """Settings from which a VXLAN device is created."""

    vni: int
    name: str
    mtu: int
    vtep_index: int = 0
    vtep_addr: Optional[AddressLike] = None
    vtep_port: int = 0
    gbp: bool = False
    learning: bool = False

    def __post_init__(self) -> None:
        if not 0 <= self.vni <= 0xFFFFFFFF:
            raise ValueError(f"VNI out of range: {self.vni}")

    def to_link(self, hardware_addr: bytes) -> VxlanLink:
        """Describe the link to create, leaving room for the encapsulation overhead."""
        return VxlanLink(
            name=self.name,
            hardware_addr=hardware_addr,
            mtu=self.mtu - ENCAP_OVERHEAD,
            vxlan_id=self.vni,
            vtep_dev_index=self.vtep_index,
            src_addr=_to_address(self.vtep_addr),
            port=self.vtep_port,
            learning=self.learning,
            gbp=self.gbp,
        )


@dataclass(frozen=True)
class Neighbor:
    """A remote VTEP: its hardware address and IPv4 or IPv6 address."""

    mac: bytes
    ip: Optional[IP4] = None
    ip6: Optional[IP6] = None

    def __str__(self) -> str:
        address = self.ip6 if self.ip6 is not None else self.ip
        return f"{address}, {format_mac(self.mac)}"


def links_incompat(l1: VxlanLink, l2: VxlanLink) -> str:
    """Describe the first setting in which two links disagree, or return ""."""
    if l1.link_type != l2.link_type:
        return f"link type: {l1.link_type} vs {l2.link_type}"
    if l1.vxlan_id != l2.vxlan_id:
        return f"vni: {l1.vxlan_id} vs {l2.vxlan_id}"
    if (
        l1.vtep_dev_index > 0
        and l2.vtep_dev_index > 0
        and l1.vtep_dev_index != l2.vtep_dev_index
    ):
        return f"vtep (external) interface: {l1.vtep_dev_index} vs {l2.vtep_dev_index}"
    if l1.src_addr is not None and l2.src_addr is not None and l1.src_addr != l2.src_addr:
        return f"vtep (external) IP: {l1.src_addr} vs {l2.src_addr}"
    if l1.group is not None and l2.group is not None and l1.group != l2.group:
        return f"group address: {l1.group} vs {l2.group}"
    if l1.l2miss != l2.l2miss:
        return f"l2miss: {_fmt(l1.l2miss)} vs {_fmt(l2.l2miss)}"
    if l1.port > 0 and l2.port > 0 and l1.port != l2.port:
        return f"port: {l1.port} vs {l2.port}"
    if l1.gbp != l2.gbp:
        return f"gbp: {_fmt(l1.gbp)} vs {_fmt(l2.gbp)}"
    return ""