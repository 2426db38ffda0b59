"""Look up network interfaces and their addresses, and plan address changes on a link."""

from __future__ import annotations

import ipaddress
import socket
from pathlib import Path
from typing import Iterable, Mapping, Optional, Sequence, Union

import psutil

from .ip4 import IP4, IP4Net, from_ip
from .ip6 import IP6, IP6Net, from_ip6

_PROC_ROUTE = Path("/proc/net/route")
_PROC_IPV6_ROUTE = Path("/proc/net/ipv6_route")
_RTF_REJECT = 0x0200
_LIMITED_BROADCAST = ipaddress.IPv4Address("255.255.255.255")

Address = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
AddressLike = Union[str, int, Address]


class InterfaceNotFoundError(LookupError):
    """Raised when no interface, address or route satisfies a lookup."""


def _to_address(value: AddressLike) -> Address:
    """Normalise strings, integers and address objects; zone suffixes are dropped."""
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return value
    if isinstance(value, IP4):
        return value.to_ip()
    if isinstance(value, IP6):
        return ipaddress.IPv6Address(int(value))
    if isinstance(value, str):
        return ipaddress.ip_address(value.split("%", 1)[0])
    if isinstance(value, int):
        return ipaddress.ip_address(value)
    raise TypeError(f"expected an IP address, got {type(value).__name__}")


def _as_ip4(addr: Address) -> Optional[IP4]:
    try:
        return from_ip(addr)
    except ValueError:
        return None


def _is_global_unicast(addr: Address) -> bool:
    if isinstance(addr, ipaddress.IPv4Address) and addr == _LIMITED_BROADCAST:
        return False
    return not (
        addr.is_unspecified or addr.is_loopback or addr.is_multicast or addr.is_link_local
    )


def prefer_global_unicast(addrs: Iterable[AddressLike], version: int) -> list[Address]:
    """Return the global unicast addresses of ``version``, then the link-local ones."""
    if version not in (4, 6):
        raise ValueError(f"unsupported IP version: {version}")
    global_unicast: list[Address] = []
    link_local: list[Address] = []
    for value in addrs:
        addr = _to_address(value)
        if version == 4:
            if isinstance(addr, ipaddress.IPv6Address):
                if addr.ipv4_mapped is None:
                    continue
                addr = addr.ipv4_mapped
        elif not isinstance(addr, ipaddress.IPv6Address):
            continue
        if _is_global_unicast(addr):
            global_unicast.append(addr)
        elif addr.is_link_local:
            link_local.append(addr)
    return global_unicast + link_local


def _entries_addresses(entries: Sequence, family: int) -> list[Address]:
    return [_to_address(entry.address) for entry in entries if entry.family == family]


def _interface_addresses(iface: str, family: int) -> list[Address]:
    try:
        entries = psutil.net_if_addrs()[iface]
    except KeyError:
        raise InterfaceNotFoundError(f"Link not found: {iface}") from None
    return _entries_addresses(entries, family)


def get_interface_ip4_addrs(iface: str) -> list[Address]:
    """Return the IPv4 addresses of ``iface``, global unicast before link-local."""
    found = prefer_global_unicast(_interface_addresses(iface, socket.AF_INET), 4)
    if not found:
        raise InterfaceNotFoundError("No IPv4 address found for given interface")
    return found


def get_interface_ip6_addrs(iface: str) -> list[Address]:
    """Return the IPv6 addresses of ``iface``, global unicast before link-local."""
    found = prefer_global_unicast(_interface_addresses(iface, socket.AF_INET6), 6)
    if not found:
        raise InterfaceNotFoundError("No IPv6 address found for given interface")
    return found


def _has_ip4(addrs: Iterable[Address], target: Address) -> bool:
    wanted = _as_ip4(target)
    if wanted is None:
        return False
    return any(_as_ip4(addr) == wanted for addr in addrs)


def _has_ip6(addrs: Iterable[Address], target: Address) -> bool:
    wanted = from_ip6(target)
    return any(from_ip6(addr) == wanted for addr in addrs)


def get_interface_ip4_addr_match(iface: str, match_addr: AddressLike) -> None:
    """Raise unless ``iface`` carries the IPv4 address ``match_addr``."""
    addrs = _interface_addresses(iface, socket.AF_INET)
    if not _has_ip4(addrs, _to_address(match_addr)):
        raise InterfaceNotFoundError("No IPv4 address found for given interface")


def get_interface_ip6_addr_match(iface: str, match_addr: AddressLike) -> None:
    """Raise unless ``iface`` carries the IPv6 address ``match_addr``."""
    addrs = _interface_addresses(iface, socket.AF_INET6)
    if not _has_ip6(addrs, _to_address(match_addr)):
        raise InterfaceNotFoundError("No IPv6 address found for given interface")


def _find_interface(
    table: Mapping[str, Sequence], family: int, target: Address, has
) -> Optional[str]:
    for name, entries in table.items():
        if has(_entries_addresses(entries, family), target):
            return name
    return None


def get_interface_by_ip(ip: AddressLike) -> str:
    """Return the name of the first interface that carries the IPv4 address ``ip``."""
    name = _find_interface(psutil.net_if_addrs(), socket.AF_INET, _to_address(ip), _has_ip4)
    if name is None:
        raise InterfaceNotFoundError("No interface with given IP found")
    return name


def get_interface_by_ip6(ip: AddressLike) -> str:
    """Return the name of the first interface that carries the IPv6 address ``ip``."""
    name = _find_interface(psutil.net_if_addrs(), socket.AF_INET6, _to_address(ip), _has_ip6)
    if name is None:
        raise InterfaceNotFoundError("No interface with given IPv6 found")
    return name


def default_interface_from_route_table(text: str) -> str:
    """Return the device of the first IPv4 default route in /proc/net/route text."""
    for line in text.splitlines():
        fields = line.split()
        if len(fields) < 8:
            continue
        try:
            dest = int(fields[1], 16)
            flags = int(fields[3], 16)
            mask = int(fields[7], 16)
        except ValueError:
            continue
        if dest != 0 or mask != 0 or flags & _RTF_REJECT:
            continue
        device = fields[0]
        if not device or device == "*":
            raise InterfaceNotFoundError(
                "Found default route but could not determine interface"
            )
        return device
    raise InterfaceNotFoundError("Unable to find default route")


def default_interface_from_ipv6_route_table(text: str) -> str:
    """Return the device of the first IPv6 default route in /proc/net/ipv6_route text."""
    for line in text.splitlines():
        fields = line.split()
        if len(fields) < 9:
            continue
        try:
            dest = int(fields[0], 16)
            prefix_len = int(fields[1], 16)
            flags = int(fields[8], 16)
        except ValueError:
            continue
        if dest != 0 or prefix_len != 0 or flags & _RTF_REJECT:
            continue
        if len(fields) < 10 or fields[9] == "*":
            raise InterfaceNotFoundError(
                "Found default v6 route but could not determine interface"
            )
        return fields[9]
    raise InterfaceNotFoundError("Unable to find default v6 route")


def get_default_gateway_interface() -> str:
    """Return the name of the interface that carries the IPv4 default route."""
    return default_interface_from_route_table(_PROC_ROUTE.read_text())


def get_default_v6_gateway_interface() -> str:
    """Return the name of the interface that carries the IPv6 default route."""
    return default_interface_from_ipv6_route_table(_PROC_IPV6_ROUTE.read_text())


def _ip4net(value) -> IP4Net:
    if isinstance(value, IP4Net):
        return value
    if isinstance(value, str):
        value = ipaddress.ip_interface(value)
    return IP4Net.from_ipnet(value)


def _ip6net(value) -> IP6Net:
    if isinstance(value, IP6Net):
        return value
    if isinstance(value, str):
        value = ipaddress.ip_interface(value)
    return IP6Net.from_ipnet(value)


def plan_v4_address_changes(
    ipa, ipn, existing: Iterable
) -> tuple[list[IP4Net], Optional[IP4Net]]:
    """Plan how to leave ``ipa`` as the only address of a link inside ``ipn``.

    Returns the addresses to remove and the address to add, or None when
    ``ipa`` is already present.
    """
    wanted = _ip4net(ipa)
    space = _ip4net(ipn)
    remove: list[IP4Net] = []
    present = False
    for value in existing:
        addr = _ip4net(value)
        if addr == wanted:
            present = True
            continue
        if space.contains(addr.ip):
            remove.append(addr)
    return remove, None if present else wanted


def plan_v6_address_changes(
    ipa, existing: Iterable
) -> tuple[list[IP6Net], Optional[IP6Net]]:
    """Plan how to leave ``ipa`` as the only non link-local IPv6 address of a link.

    Addresses are examined in order; once ``ipa`` is met no further change is
    planned beyond the removals found before it.
    """
    wanted = _ip6net(ipa)
    remove: list[IP6Net] = []
    for value in existing:
        addr = _ip6net(value)
        if ipaddress.IPv6Address(int(addr.ip)).is_link_local:
            continue
        if addr != wanted:
            remove.append(addr)
        else:
            return remove, None
    return remove, wanted