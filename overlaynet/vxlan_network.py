"""Turn subnet lease events into the neighbour, FDB and route changes a VXLAN host needs.

For every remote host that appears, a VXLAN host either routes straight to
the host's public address (direct routing, when both sit on one L2 segment)
or installs three entries: a permanent ARP entry for the remote subnet
address, an FDB entry mapping the remote VTEP MAC to the host's public
address, and an on-link route through the VXLAN device.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from .ip4 import IP4, IP4Net
from .ip6 import IP6, IP6Net
from .vxlan_config import BACKEND_TYPE, LeaseAttrs, VxlanLeaseAttrs, format_mac
from .vxlan_device import ENCAP_OVERHEAD, Neighbor

log = logging.getLogger(__name__)

REPLACE_ROUTE = "replace_route"
DELETE_ROUTE = "delete_route"
ADD_ARP = "add_arp"
DELETE_ARP = "delete_arp"
ADD_FDB = "add_fdb"
DELETE_FDB = "delete_fdb"

Subnet = Union[IP4Net, IP6Net]
Gateway = Union[IP4, IP6]


class EventType(Enum):
    """What happened to a lease."""

    ADDED = 0
    REMOVED = 1


@dataclass
class Lease:
    """A subnet lease held by some host, with the attributes it published."""

    subnet: IP4Net = field(default_factory=IP4Net)
    attrs: LeaseAttrs = field(default_factory=LeaseAttrs)
    ipv6_subnet: Optional[IP6Net] = None
    enable_ipv4: bool = True
    enable_ipv6: bool = False


@dataclass
class Event:
    """A lease that was added or removed."""

    type: EventType
    lease: Lease


@dataclass(frozen=True)
class Route:
    """A route in universe scope; ``onlink`` marks a gateway reachable over the link."""

    dst: Subnet
    gateway: Gateway
    link_index: Optional[int] = None
    onlink: bool = False

    def __str__(self) -> str:
        text = f"{self.dst} via {self.gateway}"
        if self.link_index is not None:
            text += f" dev #{self.link_index}"
        return text + (" onlink" if self.onlink else "")


@dataclass(frozen=True)
class Operation:
    """One change to make on the host.

    ``retry`` says whether the change is retried before it counts as failed.
    When it fails, ``on_failure`` lists the clean-up changes to attempt, and
    ``stop_on_failure`` says to skip the remaining operations of the event.
    """

    action: str
    route: Optional[Route] = None
    neighbor: Optional[Neighbor] = None
    on_failure: tuple["Operation", ...] = ()
    stop_on_failure: bool = False
    retry: bool = True


def network_mtu(mtu: int) -> int:
    """Return the MTU left for workloads once VXLAN encapsulation is added."""
    return mtu - ENCAP_OVERHEAD


def vxlan_route(subnet: Subnet, link_index: int) -> Route:
    """Route ``subnet`` over the VXLAN device, via the subnet's own address on-link."""
    return Route(dst=subnet, gateway=subnet.ip, link_index=link_index, onlink=True)


def direct_route(subnet: Subnet, gateway: Gateway) -> Route:
    """Route ``subnet`` straight to the remote host's public address."""
    return Route(dst=subnet, gateway=gateway)


@dataclass(frozen=True)
class _Family:
    subnet: Subnet
    public_ip: Gateway
    mac: bytes
    encap_route: Route
    plain_route: Route
    direct_ok: bool
    v6: bool


def _neighbor(address: Gateway, mac: bytes) -> Neighbor:
    if isinstance(address, IP6):
        return Neighbor(mac=mac, ip6=address)
    return Neighbor(mac=mac, ip=address)


def _decode(data: Optional[str]) -> VxlanLeaseAttrs:
    if data is None:
        raise ValueError("unexpected end of JSON input")
    return VxlanLeaseAttrs.from_json(data)


def _plan_add(family: _Family) -> list[Operation]:
    if family.direct_ok:
        log.debug("adding direct route to subnet %s via %s", family.subnet, family.public_ip)
        return [Operation(REPLACE_ROUTE, route=family.plain_route, stop_on_failure=True)]

    log.debug(
        "adding subnet %s public IP %s VTEP MAC %s",
        family.subnet, family.public_ip, format_mac(family.mac),
    )
    arp = _neighbor(family.subnet.ip, family.mac)
    fdb = _neighbor(family.public_ip, family.mac)
    if family.v6:
        fdb_cleanup = (Operation(DELETE_ARP, neighbor=arp, retry=False),)
        route_cleanup = (
            Operation(DELETE_ARP, neighbor=arp),
            Operation(DELETE_FDB, neighbor=fdb),
        )
    else:
        fdb_cleanup = (Operation(DELETE_ARP, neighbor=arp),)
        route_cleanup = (
            Operation(DELETE_ARP, neighbor=arp, retry=False),
            Operation(DELETE_FDB, neighbor=fdb, retry=False),
        )
    # The route goes last: the kernel would otherwise ARP for the gateway.
    return [
        Operation(ADD_ARP, neighbor=arp, stop_on_failure=True),
        Operation(ADD_FDB, neighbor=fdb, on_failure=fdb_cleanup, stop_on_failure=True),
        Operation(
            REPLACE_ROUTE,
            route=family.encap_route,
            on_failure=route_cleanup,
            stop_on_failure=True,
        ),
    ]


def _plan_remove(family: _Family) -> list[Operation]:
    if family.direct_ok:
        log.debug("removing direct route to subnet %s via %s", family.subnet, family.public_ip)
        return [Operation(DELETE_ROUTE, route=family.plain_route)]

    log.debug(
        "removing subnet %s public IP %s VTEP MAC %s",
        family.subnet, family.public_ip, format_mac(family.mac),
    )
    # Every entry is attempted even when an earlier one fails.
    return [
        Operation(DELETE_ARP, neighbor=_neighbor(family.subnet.ip, family.mac)),
        Operation(DELETE_FDB, neighbor=_neighbor(family.public_ip, family.mac)),
        Operation(DELETE_ROUTE, route=family.encap_route),
    ]


def plan_event(
    event: Event,
    link_index: Optional[int],
    v6_link_index: Optional[int],
    direct_routing: bool,
    v6_direct_routing: bool,
) -> list[Operation]:
    """Return the changes that ``event`` calls for, IPv4 first, then IPv6.

    ``link_index`` and ``v6_link_index`` are the indexes of the local VXLAN
    devices, or None where there is no device for that family.
    ``direct_routing`` and ``v6_direct_routing`` say whether the remote public
    address is directly reachable. Events from other backends and leases whose
    backend data cannot be decoded yield no changes. A lease that enables a
    family for which there is no device raises ValueError.
    """
    lease = event.lease
    attrs = lease.attrs
    if attrs.backend_type != BACKEND_TYPE:
        log.warning(
            "ignoring non-vxlan v4Subnet(%s) v6Subnet(%s): type=%s",
            lease.subnet, lease.ipv6_subnet, attrs.backend_type,
        )
        return []

    v4: Optional[_Family] = None
    v6: Optional[_Family] = None

    if lease.enable_ipv4 and link_index is not None:
        try:
            decoded = _decode(attrs.backend_data)
        except ValueError as exc:
            log.error("error decoding subnet lease JSON: %s", exc)
            return []
        v4 = _Family(
            subnet=lease.subnet,
            public_ip=attrs.public_ip,
            mac=decoded.vtep_mac,
            encap_route=vxlan_route(lease.subnet, link_index),
            plain_route=direct_route(lease.subnet, attrs.public_ip),
            direct_ok=direct_routing,
            v6=False,
        )

    if lease.enable_ipv6 and v6_link_index is not None:
        try:
            decoded = _decode(attrs.backend_v6_data)
        except ValueError as exc:
            log.error("error decoding v6 subnet lease JSON: %s", exc)
            return []
        if lease.ipv6_subnet is not None:
            if attrs.public_ipv6 is None:
                raise ValueError("lease enables IPv6 but publishes no public IPv6 address")
            v6 = _Family(
                subnet=lease.ipv6_subnet,
                public_ip=attrs.public_ipv6,
                mac=decoded.vtep_mac,
                encap_route=vxlan_route(lease.ipv6_subnet, v6_link_index),
                plain_route=direct_route(lease.ipv6_subnet, attrs.public_ipv6),
                direct_ok=v6_direct_routing,
                v6=True,
            )

    if not isinstance(event.type, EventType):
        log.error("internal error: unknown event type: %s", event.type)
        return []

    families: list[_Family] = []
    if lease.enable_ipv4:
        if v4 is None:
            raise ValueError("lease enables IPv4 but there is no IPv4 VXLAN device")
        families.append(v4)
    if lease.enable_ipv6:
        if v6 is None:
            raise ValueError("lease enables IPv6 but there is no IPv6 VXLAN device or subnet")
        families.append(v6)

    plan = _plan_add if event.type is EventType.ADDED else _plan_remove
    return [operation for family in families for operation in plan(family)]