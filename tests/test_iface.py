import ipaddress
import socket
from collections import namedtuple
from unittest.mock import patch

import pytest

from overlaynet import iface
from overlaynet.iface import (
    InterfaceNotFoundError,
    default_interface_from_ipv6_route_table,
    default_interface_from_route_table,
    get_default_gateway_interface,
    get_default_v6_gateway_interface,
    get_interface_by_ip,
    get_interface_by_ip6,
    get_interface_ip4_addr_match,
    get_interface_ip4_addrs,
    get_interface_ip6_addr_match,
    get_interface_ip6_addrs,
    plan_v4_address_changes,
    plan_v6_address_changes,
    prefer_global_unicast,
)
from overlaynet.ip4 import IP4Net, parse_ip4
from overlaynet.ip6 import IP6Net, parse_ip6

NicAddr = namedtuple("NicAddr", "family address netmask broadcast ptp")


def v4(address):
    return NicAddr(socket.AF_INET, address, None, None, None)


def v6(address):
    return NicAddr(socket.AF_INET6, address, None, None, None)


TABLE = {
    "lo": [v4("127.0.0.1"), v6("::1")],
    "eth0": [v4("169.254.3.3"), v4("10.0.0.5"), v6("fe80::1%eth0"), v6("2001:db8::5")],
    "eth1": [v6("fe80::2%eth1")],
}


def ip(text):
    return ipaddress.ip_address(text)


def test_prefer_global_unicast_orders_v4():
    result = prefer_global_unicast(
        ["169.254.1.1", "10.0.0.5", "127.0.0.1", "192.0.2.7", "0.0.0.0"], 4
    )
    assert result == [ip("10.0.0.5"), ip("192.0.2.7"), ip("169.254.1.1")]


def test_prefer_global_unicast_orders_v6():
    result = prefer_global_unicast(["fe80::1", "2001:db8::1", "::1", "ff02::1", "::"], 6)
    assert result == [ip("2001:db8::1"), ip("fe80::1")]


def test_prefer_global_unicast_v4_accepts_mapped_and_drops_broadcast():
    result = prefer_global_unicast(["::ffff:10.1.2.3", "255.255.255.255", "2001:db8::1"], 4)
    assert result == [ip("10.1.2.3")]


def test_prefer_global_unicast_rejects_unknown_version():
    with pytest.raises(ValueError):
        prefer_global_unicast(["10.0.0.1"], 5)


@patch("psutil.net_if_addrs", return_value=TABLE)
def test_get_interface_ip4_addrs(_mock):
    assert get_interface_ip4_addrs("eth0") == [ip("10.0.0.5"), ip("169.254.3.3")]


@patch("psutil.net_if_addrs", return_value=TABLE)
def test_get_interface_ip4_addrs_none_found(_mock):
    with pytest.raises(InterfaceNotFoundError, match="No IPv4 address"):
        get_interface_ip4_addrs("eth1")


@patch("psutil.net_if_addrs", return_value=TABLE)
def test_get_interface_ip4_addrs_unknown_interface(_mock):
    with pytest.raises(InterfaceNotFoundError):
        get_interface_ip4_addrs("missing0")


@patch("psutil.net_if_addrs", return_value=TABLE)
def test_get_interface_ip6_addrs_strips_zone(_mock):
    assert get_interface_ip6_addrs("eth0") == [ip("2001:db8::5"), ip("fe80::1")]
    assert get_interface_ip6_addrs("eth1") == [ip("fe80::2")]


@patch("psutil.net_if_addrs", return_value=TABLE)
def test_get_interface_ip6_addrs_loopback_only(_mock):
    with pytest.raises(InterfaceNotFoundError, match="No IPv6 address"):
        get_interface_ip6_addrs("lo")


@patch("psutil.net_if_addrs", return_value=TABLE)
def test_ip4_addr_match(_mock):
    assert get_interface_ip4_addr_match("eth0", parse_ip4("10.0.0.5")) is None
    assert get_interface_ip4_addr_match("eth0", "::ffff:10.0.0.5") is None
    with pytest.raises(InterfaceNotFoundError):
        get_interface_ip4_addr_match("eth0", "10.0.0.6")


@patch("psutil.net_if_addrs", return_value=TABLE)
def test_ip6_addr_match(_mock):
    assert get_interface_ip6_addr_match("eth0", parse_ip6("2001:db8::5")) is None
    assert get_interface_ip6_addr_match("eth1", "fe80::2") is None
    with pytest.raises(InterfaceNotFoundError):
        get_interface_ip6_addr_match("eth1", "2001:db8::5")


@patch("psutil.net_if_addrs", return_value=TABLE)
def test_get_interface_by_ip(_mock):
    assert get_interface_by_ip("10.0.0.5") == "eth0"
    assert get_interface_by_ip(ip("127.0.0.1")) == "lo"
    with pytest.raises(InterfaceNotFoundError, match="No interface with given IP found"):
        get_interface_by_ip("192.0.2.1")


@patch("psutil.net_if_addrs", return_value=TABLE)
def test_get_interface_by_ip6(_mock):
    assert get_interface_by_ip6("fe80::2") == "eth1"
    assert get_interface_by_ip6("::1") == "lo"
    with pytest.raises(InterfaceNotFoundError, match="IPv6"):
        get_interface_by_ip6("2001:db8::9")


ROUTE_TEXT = (
    "Iface\tDestination\tGateway \tFlags\tRefCnt\tUse\tMetric\tMask\t\tMTU\tWindow\tIRTT\n"
    "eth0\t0002000A\t00000000\t0001\t0\t0\t100\t00FFFFFF\t0\t0\t0\n"
    "wlan0\t00000000\t0102000A\t0003\t0\t0\t600\t00000000\t0\t0\t0\n"
    "eth0\t00000000\t0102000A\t0003\t0\t0\t700\t00000000\t0\t0\t0\n"
)


def test_default_interface_from_route_table():
    assert default_interface_from_route_table(ROUTE_TEXT) == "wlan0"


def test_default_interface_from_route_table_missing():
    text = ROUTE_TEXT.splitlines()[0] + "\n" + ROUTE_TEXT.splitlines()[1] + "\n"
    with pytest.raises(InterfaceNotFoundError, match="Unable to find default route"):
        default_interface_from_route_table(text)


def test_default_interface_from_route_table_without_device():
    text = "*\t00000000\t0102000A\t0003\t0\t0\t0\t00000000\t0\t0\t0\n"
    with pytest.raises(InterfaceNotFoundError, match="could not determine interface"):
        default_interface_from_route_table(text)


ZERO = "0" * 32
IPV6_ROUTE_TEXT = (
    f"20010db8000000000000000000000000 40 {ZERO} 00 {ZERO} 00000100 00000001 00000000 00000001 eth0\n"
    f"{ZERO} 00 {ZERO} 00 {ZERO} ffffffff 00000001 00000001 00200200 lo\n"
    f"{ZERO} 00 {ZERO} 00 fe800000000000000000000000000001 00000400 00000001 00000000 00000003 eth0\n"
)


def test_default_interface_from_ipv6_route_table_skips_reject():
    assert default_interface_from_ipv6_route_table(IPV6_ROUTE_TEXT) == "eth0"


def test_default_interface_from_ipv6_route_table_missing():
    with pytest.raises(InterfaceNotFoundError, match="Unable to find default v6 route"):
        default_interface_from_ipv6_route_table(IPV6_ROUTE_TEXT.splitlines()[0])


def test_get_default_gateway_interface_reads_table(tmp_path, monkeypatch):
    route = tmp_path / "route"
    route.write_text(ROUTE_TEXT)
    monkeypatch.setattr(iface, "_PROC_ROUTE", route)
    assert get_default_gateway_interface() == "wlan0"


def test_get_default_v6_gateway_interface_reads_table(tmp_path, monkeypatch):
    route = tmp_path / "ipv6_route"
    route.write_text(IPV6_ROUTE_TEXT)
    monkeypatch.setattr(iface, "_PROC_IPV6_ROUTE", route)
    assert get_default_v6_gateway_interface() == "eth0"


def test_plan_v4_replaces_address_in_space():
    ipn = IP4Net(parse_ip4("127.0.0.2"), 24)
    remove, add = plan_v4_address_changes(ipn, ipn, [IP4Net(parse_ip4("127.0.0.1"), 8)])
    assert remove == [IP4Net(parse_ip4("127.0.0.1"), 8)]
    assert add == ipn


def test_plan_v4_keeps_unknown_address_outside_space():
    ipn = IP4Net(parse_ip4("127.0.0.2"), 24)
    existing = [ipn, "127.0.1.1/24"]
    remove, add = plan_v4_address_changes(ipn, ipn, existing)
    assert remove == []
    assert add is None


def test_plan_v6_replaces_loopback():
    ipn = IP6Net(parse_ip6("::2"), 64)
    remove, add = plan_v6_address_changes(ipn, [IP6Net(parse_ip6("::1"), 128)])
    assert remove == [IP6Net(parse_ip6("::1"), 128)]
    assert add == ipn


def test_plan_v6_removes_extra_address_and_keeps_existing():
    ipn = IP6Net(parse_ip6("::2"), 64)
    existing = [IP6Net(parse_ip6("2001::4"), 64), ipn]
    remove, add = plan_v6_address_changes(ipn, existing)
    assert remove == [IP6Net(parse_ip6("2001::4"), 64)]
    assert add is None


def test_plan_v6_ignores_link_local():
    ipn = IP6Net(parse_ip6("2001:db8::1"), 64)
    remove, add = plan_v6_address_changes(ipn, ["fe80::1/64"])
    assert remove == []
    assert add == ipn