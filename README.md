# overlaynet

Address arithmetic and change planning for host-to-host overlay networks
built on VXLAN or WireGuard.

## Modules

- `overlaynet.ip4` – `IP4` (an IPv4 address held as an integer) and `IP4Net`
  (an address with a prefix length). Overlap and containment checks,
  `network()`, `next()`, `increment_ip()`, JSON encoding with `to_json()` /
  `from_json()`, and RFC 1918 private-address detection with `is_private()`.
  Helpers: `parse_ip4`, `from_ip`, `from_bytes`, `map_ip4_to_string`,
  `natively_little`.
- `overlaynet.ip6` – `IP6` and `IP6Net`, the same operations for IPv6, with
  RFC 4193 private-address detection. Helpers: `parse_ip6`, `from_ip6`,
  `from_ip16_bytes`, `prefix_mask`, `is_empty`, `check_ipv6_subnet`,
  `get_ipv6_subnet_min`, `get_ipv6_subnet_max`, `map_ip6_to_string`.
- `overlaynet.iface` – local interface lookups through `psutil`
  (`get_interface_ip4_addrs`, `get_interface_ip6_addrs`,
  `get_interface_by_ip`, `get_interface_by_ip6`, and the `..._addr_match`
  checks), default-gateway interface lookups from `/proc/net/route` and
  `/proc/net/ipv6_route` (`get_default_gateway_interface`,
  `get_default_v6_gateway_interface`, or the `default_interface_from_...`
  parsers for text you supply), and `plan_v4_address_changes` /
  `plan_v6_address_changes`, which work out which addresses to remove from a
  link and which to add. Failed lookups raise `InterfaceNotFoundError`.
- `overlaynet.vxlan_config` – `VxlanConfig` and `WindowsVxlanConfig` decode
  the backend section of a network configuration (the Windows variant also
  validates VNI, port, MAC prefix and unsupported options);
  `VxlanLeaseAttrs` encodes the VNI and VTEP MAC carried in a lease;
  `new_subnet_attrs` builds the `LeaseAttrs` a host publishes;
  `format_mac` / `parse_mac` handle hardware addresses.
- `overlaynet.vxlan_device` – `VxlanDeviceAttrs.to_link()` describes the
  `VxlanLink` to create (MTU reduced by the 50-byte encapsulation overhead),
  `links_incompat` names the first setting in which an existing link differs,
  `device_name` gives `flannel.<vni>` or `flannel-v6.<vni>`, and `Neighbor`
  holds a remote VTEP.
- `overlaynet.vxlan_network` – `plan_event` turns a lease `Event` into the
  list of `Operation`s (route, ARP and FDB changes, with clean-up steps and
  retry flags) the host must apply; `vxlan_route`, `direct_route` and
  `network_mtu` are the building blocks.
- `overlaynet.wireguard` – `WireguardConfig` decodes the backend section
  (`Mode` is `separate`, `auto`, `ipv4` or `ipv6`) and reports which devices
  to create with `device_names()`; `WireguardLeaseAttrs` carries a public
  key; `select_public_endpoint` and `format_endpoint` choose and format the
  peer endpoint; `network_mtu` subtracts the 80-byte WireGuard overhead.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Examples

```python
from overlaynet.ip4 import IP4Net, parse_ip4

net = IP4Net(parse_ip4("10.244.1.0"), 24)
print(net)                                    # 10.244.1.0/24
print(net.contains(parse_ip4("10.244.1.7")))  # True
print(net.next())                             # 10.244.2.0/24
print(net.to_json())                          # "10.244.1.0/24"
```

```python
from overlaynet.ip6 import IP6Net, parse_ip6

n = IP6Net(parse_ip6("fc00:1::"), 64)
print(n.overlaps(IP6Net(parse_ip6("fc00::"), 16)))  # True
```

```python
from overlaynet.iface import plan_v4_address_changes

remove, add = plan_v4_address_changes(
    "10.244.1.0/32", "10.244.0.0/16", ["10.244.7.0/32", "10.244.1.0/32"]
)
print([str(a) for a in remove], add)  # ['10.244.7.0/32'] None
```

```python
from overlaynet.ip4 import IP4Net, parse_ip4
from overlaynet.vxlan_config import VxlanConfig, new_subnet_attrs
from overlaynet.vxlan_network import Event, EventType, Lease, plan_event

cfg = VxlanConfig.from_json('{"VNI": 4, "DirectRouting": true}', default_mtu=1500)

attrs = new_subnet_attrs("192.0.2.10", None, 1, bytes.fromhex("020000000001"), None)
lease = Lease(subnet=IP4Net(parse_ip4("10.244.2.0"), 24), attrs=attrs)
ops = plan_event(Event(EventType.ADDED, lease), 5, None, False, False)
print([op.action for op in ops])  # ['add_arp', 'add_fdb', 'replace_route']
```

```python
from overlaynet.wireguard import format_endpoint, select_public_endpoint

host = select_public_endpoint("203.0.113.5", "2001:db8::5", "198.51.100.1", None)
print(format_endpoint(host, 51820))                  # 203.0.113.5:51820
print(format_endpoint("2001:db8::5", 51820))         # [2001:db8::5]:51820
```

## What the package does not do

The planning functions only work out what has to change. Nothing in the
package creates or deletes VXLAN or WireGuard devices, sets addresses,
routes, ARP or FDB entries, or generates WireGuard keys. There is no
daemon and no command-line program, and no subnet lease store: leases and
events are values you build and pass in. Apply the returned operations with
whatever tooling you use.