import json

import pytest

from overlaynet.ip4 import parse_ip4
from overlaynet.ip6 import parse_ip6
from overlaynet.vxlan_config import (
    LeaseAttrs,
    VxlanConfig,
    VxlanLeaseAttrs,
    WindowsVxlanConfig,
    format_mac,
    new_subnet_attrs,
    parse_mac,
)

MAC = bytes([0x02, 0x00, 0x00, 0x00, 0x00, 0x01])


def test_format_mac_pinned():
    assert format_mac(MAC) == "02:00:00:00:00:01"


@pytest.mark.parametrize("length", [6, 8, 20])
def test_mac_round_trip(length):
    mac = bytes(range(length))
    assert parse_mac(format_mac(mac)) == mac


def test_parse_mac_separator_forms_agree():
    colon = parse_mac("02:00:5e:10:20:30")
    assert parse_mac("02-00-5e-10-20-30") == colon
    assert parse_mac("0200.5e10.2030") == colon


def test_parse_mac_upper_case_formats_lower():
    text = "02:AB:CD:EF:00:01"
    assert format_mac(parse_mac(text)) == text.lower()


@pytest.mark.parametrize(
    "text",
    [
        "",
        "02:00:00:00:00",
        "02:00:00:00:00:zz",
        "02:00:00-00:00:01",
        "02:00:00:00:00:01:02",
        "0200.0000.00011",
        "020000000001abc",
    ],
)
def test_parse_mac_rejects(text):
    with pytest.raises(ValueError):
        parse_mac(text)


def test_vxlan_config_defaults():
    config = VxlanConfig.from_json(b"", 1500)
    assert config.vni == 1
    assert config.mtu == 1500
    assert config.port == 0
    assert not (config.gbp or config.learning or config.direct_routing)


def test_vxlan_config_null_document_keeps_defaults():
    assert VxlanConfig.from_json("null", 1400) == VxlanConfig.from_json(None, 1400)


def test_vxlan_config_values():
    config = VxlanConfig.from_json(
        '{"VNI": 42, "Port": 8472, "MTU": 9000, "GBP": true, "DirectRouting": true}', 1500
    )
    assert (config.vni, config.port, config.mtu) == (42, 8472, 9000)
    assert config.gbp and config.direct_routing
    assert not config.learning


def test_vxlan_config_keys_ignore_case():
    config = VxlanConfig.from_json('{"vni": 7, "directrouting": true, "LEARNING": true}', 1500)
    assert config.vni == 7
    assert config.direct_routing and config.learning


def test_vxlan_config_accepts_mapping():
    assert VxlanConfig.from_json({"VNI": 3}, 1500).vni == 3


@pytest.mark.parametrize(
    "document",
    ["not json", "[1, 2]", '{"VNI": "1"}', '{"Port": true}', '{"MTU": 1.5}', '{"GBP": 1}'],
)
def test_vxlan_config_errors(document):
    with pytest.raises(ValueError, match="error decoding VXLAN backend config"):
        VxlanConfig.from_json(document, 1500)


def test_windows_config_defaults():
    config = WindowsVxlanConfig.from_json(b"")
    assert config.vni == 4096
    assert config.port == 4789
    assert config.mac_prefix == "0E-2A"
    assert config.name == f"flannel.{config.vni}"


def test_windows_config_explicit_name_kept():
    config = WindowsVxlanConfig.from_json('{"Name": "overlay", "VNI": 5000, "MacPrefix": "0A-0B"}')
    assert config.name == "overlay"
    assert config.vni == 5000
    assert config.mac_prefix == "0A-0B"


@pytest.mark.parametrize(
    "document, message",
    [
        ('{"VNI": 4095}', "VNI"),
        ('{"Port": 4790}', "Port"),
        ('{"DirectRouting": true}', "DirectRouting"),
        ('{"GBP": true}', "GBP"),
        ('{"MacPrefix": "0E2A"}', "MacPrefix"),
        ('{"MacPrefix": "0E:2A"}', "MacPrefix"),
        ('{"MacPrefix": ""}', "MacPrefix"),
    ],
)
def test_windows_config_validation(document, message):
    with pytest.raises(ValueError, match=message):
        WindowsVxlanConfig.from_json(document)


def test_lease_attrs_json_shape():
    attrs = VxlanLeaseAttrs(1, MAC)
    assert json.loads(attrs.to_json()) == {"VNI": 1, "VtepMAC": format_mac(MAC)}


def test_lease_attrs_round_trip():
    attrs = VxlanLeaseAttrs(4096, bytes(range(8)))
    assert VxlanLeaseAttrs.from_json(attrs.to_json()) == attrs


def test_lease_attrs_missing_mac_is_empty():
    assert VxlanLeaseAttrs.from_json('{"vni": 9}') == VxlanLeaseAttrs(9, b"")


@pytest.mark.parametrize(
    "document",
    ['{"VNI": 1, "VtepMAC": null}', '{"VNI": 1, "VtepMAC": 5}', '{"VNI": 1, "VtepMAC": ""}'],
)
def test_lease_attrs_bad_mac(document):
    with pytest.raises(ValueError):
        VxlanLeaseAttrs.from_json(document)


def test_lease_attrs_vni_range():
    with pytest.raises(ValueError):
        VxlanLeaseAttrs.from_json('{"VNI": 70000}')
    with pytest.raises(ValueError):
        VxlanLeaseAttrs(-1, MAC)


def test_new_subnet_attrs_both_families():
    attrs = new_subnet_attrs("10.0.0.5", "fc00::5", 1, MAC, bytes(range(6)))
    assert attrs.backend_type == "vxlan"
    assert attrs.public_ip == parse_ip4("10.0.0.5")
    assert attrs.public_ipv6 == parse_ip6("fc00::5")
    assert VxlanLeaseAttrs.from_json(attrs.backend_data) == VxlanLeaseAttrs(1, MAC)
    assert VxlanLeaseAttrs.from_json(attrs.backend_v6_data) == VxlanLeaseAttrs(1, bytes(range(6)))


def test_new_subnet_attrs_without_v6_device():
    attrs = new_subnet_attrs("10.0.0.5", "fc00::5", 1, MAC, None)
    assert attrs.public_ipv6 is None
    assert attrs.backend_v6_data is None
    assert attrs.backend_data == VxlanLeaseAttrs(1, MAC).to_json()


def test_new_subnet_attrs_without_any_device():
    attrs = new_subnet_attrs("10.0.0.5", None, 1, None, None)
    assert attrs == LeaseAttrs()
    assert attrs.public_ip == 0


def test_new_subnet_attrs_empty_mac_published_blank():
    attrs = new_subnet_attrs("10.0.0.5", None, 4096, b"", None)
    assert json.loads(attrs.backend_data)["VtepMAC"] == ""
    with pytest.raises(ValueError):
        VxlanLeaseAttrs.from_json(attrs.backend_data)