"""IPv4/IPv6 address arithmetic and change planning for VXLAN and WireGuard overlay networks."""

__version__ = "0.1.0"