"""User-space network stack: raw Ethernet device, ARP, IPv4, ICMP, minimal TCP and an HTTP request handler."""

__version__ = "0.1.0"