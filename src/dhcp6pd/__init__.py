"""
dhcp6pd - DHCPv6 Prefix Delegation Client

Obtains a delegated IPv6 prefix, DNS servers and a renewal deadline
from a DHCPv6 server, and releases the delegation again.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

__version__ = "0.1.0"
__author__ = "DNS Science.io"
__copyright__ = "Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company"
