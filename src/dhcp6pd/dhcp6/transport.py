"""
Datagram transport and network interface discovery.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import logging
import socket
import struct
import time
from pathlib import Path
from typing import Protocol

from dhcp6pd.dhcp6.errors import ExchangeTimeout, TransportError

logger = logging.getLogger(__name__)

SIOCGIFHWADDR = 0x8927
IF_INET6_PATH = Path("/proc/net/if_inet6")
LINK_LOCAL_PREFIXES = ("fe8", "fe9", "fea", "feb")  # fe80::/10

# (host, port) or (host, port, flowinfo, scope_id)
Address = tuple


class Transport(Protocol):
    """A datagram endpoint bound to a local address."""

    def send_to(self, data: bytes, address: Address, timeout: float) -> None:
        ...

    def receive_from(self, max_size: int, deadline: float) -> bytes:
        """Receive one datagram before the monotonic deadline."""
        ...

    def close(self) -> None:
        ...


class UDPTransport:
    """
    IPv6 UDP socket transport.

    Usage:
        transport = UDPTransport(("fe80::1", 546, 0, 2))
        transport.send_to(data, ("ff02::1:2", 547), timeout=3.0)
        reply = transport.receive_from(8192, time.monotonic() + 3.0)
    """

    def __init__(self, local_address: Address, sock: socket.socket | None = None):
        self.local_address = local_address
        if sock is None:
            sock = socket.socket(socket.AF_INET6, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            try:
                sock.bind(local_address)
            except OSError:
                sock.close()
                raise
            logger.debug(f"Bound UDP socket to {local_address}")
        self._socket = sock

    def send_to(self, data: bytes, address: Address, timeout: float) -> None:
        self._socket.settimeout(timeout)
        try:
            self._socket.sendto(data, address)
        except socket.timeout as e:
            raise TransportError(f"write to {address[0]} timed out") from e
        except OSError as e:
            raise TransportError(f"write to {address[0]} failed: {e}") from e

    def receive_from(self, max_size: int, deadline: float) -> bytes:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise ExchangeTimeout("read deadline exceeded")
        self._socket.settimeout(remaining)
        try:
            data, _ = self._socket.recvfrom(max_size)
        except socket.timeout as e:
            raise ExchangeTimeout("read deadline exceeded") from e
        except OSError as e:
            raise TransportError(f"read failed: {e}") from e
        return data

    def close(self) -> None:
        self._socket.close()


def interface_index(interface: str) -> int:
    try:
        return socket.if_nametoindex(interface)
    except OSError as e:
        raise TransportError(f"no such interface: {interface}") from e


def interface_hardware_address(interface: str) -> bytes:
    """Get the hardware (MAC) address of an interface."""
    import fcntl

    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        info = fcntl.ioctl(
            sock.fileno(),
            SIOCGIFHWADDR,
            struct.pack('256s', interface.encode()[:15])
        )
    except OSError as e:
        raise TransportError(f"could not get hardware address of {interface}: {e}") from e
    finally:
        sock.close()
    return info[18:24]


def link_local_address(interface: str, if_inet6: Path = IF_INET6_PATH) -> str:
    """
    Get the first link-local IPv6 address of an interface.

    Reads the kernel's address table; each line holds the address as 32
    hex digits, the interface index, prefix length, scope, flags and name.
    """
    try:
        lines = if_inet6.read_text().splitlines()
    except OSError as e:
        raise TransportError(f"could not read {if_inet6}: {e}") from e

    for line in lines:
        fields = line.split()
        if len(fields) < 6 or fields[5] != interface:
            continue
        digits = fields[0]
        if len(digits) != 32 or not digits.lower().startswith(LINK_LOCAL_PREFIXES):
            continue
        packed = bytes.fromhex(digits)
        return socket.inet_ntop(socket.AF_INET6, packed)

    raise TransportError(f"no link-local address on {interface}")
