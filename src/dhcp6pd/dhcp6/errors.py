"""
Exceptions raised by the DHCPv6 prefix delegation client.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""


class DHCP6Error(Exception):
    """Base exception for DHCPv6 client errors."""
    pass


class TransportError(DHCP6Error):
    """Sending or receiving a datagram failed."""
    pass


class ExchangeTimeout(TransportError):
    """No matching reply arrived before the read deadline."""
    pass


class CodecError(DHCP6Error):
    """A message could not be built or decoded."""
    pass


class NoActiveLease(DHCP6Error):
    """Release attempted without a retained Advertise."""
    pass


class SequenceExhausted(DHCP6Error):
    """The deterministic transaction id queue is empty."""
    pass
