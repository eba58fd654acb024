"""
Request/reply exchange over an unreliable datagram transport.

Sends one message and scans inbound traffic for the reply that belongs
to it. Anything that is not DHCPv6, belongs to another transaction or
has an unexpected type is skipped.

The receive loop is bounded only by the read deadline, which is set
once before the first read. A steady stream of noise can use up the
whole window without a match, and a very short deadline combined with
a flood of datagrams keeps the loop busy until it expires. Set
max_datagrams to also cap the number of datagrams inspected.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable

from dhcp6pd.dhcp6.errors import CodecError, ExchangeTimeout
from dhcp6pd.dhcp6.messages import Message, MessageType, decode, expected_reply_type
from dhcp6pd.dhcp6.transport import Address, Transport

logger = logging.getLogger(__name__)

# Large enough for any reply we expect; larger datagrams are truncated
MAX_DATAGRAM_SIZE = 8192

DEFAULT_READ_TIMEOUT = 3.0
DEFAULT_WRITE_TIMEOUT = 3.0


@dataclass
class ExchangeStats:
    """What the receive loop saw during one exchange."""
    received: int = 0
    non_dhcp: int = 0
    foreign_transaction: int = 0
    unexpected_type: int = 0

    @property
    def skipped(self) -> int:
        return self.non_dhcp + self.foreign_transaction + self.unexpected_type


class ExchangeEngine:
    """
    Performs one send-then-matched-receive round at a time.

    Usage:
        engine = ExchangeEngine(transport, ("ff02::1:2", 547))
        advertise = engine.exchange(solicit)
    """

    def __init__(
        self,
        transport: Transport,
        remote_address: Address,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        write_timeout: float = DEFAULT_WRITE_TIMEOUT,
        max_datagram_size: int = MAX_DATAGRAM_SIZE,
        max_datagrams: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.transport = transport
        self.remote_address = remote_address
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self.max_datagram_size = max_datagram_size
        self.max_datagrams = max_datagrams
        self._clock = clock
        self.last_stats = ExchangeStats()

    def exchange(
        self,
        outbound: Message,
        expected_type: MessageType = MessageType.NONE,
    ) -> Message:
        """
        Send a message and wait for its reply.

        Args:
            outbound: Fully built message, transaction id already stamped
            expected_type: Reply type to wait for. NONE infers it from the
                outbound type; if nothing can be inferred, the first
                message of the same transaction is accepted.

        Returns:
            The first inbound message with the outbound transaction id
            and the expected type

        Raises:
            ExchangeTimeout: If the read deadline passes without a match
            TransportError: If sending or receiving fails
        """
        if outbound is None:
            raise ValueError("message to send cannot be None")
        if expected_type == MessageType.NONE:
            expected_type = expected_reply_type(outbound.message_type)

        xid = outbound.transaction_id
        stats = ExchangeStats()
        self.last_stats = stats

        logger.debug(
            f"Sending {outbound.message_type.name} xid=0x{xid:06x} "
            f"to {self.remote_address[0]}"
        )
        self.transport.send_to(outbound.encode(), self.remote_address, self.write_timeout)

        deadline = self._clock() + self.read_timeout
        while True:
            if self.max_datagrams is not None and stats.received >= self.max_datagrams:
                raise ExchangeTimeout(
                    f"no matching reply for xid=0x{xid:06x} "
                    f"within {self.max_datagrams} datagrams"
                )

            data = self.transport.receive_from(self.max_datagram_size, deadline)
            stats.received += 1

            try:
                inbound = decode(data)
            except CodecError as e:
                stats.non_dhcp += 1
                logger.debug(f"non-DHCP: {e}")
                continue

            if inbound.transaction_id != xid:
                stats.foreign_transaction += 1
                logger.debug(
                    f"different XID: got 0x{inbound.transaction_id:06x}, "
                    f"want 0x{xid:06x}"
                )
                continue

            if expected_type == MessageType.NONE or inbound.message_type == expected_type:
                logger.debug(
                    f"Accepted {inbound.message_type.name} xid=0x{xid:06x} "
                    f"after {stats.skipped} skipped datagram(s)"
                )
                return inbound

            stats.unexpected_type += 1
            logger.debug(
                f"Skipping {inbound.message_type.name} xid=0x{xid:06x}, "
                f"waiting for {expected_type.name}"
            )
