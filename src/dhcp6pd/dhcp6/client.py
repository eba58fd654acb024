"""
DHCPv6 prefix delegation client.

Negotiates a delegated prefix with Solicit/Advertise and
Request/Reply, and gives it back with Release/Reply. Each exchange
runs synchronously on the caller's thread; retries and renewal
scheduling are left to the caller.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from scapy.layers.dhcp6 import DHCP6OptIA_PD

from dhcp6pd.dhcp6.errors import DHCP6Error, NoActiveLease, SequenceExhausted
from dhcp6pd.dhcp6.exchange import (
    DEFAULT_READ_TIMEOUT,
    DEFAULT_WRITE_TIMEOUT,
    ExchangeEngine,
)
from dhcp6pd.dhcp6.lease import LeaseConfig, extract_config
from dhcp6pd.dhcp6.messages import (
    ALL_DHCP_RELAY_AGENTS_AND_SERVERS,
    DHCP6_CLIENT_PORT,
    DHCP6_SERVER_PORT,
    Message,
    MessageType,
    duid_llt,
    format_duid,
    new_ia_pd,
    new_request_from_advertise,
    new_solicit,
    parse_duid,
    parse_mac,
)
from dhcp6pd.dhcp6.sequencer import TransactionSequencer
from dhcp6pd.dhcp6.transport import (
    Address,
    Transport,
    UDPTransport,
    interface_hardware_address,
    interface_index,
    link_local_address,
)

logger = logging.getLogger(__name__)


class ClientState(str, Enum):
    """Negotiation state of a client."""
    IDLE = "idle"
    SOLICITING = "soliciting"
    REQUESTING = "requesting"
    BOUND = "bound"
    RELEASING = "releasing"
    FAILED = "failed"


@dataclass
class ClientConfig:
    """DHCPv6 client configuration."""
    interface: str | None = None  # e.g. eth0

    # Source address for DHCPv6 packets. Defaults to the first
    # link-local address of the interface, port 546.
    local_address: Address | None = None

    # Server to address. Defaults to All_DHCP_Relay_Agents_and_Servers.
    remote_address: Address | None = None

    # Full DUID including the 2-byte type, as bytes or hex. Servers may
    # bind static prefixes to a DUID, so it can be carried between devices.
    duid: bytes | str | None = None

    # Override the interface hardware address (for testing)
    hardware_address: bytes | str | None = None

    # Timeouts (seconds)
    read_timeout: float = DEFAULT_READ_TIMEOUT
    write_timeout: float = DEFAULT_WRITE_TIMEOUT

    # For testing
    transport: Transport | None = None
    transaction_ids: list[int] = field(default_factory=list)


class DHCP6Client:
    """
    DHCPv6 client for prefix delegation.

    Not thread-safe: one exchange is in flight at a time and the session
    state belongs to this instance.

    Usage:
        client = DHCP6Client(ClientConfig(interface="uplink0"))
        client.obtain_or_renew()
        if client.error:
            ...
        lease = client.lease
        # call obtain_or_renew() again before lease.renew_after

        client.release()
        client.close()
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        now: Callable[[], datetime] | None = None,
    ):
        self.config = config or ClientConfig()
        self._now = now or (lambda: datetime.now(timezone.utc))

        self.hardware_address = self._resolve_hardware_address()
        self.duid = self._resolve_duid()

        remote = self.config.remote_address or (
            ALL_DHCP_RELAY_AGENTS_AND_SERVERS, DHCP6_SERVER_PORT,
        )
        transport = self.config.transport
        if transport is None:
            transport = UDPTransport(self._resolve_local_address())

        self.engine = ExchangeEngine(
            transport,
            remote,
            read_timeout=self.config.read_timeout,
            write_timeout=self.config.write_timeout,
        )
        self.sequencer = TransactionSequencer(self.config.transaction_ids)

        self.state = ClientState.IDLE
        self._advertise: Message | None = None
        self._lease = LeaseConfig()
        self._error: DHCP6Error | None = None

    def _resolve_hardware_address(self) -> bytes | None:
        if self.config.hardware_address is not None:
            return parse_mac(self.config.hardware_address)
        if self.config.interface:
            return interface_hardware_address(self.config.interface)
        return None

    def _resolve_duid(self) -> bytes:
        if self.config.duid is not None:
            duid = parse_duid(self.config.duid)
            logger.debug(f"Using configured DUID {format_duid(duid)}")
            return duid
        if self.hardware_address is None:
            raise ValueError("either a DUID, a hardware address or an interface is required")
        duid = duid_llt(self.hardware_address)
        logger.debug(f"Generated DUID-LLT {format_duid(duid)}")
        return duid

    def _resolve_local_address(self) -> Address:
        if self.config.local_address is not None:
            return self.config.local_address
        if not self.config.interface:
            raise ValueError("an interface is required to pick the local address")
        # Scope the link-local address by index rather than name
        index = interface_index(self.config.interface)
        address = link_local_address(self.config.interface)
        return (address, DHCP6_CLIENT_PORT, 0, index)

    @property
    def lease(self) -> LeaseConfig:
        """The most recently obtained lease configuration."""
        return self._lease

    @property
    def error(self) -> DHCP6Error | None:
        """The error recorded by the last top-level operation, if any."""
        return self._error

    @property
    def advertise(self) -> Message | None:
        return self._advertise

    def _stamp(self, message: Message) -> None:
        """
        Use the next deterministic transaction id, if one is left.

        Message builders already draw a random id, so once the sequence
        is exhausted that id is kept and only recorded as RANDOM.
        TransactionSequencer.next() is for callers that build raw
        messages without one.
        """
        try:
            message.transaction_id = self.sequencer.take()
        except SequenceExhausted:
            self.sequencer.mark_random()

    def solicit(self, solicit: Message | None = None) -> tuple[Message, Message]:
        """
        Send a Solicit and wait for an Advertise.

        Args:
            solicit: Message to send; a fresh Solicit is built if omitted

        Returns:
            (sent Solicit, received Advertise)
        """
        if solicit is None:
            solicit = new_solicit(self.duid)
        if not solicit.has_option(DHCP6OptIA_PD):
            solicit.add_option(new_ia_pd())
        self._stamp(solicit)

        self.state = ClientState.SOLICITING
        advertise = self.engine.exchange(solicit, MessageType.NONE)
        self._advertise = advertise
        logger.info(
            f"Received {advertise.message_type.name} for xid=0x{solicit.transaction_id:06x}"
        )
        return solicit, advertise

    def request(self, advertise: Message) -> tuple[Message, Message]:
        """
        Send a Request for what an Advertise offered and wait for the Reply.

        Returns:
            (sent Request, received Reply)
        """
        request = new_request_from_advertise(advertise, self.duid)
        ia_pd = advertise.first_option(DHCP6OptIA_PD)
        if ia_pd is not None:
            request.add_option(ia_pd)
        self._stamp(request)

        self.state = ClientState.REQUESTING
        reply = self.engine.exchange(request, MessageType.NONE)
        logger.info(
            f"Received {reply.message_type.name} for xid=0x{request.transaction_id:06x}"
        )
        return request, reply

    def obtain_or_renew(self) -> bool:
        """
        Run Solicit/Advertise and Request/Reply and store the resulting lease.

        Always returns True. Check error afterwards for the outcome; on
        failure the previous lease is kept.
        """
        self._error = None
        try:
            _, advertise = self.solicit()
            _, reply = self.request(advertise)
        except DHCP6Error as e:
            self._fail(e)
            return True

        self._lease = extract_config(reply, self._now())
        self.state = ClientState.BOUND
        logger.info(
            f"Bound: prefixes={[str(p) for p in self._lease.prefixes]} "
            f"dns={list(self._lease.dns)} renew_after={self._lease.renew_after.isoformat()}"
        )
        return True

    def release(self) -> tuple[Message, Message]:
        """
        Release the lease offered by the retained Advertise.

        Returns:
            (sent Release, received Reply)

        Raises:
            NoActiveLease: If no Advertise has been received yet
        """
        self._error = None
        try:
            if self._advertise is None:
                raise NoActiveLease("no lease to release")

            release = new_request_from_advertise(self._advertise, self.duid)
            release.message_type = MessageType.RELEASE
            ia_pd = self._advertise.first_option(DHCP6OptIA_PD)
            if ia_pd is not None:
                release.add_option(ia_pd)
            self._stamp(release)

            self.state = ClientState.RELEASING
            reply = self.engine.exchange(release, MessageType.NONE)
        except DHCP6Error as e:
            self._fail(e)
            raise

        logger.info(f"Released lease, server answered {reply.message_type.name}")
        self._advertise = None
        self._lease = LeaseConfig()
        self.state = ClientState.IDLE
        return release, reply

    def _fail(self, error: DHCP6Error) -> None:
        logger.warning(f"DHCPv6 {self.state.value} failed: {error}")
        self._error = error
        if not isinstance(error, NoActiveLease):
            self.state = ClientState.FAILED

    def close(self) -> None:
        self.engine.transport.close()

    def __enter__(self) -> "DHCP6Client":
        return self

    def __exit__(self, *args) -> None:
        self.close()
