"""
DHCPv6 message codec.

Builds outbound client messages and decodes inbound datagrams using
scapy's DHCPv6 layers. The negotiation code only talks to the
Message wrapper defined here, never to scapy packets directly.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import random
import struct
import time
from dataclasses import dataclass
from datetime import timedelta
from enum import IntEnum
from typing import Iterator

from netaddr import IPNetwork
from scapy.layers.dhcp6 import (
    DHCP6,
    DHCP6_Advertise,
    DHCP6_Confirm,
    DHCP6_Decline,
    DHCP6_InfoRequest,
    DHCP6_Rebind,
    DHCP6_Reconf,
    DHCP6_Release,
    DHCP6_Renew,
    DHCP6_Reply,
    DHCP6_Request,
    DHCP6_Solicit,
    DHCP6OptClientId,
    DHCP6OptDNSServers,
    DHCP6OptElapsedTime,
    DHCP6OptIA_PD,
    DHCP6OptIAPrefix,
    DHCP6OptOptReq,
    DHCP6OptServerId,
)
from scapy.packet import Packet, Padding, Raw

from dhcp6pd.dhcp6.errors import CodecError

# DHCPv6 constants
DHCP6_CLIENT_PORT = 546
DHCP6_SERVER_PORT = 547
ALL_DHCP_RELAY_AGENTS_AND_SERVERS = "ff02::1:2"

MAX_TRANSACTION_ID = 0xFFFFFF

# All prefix delegation requests from this client use one IA_PD
PD_IAID = 1

# Option codes
OPTION_DNS_SERVERS = 23
OPTION_DOMAIN_LIST = 24

# DUID types
DUID_LLT = 1
DUID_EN = 2
DUID_LL = 3
DUID_UUID = 4

HWTYPE_ETHERNET = 1
DUID_EPOCH = 946684800  # 2000-01-01T00:00:00Z


class MessageType(IntEnum):
    """DHCPv6 message types (RFC 8415, RFC 5007)."""
    NONE = 0
    SOLICIT = 1
    ADVERTISE = 2
    REQUEST = 3
    CONFIRM = 4
    RENEW = 5
    REBIND = 6
    REPLY = 7
    RELEASE = 8
    DECLINE = 9
    RECONFIGURE = 10
    INFORMATION_REQUEST = 11
    RELAY_FORWARD = 12
    RELAY_REPLY = 13
    LEASEQUERY = 14
    LEASEQUERY_REPLY = 15


# Reply type a server answers each request type with
EXPECTED_REPLY: dict[MessageType, MessageType] = {
    MessageType.SOLICIT: MessageType.ADVERTISE,
    MessageType.REQUEST: MessageType.REPLY,
    MessageType.RELAY_FORWARD: MessageType.RELAY_REPLY,
    MessageType.LEASEQUERY: MessageType.LEASEQUERY_REPLY,
}

# Relay messages have no transaction id, so they never reach the client
_RELAY_TYPES = (MessageType.RELAY_FORWARD, MessageType.RELAY_REPLY)

_PACKET_CLASSES: dict[MessageType, type[DHCP6]] = {
    MessageType.SOLICIT: DHCP6_Solicit,
    MessageType.ADVERTISE: DHCP6_Advertise,
    MessageType.REQUEST: DHCP6_Request,
    MessageType.CONFIRM: DHCP6_Confirm,
    MessageType.RENEW: DHCP6_Renew,
    MessageType.REBIND: DHCP6_Rebind,
    MessageType.REPLY: DHCP6_Reply,
    MessageType.RELEASE: DHCP6_Release,
    MessageType.DECLINE: DHCP6_Decline,
    MessageType.RECONFIGURE: DHCP6_Reconf,
    MessageType.INFORMATION_REQUEST: DHCP6_InfoRequest,
}


def expected_reply_type(message_type: MessageType) -> MessageType:
    """Return the reply type expected for a request, or NONE if any type is acceptable."""
    return EXPECTED_REPLY.get(message_type, MessageType.NONE)


@dataclass(frozen=True)
class DelegatedPrefix:
    """A prefix carried in an IA Prefix option."""
    network: IPNetwork
    preferred_lifetime: int = 0  # seconds
    valid_lifetime: int = 0  # seconds


@dataclass(frozen=True)
class IdentityAssociation:
    """An IA_PD option with its timers and delegated prefixes."""
    iaid: int
    t1: timedelta
    t2: timedelta
    prefixes: tuple[DelegatedPrefix, ...] = ()


class Message:
    """
    A DHCPv6 client/server message.

    Wraps a scapy DHCP6 packet. The options are the layers chained
    after the DHCPv6 header.
    """

    def __init__(self, packet: DHCP6):
        self._packet = packet

    @property
    def packet(self) -> DHCP6:
        return self._packet

    @property
    def message_type(self) -> MessageType:
        return MessageType(self._packet.msgtype)

    @message_type.setter
    def message_type(self, value: MessageType) -> None:
        self._packet.msgtype = int(value)

    @property
    def transaction_id(self) -> int:
        return int(self._packet.trid)

    @transaction_id.setter
    def transaction_id(self, value: int) -> None:
        if not 0 <= value <= MAX_TRANSACTION_ID:
            raise ValueError(f"transaction id out of range: {value:#x}")
        self._packet.trid = value

    def options(self) -> Iterator[Packet]:
        """Iterate over the top-level options in encounter order."""
        layer = self._packet.payload
        while layer:
            if isinstance(layer, (Raw, Padding)):
                break
            yield layer
            layer = layer.payload

    def first_option(self, option_cls: type[Packet]) -> Packet | None:
        """Return a standalone copy of the first option of the given class."""
        for option in self.options():
            if isinstance(option, option_cls):
                copied = option.copy()
                copied.remove_payload()
                return copied
        return None

    def has_option(self, option_cls: type[Packet]) -> bool:
        return any(isinstance(option, option_cls) for option in self.options())

    def add_option(self, option: Packet) -> None:
        """Append an option after the existing ones."""
        self._packet = self._packet / option

    def identity_associations(self) -> list[IdentityAssociation]:
        """Parse all IA_PD options."""
        associations = []
        for option in self.options():
            if not isinstance(option, DHCP6OptIA_PD):
                continue
            prefixes = []
            for sub in option.iapdopt:
                if isinstance(sub, DHCP6OptIAPrefix):
                    prefixes.append(DelegatedPrefix(
                        network=IPNetwork(f"{sub.prefix}/{sub.plen}"),
                        preferred_lifetime=sub.preflft or 0,
                        valid_lifetime=sub.validlft or 0,
                    ))
            associations.append(IdentityAssociation(
                iaid=option.iaid or 0,
                t1=timedelta(seconds=option.T1 or 0),
                t2=timedelta(seconds=option.T2 or 0),
                prefixes=tuple(prefixes),
            ))
        return associations

    def dns_servers(self) -> list[str]:
        servers = []
        for option in self.options():
            if isinstance(option, DHCP6OptDNSServers):
                servers.extend(str(addr) for addr in option.dnsservers)
        return servers

    @property
    def client_id(self) -> bytes | None:
        return self._duid_of(DHCP6OptClientId)

    @property
    def server_id(self) -> bytes | None:
        return self._duid_of(DHCP6OptServerId)

    def _duid_of(self, option_cls: type[Packet]) -> bytes | None:
        for option in self.options():
            # ServerId subclasses ClientId, so compare the exact class
            if type(option) is option_cls:
                return bytes(option.duid)
        return None

    def encode(self) -> bytes:
        return bytes(self._packet)

    def __repr__(self) -> str:
        return f"Message({self.message_type.name}, xid=0x{self.transaction_id:06x})"


def new_transaction_id() -> int:
    """Generate a random 24-bit transaction id."""
    return random.randint(0, MAX_TRANSACTION_ID)


def new_solicit(duid: bytes) -> Message:
    """Build a Solicit carrying the client identifier and an option request."""
    packet = (
        DHCP6_Solicit(trid=new_transaction_id())
        / DHCP6OptClientId(duid=duid)
        / DHCP6OptElapsedTime(elapsedtime=0)
        / DHCP6OptOptReq(reqopts=[OPTION_DNS_SERVERS, OPTION_DOMAIN_LIST])
    )
    return Message(packet)


def new_request_from_advertise(advertise: Message | None, duid: bytes) -> Message:
    """
    Build a Request answering an Advertise.

    Args:
        advertise: Advertise received from the server
        duid: Client DUID to identify with

    Returns:
        Request with a fresh transaction id and the server identifier
        copied from the Advertise

    Raises:
        CodecError: If the Advertise is missing, of the wrong type, or has
            no server identifier
    """
    if advertise is None:
        raise CodecError("ADVERTISE cannot be None")
    if advertise.message_type != MessageType.ADVERTISE:
        raise CodecError(
            f"expected an ADVERTISE message, got {advertise.message_type.name}"
        )
    server_id = advertise.first_option(DHCP6OptServerId)
    if server_id is None:
        raise CodecError("server ID cannot be missing in ADVERTISE")

    packet = (
        DHCP6_Request(trid=new_transaction_id())
        / DHCP6OptClientId(duid=duid)
        / server_id
        / DHCP6OptElapsedTime(elapsedtime=0)
        / DHCP6OptOptReq(reqopts=[OPTION_DNS_SERVERS, OPTION_DOMAIN_LIST])
    )
    return Message(packet)


def new_ia_pd(iaid: int = PD_IAID) -> DHCP6OptIA_PD:
    """An empty IA_PD asking the server to pick the prefix and timers."""
    return DHCP6OptIA_PD(iaid=iaid, T1=0, T2=0)


def decode(data: bytes) -> Message:
    """
    Decode a datagram into a client/server message.

    Raises:
        CodecError: If the datagram is not a DHCPv6 client/server message
    """
    if len(data) < 4:
        raise CodecError(f"packet too short: {len(data)} bytes")
    try:
        message_type = MessageType(data[0])
    except ValueError:
        raise CodecError(f"unknown message type {data[0]}") from None
    if message_type == MessageType.NONE:
        raise CodecError("message type 0 is not valid")
    if message_type in _RELAY_TYPES:
        raise CodecError(f"relay message {message_type.name} has no transaction id")

    packet_cls = _PACKET_CLASSES.get(message_type, DHCP6)
    try:
        packet = packet_cls(data)
    except Exception as e:
        raise CodecError(f"malformed {message_type.name}: {e}") from e
    return Message(packet)


def parse_duid(value: bytes | str) -> bytes:
    """
    Parse a DUID given as bytes or hex (with optional ':' or '-' separators).

    The value must include the leading 2-byte DUID type.
    """
    if isinstance(value, str):
        cleaned = value.strip().replace(":", "").replace("-", "").replace(" ", "")
        try:
            raw = bytes.fromhex(cleaned)
        except ValueError:
            raise CodecError(f"invalid DUID hex string: {value!r}") from None
    else:
        raw = bytes(value)

    if len(raw) < 4:
        raise CodecError(f"DUID too short: {len(raw)} bytes")
    duid_type = struct.unpack("!H", raw[:2])[0]
    if duid_type not in (DUID_LLT, DUID_EN, DUID_LL, DUID_UUID):
        raise CodecError(f"unknown DUID type {duid_type}")
    if duid_type == DUID_LLT and len(raw) < 8:
        raise CodecError("DUID-LLT requires type, hardware type and time")
    return raw


def duid_llt(hardware_address: bytes, timestamp: float | None = None) -> bytes:
    """Build a DUID-LLT from an Ethernet address and a Unix timestamp."""
    if timestamp is None:
        timestamp = time.time()
    seconds = (int(timestamp) - DUID_EPOCH) & 0xFFFFFFFF
    return struct.pack("!HHI", DUID_LLT, HWTYPE_ETHERNET, seconds) + bytes(hardware_address)


def format_duid(duid: bytes) -> str:
    return ":".join(f"{b:02x}" for b in duid)


def parse_mac(mac: str | bytes) -> bytes:
    """Parse a MAC address (xx:xx:xx:xx:xx:xx) to bytes."""
    if isinstance(mac, bytes):
        return mac
    try:
        raw = bytes.fromhex(mac.replace(":", "").replace("-", ""))
    except ValueError:
        raise CodecError(f"invalid hardware address: {mac!r}") from None
    if len(raw) != 6:
        raise CodecError(f"hardware address must be 6 bytes: {mac!r}")
    return raw
