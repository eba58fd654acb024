from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Iterable

import pytest
from scapy.layers.dhcp6 import (
    DHCP6_Advertise,
    DHCP6_Reply,
    DHCP6OptClientId,
    DHCP6OptDNSServers,
    DHCP6OptIA_PD,
    DHCP6OptIAPrefix,
    DHCP6OptServerId,
)

from dhcp6pd.config import Settings, set_settings
from dhcp6pd.dhcp6.client import ClientConfig, DHCP6Client
from dhcp6pd.dhcp6.errors import ExchangeTimeout
from dhcp6pd.dhcp6.messages import Message, MessageType, decode

CLIENT_DUID = bytes.fromhex("000300014c5e0c41bf39")  # DUID-LL
SERVER_DUID = bytes.fromhex("000100012a3b4c5d020000000001")  # DUID-LLT
NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeTransport:
    """Replays scripted datagrams; raises ExchangeTimeout once they run out."""

    def __init__(self, inbound: Iterable[bytes | Exception] = ()):
        self.inbound: deque[bytes | Exception] = deque(inbound)
        self.sent: list[tuple[bytes, tuple, float]] = []
        self.deadlines: list[float] = []
        self.max_sizes: list[int] = []
        self.responder: Callable[[bytes], list[bytes]] | None = None
        self.closed = False

    def send_to(self, data: bytes, address: tuple, timeout: float) -> None:
        self.sent.append((data, address, timeout))
        if self.responder is not None:
            self.inbound.extend(self.responder(data))

    def receive_from(self, max_size: int, deadline: float) -> bytes:
        self.max_sizes.append(max_size)
        self.deadlines.append(deadline)
        if not self.inbound:
            raise ExchangeTimeout("read deadline exceeded")
        item = self.inbound.popleft()
        if isinstance(item, Exception):
            raise item
        return item[:max_size]

    def close(self) -> None:
        self.closed = True

    def sent_messages(self) -> list[Message]:
        return [decode(data) for data, _, _ in self.sent]


def ia_pd(
    t1: int = 3600,
    t2: int = 5400,
    prefixes: Iterable[tuple[str, int]] = (("2001:db8::", 48),),
    iaid: int = 1,
) -> DHCP6OptIA_PD:
    return DHCP6OptIA_PD(
        iaid=iaid,
        T1=t1,
        T2=t2,
        iapdopt=[
            DHCP6OptIAPrefix(prefix=prefix, plen=plen, preflft=7200, validlft=7200)
            for prefix, plen in prefixes
        ],
    )


def server_message(
    packet_cls,
    xid: int,
    ia_pds: Iterable[DHCP6OptIA_PD] | None = None,
    dns: Iterable[str] = ("2001:db8::53",),
    server_duid: bytes | None = SERVER_DUID,
    client_duid: bytes = CLIENT_DUID,
) -> bytes:
    packet = packet_cls(trid=xid) / DHCP6OptClientId(duid=client_duid)
    if server_duid is not None:
        packet = packet / DHCP6OptServerId(duid=server_duid)
    for option in ia_pds if ia_pds is not None else [ia_pd()]:
        packet = packet / option
    dns = list(dns)
    if dns:
        packet = packet / DHCP6OptDNSServers(dnsservers=dns)
    return bytes(packet)


def advertise_bytes(xid: int, **kwargs) -> bytes:
    return server_message(DHCP6_Advertise, xid, **kwargs)


def reply_bytes(xid: int, **kwargs) -> bytes:
    return server_message(DHCP6_Reply, xid, **kwargs)


def server_responder(data: bytes) -> list[bytes]:
    """Answer like a server that delegates 2001:db8::/48."""
    message = decode(data)
    xid = message.transaction_id
    if message.message_type == MessageType.SOLICIT:
        return [advertise_bytes(xid)]
    if message.message_type == MessageType.REQUEST:
        return [reply_bytes(xid)]
    if message.message_type == MessageType.RELEASE:
        return [reply_bytes(xid, ia_pds=[], dns=())]
    return []


@pytest.fixture(autouse=True)
def reset_state():
    set_settings(Settings(log_level="WARNING"))
    yield
    set_settings(None)
    logger = logging.getLogger("dhcp6pd")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def make_client(transport: FakeTransport):
    def factory(transaction_ids: list[int] | None = None, **kwargs) -> DHCP6Client:
        config = ClientConfig(
            duid=CLIENT_DUID,
            transport=transport,
            transaction_ids=list(transaction_ids or []),
            **kwargs,
        )
        return DHCP6Client(config, now=lambda: NOW)

    return factory
