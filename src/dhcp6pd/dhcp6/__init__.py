"""
DHCPv6 prefix delegation client module.

Provides the Solicit/Advertise, Request/Reply and Release/Reply
exchanges for obtaining and releasing a delegated prefix.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

from dhcp6pd.dhcp6.client import (
    ClientConfig,
    ClientState,
    DHCP6Client,
)
from dhcp6pd.dhcp6.errors import (
    CodecError,
    DHCP6Error,
    ExchangeTimeout,
    NoActiveLease,
    SequenceExhausted,
    TransportError,
)
from dhcp6pd.dhcp6.exchange import ExchangeEngine, ExchangeStats
from dhcp6pd.dhcp6.lease import ZERO_TIME, LeaseConfig, extract_config
from dhcp6pd.dhcp6.messages import Message, MessageType
from dhcp6pd.dhcp6.sequencer import TransactionIdSource, TransactionSequencer

__all__ = [
    "ClientConfig",
    "ClientState",
    "CodecError",
    "DHCP6Client",
    "DHCP6Error",
    "ExchangeEngine",
    "ExchangeStats",
    "ExchangeTimeout",
    "LeaseConfig",
    "Message",
    "MessageType",
    "NoActiveLease",
    "SequenceExhausted",
    "TransactionIdSource",
    "TransactionSequencer",
    "TransportError",
    "ZERO_TIME",
    "extract_config",
]
