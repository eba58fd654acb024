from __future__ import annotations

from datetime import timedelta

import pytest
from netaddr import IPNetwork
from scapy.layers.dhcp6 import DHCP6_Advertise, DHCP6OptClientId, DHCP6OptIA_PD, DHCP6OptServerId

from conftest import CLIENT_DUID, SERVER_DUID, advertise_bytes, ia_pd, reply_bytes
from dhcp6pd.dhcp6.errors import CodecError
from dhcp6pd.dhcp6.messages import (
    DUID_EPOCH,
    MAX_TRANSACTION_ID,
    MessageType,
    decode,
    duid_llt,
    format_duid,
    new_request_from_advertise,
    new_solicit,
    parse_duid,
    parse_mac,
)


@pytest.mark.parametrize("data", [
    b"",
    b"\x02\x00\x00",
    b"hello world",
    b"\x00\x00\x12\x34",
    b"\x0c\x00" + b"\x00" * 32,  # relay-forward
    b"\x0d\x00" + b"\x00" * 32,  # relay-reply
])
def test_decode_rejects_non_client_server_messages(data):
    with pytest.raises(CodecError):
        decode(data)


def test_decode_advertise():
    message = decode(advertise_bytes(
        0xABCDEF,
        ia_pds=[ia_pd(t1=3600, t2=5400, prefixes=[("2001:db8:1::", 48), ("2001:db8:2::", 56)])],
        dns=["2001:db8::53", "2001:db8::54"],
    ))

    assert message.message_type == MessageType.ADVERTISE
    assert message.transaction_id == 0xABCDEF
    assert message.client_id == CLIENT_DUID
    assert message.server_id == SERVER_DUID

    [association] = message.identity_associations()
    assert association.iaid == 1
    assert association.t1 == timedelta(hours=1)
    assert association.t2 == timedelta(seconds=5400)
    assert [p.network for p in association.prefixes] == [
        IPNetwork("2001:db8:1::/48"),
        IPNetwork("2001:db8:2::/56"),
    ]
    assert association.prefixes[0].valid_lifetime == 7200
    assert message.dns_servers() == ["2001:db8::53", "2001:db8::54"]


def test_new_solicit():
    message = new_solicit(CLIENT_DUID)

    assert message.message_type == MessageType.SOLICIT
    assert 0 <= message.transaction_id <= MAX_TRANSACTION_ID
    assert message.client_id == CLIENT_DUID
    assert not message.has_option(DHCP6OptIA_PD)

    decoded = decode(message.encode())
    assert decoded.message_type == MessageType.SOLICIT
    assert decoded.client_id == CLIENT_DUID


def test_request_from_advertise_copies_server_id():
    advertise = decode(advertise_bytes(0x1111))

    request = new_request_from_advertise(advertise, CLIENT_DUID)

    assert request.message_type == MessageType.REQUEST
    assert request.server_id == SERVER_DUID
    assert request.client_id == CLIENT_DUID
    # IA_PD is added by the caller
    assert request.identity_associations() == []


def test_request_from_advertise_rejects_other_types():
    with pytest.raises(CodecError):
        new_request_from_advertise(decode(reply_bytes(0x1111)), CLIENT_DUID)
    with pytest.raises(CodecError):
        new_request_from_advertise(None, CLIENT_DUID)


def test_request_from_advertise_requires_server_id():
    advertise = decode(advertise_bytes(0x1111, server_duid=None))

    with pytest.raises(CodecError):
        new_request_from_advertise(advertise, CLIENT_DUID)


def test_first_option_is_detached_from_following_options():
    advertise = decode(advertise_bytes(0x1111))

    server_id = advertise.first_option(DHCP6OptServerId)

    assert isinstance(server_id, DHCP6OptServerId)
    assert not server_id.payload
    assert advertise.first_option(DHCP6_Advertise) is None


def test_add_option_appends_in_order():
    message = new_solicit(CLIENT_DUID)
    message.add_option(ia_pd(iaid=7))

    options = list(message.options())

    assert isinstance(options[0], DHCP6OptClientId)
    assert isinstance(options[-1], DHCP6OptIA_PD)
    assert message.identity_associations()[0].iaid == 7


def test_transaction_id_must_fit_24_bits():
    message = new_solicit(CLIENT_DUID)
    with pytest.raises(ValueError):
        message.transaction_id = 0x1000000
    message.transaction_id = 0xFFFFFF
    assert message.transaction_id == 0xFFFFFF


def test_message_type_can_be_forced():
    request = new_request_from_advertise(decode(advertise_bytes(0x1111)), CLIENT_DUID)
    request.message_type = MessageType.RELEASE

    assert decode(request.encode()).message_type == MessageType.RELEASE


def test_parse_duid_accepts_hex_with_separators():
    assert parse_duid("00:03:00:01:4c:5e:0c:41:bf:39") == CLIENT_DUID
    assert parse_duid("000300014c5e0c41bf39") == CLIENT_DUID
    assert parse_duid(CLIENT_DUID) == CLIENT_DUID


@pytest.mark.parametrize("value", ["00:03", "zz:zz:zz:zz", "00:09:00:01:02:03", "00:01:00:01:00"])
def test_parse_duid_rejects_invalid(value):
    with pytest.raises(CodecError):
        parse_duid(value)


def test_duid_llt():
    mac = bytes.fromhex("020000000001")

    duid = duid_llt(mac, timestamp=DUID_EPOCH + 10)

    assert duid == bytes.fromhex("00010001" "0000000a" "020000000001")
    assert format_duid(duid) == "00:01:00:01:00:00:00:0a:02:00:00:00:00:01"


def test_parse_mac():
    assert parse_mac("02:00:00:00:00:01") == bytes.fromhex("020000000001")
    with pytest.raises(CodecError):
        parse_mac("not-a-mac")
