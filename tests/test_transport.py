import socket
import time

import pytest

from dhcp6pd.dhcp6.errors import ExchangeTimeout, TransportError
from dhcp6pd.dhcp6.transport import UDPTransport, link_local_address

IF_INET6 = """\
00000000000000000000000000000001 01 80 10 80       lo
20010db8000000000000000000000001 02 40 00 00  uplink0
fe800000000000000200000000000001 02 40 20 80  uplink0
fe800000000000000200000000000002 03 40 20 80     lan0
"""


class FakeSocket:
    def __init__(self, inbound=(), error=None):
        self.inbound = list(inbound)
        self.error = error
        self.timeouts = []
        self.sent = []
        self.closed = False

    def settimeout(self, timeout):
        self.timeouts.append(timeout)

    def sendto(self, data, address):
        if self.error:
            raise self.error
        self.sent.append((data, address))

    def recvfrom(self, max_size):
        if self.error:
            raise self.error
        if not self.inbound:
            raise socket.timeout("timed out")
        return self.inbound.pop(0)[:max_size], ("fe80::1", 547)

    def close(self):
        self.closed = True


def test_link_local_address(tmp_path):
    path = tmp_path / "if_inet6"
    path.write_text(IF_INET6)

    assert link_local_address("uplink0", if_inet6=path) == "fe80::200:0:0:1"
    assert link_local_address("lan0", if_inet6=path) == "fe80::200:0:0:2"


def test_link_local_address_missing(tmp_path):
    path = tmp_path / "if_inet6"
    path.write_text(IF_INET6)

    with pytest.raises(TransportError):
        link_local_address("lo", if_inet6=path)
    with pytest.raises(TransportError):
        link_local_address("uplink0", if_inet6=tmp_path / "missing")


def test_send_and_receive():
    sock = FakeSocket(inbound=[b"\x02\x00\x12\x34"])
    transport = UDPTransport(("fe80::1", 546, 0, 2), sock=sock)

    transport.send_to(b"data", ("ff02::1:2", 547), timeout=3.0)
    data = transport.receive_from(2, time.monotonic() + 3.0)

    assert sock.sent == [(b"data", ("ff02::1:2", 547))]
    assert data == b"\x02\x00"
    assert sock.timeouts[0] == 3.0
    assert 0 < sock.timeouts[1] <= 3.0


def test_receive_after_deadline():
    sock = FakeSocket(inbound=[b"late"])
    transport = UDPTransport(("fe80::1", 546), sock=sock)

    with pytest.raises(ExchangeTimeout):
        transport.receive_from(8192, time.monotonic() - 1)

    assert sock.inbound == [b"late"]


def test_receive_timeout():
    transport = UDPTransport(("fe80::1", 546), sock=FakeSocket())

    with pytest.raises(ExchangeTimeout):
        transport.receive_from(8192, time.monotonic() + 3.0)


def test_socket_errors_become_transport_errors():
    transport = UDPTransport(("fe80::1", 546), sock=FakeSocket(error=OSError("network is unreachable")))

    with pytest.raises(TransportError) as send_error:
        transport.send_to(b"data", ("ff02::1:2", 547), timeout=3.0)
    with pytest.raises(TransportError) as receive_error:
        transport.receive_from(8192, time.monotonic() + 3.0)

    assert not isinstance(send_error.value, ExchangeTimeout)
    assert not isinstance(receive_error.value, ExchangeTimeout)


def test_close():
    sock = FakeSocket()
    UDPTransport(("fe80::1", 546), sock=sock).close()

    assert sock.closed
