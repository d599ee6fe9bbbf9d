"""Shared fakes: a virtual clock and a scripted transport."""

import pytest

from firmata_scout.errors import TransportIOError, TransportOpenError


class FakeClock:
    """Clock that advances only when slept on."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeLink:
    def __init__(self, transport, port, dtr, rts):
        self.transport = transport
        self.port = port
        self.lines = {"dtr": dtr, "rts": rts}
        self.written = bytearray()
        self.closed = False

    def set_control_line(self, name, value):
        self.transport.log.append(("line", name, value))
        self.lines[name] = value

    def write(self, data):
        if self.transport.fail_writes:
            raise TransportIOError("write failed")
        self.transport.log.append(("write", bytes(data)))
        self.written += data
        self.transport.written += data
        return len(data)

    def read_available(self):
        self.transport.reads += 1
        return self.transport.respond(self)

    def discard_buffers(self):
        self.transport.log.append(("discard",))

    def close(self):
        if not self.closed:
            self.transport.log.append(("close",))
        self.closed = True


class FakeTransport:
    """Transport whose read results are scripted by read number.

    ``inbound`` maps the 1-based read count (across every link) to the bytes
    that read returns. ``responder`` overrides it with a callable taking the
    link.
    """

    def __init__(self, inbound=None, responder=None, open_error=None, fail_open_on=None):
        self.inbound = dict(inbound or {})
        self.responder = responder
        self.open_error = open_error
        self.fail_open_on = fail_open_on
        self.fail_writes = False
        self.reads = 0
        self.opens = 0
        self.links = []
        self.log = []
        self.written = bytearray()

    def open(self, port, baud_rate=115200, *, dtr=True, rts=True):
        self.opens += 1
        if self.open_error is not None and (
            self.fail_open_on is None or self.opens == self.fail_open_on
        ):
            raise self.open_error
        self.log.append(("open", port, dtr, rts))
        link = FakeLink(self, port, dtr, rts)
        self.links.append(link)
        return link

    def respond(self, link):
        if self.responder is not None:
            return self.responder(link)
        return self.inbound.pop(self.reads, b"")

    @property
    def open_links(self):
        return [link for link in self.links if not link.closed]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def open_error():
    return TransportOpenError("could not open port", exit_code=2)
