"""Single-attempt connection state machine.

One call to :meth:`ConnectionManager.connect` drives one port through one
reset profile and one handshake:

    IDLE -> RESETTING -> AWAITING_HANDSHAKE -> CONNECTED
                \\                \\
                 -> FAILED         -> FAILED

Retries across attempts, profiles and rounds belong to the caller
(see :mod:`firmata_scout.client`).
"""

from __future__ import annotations

import logging
import queue
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, Iterable

from firmata_scout.clock import Clock, SystemClock, sleep_ms
from firmata_scout.codec import (
    DecodedEvent,
    FirmwareVersion,
    StreamDecoder,
    UnrecognizedByte,
    VersionReport,
    encode_version_query,
)
from firmata_scout.errors import (
    FirmataError,
    HandshakeTimeoutError,
    PortUnavailableError,
    TransportIOError,
)
from firmata_scout.profiles import (
    DTR,
    RTS,
    Close,
    Open,
    ResetProfile,
    SetControlLine,
    Wait,
    get_profile,
)
from firmata_scout.session import DeviceSession
from firmata_scout.transport import DEFAULT_BAUD_RATE, Link, Transport

logger = logging.getLogger(__name__)

# Re-send the version query every this many handshake ticks.
REQUERY_EVERY_TICKS = 4


class ConnectionState(Enum):
    IDLE = auto()
    RESETTING = auto()
    AWAITING_HANDSHAKE = auto()
    CONNECTED = auto()
    FAILED = auto()


_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.IDLE: frozenset({ConnectionState.RESETTING}),
    ConnectionState.RESETTING: frozenset({
        ConnectionState.AWAITING_HANDSHAKE,
        ConnectionState.FAILED,
    }),
    ConnectionState.AWAITING_HANDSHAKE: frozenset({
        ConnectionState.CONNECTED,
        ConnectionState.FAILED,
    }),
    ConnectionState.CONNECTED: frozenset(),
    ConnectionState.FAILED: frozenset(),
}


class AttemptStateMachine:
    """Tracks one attempt's state and rejects transitions not in the table."""

    def __init__(self):
        self._state = ConnectionState.IDLE
        self.history: list[ConnectionState] = [ConnectionState.IDLE]

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self._state]

    def transition(self, new_state: ConnectionState) -> None:
        if new_state not in _TRANSITIONS[self._state]:
            raise RuntimeError(
                f"Invalid transition {self._state.name} -> {new_state.name}"
            )
        logger.debug("State transition: %s -> %s", self._state.name, new_state.name)
        self._state = new_state
        self.history.append(new_state)


@dataclass
class ConnectionAttempt:
    port: str
    profile: str
    attempt_index: int
    started_at: float
    ticks: int = 0


@dataclass
class AttemptResult:
    attempt: ConnectionAttempt
    state: ConnectionState
    session: DeviceSession | None = None
    error: FirmataError | None = None
    history: list[ConnectionState] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def version(self) -> FirmwareVersion | None:
        return self.session.firmware_version if self.session else None


class EventChannel:
    """Single-consumer queue of decoded events between the reader and the poll loop."""

    def __init__(self):
        self._queue: queue.SimpleQueue[DecodedEvent] = queue.SimpleQueue()

    def publish(self, events: Iterable[DecodedEvent]) -> None:
        for event in events:
            self._queue.put(event)

    def drain(self) -> list[DecodedEvent]:
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events


class _PortHandle:
    """Holds the one open link of an attempt and closes it on every exit."""

    def __init__(self, transport: Transport, port: str, baud_rate: int):
        self._transport = transport
        self._port = port
        self._baud_rate = baud_rate
        self.lines = {DTR: True, RTS: True}
        self.link: Link | None = None

    def __enter__(self) -> _PortHandle:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> None:
        if self.link is not None:
            self.close()
        self.link = self._transport.open(
            self._port, self._baud_rate, dtr=self.lines[DTR], rts=self.lines[RTS],
        )

    def close(self) -> None:
        if self.link is not None:
            link, self.link = self.link, None
            link.close()

    def set_control_line(self, name: str, value: bool) -> None:
        self.lines[name] = value
        if self.link is not None:
            self.link.set_control_line(name, value)

    def require_link(self) -> Link:
        if self.link is None:
            raise TransportIOError(f"Port {self._port} is not open")
        return self.link

    def release(self) -> Link:
        link = self.require_link()
        self.link = None
        return link


class ConnectionManager:
    """Runs single connection attempts against a transport.

    Args:
        transport: opens ports.
        clock: time source for reset waits and handshake ticks.
        baud_rate: line speed used for every open.
        list_ports: optional enumerator; when given, a port missing from it
            fails the attempt with PortUnavailableError before any open.
        carry_partial_reports: hold a version report split across reads
            until the rest arrives.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        clock: Clock | None = None,
        baud_rate: int = DEFAULT_BAUD_RATE,
        list_ports: Callable[[], Iterable[str]] | None = None,
        carry_partial_reports: bool = True,
    ):
        self.transport = transport
        self.clock = clock or SystemClock()
        self.baud_rate = baud_rate
        self.list_ports = list_ports
        self.carry_partial_reports = carry_partial_reports
        self._machine = AttemptStateMachine()

    @property
    def state(self) -> ConnectionState:
        """State of the most recent attempt."""
        return self._machine.state

    def connect(
        self,
        port: str,
        profile: ResetProfile | str,
        *,
        attempt_index: int = 1,
    ) -> AttemptResult:
        """Run one attempt. Never raises FirmataError; failures come back in the result."""
        if isinstance(profile, str):
            profile = get_profile(profile)

        machine = AttemptStateMachine()
        self._machine = machine
        attempt = ConnectionAttempt(
            port=port,
            profile=profile.name,
            attempt_index=attempt_index,
            started_at=self.clock.monotonic(),
        )
        decoder = StreamDecoder(carry_partial=self.carry_partial_reports)

        machine.transition(ConnectionState.RESETTING)
        logger.debug("Attempt %d on %s with %s profile", attempt_index, port, profile.name)
        try:
            with _PortHandle(self.transport, port, self.baud_rate) as handle:
                try:
                    self._check_port_available(port)
                    self._run_reset(handle, profile)
                    link = handle.require_link()
                    machine.transition(ConnectionState.AWAITING_HANDSHAKE)
                    link.discard_buffers()
                    link.write(encode_version_query())
                    version = self._await_handshake(link, profile, decoder, attempt)
                    link = handle.release()
                except BaseException:
                    if not machine.is_terminal:
                        machine.transition(ConnectionState.FAILED)
                    raise
        except FirmataError as e:
            logger.warning(
                "%s profile failed on %s (attempt %d): %s",
                profile.name, port, attempt_index, e.message,
            )
            return AttemptResult(
                attempt=attempt,
                state=machine.state,
                error=e,
                history=list(machine.history),
            )

        machine.transition(ConnectionState.CONNECTED)
        logger.info("Detected Firmata v%s on %s (%s profile)", version, port, profile.name)
        session = DeviceSession(
            port, profile.name, version, link, clock=self.clock, decoder=decoder,
        )
        return AttemptResult(
            attempt=attempt,
            state=machine.state,
            session=session,
            history=list(machine.history),
        )

    def _check_port_available(self, port: str) -> None:
        if self.list_ports is None:
            return
        if port not in set(self.list_ports()):
            raise PortUnavailableError(f"Port {port} not available")

    def _run_reset(self, handle: _PortHandle, profile: ResetProfile) -> None:
        for step in profile.reset_steps:
            if isinstance(step, Open):
                handle.open()
            elif isinstance(step, Close):
                handle.close()
            elif isinstance(step, Wait):
                sleep_ms(self.clock, step.ms)
            elif isinstance(step, SetControlLine):
                handle.set_control_line(step.name, step.value)
            else:
                raise TypeError(f"Unknown reset step: {step!r}")

    def _await_handshake(
        self,
        link: Link,
        profile: ResetProfile,
        decoder: StreamDecoder,
        attempt: ConnectionAttempt,
    ) -> FirmwareVersion:
        channel = EventChannel()
        for tick in range(1, profile.handshake_attempts + 1):
            sleep_ms(self.clock, profile.handshake_delay_ms)
            attempt.ticks = tick
            channel.publish(decoder.feed(link.read_available()))
            for event in channel.drain():
                if isinstance(event, VersionReport):
                    return event.version
                if isinstance(event, UnrecognizedByte):
                    logger.debug("Ignoring byte 0x%02X during handshake", event.value)
            if tick % REQUERY_EVERY_TICKS == 0 and tick < profile.handshake_attempts:
                link.write(encode_version_query())
        raise HandshakeTimeoutError(
            f"No version report from {attempt.port} after "
            f"{profile.handshake_attempts} x {profile.handshake_delay_ms}ms"
        )
