"""Firmata wire codec: command encoding and version-report decoding.

Only the small fixed-length subset of the protocol used for probing and
driving output pins is covered. Every message is a one-byte opcode plus
zero or two 7-bit payload bytes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

REPORT_VERSION = 0xF9
SET_PIN_MODE = 0xF4
DIGITAL_MESSAGE = 0x90
ANALOG_MESSAGE = 0xE0

MAX_PIN = 127
MAX_ANALOG_PIN = 15
# Two 7-bit payload bytes carry at most 14 bits.
MAX_PAYLOAD_VALUE = 0x3FFF


class PinMode(IntEnum):
    OUTPUT = 0x01
    PWM = 0x03
    SERVO = 0x04


@dataclass(frozen=True)
class FirmwareVersion:
    major: int
    minor: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


@dataclass(frozen=True)
class VersionReport:
    major: int
    minor: int

    @property
    def version(self) -> FirmwareVersion:
        return FirmwareVersion(self.major, self.minor)


@dataclass(frozen=True)
class UnrecognizedByte:
    value: int


DecodedEvent = VersionReport | UnrecognizedByte


def _check_range(name: str, value: int, upper: int) -> None:
    if not 0 <= value <= upper:
        raise ValueError(f"{name} must be in 0..{upper}, got {value}")


def encode_version_query() -> bytes:
    return bytes([REPORT_VERSION])


def encode_set_pin_mode(pin: int, mode: PinMode) -> bytes:
    _check_range("pin", pin, MAX_PIN)
    return bytes([SET_PIN_MODE, pin, PinMode(mode)])


def encode_digital_write(pin: int, level: bool) -> bytes:
    """Encode a digital port message that drives a single pin.

    The whole 8-pin group is written at once but only the target bit is
    ever set, so other pins in the same group are written low.
    """
    _check_range("pin", pin, MAX_PIN)
    value = (1 << (pin % 8)) if level else 0
    return bytes([DIGITAL_MESSAGE | (pin // 8), value & 0x7F, value >> 7])


def encode_analog_write(pin: int, value: int) -> bytes:
    """Encode a PWM duty (0..255) or servo angle (0..180) write.

    The codec does not clamp; callers pick the legal range for the use.
    """
    _check_range("pin", pin, MAX_ANALOG_PIN)
    _check_range("value", value, MAX_PAYLOAD_VALUE)
    return bytes([ANALOG_MESSAGE | (pin & 0x0F), value & 0x7F, value >> 7])


def combine_7bit(low: int, high: int) -> int:
    return low | (high << 7)


# Outbound message lengths keyed by opcode (after masking the channel nibble).
OUTBOUND_LENGTHS = {
    REPORT_VERSION: 1,
    SET_PIN_MODE: 3,
    DIGITAL_MESSAGE: 3,
    ANALOG_MESSAGE: 3,
}

# Inbound message lengths keyed by opcode.
INBOUND_LENGTHS = {
    REPORT_VERSION: 3,
}


def command_of(opcode: int) -> int:
    """Strip the channel nibble from channelled opcodes (0x90..0x9F, 0xE0..0xEF)."""
    if opcode & 0xF0 in (DIGITAL_MESSAGE, ANALOG_MESSAGE):
        return opcode & 0xF0
    return opcode


def split_frames(data: bytes) -> list[bytes]:
    """Cut an outbound byte stream back into whole messages.

    Raises ValueError on an unknown opcode or a truncated message.
    """
    frames: list[bytes] = []
    i = 0
    while i < len(data):
        command = command_of(data[i])
        length = OUTBOUND_LENGTHS.get(command)
        if length is None:
            raise ValueError(f"Unknown opcode 0x{data[i]:02X} at offset {i}")
        if i + length > len(data):
            raise ValueError(f"Truncated 0x{data[i]:02X} message at offset {i}")
        frames.append(bytes(data[i:i + length]))
        i += length
    return frames


def describe_frame(frame: bytes) -> str:
    """Human-readable rendering of one outbound message."""
    command = command_of(frame[0])
    if command == REPORT_VERSION:
        return "version query"
    if command == SET_PIN_MODE:
        return f"set pin {frame[1]} mode {PinMode(frame[2]).name}"
    if command == DIGITAL_MESSAGE:
        group = frame[0] & 0x0F
        return f"digital group {group} value 0x{combine_7bit(frame[1], frame[2]):02X}"
    if command == ANALOG_MESSAGE:
        return f"analog pin {frame[0] & 0x0F} value {combine_7bit(frame[1], frame[2])}"
    return f"0x{frame[0]:02X}"


def _scan(buf: bytes, *, hold_partial: bool) -> tuple[list[DecodedEvent], bytes]:
    events: list[DecodedEvent] = []
    i = 0
    while i < len(buf):
        byte = buf[i]
        if byte == REPORT_VERSION:
            if i + 2 < len(buf):
                events.append(VersionReport(buf[i + 1], buf[i + 2]))
                i += 3
                continue
            if hold_partial:
                return events, bytes(buf[i:])
        events.append(UnrecognizedByte(byte))
        i += 1
    return events, b""


def feed(data: bytes) -> list[DecodedEvent]:
    """Decode one read's worth of bytes.

    A version report split across two reads is not recovered: the trailing
    partial bytes are reported as unrecognized.
    """
    events, _ = _scan(data, hold_partial=False)
    return events


class StreamDecoder:
    """Decoder that carries a trailing partial version report to the next feed.

    With ``carry_partial=False`` it behaves exactly like :func:`feed`.
    """

    def __init__(self, carry_partial: bool = True):
        self.carry_partial = carry_partial
        self._pending = b""

    @property
    def pending(self) -> bytes:
        return self._pending

    def feed(self, data: bytes) -> list[DecodedEvent]:
        events, self._pending = _scan(
            self._pending + bytes(data), hold_partial=self.carry_partial,
        )
        return events

    def reset(self) -> None:
        self._pending = b""
