"""Pin commands on a connected Firmata device."""

from __future__ import annotations

import logging
from typing import Callable

from firmata_scout.clock import Clock, SystemClock, sleep_ms
from firmata_scout.codec import (
    FirmwareVersion,
    PinMode,
    StreamDecoder,
    VersionReport,
    describe_frame,
    encode_analog_write,
    encode_digital_write,
    encode_set_pin_mode,
    encode_version_query,
    split_frames,
)
from firmata_scout.errors import NotConnectedError
from firmata_scout.transport import Link

logger = logging.getLogger(__name__)

PWM_MAX = 255
SERVO_MAX_DEGREES = 180
# Settle time after a mode change before the first write to the pin.
PIN_MODE_SETTLE_MS = 50
VERSION_POLL_MS = 100


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


class DeviceSession:
    """An open connection to a Firmata device.

    Owns the link it was handed. Each pin gets its mode set on first use and
    keeps it for the rest of the session.
    """

    def __init__(
        self,
        port: str,
        profile: str,
        firmware_version: FirmwareVersion | None,
        link: Link,
        *,
        clock: Clock | None = None,
        decoder: StreamDecoder | None = None,
    ):
        self.port = port
        self.profile = profile
        self.firmware_version = firmware_version
        self._link: Link | None = link
        self._clock = clock or SystemClock()
        self._decoder = decoder or StreamDecoder()
        self._pin_modes: dict[int, PinMode] = {}

    def __enter__(self) -> DeviceSession:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<DeviceSession {self.port} {self.profile} v{self.firmware_version} {state}>"

    @property
    def is_open(self) -> bool:
        return self._link is not None

    @property
    def configured_pins(self) -> frozenset[tuple[int, PinMode]]:
        return frozenset(self._pin_modes.items())

    def pin_mode(self, pin: int) -> PinMode | None:
        return self._pin_modes.get(pin)

    def _require_link(self) -> Link:
        if self._link is None:
            raise NotConnectedError(f"Session on {self.port} is closed")
        return self._link

    def _send(self, data: bytes) -> None:
        link = self._require_link()
        if logger.isEnabledFor(logging.DEBUG):
            for frame in split_frames(data):
                logger.debug("Sending to %s: %s", self.port, describe_frame(frame))
        link.write(data)

    def _ensure_mode(self, pin: int, mode: PinMode) -> None:
        current = self._pin_modes.get(pin)
        if current is not None:
            if current != mode:
                logger.debug("Pin %d already configured as %s, keeping it", pin, current.name)
            return
        self._send(encode_set_pin_mode(pin, mode))
        self._pin_modes[pin] = mode
        sleep_ms(self._clock, PIN_MODE_SETTLE_MS)

    def set_digital(self, pin: int, level: bool) -> None:
        """Drive a digital output pin high or low.

        Other pins in the same 8-pin group are written low by the message.
        """
        message = encode_digital_write(pin, bool(level))
        self._require_link()
        self._ensure_mode(pin, PinMode.OUTPUT)
        self._send(message)
        logger.info("Set digital pin %d to %d on %s", pin, int(bool(level)), self.port)

    def set_pwm(self, pin: int, value: int) -> int:
        value = clamp(value, 0, PWM_MAX)
        message = encode_analog_write(pin, value)
        self._require_link()
        self._ensure_mode(pin, PinMode.PWM)
        self._send(message)
        logger.info("Set PWM pin %d to %d on %s", pin, value, self.port)
        return value

    def set_servo(self, pin: int, angle: int) -> int:
        angle = clamp(angle, 0, SERVO_MAX_DEGREES)
        message = encode_analog_write(pin, angle)
        self._require_link()
        self._ensure_mode(pin, PinMode.SERVO)
        self._send(message)
        logger.info("Set servo pin %d to %d degrees on %s", pin, angle, self.port)
        return angle

    def request_version(self) -> None:
        self._send(encode_version_query())

    def read_version(self, timeout_ms: int = 1000) -> FirmwareVersion | None:
        """Query the firmware version and wait for the report.

        Returns the previously known version if nothing arrives in time.
        """
        link = self._require_link()
        link.write(encode_version_query())
        waited = 0
        while waited < timeout_ms:
            sleep_ms(self._clock, VERSION_POLL_MS)
            waited += VERSION_POLL_MS
            for event in self._decoder.feed(link.read_available()):
                if isinstance(event, VersionReport):
                    self.firmware_version = event.version
                    return self.firmware_version
        logger.warning("No version report from %s within %dms", self.port, timeout_ms)
        return self.firmware_version

    def run_self_test(self, output_callback: Callable[[str], None] | None = None) -> None:
        """Exercise a digital pin, a PWM pin and a servo pin.

        Uses pin 13 (onboard LED on most boards), pin 9 for PWM and pin 5
        for the servo.
        """
        report = output_callback or (lambda message: None)

        report("Testing digital output on pin 13...")
        self.set_digital(13, True)
        sleep_ms(self._clock, 1000)
        self.set_digital(13, False)

        report("Testing PWM on pin 9...")
        for value in range(0, PWM_MAX + 1, 10):
            self.set_pwm(9, value)
            sleep_ms(self._clock, 50)
        self.set_pwm(9, 0)

        report("Testing servo on pin 5...")
        for angle in range(0, SERVO_MAX_DEGREES + 1, 10):
            self.set_servo(5, angle)
            sleep_ms(self._clock, 100)
        self.set_servo(5, 90)

        report("All tests completed successfully!")

    def close(self) -> None:
        if self._link is not None:
            self._link.close()
            logger.debug("Closed session on %s", self.port)
        self._link = None
        self._pin_modes.clear()
