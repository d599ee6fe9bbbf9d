"""Reset profile definitions for firmata-scout.

Each profile is the reset sequence and handshake timing that gets one
board family from "port opened" to "listening for Firmata".
"""

from __future__ import annotations

from dataclasses import dataclass

from firmata_scout.errors import UnknownProfileError

DTR = "dtr"
RTS = "rts"
CONTROL_LINES = (DTR, RTS)


@dataclass(frozen=True)
class Open:
    pass


@dataclass(frozen=True)
class Close:
    pass


@dataclass(frozen=True)
class Wait:
    ms: int


@dataclass(frozen=True)
class SetControlLine:
    name: str
    value: bool

    def __post_init__(self):
        if self.name not in CONTROL_LINES:
            raise ValueError(f"Unknown control line: {self.name}")


ResetStep = Open | Close | Wait | SetControlLine


@dataclass(frozen=True)
class ResetProfile:
    name: str
    handshake_attempts: int
    handshake_delay_ms: int
    reset_steps: tuple[ResetStep, ...]
    description: str = ""

    @property
    def handshake_budget_ms(self) -> int:
        return self.handshake_attempts * self.handshake_delay_ms

    @property
    def reset_duration_ms(self) -> int:
        return sum(step.ms for step in self.reset_steps if isinstance(step, Wait))


PROFILES: dict[str, ResetProfile] = {}


def _register(profile: ResetProfile) -> ResetProfile:
    PROFILES[profile.name.lower()] = profile
    return profile


def get_profile(name: str) -> ResetProfile:
    """Get a profile by name (case-insensitive). Raises UnknownProfileError."""
    key = name.lower()
    if key not in PROFILES:
        known = ", ".join(p.name for p in PROFILES.values())
        raise UnknownProfileError(f"Unknown profile: {name}. Known profiles: {known}")
    return PROFILES[key]


def list_profiles() -> list[ResetProfile]:
    """Return all profiles in round-robin order."""
    return list(PROFILES.values())


def profile_names() -> list[str]:
    return [p.name for p in PROFILES.values()]


# Registration order is the round-robin order.

STANDARD = _register(ResetProfile(
    name="Standard",
    handshake_attempts=6,
    handshake_delay_ms=150,
    reset_steps=(Open(), Wait(2000)),
    description="Generic AVR boards (Uno, Nano): auto-reset on open.",
))

MEGA = _register(ResetProfile(
    name="Mega",
    handshake_attempts=12,
    handshake_delay_ms=200,
    reset_steps=(Open(), Wait(4500)),
    description="Arduino Mega: long bootloader delay after auto-reset.",
))

LEONARDO = _register(ResetProfile(
    name="Leonardo",
    handshake_attempts=8,
    handshake_delay_ms=100,
    reset_steps=(
        Open(), Wait(100),
        Close(), Wait(1500),
        Open(), Wait(3000),
    ),
    description="Native USB boards: the port drops and re-enumerates after the first open.",
))

ESP8266 = _register(ResetProfile(
    name="ESP8266",
    handshake_attempts=10,
    handshake_delay_ms=150,
    reset_steps=(
        SetControlLine(DTR, False),
        SetControlLine(RTS, False),
        Open(),
        Wait(100),
        SetControlLine(DTR, True), Wait(100),
        SetControlLine(DTR, False), Wait(100),
        SetControlLine(RTS, True), Wait(100),
        SetControlLine(RTS, False),
        Wait(1500),
        Close(), Wait(500),
        Open(), Wait(2000),
    ),
    description="ESP8266/ESP32: DTR/RTS drive the boot-strap pins, so both start released.",
))
