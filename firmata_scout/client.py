"""Retry policy around single connection attempts.

Three ways in:

- ``connect_with_profile``: a fixed profile, N attempts.
- ``connect``: the profile remembered for the port if any, otherwise a
  round-robin over every profile for a number of rounds.
- ``connect_with_device_type``: a device description picks the profile,
  falling back to ``connect``.

Every loop is bounded. A profile that works is remembered per port for the
life of the client.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from firmata_scout.clock import sleep_ms
from firmata_scout.codec import FirmwareVersion
from firmata_scout.config import RetryConfig
from firmata_scout.connection import AttemptResult, ConnectionManager
from firmata_scout.errors import AttemptsExhaustedError, FirmataError, PortUnavailableError
from firmata_scout.profiles import get_profile, profile_names
from firmata_scout.resolver import resolve
from firmata_scout.session import DeviceSession

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    known_profile_attempts: int = 3
    attempt_pause_ms: int = 800
    profile_attempt_pause_ms: int = 1000
    profile_pause_ms: int = 500
    round_pause_ms: int = 1000
    default_rounds: int = 2

    @classmethod
    def from_config(cls, config: RetryConfig, rounds: int = 2) -> RetryPolicy:
        return cls(
            known_profile_attempts=config.known_profile_attempts,
            attempt_pause_ms=config.attempt_pause_ms,
            profile_attempt_pause_ms=config.profile_attempt_pause_ms,
            profile_pause_ms=config.profile_pause_ms,
            round_pause_ms=config.round_pause_ms,
            default_rounds=rounds,
        )


@dataclass
class ConnectResult:
    port: str
    session: DeviceSession | None = None
    attempts: list[AttemptResult] = field(default_factory=list)
    error: FirmataError | None = None

    @property
    def succeeded(self) -> bool:
        return self.session is not None

    @property
    def profile(self) -> str | None:
        return self.session.profile if self.session else None

    @property
    def version(self) -> FirmwareVersion | None:
        return self.session.firmware_version if self.session else None

    @property
    def last_error(self) -> FirmataError | None:
        for outcome in reversed(self.attempts):
            if outcome.error is not None:
                return outcome.error
        return None

    @property
    def profiles_tried(self) -> list[str]:
        return [outcome.attempt.profile for outcome in self.attempts]


class FirmataClient:
    def __init__(
        self,
        manager: ConnectionManager,
        *,
        policy: RetryPolicy | None = None,
        known_profiles: dict[str, str] | None = None,
    ):
        self.manager = manager
        self.policy = policy or RetryPolicy()
        self._known_profiles: dict[str, str] = dict(known_profiles or {})

    def known_profile(self, port: str) -> str | None:
        return self._known_profiles.get(port)

    def remember(self, port: str, profile: str) -> None:
        self._known_profiles[port] = get_profile(profile).name

    def forget(self, port: str) -> None:
        self._known_profiles.pop(port, None)

    def _pause(self, ms: int) -> None:
        sleep_ms(self.manager.clock, ms)

    def _try_profile(
        self,
        result: ConnectResult,
        profile: str,
        attempts: int,
        pause_ms: int,
    ) -> bool:
        for index in range(1, attempts + 1):
            outcome = self.manager.connect(result.port, profile, attempt_index=index)
            result.attempts.append(outcome)
            if outcome.succeeded:
                result.session = outcome.session
                self.remember(result.port, profile)
                return True
            if isinstance(outcome.error, PortUnavailableError):
                break
            if index < attempts:
                logger.info(
                    "Retrying %s profile on %s (attempt %d/%d)",
                    profile, result.port, index + 1, attempts,
                )
                self._pause(pause_ms)
        return False

    def _exhausted(self, result: ConnectResult, what: str) -> ConnectResult:
        last = result.last_error
        reason = f": last error {last.kind}" if last else ""
        result.error = AttemptsExhaustedError(
            f"Failed to connect to {result.port} after {what}{reason}",
            last_error=last,
        )
        logger.warning(result.error.message)
        return result

    def connect_with_profile(
        self,
        port: str,
        profile: str,
        attempts: int = 1,
        *,
        pause_ms: int | None = None,
    ) -> ConnectResult:
        """Up to ``attempts`` full attempts with one profile."""
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        profile = get_profile(profile).name
        if pause_ms is None:
            pause_ms = self.policy.profile_attempt_pause_ms
        result = ConnectResult(port=port)
        if self._try_profile(result, profile, attempts, pause_ms):
            return result
        return self._exhausted(result, f"{attempts} attempt(s) with {profile} profile")

    def _profile_order(self, preferred_profile: str | None) -> list[str]:
        order = profile_names()
        if preferred_profile:
            hint = preferred_profile.lower()
            match = next((name for name in order if name.lower() in hint), None)
            if match:
                order.remove(match)
                order.insert(0, match)
        return order

    def connect(
        self,
        port: str,
        *,
        rounds: int | None = None,
        preferred_profile: str | None = None,
    ) -> ConnectResult:
        """Connect using the remembered profile, else round-robin every profile."""
        known = self.known_profile(port)
        if known:
            logger.info("Using known successful profile %s for %s", known, port)
            result = ConnectResult(port=port)
            attempts = self.policy.known_profile_attempts
            if self._try_profile(result, known, attempts, self.policy.attempt_pause_ms):
                return result
            return self._exhausted(result, f"{attempts} attempt(s) with known {known} profile")

        rounds = self.policy.default_rounds if rounds is None else rounds
        if rounds < 1:
            raise ValueError("rounds must be at least 1")

        result = ConnectResult(port=port)
        order = self._profile_order(preferred_profile)
        for round_number in range(1, rounds + 1):
            logger.info("Connection round %d/%d on %s", round_number, rounds, port)
            for position, profile in enumerate(order):
                logger.debug("Trying %s profile on %s", profile, port)
                if self._try_profile(result, profile, 1, 0):
                    logger.info("Connected to %s using %s profile", port, profile)
                    return result
                if position < len(order) - 1:
                    self._pause(self.policy.profile_pause_ms)
            if round_number < rounds:
                self._pause(self.policy.round_pause_ms)
        return self._exhausted(result, f"{rounds} round(s)")

    def connect_with_device_type(
        self,
        port: str,
        description: str | None,
        *,
        rounds: int | None = None,
    ) -> ConnectResult:
        """Pick the profile from a device description, else fall back to ``connect``.

        ``rounds`` only applies to the round-robin fallback.
        """
        if self.known_profile(port):
            return self.connect(port)
        resolution = resolve(description)
        if resolution is None:
            logger.debug("No profile rule for %r on %s, trying all profiles", description, port)
            return self.connect(port, rounds=rounds)
        logger.info("%s on %s looks like a %s board", description, port, resolution.profile)
        return self.connect_with_profile(port, resolution.profile, resolution.attempts)
