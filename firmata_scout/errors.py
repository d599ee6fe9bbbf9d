"""Error types for firmata-scout."""

from __future__ import annotations


class FirmataError(Exception):
    """Base error with a stable kind name and a CLI exit code."""

    kind = "FirmataError"
    default_exit_code = 1

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.exit_code = self.default_exit_code if exit_code is None else exit_code

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind, "exit_code": self.exit_code}


class UnknownProfileError(FirmataError):
    """Raised when a reset profile name is not registered."""

    kind = "UnknownProfile"


class NotConnectedError(FirmataError):
    """Raised when a command is issued on a closed session."""

    kind = "NotConnected"


class PortUnavailableError(FirmataError):
    """The requested port is not currently enumerable."""

    kind = "PortUnavailable"
    default_exit_code = 2


class TransportOpenError(FirmataError):
    """Driver-level open failure (missing, busy, or access denied).

    Exit codes:
        2: port not found / device disconnected
        3: port busy
        4: permission denied
    """

    kind = "TransportOpenFailed"
    default_exit_code = 2


class TransportIOError(FirmataError):
    """Write or read failure on an open port."""

    kind = "TransportIOFailed"
    default_exit_code = 5


class HandshakeTimeoutError(FirmataError):
    """No version report arrived within the profile's handshake budget."""

    kind = "HandshakeTimeout"
    default_exit_code = 6


class AttemptsExhaustedError(FirmataError):
    """Every attempt, profile and round failed for a port."""

    kind = "AttemptsExhausted"
    default_exit_code = 7

    def __init__(self, message: str, last_error: FirmataError | None = None):
        super().__init__(message)
        self.last_error = last_error

    @property
    def last_error_kind(self) -> str | None:
        return self.last_error.kind if self.last_error else None

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["last_error"] = self.last_error_kind
        return data
