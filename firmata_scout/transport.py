"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol

DEFAULT_BAUD_RATE = 115200


class Link(Protocol):
    """An open byte channel to one port."""

    def set_control_line(self, name: str, value: bool) -> None:
        """Drive DTR or RTS."""

    def write(self, data: bytes) -> int:
        """Write bytes, raising TransportIOError on failure."""

    def read_available(self) -> bytes:
        """Return whatever is buffered without blocking (may be empty)."""

    def discard_buffers(self) -> None:
        """Drop pending input and output bytes."""

    def close(self) -> None:
        """Close the port. Idempotent, never raises."""


class Transport(Protocol):
    def open(
        self,
        port: str,
        baud_rate: int = DEFAULT_BAUD_RATE,
        *,
        dtr: bool = True,
        rts: bool = True,
    ) -> Link:
        """Open a port with the given initial control-line state.

        Raises TransportOpenError if the driver refuses.
        """
