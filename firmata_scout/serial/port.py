"""Serial port utilities for firmata-scout."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import serial
from serial.tools.list_ports import comports

from firmata_scout.config import load_project_config
from firmata_scout.errors import TransportIOError, TransportOpenError
from firmata_scout.profiles import DTR, RTS
from firmata_scout.serial.identity import identify_board_type
from firmata_scout.transport import DEFAULT_BAUD_RATE

logger = logging.getLogger(__name__)


@dataclass
class PortInfo:
    device: str
    description: str
    hwid: str
    board_label: str | None = None


def list_serial_ports() -> list[PortInfo]:
    """List available serial ports with board labels."""
    ports = []
    for p in comports():
        ports.append(PortInfo(
            device=p.device,
            description=p.description,
            hwid=p.hwid,
            board_label=identify_board_type(p.description, p.hwid),
        ))
    return ports


def list_port_names() -> list[str]:
    """Freshly enumerate port device names."""
    return [p.device for p in comports()]


class SerialLink:
    """pyserial-backed Link."""

    def __init__(self, ser: serial.Serial):
        self._ser = ser

    @property
    def port(self) -> str:
        return self._ser.port

    @property
    def is_open(self) -> bool:
        return self._ser.is_open

    def set_control_line(self, name: str, value: bool) -> None:
        try:
            if name == DTR:
                self._ser.dtr = value
            elif name == RTS:
                self._ser.rts = value
            else:
                raise ValueError(f"Unknown control line: {name}")
        except (serial.SerialException, OSError) as e:
            raise TransportIOError(f"Could not set {name} on {self.port}: {e}") from e

    def write(self, data: bytes) -> int:
        try:
            written = self._ser.write(data)
            self._ser.flush()
        except (serial.SerialException, OSError) as e:
            raise TransportIOError(f"Write to {self.port} failed: {e}") from e
        return written if written is not None else len(data)

    def read_available(self) -> bytes:
        try:
            waiting = self._ser.in_waiting
            if not waiting:
                return b""
            return self._ser.read(waiting)
        except (serial.SerialException, OSError) as e:
            raise TransportIOError(f"Read from {self.port} failed: {e}") from e

    def discard_buffers(self) -> None:
        try:
            self._ser.reset_input_buffer()
            self._ser.reset_output_buffer()
        except (serial.SerialException, OSError) as e:
            raise TransportIOError(f"Could not flush {self.port}: {e}") from e

    def close(self) -> None:
        try:
            if self._ser.is_open:
                self._ser.close()
        except (serial.SerialException, OSError) as e:
            logger.warning("Error closing %s: %s", self.port, e)


class SerialTransport:
    """Transport that opens real serial ports through pyserial."""

    def __init__(self, write_timeout: float = 3):
        self.write_timeout = write_timeout

    def open(
        self,
        port: str,
        baud_rate: int = DEFAULT_BAUD_RATE,
        *,
        dtr: bool = True,
        rts: bool = True,
    ) -> SerialLink:
        """Open a serial port with structured error handling.

        Exit codes:
            2: port not found / device disconnected
            3: port busy
            4: permission denied
        """
        ser = serial.Serial()
        ser.port = port
        ser.baudrate = baud_rate
        ser.timeout = 0
        ser.write_timeout = self.write_timeout
        # Applied by pyserial when the port opens.
        ser.dtr = dtr
        ser.rts = rts
        try:
            ser.open()
        except PermissionError as e:
            raise TransportOpenError(str(e), exit_code=4) from e
        except serial.SerialException as e:
            msg = str(e).lower()
            if "busy" in msg or "resource" in msg or "access is denied" in msg:
                raise TransportOpenError(str(e), exit_code=3) from e
            raise TransportOpenError(str(e), exit_code=2) from e
        logger.debug("Opened %s at %d baud (dtr=%s rts=%s)", port, baud_rate, dtr, rts)
        return SerialLink(ser)


def resolve_port_and_baud(
    cli_port: str | None,
    cli_baud: int | None,
    project_dir: Path | str,
) -> tuple[str, int]:
    """Resolve port and baud rate from CLI flags or config.

    Resolution order: CLI flag > firmata.toml > error.
    """
    port = cli_port
    baud = cli_baud

    if port is None or baud is None:
        try:
            config = load_project_config(project_dir)
            if port is None:
                port = config.serial.port
            if baud is None:
                baud = config.serial.baud_rate
        except FileNotFoundError:
            pass

    if port is None:
        import click
        raise click.UsageError(
            "No serial port specified. Use --port or set serial.port in firmata.toml"
        )

    if baud is None:
        baud = DEFAULT_BAUD_RATE

    return port, baud
