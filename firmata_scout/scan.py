"""Sequential probing of serial ports for Firmata devices."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable

from firmata_scout.client import ConnectResult, FirmataClient
from firmata_scout.clock import sleep_ms
from firmata_scout.errors import FirmataError

logger = logging.getLogger(__name__)

DEFAULT_CONSOLE_PORTS = ("COM1", "/dev/ttyS0")
# Pause after each port so one board's reset settles before the next opens.
PORT_PAUSE_MS = 500


@dataclass
class ScanResult:
    port: str
    succeeded: bool
    version: str = ""
    profile: str = ""
    device_type: str | None = None
    error_kind: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "port": self.port,
            "succeeded": self.succeeded,
            "version": self.version,
            "profile": self.profile,
            "device_type": self.device_type,
            "error_kind": self.error_kind,
            "error": self.error,
        }


@dataclass
class ScanReport:
    results: list[ScanResult] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    def firmata_devices(self) -> list[ScanResult]:
        return [r for r in self.results if r.succeeded]

    def to_dict(self) -> dict:
        return {
            "results": [r.to_dict() for r in self.results],
            "skipped": self.skipped,
        }


def filter_ports(
    ports: Iterable[str],
    *,
    include_console_port: bool = False,
    console_ports: Iterable[str] = DEFAULT_CONSOLE_PORTS,
) -> tuple[list[str], list[str]]:
    """Sort ports and split off console-only ports. Returns (to_scan, skipped)."""
    console = {p.lower() for p in console_ports}
    to_scan: list[str] = []
    skipped: list[str] = []
    for port in sorted(set(ports)):
        if not include_console_port and port.lower() in console:
            skipped.append(port)
        else:
            to_scan.append(port)
    return to_scan, skipped


def _record(port: str, outcome: ConnectResult, device_type: str | None) -> ScanResult:
    if outcome.succeeded:
        return ScanResult(
            port=port,
            succeeded=True,
            version=str(outcome.version) if outcome.version else "",
            profile=outcome.profile or "",
            device_type=device_type,
        )
    last = outcome.last_error
    return ScanResult(
        port=port,
        succeeded=False,
        device_type=device_type,
        error_kind=last.kind if last else (outcome.error.kind if outcome.error else None),
        error=outcome.error.message if outcome.error else None,
    )


def _describe(describe: Callable[[str], str | None] | None, port: str) -> str | None:
    if describe is None:
        return None
    try:
        return describe(port)
    except Exception as e:
        logger.debug("Device lookup failed for %s: %s", port, e)
        return None


def scan_ports(
    client: FirmataClient,
    ports: Iterable[str] | None = None,
    *,
    list_ports: Callable[[], Iterable[str]] | None = None,
    describe: Callable[[str], str | None] | None = None,
    include_console_port: bool = False,
    console_ports: Iterable[str] = DEFAULT_CONSOLE_PORTS,
    rounds: int = 2,
    output_callback: Callable[[str], None] | None = None,
) -> ScanReport:
    """Probe each candidate port in turn and record which ones speak Firmata.

    Ports come from ``ports`` or, when omitted, a fresh ``list_ports()``.
    Sessions opened during the scan are closed before the next port; the
    working profile stays remembered in ``client``.
    """
    report_line = output_callback or (lambda message: None)
    if ports is None:
        if list_ports is None:
            raise ValueError("Either ports or list_ports is required")
        ports = list_ports()

    to_scan, skipped = filter_ports(
        ports, include_console_port=include_console_port, console_ports=console_ports,
    )
    report = ScanReport(skipped=skipped)
    for port in skipped:
        report_line(f"Note: {port} is skipped by default (console port)")

    for port in to_scan:
        report_line(f"Testing {port}...")
        device_type = _describe(describe, port)
        try:
            if device_type:
                outcome = client.connect_with_device_type(port, device_type, rounds=rounds)
            else:
                outcome = client.connect(port, rounds=rounds)
        except FirmataError as e:
            logger.warning("Error testing %s: %s", port, e.message)
            report.results.append(ScanResult(
                port=port, succeeded=False, device_type=device_type,
                error_kind=e.kind, error=e.message,
            ))
        else:
            if outcome.session is not None:
                outcome.session.close()
            result = _record(port, outcome, device_type)
            report.results.append(result)
            if result.succeeded:
                report_line(f"  Firmata v{result.version} detected ({result.profile} profile)")
            else:
                report_line("  No Firmata device found")
        sleep_ms(client.manager.clock, PORT_PAUSE_MS)

    return report
