"""Friendly board names from serial port metadata."""

from __future__ import annotations

from serial.tools.list_ports import comports

# (token, label), first match wins. Tokens are checked against the
# lower-cased port description plus hardware id.
_BOARD_RULES = [
    ("uno", "Arduino Uno"),
    ("mega", "Arduino Mega"),
    ("leonardo", "Arduino Leonardo"),
    ("nano", "Arduino Nano"),
    ("micro", "Arduino Micro"),
    ("esp32", "ESP32"),
    ("esp8266", "ESP8266"),
    ("ch340", "Arduino-Compatible (CH340)"),
    ("ch341", "Arduino-Compatible (CH341)"),
    ("cp210", "Arduino-Compatible (CP210x)"),
    ("ftdi", "Arduino-Compatible (FTDI)"),
    ("pl2303", "Arduino-Compatible (PL2303)"),
    ("usb serial", "Arduino-Compatible (USB Serial)"),
    ("arduino", "Arduino-Compatible"),
]


def identify_board_type(description: str | None, hwid: str | None) -> str | None:
    """Classify a port by its description and hardware id, or None if unknown."""
    text = f"{description or ''} {hwid or ''}".lower()
    for token, label in _BOARD_RULES:
        if token in text:
            return label
    return None


def describe_port(port: str) -> str | None:
    """Look up a friendly board name for a port device path."""
    for p in comports():
        if p.device == port:
            return identify_board_type(p.description, p.hwid)
    return None
