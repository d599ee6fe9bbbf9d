"""Tests for serial port utilities."""

from unittest.mock import patch, MagicMock

import pytest
import serial

from firmata_scout.errors import TransportIOError, TransportOpenError
from firmata_scout.serial.identity import describe_port, identify_board_type
from firmata_scout.serial.port import (
    PortInfo,
    SerialLink,
    SerialTransport,
    list_port_names,
    list_serial_ports,
    resolve_port_and_baud,
)


def _port(device, description, hwid):
    p = MagicMock()
    p.device = device
    p.description = description
    p.hwid = hwid
    return p


class TestListSerialPorts:
    @patch("firmata_scout.serial.port.comports")
    def test_list_ports(self, mock_comports):
        mock_comports.return_value = [
            _port("/dev/ttyUSB0", "CP2102 USB to UART Bridge", "USB VID:PID=10C4:EA60"),
            _port("/dev/ttyACM0", "Arduino Uno", "USB VID:PID=2341:0043"),
        ]
        result = list_serial_ports()
        assert len(result) == 2
        assert result[0].device == "/dev/ttyUSB0"
        assert result[0].board_label == "Arduino-Compatible (CP210x)"
        assert result[1].board_label == "Arduino Uno"

    @patch("firmata_scout.serial.port.comports")
    def test_list_ports_empty(self, mock_comports):
        mock_comports.return_value = []
        assert list_serial_ports() == []

    @patch("firmata_scout.serial.port.comports")
    def test_list_port_names(self, mock_comports):
        mock_comports.return_value = [_port("COM3", "USB Serial Device", "USB")]
        assert list_port_names() == ["COM3"]

    def test_port_info_default_label(self):
        assert PortInfo(device="COM3", description="x", hwid="y").board_label is None


class TestIdentity:
    @pytest.mark.parametrize("description,hwid,label", [
        ("Arduino Mega 2560 (COM4)", "", "Arduino Mega"),
        ("Arduino Leonardo", "", "Arduino Leonardo"),
        ("USB-SERIAL CH340", "", "Arduino-Compatible (CH340)"),
        ("n/a", "USB VID:PID=0403:6001 FTDI", "Arduino-Compatible (FTDI)"),
        ("ESP32-S3", "", "ESP32"),
    ])
    def test_identify(self, description, hwid, label):
        assert identify_board_type(description, hwid) == label

    def test_unknown(self):
        assert identify_board_type("Bluetooth modem", "BTHENUM") is None
        assert identify_board_type(None, None) is None

    @patch("firmata_scout.serial.identity.comports")
    def test_describe_port(self, mock_comports):
        mock_comports.return_value = [_port("/dev/ttyACM0", "Arduino Mega 2560", "USB")]
        assert describe_port("/dev/ttyACM0") == "Arduino Mega"
        assert describe_port("/dev/ttyACM9") is None


class TestSerialTransport:
    @patch("firmata_scout.serial.port.serial.Serial")
    def test_open_success(self, mock_serial_class):
        mock_ser = MagicMock()
        mock_serial_class.return_value = mock_ser
        link = SerialTransport().open("/dev/ttyUSB0", 115200, dtr=False, rts=True)
        assert isinstance(link, SerialLink)
        assert mock_ser.port == "/dev/ttyUSB0"
        assert mock_ser.baudrate == 115200
        assert mock_ser.dtr is False
        assert mock_ser.rts is True
        assert mock_ser.timeout == 0
        mock_ser.open.assert_called_once_with()

    @patch("firmata_scout.serial.port.serial.Serial")
    def test_open_not_found(self, mock_serial_class):
        mock_serial_class.return_value.open.side_effect = serial.SerialException("could not open port")
        with pytest.raises(TransportOpenError) as exc_info:
            SerialTransport().open("/dev/nonexistent")
        assert exc_info.value.exit_code == 2

    @patch("firmata_scout.serial.port.serial.Serial")
    def test_open_busy(self, mock_serial_class):
        mock_serial_class.return_value.open.side_effect = serial.SerialException("Device or resource busy")
        with pytest.raises(TransportOpenError) as exc_info:
            SerialTransport().open("/dev/ttyUSB0")
        assert exc_info.value.exit_code == 3

    @patch("firmata_scout.serial.port.serial.Serial")
    def test_open_permission_denied(self, mock_serial_class):
        mock_serial_class.return_value.open.side_effect = PermissionError("Permission denied")
        with pytest.raises(TransportOpenError) as exc_info:
            SerialTransport().open("/dev/ttyUSB0")
        assert exc_info.value.exit_code == 4


class TestSerialLink:
    def test_read_available(self):
        ser = MagicMock()
        ser.in_waiting = 3
        ser.read.return_value = b"\xf9\x02\x05"
        assert SerialLink(ser).read_available() == b"\xf9\x02\x05"
        ser.read.assert_called_once_with(3)

    def test_read_nothing_waiting(self):
        ser = MagicMock()
        ser.in_waiting = 0
        assert SerialLink(ser).read_available() == b""
        ser.read.assert_not_called()

    def test_write(self):
        ser = MagicMock()
        ser.write.return_value = 1
        assert SerialLink(ser).write(b"\xf9") == 1
        ser.flush.assert_called_once_with()

    def test_write_error(self):
        ser = MagicMock()
        ser.write.side_effect = serial.SerialException("device disconnected")
        with pytest.raises(TransportIOError):
            SerialLink(ser).write(b"\xf9")

    def test_control_lines(self):
        ser = MagicMock()
        link = SerialLink(ser)
        link.set_control_line("dtr", True)
        link.set_control_line("rts", False)
        assert ser.dtr is True
        assert ser.rts is False

    def test_discard_buffers(self):
        ser = MagicMock()
        SerialLink(ser).discard_buffers()
        ser.reset_input_buffer.assert_called_once_with()
        ser.reset_output_buffer.assert_called_once_with()

    def test_close_is_idempotent(self):
        ser = MagicMock()
        ser.is_open = False
        SerialLink(ser).close()
        ser.close.assert_not_called()

    def test_close_never_raises(self):
        ser = MagicMock()
        ser.is_open = True
        ser.close.side_effect = OSError("gone")
        SerialLink(ser).close()


class TestResolvePortAndBaud:
    def test_resolve_from_cli_flags(self, tmp_path):
        port, baud = resolve_port_and_baud("/dev/ttyUSB0", 9600, tmp_path)
        assert port == "/dev/ttyUSB0"
        assert baud == 9600

    def test_resolve_from_config(self, tmp_path):
        toml = tmp_path / "firmata.toml"
        toml.write_text('[serial]\nport = "/dev/ttyACM0"\nbaud_rate = 57600\n')
        port, baud = resolve_port_and_baud(None, None, tmp_path)
        assert port == "/dev/ttyACM0"
        assert baud == 57600

    def test_cli_overrides_config(self, tmp_path):
        toml = tmp_path / "firmata.toml"
        toml.write_text('[serial]\nport = "/dev/ttyACM0"\nbaud_rate = 9600\n')
        port, baud = resolve_port_and_baud("/dev/ttyUSB0", 115200, tmp_path)
        assert port == "/dev/ttyUSB0"
        assert baud == 115200

    def test_default_baud(self, tmp_path):
        port, baud = resolve_port_and_baud("/dev/ttyUSB0", None, tmp_path)
        assert baud == 115200

    def test_missing_port_raises(self, tmp_path):
        toml = tmp_path / "firmata.toml"
        toml.write_text('[serial]\nbaud_rate = 9600\n')
        with pytest.raises(Exception):
            resolve_port_and_baud(None, None, tmp_path)

    def test_missing_config_file_raises(self, tmp_path):
        with pytest.raises(Exception):
            resolve_port_and_baud(None, None, tmp_path)
