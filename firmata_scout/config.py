"""Project configuration for firmata-scout."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib
except ImportError:
    try:
        import tomli as tomllib  # type: ignore[no-redef]
    except ImportError:
        tomllib = None  # type: ignore[assignment]

CONFIG_FILENAME = "firmata.toml"

# Keys whose value is a TOML array; the CLI passes them comma-separated.
LIST_KEYS = frozenset({"scan.console_ports"})


@dataclass
class SerialConfig:
    port: str | None = None
    baud_rate: int = 115200


@dataclass
class ScanConfig:
    rounds: int = 2
    include_console_port: bool = False
    console_ports: list[str] = field(default_factory=lambda: ["COM1", "/dev/ttyS0"])


@dataclass
class RetryConfig:
    known_profile_attempts: int = 3
    attempt_pause_ms: int = 800
    profile_attempt_pause_ms: int = 1000
    profile_pause_ms: int = 500
    round_pause_ms: int = 1000


@dataclass
class ProjectConfig:
    serial: SerialConfig = field(default_factory=SerialConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)


def _read_toml(toml_path: Path) -> dict:
    if tomllib is None:
        raise ImportError("No TOML parser available (need Python 3.11+ or tomli)")
    with open(toml_path, "rb") as f:
        return tomllib.load(f)


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _as_list(key: str, value) -> list[str]:
    if isinstance(value, str):
        return _split_list(value)
    if not isinstance(value, list):
        raise ValueError(f"{key} must be a list of strings, got: {value!r}")
    return [str(item) for item in value]


def load_project_config(project_dir: Path | str) -> ProjectConfig:
    """Parse firmata.toml and return a typed ProjectConfig."""
    project_dir = Path(project_dir)
    toml_path = project_dir / CONFIG_FILENAME
    if not toml_path.exists():
        raise FileNotFoundError(f"{CONFIG_FILENAME} not found in {project_dir}")

    data = _read_toml(toml_path)

    serial_data = data.get("serial", {})
    scan_data = data.get("scan", {})
    retry_data = data.get("retry", {})

    serial = SerialConfig(
        port=serial_data.get("port"),
        baud_rate=serial_data.get("baud_rate", 115200),
    )
    scan = ScanConfig(
        rounds=scan_data.get("rounds", 2),
        include_console_port=scan_data.get("include_console_port", False),
        console_ports=_as_list(
            "scan.console_ports", scan_data.get("console_ports", ScanConfig().console_ports),
        ),
    )
    retry_defaults = RetryConfig()
    retry = RetryConfig(**{
        name: retry_data.get(name, getattr(retry_defaults, name))
        for name in retry_defaults.__dataclass_fields__
    })

    return ProjectConfig(serial=serial, scan=scan, retry=retry)


def load_project_config_or_default(project_dir: Path | str) -> ProjectConfig:
    try:
        return load_project_config(project_dir)
    except FileNotFoundError:
        return ProjectConfig()


def get_config_value(project_dir: Path | str, key: str):
    """Dotted key lookup, e.g. 'serial.port', 'scan.rounds'."""
    project_dir = Path(project_dir)
    toml_path = project_dir / CONFIG_FILENAME
    if not toml_path.exists() or tomllib is None:
        return None

    data = _read_toml(toml_path)

    parts = key.split(".", 1)
    if len(parts) == 2:
        section, k = parts
        return data.get(section, {}).get(k)
    return data.get(key)


def _format_value(value) -> str:
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_format_value(item) for item in value) + "]"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    return f'"{value}"'


def set_config_value(project_dir: Path | str, key: str, value) -> None:
    """Write a value to firmata.toml using line-based editing."""
    project_dir = Path(project_dir)
    toml_path = project_dir / CONFIG_FILENAME

    # Coerce list, integer-like and boolean strings
    if key in LIST_KEYS and isinstance(value, str):
        value = _split_list(value)
    elif isinstance(value, str):
        if value.lower() in ("true", "false"):
            value = value.lower() == "true"
        else:
            try:
                value = int(value)
            except ValueError:
                pass

    parts = key.split(".", 1)
    if len(parts) != 2:
        raise ValueError(f"Key must be dotted (section.key), got: {key}")
    section, k = parts
    val_str = _format_value(value)

    if toml_path.exists():
        lines = toml_path.read_text().splitlines(keepends=True)
    else:
        lines = []

    section_header = f"[{section}]"
    section_idx = None
    key_idx = None
    next_section_idx = None

    for i, line in enumerate(lines):
        stripped = line.strip()
        if stripped == section_header:
            section_idx = i
        elif section_idx is not None and next_section_idx is None:
            if stripped.startswith("[") and stripped.endswith("]"):
                next_section_idx = i
            elif re.match(rf"^{re.escape(k)}\s*=", stripped):
                key_idx = i

    if key_idx is not None:
        lines[key_idx] = f"{k} = {val_str}\n"
    elif section_idx is not None:
        insert_at = next_section_idx if next_section_idx is not None else len(lines)
        if insert_at == len(lines) and lines and not lines[-1].endswith("\n"):
            lines[-1] += "\n"
        lines.insert(insert_at, f"{k} = {val_str}\n")
    else:
        if lines and not lines[-1].endswith("\n"):
            lines.append("\n")
        if lines:
            lines.append("\n")
        lines.append(f"{section_header}\n")
        lines.append(f"{k} = {val_str}\n")

    toml_path.write_text("".join(lines))


def list_config(project_dir: Path | str) -> dict:
    """Return a flat dotted-key dict of all config values."""
    project_dir = Path(project_dir)
    toml_path = project_dir / CONFIG_FILENAME
    if not toml_path.exists() or tomllib is None:
        return {}

    data = _read_toml(toml_path)

    result = {}
    for section, values in data.items():
        if isinstance(values, dict):
            for k, v in values.items():
                result[f"{section}.{k}"] = v
        else:
            result[section] = values
    return result
