"""Named session configurations stored in an INI file.

Each section of `~/.picolog_udp/devices.ini` is one `SessionConfig`; keys are
the dataclass field names, missing keys take their defaults:

[lab-pt104]
channel_config = 0x13
mains_frequency = 50
mac_check = warn

[cm3-bench]
host_ip = 192.168.1.10
handshake_timeout = 2.0
"""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import fields
from pathlib import Path
from typing import Optional

from loguru import logger

from picolog_udp.types import SessionConfig
from picolog_udp.util.defaults import USER_DIR

_FIELD_DEFAULTS = {f.name: f.default for f in fields(SessionConfig)}


def default_config_path() -> Path:
    return USER_DIR.joinpath("devices.ini")


def _read(path: Optional[Path]) -> tuple[ConfigParser, Path]:
    path = default_config_path() if path is None else Path(path)
    parser = ConfigParser()
    if path.exists():
        parser.read(path)
    return parser, path


def _convert(parser: ConfigParser, section: str, key: str):
    default = _FIELD_DEFAULTS[key]
    raw = parser[section][key].strip()
    if key == "handshake_timeout":
        return None if raw.lower() in ("", "none") else float(raw)
    if isinstance(default, bool):
        return parser.getboolean(section, key)
    if isinstance(default, int):
        return int(raw, 0)  # allows 0x13 for channel_config
    if isinstance(default, float):
        return float(raw)
    return raw


def list_session_configs(path: Optional[Path] = None) -> list[str]:
    parser, _ = _read(path)
    return parser.sections()


def load_session_config(name: str, path: Optional[Path] = None) -> SessionConfig:
    """Load and validate the named configuration.

    Raises
    ------
    ValueError
        If the section is missing, has unknown keys or fails validation
    """
    parser, path = _read(path)
    if not parser.has_section(name):
        raise ValueError(f"No configuration named '{name}' in {path}")

    unknown = set(parser[name]) - set(_FIELD_DEFAULTS)
    if unknown:
        raise ValueError(f"Unknown keys in [{name}] of {path}: {sorted(unknown)}")

    try:
        values = {key: _convert(parser, name, key) for key in parser[name]}
    except ValueError as e:
        raise ValueError(f"Bad value in [{name}] of {path}: {e}") from e
    config = SessionConfig.from_dict(values)
    config.validate()
    logger.debug("Loaded session config '{}' from {}: {}", name, path, config)
    return config


def save_session_config(
    name: str, config: SessionConfig, path: Optional[Path] = None
) -> Path:
    """Validate `config` and write it as section `name`, replacing any existing one."""
    config.validate()
    parser, path = _read(path)
    if parser.has_section(name):
        parser.remove_section(name)
    parser.add_section(name)
    for key, value in config.to_dict().items():
        if key == "channel_config":
            value = f"{value:#04x}"
        parser[name][key] = "none" if value is None else str(value)

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w") as f:
        parser.write(f)
    logger.info("Saved session config '{}' to {}", name, path)
    return path
