"""Settings for the output bridge.

Values are layered: built-in defaults, then an optional JSON settings file,
then ``OUTPUT_BRIDGE_*`` environment variables, then command-line flags.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from output_bridge.errors import ConfigError

ENV_PREFIX = "OUTPUT_BRIDGE_"
SETTINGS_FILE = "output_bridge.json"

TERMINATOR_ALIASES = {
    "cr": "\r",
    "lf": "\n",
    "crlf": "\r\n",
    "\\r": "\r",
    "\\n": "\n",
    "\\r\\n": "\r\n",
}


@dataclass(frozen=True)
class BridgeSettings:
    """Runtime configuration for the bridge."""

    upstream_host: str = "127.0.0.1"
    upstream_port: int = 8000
    line_terminator: str = "\r"
    wake_token: str = "\r\n"
    reconnect_delay: float = 2.0
    connect_timeout: float = 5.0
    listen_host: str = "127.0.0.1"
    listen_port: int = 8001
    port_file: Optional[Path] = None
    consumer_queue_size: int = 256
    max_name_length: int = 255
    log_dir: Optional[Path] = None
    log_retention: int = 5
    debug: bool = False

    def with_overrides(self, overrides: Mapping[str, Any]) -> "BridgeSettings":
        """Return a copy with ``overrides`` coerced and applied; unknown keys are ignored."""
        known = {item.name for item in fields(self)}
        values: Dict[str, Any] = {}
        for key, raw in overrides.items():
            if key not in known or raw is None:
                continue
            values[key] = _coerce(key, raw)
        updated = replace(self, **values)
        updated.validate()
        return updated

    def validate(self) -> None:
        for name in ("upstream_port", "listen_port"):
            port = getattr(self, name)
            if not 0 <= port <= 65535:
                raise ConfigError(f"{name} must be between 0 and 65535 (got {port})")
        if self.upstream_port == 0:
            raise ConfigError("upstream_port must not be 0")
        if not self.line_terminator:
            raise ConfigError("line_terminator must not be empty")
        if self.reconnect_delay < 0:
            raise ConfigError("reconnect_delay must not be negative")
        if self.connect_timeout <= 0:
            raise ConfigError("connect_timeout must be positive")
        if self.consumer_queue_size < 1:
            raise ConfigError("consumer_queue_size must be at least 1")
        if self.max_name_length < 1:
            raise ConfigError("max_name_length must be at least 1")


def parse_terminator(value: str) -> str:
    """Accept 'cr', 'lf', 'crlf', escaped forms, or the literal characters."""
    token = value.strip().lower() if value.strip() else value
    return TERMINATOR_ALIASES.get(token, value)


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    token = str(value).strip().lower()
    if token in {"1", "true", "yes", "on"}:
        return True
    if token in {"0", "false", "no", "off", ""}:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _coerce(key: str, value: Any) -> Any:
    try:
        if key in {"upstream_port", "listen_port", "consumer_queue_size", "max_name_length", "log_retention"}:
            if isinstance(value, bool):
                raise ValueError("booleans are not integers")
            return int(value)
        if key in {"reconnect_delay", "connect_timeout"}:
            return float(value)
        if key in {"port_file", "log_dir"}:
            return Path(str(value)).expanduser()
        if key == "debug":
            return _coerce_bool(value)
        if key in {"line_terminator", "wake_token"}:
            return parse_terminator(str(value))
        return str(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {key}: {value!r} ({exc})") from exc


def load_settings_file(path: Path) -> Mapping[str, Any]:
    """Load a JSON settings file, returning {} when it is missing or not an object."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as exc:
        raise ConfigError(f"Cannot read settings file {path}: {exc}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Settings file {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        return {}
    return data


def env_overrides(env: Mapping[str, str]) -> Dict[str, str]:
    """Collect ``OUTPUT_BRIDGE_<FIELD>`` variables as settings overrides."""
    known = {item.name for item in fields(BridgeSettings)}
    overrides: Dict[str, str] = {}
    for key, value in env.items():
        if not key.startswith(ENV_PREFIX):
            continue
        name = key[len(ENV_PREFIX):].lower()
        if name in known:
            overrides[name] = value
    return overrides


def load_settings(
    settings_path: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    cli_overrides: Optional[Mapping[str, Any]] = None,
) -> BridgeSettings:
    settings = BridgeSettings()
    if settings_path is not None:
        settings = settings.with_overrides(load_settings_file(settings_path))
    if env is not None:
        settings = settings.with_overrides(env_overrides(env))
    if cli_overrides:
        settings = settings.with_overrides(cli_overrides)
    settings.validate()
    return settings
