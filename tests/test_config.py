from __future__ import annotations

import json
from pathlib import Path

import pytest

from output_bridge.config import BridgeSettings, env_overrides, load_settings, parse_terminator
from output_bridge.errors import ConfigError


def test_defaults_match_producer_conventions():
    settings = load_settings()
    assert settings.upstream_host == "127.0.0.1"
    assert settings.upstream_port == 8000
    assert settings.line_terminator == "\r"
    assert settings.wake_token == "\r\n"
    assert settings.reconnect_delay == 2.0


@pytest.mark.parametrize(
    "value, expected",
    [("cr", "\r"), ("LF", "\n"), ("crlf", "\r\n"), ("\\n", "\n"), ("\r", "\r"), ("\n", "\n"), (";", ";")],
)
def test_parse_terminator(value, expected):
    assert parse_terminator(value) == expected


def test_layering_file_then_env_then_cli(tmp_path: Path):
    settings_file = tmp_path / "output_bridge.json"
    settings_file.write_text(
        json.dumps({"upstream_port": 9000, "listen_port": 9100, "line_terminator": "lf", "unknown": 1}),
        encoding="utf-8",
    )
    env = {"OUTPUT_BRIDGE_LISTEN_PORT": "9200", "OUTPUT_BRIDGE_DEBUG": "yes", "UNRELATED": "x"}

    settings = load_settings(settings_file, env, {"upstream_host": "10.0.0.5"})

    assert settings.upstream_port == 9000
    assert settings.listen_port == 9200
    assert settings.line_terminator == "\n"
    assert settings.debug is True
    assert settings.upstream_host == "10.0.0.5"


def test_missing_settings_file_uses_defaults(tmp_path: Path):
    assert load_settings(tmp_path / "absent.json") == BridgeSettings()


def test_invalid_json_raises_config_error(tmp_path: Path):
    settings_file = tmp_path / "output_bridge.json"
    settings_file.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_settings(settings_file)


@pytest.mark.parametrize(
    "overrides",
    [
        {"upstream_port": "eighty"},
        {"upstream_port": 70000},
        {"upstream_port": 0},
        {"reconnect_delay": -1},
        {"consumer_queue_size": 0},
        {"debug": "maybe"},
        {"listen_port": True},
    ],
)
def test_invalid_values_raise_config_error(overrides):
    with pytest.raises(ConfigError):
        load_settings(cli_overrides=overrides)


def test_env_overrides_only_reads_prefixed_known_keys():
    env = {"OUTPUT_BRIDGE_UPSTREAM_HOST": "host", "OUTPUT_BRIDGE_NOPE": "1", "HOME": "/root"}
    assert env_overrides(env) == {"upstream_host": "host"}


def test_paths_are_expanded():
    settings = load_settings(cli_overrides={"port_file": "~/bridge_port.json"})
    assert settings.port_file == Path("~/bridge_port.json").expanduser()
