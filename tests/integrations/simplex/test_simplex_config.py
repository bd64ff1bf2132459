from __future__ import annotations

from pathlib import Path

import pytest

from simplex_bridge.core.exceptions import ConfigError
from simplex_bridge.integrations.simplex.config import (
    DEFAULT_DISPLAYNAME_TEMPLATE,
    SimplexBridgeConfig,
    load_simplex_bridge_config,
)
from simplex_bridge.integrations.simplex.constants import SIMPLEX_MAX_MESSAGE_BYTES
from simplex_bridge.integrations.simplex.errors import SimplexConfigError


def test_defaults_when_section_missing(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("SIMPLEX_BRIDGE_WS_URL", "")
    config = load_simplex_bridge_config(tmp_path)
    assert config.simplex_binary == "simplex-chat"
    assert config.files_folder is None
    assert config.displayname_template == DEFAULT_DISPLAYNAME_TEMPLATE
    assert config.default_ws_url is None
    assert config.reconnect_max_seconds == 150.0
    assert config.max_message_bytes == SIMPLEX_MAX_MESSAGE_BYTES
    assert config.link_previews


def test_yaml_override_and_env(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("BRIDGE_TEST_WS", "placeholder")
    monkeypatch.delenv("BRIDGE_TEST_WS")
    (tmp_path / "simplex-bridge.yml").write_text(
        "simplex:\n"
        "  simplex_binary: /opt/simplex/bin/simplex-chat\n"
        "  files_folder: data/files\n"
        "  displayname_template: '{display_name} [{contact_id}]'\n"
        "  ws_url_env: BRIDGE_TEST_WS\n"
        "  reconnect_max_seconds: 30\n"
        "  event_queue_size: 8\n",
        encoding="utf-8",
    )
    (tmp_path / "simplex-bridge.override.yml").write_text(
        "simplex:\n  link_previews: false\n  event_queue_size: 16\n", encoding="utf-8"
    )
    (tmp_path / ".env").write_text("BRIDGE_TEST_WS=ws://127.0.0.1:5225\n", encoding="utf-8")

    config = load_simplex_bridge_config(tmp_path)

    assert config.simplex_binary == "/opt/simplex/bin/simplex-chat"
    assert config.files_folder == (tmp_path / "data" / "files").resolve()
    assert config.format_display_name(display_name="alice", contact_id="7") == "alice [7]"
    assert config.default_ws_url == "ws://127.0.0.1:5225"
    assert config.reconnect_max_seconds == 30.0
    assert config.event_queue_size == 16
    assert not config.link_previews


def test_non_positive_numbers_fall_back_to_defaults(tmp_path: Path) -> None:
    config = SimplexBridgeConfig.from_raw(
        root=tmp_path,
        raw={"reconnect_max_seconds": 0, "event_queue_size": -1, "max_message_bytes": 10},
    )
    assert config.reconnect_max_seconds == 150.0
    assert config.event_queue_size == 64
    assert config.max_message_bytes == SIMPLEX_MAX_MESSAGE_BYTES


@pytest.mark.parametrize(
    "raw",
    [
        {"simplex_binary": "  "},
        {"files_folder": 5},
        {"displayname_template": "{unknown}"},
        {"displayname_template": ""},
        {"ws_url_env": " "},
        {"event_queue_size": "many"},
        {"event_queue_size": True},
        {"dial_timeout_seconds": "soon"},
        {"link_previews": "yes"},
    ],
)
def test_invalid_values_raise_config_error(tmp_path: Path, raw: dict) -> None:
    with pytest.raises(SimplexConfigError):
        SimplexBridgeConfig.from_raw(root=tmp_path, raw=raw)


def test_section_must_be_mapping(tmp_path: Path) -> None:
    (tmp_path / "simplex-bridge.yml").write_text("simplex: [1, 2]\n", encoding="utf-8")
    with pytest.raises(ConfigError) as excinfo:
        load_simplex_bridge_config(tmp_path)
    assert "simplex must be a mapping" in str(excinfo.value)
