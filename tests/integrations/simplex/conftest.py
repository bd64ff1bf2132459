from __future__ import annotations

import logging
from pathlib import Path

import pytest
from simplex_fakes import FakeEngine, RecordingFramework, user_payload

from simplex_bridge.integrations.simplex.client import SimplexClient
from simplex_bridge.integrations.simplex.config import SimplexBridgeConfig
from simplex_bridge.integrations.simplex.session import SimplexSession


@pytest.fixture
def engine() -> FakeEngine:
    fake = FakeEngine()
    fake.on("/u", {"type": "activeUser", "user": user_payload(1, "bridge")})
    fake.on("/_contacts", {"type": "contactsList", "contacts": []})
    fake.on("/_groups", {"type": "groupsList", "groups": []})
    return fake


@pytest.fixture
def framework() -> RecordingFramework:
    return RecordingFramework()


@pytest.fixture
def simplex_config(tmp_path: Path) -> SimplexBridgeConfig:
    return SimplexBridgeConfig(root=tmp_path, files_folder=tmp_path / "files")


@pytest.fixture
def make_client(engine: FakeEngine):
    def _make(ws_url: str = "ws://engine.test:5225", **kwargs) -> SimplexClient:
        kwargs.setdefault("logger", logging.getLogger("test.simplex"))
        return SimplexClient(ws_url, connector=engine.connect, **kwargs)

    return _make


@pytest.fixture
def session(
    simplex_config: SimplexBridgeConfig, framework: RecordingFramework
) -> SimplexSession:
    return SimplexSession(
        config=simplex_config,
        framework=framework,
        login_id="1",
        logger=logging.getLogger("test.simplex"),
    )
