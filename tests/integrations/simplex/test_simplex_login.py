from __future__ import annotations

from dataclasses import replace

import pytest
from simplex_fakes import FakeEngine, FakeProcess, FakeSpawner, RecordingFramework

from simplex_bridge.integrations.simplex.errors import SimplexConnectionError
from simplex_bridge.integrations.simplex.login import (
    LoginInputError,
    managed_login,
    websocket_login,
)
from simplex_bridge.integrations.simplex.managed import (
    ManagedProcessError,
    ManagedSimplexProcess,
    find_free_port,
)


@pytest.fixture
def fast_config(simplex_config):
    return replace(
        simplex_config, managed_ready_attempts=3, managed_ready_interval_seconds=0.01
    )


@pytest.mark.anyio
async def test_websocket_login_verifies_engine_and_saves_login(
    engine: FakeEngine, framework: RecordingFramework, simplex_config, make_client
) -> None:
    result = await websocket_login(
        framework, simplex_config, " ws://engine.test:5225 ", client_factory=make_client
    )

    assert result.login_id == "1"
    assert result.remote_name == "bridge"
    assert result.metadata.ws_url == "ws://engine.test:5225"
    assert not result.metadata.managed
    assert result.instructions == "Successfully logged in as bridge (user ID 1)"
    assert framework.saved["1"].ws_url == "ws://engine.test:5225"
    assert engine.socket.commands == ["/u"]
    assert engine.socket.closed


@pytest.mark.anyio
@pytest.mark.parametrize("ws_url", ["", "   ", "http://engine.test", "localhost:5225"])
async def test_websocket_login_rejects_bad_urls(
    ws_url: str,
    engine: FakeEngine,
    framework: RecordingFramework,
    simplex_config,
    make_client,
) -> None:
    with pytest.raises(LoginInputError):
        await websocket_login(framework, simplex_config, ws_url, client_factory=make_client)
    assert engine.dials == []
    assert framework.saved == {}


@pytest.mark.anyio
async def test_websocket_login_unreachable_engine(
    engine: FakeEngine, framework: RecordingFramework, simplex_config, make_client
) -> None:
    engine.fail_dials = 1
    with pytest.raises(SimplexConnectionError):
        await websocket_login(
            framework, simplex_config, "ws://engine.test:5225", client_factory=make_client
        )
    assert framework.saved == {}


@pytest.mark.anyio
async def test_managed_login_waits_for_process_then_saves_login(
    engine: FakeEngine, framework: RecordingFramework, fast_config, make_client, tmp_path
) -> None:
    spawner = FakeSpawner()
    engine.fail_dials = 2
    db_path = tmp_path / "db" / "simplex"

    result = await managed_login(
        framework,
        fast_config,
        db_path,
        client_factory=make_client,
        spawner=spawner,
        port=5226,
    )

    ((args, kwargs),) = spawner.calls
    assert args == ("simplex-chat", "-p", "5226", "-d", str(db_path))
    assert kwargs["start_new_session"] is True
    assert engine.dials == ["ws://localhost:5226"] * 3
    assert result.metadata.managed
    assert result.metadata.ws_url == "ws://localhost:5226"
    assert result.metadata.db_path == str(db_path)
    assert framework.saved["1"].managed
    assert result.process is not None and result.process.is_running
    assert result.instructions.startswith("Successfully started managed simplex-chat for")
    assert engine.socket.closed


@pytest.mark.anyio
async def test_managed_login_stops_process_when_engine_never_answers(
    engine: FakeEngine, framework: RecordingFramework, fast_config, make_client, tmp_path
) -> None:
    spawner = FakeSpawner()
    engine.fail_dials = 100

    with pytest.raises(SimplexConnectionError):
        await managed_login(
            framework,
            fast_config,
            tmp_path / "db",
            client_factory=make_client,
            spawner=spawner,
            port=5226,
        )

    assert len(engine.dials) == 3
    assert spawner.process.terminated
    assert framework.saved == {}


@pytest.mark.anyio
async def test_managed_login_fails_fast_when_process_exits(
    engine: FakeEngine, framework: RecordingFramework, fast_config, make_client, tmp_path
) -> None:
    spawner = FakeSpawner(FakeProcess(returncode=1))

    with pytest.raises(ManagedProcessError):
        await managed_login(
            framework,
            fast_config,
            tmp_path / "db",
            client_factory=make_client,
            spawner=spawner,
            port=5226,
        )
    assert engine.dials == []


@pytest.mark.anyio
async def test_managed_login_reports_missing_binary(
    framework: RecordingFramework, fast_config, make_client, tmp_path
) -> None:
    spawner = FakeSpawner(error=FileNotFoundError("simplex-chat"))
    with pytest.raises(ManagedProcessError) as excinfo:
        await managed_login(
            framework,
            fast_config,
            tmp_path / "db",
            client_factory=make_client,
            spawner=spawner,
            port=5226,
        )
    assert "simplex_binary" in excinfo.value.user_message


@pytest.mark.anyio
async def test_managed_login_requires_db_path(
    framework: RecordingFramework, fast_config, make_client
) -> None:
    with pytest.raises(LoginInputError):
        await managed_login(framework, fast_config, "", client_factory=make_client)


@pytest.mark.anyio
async def test_stop_kills_process_that_ignores_terminate() -> None:
    spawner = FakeSpawner(FakeProcess(exits_on_terminate=False))
    process = ManagedSimplexProcess(
        binary="simplex-chat", db_path="/tmp/db", port=5300, spawner=spawner
    )
    await process.start()
    assert process.is_running

    await process.stop(timeout=0.01)

    assert spawner.process.terminated
    assert spawner.process.killed
    assert not process.is_running
    # A second stop is a no-op.
    await process.stop()


def test_find_free_port_returns_bindable_port() -> None:
    port = find_free_port()
    assert 0 < port < 65536
    process = ManagedSimplexProcess(binary="simplex-chat", db_path="db")
    assert process.ws_url == f"ws://localhost:{process.port}"
