from __future__ import annotations

import json
import logging

import pytest

from simplex_bridge.core.exceptions import PermanentError, TransientError
from simplex_bridge.core.logging_utils import log_event, sanitize_log_value
from simplex_bridge.core.retry import retry_transient


def _payloads(caplog: pytest.LogCaptureFixture) -> list[dict]:
    return [json.loads(record.getMessage()) for record in caplog.records]


def test_log_event_emits_json_with_redaction(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("test.core.logging")
    with caplog.at_level(logging.INFO, logger="test.core.logging"):
        log_event(
            logger,
            logging.INFO,
            "bridge.connected",
            ws_url="ws://127.0.0.1:5225",
            auth_token="abc",
            extra={"password": "p", "count": 2},
        )
    (payload,) = _payloads(caplog)
    assert payload == {
        "event": "bridge.connected",
        "ws_url": "ws://127.0.0.1:5225",
        "auth_token": "<redacted>",
        "extra": {"password": "<redacted>", "count": 2},
    }


def test_log_event_skips_disabled_levels(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("test.core.logging.quiet")
    with caplog.at_level(logging.WARNING, logger="test.core.logging.quiet"):
        log_event(logger, logging.DEBUG, "noise")
    assert caplog.records == []


def test_log_event_records_error_details(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("test.core.logging.errors")
    with caplog.at_level(logging.WARNING, logger="test.core.logging.errors"):
        log_event(logger, logging.WARNING, "send.failed", exc=ValueError("boom"))
    (payload,) = _payloads(caplog)
    assert payload["error"] == "ValueError: boom"
    assert payload["error_type"] == "ValueError"


def test_sanitize_omits_data_uris_and_truncates() -> None:
    uri = "data:image/jpg;base64," + "A" * 64
    assert sanitize_log_value(f"thumb={uri}") == "thumb=data:<omitted>"
    assert sanitize_log_value("x" * 10, limit=4) == "xxxx...(+6 chars)"
    assert sanitize_log_value(b"bytes") == "bytes"
    assert sanitize_log_value((1, None)) == [1, None]


@pytest.mark.anyio
async def test_retry_transient_retries_until_success() -> None:
    calls = []

    @retry_transient(max_attempts=3, fixed_wait=0)
    async def flaky() -> str:
        calls.append(1)
        if len(calls) < 3:
            raise TransientError("try again")
        return "ok"

    assert await flaky() == "ok"
    assert len(calls) == 3


@pytest.mark.anyio
async def test_retry_transient_reraises_last_error() -> None:
    calls = []

    @retry_transient(max_attempts=2, fixed_wait=0)
    async def always_down() -> None:
        calls.append(1)
        raise TransientError(f"down {len(calls)}")

    with pytest.raises(TransientError, match="down 2"):
        await always_down()


@pytest.mark.anyio
async def test_retry_transient_does_not_retry_permanent_errors() -> None:
    calls = []

    @retry_transient(max_attempts=5, fixed_wait=0)
    async def broken() -> None:
        calls.append(1)
        raise PermanentError("no")

    with pytest.raises(PermanentError):
        await broken()
    assert len(calls) == 1
