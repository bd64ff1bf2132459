from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from ...core.config import load_root_config
from .constants import (
    DEFAULT_DIAL_TIMEOUT_SECONDS,
    DEFAULT_EVENT_QUEUE_SIZE,
    DEFAULT_LINK_PREVIEW_TIMEOUT_SECONDS,
    DEFAULT_MANAGED_READY_ATTEMPTS,
    DEFAULT_MANAGED_READY_INTERVAL_SECONDS,
    DEFAULT_ONESHOT_TIMEOUT_SECONDS,
    DEFAULT_RECONNECT_MAX_SECONDS,
    SIMPLEX_MAX_MESSAGE_BYTES,
)
from .errors import SimplexConfigError

CONFIG_SECTION = "simplex"
DEFAULT_SIMPLEX_BINARY = "simplex-chat"
DEFAULT_DISPLAYNAME_TEMPLATE = "{display_name} (SimpleX)"
DEFAULT_WS_URL_ENV = "SIMPLEX_BRIDGE_WS_URL"
_DISPLAYNAME_FIELDS = {"display_name": "Alice", "contact_id": "1"}


@dataclass(frozen=True)
class SimplexBridgeConfig:
    root: Path
    simplex_binary: str = DEFAULT_SIMPLEX_BINARY
    files_folder: Optional[Path] = None
    displayname_template: str = DEFAULT_DISPLAYNAME_TEMPLATE
    ws_url_env: str = DEFAULT_WS_URL_ENV
    default_ws_url: Optional[str] = None
    event_queue_size: int = DEFAULT_EVENT_QUEUE_SIZE
    max_message_bytes: int = SIMPLEX_MAX_MESSAGE_BYTES
    reconnect_max_seconds: float = DEFAULT_RECONNECT_MAX_SECONDS
    dial_timeout_seconds: float = DEFAULT_DIAL_TIMEOUT_SECONDS
    oneshot_timeout_seconds: float = DEFAULT_ONESHOT_TIMEOUT_SECONDS
    managed_ready_attempts: int = DEFAULT_MANAGED_READY_ATTEMPTS
    managed_ready_interval_seconds: float = DEFAULT_MANAGED_READY_INTERVAL_SECONDS
    link_previews: bool = True
    link_preview_timeout_seconds: float = DEFAULT_LINK_PREVIEW_TIMEOUT_SECONDS

    @classmethod
    def from_raw(cls, *, root: Path, raw: dict[str, Any]) -> "SimplexBridgeConfig":
        cfg: dict[str, Any] = raw if isinstance(raw, dict) else {}
        simplex_binary = str(cfg.get("simplex_binary") or DEFAULT_SIMPLEX_BINARY).strip()
        if not simplex_binary:
            raise SimplexConfigError("simplex.simplex_binary must be non-empty")

        files_folder: Optional[Path] = None
        files_raw = cfg.get("files_folder")
        if files_raw is not None:
            if not isinstance(files_raw, str):
                raise SimplexConfigError("simplex.files_folder must be a string path")
            if files_raw.strip():
                files_folder = Path(files_raw.strip()).expanduser()
                if not files_folder.is_absolute():
                    files_folder = (root / files_folder).resolve()

        template = cfg.get("displayname_template", DEFAULT_DISPLAYNAME_TEMPLATE)
        if not isinstance(template, str) or not template.strip():
            raise SimplexConfigError("simplex.displayname_template must be a string")
        try:
            template.format(**_DISPLAYNAME_FIELDS)
        except (KeyError, IndexError, ValueError) as exc:
            raise SimplexConfigError(
                f"simplex.displayname_template is invalid: {exc}"
            ) from exc

        ws_url_env = str(cfg.get("ws_url_env", DEFAULT_WS_URL_ENV)).strip()
        if not ws_url_env:
            raise SimplexConfigError("simplex.ws_url_env must be non-empty")
        default_ws_url = os.environ.get(ws_url_env) or None

        return cls(
            root=root,
            simplex_binary=simplex_binary,
            files_folder=files_folder,
            displayname_template=template,
            ws_url_env=ws_url_env,
            default_ws_url=default_ws_url,
            event_queue_size=_parse_positive_int_or_default(
                cfg.get("event_queue_size"),
                default=DEFAULT_EVENT_QUEUE_SIZE,
                key="simplex.event_queue_size",
            ),
            max_message_bytes=max(
                _parse_positive_int_or_default(
                    cfg.get("max_message_bytes"),
                    default=SIMPLEX_MAX_MESSAGE_BYTES,
                    key="simplex.max_message_bytes",
                ),
                SIMPLEX_MAX_MESSAGE_BYTES,
            ),
            reconnect_max_seconds=_parse_positive_float_or_default(
                cfg.get("reconnect_max_seconds"),
                default=DEFAULT_RECONNECT_MAX_SECONDS,
                key="simplex.reconnect_max_seconds",
            ),
            dial_timeout_seconds=_parse_positive_float_or_default(
                cfg.get("dial_timeout_seconds"),
                default=DEFAULT_DIAL_TIMEOUT_SECONDS,
                key="simplex.dial_timeout_seconds",
            ),
            oneshot_timeout_seconds=_parse_positive_float_or_default(
                cfg.get("oneshot_timeout_seconds"),
                default=DEFAULT_ONESHOT_TIMEOUT_SECONDS,
                key="simplex.oneshot_timeout_seconds",
            ),
            managed_ready_attempts=_parse_positive_int_or_default(
                cfg.get("managed_ready_attempts"),
                default=DEFAULT_MANAGED_READY_ATTEMPTS,
                key="simplex.managed_ready_attempts",
            ),
            managed_ready_interval_seconds=_parse_positive_float_or_default(
                cfg.get("managed_ready_interval_seconds"),
                default=DEFAULT_MANAGED_READY_INTERVAL_SECONDS,
                key="simplex.managed_ready_interval_seconds",
            ),
            link_previews=_parse_bool_or_default(
                cfg.get("link_previews"), default=True, key="simplex.link_previews"
            ),
            link_preview_timeout_seconds=_parse_positive_float_or_default(
                cfg.get("link_preview_timeout_seconds"),
                default=DEFAULT_LINK_PREVIEW_TIMEOUT_SECONDS,
                key="simplex.link_preview_timeout_seconds",
            ),
        )

    def format_display_name(self, *, display_name: str, contact_id: str) -> str:
        return self.displayname_template.format(
            display_name=display_name, contact_id=contact_id
        )


def load_simplex_bridge_config(root: Path) -> SimplexBridgeConfig:
    return SimplexBridgeConfig.from_raw(
        root=root, raw=load_root_config(root, section=CONFIG_SECTION)
    )


def _parse_positive_int_or_default(value: Any, *, default: int, key: str) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise SimplexConfigError(f"{key} must be an integer")
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise SimplexConfigError(f"{key} must be an integer") from exc
    if parsed <= 0:
        return default
    return parsed


def _parse_positive_float_or_default(value: Any, *, default: float, key: str) -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        raise SimplexConfigError(f"{key} must be a number")
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise SimplexConfigError(f"{key} must be a number") from exc
    if parsed <= 0:
        return default
    return parsed


def _parse_bool_or_default(value: Any, *, default: bool, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise SimplexConfigError(f"{key} must be a boolean")
