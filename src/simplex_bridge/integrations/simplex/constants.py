from __future__ import annotations

# Frames may embed base64 media; the engine sends them unchunked.
SIMPLEX_MAX_MESSAGE_BYTES = 100 * 1024 * 1024

DEFAULT_EVENT_QUEUE_SIZE = 64
DEFAULT_RECONNECT_MAX_SECONDS = 150.0
DEFAULT_DIAL_TIMEOUT_SECONDS = 10.0
DEFAULT_ONESHOT_TIMEOUT_SECONDS = 120.0
DEFAULT_MANAGED_READY_ATTEMPTS = 10
DEFAULT_MANAGED_READY_INTERVAL_SECONDS = 0.5
DEFAULT_LINK_PREVIEW_TIMEOUT_SECONDS = 8.0
LINK_PREVIEW_MAX_BYTES = 256 * 1024

CLOSE_REASON_SHUTDOWN = "bridge shutting down"
LOG_PREVIEW_CHARS = 300

CHAT_TYPE_DIRECT = "direct"
CHAT_TYPE_GROUP = "group"
CHAT_REF_PREFIX = {CHAT_TYPE_DIRECT: "@", CHAT_TYPE_GROUP: "#"}

DIRECTION_DIRECT_SND = "directSnd"
DIRECTION_DIRECT_RCV = "directRcv"
DIRECTION_GROUP_SND = "groupSnd"
DIRECTION_GROUP_RCV = "groupRcv"
SENT_DIRECTIONS = frozenset({DIRECTION_DIRECT_SND, DIRECTION_GROUP_SND})

ACTIVE_MEMBER_STATUSES = frozenset({"memActive", "memCreator", "memAdmin"})
ELEVATED_MEMBER_ROLES = frozenset({"admin", "owner"})
ELEVATED_POWER_LEVEL = 50

DIRECT_CHAT_TOPIC = "SimpleX DM"
DELETED_MESSAGE_NOTICE = "[Message deleted]"

# Emoji the engine accepts for reactions, in canonical (no variation selector) form.
SUPPORTED_REACTIONS = ("👍", "👎", "😀", "😂", "😢", "❤", "🚀", "✅")
