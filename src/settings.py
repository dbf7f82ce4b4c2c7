"""Static configuration for warden.

User-editable settings (features, membership targets, logging, plugins) live
in a single JSON file for quick edits without touching Python. Secrets and
deployment overrides come from the environment via python-dotenv.
"""

import json
import os

from dotenv import load_dotenv

from core.config import DEFAULT_STATUS_READ_MESSAGE, AgentConfig, FeatureToggles, LifecycleConfig
from core.membership import build_targets

load_dotenv()

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

CONFIG_NAME = "config.json"

USER_JID_SUFFIX = "@s.whatsapp.net"


def resolve_config_path() -> str:
    """WARDEN_CONFIG wins, then the checkout's config.json, then the working directory's.

    An installed (non-editable) package has no config.json next to it, so the
    working directory is the usual place in that case.
    """

    explicit = os.getenv("WARDEN_CONFIG")
    if explicit:
        return os.path.abspath(explicit)
    bundled = os.path.join(PROJECT_ROOT, CONFIG_NAME)
    if os.path.exists(bundled):
        return bundled
    return os.path.join(os.getcwd(), CONFIG_NAME)


CONFIG_PATH = resolve_config_path()

# Relative paths in config.json (session_dir, log file) are resolved from here.
CONFIG_DIR = os.path.dirname(CONFIG_PATH)


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def normalize_recipient(value) -> "str | None":
    """Accept a full id or a bare phone number for the report recipient."""

    if not value:
        return None
    value = str(value).strip()
    if "@" in value:
        return value
    digits = "".join(ch for ch in value if ch.isdigit())
    if not digits:
        return None
    return f"{digits}{USER_JID_SUFFIX}"


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Feature switches. Membership checks have no switch: they always run.
_features = _CONFIG.get("features", {})
FEATURES = FeatureToggles(
    anti_delete=bool(_features.get("anti_delete", False)),
    auto_view_status=bool(_features.get("auto_view_status", False)),
    auto_like_status=bool(_features.get("auto_like_status", False)),
    auto_react=bool(_features.get("auto_react", False)),
    auto_status_seen=bool(_features.get("auto_status_seen", False)),
    auto_status_reply=bool(_features.get("auto_status_reply", False)),
    send_connect_message=bool(_features.get("send_connect_message", True)),
)

# The environment wins so the recipient can be set per deployment.
REPORT_RECIPIENT = normalize_recipient(os.getenv("REPORT_RECIPIENT") or _CONFIG.get("report_recipient"))

MODE = str(_CONFIG.get("mode", "public")).lower()
if MODE not in {"public", "private"}:
    raise RuntimeError("mode must be 'public' or 'private'")

PREFIX = _CONFIG.get("prefix", ".")
STATUS_READ_MESSAGE = _CONFIG.get("status_read_message") or DEFAULT_STATUS_READ_MESSAGE
CONNECT_IMAGE_URL = _CONFIG.get("connect_image_url")

# Session id is a secret: keep it in .env, never in config.json.
SESSION_ID = os.getenv("SESSION_ID")

# Credentials live in one file inside the session directory.
_session_dir = _CONFIG.get("session_dir", "session")
if not os.path.isabs(_session_dir):
    _session_dir = os.path.join(CONFIG_DIR, _session_dir)
SESSION_DIR = _session_dir
CREDENTIALS_PATH = os.path.join(SESSION_DIR, "creds.json")

# Membership targets are fixed for the process lifetime.
_membership = _CONFIG.get("membership", {})
_extra_links = _membership.get("extra_links", [])
if isinstance(_extra_links, str):
    _extra_links = [link.strip() for link in _extra_links.split(",")]
MEMBERSHIP_TARGETS = build_targets(_membership.get("required", []), _extra_links)
MEMBERSHIP_INTERVAL_SECONDS = float(_membership.get("interval_seconds", 600))
INTER_ATTEMPT_DELAY_SECONDS = float(_membership.get("inter_attempt_delay_seconds", 3))

_reconnect = _CONFIG.get("reconnect", {})
LIFECYCLE = LifecycleConfig(
    settle_seconds=float(_reconnect.get("settle_seconds", 3)),
    membership_interval_seconds=MEMBERSHIP_INTERVAL_SECONDS,
    backoff_base_seconds=float(_reconnect.get("backoff_base_seconds", 1)),
    backoff_factor=float(_reconnect.get("backoff_factor", 2)),
    backoff_ceiling_seconds=float(_reconnect.get("backoff_ceiling_seconds", 60)),
)

AGENT = AgentConfig(
    features=FEATURES,
    report_recipient=REPORT_RECIPIENT,
    session_id=SESSION_ID,
    mode=MODE,
    prefix=PREFIX,
    status_read_message=STATUS_READ_MESSAGE,
    connect_image_url=CONNECT_IMAGE_URL,
    inter_attempt_delay_seconds=INTER_ATTEMPT_DELAY_SECONDS,
    lifecycle=LIFECYCLE,
)

# Status page. PORT follows the usual hosting-platform convention.
_server = _CONFIG.get("server", {})
SERVER_ENABLED = bool(_server.get("enabled", True))
SERVER_HOST = _server.get("host", "0.0.0.0")
SERVER_PORT = int(os.getenv("PORT") or _server.get("port", 3000))

# Import paths ("module:attribute") for the protocol engine and collaborators.
ENGINE = os.getenv("ENGINE") or _CONFIG.get("engine")
PLUGINS = _CONFIG.get("plugins", {})

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
