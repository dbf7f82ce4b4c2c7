"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so the app layer can build them safely.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple

# Status reactions and auto-react share the same default palette.
LIKE_EMOJIS: Tuple[str, ...] = ("👍", "❤️", "🔥", "👏", "🎉", "🤩", "😍", "⚡", "💯", "✨")
REACT_EMOJIS: Tuple[str, ...] = ("😊", "👍", "❤️", "😂", "🔥", "🙌", "👀", "💯", "✅", "🤝")

DEFAULT_STATUS_READ_MESSAGE = "Your status has been seen."


@dataclass(frozen=True)
class FeatureToggles:
    """On/off switches for the background behaviors."""

    anti_delete: bool = False
    auto_view_status: bool = False
    auto_like_status: bool = False
    auto_react: bool = False
    auto_status_seen: bool = False
    auto_status_reply: bool = False
    send_connect_message: bool = True


@dataclass(frozen=True)
class LifecycleConfig:
    """Timings for the connection supervisor."""

    settle_seconds: float = 3.0
    membership_interval_seconds: float = 600.0
    backoff_base_seconds: float = 1.0
    backoff_factor: float = 2.0
    backoff_ceiling_seconds: float = 60.0


@dataclass(frozen=True)
class AgentConfig:
    """Everything the core needs from configuration."""

    features: FeatureToggles = field(default_factory=FeatureToggles)
    report_recipient: Optional[str] = None
    session_id: Optional[str] = None
    mode: str = "public"
    prefix: str = "."
    status_read_message: str = DEFAULT_STATUS_READ_MESSAGE
    connect_image_url: Optional[str] = None
    inter_attempt_delay_seconds: float = 3.0
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)
