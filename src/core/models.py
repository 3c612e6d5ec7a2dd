"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types. Adapters normalize collaborator
responses into these shapes before anything reaches the core.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Message:
    """A single channel message as seen by the monitoring pipeline."""

    id: str
    channel_id: str
    author_id: str
    text: str
    created_at: datetime
    author_name: Optional[str] = None
    system: bool = False


@dataclass(frozen=True)
class Channel:
    """Minimal channel description returned by the workspace client."""

    id: str
    name: str
    type: str


@dataclass(frozen=True)
class UserProfile:
    """Minimal user description returned by the workspace client."""

    id: str
    username: str
    display_name: str = ""
    roles: tuple[str, ...] = ()
    is_bot: bool = False


@dataclass(frozen=True)
class ClassificationResult:
    """Matches found in one channel during one cycle."""

    channel_id: str
    channel_name: str
    messages: tuple[Message, ...]
    topics: tuple[str, ...]


@dataclass(frozen=True)
class NotificationTarget:
    """Where alerts go, resolved once at startup."""

    recipient_user_id: str
    recipient_name: str
    delivery_channel_id: str


@dataclass
class MonitorState:
    """Durable processed-message ledger."""

    last_run: datetime
    processed_ids: dict[str, set[str]] = field(default_factory=dict)


# Per-channel outcome statuses.
MATCHED = "matched"
NO_MATCHES = "no_matches"
NO_NEW_MESSAGES = "no_new_messages"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass(frozen=True)
class ChannelOutcome:
    """Explicit success-or-failure result for one channel in one cycle."""

    channel_name: str
    status: str
    considered: int = 0
    result: Optional[ClassificationResult] = None
    error: Optional[str] = None
    notified: bool = False

    @property
    def ok(self) -> bool:
        return self.status != FAILED and self.error is None


@dataclass
class CycleReport:
    """Aggregated outcomes of one monitoring cycle."""

    started_at: datetime
    first_run: bool
    outcomes: list[ChannelOutcome] = field(default_factory=list)
    state_saved: bool = False
    # Set when the cycle never reached the channels.
    skip_reason: Optional[str] = None

    @property
    def results(self) -> list[ClassificationResult]:
        return [outcome.result for outcome in self.outcomes if outcome.result is not None]

    @property
    def failures(self) -> list[ChannelOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    @property
    def notifications_sent(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.notified)
