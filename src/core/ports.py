"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for the workspace, classification backend,
state ledger and notification adapters so that the core can be reused with
different backends.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from core.models import Channel, ClassificationResult, Message, NotificationTarget, UserProfile


class WorkspacePort(Protocol):
    """Workspace API operations required by the core pipeline."""

    async def get_me(self) -> UserProfile:
        ...

    async def list_channels(self) -> list[Channel]:
        ...

    async def list_messages(self, channel_id: str, limit: int) -> dict[str, Message]:
        ...

    async def get_user_profile(self, user_id: str) -> UserProfile:
        ...

    async def list_users(self) -> list[UserProfile]:
        ...

    async def create_direct_channel(self, user_a: str, user_b: str) -> Channel:
        ...

    async def post_message(self, channel_id: str, text: str) -> str:
        ...


class ClassificationBackendPort(Protocol):
    """Single request/response language-model call."""

    async def complete(self, prompt: str) -> str:
        ...


class StateStorePort(Protocol):
    """Processed-message ledger operations required by the core pipeline."""

    @property
    def existed_at_load(self) -> bool:
        ...

    @property
    def last_run(self) -> datetime:
        ...

    def is_processed(self, channel_id: str, message_id: str) -> bool:
        ...

    def mark_processed(self, channel_id: str, message_id: str) -> None:
        ...

    def save(self) -> bool:
        ...


class NotifierPort(Protocol):
    """Notification operations required by the core pipeline."""

    async def send(self, result: ClassificationResult, target: NotificationTarget) -> None:
        ...
