"""Mattermost notification adapter.

Resolves author display names for the listed messages, falling back to
usernames, formats one Markdown alert per channel and posts it to the
delivery channel.
"""

from __future__ import annotations

import dataclasses
import logging

from adapters.notification_formatting import MAX_LISTED_MESSAGES, format_alert
from core.errors import WorkspaceError
from core.models import ClassificationResult, NotificationTarget
from core.ports import WorkspacePort

LOGGER = logging.getLogger(__name__)


class MattermostNotifier:
    """Notifier adapter that posts alerts through the workspace client."""

    def __init__(self, workspace: WorkspacePort) -> None:
        self._workspace = workspace

    async def _author_names(self, author_ids: set[str]) -> dict[str, str]:
        names: dict[str, str] = {}
        for author_id in author_ids:
            try:
                profile = await self._workspace.get_user_profile(author_id)
            except WorkspaceError as exc:
                LOGGER.debug("Could not resolve author %s: %s", author_id, exc)
                continue
            name = profile.display_name or profile.username
            if name:
                names[author_id] = name
        return names

    async def send(self, result: ClassificationResult, target: NotificationTarget) -> None:
        """Post the alert for one channel. Delivery errors propagate to the caller."""

        listed = result.messages[:MAX_LISTED_MESSAGES]
        names = await self._author_names({message.author_id for message in listed})
        enriched = tuple(
            dataclasses.replace(message, author_name=names.get(message.author_id))
            for message in listed
        ) + result.messages[MAX_LISTED_MESSAGES:]

        text = format_alert(dataclasses.replace(result, messages=enriched), target.recipient_name)
        await self._workspace.post_message(target.delivery_channel_id, text)
