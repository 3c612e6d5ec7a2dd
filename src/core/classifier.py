"""Per-channel classification step.

This module is integration-agnostic. It only relies on ports for the
workspace, the state ledger and the optional language-model backend.

For one channel in one cycle the order is strict:
1) Resolve the configured channel name to an id
2) Fetch the most recent messages (first-run or steady-state limit)
3) Drop anything already processed for this channel
4) Classify with the backend, falling back to keywords on any failure
5) Mark every candidate processed, matched or not
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from core.config import BACKEND_KEYWORD, MonitoringConfig
from core.errors import ClassificationBackendError, ResponseParseError
from core.keyword_classifier import build_topic_rules, match_topics
from core.models import (
    MATCHED,
    NO_MATCHES,
    NO_NEW_MESSAGES,
    SKIPPED,
    ChannelOutcome,
    ClassificationResult,
    Message,
)
from core.ports import ClassificationBackendPort, StateStorePort, WorkspacePort
from core.response_parsing import parse_classification_reply

LOGGER = logging.getLogger(__name__)

PROMPT_TEXT_CHARS = 1000


def _clip(text: str, limit: int) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def build_prompt(messages: list[Message], topics: tuple[str, ...]) -> str:
    """Build the single classification request for a batch of messages."""

    topic_lines = "\n".join(f"- {topic}" for topic in topics)
    message_lines = "\n".join(
        f"[{message.id}] {_clip(message.text, PROMPT_TEXT_CHARS)}" for message in messages
    )
    example = json.dumps({topics[0]: ["<message id>"]} if topics else {})
    return (
        "You are classifying chat messages by topic.\n\n"
        f"Topics:\n{topic_lines}\n\n"
        f"Messages (id in brackets):\n{message_lines}\n\n"
        "A message is relevant to a topic when it discusses that topic, "
        "including equipment, people, events or jargon closely tied to it.\n"
        "Reply with a JSON object only. Keys are topic labels exactly as listed, "
        "values are lists of relevant message ids. Leave out topics with no "
        f"relevant messages and reply {{}} when nothing is relevant. Example: {example}"
    )


class ChannelClassifier:
    """Turns new channel messages into topic matches."""

    def __init__(
        self,
        workspace: WorkspacePort,
        state_store: StateStorePort,
        config: MonitoringConfig,
        backend: Optional[ClassificationBackendPort] = None,
    ) -> None:
        self._workspace = workspace
        self._state = state_store
        self._config = config
        self._classifier_config = config.classifier
        self._backend = None if config.classifier.backend == BACKEND_KEYWORD else backend
        self._rules = build_topic_rules(
            config.topics,
            config.classifier.synonyms,
            config.classifier.builtin_heuristics,
        )

    @property
    def uses_backend(self) -> bool:
        return self._backend is not None

    def fetch_limit(self, first_run: bool) -> int:
        if first_run and self._config.first_run.enabled:
            return self._config.first_run.limit
        return self._config.message_limit

    async def classify_channel(self, channel_name: str, first_run: bool = False) -> ChannelOutcome:
        """Run the classification step for one configured channel.

        Workspace failures propagate so the caller can record the channel as
        failed; nothing is marked processed in that case.
        """

        LOGGER.info("Analyzing channel: %s", channel_name)
        channels = await self._workspace.list_channels()
        channel = next((item for item in channels if item.name == channel_name), None)
        if channel is None:
            LOGGER.warning("Channel not found: %s", channel_name)
            return ChannelOutcome(channel_name=channel_name, status=SKIPPED)

        fetched = await self._workspace.list_messages(channel.id, self.fetch_limit(first_run))
        candidates = [
            message
            for message in fetched.values()
            if not self._state.is_processed(channel.id, message.id)
        ]
        if not candidates:
            LOGGER.info("No new messages to analyze in channel: %s", channel_name)
            return ChannelOutcome(channel_name=channel_name, status=NO_NEW_MESSAGES)

        # Empty and system messages are marked below but never matched.
        classifiable = [m for m in candidates if m.text.strip() and not m.system]
        topics_by_message = await self.classify_messages(classifiable) if classifiable else {}

        # Marking is irrevocable and covers every candidate, matched or not.
        for message in candidates:
            self._state.mark_processed(channel.id, message.id)

        matched = [message for message in candidates if topics_by_message.get(message.id)]
        if not matched:
            LOGGER.info("No relevant messages found in channel: %s", channel_name)
            return ChannelOutcome(
                channel_name=channel_name,
                status=NO_MATCHES,
                considered=len(candidates),
            )

        found = {topic for topics in topics_by_message.values() for topic in topics}
        result = ClassificationResult(
            channel_id=channel.id,
            channel_name=channel.name,
            messages=tuple(matched),
            topics=tuple(topic for topic in self._config.topics if topic in found),
        )
        LOGGER.info(
            "Found %s relevant messages in %s (%s)",
            len(matched),
            channel_name,
            ", ".join(result.topics),
        )
        return ChannelOutcome(
            channel_name=channel_name,
            status=MATCHED,
            considered=len(candidates),
            result=result,
        )

    async def classify_messages(self, messages: list[Message]) -> dict[str, list[str]]:
        """Return message id → matched topics, preferring the backend."""

        if self._backend is not None:
            try:
                return await self._classify_with_backend(messages)
            except (ClassificationBackendError, ResponseParseError) as exc:
                LOGGER.warning("Falling back to keyword classification: %s", exc)
            except Exception:
                LOGGER.exception("Unexpected classification backend failure, using keywords")
        return self.classify_with_keywords(messages)

    def classify_with_keywords(self, messages: list[Message]) -> dict[str, list[str]]:
        return {message.id: match_topics(message.text, self._rules) for message in messages}

    async def _classify_with_backend(self, messages: list[Message]) -> dict[str, list[str]]:
        reply = await self._backend.complete(build_prompt(messages, self._config.topics))
        parsed = parse_classification_reply(
            reply,
            self._config.topics,
            {message.id for message in messages},
            self._classifier_config.message_id_pattern,
            self._classifier_config.unassociated_ids_policy,
        )
        LOGGER.debug(
            "Backend reply parsed at %s stage, %s matching messages",
            parsed.stage,
            len(parsed.matched_ids()),
        )

        topics_by_message: dict[str, list[str]] = {}
        for topic in self._config.topics:
            for message_id in parsed.matches.get(topic, ()):
                topics_by_message.setdefault(message_id, []).append(topic)
        return topics_by_message
