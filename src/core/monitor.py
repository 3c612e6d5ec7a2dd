"""Topic monitor orchestration.

The monitor resolves where alerts go once at startup, arms the scheduler, and
drives one end-to-end cycle per tick: classify each configured channel, notify
for channels with matches, then persist the processed ledger. Every
per-channel outcome is recorded explicitly so one failing channel never aborts
the rest of the cycle.
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from core.classifier import ChannelClassifier
from core.config import MonitoringConfig
from core.errors import ConfigurationError, WorkspaceError
from core.models import (
    FAILED,
    MATCHED,
    Channel,
    ChannelOutcome,
    CycleReport,
    NotificationTarget,
    UserProfile,
)
from core.ports import (
    ClassificationBackendPort,
    NotifierPort,
    StateStorePort,
    WorkspacePort,
)
from core.scheduler import MonitorScheduler

LOGGER = logging.getLogger(__name__)

ADMIN_ROLE = "system_admin"
USER_ROLE = "system_user"
DIRECT_CHANNEL = "D"
OPEN_CHANNEL = "O"
FALLBACK_CHANNEL_NAME = "town-square"


def select_recipient(users: Iterable[UserProfile]) -> UserProfile:
    """Pick who receives alerts: an admin, else a regular human, else anyone."""

    users = list(users)
    if not users:
        raise ConfigurationError("No users found in the workspace")

    for predicate in (
        lambda user: ADMIN_ROLE in user.roles,
        lambda user: USER_ROLE in user.roles and not user.is_bot,
        lambda user: not user.is_bot,
    ):
        chosen = next((user for user in users if predicate(user)), None)
        if chosen is not None:
            return chosen
    return users[0]


def select_fallback_channel(channels: Iterable[Channel]) -> Channel:
    """Pick a public channel when a direct channel is unavailable."""

    channels = list(channels)
    chosen = next((c for c in channels if c.name == FALLBACK_CHANNEL_NAME), None)
    if chosen is None:
        chosen = next((c for c in channels if c.type == OPEN_CHANNEL), None)
    if chosen is None and channels:
        chosen = channels[0]
    if chosen is None:
        raise ConfigurationError("No suitable channel found for notifications")
    return chosen


async def resolve_target(workspace: WorkspacePort) -> NotificationTarget:
    """Resolve the alert recipient and the channel alerts are posted to.

    Any failure here is a startup failure and surfaces as ConfigurationError.
    """

    try:
        users = await workspace.list_users()
    except WorkspaceError as exc:
        raise ConfigurationError(f"Could not list users: {exc}") from exc
    recipient = select_recipient(users)
    LOGGER.info("Found user for notifications: %s (%s)", recipient.username, recipient.id)

    try:
        me = await workspace.get_me()
        channels = await workspace.list_channels()
    except WorkspaceError as exc:
        raise ConfigurationError(f"Could not resolve notification channel: {exc}") from exc
    LOGGER.info("Monitor running as user: %s (%s)", me.username, me.id)

    existing = next(
        (
            channel
            for channel in channels
            if channel.type == DIRECT_CHANNEL
            and recipient.id in channel.name
            and me.id in channel.name
        ),
        None,
    )
    if existing is not None:
        LOGGER.info("Found existing direct channel: %s", existing.id)
        return NotificationTarget(recipient.id, recipient.username, existing.id)

    try:
        created = await workspace.create_direct_channel(me.id, recipient.id)
    except WorkspaceError as exc:
        LOGGER.warning("Could not create direct channel, falling back to a public one: %s", exc)
    else:
        LOGGER.info("Created new direct channel: %s", created.id)
        return NotificationTarget(recipient.id, recipient.username, created.id)

    fallback = select_fallback_channel(channels)
    LOGGER.info("Using fallback channel for notifications: %s (%s)", fallback.name, fallback.id)
    return NotificationTarget(recipient.id, recipient.username, fallback.id)


class TopicMonitor:
    """Owns the scheduler, ledger, classifier and notifier for one process."""

    def __init__(
        self,
        workspace: WorkspacePort,
        config: MonitoringConfig,
        state_store: StateStorePort,
        notifier: NotifierPort,
        backend: Optional[ClassificationBackendPort] = None,
    ) -> None:
        self._workspace = workspace
        self._config = config
        self._state = state_store
        self._notifier = notifier
        self._classifier = ChannelClassifier(workspace, state_store, config, backend)
        self._scheduler = MonitorScheduler(config.schedule, self.run_cycle)
        self._target: Optional[NotificationTarget] = None
        # First run means no ledger existed when this process started.
        self._first_cycle_pending = not state_store.existed_at_load
        self.last_report: Optional[CycleReport] = None

    @property
    def config(self) -> MonitoringConfig:
        return self._config

    @property
    def target(self) -> Optional[NotificationTarget]:
        return self._target

    @property
    def scheduler(self) -> MonitorScheduler:
        return self._scheduler

    async def prepare(self) -> NotificationTarget:
        """Resolve the notification target once; later calls reuse it."""

        if self._target is None:
            self._target = await resolve_target(self._workspace)
        return self._target

    async def start(self) -> bool:
        if self._scheduler.is_running:
            return True
        if not MonitorScheduler.validate(self._scheduler.schedule):
            LOGGER.error("Invalid cron schedule: %s", self._scheduler.schedule)
            return False
        try:
            await self.prepare()
        except ConfigurationError as exc:
            LOGGER.error("Error starting topic monitor: %s", exc)
            return False
        return self._scheduler.start()

    def stop(self) -> bool:
        return self._scheduler.stop()

    async def run_now(self) -> bool:
        """Run one cycle now; False when a cycle is already in flight."""

        return await self._scheduler.run_now()

    def is_running(self) -> bool:
        """True while a cycle is in flight."""

        return self._scheduler.in_flight

    def is_scheduled(self) -> bool:
        return self._scheduler.is_running

    def update_schedule(self, expression: str) -> bool:
        return self._scheduler.update_schedule(expression)

    async def run_cycle(self) -> CycleReport:
        """Run the monitoring pipeline once across all configured channels."""

        report = CycleReport(
            started_at=datetime.now(timezone.utc),
            first_run=self._first_cycle_pending,
        )
        self.last_report = report

        try:
            target = await self.prepare()
        except ConfigurationError as exc:
            LOGGER.error("Skipping cycle, no notification target: %s", exc)
            report.skip_reason = f"No notification target: {exc}"
            return report

        for channel_name in self._config.channels:
            report.outcomes.append(await self._classify(channel_name, report.first_run))

        for index, outcome in enumerate(report.outcomes):
            if outcome.status == MATCHED and outcome.result is not None:
                report.outcomes[index] = await self._notify(outcome, target)

        report.state_saved = self._state.save()
        self._first_cycle_pending = False

        LOGGER.info(
            "Cycle finished: channels=%s, matches=%s, notifications=%s, failures=%s",
            len(report.outcomes),
            len(report.results),
            report.notifications_sent,
            len(report.failures),
        )
        return report

    async def _classify(self, channel_name: str, first_run: bool) -> ChannelOutcome:
        try:
            return await self._classifier.classify_channel(channel_name, first_run)
        except Exception as exc:
            LOGGER.exception("Error analyzing channel %s", channel_name)
            return ChannelOutcome(channel_name=channel_name, status=FAILED, error=str(exc))

    async def _notify(self, outcome: ChannelOutcome, target: NotificationTarget) -> ChannelOutcome:
        try:
            await self._notifier.send(outcome.result, target)
        except Exception as exc:
            # Processed marks are kept when delivery fails.
            LOGGER.exception("Error sending notification for %s", outcome.channel_name)
            return dataclasses.replace(outcome, error=str(exc))
        LOGGER.info("Sent notification for channel: %s", outcome.channel_name)
        return dataclasses.replace(outcome, notified=True)
