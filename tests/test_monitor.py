from __future__ import annotations

import asyncio

import pytest

from adapters.json_state_store import JsonStateStore
from core.errors import ConfigurationError, WorkspaceError
from core.models import FAILED, MATCHED, Channel, UserProfile
from core.monitor import TopicMonitor, resolve_target, select_fallback_channel, select_recipient
from fakes import (
    ALICE,
    BOB,
    BOT,
    FakeNotifier,
    FakeStateStore,
    FakeWorkspace,
    make_config,
    make_message,
)

TOWN = Channel(id="chan-town", name="town-square", type="O")
OFF_TOPIC = Channel(id="chan-off", name="off-topic", type="O")


class ExplodingNotifier(FakeNotifier):
    async def send(self, result, target) -> None:
        raise WorkspaceError("post rejected")


def _town_messages():
    return [
        make_message("m1", "anyone for ping pong later?"),
        make_message("m2", "standup moved to 10", minute=1),
        make_message("m3", "new tenergy rubbers arrived", minute=2),
    ]


def _monitor(workspace=None, store=None, notifier=None, **config_overrides):
    workspace = workspace or FakeWorkspace(messages={"chan-town": _town_messages()})
    store = store or FakeStateStore()
    notifier = notifier or FakeNotifier()
    monitor = TopicMonitor(workspace, make_config(**config_overrides), store, notifier)
    return monitor, workspace, store, notifier


def test_recipient_prefers_admin_then_regular_human() -> None:
    carol = UserProfile(id="user-carol", username="carol")

    assert select_recipient([BOB, BOT, ALICE]) == ALICE
    assert select_recipient([BOT, BOB]) == BOB
    assert select_recipient([BOT, carol]) == carol
    assert select_recipient([BOT]) == BOT
    with pytest.raises(ConfigurationError):
        select_recipient([])


def test_fallback_channel_prefers_town_square_then_public() -> None:
    direct = Channel(id="chan-d", name="a__b", type="D")
    general = Channel(id="chan-general", name="general", type="O")

    assert select_fallback_channel([direct, general, TOWN]) == TOWN
    assert select_fallback_channel([direct, general]) == general
    assert select_fallback_channel([direct]) == direct
    with pytest.raises(ConfigurationError):
        select_fallback_channel([])


def test_resolve_target_reuses_existing_direct_channel() -> None:
    existing = Channel(id="chan-existing", name="user-alice__user-bot", type="D")
    workspace = FakeWorkspace(channels=[TOWN, existing])

    target = asyncio.run(resolve_target(workspace))

    assert target.recipient_user_id == "user-alice"
    assert target.recipient_name == "alice"
    assert target.delivery_channel_id == "chan-existing"


def test_resolve_target_creates_direct_channel_or_falls_back() -> None:
    workspace = FakeWorkspace()
    assert asyncio.run(resolve_target(workspace)).delivery_channel_id == "chan-dm"

    workspace.fail_direct = True
    assert asyncio.run(resolve_target(workspace)).delivery_channel_id == "chan-town"


def test_cycle_records_failing_channel_and_continues() -> None:
    workspace = FakeWorkspace(
        channels=[TOWN, OFF_TOPIC],
        messages={"chan-town": _town_messages()},
    )
    workspace.fail_messages_for.add("chan-off")
    monitor, _, store, notifier = _monitor(
        workspace=workspace,
        channels=["off-topic", "town-square"],
    )

    report = asyncio.run(monitor.run_cycle())

    assert [outcome.status for outcome in report.outcomes] == [FAILED, MATCHED]
    assert [outcome.channel_name for outcome in report.failures] == ["off-topic"]
    assert "timed out" in report.failures[0].error
    assert report.notifications_sent == 1
    assert report.state_saved
    assert store.saves == 1
    result, target = notifier.sent[0]
    assert [message.id for message in result.messages] == ["m1", "m3"]
    assert target.delivery_channel_id == "chan-dm"


def test_messages_are_notified_at_most_once() -> None:
    monitor, workspace, _, notifier = _monitor()

    async def scenario():
        first = await monitor.run_cycle()
        workspace.messages["chan-town"].insert(0, make_message("m4", "table tennis at 5?", minute=3))
        second = await monitor.run_cycle()
        third = await monitor.run_cycle()
        return first, second, third

    first, second, third = asyncio.run(scenario())

    assert first.notifications_sent == 1
    assert [message.id for message in notifier.sent[1][0].messages] == ["m4"]
    assert third.notifications_sent == 0
    assert len(notifier.sent) == 2


def test_first_cycle_uses_first_run_limit_once() -> None:
    monitor, workspace, _, _ = _monitor()

    async def scenario():
        first = await monitor.run_cycle()
        second = await monitor.run_cycle()
        return first, second

    first, second = asyncio.run(scenario())

    assert first.first_run and not second.first_run
    assert workspace.fetches == [("chan-town", 3), ("chan-town", 10)]


def test_existing_ledger_is_not_a_first_run() -> None:
    monitor, workspace, _, _ = _monitor(store=FakeStateStore(existed=True))

    report = asyncio.run(monitor.run_cycle())

    assert not report.first_run
    assert workspace.fetches == [("chan-town", 10)]


def test_manual_run_is_rejected_while_cycle_in_flight() -> None:
    monitor, workspace, _, _ = _monitor()

    async def scenario():
        workspace.block = asyncio.Event()
        workspace.fetch_started = asyncio.Event()
        first = asyncio.create_task(monitor.run_now())
        await workspace.fetch_started.wait()
        busy = monitor.is_running()
        second = await monitor.run_now()
        workspace.block.set()
        return busy, second, await first

    busy, second, first = asyncio.run(scenario())

    assert busy
    assert second is False
    assert first is True
    assert len(workspace.fetches) == 1
    assert not monitor.is_running()


def test_start_rejects_invalid_schedule_before_touching_workspace() -> None:
    monitor, workspace, _, _ = _monitor(schedule="every 5 minutes")

    assert asyncio.run(monitor.start()) is False
    assert workspace.list_users_calls == 0
    assert not monitor.is_scheduled()


def test_start_is_idempotent_and_resolves_target_once() -> None:
    monitor, workspace, _, _ = _monitor()

    async def scenario():
        results = [await monitor.start(), await monitor.start()]
        scheduled = monitor.is_scheduled()
        monitor.stop()
        return results, scheduled

    results, scheduled = asyncio.run(scenario())

    assert results == [True, True]
    assert scheduled
    assert workspace.list_users_calls == 1
    assert monitor.target.delivery_channel_id == "chan-dm"
    assert not monitor.is_scheduled()


def test_start_fails_when_no_recipient_exists() -> None:
    workspace = FakeWorkspace(users=[])
    monitor, _, store, _ = _monitor(workspace=workspace)

    assert asyncio.run(monitor.start()) is False

    report = asyncio.run(monitor.run_cycle())
    assert report.outcomes == []
    assert "No users found" in report.skip_reason
    assert store.saves == 0


def test_notification_failure_keeps_processed_marks() -> None:
    monitor, _, store, _ = _monitor(notifier=ExplodingNotifier())

    async def scenario():
        return await monitor.run_cycle(), await monitor.run_cycle()

    first, second = asyncio.run(scenario())

    failed = first.outcomes[0]
    assert failed.status == MATCHED
    assert not failed.notified
    assert "post rejected" in failed.error
    assert first.failures == [failed]
    assert store.processed["chan-town"] == {"m1", "m2", "m3"}
    assert second.outcomes[0].result is None


def test_unsaved_ledger_means_messages_are_reconsidered(tmp_path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    unsaved_path = blocker / "state.json"

    monitor, workspace, _, notifier = _monitor(store=JsonStateStore(unsaved_path))
    report = asyncio.run(monitor.run_cycle())
    assert not report.state_saved

    restarted, _, _, restarted_notifier = _monitor(
        workspace=workspace,
        store=JsonStateStore(unsaved_path),
    )
    asyncio.run(restarted.run_cycle())

    assert len(notifier.sent) == 1
    assert len(restarted_notifier.sent) == 1


def test_saved_ledger_survives_restart(tmp_path) -> None:
    path = tmp_path / "state.json"

    monitor, workspace, _, _ = _monitor(store=JsonStateStore(path))
    assert asyncio.run(monitor.run_cycle()).state_saved

    restarted, _, _, notifier = _monitor(workspace=workspace, store=JsonStateStore(path))
    report = asyncio.run(restarted.run_cycle())

    assert not report.first_run
    assert notifier.sent == []
    assert workspace.fetches[-1] == ("chan-town", 10)
