from __future__ import annotations

import asyncio

import pytest

from adapters.mattermost_notifier import MattermostNotifier
from adapters.notification_formatting import format_alert
from core.errors import WorkspaceError
from core.models import ClassificationResult, UserProfile
from fakes import TARGET, FakeWorkspace, make_message


def _result(count: int, author_id: str = "user-bob") -> ClassificationResult:
    messages = tuple(
        make_message(f"msg-{index}", f"rally number {index}", author_id=author_id, minute=index)
        for index in range(count)
    )
    return ClassificationResult(
        channel_id="chan-town",
        channel_name="town-square",
        messages=messages,
        topics=("table tennis",),
    )


def test_alert_lists_first_five_and_summarizes_rest() -> None:
    text = format_alert(_result(7), "alice")
    lines = text.splitlines()

    assert lines[0] == "@alice **Topic Monitor Alert**"
    assert "Found 7 relevant messages in channel: **town-square**" in lines
    assert "Topics: table tennis" in lines
    assert sum(1 for line in lines if line.startswith("- ")) == 5
    assert lines[-1] == "...and 2 more"
    assert '"rally number 4"' in text
    assert "rally number 5" not in text


def test_alert_with_exactly_five_has_no_summary() -> None:
    text = format_alert(_result(5), "alice")

    assert "more" not in text.splitlines()[-1]
    assert text.count("\n- ") == 5


def test_single_match_uses_singular_and_falls_back_to_author_id() -> None:
    text = format_alert(_result(1, author_id="user-zed"), "alice")

    assert "Found 1 relevant message in channel" in text
    assert '(user-zed): "rally number 0"' in text


def test_notifier_posts_once_with_author_usernames() -> None:
    workspace = FakeWorkspace()
    notifier = MattermostNotifier(workspace)

    asyncio.run(notifier.send(_result(2), TARGET))

    assert len(workspace.posted) == 1
    channel_id, text = workspace.posted[0]
    assert channel_id == "chan-dm"
    assert text.startswith("@alice ")
    assert '(bob): "rally number 1"' in text


def test_notifier_uses_raw_id_when_author_lookup_fails() -> None:
    workspace = FakeWorkspace()
    notifier = MattermostNotifier(workspace)

    asyncio.run(notifier.send(_result(1, author_id="user-ghost"), TARGET))

    assert '(user-ghost): "rally number 0"' in workspace.posted[0][1]


def test_notifier_propagates_delivery_errors() -> None:
    workspace = FakeWorkspace()
    workspace.fail_post = True

    with pytest.raises(WorkspaceError):
        asyncio.run(MattermostNotifier(workspace).send(_result(1), TARGET))


def test_notifier_prefers_display_name_over_username() -> None:
    carol = UserProfile(id="user-carol", username="carol", display_name="Carol C")
    workspace = FakeWorkspace(users=[carol])

    asyncio.run(MattermostNotifier(workspace).send(_result(1, author_id="user-carol"), TARGET))

    assert '(Carol C): "rally number 0"' in workspace.posted[0][1]
