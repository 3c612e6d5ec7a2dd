"""Shared notification formatting helpers.

Keeping formatting here prevents drift between adapters and keeps alerts
consistent regardless of delivery channel.
"""

from __future__ import annotations

from core.models import ClassificationResult, Message

MAX_LISTED_MESSAGES = 5


def format_timestamp(message: Message) -> str:
    return message.created_at.astimezone().strftime("%H:%M:%S %d-%m-%Y").strip()


def format_message_line(message: Message) -> str:
    """Render one matching message: timestamp, author, verbatim text."""

    author = message.author_name or message.author_id
    return f'- {format_timestamp(message)} ({author}): "{message.text}"'


def format_alert(
    result: ClassificationResult,
    recipient_name: str,
    max_listed: int = MAX_LISTED_MESSAGES,
) -> str:
    """Create the Markdown alert body for one channel with matches.

    Messages are listed in fetch order; anything past ``max_listed`` is
    summarized as a trailing count.
    """

    count = len(result.messages)
    noun = "message" if count == 1 else "messages"
    lines = [
        f"@{recipient_name} **Topic Monitor Alert**",
        "",
        f"Found {count} relevant {noun} in channel: **{result.channel_name}**",
        f"Topics: {', '.join(result.topics)}",
        "",
        "**Recent Messages:**",
    ]
    lines.extend(format_message_line(message) for message in result.messages[:max_listed])

    if count > max_listed:
        lines.append(f"...and {count - max_listed} more")
    return "\n".join(lines)
