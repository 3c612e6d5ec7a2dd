"""JSON state adapter.

Implements the core StateStorePort on top of a single human-readable JSON
record. The record is read once at construction and rewritten wholesale on
every save.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Union

from core.models import MonitorState

LOGGER = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _default_state() -> MonitorState:
    return MonitorState(last_run=_utc_now(), processed_ids={})


def _parse_timestamp(raw: Any) -> datetime:
    parsed = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def state_from_payload(payload: Any) -> MonitorState:
    """Build a MonitorState from the decoded JSON record.

    Record layout:
    - lastRun: ISO-8601 timestamp of the last save
    - processedPosts: channel id → list of processed message ids
    """

    if not isinstance(payload, dict):
        raise ValueError("State record must be a JSON object")
    processed = payload.get("processedPosts", {})
    if not isinstance(processed, dict):
        raise ValueError("processedPosts must be an object")
    return MonitorState(
        last_run=_parse_timestamp(payload["lastRun"]),
        processed_ids={str(channel): {str(i) for i in ids} for channel, ids in processed.items()},
    )


def state_to_payload(state: MonitorState) -> dict[str, Any]:
    return {
        "lastRun": state.last_run.isoformat().replace("+00:00", "Z"),
        "processedPosts": {
            channel: sorted(ids) for channel, ids in sorted(state.processed_ids.items())
        },
    }


class JsonStateStore:
    """Processed-message ledger persisted as a JSON file."""

    def __init__(self, path: Union[str, "os.PathLike[str]"]) -> None:
        self._path = Path(path).resolve()
        self._existed_at_load = False
        self._state = self.load()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def existed_at_load(self) -> bool:
        """True when a readable record existed before this process loaded it."""

        return self._existed_at_load

    @property
    def last_run(self) -> datetime:
        return self._state.last_run

    def load(self) -> MonitorState:
        """Read the record, falling back to a fresh state when absent or corrupt."""

        if not self._path.exists():
            LOGGER.info("No state record at %s, starting fresh", self._path)
            return _default_state()
        try:
            with open(self._path, encoding="utf-8") as handle:
                state = state_from_payload(json.load(handle))
        except (OSError, ValueError, KeyError, TypeError) as exc:
            LOGGER.error("Error loading state from %s: %s", self._path, exc)
            return _default_state()
        self._existed_at_load = True
        return state

    def is_processed(self, channel_id: str, message_id: str) -> bool:
        return message_id in self._state.processed_ids.get(channel_id, ())

    def mark_processed(self, channel_id: str, message_id: str) -> None:
        """Record a message as processed. Repeat calls are no-ops."""

        self._state.processed_ids.setdefault(channel_id, set()).add(message_id)

    def processed_ids(self, channel_id: str) -> frozenset[str]:
        return frozenset(self._state.processed_ids.get(channel_id, ()))

    def channel_ids(self) -> list[str]:
        return sorted(self._state.processed_ids)

    def save(self) -> bool:
        """Rewrite the whole record atomically; failures are logged, not raised."""

        self._state.last_run = _utc_now()
        temp_path = self._path.with_name(f"{self._path.name}.tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as handle:
                json.dump(state_to_payload(self._state), handle, ensure_ascii=False, indent=2)
            temp_path.replace(self._path)
        except OSError as exc:
            LOGGER.error("Error saving state to %s: %s", self._path, exc)
            return False
        return True
