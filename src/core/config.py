"""Core configuration dataclasses.

We keep file loading outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from core.errors import ConfigurationError

# Tie-break policies for ids the lenient parser cannot pin to a topic.
TIE_BREAK_ALL_TOPICS = "all_topics"
TIE_BREAK_IGNORE = "ignore"
TIE_BREAK_POLICIES = (TIE_BREAK_ALL_TOPICS, TIE_BREAK_IGNORE)

BACKEND_ANTHROPIC = "anthropic"
BACKEND_KEYWORD = "keyword"

# Mattermost ids are 26 lowercase alphanumerics.
DEFAULT_MESSAGE_ID_PATTERN = r"\b[a-z0-9]{26}\b"

DEFAULT_MODEL = "claude-3-5-haiku-latest"


@dataclass(frozen=True)
class FirstRunPolicy:
    """How many messages to look back on the very first cycle."""

    enabled: bool
    limit: int


@dataclass(frozen=True)
class ClassifierConfig:
    """Settings for the two-tier classification step."""

    backend: str = BACKEND_ANTHROPIC
    model: str = DEFAULT_MODEL
    max_tokens: int = 1024
    timeout_seconds: float = 30.0
    max_retries: int = 2
    unassociated_ids_policy: str = TIE_BREAK_ALL_TOPICS
    message_id_pattern: str = DEFAULT_MESSAGE_ID_PATTERN
    synonyms: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    builtin_heuristics: bool = True


@dataclass(frozen=True)
class MonitoringConfig:
    """Monitoring settings, immutable for the process lifetime."""

    enabled: bool
    schedule: str
    channels: tuple[str, ...]
    topics: tuple[str, ...]
    message_limit: int
    state_file_path: str
    first_run: FirstRunPolicy
    classifier: ClassifierConfig


def _positive_int(section: Mapping[str, Any], key: str, default: int) -> int:
    value = section.get(key, default)
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"monitoring.{key} must be an integer, got {value!r}") from exc
    if number <= 0:
        raise ConfigurationError(f"monitoring.{key} must be positive, got {number}")
    return number


def _string_list(section: Mapping[str, Any], key: str) -> tuple[str, ...]:
    raw = section.get(key) or []
    if isinstance(raw, str):
        raw = [raw]
    values = tuple(str(item).strip() for item in raw if str(item).strip())
    if not values:
        raise ConfigurationError(f"monitoring.{key} must list at least one entry")
    return values


def build_classifier_config(raw: Mapping[str, Any]) -> ClassifierConfig:
    """Normalize the ``monitoring.classifier`` section."""

    backend = str(raw.get("backend", BACKEND_ANTHROPIC)).lower()
    if backend not in (BACKEND_ANTHROPIC, BACKEND_KEYWORD):
        raise ConfigurationError(f"Unsupported classifier backend: {backend}")

    policy = str(raw.get("unassociated_ids_policy", TIE_BREAK_ALL_TOPICS)).lower()
    if policy not in TIE_BREAK_POLICIES:
        raise ConfigurationError(
            f"classifier.unassociated_ids_policy must be one of {', '.join(TIE_BREAK_POLICIES)}"
        )

    synonyms = {
        str(topic).lower(): tuple(str(term).lower() for term in terms or [])
        for topic, terms in (raw.get("synonyms") or {}).items()
    }

    return ClassifierConfig(
        backend=backend,
        model=str(raw.get("model", DEFAULT_MODEL)),
        max_tokens=int(raw.get("max_tokens", 1024)),
        timeout_seconds=float(raw.get("timeout_seconds", 30.0)),
        max_retries=int(raw.get("max_retries", 2)),
        unassociated_ids_policy=policy,
        message_id_pattern=str(raw.get("message_id_pattern", DEFAULT_MESSAGE_ID_PATTERN)),
        synonyms=synonyms,
        builtin_heuristics=bool(raw.get("builtin_heuristics", True)),
    )


def build_monitoring_config(raw: Mapping[str, Any]) -> MonitoringConfig:
    """Turn the raw ``monitoring`` config section into a MonitoringConfig.

    Missing optional keys fall back to the same defaults the shipped
    ``config.json`` uses. Invalid values raise ConfigurationError.
    """

    message_limit = _positive_int(raw, "message_limit", 50)

    first_run_raw = raw.get("first_run") or {}
    first_run = FirstRunPolicy(
        enabled=bool(first_run_raw.get("enabled", raw.get("process_existing_on_first_run", True))),
        limit=_positive_int(first_run_raw, "limit", raw.get("first_run_limit", message_limit)),
    )

    schedule = str(raw.get("schedule", "")).strip()
    if not schedule:
        raise ConfigurationError("monitoring.schedule is required")

    return MonitoringConfig(
        enabled=bool(raw.get("enabled", False)),
        schedule=schedule,
        channels=_string_list(raw, "channels"),
        topics=_string_list(raw, "topics"),
        message_limit=message_limit,
        state_file_path=str(raw.get("state_file_path", "data/monitor-state.json")),
        first_run=first_run,
        classifier=build_classifier_config(raw.get("classifier") or {}),
    )
