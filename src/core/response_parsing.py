"""Parsing of classification backend replies (core domain).

The backend is asked for a JSON object mapping topic labels to message ids,
but language models do not always comply. Replies go through an explicit
pipeline:

1) strict: the first JSON object shaped like ``{topic: [ids...]}``
2) lenient: message ids found anywhere in the text, attached to the topic
   label named on the same line or the closest line above
3) tie-break: ids found by the lenient scan that no topic claims are handled
   by the configured policy (every topic, or none)

Only configured topics and ids from the candidate batch are ever returned.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from core.config import TIE_BREAK_ALL_TOPICS, TIE_BREAK_IGNORE
from core.errors import ResponseParseError

LOGGER = logging.getLogger(__name__)

STAGE_STRICT = "strict"
STAGE_LENIENT = "lenient"
STAGE_TIE_BREAK = "tie_break"

_WRAPPER_KEYS = ("matches", "topics", "results")


@dataclass(frozen=True)
class ParsedReply:
    """Topic to message-id associations plus the stage that produced them."""

    matches: dict[str, set[str]]
    stage: str

    def matched_ids(self) -> set[str]:
        found: set[str] = set()
        for ids in self.matches.values():
            found.update(ids)
        return found


def _topic_lookup(topics: Iterable[str]) -> dict[str, str]:
    return {topic.strip().lower(): topic for topic in topics if topic.strip()}


def _iter_json_objects(reply: str):
    decoder = json.JSONDecoder()
    index = reply.find("{")
    while index != -1:
        try:
            value, _ = decoder.raw_decode(reply, index)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            yield value
        index = reply.find("{", index + 1)


def _as_id_list(value: Any) -> Optional[list[str]]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(item, (str, int)) for item in value):
        return [str(item) for item in value]
    return None


def _mapping_from_object(obj: Mapping[str, Any]) -> Optional[dict[str, list[str]]]:
    for key in _WRAPPER_KEYS:
        inner = obj.get(key)
        if isinstance(inner, dict) and len(obj) == 1:
            obj = inner
            break

    mapping: dict[str, list[str]] = {}
    for key, value in obj.items():
        ids = _as_id_list(value)
        if ids is None:
            return None
        mapping[str(key)] = ids
    return mapping


def parse_strict(
    reply: str,
    topics: Iterable[str],
    candidate_ids: set[str],
) -> Optional[dict[str, set[str]]]:
    """Return associations from the first topic→ids JSON object, if any."""

    lookup = _topic_lookup(topics)
    for obj in _iter_json_objects(reply):
        mapping = _mapping_from_object(obj)
        if mapping is None:
            continue
        if mapping and not any(key.strip().lower() in lookup for key in mapping):
            continue
        matches: dict[str, set[str]] = {}
        listed = 0
        for key, ids in mapping.items():
            topic = lookup.get(key.strip().lower())
            if topic is None:
                LOGGER.debug("Ignoring unknown topic in reply: %s", key)
                continue
            listed += len(ids)
            known = {message_id for message_id in ids if message_id in candidate_ids}
            if known:
                matches.setdefault(topic, set()).update(known)
        if listed and not matches:
            # Ids were given but none belong to this batch (e.g. ordinals).
            LOGGER.debug("Ignoring JSON object with %s unknown message ids", listed)
            continue
        return matches
    return None


def parse_lenient(
    reply: str,
    topics: Iterable[str],
    candidate_ids: set[str],
    id_pattern: str,
) -> tuple[dict[str, set[str]], set[str]]:
    """Scan free text for candidate ids and the topics named near them.

    Returns (associated, unassociated). An id mentioned before any topic label
    is unassociated unless a later mention ties it to a topic.
    """

    lookup = _topic_lookup(topics)
    pattern = re.compile(id_pattern)
    associated: dict[str, set[str]] = {}
    unassociated: set[str] = set()
    current: list[str] = []

    for line in reply.splitlines():
        lowered = line.lower()
        named = [topic for label, topic in lookup.items() if label in lowered]
        if named:
            current = named
        for message_id in pattern.findall(line):
            if message_id not in candidate_ids:
                continue
            if not current:
                unassociated.add(message_id)
                continue
            for topic in current:
                associated.setdefault(topic, set()).add(message_id)

    claimed: set[str] = set()
    for ids in associated.values():
        claimed.update(ids)
    return associated, unassociated - claimed


def apply_tie_break(
    unassociated: set[str],
    topics: Iterable[str],
    policy: str,
) -> dict[str, set[str]]:
    """Resolve ids that no topic claimed."""

    if not unassociated or policy == TIE_BREAK_IGNORE:
        return {}
    if policy == TIE_BREAK_ALL_TOPICS:
        return {topic: set(unassociated) for topic in _topic_lookup(topics).values()}
    raise ValueError(f"Unsupported tie-break policy: {policy}")


def parse_classification_reply(
    reply: str,
    topics: Iterable[str],
    candidate_ids: set[str],
    id_pattern: str,
    policy: str,
) -> ParsedReply:
    """Run the strict → lenient → tie-break pipeline over one reply.

    Raises ResponseParseError when the reply holds neither a topic mapping nor
    any candidate id.
    """

    topics = list(topics)
    strict = parse_strict(reply, topics, candidate_ids)
    if strict is not None:
        return ParsedReply(matches=strict, stage=STAGE_STRICT)

    associated, unassociated = parse_lenient(reply, topics, candidate_ids, id_pattern)
    if associated:
        if unassociated:
            LOGGER.debug("Dropping %s ids without a topic", len(unassociated))
        return ParsedReply(matches=associated, stage=STAGE_LENIENT)
    if unassociated:
        LOGGER.info(
            "Reply named %s ids without topics, applying %s policy",
            len(unassociated),
            policy,
        )
        return ParsedReply(
            matches=apply_tie_break(unassociated, topics, policy),
            stage=STAGE_TIE_BREAK,
        )

    raise ResponseParseError("Reply contained no topic mapping and no message ids")
