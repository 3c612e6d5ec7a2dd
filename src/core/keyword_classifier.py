"""Deterministic keyword classification (core domain).

Used whenever the language-model backend is not configured or fails.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional

# Related terms for built-in topics, keyed by lowercased topic label.
BUILTIN_SYNONYMS: dict[str, tuple[str, ...]] = {
    "table tennis": (
        "ping pong", "paddle", "racket", "ball", "net", "table",
        "butterfly", "stiga", "donic", "yasaka", "tibhar", "joola",
        "rubbers", "blade", "backhand", "forehand", "spin", "serve",
        "timo boll", "ma long", "zhang jike", "wang liqin", "liu shiwen",
        "dignics", "tenergy", "tournament", "championship", "ittf",
    ),
}

_TT_EQUIPMENT = ("rubber", "blade")
_TT_BRANDS = ("butterfly", "stiga", "donic", "yasaka", "tibhar", "joola")
_TT_COMPETITION = ("player", "championship", "tournament", "match", "game")


def _table_tennis_heuristic(lowered: str) -> bool:
    # Equipment talk names a brand alongside a blade or rubber.
    if any(word in lowered for word in _TT_EQUIPMENT) and any(b in lowered for b in _TT_BRANDS):
        return True
    return any(word in lowered for word in _TT_COMPETITION)


BUILTIN_HEURISTICS = {
    "table tennis": _table_tennis_heuristic,
}


@dataclass(frozen=True)
class TopicRule:
    """Compiled matching criteria for one topic label."""

    topic: str
    label: str
    terms: tuple[str, ...]
    use_heuristic: bool


def build_topic_rules(
    topics: Iterable[str],
    synonyms: Optional[Mapping[str, Iterable[str]]] = None,
    builtin_heuristics: bool = True,
) -> List[TopicRule]:
    """Normalize topic labels and attach their related terms.

    Configured synonyms extend, never replace, the built-in dictionary.
    """

    synonyms = synonyms or {}
    compiled: List[TopicRule] = []
    for topic in topics:
        label = topic.strip().lower()
        if not label:
            continue
        terms = list(BUILTIN_SYNONYMS.get(label, ()))
        terms.extend(term.lower() for term in synonyms.get(label, ()))
        compiled.append(
            TopicRule(
                topic=topic,
                label=label,
                terms=tuple(dict.fromkeys(terms)),
                use_heuristic=builtin_heuristics and label in BUILTIN_HEURISTICS,
            )
        )
    return compiled


def match_topics(text: str, rules: Iterable[TopicRule]) -> List[str]:
    """Return the topics the given text is relevant to.

    Matching logic:
    - The topic label itself appearing anywhere in the text (case-insensitive).
    - Otherwise, any related term appearing in the text.
    - Otherwise, the topic's built-in co-occurrence heuristic.
    """

    lowered = text.lower()
    matched: List[str] = []
    for rule in rules:
        if rule.label in lowered:
            matched.append(rule.topic)
        elif any(term in lowered for term in rule.terms):
            matched.append(rule.topic)
        elif rule.use_heuristic and BUILTIN_HEURISTICS[rule.label](lowered):
            matched.append(rule.topic)
    return matched
