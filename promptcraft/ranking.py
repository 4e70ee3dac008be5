"""Ranking shared by every storage backend.

``usage_score`` turns favorite/recency signals into a bonus and
``fuzzy_score`` measures how well a text query matches a prompt. Both are
pure so that the backends cannot drift apart.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import datetime

from .models import Prompt, UsageStats, utcnow

FAVORITE_BONUS = 50
RECENCY_WINDOW_DAYS = 30
RECENTS_POSITION_BONUS = 10


def usage_score(prompt_id: str, stats: UsageStats | None, now: datetime | None = None) -> float:
    if stats is None:
        return 0.0
    now = now or utcnow()
    score = 0.0

    if prompt_id in stats.favorites:
        score += FAVORITE_BONUS

    for position, entry in enumerate(stats.recents):
        if entry.prompt_id != prompt_id:
            continue
        days_since_use = (now - entry.used_at).total_seconds() / 86400
        if days_since_use < RECENCY_WINDOW_DAYS:
            score += max(RECENCY_WINDOW_DAYS - days_since_use, 0)
        score += max(RECENTS_POSITION_BONUS - position, 0)
        break

    return score


def matches_query(prompt: Prompt, query: str) -> bool:
    """Case-insensitive containment in name, description, content or any tag."""
    q = query.lower()
    return (
        q in prompt.name.lower()
        or q in prompt.description.lower()
        or q in prompt.content.lower()
        or any(q in tag.lower() for tag in prompt.tags)
    )


def fuzzy_score(prompt: Prompt, query: str) -> int:
    if not query:
        return 0
    q = query.lower()
    name = prompt.name.lower()
    description = prompt.description.lower()
    score = 0

    # Exact matches
    if name == q:
        score += 100
    if description == q:
        score += 80
    if any(tag.lower() == q for tag in prompt.tags):
        score += 90

    # Partial matches, earlier is better
    index = name.find(q)
    if index != -1:
        score += max(50 - index * 2, 10)

    index = description.find(q)
    if index != -1:
        score += max(30 - index, 5)

    for tag in prompt.tags:
        index = tag.lower().find(q)
        if index != -1:
            score += max(40 - index, 8)

    index = prompt.content.lower().find(q)
    if index != -1:
        score += max(20 - index // 100, 2)

    word_start = re.compile(r"\b" + re.escape(query), re.IGNORECASE)
    if word_start.search(prompt.name):
        score += 15
    if word_start.search(prompt.description):
        score += 10

    if len(query) >= 3 and prompt.name:
        ratio = len(q) / len(prompt.name)
        if ratio > 0.3:
            score += int(ratio * 10)

    return score


def order_prompts(
    prompts: Iterable[Prompt],
    stats: UsageStats | None = None,
    now: datetime | None = None,
) -> list[Prompt]:
    """Newest first; with usage stats, usage score first and recency as tie-break."""
    if stats is None:
        return sorted(prompts, key=lambda p: p.updated_at, reverse=True)
    now = now or utcnow()
    return sorted(
        prompts,
        key=lambda p: (usage_score(p.id, stats, now), p.updated_at),
        reverse=True,
    )


def order_by_relevance(
    prompts: Iterable[Prompt],
    query: str,
    stats: UsageStats | None = None,
    now: datetime | None = None,
) -> list[Prompt]:
    """Keep prompts matching ``query`` ordered by fuzzy plus usage score."""
    now = now or utcnow()
    scored = [
        (fuzzy_score(p, query) + usage_score(p.id, stats, now), p)
        for p in prompts
        if matches_query(p, query)
    ]
    scored.sort(key=lambda item: (item[0], item[1].updated_at), reverse=True)
    return [p for _, p in scored]
