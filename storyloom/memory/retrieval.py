"""Ranking a character's memories against the current conversation."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from storyloom.config import settings
from storyloom.memory.models import MemoryRecord, MemoryType, ScoredMemory
from storyloom.memory.scoring import get_scorer

if TYPE_CHECKING:
    from collections.abc import Iterable

    from storyloom.memory.scoring import RelevanceScorer
    from storyloom.memory.store import MemoryStore

logger = logging.getLogger(__name__)

# Lower rank sorts first; anything not listed shares the last rank.
_PERSONALITY_PRIORITY: dict[str, int] = {
    MemoryType.PREFERENCE: 0,
    MemoryType.RELATIONSHIP: 1,
    MemoryType.FACT: 2,
    MemoryType.EVENT: 3,
    MemoryType.CONVERSATION: 4,
}
_UNRANKED = len(_PERSONALITY_PRIORITY)


def time_ago(timestamp: str | None, now: datetime | None = None) -> str:
    """Readable age of an ISO timestamp: "3 days ago", "just now", ..."""
    if not timestamp:
        return "unknown time"
    try:
        then = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return "unknown time"
    if then.tzinfo is None:
        then = then.replace(tzinfo=UTC)

    seconds = int(((now or datetime.now(UTC)) - then).total_seconds())
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days} days ago"
    if hours > 0:
        return f"{hours} hours ago"
    if minutes > 0:
        return f"{minutes} minutes ago"
    return "just now"


def format_memory_line(record: MemoryRecord, content: str | None = None) -> str:
    """``- (<type>, <time ago>) <content>``; *content* overrides the record's text."""
    text = record.content if content is None else content
    return f"- ({record.type}, {time_ago(record.timestamp)}) {text}"


def format_memories(memories: Iterable[ScoredMemory | MemoryRecord]) -> str:
    """Format memories for injection into a prompt, one line each."""
    lines = []
    for item in memories:
        record = item.memory if isinstance(item, ScoredMemory) else item
        lines.append(format_memory_line(record))
    return "\n".join(lines)


class MemoryRetriever:
    """Scores a character's memories against a context string."""

    def __init__(self, store: MemoryStore, scorer: RelevanceScorer | None = None) -> None:
        self._store = store
        self._scorer = scorer or get_scorer(settings.relevance_scorer)

    @property
    def store(self) -> MemoryStore:
        return self._store

    @property
    def scorer(self) -> RelevanceScorer:
        return self._scorer

    async def _load(self, character_id: str) -> list[MemoryRecord]:
        try:
            return await self._store.list(character_id)
        except Exception:
            logger.exception("Memory read failed for %s", character_id)
            return []

    def rank(self, records: Iterable[MemoryRecord], query_context: str) -> list[ScoredMemory]:
        """Score every record and sort by (score, importance) descending."""
        scored = [
            ScoredMemory(memory=record, score=self._scorer.score(query_context, record.content))
            for record in records
        ]
        scored.sort(key=lambda m: (m.score, m.importance), reverse=True)
        return scored

    async def retrieve(
        self,
        character_id: str,
        query_context: str,
        limit: int | None = 5,
        min_score: float = 0.1,
    ) -> list[ScoredMemory]:
        """Return up to *limit* memories scoring at least *min_score*."""
        records = await self._load(character_id)
        if not records:
            return []

        ranked = [m for m in self.rank(records, query_context) if m.score >= min_score]
        if limit is not None:
            ranked = ranked[: max(limit, 0)]
        logger.debug(
            "Retrieved %d/%d memories for %s", len(ranked), len(records), character_id
        )
        return ranked

    async def retrieve_personality(
        self, character_id: str, limit: int = 7
    ) -> list[ScoredMemory]:
        """Personality-defining memories for when there is no query context yet.

        Ordered by type (preferences first, then relationships, facts,
        events, conversations, everything else), then by importance.
        """
        records = await self._load(character_id)
        ordered = sorted(
            records,
            key=lambda r: (_PERSONALITY_PRIORITY.get(r.type, _UNRANKED), -r.importance),
        )
        return [ScoredMemory(memory=r, score=0.0) for r in ordered[: max(limit, 0)]]
