"""Campaign-scoped memories.

Campaign memories live in the same per-character log as everything else;
they are told apart by a ``[Campaign: <id>]`` marker at the start of the
content.  Readers filter on the marker and strip it before display.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from storyloom.config import settings
from storyloom.memory.models import MemoryRecord, MemoryType
from storyloom.memory.retrieval import format_memory_line

if TYPE_CHECKING:
    from storyloom.memory.retrieval import MemoryRetriever
    from storyloom.memory.store import MemoryStore
    from storyloom.models import CampaignContext

logger = logging.getLogger(__name__)

_ANY_TAG = re.compile(r"^\[Campaign: (?P<id>[^\]]+)\] ")

PARTICIPANT_TOP_MEMORIES = 2
CONTEXT_TOP_MEMORIES = 5


# -- Tagging -----------------------------------------------------------------


def _marker(campaign_id: str) -> str:
    return f"[Campaign: {campaign_id}] "


def tag(campaign_id: str, content: str) -> str:
    """Prefix *content* with the campaign marker."""
    return f"{_marker(campaign_id)}{content}"


def is_tagged(content: str, campaign_id: str | None = None) -> bool:
    """True if *content* carries the marker for *campaign_id* (any campaign if None)."""
    if not content:
        return False
    if campaign_id is None:
        return _ANY_TAG.match(content) is not None
    return content.startswith(_marker(campaign_id))


def strip(content: str, campaign_id: str) -> str:
    """Remove the marker for *campaign_id*; other content is returned unchanged."""
    marker = _marker(campaign_id)
    if content.startswith(marker):
        return content[len(marker) :]
    return content


def campaign_of(content: str) -> str | None:
    """The campaign id a content string is tagged with, if any."""
    match = _ANY_TAG.match(content or "")
    return match.group("id") if match else None


# -- Reads and writes --------------------------------------------------------


class CampaignMemories:
    """Reads and writes campaign-tagged memories."""

    def __init__(self, store: MemoryStore, retriever: MemoryRetriever) -> None:
        self._store = store
        self._retriever = retriever

    async def add_campaign_memory(
        self,
        character_id: str,
        campaign_id: str,
        content: str,
        type: MemoryType | str = MemoryType.CAMPAIGN_EVENT,  # noqa: A002
        importance: int = 6,
    ) -> MemoryRecord:
        return await self._store.add(character_id, tag(campaign_id, content), type, importance)

    async def get_campaign_memories(
        self, character_id: str, campaign_id: str, query_context: str
    ) -> str:
        """Campaign memories plus a few general ones, formatted for a prompt.

        Memories tagged for other campaigns are left out.  Returns an empty
        string when the character has nothing stored or the read fails.
        """
        try:
            records = await self._store.list(character_id)
            if not records:
                return ""

            ranked = self._retriever.rank(records, query_context)
            campaign = [m for m in ranked if is_tagged(m.content, campaign_id)]
            general = [m for m in ranked if not is_tagged(m.content)]

            selected = (
                campaign[: settings.campaign_memory_limit]
                + general[: settings.general_memory_fallback]
            )
            return "\n".join(
                format_memory_line(m.memory, strip(m.content, campaign_id)) for m in selected
            )
        except Exception:
            logger.exception("Failed to get campaign memories for %s", character_id)
            return ""

    async def enrich_context(
        self, campaign_id: str, context: CampaignContext
    ) -> CampaignContext:
        """Attach the campaign's most important memories across participants."""
        if not campaign_id or not context.participant_ids:
            return context

        try:
            pooled: list[MemoryRecord] = []
            for character_id in context.participant_ids:
                records = [
                    r
                    for r in await self._store.list(character_id)
                    if is_tagged(r.content, campaign_id)
                ]
                records.sort(key=lambda r: r.importance, reverse=True)
                pooled.extend(records[:PARTICIPANT_TOP_MEMORIES])

            pooled.sort(key=lambda r: r.importance, reverse=True)
            lines = [
                f"[{r.type}] {strip(r.content, campaign_id).strip()}"
                for r in pooled[:CONTEXT_TOP_MEMORIES]
            ]
        except Exception:
            logger.exception("Failed to enrich campaign context for %s", campaign_id)
            return context

        return context.model_copy(update={"important_memories": "\n".join(lines)})

    async def process_campaign_interaction(
        self,
        campaign_id: str,
        speaker_id: str,
        speaker_name: str,
        message: str,
        witness_ids: list[str],
    ) -> None:
        """Record a line of dialogue for the speaker and everyone who heard it."""
        await self.add_campaign_memory(
            speaker_id,
            campaign_id,
            f'I said: "{message}"',
            MemoryType.CHARACTER_INTERACTION,
            6,
        )
        for witness_id in witness_ids:
            if witness_id == speaker_id:
                continue
            await self.add_campaign_memory(
                witness_id,
                campaign_id,
                f'{speaker_name} said: "{message}"',
                MemoryType.CHARACTER_INTERACTION,
                5,
            )

    async def record_campaign_event(
        self,
        campaign_id: str,
        event: str,
        involved_ids: list[str],
        importance: int = 7,
    ) -> None:
        for character_id in involved_ids:
            await self.add_campaign_memory(
                character_id, campaign_id, event, MemoryType.CAMPAIGN_EVENT, importance
            )

    async def record_player_decision(
        self,
        campaign_id: str,
        character_id: str,
        decision: str,
        consequences: str = "",
        importance: int = 8,
    ) -> MemoryRecord:
        content = f"Made decision: {decision}"
        if consequences:
            content += f". Consequences: {consequences}"
        return await self.add_campaign_memory(
            character_id, campaign_id, content, MemoryType.PLAYER_DECISION, importance
        )
