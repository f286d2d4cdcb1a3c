"""Writing conversation exchanges back into memory.

After each reply the exchange is stored so later turns can recall it.
Extraction here is keyword-driven; a model-backed extractor can slot in
behind the same helpers.  Every helper is best-effort: failures are logged
and never reach the conversation.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from storyloom.memory.models import MemoryType

if TYPE_CHECKING:
    from storyloom.memory.campaign import CampaignMemories
    from storyloom.memory.store import MemoryStore

logger = logging.getLogger(__name__)

# (pattern, memory type, importance, content prefix)
_INSIGHT_RULES: list[tuple[re.Pattern[str], MemoryType, int, str]] = [
    (re.compile(r"\b(think|feel|opinion)\b"), MemoryType.PREFERENCE, 7, "Opinion expressed"),
    (re.compile(r"\b(always|never|usually)\b"), MemoryType.FACT, 6, "Potential trait/pattern"),
    (
        re.compile(r"\b(friend|enemy|ally|hate|love)\b"),
        MemoryType.RELATIONSHIP,
        8,
        "Relationship note",
    ),
]

_COMMITMENT = re.compile(r"\b(promise|swear|never forget)\b")


async def record_exchange(
    store: MemoryStore, character_id: str, user_text: str, reply_text: str
) -> int:
    """Store both sides of a chat exchange. Returns the number of memories written."""
    written = 0
    try:
        if user_text:
            await store.add(
                character_id, f'User said: "{user_text}"', MemoryType.CONVERSATION, 4
            )
            written += 1
        if reply_text:
            await store.add(
                character_id, f'I responded: "{reply_text}"', MemoryType.CONVERSATION, 3
            )
            written += 1
    except Exception:
        logger.exception("Failed to record exchange for %s", character_id)
    return written


async def extract_insights(store: MemoryStore, character_id: str, text: str) -> int:
    """Store opinion, habit and relationship notes found in *text*."""
    lowered = text.lower()
    written = 0
    try:
        for pattern, memory_type, importance, prefix in _INSIGHT_RULES:
            if pattern.search(lowered):
                await store.add(character_id, f"{prefix}: {text}", memory_type, importance)
                written += 1
    except Exception:
        logger.exception("Failed to extract insights for %s", character_id)
    return written


async def record_campaign_exchange(
    campaigns: CampaignMemories,
    campaign_id: str,
    character_id: str,
    user_text: str,
    reply_text: str,
) -> int:
    """Store a campaign exchange, flagging promises and oaths as important facts."""
    written = 0
    try:
        await campaigns.add_campaign_memory(
            character_id,
            campaign_id,
            f'In response to "{user_text}", I said "{reply_text}"',
            MemoryType.CONVERSATION,
            5,
        )
        written += 1

        if _COMMITMENT.search(f"{user_text} {reply_text}".lower()):
            await campaigns.add_campaign_memory(
                character_id,
                campaign_id,
                "Important: There was a promise or commitment made in this "
                f'conversation: "{user_text}" -> "{reply_text}"',
                MemoryType.FACT,
                8,
            )
            written += 1
    except Exception:
        logger.exception("Failed to record campaign exchange for %s", character_id)
    return written
