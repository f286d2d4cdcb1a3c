"""Choosing which characters answer a message in a group campaign.

At most ``max_responders`` characters reply per turn.  The game master is
additive: it narrates whenever the campaign's GM is AI-controlled, when the
user speaks as the GM, or when nobody else can answer.

Candidates are ranked by a single scoring table:

    name mentioned in the message        +10
    traits mention "talkative"            +5
    traits mention "curious"              +3
    background mentions "leader"          +2

Ties keep participant order.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from storyloom.llm.prompt import GAME_MASTER, GM_ID
from storyloom.models import GMType

if TYPE_CHECKING:
    from collections.abc import Sequence

    from storyloom.models import CharacterProfile, ConversationMessage

logger = logging.getLogger(__name__)

PLAYER_ID = "user"

NAME_MENTION_SCORE = 10
TALKATIVE_SCORE = 5
CURIOUS_SCORE = 3
LEADER_SCORE = 2


@dataclass(frozen=True)
class Responder:
    id: str
    name: str


@dataclass
class ResponderSelection:
    responders: list[Responder] = field(default_factory=list)
    use_gm_mode: bool = False
    gm_responder: Responder | None = None

    @property
    def order(self) -> list[Responder]:
        """Everyone who replies this turn: characters first, then the GM."""
        if self.gm_responder is None:
            return list(self.responders)
        return [*self.responders, self.gm_responder]


def _mentions(message: str, name: str) -> bool:
    if not name.strip():
        return False
    pattern = rf"(?<!\w){re.escape(name.strip())}(?!\w)"
    return re.search(pattern, message, re.IGNORECASE) is not None


def score_candidate(character: CharacterProfile, message: str) -> int:
    """Score how eager *character* is to answer *message*."""
    traits = character.traits.lower()
    score = 0
    if _mentions(message, character.name):
        score += NAME_MENTION_SCORE
    if "talkative" in traits:
        score += TALKATIVE_SCORE
    if "curious" in traits:
        score += CURIOUS_SCORE
    if "leader" in character.background.lower():
        score += LEADER_SCORE
    return score


def rank_candidates(
    candidates: Sequence[CharacterProfile], message: str
) -> list[CharacterProfile]:
    return sorted(candidates, key=lambda c: score_candidate(c, message), reverse=True)


def _last_character_speaker(
    conversation: Sequence[ConversationMessage],
    characters: Sequence[CharacterProfile],
) -> CharacterProfile | None:
    by_id = {c.id: c for c in characters}
    by_name = {c.name.lower(): c for c in characters}
    for message in reversed(conversation):
        if message.sender != "character":
            continue
        if message.character_id == GM_ID or message.speaker == GAME_MASTER.name:
            continue
        if message.character_id and message.character_id in by_id:
            return by_id[message.character_id]
        return by_name.get(message.speaker.lower())
    return None


def select_responders(
    speaking_as: str,
    characters: Sequence[CharacterProfile],
    conversation: Sequence[ConversationMessage],
    user_message: str,
    *,
    gm_type: GMType = GMType.USER,
    max_responders: int = 2,
) -> ResponderSelection:
    """Decide who replies to *user_message* and in what order.

    Args:
        speaking_as: ``"user"`` for the plain player, ``"GM"`` when the user
            speaks as game master, otherwise the id of the character the user
            is voicing.
        characters: Campaign participants.
        conversation: Transcript before this message, oldest first.
        user_message: The incoming message.
        gm_type: Who controls the campaign's game master.
        max_responders: Cap on character replies; the GM is not counted.
    """
    chosen: list[CharacterProfile] = []
    gm_fallback = False

    if speaking_as not in (PLAYER_ID, GM_ID):
        candidates = [c for c in characters if c.id != speaking_as]
        chosen = rank_candidates(candidates, user_message)[: min(max_responders, len(candidates))]
        gm_fallback = not candidates
    else:
        last = _last_character_speaker(conversation, characters)
        if last is not None:
            chosen.append(last)
        remaining = [c for c in characters if c.id not in {p.id for p in chosen}]
        slots = max(max_responders - len(chosen), 0)
        chosen.extend(rank_candidates(remaining, user_message)[:slots])
        gm_fallback = not chosen

    use_gm = gm_type == GMType.AI or speaking_as == GM_ID or gm_fallback
    selection = ResponderSelection(
        responders=[Responder(id=c.id, name=c.name) for c in chosen],
        use_gm_mode=use_gm,
        gm_responder=Responder(id=GM_ID, name=GAME_MASTER.name) if use_gm else None,
    )
    logger.info(
        "Responders for %s: %s%s",
        speaking_as,
        ", ".join(r.name for r in selection.responders) or "(none)",
        " + GM" if use_gm else "",
    )
    return selection
