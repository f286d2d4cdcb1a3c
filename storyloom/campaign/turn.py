"""Running one user turn of a campaign session.

Responders reply strictly one after another: each sees the transcript
including replies already produced this turn.  The first failure stops
the turn; replies produced before it are kept.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from storyloom.campaign.selector import PLAYER_ID, select_responders
from storyloom.character import NOT_FOUND_MESSAGE
from storyloom.config import settings
from storyloom.entities import CharacterNotFoundError
from storyloom.llm.dispatcher import DispatchError
from storyloom.llm.prompt import GAME_MASTER, GM_ID
from storyloom.memory.extraction import record_campaign_exchange
from storyloom.models import CampaignContext, ResponseOptions

if TYPE_CHECKING:
    from storyloom.campaign.selector import Responder, ResponderSelection
    from storyloom.character import CharacterResponder
    from storyloom.entities import EntityProvider, SessionContext
    from storyloom.models import CampaignState, CharacterProfile, ConversationMessage, WorldInfo
    from storyloom.session import Session

logger = logging.getLogger(__name__)

PLAYER_NAME = "Player"


@dataclass
class TurnResult:
    """Outcome of one turn.

    ``replies`` holds every reply produced, in order.  ``error`` is a
    user-facing message when the turn stopped early, and ``failed_responder``
    names who it stopped at.
    """

    user_message: ConversationMessage
    selection: ResponderSelection
    replies: list[ConversationMessage] = field(default_factory=list)
    error: str | None = None
    failed_responder: Responder | None = None

    @property
    def completed(self) -> bool:
        return self.error is None


class CampaignTurnRunner:
    """Selects responders for a campaign message and generates their replies."""

    def __init__(self, responder: CharacterResponder, entities: EntityProvider) -> None:
        self._responder = responder
        self._entities = entities

    async def _participants(
        self, ctx: SessionContext, campaign: CampaignState
    ) -> list[CharacterProfile]:
        characters = []
        for character_id in campaign.participant_ids:
            character = await self._entities.get_character_by_id(ctx, character_id)
            if character is None:
                logger.warning(
                    "Campaign %s lists unknown participant %s", campaign.id, character_id
                )
                continue
            characters.append(character)
        return characters

    async def _world(self, ctx: SessionContext, campaign: CampaignState) -> WorldInfo | None:
        if not campaign.world_id:
            return None
        return await self._entities.get_world_by_id(ctx, campaign.world_id)

    async def run_turn(
        self,
        ctx: SessionContext,
        campaign: CampaignState,
        speaking_as: str,
        user_message: str,
        session: Session,
        *,
        rp_mode: str | None = None,
    ) -> TurnResult:
        """Append *user_message* to *session* and collect the replies to it."""
        characters = await self._participants(ctx, campaign)
        prior = list(session.messages)

        selection = select_responders(
            speaking_as,
            characters,
            prior,
            user_message,
            gm_type=campaign.gm_type,
            max_responders=settings.max_responders,
        )

        speaker_name = _speaker_name(speaking_as, characters)
        posted = session.add(
            "user",
            speaker_name,
            user_message,
            character_id=speaking_as if speaking_as != PLAYER_ID else None,
        )
        result = TurnResult(user_message=posted, selection=selection)

        context = await self._responder.campaigns.enrich_context(
            campaign.id, CampaignContext.from_state(campaign)
        )
        world = await self._world(ctx, campaign)
        witnesses = [c.id for c in characters]

        for responder in selection.order:
            is_gm = responder.id == GM_ID
            options = ResponseOptions(
                campaign_id=campaign.id,
                enriched_context=context,
                world_context=world,
                is_game_master=is_gm,
                rp_mode=rp_mode or settings.default_rp_mode,
            )
            try:
                reply = await self._responder.respond(
                    ctx,
                    responder.id,
                    user_message,
                    [*prior, posted, *result.replies],
                    options,
                    user_label=speaker_name,
                    input_in_history=True,
                )
            except CharacterNotFoundError as exc:
                logger.error("Turn halted in campaign %s: %s", campaign.id, exc)
                result.error = NOT_FOUND_MESSAGE
                result.failed_responder = responder
                break
            except DispatchError as exc:
                logger.error(
                    "Turn halted in campaign %s at %s: %s", campaign.id, responder.name, exc
                )
                result.error = exc.user_message
                result.failed_responder = responder
                break

            message = session.add(
                "character",
                reply.character.name,
                reply.response,
                character_id=responder.id,
            )
            result.replies.append(message)

            if not is_gm:
                await self._remember(
                    campaign.id, reply.character, user_message, reply.response, witnesses
                )

        return result

    async def _remember(
        self,
        campaign_id: str,
        character: CharacterProfile,
        user_message: str,
        reply: str,
        witnesses: list[str],
    ) -> None:
        campaigns = self._responder.campaigns
        try:
            await campaigns.process_campaign_interaction(
                campaign_id, character.id, character.name, reply, witnesses
            )
        except Exception:
            logger.exception("Failed to record interaction for %s", character.id)
        await record_campaign_exchange(campaigns, campaign_id, character.id, user_message, reply)


def _speaker_name(speaking_as: str, characters: list[CharacterProfile]) -> str:
    if speaking_as == PLAYER_ID:
        return PLAYER_NAME
    if speaking_as == GM_ID:
        return GAME_MASTER.name
    for character in characters:
        if character.id == speaking_as:
            return character.name
    return PLAYER_NAME
