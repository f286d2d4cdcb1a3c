"""In-character replies: memory recall, prompt assembly, dispatch, write-back."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from storyloom.config import settings
from storyloom.entities import CharacterNotFoundError
from storyloom.llm.backends import CompletionRequest
from storyloom.llm.dispatcher import CompletionDispatcher, DispatchError
from storyloom.llm.prompt import GAME_MASTER, assemble_prompt, is_game_master
from storyloom.memory.campaign import CampaignMemories
from storyloom.memory.extraction import extract_insights, record_exchange
from storyloom.memory.retrieval import MemoryRetriever, format_memories
from storyloom.memory.store import MemoryStore
from storyloom.models import CampaignContext, ResponseOptions

if TYPE_CHECKING:
    from collections.abc import Sequence

    from storyloom.entities import EntityProvider, SessionContext
    from storyloom.models import CharacterProfile, ConversationMessage, WorldInfo

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = (
    "I couldn't find this character in the database. Please refresh the page and try again."
)

# Recent turns folded into the retrieval query alongside the new input.
_QUERY_TURNS = 3


@dataclass(frozen=True)
class CharacterReply:
    response: str
    source: str
    character: CharacterProfile


class CharacterResponder:
    """Produces one reply for one character.

    Memory augmentation is best-effort: any failure there yields a reply
    without recalled memories.  Character resolution and dispatch failures
    propagate.
    """

    def __init__(
        self,
        entities: EntityProvider,
        *,
        store: MemoryStore | None = None,
        retriever: MemoryRetriever | None = None,
        campaigns: CampaignMemories | None = None,
        dispatcher: CompletionDispatcher | None = None,
    ) -> None:
        self._entities = entities
        self._store = store or MemoryStore.get()
        self._retriever = retriever or MemoryRetriever(self._store)
        self._campaigns = campaigns or CampaignMemories(self._store, self._retriever)
        self._dispatcher = dispatcher or CompletionDispatcher.get()

    @property
    def campaigns(self) -> CampaignMemories:
        return self._campaigns

    @property
    def store(self) -> MemoryStore:
        return self._store

    async def resolve_character(
        self, ctx: SessionContext, character_id: str, options: ResponseOptions
    ) -> CharacterProfile:
        if is_game_master(character_id, options):
            return GAME_MASTER
        character = await self._entities.get_character_by_id(ctx, character_id)
        if character is None:
            raise CharacterNotFoundError(character_id)
        return character

    async def recall(
        self,
        character: CharacterProfile,
        user_input: str,
        previous_messages: Sequence[ConversationMessage],
        options: ResponseOptions,
    ) -> str:
        """Formatted memories for the prompt, or "" if none or on failure."""
        if character.is_game_master:
            return ""

        recent = " ".join(m.text for m in list(previous_messages)[-_QUERY_TURNS:])
        query = f"{user_input} {recent}".strip()
        try:
            if options.campaign_id:
                return await self._campaigns.get_campaign_memories(
                    character.id, options.campaign_id, query
                )
            if not previous_messages:
                memories = await self._retriever.retrieve_personality(
                    character.id, limit=settings.personality_memory_limit
                )
            else:
                memories = await self._retriever.retrieve(
                    character.id,
                    query,
                    limit=settings.memory_limit,
                    min_score=settings.memory_min_score,
                )
            return format_memories(memories)
        except Exception:
            logger.exception("Memory recall failed for %s", character.id)
            return ""

    async def _setting(
        self, ctx: SessionContext, character: CharacterProfile, options: ResponseOptions
    ) -> tuple[WorldInfo | None, CampaignContext | None]:
        world = options.world_context
        campaign = options.enriched_context

        if options.campaign_id and campaign is None:
            state = await self._entities.get_campaign_by_id(ctx, options.campaign_id)
            if state is not None:
                campaign = await self._campaigns.enrich_context(
                    options.campaign_id, CampaignContext.from_state(state)
                )
                if world is None and state.world_id:
                    world = await self._entities.get_world_by_id(ctx, state.world_id)

        if world is None and character.world_id:
            world = await self._entities.get_world_by_id(ctx, character.world_id)
        return world, campaign

    async def respond(
        self,
        ctx: SessionContext,
        character_id: str,
        user_input: str,
        previous_messages: Sequence[ConversationMessage] = (),
        options: ResponseOptions | None = None,
        *,
        user_label: str = "User",
        remember: bool = True,
        input_in_history: bool = False,
    ) -> CharacterReply:
        """Generate one reply.

        Raises:
            CharacterNotFoundError: *character_id* does not resolve.
            DispatchError: every completion backend failed.
            EntityAccessError: the entity side refused the actor.
        """
        options = options or ResponseOptions(rp_mode=settings.default_rp_mode)
        character = await self.resolve_character(ctx, character_id, options)

        memories = await self.recall(character, user_input, previous_messages, options)
        world, campaign = await self._setting(ctx, character, options)

        prompt = assemble_prompt(
            character,
            previous_messages,
            user_input,
            options,
            memories=memories,
            world=world,
            campaign=campaign,
            user_label=user_label,
            input_in_history=input_in_history,
        )
        completion = await self._dispatcher.complete(
            CompletionRequest(
                prompt=prompt,
                user_message=user_input,
                temperature=options.temperature,
                max_tokens=options.max_tokens,
            )
        )
        logger.info("Reply for %s via %s", character.name, completion.source)

        if remember and not options.campaign_id and not character.is_game_master:
            await record_exchange(self._store, character.id, user_input, completion.text)
            await extract_insights(self._store, character.id, completion.text)

        return CharacterReply(
            response=completion.text, source=completion.source, character=character
        )


async def enhance_character_api(
    responder: CharacterResponder,
    ctx: SessionContext,
    character_id: str,
    user_input: str,
    previous_messages: Sequence[ConversationMessage] = (),
    options: ResponseOptions | dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Entry point for chat and campaign pages.

    Returns ``{"response", "source"}``.  When the character is missing or
    every backend fails, ``response`` holds a user-facing message,
    ``source`` is None and ``error`` describes the failure.  Authorization
    errors from the entity side propagate unchanged.
    """
    if isinstance(options, dict):
        options = ResponseOptions.model_validate(options)

    try:
        reply = await responder.respond(ctx, character_id, user_input, previous_messages, options)
    except CharacterNotFoundError as exc:
        logger.warning("Character lookup failed: %s", exc)
        return {"response": NOT_FOUND_MESSAGE, "source": None, "error": str(exc)}
    except DispatchError as exc:
        logger.error("Completion failed for %s: %s", character_id, exc)
        return {"response": exc.user_message, "source": None, "error": str(exc)}

    return {"response": reply.response, "source": reply.source}
