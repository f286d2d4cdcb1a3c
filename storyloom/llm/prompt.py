"""Prompt assembly for in-character replies.

Sections always appear in the same order: identity (or the game-master
directive), recalled memories, world and campaign context, content policy,
recent conversation, the new input, and finally a ``<Name>:`` cue.
Only the last few turns are included; older history is dropped.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from storyloom.config import settings
from storyloom.models import CharacterProfile, ResponseOptions

if TYPE_CHECKING:
    from collections.abc import Sequence

    from storyloom.models import CampaignContext, ConversationMessage, WorldInfo

logger = logging.getLogger(__name__)

GM_ID = "GM"

GAME_MASTER = CharacterProfile(
    id=GM_ID,
    name="Game Master",
    personality=(
        "An engaging and fair Game Master who narrates the campaign, describes scenes, "
        "controls NPCs, and guides the story."
    ),
    background=(
        "As the Game Master, you manage the game world and create an immersive "
        "experience for the players."
    ),
    appearance="The omniscient narrator and guide of the campaign.",
    traits="Fair, creative, descriptive, adaptable",
    is_game_master=True,
)

CHAT_MODE_HINT = (
    "In chat mode, you should acknowledge your world origin if directly asked, but "
    "don't focus on it. This is a casual conversation, not a roleplay in your "
    "fictional setting."
)
LOUNGE_HINT = (
    "You're in a casual conversation outside your normal fictional setting. Focus on "
    "your personality and background, but don't reference any specific setting "
    "unless asked."
)
LOUNGE_NAME = "Character Lounge"

CONTENT_POLICIES = {
    "family-friendly": (
        "Avoid any sexual content, violence, or morally ambiguous themes. "
        "Respond with a positive, safe tone."
    ),
    "lax": (
        "Avoid sexual content, but you may include violent or morally ambiguous "
        "themes as appropriate to your character."
    ),
}


def is_game_master(character_id: str | None, options: ResponseOptions | None = None) -> bool:
    return character_id == GM_ID or bool(options and options.is_game_master)


# -- Sections ----------------------------------------------------------------


def _identity_block(character: CharacterProfile) -> str:
    lines = [f"You are roleplaying as {character.name}."]
    if character.personality:
        lines.append(f"Personality: {character.personality}")
    if character.traits:
        lines.append(f"Traits: {character.traits}")
    if character.background:
        lines.append(f"Background: {character.background}")
    if character.appearance:
        lines.append(f"Appearance: {character.appearance}")
    if character.relationships:
        lines.append("Relationships:")
        lines.extend(f"- {r.name}: {r.relationship}" for r in character.relationships)
    return "\n".join(lines)


def _world_block(world: WorldInfo) -> list[str]:
    lines = ["World Information:", f"Name: {world.name}"]
    if world.description:
        lines.append(f"Description: {world.description}")
    if world.rules:
        lines.append(f"Rules: {world.rules}")
    if world.lore:
        lines.append(f"Lore: {world.lore}")
    return lines


def _campaign_block(campaign: CampaignContext) -> list[str]:
    lines = [f"Campaign: {campaign.name}"]
    if campaign.description:
        lines.append(f"Campaign Description: {campaign.description}")
    if campaign.current_scene:
        lines.append(f"Current Scene: {campaign.current_scene.title}")
        if campaign.current_scene.description:
            lines.append(f"Scene Description: {campaign.current_scene.description}")
    if campaign.important_memories:
        lines.append("Important Campaign Events:")
        lines.append(campaign.important_memories)
    return lines


def _setting_block(
    world: WorldInfo | None, campaign: CampaignContext | None, campaign_mode: bool
) -> str:
    if campaign_mode:
        lines: list[str] = []
        if world:
            lines.extend(_world_block(world))
        if campaign:
            if lines:
                lines.append("")
            lines.extend(_campaign_block(campaign))
        return "\n".join(lines)

    # Chat mode keeps the character out of world-specific roleplay.
    if world:
        return f"World Information:\nWorld Name: {world.name}\n{CHAT_MODE_HINT}"
    return f"World Information:\nWorld Name: {LOUNGE_NAME}\n{LOUNGE_HINT}"


def _speaker(message: ConversationMessage, character: CharacterProfile) -> str:
    if message.speaker:
        return message.speaker
    if message.sender == "user":
        return "User"
    if message.sender == "system":
        return "System"
    return character.name


def format_history(
    history: Sequence[ConversationMessage], character: CharacterProfile, window: int
) -> str:
    recent = list(history)[-window:] if window > 0 else []
    if not recent:
        return "No previous conversation"
    return "\n".join(f"{_speaker(m, character)}: {m.text}" for m in recent)


# -- Assembly ----------------------------------------------------------------


def assemble_prompt(
    character: CharacterProfile,
    history: Sequence[ConversationMessage],
    user_input: str,
    options: ResponseOptions | None = None,
    *,
    memories: str = "",
    world: WorldInfo | None = None,
    campaign: CampaignContext | None = None,
    user_label: str = "User",
    window: int | None = None,
    input_in_history: bool = False,
) -> str:
    """Build the complete prompt for one in-character reply.

    Args:
        character: The responding character (``GAME_MASTER`` in GM mode).
        history: Prior transcript, oldest first. Only the last *window*
            turns are used.
        user_input: The new message being answered.
        options: Response options; GM mode, content policy and campaign id.
        memories: Pre-formatted recalled memories, one per line.
        world: World lore. Full lore only in campaign mode.
        campaign: Campaign context, usually enriched with important memories.
        user_label: Speaker label for the new input.
        window: Number of past turns to keep (defaults to
            ``settings.history_window``, capped at 5).
        input_in_history: *history* already contains the new input, so it
            is not repeated after the transcript.

    Returns:
        The prompt text, ending with a ``<Name>:`` completion cue.
    """
    options = options or ResponseOptions()
    window = min(settings.history_window if window is None else window, 5)
    gm_mode = character.is_game_master or options.is_game_master
    campaign = campaign or options.enriched_context
    campaign_mode = bool(options.campaign_id) or campaign is not None or gm_mode
    world = world or options.world_context

    sections = [options.gm_prompt if gm_mode else _identity_block(character)]

    if memories:
        sections.append(f"Memories:\n{memories}")

    setting = _setting_block(world, campaign, campaign_mode)
    if setting:
        sections.append(setting)

    sections.append(CONTENT_POLICIES.get(options.rp_mode, CONTENT_POLICIES["lax"]))
    sections.append(f"Conversation History:\n{format_history(history, character, window)}")
    if not input_in_history:
        sections.append(f"{user_label}: {user_input}")
    sections.append(f"{character.name}:")

    prompt = "\n\n".join(sections)
    logger.debug("Assembled prompt for %s (%d chars)", character.name, len(prompt))
    return prompt
