"""Tests for prompt assembly."""

from datetime import UTC, datetime, timedelta

from storyloom.llm.prompt import (
    CHAT_MODE_HINT,
    CONTENT_POLICIES,
    GAME_MASTER,
    LOUNGE_NAME,
    assemble_prompt,
    format_history,
    is_game_master,
)
from storyloom.models import (
    CampaignContext,
    CharacterProfile,
    ConversationMessage,
    Relationship,
    ResponseOptions,
    SceneContext,
    WorldInfo,
)


def _history(count: int) -> list[ConversationMessage]:
    start = datetime(2024, 1, 1, tzinfo=UTC)
    messages = []
    for i in range(count):
        user = i % 2 == 0
        messages.append(
            ConversationMessage(
                sender="user" if user else "character",
                speaker="User" if user else "Aria",
                text=f"turn {i}",
                timestamp=(start + timedelta(seconds=i)).isoformat(),
            )
        )
    return messages


def _index(prompt: str, needle: str) -> int:
    position = prompt.find(needle)
    assert position >= 0, f"{needle!r} not in prompt"
    return position


# -- Section order -----------------------------------------------------------


def test_sections_in_order(aria: CharacterProfile, world: WorldInfo):
    campaign = CampaignContext(
        name="The Sunken Crown",
        current_scene=SceneContext(title="The Docks"),
        important_memories="[EVENT] Found the map",
    )
    prompt = assemble_prompt(
        aria,
        _history(2),
        "What now?",
        ResponseOptions(campaign_id="c1"),
        memories="- (FACT, just now) Likes tea",
        world=world,
        campaign=campaign,
    )

    order = [
        _index(prompt, "You are roleplaying as Aria."),
        _index(prompt, "Memories:"),
        _index(prompt, "World Information:"),
        _index(prompt, "Campaign: The Sunken Crown"),
        _index(prompt, CONTENT_POLICIES["lax"]),
        _index(prompt, "Conversation History:"),
        _index(prompt, "User: What now?"),
    ]
    assert order == sorted(order)
    assert prompt.endswith("Aria:")


def test_identity_block_fields():
    character = CharacterProfile(
        id="x",
        name="Bram",
        personality="Gruff",
        traits="quiet",
        background="blacksmith",
        appearance="soot-stained",
        relationships=[Relationship(name="Aria", relationship="sister")],
    )
    prompt = assemble_prompt(character, [], "hi")
    assert "Personality: Gruff" in prompt
    assert "Traits: quiet" in prompt
    assert "Background: blacksmith" in prompt
    assert "Appearance: soot-stained" in prompt
    assert "- Aria: sister" in prompt


def test_no_memories_section_when_empty(aria: CharacterProfile):
    assert "Memories:" not in assemble_prompt(aria, [], "hi")


# -- History window ----------------------------------------------------------


def test_history_window_capped_at_five(aria: CharacterProfile):
    prompt = assemble_prompt(aria, _history(9), "next", window=10)

    assert "turn 3" not in prompt
    for i in range(4, 9):
        assert f"turn {i}" in prompt


def test_history_window_smaller(aria: CharacterProfile):
    prompt = assemble_prompt(aria, _history(6), "next", window=2)
    assert "turn 3" not in prompt
    assert "turn 4" in prompt
    assert "turn 5" in prompt


def test_empty_history_placeholder(aria: CharacterProfile):
    assert format_history([], aria, 5) == "No previous conversation"


def test_history_speaker_labels(aria: CharacterProfile):
    text = format_history(_history(2), aria, 5)
    assert text.splitlines() == ["User: turn 0", "Aria: turn 1"]


# -- Chat vs campaign mode ---------------------------------------------------


def test_chat_mode_uses_world_hint(aria: CharacterProfile, world: WorldInfo):
    prompt = assemble_prompt(aria, [], "hi", world=world)
    assert "World Name: Eldoria" in prompt
    assert CHAT_MODE_HINT in prompt
    assert "Magic costs memories" not in prompt


def test_chat_mode_without_world_is_lounge(aria: CharacterProfile):
    prompt = assemble_prompt(aria, [], "hi")
    assert f"World Name: {LOUNGE_NAME}" in prompt


def test_campaign_mode_full_world(aria: CharacterProfile, world: WorldInfo):
    prompt = assemble_prompt(aria, [], "hi", ResponseOptions(campaign_id="c1"), world=world)
    assert "Rules: Magic costs memories" in prompt
    assert "Lore: The sky fell once" in prompt
    assert CHAT_MODE_HINT not in prompt


def test_enriched_context_from_options(aria: CharacterProfile):
    options = ResponseOptions(
        enriched_context=CampaignContext(name="Quest", important_memories="[FACT] Oath sworn")
    )
    prompt = assemble_prompt(aria, [], "hi", options)
    assert "Campaign: Quest" in prompt
    assert "Important Campaign Events:\n[FACT] Oath sworn" in prompt


# -- Game master -------------------------------------------------------------


def test_gm_mode_uses_gm_prompt():
    options = ResponseOptions(is_game_master=True, gm_prompt="Narrate grimly.")
    prompt = assemble_prompt(GAME_MASTER, [], "Look around", options)

    assert prompt.startswith("Narrate grimly.")
    assert "You are roleplaying as" not in prompt
    assert prompt.endswith("Game Master:")


def test_is_game_master():
    assert is_game_master("GM")
    assert is_game_master("aria", ResponseOptions(is_game_master=True))
    assert not is_game_master("aria", ResponseOptions())


# -- Content policy ----------------------------------------------------------


def test_family_friendly_policy(aria: CharacterProfile):
    prompt = assemble_prompt(aria, [], "hi", ResponseOptions(rp_mode="family-friendly"))
    assert CONTENT_POLICIES["family-friendly"] in prompt
    assert CONTENT_POLICIES["lax"] not in prompt


def test_user_label(aria: CharacterProfile):
    prompt = assemble_prompt(aria, [], "Follow me", user_label="Bram")
    assert "Bram: Follow me" in prompt


def test_input_already_in_history_is_not_repeated(aria: CharacterProfile):
    history = _history(2)
    prompt = assemble_prompt(aria, history, "turn 1", input_in_history=True)

    assert prompt.count("turn 1") == 1
    assert _index(prompt, "User: turn 0") < _index(prompt, "Aria: turn 1")
    assert prompt.endswith("Aria: turn 1\n\nAria:")
