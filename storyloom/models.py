"""Read-only entity models owned by the entity-management side.

The core only reads these; creating and persisting them happens elsewhere.
"""

from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Relationship(BaseModel):
    name: str
    relationship: str = ""


class CharacterProfile(BaseModel):
    """A fictional character's identity as seen by prompt assembly."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    personality: str = ""
    traits: str = ""
    background: str = ""
    appearance: str = ""
    relationships: list[Relationship] = Field(default_factory=list)
    world_id: str | None = Field(default=None, alias="worldId")
    is_game_master: bool = Field(default=False, alias="isGameMaster")


class WorldInfo(BaseModel):
    id: str = ""
    name: str
    description: str = ""
    rules: str = ""
    lore: str = ""


class Scene(BaseModel):
    title: str = ""
    description: str = ""


class GMType(StrEnum):
    USER = "USER"
    AI = "AI"


class CampaignState(BaseModel):
    """A multi-character session: participants, scenes and GM control."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    description: str = ""
    participant_ids: list[str] = Field(default_factory=list, alias="participantIds")
    scenes: list[Scene] = Field(default_factory=list)
    current_scene_index: int = Field(default=0, alias="currentSceneIndex")
    gm_type: GMType = Field(default=GMType.USER, alias="gmType")
    world_id: str | None = Field(default=None, alias="worldId")

    @property
    def current_scene(self) -> Scene | None:
        if 0 <= self.current_scene_index < len(self.scenes):
            return self.scenes[self.current_scene_index]
        return None


Sender = Literal["user", "character", "system"]


class ConversationMessage(BaseModel):
    """One turn of a chat or campaign transcript."""

    model_config = ConfigDict(populate_by_name=True)

    sender: Sender
    speaker: str
    text: str
    timestamp: str
    character_id: str | None = Field(default=None, alias="characterId")
    edited: bool = False
    regenerated: bool = False


class SceneContext(BaseModel):
    title: str = "Current scene"
    description: str = ""


class CampaignContext(BaseModel):
    """Campaign state handed to prompt assembly, optionally enriched with memories."""

    name: str
    description: str = ""
    current_scene: SceneContext | None = None
    participant_ids: list[str] = Field(default_factory=list)
    important_memories: str = ""

    @classmethod
    def from_state(cls, campaign: CampaignState) -> "CampaignContext":
        scene = campaign.current_scene
        current = None
        if scene is not None:
            current = SceneContext(
                title=scene.title or "Current scene", description=scene.description
            )
        return cls(
            name=campaign.name,
            description=campaign.description,
            current_scene=current,
            participant_ids=list(campaign.participant_ids),
        )


RPMode = Literal["family-friendly", "lax"]

DEFAULT_GM_PROMPT = "You are a Game Master narrating a fantasy campaign."


class ResponseOptions(BaseModel):
    """Options recognized by the character response entry point."""

    model_config = ConfigDict(populate_by_name=True)

    temperature: float = 0.7
    campaign_id: str | None = Field(default=None, alias="campaignId")
    enriched_context: CampaignContext | None = Field(default=None, alias="enrichedContext")
    world_context: WorldInfo | None = Field(default=None, alias="worldContext")
    is_game_master: bool = Field(default=False, alias="isGameMaster")
    gm_prompt: str = Field(default=DEFAULT_GM_PROMPT, alias="gmPrompt")
    rp_mode: RPMode = Field(default="lax", alias="rpMode")
    max_tokens: int = Field(default=500, alias="maxTokens")
