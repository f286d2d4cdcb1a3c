"""Entity lookups consumed from the entity-management side.

Every call takes an explicit ``SessionContext`` naming the acting user;
nothing here reads an ambient "current user".
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from storyloom.models import CampaignState, CharacterProfile, WorldInfo

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionContext:
    """Who is acting. Passed through every entity and response call."""

    actor_id: str


class EntityAccessError(Exception):
    """The entity side refused access. Surfaced verbatim, never retried."""


class CharacterNotFoundError(LookupError):
    """A character id did not resolve to a profile."""

    def __init__(self, character_id: str) -> None:
        super().__init__(f"Character with ID {character_id} not found")
        self.character_id = character_id


@runtime_checkable
class EntityProvider(Protocol):
    """Protocol for the read side of character, campaign and world records."""

    async def get_character_by_id(
        self, ctx: SessionContext, character_id: str
    ) -> CharacterProfile | None: ...

    async def get_campaign_by_id(
        self, ctx: SessionContext, campaign_id: str
    ) -> CampaignState | None: ...

    async def get_characters(
        self, ctx: SessionContext, world_id: str | None = None
    ) -> list[CharacterProfile]: ...

    async def get_world_by_id(self, ctx: SessionContext, world_id: str) -> WorldInfo | None: ...


class LibraryEntityProvider:
    """Read-only provider over an in-memory library of entities.

    Optionally restricted to a set of actor ids; any other actor gets
    ``EntityAccessError``.
    """

    def __init__(
        self,
        characters: list[CharacterProfile] | None = None,
        campaigns: list[CampaignState] | None = None,
        worlds: list[WorldInfo] | None = None,
        allowed_actors: set[str] | None = None,
    ) -> None:
        self._characters = {c.id: c for c in characters or []}
        self._campaigns = {c.id: c for c in campaigns or []}
        self._worlds = {w.id: w for w in worlds or []}
        self._allowed_actors = allowed_actors

    @classmethod
    def from_file(cls, path: Path) -> LibraryEntityProvider:
        """Load ``{"characters": [...], "campaigns": [...], "worlds": [...]}``."""
        data = json.loads(path.read_text(encoding="utf-8"))
        provider = cls(
            characters=[CharacterProfile.model_validate(c) for c in data.get("characters", [])],
            campaigns=[CampaignState.model_validate(c) for c in data.get("campaigns", [])],
            worlds=[WorldInfo.model_validate(w) for w in data.get("worlds", [])],
        )
        logger.info(
            "Loaded library %s: %d characters, %d campaigns, %d worlds",
            path,
            len(provider._characters),
            len(provider._campaigns),
            len(provider._worlds),
        )
        return provider

    def _check(self, ctx: SessionContext) -> None:
        if self._allowed_actors is not None and ctx.actor_id not in self._allowed_actors:
            msg = f"Actor {ctx.actor_id} is not authorized"
            raise EntityAccessError(msg)

    async def get_character_by_id(
        self, ctx: SessionContext, character_id: str
    ) -> CharacterProfile | None:
        self._check(ctx)
        return self._characters.get(character_id)

    async def get_campaign_by_id(
        self, ctx: SessionContext, campaign_id: str
    ) -> CampaignState | None:
        self._check(ctx)
        return self._campaigns.get(campaign_id)

    async def get_characters(
        self, ctx: SessionContext, world_id: str | None = None
    ) -> list[CharacterProfile]:
        self._check(ctx)
        if world_id is None:
            return list(self._characters.values())
        return [c for c in self._characters.values() if c.world_id == world_id]

    async def get_world_by_id(self, ctx: SessionContext, world_id: str) -> WorldInfo | None:
        self._check(ctx)
        return self._worlds.get(world_id)
