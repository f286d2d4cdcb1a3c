"""Data models for memory storage and retrieval."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

UNKNOWN_TYPE = "unknown"
DEFAULT_IMPORTANCE = 5


class MemoryType(StrEnum):
    FACT = "FACT"
    EVENT = "EVENT"
    PREFERENCE = "PREFERENCE"
    RELATIONSHIP = "RELATIONSHIP"
    CONVERSATION = "CONVERSATION"
    CAMPAIGN_EVENT = "CAMPAIGN_EVENT"
    CHARACTER_INTERACTION = "CHARACTER_INTERACTION"
    PLAYER_DECISION = "PLAYER_DECISION"
    WORLD_CHANGE = "WORLD_CHANGE"
    QUEST_PROGRESS = "QUEST_PROGRESS"


def normalize_type(value: Any) -> str:
    """Map legacy spellings (``"fact"``, ``"campaign_event"``) onto MemoryType.

    Types outside the enum are kept verbatim; empty values become ``"unknown"``.
    """
    if value is None:
        return UNKNOWN_TYPE
    text = str(value).strip()
    if not text:
        return UNKNOWN_TYPE
    upper = text.upper()
    if upper in MemoryType.__members__:
        return MemoryType[upper].value
    return text


class MemoryRecord(BaseModel):
    """A single memory attributed to one character.

    Serialized with camelCase keys so the persisted JSON array keeps the
    shape older clients wrote.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    character_id: str = Field(default="", alias="characterId")
    content: str
    type: str = UNKNOWN_TYPE
    importance: int = Field(default=DEFAULT_IMPORTANCE, ge=1, le=10)
    timestamp: str = ""

    @model_validator(mode="before")
    @classmethod
    def _lift_legacy_metadata(cls, data: Any) -> Any:
        # Older records kept type/importance/timestamp under "metadata".
        if isinstance(data, dict) and isinstance(data.get("metadata"), dict):
            meta = data["metadata"]
            data = {k: v for k, v in data.items() if k != "metadata"}
            for key in ("type", "importance", "timestamp"):
                if data.get(key) is None and meta.get(key) is not None:
                    data[key] = meta[key]
        return data

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("content", mode="before")
    @classmethod
    def _coerce_content(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> str:
        return normalize_type(value)

    @field_validator("importance", mode="before")
    @classmethod
    def _default_importance(cls, value: Any) -> Any:
        # Old clients wrote 0 or out-of-range values; read them as default or clamp.
        if not value:
            return DEFAULT_IMPORTANCE
        try:
            number = int(value)
        except (TypeError, ValueError):
            return value
        return min(max(number, 1), 10)

    @property
    def created_at(self) -> datetime | None:
        """Parsed timestamp, or None when missing or unparseable."""
        if not self.timestamp:
            return None
        try:
            parsed = datetime.fromisoformat(self.timestamp.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class ScoredMemory(BaseModel):
    """A memory paired with its relevance to one query. Never persisted."""

    model_config = ConfigDict(frozen=True)

    memory: MemoryRecord
    score: float = 0.0

    @property
    def id(self) -> str:
        return self.memory.id

    @property
    def content(self) -> str:
        return self.memory.content

    @property
    def type(self) -> str:
        return self.memory.type

    @property
    def importance(self) -> int:
        return self.memory.importance

    @property
    def timestamp(self) -> str:
        return self.memory.timestamp
