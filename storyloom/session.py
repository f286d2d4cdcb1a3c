"""In-memory conversation transcript for a chat or campaign session."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from storyloom.autosave import Debouncer
from storyloom.models import ConversationMessage

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from storyloom.models import Sender

    Persist = Callable[[list[ConversationMessage]], Awaitable[None]]

logger = logging.getLogger(__name__)

_TICK = timedelta(milliseconds=1)


def _parse(timestamp: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


@dataclass
class Session:
    """Ordered transcript. Messages are appended or edited in place, never removed.

    When *persist* is set, every change schedules it through *debouncer*
    (the shared one from ``get_debouncer()`` by default) so bursts of edits
    produce one write.
    """

    session_id: str = ""
    messages: list[ConversationMessage] = field(default_factory=list)
    persist: Persist | None = None
    debouncer: Debouncer | None = None

    def next_timestamp(self) -> str:
        """A timestamp strictly after every message already in the transcript."""
        now = datetime.now(UTC)
        last = self.last_timestamp
        if last is not None and now <= last:
            now = last + _TICK
        return now.isoformat()

    @property
    def last_timestamp(self) -> datetime | None:
        for message in reversed(self.messages):
            parsed = _parse(message.timestamp)
            if parsed is not None:
                return parsed
        return None

    def add(
        self,
        sender: Sender,
        speaker: str,
        text: str,
        *,
        character_id: str | None = None,
        timestamp: str | None = None,
    ) -> ConversationMessage:
        """Append a message and return it."""
        message = ConversationMessage(
            sender=sender,
            speaker=speaker,
            text=text,
            timestamp=timestamp or self.next_timestamp(),
            character_id=character_id,
        )
        self.messages.append(message)
        self._changed()
        return message

    def edit(self, index: int, text: str) -> ConversationMessage:
        """Replace a message's text in place and mark it edited."""
        updated = self.messages[index].model_copy(update={"text": text, "edited": True})
        self.messages[index] = updated
        self._changed()
        return updated

    def replace_reply(self, index: int, text: str) -> ConversationMessage:
        """Swap in a regenerated reply, keeping its position."""
        updated = self.messages[index].model_copy(update={"text": text, "regenerated": True})
        self.messages[index] = updated
        self._changed()
        return updated

    def recent(self, count: int) -> list[ConversationMessage]:
        return self.messages[-count:] if count > 0 else []

    def _changed(self) -> None:
        if self.persist is None:
            return
        persist = self.persist
        snapshot = list(self.messages)
        debouncer = self.debouncer or get_debouncer()
        debouncer.schedule(self.session_id, lambda: persist(snapshot))


def transcript_writer(path: Path) -> Persist:
    """Return a persist callback that writes the transcript to *path* as JSON."""

    def _write(messages: list[ConversationMessage]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        data = [m.model_dump(mode="json", by_alias=True) for m in messages]
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    async def persist(messages: list[ConversationMessage]) -> None:
        await asyncio.to_thread(_write, messages)
        logger.debug("Wrote %d messages to %s", len(messages), path)

    return persist


# Global session registry keyed by session ID (chat or campaign id)
_sessions: dict[str, Session] = {}
_debouncer: Debouncer | None = None


def get_debouncer() -> Debouncer:
    """Shared debouncer for sessions that don't bring their own."""
    global _debouncer
    if _debouncer is None:
        _debouncer = Debouncer()
    return _debouncer


def get_session(session_id: str, persist: Persist | None = None) -> Session:
    """Get or create a session, attaching *persist* if it has none yet."""
    if session_id not in _sessions:
        _sessions[session_id] = Session(session_id=session_id)
    session = _sessions[session_id]
    if persist is not None and session.persist is None:
        session.persist = persist
    return session


async def flush_sessions() -> None:
    """Write every pending transcript now."""
    if _debouncer is not None:
        await _debouncer.flush()


def _reset() -> None:
    """Drop all sessions and the shared debouncer (for testing)."""
    global _debouncer
    _sessions.clear()
    _debouncer = None
