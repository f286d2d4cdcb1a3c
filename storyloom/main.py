"""StoryLoom command-line entry point.

Usage:
    storyloom chat library.json <character_id>
    storyloom campaign library.json <campaign_id> [--as <id>]
    storyloom memories <character_id> [--query TEXT] [--delete ID]
"""

import argparse
import asyncio
import getpass
import logging
import sys
from pathlib import Path

from storyloom.campaign.selector import PLAYER_ID
from storyloom.campaign.turn import CampaignTurnRunner
from storyloom.character import CharacterResponder, enhance_character_api
from storyloom.config import settings
from storyloom.entities import LibraryEntityProvider, SessionContext
from storyloom.memory.retrieval import MemoryRetriever, format_memories
from storyloom.memory.store import MemoryStore
from storyloom.session import flush_sessions, get_session, transcript_writer

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
)
logger = logging.getLogger(__name__)

_QUIT = {"/quit", "/exit"}


async def _prompt(label: str) -> str | None:
    try:
        return await asyncio.to_thread(input, label)
    except EOFError:
        return None


def _open_session(session_id: str):
    path = settings.transcripts_dir / f"{session_id.replace(':', '_')}.json"
    return get_session(session_id, persist=transcript_writer(path))


async def run_chat(library: Path, character_id: str) -> int:
    entities = LibraryEntityProvider.from_file(library)
    ctx = SessionContext(actor_id=getpass.getuser())
    responder = CharacterResponder(entities)
    session = _open_session(f"chat:{character_id}")

    character = await entities.get_character_by_id(ctx, character_id)
    if character is None:
        print(f"No character {character_id} in {library}", file=sys.stderr)
        return 1

    print(f"Chatting with {character.name}. Type /quit to leave.")
    try:
        await _chat_loop(responder, ctx, character, session)
    finally:
        await flush_sessions()
    return 0


async def _chat_loop(responder, ctx, character, session) -> None:
    character_id = character.id
    while True:
        text = await _prompt("You: ")
        if text is None or text.strip() in _QUIT:
            return
        if not text.strip():
            continue

        history = list(session.messages)
        session.add("user", "User", text)
        result = await enhance_character_api(
            responder, ctx, character_id, text, history, {"rpMode": settings.default_rp_mode}
        )
        if result.get("source"):
            session.add("character", character.name, result["response"], character_id=character_id)
        print(f"{character.name}: {result['response']}")


async def run_campaign(library: Path, campaign_id: str, speaking_as: str) -> int:
    entities = LibraryEntityProvider.from_file(library)
    ctx = SessionContext(actor_id=getpass.getuser())
    runner = CampaignTurnRunner(CharacterResponder(entities), entities)
    session = _open_session(f"campaign:{campaign_id}")

    campaign = await entities.get_campaign_by_id(ctx, campaign_id)
    if campaign is None:
        print(f"No campaign {campaign_id} in {library}", file=sys.stderr)
        return 1

    print(f"Campaign: {campaign.name}. Type /quit to leave.")
    try:
        await _campaign_loop(runner, ctx, campaign, speaking_as, session)
    finally:
        await flush_sessions()
    return 0


async def _campaign_loop(runner, ctx, campaign, speaking_as, session) -> None:
    while True:
        text = await _prompt("> ")
        if text is None or text.strip() in _QUIT:
            return
        if not text.strip():
            continue

        result = await runner.run_turn(ctx, campaign, speaking_as, text, session)
        for reply in result.replies:
            print(f"{reply.speaker}: {reply.text}")
        if result.error:
            print(result.error)


async def run_memories(character_id: str, query: str | None, delete_id: str | None) -> int:
    store = MemoryStore.get()

    if delete_id:
        if await store.delete(character_id, delete_id):
            print(f"Deleted {delete_id}")
            return 0
        print(f"No memory {delete_id} for {character_id}", file=sys.stderr)
        return 1

    if query:
        memories = await MemoryRetriever(store).retrieve(
            character_id, query, limit=settings.memory_limit, min_score=settings.memory_min_score
        )
        print(format_memories(memories) or "No relevant memories.")
        return 0

    records = await store.list(character_id)
    for record in records:
        print(f"{record.id}  [{record.type}/{record.importance}]  {record.content}")
    if not records:
        print("No memories.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="storyloom", description="Character roleplay engine")
    sub = parser.add_subparsers(dest="command", required=True)

    chat = sub.add_parser("chat", help="Chat with one character")
    chat.add_argument("library", type=Path, help="JSON file of characters, campaigns, worlds")
    chat.add_argument("character_id")

    campaign = sub.add_parser("campaign", help="Play a campaign turn by turn")
    campaign.add_argument("library", type=Path, help="JSON file of characters, campaigns, worlds")
    campaign.add_argument("campaign_id")
    campaign.add_argument(
        "--as",
        dest="speaking_as",
        default=PLAYER_ID,
        help="Speak as the player (default), 'GM', or a character id",
    )

    memories = sub.add_parser("memories", help="Inspect a character's memories")
    memories.add_argument("character_id")
    memories.add_argument("--query", help="Rank memories against this text")
    memories.add_argument("--delete", dest="delete_id", help="Delete one memory by id")

    return parser


def main() -> None:
    args = build_parser().parse_args()

    if args.command == "chat":
        code = asyncio.run(run_chat(args.library, args.character_id))
    elif args.command == "campaign":
        code = asyncio.run(run_campaign(args.library, args.campaign_id, args.speaking_as))
    else:
        code = asyncio.run(run_memories(args.character_id, args.query, args.delete_id))

    sys.exit(code)


if __name__ == "__main__":
    main()
