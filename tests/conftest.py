"""Shared test fixtures."""

from pathlib import Path

import pytest

from storyloom import session as session_registry
from storyloom.entities import LibraryEntityProvider, SessionContext
from storyloom.llm.dispatcher import CompletionDispatcher
from storyloom.memory.campaign import CampaignMemories
from storyloom.memory.retrieval import MemoryRetriever
from storyloom.memory.store import MemoryStore
from storyloom.models import CampaignState, CharacterProfile, GMType, Scene, WorldInfo


@pytest.fixture(autouse=True)
def _reset_singletons():
    MemoryStore._reset()
    CompletionDispatcher._reset()
    session_registry._reset()
    yield
    MemoryStore._reset()
    CompletionDispatcher._reset()
    session_registry._reset()


@pytest.fixture
def store(tmp_path: Path) -> MemoryStore:
    """Create a MemoryStore backed by a temp database."""
    return MemoryStore(db_path=tmp_path / "test.db")


@pytest.fixture
def retriever(store: MemoryStore) -> MemoryRetriever:
    return MemoryRetriever(store)


@pytest.fixture
def campaigns(store: MemoryStore, retriever: MemoryRetriever) -> CampaignMemories:
    return CampaignMemories(store, retriever)


@pytest.fixture
def ctx() -> SessionContext:
    return SessionContext(actor_id="player1")


@pytest.fixture
def aria() -> CharacterProfile:
    return CharacterProfile(
        id="aria",
        name="Aria",
        personality="Warm and inquisitive",
        traits="talkative, curious",
        background="leader of the guild",
        world_id="w1",
    )


@pytest.fixture
def bram() -> CharacterProfile:
    return CharacterProfile(id="bram", name="Bram", traits="quiet", background="blacksmith")


@pytest.fixture
def cole() -> CharacterProfile:
    return CharacterProfile(id="cole", name="Cole", traits="curious", background="scout")


@pytest.fixture
def world() -> WorldInfo:
    return WorldInfo(
        id="w1",
        name="Eldoria",
        description="A land of floating islands",
        rules="Magic costs memories",
        lore="The sky fell once",
    )


@pytest.fixture
def campaign() -> CampaignState:
    return CampaignState(
        id="c1",
        name="The Sunken Crown",
        description="Recover the crown from the drowned city",
        participant_ids=["aria", "bram", "cole"],
        scenes=[Scene(title="The Docks", description="Fog rolls over the pier")],
        gm_type=GMType.USER,
        world_id="w1",
    )


@pytest.fixture
def entities(aria, bram, cole, world, campaign) -> LibraryEntityProvider:
    return LibraryEntityProvider(
        characters=[aria, bram, cole], campaigns=[campaign], worlds=[world]
    )
