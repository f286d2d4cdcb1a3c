"""Tests for campaign tagging and campaign memory enrichment."""

from unittest.mock import AsyncMock

from storyloom.memory.campaign import CampaignMemories, campaign_of, is_tagged, strip, tag
from storyloom.memory.models import MemoryType
from storyloom.memory.retrieval import MemoryRetriever
from storyloom.memory.store import MemoryStore
from storyloom.models import CampaignContext

# -- Tagging -----------------------------------------------------------------


class TestTagging:
    def test_tag_prefixes_marker(self):
        assert tag("c1", "Found the map") == "[Campaign: c1] Found the map"

    def test_strip_round_trip(self):
        assert strip(tag("c1", "  spaced  text "), "c1") == "  spaced  text "

    def test_strip_leaves_other_campaigns(self):
        other = tag("c2", "elsewhere")
        assert strip(other, "c1") == other

    def test_is_tagged_for_campaign(self):
        content = tag("c1", "x")
        assert is_tagged(content, "c1")
        assert not is_tagged(content, "c2")
        assert not is_tagged(content, "c")

    def test_is_tagged_any_campaign(self):
        assert is_tagged(tag("c9", "x"))
        assert not is_tagged("plain memory")
        assert not is_tagged("")

    def test_campaign_of(self):
        assert campaign_of(tag("quest-7", "x")) == "quest-7"
        assert campaign_of("untagged") is None


# -- get_campaign_memories ---------------------------------------------------


async def test_campaign_memories_filter_by_campaign(
    store: MemoryStore, campaigns: CampaignMemories
):
    await store.add("aria", "[Campaign: c1] Found the map", MemoryType.CAMPAIGN_EVENT, 6)
    await store.add("aria", "[Campaign: c2] Lost the sword", MemoryType.CAMPAIGN_EVENT, 6)
    await store.add("aria", "Likes tea", MemoryType.PREFERENCE, 7)

    text = await campaigns.get_campaign_memories("aria", "c1", "map")

    assert "Found the map" in text
    assert "[Campaign: c1]" not in text
    assert "Lost the sword" not in text
    assert "Likes tea" in text


async def test_campaign_memories_limit_general_fallback(
    store: MemoryStore, campaigns: CampaignMemories
):
    for i in range(6):
        await store.add("aria", f"general memory {i}")
    await campaigns.add_campaign_memory("aria", "c1", "campaign memory")

    lines = (await campaigns.get_campaign_memories("aria", "c1", "memory")).splitlines()

    assert len(lines) == 4
    assert lines[0].endswith(" campaign memory")


async def test_campaign_memories_capped(campaigns: CampaignMemories):
    for i in range(12):
        await campaigns.add_campaign_memory("aria", "c1", f"campaign memory {i}")

    lines = (await campaigns.get_campaign_memories("aria", "c1", "memory")).splitlines()

    assert len(lines) == 10


async def test_campaign_memories_empty_store(campaigns: CampaignMemories):
    assert await campaigns.get_campaign_memories("aria", "c1", "anything") == ""


async def test_campaign_memories_failure_returns_empty(retriever: MemoryRetriever):
    broken = MemoryStore.__new__(MemoryStore)
    broken.list = AsyncMock(side_effect=RuntimeError("boom"))

    memories = CampaignMemories(broken, retriever)
    assert await memories.get_campaign_memories("aria", "c1", "anything") == ""


# -- enrich_context ----------------------------------------------------------


async def test_enrich_context_top_memories(store: MemoryStore, campaigns: CampaignMemories):
    await campaigns.add_campaign_memory("aria", "c1", "Crowned the king", importance=9)
    await campaigns.add_campaign_memory("aria", "c1", "Bought bread", importance=2)
    await campaigns.add_campaign_memory("aria", "c1", "Found the map", importance=7)
    await campaigns.add_campaign_memory("bram", "c1", "Forged a blade", importance=8)
    await campaigns.add_campaign_memory("bram", "c2", "Other campaign", importance=10)
    await store.add("bram", "Untagged memory", MemoryType.FACT, 10)

    context = CampaignContext(name="Quest", participant_ids=["aria", "bram"])
    enriched = await campaigns.enrich_context("c1", context)

    assert enriched.important_memories.splitlines() == [
        "[CAMPAIGN_EVENT] Crowned the king",
        "[CAMPAIGN_EVENT] Forged a blade",
        "[CAMPAIGN_EVENT] Found the map",
    ]
    assert context.important_memories == ""


async def test_enrich_context_caps_at_five(campaigns: CampaignMemories):
    for cid in ("a", "b", "c", "d"):
        await campaigns.add_campaign_memory(cid, "c1", f"{cid} first", importance=6)
        await campaigns.add_campaign_memory(cid, "c1", f"{cid} second", importance=5)

    context = CampaignContext(name="Quest", participant_ids=["a", "b", "c", "d"])
    enriched = await campaigns.enrich_context("c1", context)

    assert len(enriched.important_memories.splitlines()) == 5


async def test_enrich_context_without_participants(campaigns: CampaignMemories):
    context = CampaignContext(name="Quest")
    assert await campaigns.enrich_context("c1", context) is context


async def test_enrich_context_failure_returns_original(retriever: MemoryRetriever):
    broken = MemoryStore.__new__(MemoryStore)
    broken.list = AsyncMock(side_effect=RuntimeError("boom"))
    context = CampaignContext(name="Quest", participant_ids=["aria"])

    result = await CampaignMemories(broken, retriever).enrich_context("c1", context)
    assert result == context


# -- Write helpers -----------------------------------------------------------


async def test_process_campaign_interaction(store: MemoryStore, campaigns: CampaignMemories):
    await campaigns.process_campaign_interaction(
        "c1", "aria", "Aria", "We sail at dawn", ["aria", "bram", "cole"]
    )

    (own,) = await store.list("aria")
    assert own.content == '[Campaign: c1] I said: "We sail at dawn"'
    assert own.type == "CHARACTER_INTERACTION"
    assert own.importance == 6

    (heard,) = await store.list("bram")
    assert heard.content == '[Campaign: c1] Aria said: "We sail at dawn"'
    assert heard.importance == 5
    assert len(await store.list("cole")) == 1


async def test_record_campaign_event(store: MemoryStore, campaigns: CampaignMemories):
    await campaigns.record_campaign_event("c1", "The bridge collapsed", ["aria", "bram"])

    for cid in ("aria", "bram"):
        (record,) = await store.list(cid)
        assert record.content == "[Campaign: c1] The bridge collapsed"
        assert record.type == "CAMPAIGN_EVENT"
        assert record.importance == 7


async def test_record_player_decision(campaigns: CampaignMemories):
    record = await campaigns.record_player_decision(
        "c1", "aria", "Spare the thief", "The guild owes us"
    )
    assert record.content == (
        "[Campaign: c1] Made decision: Spare the thief. Consequences: The guild owes us"
    )
    assert record.type == "PLAYER_DECISION"
    assert record.importance == 8
