"""SummaryStore: add, list, cap, merge."""

import pytest

from ctxstore.summary import MERGE_SEPARATOR, SummaryStore


@pytest.fixture
def summaries(store, clock):
    return SummaryStore(store, clock=clock)


async def test_add_and_get(summaries, store):
    s = await summaries.add("short ctx", key_points=["k1"], decisions=["d1"], original_length=500, session_id="s1")
    assert s.summary_length == len("short ctx")
    assert s.original_length == 500
    assert await summaries.get(s.id) == s
    raw = (await store.sub_store("summaries").read("index.json"))["summaries"][0]
    assert raw["keyPoints"] == ["k1"]
    assert raw["sessionId"] == "s1"


async def test_original_length_defaults_to_context(summaries):
    s = await summaries.add("abcdef")
    assert s.original_length == 6


async def test_list_and_latest(summaries):
    assert await summaries.latest() is None
    for i in range(4):
        await summaries.add(f"c{i}", session_id="a" if i % 2 else "b")
    assert [s.context for s in await summaries.list(limit=2)] == ["c2", "c3"]
    assert [s.context for s in await summaries.list(session_id="a")] == ["c1", "c3"]
    assert (await summaries.latest()).context == "c3"


async def test_capped(store, clock):
    summaries = SummaryStore(store, max_summaries=3, clock=clock)
    for i in range(5):
        await summaries.add(f"c{i}")
    assert [s.context for s in await summaries.list(limit=10)] == ["c2", "c3", "c4"]


class TestMerge:
    async def test_merge_unions_lists(self, summaries):
        a = await summaries.add("first", key_points=["p1", "p2"], decisions=["d1"], action_items=["a1"])
        b = await summaries.add("second", key_points=["p2", "p3"], decisions=["d1", "d2"])
        merged = await summaries.merge([a.id, b.id])
        assert merged.key_points == ["p1", "p2", "p3"]
        assert merged.decisions == ["d1", "d2"]
        assert merged.action_items == ["a1"]
        assert merged.context == "first" + MERGE_SEPARATOR + "second"
        assert merged.original_length == a.original_length + b.original_length
        assert merged.id.startswith("merged_")
        assert (await summaries.latest()).id == merged.id

    async def test_merge_caps_lists(self, summaries):
        a = await summaries.add("a", key_points=[f"k{i}" for i in range(12)], decisions=[f"d{i}" for i in range(8)])
        b = await summaries.add("b", key_points=[f"x{i}" for i in range(12)], decisions=[f"e{i}" for i in range(8)])
        merged = await summaries.merge([a.id, b.id])
        assert len(merged.key_points) == 15
        assert len(merged.decisions) == 10
        assert merged.key_points[-1] == "x2"

    async def test_merge_truncates_context(self, summaries):
        a = await summaries.add("x" * 300)
        b = await summaries.add("y" * 300)
        merged = await summaries.merge([a.id, b.id], max_length=400)
        assert len(merged.context) == 400
        assert merged.summary_length == 400

    async def test_merge_unknown_ids(self, summaries):
        await summaries.add("a")
        assert await summaries.merge(["nope"]) is None


async def test_null_context_is_tolerated(summaries, store):
    await store.sub_store("summaries").write("index.json", {
        "version": None,
        "summaries": [{"id": "sum_1_abc", "context": None, "originalLength": "lots", "keyPoints": None}],
    })
    latest = await summaries.latest()
    assert latest.id == "sum_1_abc"
    assert latest.context == ""
    assert latest.original_length == 0
    assert latest.key_points == []
