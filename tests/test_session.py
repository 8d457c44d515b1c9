"""Session bootstrap over a whole workspace."""

from ctxstore.session import init_session


async def test_empty_workspace(workspace):
    snap = await init_session(workspace)
    assert snap.checkpoint is None
    assert snap.summary is None
    assert snap.memories == []
    assert snap.status.total_entries == 0
    d = snap.to_dict()
    assert d["projectName"] is None
    assert d["checkpoint"] is None


async def test_snapshot_collects_latest_state(workspace, clock):
    await workspace.memory.set("lang", "python")
    await workspace.memory.set("scratch", "tmp", ttl=100)
    await workspace.tracker.log("decision", "use click")
    await workspace.checkpoints.save("old", {"n": 1})
    await workspace.checkpoints.save("new", {"n": 2})
    await workspace.summaries.add("we did things")
    clock.advance(1000)

    snap = await init_session(workspace)
    assert snap.expired_removed == 1
    assert [m.key for m in snap.memories] == ["lang"]
    assert snap.checkpoint.meta.name == "new"
    assert snap.checkpoint.state == {"n": 2}
    assert snap.summary.context == "we did things"
    d = snap.to_dict()
    assert d["memories"] == {"lang": "python"}
    assert d["tracker"]["decisions"][0]["content"] == "use click"


async def test_project_name_set_only_once(workspace):
    snap = await init_session(workspace, project_name="alpha")
    assert snap.status.project_name == "alpha"
    snap = await init_session(workspace, project_name="beta")
    assert snap.status.project_name == "alpha"
    assert await workspace.tracker.project_name() == "alpha"
