"""Store statistics and health checks."""

from ctxstore.health import backup_stats, check_health, store_stats


async def test_fresh_store_is_healthy(workspace):
    report = await check_health(workspace)
    assert report.status == "healthy"
    assert report.issues == []
    assert any("No backups" in r for r in report.recommendations)


async def test_stats_count_documents_and_backups(workspace):
    await workspace.memory.set("a", 1)
    await workspace.memory.set("b", 2)
    await workspace.checkpoints.save("cp", {"x": 1})

    stats = await store_stats(workspace.path)
    names = [f.name for f in stats.files]
    assert "memory.json" in names
    assert "checkpoints/index.json" in names
    assert not any(n.endswith(".bak") for n in names)
    assert stats.total_size == sum(f.size for f in stats.files)

    baks = await backup_stats(workspace.path)
    assert baks.backup_count == 1
    assert baks.oldest is not None and baks.newest is not None

    report = await check_health(workspace)
    assert report.status == "healthy"
    assert report.to_dict()["stats"]["backupCount"] == 1


async def test_corrupt_document_reported(workspace):
    (workspace.path / "tracker.json").write_text("{oops")
    report = await check_health(workspace)
    assert report.status == "issues_found"
    assert report.issues[0].startswith("tracker.json:")


async def test_wrong_shape_reported(workspace):
    await workspace.store.write("memory.json", [1, 2, 3])
    report = await check_health(workspace)
    assert report.status == "issues_found"
    assert "memory.json" in report.issues[0]


async def test_missing_payload_reported(workspace):
    meta = await workspace.checkpoints.save("cp", {"x": 1})
    (workspace.path / "checkpoints" / meta.payload_name).unlink()
    report = await check_health(workspace)
    assert report.status == "issues_found"
    assert report.missing_payloads == [meta.id]
    assert report.to_dict()["missingPayloads"] == [meta.id]


async def test_stats_of_missing_directory(tmp_path):
    assert (await store_stats(tmp_path / "nope")).file_count == 0
    assert (await backup_stats(tmp_path / "nope")).backup_count == 0
