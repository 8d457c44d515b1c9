"""ctx.toml loading, .env and environment overrides, validation."""

import pytest

from ctxstore.config import CONFIG_FILENAME, CtxConfig, init_config, load_config
from ctxstore.workspace import open_workspace


def test_defaults_without_config_file(tmp_path):
    cfg = load_config(tmp_path)
    assert cfg.root == tmp_path
    assert cfg.name == tmp_path.name
    assert cfg.store_dir == tmp_path / ".context"
    assert cfg.store.max_backups == 3
    assert cfg.retention.max_checkpoints == 50
    assert cfg.retention.max_summaries == 100
    assert cfg.retention.tracker_max_entries == 1000
    assert cfg.retention.tracker_rotate_keep == 800
    assert cfg.memory.sweep_on_open is False


def test_reads_toml(tmp_path):
    (tmp_path / CONFIG_FILENAME).write_text(
        '[ctx]\nname = "demo"\n'
        '[store]\npath = "state"\nmax_backups = 5\n'
        "[retention]\nmax_checkpoints = 7\n"
        "[memory]\nsweep_on_open = true\n"
    )
    cfg = load_config(tmp_path)
    assert cfg.name == "demo"
    assert cfg.store_dir == tmp_path / "state"
    assert cfg.store.max_backups == 5
    assert cfg.retention.max_checkpoints == 7
    assert cfg.memory.sweep_on_open is True


def test_finds_root_upward(tmp_path, monkeypatch):
    init_config(tmp_path, "proj")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)
    assert load_config().root == tmp_path


def test_env_beats_dotenv_beats_toml(tmp_path, monkeypatch):
    (tmp_path / CONFIG_FILENAME).write_text("[retention]\nmax_checkpoints = 7\nmax_summaries = 8\n")
    (tmp_path / ".env").write_text("# overrides\nCTX_MAX_CHECKPOINTS=9\nCTX_MAX_SUMMARIES='11'\n")
    monkeypatch.setenv("CTX_MAX_SUMMARIES", "12")
    monkeypatch.setenv("CTX_STORE_PATH", "/tmp/elsewhere")
    cfg = load_config(tmp_path)
    assert cfg.retention.max_checkpoints == 9
    assert cfg.retention.max_summaries == 12
    assert str(cfg.store_dir) == "/tmp/elsewhere"


@pytest.mark.parametrize(
    "toml",
    [
        "[retention]\nmax_checkpoints = 0\n",
        "[retention]\ntracker_max_entries = 10\ntracker_rotate_keep = 20\n",
        "[store]\nmax_backups = -1\n",
        '[retention]\nmax_summaries = "lots"\n',
    ],
)
def test_invalid_values_rejected(tmp_path, toml):
    (tmp_path / CONFIG_FILENAME).write_text(toml)
    with pytest.raises(ValueError):
        load_config(tmp_path)


def test_invalid_env_value_rejected(tmp_path, monkeypatch):
    monkeypatch.setenv("CTX_MAX_BACKUPS", "three")
    with pytest.raises(ValueError, match="max_backups"):
        load_config(tmp_path)


def test_init_config(tmp_path):
    path = init_config(tmp_path, "demo")
    assert path == tmp_path / CONFIG_FILENAME
    cfg = load_config(tmp_path)
    assert cfg.name == "demo"
    assert cfg.store.path == ".context"
    with pytest.raises(FileExistsError):
        init_config(tmp_path)


async def test_workspace_follows_config(tmp_path, clock):
    cfg = CtxConfig(root=tmp_path)
    cfg.store.path = "custom"
    cfg.store.max_backups = 1
    cfg.retention.max_checkpoints = 2
    ws = await open_workspace(cfg, clock=clock)
    assert ws.path == tmp_path / "custom"
    assert ws.store.max_backups == 1
    assert ws.checkpoints.max_checkpoints == 2


async def test_sweep_on_open(tmp_path, clock):
    cfg = CtxConfig(root=tmp_path)
    ws = await open_workspace(cfg, clock=clock)
    await ws.memory.set("gone", 1, ttl=10)
    clock.advance(100)

    cfg.memory.sweep_on_open = True
    await open_workspace(cfg, clock=clock)
    raw = await ws.store.read("memory.json")
    assert raw["entries"] == {}
