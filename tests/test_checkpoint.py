import json
from datetime import datetime, timezone

import pytest

from scumbot.checkpoint import Checkpoint, CheckpointStore, advance
from scumbot.errors import CheckpointCorrupt

WHEN = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_save_writes_the_documented_json(tmp_path):
    store = CheckpointStore(str(tmp_path / "state"))
    store.save(Checkpoint("kill", "/logs/kill_2024.log", 103, WHEN))

    data = json.loads((tmp_path / "state" / "kill.json").read_text())
    assert data == {"CurrentLogFile": "/logs/kill_2024.log",
                    "LastLineNumber": 103,
                    "LastUpdate": WHEN.isoformat()}
    # nothing but the checkpoint itself is left behind
    assert [p.name for p in (tmp_path / "state").iterdir()] == ["kill.json"]


def test_load_round_trips(tmp_path):
    store = CheckpointStore(str(tmp_path))
    store.save(Checkpoint("login", "/logs/login_1.log", 7, WHEN))
    assert store.load("login") == Checkpoint("login", "/logs/login_1.log", 7, WHEN)


def test_missing_checkpoint_is_none(tmp_path):
    assert CheckpointStore(str(tmp_path)).load("chat") is None


def test_categories_do_not_share_files(tmp_path):
    store = CheckpointStore(str(tmp_path))
    store.save(Checkpoint("kill", "/a.log", 1, WHEN))
    store.save(Checkpoint("chat", "/b.log", 2, WHEN))
    assert store.load("kill").last_line == 1
    assert store.load("chat").last_line == 2


@pytest.mark.parametrize("content", [
    "{not json",
    '{"CurrentLogFile": "/a.log"}',
    '{"CurrentLogFile": "/a.log", "LastLineNumber": "many"}',
    '{"CurrentLogFile": "/a.log", "LastLineNumber": -4}',
    '["a", 1]',
])
def test_corrupt_checkpoint_raises(tmp_path, content):
    (tmp_path / "kill.json").write_text(content)
    with pytest.raises(CheckpointCorrupt):
        CheckpointStore(str(tmp_path)).load("kill")


def test_advance_never_goes_backwards_on_the_same_file():
    old = Checkpoint("kill", "/a.log", 50, WHEN)
    assert advance(old, "kill", "/a.log", 60, now=WHEN).last_line == 60
    assert advance(old, "kill", "/a.log", 40, now=WHEN).last_line == 50


def test_advance_resets_on_rotation():
    old = Checkpoint("kill", "/a.log", 50, WHEN)
    new = advance(old, "kill", "/b.log", 3, now=WHEN)
    assert new == Checkpoint("kill", "/b.log", 3, WHEN)


def test_advance_accepts_a_file_restarted_in_place():
    old = Checkpoint("kill", "/a.log", 50, WHEN)
    assert advance(old, "kill", "/a.log", 2, restarted=True, now=WHEN).last_line == 2
