import asyncio
import json

from imgopt.guard import MtimeGuard


def test_unknown_paths_are_never_fresh():
    guard = MtimeGuard()
    assert guard.get("a.png") == 0.0
    assert not guard.is_fresh("a.png", 1.0)


def test_touch_marks_older_mtimes_fresh():
    guard = MtimeGuard()
    guard.touch("a.png", 100.0)
    assert guard.is_fresh("a.png", 100.0)
    assert guard.is_fresh("a.png", 99.5)
    assert not guard.is_fresh("a.png", 100.5)


def test_touch_defaults_to_now():
    guard = MtimeGuard()
    guard.touch("a.png")
    assert guard.get("a.png") > 0


def test_in_memory_guard_does_not_save(tmp_path):
    guard = MtimeGuard()
    guard.touch("a.png", 5)
    asyncio.run(guard.save())
    assert list(tmp_path.iterdir()) == []


def test_persisted_guard_round_trips(tmp_path):
    path = tmp_path / "state" / "guard.json"
    guard = MtimeGuard(path)
    guard.touch("img/a.png", 123.5)
    asyncio.run(guard.save())

    assert json.loads(path.read_text(encoding="utf-8")) == {"img/a.png": 123.5}
    assert MtimeGuard(path).get("img/a.png") == 123.5


def test_damaged_guard_file_is_ignored(tmp_path, caplog):
    path = tmp_path / "guard.json"
    path.write_text("{not json", encoding="utf-8")

    guard = MtimeGuard(path)

    assert guard.get("a.png") == 0.0
    assert "ignoring" in caplog.text


def test_non_numeric_entries_are_dropped(tmp_path):
    path = tmp_path / "guard.json"
    path.write_text(json.dumps({"a.png": 10, "b.png": "soon"}), encoding="utf-8")
    guard = MtimeGuard(path)
    assert "a.png" in guard
    assert "b.png" not in guard
