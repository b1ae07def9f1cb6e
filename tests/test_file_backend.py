import json
from pathlib import Path
from unittest.mock import patch

import pytest

from coderoom.errors import PersistenceError
from coderoom.repositories import file_backend
from coderoom.repositories.file_backend import FileRoomBackend


class FakeLockException(Exception):
    pass


class FakeFileLock:
    def __init__(self, filename, mode="a", encoding="utf-8", **kwargs):
        self.filename = filename
        self.mode = mode
        self.encoding = encoding
        self._file = None

    def __enter__(self):
        self._file = open(self.filename, self.mode, encoding=self.encoding)
        return self._file

    def __exit__(self, exc_type, exc, tb):
        if self._file is not None:
            self._file.close()


class FakePortalocker:
    class exceptions:
        LockException = FakeLockException

    def Lock(self, filename, mode="a", timeout=None, fail_when_locked=False, **kwargs):
        return FakeFileLock(filename, mode=mode, **kwargs)


def _rows(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


@pytest.mark.asyncio
async def test_room_lifecycle_is_folded_from_logs(tmp_path):
    backend = FileRoomBackend(tmp_path)
    room = await backend.create_room("ABC234", "alice")
    await backend.add_member(room["id"], "alice")
    await backend.add_member(room["id"], "bob")
    first = await backend.insert_message(
        room_id=room["id"],
        author="alice",
        content="hello",
        reply_to_id=None,
        is_ai_generated=False,
    )
    await backend.remove_member(room["id"], "bob")

    assert (await backend.find_room_by_code("ABC234"))["id"] == room["id"]
    assert (await backend.find_member(room["id"], "alice"))["username"] == "alice"
    assert await backend.find_member(room["id"], "bob") is None
    messages = await backend.list_messages(room["id"])
    assert [row["id"] for row in messages] == [first["id"]]
    assert messages[0]["username"] == "alice"

    log_rows = _rows(backend.get_log_path(room["id"]))
    assert [(row["entity"], row["operation"]) for row in log_rows] == [
        ("member", "insert"),
        ("member", "insert"),
        ("message", "insert"),
        ("member", "delete"),
    ]


@pytest.mark.asyncio
async def test_delete_room_cascades(tmp_path):
    backend = FileRoomBackend(tmp_path)
    room = await backend.create_room("ABC234", "alice")
    await backend.add_member(room["id"], "alice")

    await backend.delete_room(room["id"])

    assert await backend.find_room_by_code("ABC234") is None
    assert await backend.list_members(room["id"]) == []
    assert await backend.list_messages(room["id"]) == []
    with pytest.raises(PersistenceError):
        await backend.add_member(room["id"], "bob")
    with pytest.raises(PersistenceError):
        await backend.delete_room(room["id"])


@pytest.mark.asyncio
async def test_duplicate_code_is_rejected(tmp_path):
    backend = FileRoomBackend(tmp_path)
    await backend.create_room("ABC234", "alice")

    with pytest.raises(PersistenceError):
        await backend.create_room("ABC234", "bob")


@pytest.mark.asyncio
async def test_feed_watch_drains_new_rows_until_unsubscribed(tmp_path):
    backend = FileRoomBackend(tmp_path)
    room = await backend.create_room("ABC234", "alice")
    received: list[dict] = []
    watch = backend.subscribe(room["id"], received.append)
    try:
        await backend.add_member(room["id"], "alice")
        watch.drain()
        watch.drain()
    finally:
        backend.unsubscribe(watch)

    assert [row["entity"] for row in received] == ["member"]
    assert received[0]["payload"]["username"] == "alice"

    await backend.add_member(room["id"], "bob")
    watch.drain()
    assert len(received) == 1
    assert watch.observer is None


def test_room_paths_stay_inside_data_dir(tmp_path):
    backend = FileRoomBackend(tmp_path)

    with pytest.raises(PersistenceError):
        backend.get_room_dir("../escape")


def test_write_row_success_jsonl(tmp_path, monkeypatch):
    backend = FileRoomBackend(tmp_path)
    monkeypatch.setattr(file_backend, "portalocker", FakePortalocker())
    path = tmp_path / "changes.jsonl"

    assert backend.write_row(path, {"entity": "message", "payload": {"content": "hi"}})

    assert _rows(path) == [{"entity": "message", "payload": {"content": "hi"}}]


def test_write_row_retries_then_succeeds(tmp_path, monkeypatch):
    backend = FileRoomBackend(tmp_path)
    fake_portalocker = FakePortalocker()
    lock_error = FakeLockException("busy")
    monkeypatch.setattr(file_backend, "portalocker", fake_portalocker)
    path = tmp_path / "changes.jsonl"

    with (
        patch.object(
            fake_portalocker,
            "Lock",
            side_effect=[lock_error, lock_error, FakeFileLock(path)],
        ) as mock_lock,
        patch("coderoom.repositories.file_backend.time.sleep"),
    ):
        assert backend.write_row(path, {"entity": "member"})

    assert mock_lock.call_count == 3


def test_write_row_fails_after_retry_exhaustion(tmp_path, monkeypatch):
    backend = FileRoomBackend(tmp_path)
    fake_portalocker = FakePortalocker()
    monkeypatch.setattr(file_backend, "portalocker", fake_portalocker)
    monkeypatch.setattr(file_backend, "LOCK_MAX_ATTEMPTS", 3)

    with (
        patch.object(
            fake_portalocker, "Lock", side_effect=FakeLockException("busy")
        ) as mock_lock,
        patch("coderoom.repositories.file_backend.time.sleep"),
    ):
        assert backend.write_row(tmp_path / "changes.jsonl", {"entity": "x"}) is False

    assert mock_lock.call_count == 3


def test_invalid_log_rows_are_skipped(tmp_path):
    backend = FileRoomBackend(tmp_path)
    path = tmp_path / "changes.jsonl"
    path.write_text('{"entity": "member"}\nnot json\n[1, 2]\n', encoding="utf-8")

    assert backend.read_rows(path) == [{"entity": "member"}]
