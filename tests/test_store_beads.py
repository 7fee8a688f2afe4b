"""BeadsMailStore against a fake ``bd`` runner."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path

import pytest

from gastown_mail.config import clear_settings_cache, get_settings
from gastown_mail.errors import MessageNotFoundError, PersistenceError
from gastown_mail.message import MessageType, Priority
from gastown_mail.store import BeadsMailStore, SqlMailStore, build_store

INBOX = [
    {
        "id": "gt-101",
        "title": "Older",
        "description": "first body",
        "sender": "mayor",
        "assignee": "gastown-Toast",
        "priority": 2,
        "status": "open",
        "created_at": "2026-01-01T10:00:00Z",
        "thread_id": "thread-aaaaaaaaaaaa",
    },
    {
        "id": "gt-102",
        "title": "Newer",
        "description": "",
        "sender": "gastown-Nux",
        "assignee": "gastown-Toast",
        "priority": 0,
        "type": "task",
        "status": "read",
        "created_at": "2026-01-01T11:00:00Z",
        "thread_id": "thread-aaaaaaaaaaaa",
        "reply_to": "gt-101",
    },
]


class FakeBd:
    def __init__(self, responses=None, *, returncode=0, stderr=""):
        self.responses = responses or {}
        self.returncode = returncode
        self.stderr = stderr
        self.calls: list[dict] = []

    def __call__(self, cmd, **kwargs):
        self.calls.append({"cmd": cmd, **kwargs})
        sub = cmd[2] if len(cmd) > 2 else ""
        stdout = self.responses.get(sub, "")
        return subprocess.CompletedProcess(cmd, self.returncode, stdout=stdout, stderr=self.stderr)

    def commands(self):
        return [call["cmd"][1:] for call in self.calls]


def _store(tmp_path: Path, fake: FakeBd) -> BeadsMailStore:
    return BeadsMailStore(tmp_path, bin="bd", runner=fake)


def test_create_builds_send_command(tmp_path):
    fake = FakeBd({"send": json.dumps({"id": "gt-200", "created_at": "2026-02-03T04:05:06Z"})})
    stored = _store(tmp_path, fake).create(
        to_identity="gastown-Toast",
        from_identity="mayor",
        subject="Fix bug",
        body="Details",
        priority=1,
        message_type="task",
        thread_id="thread-0123456789ab",
        reply_to="gt-100",
    )
    assert stored.id == "gt-200"
    assert stored.timestamp.isoformat() == "2026-02-03T04:05:06+00:00"

    call = fake.calls[0]
    assert call["cmd"] == [
        "bd", "mail", "send", "gastown-Toast",
        "-s", "Fix bug", "-m", "Details", "--priority", "1",
        "--type", "task", "--thread-id", "thread-0123456789ab", "--reply-to", "gt-100", "--json",
    ]
    assert call["env"]["BEADS_AGENT_NAME"] == "mayor"
    assert call["cwd"] == str(tmp_path)


def test_create_omits_empty_optional_flags(tmp_path):
    fake = FakeBd({"send": json.dumps({"id": "gt-201"})})
    _store(tmp_path, fake).create(
        to_identity="mayor",
        from_identity="gastown-Toast",
        subject="Done",
        body="",
        priority=2,
        message_type=None,
        thread_id=None,
        reply_to=None,
    )
    cmd = fake.calls[0]["cmd"]
    assert "--type" not in cmd
    assert "--thread-id" not in cmd
    assert "--reply-to" not in cmd


def test_create_requires_returned_id(tmp_path):
    fake = FakeBd({"send": json.dumps({"ok": True})})
    with pytest.raises(PersistenceError):
        _store(tmp_path, fake).create(
            to_identity="mayor", from_identity="mayor", subject="x", body="",
            priority=2, message_type=None, thread_id=None, reply_to=None,
        )


def test_list_decodes_and_sorts_newest_first(tmp_path):
    fake = FakeBd({"inbox": json.dumps(INBOX)})
    messages = _store(tmp_path, fake).list("gastown-Toast")
    assert [m.id for m in messages] == ["gt-102", "gt-101"]
    newer, older = messages
    assert newer.from_ == "gastown/Nux"
    assert newer.to == "gastown/Toast"
    assert newer.priority is Priority.URGENT
    assert newer.type is MessageType.TASK
    assert newer.read is True
    assert newer.reply_to == "gt-101"
    assert older.from_ == "mayor/"
    assert older.read is False
    assert older.body == "first body"
    assert fake.calls[0]["env"]["BEADS_AGENT_NAME"] == "gastown-Toast"


def test_unread_count_and_thread_views(tmp_path):
    store = _store(tmp_path, FakeBd({"inbox": json.dumps(INBOX)}))
    assert [m.id for m in store.list_unread("gastown-Toast")] == ["gt-101"]
    assert store.count("gastown-Toast") == (2, 1)
    assert [m.id for m in store.list_by_thread("gastown-Toast", "thread-aaaaaaaaaaaa")] == ["gt-101", "gt-102"]


def test_empty_inbox_output(tmp_path):
    store = _store(tmp_path, FakeBd({"inbox": "null"}))
    assert store.list("mayor") == []


def test_malformed_output_raises(tmp_path):
    store = _store(tmp_path, FakeBd({"inbox": "not json"}))
    with pytest.raises(PersistenceError):
        store.list("mayor")
    store = _store(tmp_path, FakeBd({"inbox": json.dumps({"id": "x"})}))
    with pytest.raises(PersistenceError):
        store.list("mayor")


def test_nonzero_exit_raises_with_stderr(tmp_path):
    store = _store(tmp_path, FakeBd(returncode=1, stderr="no beads database"))
    with pytest.raises(PersistenceError, match="no beads database"):
        store.count("mayor")


def test_missing_binary_raises(tmp_path):
    def runner(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    with pytest.raises(PersistenceError):
        BeadsMailStore(tmp_path, runner=runner).list("mayor")


def test_mark_read_skips_already_read(tmp_path):
    fake = FakeBd({"inbox": json.dumps(INBOX)})
    store = _store(tmp_path, fake)
    store.mark_read("gastown-Toast", "gt-102")
    store.mark_read("gastown-Toast", "gt-101")
    assert fake.commands() == [
        ["mail", "inbox", "--json"],
        ["mail", "inbox", "--json"],
        ["mail", "read", "gt-101"],
    ]


def test_delete_acknowledges_known_message(tmp_path):
    fake = FakeBd({"inbox": json.dumps(INBOX)})
    store = _store(tmp_path, fake)
    store.delete("gastown-Toast", "gt-101")
    assert fake.commands()[-1] == ["mail", "ack", "gt-101"]
    with pytest.raises(MessageNotFoundError):
        store.delete("gastown-Toast", "gt-999")
    with pytest.raises(MessageNotFoundError):
        store.get("gastown-Toast", "gt-999")


def test_build_store_selects_backend(isolated_env, monkeypatch, tmp_path):
    assert isinstance(build_store(), SqlMailStore)

    monkeypatch.setenv("MAIL_STORE_BACKEND", "beads")
    monkeypatch.setenv("BEADS_WORKDIR", str(tmp_path))
    monkeypatch.setenv("BEADS_BIN", "/opt/bd")
    clear_settings_cache()
    store = build_store(get_settings())
    assert isinstance(store, BeadsMailStore)
    assert store.workdir == tmp_path
    assert store.bin == "/opt/bd"


def test_build_store_finds_beads_dir_or_fails(isolated_env, monkeypatch, tmp_path):
    monkeypatch.setenv("MAIL_STORE_BACKEND", "beads")
    monkeypatch.delenv("BEADS_WORKDIR", raising=False)
    workspace = tmp_path / "town"
    nested = workspace / "gastown" / "polecats" / "Toast"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)
    clear_settings_cache()
    with pytest.raises(PersistenceError):
        build_store()

    (workspace / ".beads").mkdir()
    store = build_store()
    assert isinstance(store, BeadsMailStore)
    assert store.workdir == workspace.resolve()


def _failing_on(sub: str, stderr: str):
    inbox = json.dumps(INBOX)

    def runner(cmd, **kwargs):
        if cmd[2] == sub:
            return subprocess.CompletedProcess(cmd, 1, stdout="", stderr=stderr)
        return subprocess.CompletedProcess(cmd, 0, stdout=inbox, stderr="")

    return runner


def test_message_gone_before_ack_is_not_found(tmp_path):
    store = BeadsMailStore(tmp_path, runner=_failing_on("ack", "Error: issue gt-101 not found"))
    with pytest.raises(MessageNotFoundError) as excinfo:
        store.delete("gastown-Toast", "gt-101")
    assert excinfo.value.message_id == "gt-101"
    assert excinfo.value.identity == "gastown-Toast"


def test_message_gone_before_mark_read_is_not_found(tmp_path):
    store = BeadsMailStore(tmp_path, runner=_failing_on("read", "Error: Issue gt-101 Not Found"))
    with pytest.raises(MessageNotFoundError):
        store.mark_read("gastown-Toast", "gt-101")


def test_other_bd_failures_stay_persistence_errors(tmp_path):
    store = BeadsMailStore(tmp_path, runner=_failing_on("ack", "database is locked"))
    with pytest.raises(PersistenceError) as excinfo:
        store.delete("gastown-Toast", "gt-101")
    assert not isinstance(excinfo.value, MessageNotFoundError)
