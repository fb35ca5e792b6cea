"""Tests for audit event building, dispatch and the audit log store."""

import logging

import pytest

from conftest import make_caller, make_context
from resourcegate.audit import AuditEvent, AuditLogStore, AuditRecorder, compute_changes
from resourcegate.crud import ResourceService
from resourcegate.redaction import HiddenFieldsCache
from resourcegate.validation import RequestValidator


class BrokenHook:
    def record(self, event):
        raise RuntimeError("sink unavailable")


@pytest.fixture
def log_store(tmp_path):
    store = AuditLogStore(f"sqlite:///{tmp_path / 'audit.db'}")
    yield store
    store.dispose()


class TestComputeChanges:
    def test_only_changed_fields(self):
        old, new = compute_changes({"a": 1, "b": 2}, {"a": 1, "b": 3, "c": 4})
        assert old == {"b": 2, "c": None}
        assert new == {"b": 3, "c": 4}

    def test_create_keeps_full_snapshot(self):
        assert compute_changes(None, {"a": 1}) == (None, {"a": 1})


class TestAuditRecorder:
    def test_no_event_without_hook(self, registry):
        recorder = AuditRecorder()
        assert recorder.build(registry.resolve("posts"), "created", None, {"id": "1"}, None, None) is None

    def test_no_event_for_unaudited_resource(self, registry, log_store):
        recorder = AuditRecorder(log_store)
        assert recorder.build(registry.resolve("comments"), "created", None, {"id": "1"}, None, None) is None

    def test_build(self, registry, log_store):
        recorder = AuditRecorder(log_store)
        event = recorder.build(
            registry.resolve("posts"),
            "updated",
            {"id": "p1", "title": "Old", "body": "same"},
            {"id": "p1", "title": "New", "body": "same"},
            make_caller("alice"),
            "t1",
        )
        assert event == AuditEvent(
            entity="Post",
            action="updated",
            record_id="p1",
            before={"title": "Old"},
            after={"title": "New"},
            user_id="alice",
            tenant_id="t1",
        )

    def test_excluded_fields_dropped(self, registry, log_store):
        recorder = AuditRecorder(log_store)
        event = recorder.build(registry.resolve("posts"), "created", None, {"id": "p1", "password": "x"}, None, None)
        assert event.after == {"id": "p1"}

    def test_hook_failure_is_logged(self, caplog):
        recorder = AuditRecorder(BrokenHook())
        with caplog.at_level(logging.ERROR):
            recorder.dispatch([AuditEvent("Post", "created", "p1"), None])
        assert "Audit hook failed for Post created p1" in caplog.text


class TestAuditLogStore:
    def test_record_and_list(self, log_store):
        log_store.record(AuditEvent("Post", "created", "p1", after={"title": "A"}, user_id="alice", tenant_id="t1"))
        log_store.record(AuditEvent("Post", "updated", "p1", before={"title": "A"}, after={"title": "B"}))
        log_store.record(AuditEvent("Post", "created", "p2"))

        entries = log_store.list_for("Post", "p1")
        assert [e["event"] for e in entries] == ["created", "updated"]
        assert entries[0]["newValues"] == {"title": "A"}
        assert entries[0]["oldValues"] is None
        assert entries[0]["userId"] == "alice"
        assert entries[1]["oldValues"] == {"title": "A"}

        assert len(log_store.list_for("Post")) == 3
        assert log_store.list_for("Blog") == []


class TestServiceAuditing:
    def test_failing_hook_does_not_undo_write(self, registry, store, scopes, seeded, caplog):
        service = ResourceService(
            registry, store, scopes, HiddenFieldsCache(), RequestValidator(), AuditRecorder(BrokenHook())
        )
        ctx = make_context(seeded["acme"]["id"])
        with caplog.at_level(logging.ERROR):
            blog = service.store("blogs", ctx, {"title": "Still here"})
        assert store.get(registry.resolve("blogs"), blog["id"]) is not None
        assert "Audit hook failed" in caplog.text

    def test_lifecycle_is_recorded(self, registry, store, scopes, seeded, log_store):
        service = ResourceService(
            registry, store, scopes, HiddenFieldsCache(), RequestValidator(), AuditRecorder(log_store)
        )
        ctx = make_context(seeded["acme"]["id"])
        post_id = seeded["acme_post"]["id"]
        service.update("posts", post_id, ctx, {"title": "Renamed"})
        service.destroy("posts", post_id, ctx)
        service.restore("posts", post_id, ctx)
        service.destroy("posts", post_id, ctx)
        service.force_delete("posts", post_id, ctx)

        events = [e["event"] for e in log_store.list_for("Post", post_id)]
        assert events == ["updated", "deleted", "restored", "deleted", "forceDeleted"]
