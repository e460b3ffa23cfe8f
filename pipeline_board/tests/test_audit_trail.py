"""
Audit trail (bounded, newest first) and user notifications.
"""

from pipeline_board.models import ItemKind, Stage
from pipeline_board.services.audit_trail import AuditTrail
from pipeline_board.services.notifier import Notifier


class TestAuditTrail:
    def test_summary_and_fields(self):
        trail = AuditTrail(5)
        entry = trail.record_stage_change(
            ItemKind.JOB, "job-123", "mary@example.com", Stage.ACCEPTED,
            "Moved via Kanban board", old_stage=Stage.QUOTE,
        )
        assert entry.summary == "Stage changed from Quote to Accepted. Reason: Moved via Kanban board"
        assert entry.action == "update"
        assert entry.actor == "mary@example.com"
        assert entry.entity_kind == ItemKind.JOB
        assert entry.id.startswith("audit-")
        assert entry.timestamp

    def test_without_old_stage(self):
        entry = AuditTrail().record_stage_change(ItemKind.CUSTOMER, "customer-1", None, Stage.REJECTED, "why")
        assert entry.summary == "Stage changed to Rejected. Reason: why"
        assert entry.actor == "current_user"

    def test_newest_first_and_bounded(self):
        trail = AuditTrail(3)
        for i in range(5):
            trail.record_stage_change(ItemKind.JOB, f"job-{i}", "a@b.c", Stage.SURVEY, "r")
        assert len(trail) == 3
        assert [e.entity_id for e in trail.entries()] == ["job-4", "job-3", "job-2"]

    def test_unique_ids(self):
        trail = AuditTrail(10)
        ids = {trail.record_stage_change(ItemKind.JOB, "job-1", "a@b.c", Stage.SURVEY, "r").id for _ in range(4)}
        assert len(ids) == 4

    def test_zero_limit_keeps_nothing(self):
        trail = AuditTrail(0)
        trail.record_stage_change(ItemKind.JOB, "job-1", "a@b.c", Stage.SURVEY, "r")
        assert len(trail) == 0

    def test_entries_is_a_copy(self):
        trail = AuditTrail()
        trail.record_stage_change(ItemKind.JOB, "job-1", "a@b.c", Stage.SURVEY, "r")
        trail.entries().clear()
        assert len(trail) == 1
        trail.clear()
        assert len(trail) == 0


class TestNotifier:
    def test_records_and_forwards(self):
        seen = []
        notifier = Notifier(seen.append)
        notifier.error("boom")
        notifier.success("ok")
        assert [(n.level, n.message) for n in notifier.notifications] == [("error", "boom"), ("success", "ok")]
        assert [n.message for n in seen] == ["boom", "ok"]

    def test_subscribe_later(self):
        notifier = Notifier()
        notifier.error("before")
        seen = []
        notifier.subscribe(seen.append)
        notifier.error("after")
        assert [n.message for n in seen] == ["after"]
        notifier.clear()
        assert notifier.notifications == []
