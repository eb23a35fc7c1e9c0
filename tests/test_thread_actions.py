"""
Thread action processor tests.

Tests cover:
- assign/unassign moderation trail and assignee validation
- status validation, transition policy, and closed/resolved provenance
- priority change events
- tag normalisation and idempotency
- one audit row per action, rolled back with the domain change
"""

import uuid

import pytest

from support_triage.core.errors import NotFoundError, PolicyViolationError, ValidationError
from support_triage.core.status_rules import STRICT_POLICY
from support_triage.db.enums import ThreadAction
from support_triage.db.models import AdminAuditLog, SupportModerationHistory, SupportThreadTag
from support_triage.schemas.support import ThreadActionRequest
from support_triage.services import thread_action_service


def _audit_actions(db) -> list[str]:
    return [
        row.action
        for row in db.query(AdminAuditLog).order_by(AdminAuditLog.created_at.asc()).all()
    ]


def _moderation_events(db, thread_id) -> list[SupportModerationHistory]:
    return (
        db.query(SupportModerationHistory)
        .filter(SupportModerationHistory.thread_id == thread_id)
        .order_by(SupportModerationHistory.created_at.asc())
        .all()
    )


class TestParsing:
    def test_unknown_action(self):
        with pytest.raises(ValidationError) as exc:
            thread_action_service.parse_action("archive")
        assert exc.value.message == "Invalid action"

    def test_missing_thread_id(self, db):
        with pytest.raises(ValidationError) as exc:
            thread_action_service.get_thread_or_404(db, "  ")
        assert exc.value.message == "threadId required"

    def test_unknown_thread(self, db):
        with pytest.raises(NotFoundError):
            thread_action_service.get_thread_or_404(db, str(uuid.uuid4()))

    def test_malformed_thread_id_is_not_found(self, db):
        with pytest.raises(NotFoundError):
            thread_action_service.get_thread_or_404(db, "thread-123")

    @pytest.mark.parametrize("raw, expected", [("  VIP ", "vip"), ("Refund", "refund")])
    def test_normalize_tag(self, raw, expected):
        assert thread_action_service.normalize_tag(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   ", "x" * 65])
    def test_normalize_tag_rejects(self, raw):
        with pytest.raises(ValidationError):
            thread_action_service.normalize_tag(raw)


class TestAssign:
    def test_assign_then_unassign_writes_two_events(self, db, make_thread, support_session, support_user):
        thread = make_thread()

        message = thread_action_service.assign_thread(
            db, actor=support_session, thread=thread, assign_to_user_id=str(support_user.id)
        )
        assert message == "Thread assigned"
        assert thread.assigned_to_user_id == support_user.id

        thread_action_service.assign_thread(
            db, actor=support_session, thread=thread, assign_to_user_id=None
        )
        db.refresh(thread)
        assert thread.assigned_to_user_id is None

        events = _moderation_events(db, thread.id)
        assert [e.action_type for e in events] == ["thread.assign", "thread.unassign"]
        assert events[0].event_metadata == {
            "prevAssigneeId": None,
            "newAssigneeId": str(support_user.id),
        }
        assert events[1].event_metadata == {
            "prevAssigneeId": str(support_user.id),
            "newAssigneeId": None,
        }
        assert events[0].actor_name == "Support Agent"
        assert events[0].actor_role == "support"
        assert events[0].entity_type == "thread"
        assert _audit_actions(db) == ["support.thread.assign", "support.thread.assign"]

    def test_invalid_assignee_writes_nothing(self, db, make_thread, support_session):
        thread = make_thread()
        with pytest.raises(ValidationError):
            thread_action_service.assign_thread(
                db, actor=support_session, thread=thread, assign_to_user_id="someone"
            )
        db.rollback()
        assert _audit_actions(db) == []
        assert _moderation_events(db, thread.id) == []

    def test_unknown_assignee_is_rejected_before_write(self, db, make_thread, support_session):
        thread = make_thread()
        with pytest.raises(ValidationError) as exc:
            thread_action_service.assign_thread(
                db, actor=support_session, thread=thread, assign_to_user_id=str(uuid.uuid4())
            )
        assert exc.value.message == "assignToUserId does not match a user"
        assert thread.assigned_to_user_id is None
        assert _audit_actions(db) == []

    def test_buyer_cannot_be_assignee(self, db, make_thread, support_session, buyer_user):
        thread = make_thread()
        with pytest.raises(ValidationError) as exc:
            thread_action_service.assign_thread(
                db, actor=support_session, thread=thread, assign_to_user_id=str(buyer_user.id)
            )
        assert exc.value.message == "Assignee must be a support or admin user"
        db.rollback()
        db.refresh(thread)
        assert thread.assigned_to_user_id is None
        assert _moderation_events(db, thread.id) == []

    def test_inactive_staff_cannot_be_assignee(self, db, make_thread, support_session, admin_user):
        admin_user.is_active = False
        db.commit()
        thread = make_thread()
        with pytest.raises(ValidationError):
            thread_action_service.assign_thread(
                db, actor=support_session, thread=thread, assign_to_user_id=str(admin_user.id)
            )

    def test_admin_can_be_assignee(self, db, make_thread, support_session, admin_user):
        thread = make_thread()
        thread_action_service.assign_thread(
            db, actor=support_session, thread=thread, assign_to_user_id=str(admin_user.id)
        )
        assert thread.assigned_to_user_id == admin_user.id


class TestStatus:
    def test_invalid_status(self, db, make_thread, support_session):
        thread = make_thread()
        with pytest.raises(ValidationError) as exc:
            thread_action_service.set_status(
                db, actor=support_session, thread=thread, status_value="archived"
            )
        assert exc.value.message == "Invalid status"

    def test_resolve_and_close_stamp_provenance_once(
        self, db, make_thread, support_session, admin_session
    ):
        thread = make_thread()

        thread_action_service.set_status(
            db, actor=support_session, thread=thread, status_value="resolved"
        )
        assert thread.status == "resolved"
        assert thread.resolved_by_user_id == support_session.user_id
        assert thread.closed_by_user_id is None

        thread_action_service.set_status(
            db, actor=admin_session, thread=thread, status_value="closed"
        )
        assert thread.closed_by_user_id == admin_session.user_id

        # Reopen and resolve again: the first resolver is kept
        thread_action_service.set_status(db, actor=admin_session, thread=thread, status_value="open")
        thread_action_service.set_status(
            db, actor=admin_session, thread=thread, status_value="resolved"
        )
        db.refresh(thread)
        assert thread.resolved_by_user_id == support_session.user_id
        assert thread.closed_by_user_id == admin_session.user_id

    def test_status_writes_audit_but_no_moderation_event(self, db, make_thread, support_session):
        thread = make_thread(status="open")
        thread_action_service.set_status(
            db, actor=support_session, thread=thread, status_value="waiting"
        )

        [audit] = db.query(AdminAuditLog).all()
        assert audit.action == "support.thread.status"
        assert audit.entity_type == "support_thread"
        assert audit.entity_id == str(thread.id)
        assert audit.meta == {"prevStatus": "open", "newStatus": "waiting"}
        assert _moderation_events(db, thread.id) == []

    def test_permissive_policy_allows_closed_to_waiting(self, db, make_thread, support_session):
        thread = make_thread(status="closed")
        thread_action_service.set_status(
            db, actor=support_session, thread=thread, status_value="waiting"
        )
        assert thread.status == "waiting"

    def test_strict_policy_rejects_closed_to_waiting(self, db, make_thread, support_session):
        thread = make_thread(status="closed")
        with pytest.raises(PolicyViolationError) as exc:
            thread_action_service.set_status(
                db,
                actor=support_session,
                thread=thread,
                status_value="waiting",
                policy=STRICT_POLICY,
            )
        assert exc.value.status_code == 400
        db.rollback()
        db.refresh(thread)
        assert thread.status == "closed"
        assert _audit_actions(db) == []


class TestPriority:
    def test_priority_change_event(self, db, make_thread, support_session):
        thread = make_thread(priority="normal")
        message = thread_action_service.set_priority(
            db, actor=support_session, thread=thread, priority_value="urgent"
        )
        assert message == "Priority updated"
        assert thread.priority == "urgent"

        [event] = _moderation_events(db, thread.id)
        assert event.action_type == "thread.priorityChange"
        assert event.note == "Priority changed from normal to urgent"
        assert event.event_metadata == {"prevPriority": "normal", "newPriority": "urgent"}
        assert _audit_actions(db) == ["support.thread.priority"]

    def test_invalid_priority(self, db, make_thread, support_session):
        thread = make_thread()
        with pytest.raises(ValidationError):
            thread_action_service.set_priority(
                db, actor=support_session, thread=thread, priority_value="critical"
            )


class TestTags:
    def test_add_tag_is_idempotent(self, db, make_thread, support_session):
        thread = make_thread()
        thread_action_service.add_tag(db, actor=support_session, thread=thread, tag_value="VIP")
        thread_action_service.add_tag(db, actor=support_session, thread=thread, tag_value=" vip ")

        tags = db.query(SupportThreadTag).filter(SupportThreadTag.thread_id == thread.id).all()
        assert [t.tag for t in tags] == ["vip"]
        assert _audit_actions(db) == ["support.thread.addTag", "support.thread.addTag"]

    def test_tags_do_not_touch_thread_row(self, db, make_thread, support_session):
        thread = make_thread()
        before = thread.updated_at
        thread_action_service.add_tag(db, actor=support_session, thread=thread, tag_value="vip")
        thread_action_service.remove_tag(db, actor=support_session, thread=thread, tag_value="vip")
        db.refresh(thread)
        assert thread.updated_at == before

    def test_remove_missing_tag_is_not_an_error(self, db, make_thread, support_session):
        thread = make_thread()
        message = thread_action_service.remove_tag(
            db, actor=support_session, thread=thread, tag_value="never-added"
        )
        assert message == "Tag removed"
        assert _audit_actions(db) == ["support.thread.removeTag"]

    def test_remove_tag_normalises(self, db, make_thread, support_session):
        thread = make_thread()
        thread_action_service.add_tag(db, actor=support_session, thread=thread, tag_value="refund")
        thread_action_service.remove_tag(db, actor=support_session, thread=thread, tag_value="REFUND")
        assert db.query(SupportThreadTag).count() == 0


class TestApplyAction:
    def test_dispatches_by_action(self, db, make_thread, support_session):
        thread = make_thread()
        request = ThreadActionRequest(thread_id=str(thread.id), action="priority", priority="high")
        assert thread_action_service.apply_action(db, actor=support_session, request=request) == (
            "Priority updated"
        )

        request = ThreadActionRequest(thread_id=str(thread.id), action="addTag", tag="vip")
        assert (
            thread_action_service.apply_action(
                db, actor=support_session, request=request, action=ThreadAction.ADD_TAG
            )
            == "Tag added"
        )

    def test_missing_thread_checked_first(self, db, support_session):
        request = ThreadActionRequest(action="status", status="closed")
        with pytest.raises(ValidationError) as exc:
            thread_action_service.apply_action(db, actor=support_session, request=request)
        assert exc.value.message == "threadId required"
