import csv
import io
import re
import uuid
from datetime import datetime, timezone

import pytest

from support_triage.core.config import settings
from support_triage.core.deps import CSRF_HEADER
from support_triage.db.models import AdminAuditLog, SupportModerationHistory, SupportThreadTag
from support_triage.services import thread_query_service


class TestThreadsAuth:
    @pytest.mark.asyncio
    async def test_unauthenticated_is_401(self, client):
        response = await client.get("/threads")
        assert response.status_code == 401
        assert response.json() == {"error": "Not authenticated"}

    @pytest.mark.asyncio
    async def test_buyer_is_403(self, buyer_client):
        response = await buyer_client.get("/threads")
        assert response.status_code == 403
        assert response.json() == {"error": "Forbidden"}

    @pytest.mark.asyncio
    async def test_support_is_200(self, support_client, make_thread):
        make_thread()
        response = await support_client.get("/threads")
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["page"] == 1
        assert body["limit"] == 50
        assert set(body["data"][0]) >= {"id", "sourceId", "displaySubject", "tags", "slaBreach"}

    @pytest.mark.asyncio
    async def test_revoked_session_is_401(self, db, support_client, support_user):
        support_user.token_version += 1
        db.commit()
        response = await support_client.get("/threads")
        assert response.status_code == 401
        assert response.json() == {"error": "Session revoked"}

    @pytest.mark.asyncio
    async def test_garbage_cookie_is_401(self, client):
        client.cookies.set("support_session", "not-a-jwt")
        response = await client.get("/threads")
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid session"}


class TestThreadsList:
    @pytest.mark.asyncio
    async def test_filters_and_pagination(self, support_client, make_thread, support_user):
        for _ in range(3):
            make_thread(assigned_to_user_id=support_user.id)
        make_thread()

        response = await support_client.get(
            "/threads", params={"myQueue": "true", "limit": "2", "page": "2"}
        )
        body = response.json()
        assert body["total"] == 3
        assert body["page"] == 2
        assert len(body["data"]) == 1

    @pytest.mark.asyncio
    async def test_out_of_range_paging_is_clamped(self, support_client):
        response = await support_client.get("/threads", params={"limit": "1000", "page": "-3"})
        body = response.json()
        assert response.status_code == 200
        assert body["limit"] == 100
        assert body["page"] == 1

    @pytest.mark.asyncio
    async def test_malformed_id_is_400(self, support_client):
        response = await support_client.get("/threads", params={"sellerId": "abc"})
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid sellerId"}

    @pytest.mark.asyncio
    async def test_waiting_first_queue(self, support_client, make_thread):
        open_new = make_thread(status="open", last_message_at=datetime(2024, 3, 9, tzinfo=timezone.utc))
        waiting_new = make_thread(status="waiting", last_message_at=datetime(2024, 3, 8, tzinfo=timezone.utc))
        waiting_old = make_thread(status="waiting", last_message_at=datetime(2024, 3, 1, tzinfo=timezone.utc))

        response = await support_client.get("/threads", params={"status": "waiting,open"})
        ids = [row["id"] for row in response.json()["data"]]
        assert ids == [str(waiting_old.id), str(waiting_new.id), str(open_new.id)]

    @pytest.mark.asyncio
    async def test_unexpected_error_is_generic_500(self, support_client, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("connection reset by peer at 10.0.0.3")

        monkeypatch.setattr(thread_query_service, "list_threads", boom)
        response = await support_client.get("/threads")
        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}
        assert "X-Request-ID" in response.headers


class TestThreadDetail:
    @pytest.mark.asyncio
    async def test_detail_includes_tags_and_extended_flags(
        self, db, support_client, make_thread, make_conversation
    ):
        conversation = make_conversation()
        thread = make_thread(source_id=str(conversation.id))
        db.add(SupportThreadTag(thread_id=thread.id, tag="vip"))
        db.commit()

        response = await support_client.post(
            "/flags",
            json={"conversationId": str(conversation.id), "action": "setFraud", "fraudSuspected": True},
        )
        assert response.status_code == 200

        response = await support_client.get(f"/threads/{thread.id}")
        assert response.status_code == 200
        body = response.json()
        assert body["tags"] == ["vip"]
        assert body["extendedFlags"]["fraudSuspected"] is True

    @pytest.mark.asyncio
    async def test_detail_for_non_uuid_source(self, support_client, make_thread):
        thread = make_thread(source="whatsapp", source_id="40700000000")
        response = await support_client.get(f"/threads/{thread.id}")
        assert response.status_code == 200
        assert response.json()["extendedFlags"] is None
        assert response.json()["displaySubject"] == "Webchat: Vizitator"

    @pytest.mark.asyncio
    async def test_detail_not_found(self, support_client):
        response = await support_client.get(f"/threads/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json() == {"error": "Thread not found"}


class TestThreadExport:
    @pytest.mark.asyncio
    async def test_export_below_admin_is_403_without_audit(self, db, support_client, make_thread):
        make_thread()
        response = await support_client.get("/threads", params={"export": "csv"})
        assert response.status_code == 403
        assert response.json() == {"error": "Export requires admin role"}
        assert db.query(AdminAuditLog).count() == 0

    @pytest.mark.asyncio
    async def test_export_csv(self, db, admin_client, make_thread, make_seller, support_user):
        seller = make_seller('Acme "Deluxe" Ceramics')
        make_thread(
            subject="=HYPERLINK(\"http://evil\")",
            seller_id=seller.id,
            assigned_to_user_id=support_user.id,
            message_count=7,
            sla_breach=True,
            last_message_at=datetime(2024, 3, 2, 8, 30, tzinfo=timezone.utc),
            created_at=datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc),
        )
        make_thread(status="closed")

        response = await admin_client.get("/threads", params={"export": "csv", "status": "open"})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert re.fullmatch(
            r'attachment; filename="support-threads-\d{4}-\d{2}-\d{2}\.csv"',
            response.headers["content-disposition"],
        )

        lines = response.text.splitlines()
        assert lines[0].startswith('"ID","Source","Status","Priority","Subject"')
        assert '"Acme ""Deluxe"" Ceramics"' in lines[1]

        rows = list(csv.reader(io.StringIO(response.text)))
        assert len(rows) == 2
        row = dict(zip(rows[0], rows[1]))
        assert row["Subject"].startswith("'=HYPERLINK")
        assert row["Assigned To"] == support_user.email
        assert row["Message Count"] == "7"
        assert row["SLA Breach"] == "Yes"
        assert row["Last Message"] == "2024-03-02T08:30:00.000Z"
        assert row["Created"] == "2024-03-01T12:00:00.000Z"

        [audit] = db.query(AdminAuditLog).all()
        assert audit.action == "support.threads.export"
        assert audit.entity_type == "support_threads"
        assert audit.entity_id == "bulk"
        assert audit.meta == {"filters": {"status": ["open"]}, "count": 1}

    @pytest.mark.asyncio
    async def test_export_is_capped(self, admin_client, make_thread, monkeypatch):
        for _ in range(3):
            make_thread()
        monkeypatch.setattr(settings, "THREAD_EXPORT_MAX_ROWS", 2)

        response = await admin_client.get("/threads", params={"export": "csv"})
        assert len(response.text.splitlines()) == 3

    @pytest.mark.asyncio
    async def test_export_with_unmatched_tag_has_header_only(self, admin_client, make_thread):
        make_thread()
        response = await admin_client.get("/threads", params={"export": "csv", "tags": "ghost"})
        assert response.status_code == 200
        assert len(response.text.splitlines()) == 1
        assert "Unassigned" not in response.text


class TestThreadActionsApi:
    @pytest.mark.asyncio
    async def test_assign_then_unassign(self, db, support_client, make_thread, support_user):
        thread = make_thread()

        response = await support_client.post(
            "/threads",
            json={"threadId": str(thread.id), "action": "assign", "assignToUserId": str(support_user.id)},
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Thread assigned"}

        response = await support_client.post(
            "/threads", json={"threadId": str(thread.id), "action": "assign"}
        )
        assert response.status_code == 200

        db.refresh(thread)
        assert thread.assigned_to_user_id is None
        actions = [
            e.action_type
            for e in db.query(SupportModerationHistory)
            .order_by(SupportModerationHistory.created_at.asc())
            .all()
        ]
        assert actions == ["thread.assign", "thread.unassign"]

    @pytest.mark.asyncio
    async def test_assign_to_unknown_or_buyer_is_400(
        self, db, support_client, make_thread, buyer_user
    ):
        thread = make_thread()
        for assignee, error in [
            (str(uuid.uuid4()), "assignToUserId does not match a user"),
            (str(buyer_user.id), "Assignee must be a support or admin user"),
        ]:
            response = await support_client.post(
                "/threads",
                json={"threadId": str(thread.id), "action": "assign", "assignToUserId": assignee},
            )
            assert response.status_code == 400
            assert response.json() == {"error": error}

        db.refresh(thread)
        assert thread.assigned_to_user_id is None
        assert db.query(AdminAuditLog).count() == 0

    @pytest.mark.asyncio
    async def test_missing_csrf_header_is_403(self, db, support_client, make_thread):
        thread = make_thread()
        response = await support_client.post(
            "/threads",
            json={"threadId": str(thread.id), "action": "priority", "priority": "high"},
            headers={CSRF_HEADER: "fetch"},
        )
        assert response.status_code == 403
        assert "CSRF" in response.json()["error"]
        db.refresh(thread)
        assert thread.priority == "normal"

    @pytest.mark.asyncio
    async def test_invalid_action_is_400(self, support_client, make_thread):
        thread = make_thread()
        response = await support_client.post(
            "/threads", json={"threadId": str(thread.id), "action": "archive"}
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid action"}

    @pytest.mark.asyncio
    async def test_unknown_thread_is_404(self, support_client):
        response = await support_client.post(
            "/threads", json={"threadId": str(uuid.uuid4()), "action": "status", "status": "closed"}
        )
        assert response.status_code == 404
        assert response.json() == {"error": "Thread not found"}

    @pytest.mark.asyncio
    async def test_invalid_body_is_400(self, support_client):
        response = await support_client.post("/threads", json=["not", "an", "object"])
        assert response.status_code == 400
        assert "error" in response.json()

    @pytest.mark.asyncio
    async def test_buyer_cannot_act(self, buyer_client, make_thread):
        thread = make_thread()
        response = await buyer_client.post(
            "/threads", json={"threadId": str(thread.id), "action": "addTag", "tag": "vip"}
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_tag_round_trip_changes_filter_result(self, support_client, make_thread, make_seller):
        seller = make_seller()
        thread = make_thread(seller_id=seller.id)
        params = {"sellerId": str(seller.id), "tags": "vip"}

        assert (await support_client.get("/threads", params=params)).json()["total"] == 0

        for _ in range(2):
            response = await support_client.post(
                "/threads", json={"threadId": str(thread.id), "action": "addTag", "tag": "VIP"}
            )
            assert response.json() == {"success": True, "message": "Tag added"}

        body = (await support_client.get("/threads", params=params)).json()
        assert body["total"] == 1
        assert body["data"][0]["tags"] == ["vip"]

    @pytest.mark.asyncio
    async def test_strict_transitions_reject(self, support_client, make_thread, monkeypatch):
        monkeypatch.setattr(settings, "STATUS_TRANSITIONS_STRICT", True)
        thread = make_thread(status="closed")
        response = await support_client.post(
            "/threads", json={"threadId": str(thread.id), "action": "status", "status": "waiting"}
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Cannot change status from closed to waiting"}


class TestThreadSearch:
    @pytest.mark.asyncio
    async def test_matches_across_buyer_seller_order_and_text(
        self, support_client, make_thread, make_seller, make_order, buyer_user
    ):
        seller = make_seller()
        order = make_order("ORD-2024-00417")
        by_buyer = make_thread(buyer_id=buyer_user.id, subject="Hello")
        by_seller = make_thread(seller_id=seller.id, subject="Hello")
        by_order = make_thread(order_id=order.id, subject="Hello")
        by_preview = make_thread(
            subject="Hello", last_message_preview="Parcel ORD-2024-00417 lost"
        )
        unrelated = make_thread(subject="Unrelated")

        async def ids(q):
            response = await support_client.get("/threads/search", params={"q": q})
            assert response.status_code == 200
            body = response.json()
            assert body["total"] == len(body["data"])
            return {row["id"] for row in body["data"]}

        assert await ids(buyer_user.email.upper()) == {str(by_buyer.id)}
        assert await ids(seller.slug) == {str(by_seller.id)}
        assert await ids("ord-2024-00417") == {str(by_order.id), str(by_preview.id)}
        assert await ids("unrelat") == {str(unrelated.id)}

    @pytest.mark.asyncio
    async def test_status_filter_and_paging(self, support_client, make_thread):
        for i in range(3):
            make_thread(subject=f"Refund {i}", status="open")
        make_thread(subject="Refund closed", status="closed")

        response = await support_client.get(
            "/threads/search", params={"q": "refund", "status": "open", "limit": "2", "page": "2"}
        )
        body = response.json()
        assert body["total"] == 3
        assert body["page"] == 2
        assert len(body["data"]) == 1
        assert body["data"][0]["status"] == "open"

    @pytest.mark.asyncio
    async def test_open_and_waiting_puts_waiting_first(self, support_client, make_thread):
        open_thread = make_thread(
            subject="Refund A",
            status="open",
            last_message_at=datetime(2024, 3, 5, tzinfo=timezone.utc),
        )
        waiting = make_thread(
            subject="Refund B",
            status="waiting",
            last_message_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
        )
        body = (
            await support_client.get(
                "/threads/search", params={"q": "refund", "status": "open,waiting"}
            )
        ).json()
        assert [row["id"] for row in body["data"]] == [str(waiting.id), str(open_thread.id)]

    @pytest.mark.asyncio
    async def test_missing_query_is_400(self, support_client):
        response = await support_client.get("/threads/search", params={"q": "   "})
        assert response.status_code == 400
        assert response.json() == {"error": "q (search query) required"}

    @pytest.mark.asyncio
    async def test_buyer_is_403(self, buyer_client):
        response = await buyer_client.get("/threads/search", params={"q": "x"})
        assert response.status_code == 403
