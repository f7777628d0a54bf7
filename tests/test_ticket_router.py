"""HTTP tests for the support ticket endpoints.

Requests go through the full app: JWT auth, the per-request unit of work,
and the structured error envelope.
"""

from __future__ import annotations

import pytest

from src.modules.ticket.router import router
from tests.conftest import auth_headers

BASE = "/api/v1/tickets"


async def _open_ticket(client, customer, **overrides) -> dict:
    body = {
        "subject": "Kettle arrived cracked",
        "description": "The lid is split down the middle.",
        "category": "product",
        "priority": "high",
    }
    body.update(overrides)
    response = await client.post(f"{BASE}/", json=body, headers=auth_headers(customer))
    assert response.status_code == 201, response.text
    return response.json()


class TestRouterPaths:
    def test_customer_and_admin_paths(self):
        paths = {r.path for r in router.routes}
        assert {
            "/tickets/options",
            "/tickets/",
            "/tickets/mine",
            "/tickets/mine/{ticket_id}",
            "/tickets/{ticket_id}/reply",
            "/tickets/admin",
            "/tickets/admin/stats",
            "/tickets/admin/escalated",
            "/tickets/admin/{ticket_id}",
            "/tickets/admin/{ticket_id}/activities",
            "/tickets/admin/{ticket_id}/reply",
            "/tickets/admin/{ticket_id}/assign",
            "/tickets/admin/{ticket_id}/status",
            "/tickets/admin/{ticket_id}/priority",
            "/tickets/admin/{ticket_id}/escalate",
            "/tickets/admin/{ticket_id}/close",
        }.issubset(paths)


class TestCustomerFlow:
    @pytest.mark.asyncio
    async def test_create_returns_detail(self, async_client, customer):
        ticket = await _open_ticket(async_client, customer)

        assert ticket["ticket_number"].startswith("TKT-")
        assert ticket["status"] == "open"
        assert ticket["status_label"] == "Open"
        assert ticket["priority_label"] == "High"
        assert ticket["category_label"] == "Product Quality"
        assert ticket["sla_hours"] == 24
        assert ticket["is_sla_breached"] is False
        assert 0 < ticket["sla_remaining_minutes"] <= 24 * 60
        assert {t["status"] for t in ticket["available_transitions"]} == {
            "in_progress", "awaiting_customer", "awaiting_internal",
            "escalated", "resolved", "closed",
        }
        assert len(ticket["messages"]) == 1
        assert ticket["version"] == 1

    @pytest.mark.asyncio
    async def test_admin_cannot_open_ticket(self, async_client, admin):
        response = await async_client.post(
            f"{BASE}/",
            json={"subject": "x", "description": "y"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_internal_notes_hidden_from_customer(self, async_client, customer, admin):
        ticket = await _open_ticket(async_client, customer)
        ticket_id = ticket["id"]

        await async_client.post(
            f"{BASE}/admin/{ticket_id}/reply",
            json={"message": "Courier claim filed", "is_internal": True},
            headers=auth_headers(admin),
        )
        await async_client.post(
            f"{BASE}/admin/{ticket_id}/reply",
            json={"message": "We are sending a new kettle."},
            headers=auth_headers(admin),
        )

        mine = await async_client.get(f"{BASE}/mine/{ticket_id}", headers=auth_headers(customer))
        assert mine.status_code == 200
        customer_view = [m["message"] for m in mine.json()["messages"]]
        assert "Courier claim filed" not in customer_view
        assert "We are sending a new kettle." in customer_view
        assert mine.json()["status"] == "awaiting_customer"

        full = await async_client.get(f"{BASE}/admin/{ticket_id}", headers=auth_headers(admin))
        admin_view = [m["message"] for m in full.json()["messages"]]
        assert "Courier claim filed" in admin_view

    @pytest.mark.asyncio
    async def test_customer_reply(self, async_client, customer, admin):
        ticket = await _open_ticket(async_client, customer)
        await async_client.post(
            f"{BASE}/admin/{ticket['id']}/reply",
            json={"message": "Can you send a photo?"},
            headers=auth_headers(admin),
        )

        response = await async_client.post(
            f"{BASE}/{ticket['id']}/reply",
            json={"message": "Photo attached"},
            headers=auth_headers(customer),
        )

        assert response.status_code == 200
        assert response.json()["status"] == "in_progress"

    @pytest.mark.asyncio
    async def test_other_customer_sees_not_found(self, async_client, customer, other_customer):
        ticket = await _open_ticket(async_client, customer)
        response = await async_client.get(
            f"{BASE}/mine/{ticket['id']}", headers=auth_headers(other_customer)
        )
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_list_mine(self, async_client, customer, other_customer):
        await _open_ticket(async_client, customer)
        await _open_ticket(async_client, other_customer)

        response = await async_client.get(f"{BASE}/mine", headers=auth_headers(customer))

        assert response.json()["total"] == 1

    @pytest.mark.asyncio
    async def test_blank_subject_is_validation_error(self, async_client, customer):
        response = await async_client.post(
            f"{BASE}/",
            json={"subject": "", "description": "y"},
            headers=auth_headers(customer),
        )
        assert response.status_code == 422
        body = response.json()["error"]
        assert body["code"] == "VALIDATION_ERROR"
        assert any("subject" in d["field"] for d in body["details"])

    @pytest.mark.asyncio
    async def test_options(self, async_client, customer):
        response = await async_client.get(f"{BASE}/options", headers=auth_headers(customer))
        body = response.json()
        closed = next(s for s in body["statuses"] if s["status"] == "closed")
        assert closed["is_terminal"] is True
        assert closed["next"] == []
        assert {"value": "urgent", "label": "Urgent"} in body["priorities"]


class TestAdminOperations:
    @pytest.mark.asyncio
    async def test_customer_cannot_use_admin_queue(self, async_client, customer):
        response = await async_client.get(f"{BASE}/admin", headers=auth_headers(customer))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_illegal_transition_envelope(self, async_client, customer, admin):
        ticket = await _open_ticket(async_client, customer)
        await async_client.put(
            f"{BASE}/admin/{ticket['id']}/escalate",
            json={"reason": "VIP"},
            headers=auth_headers(admin),
        )

        response = await async_client.put(
            f"{BASE}/admin/{ticket['id']}/status",
            json={"status": "open"},
            headers={**auth_headers(admin), "X-Request-ID": "req-123"},
        )

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "ILLEGAL_TRANSITION"
        assert error["requestId"] == "req-123"
        assert {"field": "current_status", "message": "escalated"} in error["details"]
        assert response.headers["X-Request-ID"] == "req-123"

        detail = await async_client.get(f"{BASE}/admin/{ticket['id']}", headers=auth_headers(admin))
        assert detail.json()["status"] == "escalated"
        assert detail.json()["escalation_level"] == 1
        assert len(detail.json()["escalations"]) == 1

    @pytest.mark.asyncio
    async def test_stale_version_rejected(self, async_client, customer, admin):
        ticket = await _open_ticket(async_client, customer)
        await async_client.put(
            f"{BASE}/admin/{ticket['id']}/assign",
            json={"assignee_id": str(admin.id), "expected_version": 1},
            headers=auth_headers(admin),
        )

        response = await async_client.put(
            f"{BASE}/admin/{ticket['id']}/priority",
            json={"priority": "low", "expected_version": 1},
            headers=auth_headers(admin),
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONCURRENT_MODIFICATION"
        detail = await async_client.get(f"{BASE}/admin/{ticket['id']}", headers=auth_headers(admin))
        assert detail.json()["priority"] == "high"
        assert detail.json()["version"] == 2

    @pytest.mark.asyncio
    async def test_close_and_reply_refused(self, async_client, customer, admin):
        ticket = await _open_ticket(async_client, customer)
        closed = await async_client.put(
            f"{BASE}/admin/{ticket['id']}/close",
            json={"resolution_summary": "Replacement shipped"},
            headers=auth_headers(admin),
        )
        assert closed.status_code == 200
        assert closed.json()["status"] == "resolved"
        assert closed.json()["available_transitions"] == []
        assert closed.json()["sla_remaining_minutes"] == 0

        response = await async_client.post(
            f"{BASE}/{ticket['id']}/reply",
            json={"message": "Thanks"},
            headers=auth_headers(customer),
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "TICKET_CLOSED"

    @pytest.mark.asyncio
    async def test_queue_stats_and_activities(self, async_client, customer, admin):
        ticket = await _open_ticket(async_client, customer)
        await _open_ticket(async_client, customer, priority="urgent", subject="Charged twice")

        queue = await async_client.get(f"{BASE}/admin", headers=auth_headers(admin))
        assert queue.json()["total"] == 2
        assert queue.json()["items"][0]["priority"] == "urgent"

        stats = await async_client.get(f"{BASE}/admin/stats", headers=auth_headers(admin))
        assert stats.status_code == 200
        assert stats.json()["open"] == 2
        assert stats.json()["unassigned"] == 2

        activities = await async_client.get(
            f"{BASE}/admin/{ticket['id']}/activities", headers=auth_headers(admin)
        )
        assert [a["activity_type"] for a in activities.json()] == ["ticket_created"]

    @pytest.mark.asyncio
    async def test_escalated_list(self, async_client, customer, admin):
        ticket = await _open_ticket(async_client, customer)
        await async_client.put(
            f"{BASE}/admin/{ticket['id']}/escalate",
            json={"reason": "Angry customer", "notes": "Call back today"},
            headers=auth_headers(admin),
        )

        response = await async_client.get(f"{BASE}/admin/escalated", headers=auth_headers(admin))

        assert [t["id"] for t in response.json()] == [ticket["id"]]
        assert response.json()[0]["priority"] == "urgent"

    @pytest.mark.asyncio
    async def test_status_endpoint_cannot_escalate(self, async_client, customer, admin):
        ticket = await _open_ticket(async_client, customer)

        response = await async_client.put(
            f"{BASE}/admin/{ticket['id']}/status",
            json={"status": "escalated"},
            headers=auth_headers(admin),
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        detail = await async_client.get(f"{BASE}/admin/{ticket['id']}", headers=auth_headers(admin))
        assert detail.json()["status"] == "open"
        assert detail.json()["escalation_level"] == 0
        assert detail.json()["escalations"] == []
        escalated = await async_client.get(f"{BASE}/admin/escalated", headers=auth_headers(admin))
        assert escalated.json() == []


class TestRateLimit:
    @pytest.mark.asyncio
    async def test_ticket_creation_is_rate_limited(self, async_client, customer):
        for _ in range(20):
            await _open_ticket(async_client, customer)

        response = await async_client.post(
            f"{BASE}/",
            json={"subject": "One more", "description": "d"},
            headers=auth_headers(customer),
        )

        assert response.status_code == 429
        assert response.json()["error"]["code"] == "RATE_LIMITED"
