"""HTTP tests for the refund endpoints."""

import pytest

from tests.conftest import auth_headers

BASE = "/api/v1/refunds"


async def _initiate(client, admin, order, **overrides):
    body = {"order_id": str(order.id), "amount": "40.00", "reason": "damaged_product"}
    body.update(overrides)
    return await client.post(f"{BASE}/admin", json=body, headers=auth_headers(admin))


class TestInitiate:
    @pytest.mark.asyncio
    async def test_admin_initiates_refund(self, async_client, admin, order):
        response = await _initiate(async_client, admin, order, payment_mode="wallet")

        assert response.status_code == 201
        body = response.json()
        assert body["refund_number"].startswith("REF-")
        assert body["status"] == "pending"
        assert body["amount"] == "40.00"
        assert body["payment_mode_label"] == "Store Credit/Wallet"
        assert {t["status"] for t in body["available_transitions"]} == {
            "approved", "rejected",
        }

    @pytest.mark.asyncio
    async def test_customer_cannot_initiate(self, async_client, customer, order):
        response = await _initiate(async_client, customer, order)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_amount_over_order_total(self, async_client, admin, order):
        response = await _initiate(async_client, admin, order, amount="100.01")

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_zero_amount_rejected_by_schema(self, async_client, admin, order):
        response = await _initiate(async_client, admin, order, amount="0")
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_second_active_refund_conflicts(self, async_client, admin, order):
        await _initiate(async_client, admin, order)

        response = await _initiate(async_client, admin, order, amount="10.00")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_status_walk_to_completion(self, async_client, admin, customer, order):
        refund = (await _initiate(async_client, admin, order)).json()
        url = f"{BASE}/admin/{refund['id']}/status"

        approved = await async_client.put(
            url, json={"status": "approved", "expected_version": 1}, headers=auth_headers(admin)
        )
        assert approved.json()["status"] == "approved"
        assert approved.json()["version"] == 2

        await async_client.put(url, json={"status": "processing"}, headers=auth_headers(admin))
        completed = await async_client.put(
            url,
            json={"status": "completed", "transaction_id": "TXN-991"},
            headers=auth_headers(admin),
        )

        assert completed.status_code == 200
        assert completed.json()["status"] == "completed"
        assert completed.json()["transaction_id"] == "TXN-991"
        assert completed.json()["completed_at"] is not None
        assert completed.json()["available_transitions"] == []

        mine = await async_client.get(f"{BASE}/order/{order.id}", headers=auth_headers(customer))
        assert mine.status_code == 200
        assert mine.json()["id"] == refund["id"]

        activities = await async_client.get(
            f"{BASE}/admin/{refund['id']}/activities", headers=auth_headers(admin)
        )
        assert len(activities.json()) == 4

    @pytest.mark.asyncio
    async def test_illegal_transition(self, async_client, admin, order):
        refund = (await _initiate(async_client, admin, order)).json()

        response = await async_client.put(
            f"{BASE}/admin/{refund['id']}/status",
            json={"status": "completed"},
            headers=auth_headers(admin),
        )

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "ILLEGAL_TRANSITION"
        assert {"field": "requested_status", "message": "completed"} in error["details"]

    @pytest.mark.asyncio
    async def test_stale_version(self, async_client, admin, order):
        refund = (await _initiate(async_client, admin, order)).json()
        url = f"{BASE}/admin/{refund['id']}/status"
        await async_client.put(url, json={"status": "approved"}, headers=auth_headers(admin))

        response = await async_client.put(
            url, json={"status": "rejected", "expected_version": 1}, headers=auth_headers(admin)
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONCURRENT_MODIFICATION"

    @pytest.mark.asyncio
    async def test_quick_complete(self, async_client, admin, order):
        refund = (await _initiate(async_client, admin, order)).json()

        response = await async_client.put(
            f"{BASE}/admin/{refund['id']}/quick-complete",
            json={"transaction_id": "TXN-1", "bank_reference": "BR-7"},
            headers=auth_headers(admin),
        )

        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["bank_reference"] == "BR-7"

    @pytest.mark.asyncio
    async def test_quick_complete_requires_transaction_id(self, async_client, admin, order):
        refund = (await _initiate(async_client, admin, order)).json()

        response = await async_client.put(
            f"{BASE}/admin/{refund['id']}/quick-complete",
            json={},
            headers=auth_headers(admin),
        )

        assert response.status_code == 422


class TestReads:
    @pytest.mark.asyncio
    async def test_order_without_refund_returns_null(self, async_client, customer, order):
        response = await async_client.get(
            f"{BASE}/order/{order.id}", headers=auth_headers(customer)
        )
        assert response.status_code == 200
        assert response.json() is None

    @pytest.mark.asyncio
    async def test_foreign_order_is_not_found(self, async_client, other_customer, order):
        response = await async_client.get(
            f"{BASE}/order/{order.id}", headers=auth_headers(other_customer)
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_lists_and_stats(self, async_client, admin, customer, order):
        await _initiate(async_client, admin, order)

        mine = await async_client.get(f"{BASE}/mine", headers=auth_headers(customer))
        assert mine.json()["total"] == 1

        queue = await async_client.get(
            f"{BASE}/admin", params={"status": "pending"}, headers=auth_headers(admin)
        )
        assert queue.json()["total"] == 1

        stats = await async_client.get(f"{BASE}/admin/stats", headers=auth_headers(admin))
        assert stats.json()["total_refunds"] == 1
        assert float(stats.json()["pending_amount"]) == 40.0

    @pytest.mark.asyncio
    async def test_options(self, async_client, customer):
        response = await async_client.get(f"{BASE}/options", headers=auth_headers(customer))
        statuses = {s["status"]: s for s in response.json()["statuses"]}
        assert statuses["failed"]["next"] == ["processing", "rejected"]
        assert statuses["completed"]["is_terminal"] is True
