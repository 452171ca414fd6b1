"""
API Integration Tests — Strategy catalog and preference endpoints.
"""

import pytest
from httpx import AsyncClient


def _strategy_body(code: str, **overrides) -> dict:
    body = {
        "name": code.replace("_", " ").title(),
        "code": code,
        "strategy_type": "custom",
        "rules": [
            {"criteria_type": "warranty_remaining_days", "weight": 2.0, "sort_order": "desc", "priority": 1},
            {"criteria_type": "unit_cost", "weight": 0.5, "sort_order": "asc", "priority": 2},
        ],
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
class TestStrategiesAPI:
    async def test_list_built_ins(self, client: AsyncClient, seeded_db):
        resp = await client.get("/api/v1/strategies/")
        assert resp.status_code == 200
        codes = {s["code"] for s in resp.json()}
        assert codes == {
            "MARGIN_PROTECTION",
            "COST_OPTIMIZATION",
            "BALANCED",
            "WARRANTY_OPTIMIZATION",
            "INVENTORY_ROTATION",
        }

    async def test_list_filter_by_type(self, client: AsyncClient, seeded_db):
        resp = await client.get("/api/v1/strategies/", params={"strategy_type": "cost_optimization"})
        data = resp.json()
        assert [s["code"] for s in data] == ["COST_OPTIMIZATION", "MARGIN_PROTECTION"]
        assert all(s["is_default"] for s in data)

    async def test_create_strategy(self, client: AsyncClient, seeded_db):
        resp = await client.post("/api/v1/strategies/", json=_strategy_body("FIELD_SERVICE"))
        assert resp.status_code == 201
        data = resp.json()
        assert data["code"] == "FIELD_SERVICE"
        assert [r["criteria_type"] for r in data["rules"]] == ["warranty_remaining_days", "unit_cost"]

    async def test_create_duplicate_code(self, client: AsyncClient, seeded_db):
        resp = await client.post("/api/v1/strategies/", json=_strategy_body("BALANCED"))
        assert resp.status_code == 400
        assert "already exists" in resp.json()["detail"]

    async def test_create_rejects_out_of_range_weight(self, client: AsyncClient, seeded_db):
        body = _strategy_body("HEAVY")
        body["rules"][0]["weight"] = 9.0
        resp = await client.post("/api/v1/strategies/", json=body)
        assert resp.status_code == 422

    async def test_create_rejects_empty_rules(self, client: AsyncClient, seeded_db):
        resp = await client.post("/api/v1/strategies/", json=_strategy_body("EMPTY", rules=[]))
        assert resp.status_code == 422

    async def test_new_context_default_takes_over(self, client: AsyncClient, seeded_db):
        body = _strategy_body("PLANT_FLOOR", business_context="manufacturing", is_default=True)
        resp = await client.post("/api/v1/strategies/", json=body)
        assert resp.status_code == 201

        resp = await client.post(
            "/api/v1/allocations/preview",
            json={
                "product_id": str(seeded_db["product"].product_id),
                "quantity_needed": 1,
                "business_context": "manufacturing",
            },
        )
        assert resp.json()["strategy_used"] == "Plant Floor"

        resp = await client.get("/api/v1/strategies/", params={"strategy_type": "cost_optimization"})
        cost = {s["code"]: s for s in resp.json()}
        assert cost["COST_OPTIMIZATION"]["is_default"] is False


@pytest.mark.asyncio
class TestPreferencesAPI:
    async def _strategy_id(self, client: AsyncClient, code: str) -> str:
        resp = await client.get("/api/v1/strategies/")
        return next(s["strategy_id"] for s in resp.json() if s["code"] == code)

    async def test_product_preference_changes_resolution(self, client: AsyncClient, seeded_db):
        rotation_id = await self._strategy_id(client, "INVENTORY_ROTATION")
        product_id = str(seeded_db["product"].product_id)

        resp = await client.put(
            "/api/v1/strategies/preferences",
            json={"product_id": product_id, "default_strategy_id": rotation_id},
        )
        assert resp.status_code == 200
        assert resp.json()["product_id"] == product_id

        resp = await client.post(
            "/api/v1/allocations/preview",
            json={"product_id": product_id, "quantity_needed": 1, "business_context": "manufacturing"},
        )
        data = resp.json()
        assert data["strategy_used"] == "Inventory Rotation"
        # Unit A is the older batch
        assert data["lines"][0]["reference"] == "B-0001"
        assert data["lines"][0]["reason"] == "oldest stock first (FIFO rotation)"

        resp = await client.get("/api/v1/strategies/preferences")
        assert len(resp.json()) == 1

    async def test_premium_customer_override(self, client: AsyncClient, seeded_db):
        rotation_id = await self._strategy_id(client, "INVENTORY_ROTATION")
        warranty_id = await self._strategy_id(client, "WARRANTY_OPTIMIZATION")
        await client.put(
            "/api/v1/strategies/preferences",
            json={
                "category_id": str(seeded_db["category_id"]),
                "default_strategy_id": rotation_id,
                "premium_customer_strategy_id": warranty_id,
            },
        )

        resp = await client.post(
            "/api/v1/allocations/preview",
            json={
                "product_id": str(seeded_db["product"].product_id),
                "quantity_needed": 1,
                "business_context": "sales",
                "customer_tier": "platinum",
            },
        )
        assert resp.json()["strategy_used"] == "Warranty Optimization"

    async def test_preference_needs_exactly_one_scope(self, client: AsyncClient, seeded_db):
        resp = await client.put("/api/v1/strategies/preferences", json={})
        assert resp.status_code == 422

    async def test_preference_unknown_strategy(self, client: AsyncClient, seeded_db):
        resp = await client.put(
            "/api/v1/strategies/preferences",
            json={
                "category_id": str(seeded_db["category_id"]),
                "default_strategy_id": "00000000-0000-0000-0000-00000000dead",
            },
        )
        assert resp.status_code == 400
