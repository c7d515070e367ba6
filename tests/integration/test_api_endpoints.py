"""API endpoint integration tests.

Drives the FastAPI app end to end: request validation, service errors
mapped to status codes, and cached views refreshed by change events.
"""

import io
from decimal import Decimal
from uuid import UUID

import pytest
from httpx import AsyncClient
from openpyxl import load_workbook

from comp_admin.models import Deal, PayoutMetricDetail

pytestmark = pytest.mark.asyncio

IMPORT_HEADER = "employee_id,full_name,email,local_currency,is_active"


class TestHealthEndpoints:
    """Test health check endpoints."""

    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"
        assert "timestamp" in data

    async def test_readiness_and_liveness(self, client: AsyncClient):
        assert (await client.get("/ready")).json() == {"status": "ready"}
        assert (await client.get("/live")).json() == {"status": "alive"}


class TestEmployees:
    async def test_import_reports_row_errors(self, client: AsyncClient):
        content = "\n".join(
            [
                IMPORT_HEADER,
                "E1,Ann Lee,ann@example.com,USD,true",
                ",Bob Ray,bob@example.com,USD,true",
                "E3,Cat Diaz,cat@example.com,INR,false",
            ]
        )

        response = await client.post("/api/v1/employees/import", json={"content": content})

        assert response.status_code == 200, response.text
        data = response.json()
        assert (data["created"], data["updated"], data["processed"]) == (2, 0, 3)
        assert data["errors"] == ["Row 2: Missing/invalid employee_id"]

        active = await client.get("/api/v1/employees", params={"active_only": True})
        assert [e["employee_id"] for e in active.json()] == ["E1"]

    async def test_cached_list_refreshed_after_import(self, client: AsyncClient):
        await client.post(
            "/api/v1/employees/import",
            json={"content": f"{IMPORT_HEADER}\nE1,Ann Lee,ann@example.com,USD,true"},
        )
        first = await client.get("/api/v1/employees")
        assert [e["full_name"] for e in first.json()] == ["Ann Lee"]

        await client.post(
            "/api/v1/employees/import",
            json={"content": f"{IMPORT_HEADER}\nE1,Ann Lee-Park,ann@example.com,USD,true"},
        )
        second = await client.get("/api/v1/employees")
        assert [e["full_name"] for e in second.json()] == ["Ann Lee-Park"]

    async def test_upsert_and_lookup(self, client: AsyncClient):
        payload = {"employee_id": "E7", "full_name": "Dev Patel", "email": "dev@example.com"}

        created = await client.put("/api/v1/employees", json=payload)
        assert created.status_code == 201

        updated = await client.put("/api/v1/employees", json={**payload, "full_name": "Dev R. Patel"})
        assert updated.status_code == 200
        assert updated.json()["id"] == created.json()["id"]

        fetched = await client.get("/api/v1/employees/E7")
        assert fetched.json()["full_name"] == "Dev R. Patel"

    async def test_unknown_employee_is_404(self, client: AsyncClient):
        response = await client.get("/api/v1/employees/NOBODY")
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_template_download(self, client: AsyncClient):
        response = await client.get("/api/v1/employees/template")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.text.startswith("employee_id,")


class TestPlans:
    async def test_copy_refreshes_cached_years(self, client: AsyncClient, seeded):
        assert (await client.get("/api/v1/plans/years")).json() == [2025]
        plans = (await client.get("/api/v1/plans", params={"year": 2025})).json()

        response = await client.post(
            "/api/v1/plans/copy",
            json={"plan_ids": [plans[0]["id"]], "target_year": 2026},
        )

        assert response.status_code == 201, response.text
        copy = response.json()[0]
        assert copy["effective_year"] == 2026
        assert copy["is_active"] is False
        assert (await client.get("/api/v1/plans/years")).json() == [2026, 2025]

        metrics = (await client.get(f"/api/v1/plans/{copy['id']}/metrics")).json()
        assert [m["metric_name"] for m in metrics] == ["New Software Booking ARR"]
        assert len(metrics[0]["tiers"]) == 2

    async def test_copy_with_unknown_plan_is_404(self, client: AsyncClient, seeded, plan):
        response = await client.post(
            "/api/v1/plans/copy",
            json={"plan_ids": [str(plan.id), "00000000-0000-0000-0000-000000000000"], "target_year": 2026},
        )
        assert response.status_code == 404
        assert (await client.get("/api/v1/plans", params={"year": 2026})).json() == []

    async def test_grid_overlap_is_rejected(self, client: AsyncClient, seeded, plan):
        metrics = (await client.get(f"/api/v1/plans/{plan.id}/metrics")).json()
        metric_id = metrics[0]["id"]

        grid = (await client.get(f"/api/v1/plans/metrics/{metric_id}/grid")).json()
        assert grid["seeded"] is False
        assert len(grid["tiers"]) == 2

        response = await client.put(
            f"/api/v1/plans/metrics/{metric_id}/grid",
            json={
                "tiers": [
                    {"min_pct": "0", "max_pct": "100", "multiplier_value": "1"},
                    {"min_pct": "90", "max_pct": "150", "multiplier_value": "1.2"},
                ]
            },
        )
        assert response.status_code == 400
        assert response.json() == {"detail": "Overlap detected between tiers", "code": "VALIDATION_ERROR"}

        saved = await client.put(
            f"/api/v1/plans/metrics/{metric_id}/grid",
            json={"tiers": [{"min_pct": "0", "max_pct": "999", "multiplier_value": "1"}]},
        )
        assert saved.status_code == 200
        metrics = (await client.get(f"/api/v1/plans/{plan.id}/metrics")).json()
        assert len(metrics[0]["tiers"]) == 1


class TestPayoutRuns:
    async def test_lifecycle_and_errors(self, client: AsyncClient, seeded, employee):
        created = await client.post("/api/v1/payout-runs", json={"month_year": "2025-02"})
        assert created.status_code == 201
        run_id = created.json()["id"]

        duplicate = await client.post("/api/v1/payout-runs", json={"month_year": "2025-02"})
        assert duplicate.status_code == 409
        assert duplicate.json()["code"] == "CONFLICT"

        skipped = await client.post(f"/api/v1/payout-runs/{run_id}/transition", json={"to_status": "approved"})
        assert skipped.status_code == 409
        assert skipped.json()["code"] == "INVALID_TRANSITION"

        early = await client.post(
            f"/api/v1/payout-runs/{run_id}/adjustments",
            json={
                "employee_id": str(employee.id),
                "adjustment_type": "correction",
                "adjustment_amount_usd": "100",
                "reason": "Missed deal",
            },
        )
        assert early.status_code == 409

        review = await client.post(f"/api/v1/payout-runs/{run_id}/transition", json={"to_status": "review"})
        assert review.json()["run_status"] == "review"

        adjustment = await client.post(
            f"/api/v1/payout-runs/{run_id}/adjustments",
            json={
                "employee_id": str(employee.id),
                "adjustment_type": "correction",
                "adjustment_amount_usd": "100",
                "reason": "Missed deal",
            },
        )
        assert adjustment.status_code == 201, adjustment.text
        adjustment_id = adjustment.json()["id"]

        approved = await client.post(f"/api/v1/payout-runs/adjustments/{adjustment_id}/approve", json={})
        assert approved.json()["status"] == "approved"
        listed = await client.get(f"/api/v1/payout-runs/{run_id}/adjustments")
        assert [a["status"] for a in listed.json()] == ["approved"]

        locked = await client.delete(f"/api/v1/payout-runs/{run_id}")
        assert locked.status_code == 409

    async def test_delete_draft(self, client: AsyncClient):
        run_id = (await client.post("/api/v1/payout-runs", json={"month_year": "2025-04"})).json()["id"]

        assert (await client.delete(f"/api/v1/payout-runs/{run_id}")).status_code == 204
        assert (await client.get(f"/api/v1/payout-runs/{run_id}")).status_code == 404

    async def test_workings_and_exports(self, client: AsyncClient, seeded, employee, inr_employee, add_rows):
        run_id = UUID((await client.post("/api/v1/payout-runs", json={"month_year": "2025-02"})).json()["id"])
        await add_rows(
            PayoutMetricDetail(
                payout_run_id=run_id,
                employee_id=employee.id,
                component_type="variable_pay",
                metric_name="New Software Booking ARR",
                target_usd=Decimal("100000"),
                this_month_usd=Decimal("1500"),
                booking_usd=Decimal("1500"),
            ),
            PayoutMetricDetail(
                payout_run_id=run_id,
                employee_id=employee.id,
                component_type="commission",
                metric_name="Managed Services",
                commission_rate_pct=Decimal("1.5"),
                this_month_usd=Decimal("300"),
            ),
            PayoutMetricDetail(
                payout_run_id=run_id,
                employee_id=inr_employee.id,
                component_type="variable_pay",
                metric_name="New Software Booking ARR",
                this_month_usd=Decimal("800"),
            ),
        )

        workings = (await client.get(f"/api/v1/payout-runs/{run_id}/workings")).json()
        assert workings["leading_columns"] == ["Emp Code", "Emp Name", "Plan", "Ccy"]
        assert [m["metric_name"] for m in workings["metrics"]] == [
            "New Software Booking ARR",
            "Managed Services",
        ]
        alice, bhavna = workings["rows"]
        assert alice[:2] == ["EMP001", "Alice Able"]
        # Bhavna has no commission: every commission cell is a dash
        commission_width = len(workings["metrics"][1]["sub_columns"])
        vp_end = 4 + len(workings["metrics"][0]["sub_columns"])
        assert bhavna[vp_end : vp_end + commission_width] == ["-"] * commission_width

        csv_response = await client.get(f"/api/v1/payout-runs/{run_id}/export", params={"format": "csv"})
        assert csv_response.status_code == 200
        assert csv_response.headers["content-type"].startswith("text/csv")
        assert 'filename="payout-run-2025-02.csv"' in csv_response.headers["content-disposition"]
        assert csv_response.text.splitlines()[1].startswith('"EMP001","Alice Able"')

        xlsx_response = await client.get(f"/api/v1/payout-runs/{run_id}/export")
        assert xlsx_response.status_code == 200
        wb = load_workbook(io.BytesIO(xlsx_response.content))
        assert wb.sheetnames == [
            "Summary",
            "All Employees",
            "INR Employees",
            "USD Employees",
            "Detailed Workings",
        ]

        bad_format = await client.get(f"/api/v1/payout-runs/{run_id}/export", params={"format": "pdf"})
        assert bad_format.status_code == 422


class TestDealTeamSpiffs:
    async def test_allocate_and_approve(self, client: AsyncClient, seeded, employee, inr_employee, add_rows):
        deal = Deal(
            project_id="PRJ-2001",
            customer_name="Acme Bank",
            month_year="2025-02",
            new_software_booking_arr_usd=Decimal("450000"),
        )
        await add_rows(deal)

        deals = (await client.get("/api/v1/deal-team-spiffs/deals", params={"year": 2025})).json()
        assert [d["project_id"] for d in deals] == ["PRJ-2001"]

        short = await client.put(
            f"/api/v1/deal-team-spiffs/deals/{deal.id}/allocations",
            json={"items": [{"employee_id": str(employee.id), "amount_usd": "4000"}]},
        )
        assert short.status_code == 400
        assert "remaining 6000.00" in short.json()["detail"]

        saved = await client.put(
            f"/api/v1/deal-team-spiffs/deals/{deal.id}/allocations",
            json={
                "items": [
                    {"employee_id": str(employee.id), "amount_usd": "4000", "team_role": "SE"},
                    {"employee_id": str(inr_employee.id), "amount_usd": "6000", "team_role": "SE Head"},
                ]
            },
        )
        assert saved.status_code == 200, saved.text
        assert saved.json()["status"] == "Fully Allocated"
        assert saved.json()["read_only"] is False

        approved = await client.post(f"/api/v1/deal-team-spiffs/deals/{deal.id}/approve", json={})
        assert approved.json()["status"] == "Approved"
        assert approved.json()["read_only"] is True

        again = await client.post(f"/api/v1/deal-team-spiffs/deals/{deal.id}/reject", json={})
        assert again.status_code == 409
