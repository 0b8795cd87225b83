"""
GroupLedger - API Tests

End-to-end tests through the HTTP routes: gateway headers, permission and
scope checks, the run lifecycle and the error body shape.
"""

import uuid
from contextlib import asynccontextmanager

import pytest
from uvicorn.importer import import_from_string

import main


RUNS_URL = "/api/v1/consolidation/runs"


async def _create_run(client, seed, headers, **overrides):
    payload = {
        "consolidation_group_id": str(seed.group_id),
        "fiscal_period_id": str(seed.period_id),
        "run_name": "March close",
    }
    payload.update(overrides)
    response = await client.post(RUNS_URL, json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestHealth:
    """Tests for service endpoints."""

    @pytest.mark.asyncio
    async def test_health(self, client, db_session, monkeypatch):
        @asynccontextmanager
        async def session_maker():
            yield db_session

        monkeypatch.setattr(main, "async_session_maker", session_maker)

        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "connected"}

    @pytest.mark.asyncio
    async def test_api_root(self, client):
        response = await client.get("/api/v1")

        assert response.status_code == 200
        assert "runs" in response.json()["endpoints"]

    def test_server_target_resolves(self):
        assert import_from_string("main:app") is main.app


class TestGatewayHeaders:
    """Tests for actor resolution and permission checks."""

    @pytest.mark.asyncio
    async def test_missing_headers(self, client, seed):
        response = await client.get(RUNS_URL)

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_malformed_tenant(self, client, seed):
        response = await client.get(RUNS_URL, headers={"X-Tenant-Id": "abc", "X-User-Id": str(uuid.uuid4())})

        assert response.status_code == 422
        assert response.json()["detail"]["field"] == "X-Tenant-Id"

    @pytest.mark.asyncio
    async def test_missing_permission(self, client, seed, auth_headers):
        headers = dict(auth_headers, **{"X-Actor-Permissions": "consolidation.run.read"})

        response = await client.post(RUNS_URL, json={
            "consolidation_group_id": str(seed.group_id),
            "fiscal_period_id": str(seed.period_id),
            "run_name": "Denied",
        }, headers=headers)

        body = response.json()
        assert response.status_code == 403
        assert body["detail"]["code"] == "INSUFFICIENT_PERMISSIONS"
        assert body["detail"]["details"]["required_permission"] == "consolidation.run.create"

    @pytest.mark.asyncio
    async def test_prefix_wildcard(self, client, seed, auth_headers):
        headers = dict(auth_headers, **{"X-Actor-Permissions": "consolidation.*"})

        runs = await client.get(RUNS_URL, headers=headers)
        rates = await client.get("/api/v1/fx/rates", headers=headers)

        assert runs.status_code == 200
        assert rates.status_code == 403

    @pytest.mark.asyncio
    async def test_run_scope_enforced(self, client, seed, auth_headers, run_id):
        allowed = dict(auth_headers, **{"X-Actor-Scopes": f"GROUP:{seed.group_company_id}"})
        denied = dict(auth_headers, **{"X-Actor-Scopes": f"GROUP:{uuid.uuid4()}"})

        ok = await client.get(f"{RUNS_URL}/{run_id}", headers=allowed)
        forbidden = await client.get(f"{RUNS_URL}/{run_id}", headers=denied)
        listing = await client.get(RUNS_URL, headers=denied)

        assert ok.status_code == 200
        assert forbidden.status_code == 403
        assert forbidden.json()["detail"]["code"] == "SCOPE_DENIED"
        assert listing.json() == {"rows": []}


class TestGroupRoutes:
    """Tests for group setup routes."""

    @pytest.mark.asyncio
    async def test_list_and_get_group(self, client, seed, auth_headers):
        listing = await client.get("/api/v1/consolidation/groups", headers=auth_headers)
        single = await client.get(f"/api/v1/consolidation/groups/{seed.group_id}", headers=auth_headers)

        assert [g["code"] for g in listing.json()] == ["GRP"]
        assert single.json()["presentation_currency_code"] == "USD"

    @pytest.mark.asyncio
    async def test_member_ownership_validated(self, client, seed, auth_headers):
        response = await client.post(
            f"/api/v1/consolidation/groups/{seed.group_id}/members",
            json={
                "legal_entity_id": str(seed.entity_b_id),
                "consolidation_method": "proportionate",
                "ownership_pct": "1.5",
                "effective_from": "2026-01-01",
            },
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_member_upsert(self, client, seed, auth_headers):
        response = await client.post(
            f"/api/v1/consolidation/groups/{seed.group_id}/members",
            json={
                "legal_entity_id": str(seed.entity_b_id),
                "consolidation_method": "proportionate",
                "ownership_pct": "0.4",
                "effective_from": "2026-01-01",
            },
            headers=auth_headers,
        )

        assert response.status_code == 201
        assert response.json()["ownership_pct"] == pytest.approx(0.4)

    @pytest.mark.asyncio
    async def test_unknown_group(self, client, seed, auth_headers):
        response = await client.get(f"/api/v1/consolidation/groups/{uuid.uuid4()}", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "NOT_FOUND"


class TestRunLifecycle:
    """Tests for the run lifecycle through the API."""

    @pytest.mark.asyncio
    async def test_full_flow(self, client, seed, auth_headers):
        run = await _create_run(client, seed, auth_headers)
        run_url = f"{RUNS_URL}/{run['id']}"
        assert run["status"] == "DRAFT"

        executed = await client.post(f"{run_url}/execute", json={"rate_type": "closing"}, headers=auth_headers)
        assert executed.status_code == 200, executed.text
        assert executed.json()["inserted_row_count"] == 4
        assert executed.json()["totals"]["translated_debit_total"] == pytest.approx(1330)

        created = await client.post(f"{run_url}/eliminations", json={
            "description": "Eliminate intercompany cash",
            "lines": [
                {"account_id": str(seed.group_accounts["2000"]), "debit_amount": "100"},
                {"account_id": str(seed.group_accounts["1000"]), "credit_amount": "100"},
            ],
        }, headers=auth_headers)
        assert created.status_code == 201, created.text

        posted = await client.post(f"{run_url}/eliminations/{created.json()['id']}/post", headers=auth_headers)
        assert posted.status_code == 200
        assert posted.json()["idempotent"] is False
        reposted = await client.post(f"{run_url}/eliminations/{created.json()['id']}/post", headers=auth_headers)
        assert reposted.json()["idempotent"] is True
        assert reposted.json()["posted_at"] == posted.json()["posted_at"]

        eliminations = await client.get(f"{run_url}/eliminations?status=posted&include_lines=true", headers=auth_headers)
        assert eliminations.json()["rows"][0]["line_count"] == 2
        assert len(eliminations.json()["rows"][0]["lines"]) == 2

        sheet = await client.get(f"{run_url}/reports/balance-sheet", headers=auth_headers)
        assert sheet.status_code == 200
        assert sheet.json()["totals"]["assets_total"] == pytest.approx(1230)
        assert sheet.json()["totals"]["is_balanced"] is True

        trial_balance = await client.get(f"{run_url}/reports/trial-balance", headers=auth_headers)
        assert len(trial_balance.json()["rows"]) == 2

        finalized = await client.post(f"{run_url}/finalize", headers=auth_headers)
        assert finalized.json() == {"run_id": run["id"], "status": "LOCKED", "idempotent": False}

        relocked = await client.post(f"{run_url}/execute", headers=auth_headers)
        assert relocked.status_code == 409
        assert relocked.json()["detail"]["code"] == "RUN_LOCKED"

    @pytest.mark.asyncio
    async def test_execute_without_body_uses_default_rate_type(self, client, seed, auth_headers, run_id):
        response = await client.post(f"{RUNS_URL}/{run_id}/execute", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["preferred_rate_type"] == "CLOSING"

    @pytest.mark.asyncio
    async def test_finalize_draft_conflict(self, client, seed, auth_headers, run_id):
        response = await client.post(f"{RUNS_URL}/{run_id}/finalize", headers=auth_headers)

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "INVALID_RUN_STATE"

    @pytest.mark.asyncio
    async def test_unknown_run(self, client, seed, auth_headers):
        response = await client.get(f"{RUNS_URL}/{uuid.uuid4()}", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "RUN_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_unbalanced_elimination(self, client, seed, auth_headers, run_id):
        created = await client.post(f"{RUNS_URL}/{run_id}/eliminations", json={
            "description": "Lopsided",
            "lines": [{"account_id": str(seed.group_accounts["2000"]), "debit_amount": "10"}],
        }, headers=auth_headers)

        response = await client.post(
            f"{RUNS_URL}/{run_id}/eliminations/{created.json()['id']}/post", headers=auth_headers,
        )

        detail = response.json()["detail"]
        assert response.status_code == 422
        assert detail["code"] == "UNBALANCED_ENTRY"
        assert detail["details"]["debit_total"] == 10.0

    @pytest.mark.asyncio
    async def test_adjustment_flow(self, client, seed, auth_headers, executed_run_id):
        url = f"{RUNS_URL}/{executed_run_id}/adjustments"
        two_sided = await client.post(url, json={
            "account_id": str(seed.group_accounts["4000"]),
            "description": "Wrong",
            "debit_amount": "50",
            "credit_amount": "30",
        }, headers=auth_headers)
        one_sided = await client.post(url, json={
            "account_id": str(seed.group_accounts["4000"]),
            "description": "Accrued revenue",
            "credit_amount": "40",
        }, headers=auth_headers)

        rejected = await client.post(f"{url}/{two_sided.json()['id']}/post", headers=auth_headers)
        accepted = await client.post(f"{url}/{one_sided.json()['id']}/post", headers=auth_headers)
        listing = await client.get(f"{url}?status=POSTED", headers=auth_headers)
        income = await client.get(
            f"{RUNS_URL}/{executed_run_id}/reports/income-statement", headers=auth_headers,
        )

        assert rejected.status_code == 422
        assert rejected.json()["detail"]["code"] == "NOT_ONE_SIDED"
        assert accepted.status_code == 200
        assert [row["id"] for row in listing.json()["rows"]] == [one_sided.json()["id"]]
        assert income.json()["totals"]["net_income"] == pytest.approx(40)

    @pytest.mark.asyncio
    async def test_summary_invalid_group_by(self, client, seed, auth_headers, executed_run_id):
        response = await client.get(
            f"{RUNS_URL}/{executed_run_id}/reports/summary?group_by=currency", headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["detail"]["field"] == "group_by"


class TestFxRoutes:
    """Tests for FX rate routes."""

    @pytest.mark.asyncio
    async def test_bulk_upsert_and_list(self, client, seed, auth_headers):
        response = await client.post("/api/v1/fx/rates/bulk-upsert", json={"rates": [
            {
                "rate_date": "2026-03-31",
                "from_currency_code": "gbp",
                "to_currency_code": "usd",
                "rate_type": "closing",
                "rate": "1.27",
                "source": "ECB",
            },
            {
                "rate_date": "2026-03-31",
                "from_currency_code": "EUR",
                "to_currency_code": "USD",
                "rate_type": "CLOSING",
                "rate": "1.09",
            },
        ]}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["inserted"] == 1
        assert response.json()["updated"] == 1

        listing = await client.get("/api/v1/fx/rates?from_currency_code=GBP", headers=auth_headers)
        rows = listing.json()
        assert len(rows) == 1
        assert rows[0]["rate"] == pytest.approx(1.27)
        assert rows[0]["rate_type"] == "CLOSING"

    @pytest.mark.asyncio
    async def test_non_positive_rate_rejected(self, client, seed, auth_headers):
        response = await client.post("/api/v1/fx/rates/bulk-upsert", json={"rates": [{
            "rate_date": "2026-03-31",
            "from_currency_code": "GBP",
            "to_currency_code": "USD",
            "rate_type": "CLOSING",
            "rate": "0",
        }]}, headers=auth_headers)

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"
