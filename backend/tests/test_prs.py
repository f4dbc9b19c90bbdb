# tests/test_prs.py — PR board router tests
import pytest
from httpx import AsyncClient

from tests.conftest import authenticate, create_pr_record, pr_payload


@pytest.mark.asyncio
async def test_create_pr(client: AsyncClient, test_user):
    """Created PR keeps submitted fields and gets server-assigned ones"""
    authenticate(client, test_user)
    resp = await client.post("/api/prs", json=pr_payload(scheduledDate="2026-11-02", scheduledTime="10:30"))
    assert resp.status_code == 201
    pr = resp.json()["pr"]
    assert pr["id"]
    assert pr["status"] == "initial"
    assert pr["priority"] == "high"
    assert pr["project"] == "Payments"
    assert pr["links"] == [{"url": "https://git.example.com/pr/1", "label": "PR #1"}]
    assert pr["scheduledDate"] == "2026-11-02"
    assert pr["scheduledTime"] == "10:30"
    assert pr["version"] == 1
    assert "userId" not in pr and "user_id" not in pr


@pytest.mark.asyncio
async def test_create_pr_requires_session(client: AsyncClient):
    resp = await client.post("/api/prs", json=pr_payload())
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_create_pr_category_rules(client: AsyncClient, test_user):
    authenticate(client, test_user)
    resp = await client.post("/api/prs", json=pr_payload(project=""))
    assert resp.status_code == 400
    assert resp.json()["error"] == "Project name is required for project-type PRs"

    resp = await client.post("/api/prs", json=pr_payload(category="service", project=None))
    assert resp.status_code == 400
    assert resp.json()["error"] == "Service name is required for service-type PRs"

    resp = await client.post("/api/prs", json=pr_payload(category="service", project=None, service="auth-api"))
    assert resp.status_code == 201
    assert resp.json()["pr"]["service"] == "auth-api"


@pytest.mark.asyncio
async def test_create_pr_rejects_owner_field(client: AsyncClient, test_user, other_user):
    """An ownership claim in the payload is never honoured"""
    authenticate(client, test_user)
    resp = await client.post("/api/prs", json=pr_payload(userId=other_user.id))
    assert resp.status_code == 422

    authenticate(client, other_user)
    resp = await client.get("/api/prs")
    assert resp.json()["prs"] == []


@pytest.mark.asyncio
async def test_create_pr_invalid_status(client: AsyncClient, test_user):
    authenticate(client, test_user)
    resp = await client.post("/api/prs", json=pr_payload(status="shipped"))
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_list_prs_filters(client: AsyncClient, test_user, db_session):
    await create_pr_record(db_session, test_user, title="A", project="Payments", status="initial")
    await create_pr_record(db_session, test_user, title="B", project="Search", status="approved")
    await create_pr_record(
        db_session, test_user, title="C", category="service", project=None, service="auth-api", status="approved",
    )
    authenticate(client, test_user)

    resp = await client.get("/api/prs")
    assert resp.status_code == 200
    assert len(resp.json()["prs"]) == 3

    resp = await client.get("/api/prs", params={"project": "Search"})
    assert [p["title"] for p in resp.json()["prs"]] == ["B"]

    resp = await client.get("/api/prs", params={"status": "approved"})
    assert {p["title"] for p in resp.json()["prs"]} == {"B", "C"}

    resp = await client.get("/api/prs", params={"category": "service", "service": "auth-api"})
    assert [p["title"] for p in resp.json()["prs"]] == ["C"]


@pytest.mark.asyncio
async def test_list_prs_newest_update_first(client: AsyncClient, test_user):
    authenticate(client, test_user)
    first = (await client.post("/api/prs", json=pr_payload(title="first"))).json()["pr"]
    await client.post("/api/prs", json=pr_payload(title="second"))
    await client.patch("/api/prs", json={"id": first["id"], "priority": "low"})

    titles = [p["title"] for p in (await client.get("/api/prs")).json()["prs"]]
    assert titles == ["first", "second"]


@pytest.mark.asyncio
async def test_owner_isolation(client: AsyncClient, test_user, other_user, db_session):
    """Another user's PR is invisible and untouchable"""
    theirs = await create_pr_record(db_session, other_user, title="Not yours")
    authenticate(client, test_user)

    resp = await client.get("/api/prs")
    assert resp.json()["prs"] == []

    resp = await client.patch("/api/prs", json={"id": theirs.id, "status": "released"})
    assert resp.status_code == 404

    missing = await client.patch("/api/prs", json={"id": "no-such-id", "status": "released"})
    assert missing.status_code == 404
    assert missing.json()["error"] == resp.json()["error"]

    resp = await client.delete("/api/prs", params={"id": theirs.id})
    assert resp.status_code == 204

    authenticate(client, other_user)
    prs = (await client.get("/api/prs")).json()["prs"]
    assert len(prs) == 1
    assert prs[0]["status"] == "initial"


@pytest.mark.asyncio
async def test_update_pr_any_transition(client: AsyncClient, test_user):
    authenticate(client, test_user)
    pr = (await client.post("/api/prs", json=pr_payload())).json()["pr"]

    for status in ("released", "initial", "merged", "in_review"):
        resp = await client.patch("/api/prs", json={"id": pr["id"], "status": status})
        assert resp.status_code == 200
        assert resp.json()["pr"]["status"] == status

    assert resp.json()["pr"]["version"] == 5


@pytest.mark.asyncio
async def test_update_pr_stale_version(client: AsyncClient, test_user):
    authenticate(client, test_user)
    pr = (await client.post("/api/prs", json=pr_payload())).json()["pr"]

    ok = await client.patch("/api/prs", json={"id": pr["id"], "title": "Renamed", "version": 1})
    assert ok.status_code == 200
    assert ok.json()["pr"]["version"] == 2

    stale = await client.patch("/api/prs", json={"id": pr["id"], "title": "Lost update", "version": 1})
    assert stale.status_code == 409

    current = (await client.get("/api/prs")).json()["prs"][0]
    assert current["title"] == "Renamed"


@pytest.mark.asyncio
async def test_update_pr_revalidates_category(client: AsyncClient, test_user):
    authenticate(client, test_user)
    pr = (await client.post("/api/prs", json=pr_payload())).json()["pr"]
    resp = await client.patch("/api/prs", json={"id": pr["id"], "category": "service"})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_update_pr_missing_id(client: AsyncClient, test_user):
    authenticate(client, test_user)
    resp = await client.patch("/api/prs", json={"status": "merged"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Missing id"


@pytest.mark.asyncio
async def test_update_pr_cannot_null_title(client: AsyncClient, test_user):
    authenticate(client, test_user)
    pr = (await client.post("/api/prs", json=pr_payload())).json()["pr"]
    resp = await client.patch("/api/prs", json={"id": pr["id"], "title": None})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_delete_pr(client: AsyncClient, test_user):
    authenticate(client, test_user)
    pr = (await client.post("/api/prs", json=pr_payload())).json()["pr"]

    resp = await client.delete("/api/prs", params={"id": pr["id"]})
    assert resp.status_code == 204
    assert (await client.get("/api/prs")).json()["prs"] == []

    again = await client.delete("/api/prs", params={"id": pr["id"]})
    assert again.status_code == 204


@pytest.mark.asyncio
async def test_delete_pr_missing_id(client: AsyncClient, test_user):
    authenticate(client, test_user)
    resp = await client.delete("/api/prs")
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_writes_invalidate_cached_list(client: AsyncClient, test_user):
    authenticate(client, test_user)
    assert (await client.get("/api/prs")).json()["prs"] == []
    await client.post("/api/prs", json=pr_payload())
    assert len((await client.get("/api/prs")).json()["prs"]) == 1
