# tests/test_share.py — Share link tests
from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import update

from models import ShareLink, utcnow
from tests.conftest import authenticate, create_pr_record


async def _create_link(client: AsyncClient) -> dict:
    resp = await client.post("/api/share")
    assert resp.status_code == 200
    return resp.json()


@pytest.mark.asyncio
async def test_create_share_link(client: AsyncClient, test_user):
    authenticate(client, test_user)
    data = await _create_link(client)
    assert data["success"] is True
    assert len(data["token"]) == 64
    int(data["token"], 16)
    assert data["shareUrl"] == f"http://board.test/share/{data['token']}"
    assert data["expiresAt"]


@pytest.mark.asyncio
async def test_tokens_are_unique(client: AsyncClient, test_user):
    authenticate(client, test_user)
    tokens = {(await _create_link(client))["token"] for _ in range(5)}
    assert len(tokens) == 5


@pytest.mark.asyncio
async def test_resolve_counts_accesses(client: AsyncClient, test_user, db_session):
    await create_pr_record(db_session, test_user, title="One")
    await create_pr_record(db_session, test_user, title="Two", status="released")
    authenticate(client, test_user)
    token = (await _create_link(client))["token"]

    client.cookies.clear()
    first = await client.get("/api/share", params={"token": token})
    assert first.status_code == 200
    data = first.json()["data"]
    assert data["title"] == "Test User's PR Board Report"
    assert data["createdBy"] == "Test User"
    assert data["accessCount"] == 1
    assert {p["title"] for p in data["prs"]} == {"One", "Two"}

    second = await client.get("/api/share", params={"token": token})
    assert second.json()["data"]["accessCount"] == 2


@pytest.mark.asyncio
async def test_resolve_only_owner_prs(client: AsyncClient, test_user, other_user, db_session):
    await create_pr_record(db_session, test_user, title="Mine")
    await create_pr_record(db_session, other_user, title="Theirs")
    authenticate(client, test_user)
    token = (await _create_link(client))["token"]

    data = (await client.get("/api/share", params={"token": token})).json()["data"]
    assert [p["title"] for p in data["prs"]] == ["Mine"]


@pytest.mark.asyncio
async def test_unknown_token(client: AsyncClient):
    resp = await client.get("/api/share", params={"token": "f" * 64})
    assert resp.status_code == 404
    assert resp.json()["error"] == "Invalid or expired share link"


@pytest.mark.asyncio
async def test_missing_token(client: AsyncClient):
    resp = await client.get("/api/share")
    assert resp.status_code == 400
    assert resp.json()["error"] == "Token required"


@pytest.mark.asyncio
async def test_expired_token_looks_unknown(client: AsyncClient, test_user, db_session):
    authenticate(client, test_user)
    token = (await _create_link(client))["token"]
    await db_session.execute(
        update(ShareLink).where(ShareLink.token == token).values(expires_at=utcnow() - timedelta(minutes=1))
    )
    await db_session.commit()

    resp = await client.get("/api/share", params={"token": token})
    assert resp.status_code == 404
    assert resp.json()["error"] == "Invalid or expired share link"


@pytest.mark.asyncio
async def test_deactivated_link(client: AsyncClient, test_user, other_user):
    authenticate(client, test_user)
    token = (await _create_link(client))["token"]

    # Someone else cannot revoke it
    authenticate(client, other_user)
    assert (await client.delete("/api/share", params={"token": token})).status_code == 204
    assert (await client.get("/api/share", params={"token": token})).status_code == 200

    authenticate(client, test_user)
    assert (await client.delete("/api/share", params={"token": token})).status_code == 204
    assert (await client.get("/api/share", params={"token": token})).status_code == 404

    links = (await client.get("/api/share/links")).json()["items"]
    assert links[0]["isActive"] is False
    assert links[0]["accessCount"] == 1


@pytest.mark.asyncio
async def test_create_requires_session(client: AsyncClient):
    assert (await client.post("/api/share")).status_code == 401
