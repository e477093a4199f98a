"""Tests for repository registration, file listing and health endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import text

from reposnap.database import create_engine
from reposnap.services.content_service import FetchedFile
from reposnap.services.file_store import upsert_files
from tests.conftest import EDITOR_TOKEN, VIEWER_TOKEN, create_test_client

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from httpx import AsyncClient

    from reposnap.config import Settings

EDITOR = {"Authorization": f"Bearer {EDITOR_TOKEN}"}
VIEWER = {"Authorization": f"Bearer {VIEWER_TOKEN}"}


@pytest.fixture
async def client(test_settings: Settings) -> AsyncGenerator[AsyncClient]:
    async with create_test_client(test_settings) as ac:
        yield ac


class TestHealth:
    async def test_health_is_public(self, client: AsyncClient) -> None:
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["database"] == "ok"
        assert body["repositories"] == 0

    async def test_health_counts_repositories(self, client: AsyncClient) -> None:
        await client.post("/api/repos", json={"owner": "acme", "name": "widgets"}, headers=EDITOR)
        resp = await client.get("/api/health")
        assert resp.json()["repositories"] == 1

    async def test_health_degraded_without_schema(self, test_settings: Settings) -> None:
        async with create_test_client(test_settings) as client:
            engine, _factory = create_engine(test_settings)
            try:
                async with engine.begin() as conn:
                    await conn.execute(text("DROP TABLE repo_files"))
                    await conn.execute(text("DROP TABLE repositories"))
            finally:
                await engine.dispose()
            resp = await client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "degraded"
        assert resp.json()["database"] == "error"


class TestAuthorization:
    async def test_missing_token(self, client: AsyncClient) -> None:
        resp = await client.get("/api/repos")
        assert resp.status_code == 401

    async def test_unknown_token(self, client: AsyncClient) -> None:
        resp = await client.get("/api/repos", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    async def test_viewer_cannot_register(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/repos", json={"owner": "acme", "name": "widgets"}, headers=VIEWER
        )
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Editor role required"


class TestRepositories:
    async def test_register_and_list(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/repos",
            json={"owner": "acme", "name": "widgets", "branch": "develop", "token": "ghp_x"},
            headers=EDITOR,
        )
        assert resp.status_code == 201
        created = resp.json()
        assert created["owner"] == "acme"
        assert created["branch"] == "develop"
        assert created["last_pulled_commit"] is None
        assert "token" not in created

        resp = await client.get("/api/repos", headers=VIEWER)
        assert resp.status_code == 200
        assert [r["id"] for r in resp.json()] == [created["id"]]

        resp = await client.get(f"/api/repos/{created['id']}", headers=VIEWER)
        assert resp.status_code == 200
        assert resp.json()["name"] == "widgets"

    async def test_get_unknown_repository(self, client: AsyncClient) -> None:
        resp = await client.get("/api/repos/999", headers=VIEWER)
        assert resp.status_code == 404

    @pytest.mark.parametrize("owner", ["", "acme/evil", "../etc", "a b"])
    async def test_invalid_owner_rejected(self, client: AsyncClient, owner: str) -> None:
        resp = await client.post(
            "/api/repos", json={"owner": owner, "name": "widgets"}, headers=EDITOR
        )
        assert resp.status_code == 422
        assert resp.json()["detail"][0]["field"] == "owner"


class TestFiles:
    async def test_list_and_get_files(self, test_settings: Settings) -> None:
        async with create_test_client(test_settings) as client:
            resp = await client.post(
                "/api/repos", json={"owner": "acme", "name": "widgets"}, headers=EDITOR
            )
            repo_id = resp.json()["id"]

            engine, session_factory = create_engine(test_settings)
            try:
                await upsert_files(
                    session_factory,
                    repo_id,
                    [
                        FetchedFile("src/app.py", "print('hi')\n", "c" * 40, False, 12),
                        FetchedFile("logo.png", "iVBORw0K", "c" * 40, True, 6),
                    ],
                )
            finally:
                await engine.dispose()

            resp = await client.get(f"/api/repos/{repo_id}/files", headers=VIEWER)
            assert resp.status_code == 200
            listing = resp.json()
            assert [f["path"] for f in listing] == ["logo.png", "src/app.py"]
            assert "content" not in listing[0]
            assert listing[0]["is_binary"] is True

            resp = await client.get(f"/api/repos/{repo_id}/files/src/app.py", headers=VIEWER)
            assert resp.status_code == 200
            assert resp.json()["content"] == "print('hi')\n"

            resp = await client.get(f"/api/repos/{repo_id}/files/missing.txt", headers=VIEWER)
            assert resp.status_code == 404

    async def test_files_of_unknown_repository(self, client: AsyncClient) -> None:
        resp = await client.get("/api/repos/42/files", headers=VIEWER)
        assert resp.status_code == 404
