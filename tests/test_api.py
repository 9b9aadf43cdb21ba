"""End-to-end tests for the HTTP API.

Requests go through the real app via ``httpx.ASGITransport``; only the
database session and the settings-bound services are overridden.
"""
import uuid
from unittest.mock import MagicMock, patch

import httpx
import pytest

from mantrana.api.deps import get_access_service, get_like_recorder
from mantrana.database import get_db
from mantrana.main import app
from mantrana.services.access_service import AccessService
from mantrana.services.like_service import LikeRecorder

API = "/api/v1"


@pytest.fixture
async def client(session_factory, settings):
    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_like_recorder] = lambda: LikeRecorder(settings=settings)
    app.dependency_overrides[get_access_service] = lambda: AccessService(settings=settings)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def _create_user(client, name, gender, **profile):
    response = await client.post(
        f"{API}/users/",
        json={
            "email": f"{name.lower()}.{uuid.uuid4().hex[:6]}@gmail.com",
            "gender": gender,
            "status": "active",
            "profile": {"name": name, **profile},
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
async def pair(client):
    asha = await _create_user(client, "Asha", "female", age=27, interests=["music"])
    bharat = await _create_user(client, "Bharat", "male", age=29, interests=["music"])
    return asha["id"], bharat["id"]


class TestHealth:

    async def test_liveness(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
        assert response.headers["X-Request-ID"]

    async def test_request_id_is_echoed(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"

    async def test_deep_reports_database_failure(self, client):
        broken = MagicMock(side_effect=RuntimeError("connection refused"))
        with patch("mantrana.main.get_session_factory", return_value=broken):
            response = await client.get("/health/deep")
        body = response.json()
        assert body["status"] == "degraded"
        assert "connection refused" in body["database"]


class TestUsersApi:

    async def test_create_and_fetch(self, client):
        created = await _create_user(
            client, "Kavya", "female", images=["https://img.example.org/k.jpg"]
        )
        assert created["is_approved"] is True
        assert created["profile"]["images"] == {
            "kind": "gallery",
            "urls": ["https://img.example.org/k.jpg"],
        }

        response = await client.get(f"{API}/users/{created['id']}")
        assert response.status_code == 200
        assert response.json()["email"] == created["email"]

    async def test_unknown_user(self, client):
        response = await client.get(f"{API}/users/{uuid.uuid4()}")
        assert response.status_code == 404

    async def test_pause_twice_conflicts(self, client, pair):
        user_id, _ = pair
        assert (await client.post(f"{API}/users/{user_id}/pause")).status_code == 200
        assert (await client.post(f"{API}/users/{user_id}/pause")).status_code == 409

    async def test_update_profile(self, client, pair):
        user_id, _ = pair
        response = await client.patch(
            f"{API}/users/{user_id}/profile",
            json={"profile": {"name": "Asha R", "age": 28, "images": "https://img.example.org/a.jpg"}},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["profile"]["images"]["kind"] == "single"
        assert body["profile_completeness"] > 0


class TestMatchingApi:

    async def test_mutual_like_flow(self, client, pair):
        asha, bharat = pair

        first = await client.post(
            f"{API}/matches/like", json={"user_id": asha, "target_user_id": bharat}
        )
        assert first.status_code == 201
        assert first.json()["is_mutual_match"] is False
        assert first.json()["connection_id"] is None

        second = await client.post(
            f"{API}/matches/like", json={"user_id": bharat, "target_user_id": asha}
        )
        body = second.json()
        assert body["is_mutual_match"] is True
        assert body["should_show_toast"] is True
        connection_id = body["connection_id"]

        mutual = (await client.get(f"{API}/matches/mutual", params={"user_id": asha})).json()
        assert len(mutual) == 1
        assert mutual[0]["profile"]["id"] == bharat
        assert mutual[0]["should_show_toast"] is True

        seen = await client.post(
            f"{API}/matches/mark-toast-seen", json={"user_id": asha, "target_user_id": bharat}
        )
        assert seen.json() == {"connection_id": connection_id, "should_show_toast": False}

        toast_asha = await client.get(
            f"{API}/connections/{connection_id}/toast", params={"user_id": asha}
        )
        toast_bharat = await client.get(
            f"{API}/connections/{connection_id}/toast", params={"user_id": bharat}
        )
        assert toast_asha.json()["should_show_toast"] is False
        assert toast_bharat.json()["should_show_toast"] is True

    async def test_daily_limit_returns_429(self, client):
        me = await _create_user(client, "Rohan", "male")
        targets = [await _create_user(client, f"T{i}", "female") for i in range(6)]
        for target in targets[:5]:
            response = await client.post(
                f"{API}/matches/like", json={"user_id": me["id"], "target_user_id": target["id"]}
            )
            assert response.status_code == 201

        response = await client.post(
            f"{API}/matches/like", json={"user_id": me["id"], "target_user_id": targets[5]["id"]}
        )
        assert response.status_code == 429
        detail = response.json()["detail"]
        assert detail["daily_like_count"] == 5
        assert detail["limit"] == 5

        stats = (await client.get(f"{API}/matches/stats", params={"user_id": me["id"]})).json()
        assert stats["can_like"] is False
        assert stats["remaining_likes"] == 0

    async def test_like_unknown_user(self, client, pair):
        asha, _ = pair
        response = await client.post(
            f"{API}/matches/like", json={"user_id": asha, "target_user_id": str(uuid.uuid4())}
        )
        assert response.status_code == 404

    async def test_self_like(self, client, pair):
        asha, _ = pair
        response = await client.post(
            f"{API}/matches/like", json={"user_id": asha, "target_user_id": asha}
        )
        assert response.status_code == 400

    async def test_pass_and_discovery(self, client, pair):
        asha, bharat = pair
        chetan = (await _create_user(client, "Chetan", "male", age=30))["id"]

        feed = (await client.get(f"{API}/matches/discovery", params={"user_id": asha})).json()
        assert {p["id"] for p in feed["profiles"]} == {bharat, chetan}

        response = await client.post(
            f"{API}/matches/pass", json={"user_id": asha, "target_user_id": chetan}
        )
        assert response.status_code == 201
        assert response.json()["type"] == "pass"

        feed = (await client.get(f"{API}/matches/discovery", params={"user_id": asha})).json()
        assert [p["id"] for p in feed["profiles"]] == [bharat]

    async def test_liked_and_liked_by(self, client, pair):
        asha, bharat = pair
        await client.post(f"{API}/matches/like", json={"user_id": asha, "target_user_id": bharat})

        liked = (await client.get(f"{API}/matches/liked", params={"user_id": asha})).json()
        assert [item["profile"]["id"] for item in liked] == [bharat]

        liked_by = (await client.get(f"{API}/matches/liked-by", params={"user_id": bharat})).json()
        assert [item["profile"]["id"] for item in liked_by] == [asha]

    async def test_unmatch(self, client, pair):
        asha, bharat = pair
        await client.post(f"{API}/matches/like", json={"user_id": asha, "target_user_id": bharat})
        await client.post(f"{API}/matches/like", json={"user_id": bharat, "target_user_id": asha})

        response = await client.post(
            f"{API}/matches/unmatch", json={"user_id": asha, "target_user_id": bharat}
        )
        assert response.status_code == 200
        assert response.json()["connection_deleted"] is True

        mutual = (await client.get(f"{API}/matches/mutual", params={"user_id": bharat})).json()
        assert mutual == []

    async def test_unmatch_requires_target(self, client, pair):
        asha, _ = pair
        response = await client.post(f"{API}/matches/unmatch", json={"user_id": asha})
        assert response.status_code == 422


class TestConnectionsApi:

    async def test_outsider_forbidden(self, client, pair):
        asha, bharat = pair
        outsider = (await _create_user(client, "Dev", "male"))["id"]
        await client.post(f"{API}/matches/like", json={"user_id": asha, "target_user_id": bharat})
        body = (
            await client.post(
                f"{API}/matches/like", json={"user_id": bharat, "target_user_id": asha}
            )
        ).json()
        connection_id = body["connection_id"]

        listed = (await client.get(f"{API}/connections/", params={"user_id": asha})).json()
        assert [c["id"] for c in listed] == [connection_id]

        response = await client.get(
            f"{API}/connections/{connection_id}", params={"user_id": outsider}
        )
        assert response.status_code == 403

        response = await client.post(
            f"{API}/connections/{connection_id}/toast-seen", json={"user_id": outsider}
        )
        assert response.status_code == 403

    async def test_toast_for_unknown_match(self, client, pair):
        asha, bharat = pair
        connection_id = str(uuid.uuid4())

        response = await client.get(
            f"{API}/connections/{connection_id}/toast", params={"user_id": asha}
        )
        assert response.status_code == 404

        response = await client.post(
            f"{API}/connections/{connection_id}/toast-seen", json={"user_id": asha}
        )
        assert response.status_code == 404

    async def test_early_pair_ack_does_not_hide_later_match(self, client, pair):
        asha, bharat = pair
        response = await client.post(
            f"{API}/matches/mark-toast-seen", json={"user_id": asha, "target_user_id": bharat}
        )
        assert response.status_code == 404

        await client.post(f"{API}/matches/like", json={"user_id": bharat, "target_user_id": asha})
        body = (
            await client.post(
                f"{API}/matches/like", json={"user_id": asha, "target_user_id": bharat}
            )
        ).json()
        assert body["is_mutual_match"] is True
        assert body["should_show_toast"] is True


class TestAccessApi:

    async def test_allow_list(self, client):
        response = await client.post(f"{API}/access/preapproved", json={"email": "Meera@Gmail.com"})
        assert response.status_code == 201
        assert response.json()["email"] == "meera@gmail.com"

        duplicate = await client.post(f"{API}/access/preapproved", json={"email": "meera@gmail.com"})
        assert duplicate.status_code == 409

        check = await client.get(f"{API}/access/preapproved/check", params={"email": "meera@gmail.com"})
        assert check.json()["type"] == "direct"

        paused = await client.post(f"{API}/access/preapproved/meera@gmail.com/pause")
        assert paused.json()["status"] == "paused"

        check = await client.get(f"{API}/access/preapproved/check", params={"email": "meera@gmail.com"})
        assert check.json()["approved"] is False

    async def test_invalid_email(self, client):
        response = await client.get(f"{API}/access/preapproved/check", params={"email": "nope"})
        assert response.status_code == 400

    async def test_invitation_lifecycle(self, client):
        created = await client.post(f"{API}/access/invitations", json={"email": "neha@gmail.com"})
        assert created.status_code == 201
        code = created.json()["code"]

        sent = await client.post(f"{API}/access/invitations/{code}/sent")
        assert sent.json()["status"] == "sent"
        assert sent.json()["sent_at"] is not None

        failed = await client.post(
            f"{API}/access/invitations/{code}/failed", json={"failure_reason": "bounced"}
        )
        assert failed.json()["attempts"] == 1
        assert failed.json()["failure_reason"] == "bounced"

        accepted = await client.post(f"{API}/access/invitations/{code}/accepted")
        assert accepted.json()["status"] == "accepted"

        again = await client.post(f"{API}/access/invitations/{code}/opened")
        assert again.status_code == 409
