"""HTTP API tests through the ASGI app with dependency overrides."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from bulletin.core.cache import get_cache
from bulletin.core.database import get_db
from bulletin.core.events import get_dispatcher
from bulletin.core.security import create_access_token
from bulletin.main import create_app
from bulletin.models.moderation import FilterAction
from bulletin.models.user import UserRole
from bulletin.modules.moderation.policy import get_policy_store
from conftest import make_subject, make_thread, make_user, save_settings

VALID = "<p>This is a perfectly fine reply.</p>"


@pytest_asyncio.fixture
async def client(session_maker, policy_store, dispatcher, cache):
    app = create_app()

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_policy_store] = lambda: policy_store
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_cache] = lambda: cache

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


def auth(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


# ==================== Publishing ====================


@pytest.mark.asyncio
async def test_create_post_returns_201(db, client, dispatcher):
    owner = await make_user(db, "owner")
    subject = await make_subject(db)
    thread = await make_thread(db, subject, owner)

    response = await client.post(
        "/api/v1/forum/posts",
        json={"threadId": thread.id, "content": VALID},
        headers=auth(owner),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["thread_id"] == thread.id
    assert body["approved"] is True
    assert len(dispatcher.events) == 1


@pytest.mark.asyncio
async def test_create_post_requires_authentication(db, client):
    owner = await make_user(db, "owner")
    subject = await make_subject(db)
    thread = await make_thread(db, subject, owner)

    response = await client.post(
        "/api/v1/forum/posts",
        json={"threadId": thread.id, "content": VALID},
    )

    assert response.status_code == 401
    assert response.json() == {"error": "Not authenticated"}


@pytest.mark.asyncio
async def test_invalid_token_is_unauthenticated(client):
    response = await client.post(
        "/api/v1/forum/posts",
        json={"threadId": 1, "content": VALID},
        headers={"Authorization": "Bearer not-a-jwt"},
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_token_cookie_is_accepted(db, client):
    owner = await make_user(db, "owner")
    subject = await make_subject(db)
    thread = await make_thread(db, subject, owner)

    response = await client.post(
        "/api/v1/forum/posts",
        json={"threadId": thread.id, "content": VALID},
        headers={"Cookie": f"token={create_access_token(owner)}"},
    )

    assert response.status_code == 201


@pytest.mark.asyncio
async def test_malformed_body_is_400(db, client):
    owner = await make_user(db, "owner")

    response = await client.post(
        "/api/v1/forum/posts",
        json={"content": VALID},
        headers=auth(owner),
    )

    assert response.status_code == 400
    assert "threadId" in response.json()["error"]


@pytest.mark.asyncio
async def test_rejections_map_to_status_codes(db, client):
    await save_settings(db, banned_words="viagra", filter_action=FilterAction.BLOCK)
    owner = await make_user(db, "owner")
    subject = await make_subject(db)
    thread = await make_thread(db, subject, owner)
    locked = await make_thread(db, subject, owner, slug="locked", is_locked=True)

    blocked = await client.post(
        "/api/v1/forum/posts",
        json={"threadId": thread.id, "content": "buy viagra now"},
        headers=auth(owner),
    )
    assert blocked.status_code == 400
    assert "viagra" in blocked.json()["error"]

    missing = await client.post(
        "/api/v1/forum/posts",
        json={"threadId": 999, "content": VALID},
        headers=auth(owner),
    )
    assert missing.status_code == 404
    assert missing.json() == {"error": "Thread not found"}

    refused = await client.post(
        "/api/v1/forum/posts",
        json={"threadId": locked.id, "content": VALID},
        headers=auth(owner),
    )
    assert refused.status_code == 403
    assert refused.json() == {"error": "Thread is locked"}


@pytest.mark.asyncio
async def test_create_thread_and_fetch_by_slug(db, client):
    author = await make_user(db, "author")
    subject = await make_subject(db)

    created = await client.post(
        "/api/v1/forum/threads",
        json={"subjectId": subject.id, "title": "My First Thread", "content": VALID},
        headers=auth(author),
    )
    assert created.status_code == 201
    body = created.json()
    assert body["slug"] == "my-first-thread"
    assert body["first_post"]["content"] == VALID

    fetched = await client.get("/api/v1/forum/threads/my-first-thread")
    assert fetched.status_code == 200
    assert fetched.json()["id"] == body["id"]
    assert fetched.json()["view_count"] == 1

    by_id = await client.get(f"/api/v1/forum/threads/{body['id']}")
    assert by_id.json()["slug"] == "my-first-thread"


@pytest.mark.asyncio
async def test_listing_shows_only_approved_posts(db, client):
    await save_settings(db, moderation_queue=True, trusted_user_post_count=50)
    owner = await make_user(db, "owner")
    newbie = await make_user(db, "newbie", post_count=0)
    subject = await make_subject(db)
    thread = await make_thread(db, subject, owner)

    response = await client.post(
        "/api/v1/forum/posts",
        json={"threadId": thread.id, "content": VALID},
        headers=auth(newbie),
    )
    assert response.status_code == 201
    assert response.json()["approved"] is False

    listing = await client.get(f"/api/v1/forum/threads/{thread.id}/posts")

    assert listing.status_code == 200
    assert [p["user_id"] for p in listing.json()["items"]] == [owner.id]


# ==================== Subscriptions ====================


@pytest.mark.asyncio
async def test_subscription_toggle(db, client):
    owner = await make_user(db, "owner")
    subject = await make_subject(db)
    thread = await make_thread(db, subject, owner)
    url = f"/api/v1/forum/threads/{thread.id}/subscription"

    assert (await client.post(url, headers=auth(owner))).json() == {"subscribed": True}
    assert (await client.post(url, headers=auth(owner))).json() == {"subscribed": False}
    assert (await client.delete(url, headers=auth(owner))).json() == {"unsubscribed": True}


# ==================== Moderation settings ====================


@pytest.mark.asyncio
async def test_moderation_settings_admin_only(db, client):
    user = await make_user(db, "user")
    admin = await make_user(db, "admin", role=UserRole.ADMIN)

    denied = await client.get("/api/v1/forum/moderation/settings", headers=auth(user))
    assert denied.status_code == 403

    current = await client.get("/api/v1/forum/moderation/settings", headers=auth(admin))
    assert current.status_code == 200
    assert current.json()["filter_action"] == "CENSOR"


@pytest.mark.asyncio
async def test_settings_update_applies_to_next_post(db, client):
    admin = await make_user(db, "admin", role=UserRole.ADMIN)
    subject = await make_subject(db)
    thread = await make_thread(db, subject, admin)

    # Warm the cache with the current settings
    await save_settings(db)
    await client.get("/api/v1/forum/moderation/settings", headers=auth(admin))

    updated = await client.put(
        "/api/v1/forum/moderation/settings",
        json={"banned_words": "pineapple", "filter_action": "BLOCK"},
        headers=auth(admin),
    )
    assert updated.status_code == 200

    response = await client.post(
        "/api/v1/forum/posts",
        json={"threadId": thread.id, "content": "pineapple belongs on pizza"},
        headers=auth(admin),
    )
    assert response.status_code == 400
    assert "pineapple" in response.json()["error"]


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
