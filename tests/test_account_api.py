"""Protected account routes — access guard, profile, password, deletion.

Learn: These use the real guard (no identity override). Tokens come from
the signup flow, or are minted directly with the app's issuer when a test
needs a token for an account that could never log in normally (e.g. an
unverified account abandoning its registration).
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from conftest import bearer, register, register_and_verify, unique_email
from notekeeper.auth.jwt import TokenIssuer, get_token_issuer
from notekeeper.config import settings
from notekeeper.main import app
from notekeeper.services.account_service import AccountService
from notekeeper.services.account_store import AccountStore
from notekeeper.services.identity_service import IdentityService
from notekeeper.services.note_store import NoteStore


# ═══════════════════════════════════════════════════════════
# Access guard
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_me_with_token(client, mailer):
    body = await register_and_verify(client, mailer, name="Me User")
    r = await client.get("/api/v1/auth/me", headers=bearer(body["token"]))
    assert r.status_code == 200
    account = r.json()["account"]
    assert account["name"] == "Me User"
    assert account["verified"] is True
    assert account["login_method"] == "password"
    for secret in ("password_hash", "challenge", "challenge_code"):
        assert secret not in account


@pytest.mark.asyncio
async def test_guard_failures_share_one_shape(client, mailer):
    """No token, a bad token, and a token for a deleted account look alike."""
    body = await register_and_verify(client, mailer)
    token = body["token"]
    r = await client.delete("/api/v1/auth/account", headers=bearer(token))
    assert r.status_code == 200

    no_token = await client.get("/api/v1/auth/me")
    bad_token = await client.get("/api/v1/auth/me", headers=bearer("invalid_token_here"))
    gone = await client.get("/api/v1/auth/me", headers=bearer(token))

    for r in (no_token, bad_token, gone):
        assert r.status_code == 401
        assert r.headers["WWW-Authenticate"] == "Bearer"
    assert no_token.json() == bad_token.json() == gone.json()
    assert no_token.json()["kind"] == "NotAuthenticated"


@pytest.mark.asyncio
async def test_guard_rejects_non_bearer_scheme(client, mailer):
    body = await register_and_verify(client, mailer)
    r = await client.get(
        "/api/v1/auth/me", headers={"Authorization": f"Basic {body['token']}"}
    )
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_guard_rejects_expired_token(client, mailer):
    body = await register_and_verify(client, mailer)
    account_id = body["account"]["id"]
    stale = get_token_issuer().mint(
        account_id, now=datetime.now(timezone.utc) - timedelta(hours=25)
    )
    r = await client.get("/api/v1/auth/me", headers=bearer(stale))
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_guard_rejects_token_signed_with_other_key(client, mailer):
    body = await register_and_verify(client, mailer)
    forged = TokenIssuer("some-other-secret").mint(body["account"]["id"])
    r = await client.get("/api/v1/auth/me", headers=bearer(forged))
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_guard_rejects_unverified_account(client, db_session):
    email = unique_email("unverified")
    await register(client, email)
    account = await AccountStore(db_session).find_by_email(email)
    token = get_token_issuer().mint(str(account.id))

    r = await client.get("/api/v1/auth/me", headers=bearer(token))
    assert r.status_code == 403
    assert r.json()["kind"] == "NotVerified"


@pytest.mark.asyncio
async def test_logout_is_acknowledged_but_token_still_valid(client, mailer):
    body = await register_and_verify(client, mailer)
    r = await client.post("/api/v1/auth/logout", headers=bearer(body["token"]))
    assert r.status_code == 200

    # Stateless tokens: nothing was revoked server-side.
    r = await client.get("/api/v1/auth/me", headers=bearer(body["token"]))
    assert r.status_code == 200


# ═══════════════════════════════════════════════════════════
# Profile
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_update_profile_name_only(client, mailer):
    body = await register_and_verify(client, mailer, name="Old Name")
    email = body["account"]["email"]

    r = await client.put(
        "/api/v1/auth/profile",
        json={"name": "  New Name  ", "email": "hijack@example.com"},
        headers=bearer(body["token"]),
    )
    assert r.status_code == 200
    account = r.json()["account"]
    assert account["name"] == "New Name"
    assert account["email"] == email


@pytest.mark.asyncio
async def test_update_profile_short_name(client, mailer):
    body = await register_and_verify(client, mailer)
    r = await client.put(
        "/api/v1/auth/profile", json={"name": "x"}, headers=bearer(body["token"])
    )
    assert r.status_code == 422
    assert r.json()["kind"] == "ValidationError"


# ═══════════════════════════════════════════════════════════
# Password change
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_change_password(client, mailer):
    email = unique_email("pw")
    body = await register_and_verify(client, mailer, email=email, password="old_password")

    r = await client.put(
        "/api/v1/auth/change-password",
        json={"current_password": "old_password", "new_password": "new_password"},
        headers=bearer(body["token"]),
    )
    assert r.status_code == 200

    old = await client.post(
        "/api/v1/auth/login", json={"email": email, "password": "old_password"}
    )
    new = await client.post(
        "/api/v1/auth/login", json={"email": email, "password": "new_password"}
    )
    assert old.status_code == 401
    assert new.status_code == 200


@pytest.mark.asyncio
async def test_change_password_wrong_current(client, mailer):
    body = await register_and_verify(client, mailer, password="old_password")
    r = await client.put(
        "/api/v1/auth/change-password",
        json={"current_password": "not_it", "new_password": "new_password"},
        headers=bearer(body["token"]),
    )
    assert r.status_code == 400
    assert r.json()["kind"] == "WrongCurrentPassword"


@pytest.mark.asyncio
async def test_change_password_too_short(client, mailer):
    body = await register_and_verify(client, mailer, password="old_password")
    r = await client.put(
        "/api/v1/auth/change-password",
        json={"current_password": "old_password", "new_password": "abc"},
        headers=bearer(body["token"]),
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_change_password_provider_only_account(client, db_session, mailer):
    svc = IdentityService(db_session, mailer, get_token_issuer())
    resolution, token = await svc.sign_in_external(
        "google-only-1", unique_email("google"), "Google User"
    )

    r = await client.put(
        "/api/v1/auth/change-password",
        json={"current_password": "anything", "new_password": "new_password"},
        headers=bearer(token),
    )
    assert r.status_code == 400
    assert r.json()["kind"] == "NoPasswordOnFile"


# ═══════════════════════════════════════════════════════════
# Deletion
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_delete_account_cascades_notes(client, mailer, db_session):
    body = await register_and_verify(client, mailer)
    owner_id = uuid.UUID(body["account"]["id"])
    other = await register_and_verify(client, mailer)
    other_id = uuid.UUID(other["account"]["id"])

    notes = NoteStore(db_session)
    for i in range(3):
        await notes.create(owner_id, f"note {i}", "body")
    await notes.create(other_id, "someone else's", "body")
    await db_session.commit()

    r = await client.delete("/api/v1/auth/account", headers=bearer(body["token"]))
    assert r.status_code == 200

    assert await notes.count_for_owner(owner_id) == 0
    assert await notes.count_for_owner(other_id) == 1
    assert await AccountStore(db_session).find_by_id(owner_id) is None


@pytest.mark.asyncio
async def test_delete_unverified_account(client, db_session):
    """Unverified users can abandon a registration."""
    email = unique_email("abandon")
    await register(client, email)
    store = AccountStore(db_session)
    account = await store.find_by_email(email)
    account_id = account.id
    await NoteStore(db_session).create(account_id, "draft", "body")
    await db_session.commit()

    token = get_token_issuer().mint(str(account_id))
    r = await client.delete("/api/v1/auth/account", headers=bearer(token))
    assert r.status_code == 200

    assert await NoteStore(db_session).count_for_owner(account_id) == 0
    assert await store.find_by_email(email) is None

    # The address is free again.
    r = await register(client, email)
    assert r.status_code == 201


async def _failing_account_delete(self, account_id):
    raise OperationalError("DELETE FROM accounts", {}, Exception("disk I/O error"))


@pytest.mark.asyncio
async def test_delete_account_failure_keeps_notes(client, mailer, db_session, monkeypatch):
    """Notes deleted, account delete fails → nothing committed, no success."""
    body = await register_and_verify(client, mailer)
    owner_id = uuid.UUID(body["account"]["id"])
    notes = NoteStore(db_session)
    await notes.create(owner_id, "keep me", "body")
    await notes.create(owner_id, "me too", "body")
    await db_session.commit()

    monkeypatch.setattr(AccountStore, "delete", _failing_account_delete)

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        r = await ac.delete("/api/v1/auth/account", headers=bearer(body["token"]))
    assert r.status_code == 500
    assert r.json()["kind"] == "ServerError"

    assert await notes.count_for_owner(owner_id) == 2
    assert await AccountStore(db_session).find_by_id(owner_id) is not None


@pytest.mark.asyncio
async def test_delete_account_service_rolls_back(mailer, db_session, monkeypatch):
    svc = IdentityService(db_session, mailer, get_token_issuer())
    resolution, _ = await svc.sign_in_external("g-del-1", unique_email("rb"), "Roll Back")
    account = resolution.account
    account_id = account.id
    await NoteStore(db_session).create(account_id, "survivor", "body")
    await db_session.commit()

    monkeypatch.setattr(AccountStore, "delete", _failing_account_delete)
    with pytest.raises(OperationalError):
        await AccountService(db_session).delete_account(account)

    assert await NoteStore(db_session).count_for_owner(account_id) == 1
    assert await AccountStore(db_session).find_by_id(account_id) is not None


@pytest.mark.asyncio
async def test_delete_requires_token(client):
    r = await client.delete("/api/v1/auth/account")
    assert r.status_code == 401


def test_token_ttl_from_settings():
    assert get_token_issuer().ttl == timedelta(hours=settings.session_token_expire_hours)
