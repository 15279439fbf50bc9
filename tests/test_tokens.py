"""Session token and password hashing tests."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from notekeeper.auth.jwt import TokenExpired, TokenInvalid, TokenIssuer
from notekeeper.auth.password import burn_password_check, hash_password, verify_password

SECRET = "test-secret"


# ─── Tokens ─────────────────────────────────────────────


def test_mint_and_validate():
    issuer = TokenIssuer(SECRET)
    token = issuer.mint("account-1")
    assert issuer.validate(token) == "account-1"


def test_payload_fields():
    issued = datetime(2026, 3, 1, tzinfo=timezone.utc)
    issuer = TokenIssuer(SECRET, ttl=timedelta(hours=24))
    token = issuer.mint("account-1", now=issued)
    payload = jwt.decode(token, SECRET, algorithms=["HS256"], options={"verify_exp": False, "verify_iat": False})
    assert payload["sub"] == "account-1"
    assert payload["type"] == "session"
    assert payload["exp"] - payload["iat"] == 24 * 3600


def test_expired_token():
    issuer = TokenIssuer(SECRET, ttl=timedelta(minutes=1))
    token = issuer.mint("account-1", now=datetime.now(timezone.utc) - timedelta(minutes=5))
    with pytest.raises(TokenExpired):
        issuer.validate(token)


def test_wrong_key():
    token = TokenIssuer("other").mint("account-1")
    with pytest.raises(TokenInvalid):
        TokenIssuer(SECRET).validate(token)


def test_garbage_token():
    with pytest.raises(TokenInvalid):
        TokenIssuer(SECRET).validate("not.a.jwt")


def test_wrong_token_type():
    now = datetime.now(timezone.utc)
    token = jwt.encode(
        {"sub": "account-1", "type": "oauth_state", "iat": now, "exp": now + timedelta(minutes=5)},
        SECRET,
        algorithm="HS256",
    )
    with pytest.raises(TokenInvalid):
        TokenIssuer(SECRET).validate(token)


def test_missing_subject():
    now = datetime.now(timezone.utc)
    token = jwt.encode(
        {"type": "session", "iat": now, "exp": now + timedelta(minutes=5)},
        SECRET,
        algorithm="HS256",
    )
    with pytest.raises(TokenInvalid):
        TokenIssuer(SECRET).validate(token)


# ─── Passwords ──────────────────────────────────────────


def test_hash_and_verify():
    hashed = hash_password("correct horse")
    assert hashed != "correct horse"
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong horse", hashed)


def test_hashes_are_salted():
    assert hash_password("same") != hash_password("same")


def test_verify_against_malformed_hash():
    assert verify_password("anything", "not-a-bcrypt-hash") is False


def test_burn_password_check_returns_nothing():
    assert burn_password_check("whatever") is None
