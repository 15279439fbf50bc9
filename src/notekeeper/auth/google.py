"""Google sign-in — the provider side of the external login flow.

Learn: Standard OAuth2 authorization-code flow:

1. /auth/google redirects the browser to Google's consent screen with a
   `state` value we signed ourselves
2. Google redirects back to /auth/google/callback with `code` + `state`
3. We exchange the code for an access token, fetch the userinfo profile,
   and hand an ExternalProfile to the identity service

The state is a short-lived JWT wrapping a random nonce; the same nonce is
set in an http-only cookie, so a callback that didn't start in this
browser fails the comparison.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional
from urllib.parse import urlencode

import httpx
import jwt

from notekeeper.config import Settings, settings
from notekeeper.errors import ProviderAuthFailed

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"

STATE_COOKIE = "nk_oauth_state"
STATE_TTL = timedelta(minutes=10)


@dataclass(frozen=True)
class ExternalProfile:
    provider_id: str
    email: str
    display_name: str
    avatar_url: Optional[str] = None


def new_state(secret: str, algorithm: str = "HS256") -> tuple[str, str]:
    """Return (signed_state, nonce)."""
    nonce = secrets.token_urlsafe(16)
    now = datetime.now(timezone.utc)
    state = jwt.encode(
        {"nonce": nonce, "type": "oauth_state", "iat": now, "exp": now + STATE_TTL},
        secret,
        algorithm=algorithm,
    )
    return state, nonce


def check_state(
    state: Optional[str],
    cookie_nonce: Optional[str],
    secret: str,
    algorithm: str = "HS256",
) -> None:
    if not state or not cookie_nonce:
        raise ProviderAuthFailed("Missing OAuth state")
    try:
        payload = jwt.decode(state, secret, algorithms=[algorithm])
    except jwt.InvalidTokenError:
        raise ProviderAuthFailed("Invalid OAuth state")
    if payload.get("type") != "oauth_state" or not secrets.compare_digest(
        str(payload.get("nonce", "")), cookie_nonce
    ):
        raise ProviderAuthFailed("OAuth state mismatch")


class GoogleOAuthClient:
    def __init__(self, cfg: Settings, http: Optional[httpx.AsyncClient] = None):
        self.cfg = cfg
        self._http = http

    @property
    def enabled(self) -> bool:
        return self.cfg.google_enabled

    def authorize_url(self, state: str) -> str:
        params = {
            "client_id": self.cfg.google_client_id,
            "redirect_uri": self.cfg.google_redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "state": state,
            "prompt": "select_account",
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    async def fetch_profile(self, code: str) -> ExternalProfile:
        """Exchange an authorization code for the user's Google profile."""
        if not self.enabled:
            raise ProviderAuthFailed("Google sign-in is not configured")

        http = self._http or httpx.AsyncClient(timeout=10.0)
        try:
            r = await http.post(
                TOKEN_URL,
                data={
                    "client_id": self.cfg.google_client_id,
                    "client_secret": self.cfg.google_client_secret,
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self.cfg.google_redirect_uri,
                },
            )
            if r.status_code >= 400:
                raise ProviderAuthFailed(
                    f"Token exchange failed (status={r.status_code})"
                )
            access_token = r.json().get("access_token")
            if not access_token:
                raise ProviderAuthFailed("Token response missing access_token")

            r = await http.get(
                USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            if r.status_code >= 400:
                raise ProviderAuthFailed(
                    f"Userinfo request failed (status={r.status_code})"
                )
            info = r.json()
        except httpx.HTTPError as e:
            raise ProviderAuthFailed(f"Google unreachable: {e}")
        finally:
            if self._http is None:
                await http.aclose()

        return profile_from_userinfo(info)


def profile_from_userinfo(info: dict) -> ExternalProfile:
    sub = str(info.get("sub") or "")
    email = str(info.get("email") or "")
    if not sub or not email:
        raise ProviderAuthFailed("Google profile is missing id or email")
    if info.get("email_verified") is False:
        raise ProviderAuthFailed("Google email is not verified")
    return ExternalProfile(
        provider_id=sub,
        email=email,
        display_name=str(info.get("name") or ""),
        avatar_url=info.get("picture"),
    )


@lru_cache(maxsize=1)
def get_google_client() -> GoogleOAuthClient:
    """FastAPI dependency."""
    return GoogleOAuthClient(settings)
