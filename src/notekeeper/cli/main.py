"""Notekeeper CLI — sign up, verify, log in and manage your account.

Usage:
    notekeeper register you@example.com --name "Ada"   # Create account, code is emailed
    notekeeper verify you@example.com 123456           # Verify code, saves session token
    notekeeper resend you@example.com                  # Email a fresh code
    notekeeper login you@example.com                   # Password login, saves session token
    notekeeper me                                      # Show the logged-in account
    notekeeper profile --name "Ada L."                 # Change display name
    notekeeper change-password                         # Prompted current/new password
    notekeeper delete-account                          # Delete account and all notes
    notekeeper logout                                  # Forget the saved token
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from pathlib import Path

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("NOTEKEEPER_API_URL", DEFAULT_API_URL).rstrip("/")


def _token_path() -> Path:
    override = os.environ.get("NOTEKEEPER_TOKEN_FILE")
    if override:
        return Path(override)
    return Path.home() / ".notekeeper" / "token"


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the Notekeeper backend."""
    return httpx.AsyncClient(base_url=_api_url(), timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _save_token(token: str) -> None:
    path = _token_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(token)
    path.chmod(0o600)


def _load_token() -> str:
    path = _token_path()
    if not path.exists():
        click.secho("Not logged in. Run `notekeeper login` first.", fg="red", err=True)
        sys.exit(1)
    return path.read_text().strip()


def _auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {_load_token()}"}


def _check(r: httpx.Response) -> dict:
    """Return the JSON body, or print the API's error and exit."""
    try:
        body = r.json()
    except ValueError:
        body = {"detail": r.text}
    if r.is_error:
        kind = body.get("kind", r.status_code)
        click.secho(f"Error ({kind}): {body.get('detail')}", fg="red", err=True)
        for e in body.get("errors", []):
            click.echo(f"  {'.'.join(str(p) for p in e['loc'])}: {e['msg']}", err=True)
        sys.exit(1)
    return body


def _print_account(account: dict) -> None:
    status = click.style(
        "verified" if account["verified"] else "unverified",
        fg="green" if account["verified"] else "yellow",
    )
    click.echo(f"  {account['name']} <{account['email']}>  [{status}]")
    click.echo(f"  id:     {account['id']}")
    click.echo(f"  method: {account['login_method']}")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="notekeeper")
def main():
    """Notekeeper — account and session management from the terminal."""


@main.command()
@click.argument("email")
@click.option("--name", "-n", required=True, help="Display name (at least 2 characters)")
@click.password_option(help="Password (prompted if omitted)")
def register(email: str, name: str, password: str):
    """Create an account. A verification code is emailed to EMAIL."""
    async def _impl():
        async with _client() as c:
            r = await c.post(
                "/api/v1/auth/register",
                json={"email": email, "name": name, "password": password},
            )
        body = _check(r)
        click.secho(body["message"], fg="green")
        click.echo(f"Next: notekeeper verify {body['email']} <code>")

    _run(_impl())


@main.command()
@click.argument("email")
@click.argument("code")
def verify(email: str, code: str):
    """Verify EMAIL with the emailed CODE and log in."""
    async def _impl():
        async with _client() as c:
            r = await c.post(
                "/api/v1/auth/verify-otp", json={"email": email, "otp": code}
            )
        body = _check(r)
        _save_token(body["token"])
        click.secho(body["message"], fg="green")
        _print_account(body["account"])

    _run(_impl())


@main.command()
@click.argument("email")
def resend(email: str):
    """Email a new verification code (the old one stops working)."""
    async def _impl():
        async with _client() as c:
            r = await c.post("/api/v1/auth/resend-otp", json={"email": email})
        click.secho(_check(r)["message"], fg="green")

    _run(_impl())


@main.command()
@click.argument("email")
@click.option("--password", prompt=True, hide_input=True)
def login(email: str, password: str):
    """Log in with EMAIL and password; the session token is saved locally."""
    async def _impl():
        async with _client() as c:
            r = await c.post(
                "/api/v1/auth/login", json={"email": email, "password": password}
            )
        if r.status_code == 403 and r.json().get("needs_verification"):
            click.secho("Email not verified yet.", fg="yellow", err=True)
            click.echo(f"Run: notekeeper verify {email} <code>   (or: notekeeper resend {email})", err=True)
            sys.exit(1)
        body = _check(r)
        _save_token(body["token"])
        click.secho(body["message"], fg="green")
        _print_account(body["account"])

    _run(_impl())


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def me(as_json: bool):
    """Show the logged-in account."""
    async def _impl():
        async with _client() as c:
            r = await c.get("/api/v1/auth/me", headers=_auth_headers())
        body = _check(r)
        if as_json:
            click.echo(json.dumps(body["account"], indent=2))
        else:
            _print_account(body["account"])

    _run(_impl())


@main.command()
@click.option("--name", "-n", required=True, help="New display name")
def profile(name: str):
    """Change your display name."""
    async def _impl():
        async with _client() as c:
            r = await c.put(
                "/api/v1/auth/profile", json={"name": name}, headers=_auth_headers()
            )
        body = _check(r)
        click.secho(body["message"], fg="green")
        _print_account(body["account"])

    _run(_impl())


@main.command("change-password")
@click.option("--current", prompt="Current password", hide_input=True)
@click.option("--new", "new_password", prompt="New password", hide_input=True,
              confirmation_prompt=True)
def change_password(current: str, new_password: str):
    """Change your password (password accounts only)."""
    async def _impl():
        async with _client() as c:
            r = await c.put(
                "/api/v1/auth/change-password",
                json={"current_password": current, "new_password": new_password},
                headers=_auth_headers(),
            )
        click.secho(_check(r)["message"], fg="green")

    _run(_impl())


@main.command("delete-account")
@click.confirmation_option(prompt="Delete your account and ALL notes? This cannot be undone")
def delete_account():
    """Delete your account and every note you own."""
    async def _impl():
        async with _client() as c:
            r = await c.delete("/api/v1/auth/account", headers=_auth_headers())
        body = _check(r)
        _token_path().unlink(missing_ok=True)
        click.secho(body["message"], fg="green")

    _run(_impl())


@main.command()
def logout():
    """Forget the saved session token.

    Tokens are not revoked server-side; a copied token stays valid until
    it expires.
    """
    path = _token_path()
    if path.exists():
        path.unlink()
        click.secho("Logged out.", fg="green")
    else:
        click.echo("Not logged in.")


@main.command()
def health():
    """Check backend health."""
    async def _impl():
        async with _client() as c:
            r = await c.get("/api/v1/health")
        body = _check(r)
        color = "green" if body["status"] == "healthy" else "yellow"
        click.secho(f"{body['status']} (v{body['version']}, database: {body['database']})", fg=color)

    _run(_impl())


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
