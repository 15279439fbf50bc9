#!/usr/bin/env python3
"""
Notekeeper Quickstart — the full account lifecycle in one script.

Registers → verifies the emailed code → logs in → updates the profile →
changes the password → deletes the account.
Run with: python examples/quickstart.py

Requires: pip install httpx
Backend must be running: http://localhost:8000
In development the verification code is printed in the server log
(event "mail.dev_verification_code"); paste it when prompted.
"""

import sys
import uuid

import httpx

BASE = "http://localhost:8000/api/v1"


def fail(step: str, resp: httpx.Response) -> None:
    print(f"ERROR: {step} failed: {resp.status_code} {resp.text}")
    sys.exit(1)


def main():
    run_id = uuid.uuid4().hex[:6]
    email = f"demo-{run_id}@example.com"
    password = "demo-password-123"
    client = httpx.Client(base_url=BASE, timeout=10)

    # ── Health check ──────────────────────────────────────────────
    print("Checking backend health...")
    try:
        resp = client.get("/health")
    except httpx.ConnectError:
        print(f"Backend not reachable at {BASE}")
        sys.exit(1)
    health = resp.json()
    print(f"  Status:   {health['status']}")
    print(f"  Database: {health['database']}")

    # ── Register ──────────────────────────────────────────────────
    print(f"\n1. Registering {email}...")
    resp = client.post("/auth/register", json={
        "email": email,
        "name": f"Demo User {run_id}",
        "password": password,
    })
    if resp.status_code != 201:
        fail("Registration", resp)
    print(f"   {resp.json()['message']}")

    # ── Login before verifying is refused ─────────────────────────
    resp = client.post("/auth/login", json={"email": email, "password": password})
    print(f"\n2. Login before verification → {resp.status_code} {resp.json()['kind']}")

    # ── Verify ────────────────────────────────────────────────────
    code = input("\n3. Verification code from the server log: ").strip()
    resp = client.post("/auth/verify-otp", json={"email": email, "otp": code})
    if resp.status_code != 200:
        fail("Verification", resp)
    token = resp.json()["token"]
    print("   Verified, session token issued")

    auth = {"Authorization": f"Bearer {token}"}

    # ── Who am I ──────────────────────────────────────────────────
    resp = client.get("/auth/me", headers=auth)
    account = resp.json()["account"]
    print(f"\n4. Logged in as {account['name']} <{account['email']}> ({account['id'][:8]}...)")

    # ── Profile + password ────────────────────────────────────────
    resp = client.put("/auth/profile", json={"name": "Renamed Demo"}, headers=auth)
    print(f"\n5. Profile updated: {resp.json()['account']['name']}")

    resp = client.put("/auth/change-password", json={
        "current_password": password,
        "new_password": "new-demo-password",
    }, headers=auth)
    if resp.status_code != 200:
        fail("Password change", resp)
    resp = client.post("/auth/login", json={"email": email, "password": "new-demo-password"})
    print(f"\n6. Password changed, login with new password → {resp.status_code}")

    # ── Delete ────────────────────────────────────────────────────
    resp = client.delete("/auth/account", headers=auth)
    print(f"\n7. {resp.json()['message']}")
    resp = client.get("/auth/me", headers=auth)
    print(f"   Old token now → {resp.status_code} {resp.json()['kind']}")

    print("\nDone.")


if __name__ == "__main__":
    main()
