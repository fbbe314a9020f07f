#!/usr/bin/env python3
"""Walk a running API through a full session lifecycle.

Flow:
1) Register (or log in, when the account already exists)
2) Call a protected endpoint with the access token
3) Rotate the refresh token and check the old one is rejected
4) Log out and check the access token is rejected
"""

from __future__ import annotations

import argparse
import sys
from typing import Any, Dict

import httpx


DEFAULT_BASE_URL = "http://127.0.0.1:8000"
API_PREFIX = "/api/v1"


class SmokeError(RuntimeError):
    pass


def _json_or_text(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _require_success(response: httpx.Response, context: str) -> Dict[str, Any]:
    payload = _json_or_text(response)
    if response.status_code >= 400:
        raise SmokeError(f"{context} failed ({response.status_code}): {payload}")
    if not isinstance(payload, dict) or payload.get("success") is not True:
        raise SmokeError(f"{context} returned unexpected payload: {payload}")
    return payload


def _require_error(response: httpx.Response, code: str, context: str) -> None:
    payload = _json_or_text(response)
    if not isinstance(payload, dict) or payload.get("code") != code:
        raise SmokeError(f"{context}: expected {code}, got ({response.status_code}) {payload}")


def _bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _authenticate(client: httpx.Client, args: argparse.Namespace) -> Dict[str, Any]:
    response = client.post(
        f"{API_PREFIX}/auth/register",
        json={
            "email": args.email,
            "password": args.password,
            "first_name": args.first_name,
            "last_name": args.last_name,
        },
    )
    if response.status_code == 409:
        response = client.post(
            f"{API_PREFIX}/auth/login",
            json={"email": args.email, "password": args.password},
        )
        return _require_success(response, "login")["data"]
    return _require_success(response, "register")["data"]


def run(args: argparse.Namespace) -> None:
    with httpx.Client(base_url=args.base_url, timeout=args.timeout) as client:
        session = _authenticate(client, args)
        print(f"authenticated as {session['user']['email']} (role={session['user']['role']})")

        _require_success(client.get(f"{API_PREFIX}/users/me", headers=_bearer(session["access_token"])), "profile")
        print("protected call accepted")

        old_refresh = session["refresh_token"]
        rotated = _require_success(
            client.post(f"{API_PREFIX}/auth/refresh", json={"refresh_token": old_refresh}),
            "refresh",
        )["data"]
        replay = client.post(f"{API_PREFIX}/auth/refresh", json={"refresh_token": old_refresh})
        _require_error(replay, "AUTH_TOKEN_REVOKED", "refresh replay")
        print("refresh token rotated; replay rejected")

        access_token = rotated["access_token"]
        _require_success(
            client.post(
                f"{API_PREFIX}/auth/logout",
                json={"refresh_token": rotated["refresh_token"]},
                headers=_bearer(access_token),
            ),
            "logout",
        )
        after_logout = client.get(f"{API_PREFIX}/users/me", headers=_bearer(access_token))
        _require_error(after_logout, "AUTH_TOKEN_REVOKED", "protected call after logout")
        print("logout revoked the access token")


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--base-url", default=DEFAULT_BASE_URL)
    parser.add_argument("--email", default="smoke@example.com")
    parser.add_argument("--password", default="P@ssw0rd1!")
    parser.add_argument("--first-name", default="Smoke")
    parser.add_argument("--last-name", default="Test")
    parser.add_argument("--timeout", type=float, default=10.0)
    args = parser.parse_args()

    try:
        run(args)
    except (SmokeError, httpx.HTTPError) as exc:
        print(f"FAILED: {exc}", file=sys.stderr)
        return 1
    print("OK")
    return 0


if __name__ == "__main__":
    sys.exit(main())
