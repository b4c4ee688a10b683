#!/usr/bin/env python3
"""Mint, revoke or inspect tokens against the configured registry.

Usage:
    # Issue an access token (prints the token):
    python scripts/issue_token.py issue --user alice --authority USER --verified

    # Issue a refresh token for a soft-deleted account:
    python scripts/issue_token.py issue --user dan --refresh --deleted

    # Log a token out:
    python scripts/issue_token.py revoke <token>

    # Show claims and registry state for a token:
    python scripts/issue_token.py inspect <token>

Environment Variables:
    JWT_SECRET_KEY: Signing secret (required)
    REDIS_URL: Registry location (defaults to redis://localhost:6379/0)
"""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


async def issue_token(
    authority,
    user: str,
    role: str,
    verified: bool,
    *,
    refresh: bool = False,
    deleted: bool = False,
) -> dict:
    """Issue one token and report what was stored."""
    if refresh:
        token = await authority.issue_refresh(user, role, verified, deleted=deleted or None)
    else:
        token = await authority.issue_access(user, role, verified, deleted=deleted or None)
    return {
        "kind": "refresh" if refresh else "access",
        "user": user,
        "token": token,
        "expires_at": authority.decode(token).expires_at,
    }


async def inspect_token(authority, token: str) -> dict:
    """Decode a token and compare it with the registry's view of its subject."""
    claims = authority.decode(token)
    current_access = await authority.current_access(claims.subject)
    current_refresh = await authority.current_refresh(claims.subject)
    return {
        "subject": claims.subject,
        "authority": claims.authority,
        "verified": claims.verified,
        "deleted": claims.is_deleted,
        "issued_at": claims.issued_at,
        "expires_at": claims.expires_at,
        "expired": authority.is_expired(token),
        "blacklisted": await authority.is_blacklisted(token),
        "current_access": current_access == token,
        "current_refresh": current_refresh == token,
    }


async def _run(args: argparse.Namespace) -> dict:
    # Import here to avoid loading config before env vars are set
    from tokenauthority.service.runtime import get_runtime

    runtime = get_runtime()
    try:
        if args.command == "issue":
            return await issue_token(
                runtime.authority,
                args.user,
                args.authority,
                args.verified,
                refresh=args.refresh,
                deleted=args.deleted,
            )
        if args.command == "revoke":
            await runtime.authority.revoke(args.token)
            return {"revoked": True, "blacklisted": await runtime.authority.is_blacklisted(args.token)}
        return await inspect_token(runtime.authority, args.token)
    finally:
        await runtime.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Operate on bearer tokens in the token registry",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    issue = sub.add_parser("issue", help="Issue an access or refresh token")
    issue.add_argument("--user", required=True, help="Username (token subject)")
    issue.add_argument("--authority", default="USER", help="Authority claim (default: USER)")
    issue.add_argument("--verified", action="store_true", help="Mark the account as verified")
    issue.add_argument("--refresh", action="store_true", help="Issue a refresh token")
    issue.add_argument(
        "--deleted",
        action="store_true",
        help="Mint for a soft-deleted account (short lifetime)",
    )

    revoke = sub.add_parser("revoke", help="Blacklist a token (logout)")
    revoke.add_argument("token")

    inspect = sub.add_parser("inspect", help="Show claims and registry state")
    inspect.add_argument("token")
    return parser


def main():
    args = build_parser().parse_args()
    try:
        result = asyncio.run(_run(args))
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(json.dumps(result, indent=2))


if __name__ == "__main__":
    main()
