import pytest

from conftest import REDUCED_TTL_MS, T0
from scripts.issue_token import build_parser, inspect_token, issue_token


async def test_issue_access(authority):
    result = await issue_token(authority, "alice", "USER", True)
    assert result["kind"] == "access"
    assert result["user"] == "alice"
    assert result["expires_at"] == (T0 + authority.access_ttl_ms) // 1000
    assert await authority.current_access("alice") == result["token"]


async def test_issue_refresh_for_deleted(authority):
    result = await issue_token(authority, "dan", "USER", False, refresh=True, deleted=True)
    assert result["kind"] == "refresh"
    assert result["expires_at"] == (T0 + REDUCED_TTL_MS) // 1000
    assert authority.is_deleted_account(result["token"]) is True


async def test_issue_without_deleted_flag_omits_claim(authority):
    result = await issue_token(authority, "alice", "USER", True)
    assert authority.decode(result["token"]).deleted is None


async def test_inspect_reports_registry_state(authority):
    token = (await issue_token(authority, "bob", "ADMIN", True))["token"]
    report = await inspect_token(authority, token)
    assert report["subject"] == "bob"
    assert report["authority"] == "ADMIN"
    assert report["current_access"] is True
    assert report["current_refresh"] is False
    assert report["blacklisted"] is False
    assert report["expired"] is False

    await authority.revoke(token)
    report = await inspect_token(authority, token)
    assert report["blacklisted"] is True
    assert report["current_access"] is False


def test_parser():
    args = build_parser().parse_args(["issue", "--user", "dan", "--refresh", "--deleted"])
    assert args.command == "issue"
    assert args.authority == "USER"
    assert args.refresh is True
    assert args.deleted is True
    assert args.verified is False

    assert build_parser().parse_args(["revoke", "a.b.c"]).token == "a.b.c"

    with pytest.raises(SystemExit):
        build_parser().parse_args(["issue"])
