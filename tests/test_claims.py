"""Tests for the claim set codec."""

import json

import pytest

from tokenauthority.service.claims import Claims, decode_claims, encode_claims
from tokenauthority.service.errors import MalformedClaimsError


def _payload(**overrides):
    base = {
        "sub": "alice",
        "iat": 1_700_000_000,
        "exp": 1_700_003_600,
        "authority": "USER",
        "verified": True,
    }
    base.update(overrides)
    return json.dumps({k: v for k, v in base.items() if v is not ...}).encode()


class TestEncode:
    def test_wire_field_names(self):
        claims = Claims("alice", 1, 2, "USER", True)
        assert json.loads(encode_claims(claims)) == {
            "sub": "alice",
            "iat": 1,
            "exp": 2,
            "authority": "USER",
            "verified": True,
        }

    def test_deleted_only_written_when_set(self):
        assert "deleted" not in json.loads(encode_claims(Claims("a", 1, 2, "USER", False)))
        assert json.loads(encode_claims(Claims("a", 1, 2, "USER", False, deleted=True)))["deleted"] is True
        assert json.loads(encode_claims(Claims("a", 1, 2, "USER", False, deleted=False)))["deleted"] is False

    def test_compact_utf8_json(self):
        raw = encode_claims(Claims("jürgen", 1, 2, "USER", True))
        assert b" " not in raw
        assert decode_claims(raw).subject == "jürgen"


class TestDecode:
    def test_decodes_all_fields(self):
        claims = decode_claims(_payload(deleted=True))
        assert claims == Claims("alice", 1_700_000_000, 1_700_003_600, "USER", True, True)
        assert claims.expires_at_ms == 1_700_003_600_000
        assert claims.issued_at_ms == 1_700_000_000_000

    def test_missing_deleted_reads_as_not_deleted(self):
        claims = decode_claims(_payload())
        assert claims.deleted is None
        assert claims.is_deleted is False

    def test_unknown_claims_ignored(self):
        claims = decode_claims(_payload(nbf=5, extra={"x": 1}))
        assert claims.subject == "alice"

    def test_token_id_round_trips(self):
        raw = encode_claims(Claims("alice", 1, 2, "USER", True, token_id="abc123"))
        assert json.loads(raw)["jti"] == "abc123"
        assert decode_claims(raw).token_id == "abc123"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"sub": ...},
            {"sub": 42},
            {"iat": "1700000000"},
            {"exp": ...},
            {"exp": True},
            {"exp": 1.5},
            {"authority": None},
            {"verified": "true"},
            {"verified": 1},
            {"deleted": "yes"},
            {"jti": 7},
        ],
    )
    def test_type_mismatches_rejected(self, overrides):
        with pytest.raises(MalformedClaimsError):
            decode_claims(_payload(**overrides))

    def test_deeply_nested_payload_rejected(self):
        with pytest.raises(MalformedClaimsError):
            decode_claims(b"[" * 100_000 + b"]" * 100_000)

    @pytest.mark.parametrize("raw", [b"not json", b"[1, 2]", b"\xff\xfe", b'"alice"'])
    def test_non_object_payload_rejected(self, raw):
        with pytest.raises(MalformedClaimsError):
            decode_claims(raw)
