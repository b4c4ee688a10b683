from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional

from tokenauthority.service.errors import MalformedClaimsError


@dataclass(frozen=True)
class Claims:
    """Claim set carried inside a token.

    Timestamps are epoch seconds, as on the wire. ``deleted`` is ``None`` when
    the token was minted without the soft-deletion claim. ``token_id`` (``jti``)
    keeps two tokens minted in the same second for the same user distinct.
    """

    subject: str
    issued_at: int
    expires_at: int
    authority: str
    verified: bool
    deleted: Optional[bool] = None
    token_id: Optional[str] = None

    @property
    def is_deleted(self) -> bool:
        return bool(self.deleted)

    @property
    def expires_at_ms(self) -> int:
        return self.expires_at * 1000

    @property
    def issued_at_ms(self) -> int:
        return self.issued_at * 1000


def encode_claims(claims: Claims) -> bytes:
    payload: dict[str, Any] = {
        "sub": claims.subject,
        "iat": claims.issued_at,
        "exp": claims.expires_at,
        "authority": claims.authority,
        "verified": claims.verified,
    }
    if claims.deleted is not None:
        payload["deleted"] = claims.deleted
    if claims.token_id is not None:
        payload["jti"] = claims.token_id
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def _require(payload: dict, name: str, kind: type) -> Any:
    value = payload.get(name)
    # bool is an int subclass; timestamps must be real integers
    if value is None or not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise MalformedClaimsError(f"claim '{name}' is missing or not {kind.__name__}")
    return value


def decode_claims(raw: bytes) -> Claims:
    try:
        payload = json.loads(raw)
    except (ValueError, RecursionError) as exc:
        raise MalformedClaimsError("token payload is not JSON") from exc
    if not isinstance(payload, dict):
        raise MalformedClaimsError("token payload is not a JSON object")

    deleted = payload.get("deleted")
    if deleted is not None and not isinstance(deleted, bool):
        raise MalformedClaimsError("claim 'deleted' is not bool")
    token_id = payload.get("jti")
    if token_id is not None and not isinstance(token_id, str):
        raise MalformedClaimsError("claim 'jti' is not str")

    return Claims(
        subject=_require(payload, "sub", str),
        issued_at=_require(payload, "iat", int),
        expires_at=_require(payload, "exp", int),
        authority=_require(payload, "authority", str),
        verified=_require(payload, "verified", bool),
        deleted=deleted,
        token_id=token_id,
    )


__all__ = ["Claims", "encode_claims", "decode_claims"]
