from __future__ import annotations

from typing import Awaitable, Callable, Optional

from fastapi import Depends, Header

from tokenauthority.service.claims import Claims
from tokenauthority.service.errors import AuthenticationError, ForbiddenError
from tokenauthority.service.runtime import get_runtime
from tokenauthority.service.tokens import TokenAuthority


def get_authority() -> TokenAuthority:
    return get_runtime().authority


def _extract_bearer(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    if not header.lower().startswith("bearer "):
        return None
    token = header.split(" ", 1)[1].strip()
    return token or None


async def require_access_claims(
    authorization: Optional[str] = Header(None),
    authority: TokenAuthority = Depends(get_authority),
) -> Claims:
    """Resolve the ``Authorization: Bearer`` access token to its claims or fail with 401."""
    token = _extract_bearer(authorization)
    if not token:
        raise AuthenticationError("missing bearer token")
    claims = await authority.authenticate(token)
    if claims is None:
        raise AuthenticationError("invalid or expired token")
    return claims


def require_authority(required: str) -> Callable[..., Awaitable[Claims]]:
    """Build a dependency that also requires the token's ``authority`` claim to equal ``required``."""

    async def _dependency(claims: Claims = Depends(require_access_claims)) -> Claims:
        if claims.authority != required:
            raise ForbiddenError(
                "insufficient authority",
                detail={"required": required},
            )
        return claims

    return _dependency


__all__ = ["get_authority", "require_access_claims", "require_authority"]
