from __future__ import annotations

import hmac
import uuid
from dataclasses import dataclass
from typing import Optional

from tokenauthority.config import Settings
from tokenauthority.logging import get_logger
from tokenauthority.service.claims import Claims, decode_claims, encode_claims
from tokenauthority.service.clock import Clock, SystemClock
from tokenauthority.service.errors import (
    TokenBlacklistedError,
    TokenError,
    TokenExpiredError,
    TokenNotCurrentError,
)
from tokenauthority.service.signer import HmacSigner
from tokenauthority.storage.registry import BLACKLIST_MARKER, Namespace, Registry

logger = get_logger(__name__)


@dataclass(frozen=True)
class TokenIdentity:
    subject: str
    authority: str
    verified: bool
    deleted: bool


def _same_token(stored: Optional[str], presented: str) -> bool:
    if stored is None:
        return False
    return hmac.compare_digest(stored.encode("utf-8"), presented.encode("utf-8"))


class TokenAuthority:
    """Issues, validates and revokes HS512 bearer tokens.

    Session state lives entirely in the registry: ``access:<user>`` and
    ``refresh:<user>`` hold the single current token per user and
    ``blacklist:<token>`` marks logged-out tokens until they expire. An access
    token is accepted only when its signature, subject, expiry, blacklist
    status and current-token entry all agree.
    """

    def __init__(
        self,
        registry: Registry,
        settings: Settings,
        *,
        clock: Optional[Clock] = None,
    ) -> None:
        self.registry = registry
        self.settings = settings
        self.clock = clock or SystemClock()
        self._signer = HmacSigner(settings.secret_bytes)
        self.logger = logger

    @property
    def access_ttl_ms(self) -> int:
        return self.settings.access_token_expiration

    @property
    def refresh_ttl_ms(self) -> int:
        return self.settings.refresh_token_expiration

    @property
    def deleted_account_ttl_ms(self) -> int:
        return self.settings.deleted_account_token_expiration

    # -------------------- issuance --------------------

    async def _issue(
        self,
        namespace: Namespace,
        user: str,
        authority: str,
        verified: bool,
        deleted: Optional[bool],
        ttl_ms: int,
    ) -> str:
        if deleted:
            ttl_ms = min(ttl_ms, self.deleted_account_ttl_ms)
        now_ms = self.clock.now_ms()
        claims = Claims(
            subject=user,
            issued_at=now_ms // 1000,
            expires_at=(now_ms + ttl_ms) // 1000,
            authority=authority,
            verified=bool(verified),
            deleted=deleted,
            token_id=uuid.uuid4().hex,
        )
        token = self._signer.sign(encode_claims(claims))
        # exp is truncated to whole seconds; the entry must not outlive it
        stored_ttl_ms = claims.expires_at_ms - now_ms
        await self.registry.put(namespace, user, token, stored_ttl_ms)
        self.logger.info(
            "token_issued",
            kind=namespace.value,
            user=user,
            deleted=bool(deleted),
            ttl_ms=stored_ttl_ms,
        )
        return token

    async def issue_access(
        self,
        user: str,
        authority: str,
        verified: bool,
        deleted: Optional[bool] = None,
    ) -> str:
        """Mint an access token and make it the user's current one.

        When ``deleted`` is true the token carries ``deleted=true`` and its
        lifetime is capped at the deleted-account ceiling.
        """
        return await self._issue(
            Namespace.ACCESS, user, authority, verified, deleted, self.access_ttl_ms
        )

    async def issue_access_for_deleted(self, user: str, authority: str, verified: bool) -> str:
        return await self.issue_access(user, authority, verified, deleted=True)

    async def issue_refresh(
        self,
        user: str,
        authority: str,
        verified: bool,
        deleted: Optional[bool] = None,
    ) -> str:
        return await self._issue(
            Namespace.REFRESH, user, authority, verified, deleted, self.refresh_ttl_ms
        )

    async def issue_refresh_for_deleted(self, user: str, authority: str, verified: bool) -> str:
        return await self.issue_refresh(user, authority, verified, deleted=True)

    # -------------------- decoding --------------------

    def decode(self, token: str) -> Claims:
        """Verify the signature and decode the claims. No expiry or registry checks."""
        return decode_claims(self._signer.verify(token))

    def extract(self, token: str) -> TokenIdentity:
        claims = self.decode(token)
        return TokenIdentity(
            subject=claims.subject,
            authority=claims.authority,
            verified=claims.verified,
            deleted=claims.is_deleted,
        )

    def _is_past_expiry(self, claims: Claims) -> bool:
        return self.clock.now_ms() >= claims.expires_at_ms

    def is_expired(self, token: str) -> bool:
        return self._is_past_expiry(self.decode(token))

    def is_deleted_account(self, token: str) -> bool:
        try:
            return self.decode(token).is_deleted
        except TokenError:
            return False

    # -------------------- validation --------------------

    async def _check_access(self, token: str, expected_user: str) -> Claims:
        claims = self.decode(token)
        if claims.subject != expected_user:
            raise TokenNotCurrentError("token subject does not match")
        if self._is_past_expiry(claims):
            raise TokenExpiredError("token has expired")
        if await self.registry.exists(Namespace.BLACKLIST, token):
            raise TokenBlacklistedError("token has been revoked")
        stored = await self.registry.get(Namespace.ACCESS, expected_user)
        if not _same_token(stored, token):
            raise TokenNotCurrentError("token is not the current access token")
        return claims

    async def validate_access(self, token: str, expected_user: str) -> bool:
        """Return whether ``token`` is the live access token of ``expected_user``.

        Every token failure yields ``False``; only ``RegistryUnavailableError``
        escapes, so the caller can tell an outage from a bad credential.
        """
        try:
            await self._check_access(token, expected_user)
        except TokenError as exc:
            self.logger.debug("access_token_rejected", user=expected_user, reason=exc.reason)
            return False
        return True

    async def authenticate(self, token: str) -> Optional[Claims]:
        """Resolve a presented access token to its claims, or ``None`` if it is not accepted."""
        try:
            subject = self.decode(token).subject
            return await self._check_access(token, subject)
        except TokenError as exc:
            self.logger.debug("access_token_rejected", reason=exc.reason)
            return None

    async def validate_refresh(self, user: str, presented_token: str) -> bool:
        # Expiry is left to the registry TTL: an expired entry reads as missing
        try:
            self.decode(presented_token)
        except TokenError as exc:
            self.logger.debug("refresh_token_rejected", user=user, reason=exc.reason)
            return False
        stored = await self.registry.get(Namespace.REFRESH, user)
        if not _same_token(stored, presented_token):
            self.logger.debug("refresh_token_rejected", user=user, reason="not_current")
            return False
        return True

    # -------------------- revocation --------------------

    async def revoke(self, token: str) -> None:
        """Blacklist ``token`` for the rest of its lifetime and drop the user's access entry.

        The refresh entry is left in place.
        """
        claims = self.decode(token)
        remaining_ms = claims.expires_at_ms - self.clock.now_ms()
        if remaining_ms <= 0:
            self.logger.info("revoke_skipped_expired_token", user=claims.subject)
            return
        await self.registry.put(Namespace.BLACKLIST, token, BLACKLIST_MARKER, remaining_ms)
        await self.registry.delete(Namespace.ACCESS, claims.subject)
        self.logger.info("token_revoked", user=claims.subject, ttl_ms=remaining_ms)

    async def is_blacklisted(self, token: str) -> bool:
        return await self.registry.exists(Namespace.BLACKLIST, token)

    # -------------------- lookups --------------------

    async def current_access(self, user: str) -> Optional[str]:
        return await self.registry.get(Namespace.ACCESS, user)

    async def current_refresh(self, user: str) -> Optional[str]:
        return await self.registry.get(Namespace.REFRESH, user)

    async def close(self) -> None:
        await self.registry.close()


__all__ = ["TokenAuthority", "TokenIdentity"]
