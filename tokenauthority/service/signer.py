from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json

from tokenauthority.service.errors import InvalidSignatureError, MalformedEnvelopeError

ALGORITHM = "HS512"

_HEADER = {"alg": ALGORITHM, "typ": "JWT"}


def encode_segment(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def decode_segment(segment: str) -> bytes:
    padding = "=" * ((4 - len(segment) % 4) % 4)
    return base64.urlsafe_b64decode(segment + padding)


class HmacSigner:
    """HS512 signer for compact ``<header>.<payload>.<mac>`` envelopes.

    The secret is fixed for the lifetime of the signer; callers that need a
    different key build a different signer.
    """

    def __init__(self, secret: bytes) -> None:
        if not secret:
            raise ValueError("signing secret must not be empty")
        self._secret = bytes(secret)
        self._header_enc = encode_segment(
            json.dumps(_HEADER, separators=(",", ":")).encode()
        )

    def _mac(self, signing_input: str) -> str:
        digest = hmac.new(self._secret, signing_input.encode("ascii"), hashlib.sha512).digest()
        return encode_segment(digest)

    def sign(self, payload: bytes) -> str:
        signing_input = f"{self._header_enc}.{encode_segment(payload)}"
        return f"{signing_input}.{self._mac(signing_input)}"

    def verify(self, envelope: str) -> bytes:
        """Return the payload bytes of ``envelope`` if its MAC checks out.

        Raises:
            MalformedEnvelopeError: not three base64url parts or header is not JSON
            InvalidSignatureError: header names another algorithm or the MAC differs
        """
        if not isinstance(envelope, str):
            raise MalformedEnvelopeError("token must be a string")
        parts = envelope.split(".")
        if len(parts) != 3 or not all(parts):
            raise MalformedEnvelopeError("token must have three non-empty parts")
        header_b64, payload_b64, mac_b64 = parts

        try:
            header = json.loads(decode_segment(header_b64))
        except (ValueError, binascii.Error, RecursionError) as exc:
            raise MalformedEnvelopeError("token header is not valid JSON") from exc
        if not isinstance(header, dict):
            raise MalformedEnvelopeError("token header is not a JSON object")
        # Algorithm confusion guard: only HS512 is ever accepted
        if header.get("alg") != ALGORITHM:
            raise InvalidSignatureError("unsupported token algorithm")

        try:
            expected = self._mac(f"{header_b64}.{payload_b64}")
        except UnicodeEncodeError as exc:
            raise MalformedEnvelopeError("token contains non-ASCII characters") from exc
        if not hmac.compare_digest(expected.encode("ascii"), mac_b64.encode("utf-8")):
            raise InvalidSignatureError("token signature mismatch")

        try:
            return decode_segment(payload_b64)
        except (ValueError, binascii.Error) as exc:
            raise MalformedEnvelopeError("token payload is not base64url") from exc


__all__ = ["ALGORITHM", "HmacSigner", "encode_segment", "decode_segment"]
