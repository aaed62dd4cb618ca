"""
Encrypted routing tokens for public proxy URLs.

Token format::

    v1.<nonce>.<ciphertext>.<tag>

Each segment is unpadded base64url. The payload is JSON encrypted with
AES-256-GCM under ``sha256(secret)``; the GCM tag makes any modification of
the nonce, ciphertext or tag fail decryption.
"""

import base64
import binascii
import hashlib
import logging
import os
import re

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from pydantic import ValidationError

from social_proxy.social.errors import ConfigurationError, InvalidTokenError
from social_proxy.social.schemas import SocialFeedTokenPayload

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "v1"
NONCE_LENGTH = 12
TAG_LENGTH = 16

_B64URL_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(segment: str) -> bytes:
    if not _B64URL_RE.match(segment):
        raise InvalidTokenError("Malformed token segment")
    padded = segment + "=" * (-len(segment) % 4)
    try:
        decoded = base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError):
        raise InvalidTokenError("Malformed token segment") from None
    # Reject non-canonical encodings (stray bits in the final character)
    if _b64url_encode(decoded) != segment:
        raise InvalidTokenError("Malformed token segment")
    return decoded


class SocialFeedTokenCodec:
    """
    Encode and decode SocialFeedTokenPayload objects.

    The key is derived once at construction. Decoding fails closed: any
    structural, cryptographic or schema problem raises InvalidTokenError.

    Usage:
        codec = SocialFeedTokenCodec(secret="...")
        token = codec.encode(payload)
        assert codec.decode(token) == payload
    """

    def __init__(self, secret: str | None):
        secret = (secret or "").strip()
        if not secret:
            raise ConfigurationError("SOCIAL_TOKEN_SECRET is not set")
        self._aead = AESGCM(hashlib.sha256(secret.encode("utf-8")).digest())

    def encode(self, payload: SocialFeedTokenPayload) -> str:
        nonce = os.urandom(NONCE_LENGTH)
        plaintext = payload.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")
        sealed = self._aead.encrypt(nonce, plaintext, None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return ".".join([
            TOKEN_PREFIX,
            _b64url_encode(nonce),
            _b64url_encode(ciphertext),
            _b64url_encode(tag),
        ])

    def decode(self, token: str) -> SocialFeedTokenPayload:
        parts = token.split(".") if isinstance(token, str) else []
        if len(parts) != 4 or parts[0] != TOKEN_PREFIX or not all(parts[1:]):
            raise InvalidTokenError()

        nonce = _b64url_decode(parts[1])
        ciphertext = _b64url_decode(parts[2])
        tag = _b64url_decode(parts[3])
        if len(nonce) != NONCE_LENGTH or len(tag) != TAG_LENGTH:
            raise InvalidTokenError()

        try:
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag:
            raise InvalidTokenError("Token authentication failed") from None

        try:
            return SocialFeedTokenPayload.model_validate_json(plaintext)
        except ValidationError as e:
            logger.debug("Token payload failed validation: %d errors", e.error_count())
            raise InvalidTokenError("Invalid social feed token payload") from None
