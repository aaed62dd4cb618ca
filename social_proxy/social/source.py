"""Stable source keys joining rate limits, caches and request coalescing."""

import hashlib

from social_proxy.social.schemas import NormalizedSocialInput, Platform, SocialFeedTokenPayload

ANONYMOUS_FINGERPRINT = "anon"


def credential_fingerprint(login_username: str | None, login_password: str | None) -> str:
    """Truncated one-way hash of a credential pair, or ``anon``."""
    if not login_username or not login_password:
        return ANONYMOUS_FINGERPRINT
    digest = hashlib.sha256(f"{login_username}\n{login_password}".encode("utf-8"))
    return digest.hexdigest()[:16]


def build_source_key(
    platform: Platform | str,
    handle: str,
    login_username: str | None = None,
    login_password: str | None = None,
) -> str:
    platform_str = platform.value if isinstance(platform, Platform) else platform
    return ":".join([
        platform_str.strip().lower(),
        handle.strip().lower(),
        credential_fingerprint(login_username, login_password),
    ])


def source_key_for_input(social_input: NormalizedSocialInput) -> str:
    return build_source_key(
        social_input.platform,
        social_input.handle,
        social_input.login_username,
        social_input.login_password,
    )


def source_key_for_payload(payload: SocialFeedTokenPayload) -> str:
    return build_source_key(
        payload.platform,
        payload.handle,
        payload.bridge_login_username,
        payload.bridge_login_password,
    )
