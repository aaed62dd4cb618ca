"""
Validation and canonicalization of user-submitted social profiles.

Accepts a bare handle (``@My.User``) or a profile URL
(``https://x.com/jack``, ``//instagram.com/someone/``) and produces a
NormalizedSocialInput with a lowercase handle.
"""

import re
from typing import Any, Mapping
from urllib.parse import unquote, urlsplit

from social_proxy.social.errors import InvalidInputError
from social_proxy.social.schemas import NormalizedSocialInput, Platform

INSTAGRAM_HOSTS = frozenset({
    "instagram.com",
    "www.instagram.com",
    "m.instagram.com",
})

TWITTER_HOSTS = frozenset({
    "x.com",
    "www.x.com",
    "mobile.x.com",
    "twitter.com",
    "www.twitter.com",
    "mobile.twitter.com",
})

RESERVED_INSTAGRAM_SEGMENTS = frozenset({
    "accounts",
    "about",
    "developer",
    "explore",
    "legal",
    "p",
    "reel",
    "reels",
    "stories",
    "tv",
})

RESERVED_TWITTER_SEGMENTS = frozenset({
    "compose",
    "explore",
    "hashtag",
    "home",
    "i",
    "intent",
    "login",
    "messages",
    "notifications",
    "search",
    "settings",
    "share",
    "signup",
})

_HANDLE_RULES: dict[Platform, tuple[re.Pattern[str], frozenset[str], frozenset[str]]] = {
    Platform.INSTAGRAM: (
        re.compile(r"^[a-zA-Z0-9._]{1,30}$"),
        INSTAGRAM_HOSTS,
        RESERVED_INSTAGRAM_SEGMENTS,
    ),
    Platform.TWITTER: (
        re.compile(r"^[a-zA-Z0-9_]{1,15}$"),
        TWITTER_HOSTS,
        RESERVED_TWITTER_SEGMENTS,
    ),
}

_URL_RE = re.compile(r"^https?://", re.IGNORECASE)


def _as_non_empty_string(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def _parse_maybe_url(value: str):
    with_scheme = f"https:{value}" if value.startswith("//") else value
    if not _URL_RE.match(with_scheme):
        return None
    try:
        parsed = urlsplit(with_scheme)
        # Accessing .port validates the netloc
        parsed.port
    except ValueError:
        return None
    return parsed


def normalize_platform(value: Any) -> Platform:
    """Parse a platform name, case-insensitively."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError("platform is required")
    try:
        return Platform(value.strip().lower())
    except ValueError:
        raise InvalidInputError("Unsupported social platform") from None


def _extract_handle(platform: Platform, raw_value: str) -> str | None:
    pattern, hosts, reserved = _HANDLE_RULES[platform]
    candidate = raw_value

    parsed = _parse_maybe_url(raw_value)
    if parsed is not None:
        host = (parsed.hostname or "").lower()
        if host not in hosts:
            return None
        segments = [s for s in parsed.path.split("/") if s]
        if not segments:
            return None
        first = segments[0]
        if first.lower() in reserved:
            return None
        candidate = unquote(first)

    candidate = candidate.lstrip("@").strip()
    if not pattern.match(candidate):
        return None
    return candidate.lower()


def normalize_handle(platform: Platform, value: Any) -> str:
    """Validate a handle (or profile URL) for the given platform."""
    raw_value = _as_non_empty_string(value)
    if raw_value is None:
        raise InvalidInputError("handle is required")

    handle = _extract_handle(platform, raw_value)
    if handle is None:
        raise InvalidInputError(f"Invalid {platform.value} handle")
    return handle


def _normalize_optional_credential(value: Any) -> str | None:
    return _as_non_empty_string(value)


def normalize_social_input(raw: Mapping[str, Any]) -> NormalizedSocialInput:
    """
    Normalize a raw creation payload.

    Args:
        raw: Mapping with ``platform``, ``handle`` and optional
            ``login_username`` / ``login_password`` keys of any type.

    Returns:
        NormalizedSocialInput with a lowercase, validated handle.

    Raises:
        InvalidInputError: If any field is missing or malformed.
    """
    platform = normalize_platform(raw.get("platform"))
    handle = normalize_handle(platform, raw.get("handle"))
    login_username = _normalize_optional_credential(raw.get("login_username"))
    login_password = _normalize_optional_credential(raw.get("login_password"))

    if (login_username is None) != (login_password is None):
        raise InvalidInputError(
            "Provide both login username and login password, or leave both empty"
        )

    return NormalizedSocialInput(
        platform=platform,
        handle=handle,
        login_username=login_username,
        login_password=login_password,
    )
