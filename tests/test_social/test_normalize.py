"""Tests for social input normalization."""

import pytest

from social_proxy.social.errors import InvalidInputError
from social_proxy.social.normalize import (
    normalize_handle,
    normalize_platform,
    normalize_social_input,
)
from social_proxy.social.schemas import Platform


class TestNormalizePlatform:
    """Tests for normalize_platform()."""

    @pytest.mark.parametrize("value", ["twitter", "Twitter", "  TWITTER "])
    def test_case_insensitive(self, value):
        assert normalize_platform(value) == Platform.TWITTER

    def test_instagram(self):
        assert normalize_platform("instagram") == Platform.INSTAGRAM

    @pytest.mark.parametrize("value", [None, "", "   ", 42])
    def test_missing_platform(self, value):
        with pytest.raises(InvalidInputError, match="platform is required"):
            normalize_platform(value)

    def test_unsupported_platform(self):
        with pytest.raises(InvalidInputError, match="Unsupported social platform"):
            normalize_platform("mastodon")


class TestNormalizeHandle:
    """Tests for normalize_handle()."""

    def test_at_prefix_and_case(self):
        """'@My.User' on Instagram becomes 'my.user'."""
        assert normalize_handle(Platform.INSTAGRAM, "@My.User") == "my.user"

    def test_twitter_profile_url(self):
        assert normalize_handle(Platform.TWITTER, "https://x.com/jack") == "jack"

    def test_twitter_legacy_domain_with_trailing_path(self):
        assert normalize_handle(Platform.TWITTER, "https://mobile.twitter.com/Jack/status/20") == "jack"

    def test_protocol_relative_url(self):
        assert normalize_handle(Platform.INSTAGRAM, "//instagram.com/someone/") == "someone"

    def test_percent_encoded_segment(self):
        assert normalize_handle(Platform.INSTAGRAM, "https://www.instagram.com/%40some_one/") == "some_one"

    def test_reserved_twitter_segment(self):
        """'https://twitter.com/settings' is not a profile."""
        with pytest.raises(InvalidInputError, match="Invalid twitter handle"):
            normalize_handle(Platform.TWITTER, "https://twitter.com/settings")

    def test_reserved_instagram_segment(self):
        with pytest.raises(InvalidInputError):
            normalize_handle(Platform.INSTAGRAM, "https://instagram.com/p/abc123/")

    def test_foreign_host(self):
        with pytest.raises(InvalidInputError):
            normalize_handle(Platform.TWITTER, "https://instagram.com/jack")

    def test_url_without_path(self):
        with pytest.raises(InvalidInputError):
            normalize_handle(Platform.TWITTER, "https://x.com/")

    def test_twitter_rejects_dots(self):
        with pytest.raises(InvalidInputError):
            normalize_handle(Platform.TWITTER, "my.user")

    def test_twitter_length_limit(self):
        assert normalize_handle(Platform.TWITTER, "a" * 15) == "a" * 15
        with pytest.raises(InvalidInputError):
            normalize_handle(Platform.TWITTER, "a" * 16)

    def test_instagram_length_limit(self):
        assert normalize_handle(Platform.INSTAGRAM, "a" * 30) == "a" * 30
        with pytest.raises(InvalidInputError):
            normalize_handle(Platform.INSTAGRAM, "a" * 31)

    @pytest.mark.parametrize("value", [None, "", "   ", 7])
    def test_missing_handle(self, value):
        with pytest.raises(InvalidInputError, match="handle is required"):
            normalize_handle(Platform.TWITTER, value)

    def test_bare_at_sign(self):
        with pytest.raises(InvalidInputError):
            normalize_handle(Platform.TWITTER, "@")


class TestNormalizeSocialInput:
    """Tests for normalize_social_input()."""

    def test_without_credentials(self):
        result = normalize_social_input({"platform": "twitter", "handle": "@Jack"})

        assert result.platform == Platform.TWITTER
        assert result.handle == "jack"
        assert result.login_username is None
        assert result.login_password is None
        assert not result.has_credentials

    def test_with_credentials_trimmed(self):
        result = normalize_social_input({
            "platform": "instagram",
            "handle": "someone",
            "login_username": "  user ",
            "login_password": " pass ",
        })

        assert result.login_username == "user"
        assert result.login_password == "pass"
        assert result.has_credentials

    def test_blank_credentials_are_absent(self):
        result = normalize_social_input({
            "platform": "twitter",
            "handle": "jack",
            "login_username": "   ",
            "login_password": "",
        })
        assert not result.has_credentials

    @pytest.mark.parametrize(
        "credentials",
        [
            {"login_username": "user"},
            {"login_password": "pass"},
            {"login_username": "user", "login_password": "  "},
        ],
    )
    def test_half_credentials_rejected(self, credentials):
        with pytest.raises(InvalidInputError, match="both"):
            normalize_social_input({"platform": "twitter", "handle": "jack", **credentials})

    def test_non_string_credentials_ignored(self):
        result = normalize_social_input({
            "platform": "twitter",
            "handle": "jack",
            "login_username": 123,
            "login_password": None,
        })
        assert not result.has_credentials
