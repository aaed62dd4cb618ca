"""Tests for source key construction."""

from social_proxy.social.schemas import NormalizedSocialInput, Platform, SocialFeedTokenPayload
from social_proxy.social.source import (
    ANONYMOUS_FINGERPRINT,
    build_source_key,
    credential_fingerprint,
    source_key_for_input,
    source_key_for_payload,
)


class TestCredentialFingerprint:
    def test_anonymous_without_credentials(self):
        assert credential_fingerprint(None, None) == ANONYMOUS_FINGERPRINT

    def test_anonymous_with_half_credentials(self):
        assert credential_fingerprint("user", None) == ANONYMOUS_FINGERPRINT
        assert credential_fingerprint("", "pass") == ANONYMOUS_FINGERPRINT

    def test_sixteen_hex_chars(self):
        fingerprint = credential_fingerprint("user", "pass")

        assert len(fingerprint) == 16
        int(fingerprint, 16)

    def test_does_not_contain_credentials(self):
        fingerprint = credential_fingerprint("alice", "hunter2")
        assert "alice" not in fingerprint
        assert "hunter2" not in fingerprint


class TestBuildSourceKey:
    def test_anonymous_key(self):
        assert build_source_key(Platform.TWITTER, "jack") == "twitter:jack:anon"

    def test_lowercases_and_trims(self):
        assert build_source_key("Twitter", " Jack ") == "twitter:jack:anon"

    def test_deterministic(self):
        assert build_source_key(Platform.INSTAGRAM, "a", "u", "p") == build_source_key(
            Platform.INSTAGRAM, "a", "u", "p"
        )

    def test_credentials_change_key(self):
        anonymous = build_source_key(Platform.TWITTER, "jack")
        with_user = build_source_key(Platform.TWITTER, "jack", "u", "p")
        other_password = build_source_key(Platform.TWITTER, "jack", "u", "q")

        assert len({anonymous, with_user, other_password}) == 3

    def test_separator_prevents_collisions(self):
        """('ab', 'c') and ('a', 'bc') hash differently."""
        assert build_source_key(Platform.TWITTER, "jack", "ab", "c") != build_source_key(
            Platform.TWITTER, "jack", "a", "bc"
        )


def test_input_and_payload_keys_agree():
    social_input = NormalizedSocialInput(
        platform=Platform.TWITTER,
        handle="jack",
        login_username="u",
        login_password="p",
    )
    payload = SocialFeedTokenPayload(
        platform=Platform.TWITTER,
        handle="jack",
        bridge_feed_url="http://bridge.test/?bridge=TwitterBridge",
        bridge_login_username="u",
        bridge_login_password="p",
    )

    assert source_key_for_input(social_input) == source_key_for_payload(payload)
