"""Tests for callback token and timestamp checks."""

from datetime import datetime, timedelta, timezone

import pytest

from storefront.application.webhook_security import CallbackTokenVerifier, parse_timestamp
from storefront.domain.exceptions import InvalidCallbackTokenError, StaleWebhookError

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class TestParseTimestamp:
    def test_zulu_suffix(self) -> None:
        assert parse_timestamp("2026-10-19T12:00:00.000Z") == NOW

    def test_naive_is_utc(self) -> None:
        assert parse_timestamp("2026-10-19T12:00:00") == NOW

    @pytest.mark.parametrize("value", [None, "", "yesterday", 1729339200])
    def test_unparseable(self, value) -> None:
        assert parse_timestamp(value) is None


class TestVerifyToken:
    """Tests for the x-callback-token check."""

    def test_matching_token(self) -> None:
        CallbackTokenVerifier("secret").verify_token("secret", source="test")

    @pytest.mark.parametrize("incoming", [None, "", "wrong"])
    def test_mismatch(self, incoming) -> None:
        with pytest.raises(InvalidCallbackTokenError):
            CallbackTokenVerifier("secret").verify_token(incoming, source="test")

    def test_unconfigured_is_skipped(self) -> None:
        verifier = CallbackTokenVerifier(None)
        assert not verifier.enabled
        verifier.verify_token(None, source="test")

    def test_unconfigured_but_required(self) -> None:
        """Mandatory checks fail closed when no token is configured."""
        with pytest.raises(InvalidCallbackTokenError):
            CallbackTokenVerifier("").verify_token("anything", source="test", required=True)


class TestVerifyFreshness:
    """Tests for the created timestamp check."""

    def test_within_tolerance(self) -> None:
        created = (NOW - timedelta(seconds=299)).isoformat()
        CallbackTokenVerifier("secret").verify_freshness(created, source="test", now=NOW)

    @pytest.mark.parametrize("offset", [timedelta(seconds=-301), timedelta(seconds=301)])
    def test_outside_tolerance(self, offset: timedelta) -> None:
        """Timestamps too old or too far in the future are both rejected."""
        created = (NOW + offset).isoformat()
        with pytest.raises(StaleWebhookError):
            CallbackTokenVerifier("secret").verify_freshness(created, source="test", now=NOW)

    def test_missing_when_optional(self) -> None:
        CallbackTokenVerifier("secret").verify_freshness(None, source="test", now=NOW)

    def test_missing_when_required(self) -> None:
        with pytest.raises(StaleWebhookError):
            CallbackTokenVerifier("secret").verify_freshness(None, source="test", required=True, now=NOW)

    def test_malformed(self) -> None:
        with pytest.raises(StaleWebhookError):
            CallbackTokenVerifier("secret").verify_freshness("not a date", source="test", now=NOW)

    def test_custom_tolerance(self) -> None:
        verifier = CallbackTokenVerifier("secret", tolerance_seconds=10)
        with pytest.raises(StaleWebhookError):
            verifier.verify_freshness((NOW - timedelta(seconds=11)).isoformat(), source="test", now=NOW)
