"""Tests for the expiration policy engine."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from sqlcache.core.exceptions import InvalidExpirationError, MissingExpirationPolicyError
from sqlcache.core.expiration import (
    ABSOLUTE_IN_PAST_MESSAGE,
    CACHE_POLICY,
    SESSION_POLICY,
    CacheEntryOptions,
    ExpirationPolicy,
    get_policy,
)

NOW = datetime(2013, 1, 1, 1, 0, 0, tzinfo=timezone.utc)


class TestComputeExpiry:

    def test_sliding_only_doubles_window(self):
        info = CACHE_POLICY.compute_expiry(NOW, sliding=timedelta(seconds=10))

        assert info.expires_at_time == NOW + timedelta(seconds=20)
        assert info.sliding_expiration == timedelta(seconds=10)
        assert info.absolute_expiration is None

    def test_absolute_only_is_stored_as_is(self):
        absolute = NOW + timedelta(hours=1)
        info = CACHE_POLICY.compute_expiry(NOW, absolute=absolute)

        assert info.expires_at_time == absolute
        assert info.sliding_expiration is None
        assert info.absolute_expiration == absolute

    def test_relative_absolute_is_derived_from_now(self):
        info = CACHE_POLICY.compute_expiry(NOW, absolute_relative_to_now=timedelta(minutes=15))

        assert info.absolute_expiration == NOW + timedelta(minutes=15)
        assert info.expires_at_time == NOW + timedelta(minutes=15)

    def test_relative_absolute_wins_over_fixed(self):
        info = CACHE_POLICY.compute_expiry(
            NOW,
            absolute=NOW + timedelta(hours=5),
            absolute_relative_to_now=timedelta(minutes=1),
        )

        assert info.absolute_expiration == NOW + timedelta(minutes=1)

    def test_sliding_clamped_to_absolute(self):
        absolute = NOW + timedelta(seconds=15)
        info = CACHE_POLICY.compute_expiry(NOW, sliding=timedelta(seconds=10), absolute=absolute)

        assert info.expires_at_time == absolute

    def test_sliding_below_absolute_is_not_clamped(self):
        info = CACHE_POLICY.compute_expiry(
            NOW, sliding=timedelta(minutes=5), absolute=NOW + timedelta(minutes=30)
        )

        assert info.expires_at_time == NOW + timedelta(minutes=10)

    @pytest.mark.parametrize("offset", [timedelta(0), timedelta(seconds=-1)])
    def test_absolute_not_in_future_is_rejected(self, offset):
        with pytest.raises(InvalidExpirationError) as exc_info:
            CACHE_POLICY.compute_expiry(NOW, absolute=NOW + offset)

        assert str(exc_info.value) == ABSOLUTE_IN_PAST_MESSAGE

    def test_non_positive_relative_absolute_is_rejected(self):
        with pytest.raises(InvalidExpirationError):
            CACHE_POLICY.compute_expiry(NOW, absolute_relative_to_now=timedelta(0))

    def test_absolute_check_precedes_missing_check(self):
        with pytest.raises(InvalidExpirationError):
            CACHE_POLICY.compute_expiry(NOW, absolute=NOW - timedelta(days=1))

    def test_missing_policy(self):
        with pytest.raises(MissingExpirationPolicyError) as exc_info:
            CACHE_POLICY.compute_expiry(NOW)

        assert "Either absolute or sliding expiration" in str(exc_info.value)

    def test_non_positive_sliding_is_rejected(self):
        with pytest.raises(InvalidExpirationError):
            CACHE_POLICY.compute_expiry(NOW, sliding=timedelta(0))

    def test_errors_are_value_errors(self):
        with pytest.raises(ValueError):
            CACHE_POLICY.compute_expiry(NOW)


class TestPolicyVariants:

    def test_session_policy_triples_window(self):
        info = SESSION_POLICY.compute_expiry(NOW, sliding=timedelta(seconds=10))

        assert info.expires_at_time == NOW + timedelta(seconds=30)

    def test_session_policy_rejects_absolute(self):
        with pytest.raises(InvalidExpirationError, match="session"):
            SESSION_POLICY.compute_expiry(
                NOW, sliding=timedelta(seconds=10), absolute_relative_to_now=timedelta(hours=1)
            )

    def test_custom_multiplier(self):
        policy = ExpirationPolicy(name="lazy", multiplier=4)

        assert policy.expiration_time(NOW, timedelta(seconds=5), None) == NOW + timedelta(seconds=20)

    def test_get_policy_by_name(self):
        assert get_policy("cache") is CACHE_POLICY
        assert get_policy("session") is SESSION_POLICY

        with pytest.raises(ValueError):
            get_policy("lru")


class TestEntryOptions:

    def test_from_options(self):
        options = CacheEntryOptions(sliding_expiration=timedelta(minutes=1))

        info = CACHE_POLICY.from_options(NOW, options)

        assert info.expires_at_time == NOW + timedelta(minutes=2)

    def test_naive_absolute_rejected(self):
        with pytest.raises(ValidationError):
            CacheEntryOptions(absolute_expiration=datetime(2030, 1, 1))

    def test_options_are_frozen(self):
        options = CacheEntryOptions(sliding_expiration=timedelta(minutes=1))

        with pytest.raises(ValidationError):
            options.sliding_expiration = timedelta(minutes=2)
