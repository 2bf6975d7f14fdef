"""Expiration policy: turns caller options into the stored expiry of a row.

Sliding expiration is the *minimum* time to live of an item. The stored
``expires_at_time`` is pushed out by ``multiplier * sliding`` so that reads only
have to persist a new expiry once less than one sliding window remains.

Example with the cache policy (multiplier 2) and a 30 minute sliding window:
a new item expires 60 minutes from now. Reads during the first 30 minutes touch
nothing; a read between minute 30 and 60 pushes the expiry out by another 60
minutes from that read.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional
from pydantic import BaseModel, field_validator

from sqlcache.core.exceptions import InvalidExpirationError, MissingExpirationPolicyError

ABSOLUTE_IN_PAST_MESSAGE = "The absolute expiration value must be in the future."


class CacheEntryOptions(BaseModel):
    """Per-entry expiration inputs supplied to ``set``."""

    model_config = {"frozen": True}

    sliding_expiration: Optional[timedelta] = None
    absolute_expiration: Optional[datetime] = None
    absolute_expiration_relative_to_now: Optional[timedelta] = None

    @field_validator("absolute_expiration")
    @classmethod
    def require_offset(cls, v):
        if v is not None and v.tzinfo is None:
            raise ValueError("absolute_expiration must be offset-aware")
        return v


@dataclass(frozen=True)
class ExpirationInfo:
    """What gets persisted for one row."""
    expires_at_time: datetime
    sliding_expiration: Optional[timedelta] = None
    absolute_expiration: Optional[datetime] = None


@dataclass(frozen=True)
class ExpirationPolicy:
    """Expiry computation parameterized by multiplier and absolute-cap support."""
    name: str
    multiplier: int = 2
    supports_absolute_cap: bool = True

    def compute_expiry(
        self,
        now: datetime,
        sliding: Optional[timedelta] = None,
        absolute: Optional[datetime] = None,
        absolute_relative_to_now: Optional[timedelta] = None,
    ) -> ExpirationInfo:
        """Validate the inputs and compute the row's expiry.

        A relative absolute expiration takes precedence over a fixed one.

        Raises:
            InvalidExpirationError: absolute bound not in the future, sliding
                not positive, or absolute given to a policy without cap support.
            MissingExpirationPolicyError: neither sliding nor absolute given.
        """
        if absolute_relative_to_now is not None:
            absolute = now + absolute_relative_to_now

        if absolute is not None:
            if not self.supports_absolute_cap:
                raise InvalidExpirationError(
                    f"Absolute expiration is not supported by the '{self.name}' expiration policy."
                )
            if absolute <= now:
                raise InvalidExpirationError(ABSOLUTE_IN_PAST_MESSAGE)

        if sliding is not None and sliding <= timedelta(0):
            raise InvalidExpirationError("The sliding expiration value must be positive.")

        return ExpirationInfo(
            expires_at_time=self.expiration_time(now, sliding, absolute),
            sliding_expiration=sliding,
            absolute_expiration=absolute,
        )

    def expiration_time(
        self,
        now: datetime,
        sliding: Optional[timedelta],
        absolute: Optional[datetime],
    ) -> datetime:
        """Expiry for the given stored inputs as of ``now``, clamped to the absolute bound."""
        if sliding is None and absolute is None:
            raise MissingExpirationPolicyError()

        if sliding is not None:
            candidate = now + sliding * self.multiplier
            if absolute is not None and candidate > absolute:
                return absolute
            return candidate

        return absolute

    def from_options(self, now: datetime, options: CacheEntryOptions) -> ExpirationInfo:
        return self.compute_expiry(
            now,
            sliding=options.sliding_expiration,
            absolute=options.absolute_expiration,
            absolute_relative_to_now=options.absolute_expiration_relative_to_now,
        )


CACHE_POLICY = ExpirationPolicy(name="cache", multiplier=2, supports_absolute_cap=True)
SESSION_POLICY = ExpirationPolicy(name="session", multiplier=3, supports_absolute_cap=False)

POLICIES: Dict[str, ExpirationPolicy] = {
    CACHE_POLICY.name: CACHE_POLICY,
    SESSION_POLICY.name: SESSION_POLICY,
}


def get_policy(name: str) -> ExpirationPolicy:
    """Look up a named policy variant."""
    try:
        return POLICIES[name]
    except KeyError:
        raise ValueError(f"Unknown expiration policy: {name}") from None
