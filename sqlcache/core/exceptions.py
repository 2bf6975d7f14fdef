"""Cache exception hierarchy."""


class CacheError(Exception):
    """Base exception for all cache errors."""


class InvalidExpirationError(CacheError, ValueError):
    """Expiration inputs that can never produce a valid row."""


class MissingExpirationPolicyError(CacheError, ValueError):
    """Neither sliding nor absolute expiration was supplied."""

    def __init__(self, message: str = "Either absolute or sliding expiration needs to be provided."):
        super().__init__(message)


class StoreUnavailableError(CacheError):
    """The row store could not be reached or failed at the transport level."""


class ConflictError(CacheError):
    """A concurrent insert of the same key could not be reconciled."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Concurrent insert conflict for cache key '{key}'")
