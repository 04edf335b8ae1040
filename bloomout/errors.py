from __future__ import annotations


class BloomoutError(Exception):
    """Base class for errors raised by the session/state engine."""


class ProviderError(BloomoutError):
    """A conversational turn failed (transport, quota or malformed reply)."""


class ProviderFailure(BloomoutError):
    """A schema-constrained query failed or returned a non-conforming value."""


class PersistenceReadError(BloomoutError):
    """A stored document exists but cannot be decoded."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"{key}: {reason}")
        self.key = key
        self.reason = reason


class StoreInvariantViolation(BloomoutError):
    """Duplicate id on create, or an update that targets an unknown id."""


class SessionBusy(BloomoutError):
    """A second call was issued before the outstanding one settled."""
