# offline_sync/services/infrastructure/key_value_store.py
"""
Persistence store contract shared by the offline queue and the sync coordinator.

FastRedisClient satisfies it directly. Implementations report failures through
return values (False/None) and log them instead of raising, except
get_or_raise, which lets callers tell a missing key from a failed read.
"""

from typing import Protocol


class KeyValueStoreError(Exception):
    """Raised when the store cannot be read."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def get_or_raise(self, key: str) -> str | None: ...

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool: ...

    async def delete(self, key: str) -> bool: ...

    async def ping(self) -> bool: ...
