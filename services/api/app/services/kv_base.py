from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class KeyValueStoreError(Exception):
    """Base class for key-value store errors."""


class KeyValueStoreUnavailableError(KeyValueStoreError):
    def __init__(self, backend: str, operation: str, cause: Exception) -> None:
        super().__init__(f"{backend} store unavailable during {operation}: {cause}")
        self.backend = backend
        self.operation = operation


@dataclass(frozen=True, slots=True)
class ListWindow:
    # (seq, value) pairs in append order.
    entries: list[tuple[int, str]]
    last_seq: int


class KeyValueStore(Protocol):
    """Shared state primitives. Every method is atomic on the backend side."""

    backend: str

    async def append_capped(self, key: str, value: str, cap: int) -> int: ...

    async def read_after(self, key: str, after: int) -> ListWindow: ...

    async def incr(self, key: str) -> int: ...

    async def get_int(self, key: str) -> int: ...

    async def set_add(self, key: str, member: str) -> bool: ...

    async def set_remove(self, key: str, member: str) -> bool: ...

    async def set_contains(self, key: str, member: str) -> bool: ...

    async def set_members(self, key: str) -> list[str]: ...

    async def close(self) -> None: ...
