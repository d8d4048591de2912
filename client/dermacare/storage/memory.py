"""
Key-value storage interface
Project: DermaCare Client

Device storage (auth session, custom dropdown values) is an external
collaborator: get/set/remove by string key, JSON-encoded string values.
InMemoryStore is the implementation used by tests and headless runs.
"""

from typing import Optional, Protocol


class KeyValueStore(Protocol):
    """Async string key-value storage."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def remove(self, key: str) -> None:
        ...


class InMemoryStore:
    """KeyValueStore backed by a dict."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data
