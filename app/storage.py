"""Keyed JSON storage used for settings and cached recommendation lists."""

from __future__ import annotations

import copy
import logging
from typing import Any, Protocol

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .db_models import StorageEntry

logger = logging.getLogger(__name__)

SETTINGS_KEY = "settings"


class KeyValueStore(Protocol):
    """Minimal persistent store contract; missing keys read as ``None``."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def remove(self, key: str) -> None: ...


class MemoryStore:
    """Process-local store, mostly useful for tests and ephemeral hosts."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def get(self, key: str) -> Any | None:
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._data


class DatabaseStore:
    """Store backed by the ``storage_entries`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, key: str) -> Any | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(StorageEntry.value).where(StorageEntry.key == key)
            )
            return result.scalar_one_or_none()

    async def set(self, key: str, value: Any) -> None:
        async with self._session_factory() as session:
            entry = await session.get(StorageEntry, key)
            if entry is None:
                session.add(StorageEntry(key=key, value=value))
            else:
                entry.value = value
            await session.commit()
        logger.debug("Stored value for key %s", key)

    async def remove(self, key: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(StorageEntry).where(StorageEntry.key == key))
            await session.commit()
