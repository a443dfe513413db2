"""Generation management: open the current store, promote it, collect the rest.

Generations are immutable and disjoint, so garbage collection is a set
difference rather than a migration: old data is never touched until the new
generation is fully installed, and then it is dropped wholesale.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

from cachegen.exceptions import StoreIOError
from cachegen.store import GenerationStore, StoreRegistry

logger = logging.getLogger(__name__)


class GenerationManager:
    """Owns creation and deletion of generation stores.

    Args:
        registry: The store collaborator.
        generation: Identifier of the current generation, compared by exact
            string equality against every existing name.
    """

    def __init__(self, registry: StoreRegistry, generation: str) -> None:
        self._registry = registry
        self._generation = generation

    @property
    def generation(self) -> str:
        return self._generation

    @property
    def registry(self) -> StoreRegistry:
        return self._registry

    async def ensure_current(self) -> GenerationStore:
        """Open (creating if needed) the current generation's store.

        Raises:
            StoreIOError: If the store cannot be opened.
        """
        return await asyncio.to_thread(self._registry.open, self._generation)

    async def active_generation(self) -> Optional[str]:
        """Return the generation recorded as active, if any."""
        return await asyncio.to_thread(self._registry.get_active)

    async def promote(self) -> bool:
        """Record the current generation as active.

        Returns:
            ``True`` on success. A :class:`StoreIOError` is logged and
            reported as ``False``.
        """
        try:
            await asyncio.to_thread(self._registry.set_active, self._generation)
        except StoreIOError as exc:
            logger.error("Could not record '%s' as active: %s", self._generation, exc)
            return False
        return True

    async def collect_garbage(self) -> list[str]:
        """Delete every generation except the current one.

        Deletions run independently: one failure is logged and does not stop
        the others. This method never raises.

        Returns:
            The sorted names of the generations actually deleted.
        """
        names = await asyncio.to_thread(self._registry.list_names)
        stale = sorted(name for name in names if name != self._generation)
        if not stale:
            return []

        results = await asyncio.gather(
            *(self._delete(name) for name in stale), return_exceptions=True
        )
        deleted: list[str] = []
        for name, result in zip(stale, results):
            if isinstance(result, BaseException):
                logger.error("Failed to delete generation '%s': %s", name, result)
            elif result:
                deleted.append(name)
        return deleted

    async def _delete(self, name: str) -> bool:
        logger.info("Deleting old generation: %s", name)
        return await asyncio.to_thread(self._registry.delete, name)

    async def holds_all(self, keys: Sequence[str]) -> bool:
        """Whether the current generation exists and stores every key in *keys*.

        Install commits the manifest as a unit, so a store holding all of it
        was installed successfully.
        """
        registry = self._registry
        if not keys or self._generation not in await asyncio.to_thread(registry.list_names):
            return False
        try:
            store = await asyncio.to_thread(registry.open, self._generation)
        except StoreIOError as exc:
            logger.warning("Could not inspect '%s': %s", self._generation, exc)
            return False
        return await asyncio.to_thread(lambda: all(key in store for key in keys))

    async def discard_if_empty(self) -> bool:
        """Delete the current generation's store if it holds no records.

        Used after a failed install so an empty directory does not linger
        next to the generation that stays active. Never raises.
        """
        registry = self._registry
        if self._generation not in await asyncio.to_thread(registry.list_names):
            return False
        try:
            store = await asyncio.to_thread(registry.open, self._generation)
            if await asyncio.to_thread(len, store):
                return False
            return await asyncio.to_thread(registry.delete, self._generation)
        except StoreIOError as exc:
            logger.warning("Could not discard '%s': %s", self._generation, exc)
            return False
