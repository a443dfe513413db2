"""Named, persistent key->resource stores, one per generation.

Each generation lives in its own :class:`diskcache.Cache` directory under a
common root::

    <root>/
      active.json          # {"generation": "<name>"}
      app-shell-v1/        # diskcache directory for one generation
      app-shell-v2/

Generations are disjoint: deleting one is a directory removal and never
touches another. Within a generation a record is only ever added or
overwritten; individual keys are never deleted.

Failures of ``open``, ``put``, ``delete`` and ``set_active`` surface as
:class:`~cachegen.exceptions.StoreIOError`. Reads never raise: an unreadable
or corrupt record is logged and reported as absent.
"""

from __future__ import annotations

import json
import logging
import shutil
import sqlite3
import threading
from pathlib import Path
from typing import Iterable, Optional

import diskcache
from pydantic import ValidationError

from cachegen.config import atomic_write
from cachegen.exceptions import StoreIOError
from cachegen.models import ResourceRecord, validate_generation_name

logger = logging.getLogger(__name__)

_ACTIVE_FILENAME = "active.json"
_STORE_ERRORS = (OSError, sqlite3.Error, diskcache.Timeout)


class GenerationStore:
    """Handle on the records of a single generation.

    Obtained from :meth:`StoreRegistry.open`; do not construct directly.
    Values are stored as plain dicts (``ResourceRecord.model_dump()``) so
    the on-disk format does not depend on the model class being picklable.

    Args:
        name: The generation identifier.
        directory: The diskcache directory holding the records.

    Example::

        registry = StoreRegistry("/tmp/cachegen")
        store = registry.open("app-shell-v1")
        store.put("https://app.example.com/", record)
        assert store.get("https://app.example.com/") == record
    """

    def __init__(self, name: str, directory: Path) -> None:
        self.name = name
        self.directory = directory
        try:
            self._cache = diskcache.Cache(str(directory))
        except _STORE_ERRORS as exc:
            raise StoreIOError(
                f"Cannot open store for generation '{name}': {exc}", generation=name
            ) from exc

    def get(self, key: str) -> Optional[ResourceRecord]:
        """Look up the record stored under *key*.

        Returns:
            The stored :class:`~cachegen.models.ResourceRecord`, or ``None``
            on a miss or when the stored value cannot be read.
        """
        try:
            data = self._cache.get(key)
        except _STORE_ERRORS as exc:
            logger.warning("Store '%s': read of %s failed: %s", self.name, key, exc)
            return None
        if data is None:
            return None
        try:
            return ResourceRecord.model_validate(data)
        except ValidationError as exc:
            logger.warning("Store '%s': corrupt record for %s: %s", self.name, key, exc)
            return None

    def put(self, key: str, record: ResourceRecord) -> None:
        """Store *record* under *key*, replacing any previous record.

        Raises:
            StoreIOError: If the write fails.
        """
        try:
            self._cache.set(key, record.model_dump())
        except _STORE_ERRORS as exc:
            raise StoreIOError(
                f"Cannot write {key} to generation '{self.name}': {exc}",
                generation=self.name,
                key=key,
            ) from exc

    def put_many(self, records: Iterable[tuple[str, ResourceRecord]]) -> None:
        """Store several records as one unit.

        All writes happen inside a single diskcache transaction: either
        every record is committed or none is.

        Raises:
            StoreIOError: If the transaction fails (nothing is committed).
        """
        items = list(records)
        try:
            with self._cache.transact():
                for key, record in items:
                    self._cache.set(key, record.model_dump())
        except _STORE_ERRORS as exc:
            raise StoreIOError(
                f"Cannot commit {len(items)} records to generation '{self.name}': {exc}",
                generation=self.name,
            ) from exc

    def keys(self) -> list[str]:
        """Return every stored key, sorted."""
        try:
            return sorted(str(k) for k in self._cache.iterkeys())
        except _STORE_ERRORS as exc:
            logger.warning("Store '%s': listing keys failed: %s", self.name, exc)
            return []

    def __contains__(self, key: object) -> bool:
        return self.get(str(key)) is not None

    def __len__(self) -> int:
        """Number of stored records.

        Raises:
            StoreIOError: If the store cannot be read.
        """
        try:
            return len(self._cache)
        except _STORE_ERRORS as exc:
            raise StoreIOError(
                f"Cannot count records in generation '{self.name}': {exc}",
                generation=self.name,
            ) from exc

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache` and release resources."""
        self._cache.close()


class StoreRegistry:
    """Creates, enumerates and deletes generation stores under one root.

    Handles are memoised, so opening the same generation twice returns the
    same :class:`GenerationStore`. The registry also persists which
    generation is active, so that a failed install leaves the previous
    generation in charge across process restarts.

    Args:
        root: Directory holding one sub-directory per generation.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        self._handles: dict[str, GenerationStore] = {}
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def open(self, name: str) -> GenerationStore:
        """Open the store for generation *name*, creating it if absent.

        Raises:
            StoreIOError: If the name is invalid or the store cannot be
                created.
        """
        try:
            validate_generation_name(name)
        except ValueError as exc:
            raise StoreIOError(str(exc), generation=name) from exc

        with self._lock:
            handle = self._handles.get(name)
            if handle is not None:
                return handle
            directory = self._root / name
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise StoreIOError(
                    f"Cannot create store directory {directory}: {exc}", generation=name
                ) from exc
            handle = GenerationStore(name, directory)
            self._handles[name] = handle
            logger.debug("Opened store for generation '%s' at %s", name, directory)
            return handle

    def list_names(self) -> set[str]:
        """Return the identifiers of every existing generation."""
        try:
            return {p.name for p in self._root.iterdir() if p.is_dir()}
        except FileNotFoundError:
            return set()
        except OSError as exc:
            logger.warning("Cannot list generations under %s: %s", self._root, exc)
            return set()

    def delete(self, name: str) -> bool:
        """Delete generation *name* and every record in it.

        Returns:
            ``True`` if a store was removed, ``False`` if none existed.

        Raises:
            StoreIOError: If the directory cannot be removed.
        """
        with self._lock:
            handle = self._handles.pop(name, None)
            if handle is not None:
                handle.close()
            directory = self._root / name
            if not directory.is_dir():
                return False
            try:
                shutil.rmtree(directory)
            except OSError as exc:
                raise StoreIOError(
                    f"Cannot delete generation '{name}': {exc}", generation=name
                ) from exc
        logger.debug("Deleted generation '%s'", name)
        return True

    # --- Active pointer ---

    def get_active(self) -> Optional[str]:
        """Return the generation recorded as active, if any."""
        path = self._root / _ACTIVE_FILENAME
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable active pointer %s: %s", path, exc)
            return None
        name = data.get("generation") if isinstance(data, dict) else None
        return name if isinstance(name, str) and name else None

    def set_active(self, name: str) -> None:
        """Record *name* as the active generation.

        Raises:
            StoreIOError: If the pointer cannot be written.
        """
        path = self._root / _ACTIVE_FILENAME
        try:
            atomic_write(path, json.dumps({"generation": name}) + "\n")
        except OSError as exc:
            raise StoreIOError(
                f"Cannot record active generation '{name}': {exc}", generation=name
            ) from exc

    def close(self) -> None:
        """Close every open handle."""
        with self._lock:
            for handle in self._handles.values():
                handle.close()
            self._handles.clear()
