"""All-or-nothing population of a new generation from the manifest.

Install is not best-effort caching: a generation that is missing any
manifest resource cannot serve the application offline, so it must never
become current. :class:`Bootstrapper` therefore fetches every manifest entry
first and only commits them, in one store transaction, once all of them
succeeded.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Sequence

from cachegen.exceptions import NetworkError, PopulateError, StoreIOError
from cachegen.keys import resolve_key
from cachegen.models import Request, ResourceRecord
from cachegen.store import GenerationStore
from cachegen.transport import Transport

logger = logging.getLogger(__name__)


@dataclass
class PopulateResult:
    """Outcome of one :meth:`Bootstrapper.populate` run.

    Attributes:
        success: ``True`` only if every manifest entry was committed.
        stored: Normalised keys committed to the store (empty on failure).
        failures: Manifest entry -> reason, for each entry that failed.
    """

    success: bool
    stored: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)


def stamp(record: ResourceRecord) -> ResourceRecord:
    """Return a copy of *record* carrying the current UTC time as ``stored_at``."""
    return record.model_copy(update={"stored_at": datetime.now(timezone.utc)})


class Bootstrapper:
    """Populates a generation store with the manifest resources.

    Args:
        transport: The origin collaborator.
        scope: Base URL that manifest entries resolve against.
    """

    def __init__(self, transport: Transport, scope: str) -> None:
        self._transport = transport
        self._scope = scope

    async def populate(
        self, store: GenerationStore, manifest: Sequence[str]
    ) -> PopulateResult:
        """Fetch every manifest entry and commit them as a single unit.

        An entry fails when the transport raises
        :class:`~cachegen.exceptions.NetworkError` or answers with a non-2xx
        status. If any entry fails, or the commit itself fails, nothing is
        written and the result reports failure. Running it again is safe.

        Args:
            store: The new generation's store.
            manifest: Ordered resource keys, relative to the scope or absolute.
        """
        failures: dict[str, str] = {}
        resolved: dict[str, str] = {}
        for entry in manifest:
            key = resolve_key(self._scope, entry)
            if key is None:
                failures[entry] = "not a valid resource locator"
            elif key not in resolved.values():
                resolved[entry] = key

        outcomes = await asyncio.gather(
            *(self._fetch(key) for key in resolved.values()), return_exceptions=True
        )

        records: list[tuple[str, ResourceRecord]] = []
        for (entry, key), outcome in zip(resolved.items(), outcomes):
            if isinstance(outcome, ResourceRecord):
                if outcome.ok:
                    records.append((key, stamp(outcome)))
                else:
                    failures[entry] = f"HTTP {outcome.status}"
            elif isinstance(outcome, NetworkError):
                failures[entry] = str(outcome)
            elif isinstance(outcome, Exception):
                failures[entry] = f"{type(outcome).__name__}: {outcome}"
            else:
                # CancelledError and friends must not be swallowed.
                raise outcome

        if failures:
            for entry, reason in failures.items():
                logger.error("Manifest resource %s unavailable: %s", entry, reason)
            return PopulateResult(success=False, failures=failures)

        try:
            await asyncio.to_thread(store.put_many, records)
        except StoreIOError as exc:
            logger.error("Committing manifest to '%s' failed: %s", store.name, exc)
            return PopulateResult(
                success=False, failures={"<commit>": str(exc)}
            )

        logger.info("Cached %d manifest resources in '%s'", len(records), store.name)
        return PopulateResult(success=True, stored=[key for key, _ in records])

    async def populate_or_raise(
        self, store: GenerationStore, manifest: Sequence[str]
    ) -> PopulateResult:
        """Like :meth:`populate`, but raise on failure.

        Raises:
            PopulateError: Listing every failed manifest entry.
        """
        result = await self.populate(store, manifest)
        if not result.success:
            listed = ", ".join(sorted(result.failures))
            raise PopulateError(
                f"Install of '{store.name}' failed; unavailable: {listed}",
                failures=result.failures,
            )
        return result

    async def _fetch(self, key: str) -> ResourceRecord:
        return await self._transport.fetch(Request(url=key))
