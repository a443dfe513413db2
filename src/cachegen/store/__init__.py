"""Disk-based generation stores for cachegen.

This package provides :class:`StoreRegistry`, the named-store collaborator
that owns one :class:`GenerationStore` per generation identifier, each backed
by its own :mod:`diskcache` directory. Records are keyed by the normalised
absolute URL of the resource.

The registry is driven by :class:`~cachegen.engine.generations.GenerationManager`
(creation and deletion of whole generations) and by
:class:`~cachegen.engine.retrieval.RetrievalEngine` (reads and writes of
individual records in the current generation).
"""

from cachegen.store.store import GenerationStore, StoreRegistry

__all__ = ["GenerationStore", "StoreRegistry"]
