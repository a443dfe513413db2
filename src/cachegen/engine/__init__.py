"""The caching-and-fallback decision engine.

Components, leaf-first:

* :class:`~cachegen.engine.generations.GenerationManager` -- opens the
  current generation's store, promotes it, deletes every other generation.
* :class:`~cachegen.engine.bootstrap.Bootstrapper` -- all-or-nothing
  population of a generation from the manifest.
* :class:`~cachegen.engine.retrieval.RetrievalEngine` -- cache-first
  retrieval with network fallback and an offline shell.
* :class:`~cachegen.engine.lifecycle.LifecycleController` -- drives
  install -> activate -> active and serves the control channel, using the
  pure transition table in :mod:`~cachegen.engine.events`.
"""

from cachegen.engine.bootstrap import Bootstrapper, PopulateResult
from cachegen.engine.generations import GenerationManager
from cachegen.engine.lifecycle import ClientNotifier, LifecycleController, LoggingNotifier
from cachegen.engine.retrieval import RetrievalEngine
from cachegen.engine.tasks import BackgroundTasks

__all__ = [
    "BackgroundTasks",
    "Bootstrapper",
    "ClientNotifier",
    "GenerationManager",
    "LifecycleController",
    "LoggingNotifier",
    "PopulateResult",
    "RetrievalEngine",
]
