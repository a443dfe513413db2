"""Exception hierarchy for cachegen.

All exceptions inherit from :class:`CachegenError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`cachegen.exit_codes`.
The top-level error handler in :func:`cachegen.app.main` catches
``CachegenError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Inside the engine most of these are contained at the component boundary that
raised them. Only :class:`PopulateError` (the generation does not become
current) and :class:`FallbackUnavailableError` (the request fails outright)
change externally observable behaviour.

Subclass hierarchy::

    CachegenError (exit 1)
    +-- InvalidUsageError            (exit 2)
    +-- ConfigError                  (exit 1)
    +-- LifecycleError               (exit 1)
    +-- StoreIOError                 (exit 8)
    +-- PopulateError                (exit 9)
    +-- NetworkError                 (exit 6)
        +-- FallbackUnavailableError (exit 6)
"""

from __future__ import annotations

from cachegen.exit_codes import (
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NETWORK_ERROR,
    EXIT_POPULATE_FAILURE,
    EXIT_STORE_ERROR,
)


class CachegenError(Exception):
    """Base exception for all cachegen errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`cachegen.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(CachegenError):
    """Raised for invalid CLI arguments or missing required parameters."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(CachegenError):
    """Raised for configuration problems (invalid JSON/YAML, bad generation name, empty manifest)."""

    exit_code = EXIT_GENERIC_FAILURE


class LifecycleError(CachegenError):
    """Raised when a lifecycle command is issued in a state that cannot accept it."""

    exit_code = EXIT_GENERIC_FAILURE


class StoreIOError(CachegenError):
    """Raised when a generation store cannot be opened, written, or deleted.

    The engine treats this as non-fatal: it is logged and the operation is
    skipped.
    """

    exit_code = EXIT_STORE_ERROR

    def __init__(self, message: str, *, generation: str = "", key: str = "") -> None:
        self.generation = generation
        self.key = key
        super().__init__(message)


class PopulateError(CachegenError):
    """Raised when one or more manifest resources could not be fetched or committed.

    Fatal to the install sequence: the generation does not become current
    and installation may be retried.

    Attributes:
        failures: Mapping of manifest key to the reason it failed.
    """

    exit_code = EXIT_POPULATE_FAILURE

    def __init__(self, message: str, *, failures: dict[str, str] | None = None) -> None:
        self.failures = dict(failures or {})
        super().__init__(message)


class NetworkError(CachegenError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused, offline)."""

    exit_code = EXIT_NETWORK_ERROR

    def __init__(self, message: str, *, url: str = "") -> None:
        self.url = url
        super().__init__(message)


class FallbackUnavailableError(NetworkError):
    """Raised when the origin is unreachable and the shell resource is not stored either."""
