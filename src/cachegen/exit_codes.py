"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~cachegen.exceptions.CachegenError` subclass.
External tooling (deploy scripts, shell wrappers) can inspect the exit code to
determine the failure class without parsing stderr.

Example::

    $ cachegen install
    $ echo $?
    9   # EXIT_POPULATE_FAILURE -- a manifest resource could not be fetched
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_NETWORK_ERROR = 6
"""The origin was unreachable and no offline fallback could answer the request."""

EXIT_STORE_ERROR = 8
"""The generation store could not be opened, written or deleted."""

EXIT_POPULATE_FAILURE = 9
"""Bootstrapping a generation failed; the previous generation stays current."""
