"""Built-in CLI sub-commands for cachegen.

This package groups the Typer command modules that form the CLI's
top-level command tree:

* :mod:`~cachegen.commands.lifecycle` -- ``install``, ``activate``,
  ``version`` and ``sync``: drive the configured generation through its
  lifecycle and talk to its control channel.
* :mod:`~cachegen.commands.fetch` -- run one request through the retrieval
  engine.
* :mod:`~cachegen.commands.generations` -- list, inspect and garbage
  collect generation stores.
* :mod:`~cachegen.commands.config` -- view and modify global settings.

Single commands are plain callbacks registered directly on the root app;
command groups export a :class:`typer.Typer` sub-application. Shared
plumbing (config resolution, controller sessions, error mapping) lives in
:mod:`~cachegen.commands.common`.
"""
