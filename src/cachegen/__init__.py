"""cachegen -- Generation-versioned, cache-first caching intermediary.

This package sits between a client and an origin and answers every resource
request from a local, versioned store before falling back to the network.
Each deployed build owns one *generation* of the store. Installing a new
generation populates it from a fixed manifest (all or nothing); activating it
deletes every older generation and re-binds live clients to it.

Typical workflow::

    cachegen install                    # bootstrap + activate the configured generation
    cachegen fetch ./index.html         # answer one request through the engine
    cachegen version                    # report the active generation

Modules:
    app: Typer application factory and CLI entry point.
    models: Pydantic models shared across the entire package.
    config: XDG-aware configuration, precedence and manifest loading.
    keys: Resource-key normalisation against the configured scope.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
    store: diskcache-backed store, one named cache per generation.
    transport: The origin collaborator and its httpx implementation.
    engine: Generation manager, bootstrapper, retrieval engine, lifecycle.
"""

__version__ = "0.1.0"
