"""Generation commands -- list, inspect, and collect generation stores.

Provides the ``cachegen generations`` sub-command group. These commands
work on the store root directly and never contact the origin.
"""

from __future__ import annotations

import typer

from cachegen.commands.common import fail, load_settings, open_registry
from cachegen.exceptions import InvalidUsageError, StoreIOError
from cachegen.output import get_output, info, success, warning


generations_app = typer.Typer(no_args_is_help=True)


@generations_app.command("list")
def generations_list(ctx: typer.Context) -> None:
    """List every generation under the store root.

    The active generation is marked with ``*``; the configured (current)
    one with ``current``.

    Example::

        cachegen generations list
        cachegen --json generations list
    """
    config = load_settings(ctx)
    registry = open_registry(config)
    try:
        active = registry.get_active()
        rows: list[list[str]] = []
        for name in sorted(registry.list_names()):
            try:
                size = str(len(registry.open(name)))
            except StoreIOError as exc:
                warning(str(exc))
                size = "?"
            marks = []
            if name == active:
                marks.append("*")
            if name == config.generation:
                marks.append("current")
            rows.append([name, size, " ".join(marks)])
    finally:
        registry.close()

    if not rows:
        info(f"No generations under {registry.root}")
        return
    get_output().print_table(
        ["Generation", "Records", "Status"], rows, title=f"Generations ({len(rows)})"
    )


@generations_app.command("show")
def generations_show(
    ctx: typer.Context,
    name: str = typer.Argument(help="Generation identifier."),
) -> None:
    """Show the records stored in generation NAME.

    Example::

        cachegen generations show app-shell-v1
    """
    config = load_settings(ctx)
    registry = open_registry(config)
    try:
        if name not in registry.list_names():
            raise fail(InvalidUsageError(f"No such generation: {name}"))
        try:
            store = registry.open(name)
        except StoreIOError as exc:
            raise fail(exc) from None
        rows: list[list[str]] = []
        for key in store.keys():
            record = store.get(key)
            if record is None:
                continue
            rows.append([
                key,
                str(record.status),
                record.response_type.value,
                record.content_type or "-",
                str(len(record.body)),
            ])
    finally:
        registry.close()

    get_output().print_table(
        ["Key", "Status", "Type", "Content-Type", "Bytes"],
        rows,
        title=f"{name} ({len(rows)} records)",
    )


@generations_app.command("gc")
def generations_gc(
    ctx: typer.Context,
    dry_run: bool = typer.Option(
        False, "--dry-run", "-n", help="Only list what would be deleted."
    ),
) -> None:
    """Delete every generation that is neither active nor current.

    Activation already does this; ``gc`` cleans up after installs that were
    never activated or a store root shared by several builds.

    Example::

        cachegen generations gc --dry-run
        cachegen generations gc
    """
    config = load_settings(ctx)
    registry = open_registry(config)
    try:
        keep = {config.generation, registry.get_active()}
        stale = sorted(name for name in registry.list_names() if name not in keep)
        if not stale:
            info("Nothing to collect.")
            return
        if dry_run:
            for name in stale:
                info(f"Would delete: {name}")
            return
        failed = 0
        for name in stale:
            try:
                registry.delete(name)
            except StoreIOError as exc:
                warning(str(exc))
                failed += 1
            else:
                info(f"Deleted: {name}")
    finally:
        registry.close()

    if failed:
        raise typer.Exit(code=StoreIOError.exit_code)
    success(f"Deleted {len(stale)} generation(s).")
