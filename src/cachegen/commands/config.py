"""Config commands -- view and modify the user configuration.

Provides the ``cachegen config`` sub-command group for reading, updating,
and resetting the user's config file (:class:`~cachegen.models.GlobalConfig`).
The project file (``./cachegen.json`` / ``./cachegen.yaml``) is owned by the
embedding application and is never written here.
"""

from __future__ import annotations

from typing import Any

import typer

from cachegen.commands.common import fail, load_settings
from cachegen.exceptions import CachegenError, ConfigError, InvalidUsageError
from cachegen.output import format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    effective: bool = typer.Option(
        False,
        "--effective",
        help="Show the merged config (flags, env, project file) instead of the user file.",
    ),
) -> None:
    """Show the current configuration.

    Example::

        cachegen config show
        cachegen config show --effective --json
    """
    from cachegen.config import get_config_dir, load_global_config

    if effective:
        config = load_settings(ctx)
    else:
        try:
            config = load_global_config()
        except CachegenError as exc:
            raise fail(exc) from None
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


def _coerce(key: str, current: Any, value: str) -> Any:
    """Convert *value* to the type of the field it replaces."""
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes")
    if isinstance(current, int):
        try:
            return int(value)
        except ValueError:
            raise InvalidUsageError(f"Expected integer for {key}, got: {value}") from None
    if isinstance(current, float):
        try:
            return float(value)
        except ValueError:
            raise InvalidUsageError(f"Expected number for {key}, got: {value}") from None
    if isinstance(current, list):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g., 'request.timeout')."
    ),
    value: str = typer.Argument(help="Value to set (comma-separated for lists)."),
) -> None:
    """Set a configuration value in the user config file.

    Uses dot notation for nested keys. The value is coerced to the
    existing field's type (bool, int, float, list, or str) and the result
    is validated before saving.

    Example::

        cachegen config set generation app-shell-v2
        cachegen config set request.timeout 10
        cachegen config set manifest ./,./index.html,./app.js
    """
    from cachegen.config import load_global_config, save_global_config
    from cachegen.models import GlobalConfig

    try:
        config = load_global_config()
    except CachegenError as exc:
        raise fail(exc) from None
    data = config.model_dump(mode="json")

    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            raise fail(InvalidUsageError(f"Invalid config key: {key}"))
        target = target[k]

    final_key = keys[-1]
    if final_key not in target or isinstance(target[final_key], dict):
        raise fail(InvalidUsageError(f"Unknown config key: {key}"))

    try:
        coerced = _coerce(key, target[final_key], value)
    except CachegenError as exc:
        raise fail(exc) from None
    target[final_key] = coerced

    try:
        new_config = GlobalConfig.model_validate(data)
    except Exception as exc:
        raise fail(InvalidUsageError(f"Validation error: {exc}")) from None

    save_global_config(new_config)
    success(f"{key} = {coerced}")


@config_app.command("reset")
def config_reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
) -> None:
    """Reset the user configuration to defaults.

    Asks for confirmation unless ``--yes`` is given.

    Example::

        cachegen config reset --yes
    """
    from cachegen.config import save_global_config
    from cachegen.models import GlobalConfig

    if not yes:
        if not typer.confirm("Reset the user config to defaults?"):
            info("Cancelled.")
            raise typer.Exit()

    try:
        save_global_config(GlobalConfig())
    except OSError as exc:
        raise fail(ConfigError(f"Cannot write config: {exc}")) from None
    success("User config reset to defaults.")
