"""Where cachegen keeps its files and how the effective config is assembled.

Directories follow the XDG Base Directory layout on Linux and BSD and fall
back to ``~/.cachegen/`` elsewhere. Settings come from four layers, merged by
:func:`resolve_config` (later wins):

1. the user file, ``<config dir>/config.json``
2. the project file, ``./cachegen.json`` or ``./cachegen.yaml``, which the
   embedding application writes at deploy time to pin the generation and
   the manifest
3. ``CACHEGEN_*`` environment variables
4. CLI flags

Files are replaced with :func:`atomic_write`, so a crash never leaves a
half-written config or active-generation pointer behind.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from cachegen.exceptions import ConfigError
from cachegen.models import GlobalConfig

_APP_NAME = "cachegen"
_USER_CONFIG = "config.json"
_PROJECT_CONFIG_FILENAMES = ("cachegen.json", "cachegen.yaml", "cachegen.yml")


# --- Directories ---


def _is_xdg_platform() -> bool:
    system = platform.system()
    return system == "Linux" or system.endswith("BSD")


def _app_dir(xdg_var: str, xdg_default: tuple[str, ...], fallback: tuple[str, ...]) -> Path:
    """Return (and create) one of cachegen's directories.

    On XDG platforms this is ``$<xdg_var>/cachegen``, with *xdg_default*
    under ``$HOME`` standing in for an unset variable. Elsewhere it is
    ``~/.cachegen/<fallback...>``.
    """
    if _is_xdg_platform():
        base = Path(os.environ.get(xdg_var) or Path.home().joinpath(*xdg_default))
        path = base / _APP_NAME
    else:
        path = Path.home().joinpath(f".{_APP_NAME}", *fallback)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_dir() -> Path:
    """User config directory: ``~/.config/cachegen`` or ``~/.cachegen``."""
    return _app_dir("XDG_CONFIG_HOME", (".config",), ())


def get_cache_dir() -> Path:
    """Cache directory, the default parent of the store root.

    Deleting it while a generation is active loses offline availability
    until the next install.
    """
    return _app_dir("XDG_CACHE_HOME", (".cache",), ("cache",))


def get_data_dir() -> Path:
    """Data directory holding crash logs."""
    return _app_dir("XDG_DATA_HOME", (".local", "share"), ("logs",))


def get_store_dir(config: GlobalConfig) -> Path:
    """Return the store root for *config*, creating it if necessary."""
    if config.store.directory:
        path = Path(config.store.directory).expanduser()
    else:
        path = get_cache_dir() / "generations"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic writes ---


def atomic_write(path: Path, data: str) -> None:
    """Replace *path* with *data* in one rename.

    The data is written and fsynced to a sibling temp file first, so
    readers see either the old content or the new, never a partial file.
    The temp file is removed if anything goes wrong.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp = tempfile.NamedTemporaryFile(
        mode="w",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
        encoding="utf-8",
    )
    try:
        with tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp.name, path)
    except BaseException:
        try:
            os.unlink(tmp.name)
        except OSError:
            pass
        raise


# --- User config ---


def _user_config_path() -> Path:
    return get_config_dir() / _USER_CONFIG


def _read_user_data() -> dict[str, Any]:
    path = _user_config_path()
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid user config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid user config at {path}: expected a JSON object")
    return data


def load_global_config() -> GlobalConfig:
    """Load the user config file alone (no project file, env or flags).

    A missing file yields the defaults.

    Raises:
        ConfigError: If the file is not valid JSON or fails validation.
    """
    data = _read_user_data()
    try:
        return GlobalConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid user config at {_user_config_path()}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Write *config* to the user config file."""
    payload = json.dumps(config.model_dump(mode="json"), indent=2)
    atomic_write(_user_config_path(), payload + "\n")


# --- Project config ---


def _parse_content(content: str, hint: str = "") -> Any:
    """Decode a project file. JSON is tried first unless *hint* says YAML."""
    if hint != "yaml":
        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            if hint == "json":
                raise ConfigError(f"Invalid JSON: {exc}") from exc
    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse as JSON or YAML: {exc}") from exc


def find_project_config() -> Optional[Path]:
    """Return the first project config file found in the working directory."""
    for name in _PROJECT_CONFIG_FILENAMES:
        path = Path.cwd() / name
        if path.is_file():
            return path
    return None


def load_project_config(path: Optional[Path] = None) -> Optional[dict[str, Any]]:
    """Load the project file (``./cachegen.json``, ``.yaml`` or ``.yml``).

    Args:
        path: Explicit file to load instead of searching the working
            directory.

    Returns:
        The parsed mapping, or ``None`` if no project file exists.

    Raises:
        ConfigError: If the file exists but cannot be read or parsed, or is
            not a mapping.
    """
    if path is None:
        path = find_project_config()
        if path is None:
            return None
    elif not path.is_file():
        raise ConfigError(f"Project config not found: {path}")

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read project config {path}: {exc}") from exc

    suffix = path.suffix.lower()
    hint = "json" if suffix == ".json" else "yaml" if suffix in (".yaml", ".yml") else ""
    data = _parse_content(text, hint=hint)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Project config {path} must be a mapping (got {type(data).__name__})"
        )
    return data


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Merge *overlay* into a copy of *base*, recursing into nested mappings."""
    merged = dict(base)
    for key, value in overlay.items():
        existing = merged.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(existing, value)
        else:
            merged[key] = value
    return merged


# --- Effective config ---

# Environment variable -> path of the setting it overrides.
_ENV_OVERRIDES = {
    "CACHEGEN_GENERATION": ("generation",),
    "CACHEGEN_SCOPE": ("scope",),
    "CACHEGEN_STORE_DIR": ("store", "directory"),
}


def _nest(path: tuple[str, ...], value: Any) -> dict[str, Any]:
    for part in reversed(path):
        value = {part: value}
    return value


def resolve_config(
    cli_generation: Optional[str] = None,
    cli_scope: Optional[str] = None,
    cli_format: Optional[str] = None,
    project_file: Optional[Path] = None,
) -> GlobalConfig:
    """Merge every config layer into the effective :class:`GlobalConfig`.

    Lowest to highest: model defaults, the user file, the project file
    (*project_file* or the one found in the working directory), the
    ``CACHEGEN_GENERATION`` / ``CACHEGEN_SCOPE`` / ``CACHEGEN_STORE_DIR``
    environment variables, then the ``cli_*`` arguments. Nested sections
    such as ``request`` merge key by key.

    Raises:
        ConfigError: If a layer cannot be read or the merged result does
            not validate.
    """
    data = _read_user_data()

    project = load_project_config(project_file)
    if project is not None:
        data = _deep_merge(data, project)

    for var, path in _ENV_OVERRIDES.items():
        value = os.environ.get(var)
        if value:
            data = _deep_merge(data, _nest(path, value))

    flags = {
        ("generation",): cli_generation,
        ("scope",): cli_scope,
        ("output", "format"): cli_format,
    }
    for path, value in flags.items():
        if value is not None:
            data = _deep_merge(data, _nest(path, value))

    try:
        return GlobalConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
