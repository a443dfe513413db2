"""Canonical Pydantic models shared across all cachegen modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into two groups:

**Configuration models** -- serialised as JSON (or YAML for project files):
    :class:`RequestConfig`, :class:`StoreConfig`, :class:`OutputConfig`, and
    :class:`GlobalConfig`.

**Engine models** -- produced and consumed while answering requests:
    :class:`ResponseType`, :class:`ResourceRecord`, :class:`Request`,
    :class:`Outcome`, :class:`RetrievalResult`, :class:`LifecycleState`, and
    :class:`MessageType`.

All models use Pydantic v2. Records are frozen: once written to a store they
are never mutated, only replaced by a newer record under the same key.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cachegen.keys import resolve_key


DEFAULT_MANIFEST = (
    "./",
    "./index.html",
    "./manifest.json",
    "./icon-192.png",
    "./icon-512.png",
)
"""Resources an application shell needs to start offline."""


def validate_generation_name(name: str) -> str:
    """Return *name* if it is usable as a generation identifier.

    Generation names double as directory names under the store root, so
    they must be non-empty and free of path separators.

    Raises:
        ValueError: If the name is empty, ``.``/``..``, or contains a
            path separator.
    """
    if not name or not name.strip():
        raise ValueError("generation name must not be empty")
    if name in (".", "..") or "/" in name or "\\" in name or "\x00" in name:
        raise ValueError(f"invalid generation name: {name!r}")
    return name


_OUTPUT_FORMATS = ("auto", "json", "plain", "rich")

# --- Config Models ---


class RequestConfig(BaseModel):
    """Transport settings applied to every origin fetch."""

    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    max_retries: int = Field(
        default=1, ge=0, description="Retry attempts on connection errors"
    )


class StoreConfig(BaseModel):
    """Where generation stores live on disk."""

    directory: Optional[str] = Field(
        default=None,
        description="Store root directory (defaults to the XDG cache directory)",
    )


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )

    @field_validator("format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        value = value.lower()
        if value not in _OUTPUT_FORMATS:
            raise ValueError(
                f"output format must be one of {', '.join(_OUTPUT_FORMATS)}: {value!r}"
            )
        return value


class GlobalConfig(BaseModel):
    """Effective configuration for one deployed build.

    Loaded from ``~/.config/cachegen/config.json`` and layered with the
    project file (``./cachegen.json`` or ``./cachegen.yaml``), environment
    variables and CLI flags. See :func:`~cachegen.config.resolve_config`
    for the full precedence chain.

    The ``generation`` identifier is fixed at deploy time: bumping it is how
    a new build declares that it owns a new store.
    """

    generation: str = Field(
        default="app-shell-v1",
        description="Identifier of the current generation (one store per value)",
    )
    scope: str = Field(
        default="http://localhost:8000/",
        description="Origin URL that relative resource keys resolve against",
    )
    manifest: list[str] = Field(
        default_factory=lambda: list(DEFAULT_MANIFEST),
        description="Resources fetched at install time, all or nothing",
    )
    shell_key: str = Field(
        default="./index.html",
        description="Manifest entry served when both cache and network fail",
    )
    intercept_schemes: list[str] = Field(
        default_factory=lambda: ["http", "https"],
        description="URL schemes handled by the engine; others pass through",
    )
    skip_waiting: bool = Field(
        default=True,
        description="Activate right after install instead of waiting for old clients",
    )
    request: RequestConfig = Field(default_factory=RequestConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    @field_validator("generation")
    @classmethod
    def _check_generation(cls, value: str) -> str:
        return validate_generation_name(value)

    @field_validator("scope")
    @classmethod
    def _check_scope(cls, value: str) -> str:
        if "://" not in value:
            raise ValueError(f"scope must be an absolute URL: {value!r}")
        # Relative keys resolve against the scope as a directory.
        return value if value.endswith("/") else value + "/"

    @field_validator("intercept_schemes")
    @classmethod
    def _lower_schemes(cls, value: list[str]) -> list[str]:
        return [scheme.lower().rstrip(":/") for scheme in value]

    @model_validator(mode="after")
    def _check_manifest(self) -> GlobalConfig:
        if not self.manifest:
            raise ValueError("manifest must list at least one resource")
        # Compare resolved keys: "./" and the scope URL name the same record.
        manifest_keys = {resolve_key(self.scope, entry) for entry in self.manifest}
        shell = resolve_key(self.scope, self.shell_key)
        if shell is None or shell not in manifest_keys:
            raise ValueError(
                f"shell_key {self.shell_key!r} must be one of the manifest entries"
            )
        return self


# --- Engine Models ---


class ResponseType(str, enum.Enum):
    """How the origin response may be used, mirroring the Fetch standard.

    Only ``BASIC`` (same-origin) responses are eligible for caching.
    """

    BASIC = "basic"
    CORS = "cors"
    OPAQUE = "opaque"


class ResourceRecord(BaseModel):
    """One stored (or freshly fetched) resource.

    Records are frozen. Re-fetching the same key produces a new record
    that overwrites the stored one.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    status: int
    reason: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes = b""
    response_type: ResponseType = ResponseType.BASIC
    stored_at: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        """Whether the status is in the 2xx range."""
        return 200 <= self.status < 300

    @property
    def cacheable(self) -> bool:
        """Whether the record may be written back to a store.

        Exactly status 200 on a same-origin (``basic``) response.
        """
        return self.status == 200 and self.response_type == ResponseType.BASIC

    @property
    def content_type(self) -> str:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value
        return ""


class Request(BaseModel):
    """An intercepted resource request."""

    model_config = ConfigDict(frozen=True)

    url: str
    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    client_id: Optional[str] = None

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()


class Outcome(str, enum.Enum):
    """Terminal state of a single retrieval."""

    PASS_THROUGH = "pass_through"
    CACHE_HIT = "cache_hit"
    NETWORK_HIT = "network_hit"
    NETWORK_HIT_UNCACHED = "network_hit_uncached"
    OFFLINE_FALLBACK = "offline_fallback"
    FAILED = "failed"


@dataclass(frozen=True)
class RetrievalResult:
    """What the retrieval engine decided for one request.

    Attributes:
        request: The request as received.
        outcome: The terminal state reached.
        key: The normalised store key (empty for pass-through requests
            that could not be normalised).
        record: The resource to answer with. ``None`` for
            :attr:`Outcome.PASS_THROUGH` and :attr:`Outcome.FAILED`.
        error: The failure carried by :attr:`Outcome.FAILED`.
    """

    request: Request
    outcome: Outcome
    key: str = ""
    record: Optional[ResourceRecord] = None
    error: Optional[Exception] = None

    @property
    def served_from_store(self) -> bool:
        return self.outcome in (Outcome.CACHE_HIT, Outcome.OFFLINE_FALLBACK)


class LifecycleState(str, enum.Enum):
    """States of one generation's install/activate lifecycle."""

    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    INSTALL_FAILED = "install_failed"
    ACTIVATING = "activating"
    ACTIVE = "active"


class MessageType(str, enum.Enum):
    """Commands accepted on the control channel."""

    SKIP_WAITING = "SKIP_WAITING"
    GET_VERSION = "GET_VERSION"


def record_summary(record: ResourceRecord) -> dict[str, Any]:
    """Return a JSON-friendly description of *record* (body omitted)."""
    return {
        "url": record.url,
        "status": record.status,
        "reason": record.reason,
        "type": record.response_type.value,
        "content_type": record.content_type,
        "size": len(record.body),
        "stored_at": record.stored_at.isoformat() if record.stored_at else None,
    }
