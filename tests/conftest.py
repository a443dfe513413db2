"""Shared test fixtures for cachegen.

Provides an isolated config environment, output state management, a store
registry rooted in ``tmp_path``, and :class:`FakeOrigin`, an in-memory
transport that plays the origin server. These fixtures are automatically
discovered by pytest and available to all test modules without explicit
imports.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional, Union

import pytest

from cachegen.exceptions import NetworkError
from cachegen.models import GlobalConfig, Request, ResourceRecord, ResponseType
from cachegen.output import OutputFormat, OutputManager, reset_output, set_output
from cachegen.store import StoreRegistry


SCOPE = "https://app.example.com/"

SHELL_HTML = b"<!doctype html><title>shell</title>"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale.
    Resetting forces a fresh manager to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Fake origin
# ---------------------------------------------------------------------------


def make_record(
    url: str,
    status: int = 200,
    body: bytes = b"ok",
    response_type: ResponseType = ResponseType.BASIC,
    content_type: str = "text/plain",
) -> ResourceRecord:
    return ResourceRecord(
        url=url,
        status=status,
        reason="OK" if status == 200 else "",
        headers={"content-type": content_type},
        body=body,
        response_type=response_type,
    )


class FakeOrigin:
    """In-memory :class:`~cachegen.transport.Transport` double.

    ``responses`` maps absolute URLs to the record (or exception) the origin
    answers with; unknown URLs answer 404. Setting ``offline`` makes every
    fetch raise :class:`NetworkError`. When ``gate`` is set, fetches block
    until it is released, which lets tests cancel callers mid-flight.
    """

    def __init__(self) -> None:
        self.responses: dict[str, Union[ResourceRecord, Exception]] = {}
        self.calls: list[str] = []
        self.offline = False
        self.gate: Optional[asyncio.Event] = None

    def serve(self, path: str, body: bytes = b"ok", **kwargs) -> ResourceRecord:
        url = SCOPE + path.lstrip("./") if not path.startswith("http") else path
        record = make_record(url, body=body, **kwargs)
        self.responses[url] = record
        return record

    def fail(self, path: str, exc: Optional[Exception] = None) -> None:
        url = SCOPE + path.lstrip("./")
        self.responses[url] = exc or NetworkError(f"unreachable: {url}", url=url)

    async def fetch(self, request: Request) -> ResourceRecord:
        self.calls.append(request.url)
        if self.gate is not None:
            await self.gate.wait()
        if self.offline:
            raise NetworkError(f"offline: {request.url}", url=request.url)
        answer = self.responses.get(request.url)
        if answer is None:
            return make_record(request.url, status=404, body=b"not found")
        if isinstance(answer, Exception):
            raise answer
        return answer

    def calls_to(self, path: str) -> int:
        return self.calls.count(SCOPE + path.lstrip("./"))


@pytest.fixture
def origin() -> FakeOrigin:
    """A fake origin serving the default application shell manifest."""
    fake = FakeOrigin()
    fake.serve("./", body=SHELL_HTML, content_type="text/html")
    fake.serve("./index.html", body=SHELL_HTML, content_type="text/html")
    fake.serve("./manifest.json", body=b'{"name": "app"}', content_type="application/json")
    fake.serve("./icon-192.png", body=b"\x89PNG192", content_type="image/png")
    fake.serve("./icon-512.png", body=b"\x89PNG512", content_type="image/png")
    return fake


# ---------------------------------------------------------------------------
# Config and store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config() -> GlobalConfig:
    """Config for generation ``app-shell-v1`` scoped to the fake origin."""
    return GlobalConfig(generation="app-shell-v1", scope=SCOPE)


@pytest.fixture
def registry(tmp_path: Path) -> StoreRegistry:
    """A store registry rooted in a temporary directory."""
    reg = StoreRegistry(tmp_path / "stores")
    yield reg
    reg.close()


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME, XDG_CACHE_HOME, and XDG_DATA_HOME to
    subdirectories of tmp_path so that tests never touch real user
    config. Clears all CACHEGEN_* environment variables and changes
    the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in ["CACHEGEN_GENERATION", "CACHEGEN_SCOPE", "CACHEGEN_STORE_DIR"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def json_output() -> OutputManager:
    """Install a JSON-format OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.JSON)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
