"""Shared test fixtures for preview service tests."""

from __future__ import annotations

import asyncio
import json
import shlex
import sys
import time
from typing import TYPE_CHECKING, Any

import pytest
from fastapi.testclient import TestClient

from lpgen_preview.config import Settings
from lpgen_preview.manager import PreviewSessionManager
from lpgen_preview.models import PreviewSession, PreviewStatus
from lpgen_preview.readiness import LogPatternProbe
from lpgen_preview.storage import ProjectStore

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable, Generator
    from pathlib import Path


# ============================================
# Fake dev servers
# ============================================
# Each script stands in for `npm run dev`. None of them may contain braces,
# since the command template is rendered with str.format().

READY_SCRIPT = (
    "import os, time; "
    "print('starting dev server', flush=True); "
    "print('Local: http://localhost:' + os.environ['PORT'], flush=True); "
    "time.sleep(60)"
)
SILENT_SCRIPT = "import time; time.sleep(60)"
CRASH_SCRIPT = (
    "import sys; "
    "print('Error: Cannot find module next', file=sys.stderr, flush=True); "
    "sys.exit(3)"
)
STUBBORN_SCRIPT = (
    "import signal, time; "
    "signal.signal(signal.SIGTERM, signal.SIG_IGN); "
    "print('Ready in 5ms', flush=True); "
    "time.sleep(60)"
)
STUBBORN_SILENT_SCRIPT = (
    "import signal, time; "
    "signal.signal(signal.SIGTERM, signal.SIG_IGN); "
    "time.sleep(60)"
)


def python_command(script: str) -> str:
    """Dev command template running ``script`` with this interpreter."""
    return f"{shlex.quote(sys.executable)} -c {shlex.quote(script)}"


# ============================================
# Settings and project fixtures
# ============================================


@pytest.fixture
def projects_dir(tmp_path: Path) -> Path:
    path = tmp_path / "generated_projects"
    path.mkdir()
    return path


@pytest.fixture
def make_project(projects_dir: Path) -> Callable[..., Path]:
    """Create a project directory, optionally with a package.json."""

    def _make(project_id: str, package: dict[str, Any] | None = None) -> Path:
        path = projects_dir / project_id
        path.mkdir()
        if package is not None:
            (path / "package.json").write_text(json.dumps(package), encoding="utf-8")
        return path

    return _make


@pytest.fixture
def make_settings(projects_dir: Path) -> Callable[..., Settings]:
    """Build settings for a small pool that never touches real dev tooling."""

    def _make(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "port_range_start": 3002,
            "port_range_end": 3003,
            "check_os_ports": False,
            "projects_dir": str(projects_dir),
            "dev_command": python_command(READY_SCRIPT),
            "ensure_package_json": False,
            "readiness_timeout": 0,
            "stop_grace_period": 2.0,
            "log_buffer_size": 50,
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def preview_settings(make_settings: Callable[..., Settings]) -> Settings:
    return make_settings()


def build_manager(config: Settings) -> PreviewSessionManager:
    return PreviewSessionManager(
        config,
        store=ProjectStore(config.projects_dir),
        probes=[LogPatternProbe(config.readiness_patterns)],
    )


@pytest.fixture
async def manager(preview_settings: Settings) -> AsyncGenerator[PreviewSessionManager, None]:
    """Manager with the default test settings; stops every preview afterwards."""
    mgr = build_manager(preview_settings)
    yield mgr
    await mgr.close()


@pytest.fixture
async def manager_factory() -> AsyncGenerator[Callable[[Settings], PreviewSessionManager], None]:
    """Build managers with custom settings; all are closed afterwards."""
    created: list[PreviewSessionManager] = []

    def _make(config: Settings) -> PreviewSessionManager:
        mgr = build_manager(config)
        created.append(mgr)
        return mgr

    yield _make

    for mgr in created:
        await mgr.close()


async def wait_for_status(
    session: PreviewSession,
    *statuses: PreviewStatus,
    timeout: float = 10.0,
) -> PreviewSession:
    """Poll until the session reaches one of ``statuses``."""
    deadline = asyncio.get_running_loop().time() + timeout
    while session.status not in statuses:
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError(
                f"Session stayed {session.status.value}, expected {[s.value for s in statuses]}"
            )
        await asyncio.sleep(0.05)
    return session


async def wait_until(predicate: Callable[[], bool], timeout: float = 10.0) -> None:
    """Poll until ``predicate()`` is true."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(0.05)


# ============================================
# FastAPI fixtures
# ============================================


@pytest.fixture
def fastapi_client(preview_settings: Settings) -> Generator[TestClient, None, None]:
    """TestClient with real routes and a manager bound to the test settings."""
    from lpgen_preview.deps import ManagerSingleton
    from lpgen_preview.main import app

    ManagerSingleton.set(build_manager(preview_settings))

    with TestClient(app) as client:
        yield client

    ManagerSingleton.set(None)


def poll_preview(
    client: TestClient,
    project_id: str,
    status: str,
    timeout: float = 10.0,
) -> dict[str, Any]:
    """Poll GET /preview/{project_id} until it reports ``status``."""
    deadline = time.monotonic() + timeout
    while True:
        data = client.get(f"/preview/{project_id}").json()
        if data["status"] == status:
            return data
        if time.monotonic() > deadline:
            raise AssertionError(f"Preview stayed {data['status']}, expected {status}")
        time.sleep(0.05)
