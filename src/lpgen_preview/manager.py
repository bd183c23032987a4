"""Preview session manager.

Owns the table of preview sessions (one per project) and the port pool, and
drives each session's dev server through its lifecycle:

- ``start_preview`` reserves a port, records a ``starting`` session, spawns
  the dev server and returns without waiting for readiness
- a per-session monitor task captures output, runs the readiness probes and
  records failures when the process exits on its own
- ``stop_preview`` / ``stop_all`` tear sessions down (SIGTERM, grace period,
  SIGKILL) and release their ports

All table and pool mutations happen under one ``asyncio.Lock``. Operations on
the same project are additionally serialized by a per-project lock, so a
replace (stop then start) is never interleaved with another call for that
project. No lock is held while waiting for readiness.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import weakref
from typing import TYPE_CHECKING

import structlog

from lpgen_preview.errors import SessionStartError, SpawnFailureError
from lpgen_preview.models import PreviewSession, PreviewStatus
from lpgen_preview.ports import PortAllocator, PortUsage
from lpgen_preview.process import ProcessHandle
from lpgen_preview.readiness import ReadinessProbe, build_probes
from lpgen_preview.storage import NullStatusMirror, ProjectStore, StatusMirror

if TYPE_CHECKING:
    from lpgen_preview.config import Settings

logger = structlog.get_logger()

# Seconds to let output readers drain after the process exits
OUTPUT_DRAIN_TIMEOUT = 1.0
ERROR_MARKERS = ("Error", "EADDRINUSE", "Failed to compile")


class PreviewSessionManager:
    """Manages per-project dev server previews on dynamically assigned ports."""

    def __init__(
        self,
        settings: Settings,
        store: ProjectStore | None = None,
        mirror: StatusMirror | None = None,
        probes: list[ReadinessProbe] | None = None,
        allocator: PortAllocator | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            settings: Service settings (port pool, command, timeouts)
            store: Project lookup; defaults to ``settings.projects_dir``
            mirror: Best-effort status mirror; defaults to a no-op mirror
            probes: Readiness probes; defaults to ``build_probes(settings)``
            allocator: Port allocator; defaults to the configured range
        """
        self._settings = settings
        self._store = store or ProjectStore(settings.projects_dir)
        self._mirror: StatusMirror = mirror or NullStatusMirror()
        self._probes = probes if probes is not None else build_probes(settings)
        self._ports = allocator or PortAllocator(
            settings.port_range_start,
            settings.port_range_end,
            check_os=settings.check_os_ports,
        )
        self._sessions: dict[str, PreviewSession] = {}
        self._lock = asyncio.Lock()
        # Entries vanish once no call holds or awaits the lock
        self._project_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._monitors: dict[str, asyncio.Task[None]] = {}
        self._background_tasks: set[asyncio.Task[None]] = set()
        self._last_error_lines: dict[str, str] = {}
        # Session ids whose process is being terminated by a stop
        self._stopping: set[str] = set()

    @property
    def capacity(self) -> int:
        return self._ports.capacity

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def store(self) -> ProjectStore:
        return self._store

    @property
    def mirror(self) -> StatusMirror:
        return self._mirror

    def _project_lock(self, project_id: str) -> asyncio.Lock:
        lock = self._project_locks.get(project_id)
        if lock is None:
            lock = asyncio.Lock()
            self._project_locks[project_id] = lock
        return lock

    # Queries

    def get_status(self, project_id: str) -> PreviewSession | None:
        """Get the session for a project, if any."""
        return self._sessions.get(project_id)

    def list_sessions(self) -> list[PreviewSession]:
        """All known sessions, including failed ones awaiting cleanup."""
        return list(self._sessions.values())

    def list_active(self) -> list[PreviewSession]:
        """Sessions that are starting or running."""
        return [s for s in self._sessions.values() if s.status.is_active]

    def port_usage(self) -> PortUsage:
        return self._ports.usage()

    # Lifecycle

    async def start_preview(self, project_id: str) -> PreviewSession:
        """Start (or restart) the preview for a project.

        Returns as soon as the dev server has been spawned; the session is
        still ``starting`` and callers poll :meth:`get_status` for progress.

        Raises:
            NoPortsAvailableError: If the pool is exhausted (no session is created)
            ProjectNotFoundError: If the project directory is missing
            SpawnFailureError: If the dev server could not be started
        """
        async with self._project_lock(project_id):
            if project_id in self._sessions:
                logger.info("Replacing existing preview", project_id=project_id)
                await self._teardown(project_id)

            async with self._lock:
                port = self._ports.allocate()
                session = PreviewSession.create(
                    project_id,
                    port,
                    host=self._settings.public_host,
                    log_buffer_size=self._settings.log_buffer_size,
                )
                self._sessions[project_id] = session

            logger.info(
                "Starting preview",
                project_id=project_id,
                session_id=session.id,
                port=port,
            )
            session.append_log(f"Assigned port {port}")

            try:
                handle = await self._spawn(session)
            except SessionStartError as e:
                await self._fail(session, str(e))
                e.session = session
                raise
            except asyncio.CancelledError:
                await self._fail(session, "Start cancelled")
                raise
            except Exception as e:
                logger.exception("Unexpected error starting preview", project_id=project_id)
                await self._fail(session, str(e))
                raise SpawnFailureError(str(e), session) from e

            session.process = handle
            session.append_log(f"Started {' '.join(handle.argv)} (pid {handle.pid})")
            self._mirror_status(session)

            monitor = asyncio.create_task(self._monitor(session, handle))
            self._monitors[session.id] = monitor
            monitor.add_done_callback(lambda _t, sid=session.id: self._monitors.pop(sid, None))

            return session

    async def _spawn(self, session: PreviewSession) -> ProcessHandle:
        path = self._store.resolve(session.project_id)
        session.append_log(f"Project path: {path}")

        if self._settings.ensure_package_json:
            try:
                if self._store.ensure_package_json(path):
                    session.append_log("Added missing package.json scripts and dependencies")
            except (OSError, ValueError) as e:
                raise SpawnFailureError(f"package.json could not be prepared: {e}") from e

        env = os.environ.copy()
        env["PORT"] = str(session.port)
        return await ProcessHandle.spawn(
            self._settings.build_dev_command(session.port),
            cwd=str(path),
            env=env,
        )

    async def stop_preview(self, project_id: str) -> bool:
        """Stop a project's preview and forget its session.

        Returns:
            True if a session existed and was removed, False otherwise
        """
        async with self._project_lock(project_id):
            session = await self._teardown(project_id)

        if session is None:
            return False

        self._mirror_status(session)
        return True

    async def stop_all(self) -> int:
        """Stop every known session, best effort.

        A session that fails to stop is logged and skipped; the rest are
        still attempted.

        Returns:
            Number of sessions stopped
        """
        stopped = 0
        for project_id in list(self._sessions):
            try:
                if await self.stop_preview(project_id):
                    stopped += 1
            except Exception:
                logger.exception("Failed to stop preview", project_id=project_id)

        logger.info("Stopped all previews", count=stopped)
        return stopped

    async def close(self) -> None:
        """Stop all previews and flush pending mirror writes."""
        await self.stop_all()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        await self._mirror.close()

    async def _teardown(self, project_id: str) -> PreviewSession | None:
        """Terminate a session's process, release its port and drop it.

        Caller must hold the project lock. If terminating the process fails
        the session keeps its status, port and monitor, and the error
        propagates.
        """
        session = self._sessions.get(project_id)
        if session is None:
            return None

        handle = session.process
        forced = False
        self._stopping.add(session.id)
        try:
            if handle is not None:
                forced = await handle.terminate(self._settings.stop_grace_period)
            async with self._lock:
                if session.can_transition(PreviewStatus.STOPPED):
                    session.transition(PreviewStatus.STOPPED)
        finally:
            self._stopping.discard(session.id)

        if handle is not None:
            session.exit_code = handle.returncode
            if forced:
                session.append_log("Force killed after grace period")

        monitor = self._monitors.pop(session.id, None)
        if monitor is not None and not monitor.done():
            monitor.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await monitor

        async with self._lock:
            self._release_port(session)
            if self._sessions.get(project_id) is session:
                del self._sessions[project_id]
        self._last_error_lines.pop(session.id, None)

        logger.info(
            "Preview stopped",
            project_id=project_id,
            session_id=session.id,
            port=session.port,
        )
        return session

    def _release_port(self, session: PreviewSession) -> None:
        """Return the session's port to the pool once. Caller holds the lock."""
        if not session.port_released:
            self._ports.release(session.port)
            session.port_released = True

    async def _fail(
        self,
        session: PreviewSession,
        message: str,
        exit_code: int | None = None,
        release_port: bool = True,
    ) -> bool:
        """Mark a session failed and release its port.

        The record stays in the table so the failure can be queried. Pass
        ``release_port=False`` while the process may still hold the port;
        it is then released when the monitor sees the process exit.

        Returns:
            False if the session had already reached a terminal status
        """
        async with self._lock:
            if not session.can_transition(PreviewStatus.FAILED):
                if release_port:
                    self._release_port(session)
                return False
            if exit_code is not None:
                session.exit_code = exit_code
            session.transition(PreviewStatus.FAILED, error=message)
            if release_port:
                self._release_port(session)

        session.append_log(f"ERROR: {message}")
        logger.warning(
            "Preview failed",
            project_id=session.project_id,
            session_id=session.id,
            error=message,
        )
        self._mirror_status(session)
        return True

    async def _mark_ready(self, session: PreviewSession, source: str) -> None:
        async with self._lock:
            if session.status is not PreviewStatus.STARTING or session.id in self._stopping:
                return
            session.transition(PreviewStatus.RUNNING)

        logger.info(
            "Preview ready",
            project_id=session.project_id,
            url=session.url,
            detected_by=source,
            startup_seconds=session.startup_seconds,
        )
        self._mirror_status(session)

    # Monitoring

    async def _monitor(self, session: PreviewSession, handle: ProcessHandle) -> None:
        """Watch a session's process until it exits."""
        readers = [
            asyncio.create_task(self._pump(session, handle.stdout, "STDOUT")),
            asyncio.create_task(self._pump(session, handle.stderr, "STDERR")),
        ]
        watchers = [
            asyncio.create_task(self._poll_probe(session, probe))
            for probe in self._probes
            if probe.polls
        ]
        if self._settings.readiness_timeout > 0:
            watchers.append(asyncio.create_task(self._enforce_readiness_timeout(session, handle)))

        try:
            returncode = await handle.wait()
            _, pending = await asyncio.wait(readers, timeout=OUTPUT_DRAIN_TIMEOUT)
            for task in pending:
                task.cancel()
        finally:
            for task in readers + watchers:
                if not task.done():
                    task.cancel()

        await self._handle_exit(session, returncode)

    async def _pump(
        self,
        session: PreviewSession,
        stream: asyncio.StreamReader | None,
        label: str,
    ) -> None:
        """Copy output lines into the session log and scan them for readiness."""
        if stream is None:
            return

        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                # Line exceeded the stream buffer limit and was discarded
                session.append_log(f"{label}: <line too long, truncated>")
                continue
            if not raw:
                break

            line = raw.decode(errors="replace").rstrip()
            if not line:
                continue
            session.append_log(f"{label}: {line}")

            if any(marker in line for marker in ERROR_MARKERS):
                self._last_error_lines[session.id] = line

            if session.status is PreviewStatus.STARTING:
                for probe in self._probes:
                    if probe.matches(line):
                        await self._mark_ready(session, probe.name)
                        break

    async def _poll_probe(self, session: PreviewSession, probe: ReadinessProbe) -> None:
        url = f"http://127.0.0.1:{session.port}"
        try:
            if await probe.wait_ready(url):
                await self._mark_ready(session, probe.name)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(
                "Readiness probe error",
                project_id=session.project_id,
                probe=probe.name,
                error=str(e),
            )

    async def _enforce_readiness_timeout(
        self,
        session: PreviewSession,
        handle: ProcessHandle,
    ) -> None:
        timeout = self._settings.readiness_timeout
        await asyncio.sleep(timeout)
        if session.status is not PreviewStatus.STARTING or session.id in self._stopping:
            return

        # The dev server may hold the port until it dies; _handle_exit releases it
        message = f"Timed out: not ready within {timeout:g} seconds"
        if await self._fail(session, message, release_port=False):
            await handle.terminate(self._settings.stop_grace_period)

    async def _handle_exit(self, session: PreviewSession, returncode: int) -> None:
        """Record the process exit; unexpected exits fail the session."""
        async with self._lock:
            if session.id in self._stopping and session.can_transition(PreviewStatus.STOPPED):
                # Exit requested by a stop still in progress
                session.transition(PreviewStatus.STOPPED)
            if session.status.is_terminal:
                # The process is gone so its port is free
                if session.exit_code is None:
                    session.exit_code = returncode
                self._release_port(session)
                return

        detail = self._last_error_lines.pop(session.id, None)
        if detail is None and session.logs:
            detail = session.logs[-1]
        message = f"Process exited with code {returncode}"
        if detail:
            message = f"{message}: {detail}"

        await self._fail(session, message, exit_code=returncode)

    # Status mirroring

    def _mirror_status(self, session: PreviewSession) -> None:
        """Schedule a best-effort write of the session's status."""
        task = asyncio.create_task(
            self._write_mirror(
                session.project_id,
                session.status.value,
                session.port if session.status.is_active else None,
                session.url,
            )
        )
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _write_mirror(
        self,
        project_id: str,
        status: str,
        port: int | None,
        url: str | None,
    ) -> None:
        try:
            await self._mirror.mirror(project_id, status, port=port, url=url)
        except Exception as e:
            logger.warning(
                "Failed to mirror preview status",
                project_id=project_id,
                status=status,
                error=str(e),
            )
