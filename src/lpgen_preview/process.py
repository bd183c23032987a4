"""Owned handle around a dev server subprocess."""

from __future__ import annotations

import asyncio
import contextlib
import os
import signal
from collections.abc import Mapping, Sequence

import structlog

from lpgen_preview.errors import SpawnFailureError

logger = structlog.get_logger()


class ProcessHandle:
    """A subprocess exclusively owned by one preview session.

    The child runs in its own process group so that signals reach the whole
    tree (``npm run dev`` forks the actual server).
    """

    def __init__(self, process: asyncio.subprocess.Process, argv: Sequence[str]) -> None:
        self._process = process
        self._argv = list(argv)

    @classmethod
    async def spawn(
        cls,
        argv: Sequence[str],
        cwd: str,
        env: Mapping[str, str] | None = None,
    ) -> ProcessHandle:
        """Start ``argv`` in ``cwd`` with stdout and stderr piped.

        Raises:
            SpawnFailureError: If the OS cannot create the process
        """
        if not argv:
            raise SpawnFailureError("Empty dev server command")
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=cwd,
                env=dict(env) if env is not None else None,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            raise SpawnFailureError(f"Failed to start {argv[0]}: {e}") from e

        logger.debug("Spawned process", pid=process.pid, argv=list(argv), cwd=cwd)
        return cls(process, argv)

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def argv(self) -> list[str]:
        return list(self._argv)

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    @property
    def is_running(self) -> bool:
        return self._process.returncode is None

    @property
    def stdout(self) -> asyncio.StreamReader | None:
        return self._process.stdout

    @property
    def stderr(self) -> asyncio.StreamReader | None:
        return self._process.stderr

    async def wait(self) -> int:
        return await self._process.wait()

    def _signal_group(self, sig: signal.Signals) -> None:
        try:
            os.killpg(os.getpgid(self.pid), sig)
        except ProcessLookupError:
            pass
        except PermissionError:
            # Group already reaped and the pgid reused; fall back to the child
            with contextlib.suppress(ProcessLookupError):
                self._process.send_signal(sig)

    async def terminate(self, grace_period: float = 5.0) -> bool:
        """Stop the process: SIGTERM, wait ``grace_period``, then SIGKILL.

        Returns:
            True if the process had to be force killed
        """
        if not self.is_running:
            return False

        self._signal_group(signal.SIGTERM)
        try:
            await asyncio.wait_for(self._process.wait(), timeout=grace_period)
            return False
        except TimeoutError:
            logger.warning(
                "Process did not exit within grace period, killing",
                pid=self.pid,
                grace_period=grace_period,
            )

        self._signal_group(signal.SIGKILL)
        await self._process.wait()
        return True
