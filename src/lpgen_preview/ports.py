"""Port pool bookkeeping for preview sessions."""

from __future__ import annotations

import socket
from dataclasses import dataclass

import structlog

from lpgen_preview.errors import NoPortsAvailableError

logger = structlog.get_logger()


@dataclass(frozen=True)
class PortUsage:
    """Snapshot of the pool at one point in time."""

    used: list[int]
    available: list[int]

    @property
    def total(self) -> int:
        return len(self.used) + len(self.available)


def is_port_bindable(port: int, host: str = "127.0.0.1") -> bool:
    """Check whether the OS lets us bind ``port`` right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


class PortAllocator:
    """Hands out ports from a fixed contiguous range.

    The pool is small, so a linear scan over a used-port set is enough.
    The allocator never hands out a port that is still marked used.
    """

    def __init__(self, start: int, end: int, check_os: bool = True) -> None:
        """Initialize the allocator.

        Args:
            start: First port of the pool (inclusive)
            end: Last port of the pool (inclusive)
            check_os: Also skip ports that fail a local bind test, e.g. ones
                held by a process this manager does not own
        """
        if start > end:
            raise ValueError(f"Invalid port range {start}-{end}")
        self._start = start
        self._end = end
        self._check_os = check_os
        self._used: set[int] = set()

    @property
    def ports(self) -> range:
        return range(self._start, self._end + 1)

    @property
    def capacity(self) -> int:
        return len(self.ports)

    def allocate(self) -> int:
        """Reserve the lowest free port.

        Raises:
            NoPortsAvailableError: If every port is in use
        """
        for port in self.ports:
            if port in self._used:
                continue
            if self._check_os and not is_port_bindable(port):
                logger.debug("Port busy outside the manager, skipping", port=port)
                continue
            self._used.add(port)
            return port
        raise NoPortsAvailableError(self._start, self._end)

    def release(self, port: int) -> None:
        """Mark a port free. Releasing a free port is a no-op."""
        self._used.discard(port)

    def is_used(self, port: int) -> bool:
        return port in self._used

    def usage(self) -> PortUsage:
        """Return a snapshot of used and available ports, both ascending."""
        used = sorted(self._used)
        return PortUsage(
            used=used,
            available=[p for p in self.ports if p not in self._used],
        )
