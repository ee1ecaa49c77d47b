"""
Process registry — owns the live tool server processes, keyed by name.

At most one process exists per name. Starting a name that is already
registered terminates the old process first (forced restart). An entry
whose process has exited stays registered, reporting not alive, until it
is stopped or restarted; the registry never respawns on its own.

All reads and writes of the process table go through one lock. Processes
are signalled and waited on outside it.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field

from toolhost.config import DEFAULT_STOP_TIMEOUT
from toolhost.errors import ServerExited, ServerNotRunning
from toolhost.transport import StdioTransport

logger = logging.getLogger(__name__)

# name → liveness, produced on demand
ServerStatus = dict[str, bool]


@dataclass
class ServerEntry:
    """One registered tool server and the process behind it."""
    name: str
    command: str
    args: tuple[str, ...]
    cwd: str | None
    env: dict[str, str]
    transport: StdioTransport
    started_at: float = field(default_factory=time.time)

    @property
    def alive(self) -> bool:
        return self.transport.is_alive()

    @property
    def pid(self) -> int | None:
        return self.transport.pid


class ProcessRegistry:
    """
    Launches tool server processes and tracks which are alive.

    Usage:
        registry = ProcessRegistry()
        registry.start("echo", "python", ["-m", "toolhost.servers.echo"])
        registry.is_alive("echo")   # True
        registry.snapshot()         # {"echo": True}
        registry.stop_all()
    """

    def __init__(self, stop_timeout: float = DEFAULT_STOP_TIMEOUT):
        self.stop_timeout = stop_timeout
        self._entries: dict[str, ServerEntry] = {}
        self._lock = threading.RLock()

    def start(
        self,
        name: str,
        command: str,
        args: list[str] | None = None,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> ServerEntry:
        """
        Launch `command args` under `name`, replacing any prior process.

        Raises:
            SpawnFailure: the process could not be created. The name is
                left unregistered.
        """
        args = list(args or [])
        transport = StdioTransport(
            name,
            [command, *args],
            cwd=cwd,
            env=env,
            stop_timeout=self.stop_timeout,
        )

        # Stopping can take stop_timeout; other names stay readable meanwhile
        with self._lock:
            previous = self._entries.pop(name, None)
        if previous is not None:
            logger.info(f"Restarting {name}: stopping pid {previous.pid}")
            previous.transport.stop()

        transport.start()
        entry = ServerEntry(
            name=name,
            command=command,
            args=tuple(args),
            cwd=cwd,
            env=dict(env or {}),
            transport=transport,
        )
        with self._lock:
            # A concurrent start() of the same name may have won the race
            displaced = self._entries.get(name)
            self._entries[name] = entry
        if displaced is not None:
            logger.info(f"Replacing concurrently started {name} (pid {displaced.pid})")
            displaced.transport.stop()

        logger.info(f"Registered {name} (pid {entry.pid})")
        return entry

    def stop(self, name: str) -> bool:
        """
        Terminate `name` and forget it. Returns False if it was not registered.

        The entry is removed before the process is signalled, so the name is
        immediately reusable.
        """
        with self._lock:
            entry = self._entries.pop(name, None)
        if entry is None:
            return False
        entry.transport.stop()
        logger.info(f"Stopped {name}")
        return True

    def stop_all(self) -> None:
        """Stop every registered server. Safe to call repeatedly."""
        with self._lock:
            names = list(self._entries)
        for name in names:
            self.stop(name)

    def is_alive(self, name: str) -> bool:
        with self._lock:
            entry = self._entries.get(name)
            return entry is not None and entry.alive

    def snapshot(self) -> ServerStatus:
        """Liveness of every registered server, read under one lock."""
        with self._lock:
            return {name: entry.alive for name, entry in self._entries.items()}

    def get(self, name: str) -> ServerEntry | None:
        with self._lock:
            return self._entries.get(name)

    def transport(self, name: str) -> StdioTransport:
        """
        The transport for a live server.

        Raises:
            ServerNotRunning: `name` is not registered.
            ServerExited: `name` is registered but its process has exited.
        """
        with self._lock:
            entry = self._entries.get(name)
        if entry is None:
            raise ServerNotRunning(name)
        if not entry.alive:
            raise ServerExited(name, entry.transport.returncode)
        return entry.transport

    def names(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
