"""
Transport layer for tool server communication.

StdioTransport speaks newline-delimited JSON-RPC 2.0 to a child process:
one request line is written to its stdin, the next line on its stdout is
taken as the answer. Exactly one call may be outstanding per process;
a per-transport lock serializes callers.

Two daemon threads run for the life of each process:
  - stdout reader: pushes complete lines onto a queue (EOF → sentinel)
  - stderr drain:  forwards lines to the `toolhost.stderr.<name>` logger
"""

from __future__ import annotations

import itertools
import json
import logging
import queue
import subprocess
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from toolhost.config import DEFAULT_STOP_TIMEOUT, merge_env
from toolhost.errors import (
    CallTimeout,
    ServerExited,
    ServerNotRunning,
    SpawnFailure,
    TransportError,
)

logger = logging.getLogger(__name__)

_EOF = object()


@dataclass
class JsonRpcRequest:
    """JSON-RPC 2.0 request. A request without an id is a notification."""
    method: str
    params: dict[str, Any] = field(default_factory=dict)
    id: int | str | None = None

    def to_json(self) -> str:
        message: dict[str, Any] = {
            "jsonrpc": "2.0",
            "method": self.method,
            "params": self.params,
        }
        if self.id is not None:
            message["id"] = self.id
        return json.dumps(message, separators=(",", ":"))


@dataclass
class JsonRpcResponse:
    """JSON-RPC 2.0 response."""
    id: int | str | None
    result: Any = None
    error: Any = None

    @classmethod
    def from_json(cls, data: str) -> "JsonRpcResponse":
        """Parse one response line. Raises ValueError on anything else."""
        parsed = json.loads(data)
        if not isinstance(parsed, dict):
            raise ValueError(f"expected a JSON object, got {type(parsed).__name__}")
        return cls(
            id=parsed.get("id"),
            result=parsed.get("result"),
            error=parsed.get("error"),
        )

    @property
    def is_error(self) -> bool:
        return self.error is not None


@dataclass
class PendingCall:
    """The one in-flight request on a transport."""
    id: int | str
    method: str
    params: dict[str, Any]
    deadline: float | None  # time.monotonic() value; None waits forever

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())


class Transport(ABC):
    """Abstract transport layer for tool server communication."""

    @abstractmethod
    def send(self, request: JsonRpcRequest, timeout: float | None = None) -> JsonRpcResponse:
        """Send a request and return the response."""
        ...

    @abstractmethod
    def start(self) -> None:
        """Start the transport (e.g., launch subprocess)."""
        ...

    @abstractmethod
    def stop(self) -> None:
        """Stop the transport (e.g., terminate subprocess)."""
        ...

    @abstractmethod
    def is_alive(self) -> bool:
        """Check if the transport is active."""
        ...


class StdioTransport(Transport):
    """
    JSON-RPC over stdin/stdout pipes to a subprocess.

    The tool server runs as a child process. We write JSON-RPC requests
    to its stdin and read responses from its stdout. One line = one message.
    """

    STDERR_TAIL_LINES = 50
    MAX_ABANDONED = 256

    def __init__(
        self,
        name: str,
        command: list[str],
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
    ):
        """
        Args:
            name: Logical server name, used in errors and log output.
            command: Command to launch the tool server process.
                     e.g., ["python", "-m", "toolhost.servers.echo"]
            cwd: Optional working directory for the subprocess.
            env: Variables layered over the current environment.
            stop_timeout: Seconds to wait after terminate() before kill().
        """
        if not command:
            raise ValueError(f"Empty command for tool server {name}")
        self.name = name
        self.command = list(command)
        self.cwd = cwd
        self.env = dict(env or {})
        self.stop_timeout = stop_timeout

        self._process: subprocess.Popen | None = None
        self._lines: queue.Queue = queue.Queue()
        self._call_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._ids = itertools.count(1)
        self._pending: PendingCall | None = None
        self._abandoned: set[int | str] = set()
        self._eof = False
        self._stopped = False
        self._stderr_tail: deque[str] = deque(maxlen=self.STDERR_TAIL_LINES)
        self._stderr_logger = logging.getLogger(f"toolhost.stderr.{name}")

    # ── lifecycle ─────────────────────────────────────────

    def start(self) -> None:
        """Launch the tool server subprocess."""
        if self._process is not None:
            raise RuntimeError(f"Transport for {self.name} was already started")

        logger.info(f"Starting {self.name}: {' '.join(self.command)}")
        try:
            self._process = subprocess.Popen(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=self.cwd,
                env=merge_env(self.env),
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,  # Line-buffered
            )
        except FileNotFoundError as e:
            if self.cwd and e.filename == self.cwd:
                raise SpawnFailure(self.name, f"working directory not found: {self.cwd}") from e
            raise SpawnFailure(self.name, f"executable not found: {self.command[0]}") from e
        except (PermissionError, NotADirectoryError, OSError) as e:
            raise SpawnFailure(self.name, str(e)) from e

        threading.Thread(
            target=self._read_stdout,
            name=f"toolhost-{self.name}-stdout",
            daemon=True,
        ).start()
        threading.Thread(
            target=self._drain_stderr,
            name=f"toolhost-{self.name}-stderr",
            daemon=True,
        ).start()
        logger.debug(f"{self.name} started (pid {self._process.pid})")

    def stop(self) -> None:
        """
        Terminate the tool server subprocess.

        Wakes any in-flight call first, then escalates terminate → kill
        after `stop_timeout` seconds. Never waits past that.
        """
        with self._state_lock:
            if self._stopped:
                return
            self._stopped = True
        self._lines.put(_EOF)

        process = self._process
        if process is None:
            return

        try:
            if process.stdin:
                process.stdin.close()
        except (OSError, ValueError):
            pass

        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=self.stop_timeout)
            except subprocess.TimeoutExpired:
                logger.warning(f"{self.name} ignored terminate, killing pid {process.pid}")
                process.kill()
                try:
                    process.wait(timeout=1)
                except subprocess.TimeoutExpired:
                    logger.error(f"{self.name} (pid {process.pid}) did not exit after kill")
        logger.info(f"Stdio transport for {self.name} stopped")

    def is_alive(self) -> bool:
        """Check if the subprocess is running."""
        return (
            self._process is not None
            and not self._stopped
            and self._process.poll() is None
        )

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> int | None:
        return self._process.poll() if self._process else None

    @property
    def pending(self) -> PendingCall | None:
        return self._pending

    @property
    def stderr_tail(self) -> str:
        """The last lines the server wrote to stderr."""
        return "\n".join(self._stderr_tail)

    # ── pipe threads ──────────────────────────────────────

    def _read_stdout(self) -> None:
        stream = self._process.stdout
        try:
            for line in stream:
                line = line.rstrip("\r\n")
                if line.strip():
                    self._lines.put(line)
        except (OSError, ValueError) as e:
            logger.debug(f"{self.name} stdout closed: {e}")
        finally:
            self._lines.put(_EOF)

    def _drain_stderr(self) -> None:
        stream = self._process.stderr
        try:
            for line in stream:
                line = line.rstrip()
                if line:
                    self._stderr_tail.append(line)
                    self._stderr_logger.info(line)
        except (OSError, ValueError) as e:
            # Losing stderr does not affect the server itself
            logger.debug(f"{self.name} stderr read failed: {e}")

    # ── calls ─────────────────────────────────────────────

    def next_id(self) -> int:
        """Generate the next request ID."""
        return next(self._ids)

    def send(self, request: JsonRpcRequest, timeout: float | None = None) -> JsonRpcResponse:
        """
        Write `request` and return the next line from stdout as its response.

        Raises:
            ServerNotRunning / ServerExited: before any I/O if the process is gone
            TransportError: write failure, EOF mid-call, or unparseable line
            CallTimeout: nothing arrived within `timeout` seconds
        """
        if request.id is None:
            request.id = self.next_id()

        # The timeout covers waiting behind another caller's request too
        deadline = None if timeout is None else time.monotonic() + timeout
        pending = PendingCall(request.id, request.method, request.params, deadline)
        self._acquire(pending, timeout)
        try:
            self._ensure_usable()
            self._discard_stale()

            self._pending = pending
            self._write(request)
            line = self._next_line(pending, timeout)
            try:
                response = JsonRpcResponse.from_json(line)
            except ValueError as e:
                # The real answer, if any, may still follow
                self._abandon(request.id)
                logger.error(f"Unparseable response from {self.name}/{request.method}: {line[:200]!r}")
                raise TransportError(self.name, f"malformed response: {e}", raw=line) from e
        finally:
            self._pending = None
            self._call_lock.release()

        logger.debug(f"← {self.name} {line}")
        if response.id != request.id:
            logger.warning(
                f"{self.name} answered id {response.id!r} to request {request.id!r}; "
                f"accepting it as the response"
            )
        return response

    def notify(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> None:
        """Send a notification (no id, no response expected)."""
        deadline = None if timeout is None else time.monotonic() + timeout
        self._acquire(PendingCall("", method, params or {}, deadline), timeout)
        try:
            self._ensure_usable()
            self._write(JsonRpcRequest(method=method, params=params or {}))
        finally:
            self._call_lock.release()

    def _acquire(self, pending: PendingCall, timeout: float | None) -> None:
        remaining = pending.remaining()
        if not self._call_lock.acquire(timeout=-1 if remaining is None else remaining):
            logger.warning(f"{self.name}/{pending.method} timed out waiting for a call in flight")
            raise CallTimeout(self.name, pending.method, timeout)

    def _ensure_usable(self) -> None:
        if self._process is None or self._stopped:
            raise ServerNotRunning(self.name)
        if self._eof or self._process.poll() is not None:
            raise ServerExited(self.name, self._wait_returncode())

    def _discard_stale(self) -> None:
        """Drop lines left behind by calls that timed out."""
        while True:
            try:
                item = self._lines.get_nowait()
            except queue.Empty:
                return
            if item is _EOF:
                self._eof = True
                self._ensure_usable()
                return
            self._abandoned.discard(_peek_id(item))
            logger.warning(f"Discarding stale line from {self.name}: {item[:200]!r}")

    def _write(self, request: JsonRpcRequest) -> None:
        line = request.to_json()
        logger.debug(f"→ {self.name} {line}")
        try:
            self._process.stdin.write(line + "\n")
            self._process.stdin.flush()
        except (OSError, ValueError) as e:
            if self._stopped:
                raise ServerNotRunning(self.name) from e
            raise TransportError(self.name, f"write failed: {e}") from e

    def _next_line(self, pending: PendingCall, timeout: float | None) -> str:
        while True:
            try:
                item = self._lines.get(timeout=pending.remaining())
            except queue.Empty:
                self._abandon(pending.id)
                raise CallTimeout(self.name, pending.method, timeout) from None

            if item is _EOF:
                self._eof = True
                if self._stopped:
                    raise TransportError(self.name, f"stopped while {pending.method} was in flight")
                raise ServerExited(self.name, self._wait_returncode())

            late_id = _peek_id(item)
            if late_id is not None and late_id != pending.id and late_id in self._abandoned:
                self._abandoned.discard(late_id)
                logger.warning(f"Dropping late answer to timed-out request {late_id!r} from {self.name}")
                continue
            return item

    def _abandon(self, request_id: int | str) -> None:
        self._abandoned.add(request_id)
        # Servers that never answer would otherwise grow this forever
        while len(self._abandoned) > self.MAX_ABANDONED:
            self._abandoned.pop()

    def _wait_returncode(self) -> int | None:
        # stdout EOF usually precedes the exit status by a moment
        try:
            return self._process.wait(timeout=0.5)
        except subprocess.TimeoutExpired:
            return None


def _peek_id(line: str) -> Any:
    """The `id` of a JSON object line, or None if it has none or is not JSON."""
    try:
        message = json.loads(line)
    except ValueError:
        return None
    if not isinstance(message, dict):
        return None
    value = message.get("id")
    return value if isinstance(value, (int, str)) else None
