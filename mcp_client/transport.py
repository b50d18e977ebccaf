"""
MCP Transport layer implementations.

Provides transport mechanisms for MCP communication:
- StdioTransport: spawns a tool-provider process and talks to it over its
  stdin/stdout with newline-delimited JSON.

Other transports (network sockets, HTTP) plug in by implementing ``Transport``.
"""

import asyncio
import logging
import os
import shlex
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .errors import ProtocolError, TransportError


logger = logging.getLogger(__name__)

DEFAULT_COMMAND = "npx"
DEFAULT_ARGS = ["@modelcontextprotocol/server-github"]

# asyncio.StreamReader line limit for protocol messages (16 MB)
MAX_LINE_SIZE = 16 * 1024 * 1024


class Transport(ABC):
    """Abstract base class for MCP transports."""

    @abstractmethod
    async def open(self) -> None:
        """Establish the connection."""
        pass

    @abstractmethod
    async def send(self, data: bytes) -> None:
        """Send exactly one newline-terminated message line."""
        pass

    @abstractmethod
    async def receive_line(self) -> Optional[bytes]:
        """Receive one message line. Returns None on end of stream."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the transport and release its resources."""
        pass

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def check_frame(data: bytes) -> bytes:
    """Validate newline framing and return the line with its terminator."""
    if not data.endswith(b"\n"):
        data += b"\n"
    if b"\n" in data[:-1] or b"\r" in data[:-1]:
        raise ProtocolError("Message contains an embedded newline")
    return data


class StdioTransport(Transport):
    """
    Transport over the standard streams of a child process.

    Each message is one line of JSON on stdin/stdout. The child's stderr is
    drained to debug logging and never parsed.
    """

    def __init__(
        self,
        command: Optional[str] = None,
        args: Optional[List[str]] = None,
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None,
        terminate_timeout: float = 5.0,
    ):
        if command is None:
            # Default server package only goes with the default command
            command = DEFAULT_COMMAND
            if args is None:
                args = DEFAULT_ARGS
        self.command = command
        self.args = list(args or [])
        self.env = env
        self.cwd = cwd
        self.terminate_timeout = terminate_timeout
        self._process: Optional[asyncio.subprocess.Process] = None
        self._stderr_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._process is not None and not self._closed

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    async def open(self) -> None:
        """Spawn the tool-provider process."""
        if self._process is not None:
            raise TransportError("Transport already opened")

        process_env = None
        if self.env:
            process_env = os.environ.copy()
            process_env.update(self.env)

        try:
            self._process = await asyncio.create_subprocess_exec(
                self.command,
                *self.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=process_env,
                cwd=self.cwd,
                limit=MAX_LINE_SIZE,
            )
        except OSError as e:
            raise TransportError(f"Failed to start MCP server '{self.command}': {e}") from e

        self._stderr_task = asyncio.create_task(self._drain_stderr())
        logger.info(f"Started MCP server process {self._process.pid}: {self.command} {' '.join(self.args)}")

    async def _drain_stderr(self) -> None:
        stream = self._process.stderr
        while True:
            try:
                line = await stream.readline()
            except ValueError:
                logger.debug(f"[{self.command}] overlong stderr line skipped")
                continue
            if not line:
                break
            logger.debug(f"[{self.command}] {line.decode('utf-8', errors='replace').rstrip()}")

    async def send(self, data: bytes) -> None:
        """Write one message line to the child's stdin."""
        if not self.is_open:
            raise TransportError("Transport is closed")

        data = check_frame(data)
        stdin = self._process.stdin
        try:
            stdin.write(data)
            await stdin.drain()
        except OSError as e:
            raise TransportError(f"Failed to send: {e}") from e

    async def receive_line(self) -> Optional[bytes]:
        """Read one message line from the child's stdout."""
        if not self.is_open:
            return None

        try:
            line = await self._process.stdout.readline()
        except ValueError as e:
            raise TransportError(f"Message exceeds {MAX_LINE_SIZE} bytes") from e
        except OSError as e:
            raise TransportError(f"Failed to receive: {e}") from e

        if not line:
            return None
        return line

    async def close(self) -> None:
        """Terminate the child process, killing it if it does not exit in time."""
        if self._closed:
            return
        self._closed = True

        process = self._process
        if process is None:
            return

        if process.stdin is not None and not process.stdin.is_closing():
            process.stdin.close()

        if process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), timeout=self.terminate_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"MCP server process {process.pid} did not exit, killing it")
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()

        if self._stderr_task is not None:
            # Flush what the process wrote before exiting
            try:
                await asyncio.wait_for(self._stderr_task, timeout=1.0)
            except asyncio.TimeoutError:
                logger.debug(f"Stopped draining stderr of process {process.pid}")
            self._stderr_task = None

        logger.info(f"MCP server process {process.pid} exited with code {process.returncode}")

    def __del__(self):
        process = self._process
        if process is not None and process.returncode is None:
            try:
                process.kill()
            except (ProcessLookupError, RuntimeError):
                # Process already gone or its event loop is closed
                pass


def create_transport(
    server_url: str,
    command: Optional[str] = None,
    args: Optional[List[str]] = None,
    env: Optional[Dict[str, str]] = None,
    cwd: Optional[str] = None,
) -> Transport:
    """
    Create a transport for a server URL.

    ``stdio://`` launches ``command``/``args``; ``stdio://<command line>``
    launches the given command line instead. Without a command the default
    GitHub server is launched.

    Raises:
        TransportError: For HTTP URLs (not implemented), unknown schemes and
            unparseable command lines.
    """
    if server_url.startswith("stdio://"):
        command_line = server_url[len("stdio://"):].strip()
        if command_line:
            try:
                parts = shlex.split(command_line)
            except ValueError as e:
                raise TransportError(f"Invalid stdio command line '{command_line}': {e}") from e
            command, args = parts[0], parts[1:]
        return StdioTransport(
            command=command,
            args=args,
            env=env,
            cwd=cwd,
        )
    if server_url.startswith(("http://", "https://")):
        raise TransportError("HTTP transport not yet implemented")
    raise TransportError(f"Unsupported server URL format: {server_url}")
