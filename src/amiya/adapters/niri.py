import asyncio
import itertools
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional

from pydantic import ValidationError

from .base import BackendControl
from ..core.event_manager import EventManager
from ..models.niri import (
    Commands,
    JsonRpcRequest,
    JsonRpcResponse,
    NiriWorkspace,
    NiriWorkspacesResponse,
    focus_workspace_action,
)
from ..models.state import CompositorState
from ..utils.exceptions import (
    BackendConnectionError,
    BackendExecutionError,
    CompositorError,
    InvalidParameterError,
)
from ..utils.helpers import runtime_dir
from ..utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class NiriStream:
    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter

    def close(self) -> None:
        self.writer.close()


def find_niri_socket() -> Optional[Path]:
    """
    Locate the niri IPC socket.

    Order: $NIRI_SOCKET, <runtime dir>/niri/niri-$WAYLAND_DISPLAY.sock, then any
    *.sock in <runtime dir>/niri. Returns None when niri is not running.
    """
    override = os.environ.get("NIRI_SOCKET")
    if override and Path(override).exists():
        return Path(override)

    niri_dir = runtime_dir() / "niri"
    display = os.environ.get("WAYLAND_DISPLAY") or "wayland-0"
    standard = niri_dir / f"niri-{display}.sock"
    if standard.exists():
        return standard

    if niri_dir.is_dir():
        for candidate in sorted(niri_dir.glob("*.sock")):
            return candidate
    return None


class NiriClient(BackendControl[CompositorState]):
    """
    JSON-RPC client for the niri compositor socket.

    One request is in flight at a time; each carries the next id from a
    monotonically increasing counter and the reply must echo it.
    """

    name = "compositor"

    def __init__(self, event_manager: EventManager, socket_path: Optional[str] = None,
                 timeout: float = 5.0):
        super().__init__(event_manager, timeout=timeout)
        self.socket_path = Path(socket_path) if socket_path else None
        self._ids = itertools.count(1)
        self._request_lock = asyncio.Lock()

    def default_state(self) -> CompositorState:
        return CompositorState()

    async def _open_connection(self) -> NiriStream:
        path = self.socket_path or find_niri_socket()
        if path is None:
            raise BackendConnectionError("Could not find niri socket. Is niri running?")
        try:
            reader, writer = await asyncio.wait_for(asyncio.open_unix_connection(str(path)), self.timeout)
        except asyncio.TimeoutError as e:
            raise BackendConnectionError(f"Timed out connecting to niri socket {path}") from e
        except OSError as e:
            raise BackendConnectionError(f"Failed to connect to niri socket {path}: {e}") from e
        logger.info(f"Found niri socket at: {path}")
        return NiriStream(reader=reader, writer=writer)

    async def _close(self, connection: NiriStream) -> None:
        connection.close()
        await connection.writer.wait_closed()

    def _drop_connection(self, reason: Exception) -> None:
        stream = self._connection
        super()._drop_connection(reason)
        if stream is not None:
            stream.close()

    def next_id(self) -> int:
        return next(self._ids)

    async def request(self, method: str, params: Optional[Any] = None) -> Any:
        """
        Send one request and wait for its reply.

        Raises:
            BackendConnectionError: No socket, timeout, closed stream or id mismatch
            CompositorError: niri answered with an error object
            BackendExecutionError: The reply could not be parsed
        """
        async with self._request_lock:
            if self._connection is None and not await self.connect():
                raise BackendConnectionError("Not connected to niri socket")
            stream: NiriStream = self._connection
            request = JsonRpcRequest(id=self.next_id(), method=method, params=params)
            logger.debug(f"Sending request: {method} (id={request.id})")

            try:
                stream.writer.write(request.to_line())
                await asyncio.wait_for(stream.writer.drain(), self.timeout)
                line = await asyncio.wait_for(stream.reader.readline(), self.timeout)
            except asyncio.TimeoutError as e:
                error = BackendConnectionError(f"niri did not answer {method} within {self.timeout}s")
                self._drop_connection(error)
                raise error from e
            except OSError as e:
                error = BackendConnectionError(f"niri socket failed: {e}")
                self._drop_connection(error)
                raise error from e

            if not line:
                error = BackendConnectionError("niri closed the socket")
                self._drop_connection(error)
                raise error

            try:
                response = JsonRpcResponse.model_validate_json(line)
            except ValidationError as e:
                raise BackendExecutionError(f"Failed to parse niri response: {e}") from e

            if response.id != request.id:
                error = BackendConnectionError(
                    f"niri response id {response.id} does not match request id {request.id}"
                )
                self._drop_connection(error)
                raise error

        if response.error is not None:
            raise CompositorError(
                f"Niri error: {response.error.message} (code: {response.error.code})",
                code=response.error.code,
            )
        return response.result

    async def get_workspaces(self) -> List[NiriWorkspace]:
        result = await self.request(Commands.WORKSPACES)
        if result is None:
            raise BackendExecutionError("No result in workspaces response")
        try:
            if isinstance(result, list):
                workspaces = [NiriWorkspace.model_validate(ws) for ws in result]
            else:
                workspaces = NiriWorkspacesResponse.model_validate(result).workspaces
        except ValidationError as e:
            raise BackendExecutionError(f"Failed to parse workspaces: {e}") from e
        self._update_state(workspaces=tuple(workspaces))
        return workspaces

    async def focus_workspace(self, index: int) -> None:
        if isinstance(index, bool) or not isinstance(index, int) or index < 0:
            raise InvalidParameterError(f"Invalid workspace index {index!r}")
        await self.request(Commands.ACTION, focus_workspace_action(index))

    async def focus_workspace_by_name(self, name: str) -> None:
        if not name:
            raise InvalidParameterError("Workspace name must not be empty")
        await self.request(Commands.ACTION, focus_workspace_action(name))

    async def get_version(self) -> str:
        result = await self.request(Commands.VERSION)
        if not isinstance(result, str):
            raise BackendExecutionError("Version is not a string")
        self._update_state(version=result)
        return result

    def cached_workspaces(self) -> List[NiriWorkspace]:
        return list(self.read().workspaces)
