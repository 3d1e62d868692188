import socket
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from ..models.protocol import Response, encode, parse_response
from ..utils.exceptions import DaemonConnectionError, ProtocolError
from ..utils.helpers import resolve_socket_path

DEFAULT_TIMEOUT = 5.0


def send_command(command: BaseModel, socket_path: Optional[Path] = None,
                 timeout: float = DEFAULT_TIMEOUT) -> Response:
    """
    Send one command to the daemon and wait for its single response line.

    Args:
        command: Any command model from ``amiya.models.protocol``
        socket_path: Socket to connect to (defaults to the runtime socket)
        timeout: Seconds to wait for connect, send and receive

    Raises:
        DaemonConnectionError: The daemon is not running or stopped answering
        ProtocolError: The daemon answered with something that is not a response
    """
    path = Path(socket_path) if socket_path else resolve_socket_path()

    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.settimeout(timeout)
    try:
        try:
            sock.connect(str(path))
        except OSError as e:
            raise DaemonConnectionError(
                f"Cannot connect to daemon at {path}. Is amiya running?"
            ) from e

        try:
            sock.sendall(encode(command))
            data = b""
            while b"\n" not in data:
                chunk = sock.recv(4096)
                if not chunk:
                    break
                data += chunk
        except socket.timeout as e:
            raise DaemonConnectionError(f"Daemon did not answer within {timeout}s") from e
        except OSError as e:
            raise DaemonConnectionError(f"Daemon connection failed: {e}") from e
    finally:
        sock.close()

    line = data.split(b"\n", 1)[0]
    if not line:
        raise ProtocolError("Empty response from daemon")
    return parse_response(line.decode("utf-8", errors="replace"))
