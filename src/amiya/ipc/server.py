import asyncio
import time
import traceback
from pathlib import Path
from typing import Optional, Set

from ..core.app_state import AppState
from ..models.events import PopupClosed, PopupRequested, PopupType
from ..models.protocol import (
    DEFAULT_BRIGHTNESS_STEP,
    DEFAULT_VOLUME_STEP,
    BrightnessCommand,
    Command,
    HidePopup,
    Mute,
    PingCommand,
    PowerCommand,
    Response,
    SetLevel,
    ShowPopup,
    StatusCommand,
    StatusResponse,
    StepDown,
    StepUp,
    ToggleMute,
    TogglePopup,
    Unmute,
    VolumeCommand,
    encode,
    error,
    parse_command,
    pong,
    success,
)
from ..utils.exceptions import AmiyaError, InitializationError, ProtocolError
from ..utils.helpers import APP_VERSION
from ..utils.logging import get_logger

logger = get_logger(__name__)


class CommandServer:
    """
    Line-oriented command server on a Unix socket.

    Each connection carries exactly one exchange: one JSON command line in,
    one JSON response line out, then the connection is closed.
    """

    def __init__(self, app_state: AppState, socket_path: Path, read_timeout: float = 5.0):
        self.app_state = app_state
        self.socket_path = Path(socket_path)
        self.read_timeout = read_timeout
        self.server: Optional[asyncio.AbstractServer] = None
        self.start_time = time.monotonic()
        self.visible_popups: Set[PopupType] = set()

    async def start(self) -> None:
        """
        Bind the socket and start accepting clients.

        Raises:
            InitializationError: The socket could not be bound
        """
        try:
            self.socket_path.parent.mkdir(parents=True, exist_ok=True)
            # Remove a stale socket left by a previous run
            if self.socket_path.exists() or self.socket_path.is_symlink():
                self.socket_path.unlink()
            self.server = await asyncio.start_unix_server(self._handle_client, path=str(self.socket_path))
            self.socket_path.chmod(0o600)
        except OSError as e:
            raise InitializationError(f"Failed to bind command socket {self.socket_path}: {e}") from e
        self.start_time = time.monotonic()
        logger.info(f"Command server listening on {self.socket_path}")

    async def stop(self) -> None:
        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None
        try:
            self.socket_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove socket file: {e}")
        logger.info("Command server stopped")

    async def serve_forever(self) -> None:
        if not self.server:
            await self.start()
        await self.server.serve_forever()

    def uptime(self) -> int:
        return int(time.monotonic() - self.start_time)

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            try:
                line = await asyncio.wait_for(reader.readline(), self.read_timeout)
            except asyncio.TimeoutError:
                logger.debug("Client sent no command before the read timeout")
                return
            except (ValueError, asyncio.LimitOverrunError):
                response = error("Invalid command: line too long")
            else:
                if not line:
                    logger.debug("Client disconnected")
                    return
                response = await self.handle_line(line.decode("utf-8", errors="replace"))

            writer.write(encode(response))
            await writer.drain()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Client went away: {e}")
        except Exception:
            logger.error(f"Error handling client: {traceback.format_exc()}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError):
                pass

    async def handle_line(self, line: str) -> Response:
        logger.debug(f"Received command: {line.strip()}")
        try:
            command = parse_command(line)
        except ProtocolError as e:
            return error(str(e))
        try:
            return await self.handle_command(command)
        except Exception as e:
            logger.error(f"Unexpected error handling command: {traceback.format_exc()}")
            return error(f"Internal error: {e}")

    async def handle_command(self, command: Command) -> Response:
        if isinstance(command, ShowPopup):
            return self._show_popup(command.popup)
        if isinstance(command, HidePopup):
            return self._hide_popup(command.popup)
        if isinstance(command, TogglePopup):
            return self._toggle_popup(command.popup)
        if isinstance(command, VolumeCommand):
            return await self._volume(command)
        if isinstance(command, BrightnessCommand):
            return await self._brightness(command)
        if isinstance(command, PowerCommand):
            return await self._power(command)
        if isinstance(command, StatusCommand):
            return StatusResponse(version=APP_VERSION, uptime=self.uptime())
        if isinstance(command, PingCommand):
            return pong()
        return error(f"Unsupported command: {command.type}")

    # Popups

    def _show_popup(self, popup: PopupType) -> Response:
        logger.info(f"Showing popup: {popup.value}")
        self.visible_popups.add(popup)
        self.app_state.event_manager.publish(PopupRequested(popup_type=popup))
        return success(f"Showing {popup.value} popup")

    def _hide_popup(self, popup: PopupType) -> Response:
        logger.info(f"Hiding popup: {popup.value}")
        self.visible_popups.discard(popup)
        self.app_state.event_manager.publish(PopupClosed(popup_type=popup))
        return success(f"Hiding {popup.value} popup")

    def _toggle_popup(self, popup: PopupType) -> Response:
        if popup in self.visible_popups:
            self._hide_popup(popup)
        else:
            self._show_popup(popup)
        return success(f"Toggling {popup.value} popup")

    # Backends

    async def _volume(self, command: VolumeCommand) -> Response:
        audio = self.app_state.audio
        if audio is None:
            return error("Audio control not available")
        action = command.action
        try:
            if isinstance(action, StepUp):
                await audio.increase_volume(DEFAULT_VOLUME_STEP if action.amount is None else action.amount)
            elif isinstance(action, StepDown):
                await audio.decrease_volume(DEFAULT_VOLUME_STEP if action.amount is None else action.amount)
            elif isinstance(action, SetLevel):
                await audio.set_volume(action.level)
            elif isinstance(action, Mute):
                await audio.set_mute(True)
            elif isinstance(action, Unmute):
                await audio.set_mute(False)
            elif isinstance(action, ToggleMute):
                await audio.toggle_mute()
        except AmiyaError as e:
            logger.warning(f"Failed to adjust volume: {e}")
            return error(f"Failed to adjust volume: {e}")
        return success("Volume adjusted")

    async def _brightness(self, command: BrightnessCommand) -> Response:
        backlight = self.app_state.backlight
        if backlight is None:
            return error("Backlight control not available")
        action = command.action
        try:
            if isinstance(action, StepUp):
                await backlight.increase_brightness(DEFAULT_BRIGHTNESS_STEP if action.amount is None else action.amount)
            elif isinstance(action, StepDown):
                await backlight.decrease_brightness(DEFAULT_BRIGHTNESS_STEP if action.amount is None else action.amount)
            elif isinstance(action, SetLevel):
                await backlight.set_brightness(action.level)
        except AmiyaError as e:
            logger.warning(f"Failed to adjust brightness: {e}")
            return error(f"Failed to adjust brightness: {e}")
        return success("Brightness adjusted")

    async def _power(self, command: PowerCommand) -> Response:
        power = self.app_state.power
        if power is None:
            return error("Power control not available")
        try:
            await power.execute(command.action)
        except AmiyaError as e:
            logger.warning(f"Power action {command.action.value} failed: {e}")
            return error(f"Failed to execute {command.action.value}: {e}")
        return success(f"Executing {command.action.value}")
