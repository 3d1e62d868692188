"""Command/response wire protocol of the control socket.

One JSON object per line. Commands are tagged by ``type``, volume and
brightness actions by ``action`` and responses by ``status``.
"""

from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from .events import PopupType
from ..utils.exceptions import ProtocolError

DEFAULT_VOLUME_STEP = 5.0
DEFAULT_BRIGHTNESS_STEP = 5.0


class PowerAction(str, Enum):
    SHUTDOWN = "shutdown"
    REBOOT = "reboot"
    SUSPEND = "suspend"
    HIBERNATE = "hibernate"
    LOCK = "lock"


# Level actions shared by volume and brightness
class StepUp(BaseModel):
    action: Literal["up"] = "up"
    amount: Optional[float] = Field(None, allow_inf_nan=False)

class StepDown(BaseModel):
    action: Literal["down"] = "down"
    amount: Optional[float] = Field(None, allow_inf_nan=False)

class SetLevel(BaseModel):
    action: Literal["set"] = "set"
    level: float = Field(..., allow_inf_nan=False)

class Mute(BaseModel):
    action: Literal["mute"] = "mute"

class Unmute(BaseModel):
    action: Literal["unmute"] = "unmute"

class ToggleMute(BaseModel):
    action: Literal["toggle-mute"] = "toggle-mute"


VolumeAction = Annotated[
    Union[StepUp, StepDown, SetLevel, Mute, Unmute, ToggleMute],
    Field(discriminator="action"),
]

BrightnessAction = Annotated[
    Union[StepUp, StepDown, SetLevel],
    Field(discriminator="action"),
]


# Commands
class ShowPopup(BaseModel):
    type: Literal["show-popup"] = "show-popup"
    popup: PopupType

class HidePopup(BaseModel):
    type: Literal["hide-popup"] = "hide-popup"
    popup: PopupType

class TogglePopup(BaseModel):
    type: Literal["toggle-popup"] = "toggle-popup"
    popup: PopupType

class VolumeCommand(BaseModel):
    type: Literal["volume"] = "volume"
    action: VolumeAction

class BrightnessCommand(BaseModel):
    type: Literal["brightness"] = "brightness"
    action: BrightnessAction

class PowerCommand(BaseModel):
    type: Literal["power"] = "power"
    action: PowerAction

class StatusCommand(BaseModel):
    type: Literal["status"] = "status"

class PingCommand(BaseModel):
    type: Literal["ping"] = "ping"


Command = Annotated[
    Union[
        ShowPopup,
        HidePopup,
        TogglePopup,
        VolumeCommand,
        BrightnessCommand,
        PowerCommand,
        StatusCommand,
        PingCommand,
    ],
    Field(discriminator="type"),
]


# Responses
class SuccessResponse(BaseModel):
    status: Literal["success"] = "success"
    message: Optional[str] = None

class ErrorResponse(BaseModel):
    status: Literal["error"] = "error"
    message: str

class StatusResponse(BaseModel):
    status: Literal["status"] = "status"
    version: str
    uptime: int

class PongResponse(BaseModel):
    status: Literal["pong"] = "pong"


Response = Annotated[
    Union[SuccessResponse, ErrorResponse, StatusResponse, PongResponse],
    Field(discriminator="status"),
]

_command_adapter: TypeAdapter = TypeAdapter(Command)
_response_adapter: TypeAdapter = TypeAdapter(Response)


def success(message: Optional[str] = None) -> SuccessResponse:
    return SuccessResponse(message=message)


def error(message: str) -> ErrorResponse:
    return ErrorResponse(message=message)


def pong() -> PongResponse:
    return PongResponse()


def _first_error(e: ValidationError) -> str:
    details = e.errors()
    if not details:
        return str(e)
    first = details[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))


def parse_command(line: str) -> Command:
    """
    Parse one line of client input into a Command.

    Raises:
        ProtocolError: The line is not valid JSON or not a known command
    """
    try:
        return _command_adapter.validate_json(line.strip())
    except ValidationError as e:
        raise ProtocolError(f"Invalid command: {_first_error(e)}") from e


def parse_response(line: str) -> Response:
    """
    Parse one line of server output into a Response.

    Raises:
        ProtocolError: The line is not a known response
    """
    try:
        return _response_adapter.validate_json(line.strip())
    except ValidationError as e:
        raise ProtocolError(f"Invalid response: {_first_error(e)}") from e


def encode(message: BaseModel) -> bytes:
    """Serialize a command or response as a single newline-terminated line"""
    return message.model_dump_json().encode("utf-8") + b"\n"
