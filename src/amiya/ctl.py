"""amiya-ctl: command line control for a running amiya daemon

Usage:
    amiya-ctl popup toggle bt
    amiya-ctl volume up -a 10
    amiya-ctl brightness set 40
    amiya-ctl power lock
    amiya-ctl status
"""

import argparse
import sys
from typing import List, Optional

from pydantic import BaseModel

from .ipc.client import send_command
from .models.events import PopupType
from .models.protocol import (
    BrightnessCommand,
    ErrorResponse,
    HidePopup,
    Mute,
    PingCommand,
    PongResponse,
    PowerAction,
    PowerCommand,
    Response,
    SetLevel,
    ShowPopup,
    StatusCommand,
    StatusResponse,
    StepDown,
    StepUp,
    SuccessResponse,
    ToggleMute,
    TogglePopup,
    Unmute,
    VolumeCommand,
)
from .utils.exceptions import AmiyaError

POPUP_ALIASES = {
    "bluetooth": PopupType.BLUETOOTH,
    "bt": PopupType.BLUETOOTH,
    "wifi": PopupType.WIFI,
    "network": PopupType.WIFI,
    "media-control": PopupType.MEDIA_CONTROL,
    "media": PopupType.MEDIA_CONTROL,
    "power": PopupType.POWER,
}

POPUP_COMMANDS = {"show": ShowPopup, "hide": HidePopup, "toggle": TogglePopup}


def parse_popup_type(value: str) -> PopupType:
    popup = POPUP_ALIASES.get(value.lower())
    if popup is None:
        raise ValueError(
            f"Invalid popup type: {value}. Valid types: bluetooth, wifi, media-control, power"
        )
    return popup


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="amiya-ctl", description="Control the Amiya desktop daemon")
    parser.add_argument("--socket", help="Path of the daemon socket")
    commands = parser.add_subparsers(dest="command", required=True)

    popup = commands.add_parser("popup", help="Control popups")
    popup.add_argument("action", choices=sorted(POPUP_COMMANDS))
    popup.add_argument("popup", help="bluetooth (bt), wifi (network), media-control (media) or power")

    volume = commands.add_parser("volume", help="Control volume")
    volume_actions = volume.add_subparsers(dest="action", required=True)
    for name, help_text in (("up", "Increase volume"), ("down", "Decrease volume")):
        step = volume_actions.add_parser(name, help=help_text)
        step.add_argument("-a", "--amount", type=float, help="Amount to change (default: 5.0)")
    volume_set = volume_actions.add_parser("set", help="Set volume to a specific level")
    volume_set.add_argument("level", type=float, help="Volume level (0-100)")
    volume_actions.add_parser("mute", help="Mute audio")
    volume_actions.add_parser("unmute", help="Unmute audio")
    volume_actions.add_parser("toggle-mute", help="Toggle mute")

    brightness = commands.add_parser("brightness", help="Control brightness")
    brightness_actions = brightness.add_subparsers(dest="action", required=True)
    for name, help_text in (("up", "Increase brightness"), ("down", "Decrease brightness")):
        step = brightness_actions.add_parser(name, help=help_text)
        step.add_argument("-a", "--amount", type=float, help="Amount to change (default: 5.0)")
    brightness_set = brightness_actions.add_parser("set", help="Set brightness to a specific level")
    brightness_set.add_argument("level", type=float, help="Brightness level (0-100)")

    power = commands.add_parser("power", help="Power and session actions")
    power.add_argument("action", choices=[action.value for action in PowerAction])

    commands.add_parser("status", help="Show daemon status")
    commands.add_parser("ping", help="Check that the daemon is alive")
    return parser


def _level_action(args: argparse.Namespace):
    if args.action == "up":
        return StepUp(amount=args.amount)
    if args.action == "down":
        return StepDown(amount=args.amount)
    if args.action == "set":
        return SetLevel(level=args.level)
    return {"mute": Mute, "unmute": Unmute, "toggle-mute": ToggleMute}[args.action]()


def build_command(args: argparse.Namespace) -> BaseModel:
    """
    Translate parsed arguments into a wire command.

    Raises:
        ValueError: Unknown popup name
    """
    if args.command == "popup":
        return POPUP_COMMANDS[args.action](popup=parse_popup_type(args.popup))
    if args.command == "volume":
        return VolumeCommand(action=_level_action(args))
    if args.command == "brightness":
        return BrightnessCommand(action=_level_action(args))
    if args.command == "power":
        return PowerCommand(action=PowerAction(args.action))
    if args.command == "status":
        return StatusCommand()
    return PingCommand()


def print_response(response: Response) -> int:
    """Print a response for humans and return the process exit code"""
    if isinstance(response, SuccessResponse):
        print(f"✓ {response.message}" if response.message else "✓ Success")
    elif isinstance(response, ErrorResponse):
        print(f"✗ Error: {response.message}", file=sys.stderr)
        return 1
    elif isinstance(response, StatusResponse):
        print("Amiya Desktop Environment")
        print(f"Version: {response.version}")
        print(f"Uptime: {response.uptime} seconds")
    elif isinstance(response, PongResponse):
        print("✓ Pong! Server is alive.")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        command = build_command(args)
        response = send_command(command, socket_path=args.socket)
    except (AmiyaError, ValueError) as e:
        print(f"✗ Error: {e}", file=sys.stderr)
        return 1
    return print_response(response)


if __name__ == "__main__":
    sys.exit(main())
