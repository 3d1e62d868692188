import asyncio
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from .event_manager import EventManager
from ..adapters.niri import NiriClient
from ..models.events import (
    WorkspaceChanged,
    WorkspaceCreated,
    WorkspaceInfo,
    WorkspaceRemoved,
    WorkspacesUpdated,
)
from ..models.niri import NiriWorkspace
from ..utils.exceptions import BackendError
from ..utils.logging import get_logger

logger = get_logger(__name__)


def to_workspace_info(workspace: NiriWorkspace) -> WorkspaceInfo:
    # Bar surfaces address workspaces by their index on the output
    return WorkspaceInfo(
        id=workspace.idx,
        name=workspace.name,
        is_active=workspace.is_active,
        is_focused=workspace.is_focused,
    )


def _event_name(raw: str) -> str:
    # "workspace-activated" and "WorkspaceActivated" are the same event
    if "-" in raw or raw.islower():
        return "".join(part.capitalize() for part in raw.split("-"))
    return raw


class WorkspacePoller:
    """
    Republishes compositor workspace state on the event bus.

    Every poll publishes WorkspacesUpdated. Compared with the previous poll it
    also publishes WorkspaceCreated, WorkspaceRemoved and WorkspaceChanged
    when the focused workspace moved.
    """

    def __init__(self, client: NiriClient, event_manager: EventManager, interval: float = 2.0):
        self.client = client
        self.event_manager = event_manager
        self.interval = interval
        self.is_running = False
        self._previous: Optional[List[WorkspaceInfo]] = None

    async def poll_once(self) -> Optional[List[WorkspaceInfo]]:
        try:
            workspaces = await self.client.get_workspaces()
        except BackendError as e:
            logger.debug(f"Failed to poll workspaces: {e}")
            return None
        return self.apply(workspaces)

    def apply(self, workspaces: Sequence[NiriWorkspace]) -> List[WorkspaceInfo]:
        """Diff a workspace snapshot against the previous one and publish the changes"""
        current = [to_workspace_info(ws) for ws in workspaces]
        previous = self._previous
        self._previous = current

        if previous is not None:
            before = {ws.id: ws for ws in previous}
            after = {ws.id: ws for ws in current}
            for ws_id in sorted(after.keys() - before.keys()):
                self.event_manager.publish(WorkspaceCreated(id=ws_id, name=after[ws_id].name))
            for ws_id in sorted(before.keys() - after.keys()):
                self.event_manager.publish(WorkspaceRemoved(id=ws_id))
            focused_before = next((ws.id for ws in previous if ws.is_focused), None)
            focused_after = next((ws.id for ws in current if ws.is_focused), None)
            if focused_after is not None and focused_after != focused_before:
                self.event_manager.publish(WorkspaceChanged(id=focused_after))

        self.event_manager.publish(WorkspacesUpdated(workspaces=tuple(current)))
        return current

    def handle_niri_event(self, message: Dict[str, Any]) -> None:
        """
        Translate one compositor event-stream object into bus events.

        Accepts both ``{"WorkspaceActivated": {...}}`` and
        ``{"type": "workspace-activated", ...}`` shapes.
        """
        if "type" in message:
            name, payload = _event_name(str(message["type"])), message
        elif len(message) == 1:
            raw, payload = next(iter(message.items()))
            name = _event_name(raw)
        else:
            logger.debug(f"Ignoring unrecognised niri event: {message}")
            return
        payload = payload or {}

        if name == "WorkspaceActivated":
            niri_id = payload.get("id")
            if niri_id is None:
                return
            known = {ws.id: ws.idx for ws in self.client.cached_workspaces()}
            logger.debug(f"Workspace activated: id={niri_id}, focused={payload.get('focused')}")
            self.event_manager.publish(WorkspaceChanged(id=known.get(niri_id, niri_id)))
        elif name == "WorkspacesChanged":
            try:
                workspaces = [NiriWorkspace.model_validate(ws) for ws in payload.get("workspaces", [])]
            except ValidationError as e:
                logger.debug(f"Invalid WorkspacesChanged payload: {e}")
                return
            logger.debug(f"Workspaces changed: {len(workspaces)} workspaces")
            self.apply(workspaces)
        else:
            logger.debug(f"Unhandled niri event: {name}")

    async def start_polling(self) -> None:
        logger.info("Starting niri workspace polling")
        self.is_running = True
        while self.is_running:
            await self.poll_once()
            await asyncio.sleep(self.interval)

    async def stop(self) -> None:
        self.is_running = False
