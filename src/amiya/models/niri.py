"""Messages exchanged with the niri compositor socket."""

from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict


class Commands:
    WORKSPACES = "Workspaces"
    FOCUSED_WINDOW = "FocusedWindow"
    ACTION = "Action"
    OUTPUTS = "Outputs"
    VERSION = "Version"
    EVENT_STREAM = "EventStream"


class JsonRpcRequest(BaseModel):
    jsonrpc: str = "2.0"
    id: int
    method: str
    params: Optional[Any] = None

    def to_line(self) -> bytes:
        return self.model_dump_json(exclude_none=True).encode("utf-8") + b"\n"


class JsonRpcError(BaseModel):
    code: int
    message: str
    data: Optional[Any] = None


class JsonRpcResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    jsonrpc: str = "2.0"
    id: int
    result: Optional[Any] = None
    error: Optional[JsonRpcError] = None


class NiriWorkspace(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: int
    idx: int
    name: Optional[str] = None
    is_active: bool = False
    is_focused: bool = False


class NiriWorkspacesResponse(BaseModel):
    workspaces: List[NiriWorkspace] = []


def focus_workspace_action(reference: Union[int, str]) -> Dict[str, Any]:
    """Build the Action params that focus a workspace by index or by name"""
    if isinstance(reference, str):
        target: Dict[str, Any] = {"name": reference}
    else:
        target = {"index": int(reference)}
    return {"action": {"focus-workspace": {"reference": target}}}
