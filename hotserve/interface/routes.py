from typing import Any, Dict
from fastapi import APIRouter, Request, WebSocket
from pydantic import BaseModel

from ..preview.renderer import WS_PATH
from ..preview.websocket_server import serve_session

router = APIRouter()

class StatusResponse(BaseModel):
    """Snapshot of the dev server state"""
    hot_reload: bool
    building: bool
    build_count: int
    sessions: int
    pending_patches: int
    indexed_files: int
    metrics: Dict[str, Any]

@router.websocket(WS_PATH)
async def reload_socket(websocket: WebSocket):
    """Live reload channel; the server only ever sends"""
    server = websocket.app.state.live_server
    await serve_session(websocket, server.hub, server.initial_patches)

@router.get("/_hotserve/status", response_model=StatusResponse)
async def status(request: Request):
    server = request.app.state.live_server
    index = server.index
    return StatusResponse(
        hot_reload=index is not None,
        building=server.build_manager.is_building,
        build_count=server.build_manager.build_count,
        sessions=server.hub.subscriber_count,
        pending_patches=len(server.initial_patches()),
        indexed_files=len(index.snapshot()) if index else 0,
        metrics=server.metrics.summary()
    )
