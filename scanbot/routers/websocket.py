"""
WebSocket endpoint for telemetry and scan progress streaming
"""
from datetime import datetime
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

router = APIRouter(tags=["WebSocket"])


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    Stream telemetry_update and task_progress messages to the client.

    The current scan state is sent on connect; a text "ping" is answered
    with "pong", anything else is ignored.
    """
    from .. import main

    await main.manager.connect(websocket)
    try:
        if main.sequencer is not None:
            await websocket.send_json({
                "type": "scan_state",
                "timestamp": datetime.now().isoformat(),
                "scan": main.sequencer.state().model_dump(mode="json"),
            })
        while True:
            message = await websocket.receive_text()
            if message.strip().lower() == "ping":
                await websocket.send_json({"type": "pong", "timestamp": datetime.now().isoformat()})
    except WebSocketDisconnect:
        main.manager.disconnect(websocket)
