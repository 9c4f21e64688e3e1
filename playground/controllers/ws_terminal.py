import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from playground import state
from playground.config import get_settings
from playground.ratelimit import client_ip
from playground.sandbox import InteractiveSession

router = APIRouter()

_logger = logging.getLogger("playground.ws.terminal")

INVALID_MESSAGE = {"type": "error", "message": "Invalid message."}


@router.websocket("/api/ws/terminal")
async def websocket_terminal(websocket: WebSocket):
    await websocket.accept()

    settings = get_settings()
    ip = client_ip(
        websocket.headers,
        websocket.client.host if websocket.client else None,
        trust_forwarded=settings.rate_limit.trust_forwarded,
    )

    if state.interactive_admission is None or state.pipeline is None or state.janitor is None:
        await websocket.send_text(json.dumps({"type": "error", "message": "Execution engine not available."}))
        await websocket.close(code=1011)
        return

    sandbox = settings.sandbox

    async def send(event) -> None:
        await websocket.send_text(json.dumps(event))

    session = InteractiveSession(
        send,
        admission=state.interactive_admission,
        pipeline=state.pipeline,
        janitor=state.janitor,
        jobs_dir=sandbox.jobs_dir,
        run_timeout=sandbox.interactive_timeout_sec,
        output_cap_bytes=sandbox.interactive_output_cap_bytes,
    )
    _logger.info("ws_terminal.accept session=%s ip=%s", session.id, ip)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                # Binary frames carry no JSON.
                await session.emit(INVALID_MESSAGE)
                continue
            try:
                payload = json.loads(raw)
            except ValueError:
                await session.emit(INVALID_MESSAGE)
                continue
            if not isinstance(payload, dict):
                continue
            await session.handle_message(payload)
    except WebSocketDisconnect:
        pass
    finally:
        await session.close()
        _logger.info("ws_terminal.close session=%s ip=%s state=%s", session.id, ip, session.state.value)
