"""
WebSocket endpoint for the follow-up chat about the current diagnosis.
"""
import json
import logging
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from dermascan.api.deps import get_service
from dermascan.models.schemas import ChatMessage
from dermascan.services.skin_analysis_service import SkinAnalysisService

logger = logging.getLogger(__name__)

router = APIRouter()


def transcript_message(messages: List[ChatMessage], sending: bool) -> Dict:
    return {
        "type": "transcript",
        "messages": [message.model_dump(mode="json") for message in messages],
        "sending": sending,
    }


class ConnectionManager:
    """Manages active chat WebSocket connections."""
    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket, client_id: str):
        await websocket.accept()
        self.active_connections[client_id] = websocket
        logger.info(f"Chat client {client_id} connected, active connections: {len(self.active_connections)}")

    def disconnect(self, client_id: str, websocket: Optional[WebSocket] = None):
        # A reconnect under the same id keeps its newer entry
        if websocket is not None and self.active_connections.get(client_id) is not websocket:
            return
        self.active_connections.pop(client_id, None)
        logger.info(f"Chat client {client_id} disconnected")

    async def send_message(self, client_id: str, message: dict, websocket: Optional[WebSocket] = None):
        """Send a message to a specific client, or to the given connection of that client."""
        websocket = websocket or self.active_connections.get(client_id)
        if websocket is None:
            logger.warning(f"Chat client {client_id} not connected, dropping {message.get('type')} message")
            return
        try:
            await websocket.send_json(message)
        except (RuntimeError, WebSocketDisconnect) as e:
            logger.error(f"Error sending message to {client_id}: {str(e)}")
            self.disconnect(client_id, websocket)


manager = ConnectionManager()


@router.websocket("/ws/chat")
@router.websocket("/ws/chat/{client_id}")
async def chat_endpoint(websocket: WebSocket, client_id: Optional[str] = None,
                        service: SkinAnalysisService = Depends(get_service)):
    """
    Stream chat replies for the diagnosis shown on the results screen.

    Client messages: {"type": "message", "text": ...}, {"type": "history"}, {"type": "ping"}.
    After every reply fragment the server pushes the whole transcript.
    """
    client_id = client_id or uuid.uuid4().hex
    await manager.connect(websocket, client_id)

    async def reply(message: dict) -> None:
        await manager.send_message(client_id, message, websocket)

    async def push(messages: List[ChatMessage]) -> None:
        await reply(transcript_message(messages, sending=True))

    try:
        while True:
            try:
                data = json.loads(await websocket.receive_text())
            except json.JSONDecodeError:
                data = None
            if not isinstance(data, dict):
                logger.warning(f"Malformed chat message from {client_id}")
                await reply({
                    "type": "error",
                    "message": "Malformed message: expected a JSON object.",
                })
                continue

            msg_type = data.get("type", "unknown")
            logger.debug(f"Chat message from {client_id}: {msg_type}")

            if msg_type == "message":
                transcript = service.transcript
                if transcript is None:
                    await reply({
                        "type": "error",
                        "message": "No diagnosis to chat about.",
                    })
                    continue

                text = str(data.get("text", ""))
                if not transcript.can_send(text):
                    await reply({
                        "type": "busy",
                        "message": "Wait for the current reply to finish." if transcript.is_sending
                        else "Enter a message first.",
                    })
                    continue

                await transcript.send(text, push)
                await reply(transcript_message(transcript.messages, sending=False))

            elif msg_type == "history":
                await reply(transcript_message(service.chat_messages(), sending=False))

            elif msg_type == "ping":
                await reply({
                    "type": "pong",
                    "timestamp": datetime.now().isoformat(),
                })

            else:
                await reply({
                    "type": "error",
                    "message": f"Unknown message type: {msg_type}",
                })

    except WebSocketDisconnect:
        logger.info(f"Chat client {client_id} closed the connection")
    finally:
        manager.disconnect(client_id, websocket)
