"""
WebSocket routes for live rollout job updates.
"""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from typing import Dict, Set
import logging
import json
from datetime import datetime
import uuid

from rollout.errors import NotFound
import rollout.services.registry as registry_service

logger = logging.getLogger(__name__)
router = APIRouter()

# WebSocket connection management
class ConnectionManager:
    """Manages WebSocket connections for job updates."""

    def __init__(self):
        # Map job_id to set of WebSocket connections
        self.active_connections: Dict[str, Set[WebSocket]] = {}
        # Map WebSocket to job_id for cleanup
        self.connection_jobs: Dict[WebSocket, str] = {}

    async def connect(self, websocket: WebSocket, job_id: str):
        """Accept a WebSocket connection for a specific job."""
        await websocket.accept()
        self.active_connections.setdefault(job_id, set()).add(websocket)
        self.connection_jobs[websocket] = job_id
        logger.info(f"WebSocket connected for job {job_id}")

    def disconnect(self, websocket: WebSocket):
        """Remove a WebSocket connection."""
        job_id = self.connection_jobs.pop(websocket, None)
        if job_id is None:
            return
        connections = self.active_connections.get(job_id)
        if connections is not None:
            connections.discard(websocket)
            if not connections:
                del self.active_connections[job_id]
        logger.info(f"WebSocket disconnected for job {job_id}")

    async def send_message(self, job_id: str, message: dict):
        """Send a message to all connections for a specific job."""
        if job_id not in self.active_connections:
            return

        message_json = json.dumps(message)
        disconnected = set()

        for connection in list(self.active_connections[job_id]):
            try:
                await connection.send_text(message_json)
            except Exception as e:
                logger.warning(f"Failed to send message to WebSocket: {e}")
                disconnected.add(connection)

        # Clean up disconnected connections
        for connection in disconnected:
            self.disconnect(connection)

    async def broadcast_to_job(self, job_id: str, message_type: str, data: dict):
        """Broadcast a structured message to all connections for a job."""
        message = {
            "type": message_type,
            "job_id": job_id,
            "timestamp": datetime.now().isoformat(),
            "data": data
        }
        await self.send_message(job_id, message)

# Global connection manager
manager = ConnectionManager()

@router.websocket("/ws/jobs/{job_id}")
async def websocket_endpoint(websocket: WebSocket, job_id: str):
    """
    WebSocket endpoint for rollout job updates.

    Accepts connections on /ws/jobs/{job_id} and streams:
    - progress counters
    - per-destination outcomes
    - the terminal state and message
    """
    try:
        try:
            uuid.UUID(job_id)
        except ValueError:
            await websocket.close(code=4000, reason="Invalid job_id format")
            return

        await manager.connect(websocket, job_id)

        snapshot = None
        if registry_service.registry is not None:
            try:
                snapshot = registry_service.registry.get(job_id).model_dump(mode="json")
            except NotFound:
                snapshot = None

        await websocket.send_text(json.dumps({
            "type": "connected",
            "job_id": job_id,
            "timestamp": datetime.now().isoformat(),
            "message": "Connected to job updates",
            "data": snapshot,
        }))

        while True:
            try:
                data = await websocket.receive_text()
                message = json.loads(data)

                if message.get("type") == "ping":
                    await websocket.send_text(json.dumps({
                        "type": "pong",
                        "timestamp": datetime.now().isoformat()
                    }))

            except WebSocketDisconnect:
                break
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON received from WebSocket for job {job_id}")
                continue

    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket)

async def broadcast_job_update(job_id: str, message_type: str, data: dict):
    """Broadcast a job update to all connected WebSocket clients."""
    await manager.broadcast_to_job(job_id, message_type, data)
