"""
WebSocket connection manager for the chat relay.

Tracks two kinds of channels:
- a private channel per user (every authenticated connection joins it)
- a room per conversation (joined explicitly after the access gate passes)

Nothing here is persisted; the manager only fans frames out to sockets.
"""

from typing import Any, Dict, Set
from uuid import UUID
import asyncio
import json
import logging

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


def build_frame(event: str, data: Any) -> dict:
    """Wire format for every server-to-client frame."""
    return {"event": event, "data": data}


class ConnectionManager:
    """Manages WebSocket connections per user and per conversation room."""

    def __init__(self):
        # user_id -> set of active WebSocket connections
        self._connections: Dict[UUID, Set[WebSocket]] = {}
        # conversation_id -> sockets joined to that room
        self._rooms: Dict[UUID, Set[WebSocket]] = {}
        # socket -> conversation rooms it joined (for cleanup on disconnect)
        self._socket_rooms: Dict[WebSocket, Set[UUID]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, user_id: UUID) -> None:
        """Accept and register a new WebSocket connection."""
        await websocket.accept()
        await self.register(websocket, user_id)

    async def register(self, websocket: WebSocket, user_id: UUID) -> None:
        """Add an accepted connection to its user's private channel."""
        async with self._lock:
            self._connections.setdefault(user_id, set()).add(websocket)
            self._socket_rooms.setdefault(websocket, set())

    async def disconnect(self, websocket: WebSocket, user_id: UUID) -> None:
        """Remove a WebSocket connection and drop it from every room."""
        async with self._lock:
            self._discard(websocket, user_id)

    def _discard(self, websocket: WebSocket, user_id: UUID | None) -> None:
        if user_id is not None and user_id in self._connections:
            self._connections[user_id].discard(websocket)
            if not self._connections[user_id]:
                del self._connections[user_id]

        for conversation_id in self._socket_rooms.pop(websocket, set()):
            members = self._rooms.get(conversation_id)
            if members is None:
                continue
            members.discard(websocket)
            if not members:
                del self._rooms[conversation_id]

    async def join_room(self, websocket: WebSocket, conversation_id: UUID) -> None:
        """Subscribe a connection to a conversation room."""
        async with self._lock:
            self._rooms.setdefault(conversation_id, set()).add(websocket)
            self._socket_rooms.setdefault(websocket, set()).add(conversation_id)

    async def leave_room(self, websocket: WebSocket, conversation_id: UUID) -> None:
        async with self._lock:
            members = self._rooms.get(conversation_id)
            if members is not None:
                members.discard(websocket)
                if not members:
                    del self._rooms[conversation_id]
            if websocket in self._socket_rooms:
                self._socket_rooms[websocket].discard(conversation_id)

    def is_in_room(self, websocket: WebSocket, conversation_id: UUID) -> bool:
        return conversation_id in self._socket_rooms.get(websocket, set())

    async def _send(self, targets: Set[WebSocket], message: dict) -> None:
        if not targets:
            return

        data = json.dumps(jsonable_encoder(message))
        closed = []

        for ws in targets:
            try:
                await ws.send_text(data)
            except Exception:
                # Connection closed or errored
                closed.append(ws)

        if closed:
            logger.debug("Dropping %d closed websocket(s)", len(closed))
            async with self._lock:
                for ws in closed:
                    owner = next(
                        (uid for uid, conns in self._connections.items() if ws in conns),
                        None,
                    )
                    self._discard(ws, owner)

    async def send_to_user(self, user_id: UUID, message: dict) -> None:
        """Send a message to all connections for a specific user."""
        async with self._lock:
            connections = self._connections.get(user_id, set()).copy()
        await self._send(connections, message)

    async def broadcast_to_room(
        self,
        conversation_id: UUID,
        message: dict,
        exclude: WebSocket | None = None,
    ) -> None:
        """Send a message to every connection joined to a conversation room."""
        async with self._lock:
            members = self._rooms.get(conversation_id, set()).copy()
        if exclude is not None:
            members.discard(exclude)
        await self._send(members, message)

    def get_connected_count(self, user_id: UUID) -> int:
        """Get the number of active connections for a user."""
        return len(self._connections.get(user_id, set()))

    def get_room_size(self, conversation_id: UUID) -> int:
        return len(self._rooms.get(conversation_id, set()))

    def get_total_connections(self) -> int:
        """Get total number of active connections across all users."""
        return sum(len(conns) for conns in self._connections.values())


# Singleton instance
manager = ConnectionManager()
