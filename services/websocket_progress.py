"""WebSocket fan-out of queue events to clients watching projects."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Dict, Set, Tuple
from uuid import uuid4

from fastapi import WebSocket


class WebSocketProgressManager:
    """Track WebSocket connections and per-project subscriptions."""

    def __init__(self) -> None:
        self._connections: Dict[str, WebSocket] = {}
        self._project_subscriptions: Dict[int, Set[str]] = defaultdict(set)
        self._client_projects: Dict[str, Set[int]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, client_id: str | None = None) -> str:
        """Accept WebSocket connection and register client."""
        client_key = client_id or str(uuid4())
        await websocket.accept()
        async with self._lock:
            self._connections[client_key] = websocket
        return client_key

    async def disconnect(self, client_id: str) -> None:
        """Remove client connection and subscriptions."""
        websocket: WebSocket | None = None
        async with self._lock:
            websocket = self._connections.pop(client_id, None)
            for project_id in self._client_projects.pop(client_id, set()):
                self._discard_subscriber(project_id, client_id)
        if websocket:
            await websocket.close()

    async def subscribe(self, client_id: str, project_id: int) -> None:
        """Subscribe a client to queue events of one project."""
        async with self._lock:
            if client_id not in self._connections:
                raise RuntimeError("Client not connected")
            self._project_subscriptions[project_id].add(client_id)
            self._client_projects[client_id].add(project_id)

    async def unsubscribe(self, client_id: str, project_id: int | None = None) -> None:
        """Unsubscribe a client from a project or from all projects."""
        async with self._lock:
            if client_id not in self._connections:
                return

            if project_id is None:
                project_ids = list(self._client_projects.pop(client_id, set()))
            else:
                project_ids = [project_id]
                self._client_projects.get(client_id, set()).discard(project_id)

            for pid in project_ids:
                self._discard_subscriber(pid, client_id)

    def _discard_subscriber(self, project_id: int, client_id: str) -> None:
        subscribers = self._project_subscriptions.get(project_id)
        if subscribers:
            subscribers.discard(client_id)
            if not subscribers:
                self._project_subscriptions.pop(project_id, None)

    async def send_progress_update(self, project_id: int, progress_data: dict[str, Any]) -> None:
        """Send an event to all subscribers of a project."""
        recipients: list[Tuple[str, WebSocket]] = []
        async with self._lock:
            for client_id in list(self._project_subscriptions.get(project_id, set())):
                websocket = self._connections.get(client_id)
                if websocket:
                    recipients.append((client_id, websocket))

        await self._deliver(recipients, progress_data)

    async def broadcast_system_message(self, message: dict[str, Any]) -> None:
        """Broadcast a message to all connected clients."""
        async with self._lock:
            recipients = list(self._connections.items())

        await self._deliver(recipients, message)

    async def _deliver(self, recipients: list[Tuple[str, WebSocket]], message: dict[str, Any]) -> None:
        for client_id, websocket in recipients:
            try:
                await websocket.send_json(message)
            except Exception:
                await self.disconnect(client_id)

    def connection_count(self) -> int:
        return len(self._connections)

    async def reset(self) -> None:
        """Clear all connections and subscriptions (primarily for tests)."""
        async with self._lock:
            connections = list(self._connections.items())
            self._connections.clear()
            self._project_subscriptions.clear()
            self._client_projects.clear()

        for _, websocket in connections:
            try:
                await websocket.close()
            except Exception:
                continue
