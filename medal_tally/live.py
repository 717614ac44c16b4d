"""
Websocket fan-out of leaderboard snapshots.
"""

from typing import Optional, Set

from aiohttp import WSMsgType, web

from .channel import Subscription, build_update_message
from .logger import get_logger
from .models import Snapshot
from .store import StateStore

log = get_logger("medal_tally.live")


class LiveUpdateHub:
    """Pushes every snapshot the replica accepts to connected websockets."""

    def __init__(self, replica: StateStore) -> None:
        self.replica = replica
        self.sockets: Set[web.WebSocketResponse] = set()
        self._subscription: Optional[Subscription] = None

    def start(self) -> None:
        if self._subscription is None:
            self._subscription = self.replica.subscribe(self.broadcast)

    async def broadcast(self, snapshot: Snapshot) -> int:
        """
        Send a snapshot to every open websocket.

        @param snapshot: Snapshot accepted by the replica
        @return: Number of sockets the message was sent to
        """
        message = build_update_message(snapshot.to_document())
        sent = 0
        for ws in list(self.sockets):
            if ws.closed:
                self.sockets.discard(ws)
                continue
            try:
                await ws.send_json(message)
                sent += 1
            except ConnectionResetError:
                self.sockets.discard(ws)
        return sent

    async def handle(
        self,
        request: web.Request,
    ) -> web.WebSocketResponse:
        """
        Websocket endpoint; sends the current snapshot on connect.

        @param request: HTTP upgrade request
        @return: WebSocket response, closed when the client leaves
        """
        ws = web.WebSocketResponse(heartbeat=30)
        await ws.prepare(request)

        self.sockets.add(ws)
        log.info(f"Live client connected ({len(self.sockets)} open)")

        try:
            await ws.send_json(build_update_message(self.replica.snapshot.to_document()))
            async for msg in ws:
                if msg.type == WSMsgType.ERROR:
                    log.warning(f"Websocket closed with exception {ws.exception()}")
        finally:
            self.sockets.discard(ws)
            log.info(f"Live client disconnected ({len(self.sockets)} open)")

        return ws

    async def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        for ws in list(self.sockets):
            await ws.close()
        self.sockets.clear()
