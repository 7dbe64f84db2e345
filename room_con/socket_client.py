import asyncio
from contextlib import suppress

from aiohttp import web

from api.codec import OutboundEvent, encode
from logging_config import get_logger

logger = get_logger(__name__)


class socket_client:
    """
    Per-connection session.

    Holds the room code and user id the connection last joined under, and owns
    the only path that writes to the socket: send() queues, a single writer task
    drains the queue in order. A slow or broken socket only backs up its own queue.
    """
    user_id: str | None
    room_code: str | None
    ws: web.WebSocketResponse

    def __init__(self, ws=None):
        self.ws = ws
        self.user_id = None
        self.room_code = None
        self.failed = False
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._writer: asyncio.Task | None = None

    async def prepare(self, request: web.Request) -> web.WebSocketResponse:
        self.ws = web.WebSocketResponse()
        await self.ws.prepare(request)
        return self.ws

    def start(self) -> None:
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop())

    def attach(self, room_code: str, user_id: str) -> None:
        self.room_code = room_code
        self.user_id = user_id

    def detach(self) -> None:
        self.room_code = None

    def send(self, event: OutboundEvent) -> None:
        self.send_raw(encode(event))

    def send_raw(self, payload: str) -> None:
        if self.failed:
            return
        self._queue.put_nowait(payload)

    def is_closed(self) -> bool:
        return self.ws is None or self.ws.closed or self.failed

    async def flush(self) -> None:
        """Wait until everything queued so far has been written or dropped."""
        await self._queue.join()

    async def close(self) -> None:
        if self._writer is not None:
            self._writer.cancel()
            with suppress(asyncio.CancelledError):
                await self._writer
            self._writer = None

    async def _write_loop(self) -> None:
        while True:
            payload = await self._queue.get()
            try:
                if not self.is_closed():
                    await self.ws.send_str(payload)
            except Exception as e:
                self.failed = True
                logger.warning(f"Send failed for user={self.user_id} room={self.room_code}: {e}")
            finally:
                self._queue.task_done()

    def __repr__(self):
        return f"<socket_client(user={self.user_id}, room={self.room_code})>"
