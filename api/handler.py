from aiohttp import web, WSMsgType

from api.codec import format_timestamp
from api.relay import RelayEngine
from database_client.store import Store, StoreError
from logging_config import get_logger
from room_con.room import RoomController
from room_con.socket_client import socket_client

logger = get_logger(__name__)


class API:
    Address: str
    port: int
    Handler: web.Application
    DataHandler: Store
    RoomHandler: RoomController

    def __init__(self, DataHandler: Store, address: str, port: int, RoomHandler: RoomController | None = None):
        self.Address = address
        self.port = port
        self.Handler = web.Application()
        self.DataHandler = DataHandler
        self.RoomHandler = RoomHandler or RoomController()
        self.relay = RelayEngine(self.DataHandler, self.RoomHandler)
        self.clients: set[socket_client] = set()
        self.runner: web.AppRunner | None = None
        self.add_routes()

    async def run(self):
        self.runner = web.AppRunner(self.Handler)
        await self.runner.setup()
        site = web.TCPSite(self.runner, self.Address, self.port)
        await site.start()
        logger.info(f"Relay listening on ws://{self.Address}:{self.port}/ws")

    async def cleanup(self):
        logger.info("Shutting down...")

        for client in list(self.clients):
            if client.ws is not None and not client.ws.closed:
                await client.ws.close()

        # Cleanup web runner
        if self.runner:
            await self.runner.cleanup()

        await self.DataHandler.close()
        logger.info("Cleanup complete")

    def add_routes(self):
        """
        Set of adding routes to the API.
        """
        self.Handler.add_routes([
            web.get('/ws', self.websocket),
            web.get('/rooms', self.get_rooms),
            web.get('/rooms/{code}', self.get_room),
            web.get('/rooms/{code}/messages', self.get_messages),
            web.get('/rooms/{code}/users', self.get_users),
        ])

    def room_summary(self, room) -> dict:
        return {
            "id": room.id,
            "code": room.code,
            "name": room.name,
            "description": room.description,
            "createdAt": format_timestamp(room.created_at),
            "userCount": self.RoomHandler.count_of(room.code),
        }

    async def get_rooms(self, request: web.Request):
        try:
            rooms = await self.DataHandler.get_rooms()
        except StoreError:
            return web.json_response({"error": "Storage unavailable"}, status=503)
        return web.json_response([self.room_summary(room) for room in rooms])

    async def get_room(self, request: web.Request):
        code = request.match_info["code"]
        try:
            room = await self.DataHandler.get_room_by_code(code)
        except StoreError:
            return web.json_response({"error": "Storage unavailable"}, status=503)
        if room is None:
            return web.json_response({"error": "Room not found"}, status=404)
        return web.json_response(self.room_summary(room))

    async def get_messages(self, request: web.Request):
        code = request.match_info["code"]
        try:
            messages = await self.DataHandler.get_messages_by_room_code(code)
        except StoreError:
            return web.json_response({"error": "Storage unavailable"}, status=503)
        return web.json_response([
            {
                "id": msg.id,
                "type": msg.type,
                "userId": msg.user_id,
                "message": msg.content,
                "timestamp": format_timestamp(msg.timestamp),
            }
            for msg in messages
        ])

    async def get_users(self, request: web.Request):
        code = request.match_info["code"]
        try:
            users = await self.DataHandler.get_users_in_room_by_code(code)
        except StoreError:
            return web.json_response({"error": "Storage unavailable"}, status=503)
        return web.json_response(users)

    async def websocket(self, request: web.Request):
        client = socket_client()
        ws = await client.prepare(request)
        client.start()
        self.clients.add(client)
        logger.info(f"[WS] connect from {request.remote}")

        try:
            async for msg in ws:
                if msg.type in (WSMsgType.TEXT, WSMsgType.BINARY):
                    await self.relay.handle(client, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    logger.warning(f"[WS] error: {ws.exception()}")
        finally:
            self.clients.discard(client)
            await self.relay.disconnect(client)
            await client.close()
            logger.info(f"[WS] disconnect user={client.user_id}")

        return ws
