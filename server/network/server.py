"""
WebSocket server for WordWave.

Main entry point that ties together connection management, room and
solo management, message handling and the store change feed.
"""

import asyncio
import json
import logging
import signal
from typing import Any

import websockets
from websockets.asyncio.server import ServerConnection, serve

from server.config import settings
from server.game_engine import WordRules, DictionaryGate, ExternalDictionary, TurnClock
from server.persistence import init_database, WordWaveRepository, ChangeFeed, ChangeEvent, UserRecord
from server.network.connection_manager import ConnectionManager
from server.network.room_manager import RoomManager
from server.network.solo_manager import SoloManager
from server.network.message_handler import MessageHandler
from shared.protocol import Message, ErrorMessage, RoomChangedMessage
from shared.enums import MessageType, ErrorCode


logger = logging.getLogger(__name__)


def build_rules(repository: WordWaveRepository) -> WordRules:
    """Word rules backed by the stored word list and, if enabled, the external dictionary."""
    lookup = None
    if settings.DICTIONARY_FALLBACK:
        lookup = ExternalDictionary(settings.DICTIONARY_API_URL, settings.DICTIONARY_TIMEOUT)
    return WordRules(DictionaryGate(repository, lookup))


class WordWaveServer:
    """
    WebSocket server for WordWave rooms and solo games.

    Handles client connections, routes messages, and relays committed
    store changes to every connection subscribed to the affected room.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        db_path: str | None = None
    ):
        self.host = host or settings.HOST
        self.port = port or settings.PORT

        # Initialize database
        db = init_database(db_path)
        self._changes = ChangeFeed()
        self._repository = WordWaveRepository(db, self._changes)

        # Initialize managers
        rules = build_rules(self._repository)
        self._connections = ConnectionManager()
        self._rooms = RoomManager(self._repository, rules, self._connections, TurnClock())
        self._solo = SoloManager(self._repository, rules, self._connections, TurnClock())
        self._handler = MessageHandler(self._rooms, self._solo, self._connections, self._repository)

        # Change relay
        self._unsubscribe_changes = None
        self._relay_tasks: set[asyncio.Task] = set()

        # Server state
        self._server = None
        self._running = False
        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Start the WebSocket server."""
        self._running = True
        self._shutdown_event.clear()

        self._unsubscribe_changes = self._changes.subscribe_all(self._on_change)
        self._rooms.resume_clocks()

        self._server = await serve(
            self._handle_client,
            self.host,
            self.port,
            ping_interval=30,
            ping_timeout=10,
        )

        logger.info(f"WordWave server started on ws://{self.host}:{self.port}")

        # Wait for shutdown signal
        await self._shutdown_event.wait()

    async def stop(self) -> None:
        """Stop the server gracefully."""
        logger.info("Shutting down server...")
        self._running = False

        if self._server:
            self._server.close()
            await self._server.wait_closed()

        if self._unsubscribe_changes:
            self._unsubscribe_changes()
            self._unsubscribe_changes = None

        await self._rooms.shutdown()
        await self._solo.shutdown()
        if self._relay_tasks:
            await asyncio.gather(*self._relay_tasks, return_exceptions=True)

        self._shutdown_event.set()
        logger.info("Server stopped")

    def request_shutdown(self) -> None:
        """Request server shutdown (can be called from signal handler)."""
        asyncio.create_task(self.stop())

    # =========================================================================
    # Change relay
    # =========================================================================

    def _on_change(self, event: ChangeEvent) -> None:
        """Forward a committed store change to the room's subscribers."""
        if not self._connections.get_subscribers(event.room_id):
            return

        message = RoomChangedMessage.create(
            event.room_id,
            event.table,
            event.kind.value,
            event.row
        )
        task = asyncio.get_running_loop().create_task(
            self._connections.publish(event.room_id, message)
        )
        self._relay_tasks.add(task)
        task.add_done_callback(self._relay_tasks.discard)

    # =========================================================================
    # Client lifecycle
    # =========================================================================

    async def _handle_client(self, websocket: ServerConnection) -> None:
        """
        Handle a client connection.

        The first message must be a CONNECT message carrying the user's
        identity. After that, messages are routed through the message handler.
        """
        user_id = None

        try:
            user_id = await self._handle_connect(websocket)

            if not user_id:
                return

            async for raw_message in websocket:
                if not self._running:
                    break

                await self._handle_message(websocket, user_id, raw_message)

        except websockets.ConnectionClosed:
            logger.debug(f"Connection closed for user {user_id}")
        except Exception as e:
            logger.exception(f"Error handling client {user_id}: {e}")
        finally:
            if user_id:
                await self._connections.disconnect(websocket)

    async def _handle_connect(self, websocket: ServerConnection) -> str | None:
        """
        Handle the initial CONNECT message.

        Expects user_id and display_name; avatar_url and is_guest are
        optional. Returns user_id if successful, None otherwise.
        """
        try:
            raw = await asyncio.wait_for(websocket.recv(), timeout=30.0)
            data = json.loads(raw)

            if data.get("type") != MessageType.CONNECT.value:
                await self._send_error(websocket, "First message must be CONNECT", ErrorCode.NOT_CONNECTED)
                return None

            payload = data.get("data", {})
            user_id = payload.get("user_id")
            if not user_id:
                await self._send_error(websocket, "user_id is required", ErrorCode.MISSING_FIELD)
                return None

            user = self._repository.upsert_user(UserRecord(
                id=user_id,
                display_name=payload.get("display_name") or "Player",
                avatar_url=payload.get("avatar_url"),
                is_guest=bool(payload.get("is_guest", False)),
            ))

            connection = await self._connections.connect(
                websocket,
                user.id,
                user.display_name,
                avatar_url=user.avatar_url,
                is_guest=user.is_guest,
            )

            await websocket.send(Message(
                type=MessageType.CONNECT,
                data={
                    "success": True,
                    "user_id": user.id,
                    "display_name": user.display_name,
                    "rooms": sorted(connection.rooms),
                },
                request_id=data.get("request_id"),
            ).to_json())

            return user.id

        except asyncio.TimeoutError:
            await self._send_error(websocket, "Connection timeout", ErrorCode.NOT_CONNECTED)
            return None
        except json.JSONDecodeError:
            await self._send_error(websocket, "Invalid JSON", ErrorCode.PARSE_ERROR)
            return None

    async def _handle_message(
        self,
        websocket: ServerConnection,
        user_id: str,
        raw_message: str
    ) -> None:
        """Handle an incoming message from a connected user."""
        result = await self._handler.handle_message(user_id, raw_message)

        if result.response:
            await self._connections.send_to_connection(websocket, result.response)

        if result.broadcasts and result.room_id:
            exclude = user_id if result.exclude_sender else None
            for broadcast in result.broadcasts:
                await self._connections.publish(result.room_id, broadcast, exclude_user_id=exclude)

    async def _send_error(
        self,
        websocket: ServerConnection,
        message: str,
        code: ErrorCode
    ) -> None:
        """Send an error message to a websocket."""
        try:
            await websocket.send(ErrorMessage.create(message, code.value).to_json())
        except websockets.ConnectionClosed:
            logger.debug("Could not send error, connection already closed")

    def get_stats(self) -> dict[str, Any]:
        """Get server statistics."""
        return {
            "running": self._running,
            "connections": self._connections.get_stats(),
        }


async def run_server(host: str | None = None, port: int | None = None, db_path: str | None = None) -> None:
    """
    Run the WordWave server.

    Sets up signal handlers for graceful shutdown.
    """
    server = WordWaveServer(host, port, db_path)

    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, server.request_shutdown)

    try:
        await server.start()
    finally:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)


def main():
    """Entry point for running the server."""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    print(f"Starting WordWave server on ws://{settings.HOST}:{settings.PORT}")
    print("Press Ctrl+C to stop")

    try:
        asyncio.run(run_server())
    except KeyboardInterrupt:
        print("\nServer stopped")


if __name__ == "__main__":
    main()
