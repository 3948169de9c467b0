"""
WordWave console client.

Connects to the server, keeps one room in sync and plays words typed on
stdin.

Usage:
    python -m client.main NAME
"""

import sys
import asyncio
import logging

from client.config import settings
from client.network.client import NetworkClient
from client.sync import SyncCoordinator, SyncConnectionState


HELP = """Commands:
  list               rooms waiting for players
  create NAME        create a room and join it as host
  join ROOM_ID       join a room
  start              start the game (host only)
  leave              leave the current room
  refresh            ask everyone in the room to re-read it
  quit               exit
Anything else is submitted as a word."""


def setup_logging() -> None:
    """Configure logging."""
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def print_room(aggregate: dict | None) -> None:
    if not aggregate:
        return
    room = aggregate["room"]
    players = ", ".join(
        f"{p['display_name']}:{p['score']}" + ("" if p["is_active"] else " (left)")
        for p in aggregate["players"]
    )
    print(
        f"[{room['name']}] {room['status']} round {room['current_round']}/{room['rounds']}"
        f" | last word: {room['last_word'] or '-'} | turn: {room['current_player_turn'] or '-'}"
        f" | {players}"
    )


class ConsoleSession:
    """One user at the terminal, in at most one room."""

    def __init__(self, client: NetworkClient):
        self.client = client
        self.room_id: str | None = None
        self.sync: SyncCoordinator | None = None

    async def enter_room(self, aggregate: dict | None) -> None:
        if not aggregate:
            print("Request failed")
            return
        await self.exit_room()
        self.room_id = aggregate["room"]["id"]
        self.sync = SyncCoordinator(
            self.room_id,
            self.client,
            on_state=print_room,
            on_typing=lambda sender, payload: None,
            on_connection=self._on_connection,
        )
        await self.sync.open()
        print(f"In room {self.room_id}")

    async def exit_room(self) -> None:
        if self.sync:
            await self.sync.close()
        self.sync = None
        self.room_id = None

    @staticmethod
    def _on_connection(state: SyncConnectionState) -> None:
        if state != SyncConnectionState.CONNECTED:
            print(f"(room sync {state.value})")

    async def handle(self, line: str) -> bool:
        command, _, argument = line.strip().partition(" ")
        if not command:
            return True

        if command == "quit":
            return False
        if command == "help":
            print(HELP)
        elif command == "list":
            for room in await self.client.list_rooms() or []:
                print(f"{room['id']}  {room['name']}  {room['player_count']}/{room['max_players']}")
        elif command == "create":
            await self.enter_room(await self.client.create_room(argument or "WordWave room"))
        elif command == "join":
            await self.enter_room(await self.client.join_room(argument))
        elif not self.room_id:
            print("Join or create a room first")
        elif command == "start":
            if not await self.client.start_game(self.room_id):
                print("Could not start the game")
        elif command == "leave":
            await self.client.leave_room(self.room_id)
            await self.exit_room()
        elif command == "refresh":
            await self.sync.force_refresh()
        else:
            await self.submit(line.strip())
        return True

    async def submit(self, word: str) -> None:
        result = await self.client.submit_word(self.room_id, word)
        if result is None:
            print("No answer from server")
            return
        if "is_valid" not in result:
            print(f"Refused: {result.get('message')}")
            self.sync.refresh()
            return
        if result["is_valid"]:
            print(f"+{result['points']} points")
            self.sync.submitted(word)
        else:
            print(f"Rejected: {result['reason']}")
            self.sync.submitted()


async def main_async(name: str) -> int:
    client = NetworkClient(settings)
    client.on_error = lambda error: print(f"! {error}")

    if not await client.connect(name):
        return 1

    session = ConsoleSession(client)
    loop = asyncio.get_running_loop()
    print(HELP)
    try:
        while True:
            line = await loop.run_in_executor(None, input, "> ")
            if not await session.handle(line):
                break
    except EOFError:
        pass
    finally:
        await session.exit_room()
        await client.disconnect()
    return 0


def main() -> int:
    """Main entry point."""
    setup_logging()
    name = sys.argv[1] if len(sys.argv) > 1 else "Player"
    try:
        return asyncio.run(main_async(name))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
