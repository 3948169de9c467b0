"""
Database connection management and initialization.
"""

import sqlite3
import threading
from pathlib import Path
from contextlib import contextmanager
from typing import Generator

from server.config import settings
from shared.constants import SEED_WORDS, DEFAULT_LANGUAGE


class Database:
    """
    Thread-safe SQLite database manager.

    Handles per-thread connections and schema initialization.
    """

    _local = threading.local()
    _initialized_paths: set[str] = set()
    _init_lock = threading.Lock()

    def __init__(self, db_path: str | None = None):
        self.db_path = str(db_path or settings.DATABASE_PATH)
        self._ensure_directory()
        self._ensure_schema()

    def _ensure_directory(self) -> None:
        """Create database directory if it doesn't exist."""
        db_file = Path(self.db_path)
        db_file.parent.mkdir(parents=True, exist_ok=True)

    def _ensure_schema(self) -> None:
        """Initialize database schema (once per database file)."""
        with Database._init_lock:
            if self.db_path not in Database._initialized_paths:
                with self.get_connection() as conn:
                    self._create_tables(conn)
                Database._initialized_paths.add(self.db_path)

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get a thread-local database connection.

        Everything executed inside the block is one transaction: committed
        on exit, rolled back if the block raises.

        Usage:
            with db.get_connection() as conn:
                cursor = conn.execute("SELECT ...")
        """
        conn = getattr(Database._local, "connection", None)
        if conn is None or getattr(Database._local, "path", None) != self.db_path:
            if conn is not None:
                conn.close()
            conn = self._create_connection()
            Database._local.connection = conn
            Database._local.path = self.db_path

        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def _create_connection(self) -> sqlite3.Connection:
        """Create a new database connection with optimal settings."""
        conn = sqlite3.connect(
            self.db_path,
            check_same_thread=False,
            timeout=30.0
        )

        # Enable foreign keys
        conn.execute("PRAGMA foreign_keys = ON")

        # Use WAL mode for better concurrent access
        conn.execute("PRAGMA journal_mode = WAL")

        # Return rows as dictionaries
        conn.row_factory = sqlite3.Row

        return conn

    def _create_tables(self, conn: sqlite3.Connection) -> None:
        """Create all database tables and seed the word list."""
        conn.executescript(SCHEMA_SQL)
        conn.executemany(
            "INSERT OR IGNORE INTO dictionary_words (word, language) VALUES (?, ?)",
            [(word, DEFAULT_LANGUAGE) for word in SEED_WORDS]
        )

    def close_connection(self) -> None:
        """Close the current thread's connection."""
        conn = getattr(Database._local, "connection", None)
        if conn is not None:
            conn.close()
            Database._local.connection = None
            Database._local.path = None

    def reset_database(self) -> None:
        """Drop and recreate all tables. USE WITH CAUTION."""
        with self.get_connection() as conn:
            conn.execute("PRAGMA foreign_keys = OFF")
            cursor = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
            )
            tables = [row['name'] for row in cursor.fetchall()]

            for table in tables:
                conn.execute(f"DROP TABLE IF EXISTS {table}")

            self._create_tables(conn)
            conn.execute("PRAGMA foreign_keys = ON")

        Database._initialized_paths.add(self.db_path)


SCHEMA_SQL = """
-- Users: opaque identities supplied by the auth collaborator
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    display_name TEXT NOT NULL,
    avatar_url TEXT,
    is_guest INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    last_seen TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Rooms: lifecycle and turn state
CREATE TABLE IF NOT EXISTS rooms (
    id TEXT PRIMARY KEY,
    host_id TEXT NOT NULL,
    name TEXT NOT NULL,
    max_players INTEGER NOT NULL DEFAULT 4 CHECK (max_players BETWEEN 2 AND 8),
    round_time_seconds INTEGER NOT NULL DEFAULT 15,
    rounds INTEGER NOT NULL DEFAULT 10,
    status TEXT NOT NULL DEFAULT 'lobby' CHECK (status IN ('lobby', 'in_game', 'finished')),
    current_round INTEGER NOT NULL DEFAULT 0 CHECK (current_round >= 0),
    current_player_turn TEXT,
    last_word TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    started_at TIMESTAMP,
    finished_at TIMESTAMP
);

-- Players: one row per (room, user)
CREATE TABLE IF NOT EXISTS players (
    id TEXT PRIMARY KEY,
    room_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    display_name TEXT NOT NULL,
    avatar_url TEXT,
    score INTEGER NOT NULL DEFAULT 0 CHECK (score >= 0),
    turn_order INTEGER NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    eliminated_at TIMESTAMP,
    joined_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,

    UNIQUE (room_id, user_id),
    UNIQUE (room_id, turn_order),
    FOREIGN KEY (room_id) REFERENCES rooms(id) ON DELETE CASCADE
);

-- Rounds: at most one open round per room
CREATE TABLE IF NOT EXISTS rounds (
    id TEXT PRIMARY KEY,
    room_id TEXT NOT NULL,
    round_number INTEGER NOT NULL,
    started_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    ended_at TIMESTAMP,
    winner_id TEXT,
    turns_taken INTEGER NOT NULL DEFAULT 0,

    UNIQUE (room_id, round_number),
    FOREIGN KEY (room_id) REFERENCES rooms(id) ON DELETE CASCADE
);

-- Moves: append-only word submissions
CREATE TABLE IF NOT EXISTS moves (
    id TEXT PRIMARY KEY,
    seq INTEGER NOT NULL,
    round_id TEXT NOT NULL,
    room_id TEXT NOT NULL,
    player_id TEXT,
    user_id TEXT NOT NULL,
    word TEXT NOT NULL,
    normalized_word TEXT NOT NULL,
    submitted_at TIMESTAMP NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    is_valid INTEGER NOT NULL DEFAULT 0,
    validation_reason TEXT NOT NULL,
    time_taken_ms INTEGER NOT NULL DEFAULT 0,
    points_awarded INTEGER NOT NULL DEFAULT 0,
    chain_valid INTEGER NOT NULL DEFAULT 0,

    UNIQUE (room_id, seq),
    FOREIGN KEY (round_id) REFERENCES rounds(id) ON DELETE CASCADE,
    FOREIGN KEY (room_id) REFERENCES rooms(id) ON DELETE CASCADE,
    FOREIGN KEY (player_id) REFERENCES players(id) ON DELETE SET NULL
);

-- Dictionary: normalized word keys
CREATE TABLE IF NOT EXISTS dictionary_words (
    word TEXT PRIMARY KEY,
    language TEXT NOT NULL DEFAULT 'en',
    definition TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Multiplayer aggregates
CREATE TABLE IF NOT EXISTS leaderboards (
    user_id TEXT PRIMARY KEY,
    total_games INTEGER NOT NULL DEFAULT 0,
    total_wins INTEGER NOT NULL DEFAULT 0,
    total_points INTEGER NOT NULL DEFAULT 0,
    best_word TEXT,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Solo aggregates, kept apart from multiplayer
CREATE TABLE IF NOT EXISTS solo_stats (
    user_id TEXT PRIMARY KEY,
    total_games INTEGER NOT NULL DEFAULT 0,
    total_points INTEGER NOT NULL DEFAULT 0,
    best_streak INTEGER NOT NULL DEFAULT 0,
    average_time_ms INTEGER NOT NULL DEFAULT 0,
    favorite_word TEXT,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Indexes for common queries
CREATE INDEX IF NOT EXISTS idx_players_room_id ON players(room_id);
CREATE INDEX IF NOT EXISTS idx_rounds_room_id ON rounds(room_id);
CREATE INDEX IF NOT EXISTS idx_moves_room_id ON moves(room_id);
CREATE INDEX IF NOT EXISTS idx_moves_room_word ON moves(room_id, normalized_word);
CREATE INDEX IF NOT EXISTS idx_rooms_status ON rooms(status);
CREATE UNIQUE INDEX IF NOT EXISTS idx_rounds_one_open
    ON rounds(room_id) WHERE ended_at IS NULL;
"""


# Global database instance
_db: Database | None = None


def get_database() -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database()
    return _db


def init_database(db_path: str | None = None) -> Database:
    """Initialize the database with optional custom path."""
    global _db
    # Force schema creation for the requested path
    Database._initialized_paths.discard(str(db_path or settings.DATABASE_PATH))
    _db = Database(db_path)
    return _db
