"""
Server configuration loaded from environment variables.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

from shared.constants import (
    DEFAULT_MAX_PLAYERS,
    DEFAULT_ROUND_TIME,
    DEFAULT_ROUNDS,
)

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Server configuration."""

    # Server settings
    HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
    PORT: int = int(os.getenv("SERVER_PORT", "8765"))

    # Database
    DATABASE_PATH: Path = Path(os.getenv("DATABASE_PATH", "./data/wordwave.db"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # External dictionary fallback
    DICTIONARY_FALLBACK: bool = _env_flag("DICTIONARY_FALLBACK", "true")
    DICTIONARY_API_URL: str = os.getenv(
        "DICTIONARY_API_URL",
        "https://api.dictionaryapi.dev/api/v2/entries/en/"
    )
    DICTIONARY_TIMEOUT: float = float(os.getenv("DICTIONARY_TIMEOUT", "3.0"))

    # Room defaults
    DEFAULT_MAX_PLAYERS: int = int(os.getenv("DEFAULT_MAX_PLAYERS", str(DEFAULT_MAX_PLAYERS)))
    DEFAULT_ROUND_TIME: int = int(os.getenv("DEFAULT_ROUND_TIME", str(DEFAULT_ROUND_TIME)))
    DEFAULT_ROUNDS: int = int(os.getenv("DEFAULT_ROUNDS", str(DEFAULT_ROUNDS)))

    # Finish an in-game room when fewer than two players remain active
    FINISH_ON_LAST_PLAYER: bool = _env_flag("FINISH_ON_LAST_PLAYER", "false")

    # Extra attempts for a failed turn commit
    COMMIT_RETRIES: int = int(os.getenv("COMMIT_RETRIES", "1"))

    @classmethod
    def ensure_directories(cls) -> None:
        """Create necessary directories if they don't exist."""
        cls.DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)


config = Config()
settings = config  # Alias for backward compatibility
