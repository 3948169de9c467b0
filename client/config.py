"""
Client configuration settings.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from shared.constants import (
    REFRESH_DEBOUNCE,
    RECONNECT_DELAY_TIMED_OUT,
    RECONNECT_DELAY_CLOSED,
    RECONNECT_DELAY_ERROR,
)

load_dotenv()


@dataclass
class ClientSettings:
    """Client configuration."""

    # Server connection
    server_host: str = "localhost"
    server_port: int = 8765

    # Reconnection settings
    reconnect_attempts: int = 5
    reconnect_delay: float = 2.0

    # Seconds to wait for a request's response
    request_timeout: float = 10.0

    # Room sync
    refresh_debounce: float = REFRESH_DEBOUNCE
    retry_timed_out: float = RECONNECT_DELAY_TIMED_OUT
    retry_closed: float = RECONNECT_DELAY_CLOSED
    retry_error: float = RECONNECT_DELAY_ERROR

    @property
    def server_url(self) -> str:
        return f"ws://{self.server_host}:{self.server_port}"


def load_settings() -> ClientSettings:
    """Load settings from environment variables."""
    return ClientSettings(
        server_host=os.getenv("WORDWAVE_SERVER_HOST", "localhost"),
        server_port=int(os.getenv("WORDWAVE_SERVER_PORT", "8765")),
        reconnect_attempts=int(os.getenv("WORDWAVE_RECONNECT_ATTEMPTS", "5")),
        reconnect_delay=float(os.getenv("WORDWAVE_RECONNECT_DELAY", "2.0")),
        request_timeout=float(os.getenv("WORDWAVE_REQUEST_TIMEOUT", "10.0")),
        refresh_debounce=float(os.getenv("WORDWAVE_REFRESH_DEBOUNCE", str(REFRESH_DEBOUNCE))),
        retry_timed_out=float(os.getenv("WORDWAVE_RETRY_TIMED_OUT", str(RECONNECT_DELAY_TIMED_OUT))),
        retry_closed=float(os.getenv("WORDWAVE_RETRY_CLOSED", str(RECONNECT_DELAY_CLOSED))),
        retry_error=float(os.getenv("WORDWAVE_RETRY_ERROR", str(RECONNECT_DELAY_ERROR))),
    )


settings = load_settings()
