"""
Connector Runtime Configuration

Reads configuration from environment variables with sensible defaults.
Credentials are static and pre-issued; the room platform hands them out
once and the connector only ever reads them.
"""

import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


def _env_optional_float(name: str) -> Optional[float]:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return None
    return float(value)


@dataclass
class BotConfig:
    """Configuration for one connector instance (one room)."""

    # Room platform credentials
    ws_url: Optional[str] = None
    room_id: Optional[str] = None
    room_name: str = "Default Club"
    account_id: Optional[str] = None
    endpoint: Optional[str] = None
    key: Optional[str] = None

    # Completion service
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-3.5-turbo"
    openai_base_url: Optional[str] = None
    completion_max_tokens: int = 200
    completion_temperature: float = 0.8

    # Session behaviour
    reconnect_delay: float = 5.0
    max_session_seconds: Optional[float] = None  # None = sessions live until closed
    require_auth_ack: bool = False
    autostart: bool = True

    # Chat behaviour
    command_prefix: str = "/"
    chunk_size: int = 150
    chunk_delay: float = 1.0
    history_turns: int = 10
    context_max_users: int = 200

    # Paths
    data_dir: Path = Path("data")

    def __post_init__(self):
        self.command_prefix = self.command_prefix.strip()
        if not self.command_prefix:
            raise ValueError("JACK_COMMAND_PREFIX must not be empty")
        if self.chunk_size < 1:
            raise ValueError(f"JACK_CHUNK_SIZE must be at least 1, got {self.chunk_size}")
        if self.context_max_users < 1:
            raise ValueError(f"JACK_CONTEXT_MAX_USERS must be at least 1, got {self.context_max_users}")
        if self.history_turns < 0:
            raise ValueError(f"JACK_HISTORY_TURNS must not be negative, got {self.history_turns}")
        if self.reconnect_delay < 0 or self.chunk_delay < 0:
            raise ValueError("JACK_RECONNECT_DELAY and JACK_CHUNK_DELAY must not be negative")

    @classmethod
    def from_env(cls) -> "BotConfig":
        """Load configuration from environment variables."""
        return cls(
            ws_url=os.environ.get("JACK_WS_URL"),
            room_id=os.environ.get("CLUB_CODE"),
            room_name=os.environ.get("CLUB_NAME", "Default Club"),
            account_id=os.environ.get("BOT_UID"),
            endpoint=os.environ.get("EP"),
            key=os.environ.get("KEY"),

            openai_api_key=(
                os.environ.get("JACK_OPENAI_API_KEY") or
                os.environ.get("OPENAI_API_KEY")
            ),
            openai_model=os.environ.get("JACK_OPENAI_MODEL", "gpt-3.5-turbo"),
            openai_base_url=os.environ.get("JACK_OPENAI_BASE_URL"),

            reconnect_delay=float(os.environ.get("JACK_RECONNECT_DELAY", "5")),
            max_session_seconds=_env_optional_float("JACK_MAX_SESSION_SECONDS"),
            require_auth_ack=_env_flag("JACK_REQUIRE_AUTH_ACK"),
            autostart=_env_flag("JACK_AUTOSTART", "true"),

            command_prefix=os.environ.get("JACK_COMMAND_PREFIX", "/"),
            chunk_size=int(os.environ.get("JACK_CHUNK_SIZE", "150")),
            chunk_delay=float(os.environ.get("JACK_CHUNK_DELAY", "1.0")),
            history_turns=int(os.environ.get("JACK_HISTORY_TURNS", "10")),
            context_max_users=int(os.environ.get("JACK_CONTEXT_MAX_USERS", "200")),

            data_dir=Path(os.environ.get("JACK_DATA_DIR", "data")),
        )

    def missing_credentials(self) -> list[str]:
        """Names of required connection settings that are not set."""
        required = {
            "JACK_WS_URL": self.ws_url,
            "CLUB_CODE": self.room_id,
            "BOT_UID": self.account_id,
            "EP": self.endpoint,
            "KEY": self.key,
        }
        return [name for name, value in required.items() if not value]

    def create_provider(self):
        """
        Create the completion provider, or None when no API key is set.

        Without a provider every mention gets the fallback apology.
        """
        from .providers import OpenAIProvider

        if not self.openai_api_key:
            return None
        return OpenAIProvider(
            api_key=self.openai_api_key,
            model=self.openai_model,
            base_url=self.openai_base_url,
        )


# Singleton config instance
_config: Optional[BotConfig] = None


def get_config() -> BotConfig:
    """Get the global connector config, loading from env if needed."""
    global _config
    if _config is None:
        _config = BotConfig.from_env()
    return _config


def reload_config() -> BotConfig:
    """Force reload config from environment."""
    global _config
    _config = BotConfig.from_env()
    return _config
