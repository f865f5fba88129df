"""
Configuration management for fanplayer
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from loguru import logger


@dataclass
class PlayerConfig:
    """Configuration for the playback engine."""

    volume: int = 100
    device_name: str = "Fanplayer Web Player"
    position_poll_interval: float = 1.0  # Remote position backstop poll (seconds)
    shuffle_confirm_timeout: float = 3.0  # Pending shuffle guard window (seconds)
    mpv_socket_path: Optional[str] = None
    use_mpv: bool = True

    def validate(self) -> None:
        """Validate player configuration values.

        Raises:
            ValueError: If configuration values are invalid
        """
        if not 0 <= self.volume <= 100:
            raise ValueError(f"volume must be between 0 and 100, got {self.volume}")
        if self.position_poll_interval <= 0:
            raise ValueError("position_poll_interval must be positive")
        if self.shuffle_confirm_timeout <= 0:
            raise ValueError("shuffle_confirm_timeout must be positive")


@dataclass
class SpotifyConfig:
    """Configuration for the Spotify Web API and credential endpoint."""

    api_base: str = "https://api.spotify.com/v1"
    token_url: str = "http://localhost:3000/api/auth/token"
    token_refresh_interval: float = 50 * 60  # Tokens expire after 1 hour
    request_timeout: float = 30.0
    preferred_device_name: str = ""
    access_token: Optional[str] = None  # Static token (env only, never written to disk)

    def validate(self) -> None:
        """Validate Spotify configuration values.

        Raises:
            ValueError: If configuration values are invalid
        """
        if self.token_refresh_interval <= 0:
            raise ValueError("token_refresh_interval must be positive")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")


@dataclass
class WebConfig:
    """Configuration for the HTTP control surface."""

    host: str = "127.0.0.1"
    port: int = 8642
    allowed_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:3000"]
    )


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: Optional[str] = None  # Default: ~/.local/share/fanplayer/fanplayer.log
    rotation: str = "10 MB"
    retention: int = 5  # Number of rotated files to keep
    console_output: bool = False


@dataclass
class Config:
    """Main configuration object."""

    player: PlayerConfig = field(default_factory=PlayerConfig)
    spotify: SpotifyConfig = field(default_factory=SpotifyConfig)
    web: WebConfig = field(default_factory=WebConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / "fanplayer"
    return Path.home() / ".config" / "fanplayer"


def get_config_path() -> Path:
    """Get the main configuration file path.

    Checks for config.toml in the current working directory first, then
    falls back to XDG_CONFIG_HOME/fanplayer (or ~/.config/fanplayer).
    """
    local_config = Path.cwd() / "config.toml"
    if local_config.exists():
        return local_config
    return get_config_dir() / "config.toml"


def get_data_dir() -> Path:
    """Get the data directory path."""
    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home:
        return Path(data_home) / "fanplayer"
    return Path.home() / ".local" / "share" / "fanplayer"


def get_log_file_path(config: Config) -> Path:
    """Resolve the log file path from config (or the data dir default)."""
    if config.logging.log_file:
        return Path(config.logging.log_file).expanduser()
    return get_data_dir() / "fanplayer.log"


def create_default_config() -> str:
    """Create a default configuration TOML content."""
    return """
# fanplayer configuration

[player]
# Default volume (0-100)
volume = 100

# Name the remote playback device registers under
device_name = "Fanplayer Web Player"

# Backstop polling interval for remote playback position (seconds)
position_poll_interval = 1.0

# How long an optimistic shuffle toggle waits for device confirmation (seconds)
shuffle_confirm_timeout = 3.0

# Use mpv for preview clips (requires mpv on PATH)
use_mpv = true

# Path for mpv socket (auto-detected if not specified)
# mpv_socket_path = "/tmp/fanplayer-mpv-socket"

[spotify]
api_base = "https://api.spotify.com/v1"

# Endpoint of the web client that hands out the current access token
token_url = "http://localhost:3000/api/auth/token"

# Refresh the access token every 50 minutes (tokens expire after 1 hour)
token_refresh_interval = 3000

# HTTP timeout for player commands (seconds)
request_timeout = 30

# Prefer a Connect device with this name (empty = active device)
preferred_device_name = ""

[web]
host = "127.0.0.1"
port = 8642
allowed_origins = ["http://localhost:3000"]

[logging]
# Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
level = "INFO"

# Custom log file path (default: ~/.local/share/fanplayer/fanplayer.log)
# log_file = "/path/to/fanplayer.log"

# Rotate log file at this size
rotation = "10 MB"

# Number of rotated log files to keep
retention = 5

# Also output logs to stderr (useful for debugging)
console_output = false
""".strip()


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from file or create default.

    Environment variables override TOML values:
    - FANPLAYER_ACCESS_TOKEN
    - FANPLAYER_TOKEN_URL
    - ALLOWED_ORIGINS (comma-separated)
    """
    # Load .env file from config directory if it exists
    from dotenv import load_dotenv

    env_path = get_config_dir() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    config_path = config_path or get_config_path()
    config = Config()

    if not config_path.exists():
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_default_config())
        logger.info(f"Created default configuration at: {config_path}")
    else:
        try:
            with open(config_path, "rb") as f:
                toml_data = tomllib.load(f)
            config = _parse_config(toml_data)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning(f"Error loading config from {config_path}: {e}")
            logger.warning("Using default configuration.")
            config = Config()

    _apply_env_overrides(config)
    return config


def _parse_config(toml_data: dict) -> Config:
    """Build a Config from parsed TOML, falling back per section on bad values."""
    config = Config()

    if "player" in toml_data:
        player_data = toml_data["player"]
        config.player = PlayerConfig(
            volume=player_data.get("volume", config.player.volume),
            device_name=player_data.get("device_name", config.player.device_name),
            position_poll_interval=player_data.get(
                "position_poll_interval", config.player.position_poll_interval
            ),
            shuffle_confirm_timeout=player_data.get(
                "shuffle_confirm_timeout", config.player.shuffle_confirm_timeout
            ),
            mpv_socket_path=player_data.get("mpv_socket_path"),
            use_mpv=player_data.get("use_mpv", config.player.use_mpv),
        )
        try:
            config.player.validate()
        except ValueError as e:
            logger.warning(f"Invalid player configuration: {e}")
            logger.warning("Using default player configuration.")
            config.player = PlayerConfig()

    if "spotify" in toml_data:
        spotify_data = toml_data["spotify"]
        config.spotify = SpotifyConfig(
            api_base=spotify_data.get("api_base", config.spotify.api_base).rstrip("/"),
            token_url=spotify_data.get("token_url", config.spotify.token_url),
            token_refresh_interval=spotify_data.get(
                "token_refresh_interval", config.spotify.token_refresh_interval
            ),
            request_timeout=spotify_data.get(
                "request_timeout", config.spotify.request_timeout
            ),
            preferred_device_name=spotify_data.get(
                "preferred_device_name", config.spotify.preferred_device_name
            ),
        )
        try:
            config.spotify.validate()
        except ValueError as e:
            logger.warning(f"Invalid spotify configuration: {e}")
            logger.warning("Using default spotify configuration.")
            config.spotify = SpotifyConfig()

    if "web" in toml_data:
        web_data = toml_data["web"]
        config.web = WebConfig(
            host=web_data.get("host", config.web.host),
            port=web_data.get("port", config.web.port),
            allowed_origins=web_data.get(
                "allowed_origins", config.web.allowed_origins
            ),
        )

    if "logging" in toml_data:
        logging_data = toml_data["logging"]
        log_file = logging_data.get("log_file")
        if log_file:
            log_file = str(Path(log_file).expanduser())
        config.logging = LoggingConfig(
            level=logging_data.get("level", config.logging.level).upper(),
            log_file=log_file,
            rotation=logging_data.get("rotation", config.logging.rotation),
            retention=logging_data.get("retention", config.logging.retention),
            console_output=logging_data.get(
                "console_output", config.logging.console_output
            ),
        )

    return config


def _apply_env_overrides(config: Config) -> None:
    access_token = os.environ.get("FANPLAYER_ACCESS_TOKEN")
    token_url = os.environ.get("FANPLAYER_TOKEN_URL")
    allowed_origins = os.environ.get("ALLOWED_ORIGINS")

    if access_token:
        config.spotify.access_token = access_token
    if token_url:
        config.spotify.token_url = token_url
    if allowed_origins:
        config.web.allowed_origins = [
            origin.strip() for origin in allowed_origins.split(",") if origin.strip()
        ]
