"""
Configuration management for minion-mpd
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from loguru import logger


@dataclass
class MusicConfig:
    """Configuration for the managed music directory."""

    music_directory: str = field(default_factory=lambda: str(Path.home() / "Music"))
    supported_formats: List[str] = field(
        default_factory=lambda: [".mp3", ".m4a", ".flac", ".ogg", ".opus", ".wav"]
    )
    scan_recursive: bool = True
    scan_on_startup: bool = True
    scan_batch_size: int = 200


@dataclass
class ServerConfig:
    """Configuration for the protocol listener."""

    bind_address: str = "127.0.0.1"
    port: int = 6600
    max_connections: int = 32
    max_command_list_size: int = 2048
    password: Optional[str] = None  # required before any non-public command


@dataclass
class PlayerConfig:
    """Configuration for the audio sink."""

    output: str = "mpv"  # 'mpv' or 'null'
    mpv_socket_path: Optional[str] = None
    volume: int = 50

    def validate(self) -> None:
        """Validate player configuration values.

        Raises:
            ValueError: If configuration values are invalid
        """
        valid_outputs = {"mpv", "null"}
        if self.output not in valid_outputs:
            raise ValueError(
                f"Invalid output: {self.output!r}. Valid outputs are: {valid_outputs}"
            )
        if not 0 <= self.volume <= 100:
            raise ValueError(f"Volume must be between 0 and 100, got {self.volume}")


@dataclass
class QueueConfig:
    """Configuration for the play queue."""

    max_length: int = 16384


@dataclass
class DatabaseConfig:
    """Configuration for persistent state."""

    path: Optional[str] = None  # default: <data dir>/minion-mpd.db


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: Optional[str] = (
        None  # Custom log file path (default: ~/.local/share/minion-mpd/minion-mpd.log)
    )
    max_file_size_mb: int = 10  # Maximum log file size before rotation
    backup_count: int = 5  # Number of backup files to keep
    console_output: bool = False  # Also output to stderr


@dataclass
class Config:
    """Main configuration object."""

    music: MusicConfig = field(default_factory=MusicConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    player: PlayerConfig = field(default_factory=PlayerConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / "minion-mpd"
    return Path.home() / ".config" / "minion-mpd"


def _find_project_config() -> Optional[Path]:
    """Find config.toml in project root by looking for pyproject.toml.

    Returns:
        Path to config.toml in project root, or None if not found
    """
    current = Path(__file__).resolve().parent
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            config_path = parent / "config.toml"
            if config_path.exists():
                return config_path
            return None
    return None


def get_config_path() -> Path:
    """Get the main configuration file path.

    Checks for config.toml in the following order:
    1. Project root (detected via pyproject.toml) - for development
    2. Current working directory
    3. XDG_CONFIG_HOME/minion-mpd (or ~/.config/minion-mpd)
    """
    project_config = _find_project_config()
    if project_config:
        return project_config

    local_config = Path.cwd() / "config.toml"
    if local_config.exists():
        return local_config

    return get_config_dir() / "config.toml"


def get_data_dir() -> Path:
    """Get the data directory path."""
    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home:
        return Path(data_home) / "minion-mpd"
    return Path.home() / ".local" / "share" / "minion-mpd"


def create_default_config() -> str:
    """Create a default configuration TOML content."""
    return """
# minion-mpd configuration

[music]
# Directory holding the managed music collection
music_directory = "~/Music"

# Supported audio file formats
supported_formats = [".mp3", ".m4a", ".flac", ".ogg", ".opus", ".wav"]

# Recursively scan subdirectories
scan_recursive = true

# Rescan the library in the background when the server starts
scan_on_startup = true

# Number of songs committed per library write
scan_batch_size = 200

[server]
# Address and port the protocol listener binds to
bind_address = "127.0.0.1"
port = 6600

# Maximum simultaneous client connections
max_connections = 32

# Maximum number of commands accepted inside one command list
max_command_list_size = 2048

# Clients must send this password before most commands (unset = open access)
# password = "secret"

[player]
# Audio output: "mpv" or "null" (no audio, bookkeeping only)
output = "mpv"

# Path for mpv socket (auto-generated if not specified)
# mpv_socket_path = "/tmp/minion-mpd-mpv.sock"

# Initial volume (0-100)
volume = 50

[queue]
# Maximum number of entries in the play queue
max_length = 16384

[database]
# SQLite file holding library, queue and player state
# path = "~/.local/share/minion-mpd/minion-mpd.db"

[logging]
# Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
level = "INFO"

# Custom log file path (default: ~/.local/share/minion-mpd/minion-mpd.log)
# log_file = "/path/to/custom/minion-mpd.log"

# Maximum log file size in MB before rotation
max_file_size_mb = 10

# Number of backup log files to keep
backup_count = 5

# Also output logs to the console (useful for debugging)
console_output = false
""".strip()


def _apply_env_overrides(config: Config) -> None:
    """Override TOML values with MINION_MPD_* environment variables."""
    port = os.environ.get("MINION_MPD_PORT")
    if port:
        try:
            config.server.port = int(port)
        except ValueError:
            logger.warning(f"Ignoring invalid MINION_MPD_PORT: {port!r}")

    bind_address = os.environ.get("MINION_MPD_BIND_ADDRESS")
    if bind_address:
        config.server.bind_address = bind_address

    music_directory = os.environ.get("MINION_MPD_MUSIC_DIRECTORY")
    if music_directory:
        config.music.music_directory = str(Path(music_directory).expanduser())


def parse_config(toml_data: dict) -> Config:
    """Build a Config from already-parsed TOML data, falling back to defaults."""
    config = Config()

    if "music" in toml_data:
        music_data = toml_data["music"]
        config.music = MusicConfig(
            music_directory=str(
                Path(
                    music_data.get("music_directory", config.music.music_directory)
                ).expanduser()
            ),
            supported_formats=[
                ext.lower()
                for ext in music_data.get(
                    "supported_formats", config.music.supported_formats
                )
            ],
            scan_recursive=music_data.get("scan_recursive", config.music.scan_recursive),
            scan_on_startup=music_data.get(
                "scan_on_startup", config.music.scan_on_startup
            ),
            scan_batch_size=max(
                1, music_data.get("scan_batch_size", config.music.scan_batch_size)
            ),
        )

    if "server" in toml_data:
        server_data = toml_data["server"]
        config.server = ServerConfig(
            bind_address=server_data.get("bind_address", config.server.bind_address),
            port=server_data.get("port", config.server.port),
            max_connections=server_data.get(
                "max_connections", config.server.max_connections
            ),
            max_command_list_size=server_data.get(
                "max_command_list_size", config.server.max_command_list_size
            ),
            password=server_data.get("password"),
        )

    if "player" in toml_data:
        player_data = toml_data["player"]
        config.player = PlayerConfig(
            output=player_data.get("output", config.player.output),
            mpv_socket_path=player_data.get("mpv_socket_path"),
            volume=player_data.get("volume", config.player.volume),
        )
        try:
            config.player.validate()
        except ValueError as e:
            logger.warning(f"Invalid player configuration: {e}. Using defaults.")
            config.player = PlayerConfig()

    if "queue" in toml_data:
        queue_data = toml_data["queue"]
        config.queue = QueueConfig(
            max_length=queue_data.get("max_length", config.queue.max_length),
        )

    if "database" in toml_data:
        db_path = toml_data["database"].get("path")
        if db_path:
            db_path = str(Path(db_path).expanduser())
        config.database = DatabaseConfig(path=db_path)

    if "logging" in toml_data:
        logging_data = toml_data["logging"]
        log_file = logging_data.get("log_file")
        if log_file:
            log_file = str(Path(log_file).expanduser())
        config.logging = LoggingConfig(
            level=logging_data.get("level", config.logging.level).upper(),
            log_file=log_file,
            max_file_size_mb=logging_data.get(
                "max_file_size_mb", config.logging.max_file_size_mb
            ),
            backup_count=logging_data.get("backup_count", config.logging.backup_count),
            console_output=logging_data.get(
                "console_output", config.logging.console_output
            ),
        )

    return config


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from file or create default.

    Environment variables override TOML values:
    - MINION_MPD_PORT
    - MINION_MPD_BIND_ADDRESS
    - MINION_MPD_MUSIC_DIRECTORY
    """
    from dotenv import load_dotenv

    env_path = get_config_dir() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    config_path = config_path or get_config_path()

    if not config_path.exists():
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_default_config())
        logger.info(f"Created default configuration at: {config_path}")
        config = Config()
    else:
        try:
            with open(config_path, "rb") as f:
                toml_data = tomllib.load(f)
            config = parse_config(toml_data)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.error(f"Error loading configuration from {config_path}: {e}")
            logger.warning("Using default configuration.")
            config = Config()

    _apply_env_overrides(config)
    return config


def ensure_directories() -> None:
    """Ensure all necessary directories exist."""
    get_config_dir().mkdir(parents=True, exist_ok=True)
    get_data_dir().mkdir(parents=True, exist_ok=True)
