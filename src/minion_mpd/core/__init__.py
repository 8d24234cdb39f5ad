"""Core infrastructure layer - no business logic dependencies.

This module provides foundation-level services:
- Configuration management (TOML)
- Database operations (SQLite)
- Logging setup (loguru)
- Console management (Rich)
"""

# Configuration
from .config import (
    Config,
    load_config,
    get_config_dir,
    get_config_path,
    get_data_dir,
    create_default_config,
    ensure_directories,
)

# Database
from .database import Database, PersistenceError, get_database_path

# Locking
from .locks import RWLock

# Logging
from .output import setup_loguru, setup_logging_from_config

# Console
from .console import get_console, safe_print

__all__ = [
    # Configuration
    "Config",
    "load_config",
    "get_config_dir",
    "get_config_path",
    "get_data_dir",
    "create_default_config",
    "ensure_directories",
    # Database
    "Database",
    "PersistenceError",
    "get_database_path",
    # Locking
    "RWLock",
    # Logging
    "setup_loguru",
    "setup_logging_from_config",
    # Console
    "get_console",
    "safe_print",
]
