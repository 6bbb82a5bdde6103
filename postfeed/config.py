# config.py
# Description: Configuration loading for postfeed (TOML defaults + user overrides).
#
# Imports
import copy
import tomllib
from pathlib import Path
from typing import Any, Dict, Optional, Union
#
# 3rd-Party Imports
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError
#
# Local Imports
from .Constants import (
    DEFAULT_API_BASE_URL, DEFAULT_API_TIMEOUT, DEFAULT_MAX_CACHED_POSTS, DEFAULT_PAGE_SIZE
)
from .Sync.Page_Cursor import max_pages_for
#
#######################################################################################################################
#
# Functions:

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "postfeed" / "config.toml"
BASE_DATA_DIR_CLI = Path.home() / ".local" / "share" / "postfeed"

# --- Configuration File Content (written out on first run) ---
CONFIG_TOML_CONTENT = f"""
# Configuration for postfeed
# Located at: ~/.config/postfeed/config.toml
[general]
log_level = "INFO" # Console Log Level: DEBUG, INFO, WARNING, ERROR, CRITICAL

[logging]
# Log file will be placed in the same directory as posts_db_path below.
log_filename = "postfeed.log"
file_log_level = "INFO"
log_max_bytes = 10485760 # 10 MB
log_backup_count = 5

[database]
posts_db_path = "~/.local/share/postfeed/posts_cache.db"

[api]
base_url = "{DEFAULT_API_BASE_URL}"
timeout = {DEFAULT_API_TIMEOUT}
token = ""

[sync]
page_size = {DEFAULT_PAGE_SIZE}
# Stop paginating once this many posts are cached. 0 = no ceiling.
max_cached_posts = {DEFAULT_MAX_CACHED_POSTS}
"""

try:
    DEFAULT_CONFIG_FROM_TOML: Dict[str, Any] = tomllib.loads(CONFIG_TOML_CONTENT)
except tomllib.TOMLDecodeError as e:
    logger.critical(f"FATAL: Could not parse internal CONFIG_TOML_CONTENT: {e}.")
    DEFAULT_CONFIG_FROM_TOML = {}


class ConfigError(Exception):
    """Raised when configuration values can't be turned into usable settings."""
    pass


def deep_merge_dicts(base: Dict, update: Dict) -> Dict:
    """Recursively merges update into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in update.items():
        if isinstance(value, dict) and key in merged and isinstance(merged[key], dict):
            merged[key] = deep_merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


# --- Primary Configuration Loading Logic ---
_CONFIG_CACHE: Optional[Dict[str, Any]] = None
_CONFIG_CACHE_PATH: Optional[Path] = None


def load_settings(force_reload: bool = False, config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Loads settings from `config_path` (default ~/.config/postfeed/config.toml) merged
    over the built-in defaults. If the file doesn't exist, it's created with default values.
    A malformed file is logged and the defaults are used.
    """
    global _CONFIG_CACHE, _CONFIG_CACHE_PATH
    path = Path(config_path).expanduser() if config_path else DEFAULT_CONFIG_PATH
    if _CONFIG_CACHE is not None and not force_reload and (config_path is None or path == _CONFIG_CACHE_PATH):
        return _CONFIG_CACHE

    loaded_config = copy.deepcopy(DEFAULT_CONFIG_FROM_TOML)

    if not path.exists():
        logger.info(f"Config file not found at {path}. Creating with default values.")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(CONFIG_TOML_CONTENT)
            logger.info(f"Created default config file at {path}")
        except OSError as e:
            logger.error(f"Could not create default config file {path}: {e}. Using internal defaults.")
    else:
        logger.info(f"Loading config from: {path}")
        try:
            with open(path, "rb") as f:
                user_config_from_file = tomllib.load(f)
            loaded_config = deep_merge_dicts(loaded_config, user_config_from_file)
            logger.info(f"Successfully loaded and merged config from {path}")
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Error decoding TOML config file {path}: {e}. Using internal defaults.")
        except OSError as e:
            logger.error(f"Could not read config file {path}: {e}. Using internal defaults.")

    _CONFIG_CACHE = loaded_config
    _CONFIG_CACHE_PATH = path
    logger.debug(f"load_settings returning config with top-level keys: {list(loaded_config.keys())}")
    return _CONFIG_CACHE


def get_cli_setting(section: str, key: str, default: Any = None) -> Any:
    """Helper to get a specific setting from the loaded configuration."""
    config = load_settings()
    section_data = config.get(section)
    if isinstance(section_data, dict):
        return section_data.get(key, default)
    return default


# --- Path Getters ---
def get_posts_db_path() -> Path:
    default_db_path_str = DEFAULT_CONFIG_FROM_TOML.get("database", {}).get(
        "posts_db_path", str(BASE_DATA_DIR_CLI / "posts_cache.db"))
    db_path_str = get_cli_setting("database", "posts_db_path", default_db_path_str)
    return Path(db_path_str).expanduser().resolve()


def get_cli_log_file_path() -> Path:
    default_log_filename = DEFAULT_CONFIG_FROM_TOML.get("logging", {}).get("log_filename", "postfeed.log")
    log_filename = get_cli_setting("logging", "log_filename", default_log_filename)
    log_file_path = get_posts_db_path().parent / log_filename
    try:
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Could not create log directory {log_file_path.parent}: {e}")
    return log_file_path


# --- Typed sync settings ---
class SyncSettings(BaseModel):
    """The [api], [sync] and [database] values the sync stack is built from."""
    model_config = ConfigDict(frozen=True)

    base_url: str = DEFAULT_API_BASE_URL
    timeout: float = Field(default=DEFAULT_API_TIMEOUT, gt=0)
    token: Optional[str] = None
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)
    max_cached_posts: int = Field(default=DEFAULT_MAX_CACHED_POSTS, ge=0)
    posts_db_path: str = ":memory:"

    @property
    def max_pages(self) -> Optional[int]:
        return max_pages_for(self.max_cached_posts, self.page_size)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "SyncSettings":
        api = config.get("api", {}) or {}
        sync = config.get("sync", {}) or {}
        database = config.get("database", {}) or {}
        values: Dict[str, Any] = {
            "base_url": api.get("base_url", DEFAULT_API_BASE_URL),
            "timeout": api.get("timeout", DEFAULT_API_TIMEOUT),
            "token": api.get("token") or None,  # "" in the file means no token
            "page_size": sync.get("page_size", DEFAULT_PAGE_SIZE),
            "max_cached_posts": sync.get("max_cached_posts", DEFAULT_MAX_CACHED_POSTS),
        }
        db_path = database.get("posts_db_path")
        if db_path:
            values["posts_db_path"] = db_path if db_path == ":memory:" else str(Path(db_path).expanduser())
        try:
            return cls(**values)
        except ValidationError as e:
            logger.error(f"Invalid sync configuration: {e}")
            raise ConfigError(f"Invalid sync configuration: {e}") from e

#
# End of config.py
#######################################################################################################################
