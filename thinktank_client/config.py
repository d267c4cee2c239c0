# thinktank_client/config.py
# Description: Configuration management for the ThinkTank client.
#
# Imports
import copy
import os
import tomllib
from pathlib import Path
from typing import Dict, Any, Optional
#
# Third-Party Imports
import toml
from loguru import logger
#
# Local Imports
from thinktank_client.Constants import DEFAULT_MODEL_ID, DEFAULT_CONVERSATION_TITLE
#
#######################################################################################################################
#
# Functions:

# --- Path to the client's configuration file ---
DEFAULT_CONFIG_PATH = Path.home() / ".config" / "thinktank" / "config.toml"
BASE_DATA_DIR = Path.home() / ".local" / "share" / "thinktank"

# --- Environment overrides: (env var, section, key) ---
ENV_OVERRIDES = [
    ("THINKTANK_API_BASE_URL", "api", "base_url"),
    ("THINKTANK_STREAMING_URL", "api", "streaming_url"),
    ("THINKTANK_ID_TOKEN", "auth", "id_token"),
    ("THINKTANK_LOG_LEVEL", "general", "log_level"),
]

CONFIG_TOML_CONTENT = f"""
# Configuration for the ThinkTank client
# Located at: ~/.config/thinktank/config.toml
[general]
log_level = "INFO" # Console Log Level: DEBUG, INFO, WARNING, ERROR, CRITICAL

[logging]
# Log file will be placed in [paths].data_dir
log_filename = "thinktank_client.log"
file_log_level = "INFO"
log_max_bytes = 10485760 # 10 MB
log_backup_count = 5

[paths]
data_dir = "~/.local/share/thinktank"

[api]
# API Gateway stage URL, e.g. "https://<id>.execute-api.us-east-1.amazonaws.com/prod"
# Leave empty to run against the offline in-memory backend.
base_url = ""
# Lambda Function URL used for SSE streaming. Empty disables streaming.
streaming_url = ""
request_timeout = 30.0
streaming_timeout = 120.0

[auth]
# Cognito ID token. Prefer the THINKTANK_ID_TOKEN environment variable.
id_token = ""

[chat_defaults]
default_model_id = "{DEFAULT_MODEL_ID}"
default_title = "{DEFAULT_CONVERSATION_TITLE}"
"""

try:
    DEFAULT_CONFIG_FROM_TOML: Dict[str, Any] = tomllib.loads(CONFIG_TOML_CONTENT)
except tomllib.TOMLDecodeError as e:
    logger.critical(f"FATAL: Could not parse internal CONFIG_TOML_CONTENT: {e}")
    DEFAULT_CONFIG_FROM_TOML = {}


def get_config_path() -> Path:
    """The user config file, overridable with THINKTANK_CONFIG_PATH."""
    override = os.environ.get("THINKTANK_CONFIG_PATH")
    if override:
        return Path(override).expanduser()
    return DEFAULT_CONFIG_PATH


# --- Helper for deep merging dictionaries ---
def deep_merge_dicts(base: Dict, update: Dict) -> Dict:
    """Recursively merges update into base."""
    merged = copy.deepcopy(base)
    for key, value in update.items():
        if isinstance(value, dict) and key in merged and isinstance(merged[key], dict):
            merged[key] = deep_merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    for env_var, section, key in ENV_OVERRIDES:
        value = os.environ.get(env_var)
        if value:
            config.setdefault(section, {})[key] = value
            logger.debug(f"Config override from {env_var} for [{section}].{key}")
    return config


# --- Primary Configuration Loading Logic ---
_CONFIG_CACHE: Optional[Dict[str, Any]] = None

def load_settings(force_reload: bool = False) -> Dict[str, Any]:
    """
    Loads settings from the user's config.toml merged over the built-in defaults.
    If the file doesn't exist, it's created with the default values.
    Environment variables win over both.
    """
    global _CONFIG_CACHE
    if _CONFIG_CACHE is not None and not force_reload:
        return _CONFIG_CACHE

    loaded_config = copy.deepcopy(DEFAULT_CONFIG_FROM_TOML)
    config_path = get_config_path()

    if not config_path.exists():
        logger.info(f"Config file not found at {config_path}. Creating with default values.")
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(config_path, "w", encoding="utf-8") as f:
                f.write(CONFIG_TOML_CONTENT)
            logger.info(f"Created default config file at {config_path}")
        except OSError as e:
            logger.error(f"Could not create default config file {config_path}: {e}. Using internal defaults.")
    else:
        logger.info(f"Attempting to load config from: {config_path}")
        try:
            with open(config_path, "rb") as f:
                user_config_from_file = tomllib.load(f)
            loaded_config = deep_merge_dicts(loaded_config, user_config_from_file)
            logger.info(f"Successfully loaded and merged config from {config_path}")
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Error decoding TOML config file {config_path}: {e}. Using internal defaults.")
        except OSError as e:
            logger.error(f"Could not read config file {config_path}: {e}. Using internal defaults.")

    _CONFIG_CACHE = _apply_env_overrides(loaded_config)
    logger.debug(f"load_settings returning config with top-level keys: {list(_CONFIG_CACHE.keys())}")
    return _CONFIG_CACHE


# --- Setting Getters ---
def get_setting(section: str, key: str, default: Any = None) -> Any:
    """Helper to get a specific setting from the loaded configuration."""
    config = load_settings()
    section_data = config.get(section)
    if isinstance(section_data, dict):
        return section_data.get(key, default)
    return default


def _get_typed_setting(section: str, key: str, default: Any, target_type: type) -> Any:
    value = get_setting(section, key, default)
    if value is None:
        return default
    try:
        return target_type(value)
    except (ValueError, TypeError) as e:
        logger.warning(f"Config key [{section}].{key} has value '{value}' which could not be converted to "
                       f"{target_type.__name__}. Using default: '{default}'. Error: {e}")
        return default


def get_float_setting(section: str, key: str, default: float) -> float:
    return _get_typed_setting(section, key, default, float)


def get_int_setting(section: str, key: str, default: int) -> int:
    return _get_typed_setting(section, key, default, int)


def get_api_base_url() -> Optional[str]:
    base_url = (get_setting("api", "base_url", "") or "").strip()
    return base_url or None


def get_streaming_url() -> Optional[str]:
    streaming_url = (get_setting("api", "streaming_url", "") or "").strip()
    return streaming_url or None


def get_data_dir() -> Path:
    data_dir_str = get_setting("paths", "data_dir", str(BASE_DATA_DIR))
    return Path(data_dir_str).expanduser().resolve()


def get_log_file_path() -> Path:
    log_filename = get_setting("logging", "log_filename", "thinktank_client.log")
    log_file_path = get_data_dir() / log_filename
    try:
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Could not create log directory {log_file_path.parent}: {e}")
    return log_file_path


def get_default_model_id() -> str:
    return get_setting("chat_defaults", "default_model_id", DEFAULT_MODEL_ID) or DEFAULT_MODEL_ID


def get_default_title() -> str:
    return get_setting("chat_defaults", "default_title", DEFAULT_CONVERSATION_TITLE) or DEFAULT_CONVERSATION_TITLE


# --- Setting Persistence ---
def save_setting(section: str, key: str, value: Any) -> None:
    """
    Writes a single setting into the user's config.toml, keeping the rest of the file,
    and refreshes the cached configuration.
    """
    config_path = get_config_path()
    user_config: Dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, "rb") as f:
                user_config = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Refusing to overwrite malformed config file {config_path}: {e}")
            raise
    user_config.setdefault(section, {})[key] = value

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        toml.dump(user_config, f)
    logger.info(f"Saved [{section}].{key} to {config_path}")
    load_settings(force_reload=True)


def set_default_model_id(model_id: str) -> None:
    """Persist the model used for new conversations."""
    if not model_id or not model_id.strip():
        raise ValueError("model_id must be a non-empty string.")
    save_setting("chat_defaults", "default_model_id", model_id.strip())

#
# End of thinktank_client/config.py
#######################################################################################################################
