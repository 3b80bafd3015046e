# repochat/config/loader.py
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, ValidationError
from loguru import logger

from .schema import AppConfig
from .paths import get_user_config_file

ENV_PREFIX = "REPOCHAT_"

# Well-known variable names take precedence over the REPOCHAT_* spelling
CREDENTIAL_ENV_VARS = {
    "OPENAI_API_KEY": ("openai", "api_key"),
    "ANTHROPIC_API_KEY": ("anthropic", "api_key"),
    "GITHUB_TOKEN": ("github", "token"),
}

# Credentials are never written back to disk
SECRET_FIELDS = {"openai": {"api_key"}, "anthropic": {"api_key"}, "github": {"token"}}

_cached_config: Optional[AppConfig] = None

def _apply_env_overrides(data: Dict[str, Any], environ=None) -> Dict[str, Any]:
    """
    Overlays environment variables onto raw config data.

    Scalar fields map to REPOCHAT_<FIELD> at the top level and
    REPOCHAT_<SECTION>_<FIELD> inside sections. List fields are not
    overridable from the environment.
    """
    environ = os.environ if environ is None else environ
    data = dict(data)

    for field_name, field_info in AppConfig.model_fields.items():
        annotation = field_info.annotation
        if isinstance(annotation, type) and issubclass(annotation, BaseModel):
            section = dict(data.get(field_name) or {})
            for sub_name, sub_info in annotation.model_fields.items():
                if _is_list_field(sub_info.annotation):
                    continue
                env_name = f"{ENV_PREFIX}{field_name}_{sub_name}".upper()
                if env_name in environ:
                    section[sub_name] = environ[env_name]
                    logger.debug(f"Config override from environment: {env_name}")
            if section:
                data[field_name] = section
        elif not _is_list_field(annotation):
            env_name = f"{ENV_PREFIX}{field_name}".upper()
            if env_name in environ:
                data[field_name] = environ[env_name]
                logger.debug(f"Config override from environment: {env_name}")

    return _apply_credentials(data, environ)

def _apply_credentials(data: Dict[str, Any], environ=None) -> Dict[str, Any]:
    environ = os.environ if environ is None else environ
    data = dict(data)
    for env_name, (section_name, sub_name) in CREDENTIAL_ENV_VARS.items():
        value = environ.get(env_name)
        if value:
            section = dict(data.get(section_name) or {})
            section[sub_name] = value
            data[section_name] = section
            logger.debug(f"Credential loaded from environment: {env_name}")

    return data

def _is_list_field(annotation) -> bool:
    return getattr(annotation, "__origin__", None) in (list, dict)

def load_config(config_path: Optional[Path] = None, environ=None) -> AppConfig:
    """Loads the application configuration from the user config file and environment."""
    global _cached_config
    if _cached_config and config_path is None and environ is None:
        return _cached_config

    config_path = config_path or get_user_config_file()
    loaded_data: Dict[str, Any] = {}

    if config_path.exists():
        logger.info(f"Reading RepoChat config: {config_path}")
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                loaded_data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.error(f"Failed to load user config file {config_path}: {e}")
            try:
                backup_path = config_path.with_suffix(".json.corrupted")
                if backup_path.exists(): backup_path.unlink(missing_ok=True)
                config_path.rename(backup_path)
                logger.info(f"Backed up corrupted config to: {backup_path}")
            except OSError as backup_err:
                logger.error(f"Failed to backup corrupted config: {backup_err}")
            loaded_data = {}
    else:
        logger.info("User config file not found. Using default settings.")

    loaded_data = _apply_env_overrides(loaded_data, environ)

    try:
        config = AppConfig(**loaded_data)
        logger.debug(f"Config ready (openai key: {bool(config.openai.api_key)}, anthropic key: {bool(config.anthropic.api_key)}).")
    except ValidationError as e:
        logger.error(f"Configuration validation failed: {e}")
        logger.warning("Using default settings; credentials from the environment still apply.")
        config = AppConfig(**_apply_credentials({}, environ))

    _cached_config = config
    return config

def save_config(config: AppConfig, config_path: Optional[Path] = None) -> None:
    """Writes the config to disk atomically. API keys and the GitHub token are left out."""
    config_path = config_path or get_user_config_file()
    logger.info(f"Writing RepoChat config: {config_path}")
    temp_file_path: Optional[Path] = None
    try:
        # Temp file lives next to the target so os.replace stays atomic
        with tempfile.NamedTemporaryFile(
            mode='w',
            encoding='utf-8',
            dir=config_path.parent,
            prefix=f".{config_path.name}_tmp",
            suffix=".json",
            delete=False
        ) as temp_f:
            temp_file_path = Path(temp_f.name)
            logger.debug(f"Writing config to temporary file: {temp_file_path}")
            temp_f.write(config.model_dump_json(indent=4, exclude=SECRET_FIELDS))
            temp_f.flush()
            os.fsync(temp_f.fileno())

        os.replace(temp_file_path, config_path)
        logger.debug("Config written.")
        temp_file_path = None

    except (OSError, TypeError) as e:
        logger.error(f"Failed to save configuration to {config_path}: {e}")
    finally:
        if temp_file_path and temp_file_path.exists():
            logger.warning(f"Cleaning up leftover temporary config file: {temp_file_path}")
            try: temp_file_path.unlink()
            except OSError as unlink_err: logger.error(f"Failed to remove temporary config file {temp_file_path}: {unlink_err}")

def get_config() -> AppConfig:
    """Cached config, loaded on first use."""
    if _cached_config is None:
        return load_config()
    return _cached_config

def reset_config_cache() -> None:
    global _cached_config
    _cached_config = None
