import os
from pathlib import Path
from typing import Optional, Type, TypeVar

import yaml
from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel

from panesync.config.schema import ClientConfig
from panesync.paths import CONFIG_PATH
from panesync.utils import expand_env_vars

T = TypeVar("T", bound=BaseModel)


def _warn_unknown_keys(model: BaseModel, path: str, config_path: Path) -> None:
    """Recursively warn about unknown keys in a model and its nested models."""
    if hasattr(model, "model_extra") and model.model_extra:
        logger.warning("Unknown keys in {} at {}: {}", path, config_path, list(model.model_extra.keys()))

    for field_name, field_value in model.__dict__.items():
        if isinstance(field_value, BaseModel):
            _warn_unknown_keys(field_value, f"{path}.{field_name}", config_path)


def load_config(path: Path, model_class: Type[T]) -> T:
    """Load and validate configuration from a YAML file.

    Args:
        path: Path to the panesync.yml file.
        model_class: The Pydantic model class to use for validation.

    Returns:
        The validated configuration model.
    """
    if not path.exists():
        return model_class()

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Failed to read config file {}: {}", path, e)
        return model_class()

    expanded = expand_env_vars(raw)
    model = model_class.model_validate(expanded)
    _warn_unknown_keys(model, "root", path)
    return model


def load_client_config(path: Optional[Path] = None) -> ClientConfig:
    """Load client configuration.

    Resolution order for the file: explicit argument, `PANESYNC_CONFIG`,
    then ~/.panesync/panesync.yml. A `.env` in the working directory is loaded
    first so `${VAR}` references can point at it.
    """
    load_dotenv()
    if path is None:
        env_path = os.getenv("PANESYNC_CONFIG")
        path = Path(env_path).expanduser() if env_path else CONFIG_PATH
    return load_config(path, ClientConfig)
