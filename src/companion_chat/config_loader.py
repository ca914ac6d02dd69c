"""Configuration file loading: YAML, ``${VAR}`` placeholders and ``.env``."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional, Union

import chardet
import yaml
from dotenv import load_dotenv
from loguru import logger
from pydantic import ValidationError

from .config import AppConfig

CONFIG_ENV_VAR = "COMPANION_CHAT_CONFIG"
DEFAULT_CONFIG_PATH = "conf.yaml"

# unknown variables are left untouched
_ENV_PLACEHOLDER = re.compile(r"\$\{(\w+)\}")


def read_yaml(config_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Parse a YAML config file after substituting ``${VAR}`` placeholders.

    Raises:
        FileNotFoundError: If the file does not exist.
        IOError: If its encoding cannot be determined.
    """
    path = Path(config_path)
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    content = load_text_file_with_guess_encoding(path)
    if content is None:
        raise IOError(f"Failed to read configuration file: {path}")

    content = _ENV_PLACEHOLDER.sub(
        lambda match: os.getenv(match.group(1), match.group(0)), content
    )
    try:
        return yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        logger.critical(f"Error parsing YAML file {path}: {e}")
        raise


def _format_validation_error(error: ValidationError) -> str:
    """Render a pydantic ValidationError as one readable line per problem."""
    error_messages = []

    for err in error.errors():
        location = " -> ".join(str(loc) for loc in err["loc"])
        error_type = err["type"]
        msg = err["msg"]
        input_value = err.get("input", "N/A")

        if error_type == "missing":
            error_messages.append(
                f"  - '{location}': required field is missing."
            )
        elif error_type in ("string_type", "int_type", "float_type", "bool_type"):
            expected = error_type.split("_")[0]
            error_messages.append(
                f"  - '{location}': expected {expected}, got {input_value!r}"
            )
        elif "greater_than" in error_type or "less_than" in error_type:
            error_messages.append(f"  - '{location}': value out of range. {msg}")
        else:
            error_messages.append(f"  - '{location}': {msg} (type: {error_type})")

    return "\n".join(error_messages)


def validate_config(config_data: dict) -> AppConfig:
    """
    Validate raw configuration data against AppConfig.

    Args:
        config_data: Parsed configuration dictionary

    Returns:
        Validated AppConfig

    Raises:
        ValidationError: If validation fails. A readable summary is logged first.
    """
    try:
        return AppConfig(**config_data)
    except ValidationError as e:
        formatted_errors = _format_validation_error(e)
        logger.critical(
            "Configuration validation failed:\n"
            f"{formatted_errors}\n"
            "Fix the entries above in your configuration file."
        )
        logger.debug(f"Configuration data keys: {list(config_data.keys())}")
        raise


def load_text_file_with_guess_encoding(file_path: Union[str, Path]) -> str | None:
    """Decode a text file as UTF-8 (BOM tolerated), else as chardet's best guess."""
    raw_data = Path(file_path).read_bytes()
    try:
        return raw_data.decode("utf-8-sig")
    except UnicodeDecodeError:
        pass

    encoding = chardet.detect(raw_data)["encoding"]
    if not encoding:
        logger.error(f"Could not detect the encoding of {file_path}")
        return None
    try:
        return raw_data.decode(encoding)
    except (UnicodeDecodeError, LookupError) as e:
        logger.error(f"Failed to decode {file_path} as {encoding}: {e}")
        return None


def load_config(path: Optional[Union[str, Path]] = None) -> AppConfig:
    """Load and validate the application configuration.

    Precedence: explicit path, ``COMPANION_CHAT_CONFIG``, ``conf.yaml``.
    A ``.env`` file is loaded first so its variables are available to
    ``${VAR}`` placeholders. A missing file yields the defaults.
    """
    load_dotenv()

    if path is None:
        path = os.getenv(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH)

    if not os.path.exists(path):
        logger.warning(f"Config file not found at {path}. Using defaults.")
        return AppConfig()

    config = validate_config(read_yaml(path))
    logger.info(f"Configuration loaded from {path}")
    return config
