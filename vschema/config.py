"""
VSchema Configuration

This module provides configuration management for the execution core.
Includes default configurations, file/environment loaders and logging setup.
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import yaml


@dataclass
class ResponseFormat:
    """
    Business response format policy

    Maps the code/message/data fields of an API envelope and declares which
    business codes count as success.
    """

    code_field: str = "code"
    msg_field: str = "msg"
    data_field: str = "data"
    success_code: Union[int, List[int]] = 200

    def is_success_code(self, code: Any) -> bool:
        if isinstance(self.success_code, (list, tuple)):
            return code in self.success_code
        return code == self.success_code


@dataclass
class RuntimeConfig:
    """Main configuration class for the VSchema runtime"""

    # Requests
    base_url: Optional[str] = None
    default_headers: Dict[str, str] = field(default_factory=dict)
    response_format: ResponseFormat = field(default_factory=ResponseFormat)
    response_data_path: Optional[str] = None
    request_timeout: float = 30.0

    # Interceptors (not loadable from files)
    request_interceptor: Optional[Callable[..., Any]] = None
    response_interceptor: Optional[Callable[..., Any]] = None
    error_interceptor: Optional[Callable[..., Any]] = None

    # Core limits
    expression_cache_size: int = 1000
    max_array_length: int = 10000
    websocket_close_code: int = 1000

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_default_config() -> RuntimeConfig:
    """Get default runtime configuration"""
    return RuntimeConfig()


def load_config_from_file(config_path: Union[str, Path]) -> RuntimeConfig:
    """
    Load configuration from a JSON or YAML file

    Args:
        config_path: Path to configuration file

    Returns:
        RuntimeConfig instance

    Raises:
        FileNotFoundError: File does not exist
        ValueError: Unsupported extension or invalid content
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        if config_path.suffix.lower() in [".yaml", ".yml"]:
            data = yaml.safe_load(f)
        elif config_path.suffix.lower() == ".json":
            data = json.load(f)
        else:
            raise ValueError(f"Unsupported config file format: {config_path.suffix}")

    return config_from_dict(data or {})


def _parse_bool(value: str) -> bool:
    return value.lower() in ["true", "1", "yes"]


def _parse_codes(value: str) -> Union[int, List[int]]:
    codes = [int(part) for part in value.split(",") if part.strip()]
    return codes[0] if len(codes) == 1 else codes


def load_config_from_env() -> RuntimeConfig:
    """
    Load configuration from environment variables

    Environment variables are prefixed with VSCHEMA_,
    e.g. VSCHEMA_BASE_URL=https://api.example.com, VSCHEMA_LOG_LEVEL=DEBUG

    Returns:
        RuntimeConfig instance

    Raises:
        ValueError: A variable cannot be converted
    """
    config = RuntimeConfig()

    env_mappings = {
        "VSCHEMA_BASE_URL": ("base_url", str),
        "VSCHEMA_RESPONSE_DATA_PATH": ("response_data_path", str),
        "VSCHEMA_REQUEST_TIMEOUT": ("request_timeout", float),
        "VSCHEMA_EXPRESSION_CACHE_SIZE": ("expression_cache_size", int),
        "VSCHEMA_MAX_ARRAY_LENGTH": ("max_array_length", int),
        "VSCHEMA_WEBSOCKET_CLOSE_CODE": ("websocket_close_code", int),
        "VSCHEMA_LOG_LEVEL": ("log_level", str),
        "VSCHEMA_LOG_FORMAT": ("log_format", str),
    }

    for env_var, (attr_name, converter) in env_mappings.items():
        value = os.getenv(env_var)
        if value is not None:
            try:
                setattr(config, attr_name, converter(value))
            except (ValueError, TypeError) as e:
                raise ValueError(f"Invalid value for {env_var}: {value}. Error: {e}")

    format_mappings = {
        "VSCHEMA_RESPONSE_CODE_FIELD": ("code_field", str),
        "VSCHEMA_RESPONSE_MSG_FIELD": ("msg_field", str),
        "VSCHEMA_RESPONSE_DATA_FIELD": ("data_field", str),
        "VSCHEMA_RESPONSE_SUCCESS_CODE": ("success_code", _parse_codes),
    }
    for env_var, (attr_name, converter) in format_mappings.items():
        value = os.getenv(env_var)
        if value is not None:
            try:
                setattr(config.response_format, attr_name, converter(value))
            except (ValueError, TypeError) as e:
                raise ValueError(f"Invalid value for {env_var}: {value}. Error: {e}")

    headers = os.getenv("VSCHEMA_DEFAULT_HEADERS")
    if headers:
        try:
            config.default_headers = json.loads(headers)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid value for VSCHEMA_DEFAULT_HEADERS: {e}")

    return config


def config_from_dict(data: Dict[str, Any]) -> RuntimeConfig:
    """
    Build a RuntimeConfig from a plain mapping

    Accepts snake_case keys plus the camelCase aliases `baseURL`,
    `defaultHeaders`, `responseFormat` and `responseDataPath`.
    """
    aliases = {
        "baseURL": "base_url",
        "defaultHeaders": "default_headers",
        "responseFormat": "response_format",
        "responseDataPath": "response_data_path",
    }
    known = {f.name for f in fields(RuntimeConfig)}

    values: Dict[str, Any] = {}
    for key, value in data.items():
        name = aliases.get(key, key)
        if name not in known:
            raise ValueError(f"Unknown configuration key: {key}")
        values[name] = value

    if isinstance(values.get("response_format"), dict):
        format_aliases = {
            "codeField": "code_field",
            "msgField": "msg_field",
            "dataField": "data_field",
            "successCode": "success_code",
        }
        values["response_format"] = ResponseFormat(
            **{format_aliases.get(k, k): v for k, v in values["response_format"].items()}
        )

    return RuntimeConfig(**values)


def validate_config(config: RuntimeConfig) -> List[str]:
    """
    Validate configuration and return list of issues

    Args:
        config: Configuration to validate

    Returns:
        List of validation error messages (empty if valid)
    """
    issues = []

    if config.expression_cache_size <= 0:
        issues.append("expression_cache_size must be positive")

    if config.max_array_length <= 0:
        issues.append("max_array_length must be positive")

    if config.request_timeout <= 0:
        issues.append("request_timeout must be positive")

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if config.log_level.upper() not in valid_log_levels:
        issues.append(
            f"Invalid log_level: {config.log_level}. Must be one of {valid_log_levels}"
        )

    return issues


def setup_logging(config: Optional[RuntimeConfig] = None) -> None:
    """
    Configure the `vschema` logger hierarchy

    Args:
        config: Runtime configuration (defaults when omitted)
    """
    config = config or get_default_config()

    logger = logging.getLogger("vschema")
    logger.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(config.log_format))
        logger.addHandler(handler)
