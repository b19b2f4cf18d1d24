import os
import yaml
from copy import deepcopy
from pathlib import Path
from typing import Optional, Literal, Dict, Any
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

DEV_MODE_ENV = "FAULTGUARD_DEV_MODE"

# camelCase spellings accepted for the handler options.
_LEGACY_HANDLER_KEYS = {
    "enableLogging": "enable_logging",
    "enableReporting": "enable_reporting",
    "reportingEndpoint": "reporting_endpoint",
    "maxLogEntries": "max_log_entries",
    "enableUserFeedback": "enable_user_feedback",
    "enableRetry": "enable_retry",
    "retryAttempts": "retry_attempts",
    "retryDelay": "retry_delay",
}


class ErrorHandlerConfig(BaseModel):
    model_config = {"frozen": True}

    enable_logging: bool = True
    enable_reporting: bool = False
    reporting_endpoint: Optional[str] = None
    max_log_entries: int = Field(default=100, ge=1)
    enable_user_feedback: bool = True
    enable_retry: bool = True
    retry_attempts: int = Field(default=3, ge=0)
    # Base delay in milliseconds; doubled on every re-check.
    retry_delay: float = Field(default=1000, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _migrate_legacy_fields(cls, values):
        if not isinstance(values, dict):
            return values
        values = dict(values)
        for legacy, current in _LEGACY_HANDLER_KEYS.items():
            if legacy in values:
                legacy_value = values.pop(legacy)
                values.setdefault(current, legacy_value)
        return values

    @field_validator("reporting_endpoint")
    @classmethod
    def _validate_endpoint(cls, value):
        if value is None:
            return value
        if not value.startswith(("http://", "https://")):
            raise ValueError("handler.reporting_endpoint must be an http(s) URL.")
        return value


class FeedbackConfig(BaseModel):
    locale: Literal["es", "en"] = "es"
    # Milliseconds the notice stays on screen.
    transient_duration: int = 5000
    durable_duration: int = 10000
    durable_title: str = "Error"


class TimeoutConfig(BaseModel):
    connect: float = 5.0
    read: float = 10.0


class TransportConfig(BaseModel):
    timeout: TimeoutConfig = TimeoutConfig()


class LoggingConfig(BaseModel):
    logs_dir: str = "logs"
    file_logging: bool = False


class AppConfig(BaseModel):
    dev_mode: bool = False
    handler: ErrorHandlerConfig = ErrorHandlerConfig()
    feedback: FeedbackConfig = FeedbackConfig()
    transport: TransportConfig = TransportConfig()
    logging: LoggingConfig = LoggingConfig()


def _load_yaml_mapping(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Error parsing YAML config: {exc}")

    if not isinstance(data, dict):
        raise ValueError(f"Configuration file at {path} must contain a mapping at the top level.")
    return data


def _deep_merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result = deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge_dicts(result[key], value)
        else:
            result[key] = value
    return result


def _normalize_handler_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Rename camelCase handler keys before merging over the defaults, otherwise
    the default snake_case values would shadow them. A snake_case key given in
    the same file wins over its camelCase spelling.
    """
    handler = data.get("handler")
    if not isinstance(handler, dict):
        return data

    normalized = dict(handler)
    for legacy, current in _LEGACY_HANDLER_KEYS.items():
        if legacy in normalized:
            legacy_value = normalized.pop(legacy)
            normalized.setdefault(current, legacy_value)
    return {**data, "handler": normalized}


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def build_config(data: Optional[Dict[str, Any]] = None) -> AppConfig:
    """
    Validate a raw mapping (already merged with defaults) into an AppConfig.
    The dev-mode environment variable, when set, wins over the file.
    """
    data = dict(data or {})
    env_dev_mode = os.environ.get(DEV_MODE_ENV)
    if env_dev_mode is not None:
        data["dev_mode"] = _env_flag(env_dev_mode)

    try:
        return AppConfig(**data)
    except ValidationError as e:
        raise ValueError(f"Configuration validation failed: {e}")


def load_config(config_path: str) -> AppConfig:
    """
    Load YAML config, merge it with defaults, validate with Pydantic, and return a typed config object.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found at: {config_path}")

    default_config = _load_yaml_mapping(get_default_config_path())
    user_config = _normalize_handler_keys(_load_yaml_mapping(path))
    merged_config = _deep_merge_dicts(default_config, user_config)

    return build_config(merged_config)


def get_default_config_path() -> Path:
    """Returns the absolute path to the default config file."""
    root_dir = Path(__file__).parent.parent
    return root_dir / "config" / "default.yaml"
