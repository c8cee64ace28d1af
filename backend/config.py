from __future__ import annotations

import logging
import os
import threading
from typing import Any, Callable, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class ConfigValidationError(ValueError):
    """Raised when a config update fails validation."""


class ExecutionConfig(BaseModel):
    default_timeout_ms: int = 10000
    max_iterations: int = 100
    retry_attempts: int = 3
    expression_timeout_ms: int = 5000


class ApiConfig(BaseModel):
    llm_api_key: Optional[str] = None
    llm_base_url: Optional[str] = None
    default_model: str = "openai:gpt-4o-mini"


class LoggingConfig(BaseModel):
    level: str = "INFO"


class AppConfig(BaseModel):
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"config: ignoring non-integer {name}={raw!r}")
        return default


def load_config(env_file: Optional[str] = None) -> AppConfig:
    """Build an AppConfig from the environment (and .env when present)."""
    load_dotenv(env_file)
    return AppConfig(
        execution=ExecutionConfig(
            default_timeout_ms=_env_int("NODEFLOW_DEFAULT_TIMEOUT_MS", 10000),
            max_iterations=_env_int("NODEFLOW_MAX_ITERATIONS", 100),
            retry_attempts=_env_int("NODEFLOW_RETRY_ATTEMPTS", 3),
            expression_timeout_ms=_env_int("NODEFLOW_EXPRESSION_TIMEOUT_MS", 5000),
        ),
        api=ApiConfig(
            llm_api_key=os.getenv("NODEFLOW_LLM_API_KEY") or None,
            llm_base_url=os.getenv("NODEFLOW_LLM_BASE_URL") or None,
            default_model=os.getenv("NODEFLOW_DEFAULT_MODEL") or "openai:gpt-4o-mini",
        ),
        logging=LoggingConfig(
            level=(os.getenv("NODEFLOW_LOG_LEVEL") or "INFO").upper()
        ),
    )


def validate_config(config: AppConfig) -> Dict[str, List[str]]:
    """Return {"errors": [...], "warnings": [...]} for a config snapshot."""
    errors: List[str] = []
    warnings: List[str] = []
    execution = config.execution

    if execution.default_timeout_ms < 1000:
        errors.append("Default timeout must be at least 1000ms")
    elif execution.default_timeout_ms > 300000:
        warnings.append("Default timeout is very high (>5 minutes)")

    if execution.max_iterations < 1:
        errors.append("Max iterations must be at least 1")
    elif execution.max_iterations > 1000:
        warnings.append("Max iterations is very high (>1000)")

    if execution.retry_attempts < 0:
        errors.append("Retry attempts cannot be negative")
    elif execution.retry_attempts > 10:
        warnings.append("Retry attempts is very high (>10)")

    if execution.expression_timeout_ms < 1:
        errors.append("Expression timeout must be positive")

    if not config.api.llm_api_key:
        warnings.append("LLM API key is not configured - LLM nodes will fail")

    if config.logging.level not in LOG_LEVELS:
        errors.append(f"Log level must be one of {', '.join(LOG_LEVELS)}")

    return {"errors": errors, "warnings": warnings}


class ConfigManager:
    """Holds the live config snapshot and notifies listeners on change."""

    def __init__(self, config: Optional[AppConfig] = None):
        self._config = config or AppConfig()
        self._listeners: List[Callable[[AppConfig], None]] = []
        self._lock = threading.Lock()

    def get(self) -> AppConfig:
        return self._config

    def update(self, **sections: Dict[str, Any]) -> AppConfig:
        """Merge section overrides, e.g. update(execution={"max_iterations": 50})."""
        merged = self._config.model_dump()
        for section, values in sections.items():
            if section not in merged:
                raise ConfigValidationError(f"Unknown config section: {section}")
            merged[section].update(values)

        candidate = AppConfig.model_validate(merged)
        result = validate_config(candidate)
        if result["errors"]:
            raise ConfigValidationError("; ".join(result["errors"]))
        for warning in result["warnings"]:
            logger.warning(f"config: {warning}")

        with self._lock:
            self._config = candidate
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(candidate)
            except Exception as e:
                logger.error(f"config: change listener failed: {e}")
        return candidate

    def reset(self) -> AppConfig:
        with self._lock:
            self._config = AppConfig()
        return self._config

    def validate(self) -> Dict[str, List[str]]:
        return validate_config(self._config)

    def on_change(self, listener: Callable[[AppConfig], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _remove
