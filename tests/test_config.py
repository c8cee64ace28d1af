"""Config loading, validation and live updates."""

from __future__ import annotations

import pytest

from backend.config import (
    AppConfig,
    ConfigManager,
    ConfigValidationError,
    ExecutionConfig,
    load_config,
    validate_config,
)

ENV_NAMES = (
    "NODEFLOW_DEFAULT_TIMEOUT_MS",
    "NODEFLOW_MAX_ITERATIONS",
    "NODEFLOW_RETRY_ATTEMPTS",
    "NODEFLOW_EXPRESSION_TIMEOUT_MS",
    "NODEFLOW_LLM_API_KEY",
    "NODEFLOW_LLM_BASE_URL",
    "NODEFLOW_DEFAULT_MODEL",
    "NODEFLOW_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def test_defaults(tmp_path) -> None:
    config = load_config(str(tmp_path / "missing.env"))

    assert config.execution == ExecutionConfig()
    assert config.api.default_model == "openai:gpt-4o-mini"
    assert config.logging.level == "INFO"


def test_environment_overrides(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("NODEFLOW_MAX_ITERATIONS", "25")
    monkeypatch.setenv("NODEFLOW_RETRY_ATTEMPTS", "1")
    monkeypatch.setenv("NODEFLOW_LLM_API_KEY", "sk-test")
    monkeypatch.setenv("NODEFLOW_LOG_LEVEL", "debug")

    config = load_config(str(tmp_path / "missing.env"))

    assert config.execution.max_iterations == 25
    assert config.execution.retry_attempts == 1
    assert config.api.llm_api_key == "sk-test"
    assert config.logging.level == "DEBUG"


def test_non_integer_env_falls_back(monkeypatch, tmp_path, caplog) -> None:
    monkeypatch.setenv("NODEFLOW_DEFAULT_TIMEOUT_MS", "soon")

    config = load_config(str(tmp_path / "missing.env"))

    assert config.execution.default_timeout_ms == 10000
    assert "NODEFLOW_DEFAULT_TIMEOUT_MS" in caplog.text


def test_dotenv_file_is_read(monkeypatch, tmp_path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("NODEFLOW_DEFAULT_MODEL=anthropic:claude-3-haiku\n")

    config = load_config(str(env_file))
    # load_dotenv writes into os.environ; undo it for other tests.
    monkeypatch.delenv("NODEFLOW_DEFAULT_MODEL", raising=False)

    assert config.api.default_model == "anthropic:claude-3-haiku"


def test_validate_config_errors_and_warnings() -> None:
    config = AppConfig(
        execution=ExecutionConfig(default_timeout_ms=10, max_iterations=5000, retry_attempts=-1)
    )

    result = validate_config(config)

    assert "Default timeout must be at least 1000ms" in result["errors"]
    assert "Retry attempts cannot be negative" in result["errors"]
    assert "Max iterations is very high (>1000)" in result["warnings"]
    assert any("API key" in w for w in result["warnings"])


def test_update_merges_sections_and_notifies() -> None:
    manager = ConfigManager()
    seen = []
    remove = manager.on_change(seen.append)

    updated = manager.update(execution={"max_iterations": 50})

    assert updated.execution.max_iterations == 50
    assert updated.execution.retry_attempts == 3
    assert manager.get() is updated
    assert seen == [updated]

    remove()
    manager.update(execution={"max_iterations": 60})
    assert len(seen) == 1


def test_invalid_update_keeps_previous_config() -> None:
    manager = ConfigManager()
    before = manager.get()

    with pytest.raises(ConfigValidationError, match="Max iterations must be at least 1"):
        manager.update(execution={"max_iterations": 0})
    with pytest.raises(ConfigValidationError, match="Unknown config section"):
        manager.update(database={"url": "x"})

    assert manager.get() is before


def test_failing_listener_is_logged(caplog) -> None:
    manager = ConfigManager()

    def broken(_config):
        raise RuntimeError("listener broke")

    manager.on_change(broken)
    manager.update(logging={"level": "WARNING"})

    assert manager.get().logging.level == "WARNING"
    assert "listener broke" in caplog.text


def test_reset_restores_defaults() -> None:
    manager = ConfigManager(AppConfig(execution=ExecutionConfig(max_iterations=7)))

    assert manager.reset().execution.max_iterations == 100
    assert manager.validate()["errors"] == []
