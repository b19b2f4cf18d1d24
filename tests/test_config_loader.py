import yaml
import pytest
from pathlib import Path

from faultguard.config import DEV_MODE_ENV, ErrorHandlerConfig, build_config, load_config


def _write_config(tmp_path: Path, data: dict) -> Path:
    path = tmp_path / "partial_config.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def _no_dev_env(monkeypatch):
    monkeypatch.delenv(DEV_MODE_ENV, raising=False)


def test_load_config_merges_with_defaults(tmp_path):
    config_path = _write_config(tmp_path, {"handler": {"max_log_entries": 10}})

    config = load_config(str(config_path))

    assert config.handler.max_log_entries == 10
    # Defaults survive even though they weren't in the override file.
    assert config.handler.retry_attempts == 3
    assert config.handler.retry_delay == 1000
    assert config.handler.enable_reporting is False
    assert config.feedback.durable_duration == 10000
    assert config.dev_mode is False


def test_handler_defaults_match_documented_surface():
    config = ErrorHandlerConfig()
    assert config.enable_logging is True
    assert config.enable_reporting is False
    assert config.reporting_endpoint is None
    assert config.max_log_entries == 100
    assert config.enable_user_feedback is True
    assert config.enable_retry is True
    assert config.retry_attempts == 3
    assert config.retry_delay == 1000


def test_camel_case_keys_are_migrated(tmp_path):
    config_path = _write_config(
        tmp_path,
        {"handler": {"maxLogEntries": 5, "enableRetry": False, "retryDelay": 250}},
    )

    config = load_config(str(config_path))

    assert config.handler.max_log_entries == 5
    assert config.handler.enable_retry is False
    assert config.handler.retry_delay == 250


def test_snake_case_key_wins_over_camel_case_in_same_file(tmp_path):
    config_path = _write_config(
        tmp_path,
        {"handler": {"maxLogEntries": 5, "max_log_entries": 7, "retryAttempts": 0}},
    )

    config = load_config(str(config_path))

    assert config.handler.max_log_entries == 7
    assert config.handler.retry_attempts == 0


def test_reporting_endpoint_must_be_http(tmp_path):
    config_path = _write_config(tmp_path, {"handler": {"reporting_endpoint": "ftp://sink"}})

    with pytest.raises(ValueError) as err:
        load_config(str(config_path))

    assert "reporting_endpoint" in str(err.value)


def test_max_log_entries_must_be_positive():
    with pytest.raises(ValueError):
        build_config({"handler": {"max_log_entries": 0}})


def test_env_overrides_dev_mode(tmp_path, monkeypatch):
    monkeypatch.setenv(DEV_MODE_ENV, "true")
    config = load_config(str(_write_config(tmp_path, {"dev_mode": False})))
    assert config.dev_mode is True


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yaml"))


def test_non_mapping_yaml_is_rejected(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(str(path))
