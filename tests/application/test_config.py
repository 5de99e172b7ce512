from datetime import timedelta
from pathlib import Path

import pytest
from pydantic import ValidationError

from mnemo.application.config import AppConfig, config_files, resolve_config


def _write_config(home: Path, text: str) -> Path:
    path = home / ".config/mnemo/config.toml"
    path.parent.mkdir(parents=True)
    path.write_text(text)
    return path


def test_defaults(mock_home):
    config = resolve_config()

    assert config.backend == "json"
    assert config.store_path == (mock_home / ".config/mnemo/progress.json").resolve()
    assert config.request_retention == 0.9
    assert config.maximum_interval == 365
    assert config.learning_steps_minutes == [1.0, 10.0]


def test_config_files_follow_home(mock_home):
    assert config_files()[0] == mock_home / ".config/mnemo/config.toml"


def test_toml_file_is_loaded(mock_home):
    _write_config(mock_home, 'backend = "memory"\nrequest_retention = 0.85\n')

    config = resolve_config()

    assert config.backend == "memory"
    assert config.request_retention == 0.85


def test_env_overrides_file(mock_home, monkeypatch):
    _write_config(mock_home, "request_retention = 0.85\n")
    monkeypatch.setenv("MNEMO_REQUEST_RETENTION", "0.8")

    assert resolve_config().request_retention == 0.8


def test_cli_overrides_win_and_none_is_ignored(mock_home, monkeypatch):
    monkeypatch.setenv("MNEMO_BACKEND", "memory")

    config = resolve_config({"backend": "json", "store_path": None, "maximum_interval": 100})

    assert config.backend == "json"
    assert config.maximum_interval == 100
    assert config.store_path.name == "progress.json"


def test_store_path_expands_user(mock_home):
    config = resolve_config({"store_path": "~/cards.json"})
    assert config.store_path == (mock_home / "cards.json").resolve()


@pytest.mark.parametrize(
    "overrides",
    [
        {"request_retention": 0.5},
        {"request_retention": 0.99},
        {"maximum_interval": 0},
        {"backend": "postgres"},
        {"learning_steps_minutes": [1.0, -5.0]},
    ],
)
def test_invalid_values_rejected(mock_home, overrides):
    with pytest.raises(ValidationError):
        resolve_config(overrides)


def test_fsrs_parameters(mock_home):
    config = AppConfig(
        request_retention=0.85,
        enable_fuzz=False,
        learning_steps_minutes=[5.0],
        relearning_steps_minutes=[],
    )
    params = config.fsrs_parameters()

    assert params.request_retention == 0.85
    assert params.enable_fuzz is False
    assert params.learning_steps == (timedelta(minutes=5),)
    assert params.relearning_steps == ()
