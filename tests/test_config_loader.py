from __future__ import annotations

from pathlib import Path

import pytest

from ensemble.config import loader
from ensemble.config.loader import get_data_dir, load_configuration
from ensemble.config.schema import Configuration, ModelConfig
from ensemble.exceptions import ConfigurationError, ValidationError


@pytest.fixture
def system_config(tmp_path, monkeypatch) -> Path:
    path = tmp_path / "system" / "config.toml"
    path.parent.mkdir()
    monkeypatch.setattr(loader, "get_system_config_path", lambda: path)
    return path


def _write_project_config(cwd: Path, content: str) -> None:
    config_dir = cwd / ".ensemble"
    config_dir.mkdir(exist_ok=True)
    (config_dir / "config.toml").write_text(content)


def test_defaults_without_files(tmp_path, system_config) -> None:
    config = load_configuration(tmp_path)

    assert config.model.name == "gpt-4o"
    assert config.planner.max_turns == 3
    assert config.agents.message_preview_chars == 150
    assert config.replay.batch_size == 20
    assert config.cwd == tmp_path


def test_project_overrides_system(tmp_path, system_config) -> None:
    system_config.write_text('[model]\nname = "system-model"\n\n[planner]\nmax_turns = 5\n')
    _write_project_config(tmp_path, '[model]\nname = "project-model"\n')

    config = load_configuration(tmp_path)

    assert config.model.name == "project-model"
    assert config.planner.max_turns == 5


def test_invalid_project_toml_is_skipped(tmp_path, system_config) -> None:
    _write_project_config(tmp_path, "[model\nname = ")

    config = load_configuration(tmp_path)

    assert config.model.name == "gpt-4o"


def test_invalid_values_raise(tmp_path, system_config) -> None:
    _write_project_config(tmp_path, "[replay]\nbatch_size = 0\n")

    with pytest.raises(ConfigurationError):
        load_configuration(tmp_path)


def test_temperature_range_is_checked() -> None:
    with pytest.raises(ValidationError):
        ModelConfig(temperature=3.0)


def test_api_key_from_environment(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("API_KEY", "sk-test")
    monkeypatch.setenv("BASE_URL", "http://localhost:8000/v1")

    config = Configuration(cwd=tmp_path)

    assert config.api_key == "sk-test"
    assert config.base_url == "http://localhost:8000/v1"
    assert config.validate() == []


def test_missing_api_key_is_reported(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("API_KEY", raising=False)

    assert any("API key" in message for message in Configuration(cwd=tmp_path).validate())


def test_data_dir_override(tmp_path) -> None:
    assert get_data_dir(Configuration(cwd=tmp_path, data_dir=tmp_path / "runs")) == tmp_path / "runs"
