from pathlib import Path

import pytest

from fence_runner import RunnerSettings, load_settings
from fence_runner.config import DEFAULT_LANGUAGES_URL, default_languages_yml


def test_bundled_defaults() -> None:
    settings = RunnerSettings()

    assert settings.timeout_seconds == 120
    assert settings.interrupt_seconds == 3.0
    assert settings.auto_pull is True
    assert settings.languages_url == DEFAULT_LANGUAGES_URL
    assert settings.languages_path == default_languages_yml()


def test_config_file_runner_table(tmp_path: Path) -> None:
    config_file = tmp_path / "fence-runner.toml"
    config_file.write_text(
        (
            "[runner]\n"
            "timeout_seconds = 15\n"
            "interrupt_seconds = 0.5\n"
            f"languages_yml = \"{(tmp_path / 'langs.yml').as_posix()}\"\n"
            "auto_pull = false\n"
            "log_level = \"debug\"\n"
        ),
        encoding="utf-8",
    )

    settings = RunnerSettings.from_file(str(config_file))

    assert settings.timeout_seconds == 15
    assert settings.interrupt_seconds == 0.5
    assert settings.languages_path == tmp_path / "langs.yml"
    assert settings.auto_pull is False
    assert settings.log_level == "debug"


def test_config_file_top_level_keys(tmp_path: Path) -> None:
    config_file = tmp_path / "fence-runner.toml"
    config_file.write_text("timeout_seconds = 9\n", encoding="utf-8")

    assert RunnerSettings.from_file(str(config_file)).timeout_seconds == 9


def test_missing_config_file_raises(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="Config file not found"):
        RunnerSettings.from_file(str(tmp_path / "nope.toml"))


def test_environment_overrides() -> None:
    settings = load_settings(
        None,
        {
            "FENCE_RUNNER_LANGUAGES": "/srv/languages.yml",
            "FENCE_RUNNER_NO_AUTO_PULL": "1",
            "FENCE_RUNNER_TIMEOUT": "42",
        },
    )

    assert settings.languages_yml == "/srv/languages.yml"
    assert settings.auto_pull is False
    assert settings.timeout_seconds == 42


def test_empty_environment_keeps_settings() -> None:
    base = RunnerSettings(timeout_seconds=5)
    assert base.with_env({}) is base


@pytest.mark.parametrize(
    "kwargs",
    [{"timeout_seconds": 0}, {"interrupt_seconds": 0}, {"log_level": "chatty"}],
)
def test_invalid_settings_are_rejected(kwargs) -> None:
    with pytest.raises(ValueError):
        RunnerSettings(**kwargs)
