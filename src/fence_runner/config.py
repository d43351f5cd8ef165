from __future__ import annotations

import os
import tempfile
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

DEFAULT_LANGUAGES_URL = (
    "https://raw.githubusercontent.com/github/linguist/master/lib/linguist/languages.yml"
)
_ENV_LANGUAGES = "FENCE_RUNNER_LANGUAGES"
_ENV_NO_AUTO_PULL = "FENCE_RUNNER_NO_AUTO_PULL"
_ENV_TIMEOUT = "FENCE_RUNNER_TIMEOUT"
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR"}


def _default_config_path() -> Path:
    """Return bundled default config TOML path.

    Example:
        ```python
        path = _default_config_path()
        ```
    """
    return Path(__file__).with_name("default_config.toml")


def default_languages_yml() -> Path:
    """Return the default on-disk location of the language catalog.

    Example:
        ```python
        path = default_languages_yml()
        ```
    """
    return Path(tempfile.gettempdir()) / ".fence-runner" / "languages.yml"


def _read_config_toml(path: Path) -> dict[str, Any]:
    """Read config TOML and return the runner table.

    Example:
        ```python
        raw = _read_config_toml(Path("/tmp/fence-runner.toml"))
        ```
    """
    if not path.exists():
        return {
            "timeout_seconds": 120,
            "interrupt_seconds": 3.0,
            "languages_yml": "",
            "languages_url": DEFAULT_LANGUAGES_URL,
            "auto_pull": True,
            "log_level": "INFO",
        }
    raw = tomllib.loads(path.read_text(encoding="utf-8"))
    runner_obj = raw.get("runner", raw)
    if not isinstance(runner_obj, dict):
        raise ValueError("Runner config must be a TOML table")
    return runner_obj


def _truthy(value: str) -> bool:
    """Interpret an environment flag value.

    Example:
        ```python
        assert _truthy("1")
        ```
    """
    return value.strip().lower() in {"1", "true", "yes", "on"}


_DEFAULT_CONFIG_RAW = _read_config_toml(_default_config_path())
DEFAULT_TIMEOUT_SECONDS = int(_DEFAULT_CONFIG_RAW.get("timeout_seconds", 120))
DEFAULT_INTERRUPT_SECONDS = float(_DEFAULT_CONFIG_RAW.get("interrupt_seconds", 3.0))
DEFAULT_AUTO_PULL = bool(_DEFAULT_CONFIG_RAW.get("auto_pull", True))
DEFAULT_LOG_LEVEL = str(_DEFAULT_CONFIG_RAW.get("log_level", "INFO"))


@dataclass(frozen=True, slots=True)
class RunnerSettings:
    """Settings shared by the orchestrator, capabilities and language registry.

    Example:
        ```python
        settings = RunnerSettings(timeout_seconds=30, auto_pull=False)
        ```
    """

    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    interrupt_seconds: float = DEFAULT_INTERRUPT_SECONDS
    languages_yml: str = str(_DEFAULT_CONFIG_RAW.get("languages_yml", ""))
    languages_url: str = str(_DEFAULT_CONFIG_RAW.get("languages_url", DEFAULT_LANGUAGES_URL))
    auto_pull: bool = DEFAULT_AUTO_PULL
    log_level: str = DEFAULT_LOG_LEVEL

    def __post_init__(self) -> None:
        """Validate settings after dataclass initialization.

        Example:
            ```python
            RunnerSettings(timeout_seconds=10)
            ```
        """
        if self.timeout_seconds < 1:
            raise ValueError("timeout_seconds must be at least 1")
        if self.interrupt_seconds <= 0:
            raise ValueError("interrupt_seconds must be positive")
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}")

    @property
    def languages_path(self) -> Path:
        """Return the configured catalog path, falling back to the default.

        Example:
            ```python
            path = RunnerSettings().languages_path
            ```
        """
        if self.languages_yml:
            return Path(self.languages_yml).expanduser()
        return default_languages_yml()

    @classmethod
    def from_file(cls, config_path: str) -> "RunnerSettings":
        """Create settings from a TOML file.

        Example:
            ```python
            settings = RunnerSettings.from_file("/tmp/fence-runner.toml")
            ```
        """
        path = Path(config_path)
        if not path.exists():
            raise ValueError(f"Config file not found: {config_path}")
        raw = _read_config_toml(path)
        return cls(
            timeout_seconds=int(raw.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)),
            interrupt_seconds=float(raw.get("interrupt_seconds", DEFAULT_INTERRUPT_SECONDS)),
            languages_yml=str(raw.get("languages_yml", "")),
            languages_url=str(raw.get("languages_url", DEFAULT_LANGUAGES_URL)),
            auto_pull=bool(raw.get("auto_pull", DEFAULT_AUTO_PULL)),
            log_level=str(raw.get("log_level", DEFAULT_LOG_LEVEL)),
        )

    def with_env(self, environ: Mapping[str, str] | None = None) -> "RunnerSettings":
        """Apply environment variable overrides on top of these settings.

        Example:
            ```python
            settings = RunnerSettings().with_env({"FENCE_RUNNER_NO_AUTO_PULL": "1"})
            ```
        """
        env = os.environ if environ is None else environ
        updates: dict[str, Any] = {}
        if env.get(_ENV_LANGUAGES):
            updates["languages_yml"] = env[_ENV_LANGUAGES]
        if env.get(_ENV_NO_AUTO_PULL):
            updates["auto_pull"] = not _truthy(env[_ENV_NO_AUTO_PULL])
        if env.get(_ENV_TIMEOUT):
            updates["timeout_seconds"] = int(env[_ENV_TIMEOUT])
        return replace(self, **updates) if updates else self


def load_settings(config_path: str | None = None, environ: Mapping[str, str] | None = None) -> RunnerSettings:
    """Resolve effective settings from an optional file and the environment.

    Example:
        ```python
        settings = load_settings(None, {})
        ```
    """
    base = RunnerSettings.from_file(config_path) if config_path else RunnerSettings()
    return base.with_env(environ)
