from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping

import yaml

from . import network
from .config import RunnerSettings
from .logging import get_logger, log_event

LOGGER = get_logger(__name__)


class RegistryError(RuntimeError):
    """Raised when the language catalog cannot be fetched or loaded."""


@dataclass(frozen=True, slots=True)
class Language:
    """Canonical language identity with the informal names that refer to it.

    Example:
        ```python
        lang = Language(name="python", display_name="Python", aliases=("python3",), extensions=(".py",))
        ```
    """

    name: str
    display_name: str
    aliases: tuple[str, ...] = ()
    extensions: tuple[str, ...] = ()


def _str_list(value: Any, field_name: str, language: str) -> tuple[str, ...]:
    """Validate and normalize a list-of-strings catalog field.

    Example:
        ```python
        aliases = _str_list(["py3"], "aliases", "Python")
        ```
    """
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise RegistryError(f"'{field_name}' of language {language!r} must be a list of strings")
    return tuple(value)


class LanguageRegistry:
    """Lookup table from informal language tags to canonical identities.

    Example:
        ```python
        registry = LanguageRegistry([Language("python", "Python", extensions=(".py",))])
        assert registry.lookup("py").name == "python"
        ```
    """

    def __init__(self, languages: Iterable[Language]) -> None:
        """Index languages by name, alias and extension, first entry wins.

        Example:
            ```python
            registry = LanguageRegistry([])
            ```
        """
        self._languages: dict[str, Language] = {}
        self._aliases: dict[str, Language] = {}
        self._extensions: dict[str, Language] = {}
        for language in languages:
            self._languages.setdefault(language.name, language)
            for alias in language.aliases:
                self._aliases.setdefault(alias.lower(), language)
            for extension in language.extensions:
                self._extensions.setdefault(extension.lower().lstrip("."), language)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "LanguageRegistry":
        """Build a registry from a linguist-style ``languages.yml`` mapping.

        Example:
            ```python
            registry = LanguageRegistry.from_mapping({"Python": {"aliases": ["python3"]}})
            ```
        """
        languages: list[Language] = []
        for display_name, attrs in data.items():
            if attrs is None:
                attrs = {}
            if not isinstance(attrs, Mapping):
                raise RegistryError(f"Language {display_name!r} must map to a table")
            name = str(display_name)
            languages.append(
                Language(
                    name=name.lower(),
                    display_name=name,
                    aliases=_str_list(attrs.get("aliases"), "aliases", name),
                    extensions=_str_list(attrs.get("extensions"), "extensions", name),
                )
            )
        return cls(languages)

    def lookup(self, tag: str) -> Language | None:
        """Resolve ``tag`` by canonical name, then alias, then file extension.

        Example:
            ```python
            lang = registry.lookup("js")
            ```
        """
        key = tag.strip().lower()
        if not key:
            return None
        return (
            self._languages.get(key)
            or self._aliases.get(key)
            or self._extensions.get(key.lstrip("."))
        )

    def __len__(self) -> int:
        """Return the number of canonical languages.

        Example:
            ```python
            count = len(registry)
            ```
        """
        return len(self._languages)

    def __iter__(self) -> Iterator[Language]:
        """Iterate canonical languages in catalog order.

        Example:
            ```python
            names = [lang.name for lang in registry]
            ```
        """
        return iter(self._languages.values())


def load_languages(path: str | Path) -> LanguageRegistry:
    """Load a language catalog file.

    Example:
        ```python
        registry = load_languages("/tmp/.fence-runner/languages.yml")
        ```
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except OSError as exc:
        raise RegistryError(f"Failed to read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise RegistryError(f"Failed to parse {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise RegistryError(f"{path} must contain a mapping")
    return LanguageRegistry.from_mapping(data)


def pull_languages(url: str, dest: str | Path, timeout_seconds: int = 30) -> Path:
    """Download a language catalog to ``dest``.

    Example:
        ```python
        path = pull_languages(DEFAULT_LANGUAGES_URL, "/tmp/.fence-runner/languages.yml")
        ```
    """
    dest = Path(dest)
    try:
        status, body = network.http_get(url, timeout_seconds=timeout_seconds)
    except OSError as exc:
        raise RegistryError(f"Failed to download {url}: {exc}") from exc
    if status != 200:
        raise RegistryError(f"Failed to download {url}: HTTP {status}")
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(body)
    except OSError as exc:
        raise RegistryError(f"Failed to write {dest}: {exc}") from exc
    return dest


def resolve_registry(settings: RunnerSettings, logger: logging.Logger | None = None) -> LanguageRegistry | None:
    """Fetch and load the language catalog the way the settings ask for.

    Returns ``None`` when no catalog is available, in which case language
    resolution falls back to exact capability names.

    Example:
        ```python
        registry = resolve_registry(RunnerSettings(auto_pull=False))
        ```
    """
    log = logger or LOGGER
    path = settings.languages_path

    if not path.exists() and settings.auto_pull:
        log_event(log, logging.INFO, "downloading", url=settings.languages_url, dest=str(path))
        pull_languages(settings.languages_url, path)

    if not path.exists():
        log_event(log, logging.DEBUG, "no language catalog", languages=str(path))
        return None

    log_event(log, logging.INFO, "loading", languages=str(path))
    return load_languages(path)


def dump_languages(registry: LanguageRegistry) -> dict[str, dict[str, list[str]]]:
    """Return the registry as a plain mapping sorted by canonical name.

    Example:
        ```python
        payload = dump_languages(registry)
        ```
    """
    return {
        language.name: {
            "aliases": list(language.aliases),
            "extensions": list(language.extensions),
        }
        for language in sorted(registry, key=lambda lang: lang.name)
    }
