from __future__ import annotations

import io
from pathlib import Path

import pytest

from fence_runner import languages
from frun import cli

GUIDE = """\
# Guide

```json
{"name": "fence-runner"}
```

```python
print("hello from the guide")
```

```text
not runnable
```
"""

CATALOG = """\
Python:
  aliases:
  - python3
  extensions:
  - ".py"
"""


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("FENCE_RUNNER_LANGUAGES", "FENCE_RUNNER_NO_AUTO_PULL", "FENCE_RUNNER_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def guide(tmp_path: Path) -> Path:
    path = tmp_path / "guide.md"
    path.write_text(GUIDE, encoding="utf-8")
    return path


def _offline(tmp_path: Path) -> list[str]:
    return ["-N", "-L", str(tmp_path / "missing.yml")]


def test_cli_list_capabilities(capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["list-capabilities"])
    output = capsys.readouterr().out
    assert code == 0
    assert "Capabilities" in output
    assert "python" in output
    assert ".py" in output


def test_cli_run_passes(guide: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["run", str(guide), *_offline(tmp_path)])
    output = capsys.readouterr().out
    assert code == 0
    assert "2 example(s) passed" in output


def test_cli_run_reports_failures(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    broken = tmp_path / "broken.md"
    broken.write_text("```python\nraise SystemExit(3)\n```\n", encoding="utf-8")

    code = cli.main(["run", str(broken), *_offline(tmp_path)])
    output = capsys.readouterr().out
    assert code == 1
    assert "Failed Examples" in output
    assert "python" in output


def test_cli_run_count_mismatch(guide: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["run", str(guide), "--count", "5", *_offline(tmp_path)])
    output = capsys.readouterr().out
    assert code == 1
    assert "example count" in output


def test_cli_run_without_sources(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["run", *_offline(tmp_path)])
    output = capsys.readouterr().out
    assert code == 0
    assert "0 example(s) passed" in output


def test_cli_extract_writes_files(guide: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    out_dir = tmp_path / "out"

    code = cli.main(["extract", str(guide), "-o", str(out_dir), *_offline(tmp_path)])
    output = capsys.readouterr().out
    assert code == 0
    assert "Extracted 2 example(s)" in output
    assert sorted(p.name for p in out_dir.iterdir()) == ["guide-000.json", "guide-001.py"]
    assert (out_dir / "guide-001.py").read_text(encoding="utf-8") == 'print("hello from the guide")\n'


def test_cli_pull_and_dump_languages(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    requested: list[str] = []

    def _fake_get(url: str, timeout_seconds: int = 30) -> tuple[int, bytes]:
        requested.append(url)
        return 200, CATALOG.encode("utf-8")

    monkeypatch.setattr(languages.network, "http_get", _fake_get)
    dest = tmp_path / "cache" / "languages.yml"

    assert cli.main(["pull-languages", "-L", str(dest), "--url", "https://example.org/languages.yml"]) == 0
    assert requested == ["https://example.org/languages.yml"]
    assert dest.exists()
    capsys.readouterr()

    code = cli.main(["dump-languages", "-L", str(dest)])
    output = capsys.readouterr().out
    assert code == 0
    assert "python3" in output


def test_cli_pull_languages_http_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(languages.network, "http_get", lambda url, timeout_seconds=30: (503, b""))

    code = cli.main(["pull-languages", "-L", str(tmp_path / "languages.yml"), "--url", "https://x.test/l.yml"])
    output = capsys.readouterr().out
    assert code == 2
    assert "HTTP 503" in output


def test_cli_dump_languages_missing(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["dump-languages", "-L", str(tmp_path / "absent.yml")])
    output = capsys.readouterr().out
    assert code == 1
    assert "No languages catalog" in output


def test_cli_missing_config_file(guide: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["run", str(guide), "--config", str(tmp_path / "nope.toml")])
    output = capsys.readouterr().out
    assert code == 2
    assert "Config file not found" in output


def test_cli_settings_from_flags(tmp_path: Path) -> None:
    args = cli.build_parser().parse_args(
        ["run", "README.md", "-N", "-L", str(tmp_path / "l.yml"), "--timeout-seconds", "7", "-D"]
    )

    settings = cli.build_settings(args)

    assert settings.auto_pull is False
    assert settings.languages_yml == str(tmp_path / "l.yml")
    assert settings.timeout_seconds == 7
    assert settings.log_level == "DEBUG"


def test_cli_subcommand_help(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["extract", "--help"])
    output = capsys.readouterr().out
    assert exc.value.code == 0
    assert "Extract every runnable example" in output


def test_cli_top_level_help_examples(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["--help"])
    output = capsys.readouterr().out
    assert exc.value.code == 0
    assert "Quick Examples:" in output
    assert "frun run README.md" in output


def test_cli_print_help_writes_to_requested_stream(capsys: pytest.CaptureFixture[str]) -> None:
    parser = cli.build_parser()
    buffer = io.StringIO()
    parser.print_help(file=buffer)
    output = capsys.readouterr().out
    assert output == ""
    help_text = buffer.getvalue()
    assert "Usage:" in help_text
    assert "fence-runner CLI" in help_text
