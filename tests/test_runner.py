from __future__ import annotations

from pathlib import Path

import pytest

from fence_runner import ExecutionOutcome, Failure, Language, LanguageRegistry, Runner, RunnerSettings, Skip
from fence_runner.execution import Capability, CommandSpec
from fence_runner.runner import check_count, classify_outcomes, extract_stems
from fence_runner.unit import ExtractedUnit


class _FakeCapability(Capability):
    extension = ".txt"

    def __init__(self, name: str) -> None:
        self.name = name
        self.ran: list[tuple[str, int, int]] = []

    def commands(self, unit: ExtractedUnit, path: Path) -> list[CommandSpec]:
        return []

    def run(self, unit: ExtractedUnit, ordinal: int, settings: RunnerSettings) -> ExecutionOutcome:
        self.ran.append((unit.source, unit.line_offset, ordinal))
        if "fail" in unit.code:
            return ExecutionOutcome(
                status=1,
                error=Failure("boom", source=unit.source, line=unit.line_offset, lang=unit.lang),
                unit=unit,
            )
        if "skipme" in unit.code:
            return ExecutionOutcome(status=0, error=Skip("not today"), unit=unit)
        return ExecutionOutcome(status=0, stdout="ok\n", unit=unit)


def _doc(tmp_path: Path, name: str, *blocks: tuple[str, str]) -> str:
    parts = []
    for lang, code in blocks:
        parts.append(f"Some prose.\n\n```{lang}\n{code}\n```\n")
    path = tmp_path / name
    path.write_text("\n".join(parts), encoding="utf-8")
    return str(path)


def _runner(sources: list[str], fake: _FakeCapability, **kwargs) -> Runner:
    return Runner(sources, capabilities={fake.name: fake}, **kwargs)


def test_outcomes_follow_document_then_unit_order(tmp_path: Path) -> None:
    fake = _FakeCapability("fake")
    first = _doc(tmp_path, "a.md", ("fake", "one"), ("fake", "two"))
    second = _doc(tmp_path, "b.md", ("fake", "three"))

    outcomes = _runner([first, second], fake).collect()

    assert [(o.unit.source, o.unit.code) for o in outcomes] == [
        (first, "one\n"),
        (first, "two\n"),
        (second, "three\n"),
    ]
    assert [entry[2] for entry in fake.ran] == [0, 1, 0]


def test_repeated_runs_are_identical(tmp_path: Path) -> None:
    fake = _FakeCapability("fake")
    source = _doc(tmp_path, "a.md", ("fake", "fail 1"), ("fake", "ok"), ("fake", "fail 2"))

    first = _runner([source], fake).run()
    second = _runner([source], fake).run()

    assert first == second
    assert [failure.line for failure in first] == [3, 15]


def test_unknown_languages_and_skips_never_fail(tmp_path: Path) -> None:
    fake = _FakeCapability("fake")
    source = _doc(
        tmp_path,
        "a.md",
        ("cobol", "fail"),
        ("fake", "skipme"),
        ("fake", "fail"),
        ("haskell", "fail"),
    )

    report = _runner([source], fake).run_report()

    assert [failure.message for failure in report.errors] == ["boom"]
    assert report.skipped == 1
    assert report.units == 2


def test_eligibility_filter_drops_units_before_running(tmp_path: Path) -> None:
    fake = _FakeCapability("fake")
    path = tmp_path / "a.md"
    path.write_text(
        '<!-- {"skip": "needs a database"} -->\n```fake\nfail\n```\n\n```fake\nok\n```\n',
        encoding="utf-8",
    )

    errors = _runner([str(path)], fake).run()

    assert errors == []
    assert len(fake.ran) == 1


def test_unreadable_document_is_isolated(tmp_path: Path) -> None:
    fake = _FakeCapability("fake")
    first = _doc(tmp_path, "a.md", ("fake", "ok"))
    missing = str(tmp_path / "missing.md")
    third = _doc(tmp_path, "c.md", ("fake", "ok"), ("fake", "ok again"))

    runner = _runner([first, missing, third], fake)
    outcomes = runner.collect()
    errors = runner.report(outcomes, elapsed=0.0).errors

    assert len(outcomes) == 4
    assert outcomes[1].status == -1
    assert len(errors) == 1
    assert errors[0].source == missing
    assert "failed to read source" in errors[0].message
    assert len(fake.ran) == 3


def test_count_mismatch_replaces_per_unit_errors(tmp_path: Path) -> None:
    fake = _FakeCapability("fake")
    source = _doc(tmp_path, "a.md", ("fake", "fail"), ("fake", "fail again"))

    errors = _runner([source], fake, count=3).run()

    assert len(errors) == 1
    assert errors[0].message == "example count 2 != expected 3"


def test_matching_count_reports_per_unit_errors(tmp_path: Path) -> None:
    fake = _FakeCapability("fake")
    source = _doc(tmp_path, "a.md", ("fake", "fail"), ("fake", "ok"))

    errors = _runner([source], fake, count=2).run()

    assert [failure.message for failure in errors] == ["boom"]


def test_count_is_ignored_when_extracting(tmp_path: Path) -> None:
    fake = _FakeCapability("fake")
    source = _doc(tmp_path, "guide.md", ("fake", "echo one"), ("fake", "echo two"))
    dest = tmp_path / "out"

    report = _runner([source], fake, count=7, no_exec=True, extract_dir=dest).run_report()

    assert report.errors == []
    assert fake.ran == []
    assert sorted(p.name for p in dest.iterdir()) == ["guide-000.txt", "guide-001.txt"]
    assert (dest / "guide-001.txt").read_text(encoding="utf-8") == "echo two\n"


def test_extraction_reuses_one_temporary_directory(tmp_path: Path) -> None:
    fake = _FakeCapability("fake")
    first = _doc(tmp_path, "a.md", ("fake", "one"))
    second = _doc(tmp_path, "b.md", ("fake", "two"))

    runner = _runner([first, second], fake, no_exec=True)
    outcomes = runner.collect()

    written = [Path(outcome.stdout) for outcome in outcomes]
    assert {path.parent for path in written} == {runner.extract_dir}
    assert all(path.exists() for path in written)


def test_extraction_keeps_documents_with_the_same_name_apart(tmp_path: Path) -> None:
    fake = _FakeCapability("fake")
    (tmp_path / "a").mkdir()
    (tmp_path / "b").mkdir()
    first = _doc(tmp_path, "a/README.md", ("fake", "echo first"))
    second = _doc(tmp_path, "b/README.md", ("fake", "echo second"))
    dest = tmp_path / "out"

    report = _runner([first, second], fake, no_exec=True, extract_dir=dest).run_report()

    assert report.errors == []
    assert report.units == 2
    assert sorted(p.name for p in dest.iterdir()) == ["README-doc0-000.txt", "README-doc1-000.txt"]
    assert (dest / "README-doc0-000.txt").read_text(encoding="utf-8") == "echo first\n"
    assert (dest / "README-doc1-000.txt").read_text(encoding="utf-8") == "echo second\n"


def test_extract_stems_are_unique_per_run() -> None:
    assert extract_stems(["guide.md", "docs/intro.md"]) == ["guide", "intro"]
    assert extract_stems(["a/README.md", "b/README.md", "guide.md"]) == ["README-doc0", "README-doc1", "guide"]
    assert extract_stems(["README.md", "README.md"]) == ["README-doc0", "README-doc1"]
    assert len(set(extract_stems(["x/README-doc1.md", "a/README.md", "b/README.md"]))) == 3


def test_example_that_cannot_start_does_not_stop_the_batch(tmp_path: Path) -> None:
    source = tmp_path / "nul.md"
    source.write_text(
        '<!-- {"args": ["a\\u0000b"]} -->\n'
        "```python\n"
        "print(1)\n"
        "```\n"
        "\n"
        "```python\n"
        "print(2)\n"
        "```\n",
        encoding="utf-8",
    )

    outcomes = Runner([str(source)], settings=RunnerSettings(timeout_seconds=20)).collect()

    assert len(outcomes) == 2
    assert outcomes[0].status == -1
    assert isinstance(outcomes[0].error, Failure)
    assert outcomes[0].error.line == 2
    assert "failed to start" in outcomes[0].error.message
    assert outcomes[1].ok
    assert outcomes[1].stdout == "2\n"


def test_no_sources_returns_empty_without_running(caplog: pytest.LogCaptureFixture) -> None:
    fake = _FakeCapability("fake")

    caplog.set_level("WARNING")
    errors = _runner([], fake).run()

    assert errors == []
    assert fake.ran == []
    assert "no sources given" in caplog.text


def test_alias_resolution_uses_registry(tmp_path: Path) -> None:
    python = _FakeCapability("python")
    registry = LanguageRegistry([Language("python", "Python", aliases=("python3",), extensions=(".py",))])
    source = _doc(tmp_path, "a.md", ("py", "ok"), ("Python3", "ok"))

    outcomes = Runner([source], capabilities={"python": python}, registry=registry).collect()

    assert len(outcomes) == 2
    assert [outcome.unit.lang for outcome in outcomes] == ["python", "python"]
    assert outcomes[0].unit.capability is python


def test_alias_is_skipped_without_registry(tmp_path: Path) -> None:
    python = _FakeCapability("python")
    source = _doc(tmp_path, "a.md", ("py", "fail"))

    report = Runner([source], capabilities={"python": python}).run_report()

    assert report.errors == []
    assert report.units == 0
    assert python.ran == []


def test_registry_language_without_capability_is_dropped(tmp_path: Path) -> None:
    fake = _FakeCapability("fake")
    registry = LanguageRegistry([Language("rust", "Rust", extensions=(".rs",))])
    source = _doc(tmp_path, "a.md", ("rs", "fail"))

    assert _runner([source], fake, registry=registry).run() == []


def test_classify_outcomes_keeps_order() -> None:
    outcomes = [
        ExecutionOutcome(status=1, error=Failure("first")),
        ExecutionOutcome(status=0, error=Skip("later")),
        ExecutionOutcome(status=0),
        ExecutionOutcome(status=2, error=Failure("second")),
    ]

    failures, skipped = classify_outcomes(outcomes)

    assert [failure.message for failure in failures] == ["first", "second"]
    assert [outcome.error for outcome in skipped] == [Skip("later")]


def test_check_count_disabled_by_zero() -> None:
    assert check_count([], 0) is None
    assert check_count([ExecutionOutcome(status=0)], 1) is None
    assert check_count([], 2) == Failure("example count 0 != expected 2")


def test_from_settings_without_catalog_has_no_registry(tmp_path: Path) -> None:
    settings = RunnerSettings(languages_yml=str(tmp_path / "languages.yml"), auto_pull=False)

    runner = Runner.from_settings(["README.md"], settings=settings)

    assert runner.registry is None
    assert runner.settings is settings
