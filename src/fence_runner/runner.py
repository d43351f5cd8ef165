from __future__ import annotations

import logging
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Sequence

from .config import RunnerSettings
from .execution.capabilities import DEFAULT_CAPABILITIES
from .execution.capability import Capability
from .execution.types import ExecutionOutcome, Failure, Skip
from .finder import UnitFinder, find_units
from .languages import LanguageRegistry, resolve_registry
from .logging import get_logger, log_event
from .unit import ExtractedUnit

LOGGER = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RunReport:
    """Aggregate of one run, derived from its outcomes.

    Example:
        ```python
        report = RunReport(documents=1, units=2, errors=[], skipped=0, elapsed=0.4)
        ```
    """

    documents: int
    units: int
    errors: list[Failure] = field(default_factory=list)
    skipped: int = 0
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        """Return whether the run produced no failures.

        Example:
            ```python
            assert RunReport(documents=0, units=0).ok
            ```
        """
        return not self.errors


def classify_outcomes(outcomes: Sequence[ExecutionOutcome]) -> tuple[list[Failure], list[ExecutionOutcome]]:
    """Split outcomes into failures and skips, preserving discovery order.

    Example:
        ```python
        failures, skipped = classify_outcomes(outcomes)
        ```
    """
    failures: list[Failure] = []
    skipped: list[ExecutionOutcome] = []
    for outcome in outcomes:
        if isinstance(outcome.error, Skip):
            skipped.append(outcome)
        elif isinstance(outcome.error, Failure):
            failures.append(outcome.error)
    return failures, skipped


def check_count(outcomes: Sequence[ExecutionOutcome], expected: int) -> Failure | None:
    """Return a failure when an expected example count is set and not met.

    Example:
        ```python
        mismatch = check_count(outcomes, expected=3)
        ```
    """
    if expected > 0 and len(outcomes) != expected:
        return Failure(f"example count {len(outcomes)} != expected {expected}")
    return None


def extract_stems(sources: Sequence[str]) -> list[str]:
    """Return one extraction file stem per source, unique within the run.

    A document keeps its file stem unless another source shares it; shared
    stems get the document's position appended (``README-doc1``).

    Example:
        ```python
        assert extract_stems(["a/README.md", "b/README.md", "guide.md"]) == ["README-doc0", "README-doc1", "guide"]
        ```
    """
    stems = [Path(source).stem or "example" for source in sources]
    counts: dict[str, int] = {}
    for stem in stems:
        counts[stem] = counts.get(stem, 0) + 1

    unique: list[str] = []
    used: set[str] = set()
    for index, stem in enumerate(stems):
        candidate = stem if counts[stem] == 1 else f"{stem}-doc{index}"
        while candidate in used:
            candidate = f"{candidate}-{index}"
        used.add(candidate)
        unique.append(candidate)
    return unique


class Runner:
    """Find, run and report the code examples of a list of documents.

    Example:
        ```python
        errors = Runner(["README.md"], count=4).run()
        ```
    """

    def __init__(
        self,
        sources: Sequence[str],
        count: int = 0,
        *,
        capabilities: Mapping[str, Capability] | None = None,
        registry: LanguageRegistry | None = None,
        settings: RunnerSettings | None = None,
        finder: UnitFinder = find_units,
        no_exec: bool = False,
        extract_dir: str | Path | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Bind the run inputs; nothing is read until ``run`` is called.

        Example:
            ```python
            runner = Runner(["README.md"], no_exec=True, extract_dir="/tmp/examples")
            ```
        """
        self.sources = list(sources)
        self.count = count
        self.capabilities = DEFAULT_CAPABILITIES if capabilities is None else capabilities
        self.registry = registry
        self.settings = settings or RunnerSettings()
        self.finder = finder
        self.no_exec = no_exec
        self._extract_dir = Path(extract_dir) if extract_dir is not None else None
        self.log = logger or LOGGER

    @classmethod
    def from_settings(
        cls,
        sources: Sequence[str],
        count: int = 0,
        settings: RunnerSettings | None = None,
        *,
        logger: logging.Logger | None = None,
        **kwargs: Any,
    ) -> "Runner":
        """Build a runner whose language catalog is resolved from settings.

        Catalog download or load errors propagate before any document is read.

        Example:
            ```python
            runner = Runner.from_settings(["README.md"], settings=RunnerSettings(auto_pull=False))
            ```
        """
        resolved = settings or RunnerSettings()
        registry = resolve_registry(resolved, logger)
        return cls(sources, count, registry=registry, settings=resolved, logger=logger, **kwargs)

    @property
    def extract_dir(self) -> Path:
        """Return the extraction directory, creating a temporary one on first use.

        Example:
            ```python
            dest = runner.extract_dir
            ```
        """
        if self._extract_dir is None:
            self._extract_dir = Path(tempfile.mkdtemp(prefix="fence-runner-extract-"))
        return self._extract_dir

    def run(self) -> list[Failure]:
        """Run every example and return the failures, empty when all passed.

        Example:
            ```python
            errors = runner.run()
            ```
        """
        return self.run_report().errors

    def run_report(self) -> RunReport:
        """Run every example and return the full report.

        Example:
            ```python
            report = runner.run_report()
            ```
        """
        if not self.sources:
            self.log.warning("no sources given")
            return RunReport(documents=0, units=0)

        start = time.monotonic()
        outcomes = self.collect()
        return self.report(outcomes, time.monotonic() - start)

    def collect(self) -> list[ExecutionOutcome]:
        """Produce one outcome per runnable unit, in document then unit order.

        Example:
            ```python
            outcomes = runner.collect()
            ```
        """
        outcomes: list[ExecutionOutcome] = []
        for source, stem in zip(self.sources, extract_stems(self.sources)):
            try:
                text = Path(source).read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                log_event(self.log, logging.DEBUG, "unreadable source", source=source, reason=str(exc))
                outcomes.append(
                    ExecutionOutcome(
                        status=-1,
                        error=Failure(f"failed to read source: {exc}", source=source),
                    )
                )
                continue
            outcomes.extend(self.check_source(source, text, stem=stem))
        return outcomes

    def check_source(self, source: str, text: str, *, stem: str | None = None) -> list[ExecutionOutcome]:
        """Find, resolve and run the units of one document.

        ``stem`` names extracted files; it defaults to the document's file stem.

        Example:
            ```python
            outcomes = runner.check_source("README.md", Path("README.md").read_text())
            ```
        """
        outcomes: list[ExecutionOutcome] = []
        source_start = time.monotonic()
        units = self.resolve_units(self.finder(source, text))

        for ordinal, unit in enumerate(units):
            if self.no_exec:
                outcomes.append(unit.extract(ordinal, self.extract_dir, stem))
                continue

            progress = f"{ordinal + 1}/{len(units)}"
            log_event(self.log, logging.INFO, "start", i=progress, source=source, line=unit.line_offset, lang=unit.lang)
            start = time.monotonic()
            outcomes.append(unit.run(ordinal, self.settings))
            log_event(
                self.log,
                logging.INFO,
                "finish",
                i=progress,
                source=source,
                line=unit.line_offset,
                lang=unit.lang,
                time=time.monotonic() - start,
            )

        log_event(self.log, logging.INFO, "checked", source=source, time=time.monotonic() - source_start)
        return outcomes

    def resolve_units(self, units: Sequence[ExtractedUnit]) -> list[ExtractedUnit]:
        """Bind a capability to each unit and drop those that cannot or should not run.

        Exact capability names are tried first; otherwise the registry maps the
        tag to a canonical name, which replaces the unit's tag.

        Example:
            ```python
            runnable = runner.resolve_units(find_units("README.md", text))
            ```
        """
        runnable: list[ExtractedUnit] = []
        for unit in units:
            capability = self.capabilities.get(unit.lang)
            if capability is None and self.registry is not None:
                language = self.registry.lookup(unit.lang)
                if language is None:
                    log_event(
                        self.log,
                        logging.DEBUG,
                        "unknown language, skipping",
                        source=unit.source,
                        line=unit.line_offset,
                        lang=unit.lang,
                    )
                    continue
                unit.lang = language.name
                capability = self.capabilities.get(unit.lang)

            if capability is None:
                log_event(
                    self.log,
                    logging.DEBUG,
                    "no capability available for lang",
                    source=unit.source,
                    line=unit.line_offset,
                    lang=unit.lang,
                )
                continue

            unit.capability = capability

            reason = capability.can_execute(unit)
            if reason is not None:
                log_event(
                    self.log,
                    logging.DEBUG,
                    "skipping example due to filter",
                    source=unit.source,
                    line=unit.line_offset,
                    reason=reason,
                )
                continue

            runnable.append(unit)

        log_event(self.log, logging.DEBUG, "returning runnables", runnable_count=len(runnable))
        return runnable

    def report(self, outcomes: Sequence[ExecutionOutcome], elapsed: float) -> RunReport:
        """Turn collected outcomes into the run report, logging diagnostics.

        A count mismatch replaces every per-example failure with a single one.

        Example:
            ```python
            report = runner.report(runner.collect(), elapsed=1.2)
            ```
        """
        if not self.no_exec:
            mismatch = check_count(outcomes, self.count)
            if mismatch is not None:
                log_event(
                    self.log,
                    logging.ERROR,
                    "mismatched example count",
                    expected=self.count,
                    actual=len(outcomes),
                )
                return RunReport(
                    documents=len(self.sources),
                    units=len(outcomes),
                    errors=[mismatch],
                    elapsed=elapsed,
                )

        for outcome in outcomes:
            if outcome.stdout or outcome.stderr:
                log_event(
                    self.log,
                    logging.DEBUG,
                    "captured output",
                    source=outcome.unit.source if outcome.unit else None,
                    stdout=outcome.stdout,
                    stderr=outcome.stderr,
                )

        failures, skipped = classify_outcomes(outcomes)
        for outcome in skipped:
            if not isinstance(outcome.error, Skip):
                continue
            log_event(
                self.log,
                logging.DEBUG,
                "skipped example",
                source=outcome.unit.source if outcome.unit else None,
                line=outcome.unit.line_offset if outcome.unit else None,
                reason=outcome.error.reason,
            )

        log_event(
            self.log,
            logging.INFO,
            "done",
            source_count=len(self.sources),
            example_count=len(outcomes),
            error_count=len(failures),
            time=elapsed,
        )
        return RunReport(
            documents=len(self.sources),
            units=len(outcomes),
            errors=failures,
            skipped=len(skipped),
            elapsed=elapsed,
        )


def run_examples(
    sources: Sequence[str],
    count: int = 0,
    settings: RunnerSettings | None = None,
    registry: LanguageRegistry | None = None,
) -> list[Failure]:
    """Run the examples of ``sources`` with the built-in capabilities.

    Example:
        ```python
        from fence_runner import run_examples
        errors = run_examples(["README.md"], count=3)
        ```
    """
    return Runner(sources, count, registry=registry, settings=settings).run()
