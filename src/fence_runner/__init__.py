from .config import RunnerSettings, load_settings
from .execution import Capability, ExecutionOutcome, Failure, Skip
from .finder import find_units
from .languages import Language, LanguageRegistry, RegistryError, load_languages
from .runner import RunReport, Runner, run_examples
from .unit import ExtractedUnit

__all__ = [
    "Capability",
    "ExecutionOutcome",
    "ExtractedUnit",
    "Failure",
    "Language",
    "LanguageRegistry",
    "RegistryError",
    "RunReport",
    "Runner",
    "RunnerSettings",
    "Skip",
    "find_units",
    "load_languages",
    "load_settings",
    "run_examples",
]
