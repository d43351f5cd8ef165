from .capabilities import DEFAULT_CAPABILITIES, build_capabilities, capability_names
from .capability import Capability
from .types import CommandSpec, ExecutionOutcome, Failure, Skip

__all__ = [
    "Capability",
    "CommandSpec",
    "DEFAULT_CAPABILITIES",
    "ExecutionOutcome",
    "Failure",
    "Skip",
    "build_capabilities",
    "capability_names",
]
