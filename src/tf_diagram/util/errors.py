from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    OK = 0
    CONFIG_ERROR = 2
    LOAD_ERROR = 3
    RUNTIME_ERROR = 5


class DiagramError(Exception):
    """Base error for the diagram pipeline."""


class ConfigError(DiagramError):
    """Raised for configuration or argument issues."""


class GraphLoadError(DiagramError):
    """Raised when the dependency graph text cannot be parsed."""


class PlanLoadError(DiagramError):
    """Raised when a supplied plan document cannot be parsed."""


class MappingTableError(DiagramError):
    """Raised when the mapping table is missing or inconsistent."""


class ExportError(DiagramError):
    """Raised when exporting artifacts fails."""


class StateError(DiagramError):
    """Raised when the persisted state cannot be read or written."""


def as_exit_code(exc: BaseException) -> int:
    if isinstance(exc, (ConfigError, ValueError)):
        return int(ExitCode.CONFIG_ERROR)
    if isinstance(exc, (GraphLoadError, PlanLoadError, MappingTableError)):
        return int(ExitCode.LOAD_ERROR)
    if isinstance(exc, (ExportError, StateError, DiagramError)):
        return int(ExitCode.RUNTIME_ERROR)
    return 1
