"""Core module - configuration, logging, errors and the decompile task."""

from modsetup.core.config import Settings, clear_settings_cache, get_settings
from modsetup.core.errors import (
    DecompilerError,
    ItemExecutionError,
    ModuleReadError,
    OperationCancelledError,
    PlanningCollisionError,
    SetupError,
    Stage,
    VersionMismatchError,
)
from modsetup.core.log import configure_logging

__all__ = [
    "DecompilerError",
    "ItemExecutionError",
    "ModuleReadError",
    "OperationCancelledError",
    "PlanningCollisionError",
    "SetupError",
    "Settings",
    "Stage",
    "VersionMismatchError",
    "clear_settings_cache",
    "configure_logging",
    "get_settings",
]
