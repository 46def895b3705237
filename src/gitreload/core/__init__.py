"""Core module for gitreload.

Exports the core components: exceptions, configuration and logging.
"""

from gitreload.core.exceptions import (
    GitReloadError,
    ConfigurationError,
    RemoteUnreachable,
    ExtractionFailed,
    StagingIOFailure,
    MissingCustomizationsSection,
    CorruptStagingState,
    ReloadRejected,
    RollbackUnavailable,
    InvalidStateTransition,
)
from gitreload.core.config import (
    create_settings,
    Settings,
    StatusSettings,
    StagingLocation,
    WatchConfig,
    LoggingConfig,
)
from gitreload.core.logging import configure_logging, sanitize_repo_url

__all__ = [
    # Exceptions
    "GitReloadError",
    "ConfigurationError",
    "RemoteUnreachable",
    "ExtractionFailed",
    "StagingIOFailure",
    "MissingCustomizationsSection",
    "CorruptStagingState",
    "ReloadRejected",
    "RollbackUnavailable",
    "InvalidStateTransition",
    # Config
    "create_settings",
    "Settings",
    "StatusSettings",
    "StagingLocation",
    "WatchConfig",
    "LoggingConfig",
    # Logging
    "configure_logging",
    "sanitize_repo_url",
]
