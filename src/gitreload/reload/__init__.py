"""Reload coordination: state machine, coordinator, detector and manager."""

from gitreload.reload.coordinator import ReloadCoordinator
from gitreload.reload.detector import ChangeDetector, CycleOutcome
from gitreload.reload.manager import GitReloadManager
from gitreload.reload.state_machine import ReloadState, ReloadStateMachine

__all__ = [
    "ChangeDetector",
    "CycleOutcome",
    "GitReloadManager",
    "ReloadCoordinator",
    "ReloadState",
    "ReloadStateMachine",
]
