"""Candidate staging: pointer store and document composer."""

from gitreload.staging.composer import ConfigComposer, extract_customizations, split_includes
from gitreload.staging.store import (
    PointerName,
    PointerSnapshot,
    StagingState,
    StagingStore,
    classify,
)

__all__ = [
    "ConfigComposer",
    "extract_customizations",
    "split_includes",
    "PointerName",
    "PointerSnapshot",
    "StagingState",
    "StagingStore",
    "classify",
]
