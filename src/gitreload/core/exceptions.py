"""gitreload Exception Hierarchy.

This module defines the structured exception hierarchy for gitreload.
All custom exceptions inherit from GitReloadError, enabling consistent
error handling at the poll-cycle boundary.

Exception Categories:
- Fatal at startup: MissingCustomizationsSection, CorruptStagingState
- Absorbed per cycle (logged, retried next tick): RemoteUnreachable,
  ExtractionFailed, StagingIOFailure, ReloadRejected

Usage:
    from gitreload.core.exceptions import RemoteUnreachable

    raise RemoteUnreachable(
        repository_url="https://git.example.com/configs.git",
        ref="main",
        reason="connection timed out",
    )
"""

from typing import Any, Optional


class GitReloadError(Exception):
    """Base exception for all gitreload errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: Optional[str] = None) -> None:
        """Initialize GitReloadError.

        Args:
            message: Optional custom message. Defaults to a generic message.
        """
        self.message = message or "A gitreload error occurred."
        super().__init__(self.message)

    @property
    def context(self) -> dict[str, Any]:
        """Return context dictionary for structured logging.

        Returns:
            dict: Key-value pairs of exception context.
        """
        return {}

    def __repr__(self) -> str:
        """Return debug representation."""
        return f"{self.__class__.__name__}({self.message!r})"


class ConfigurationError(GitReloadError):
    """Configuration file or value is invalid.

    Raised when the settings YAML cannot be parsed or
    contains invalid values.

    Attributes:
        config_path: Path to the configuration file.
        key: The configuration key that caused the error.
    """

    def __init__(
        self,
        config_path: str,
        key: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        self.config_path = config_path
        self.key = key

        if message is None:
            key_info = f" key '{key}'" if key else ""
            message = f"Configuration error in '{config_path}'{key_info}."

        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        """Return context for configuration error."""
        return {
            "config_path": self.config_path,
            "key": self.key,
        }

    def __repr__(self) -> str:
        return (
            f"ConfigurationError(config_path={self.config_path!r}, "
            f"key={self.key!r})"
        )


class RemoteUnreachable(GitReloadError):
    """Remote revision lookup or working-copy sync failed.

    The cycle is skipped and retried on the next tick; staging
    state is never touched.

    Attributes:
        repository_url: Sanitized repository URL.
        ref: The ref being tracked.
        reason: Why the remote could not be used.
    """

    def __init__(
        self,
        repository_url: str,
        ref: str,
        reason: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        self.repository_url = repository_url
        self.ref = ref
        self.reason = reason

        if message is None:
            reason_info = f": {reason}" if reason else ""
            message = f"Remote '{repository_url}' (ref: {ref}) unreachable{reason_info}"

        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        """Return context for remote failure."""
        return {
            "repository_url": self.repository_url,
            "ref": self.ref,
            "reason": self.reason,
        }

    def __repr__(self) -> str:
        return (
            f"RemoteUnreachable(repository_url={self.repository_url!r}, "
            f"ref={self.ref!r}, reason={self.reason!r})"
        )


class ExtractionFailed(GitReloadError):
    """Watched file is missing or unreadable at the synced revision.

    Attributes:
        file_path: Path of the watched file within the repository.
        revision: Revision the extraction was attempted at.
    """

    def __init__(
        self,
        file_path: str,
        revision: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        self.file_path = file_path
        self.revision = revision

        if message is None:
            rev_info = f" at {revision[:7]}" if revision else ""
            message = f"Failed to extract '{file_path}'{rev_info}."

        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        """Return context for extraction failure."""
        return {
            "file_path": self.file_path,
            "revision": self.revision,
        }

    def __repr__(self) -> str:
        return (
            f"ExtractionFailed(file_path={self.file_path!r}, "
            f"revision={self.revision!r})"
        )


class StagingIOFailure(GitReloadError):
    """Writing a candidate, header or pointer file failed.

    Fatal to the cycle but not to the process. The staging
    state is left in the last valid composite state.

    Attributes:
        path: File that could not be written or removed.
        operation: Operation being performed (write, unlink, read).
        reason: Underlying OS error text.
    """

    def __init__(
        self,
        path: str,
        operation: str,
        reason: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        self.path = path
        self.operation = operation
        self.reason = reason

        if message is None:
            reason_info = f": {reason}" if reason else ""
            message = f"Staging I/O failure during {operation} of '{path}'{reason_info}"

        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        """Return context for staging I/O failure."""
        return {
            "path": self.path,
            "operation": self.operation,
            "reason": self.reason,
        }

    def __repr__(self) -> str:
        return (
            f"StagingIOFailure(path={self.path!r}, "
            f"operation={self.operation!r}, reason={self.reason!r})"
        )


class MissingCustomizationsSection(GitReloadError):
    """Bootstrap document has no customizations block and no header exists.

    Fatal at startup: every remote-sourced reload would otherwise run
    without the local customizations.

    Attributes:
        document_path: The bootstrap document that was inspected.
        reason: Optional detail (e.g. block is not a mapping).
    """

    def __init__(
        self,
        document_path: str,
        reason: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        self.document_path = document_path
        self.reason = reason

        if message is None:
            reason_info = f" ({reason})" if reason else ""
            message = (
                f"No 'customizations' section found in '{document_path}' "
                f"and no customization header exists{reason_info}."
            )

        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        """Return context for missing customizations."""
        return {
            "document_path": self.document_path,
            "reason": self.reason,
        }

    def __repr__(self) -> str:
        return (
            f"MissingCustomizationsSection(document_path={self.document_path!r}, "
            f"reason={self.reason!r})"
        )


class CorruptStagingState(GitReloadError):
    """Pointer files are inconsistent and cannot be repaired.

    Fatal at startup; requires operator intervention.

    Attributes:
        pointers: Raw pointer values observed on disk.
    """

    def __init__(
        self,
        pointers: dict[str, Optional[str]],
        message: Optional[str] = None,
    ) -> None:
        self.pointers = dict(pointers)

        if message is None:
            message = f"Staging state is corrupt and cannot be repaired: {self.pointers}"

        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        """Return context for corrupt staging state."""
        return {"pointers": self.pointers}

    def __repr__(self) -> str:
        return f"CorruptStagingState(pointers={self.pointers!r})"


class ReloadRejected(GitReloadError):
    """Host refused or failed to begin a reload.

    Treated as an immediate rollback, never fatal.

    Attributes:
        document_path: Candidate document that was handed to the host.
        reason: Why the host rejected the request.
    """

    def __init__(
        self,
        document_path: str,
        reason: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        self.document_path = document_path
        self.reason = reason

        if message is None:
            reason_info = f": {reason}" if reason else ""
            message = f"Host rejected reload of '{document_path}'{reason_info}"

        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        """Return context for rejected reload."""
        return {
            "document_path": self.document_path,
            "reason": self.reason,
        }

    def __repr__(self) -> str:
        return (
            f"ReloadRejected(document_path={self.document_path!r}, "
            f"reason={self.reason!r})"
        )


class RollbackUnavailable(GitReloadError):
    """rollback() was called but no backup pointer is set."""

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or "Nothing to roll back to: backup pointer is empty.")


class InvalidStateTransition(GitReloadError):
    """Reload state machine transition is not allowed.

    Attributes:
        from_state: Current state.
        to_state: Attempted target state.
    """

    def __init__(
        self,
        from_state: str,
        to_state: str,
        message: Optional[str] = None,
    ) -> None:
        self.from_state = from_state
        self.to_state = to_state

        if message is None:
            message = f"Invalid reload state transition: {from_state} -> {to_state}"

        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        """Return context for invalid transition."""
        return {
            "from_state": self.from_state,
            "to_state": self.to_state,
        }

    def __repr__(self) -> str:
        return (
            f"InvalidStateTransition(from_state={self.from_state!r}, "
            f"to_state={self.to_state!r})"
        )
