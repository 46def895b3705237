"""Repository access over the ``git`` command line.

Every invocation runs with ``GIT_TERMINAL_PROMPT=0`` and a timeout so a
hung remote can never block the poll loop indefinitely.

Usage:
    from gitreload.repository.git import GitRepository

    repo = GitRepository(timeout=60)
    sha = repo.current_remote_revision(url, "main")
    repo.sync(url, "main", Path("/var/lib/gitreload/repo"))
    content = repo.read_file(Path("/var/lib/gitreload/repo"), "agent.yaml")
"""

from __future__ import annotations

import os
import re
import subprocess
from pathlib import Path
from typing import Optional

import structlog

from gitreload.core.exceptions import ExtractionFailed, RemoteUnreachable
from gitreload.core.logging import sanitize_repo_url


log = structlog.get_logger()

_FULL_SHA = re.compile(r"^[0-9a-f]{40}([0-9a-f]{24})?$")


class GitCommandError(Exception):
    """A git invocation failed or timed out."""

    def __init__(self, args: list[str], reason: str) -> None:
        self.args_list = args
        self.reason = reason
        super().__init__(f"git {' '.join(args[:1])} failed: {reason}")


def _git_env() -> dict[str, str]:
    env = dict(os.environ)
    env["GIT_TERMINAL_PROMPT"] = "0"
    env.setdefault("GIT_ASKPASS", "true")
    return env


def _run_git_bytes(cwd: Optional[Path], args: list[str], timeout: float) -> bytes:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            check=True,
            timeout=timeout,
            env=_git_env(),
        )
    except subprocess.TimeoutExpired as e:
        raise GitCommandError(args, f"timed out after {timeout}s") from e
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or b"").decode("utf-8", "replace").strip()
        raise GitCommandError(args, stderr or f"exit code {e.returncode}") from e
    except FileNotFoundError as e:
        raise GitCommandError(args, "git executable not found") from e
    return result.stdout


def _run_git(cwd: Optional[Path], args: list[str], timeout: float) -> str:
    return _run_git_bytes(cwd, args, timeout).decode("utf-8", "replace").strip()


def parse_ls_remote(output: str, ref: str) -> Optional[str]:
    """Pick the revision for ``ref`` out of ``git ls-remote`` output.

    Preference: exact ref name, then ``refs/heads/<ref>``, then
    ``refs/tags/<ref>``. Peeled ``^{}`` entries win over annotated tag
    objects so the result is always a commit id.
    """
    entries: dict[str, str] = {}
    for line in output.splitlines():
        parts = line.split()
        if len(parts) == 2:
            entries[parts[1]] = parts[0]

    for name in (
        f"{ref}^{{}}",
        ref,
        f"refs/heads/{ref}",
        f"refs/tags/{ref}^{{}}",
        f"refs/tags/{ref}",
    ):
        if name in entries:
            return entries[name]
    return None


class GitRepository:
    """RepositoryAccess implementation backed by the git CLI.

    Attributes:
        timeout: Seconds allowed for each git invocation.
    """

    def __init__(self, timeout: float = 60.0) -> None:
        self._timeout = timeout
        self._revision: Optional[str] = None

    @property
    def timeout(self) -> float:
        return self._timeout

    def current_remote_revision(self, url: str, ref: str) -> str:
        safe_url = sanitize_repo_url(url)
        try:
            # Peeled entries are only listed when asked for by name
            output = _run_git(None, ["ls-remote", url, ref, f"{ref}^{{}}"], self._timeout)
        except GitCommandError as e:
            raise RemoteUnreachable(safe_url, ref, reason=e.reason) from e

        revision = parse_ls_remote(output, ref)
        if revision is None:
            if _FULL_SHA.match(ref):
                # Pinned to a commit id: nothing to resolve
                return ref
            raise RemoteUnreachable(safe_url, ref, reason="ref not found on remote")

        log.debug("remote_revision", repository=safe_url, ref=ref, revision=revision[:7])
        return revision

    def sync(self, url: str, ref: str, local_path: Path) -> str:
        safe_url = sanitize_repo_url(url)
        local_path = Path(local_path)
        try:
            if not (local_path / ".git").exists():
                local_path.mkdir(parents=True, exist_ok=True)
                _run_git(local_path, ["init", "--quiet"], self._timeout)
                _run_git(local_path, ["remote", "add", "origin", url], self._timeout)
                log.info("working_copy_initialized", path=str(local_path), repository=safe_url)
            else:
                _run_git(local_path, ["remote", "set-url", "origin", url], self._timeout)

            _run_git(local_path, ["fetch", "--quiet", "--depth", "1", "origin", ref], self._timeout)
            _run_git(
                local_path,
                ["checkout", "--quiet", "--force", "--detach", "FETCH_HEAD"],
                self._timeout,
            )
            revision = _run_git(local_path, ["rev-parse", "HEAD"], self._timeout)
        except OSError as e:
            raise RemoteUnreachable(safe_url, ref, reason=str(e)) from e
        except GitCommandError as e:
            raise RemoteUnreachable(safe_url, ref, reason=e.reason) from e

        self._revision = revision
        log.debug("working_copy_synced", path=str(local_path), revision=revision[:7])
        return revision

    def read_file(self, local_path: Path, file_path: str) -> bytes:
        try:
            # git show <commit>:<path>
            return _run_git_bytes(
                Path(local_path), ["show", f"HEAD:{file_path}"], self._timeout
            )
        except GitCommandError as e:
            raise ExtractionFailed(file_path, revision=self._revision) from e
