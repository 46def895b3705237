"""Fixtures for tests that drive a real local git remote."""

import shutil
import subprocess
from pathlib import Path

import pytest


class Publisher:
    """Pushes commits to a local bare repository acting as the remote."""

    def __init__(self, root: Path) -> None:
        self.origin = root / "origin.git"
        self.work = root / "publisher"
        self.origin.mkdir(parents=True)
        self.work.mkdir(parents=True)
        self._git(self.origin, "init", "--bare", "--quiet")
        self._git(self.origin, "symbolic-ref", "HEAD", "refs/heads/main")
        self._git(self.work, "init", "--quiet")
        self._git(self.work, "checkout", "--quiet", "-b", "main")
        self._git(self.work, "remote", "add", "origin", str(self.origin))

    @property
    def url(self) -> str:
        return str(self.origin)

    @staticmethod
    def _git(cwd: Path, *args: str) -> str:
        result = subprocess.run(
            [
                "git",
                "-c", "user.name=Test",
                "-c", "user.email=test@test",
                "-c", "commit.gpgsign=false",
                *args,
            ],
            cwd=cwd,
            check=True,
            capture_output=True,
        )
        return result.stdout.decode().strip()

    def publish(self, files: dict[str, str], message: str = "update") -> str:
        """Commit ``files`` and push to main; return the new revision."""
        for name, content in files.items():
            path = self.work / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        self._git(self.work, "add", "-A")
        self._git(self.work, "commit", "--quiet", "--allow-empty", "-m", message)
        self._git(self.work, "push", "--quiet", "origin", "HEAD:main")
        return self._git(self.work, "rev-parse", "HEAD")

    def tag(self, name: str) -> str:
        self._git(self.work, "tag", "-a", name, "-m", name)
        self._git(self.work, "push", "--quiet", "origin", name)
        return self._git(self.work, "rev-parse", "HEAD")


@pytest.fixture
def publisher(tmp_path: Path) -> Publisher:
    if shutil.which("git") is None:
        pytest.skip("git executable not available")
    return Publisher(tmp_path / "remote")
