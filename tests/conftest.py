"""
gitreload Test Configuration

Shared pytest fixtures and configuration for all test types.
"""

from pathlib import Path
from typing import Optional

import pytest

from gitreload.staging.composer import ConfigComposer
from gitreload.staging.store import StagingStore


BOOTSTRAP_DOCUMENT = """\
service:
  flush: 5
  log_level: info

customizations:
  retries: 3
  # keep local parsers
  parsers:
    - name: nginx
      format: regex

pipeline:
  inputs:
    - name: tail
      path: /var/log/app.log
"""


# Configure pytest collection
def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test categorization."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests (real git, real filesystem)")


class FakeHost:
    """In-memory HostBridge whose reload outcome is driven by the test."""

    def __init__(self, document_path: Path) -> None:
        self.document_path = str(Path(document_path).absolute())
        self.requests: list[str] = []
        self.in_progress = False
        self.succeeded = False
        self.target: Optional[str] = None
        self.pause_calls = 0
        self.resume_calls = 0
        self.reject_with: Optional[Exception] = None

    def request_reload(self, document_path: str) -> None:
        if self.reject_with is not None:
            raise self.reject_with
        self.requests.append(document_path)
        self.in_progress = True
        self.succeeded = False
        self.target = document_path

    def finish_reload(self, succeeded: bool = True) -> None:
        """Complete the outstanding reload the way a host would."""
        self.in_progress = False
        self.succeeded = succeeded
        if succeeded and self.target is not None:
            self.document_path = self.target

    def reload_in_progress(self) -> bool:
        return self.in_progress

    def last_reload_succeeded(self) -> bool:
        return self.succeeded

    def last_reload_target_path(self) -> Optional[str]:
        return self.target

    def current_document_path(self) -> str:
        return self.document_path

    def pause_polling(self) -> None:
        self.pause_calls += 1

    def resume_polling(self) -> None:
        self.resume_calls += 1


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    """Provide a temporary gitreload state directory."""
    path = tmp_path / "state"
    path.mkdir()
    return path


@pytest.fixture
def configs_dir(state_dir: Path) -> Path:
    return state_dir / "configs"


@pytest.fixture
def bootstrap_document(tmp_path: Path) -> Path:
    """Agent document with a customizations block."""
    path = tmp_path / "agent.yaml"
    path.write_text(BOOTSTRAP_DOCUMENT, encoding="utf-8")
    return path


@pytest.fixture
def store(configs_dir: Path) -> StagingStore:
    return StagingStore(configs_dir, ".yaml")


@pytest.fixture
def composer(store: StagingStore) -> ConfigComposer:
    return ConfigComposer(store.header_path)


@pytest.fixture
def host(bootstrap_document: Path) -> FakeHost:
    return FakeHost(bootstrap_document)


@pytest.fixture
def host_factory() -> type[FakeHost]:
    """FakeHost class, for tests that need more than one host."""
    return FakeHost
