"""Repository access implementations."""

from gitreload.repository.git import GitRepository

__all__ = ["GitRepository"]
