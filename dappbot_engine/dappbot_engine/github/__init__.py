"""Committing build artifacts to owner repositories on GitHub."""

from __future__ import annotations

from dappbot_engine.github.artifacts import BuildArtifact, GitHubArtifactCommitter

__all__ = ["BuildArtifact", "GitHubArtifactCommitter"]
