"""Git data API client that commits a generated artifact in one commit.

The commit is built bottom-up: one blob per file, a tree layered over the
branch head's tree, a commit whose parent is the head, then a
fast-forward of the branch ref.  A concurrent push to the branch makes
the final ref update fail rather than overwrite it.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, Field

from dappbot_engine.executor.retry import RetryingExecutor

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"


class BuildArtifact(BaseModel):
    """A generated source tree keyed by repository path."""

    files: dict[str, str] = Field(default_factory=dict)


class GitHubArtifactCommitter:
    """Commits :class:`BuildArtifact` contents onto a branch.

    Without a token every commit is logged and skipped.
    """

    def __init__(
        self,
        token: str | None,
        http_client: httpx.AsyncClient,
        executor: RetryingExecutor,
        *,
        api_url: str = GITHUB_API_URL,
    ) -> None:
        self._token = token or ""
        self._client = http_client
        self._executor = executor
        self._api_url = api_url.rstrip("/")

    @property
    def enabled(self) -> bool:
        return bool(self._token)

    async def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github+json",
        }

        async def _send() -> dict[str, Any]:
            response = await self._client.request(method, f"{self._api_url}{path}", json=payload, headers=headers)
            response.raise_for_status()
            return response.json()

        return await self._executor.run(_send)

    async def commit_artifact(
        self,
        owner: str,
        repo: str,
        branch: str,
        artifact: BuildArtifact,
        message: str,
    ) -> str | None:
        """Commit every file in *artifact* to ``owner/repo@branch``.

        Returns the new commit SHA, or ``None`` when GitHub access is not
        configured or the artifact is empty.
        """
        if not self.enabled:
            logger.info("GitHub not configured; skipping commit", extra={"context": {"repo": f"{owner}/{repo}"}})
            return None
        if not artifact.files:
            logger.warning("Artifact has no files; nothing to commit", extra={"context": {"repo": f"{owner}/{repo}"}})
            return None

        base = f"/repos/{owner}/{repo}/git"
        ref = await self._request("GET", f"{base}/ref/heads/{branch}")
        head_sha = ref["object"]["sha"]
        head_commit = await self._request("GET", f"{base}/commits/{head_sha}")

        entries = []
        for path, content in sorted(artifact.files.items()):
            blob = await self._request("POST", f"{base}/blobs", {"content": content, "encoding": "utf-8"})
            entries.append({"path": path, "mode": "100644", "type": "blob", "sha": blob["sha"]})

        tree = await self._request(
            "POST",
            f"{base}/trees",
            {"base_tree": head_commit["tree"]["sha"], "tree": entries},
        )
        commit = await self._request(
            "POST",
            f"{base}/commits",
            {"message": message, "tree": tree["sha"], "parents": [head_sha]},
        )
        await self._request("PATCH", f"{base}/refs/heads/{branch}", {"sha": commit["sha"], "force": False})

        logger.info(
            "Committed %d files",
            len(entries),
            extra={"context": {"repo": f"{owner}/{repo}", "branch": branch, "commit": commit["sha"]}},
        )
        return commit["sha"]
