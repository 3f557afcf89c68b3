"""Build-completion jobs invoked by the deployment pipeline.

INVARIANT: every job ends with the pipeline signalled exactly once and the
resource out of ``BUILDING_DAPP``.  Success completes the job and marks the
resource available; any exception fails the job and then forces the
resource to ``FAILED``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from dappbot_engine.errors import DataAnomalyError
from dappbot_engine.gateways.cdn import CdnDistributions
from dappbot_engine.gateways.object_storage import ObjectStorage
from dappbot_engine.gateways.pipeline import PipelineJobs
from dappbot_engine.gateways.resource_table import ResourceTable
from dappbot_engine.github.artifacts import BuildArtifact, GitHubArtifactCommitter
from dappbot_engine.models.messages import CommitArtifactJob, PipelineJob, PostBuildJob
from dappbot_engine.models.resource import dns_name_for
from dappbot_engine.notifications.email import SendGridEmailSender

logger = logging.getLogger(__name__)


class BuildCompletionJob:
    """Finishes a pipeline job for one dapp.

    Parameters
    ----------
    table:
        Resource table holding the dapp's lifecycle state.
    storage:
        Object storage for the dapp bucket and build artifacts.
    cdn:
        CloudFront gateway used to invalidate stale content.
    pipeline:
        Job result signalling.
    email:
        Confirmation mail sender.
    github:
        Artifact committer for ``commit-artifact`` jobs.
    dns_root:
        Suffix appended to a dapp name to form its hostname.
    artifact_bucket:
        Bucket the pipeline writes build artifacts to.
    """

    def __init__(
        self,
        table: ResourceTable,
        storage: ObjectStorage,
        cdn: CdnDistributions,
        pipeline: PipelineJobs,
        email: SendGridEmailSender,
        github: GitHubArtifactCommitter,
        *,
        dns_root: str,
        artifact_bucket: str = "",
    ) -> None:
        self._table = table
        self._storage = storage
        self._cdn = cdn
        self._pipeline = pipeline
        self._email = email
        self._github = github
        self._dns_root = dns_root
        self._artifact_bucket = artifact_bucket

    async def run(self, job: PipelineJob) -> bool:
        """Run *job*; returns ``True`` if it completed, ``False`` if it failed."""
        params = job.params
        context = {"job_id": job.id, "job": params.job, "resource": params.resource_name}
        logger.info("Starting pipeline job", extra={"context": context})
        try:
            if isinstance(params, PostBuildJob):
                await self._post_build(params)
            else:
                await self._commit_artifact(params)
            await self._pipeline.complete_job(job.id)
        except Exception as exc:
            logger.error("Pipeline job failed: %s", exc, exc_info=True, extra={"context": context})
            await self._fail(job.id, params.resource_name, exc)
            return False
        return True

    async def fail_undecodable(self, job_id: str, raw_params: Any, error: Exception) -> None:
        """Fail a job whose parameters could not be decoded.

        The resource is forced to ``FAILED`` only when ``DappName`` can be
        read from *raw_params*.
        """
        resource_name = raw_params.get("DappName") if isinstance(raw_params, dict) else None
        if not isinstance(resource_name, str) or not resource_name:
            resource_name = None
        logger.error(
            "Pipeline job parameters invalid: %s",
            error,
            extra={"context": {"job_id": job_id, "resource": resource_name}},
        )
        await self._fail(job_id, resource_name, error)

    async def _fail(self, job_id: str, resource_name: str | None, error: Exception) -> None:
        try:
            await self._pipeline.fail_job(job_id, error)
        except Exception as exc:
            logger.error(
                "Could not signal job failure: %s",
                exc,
                extra={"context": {"job_id": job_id, "resource": resource_name}},
            )
        if resource_name is None:
            return
        try:
            await self._table.set_resource_failed(resource_name)
        except Exception as exc:
            logger.error(
                "Could not mark resource FAILED: %s",
                exc,
                extra={"context": {"job_id": job_id, "resource": resource_name}},
            )

    async def _post_build(self, params: PostBuildJob) -> None:
        await self._storage.make_object_no_cache(params.destination_bucket, "index.html")

        record = await self._table.get_resource(params.resource_name)
        if record is None:
            raise DataAnomalyError(f"No resource record found for {params.resource_name}")
        if record.distribution_id:
            await self._cdn.create_invalidation(record.distribution_id)

        await self._table.set_resource_available(params.resource_name)
        dns_name = dns_name_for(params.resource_name, self._dns_root)
        await self._email.send_confirmation(params.owner_email, params.resource_name, dns_name)

    async def _commit_artifact(self, params: CommitArtifactJob) -> None:
        response = await self._storage.get_object(self._artifact_bucket, params.artifact_key)
        try:
            artifact = BuildArtifact.model_validate(json.loads(response["Body"]))
        except (ValueError, ValidationError) as exc:
            raise DataAnomalyError(f"Malformed build artifact {params.artifact_key}: {exc}") from exc

        await self._github.commit_artifact(
            params.target_repo_owner,
            params.target_repo_name,
            params.target_repo_branch,
            artifact,
            f"DappBot build of {params.resource_name}",
        )
        await self._table.set_resource_available(params.resource_name)
