"""CodePipeline job result signalling."""

from __future__ import annotations

import logging
from typing import Any

from dappbot_engine.executor.retry import RetryingExecutor

logger = logging.getLogger(__name__)

# CodePipeline rejects failure messages longer than this.
_MAX_FAILURE_MESSAGE = 5000


class PipelineJobs:
    """Reports the outcome of a pipeline job back to CodePipeline."""

    def __init__(self, client: Any, executor: RetryingExecutor) -> None:
        self._client = client
        self._executor = executor

    async def complete_job(self, job_id: str) -> None:
        await self._executor.run_in_thread(lambda: self._client.put_job_success_result(jobId=job_id))
        logger.info("Pipeline job completed", extra={"context": {"job_id": job_id}})

    async def fail_job(self, job_id: str, error: BaseException | str) -> None:
        failure_details = {
            "type": "JobFailed",
            "message": str(error)[:_MAX_FAILURE_MESSAGE] or type(error).__name__,
        }
        await self._executor.run_in_thread(
            lambda: self._client.put_job_failure_result(jobId=job_id, failureDetails=failure_details)
        )
        logger.info("Pipeline job failed", extra={"context": {"job_id": job_id}})
