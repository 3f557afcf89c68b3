"""Lambda entry point and event routing.

One function serves three trigger sources:

* the deployment pipeline, whose events carry a ``CodePipeline.job``;
* SQS and SNS deliveries, whose events carry ``Records`` with JSON bodies;
* the scheduled rule, whose constant input is the body itself
  (``{"command": "cleanup"}``).

Bodies are decoded into tagged variants before anything acts on them.
Unrecognized shapes are logged and dropped; queue-triggered paths have no
caller that could act on an error.  A pipeline job whose id is known but
whose parameters are invalid is failed instead, along with its resource.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import SecretStr

from dappbot_engine.aws import AwsClients, build_aws_clients
from dappbot_engine.cleanup.distributions import DistributionGarbageCollector
from dappbot_engine.config import Settings, load_settings
from dappbot_engine.errors import InvalidJobParametersError, UnrecognizedInputError
from dappbot_engine.executor.retry import RetryConfig, RetryingExecutor
from dappbot_engine.gateways import (
    CdnDistributions,
    DeletionQueue,
    IdentityDirectory,
    ObjectStorage,
    PipelineJobs,
    ResourceTable,
)
from dappbot_engine.github.artifacts import GitHubArtifactCommitter
from dappbot_engine.jobs.build_completion import BuildCompletionJob
from dappbot_engine.log_format import configure_logging
from dappbot_engine.models.messages import (
    CleanupCommand,
    PaymentStatusEvent,
    decode_pipeline_job,
    decode_queue_message,
)
from dappbot_engine.notifications.analytics import SegmentAnalytics
from dappbot_engine.notifications.email import SendGridEmailSender
from dappbot_engine.reconciler.lapsed_users import LapsedUserReconciler

logger = logging.getLogger(__name__)

_HTTP_TIMEOUT = 10.0


def _credential(value: SecretStr | None, configured: bool) -> str | None:
    return value.get_secret_value() if configured and value is not None else None


@dataclass
class Services:
    """Services bound to one invocation's event loop."""

    reconciler: LapsedUserReconciler
    collector: DistributionGarbageCollector
    build_job: BuildCompletionJob


class Application:
    """Process-wide wiring of settings, clients and gateways.

    boto3 clients and gateways live for the whole process.  HTTP
    collaborators hold an ``httpx.AsyncClient`` tied to the running event
    loop, so they are built per invocation by :meth:`services`.
    """

    def __init__(self, settings: Settings, clients: AwsClients) -> None:
        self.settings = settings
        self.clients = clients
        self.executor = RetryingExecutor(
            RetryConfig(
                base_delay=settings.retry_base_delay,
                max_delay=settings.retry_max_delay,
                jitter=settings.retry_jitter,
            )
        )
        self.table = ResourceTable(
            clients.dynamodb,
            self.executor,
            dapp_table=settings.dapp_table,
            lapsed_users_table=settings.lapsed_users_table,
            grace_period_hours=settings.payment_lapsed_grace_period_hrs,
        )
        self.directory = IdentityDirectory(clients.cognito, self.executor, user_pool_id=settings.cognito_user_pool)
        self.queue = DeletionQueue(clients.sqs, self.executor, queue_url=settings.sqs_queue)
        self.pipeline = PipelineJobs(clients.codepipeline, self.executor)
        self.storage = ObjectStorage(clients.s3, self.executor, region=settings.aws_region)
        self.cdn = CdnDistributions(clients.cloudfront, self.executor)

    @classmethod
    def from_environment(cls) -> Application:
        settings = load_settings()
        configure_logging(settings)
        return cls(settings, build_aws_clients(settings))

    @asynccontextmanager
    async def services(self) -> AsyncIterator[Services]:
        settings = self.settings
        logger.debug(
            "HTTP collaborators: email=%s github=%s analytics=%s",
            settings.is_email_configured(),
            settings.is_github_configured(),
            settings.is_analytics_configured(),
        )
        async with httpx.AsyncClient(timeout=_HTTP_TIMEOUT) as http_client:
            analytics = SegmentAnalytics(
                _credential(settings.segment_write_key, settings.is_analytics_configured()),
                http_client,
                self.executor,
                api_url=settings.api_url,
            )
            email = SendGridEmailSender(
                _credential(settings.sendgrid_api_key, settings.is_email_configured()),
                http_client,
                self.executor,
                from_address=settings.email_from_address,
            )
            github = GitHubArtifactCommitter(
                _credential(settings.github_token, settings.is_github_configured()),
                http_client,
                self.executor,
            )
            yield Services(
                reconciler=LapsedUserReconciler(
                    self.table,
                    self.directory,
                    self.queue,
                    analytics,
                    concurrency=settings.reconcile_concurrency,
                ),
                collector=DistributionGarbageCollector(self.cdn, max_concurrency=settings.cdn_max_concurrency),
                build_job=BuildCompletionJob(
                    self.table,
                    self.storage,
                    self.cdn,
                    self.pipeline,
                    email,
                    github,
                    dns_root=settings.dns_root,
                    artifact_bucket=settings.artifact_bucket,
                ),
            )


_application: Application | None = None


def get_application() -> Application:
    """Return the process-wide :class:`Application`, building it on first use."""
    global _application
    if _application is None:
        _application = Application.from_environment()
    return _application


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


def _record_body(record: dict[str, Any]) -> Any:
    if "body" in record:
        return record["body"]
    sns = record.get("Sns")
    if isinstance(sns, dict) and "Message" in sns:
        return sns["Message"]
    raise UnrecognizedInputError("Record has neither an SQS body nor an SNS message", record)


async def run_cleanup(services: Services) -> dict[str, Any]:
    """Run one reconciliation tick and the distribution collector concurrently."""
    reconciliation, cleanup = await asyncio.gather(
        services.reconciler.reconcile(),
        services.collector.collect(),
        return_exceptions=True,
    )
    result: dict[str, Any] = {}
    for label, outcome in (("reconciliation", reconciliation), ("cleanup", cleanup)):
        if isinstance(outcome, BaseException):
            logger.error("%s run failed: %s", label.capitalize(), outcome, exc_info=outcome)
            result[label] = {"error": str(outcome) or type(outcome).__name__}
        else:
            result[label] = outcome.model_dump()
    return result


async def _route_message(services: Services, body: Any) -> dict[str, Any]:
    message = decode_queue_message(body)
    if isinstance(message, CleanupCommand):
        return await run_cleanup(services)
    if isinstance(message, PaymentStatusEvent):
        transition = await services.reconciler.apply_payment_status(message.email, message.status)
        return {"payment_status": transition.model_dump(mode="json")}
    raise UnrecognizedInputError("Unhandled message", body)


async def dispatch(event: dict[str, Any], services: Services) -> dict[str, Any]:
    """Route one inbound *event*; never raises for unrecognized input."""
    if not isinstance(event, dict):
        logger.warning("Ignoring non-object event", extra={"context": {"event": event}})
        return {}

    try:
        if "CodePipeline.job" in event:
            try:
                job = decode_pipeline_job(event["CodePipeline.job"])
            except InvalidJobParametersError as exc:
                await services.build_job.fail_undecodable(exc.job_id, exc.params, exc)
                return {"job_id": exc.job_id, "completed": False}
            completed = await services.build_job.run(job)
            return {"job_id": job.id, "completed": completed}

        if "Records" in event:
            results = []
            for record in event.get("Records") or []:
                try:
                    results.append(await _route_message(services, _record_body(record)))
                except UnrecognizedInputError as exc:
                    logger.warning("Ignoring record: %s", exc, extra={"context": {"payload": exc.payload}})
            return {"records": results}

        return await _route_message(services, event)
    except UnrecognizedInputError as exc:
        logger.warning("Ignoring event: %s", exc, extra={"context": {"payload": exc.payload}})
        return {}


async def _handle(event: dict[str, Any], application: Application) -> dict[str, Any]:
    async with application.services() as services:
        return await dispatch(event, services)


def handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    """AWS Lambda handler."""
    application = get_application()
    request_id = getattr(context, "aws_request_id", None)
    keys = sorted(event) if isinstance(event, dict) else []
    logger.info("Received event", extra={"context": {"keys": keys}, "aws_request_id": request_id})
    return asyncio.run(_handle(event, application))
