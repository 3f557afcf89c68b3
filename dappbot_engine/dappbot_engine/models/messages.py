"""Inbound trigger payloads and outbound queue messages.

Inbound payloads are decoded into discriminated unions: pipeline job
parameters are keyed by ``Job``; queue and notification bodies are keyed
by ``command`` or ``event``.  Anything that matches no variant is rejected
with :class:`~dappbot_engine.errors.UnrecognizedInputError` instead of being
read field-by-field.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from dappbot_engine.errors import InvalidJobParametersError, UnrecognizedInputError
from dappbot_engine.models.billing import PaymentStatus

# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------


class DeletionMessage(BaseModel):
    """Envelope consumed by the resource deletion worker."""

    model_config = ConfigDict(populate_by_name=True)

    method: Literal["delete"] = "delete"
    resource_name: str = Field(..., min_length=1, alias="resourceName")

    def to_body(self) -> str:
        return self.model_dump_json(by_alias=True)


# ---------------------------------------------------------------------------
# Pipeline job parameters
# ---------------------------------------------------------------------------

POST_BUILD = "post-build"
COMMIT_ARTIFACT = "commit-artifact"


class PostBuildJob(BaseModel):
    """Finish publishing a freshly built dapp."""

    model_config = ConfigDict(populate_by_name=True)

    job: Literal["post-build"] = Field(default=POST_BUILD, alias="Job")
    resource_name: str = Field(..., min_length=1, alias="DappName")
    owner_email: str = Field(..., min_length=1, alias="OwnerEmail")
    destination_bucket: str = Field(..., min_length=1, alias="DestinationBucket")


class CommitArtifactJob(BaseModel):
    """Commit a build artifact to the owner's GitHub repository."""

    model_config = ConfigDict(populate_by_name=True)

    job: Literal["commit-artifact"] = Field(default=COMMIT_ARTIFACT, alias="Job")
    resource_name: str = Field(..., min_length=1, alias="DappName")
    owner_email: str = Field(..., min_length=1, alias="OwnerEmail")
    artifact_key: str = Field(..., min_length=1, alias="ArtifactKey")
    target_repo_owner: str = Field(..., min_length=1, alias="TargetRepoOwner")
    target_repo_name: str = Field(..., min_length=1, alias="TargetRepoName")
    target_repo_branch: str = Field(default="master", min_length=1, alias="TargetRepoBranch")


def _job_kind(value: Any) -> str | None:
    if isinstance(value, dict):
        # Pipelines created before the discriminator existed only ever ran
        # the post-build step and omit ``Job`` entirely.
        return value.get("Job", POST_BUILD)
    return getattr(value, "job", None)


JobParams = Annotated[
    Union[
        Annotated[PostBuildJob, Tag(POST_BUILD)],
        Annotated[CommitArtifactJob, Tag(COMMIT_ARTIFACT)],
    ],
    Discriminator(_job_kind),
]

_JOB_PARAMS_ADAPTER: TypeAdapter[PostBuildJob | CommitArtifactJob] = TypeAdapter(JobParams)


class PipelineJob(BaseModel):
    """A pipeline job invocation: its id plus decoded parameters."""

    id: str = Field(..., min_length=1)
    params: JobParams


def _is_unknown_job_type(exc: ValidationError) -> bool:
    return any(error["type"] == "union_tag_invalid" for error in exc.errors())


def decode_pipeline_job(raw: dict[str, Any]) -> PipelineJob:
    """Decode the ``CodePipeline.job`` section of a pipeline invocation event.

    Raises
    ------
    InvalidJobParametersError
        If the job id is known but the user parameters are not JSON or fail
        validation for their job type.  The job can still be failed.
    UnrecognizedInputError
        If the job id or user parameters are missing, or ``Job`` names no
        known job type.
    """
    job_id = raw.get("id") if isinstance(raw, dict) else None
    if not job_id:
        raise UnrecognizedInputError("Pipeline job has no id", raw)
    try:
        user_parameters = raw["data"]["actionConfiguration"]["configuration"]["UserParameters"]
    except (KeyError, TypeError) as exc:
        raise UnrecognizedInputError(f"Pipeline job {job_id} has no user parameters", raw) from exc

    try:
        params_raw = json.loads(user_parameters) if isinstance(user_parameters, (str, bytes)) else user_parameters
    except ValueError as exc:
        raise InvalidJobParametersError(
            f"Parameters for pipeline job {job_id} are not JSON: {exc}", job_id, None, raw
        ) from exc
    try:
        params = _JOB_PARAMS_ADAPTER.validate_python(params_raw)
    except ValidationError as exc:
        if _is_unknown_job_type(exc):
            raise UnrecognizedInputError(f"Unrecognized job type for pipeline job {job_id}: {exc}", raw) from exc
        raise InvalidJobParametersError(
            f"Invalid parameters for pipeline job {job_id}: {exc}", job_id, params_raw, raw
        ) from exc
    return PipelineJob(id=job_id, params=params)


# ---------------------------------------------------------------------------
# Queue / notification bodies
# ---------------------------------------------------------------------------

CLEANUP = "cleanup"
PAYMENT_STATUS = "payment-status"


class CleanupCommand(BaseModel):
    """Run one reconciliation tick and the CDN garbage collector."""

    command: Literal["cleanup"] = CLEANUP


class PaymentStatusEvent(BaseModel):
    """A billing notification changing one owner's payment status."""

    event: Literal["payment-status"] = PAYMENT_STATUS
    email: str = Field(..., min_length=1)
    status: PaymentStatus

    @field_validator("status", mode="before")
    @classmethod
    def _normalise_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value


def _message_kind(value: Any) -> str | None:
    if isinstance(value, dict):
        return value.get("command") or value.get("event")
    return getattr(value, "command", None) or getattr(value, "event", None)


QueueMessage = Annotated[
    Union[
        Annotated[CleanupCommand, Tag(CLEANUP)],
        Annotated[PaymentStatusEvent, Tag(PAYMENT_STATUS)],
    ],
    Discriminator(_message_kind),
]

_QUEUE_MESSAGE_ADAPTER: TypeAdapter[CleanupCommand | PaymentStatusEvent] = TypeAdapter(QueueMessage)


def decode_queue_message(body: str | bytes | dict[str, Any]) -> CleanupCommand | PaymentStatusEvent:
    """Decode a queue or notification body into its message variant.

    Raises
    ------
    UnrecognizedInputError
        If the body is not a JSON object or matches no known variant.
    """
    try:
        raw = json.loads(body) if isinstance(body, (str, bytes)) else body
        if not isinstance(raw, dict):
            raise UnrecognizedInputError("Queue message body is not a JSON object", body)
        return _QUEUE_MESSAGE_ADAPTER.validate_python(raw)
    except ValueError as exc:
        raise UnrecognizedInputError(f"Unrecognized queue message: {exc}", body) from exc
