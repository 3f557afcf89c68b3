"""Unit tests for the inbound payload decoders in dappbot_engine.models.messages."""

from __future__ import annotations

import json

import pytest

from dappbot_engine.errors import InvalidJobParametersError, UnrecognizedInputError
from dappbot_engine.models import (
    CleanupCommand,
    CommitArtifactJob,
    DeletionMessage,
    PaymentStatus,
    PaymentStatusEvent,
    PostBuildJob,
    decode_pipeline_job,
    decode_queue_message,
)


def _pipeline_event(params, job_id: str = "job-1") -> dict:
    user_parameters = params if isinstance(params, str) else json.dumps(params)
    return {
        "id": job_id,
        "data": {"actionConfiguration": {"configuration": {"UserParameters": user_parameters}}},
    }


# ---------------------------------------------------------------------------
# DeletionMessage
# ---------------------------------------------------------------------------


class TestDeletionMessage:
    def test_body_shape(self):
        body = json.loads(DeletionMessage(resource_name="cryptokitties").to_body())
        assert body == {"method": "delete", "resourceName": "cryptokitties"}

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            DeletionMessage(resource_name="")


# ---------------------------------------------------------------------------
# decode_pipeline_job
# ---------------------------------------------------------------------------


class TestDecodePipelineJob:
    def test_post_build(self):
        job = decode_pipeline_job(
            _pipeline_event(
                {
                    "Job": "post-build",
                    "DappName": "kitty",
                    "OwnerEmail": "a@x.com",
                    "DestinationBucket": "kitty-bucket",
                }
            )
        )
        assert job.id == "job-1"
        assert isinstance(job.params, PostBuildJob)
        assert job.params.destination_bucket == "kitty-bucket"

    def test_missing_job_field_means_post_build(self):
        job = decode_pipeline_job(
            _pipeline_event({"DappName": "kitty", "OwnerEmail": "a@x.com", "DestinationBucket": "b"})
        )
        assert isinstance(job.params, PostBuildJob)

    def test_commit_artifact_defaults_branch(self):
        job = decode_pipeline_job(
            _pipeline_event(
                {
                    "Job": "commit-artifact",
                    "DappName": "kitty",
                    "OwnerEmail": "a@x.com",
                    "ArtifactKey": "artifacts/kitty.json",
                    "TargetRepoOwner": "alice",
                    "TargetRepoName": "kitty-ui",
                }
            )
        )
        assert isinstance(job.params, CommitArtifactJob)
        assert job.params.target_repo_branch == "master"

    def test_unknown_job_type_rejected(self):
        with pytest.raises(UnrecognizedInputError, match="job-1") as excinfo:
            decode_pipeline_job(_pipeline_event({"Job": "launch-rockets", "DappName": "kitty"}))
        assert not isinstance(excinfo.value, InvalidJobParametersError)

    def test_missing_required_field_keeps_job_id_and_params(self):
        params = {"Job": "post-build", "DappName": "kitty", "OwnerEmail": "a@x.com"}
        with pytest.raises(InvalidJobParametersError, match="job-1") as excinfo:
            decode_pipeline_job(_pipeline_event(params))
        assert excinfo.value.job_id == "job-1"
        assert excinfo.value.params == params

    def test_missing_job_field_with_invalid_params_is_invalid_post_build(self):
        with pytest.raises(InvalidJobParametersError) as excinfo:
            decode_pipeline_job(_pipeline_event({"DappName": "kitty"}))
        assert excinfo.value.params == {"DappName": "kitty"}

    def test_non_json_parameters_rejected(self):
        with pytest.raises(InvalidJobParametersError) as excinfo:
            decode_pipeline_job(_pipeline_event("{not json"))
        assert excinfo.value.job_id == "job-1"
        assert excinfo.value.params is None

    def test_missing_id_rejected(self):
        with pytest.raises(UnrecognizedInputError, match="no id"):
            decode_pipeline_job({"data": {}})

    def test_missing_user_parameters_rejected(self):
        with pytest.raises(UnrecognizedInputError, match="no user parameters"):
            decode_pipeline_job({"id": "job-9", "data": {"actionConfiguration": {}}})


# ---------------------------------------------------------------------------
# decode_queue_message
# ---------------------------------------------------------------------------


class TestDecodeQueueMessage:
    def test_cleanup_command(self):
        assert isinstance(decode_queue_message('{"command": "cleanup"}'), CleanupCommand)

    def test_payment_status_event_normalises_status(self):
        message = decode_queue_message({"event": "payment-status", "email": "a@x.com", "status": "lapsed"})
        assert isinstance(message, PaymentStatusEvent)
        assert message.status is PaymentStatus.LAPSED

    def test_bytes_body(self):
        assert isinstance(decode_queue_message(b'{"command": "cleanup"}'), CleanupCommand)

    def test_unknown_discriminator_rejected(self):
        with pytest.raises(UnrecognizedInputError):
            decode_queue_message({"command": "self-destruct"})

    def test_missing_discriminator_rejected(self):
        with pytest.raises(UnrecognizedInputError):
            decode_queue_message({"email": "a@x.com"})

    def test_unknown_status_rejected(self):
        with pytest.raises(UnrecognizedInputError):
            decode_queue_message({"event": "payment-status", "email": "a@x.com", "status": "BANKRUPT"})

    def test_non_object_rejected(self):
        with pytest.raises(UnrecognizedInputError):
            decode_queue_message("[1, 2, 3]")

    def test_invalid_json_rejected(self):
        with pytest.raises(UnrecognizedInputError) as excinfo:
            decode_queue_message("not json at all")
        assert excinfo.value.payload == "not json at all"

    def test_undecodable_bytes_rejected(self):
        with pytest.raises(UnrecognizedInputError) as excinfo:
            decode_queue_message(b"\xff\xfe{")
        assert excinfo.value.payload == b"\xff\xfe{"
