"""Domain models for the DappBot lifecycle engine."""

from dappbot_engine.models.billing import FAILED_STATUSES, LapsedUserRecord, PaymentStatus
from dappbot_engine.models.distribution import DistributionIdentifier, ResourceTag
from dappbot_engine.models.messages import (
    CleanupCommand,
    CommitArtifactJob,
    DeletionMessage,
    PaymentStatusEvent,
    PipelineJob,
    PostBuildJob,
    decode_pipeline_job,
    decode_queue_message,
)
from dappbot_engine.models.resource import ResourceState, TenantResource, dns_name_for

__all__ = [
    "FAILED_STATUSES",
    "CleanupCommand",
    "CommitArtifactJob",
    "DeletionMessage",
    "DistributionIdentifier",
    "LapsedUserRecord",
    "PaymentStatus",
    "PaymentStatusEvent",
    "PipelineJob",
    "PostBuildJob",
    "ResourceState",
    "ResourceTag",
    "TenantResource",
    "decode_pipeline_job",
    "decode_queue_message",
    "dns_name_for",
]
