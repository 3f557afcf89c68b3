"""Retrying gateways over the remote services the engine depends on."""

from __future__ import annotations

from dappbot_engine.gateways.cdn import CdnDistributions
from dappbot_engine.gateways.deletion_queue import DeletionQueue
from dappbot_engine.gateways.identity_directory import IdentityDirectory
from dappbot_engine.gateways.object_storage import ObjectStorage
from dappbot_engine.gateways.pipeline import PipelineJobs
from dappbot_engine.gateways.resource_table import ResourceTable

__all__ = [
    "CdnDistributions",
    "DeletionQueue",
    "IdentityDirectory",
    "ObjectStorage",
    "PipelineJobs",
    "ResourceTable",
]
