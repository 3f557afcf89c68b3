"""Explicit construction of the boto3 clients used by the gateways.

Clients are built once per process and handed to each gateway through its
constructor.  botocore's own retry loop is limited to a single attempt so
that :class:`~dappbot_engine.executor.retry.RetryingExecutor` is the only
retry mechanism in play.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import boto3
from botocore.config import Config

from dappbot_engine.config import Settings

_BOTO_CONFIG = Config(retries={"max_attempts": 1, "mode": "standard"})


@dataclass(frozen=True)
class AwsClients:
    """Bundle of service clients for one region."""

    dynamodb: Any
    cognito: Any
    cloudfront: Any
    sqs: Any
    codepipeline: Any
    s3: Any


def build_aws_clients(settings: Settings, session: boto3.session.Session | None = None) -> AwsClients:
    """Create every client the engine needs from *session* (or a fresh one)."""
    session = session or boto3.session.Session(region_name=settings.aws_region)
    return AwsClients(
        dynamodb=session.client("dynamodb", config=_BOTO_CONFIG),
        cognito=session.client("cognito-idp", config=_BOTO_CONFIG),
        cloudfront=session.client("cloudfront", config=_BOTO_CONFIG),
        sqs=session.client("sqs", config=_BOTO_CONFIG),
        codepipeline=session.client("codepipeline", config=_BOTO_CONFIG),
        s3=session.client("s3", config=_BOTO_CONFIG),
    )
