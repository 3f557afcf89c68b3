"""CDN distribution identifiers produced during garbage collection."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ResourceTag(BaseModel):
    """A key/value tag attached to an AWS resource."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    key: str = Field(..., alias="Key")
    value: str = Field(default="", alias="Value")


class DistributionIdentifier(BaseModel):
    """A CloudFront distribution together with its ownership tags.

    ``tags`` is ``None`` when the tags could not be fetched; such a
    distribution is never eligible for deletion.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="Id")
    arn: str = Field(..., alias="ARN")
    tags: list[ResourceTag] | None = None
