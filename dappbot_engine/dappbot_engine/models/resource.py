"""Tenant resource ("dapp") records stored in the dapp table."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ResourceState(str, Enum):
    """Lifecycle state of a hosted dapp."""

    BUILDING = "BUILDING_DAPP"
    AVAILABLE = "AVAILABLE"
    FAILED = "FAILED"


class TenantResource(BaseModel):
    """One hosted static site and its lifecycle state.

    Field aliases are the DynamoDB attribute names.  Attributes this model
    does not know about (written by the API or the deletion worker) are kept
    as extras so a full overwrite never drops them.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str = Field(..., min_length=1, alias="DappName")
    owner_email: str = Field(..., min_length=1, alias="OwnerEmail")
    state: ResourceState = Field(default=ResourceState.BUILDING, alias="State")
    distribution_id: str | None = Field(default=None, alias="CloudfrontDistributionId")
    distribution_dns: str | None = Field(default=None, alias="CloudfrontDnsName")
    updated_at: datetime | None = Field(default=None, alias="UpdatedAt")


def dns_name_for(resource_name: str, dns_root: str) -> str:
    """Return the public hostname a dapp is served from."""
    return resource_name + dns_root
