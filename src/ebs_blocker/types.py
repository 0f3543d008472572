"""
ebs-blocker type definitions

Common types used across the ebs-blocker project.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

__all__ = [
    "VolumeRecord",
    "CreateOptions",
    "InstanceIdentity",
    "BackoffPolicy",
]


class VolumeRecord(BaseModel):
    """A named volume known to the registry"""

    name: str = Field(..., min_length=1, description="Volume name (registry key)")

    volume_id: str = Field(..., min_length=1, description="Backing EBS volume ID")

    mountpoint: Optional[str] = Field(
        default=None,
        description="Local mountpoint; set only while attached and mounted"
    )

    @property
    def is_mounted(self) -> bool:
        return bool(self.mountpoint)


class CreateOptions(BaseModel):
    """
    Options accepted by Create.

    Unrecognized keys are ignored rather than rejected.
    """

    model_config = ConfigDict(extra="ignore")

    volume_id: Optional[str] = Field(
        default=None,
        description="Explicit backing EBS volume ID"
    )

    service: Optional[str] = Field(
        default=None,
        description="Service tag used to pick an available EBS volume"
    )


class InstanceIdentity(BaseModel):
    """EC2 identity of the host, read once at startup"""

    model_config = ConfigDict(frozen=True)

    instance_id: str = Field(..., min_length=1)
    region: str = Field(..., min_length=1)
    availability_zone: str = Field(..., min_length=1)


class BackoffPolicy(BaseModel):
    """Fixed-attempt, fixed-interval polling policy"""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=12, ge=1, description="Number of state checks")
    interval_sec: float = Field(default=5.0, ge=0, description="Sleep between checks")
