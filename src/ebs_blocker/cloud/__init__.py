"""
EC2 control-plane access

Instance identity discovery, service-tag lookup, and attach/detach.
"""

from typing import Any

import boto3

from ebs_blocker.cloud.attach import AttachCoordinator
from ebs_blocker.cloud.identity import fetch_instance_identity
from ebs_blocker.cloud.lookup import CloudVolumeLookup
from ebs_blocker.types import InstanceIdentity


def create_ec2_client(identity: InstanceIdentity) -> Any:
    """Create a boto3 EC2 client for the instance's region."""
    return boto3.client("ec2", region_name=identity.region)


__all__ = [
    "AttachCoordinator",
    "CloudVolumeLookup",
    "create_ec2_client",
    "fetch_instance_identity",
]
