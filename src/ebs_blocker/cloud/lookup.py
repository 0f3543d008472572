"""
Service-tag lookup of available EBS volumes
"""

import asyncio
import logging
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from ebs_blocker.errors import RemoteStateError, ServiceVolumeNotFoundError
from ebs_blocker.types import InstanceIdentity

logger = logging.getLogger(__name__)


class CloudVolumeLookup:
    """Resolves a service tag to an available EBS volume in this instance's zone."""

    def __init__(
        self,
        ec2: Any,
        identity: InstanceIdentity,
        tag_key: str = "service",
    ):
        """
        Args:
            ec2: boto3 EC2 client
            identity: Identity of the local instance
            tag_key: Tag key naming the owning service
        """
        self.ec2 = ec2
        self.identity = identity
        self.tag_key = tag_key

    async def find_by_service_tag(self, service: str) -> str:
        """
        Find an available volume tagged for ``service``.

        Returns:
            The first matching EBS volume ID, in DescribeVolumes order

        Raises:
            ServiceVolumeNotFoundError: If no volume matches
            RemoteStateError: If the EC2 request fails
        """
        filters = [
            {"Name": "status", "Values": ["available"]},
            {"Name": "availability-zone", "Values": [self.identity.availability_zone]},
            {"Name": f"tag:{self.tag_key}", "Values": [service]},
        ]
        try:
            result = await asyncio.to_thread(self.ec2.describe_volumes, Filters=filters)
        except (ClientError, BotoCoreError) as e:
            raise RemoteStateError(f"{self.tag_key}={service}", f"volume lookup failed: {e}") from e

        volumes = result.get("Volumes", [])
        if not volumes:
            raise ServiceVolumeNotFoundError(service, self.identity.availability_zone)

        volume_id = volumes[0]["VolumeId"]
        logger.info(
            f"Resolved service '{service}' to {volume_id} "
            f"({len(volumes)} candidate(s) in {self.identity.availability_zone})"
        )
        return volume_id
