"""
EC2 instance identity discovery

Reads the instance ID, region, and availability zone from the instance
metadata service (IMDSv2 with IMDSv1 fallback). Done once at startup.
"""

import asyncio
import logging
from typing import Dict, Optional

import aiohttp

from ebs_blocker.config import BlockerConfig
from ebs_blocker.errors import InstanceIdentityError
from ebs_blocker.types import InstanceIdentity

logger = logging.getLogger(__name__)

TOKEN_PATH = "/latest/api/token"
METADATA_PATH = "/latest/meta-data/"
TOKEN_TTL_SEC = 21600


async def _get_token(session: aiohttp.ClientSession, endpoint: str) -> Optional[str]:
    """Request an IMDSv2 session token; None when only IMDSv1 is offered."""
    try:
        async with session.put(
            endpoint + TOKEN_PATH,
            headers={"X-aws-ec2-metadata-token-ttl-seconds": str(TOKEN_TTL_SEC)},
        ) as response:
            if response.status != 200:
                logger.debug(f"IMDSv2 token request returned {response.status}, using IMDSv1")
                return None
            return (await response.text()).strip()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.debug(f"IMDSv2 token request failed ({e!r}), using IMDSv1")
        return None


async def _get_metadata(
    session: aiohttp.ClientSession,
    endpoint: str,
    key: str,
    token: Optional[str],
) -> str:
    headers: Dict[str, str] = {}
    if token:
        headers["X-aws-ec2-metadata-token"] = token

    async with session.get(endpoint + METADATA_PATH + key, headers=headers) as response:
        if response.status != 200:
            raise InstanceIdentityError(f"metadata '{key}' returned HTTP {response.status}")
        value = (await response.text()).strip()

    if not value:
        raise InstanceIdentityError(f"metadata '{key}' is empty")
    return value


async def fetch_instance_identity(
    config: BlockerConfig,
    session: Optional[aiohttp.ClientSession] = None,
) -> InstanceIdentity:
    """
    Determine the identity of the EC2 instance this daemon runs on.

    Identity overrides in ``config`` win when all three are set, so the
    daemon can run against EC2 from outside an instance.

    Args:
        config: Blocker configuration
        session: Optional aiohttp session to reuse

    Returns:
        InstanceIdentity

    Raises:
        InstanceIdentityError: If the metadata service is unreachable or incomplete
    """
    override = config.identity_override()
    if override is not None:
        logger.info("Using configured EC2 identity")
        _log_identity(override)
        return override

    endpoint = config.metadata_endpoint.rstrip("/")
    own_session = session is None
    if own_session:
        timeout = aiohttp.ClientTimeout(total=config.metadata_timeout_sec)
        session = aiohttp.ClientSession(timeout=timeout)

    try:
        token = await _get_token(session, endpoint)
        instance_id = await _get_metadata(session, endpoint, "instance-id", token)
        availability_zone = await _get_metadata(
            session, endpoint, "placement/availability-zone", token
        )
        region = await _get_metadata(session, endpoint, "placement/region", token)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise InstanceIdentityError(f"not running on an EC2 instance ({e})") from e
    finally:
        if own_session:
            await session.close()

    identity = InstanceIdentity(
        instance_id=instance_id,
        region=region,
        availability_zone=availability_zone,
    )
    logger.info("Auto-detected EC2 information")
    _log_identity(identity)
    return identity


def _log_identity(identity: InstanceIdentity) -> None:
    logger.info(f"  InstanceId        : {identity.instance_id}")
    logger.info(f"  Region            : {identity.region}")
    logger.info(f"  Availability Zone : {identity.availability_zone}")
