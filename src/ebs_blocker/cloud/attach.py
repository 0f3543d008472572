"""
EBS attach/detach coordination

Attaching is asynchronous on the EC2 side, so each attach:

1. waits for the volume to become ``available`` (it may still be detaching
   from a previous owner),
2. picks the first free device letter in the recommended ``/dev/sd[f-p]``
   range, moving on when EC2 reports the device as taken,
3. waits for the attachment to reach ``attached``,
4. resolves the local device node, which newer kernels expose as
   ``/dev/xvd*`` instead of ``/dev/sd*``.

See http://docs.aws.amazon.com/AWSEC2/latest/UserGuide/device_naming.html
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from ebs_blocker.errors import (
    BlockerError,
    MissingDeviceError,
    NoFreeDeviceError,
    RemoteStateError,
)
from ebs_blocker.types import BackoffPolicy, InstanceIdentity

logger = logging.getLogger(__name__)

# EC2 error code returned when the requested device name is already in use
DEVICE_IN_USE_CODE = "InvalidParameterValue"

DEFAULT_DEVICE_LETTERS = "fghijklmnop"

VolumeCheck = Callable[[Dict[str, Any]], Optional[str]]


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


class AttachCoordinator:
    """
    Attaches and detaches EBS volumes to/from the local instance.

    Device selection through device validation runs under a single lock so
    concurrent attaches never race for the same free letter.
    """

    def __init__(
        self,
        ec2: Any,
        identity: InstanceIdentity,
        backoff: Optional[BackoffPolicy] = None,
        dev_root: str = "/dev",
        device_letters: str = DEFAULT_DEVICE_LETTERS,
    ):
        """
        Args:
            ec2: boto3 EC2 client
            identity: Identity of the local instance
            backoff: Polling policy for state transitions
            dev_root: Directory holding local device nodes
            device_letters: Ordered candidate device letters
        """
        if not device_letters:
            raise ValueError("device_letters must not be empty")

        self.ec2 = ec2
        self.identity = identity
        self.backoff = backoff or BackoffPolicy()
        self.dev_root = Path(dev_root)
        self.device_letters = device_letters
        self._slot_lock = asyncio.Lock()

    def local_paths(self, letter: str) -> Tuple[str, str]:
        """Return the primary and kernel-remapped local paths for a device letter."""
        return (
            str(self.dev_root / f"sd{letter}"),
            str(self.dev_root / f"xvd{letter}"),
        )

    async def attach(self, volume_id: str) -> str:
        """
        Attach ``volume_id`` to this instance.

        Returns:
            Local device path of the attached volume

        Raises:
            RemoteStateError: EC2 failure or polling ceiling exceeded
            NoFreeDeviceError: Every candidate letter is taken
            MissingDeviceError: No device node appeared after attaching
        """
        await self._wait_until(volume_id, self._check_available, "available")

        async with self._slot_lock:
            for letter in self.device_letters:
                primary, alias = self.local_paths(letter)
                if os.path.lexists(primary) or os.path.lexists(alias):
                    logger.debug(f"Device slot {letter} is taken locally")
                    continue

                device = f"/dev/sd{letter}"
                try:
                    await asyncio.to_thread(
                        self.ec2.attach_volume,
                        Device=device,
                        InstanceId=self.identity.instance_id,
                        VolumeId=volume_id,
                    )
                except ClientError as e:
                    if _error_code(e) == DEVICE_IN_USE_CODE:
                        logger.info(f"EC2 reports {device} in use, trying next slot")
                        continue
                    raise RemoteStateError(volume_id, f"attach to {device} failed: {e}") from e
                except BotoCoreError as e:
                    raise RemoteStateError(volume_id, f"attach to {device} failed: {e}") from e

                await self._wait_until(volume_id, self._check_attached, "attached")
                logger.info(
                    f"Attached EBS volume {volume_id} to "
                    f"{self.identity.instance_id}:{device}"
                )
                return await self._resolve_device(volume_id, primary, alias)

        raise NoFreeDeviceError(volume_id, self.device_letters)

    async def detach(self, volume_id: str) -> None:
        """
        Request detachment of ``volume_id`` from this instance.

        Does not wait for EC2 to finish the detach.

        Raises:
            RemoteStateError: If the EC2 request fails
        """
        try:
            await asyncio.to_thread(
                self.ec2.detach_volume,
                InstanceId=self.identity.instance_id,
                VolumeId=volume_id,
            )
        except (ClientError, BotoCoreError) as e:
            raise RemoteStateError(volume_id, f"detach failed: {e}") from e

        logger.info(f"Detached EBS volume {volume_id} from {self.identity.instance_id}")

    async def detach_best_effort(self, volume_id: str) -> bool:
        """Detach for rollback; failures are logged and reported as False."""
        try:
            await self.detach(volume_id)
        except BlockerError as e:
            logger.warning(f"Rollback detach of {volume_id} failed: {e.message}")
            return False
        return True

    async def _resolve_device(self, volume_id: str, primary: str, alias: str) -> str:
        if os.path.lexists(primary):
            return primary

        # Newer kernels map /dev/sd* to /dev/xvd*
        if os.path.lexists(alias):
            logger.info(f"Local device name is {alias}")
            return alias

        await self.detach_best_effort(volume_id)
        raise MissingDeviceError(volume_id, primary)

    async def _describe(self, volume_id: str) -> Dict[str, Any]:
        try:
            result = await asyncio.to_thread(self.ec2.describe_volumes, VolumeIds=[volume_id])
        except (ClientError, BotoCoreError) as e:
            raise RemoteStateError(volume_id, f"describe failed: {e}") from e

        volumes = result.get("Volumes", [])
        if not volumes:
            raise RemoteStateError(volume_id, "volume not returned by DescribeVolumes")
        return volumes[0]

    async def _wait_until(self, volume_id: str, check: VolumeCheck, target: str) -> Dict[str, Any]:
        """Poll until ``check`` passes or the backoff policy is exhausted."""
        attempts = self.backoff.max_attempts
        for attempt in range(1, attempts + 1):
            volume = await self._describe(volume_id)
            problem = check(volume)
            if problem is None:
                return volume
            if attempt == attempts:
                raise RemoteStateError(
                    volume_id,
                    f"state transition failed after {attempts} attempts: {problem}",
                )
            logger.info(
                f"Waiting for {volume_id} to become {target} "
                f"({problem}; attempt {attempt}/{attempts})"
            )
            await asyncio.sleep(self.backoff.interval_sec)

        # Unreachable: max_attempts >= 1
        raise RemoteStateError(volume_id, f"never became {target}")

    @staticmethod
    def _check_available(volume: Dict[str, Any]) -> Optional[str]:
        state = volume.get("State")
        if state == "available":
            return None
        return f"seeking available, current is {state}"

    def _check_attached(self, volume: Dict[str, Any]) -> Optional[str]:
        attachments = volume.get("Attachments", [])
        if len(attachments) != 1:
            return f"expected 1 attachment, got {len(attachments)}"

        attachment = attachments[0]
        instance_id = attachment.get("InstanceId")
        if instance_id and instance_id != self.identity.instance_id:
            return f"attached to {instance_id}, not {self.identity.instance_id}"

        state = attachment.get("State")
        if state != "attached":
            return f"seeking attached, current is {state}"
        return None
