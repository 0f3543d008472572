"""
ebs-blocker core manager

The volume registry is the engine behind the plugin adapter. It maps volume
names to EBS volumes and drives each name through its lifecycle:

    unregistered -> registered -> mounted -> registered -> ... -> removed

Registry state lives in memory only; nothing survives a restart.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from pydantic import ValidationError

from ebs_blocker.backends import VolumeDriver
from ebs_blocker.cloud import AttachCoordinator, CloudVolumeLookup, create_ec2_client
from ebs_blocker.config import BlockerConfig
from ebs_blocker.errors import (
    InvalidRequestError,
    VolumeAlreadyMountedError,
    VolumeInUseError,
    VolumeNotFoundError,
    VolumeNotMountedError,
)
from ebs_blocker.storage.mounts import MountManager
from ebs_blocker.types import CreateOptions, InstanceIdentity, VolumeRecord

logger = logging.getLogger(__name__)


class VolumeRegistry(VolumeDriver):
    """
    Name -> volume registry backed by EBS.

    Responsibilities:
    - Lifecycle state machine and idempotency/conflict rules
    - Backing volume ID resolution (explicit ID, service tag, or the name)
    - Delegating mount/unmount to the MountManager

    Every operation on a name holds that name's lock for its whole duration,
    so concurrent calls on one name are serialized while different names
    proceed independently.
    """

    def __init__(
        self,
        mounter: MountManager,
        lookup: Optional[CloudVolumeLookup] = None,
    ):
        """
        Args:
            mounter: Mount manager used for mount/unmount
            lookup: Service-tag lookup; without it the ``service`` option is rejected
        """
        self._mounter = mounter
        self._lookup = lookup
        self._volumes: Dict[str, VolumeRecord] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _locked(self, name: str) -> AsyncIterator[None]:
        """Hold the lock for ``name``; drop it once no task holds or awaits it."""
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = asyncio.Lock()
        self._lock_users[name] = self._lock_users.get(name, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[name] -= 1
            if self._lock_users[name] == 0:
                del self._lock_users[name]
                self._locks.pop(name, None)

    def _require(self, name: str) -> VolumeRecord:
        record = self._volumes.get(name)
        if record is None:
            raise VolumeNotFoundError(name)
        return record

    async def create(self, name: str, options: Optional[Dict[str, Any]] = None) -> None:
        """
        Register ``name``, or update it if it is registered but not mounted.

        Docker does not always remove entries cleanly, so re-creating an
        unmounted name succeeds; an explicit ``volume_id`` replaces the
        backing volume.

        Raises:
            VolumeInUseError: If ``name`` is currently mounted
            ServiceVolumeNotFoundError: If the ``service`` lookup finds nothing
            InvalidRequestError: If the name or options are malformed
        """
        if not name:
            raise InvalidRequestError("Name", name, "must not be empty")
        opts = self._parse_options(options or {})

        async with self._locked(name):
            record = self._volumes.get(name)
            if record is not None:
                if record.is_mounted:
                    raise VolumeInUseError(name)
                if opts.volume_id:
                    record.volume_id = opts.volume_id
                logger.info(f"Volume '{name}' re-registered (volume_id={record.volume_id})")
                return

            volume_id = await self._resolve_volume_id(name, opts)
            self._volumes[name] = VolumeRecord(name=name, volume_id=volume_id)
            logger.info(f"Volume '{name}' registered (volume_id={volume_id})")

    async def mount(self, name: str) -> str:
        """
        Attach and mount ``name``.

        Raises:
            VolumeNotFoundError: If ``name`` is not registered
            VolumeAlreadyMountedError: If ``name`` is already mounted
        """
        async with self._locked(name):
            record = self._require(name)
            if record.is_mounted:
                raise VolumeAlreadyMountedError(name, record.mountpoint)

            mountpoint = await self._mounter.mount(record.volume_id)
            record.mountpoint = mountpoint
            return mountpoint

    async def path(self, name: str) -> str:
        """
        Return the mountpoint of ``name``. Has no side effects.

        Raises:
            VolumeNotFoundError: If ``name`` is not registered
            VolumeNotMountedError: If ``name`` is not mounted
        """
        record = self._require(name)
        if not record.is_mounted:
            raise VolumeNotMountedError(name)
        return record.mountpoint

    async def unmount(self, name: str) -> None:
        """
        Unmount ``name``; a no-op if it is not mounted.

        Raises:
            VolumeNotFoundError: If ``name`` is not registered
        """
        async with self._locked(name):
            record = self._require(name)
            if not record.is_mounted:
                logger.debug(f"Volume '{name}' is not mounted, nothing to unmount")
                return
            await self._unmount_record(record)

    async def remove(self, name: str) -> None:
        """
        Unmount ``name`` if needed and forget it.

        An unmount failure aborts the removal and the record is kept.

        Raises:
            VolumeNotFoundError: If ``name`` is not registered
        """
        async with self._locked(name):
            record = self._require(name)
            if record.is_mounted:
                await self._unmount_record(record)
            del self._volumes[name]
            logger.info(f"Volume '{name}' removed")

    def get(self, name: str) -> VolumeRecord:
        """
        Return a snapshot of the record for ``name``.

        Raises:
            VolumeNotFoundError: If ``name`` is not registered
        """
        return self._require(name).model_copy()

    def list_volumes(self) -> List[VolumeRecord]:
        """Snapshots of all records, sorted by name."""
        return [self._volumes[name].model_copy() for name in sorted(self._volumes)]

    def mounted_volumes(self) -> List[VolumeRecord]:
        return [record for record in self.list_volumes() if record.is_mounted]

    async def _unmount_record(self, record: VolumeRecord) -> None:
        # The mountpoint is only cleared once every step succeeded
        await self._mounter.unmount(record.mountpoint, record.volume_id)
        record.mountpoint = None

    def _parse_options(self, options: Dict[str, Any]) -> CreateOptions:
        ignored = sorted(set(options) - set(CreateOptions.model_fields))
        if ignored:
            logger.debug(f"Ignoring unrecognized options: {', '.join(ignored)}")

        try:
            return CreateOptions.model_validate(options)
        except ValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(part) for part in error["loc"]) or "Opts"
            raise InvalidRequestError(field, options.get(field), error["msg"]) from e

    async def _resolve_volume_id(self, name: str, opts: CreateOptions) -> str:
        if opts.volume_id:
            return opts.volume_id
        if opts.service:
            if self._lookup is None:
                raise InvalidRequestError("service", opts.service, "service lookup is not configured")
            return await self._lookup.find_by_service_tag(opts.service)
        return name


def create_registry(
    config: BlockerConfig,
    identity: InstanceIdentity,
    ec2: Optional[Any] = None,
) -> VolumeRegistry:
    """
    Assemble the engine for one host.

    Args:
        config: Blocker configuration
        identity: Identity of the local instance
        ec2: Optional boto3 EC2 client (created for the instance's region if omitted)

    Returns:
        VolumeRegistry wired to EC2 and the local mount root
    """
    if ec2 is None:
        ec2 = create_ec2_client(identity)

    attacher = AttachCoordinator(
        ec2,
        identity,
        backoff=config.backoff,
        dev_root=config.dev_root,
        device_letters=config.device_letters,
    )
    mounter = MountManager(
        attacher,
        mount_root=config.mount_root,
        filesystem_type=config.filesystem_type,
    )
    lookup = CloudVolumeLookup(ec2, identity, tag_key=config.service_tag_key)
    return VolumeRegistry(mounter, lookup)
