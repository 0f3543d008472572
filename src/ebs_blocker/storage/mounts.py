"""
Local mount management for ebs-blocker

Each mount gets a fresh directory under the mount root:

    /mnt/blocker/<uuid>

Mount order is: create directory, attach, mount. A failed mount detaches the
volume again. Unmount order is: umount, remove directory, detach. Unmount
never rolls back; the first failing step is raised so the caller keeps the
mountpoint and can retry. Steps already done are skipped on retry: umount
only runs while the path is still a mountpoint.
"""

import logging
import os
import uuid
from pathlib import Path
from typing import Callable, Optional

from ebs_blocker.cloud.attach import AttachCoordinator
from ebs_blocker.errors import FilesystemError, MountOperationError
from ebs_blocker.utils.process import CommandRunner, run_command

logger = logging.getLogger(__name__)

MOUNTPOINT_MODE = 0o700


class MountManager:
    """Creates mountpoints and mounts attached EBS devices on them."""

    def __init__(
        self,
        attacher: AttachCoordinator,
        mount_root: str = "/mnt/blocker",
        filesystem_type: str = "ext4",
        runner: Optional[CommandRunner] = None,
        mount_check: Callable[[str], bool] = os.path.ismount,
    ):
        """
        Args:
            attacher: Coordinator used to attach/detach the backing volume
            mount_root: Directory under which mountpoints are created
            filesystem_type: Filesystem type passed to mount -t
            runner: Async command runner (defaults to run_command)
            mount_check: Reports whether a path is currently a mountpoint
        """
        self.attacher = attacher
        self.mount_root = Path(mount_root)
        self.filesystem_type = filesystem_type
        self.runner = runner or run_command
        self.mount_check = mount_check

    def new_mountpoint(self) -> Path:
        return self.mount_root / str(uuid.uuid4())

    async def mount(self, volume_id: str) -> str:
        """
        Attach ``volume_id`` and mount it on a new directory.

        Returns:
            The mountpoint path

        Raises:
            FilesystemError: Mountpoint could not be created (nothing attached)
            RemoteStateError, NoFreeDeviceError, MissingDeviceError: Attach failed
            MountOperationError: mount failed (volume detached again)
        """
        mountpoint = self.new_mountpoint()
        self._create_mountpoint(mountpoint)

        try:
            device = await self.attacher.attach(volume_id)
        except BaseException:
            self._discard_mountpoint(mountpoint)
            raise

        result = await self.runner(
            ["mount", "-t", self.filesystem_type, device, str(mountpoint)]
        )
        if not result.ok:
            await self.attacher.detach_best_effort(volume_id)
            self._discard_mountpoint(mountpoint)
            raise MountOperationError(
                "Mounting",
                f"device {device} to {mountpoint}",
                f"exit status {result.returncode}: {result.output.strip()}",
            )

        logger.info(f"Mounted {device} ({volume_id}) at {mountpoint}")
        return str(mountpoint)

    async def unmount(self, mountpoint: str, volume_id: str) -> None:
        """
        Unmount ``mountpoint``, remove it, and detach ``volume_id``.

        Raises:
            MountOperationError: umount failed
            FilesystemError: Mountpoint directory could not be removed
            RemoteStateError: Detach failed
        """
        if self.mount_check(mountpoint):
            result = await self.runner(["umount", mountpoint])
            if not result.ok:
                raise MountOperationError(
                    "Unmounting",
                    mountpoint,
                    f"exit status {result.returncode}: {result.output.strip()}",
                )
        else:
            logger.warning(f"{mountpoint} is not mounted, skipping umount")

        try:
            os.rmdir(mountpoint)
        except FileNotFoundError:
            logger.warning(f"Mountpoint {mountpoint} already removed")
        except OSError as e:
            raise FilesystemError(mountpoint, f"removal failed: {e}") from e

        await self.attacher.detach(volume_id)
        logger.info(f"Unmounted {volume_id} from {mountpoint}")

    def _create_mountpoint(self, mountpoint: Path) -> None:
        try:
            mountpoint.mkdir(mode=MOUNTPOINT_MODE, parents=True, exist_ok=True)
        except PermissionError as e:
            raise FilesystemError(str(mountpoint), f"permission denied: {e}") from e
        except OSError as e:
            raise FilesystemError(str(mountpoint), f"creation failed: {e}") from e

        if not mountpoint.is_dir():
            raise FilesystemError(str(mountpoint), "is not a directory")

        logger.debug(f"Created mountpoint {mountpoint}")

    def _discard_mountpoint(self, mountpoint: Path) -> None:
        try:
            mountpoint.rmdir()
        except OSError as e:
            logger.warning(f"Could not remove unused mountpoint {mountpoint}: {e}")
