"""
ebs-blocker error definitions

Standard exceptions raised by the volume lifecycle engine.
"""

from typing import Optional, Dict, Any


class BlockerError(Exception):
    """Base exception for all blocker errors"""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "UNKNOWN"
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class NotFoundError(BlockerError):
    """Requested object does not exist"""


class ConflictError(BlockerError):
    """Name is in use at an incompatible state"""


class VolumeNotFoundError(NotFoundError):
    """Volume name is not registered"""

    def __init__(self, name: str):
        super().__init__(
            message=f"Volume '{name}' not found",
            error_code="VOL_NOT_FOUND"
        )
        self.name = name


class ServiceVolumeNotFoundError(NotFoundError):
    """No available cloud volume carries the requested service tag"""

    def __init__(self, service: str, availability_zone: str):
        super().__init__(
            message=f"No volume available for service '{service}' in {availability_zone}",
            error_code="SVC_VOL_NOT_FOUND",
            details={"availability_zone": availability_zone}
        )
        self.service = service
        self.availability_zone = availability_zone


class VolumeInUseError(ConflictError):
    """Volume name is already registered and mounted"""

    def __init__(self, name: str):
        super().__init__(
            message=f"Volume '{name}' is already in use",
            error_code="VOL_IN_USE"
        )
        self.name = name


class VolumeAlreadyMountedError(ConflictError):
    """Volume is already mounted"""

    def __init__(self, name: str, mountpoint: str):
        super().__init__(
            message=f"Volume '{name}' is already mounted at {mountpoint}",
            error_code="VOL_ALREADY_MOUNTED",
            details={"mountpoint": mountpoint}
        )
        self.name = name
        self.mountpoint = mountpoint


class VolumeNotMountedError(BlockerError):
    """Volume is registered but not mounted"""

    def __init__(self, name: str):
        super().__init__(
            message=f"Volume '{name}' is not mounted",
            error_code="VOL_NOT_MOUNTED"
        )
        self.name = name


class RemoteStateError(BlockerError):
    """EC2 call failed or a volume never reached the expected state"""

    def __init__(self, volume_id: str, reason: str):
        super().__init__(
            message=f"EBS volume '{volume_id}': {reason}",
            error_code="REMOTE_STATE",
            details={"volume_id": volume_id}
        )
        self.volume_id = volume_id
        self.reason = reason


class NoFreeDeviceError(BlockerError):
    """Every reserved device slot is taken"""

    def __init__(self, volume_id: str, letters: str):
        super().__init__(
            message=(
                f"No devices available to attach '{volume_id}': "
                f"/dev/sd[{letters[0]}-{letters[-1]}] taken"
            ),
            error_code="NO_FREE_DEVICE",
            details={"volume_id": volume_id, "letters": letters}
        )
        self.volume_id = volume_id


class MissingDeviceError(BlockerError):
    """Device node is absent after a confirmed attachment"""

    def __init__(self, volume_id: str, device: str):
        super().__init__(
            message=f"Device {device} is missing after attaching '{volume_id}'",
            error_code="MISSING_DEVICE",
            details={"volume_id": volume_id, "device": device}
        )
        self.volume_id = volume_id
        self.device = device


class MountOperationError(BlockerError):
    """Local mount or umount command failed"""

    def __init__(self, operation: str, target: str, reason: str):
        super().__init__(
            message=f"{operation} {target} failed: {reason}",
            error_code="MOUNT_FAILED",
            details={"operation": operation, "target": target}
        )
        self.operation = operation
        self.target = target
        self.reason = reason


class FilesystemError(BlockerError):
    """Mountpoint directory could not be created or removed"""

    def __init__(self, path: str, reason: str):
        super().__init__(
            message=f"Mountpoint {path}: {reason}",
            error_code="FS_ERROR",
            details={"path": path}
        )
        self.path = path
        self.reason = reason


class InstanceIdentityError(BlockerError):
    """EC2 instance identity could not be determined"""

    def __init__(self, reason: str):
        super().__init__(
            message=f"Unable to determine EC2 instance identity: {reason}",
            error_code="IDENTITY_UNAVAILABLE"
        )
        self.reason = reason


class InvalidRequestError(BlockerError):
    """Invalid request parameters"""

    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(
            message=f"Invalid field '{field}': {reason}",
            error_code="INVALID_REQUEST"
        )
        self.field = field
        self.value = value
        self.reason = reason


# Error codes
ERROR_CODES = {
    # Registry errors (VOL_xxx)
    "VOL_NOT_FOUND": "Volume name not registered",
    "VOL_IN_USE": "Volume name in use",
    "VOL_ALREADY_MOUNTED": "Volume already mounted",
    "VOL_NOT_MOUNTED": "Volume not mounted",
    "SVC_VOL_NOT_FOUND": "No volume available for service",

    # Cloud errors
    "REMOTE_STATE": "EC2 request failed or state transition timed out",
    "NO_FREE_DEVICE": "No free device slot",
    "MISSING_DEVICE": "Device node missing after attach",
    "IDENTITY_UNAVAILABLE": "Instance metadata unavailable",

    # Local errors
    "MOUNT_FAILED": "mount/umount failed",
    "FS_ERROR": "Mountpoint directory error",

    # Request errors
    "INVALID_REQUEST": "Invalid request parameter",
}
