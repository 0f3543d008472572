"""
ebs-blocker: Docker volume plugin backed by Amazon EBS

Maps named Docker volumes onto EBS volumes, attaching them to the local
EC2 instance and mounting them on demand.
"""

__version__ = "1.0.0"

from ebs_blocker.manager import VolumeRegistry, create_registry
from ebs_blocker.config import BlockerConfig
from ebs_blocker.backends import VolumeDriver
from ebs_blocker.types import (
    VolumeRecord,
    CreateOptions,
    InstanceIdentity,
    BackoffPolicy,
)
from ebs_blocker.cloud import (
    AttachCoordinator,
    CloudVolumeLookup,
    fetch_instance_identity,
)
from ebs_blocker.storage import MountManager
from ebs_blocker.api.rest import create_app

from ebs_blocker.errors import (
    BlockerError,
    NotFoundError,
    ConflictError,
    VolumeNotFoundError,
    ServiceVolumeNotFoundError,
    VolumeInUseError,
    VolumeAlreadyMountedError,
    VolumeNotMountedError,
    RemoteStateError,
    NoFreeDeviceError,
    MissingDeviceError,
    MountOperationError,
    FilesystemError,
    InstanceIdentityError,
    InvalidRequestError,
)

__all__ = [
    "VolumeRegistry",
    "create_registry",
    "BlockerConfig",
    "VolumeDriver",
    "VolumeRecord",
    "CreateOptions",
    "InstanceIdentity",
    "BackoffPolicy",
    "AttachCoordinator",
    "CloudVolumeLookup",
    "fetch_instance_identity",
    "MountManager",
    "create_app",
    # Exception classes
    "BlockerError",
    "NotFoundError",
    "ConflictError",
    "VolumeNotFoundError",
    "ServiceVolumeNotFoundError",
    "VolumeInUseError",
    "VolumeAlreadyMountedError",
    "VolumeNotMountedError",
    "RemoteStateError",
    "NoFreeDeviceError",
    "MissingDeviceError",
    "MountOperationError",
    "FilesystemError",
    "InstanceIdentityError",
    "InvalidRequestError",
]
