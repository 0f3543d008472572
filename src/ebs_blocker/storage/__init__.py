"""
Local storage management for ebs-blocker

Mountpoint lifecycle and mount/umount of attached devices.
"""

from .mounts import MountManager, MOUNTPOINT_MODE

__all__ = [
    "MountManager",
    "MOUNTPOINT_MODE",
]
