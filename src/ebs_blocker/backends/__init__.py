"""
Volume driver interface

Docker volume plugins integrate Docker with external storage so data
volumes outlive a single container. See
https://docs.docker.com/engine/extend/plugins_volume/
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class VolumeDriver(ABC):
    """
    The five operations the plugin adapter calls.

    Every operation either returns its result or raises a BlockerError.
    """

    @abstractmethod
    async def create(self, name: str, options: Optional[Dict[str, Any]] = None) -> None:
        """
        Register a volume name. Nothing is attached until mount.

        Args:
            name: Volume name
            options: Driver options (``volume_id``, ``service``)
        """
        pass

    @abstractmethod
    async def mount(self, name: str) -> str:
        """
        Mount a volume, returning its mountpoint on the host.

        Args:
            name: Volume name
        """
        pass

    @abstractmethod
    async def path(self, name: str) -> str:
        """
        Return the host mountpoint of a mounted volume.

        Args:
            name: Volume name
        """
        pass

    @abstractmethod
    async def unmount(self, name: str) -> None:
        """
        Unmount a volume. Unmounting a volume that is not mounted succeeds.

        Args:
            name: Volume name
        """
        pass

    @abstractmethod
    async def remove(self, name: str) -> None:
        """
        Forget a volume, unmounting it first if needed.

        Args:
            name: Volume name
        """
        pass


__all__ = ["VolumeDriver"]
