"""
Pytest configuration and fixtures for ebs-blocker tests.

This module provides shared fixtures and configuration for all tests.
"""

import sys
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from botocore.exceptions import ClientError

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ebs_blocker.types import BackoffPolicy, InstanceIdentity  # noqa: E402
from ebs_blocker.utils.process import CommandResult  # noqa: E402


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, isolated)"
    )
    config.addinivalue_line(
        "markers", "api: Plugin API endpoint tests"
    )


# =============================================================================
# Helpers
# =============================================================================

def client_error(code: str, operation: str = "AttachVolume") -> ClientError:
    """Build a botocore ClientError carrying an EC2 error code."""
    return ClientError(
        {"Error": {"Code": code, "Message": f"simulated {code}"}},
        operation,
    )


class FakeEC2:
    """
    Minimal EC2 client double.

    ``describe_volumes`` reports a volume as ``volume_state`` until
    ``attach_volume`` is called for it, then as a single attachment in
    ``attachment_state``. A successful attach creates the device node under
    ``dev_root`` (``node="sd"`` or ``"xvd"``; ``None`` creates nothing).
    """

    def __init__(
        self,
        dev_root: Path,
        instance_id: str = "i-0123456789abcdef0",
        node: Optional[str] = "sd",
        in_use_devices: Optional[List[str]] = None,
    ):
        self.dev_root = dev_root
        self.instance_id = instance_id
        self.node = node
        self.in_use_devices = set(in_use_devices or [])
        self.attachments: Dict[str, str] = {}
        self.volume_state = "available"
        self.attachment_state = "attached"

        self.describe_volumes = MagicMock(side_effect=self._describe_volumes)
        self.attach_volume = MagicMock(side_effect=self._attach_volume)
        self.detach_volume = MagicMock(return_value={"State": "detaching"})

    def _describe_volumes(self, **kwargs) -> Dict[str, Any]:
        volume_id = kwargs.get("VolumeIds", ["vol-unknown"])[0]
        device = self.attachments.get(volume_id)
        if device is None:
            return {"Volumes": [{"VolumeId": volume_id, "State": self.volume_state, "Attachments": []}]}
        return {
            "Volumes": [{
                "VolumeId": volume_id,
                "State": "in-use",
                "Attachments": [{
                    "VolumeId": volume_id,
                    "InstanceId": self.instance_id,
                    "Device": device,
                    "State": self.attachment_state,
                }],
            }]
        }

    def _attach_volume(self, Device: str, InstanceId: str, VolumeId: str) -> Dict[str, Any]:
        if Device in self.in_use_devices:
            raise client_error("InvalidParameterValue")
        self.attachments[VolumeId] = Device
        if self.node is not None:
            letter = Device[len("/dev/sd"):]
            (self.dev_root / f"{self.node}{letter}").touch()
        return {"Device": Device, "State": "attaching"}

    def attached_devices(self) -> List[str]:
        return [call.kwargs["Device"] for call in self.attach_volume.call_args_list]


class FakeMountTable:
    """
    Command runner that keeps a mount table the way mount(8) and umount(8) do.

    ``umount`` of a path that is not mounted fails with exit status 32.
    Pass ``is_mounted`` as the MountManager ``mount_check``.
    """

    def __init__(self):
        self.mounted: Dict[str, str] = {}
        self.commands: List[List[str]] = []

    async def __call__(self, argv) -> CommandResult:
        argv = list(argv)
        self.commands.append(argv)
        if argv[0] == "mount":
            device, target = argv[-2], argv[-1]
            self.mounted[target] = device
            return CommandResult(returncode=0, output="")
        if argv[0] == "umount":
            target = argv[-1]
            if target not in self.mounted:
                return CommandResult(returncode=32, output=f"umount: {target}: not mounted.")
            del self.mounted[target]
            return CommandResult(returncode=0, output="")
        return CommandResult(returncode=1, output=f"{argv[0]}: unsupported")

    def is_mounted(self, path: str) -> bool:
        return str(path) in self.mounted


# =============================================================================
# Identity and policy
# =============================================================================

@pytest.fixture
def identity() -> InstanceIdentity:
    return InstanceIdentity(
        instance_id="i-0123456789abcdef0",
        region="us-west-2",
        availability_zone="us-west-2a",
    )


@pytest.fixture
def fast_backoff() -> BackoffPolicy:
    """Three attempts, no waiting."""
    return BackoffPolicy(max_attempts=3, interval_sec=0)


# =============================================================================
# Temporary Directories
# =============================================================================

@pytest.fixture
def dev_root(tmp_path) -> Path:
    """Stand-in for /dev."""
    path = tmp_path / "dev"
    path.mkdir()
    return path


@pytest.fixture
def mount_root(tmp_path) -> Path:
    """Stand-in for /mnt/blocker (created on demand)."""
    return tmp_path / "mnt" / "blocker"


# =============================================================================
# Mock Fixtures
# =============================================================================

@pytest.fixture
def fake_ec2(dev_root) -> FakeEC2:
    return FakeEC2(dev_root)


@pytest.fixture
def mount_table() -> FakeMountTable:
    return FakeMountTable()


@pytest.fixture
def ok_runner() -> AsyncMock:
    """Command runner where every command succeeds."""
    return AsyncMock(return_value=CommandResult(returncode=0, output=""))


@pytest.fixture
def mock_mounter() -> MagicMock:
    """MountManager double returning a fresh mountpoint per mount."""
    mounter = MagicMock()

    async def _mount(volume_id: str) -> str:
        return f"/mnt/blocker/{uuid.uuid4()}"

    mounter.mount = AsyncMock(side_effect=_mount)
    mounter.unmount = AsyncMock(return_value=None)
    return mounter


@pytest.fixture
def mock_lookup() -> MagicMock:
    lookup = MagicMock()
    lookup.find_by_service_tag = AsyncMock(return_value="vol-0service000000001")
    return lookup
