"""
ebs-blocker API module

Docker volume plugin protocol adapter.
"""

from ebs_blocker.api.rest import (
    create_app,
    main,
    VolumeRequest,
    PluginInfoResponse,
    ErrResponse,
    MountpointResponse,
    GetResponse,
    ListResponse,
    CapabilitiesResponse,
)

__all__ = [
    "create_app",
    "main",
    "VolumeRequest",
    "PluginInfoResponse",
    "ErrResponse",
    "MountpointResponse",
    "GetResponse",
    "ListResponse",
    "CapabilitiesResponse",
]
