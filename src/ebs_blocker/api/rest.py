"""
Docker volume plugin API for ebs-blocker

Speaks the Docker volume plugin protocol (JSON over HTTP on a unix socket)
and routes each call to the volume registry.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Dict, List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ebs_blocker import __version__
from ebs_blocker.cloud.identity import fetch_instance_identity
from ebs_blocker.config import BlockerConfig
from ebs_blocker.errors import BlockerError
from ebs_blocker.manager import VolumeRegistry, create_registry
from ebs_blocker.utils.logger import configure_logging

logger = logging.getLogger(__name__)

# =============================================================================
# Request/Response Models (field names follow the Docker wire format)
# =============================================================================

class VolumeRequest(BaseModel):
    """Request naming a volume"""
    Name: str = Field(..., description="Volume name")
    Opts: Optional[Dict[str, Any]] = Field(default=None, description="Driver options (Create only)")
    ID: Optional[str] = Field(default=None, description="Caller ID (Mount/Unmount only)")


class PluginInfoResponse(BaseModel):
    """Plugin activation response"""
    Implements: List[str] = Field(default_factory=lambda: ["VolumeDriver"])


class ErrResponse(BaseModel):
    """Response carrying only an error message (empty on success)"""
    Err: str = Field(default="")


class MountpointResponse(BaseModel):
    """Response carrying a mountpoint (empty on failure)"""
    Mountpoint: str = Field(default="")
    Err: str = Field(default="")


class VolumeInfo(BaseModel):
    """Volume as reported by Get and List"""
    Name: str
    Mountpoint: str = Field(default="")
    Status: Dict[str, Any] = Field(default_factory=dict)


class GetResponse(BaseModel):
    Volume: Optional[VolumeInfo] = None
    Err: str = Field(default="")


class ListResponse(BaseModel):
    Volumes: List[VolumeInfo] = Field(default_factory=list)
    Err: str = Field(default="")


class CapabilitiesResponse(BaseModel):
    Capabilities: Dict[str, str] = Field(default_factory=lambda: {"Scope": "local"})


# =============================================================================
# FastAPI Application
# =============================================================================

def create_app(
    config: Optional[BlockerConfig] = None,
    registry: Optional[VolumeRegistry] = None,
) -> FastAPI:
    """
    Create and configure the plugin application.

    Without an injected ``registry`` the engine is built at startup from the
    instance identity; failing to determine the identity aborts startup.

    Args:
        config: Optional blocker configuration
        registry: Optional pre-built registry

    Returns:
        Configured FastAPI application
    """
    if config is None:
        config = BlockerConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if app.state.registry is None:
            identity = await fetch_instance_identity(config)
            app.state.registry = create_registry(config, identity)
        logger.info(f"Ready to go; listening on socket {config.socket_path}...")
        yield
        # Volumes are not unmounted or detached on shutdown
        mounted = app.state.registry.mounted_volumes()
        if mounted:
            names = ", ".join(record.name for record in mounted)
            logger.warning(f"Shutting down with {len(mounted)} volume(s) still mounted: {names}")

    app = FastAPI(
        title="ebs-blocker",
        version=__version__,
        description="Docker volume plugin backed by Amazon EBS",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
    )

    app.state.config = config
    app.state.registry = registry

    register_exception_handlers(app)
    register_routes(app)

    return app


def register_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers"""

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        """Malformed plugin request"""
        logger.warning(f"Invalid request to {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=400,
            content={"Err": f"Invalid request: {exc.errors()}"},
        )

    @app.exception_handler(Exception)
    async def general_error_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions"""
        logger.error(f"Unexpected error on {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"Err": str(exc) or "An unexpected error occurred"},
        )


async def get_registry(request: Request) -> VolumeRegistry:
    """Registry dependency"""
    return request.app.state.registry


async def _simple(route: str, name: str, operation: Awaitable[None]) -> ErrResponse:
    logger.info(f"* {route} ({name})")
    try:
        await operation
    except BlockerError as e:
        logger.info(f"  done: ({name}): {e}")
        return ErrResponse(Err=e.message)
    logger.info(f"  done: ({name}): ok")
    return ErrResponse()


async def _with_mountpoint(route: str, name: str, operation: Awaitable[str]) -> MountpointResponse:
    logger.info(f"* {route} ({name})")
    try:
        mountpoint = await operation
    except BlockerError as e:
        logger.info(f"  done: ({name}): {e}")
        return MountpointResponse(Err=e.message)
    logger.info(f"  done: ({name}): {mountpoint}")
    return MountpointResponse(Mountpoint=mountpoint)


def register_routes(app: FastAPI) -> None:
    """Register all plugin routes"""

    # =========================================================================
    # Plugin handshake
    # =========================================================================

    @app.post("/Plugin.Activate", response_model=PluginInfoResponse, tags=["Plugin"])
    async def plugin_activate():
        """Advertise the volume driver capability"""
        logger.info("* /Plugin.Activate")
        return PluginInfoResponse()

    # =========================================================================
    # Volume lifecycle
    # =========================================================================

    @app.post("/VolumeDriver.Create", response_model=ErrResponse, tags=["VolumeDriver"])
    async def create_volume(request: VolumeRequest, registry=Depends(get_registry)):
        return await _simple(
            "/VolumeDriver.Create", request.Name, registry.create(request.Name, request.Opts or {})
        )

    @app.post("/VolumeDriver.Mount", response_model=MountpointResponse, tags=["VolumeDriver"])
    async def mount_volume(request: VolumeRequest, registry=Depends(get_registry)):
        return await _with_mountpoint(
            "/VolumeDriver.Mount", request.Name, registry.mount(request.Name)
        )

    @app.post("/VolumeDriver.Path", response_model=MountpointResponse, tags=["VolumeDriver"])
    async def volume_path(request: VolumeRequest, registry=Depends(get_registry)):
        return await _with_mountpoint(
            "/VolumeDriver.Path", request.Name, registry.path(request.Name)
        )

    @app.post("/VolumeDriver.Unmount", response_model=ErrResponse, tags=["VolumeDriver"])
    async def unmount_volume(request: VolumeRequest, registry=Depends(get_registry)):
        return await _simple(
            "/VolumeDriver.Unmount", request.Name, registry.unmount(request.Name)
        )

    @app.post("/VolumeDriver.Remove", response_model=ErrResponse, tags=["VolumeDriver"])
    async def remove_volume(request: VolumeRequest, registry=Depends(get_registry)):
        return await _simple(
            "/VolumeDriver.Remove", request.Name, registry.remove(request.Name)
        )

    # =========================================================================
    # Inspection
    # =========================================================================

    @app.post("/VolumeDriver.Get", response_model=GetResponse, tags=["VolumeDriver"])
    async def get_volume(request: VolumeRequest, registry=Depends(get_registry)):
        try:
            record = registry.get(request.Name)
        except BlockerError as e:
            return GetResponse(Err=e.message)
        return GetResponse(Volume=VolumeInfo(Name=record.name, Mountpoint=record.mountpoint or ""))

    @app.post("/VolumeDriver.List", response_model=ListResponse, tags=["VolumeDriver"])
    async def list_volumes(registry=Depends(get_registry)):
        return ListResponse(
            Volumes=[
                VolumeInfo(Name=record.name, Mountpoint=record.mountpoint or "")
                for record in registry.list_volumes()
            ]
        )

    @app.post("/VolumeDriver.Capabilities", response_model=CapabilitiesResponse, tags=["VolumeDriver"])
    async def capabilities():
        return CapabilitiesResponse()


# =============================================================================
# Entry Point
# =============================================================================

def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point for the ebs-blocker command."""
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(
        description="Docker volume plugin backed by Amazon EBS",
        prog="ebs-blocker"
    )
    parser.add_argument(
        "--config",
        default=None,
        help="YAML or JSON configuration file"
    )
    parser.add_argument(
        "--socket",
        default=None,
        help="Unix socket to listen on (default: from BLOCKER_SOCKET or /var/run/blocker.sock)"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["debug", "info", "warning", "error"],
        help="Logging level"
    )

    args = parser.parse_args(argv)

    config = BlockerConfig.load(args.config)
    overrides: Dict[str, Any] = {}
    if args.socket:
        overrides["socket_path"] = args.socket
    if args.log_level:
        overrides["log_level"] = args.log_level
    if overrides:
        config = config.model_copy(update=overrides)

    configure_logging(config.log_level, file_path=config.log_file)
    logger.info("blocker: starting up...")

    uvicorn.run(
        create_app(config),
        uds=config.socket_path,
        log_level=config.log_level,
        log_config=None,
    )


if __name__ == "__main__":
    main()
