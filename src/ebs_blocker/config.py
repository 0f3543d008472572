from pydantic import BaseModel, Field
from typing import Optional

from ebs_blocker.types import BackoffPolicy, InstanceIdentity


class BlockerConfig(BaseModel):
    """
    Runtime configuration for ebs-blocker.

    This configuration is loaded from:
    1. Environment variables (BLOCKER_*)
    2. Configuration file (if provided)
    3. Default values (hardcoded)

    Priority: Environment variables > Config file > Defaults
    """

    # Plugin socket
    socket_path: str = Field(
        default="/var/run/blocker.sock",
        description="Unix socket the Docker daemon connects to"
    )

    # Local mounts
    mount_root: str = Field(
        default="/mnt/blocker",
        description="Directory under which per-mount directories are created"
    )

    filesystem_type: str = Field(
        default="ext4",
        min_length=1,
        description="Filesystem type passed to mount -t"
    )

    dev_root: str = Field(
        default="/dev",
        description="Directory holding local block device nodes"
    )

    device_letters: str = Field(
        default="fghijklmnop",
        pattern=r"^[a-z]+$",
        description="Ordered device letters reserved for EBS attachments (/dev/sd[f-p])"
    )

    # State polling
    poll_attempts: int = Field(
        default=12,
        ge=1,
        le=1000,
        description="Number of DescribeVolumes checks while waiting for a state change"
    )

    poll_interval_sec: float = Field(
        default=5.0,
        ge=0,
        le=300,
        description="Seconds between state checks"
    )

    # Service lookup
    service_tag_key: str = Field(
        default="service",
        min_length=1,
        description="Tag key identifying the service a volume belongs to"
    )

    # Instance identity overrides (skip the metadata service when all are set)
    instance_id: Optional[str] = Field(default=None, description="EC2 instance ID override")
    region: Optional[str] = Field(default=None, description="AWS region override")
    availability_zone: Optional[str] = Field(default=None, description="Availability zone override")

    metadata_endpoint: str = Field(
        default="http://169.254.169.254",
        description="EC2 instance metadata service endpoint"
    )

    metadata_timeout_sec: float = Field(
        default=2.0,
        gt=0,
        le=60,
        description="Timeout for each instance metadata request"
    )

    # Logging
    log_level: str = Field(
        default="info",
        description="Log level (debug/info/warning/error)"
    )

    log_file: Optional[str] = Field(
        default=None,
        description="Optional log file in addition to stderr"
    )

    @property
    def backoff(self) -> BackoffPolicy:
        return BackoffPolicy(
            max_attempts=self.poll_attempts,
            interval_sec=self.poll_interval_sec,
        )

    def identity_override(self) -> Optional[InstanceIdentity]:
        """Return the configured identity if every field is set, else None."""
        if self.instance_id and self.region and self.availability_zone:
            return InstanceIdentity(
                instance_id=self.instance_id,
                region=self.region,
                availability_zone=self.availability_zone,
            )
        return None

    @classmethod
    def from_env(cls, base: Optional["BlockerConfig"] = None) -> "BlockerConfig":
        """
        Load configuration from environment variables.

        Environment variables (BLOCKER_*) override ``base`` (or defaults):

        - BLOCKER_SOCKET: Plugin socket path
        - BLOCKER_MOUNT_ROOT: Mountpoint root directory
        - BLOCKER_FS_TYPE: Filesystem type
        - BLOCKER_DEV_ROOT: Device node directory
        - BLOCKER_POLL_ATTEMPTS: State polling attempts
        - BLOCKER_POLL_INTERVAL: State polling interval in seconds
        - BLOCKER_SERVICE_TAG: Tag key used for service lookups
        - BLOCKER_INSTANCE_ID / BLOCKER_REGION / BLOCKER_AVAILABILITY_ZONE: Identity overrides
        - BLOCKER_LOG_LEVEL: Log level
        - BLOCKER_LOG_FILE: Log file path
        """
        import os

        kwargs = base.model_dump() if base is not None else {}

        # Plugin
        if "BLOCKER_SOCKET" in os.environ:
            kwargs["socket_path"] = os.environ["BLOCKER_SOCKET"]

        # Mounts
        if "BLOCKER_MOUNT_ROOT" in os.environ:
            kwargs["mount_root"] = os.environ["BLOCKER_MOUNT_ROOT"]
        if "BLOCKER_FS_TYPE" in os.environ:
            kwargs["filesystem_type"] = os.environ["BLOCKER_FS_TYPE"]
        if "BLOCKER_DEV_ROOT" in os.environ:
            kwargs["dev_root"] = os.environ["BLOCKER_DEV_ROOT"]

        # Polling
        if "BLOCKER_POLL_ATTEMPTS" in os.environ:
            kwargs["poll_attempts"] = int(os.environ["BLOCKER_POLL_ATTEMPTS"])
        if "BLOCKER_POLL_INTERVAL" in os.environ:
            kwargs["poll_interval_sec"] = float(os.environ["BLOCKER_POLL_INTERVAL"])

        if "BLOCKER_SERVICE_TAG" in os.environ:
            kwargs["service_tag_key"] = os.environ["BLOCKER_SERVICE_TAG"]

        # Identity
        if "BLOCKER_INSTANCE_ID" in os.environ:
            kwargs["instance_id"] = os.environ["BLOCKER_INSTANCE_ID"]
        if "BLOCKER_REGION" in os.environ:
            kwargs["region"] = os.environ["BLOCKER_REGION"]
        if "BLOCKER_AVAILABILITY_ZONE" in os.environ:
            kwargs["availability_zone"] = os.environ["BLOCKER_AVAILABILITY_ZONE"]

        # Logging
        if "BLOCKER_LOG_LEVEL" in os.environ:
            kwargs["log_level"] = os.environ["BLOCKER_LOG_LEVEL"].lower()
        if "BLOCKER_LOG_FILE" in os.environ:
            kwargs["log_file"] = os.environ["BLOCKER_LOG_FILE"]

        return cls(**kwargs)

    @classmethod
    def from_file(cls, config_path: str) -> "BlockerConfig":
        """
        Load configuration from a YAML or JSON file.

        Supported formats: .yaml, .yml, .json
        """
        import yaml

        with open(config_path, "r") as f:
            if config_path.endswith((".yaml", ".yml")):
                data = yaml.safe_load(f)
            elif config_path.endswith(".json"):
                import json
                data = json.load(f)
            else:
                raise ValueError(f"Unsupported config format: {config_path}")

        return cls(**(data or {}))

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "BlockerConfig":
        """Defaults, then ``config_path`` if given, then BLOCKER_* variables."""
        base = cls.from_file(config_path) if config_path else None
        return cls.from_env(base)
