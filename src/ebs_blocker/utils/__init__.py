"""
ebs-blocker utilities

Logging and local command helpers.
"""

from ebs_blocker.utils.logger import (
    configure_logging,
    parse_level,
    DEFAULT_FORMAT,
)
from ebs_blocker.utils.process import (
    CommandResult,
    CommandRunner,
    run_command,
)

__all__ = [
    "configure_logging",
    "parse_level",
    "DEFAULT_FORMAT",
    "CommandResult",
    "CommandRunner",
    "run_command",
]
