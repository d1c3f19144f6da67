"""Database models package."""

from .base import Base
from .build import Build, BuildStatus
from .deployment import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    Deployment,
    DeploymentStatus,
    can_transition,
)
from .environment import EnvironmentVariable
from .hostname import Hostname
from .project import Project

__all__ = [
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATUSES",
    "Base",
    "Build",
    "BuildStatus",
    "Deployment",
    "DeploymentStatus",
    "EnvironmentVariable",
    "Hostname",
    "Project",
    "can_transition",
]
