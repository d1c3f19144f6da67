"""Pydantic schemas for data entering the controller.

Usage:
    from deployd.schemas import PushEvent, parse_event
"""

from .push import (
    HeadCommit,
    IgnoredEvent,
    PushEvent,
    PushOwner,
    PushRepository,
    parse_event,
)

__all__ = [
    "HeadCommit",
    "IgnoredEvent",
    "PushEvent",
    "PushOwner",
    "PushRepository",
    "parse_event",
]
