"""Multi-page, multi-context session state for remotely driven browsers."""

from page_session.config import SessionConfig
from page_session.errors import (
    FocusViolationError,
    InvalidArgumentError,
    LastPageError,
    NoSnapshotError,
    NotFoundError,
    SessionError,
    StaleElementError,
    UnknownUidError,
)
from page_session.manager import SessionManager
from page_session.serializer import CommandSerializer

__all__ = [
    "CommandSerializer",
    "FocusViolationError",
    "InvalidArgumentError",
    "LastPageError",
    "NoSnapshotError",
    "NotFoundError",
    "SessionConfig",
    "SessionError",
    "SessionManager",
    "StaleElementError",
    "UnknownUidError",
]
