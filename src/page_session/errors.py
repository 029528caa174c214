"""Errors surfaced to callers of the session manager.

All of them describe conditions the caller can correct (pick another page,
take a fresh snapshot, select the page first), so they are never retried
internally.
"""

from typing import Optional


class SessionError(Exception):
    """Base class for session-state errors"""


class NotFoundError(SessionError):
    """Unknown page id, or no usable selected page"""


class NoSnapshotError(SessionError):
    """An element was requested before any snapshot was captured"""


class UnknownUidError(SessionError):
    """The uid is not present in the relevant snapshot(s)"""


class StaleElementError(SessionError):
    """The uid resolved in the snapshot, but the node is gone from the live page"""


class InvalidArgumentError(SessionError):
    """Command arguments that do not describe a valid request"""


class LastPageError(SessionError):
    """Closing the only remaining page"""

    def __init__(self) -> None:
        super().__init__(
            "The last open page cannot be closed. It is fine to keep it open."
        )


class FocusViolationError(SessionError):
    """A command targets a page that is not the active page of its context"""

    def __init__(
        self,
        message: str,
        page_id: Optional[int] = None,
        focused_page_id: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.page_id = page_id
        self.focused_page_id = focused_page_id
