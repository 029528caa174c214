"""Per-context focus: which page interactive commands may target."""

from typing import Iterable, Optional

from page_session.driver import ContextHandle
from page_session.errors import FocusViolationError
from page_session.page import PageRecord


class FocusMap:
    """Maps each browsing context to its single active page"""

    def __init__(self) -> None:
        self._focused: dict[ContextHandle, PageRecord] = {}

    def focused(self, context: ContextHandle) -> Optional[PageRecord]:
        return self._focused.get(context)

    def transfer(self, record: PageRecord) -> Optional[PageRecord]:
        """Make `record` the active page of its context, return the previous one"""
        context = record.handle.context
        previous = self._focused.get(context)
        self._focused[context] = record
        return previous

    def is_focused(self, record: PageRecord) -> bool:
        return self._focused.get(record.handle.context) is record

    def remove_page(self, record: PageRecord) -> None:
        for context, focused in list(self._focused.items()):
            if focused is record:
                del self._focused[context]

    def prune(self, live: Iterable[PageRecord]) -> None:
        alive = set(live)
        for context, focused in list(self._focused.items()):
            if focused not in alive:
                del self._focused[context]

    def assert_focused(self, record: PageRecord) -> None:
        focused = self.focused(record.handle.context)
        if focused is not None and focused is not record:
            raise FocusViolationError(
                f"Page {record.id} is not the active page in its browser context "
                f"(page {focused.id} is). Call select_page with pageId {record.id} first.",
                page_id=record.id,
                focused_page_id=focused.id,
            )

    def clear(self) -> None:
        self._focused.clear()
