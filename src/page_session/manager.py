"""Session manager: the page registry, isolated contexts and focus.

Pages can close or navigate at any moment outside our control, so the
registry is only eventually consistent with the browser. `refresh_registry`
is the synchronization point; command handlers call it before resolving
pages.
"""

import asyncio
import functools
import logging
from typing import Awaitable, Optional

from page_session.config import SessionConfig
from page_session.contexts import IsolatedContextRegistry
from page_session.devtools import (
    extract_url_like_from_devtools_title,
    is_devtools_url,
    urls_equal,
)
from page_session.driver import BrowserDriver, ElementHandle, PageDriver
from page_session.emulation import apply_emulation, apply_timeouts
from page_session.errors import (
    FocusViolationError,
    LastPageError,
    NoSnapshotError,
    NotFoundError,
    UnknownUidError,
)
from page_session.focus import FocusMap
from page_session.page import PageRecord, resolve_element
from page_session.schemas.element import SnapshotNode
from page_session.schemas.emulation import EmulationSettings, EmulationUpdate
from page_session.snapshot import Snapshot, SnapshotIndexer
from page_session.workers import ExtensionServiceWorker, ServiceWorkerRegistry

logger = logging.getLogger(__name__)


class SessionManager:
    """Owns every page record and answers "which page am I operating on".

    Records live in an arena keyed by their page id, with a side index from
    the driver's page handle to that id. Every method that targets a page
    takes it explicitly; omitting it means the globally selected page.
    """

    def __init__(self, driver: BrowserDriver, config: Optional[SessionConfig] = None):
        self.driver = driver
        self.config = config or SessionConfig()
        self._records: dict[int, PageRecord] = {}
        self._index: dict[PageDriver, int] = {}
        self._pages: list[PageRecord] = []
        self._next_page_id = 1
        self._selected: Optional[PageRecord] = None
        self._contexts = IsolatedContextRegistry()
        self._focus = FocusMap()
        self._indexer = SnapshotIndexer()
        self._workers = ServiceWorkerRegistry()
        self._background_tasks: set[asyncio.Task] = set()

    @classmethod
    async def create(
        cls, driver: BrowserDriver, config: Optional[SessionConfig] = None
    ) -> "SessionManager":
        manager = cls(driver, config)
        await manager.refresh_registry()
        await manager.refresh_service_workers()
        return manager

    # Registry

    async def refresh_registry(self) -> list[PageRecord]:
        """Re-enumerate live pages and reconcile the registry with them"""
        handles = await self.driver.pages(self.config.include_all_pages)
        self._contexts.discover(self.driver.contexts(), self.driver.default_context)

        for handle in handles:
            record = self._record_for(handle)
            if record is None:
                record = PageRecord(handle=handle, id=self._next_page_id)
                self._next_page_id += 1
                self._records[record.id] = record
                self._index[handle] = record.id
                logger.debug("Registered page %s (%s)", record.id, handle.url)
            record.isolated_context_name = self._contexts.name_for(handle.context)

        live = set(handles)
        for handle, page_id in list(self._index.items()):
            if handle not in live:
                self._discard(page_id)
        self._focus.prune(self._records.values())

        self._pages = [
            self._records[self._index[handle]]
            for handle in handles
            if self.config.devtools_debugging or not is_devtools_url(handle.url)
        ]

        if self._selected is not None and self._selected.disposed:
            self._selected = None
        if (self._selected is None or self._selected not in self._pages) and self._pages:
            self.select_page(self._pages[0])

        await self.detect_devtools_windows(handles)
        return list(self._pages)

    def _record_for(self, handle: PageDriver) -> Optional[PageRecord]:
        page_id = self._index.get(handle)
        if page_id is None:
            return None
        return self._records.get(page_id)

    def _discard(self, page_id: int) -> None:
        record = self._records.pop(page_id, None)
        if record is None:
            return
        self._index.pop(record.handle, None)
        self._focus.remove_page(record)
        record.dispose()
        logger.debug("Disposed page %s", page_id)

    def get_pages(self) -> list[PageRecord]:
        return list(self._pages)

    def get_page_id(self, handle: PageDriver) -> Optional[int]:
        return self._index.get(handle)

    def get_page_by_id(self, page_id: int) -> PageRecord:
        for record in self._pages:
            if record.id == page_id:
                return record
        raise NotFoundError(
            f"No page found with id {page_id}. Call list_pages to see open pages."
        )

    def get_selected_page(self) -> PageRecord:
        record = self._selected
        if record is None:
            raise NotFoundError("No page selected")
        if record.disposed or record.handle.is_closed():
            raise NotFoundError(
                "The selected page has been closed. Call list_pages to see open pages."
            )
        return record

    def resolve_page(self, page_id: Optional[int] = None) -> PageRecord:
        if page_id is None:
            return self.get_selected_page()
        return self.get_page_by_id(page_id)

    def is_page_selected(self, record: PageRecord) -> bool:
        return self._selected is record

    # Page lifecycle

    async def create_page(
        self, background: bool = False, isolated_context: Optional[str] = None
    ) -> PageRecord:
        context = None
        if isolated_context is not None:
            context = await self._contexts.get_or_create(isolated_context, self.driver)
        handle = await self.driver.new_page(context, background=background)
        await self.refresh_registry()
        record = self._record_for(handle)
        if record is None:
            raise NotFoundError("The new page was closed before it could be registered.")
        if background:
            # Only the global pointer moves. The caller keeps both the focus
            # map entry and the emulated focus of its context.
            if self._focus.focused(handle.context) is None:
                self._focus.transfer(record)
            self._selected = record
            self._update_timeouts(record)
        else:
            self.select_page(record)
        return record

    async def close_page(self, page_id: int) -> None:
        if len(self._pages) == 1:
            raise LastPageError()
        record = self.get_page_by_id(page_id)
        self._discard(record.id)
        await record.handle.close()
        await self.refresh_registry()

    # Focus

    def select_page(self, record: PageRecord) -> None:
        context = record.handle.context
        previous = self._focus.focused(context)
        if previous is not None and previous is not record and not previous.handle.is_closed():
            self._spawn(
                previous.handle.set_focus_emulation(False),
                "Error turning off focused page emulation",
            )
        self._focus.transfer(record)
        self._selected = record
        self._update_timeouts(record)
        self._spawn(
            record.handle.set_focus_emulation(True),
            "Error turning on focused page emulation",
        )

    def focused_page(self, record: PageRecord) -> Optional[PageRecord]:
        """Active page of the browsing context `record` belongs to"""
        return self._focus.focused(record.handle.context)

    def assert_focused(self, record: PageRecord) -> None:
        self._focus.assert_focused(record)

    def _update_timeouts(self, record: PageRecord) -> None:
        apply_timeouts(record, self.config)

    def _spawn(self, coro: Awaitable[None], message: str) -> None:
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(functools.partial(self._on_background_done, message))

    def _on_background_done(self, message: str, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(message, exc_info=exc)

    async def wait_for_background_tasks(self) -> None:
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    # Snapshots and elements

    async def create_snapshot(
        self,
        page: Optional[PageRecord] = None,
        verbose: bool = False,
        inspected_backend_node_id: Optional[int] = None,
    ) -> Optional[Snapshot]:
        """Capture the accessibility tree of a page and index it.

        Returns None, leaving the previous snapshot in place, when the page
        has no accessibility tree.
        """
        record = page or self.get_selected_page()
        root = await record.handle.accessibility_tree(interesting_only=not verbose)
        if root is None:
            logger.debug("Page %s returned no accessibility tree", record.id)
            return None
        if inspected_backend_node_id is None:
            inspected_backend_node_id = await self.get_inspected_backend_node_id(record)
        snapshot = self._indexer.index(
            record, root, verbose=verbose, inspected_backend_node_id=inspected_backend_node_id
        )
        record.snapshot = snapshot
        return snapshot

    def get_snapshot(self, page: Optional[PageRecord] = None) -> Optional[Snapshot]:
        record = page or self._selected
        if record is None:
            return None
        return record.snapshot

    def get_node_by_uid(self, uid: str) -> Optional[SnapshotNode]:
        # Page counts are small (typically 2-10), a scan is enough.
        for record in self._records.values():
            node = record.get_node_by_uid(uid)
            if node is not None:
                return node
        return None

    async def get_element_by_uid(
        self, uid: str, page: Optional[PageRecord] = None
    ) -> ElementHandle:
        if page is not None:
            return await page.get_element_by_uid(uid)

        any_snapshot = False
        for record in self._records.values():
            if record.snapshot is None:
                continue
            any_snapshot = True
            node = record.snapshot.id_to_node.get(uid)
            if node is None:
                continue
            focused = self._focus.focused(record.handle.context)
            if focused is not record:
                focused_id = focused.id if focused else self.get_selected_page().id
                raise FocusViolationError(
                    f'Element uid "{uid}" belongs to page {record.id}, but page '
                    f"{focused_id} is currently selected. "
                    f"Call select_page with pageId {record.id} first.",
                    page_id=record.id,
                    focused_page_id=focused_id,
                )
            # Keep the global pointer on the page the element came from.
            self._selected = record
            return await resolve_element(record.handle, node, uid)

        if not any_snapshot:
            raise NoSnapshotError("No snapshot found. Use take_snapshot to capture one.")
        raise UnknownUidError(f'Element uid "{uid}" not found in any snapshot.')

    # Emulation

    async def emulate(
        self, update: EmulationUpdate, page: Optional[PageRecord] = None
    ) -> EmulationSettings:
        record = page or self.get_selected_page()
        if await apply_emulation(record, update):
            self._update_timeouts(record)
        return record.emulation.model_copy()

    def get_emulation(self, page: Optional[PageRecord] = None) -> EmulationSettings:
        record = page or self.get_selected_page()
        return record.emulation.model_copy()

    # Dialogs

    def get_dialog(self, page: Optional[PageRecord] = None):
        record = page or self._selected
        if record is None:
            return None
        return record.dialog

    def clear_dialog(self, page: Optional[PageRecord] = None) -> None:
        record = page or self._selected
        if record is not None:
            record.clear_dialog()

    # Isolated contexts and DevTools windows

    def get_isolated_context_name(self, record: PageRecord) -> Optional[str]:
        return record.isolated_context_name

    def get_isolated_context_names(self) -> list[str]:
        return self._contexts.names()

    def get_devtools_page(self, record: PageRecord) -> Optional[PageDriver]:
        return record.devtools_page

    async def get_inspected_backend_node_id(self, record: PageRecord) -> Optional[int]:
        """Element selected in the DevTools window paired with `record`, if any"""
        devtools = record.devtools_page
        if devtools is None:
            return None
        try:
            return await devtools.inspected_backend_node_id()
        except Exception:
            logger.warning(
                "Could not read the DevTools selection for page %s", record.id, exc_info=True
            )
            return None

    async def detect_devtools_windows(
        self, handles: Optional[list[PageDriver]] = None
    ) -> None:
        """Pair every open DevTools window with the page it inspects"""
        if handles is None:
            handles = await self.driver.pages(self.config.include_all_pages)
        for record in self._records.values():
            record.devtools_page = None
        for devtools in handles:
            if not is_devtools_url(devtools.url):
                continue
            try:
                info = await devtools.target_info()
            except Exception:
                logger.warning(
                    "Could not read target info for %s", devtools.url, exc_info=True
                )
                continue
            url_like = extract_url_like_from_devtools_title(info.get("title", ""))
            if not url_like:
                continue
            for record in self._pages:
                if urls_equal(record.handle.url, url_like):
                    record.devtools_page = devtools

    # Extension service workers

    async def refresh_service_workers(self) -> list[ExtensionServiceWorker]:
        return self._workers.refresh(await self.driver.service_workers())

    def get_service_workers(self) -> list[ExtensionServiceWorker]:
        return self._workers.list()

    def get_service_worker_id(self, url: str) -> Optional[str]:
        return self._workers.id_for(url)

    def dispose(self) -> None:
        for record in self._records.values():
            record.dispose()
        self._records.clear()
        self._index.clear()
        self._pages = []
        self._selected = None
        self._focus.clear()
        # Contexts stay open: the browser either goes away as a whole or is
        # left running for someone else.
        self._contexts.clear()
