"""Fake browser driver shared by the test modules.

The fakes implement the driver interfaces from page_session.driver and
record every call so tests can check what reached the browser.
"""

from typing import Optional

import pytest
import pytest_asyncio

from page_session.driver import ServiceWorkerInfo
from page_session.manager import SessionManager


def ax(role, name="", backend_node_id=None, children=(), loader_id="L1", value=None):
    """Build one node of a driver accessibility tree"""
    return {
        "role": role,
        "name": name,
        "value": value,
        "backendDOMNodeId": backend_node_id,
        "loaderId": loader_id,
        "properties": {},
        "children": list(children),
    }


def button_page_tree(loader_id="L1"):
    return ax(
        "RootWebArea",
        "Test page",
        1,
        loader_id=loader_id,
        children=[ax("button", "Submit", 2, loader_id=loader_id)],
    )


class FakeContext:
    def __init__(self, label: str):
        self.label = label
        self.closed = False
        self.pages: list["FakePage"] = []

    def __repr__(self) -> str:
        return f"FakeContext({self.label})"


class FakeElement:
    def __init__(self, backend_node_id: int):
        self.backend_node_id = backend_node_id
        self.clicks: list[bool] = []
        self.hovered = False
        self.filled: Optional[str] = None

    async def click(self, double: bool = False) -> None:
        self.clicks.append(double)

    async def hover(self) -> None:
        self.hovered = True

    async def fill(self, text: str) -> None:
        self.filled = text


class FakeDialog:
    def __init__(self, message: str = "Are you sure?"):
        self.message = message
        self.accepted: Optional[Optional[str]] = None
        self.dismissed = False

    async def accept(self, prompt_text: Optional[str] = None) -> None:
        self.accepted = prompt_text

    async def dismiss(self) -> None:
        self.dismissed = True


class FakePage:
    def __init__(self, context: FakeContext, url: str = "about:blank"):
        self._context = context
        self.url = url
        self.closed = False
        self.dialog_handlers = []
        self.focus_calls: list[bool] = []
        self.fail_focus = False
        self.default_timeout = None
        self.navigation_timeout = None
        self.network = "untouched"
        self.cpu_rate = None
        self.geolocation = "untouched"
        self.user_agent = "untouched"
        self.color_scheme = "untouched"
        self.viewport = "untouched"
        self.tree: Optional[dict] = None
        self.tree_requests: list[bool] = []
        self.detached_nodes: set[int] = set()
        self.elements: dict[int, FakeElement] = {}
        self.target_title = ""
        self.fail_target_info = False
        self.inspected_node: Optional[int] = None
        self.fail_inspect = False
        self.keys: list[str] = []
        self.fronted = False

    def __repr__(self) -> str:
        return f"FakePage({self.url})"

    @property
    def context(self) -> FakeContext:
        return self._context

    def is_closed(self) -> bool:
        return self.closed

    async def close(self) -> None:
        self.closed = True
        if self in self._context.pages:
            self._context.pages.remove(self)

    def on_dialog(self, handler) -> None:
        self.dialog_handlers.append(handler)

    def off_dialog(self, handler) -> None:
        self.dialog_handlers.remove(handler)

    def emit_dialog(self, dialog) -> None:
        for handler in list(self.dialog_handlers):
            handler(dialog)

    @property
    def focus_emulated(self) -> Optional[bool]:
        return self.focus_calls[-1] if self.focus_calls else None

    async def set_focus_emulation(self, enabled: bool) -> None:
        if self.fail_focus:
            raise RuntimeError("Target closed")
        self.focus_calls.append(enabled)

    def set_default_timeout(self, timeout_ms: float) -> None:
        self.default_timeout = timeout_ms

    def set_default_navigation_timeout(self, timeout_ms: float) -> None:
        self.navigation_timeout = timeout_ms

    async def emulate_network(self, conditions) -> None:
        self.network = conditions

    async def emulate_cpu(self, rate: float) -> None:
        self.cpu_rate = rate

    async def set_geolocation(self, geolocation) -> None:
        self.geolocation = geolocation

    async def set_user_agent(self, user_agent) -> None:
        self.user_agent = user_agent

    async def emulate_color_scheme(self, scheme) -> None:
        self.color_scheme = scheme

    async def set_viewport(self, viewport) -> None:
        self.viewport = viewport

    async def accessibility_tree(self, interesting_only: bool = True) -> Optional[dict]:
        self.tree_requests.append(interesting_only)
        return self.tree

    async def target_info(self) -> dict:
        if self.fail_target_info:
            raise RuntimeError("Target detached")
        return {"title": self.target_title, "url": self.url}

    async def inspected_backend_node_id(self) -> Optional[int]:
        if self.fail_inspect:
            raise RuntimeError("Execution context was destroyed")
        return self.inspected_node

    async def resolve_node(self, backend_node_id: int) -> Optional[FakeElement]:
        if backend_node_id in self.detached_nodes:
            raise RuntimeError("No node with given id found")
        return self.elements.setdefault(backend_node_id, FakeElement(backend_node_id))

    async def goto(self, url: str) -> None:
        self.url = url

    async def bring_to_front(self) -> None:
        self.fronted = True

    async def press_key(self, key: str) -> None:
        self.keys.append(key)


class FakeBrowser:
    def __init__(self):
        self.default = FakeContext("default")
        self._contexts = [self.default]
        self.default.pages.append(FakePage(self.default))
        self.workers: list[ServiceWorkerInfo] = []
        self.fail_pages = False
        self.new_page_calls: list[tuple] = []
        self.created_contexts = 0

    @property
    def default_context(self) -> FakeContext:
        return self.default

    def contexts(self) -> list[FakeContext]:
        return list(self._contexts)

    async def pages(self, include_all: bool = False) -> list[FakePage]:
        if self.fail_pages:
            raise RuntimeError("Browser disconnected")
        return [page for ctx in self._contexts if not ctx.closed for page in ctx.pages]

    async def new_context(self) -> FakeContext:
        self.created_contexts += 1
        return self.add_context(f"created-{self.created_contexts}")

    def add_context(self, label: str) -> FakeContext:
        context = FakeContext(label)
        self._contexts.append(context)
        return context

    async def new_page(self, context=None, background: bool = False) -> FakePage:
        self.new_page_calls.append((context, background))
        return self.open_page(context)

    def open_page(self, context=None, url: str = "about:blank") -> FakePage:
        """Open a page directly in the browser, bypassing the manager"""
        context = context or self.default
        page = FakePage(context, url)
        context.pages.append(page)
        return page

    async def service_workers(self) -> list[ServiceWorkerInfo]:
        return list(self.workers)


@pytest.fixture
def browser():
    return FakeBrowser()


@pytest_asyncio.fixture
async def manager(browser):
    session = await SessionManager.create(browser)
    yield session
    await session.wait_for_background_tasks()
    session.dispose()
