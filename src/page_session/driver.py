"""Browser-automation driver boundary.

The session manager only talks to the structural interfaces declared here.
`PlaywrightBrowser` implements them on top of Playwright, falling back to
raw DevTools protocol calls for focus emulation, CPU throttling, network
presets, the full accessibility tree and backend node resolution.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from playwright.async_api import (
    Browser,
    BrowserContext,
    CDPSession,
    Page,
    Playwright,
    async_playwright,
)

from page_session.config import SessionConfig
from page_session.schemas.emulation import ColorScheme, Geolocation, Viewport

logger = logging.getLogger(__name__)

DialogHandler = Callable[[Any], Any]

# Roles that carry no meaning on their own; their children are hoisted
# when only interesting nodes are requested.
_UNINTERESTING_ROLES = {"none", "generic", "InlineTextBox", "LineBreak", "ignored"}

# Runs inside a DevTools front-end window.
_INSPECTED_NODE_SCRIPT = """async () => {
    const UI = await import("/bundled/ui/legacy/legacy.js");
    const SDK = await import("/bundled/core/sdk/sdk.js");
    const node = UI.Context.Context.instance().flavor(SDK.DOMModel.DOMNode);
    return node ? node.backendNodeId() : null;
}"""


@dataclass(frozen=True)
class NetworkConditions:
    offline: bool
    download: float  # bytes/s, -1 disables the limit
    upload: float  # bytes/s, -1 disables the limit
    latency: float  # ms


@dataclass(frozen=True)
class ServiceWorkerInfo:
    url: str


class ContextHandle(Protocol):
    closed: bool


class ElementHandle(Protocol):
    async def click(self, double: bool = False) -> None: ...

    async def hover(self) -> None: ...

    async def fill(self, text: str) -> None: ...


class PageDriver(Protocol):
    @property
    def context(self) -> ContextHandle: ...

    @property
    def url(self) -> str: ...

    def is_closed(self) -> bool: ...

    async def close(self) -> None: ...

    def on_dialog(self, handler: DialogHandler) -> None: ...

    def off_dialog(self, handler: DialogHandler) -> None: ...

    async def set_focus_emulation(self, enabled: bool) -> None: ...

    def set_default_timeout(self, timeout_ms: float) -> None: ...

    def set_default_navigation_timeout(self, timeout_ms: float) -> None: ...

    async def emulate_network(self, conditions: Optional[NetworkConditions]) -> None: ...

    async def emulate_cpu(self, rate: float) -> None: ...

    async def set_geolocation(self, geolocation: Optional[Geolocation]) -> None: ...

    async def set_user_agent(self, user_agent: Optional[str]) -> None: ...

    async def emulate_color_scheme(self, scheme: Optional[ColorScheme]) -> None: ...

    async def set_viewport(self, viewport: Optional[Viewport]) -> None: ...

    async def accessibility_tree(self, interesting_only: bool = True) -> Optional[dict]: ...

    async def target_info(self) -> dict: ...

    async def inspected_backend_node_id(self) -> Optional[int]: ...

    async def resolve_node(self, backend_node_id: int) -> Optional[ElementHandle]: ...

    async def goto(self, url: str) -> None: ...

    async def bring_to_front(self) -> None: ...

    async def press_key(self, key: str) -> None: ...


class BrowserDriver(Protocol):
    @property
    def default_context(self) -> ContextHandle: ...

    def contexts(self) -> list[ContextHandle]: ...

    async def pages(self, include_all: bool = False) -> list[PageDriver]: ...

    async def new_context(self) -> ContextHandle: ...

    async def new_page(
        self, context: Optional[ContextHandle] = None, background: bool = False
    ) -> PageDriver: ...

    async def service_workers(self) -> list[ServiceWorkerInfo]: ...


def _ax_value(field: Any) -> Any:
    if isinstance(field, dict):
        return field.get("value")
    return field


def ax_nodes_to_tree(
    nodes: list[dict], loader_id: Optional[str], interesting_only: bool = True
) -> Optional[dict]:
    """Fold the flat Accessibility.getFullAXTree list into a nested tree.

    Every emitted node carries its backendDOMNodeId and the loader id of the
    document, which together identify the node within one page load.
    """
    if not nodes:
        return None

    by_id = {n.get("nodeId"): n for n in nodes}

    def convert(raw: dict) -> dict:
        properties = {
            prop.get("name"): _ax_value(prop.get("value"))
            for prop in raw.get("properties", [])
        }
        value = _ax_value(raw.get("value"))
        return {
            "role": str(_ax_value(raw.get("role")) or ""),
            "name": str(_ax_value(raw.get("name")) or ""),
            "value": None if value in (None, "") else str(value),
            "description": _ax_value(raw.get("description")) or None,
            "backendDOMNodeId": raw.get("backendDOMNodeId"),
            "loaderId": loader_id,
            "properties": properties,
            "children": [],
        }

    def is_interesting(raw: dict) -> bool:
        if raw.get("ignored"):
            return False
        role = _ax_value(raw.get("role"))
        if role in _UNINTERESTING_ROLES:
            return bool(_ax_value(raw.get("name")))
        return True

    def build(raw: dict, is_root: bool = False) -> list[dict]:
        children: list[dict] = []
        for child_id in raw.get("childIds", []):
            child = by_id.get(child_id)
            if child is not None:
                children.extend(build(child))
        if interesting_only and not is_root and not is_interesting(raw):
            return children
        node = convert(raw)
        node["children"] = children
        return [node]

    return build(nodes[0], is_root=True)[0]


class CdpElementHandle:
    """Live element addressed by its backend node id"""

    def __init__(self, page: "PlaywrightPage", backend_node_id: int, object_id: str):
        self._page = page
        self.backend_node_id = backend_node_id
        self.object_id = object_id

    async def _center(self) -> tuple[float, float]:
        cdp = await self._page.cdp()
        await cdp.send(
            "DOM.scrollIntoViewIfNeeded", {"backendNodeId": self.backend_node_id}
        )
        result = await cdp.send("DOM.getBoxModel", {"backendNodeId": self.backend_node_id})
        quad = result["model"]["content"]
        xs, ys = quad[0::2], quad[1::2]
        return sum(xs) / len(xs), sum(ys) / len(ys)

    async def click(self, double: bool = False) -> None:
        x, y = await self._center()
        await self._page.page.mouse.click(x, y, click_count=2 if double else 1)

    async def hover(self) -> None:
        x, y = await self._center()
        await self._page.page.mouse.move(x, y)

    async def fill(self, text: str) -> None:
        cdp = await self._page.cdp()
        await cdp.send("DOM.focus", {"backendNodeId": self.backend_node_id})
        await self._page.page.keyboard.press("ControlOrMeta+A")
        await self._page.page.keyboard.press("Delete")
        if text:
            await self._page.page.keyboard.insert_text(text)


class PlaywrightContext:
    def __init__(self, context: BrowserContext):
        self.context = context
        self.closed = False
        context.on("close", self._on_close)

    def _on_close(self, _context: BrowserContext) -> None:
        self.closed = True


class PlaywrightPage:
    def __init__(self, browser: "PlaywrightBrowser", page: Page):
        self._browser = browser
        self.page = page
        self._cdp: Optional[CDPSession] = None
        self._network_enabled = False

    @property
    def context(self) -> PlaywrightContext:
        return self._browser.wrap_context(self.page.context)

    @property
    def url(self) -> str:
        return self.page.url

    def is_closed(self) -> bool:
        return self.page.is_closed()

    async def close(self) -> None:
        await self.page.close(run_before_unload=False)

    async def cdp(self) -> CDPSession:
        if self._cdp is None:
            self._cdp = await self.page.context.new_cdp_session(self.page)
        return self._cdp

    def on_dialog(self, handler: DialogHandler) -> None:
        self.page.on("dialog", handler)

    def off_dialog(self, handler: DialogHandler) -> None:
        self.page.remove_listener("dialog", handler)

    async def set_focus_emulation(self, enabled: bool) -> None:
        cdp = await self.cdp()
        await cdp.send("Emulation.setFocusEmulationEnabled", {"enabled": enabled})

    def set_default_timeout(self, timeout_ms: float) -> None:
        self.page.set_default_timeout(timeout_ms)

    def set_default_navigation_timeout(self, timeout_ms: float) -> None:
        self.page.set_default_navigation_timeout(timeout_ms)

    async def emulate_network(self, conditions: Optional[NetworkConditions]) -> None:
        cdp = await self.cdp()
        if not self._network_enabled:
            await cdp.send("Network.enable")
            self._network_enabled = True
        if conditions is None:
            conditions = NetworkConditions(offline=False, download=-1, upload=-1, latency=0)
        await cdp.send(
            "Network.emulateNetworkConditions",
            {
                "offline": conditions.offline,
                "latency": conditions.latency,
                "downloadThroughput": conditions.download,
                "uploadThroughput": conditions.upload,
            },
        )

    async def emulate_cpu(self, rate: float) -> None:
        cdp = await self.cdp()
        await cdp.send("Emulation.setCPUThrottlingRate", {"rate": rate})

    async def set_geolocation(self, geolocation: Optional[Geolocation]) -> None:
        cdp = await self.cdp()
        if geolocation is None:
            await cdp.send("Emulation.clearGeolocationOverride")
            return
        await cdp.send(
            "Emulation.setGeolocationOverride",
            {
                "latitude": geolocation.latitude,
                "longitude": geolocation.longitude,
                "accuracy": 0,
            },
        )

    async def set_user_agent(self, user_agent: Optional[str]) -> None:
        if user_agent is None:
            user_agent = await self._browser.default_user_agent()
        cdp = await self.cdp()
        await cdp.send("Emulation.setUserAgentOverride", {"userAgent": user_agent})

    async def emulate_color_scheme(self, scheme: Optional[ColorScheme]) -> None:
        await self.page.emulate_media(color_scheme=scheme or "null")

    async def set_viewport(self, viewport: Optional[Viewport]) -> None:
        cdp = await self.cdp()
        if viewport is None:
            await cdp.send("Emulation.clearDeviceMetricsOverride")
            await cdp.send("Emulation.setTouchEmulationEnabled", {"enabled": False})
            return
        orientation = (
            {"angle": 90, "type": "landscapePrimary"}
            if viewport.is_landscape
            else {"angle": 0, "type": "portraitPrimary"}
        )
        await cdp.send(
            "Emulation.setDeviceMetricsOverride",
            {
                "width": viewport.width,
                "height": viewport.height,
                "deviceScaleFactor": viewport.device_scale_factor,
                "mobile": viewport.is_mobile,
                "screenOrientation": orientation,
            },
        )
        await cdp.send(
            "Emulation.setTouchEmulationEnabled", {"enabled": viewport.has_touch}
        )

    async def accessibility_tree(self, interesting_only: bool = True) -> Optional[dict]:
        cdp = await self.cdp()
        frame_tree = await cdp.send("Page.getFrameTree")
        loader_id = frame_tree["frameTree"]["frame"].get("loaderId")
        result = await cdp.send("Accessibility.getFullAXTree")
        return ax_nodes_to_tree(result.get("nodes", []), loader_id, interesting_only)

    async def target_info(self) -> dict:
        cdp = await self.cdp()
        result = await cdp.send("Target.getTargetInfo")
        return result["targetInfo"]

    async def inspected_backend_node_id(self) -> Optional[int]:
        """Backend node id of the element selected in this DevTools window"""
        return await self.page.evaluate(_INSPECTED_NODE_SCRIPT)

    async def resolve_node(self, backend_node_id: int) -> Optional[CdpElementHandle]:
        cdp = await self.cdp()
        result = await cdp.send("DOM.resolveNode", {"backendNodeId": backend_node_id})
        object_id = result.get("object", {}).get("objectId")
        if not object_id:
            return None
        return CdpElementHandle(self, backend_node_id, object_id)

    async def goto(self, url: str) -> None:
        await self.page.goto(url, wait_until="load")

    async def bring_to_front(self) -> None:
        await self.page.bring_to_front()

    async def press_key(self, key: str) -> None:
        await self.page.keyboard.press(key)


class PlaywrightBrowser:
    """BrowserDriver backed by a Playwright browser.

    Wrappers are cached per Playwright object so that a live page is always
    represented by the same handle.
    """

    def __init__(
        self,
        browser: Browser,
        default_context: BrowserContext,
        playwright: Optional[Playwright] = None,
    ):
        self.browser = browser
        self.playwright = playwright
        self._contexts: dict[BrowserContext, PlaywrightContext] = {}
        self._pages: dict[Page, PlaywrightPage] = {}
        self._default_context = self.wrap_context(default_context)
        self._user_agent: Optional[str] = None

    def wrap_context(self, context: BrowserContext) -> PlaywrightContext:
        wrapper = self._contexts.get(context)
        if wrapper is None:
            wrapper = PlaywrightContext(context)
            self._contexts[context] = wrapper
        return wrapper

    def wrap_page(self, page: Page) -> PlaywrightPage:
        wrapper = self._pages.get(page)
        if wrapper is None:
            wrapper = PlaywrightPage(self, page)
            self._pages[page] = wrapper
            page.on("close", lambda closed: self._pages.pop(closed, None))
        return wrapper

    @property
    def default_context(self) -> PlaywrightContext:
        return self._default_context

    def contexts(self) -> list[PlaywrightContext]:
        contexts = [self.wrap_context(ctx) for ctx in self.browser.contexts]
        if self._default_context not in contexts:
            contexts.insert(0, self._default_context)
        return contexts

    async def pages(self, include_all: bool = False) -> list[PlaywrightPage]:
        pages = []
        for wrapper in self.contexts():
            if wrapper.closed:
                continue
            pages.extend(wrapper.context.pages)
            if include_all:
                pages.extend(wrapper.context.background_pages)
        return [self.wrap_page(page) for page in pages if not page.is_closed()]

    async def new_context(self) -> PlaywrightContext:
        return self.wrap_context(await self.browser.new_context())

    async def new_page(
        self, context: Optional[PlaywrightContext] = None, background: bool = False
    ) -> PlaywrightPage:
        target = context or self._default_context
        previous = target.context.pages[-1] if target.context.pages else None
        page = await target.context.new_page()
        if background and previous is not None and not previous.is_closed():
            # Playwright always fronts new pages; hand the window back.
            await previous.bring_to_front()
        return self.wrap_page(page)

    async def service_workers(self) -> list[ServiceWorkerInfo]:
        workers = []
        for wrapper in self.contexts():
            if wrapper.closed:
                continue
            workers.extend(ServiceWorkerInfo(url=w.url) for w in wrapper.context.service_workers)
        return workers

    async def default_user_agent(self) -> str:
        if self._user_agent is None:
            cdp = await self.browser.new_browser_cdp_session()
            try:
                version = await cdp.send("Browser.getVersion")
            finally:
                await cdp.detach()
            self._user_agent = version["userAgent"]
        return self._user_agent

    async def close(self) -> None:
        if self.browser.is_connected():
            await self.browser.close()
        if self.playwright:
            await self.playwright.stop()


async def launch_browser(config: SessionConfig) -> PlaywrightBrowser:
    """Start Playwright and launch (or attach to) a Chromium browser"""
    playwright = await async_playwright().start()
    if config.cdp_endpoint:
        logger.info("Connecting to browser at %s", config.cdp_endpoint)
        browser = await playwright.chromium.connect_over_cdp(config.cdp_endpoint)
        context = browser.contexts[0] if browser.contexts else await browser.new_context()
    else:
        logger.info("Launching %s (headless=%s)", config.channel, config.headless)
        browser = await playwright.chromium.launch(
            headless=config.headless,
            channel=config.channel,
            args=["--disable-blink-features=AutomationControlled", "--disable-info-bars"],
        )
        context = await browser.new_context(no_viewport=True)
    if not context.pages:
        await context.new_page()
    return PlaywrightBrowser(browser, context, playwright)
