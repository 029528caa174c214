"""
Page Session MCP Server
Every tool call runs behind one command gate, so the browser sees a strictly
sequential command stream even when several clients talk to the server.
"""

import logging
from typing import Annotated, Awaitable, Callable, Literal, Optional

from fastmcp import FastMCP

from page_session import tools
from page_session.config import SessionConfig, configure_logging
from page_session.driver import PlaywrightBrowser, launch_browser
from page_session.errors import SessionError
from page_session.manager import SessionManager
from page_session.schemas.emulation import Geolocation, Viewport
from page_session.serializer import CommandSerializer

logger = logging.getLogger(__name__)

mcp = FastMCP("Page Session MCP Server")

# Global state for browser management
config = SessionConfig.from_env()
serializer = CommandSerializer()
browser: Optional[PlaywrightBrowser] = None
manager: Optional[SessionManager] = None

PageId = Annotated[Optional[int], "Targets a specific page by ID"]


async def ensure_manager() -> SessionManager:
    """Launch the browser and build the session manager on first use"""
    global browser, manager

    if manager is None:
        browser = await launch_browser(config)
        manager = await SessionManager.create(browser, config)
    return manager


async def close_browser() -> bool:
    global browser, manager

    if manager is not None:
        await manager.wait_for_background_tasks()
        manager.dispose()
        manager = None
    if browser is not None:
        await browser.close()
        browser = None
        return True
    return False


async def _dispatch(
    name: str, handler: Callable[..., Awaitable[str]], *args, **kwargs
) -> str:
    async with serializer.acquire(name):
        try:
            session = await ensure_manager()
            await session.refresh_registry()
            return await handler(session, *args, **kwargs)
        except SessionError as e:
            logger.info("%s failed: %s", name, e)
            return f"Error: {e}"
        except Exception as e:
            logger.exception("%s failed", name)
            message = f"Error: {e}"
            if e.__cause__ is not None:
                message += f"\nCause: {e.__cause__}"
            return message


# Page Management Tools


@mcp.tool(tags={"pages"})
async def list_pages() -> str:
    """List the pages open in the browser"""
    return await _dispatch("list_pages", tools.list_pages)


@mcp.tool(tags={"pages"})
async def new_page(
    url: Annotated[str, "URL to load in the new page"],
    background: Annotated[
        bool, "Open the page without taking focus from the current one"
    ] = False,
    isolated_context: Annotated[
        Optional[str],
        "Name of an isolated browser context (separate cookies and storage). "
        "Pages opened with the same name share the context.",
    ] = None,
) -> str:
    """Open a new page and select it"""
    return await _dispatch(
        "new_page",
        tools.new_page,
        url,
        background=background,
        isolated_context=isolated_context,
    )


@mcp.tool(tags={"pages"})
async def close_page(page_id: Annotated[int, "ID of the page to close"]) -> str:
    """Close a page. The last open page cannot be closed."""
    return await _dispatch("close_page", tools.close_page, page_id)


@mcp.tool(tags={"pages"})
async def select_page(
    page_id: Annotated[int, "ID of the page to select"],
    bring_to_front: Annotated[bool, "Also raise the page's window"] = False,
) -> str:
    """Select a page as the context for future commands"""
    return await _dispatch(
        "select_page", tools.select_page, page_id, bring_to_front=bring_to_front
    )


@mcp.tool(tags={"navigation"})
async def navigate_page(
    url: Annotated[str, "The URL to navigate to"], page_id: PageId = None
) -> str:
    """Navigate a page to a URL"""
    return await _dispatch("navigate_page", tools.navigate_page, url, page_id=page_id)


# Snapshot Tools


@mcp.tool(tags={"snapshot"})
async def take_snapshot(
    verbose: Annotated[bool, "Include every node of the accessibility tree"] = False,
    page_id: PageId = None,
) -> str:
    """Take a text snapshot of a page based on the accessibility tree.

    Every element gets a uid that stays the same across snapshots as long as
    the element stays on the page. Always use the latest snapshot.
    """
    return await _dispatch(
        "take_snapshot", tools.take_snapshot, verbose=verbose, page_id=page_id
    )


# Interaction Tools


@mcp.tool(tags={"interaction"})
async def click(
    uid: Annotated[str, "uid of the element from the latest snapshot"],
    double_click: Annotated[bool, "Whether to perform a double click"] = False,
    page_id: PageId = None,
) -> str:
    """Click on an element"""
    return await _dispatch(
        "click", tools.click, uid, double_click=double_click, page_id=page_id
    )


@mcp.tool(tags={"interaction"})
async def hover(
    uid: Annotated[str, "uid of the element from the latest snapshot"],
    page_id: PageId = None,
) -> str:
    """Hover over an element"""
    return await _dispatch("hover", tools.hover, uid, page_id=page_id)


@mcp.tool(tags={"interaction"})
async def fill(
    uid: Annotated[str, "uid of the element from the latest snapshot"],
    value: Annotated[str, "Value to type into the element"],
    page_id: PageId = None,
) -> str:
    """Type a value into an input, text area or editable element"""
    return await _dispatch("fill", tools.fill, uid, value, page_id=page_id)


@mcp.tool(tags={"interaction"})
async def press_key(
    key: Annotated[str, "Name of the key to press (e.g., ArrowLeft, a, Enter)"],
    page_id: PageId = None,
) -> str:
    """Press a key on the keyboard"""
    return await _dispatch("press_key", tools.press_key, key, page_id=page_id)


# Emulation and Dialog Tools


@mcp.tool(tags={"emulation"})
async def emulate(
    network_conditions: Annotated[
        Optional[str],
        "'No emulation', 'Offline', 'Slow 3G', 'Fast 3G', 'Slow 4G' or 'Fast 4G'",
    ] = None,
    cpu_throttling_rate: Annotated[
        Optional[float], "CPU slowdown factor (1-20), 1 disables throttling"
    ] = None,
    clear_cpu_throttling: Annotated[bool, "Remove the CPU throttling override"] = False,
    geolocation: Annotated[Optional[Geolocation], "Location to report"] = None,
    clear_geolocation: Annotated[bool, "Remove the geolocation override"] = False,
    user_agent: Annotated[Optional[str], "User agent string, '' restores the default"] = None,
    color_scheme: Annotated[
        Optional[Literal["dark", "light", "auto"]], "Preferred color scheme"
    ] = None,
    viewport: Annotated[Optional[Viewport], "Viewport to emulate"] = None,
    clear_viewport: Annotated[bool, "Remove the viewport override"] = False,
    page_id: PageId = None,
) -> str:
    """Emulate network, CPU, location, user agent, color scheme or viewport"""
    return await _dispatch(
        "emulate",
        tools.emulate,
        page_id=page_id,
        network_conditions=network_conditions,
        cpu_throttling_rate=cpu_throttling_rate,
        clear_cpu_throttling=clear_cpu_throttling,
        geolocation=geolocation,
        clear_geolocation=clear_geolocation,
        user_agent=user_agent,
        color_scheme=color_scheme,
        viewport=viewport,
        clear_viewport=clear_viewport,
    )


@mcp.tool(tags={"dialog"})
async def handle_dialog(
    action: Annotated[Literal["accept", "dismiss"], "Whether to accept or dismiss"],
    prompt_text: Annotated[Optional[str], "Text to enter in a prompt dialog"] = None,
    page_id: PageId = None,
) -> str:
    """Accept or dismiss the dialog open on a page"""
    return await _dispatch(
        "handle_dialog",
        tools.handle_dialog,
        action,
        prompt_text=prompt_text,
        page_id=page_id,
    )


@mcp.tool(tags={"extensions"})
async def list_service_workers() -> str:
    """List extension service workers with their stable IDs"""
    return await _dispatch("list_service_workers", tools.list_service_workers)


def main() -> None:
    configure_logging(config.log_level)
    mcp.run(transport=config.transport)


if __name__ == "__main__":
    main()
