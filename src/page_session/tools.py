"""Command handlers behind the MCP tools.

Each handler takes the session manager explicitly and returns the text
sent back to the agent. Handlers assume the caller holds the command gate.
"""

import json
from typing import Any, Optional

from pydantic import ValidationError

from page_session.errors import InvalidArgumentError
from page_session.manager import SessionManager
from page_session.page import PageRecord
from page_session.schemas.emulation import EmulationUpdate, Geolocation, Viewport
from page_session.snapshot import format_snapshot


def _page_line(manager: SessionManager, record: PageRecord) -> str:
    line = f"{record.id}: {record.handle.url}"
    if record.isolated_context_name:
        line += f" isolatedContext={record.isolated_context_name}"
    if manager.is_page_selected(record):
        line += " [selected]"
    return line


async def list_pages(manager: SessionManager) -> str:
    """List open pages, marking the selected one"""
    pages = await manager.refresh_registry()
    lines = ["## Pages"] + [_page_line(manager, record) for record in pages]
    workers = manager.get_service_workers()
    if workers:
        lines.append("## Extension service workers")
        lines.extend(f"{worker.id}: {worker.url}" for worker in workers)
    return "\n".join(lines)


async def new_page(
    manager: SessionManager,
    url: str,
    background: bool = False,
    isolated_context: Optional[str] = None,
) -> str:
    record = await manager.create_page(background=background, isolated_context=isolated_context)
    await record.handle.goto(url)
    return f"Opened page {record.id} at {url}\n\n" + await list_pages(manager)


async def close_page(manager: SessionManager, page_id: int) -> str:
    await manager.close_page(page_id)
    return f"Closed page {page_id}\n\n" + await list_pages(manager)


async def select_page(
    manager: SessionManager, page_id: int, bring_to_front: bool = False
) -> str:
    record = manager.get_page_by_id(page_id)
    manager.select_page(record)
    if bring_to_front:
        await record.handle.bring_to_front()
    return await list_pages(manager)


async def navigate_page(
    manager: SessionManager, url: str, page_id: Optional[int] = None
) -> str:
    record = manager.resolve_page(page_id)
    await record.handle.goto(url)
    return f"Page {record.id} navigated to {url}"


async def take_snapshot(
    manager: SessionManager,
    verbose: bool = False,
    page_id: Optional[int] = None,
    inspected_backend_node_id: Optional[int] = None,
) -> str:
    record = manager.resolve_page(page_id)
    snapshot = await manager.create_snapshot(
        record, verbose=verbose, inspected_backend_node_id=inspected_backend_node_id
    )
    if snapshot is None:
        snapshot = manager.get_snapshot(record)
    if snapshot is None:
        return f"Page {record.id} has no accessibility tree to snapshot."
    text = f"## Snapshot of page {record.id}\n{format_snapshot(snapshot)}"
    if snapshot.has_selected_element and snapshot.selected_element_uid is None:
        text += "\nAn element is selected in DevTools but it is not part of this snapshot."
    return text


async def _element(manager: SessionManager, uid: str, page_id: Optional[int]):
    if page_id is None:
        return await manager.get_element_by_uid(uid)
    record = manager.get_page_by_id(page_id)
    manager.assert_focused(record)
    return await manager.get_element_by_uid(uid, record)


async def click(
    manager: SessionManager,
    uid: str,
    double_click: bool = False,
    page_id: Optional[int] = None,
) -> str:
    element = await _element(manager, uid, page_id)
    await element.click(double=double_click)
    action = "Double clicked" if double_click else "Clicked"
    return f"{action} on the element with uid {uid}"


async def hover(manager: SessionManager, uid: str, page_id: Optional[int] = None) -> str:
    element = await _element(manager, uid, page_id)
    await element.hover()
    return f"Hovered over the element with uid {uid}"


async def fill(
    manager: SessionManager, uid: str, value: str, page_id: Optional[int] = None
) -> str:
    element = await _element(manager, uid, page_id)
    await element.fill(value)
    return f"Filled the element with uid {uid}"


async def press_key(manager: SessionManager, key: str, page_id: Optional[int] = None) -> str:
    record = manager.resolve_page(page_id)
    manager.assert_focused(record)
    await record.handle.press_key(key)
    return f"Pressed key: {key}"


def build_emulation_update(
    network_conditions: Optional[str] = None,
    cpu_throttling_rate: Optional[float] = None,
    clear_cpu_throttling: bool = False,
    geolocation: Optional[Geolocation] = None,
    clear_geolocation: bool = False,
    user_agent: Optional[str] = None,
    color_scheme: Optional[str] = None,
    viewport: Optional[Viewport] = None,
    clear_viewport: bool = False,
) -> EmulationUpdate:
    """Turn tool arguments into a partial update.

    Arguments left at None are untouched. A clear flag resets its setting
    unless a value is given too. An empty user agent restores the default.
    """
    changes: dict[str, Any] = {}
    if network_conditions is not None:
        changes["network_conditions"] = network_conditions
    if cpu_throttling_rate is not None or clear_cpu_throttling:
        changes["cpu_throttling_rate"] = cpu_throttling_rate
    if geolocation is not None or clear_geolocation:
        changes["geolocation"] = geolocation
    if user_agent is not None:
        changes["user_agent"] = user_agent or None
    if color_scheme is not None:
        changes["color_scheme"] = color_scheme
    if viewport is not None or clear_viewport:
        changes["viewport"] = viewport
    try:
        return EmulationUpdate(**changes)
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        raise InvalidArgumentError(f"Invalid emulation settings: {details}") from exc


async def emulate(
    manager: SessionManager, page_id: Optional[int] = None, **arguments: Any
) -> str:
    """Apply emulation settings, see build_emulation_update for the arguments"""
    update = build_emulation_update(**arguments)
    record = manager.resolve_page(page_id)
    settings = await manager.emulate(update, record)
    active = settings.model_dump(exclude_none=True)
    if not active:
        return f"No emulation active on page {record.id}"
    return f"Emulation on page {record.id}:\n" + json.dumps(active, indent=2)


async def handle_dialog(
    manager: SessionManager,
    action: str,
    prompt_text: Optional[str] = None,
    page_id: Optional[int] = None,
) -> str:
    record = manager.resolve_page(page_id)
    dialog: Any = manager.get_dialog(record)
    if dialog is None:
        return f"No open dialog on page {record.id}"
    try:
        if action == "accept" and prompt_text:
            await dialog.accept(prompt_text)
        elif action == "accept":
            await dialog.accept()
        else:
            await dialog.dismiss()
    finally:
        manager.clear_dialog(record)
    verb = "Accepted" if action == "accept" else "Dismissed"
    return f"{verb} the dialog on page {record.id}"


async def list_service_workers(manager: SessionManager) -> str:
    workers = await manager.refresh_service_workers()
    if not workers:
        return "No extension service workers"
    return json.dumps([{"id": w.id, "url": w.url} for w in workers], indent=2)
