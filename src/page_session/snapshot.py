"""Accessibility snapshots with uids that stay stable across captures."""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from page_session.schemas.element import SnapshotNode

if TYPE_CHECKING:
    from page_session.page import PageRecord

logger = logging.getLogger(__name__)


@dataclass
class Snapshot:
    snapshot_id: str
    root: SnapshotNode
    id_to_node: dict[str, SnapshotNode] = field(default_factory=dict)
    # An element can be selected in DevTools without being part of the
    # snapshot, so the flag is independent from the uid.
    has_selected_element: bool = False
    selected_element_uid: Optional[str] = None
    verbose: bool = False


class SnapshotIndexer:
    """Assigns uids to freshly captured accessibility trees.

    Nodes are keyed by "{loader_id}_{backend_node_id}". A key that was seen
    in an earlier capture of the same page keeps its uid; new keys get
    "{snapshot_id}_{ordinal}". Keys missing from a capture are forgotten.
    """

    def __init__(self) -> None:
        self._next_snapshot_id = 1

    def index(
        self,
        record: "PageRecord",
        root: dict,
        verbose: bool = False,
        inspected_backend_node_id: Optional[int] = None,
    ) -> Snapshot:
        snapshot_id = self._next_snapshot_id
        self._next_snapshot_id += 1

        sticky = record.backend_key_to_uid
        id_to_node: dict[str, SnapshotNode] = {}
        seen: set[str] = set()
        ordinal = 0

        def assign(raw: dict) -> SnapshotNode:
            nonlocal ordinal
            node = SnapshotNode(
                id="",
                role=raw.get("role") or "",
                name=raw.get("name") or "",
                value=raw.get("value"),
                description=raw.get("description"),
                backend_node_id=raw.get("backendDOMNodeId"),
                loader_id=raw.get("loaderId"),
                properties=raw.get("properties") or {},
            )
            # Nodes without a DOM node cannot be recognized in a later
            # capture, so they get a fresh uid every time.
            key = node.backend_key if node.backend_node_id is not None else None
            uid = sticky.get(key) if key else None
            if uid is None:
                uid = f"{snapshot_id}_{ordinal}"
                ordinal += 1
                if key:
                    sticky[key] = uid
            if key:
                seen.add(key)
            node.id = uid

            # Option nodes do not expose their value; use the visible text.
            if node.role == "option" and node.value is None and node.name:
                node.value = node.name
            node.children = [assign(child) for child in raw.get("children") or []]
            id_to_node[uid] = node
            return node

        snapshot = Snapshot(
            snapshot_id=str(snapshot_id),
            root=assign(root),
            id_to_node=id_to_node,
            verbose=verbose,
        )

        for key in list(sticky):
            if key not in seen:
                del sticky[key]

        if inspected_backend_node_id:
            snapshot.has_selected_element = True
            snapshot.selected_element_uid = find_uid_by_backend_node_id(
                snapshot, inspected_backend_node_id
            )

        logger.debug(
            "Snapshot %s of page %s: %d nodes", snapshot.snapshot_id, record.id, len(id_to_node)
        )
        return snapshot


def find_uid_by_backend_node_id(
    snapshot: Snapshot, backend_node_id: int
) -> Optional[str]:
    # Trees are small; a scan is cheaper than keeping a reverse index in sync.
    stack = [snapshot.root]
    while stack:
        node = stack.pop()
        if node.backend_node_id == backend_node_id:
            return node.id
        stack.extend(node.children)
    return None


def format_snapshot(snapshot: Snapshot) -> str:
    """Render a snapshot as indented text, one node per line"""
    lines: list[str] = []

    def visit(node: SnapshotNode, depth: int) -> None:
        parts = [f"uid={node.id}", node.role or "node"]
        if node.name:
            parts.append(f'"{node.name}"')
        if node.value is not None and node.value != node.name:
            parts.append(f'value="{node.value}"')
        if snapshot.verbose and node.description:
            parts.append(f'description="{node.description}"')
        for prop, value in node.properties.items():
            if value is True:
                parts.append(prop)
        if node.id == snapshot.selected_element_uid:
            parts.append("[selected in DevTools]")
        lines.append("  " * depth + " ".join(parts))
        for child in node.children:
            visit(child, depth + 1)

    visit(snapshot.root, 0)
    return "\n".join(lines)
