import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from page_session.driver import ElementHandle, PageDriver
from page_session.errors import NoSnapshotError, StaleElementError, UnknownUidError
from page_session.schemas.element import SnapshotNode
from page_session.schemas.emulation import (
    ColorScheme,
    EmulationSettings,
    Geolocation,
    Viewport,
)

if TYPE_CHECKING:
    from page_session.snapshot import Snapshot

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class PageRecord:
    """Per-page state owned by the session manager.

    Subscribes to the page's dialog events on construction; `dispose` is the
    single place that unsubscribes and may be called any number of times.
    """

    handle: PageDriver
    id: int
    isolated_context_name: Optional[str] = None
    devtools_page: Optional[PageDriver] = None
    snapshot: Optional["Snapshot"] = None
    # "{loader_id}_{backend_node_id}" -> uid, kept across snapshots
    backend_key_to_uid: dict[str, str] = field(default_factory=dict)
    emulation: EmulationSettings = field(default_factory=EmulationSettings)
    disposed: bool = field(default=False, init=False)
    _dialog: Optional[Any] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.handle.on_dialog(self._on_dialog)

    def _on_dialog(self, dialog: Any) -> None:
        logger.debug("Page %s opened a dialog", self.id)
        self._dialog = dialog

    @property
    def dialog(self) -> Optional[Any]:
        return self._dialog

    def clear_dialog(self) -> None:
        self._dialog = None

    @property
    def network_conditions(self) -> Optional[str]:
        return self.emulation.network_conditions

    @property
    def cpu_throttling_rate(self) -> float:
        return self.emulation.cpu_throttling_rate or 1

    @property
    def geolocation(self) -> Optional[Geolocation]:
        return self.emulation.geolocation

    @property
    def viewport(self) -> Optional[Viewport]:
        return self.emulation.viewport

    @property
    def user_agent(self) -> Optional[str]:
        return self.emulation.user_agent

    @property
    def color_scheme(self) -> Optional[ColorScheme]:
        return self.emulation.color_scheme

    def dispose(self) -> None:
        if self.disposed:
            return
        self.disposed = True
        self._dialog = None
        self.handle.off_dialog(self._on_dialog)

    def get_node_by_uid(self, uid: str) -> Optional[SnapshotNode]:
        if self.snapshot is None:
            return None
        return self.snapshot.id_to_node.get(uid)

    async def get_element_by_uid(self, uid: str) -> ElementHandle:
        if self.snapshot is None:
            raise NoSnapshotError(
                f"No snapshot found for page {self.id}. Use take_snapshot to capture one."
            )
        node = self.snapshot.id_to_node.get(uid)
        if node is None:
            raise UnknownUidError(f'Element uid "{uid}" not found on page {self.id}.')
        return await resolve_element(self.handle, node, uid)


async def resolve_element(page: PageDriver, node: SnapshotNode, uid: str) -> ElementHandle:
    """Resolve a snapshot node to a live element handle"""
    message = f"Element with uid {uid} no longer exists on the page."
    if node.backend_node_id is None:
        raise StaleElementError(message)
    try:
        handle = await page.resolve_node(node.backend_node_id)
    except Exception as exc:
        raise StaleElementError(message) from exc
    if handle is None:
        raise StaleElementError(message)
    return handle
