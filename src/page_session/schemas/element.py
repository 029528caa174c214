from typing import Any, Optional

from pydantic import BaseModel, Field


class SnapshotNode(BaseModel):
    """Accessibility node with a uid that is stable across snapshots"""

    id: str = Field(..., description="Stable uid used to target the element")
    role: str = Field("", description="ARIA role of the element (e.g., 'button')")
    name: str = Field("", description="Accessible name of the element")
    value: Optional[str] = Field(None, description="Current value, if any")
    description: Optional[str] = Field(None, description="Accessible description")
    backend_node_id: Optional[int] = Field(
        None, description="Engine-internal DOM node id, stable within one page load"
    )
    loader_id: Optional[str] = Field(None, description="Page-load the node belongs to")
    properties: dict[str, Any] = Field(default_factory=dict)
    children: list["SnapshotNode"] = Field(default_factory=list)

    @property
    def backend_key(self) -> str:
        return f"{self.loader_id}_{self.backend_node_id}"
