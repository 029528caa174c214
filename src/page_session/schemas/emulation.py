from typing import Literal, Optional

from pydantic import BaseModel, Field

ColorScheme = Literal["dark", "light"]


class Geolocation(BaseModel):
    latitude: float = Field(..., ge=-90, le=90, description="Latitude in degrees")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude in degrees")


class Viewport(BaseModel):
    width: int = Field(..., gt=0, description="Page width in CSS pixels")
    height: int = Field(..., gt=0, description="Page height in CSS pixels")
    device_scale_factor: float = Field(1, gt=0)
    is_mobile: bool = False
    has_touch: bool = False
    is_landscape: bool = False


class EmulationSettings(BaseModel):
    """Emulation currently applied to a page; None means driver default"""

    network_conditions: Optional[str] = None
    cpu_throttling_rate: Optional[float] = None
    geolocation: Optional[Geolocation] = None
    user_agent: Optional[str] = None
    color_scheme: Optional[ColorScheme] = None
    viewport: Optional[Viewport] = None


class EmulationUpdate(BaseModel):
    """Partial emulation change.

    Fields that are not set are left untouched. Fields explicitly set to
    None are cleared and fall back to the driver default.
    """

    network_conditions: Optional[str] = Field(
        None,
        description="'No emulation', 'Offline', 'Slow 3G', 'Fast 3G', 'Slow 4G' or 'Fast 4G'",
    )
    cpu_throttling_rate: Optional[float] = Field(
        None, ge=1, le=20, description="CPU slowdown factor, 1 disables throttling"
    )
    geolocation: Optional[Geolocation] = None
    user_agent: Optional[str] = None
    color_scheme: Optional[Literal["dark", "light", "auto"]] = Field(
        None, description="'auto' restores the system preference"
    )
    viewport: Optional[Viewport] = None
