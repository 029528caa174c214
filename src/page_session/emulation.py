import logging
from typing import TYPE_CHECKING, Optional

from page_session.config import SessionConfig
from page_session.driver import NetworkConditions
from page_session.schemas.emulation import EmulationUpdate

if TYPE_CHECKING:
    from page_session.page import PageRecord

logger = logging.getLogger(__name__)

NO_EMULATION = "No emulation"
OFFLINE = "Offline"

OFFLINE_CONDITIONS = NetworkConditions(offline=True, download=0, upload=0, latency=0)

# Throughput in bytes/s, latency in ms.
NETWORK_PRESETS: dict[str, NetworkConditions] = {
    "Slow 3G": NetworkConditions(
        offline=False,
        download=500 * 1000 / 8 * 0.8,
        upload=500 * 1000 / 8 * 0.8,
        latency=400 * 5,
    ),
    "Fast 3G": NetworkConditions(
        offline=False,
        download=1.6 * 1000 * 1000 / 8 * 0.9,
        upload=750 * 1000 / 8 * 0.9,
        latency=150 * 3.75,
    ),
    "Slow 4G": NetworkConditions(
        offline=False,
        download=1.6 * 1000 * 1000 / 8 * 0.9,
        upload=750 * 1000 / 8 * 0.9,
        latency=150 * 3.75,
    ),
    "Fast 4G": NetworkConditions(
        offline=False,
        download=9 * 1000 * 1000 / 8 * 0.9,
        upload=1.5 * 1000 * 1000 / 8 * 0.9,
        latency=60 * 2.75,
    ),
}

_NETWORK_MULTIPLIERS = {
    "Fast 4G": 1,
    "Slow 4G": 2.5,
    "Fast 3G": 5,
    "Slow 3G": 10,
}


def network_multiplier(condition: Optional[str]) -> float:
    """Navigation timeout multiplier for a network condition label"""
    return _NETWORK_MULTIPLIERS.get(condition, 1)


async def apply_emulation(record: "PageRecord", update: EmulationUpdate) -> bool:
    """Apply a partial emulation update to the live page and its record.

    Returns True when the timeouts depend on what changed (network or CPU).
    """
    page = record.handle
    requested = update.model_fields_set
    settings = record.emulation.model_copy()
    timeouts_changed = False

    if "network_conditions" in requested:
        timeouts_changed = True
        label = update.network_conditions
        if label is None or label == NO_EMULATION:
            await page.emulate_network(None)
            settings.network_conditions = None
        elif label == OFFLINE:
            await page.emulate_network(OFFLINE_CONDITIONS)
            settings.network_conditions = OFFLINE
        elif label in NETWORK_PRESETS:
            await page.emulate_network(NETWORK_PRESETS[label])
            settings.network_conditions = label
        else:
            logger.warning("Ignoring unknown network condition %r", label)

    if "cpu_throttling_rate" in requested:
        timeouts_changed = True
        if update.cpu_throttling_rate is None:
            await page.emulate_cpu(1)
            settings.cpu_throttling_rate = None
        else:
            await page.emulate_cpu(update.cpu_throttling_rate)
            settings.cpu_throttling_rate = update.cpu_throttling_rate

    if "geolocation" in requested:
        await page.set_geolocation(update.geolocation)
        settings.geolocation = update.geolocation

    if "user_agent" in requested:
        await page.set_user_agent(update.user_agent)
        settings.user_agent = update.user_agent

    if "color_scheme" in requested:
        scheme = update.color_scheme
        if scheme is None or scheme == "auto":
            await page.emulate_color_scheme(None)
            settings.color_scheme = None
        else:
            await page.emulate_color_scheme(scheme)
            settings.color_scheme = scheme

    if "viewport" in requested:
        await page.set_viewport(update.viewport)
        settings.viewport = update.viewport

    record.emulation = settings
    return timeouts_changed


def apply_timeouts(record: "PageRecord", config: SessionConfig) -> None:
    page = record.handle
    # Waiters get more time when the CPU is throttled, navigations when
    # the network is.
    page.set_default_timeout(config.default_timeout_ms * record.cpu_throttling_rate)
    page.set_default_navigation_timeout(
        config.navigation_timeout_ms * network_multiplier(record.network_conditions)
    )
