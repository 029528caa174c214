import logging
import os
import sys
from typing import Literal

from pydantic import BaseModel, Field

ENV_PREFIX = "PAGE_SESSION_"

DEFAULT_TIMEOUT_MS = 5_000
NAVIGATION_TIMEOUT_MS = 10_000


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(ENV_PREFIX + name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class SessionConfig(BaseModel):
    """Settings for the browser and the session manager"""

    headless: bool = Field(True, description="Launch the browser without a window")
    channel: str = Field("chromium", description="Browser channel to launch")
    cdp_endpoint: str = Field(
        "", description="Connect to an existing browser instead of launching one"
    )
    include_all_pages: bool = Field(
        False, description="Expose every page-like target, not only tabs"
    )
    devtools_debugging: bool = Field(
        False, description="Expose DevTools windows as regular pages"
    )
    default_timeout_ms: int = Field(
        DEFAULT_TIMEOUT_MS, description="Base timeout for waiters, scaled by CPU throttling"
    )
    navigation_timeout_ms: int = Field(
        NAVIGATION_TIMEOUT_MS, description="Base navigation timeout, scaled by network throttling"
    )
    transport: Literal["stdio", "http", "streamable-http", "sse"] = "stdio"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "SessionConfig":
        """Build a config from PAGE_SESSION_* environment variables"""
        defaults = cls()
        return cls(
            headless=_env_bool("HEADLESS", defaults.headless),
            channel=os.environ.get(ENV_PREFIX + "CHANNEL", defaults.channel),
            cdp_endpoint=os.environ.get(
                ENV_PREFIX + "CDP_ENDPOINT", defaults.cdp_endpoint
            ),
            include_all_pages=_env_bool("INCLUDE_ALL_PAGES", defaults.include_all_pages),
            devtools_debugging=_env_bool(
                "DEVTOOLS_DEBUGGING", defaults.devtools_debugging
            ),
            default_timeout_ms=int(
                os.environ.get(
                    ENV_PREFIX + "DEFAULT_TIMEOUT_MS", defaults.default_timeout_ms
                )
            ),
            navigation_timeout_ms=int(
                os.environ.get(
                    ENV_PREFIX + "NAVIGATION_TIMEOUT_MS",
                    defaults.navigation_timeout_ms,
                )
            ),
            transport=os.environ.get(ENV_PREFIX + "TRANSPORT", defaults.transport),
            log_level=os.environ.get(ENV_PREFIX + "LOG_LEVEL", defaults.log_level),
        )


def configure_logging(level: str = "INFO") -> None:
    # stdout belongs to the stdio transport
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
