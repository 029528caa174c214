import logging
from typing import Iterable, Optional

from page_session.driver import BrowserDriver, ContextHandle

logger = logging.getLogger(__name__)


class IsolatedContextRegistry:
    """Names for isolated browsing contexts.

    Names are either chosen by the caller or generated as
    "isolated-context-N" for contexts that were created elsewhere. Contexts
    are never closed here; they live as long as the browser does.
    """

    def __init__(self) -> None:
        self._contexts: dict[str, ContextHandle] = {}
        self._next_generated_id = 1

    async def get_or_create(self, name: str, driver: BrowserDriver) -> ContextHandle:
        context = self._contexts.get(name)
        if context is None:
            context = await driver.new_context()
            self._contexts[name] = context
            logger.info("Created isolated context %r", name)
        return context

    def discover(
        self, contexts: Iterable[ContextHandle], default: ContextHandle
    ) -> list[str]:
        """Name every non-default, open context that has no name yet"""
        known = set(self._contexts.values())
        discovered = []
        for context in contexts:
            if context is default or context.closed or context in known:
                continue
            name = f"isolated-context-{self._next_generated_id}"
            self._next_generated_id += 1
            self._contexts[name] = context
            known.add(context)
            discovered.append(name)
            logger.info("Discovered isolated context %r", name)
        return discovered

    def name_for(self, context: ContextHandle) -> Optional[str]:
        for name, known in self._contexts.items():
            if known is context:
                return name
        return None

    def names(self) -> list[str]:
        return list(self._contexts)

    def clear(self) -> None:
        self._contexts.clear()
