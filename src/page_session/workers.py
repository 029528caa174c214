from dataclasses import dataclass
from typing import Iterable, Optional

from page_session.driver import ServiceWorkerInfo

EXTENSION_SCHEME = "chrome-extension://"


@dataclass(frozen=True)
class ExtensionServiceWorker:
    id: str
    url: str


class ServiceWorkerRegistry:
    """Stable "sw-N" ids for extension service workers, keyed by script URL"""

    def __init__(self) -> None:
        self._ids: dict[str, str] = {}
        self._next_id = 1
        self._workers: list[ExtensionServiceWorker] = []

    def refresh(self, workers: Iterable[ServiceWorkerInfo]) -> list[ExtensionServiceWorker]:
        current = []
        for worker in workers:
            if not worker.url.startswith(EXTENSION_SCHEME):
                continue
            if worker.url not in self._ids:
                self._ids[worker.url] = f"sw-{self._next_id}"
                self._next_id += 1
            current.append(ExtensionServiceWorker(id=self._ids[worker.url], url=worker.url))
        self._workers = current
        return current

    def list(self) -> list[ExtensionServiceWorker]:
        return list(self._workers)

    def id_for(self, url: str) -> Optional[str]:
        return self._ids.get(url)
