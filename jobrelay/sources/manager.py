from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable

from jobrelay.core.models import JobCandidate
from jobrelay.sources.base import SourceFetchError, SourcePlugin

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SourceListing:
    plugin: SourcePlugin
    candidates: list[JobCandidate] = field(default_factory=list)
    error: str | None = None


class SourceManager:
    def __init__(self, plugins: list[SourcePlugin], max_workers: int = 2) -> None:
        self.plugins = plugins
        self.max_workers = max(1, max_workers)

    def get(self, name: str) -> SourcePlugin:
        for plugin in self.plugins:
            if plugin.name == name:
                return plugin
        raise KeyError(f"unknown source: {name}")

    def enabled(self, names: Iterable[str]) -> list[SourcePlugin]:
        wanted = set(names)
        return [plugin for plugin in self.plugins if plugin.name in wanted]

    def _fetch(self, plugin: SourcePlugin) -> SourceListing:
        try:
            candidates = plugin.fetch_jobs()
        except SourceFetchError as exc:
            logger.error("source_fetch_failed", extra={"extra_fields": {"source": plugin.name, "error": str(exc)}})
            return SourceListing(plugin=plugin, error=str(exc))
        logger.info("source_fetched", extra={"extra_fields": {"source": plugin.name, "count": len(candidates)}})
        return SourceListing(plugin=plugin, candidates=candidates)

    def fetch_all(self, plugins: list[SourcePlugin]) -> list[SourceListing]:
        """Fetch listings with at most ``max_workers`` sources in flight; results keep registry order."""
        if not plugins:
            return []
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(plugins))) as pool:
            return list(pool.map(self._fetch, plugins))
