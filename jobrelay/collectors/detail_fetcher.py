from __future__ import annotations

import json
import logging
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from jobrelay.utils.throttle import DomainThrottle

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {"User-Agent": "Mozilla/5.0 (compatible; jobrelay/1.0)", "Accept": "text/html"}


class DetailPageFetcher:
    """Fetches secondary detail pages. Never raises: any failure yields ``None``."""

    def __init__(
        self,
        client: httpx.Client | None = None,
        timeout_seconds: float = 10,
        per_domain_delay_seconds: float = 0,
        max_retries: int = 0,
    ) -> None:
        self.client = client or httpx.Client(headers=DEFAULT_HEADERS, follow_redirects=True)
        self.timeout = timeout_seconds
        self.throttle = DomainThrottle(delay_seconds=per_domain_delay_seconds)
        self.max_retries = max_retries

    def fetch(self, url: str, headers: dict[str, str] | None = None) -> str | None:
        domain = urlparse(url).netloc
        for attempt in range(self.max_retries + 1):
            self.throttle.wait(domain)
            try:
                response = self.client.get(url, headers=headers, timeout=self.timeout)
                response.raise_for_status()
                return response.text
            except httpx.HTTPError as exc:
                if attempt == self.max_retries:
                    logger.warning(
                        "detail_fetch_failed",
                        extra={"extra_fields": {"url": url, "error": str(exc)}},
                    )
        return None

    @staticmethod
    def parse_json_ld(soup: BeautifulSoup) -> dict:
        for script in soup.select("script[type='application/ld+json']"):
            try:
                payload = json.loads(script.get_text())
            except json.JSONDecodeError:
                continue
            if isinstance(payload, dict):
                payload = payload.get("@graph", [payload])
            if not isinstance(payload, list):
                continue
            for node in payload:
                if isinstance(node, dict) and node.get("@type") == "JobPosting":
                    return node
        return {}
