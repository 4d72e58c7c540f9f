from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

import feedparser
import httpx

from jobrelay.collectors.detail_fetcher import DEFAULT_HEADERS
from jobrelay.core.models import JobCandidate, ProcessedJob
from jobrelay.extract.html import resolve_url
from jobrelay.sources.base import IdentityExtractor, SourceFetchError, SourcePlugin
from jobrelay.sources.processors import clean_feed_body
from jobrelay.sources.scraper import UNKNOWN_COMPANY
from jobrelay.summarize.prompts import ARABIC, DEFAULT_PROMPT_CONFIG, PromptConfig
from jobrelay.utils.text import canonicalize_url

logger = logging.getLogger(__name__)

FEED_ACCEPT = "application/atom+xml, application/rss+xml, application/xml;q=0.9, */*;q=0.8"


@dataclass(slots=True, frozen=True)
class FeedProfile:
    name: str
    feed_url: str
    base_url: str
    id_extractor: IdentityExtractor
    display_name: str = ""
    hashtag: str = ""
    family: str = ARABIC
    prompt: PromptConfig = DEFAULT_PROMPT_CONFIG
    default_company: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    process_override: Callable[[JobCandidate], ProcessedJob] | None = None


def _entry_image(entry) -> str | None:
    for link in entry.get("links", []):
        if link.get("rel") == "enclosure" and link.get("href"):
            return link["href"]
    for enclosure in entry.get("enclosures", []):
        if enclosure.get("href"):
            return enclosure["href"]
    return None


def _entry_body(entry) -> str:
    content = entry.get("content") or []
    if content and content[0].get("value"):
        return content[0]["value"]
    return entry.get("summary", "") or ""


class FeedPlugin(SourcePlugin):
    """Syndication feed engine; one entry becomes one candidate."""

    def __init__(self, profile: FeedProfile, client: httpx.Client | None = None, timeout_seconds: float = 20) -> None:
        self.profile = profile
        self.name = profile.name
        self.display_name = profile.display_name or profile.name
        self.hashtag = profile.hashtag
        self.family = profile.family
        self.prompt = profile.prompt
        self.base_url = profile.base_url
        self.listing_url = profile.feed_url
        self.kind = "feed"
        self.client = client or httpx.Client(headers=DEFAULT_HEADERS, follow_redirects=True)
        self.timeout = timeout_seconds

    def fetch_jobs(self) -> list[JobCandidate]:
        profile = self.profile
        if not profile.feed_url:
            raise SourceFetchError(f"{self.name}: feed URL not configured")
        headers = {"Accept": FEED_ACCEPT, **profile.headers}
        try:
            response = self.client.get(profile.feed_url, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise SourceFetchError(f"{self.name}: feed request failed: {exc}") from exc

        parsed = feedparser.parse(response.text)
        if parsed.bozo and not parsed.entries:
            raise SourceFetchError(f"{self.name}: feed could not be parsed: {parsed.get('bozo_exception')}")
        if not parsed.entries:
            logger.warning("source_empty_listing", extra={"extra_fields": {"source": self.name}})
            return []

        candidates: list[JobCandidate] = []
        for entry in parsed.entries:
            candidate = self._to_candidate(entry)
            if candidate is None:
                logger.info("feed_entry_skipped", extra={"extra_fields": {"source": self.name, "id": entry.get("id")}})
                continue
            candidates.append(candidate)
        return candidates

    def _to_candidate(self, entry) -> JobCandidate | None:
        profile = self.profile
        title = (entry.get("title") or "").strip()
        raw_link = (entry.get("link") or "").strip()
        link = canonicalize_url(raw_link) if raw_link else ""
        permanent_id = (entry.get("id") or "").strip() or link
        link = link or permanent_id
        if not title or not permanent_id:
            return None
        image_url = _entry_image(entry)
        if image_url:
            image_url = resolve_url(image_url, profile.base_url)
        tags = entry.get("tags") or []
        return JobCandidate(
            identity=profile.id_extractor(permanent_id, title),
            title=title,
            company=(entry.get("author") or "").strip() or profile.default_company or UNKNOWN_COMPANY,
            link=link,
            source=self.name,
            image_url=image_url,
            posted_date=entry.get("published") or entry.get("updated"),
            category=tags[0].get("term") if tags else None,
            description=_entry_body(entry),
        )

    def process_job(self, candidate: JobCandidate) -> ProcessedJob:
        if self.profile.process_override:
            return self.profile.process_override(candidate)
        cleaned = clean_feed_body(candidate.description or "")
        return ProcessedJob(
            title=candidate.title,
            company=candidate.company,
            link=candidate.link,
            description=cleaned.description,
            source=self.name,
            image_url=candidate.image_url,
            location=cleaned.location or candidate.location,
            posted_date=cleaned.posted_date or candidate.posted_date,
            deadline=cleaned.deadline or candidate.deadline,
            category=candidate.category,
        )
