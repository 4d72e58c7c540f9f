from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Callable

import httpx

from jobrelay.collectors.detail_fetcher import DEFAULT_HEADERS, DetailPageFetcher
from jobrelay.core.models import JobCandidate, ProcessedJob
from jobrelay.extract.html import (
    ExtractionError,
    extract_attr,
    extract_text,
    inner_html,
    parse_html,
    remove_all,
    require_attr,
    require_text,
    resolve_url,
    select_one,
)
from jobrelay.sources.base import IdentityExtractor, SourceFetchError, SourcePlugin
from jobrelay.sources.processors import extract_contacts
from jobrelay.summarize.prompts import ARABIC, DEFAULT_PROMPT_CONFIG, PromptConfig
from jobrelay.utils.text import canonicalize_url, clean_whitespace, html_to_text

logger = logging.getLogger(__name__)

UNKNOWN_COMPANY = "Unknown Company"


def json_field(name: str) -> Callable[[str], str]:
    """Response extractor for listings that wrap an HTML fragment in a JSON envelope."""

    def extract(body: str) -> str:
        payload = json.loads(body)
        if not isinstance(payload, dict):
            raise ValueError(f"expected a JSON object with field {name!r}")
        value = payload.get(name) or ""
        if not isinstance(value, str):
            raise ValueError(f"field {name!r} is not a string")
        return value

    return extract


def default_description_cleaner(markup: str) -> str:
    return clean_whitespace(html_to_text(markup))


@dataclass(slots=True, frozen=True)
class ScraperSelectors:
    container: str
    title: str
    link: str | None = None
    link_attr: str = "href"
    company: str | None = None
    image: str | None = None
    location: str | None = None
    posted_date: str | None = None
    deadline: str | None = None
    category: str | None = None


@dataclass(slots=True, frozen=True)
class DetailPageRules:
    description_selector: str
    cleanup_selectors: tuple[str, ...] = ()
    image_selector: str | None = None
    html_transform: Callable[[str], str] | None = None
    description_cleaner: Callable[[str], str] = default_description_cleaner
    expired_markers: tuple[str, ...] = ()
    deadline_pattern: str | None = None
    deadline_time_pattern: str | None = None
    extract_contacts: bool = False


@dataclass(slots=True, frozen=True)
class ScraperProfile:
    name: str
    listing_url: str
    base_url: str
    selectors: ScraperSelectors
    id_extractor: IdentityExtractor
    display_name: str = ""
    hashtag: str = ""
    family: str = ARABIC
    prompt: PromptConfig = DEFAULT_PROMPT_CONFIG
    listing_cleanup: tuple[str, ...] = ()
    default_company: str | None = None
    default_image: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    response_extractor: Callable[[str], str] | None = None
    process_override: Callable[[JobCandidate], ProcessedJob] | None = None
    detail: DetailPageRules | None = None


@dataclass(slots=True)
class DetailPage:
    description: str = ""
    image_url: str | None = None
    deadline: str | None = None
    how_to_apply: str | None = None
    application_links: tuple[str, ...] = ()


class ScraperPlugin(SourcePlugin):
    """Markup listing engine driven entirely by a ``ScraperProfile``."""

    def __init__(
        self,
        profile: ScraperProfile,
        client: httpx.Client | None = None,
        detail_fetcher: DetailPageFetcher | None = None,
        timeout_seconds: float = 10,
    ) -> None:
        self.profile = profile
        self.name = profile.name
        self.display_name = profile.display_name or profile.name
        self.hashtag = profile.hashtag
        self.family = profile.family
        self.prompt = profile.prompt
        self.base_url = profile.base_url
        self.listing_url = profile.listing_url
        self.kind = "scraper"
        self.client = client or httpx.Client(headers=DEFAULT_HEADERS, follow_redirects=True)
        self.detail_fetcher = detail_fetcher or DetailPageFetcher(client=self.client, timeout_seconds=timeout_seconds)
        self.timeout = timeout_seconds

    def fetch_jobs(self) -> list[JobCandidate]:
        profile = self.profile
        try:
            response = self.client.get(profile.listing_url, headers=profile.headers or None, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise SourceFetchError(f"{self.name}: listing request failed: {exc}") from exc

        markup = response.text
        if profile.response_extractor:
            try:
                markup = profile.response_extractor(markup)
            except ValueError as exc:
                raise SourceFetchError(f"{self.name}: could not unwrap listing response: {exc}") from exc

        cards = parse_html(markup).select(profile.selectors.container)
        if not cards:
            logger.warning(
                "source_empty_listing",
                extra={"extra_fields": {"source": self.name, "selector": profile.selectors.container}},
            )
            return []

        candidates: list[JobCandidate] = []
        for card in cards:
            try:
                candidates.append(self._parse_card(card))
            except ExtractionError as exc:
                logger.info("listing_card_skipped", extra={"extra_fields": {"source": self.name, "reason": str(exc)}})
        return candidates

    def _parse_card(self, card) -> JobCandidate:
        profile = self.profile
        sel = profile.selectors
        remove_all(card, profile.listing_cleanup)

        title = require_text(card, sel.title, "title")
        link = canonicalize_url(resolve_url(require_attr(card, sel.link, sel.link_attr, "link"), profile.base_url))
        company = (extract_text(card, sel.company) if sel.company else None) or profile.default_company or UNKNOWN_COMPANY
        return JobCandidate(
            identity=profile.id_extractor(link, title),
            title=title,
            company=company,
            link=link,
            source=self.name,
            image_url=extract_attr(card, sel.image, "src", profile.base_url) if sel.image else None,
            location=extract_text(card, sel.location) if sel.location else None,
            posted_date=extract_text(card, sel.posted_date) if sel.posted_date else None,
            deadline=extract_text(card, sel.deadline) if sel.deadline else None,
            category=extract_text(card, sel.category) if sel.category else None,
        )

    def process_job(self, candidate: JobCandidate) -> ProcessedJob:
        profile = self.profile
        if profile.process_override:
            return profile.process_override(candidate)

        detail = self.fetch_detail(candidate.link) if profile.detail else None
        detail = detail or DetailPage()
        image_url = candidate.image_url or detail.image_url or profile.default_image
        return ProcessedJob(
            title=candidate.title,
            company=candidate.company,
            link=candidate.link,
            description=detail.description or candidate.description or "",
            source=self.name,
            image_url=image_url,
            location=candidate.location,
            posted_date=candidate.posted_date,
            deadline=detail.deadline or candidate.deadline,
            category=candidate.category,
            how_to_apply=detail.how_to_apply,
            application_links=detail.application_links,
        )

    def fetch_detail(self, url: str) -> DetailPage | None:
        """Fetch and parse a detail page; ``None`` when it is unreachable or expired."""
        rules = self.profile.detail
        if rules is None:
            return None
        markup = self.detail_fetcher.fetch(url)
        if markup is None:
            return None
        try:
            return self._parse_detail(markup, rules, url)
        except ValueError as exc:
            logger.warning("detail_parse_failed", extra={"extra_fields": {"url": url, "error": str(exc)}})
            return None

    def _parse_detail(self, markup: str, rules: DetailPageRules, url: str) -> DetailPage | None:
        if rules.html_transform:
            markup = rules.html_transform(markup)
        if any(marker in markup for marker in rules.expired_markers):
            logger.info("detail_expired", extra={"extra_fields": {"source": self.name, "url": url}})
            return None

        doc = parse_html(markup)
        posting = DetailPageFetcher.parse_json_ld(doc)
        remove_all(doc, rules.cleanup_selectors)

        page = DetailPage()
        node = select_one(doc, rules.description_selector)
        body_html = inner_html(node) if node is not None else ""
        if body_html:
            page.description = rules.description_cleaner(body_html)
        elif posting.get("description"):
            page.description = default_description_cleaner(str(posting["description"]))

        if rules.image_selector:
            page.image_url = extract_attr(doc, rules.image_selector, "src", self.profile.base_url)
        if rules.deadline_pattern:
            page.deadline = _deadline(markup, rules.deadline_pattern, rules.deadline_time_pattern)
        if rules.extract_contacts and body_html:
            contacts = extract_contacts(body_html)
            page.how_to_apply = contacts.text or None
            page.application_links = contacts.all()
        return page


def _deadline(markup: str, date_pattern: str, time_pattern: str | None) -> str | None:
    match = re.search(date_pattern, markup)
    if not match:
        return None
    deadline = match.group(1)
    if time_pattern:
        time_match = re.search(time_pattern, markup)
        if time_match:
            deadline = f"{deadline} {time_match.group(1)}"
    return deadline
