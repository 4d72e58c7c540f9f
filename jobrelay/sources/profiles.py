"""Registered job sources. Adding a site means adding one profile here."""
from __future__ import annotations

from typing import Any

import httpx

from jobrelay.collectors.detail_fetcher import DEFAULT_HEADERS, DetailPageFetcher
from jobrelay.sources.base import SourcePlugin, pattern_identity
from jobrelay.sources.feed import FeedPlugin, FeedProfile
from jobrelay.sources.processors import clean_rich_description, decode_cf_emails, process_reliefweb, process_ykbank
from jobrelay.sources.scraper import DetailPageRules, ScraperPlugin, ScraperProfile, ScraperSelectors, json_field
from jobrelay.summarize.prompts import ARABIC, ENGLISH, PromptConfig

BROWSER_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

EOI_EXPIRED_MARKERS = ("هذا الإعلان منتهي", "هذه الوظيفة لم تعد متاحة", "الصفحة غير موجودة")


def yemenhr_profile(feed_url: str) -> FeedProfile:
    return FeedProfile(
        name="yemenhr",
        display_name="Yemen HR",
        hashtag="#YemenHR",
        feed_url=feed_url,
        base_url="https://yemenhr.com",
        id_extractor=pattern_identity("yemenhr", r"/jobs/([^/?#]+)"),
        family=ARABIC,
    )


RELIEFWEB = FeedProfile(
    name="reliefweb",
    display_name="ReliefWeb",
    hashtag="#ReliefWeb",
    feed_url="https://reliefweb.int/jobs/rss.xml?advanced-search=%28C255%29",
    base_url="https://reliefweb.int",
    id_extractor=pattern_identity("reliefweb", r"/job/(\d+)"),
    family=ENGLISH,
    prompt=PromptConfig(
        include_how_to_apply=True,
        source_hint="Humanitarian job board. Postings are in English; the country is Yemen unless stated otherwise.",
        apply_fallback=None,
    ),
    process_override=process_reliefweb,
)

YKBANK = FeedProfile(
    name="ykbank",
    display_name="Yemen Kuwait Bank",
    hashtag="#YKBank",
    feed_url="https://ykbank.zohorecruit.com/jobs/Careers/rss",
    base_url="https://ykbank.zohorecruit.com",
    id_extractor=pattern_identity("ykbank", r"/Careers/(\d+)"),
    family=ENGLISH,
    default_company="Yemen Kuwait Bank",
    process_override=process_ykbank,
)

EOI = ScraperProfile(
    name="eoi",
    display_name="EOI Yemen",
    hashtag="#EOI",
    listing_url="https://eoi-ye.com/live_search/action1?type=0&title=",
    base_url="https://eoi-ye.com",
    selectors=ScraperSelectors(
        container='a[href*="/jobs/"]',
        title=".data.col-md-3 div",
        posted_date=".data.col-md-1",
        category=".job-content > .data.col-md-2:nth-of-type(3)",
        company=".job-content > .data.col-md-2:nth-of-type(4)",
        location=".job-content > .data.col-md-2:nth-of-type(5)",
        deadline=".job-content > .data.col-md-2:nth-of-type(6)",
    ),
    listing_cleanup=(".jop-head",),
    id_extractor=pattern_identity("eoi", r"/jobs/(\d+)"),
    default_company="Unknown",
    headers={
        "X-Requested-With": "XMLHttpRequest",
        "User-Agent": BROWSER_UA,
        "Accept": "application/json",
        "Referer": "https://eoi-ye.com/jobs/",
    },
    response_extractor=json_field("table_data"),
    family=ARABIC,
    prompt=PromptConfig(
        include_how_to_apply=True,
        source_hint="Yemeni job board. Postings mix Arabic and English and often list e-mail or WhatsApp contacts.",
        apply_fallback=None,
    ),
    detail=DetailPageRules(
        description_selector=".detail-adv",
        image_selector='img[src*="/storage/users/"]',
        html_transform=decode_cf_emails,
        description_cleaner=clean_rich_description,
        expired_markers=EOI_EXPIRED_MARKERS,
        deadline_pattern=r"الموعد الاخير\s*:\s*(\d{2}-\d{2}-\d{4})",
        deadline_time_pattern=r"الوقت:\s*(\d{2}:\d{2})",
        extract_contacts=True,
    ),
)

KURAIMI = ScraperProfile(
    name="kuraimi",
    display_name="Kuraimi Bank",
    hashtag="#Kuraimi",
    listing_url="https://jobs.kuraimibank.com/vacancies",
    base_url="https://jobs.kuraimibank.com",
    selectors=ScraperSelectors(container=".single-job-items", title=".job-tittle h4", link=".job-tittle a"),
    id_extractor=pattern_identity("kuraimi", r"/job/(\d+)"),
    default_company="بنك الكريمي",
    detail=DetailPageRules(description_selector=".job-post-details"),
)

QTB = ScraperProfile(
    name="qtb",
    display_name="QTB Bank",
    hashtag="#QTB",
    listing_url="https://jobs.qtbbank.com",
    base_url="https://jobs.qtbbank.com",
    selectors=ScraperSelectors(
        container=".col-12.col-md-6.col-lg-4.p-3",
        title="h4.font-3",
        link='a[href*="detals_job"]',
        location="h4.font-3:nth-of-type(2)",
        image="img",
    ),
    id_extractor=pattern_identity("qtb", r"id_job=(\d+)"),
    default_company="بنك القطيبي الإسلامي",
    detail=DetailPageRules(description_selector=".container", cleanup_selectors=("nav", "footer", "script", "style")),
)

YLDF = ScraperProfile(
    name="yldf",
    display_name="YLDF",
    hashtag="#YLDF",
    listing_url="https://erp.yldf.org/jobs",
    base_url="https://erp.yldf.org",
    selectors=ScraperSelectors(
        container='[name="card"]',
        title="h4.jobs-page",
        link='[name="card"]',
        link_attr="id",
        company=".font-weight-bold",
        location=".text-14 > div.mt-3:first-child",
        deadline=".job-card-footer .col-6:last-child b",
    ),
    id_extractor=pattern_identity("yldf", r"jobs/[^/]+/(.+)"),
    default_company="Youth Leadership Development Foundation",
    detail=DetailPageRules(description_selector=".ql-editor.read-mode"),
)

SCRAPER_PROFILES = (EOI, KURAIMI, QTB, YLDF)
REGISTRY_ORDER = ("yemenhr", "eoi", "reliefweb", "ykbank", "kuraimi", "qtb", "yldf")


def build_plugins(config: dict[str, Any], client: httpx.Client | None = None) -> list[SourcePlugin]:
    """Every registered source, in registry order, sharing one HTTP client."""
    pipeline = config.get("pipeline", {})
    timeout = float(pipeline.get("request_timeout_seconds", 10))
    client = client or httpx.Client(headers=DEFAULT_HEADERS, follow_redirects=True)
    fetcher = DetailPageFetcher(
        client=client,
        timeout_seconds=timeout,
        per_domain_delay_seconds=float(pipeline.get("detail_delay_seconds", 0)),
    )
    feed_url = config.get("sources", {}).get("yemenhr_feed_url", "")
    plugins: dict[str, SourcePlugin] = {
        "yemenhr": FeedPlugin(yemenhr_profile(feed_url), client=client, timeout_seconds=timeout),
        "reliefweb": FeedPlugin(RELIEFWEB, client=client, timeout_seconds=timeout),
        "ykbank": FeedPlugin(YKBANK, client=client, timeout_seconds=timeout),
    }
    for profile in SCRAPER_PROFILES:
        plugins[profile.name] = ScraperPlugin(profile, client=client, detail_fetcher=fetcher, timeout_seconds=timeout)
    return [plugins[name] for name in REGISTRY_ORDER]
