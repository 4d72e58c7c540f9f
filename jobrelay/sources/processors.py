"""Site-specific cleanup for feed bodies and detail pages.

Each ``process_*`` function turns a ``JobCandidate`` into a ``ProcessedJob``
and is attached to a profile as its ``process_override``.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field

from jobrelay.core.models import JobCandidate, ProcessedJob
from jobrelay.extract.html import inner_html, parse_html
from jobrelay.utils.text import clean_whitespace, decode_entities, html_to_text

RELIEFWEB_LOGO_URL = (
    "https://reliefweb.int/themes/custom/common_design_subtheme/img/logos/ReliefWeb_RSS_logo.png"
)
YKBANK_COMPANY = "Yemen Kuwait Bank"

APPLY_URL_KEYWORDS = (
    "forms.gle",
    "forms.google",
    "docs.google.com/forms",
    "apply",
    "recruitment",
    "careers",
    "jobs",
    "submit",
    "smartsheet",
    "surveymonkey",
    "kobo",
    "reliefweb",
)

_URL_RE = re.compile(r"https?://[^\s\"'<>)]+")
_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_PHONE_RE = re.compile(r"(?:\+?967|00967)[\s-]?\d[\s-]?\d{2,3}[\s-]?\d{3,4}[\s-]?\d{0,3}")
_APPLY_HEADING_RE = re.compile(
    r"(?:How(?:\s|<[^>]*>)*to(?:\s|<[^>]*>)*Apply|طريقة\s+التقديم|Application\s+(?:Information|Process)|كيفية\s+التقديم)([\s\S]*)$",
    re.I,
)
_CF_LINK_RE = re.compile(r'<a[^>]+href="/cdn-cgi/l/email-protection#([0-9a-fA-F]+)"[^>]*>[\s\S]*?</a>')
_CF_SPAN_RE = re.compile(r'<span[^>]+data-cfemail="([0-9a-fA-F]+)"[^>]*>[\s\S]*?</span>')

FEED_TRAILERS = (
    "Important Notes",
    "Time Remaining",
    "Save & Share",
    "Sign in to track your application",
    "Track Your Application",
)
FEED_CONTENT_MARKERS = ("Job Description", "الوصف الوظيفي", "Vacancy id", "Job title", "Posted:", "Deadline:")
FEED_NOISE_LINE = re.compile(
    r"^(CTG Logo|Back to Jobs|New|Sign in to Track|Track Your Application|Keep track of your job)$"
)
LOCATION_PATTERNS = (r"Location[:\s]+([^\n]+)", r"الموقع[:\s]+([^\n]+)", r"Governorate[:\s]+([^\n]+)", r"City[:\s]+([^\n]+)")
POSTED_PATTERNS = (
    r"Posted[:\s]+([^\n]+)",
    r"تاريخ النشر[:\s]+([^\n]+)",
    r"Publication Date[:\s]+([^\n]+)",
    r"Date Posted[:\s]+([^\n]+)",
)
DEADLINE_PATTERNS = (
    r"Deadline[:\s]+([^\n]+)",
    r"آخر موعد[:\s]+([^\n]+)",
    r"Closing Date[:\s]+([^\n]+)",
    r"Application Deadline[:\s]+([^\n]+)",
    r"Last Date[:\s]+([^\n]+)",
)


@dataclass(slots=True)
class ContactInfo:
    text: str = ""
    links: list[str] = field(default_factory=list)
    emails: list[str] = field(default_factory=list)
    phones: list[str] = field(default_factory=list)

    def all(self) -> tuple[str, ...]:
        return tuple(self.links + self.emails + self.phones)


@dataclass(slots=True)
class CleanedBody:
    description: str
    location: str | None = None
    posted_date: str | None = None
    deadline: str | None = None


def decode_cf_email(encoded: str) -> str:
    """Decode a Cloudflare obfuscated address: first byte is the XOR key."""
    key = int(encoded[:2], 16)
    return "".join(chr(int(encoded[i : i + 2], 16) ^ key) for i in range(2, len(encoded) - 1, 2))


def decode_cf_emails(html: str) -> str:
    html = _CF_LINK_RE.sub(lambda m: decode_cf_email(m.group(1)), html)
    return _CF_SPAN_RE.sub(lambda m: decode_cf_email(m.group(1)), html)


def strip_word_artifacts(html: str) -> str:
    html = re.sub(r"<o:p[^>]*>[\s\S]*?</o:p>", "", html, flags=re.I)
    html = re.sub(r"<!\[if[^>]*>[\s\S]*?<!\[endif\]>", "", html, flags=re.I)
    html = re.sub(r'class="Mso[^"]*"', "", html, flags=re.I)
    return re.sub(r'style="[^"]*mso-[^"]*"', "", html, flags=re.I)


def clean_rich_description(html: str) -> str:
    """Plain text from editor-produced HTML, keeping list bullets and link targets."""
    if not html:
        return ""
    text = strip_word_artifacts(html)
    text = re.sub(r'<img[^>]+src="data:[^"]*"[^>]*>', "", text, flags=re.I)
    text = re.sub(r"<h[1-6][^>]*>([\s\S]*?)</h[1-6]>", r"\n\1\n", text, flags=re.I)
    text = re.sub(r"<li[^>]*>([\s\S]*?)</li>", r"• \1\n", text, flags=re.I)
    text = re.sub(r"</?(ul|ol)[^>]*>", "\n", text, flags=re.I)
    text = re.sub(r"<br\s*/?>|</p>|</div>|</tr>", "\n", text, flags=re.I)
    text = re.sub(r"<td[^>]*>", " | ", text, flags=re.I)
    text = re.sub(r'<a[^>]+href="([^"]*)"[^>]*>([\s\S]*?)</a>', r"\2 (\1)", text, flags=re.I)
    text = re.sub(r"<[^>]+>", "", text)
    return clean_whitespace(decode_entities(text))


def extract_contacts(html: str) -> ContactInfo:
    """Application URLs, e-mails and Yemeni phone numbers found anywhere in ``html``."""
    info = ContactInfo()
    for url in _URL_RE.findall(html):
        if any(keyword in url for keyword in APPLY_URL_KEYWORDS) and url not in info.links:
            info.links.append(url)
    for email in _EMAIL_RE.findall(html):
        if email not in info.emails:
            info.emails.append(email)
    for phone in _PHONE_RE.findall(html):
        cleaned = re.sub(r"[\s-]", "", phone)
        if cleaned not in info.phones:
            info.phones.append(cleaned)
    heading = _APPLY_HEADING_RE.search(html)
    if heading:
        info.text = clean_rich_description(heading.group(1))
    return info


def _first_match(text: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        match = re.search(pattern, text, re.I)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def clean_feed_body(html: str) -> CleanedBody:
    """Clean a job-board feed body and sniff location and dates out of it."""
    if not html:
        return CleanedBody(description="")
    text = html
    for trailer in FEED_TRAILERS:
        text = re.sub(re.escape(trailer) + r"[\s\S]*$", "", text, flags=re.I)
    text = html_to_text(text)
    text = re.sub(r"&[a-z]+;", " ", text, flags=re.I)
    text = clean_whitespace(text)

    location = _first_match(text, LOCATION_PATTERNS)
    posted = _first_match(text, POSTED_PATTERNS)
    deadline = _first_match(text, DEADLINE_PATTERNS)

    kept: list[str] = []
    in_content = False
    for line in text.split("\n"):
        line = line.strip()
        if not line and not kept:
            continue
        if any(marker in line for marker in FEED_CONTENT_MARKERS):
            in_content = True
        if FEED_NOISE_LINE.match(line):
            continue
        if in_content:
            kept.append(line)
    body = "\n".join(kept)
    body = re.sub(r"\|\s*\|", "", body)
    body = re.sub(r"^\|\s*", "", body, flags=re.M)
    body = re.sub(r"\s*\|$", "", body, flags=re.M)
    if not body.strip():
        body = text
    return CleanedBody(description=body.strip(), location=location, posted_date=posted, deadline=deadline)


def _tag_value(html: str, class_name: str, label: str) -> str | None:
    match = re.search(rf'<div\s+class="tag\s+{class_name}"[^>]*>\s*{label}:\s*(.+?)\s*</div>', html, re.I)
    return match.group(1).strip() if match else None


def _reliefweb_apply(html: str) -> tuple[str | None, list[str]]:
    match = re.search(r"<h2>\s*How to apply\s*</h2>([\s\S]*?)$", html, re.I)
    if not match:
        return None, []
    section = match.group(1)
    links = [url for url in re.findall(r'href="([^"]+)"', section, re.I) if url.startswith(("http", "mailto:"))]
    for email in re.findall(r"[\w.+-]+@[\w-]+\.[\w.]+", section):
        if email not in links and f"mailto:{email}" not in links:
            links.append(email)
    text = clean_whitespace(html_to_text(section))
    return text or None, links


def process_reliefweb(candidate: JobCandidate) -> ProcessedJob:
    html = candidate.description or ""
    closing = re.search(r'class="date\s+closing"[^>]*>\s*Closing date:\s*(.+?)\s*</div>', html, re.I)
    how_to_apply, links = _reliefweb_apply(html)
    body = re.sub(r'<div\s+class="(?:tag|date)\s+[^"]*"[^>]*>[^<]*</div>', "", html, flags=re.I)
    return ProcessedJob(
        title=candidate.title,
        company=_tag_value(html, "source", "Organization") or candidate.company,
        link=candidate.link,
        description=clean_whitespace(html_to_text(body)),
        source=candidate.source,
        image_url=candidate.image_url or RELIEFWEB_LOGO_URL,
        location=_tag_value(html, "country", "Country") or candidate.location,
        deadline=closing.group(1).strip() if closing else candidate.deadline,
        category=candidate.category,
        how_to_apply=how_to_apply,
        application_links=tuple(links),
    )


def deduplicate_location(location: str) -> str:
    """``"Sana'a Sana'a Yemen"`` becomes ``"Sana'a, Yemen"``."""
    parts: list[str] = []
    for part in location.split():
        if not parts or parts[-1].lower() != part.lower():
            parts.append(part)
    return ", ".join(parts)


def _zoho_prefix(html: str, label: str) -> str | None:
    match = re.search(rf"{label}:\s*(.+?)\s*<br", html, re.I)
    if not match:
        return None
    return re.sub(r"<[^>]+>", "", match.group(1)).strip() or None


def process_ykbank(candidate: JobCandidate) -> ProcessedJob:
    html = candidate.description or ""
    raw_location = _zoho_prefix(html, "Location")
    doc = parse_html(f"<div>{html}</div>")
    sections = []
    for span_id in ("spandesc", "spanreq"):
        node = doc.select_one(f"#{span_id}")
        if node is not None:
            text = clean_whitespace(html_to_text(inner_html(node)))
            if text:
                sections.append(text)
    description = "\n\n".join(sections) or clean_whitespace(html_to_text(html))
    return ProcessedJob(
        title=decode_entities(candidate.title),
        company=YKBANK_COMPANY,
        link=candidate.link,
        description=description,
        source=candidate.source,
        image_url=candidate.image_url,
        location=deduplicate_location(decode_entities(raw_location)) if raw_location else candidate.location,
        posted_date=candidate.posted_date,
        category=_zoho_prefix(html, "Category") or candidate.category,
    )
