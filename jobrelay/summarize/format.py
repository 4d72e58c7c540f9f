"""Deterministic message pieces: the job header and the no-AI fallback body."""
from __future__ import annotations

import re

from jobrelay.core.models import ProcessedJob
from jobrelay.summarize.prompts import APPLY_HEADING
from jobrelay.utils.config import SECTION_SEPARATOR
from jobrelay.utils.text import truncate

UNSPECIFIED = "غير محدد"
DESCRIPTION_HEADING = "📋 الوصف الوظيفي:"
VISIT_LINK = "الرجاء زيارة رابط الوظيفة للمزيد من التفاصيل."
FALLBACK_DESCRIPTION_LIMIT = 600
FALLBACK_APPLY_LIMIT = 200

ARABIC_MONTHS = (
    "يناير",
    "فبراير",
    "مارس",
    "أبريل",
    "مايو",
    "يونيو",
    "يوليو",
    "أغسطس",
    "سبتمبر",
    "أكتوبر",
    "نوفمبر",
    "ديسمبر",
)
ENGLISH_MONTHS = {name: index for index, name in enumerate(
    ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")
)}


def format_arabic_date(value: str | None) -> str:
    """``03-02-2026`` and ``22 Feb, 26`` become ``03 فبراير 2026`` and ``22 فبراير 2026``."""
    if not value:
        return UNSPECIFIED
    numeric = re.match(r"^(\d{2})-(\d{2})-(\d{4})", value)
    if numeric:
        day, month, year = numeric.groups()
        if 1 <= int(month) <= 12:
            return f"{day} {ARABIC_MONTHS[int(month) - 1]} {year}"
    textual = re.search(r"(\d{1,2})\s+([A-Za-z]{3}),?\s*(\d{2,4})", value)
    if textual:
        day, month, year = textual.groups()
        index = ENGLISH_MONTHS.get(month.lower())
        if index is not None:
            if len(year) == 2:
                year = f"20{year}"
            return f"{day} {ARABIC_MONTHS[index]} {year}"
    return value


def build_job_header(job: ProcessedJob) -> str:
    return (
        f"📋 المسمى الوظيفي:\n{job.title}\n\n"
        f"🏢 الجهة:\n{job.company}\n\n"
        f"📍 الموقع:\n{job.location or UNSPECIFIED}\n\n"
        f"📅 تاريخ النشر:\n{format_arabic_date(job.posted_date)}\n\n"
        f"⏰ آخر موعد للتقديم:\n{format_arabic_date(job.deadline)}\n\n"
        f"{SECTION_SEPARATOR}"
    )


def classify_contact(contact: str) -> str:
    if "@" in contact:
        return f"📩 إيميل: {contact}"
    if re.match(r"^\+?\d", contact):
        return f"📱 واتساب/هاتف: {contact}"
    return f"🔗 رابط: {contact}"


def build_fallback(job: ProcessedJob) -> str:
    parts = [build_job_header(job)]
    if job.has_description:
        parts.append(f"\n{DESCRIPTION_HEADING}\n{truncate(job.description, FALLBACK_DESCRIPTION_LIMIT)}")
    else:
        parts.append(f"\n{DESCRIPTION_HEADING}\n{VISIT_LINK}")

    if job.how_to_apply or job.application_links:
        parts.append(f"\n{SECTION_SEPARATOR}")
        parts.append(f"\n{APPLY_HEADING}")
        if job.how_to_apply:
            parts.append(truncate(job.how_to_apply, FALLBACK_APPLY_LIMIT))
        parts.extend(classify_contact(contact) for contact in job.application_links)
    return "\n".join(parts)


def build_apply_context(job: ProcessedJob) -> str:
    context = ""
    if job.application_links:
        context = (
            "\n\nApplication links/contacts (PRESERVE EXACTLY as-is, do not translate or modify):\n"
            + "\n".join(job.application_links)
        )
    if job.how_to_apply:
        context += f"\n\nHow to Apply section:\n{job.how_to_apply}"
    return context


def apply_fallback_section(text: str) -> str:
    return f"\n\n{SECTION_SEPARATOR}\n\n{APPLY_HEADING}\n{text}"
