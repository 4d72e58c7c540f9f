"""Outgoing message assembly under the delivery channel's size limits.

The channel counts UTF-16 units after removing tags and decoding the entities
it understands, so every budget check here goes through ``visible_length``.
Bodies are truncated as plain text and escaped afterwards; escaping never
changes the visible length.
"""
from __future__ import annotations

import html
import logging
import re

from jobrelay.core.models import OutgoingMessage
from jobrelay.utils.config import FormatterSettings
from jobrelay.utils.text import strip_markdown, truncate

logger = logging.getLogger(__name__)

MAX_HASHTAG_LINE = 200
_TAG = re.compile(r"<[^>]*>")
_ENTITY = re.compile(r"&(lt|gt|amp|quot);")
_ENTITY_VALUES = {"lt": "<", "gt": ">", "amp": "&", "quot": '"'}


def text_units(text: str) -> int:
    """Length in UTF-16 code units; characters outside the BMP count twice."""
    return len(text.encode("utf-16-le")) // 2


def _prefix_within(text: str, units: int) -> str:
    count = 0
    for index, char in enumerate(text):
        count += 2 if ord(char) > 0xFFFF else 1
        if count > units:
            return text[:index]
    return text


def visible_length(markup: str) -> int:
    text = _TAG.sub("", markup)
    text = _ENTITY.sub(lambda match: _ENTITY_VALUES[match.group(1)], text)
    return text_units(text)


def escape_markup(text: str) -> str:
    return html.escape(text, quote=False)


def truncate_body(
    text: str,
    limit: int,
    separator: str,
    ellipsis: str = "\n...",
    semantic_only: bool = False,
) -> str | None:
    """Shorten ``text`` to at most ``limit`` UTF-16 units.

    Cuts at the last section separator that fits, then the last line break,
    then at a raw character position, appending ``ellipsis`` whenever text was
    removed. With ``semantic_only`` only a separator cut is accepted and
    ``None`` is returned when none fits. Text that already fits is returned
    unchanged.
    """
    if text_units(text) <= limit:
        return text
    room = limit - text_units(ellipsis)

    if room > 0:
        position = text.rfind(separator)
        while position > 0:
            head = text[:position].rstrip()
            if head and text_units(head) <= room:
                return head + ellipsis
            position = text.rfind(separator, 0, position)
    if semantic_only:
        return None

    if room > 0:
        window = _prefix_within(text, room)
        position = text.rfind("\n", 0, len(window) + 1)
        while position > 0:
            head = text[:position].rstrip()
            if head:
                return head + ellipsis
            position = text.rfind("\n", 0, position)
        head = window.rstrip()
        if head:
            return head + ellipsis
    return ellipsis if text_units(ellipsis) <= limit else ""


def hashtag(value: str) -> str:
    tag = re.sub(r"[\s/\-]+", "_", value.strip().lstrip("#")).strip("_")
    return f"#{tag}" if tag else ""


class MessageFormatter:
    def __init__(self, settings: FormatterSettings | None = None) -> None:
        self.settings = settings or FormatterSettings()

    def build_footer(self, link: str, hashtags: list[str] | None = None) -> str:
        settings = self.settings
        lines = [
            "",
            "",
            settings.separator,
            settings.link_label,
            escape_markup(truncate(link, settings.max_link_length)),
        ]
        tags = " ".join(tag for tag in (hashtag(value) for value in hashtags or []) if tag)
        if tags:
            lines.extend(["", escape_markup(truncate(tags, MAX_HASHTAG_LINE, marker=""))])
        if settings.channel_url:
            lines.extend(["", settings.promotion, escape_markup(truncate(settings.channel_url, settings.max_link_length))])
        return "\n".join(lines)

    def format(
        self,
        summary: str,
        link: str,
        image_url: str | None = None,
        hashtags: list[str] | None = None,
    ) -> OutgoingMessage:
        settings = self.settings
        body = strip_markdown(summary).strip()
        footer = self.build_footer(link, hashtags)
        footer_length = visible_length(footer)

        if image_url and image_url.startswith(("http://", "https://")):
            caption_body = truncate_body(
                body,
                settings.caption_budget - footer_length,
                settings.separator,
                settings.ellipsis,
                semantic_only=True,
            )
            if caption_body is not None:
                return OutgoingMessage(text=escape_markup(caption_body) + footer, image_url=image_url, has_image=True)
            logger.info(
                "image_dropped",
                extra={"extra_fields": {"link": link, "body_length": len(body), "footer_length": footer_length}},
            )

        text_body = truncate_body(body, settings.text_budget - footer_length, settings.separator, settings.ellipsis)
        return OutgoingMessage(text=escape_markup(text_body or "") + footer, image_url=None, has_image=False)
