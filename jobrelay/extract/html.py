"""DOM query helpers shared by every markup-scraping source.

All helpers accept either a whole document or a single card element. A
selector may match a descendant of the given root or the root itself, so a
card that *is* the anchor element can still yield its own ``href``.
"""
from __future__ import annotations

from typing import Iterable

from bs4 import BeautifulSoup, Tag

URL_ATTRS = {"href", "src"}


class ExtractionError(ValueError):
    """A required field (title, link) could not be extracted from a card."""


def parse_html(markup: str) -> BeautifulSoup:
    return BeautifulSoup(markup, "html.parser")


def select_one(root: Tag, selector: str | None) -> Tag | None:
    if not selector:
        return root
    found = root.select_one(selector)
    if found is not None:
        return found
    if isinstance(root, Tag) and not isinstance(root, BeautifulSoup) and root.css.match(selector):
        return root
    return None


def resolve_url(value: str, base_url: str | None) -> str:
    value = value.strip()
    if not base_url or value.startswith(("http://", "https://")):
        return value
    if value.startswith("//"):
        return f"https:{value}"
    base = base_url.rstrip("/")
    return f"{base}/{value.lstrip('/')}"


def extract_text(root: Tag, selector: str | None = None) -> str | None:
    target = select_one(root, selector)
    if target is None:
        return None
    text = target.get_text(" ", strip=True)
    return " ".join(text.split()) or None


def extract_attr(root: Tag, selector: str | None, attr: str, base_url: str | None = None) -> str | None:
    target = select_one(root, selector)
    if target is None:
        return None
    value = target.get(attr)
    if isinstance(value, list):
        value = " ".join(value)
    if not value or not value.strip():
        return None
    if attr in URL_ATTRS:
        return resolve_url(value, base_url)
    return value.strip()


def require_text(root: Tag, selector: str, field_name: str) -> str:
    value = extract_text(root, selector)
    if not value:
        raise ExtractionError(f"missing required field {field_name!r} (selector {selector!r})")
    return value


def require_attr(root: Tag, selector: str | None, attr: str, field_name: str, base_url: str | None = None) -> str:
    value = extract_attr(root, selector, attr, base_url)
    if not value:
        raise ExtractionError(f"missing required field {field_name!r} (selector {selector!r}, attr {attr!r})")
    return value


def remove_all(root: Tag, selectors: Iterable[str]) -> int:
    removed = 0
    for selector in selectors:
        for node in root.select(selector):
            node.decompose()
            removed += 1
    return removed


def inner_html(node: Tag) -> str:
    return node.decode_contents()
