from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Callable

from jobrelay.core.models import JobCandidate, ProcessedJob
from jobrelay.summarize.prompts import ARABIC, DEFAULT_PROMPT_CONFIG, PromptConfig


class SourceFetchError(RuntimeError):
    """The listing request for a source failed or returned an unusable body."""


class SourcePlugin(ABC):
    name: str
    hashtag: str = ""
    family: str = ARABIC
    prompt: PromptConfig = DEFAULT_PROMPT_CONFIG
    display_name: str = ""
    base_url: str = ""
    kind: str = "custom"
    listing_url: str = ""

    @abstractmethod
    def fetch_jobs(self) -> list[JobCandidate]:
        raise NotImplementedError

    @abstractmethod
    def process_job(self, candidate: JobCandidate) -> ProcessedJob:
        raise NotImplementedError


IdentityExtractor = Callable[[str, str], str]


def pattern_identity(prefix: str, pattern: str, group: int = 1) -> IdentityExtractor:
    """Identity from the first regex group of a link; ``<prefix>-<link>`` when it does not match."""
    compiled = re.compile(pattern)

    def extract(link: str, title: str = "") -> str:
        match = compiled.search(link or "")
        if match and match.group(group):
            return f"{prefix}-{match.group(group)}"
        return f"{prefix}-{link}"

    return extract
