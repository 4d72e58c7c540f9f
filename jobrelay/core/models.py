from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

NO_DESCRIPTION = "No description available"


class JobStatus(str, Enum):
    FETCHED = "fetched"
    POSTED = "posted"
    SKIPPED = "skipped"
    FAILED = "failed"


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class JobCandidate:
    identity: str
    title: str
    company: str
    link: str
    source: str
    image_url: str | None = None
    location: str | None = None
    posted_date: str | None = None
    deadline: str | None = None
    category: str | None = None
    description: str | None = None


@dataclass(slots=True, frozen=True)
class ProcessedJob:
    title: str
    company: str
    link: str
    description: str
    source: str
    image_url: str | None = None
    location: str | None = None
    posted_date: str | None = None
    deadline: str | None = None
    category: str | None = None
    how_to_apply: str | None = None
    application_links: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not (self.description or "").strip():
            object.__setattr__(self, "description", NO_DESCRIPTION)
        if not isinstance(self.application_links, tuple):
            object.__setattr__(self, "application_links", tuple(self.application_links or ()))

    @property
    def has_description(self) -> bool:
        return self.description != NO_DESCRIPTION


@dataclass(slots=True, frozen=True)
class OutgoingMessage:
    text: str
    image_url: str | None
    has_image: bool


@dataclass(slots=True)
class PostedRecord:
    posted_at: str
    title: str
    company: str | None = None


@dataclass(slots=True)
class SummaryResult:
    summary: str
    category: str
    used_fallback: bool = False


@dataclass(slots=True)
class DeliveryResult:
    success: bool
    message_id: int | None = None
    with_image: bool = False


@dataclass(slots=True)
class SourceStats:
    fetched: int = 0
    posted: int = 0
    skipped: int = 0
    failed: int = 0
    error: str | None = None

    def as_dict(self) -> dict[str, int | str]:
        payload: dict[str, int | str] = {
            "fetched": self.fetched,
            "posted": self.posted,
            "skipped": self.skipped,
            "failed": self.failed,
        }
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(slots=True)
class RunStats:
    run_id: int | None = None
    fetched: int = 0
    posted: int = 0
    skipped: int = 0
    failed: int = 0
    status: RunStatus = RunStatus.RUNNING
    error: str | None = None
    sources: dict[str, SourceStats] = field(default_factory=dict)

    def source(self, name: str) -> SourceStats:
        return self.sources.setdefault(name, SourceStats())

    def count(self, source: str, status: JobStatus) -> None:
        stats = self.source(source)
        if status is JobStatus.POSTED:
            self.posted += 1
            stats.posted += 1
        elif status is JobStatus.SKIPPED:
            self.skipped += 1
            stats.skipped += 1
        elif status is JobStatus.FAILED:
            self.failed += 1
            stats.failed += 1

    def as_counts(self) -> dict[str, int]:
        return {
            "jobs_fetched": self.fetched,
            "jobs_posted": self.posted,
            "jobs_skipped": self.skipped,
            "jobs_failed": self.failed,
        }


def now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()
