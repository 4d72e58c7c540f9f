from __future__ import annotations

from pathlib import Path
from typing import Callable

import httpx
import pytest

from jobrelay.core.models import JobCandidate, ProcessedJob
from jobrelay.dedupe.service import DedupeService
from jobrelay.sources.base import SourcePlugin
from jobrelay.storage.kv_store import KeyValueStore
from jobrelay.storage.repository import JobRepository
from jobrelay.summarize.prompts import ARABIC, DEFAULT_PROMPT_CONFIG, PromptConfig


class StubPlugin(SourcePlugin):
    """In-memory source: returns fixed candidates and turns each into a processed job."""

    def __init__(
        self,
        name: str,
        candidates: list[JobCandidate] | None = None,
        family: str = ARABIC,
        prompt: PromptConfig = DEFAULT_PROMPT_CONFIG,
        hashtag: str = "",
        fail_fetch: Exception | None = None,
        fail_process: set[str] | None = None,
    ) -> None:
        self.name = name
        self.display_name = name.title()
        self.hashtag = hashtag or f"#{name}"
        self.family = family
        self.prompt = prompt
        self.base_url = f"https://{name}.test"
        self.listing_url = f"https://{name}.test/jobs"
        self.kind = "custom"
        self.candidates = candidates or []
        self.fail_fetch = fail_fetch
        self.fail_process = fail_process or set()
        self.fetch_calls = 0

    def fetch_jobs(self) -> list[JobCandidate]:
        self.fetch_calls += 1
        if self.fail_fetch is not None:
            raise self.fail_fetch
        return list(self.candidates)

    def process_job(self, candidate: JobCandidate) -> ProcessedJob:
        if candidate.identity in self.fail_process:
            raise RuntimeError(f"cannot process {candidate.identity}")
        return ProcessedJob(
            title=candidate.title,
            company=candidate.company,
            link=candidate.link,
            description=candidate.description or "",
            source=candidate.source,
            image_url=candidate.image_url,
            location=candidate.location,
            category=candidate.category,
        )


def make_candidate(
    identity: str,
    title: str = "Accountant",
    company: str = "Acme",
    source: str = "alpha",
    **kwargs,
) -> JobCandidate:
    kwargs.setdefault("link", f"https://{source}.test/jobs/{identity}")
    kwargs.setdefault("description", "Prepare monthly financial reports.")
    return JobCandidate(identity=identity, title=title, company=company, source=source, **kwargs)


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "jobrelay.db")


@pytest.fixture
def repo(db_path: str):
    repository = JobRepository(db_path)
    yield repository
    repository.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv_store(db_path: str, clock: FakeClock):
    store = KeyValueStore(db_path, clock=clock)
    yield store
    store.close()


@pytest.fixture
def dedupe(kv_store: KeyValueStore) -> DedupeService:
    return DedupeService(kv_store)
