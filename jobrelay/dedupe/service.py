from __future__ import annotations

import json
from enum import Enum

from jobrelay.core.models import JobCandidate, PostedRecord, now_iso
from jobrelay.storage.kv_store import KeyValueStore
from jobrelay.utils.text import normalize_whitespace

TTL_SECONDS = 30 * 24 * 60 * 60
JOB_PREFIX = "job:"
DEDUP_PREFIX = "dedup:"
CLEARABLE_PREFIXES = (JOB_PREFIX, DEDUP_PREFIX, "meta:")


class DedupVerdict(str, Enum):
    NEW = "new"
    ALREADY_POSTED = "already_posted"
    DUPLICATE = "duplicate"


class DedupeService:
    """Identity and title+company fingerprint checks over one key-value store."""

    def __init__(self, store: KeyValueStore, ttl_seconds: int = TTL_SECONDS) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def normalize(value: str | None) -> str:
        return normalize_whitespace((value or "").casefold())

    @staticmethod
    def identity_key(identity: str) -> str:
        return f"{JOB_PREFIX}{identity}"

    @classmethod
    def fingerprint_key(cls, title: str, company: str | None) -> str:
        return f"{DEDUP_PREFIX}{cls.normalize(title)}:{cls.normalize(company)}"

    def is_posted(self, identity: str) -> bool:
        return self.store.get(self.identity_key(identity)) is not None

    def is_duplicate(self, title: str, company: str | None) -> bool:
        return self.store.get(self.fingerprint_key(title, company)) is not None

    def check(self, candidate: JobCandidate) -> DedupVerdict:
        if self.is_posted(candidate.identity):
            return DedupVerdict.ALREADY_POSTED
        if self.is_duplicate(candidate.title, candidate.company):
            return DedupVerdict.DUPLICATE
        return DedupVerdict.NEW

    def mark_published(self, identity: str, title: str, company: str | None) -> PostedRecord:
        record = PostedRecord(posted_at=now_iso(), title=title, company=company)
        value = json.dumps({"posted_at": record.posted_at, "title": record.title, "company": record.company}, ensure_ascii=False)
        self.store.put(self.identity_key(identity), value, self.ttl_seconds)
        self.store.put(self.fingerprint_key(title, company), value, self.ttl_seconds)
        return record

    def get_record(self, identity: str) -> PostedRecord | None:
        raw = self.store.get(self.identity_key(identity))
        if raw is None:
            return None
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            return None
        if not isinstance(payload, dict):
            return None
        return PostedRecord(
            posted_at=str(payload.get("posted_at", "")),
            title=str(payload.get("title", "")),
            company=payload.get("company"),
        )

    def delete_identity(self, identity: str) -> bool:
        return self.store.delete(self.identity_key(identity))

    def delete_fingerprint(self, title: str, company: str | None) -> bool:
        return self.store.delete(self.fingerprint_key(title, company))

    def _all_records(self) -> list[tuple[str, PostedRecord]]:
        """Every live identity record, newest first."""
        entries: list[tuple[str, PostedRecord]] = []
        for key in self.store.list_keys(JOB_PREFIX):
            identity = key[len(JOB_PREFIX) :]
            record = self.get_record(identity)
            if record is not None:
                entries.append((identity, record))
        entries.sort(key=lambda item: item[1].posted_at, reverse=True)
        return entries

    def list_recent(self, limit: int | None = 10) -> list[tuple[str, PostedRecord]]:
        return self._all_records()[:limit]

    def search(self, keyword: str, limit: int = 100) -> list[tuple[str, PostedRecord]]:
        """Records whose title or company contains ``keyword``, newest first."""
        needle = self.normalize(keyword)
        matches = [
            entry
            for entry in self._all_records()
            if needle in self.normalize(entry[1].title) or needle in self.normalize(entry[1].company)
        ]
        return matches[:limit]

    def clear(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for prefix in CLEARABLE_PREFIXES:
            keys = self.store.list_keys(prefix)
            for key in keys:
                self.store.delete(key)
            counts[prefix.rstrip(":")] = len(keys)
        return counts
