from __future__ import annotations

import json

from conftest import make_candidate
from jobrelay.dedupe.service import TTL_SECONDS, DedupeService, DedupVerdict
from jobrelay.storage.kv_store import KeyValueStore


def test_new_candidate_passes_both_checks(dedupe: DedupeService) -> None:
    assert dedupe.check(make_candidate("alpha-1")) is DedupVerdict.NEW


def test_published_identity_is_already_posted(dedupe: DedupeService) -> None:
    dedupe.mark_published("alpha-1", "Accountant", "Acme")
    assert dedupe.check(make_candidate("alpha-1")) is DedupVerdict.ALREADY_POSTED


def test_same_title_and_company_elsewhere_is_duplicate(dedupe: DedupeService) -> None:
    dedupe.mark_published("alpha-1", "Accountant", "Acme")
    repost = make_candidate("beta-9", title="  ACCOUNTANT ", company="acme", source="beta")
    assert dedupe.check(repost) is DedupVerdict.DUPLICATE


def test_fingerprint_normalizes_case_and_whitespace() -> None:
    first = DedupeService.fingerprint_key("Senior  Data\tAnalyst", "Acme Inc")
    second = DedupeService.fingerprint_key("senior data analyst", " ACME INC ")
    assert first == second == "dedup:senior data analyst:acme inc"
    assert DedupeService.fingerprint_key("Driver", None) == "dedup:driver:"


def test_keys_expire_after_thirty_days(dedupe: DedupeService, clock) -> None:
    dedupe.mark_published("alpha-1", "Accountant", "Acme")
    clock.advance(TTL_SECONDS - 1)
    assert dedupe.is_posted("alpha-1")
    clock.advance(1)
    assert not dedupe.is_posted("alpha-1")
    assert not dedupe.is_duplicate("Accountant", "Acme")


def test_record_round_trip(dedupe: DedupeService) -> None:
    written = dedupe.mark_published("alpha-1", "محاسب", "شركة")
    record = dedupe.get_record("alpha-1")
    assert record == written
    assert dedupe.get_record("missing") is None


def test_malformed_record_reads_as_missing(dedupe: DedupeService, kv_store: KeyValueStore) -> None:
    kv_store.put("job:broken", "{not json")
    assert dedupe.get_record("broken") is None
    assert dedupe.is_posted("broken")


def test_delete_keys_independently(dedupe: DedupeService) -> None:
    dedupe.mark_published("alpha-1", "Accountant", "Acme")
    assert dedupe.delete_identity("alpha-1")
    assert not dedupe.is_posted("alpha-1")
    assert dedupe.is_duplicate("Accountant", "Acme")
    assert dedupe.delete_fingerprint("ACCOUNTANT", "acme")
    assert not dedupe.is_duplicate("Accountant", "Acme")


def test_list_recent_and_search(dedupe: DedupeService, clock) -> None:
    dedupe.mark_published("alpha-1", "Accountant", "Acme")
    clock.advance(10)
    dedupe.mark_published("alpha-2", "Nurse", "Clinic")

    recent = dedupe.list_recent(limit=10)
    assert {identity for identity, _ in recent} == {"alpha-1", "alpha-2"}
    assert [identity for identity, _ in dedupe.search("nur")] == ["alpha-2"]
    assert len(dedupe.list_recent(limit=1)) == 1


def test_clear_removes_only_dedup_namespaces(dedupe: DedupeService, kv_store: KeyValueStore) -> None:
    dedupe.mark_published("alpha-1", "Accountant", "Acme")
    kv_store.put("meta:last_run", "x")
    kv_store.put("other:key", "y")

    assert dedupe.clear() == {"job": 1, "dedup": 1, "meta": 1}
    assert kv_store.get("other:key") == "y"


def test_normalize_is_idempotent() -> None:
    samples = ["Senior  DATA\tAnalyst", "Acme\xa0Inc\n", "  محاسب   أول  ", "Straße", None, "", "   "]
    for value in samples:
        once = DedupeService.normalize(value)
        assert DedupeService.normalize(once) == once
    assert DedupeService.normalize("Acme\xa0Inc\n") == "acme inc"
    assert DedupeService.normalize(None) == DedupeService.normalize("") == ""


def test_list_recent_orders_by_posting_time_across_all_keys(dedupe: DedupeService, kv_store: KeyValueStore) -> None:
    rows = [
        (f"job:a{index:04d}", json.dumps({"posted_at": f"2026-01-01T00:{index // 60:02d}:{index % 60:02d}+00:00", "title": "Old", "company": "X"}), None)
        for index in range(1200)
    ]
    rows.append(("job:zz-newest", json.dumps({"posted_at": "2026-09-30T00:00:00+00:00", "title": "Newest", "company": "X"}), None))
    kv_store.conn.executemany("INSERT INTO kv(key, value, expires_at) VALUES (?,?,?)", rows)
    kv_store.conn.commit()

    assert [identity for identity, _ in dedupe.list_recent(limit=1)] == ["zz-newest"]


def test_search_filters_before_limiting(dedupe: DedupeService, kv_store: KeyValueStore) -> None:
    for index in range(5):
        posted_at = f"2026-05-0{index + 1}T00:00:00+00:00"
        title = "Nurse" if index == 0 else "Driver"
        kv_store.put(f"job:j{index}", json.dumps({"posted_at": posted_at, "title": title, "company": "Clinic"}))

    assert [identity for identity, _ in dedupe.search("nurse", limit=1)] == ["j0"]
    assert [identity for identity, _ in dedupe.search("CLINIC", limit=2)] == ["j4", "j3"]
    assert dedupe.search("pilot") == []
