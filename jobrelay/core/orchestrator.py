from __future__ import annotations

import logging
import sqlite3
import time
from typing import Any, Callable

from jobrelay.core.models import JobCandidate, JobStatus, RunStats, RunStatus
from jobrelay.dedupe.service import DedupeService, DedupVerdict
from jobrelay.publish.formatter import MessageFormatter
from jobrelay.publish.telegram import TelegramChannel
from jobrelay.sources.base import SourcePlugin
from jobrelay.sources.manager import SourceManager
from jobrelay.sources.profiles import build_plugins
from jobrelay.storage.kv_store import KeyValueStore
from jobrelay.storage.repository import JobRepository
from jobrelay.summarize.client import TextGenerationClient
from jobrelay.summarize.prompts import SETTING_KEY_PREFIX
from jobrelay.summarize.retry import RetryPolicy
from jobrelay.summarize.service import Summarizer
from jobrelay.utils.config import FormatterSettings

logger = logging.getLogger(__name__)


def build_run_summary(stats: RunStats, environment: str | None = None) -> str:
    env_label = f" [{environment}]" if environment and environment != "production" else ""
    if stats.status is RunStatus.FAILED:
        header = f"❌ <b>Run Failed</b>{env_label}"
    else:
        header = f"📊 <b>Run Complete</b>{env_label}"
    lines = [header, ""]
    for name, source in stats.sources.items():
        if source.error:
            lines.append(f"❌ {name}: {source.error}")
        elif source.fetched == 0:
            lines.append(f"⚠️ {name}: 0 jobs")
        else:
            parts = []
            if source.posted:
                parts.append(f"{source.posted} posted")
            if source.skipped:
                parts.append(f"{source.skipped} skipped")
            if source.failed:
                parts.append(f"{source.failed} failed")
            marker = "⚠️" if source.failed else "✅"
            lines.append(f"{marker} {name}: {source.fetched} fetched → {', '.join(parts) or 'pending'}")
    lines.append("")
    lines.append(f"<b>Total:</b> {stats.posted} posted, {stats.skipped} skipped, {stats.failed} failed")
    if stats.error:
        lines.append(f"<b>Error:</b> {stats.error}")
    return "\n".join(lines)


class PipelineOrchestrator:
    def __init__(
        self,
        config: dict[str, Any],
        repository: JobRepository | None = None,
        dedupe: DedupeService | None = None,
        manager: SourceManager | None = None,
        summarizer: Summarizer | None = None,
        formatter: MessageFormatter | None = None,
        channel: TelegramChannel | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        storage = config.get("storage", {})
        pipeline = config.get("pipeline", {})
        ai = config.get("ai", {})
        db_path = storage.get("db_path", "data/jobrelay.db")

        self.repository = repository or JobRepository(db_path)
        self.dedupe = dedupe or DedupeService(KeyValueStore(db_path))
        self.manager = manager or SourceManager(build_plugins(config), max_workers=int(pipeline.get("fetch_workers", 2)))
        if summarizer is None:
            client = TextGenerationClient.from_config(config) if ai.get("api_key") else None
            policy = RetryPolicy(
                max_attempts=int(ai.get("max_attempts", 3)),
                base_delay_seconds=float(ai.get("base_delay_seconds", 2.0)),
            )
            summarizer = Summarizer(client, policy=policy, sleep=sleep)
        self.summarizer = summarizer
        self.formatter = formatter or MessageFormatter(FormatterSettings.from_config(config))
        self.channel = channel or TelegramChannel.from_config(config)
        self.sleep = sleep
        self.environment = config.get("environment")
        self.max_jobs = int(pipeline.get("max_jobs_per_run", 15))
        self.post_delay = float(pipeline.get("delay_between_posts_seconds", 1.0))

    def run(self, trigger: str = "manual") -> RunStats:
        stats = RunStats()
        stats.run_id = self.repository.create_run(trigger, self.environment)
        logger.info("run_started", extra={"extra_fields": {"run_id": stats.run_id, "trigger": trigger}})
        try:
            self._execute(stats)
            stats.status = RunStatus.COMPLETED
        except Exception as exc:
            stats.status = RunStatus.FAILED
            stats.error = str(exc)
            logger.exception("run_failed", extra={"extra_fields": {"run_id": stats.run_id}})
            self.channel.send_alert(f"❌ <b>Critical error in pipeline run</b>\n\n{exc}")
        finally:
            self.repository.complete_run(stats.run_id, stats)

        logger.info(
            "run_completed",
            extra={"extra_fields": {"run_id": stats.run_id, "status": stats.status.value, **stats.as_counts()}},
        )
        self.channel.send_admin(build_run_summary(stats, self.environment))
        return stats

    def _execute(self, stats: RunStats) -> None:
        enabled_names = self.config.get("sources", {}).get("enabled", [])
        self.repository.sync_sources(self.manager.plugins, enabled_names)
        plugins = self.manager.enabled(self.repository.enabled_source_ids())
        self.summarizer.template_overrides = self.repository.settings_with_prefix(SETTING_KEY_PREFIX)
        self.summarizer.config_overrides = self.repository.prompt_overrides()

        listings = self.manager.fetch_all(plugins)
        for listing in listings:
            source = stats.source(listing.plugin.name)
            source.fetched = len(listing.candidates)
            source.error = listing.error
            stats.fetched += source.fetched

        attempted = 0
        for listing in listings:
            for candidate in listing.candidates:
                if attempted >= self.max_jobs:
                    logger.info("run_limit_reached", extra={"extra_fields": {"max_jobs": self.max_jobs}})
                    return
                status = self.process_candidate(candidate, listing.plugin, stats.run_id)
                stats.count(candidate.source, status)
                if status is JobStatus.SKIPPED:
                    continue
                attempted += 1
                if status is JobStatus.POSTED and self.post_delay > 0:
                    self.sleep(self.post_delay)

    def process_candidate(self, candidate: JobCandidate, plugin: SourcePlugin, run_id: int | None) -> JobStatus:
        self._audit(self.repository.record_fetched, candidate, run_id)

        verdict = self.dedupe.check(candidate)
        if verdict is not DedupVerdict.NEW:
            logger.info(
                "job_skipped",
                extra={"extra_fields": {"identity": candidate.identity, "source": candidate.source, "reason": verdict.value}},
            )
            self._audit(self.repository.update_job_status, candidate.identity, JobStatus.SKIPPED, run_id)
            return JobStatus.SKIPPED

        try:
            job = plugin.process_job(candidate)
            summary = self.summarizer.summarize(job, plugin)
            message = self.formatter.format(summary.summary, job.link, job.image_url, [plugin.hashtag, summary.category])
            delivery = self.channel.publish(message)
        except Exception:
            logger.exception("job_failed", extra={"extra_fields": {"identity": candidate.identity, "source": candidate.source}})
            self._audit(self.repository.update_job_status, candidate.identity, JobStatus.FAILED, run_id)
            return JobStatus.FAILED

        if not delivery.success:
            logger.warning("job_publish_failed", extra={"extra_fields": {"identity": candidate.identity}})
            self._audit(self.repository.attach_details, candidate.identity, job, summary.summary, summary.category)
            self._audit(self.repository.update_job_status, candidate.identity, JobStatus.FAILED, run_id)
            return JobStatus.FAILED

        self.dedupe.mark_published(candidate.identity, candidate.title, candidate.company)
        self._audit(self.repository.attach_details, candidate.identity, job, summary.summary, summary.category)
        self._audit(
            self.repository.update_job_status, candidate.identity, JobStatus.POSTED, run_id, delivery.message_id
        )
        logger.info(
            "job_posted",
            extra={
                "extra_fields": {
                    "identity": candidate.identity,
                    "source": candidate.source,
                    "with_image": delivery.with_image,
                    "fallback_summary": summary.used_fallback,
                }
            },
        )
        return JobStatus.POSTED

    @staticmethod
    def _audit(write: Callable[..., Any], *args: Any) -> None:
        try:
            write(*args)
        except sqlite3.Error as exc:
            logger.warning("audit_write_failed", extra={"extra_fields": {"operation": write.__name__, "error": str(exc)}})
