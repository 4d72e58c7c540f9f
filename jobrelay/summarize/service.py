from __future__ import annotations

import logging
import time
from typing import Callable, Mapping

from jobrelay.core.models import ProcessedJob, SummaryResult
from jobrelay.sources.base import SourcePlugin
from jobrelay.summarize.categories import (
    categories_for,
    classify_by_keywords,
    extract_category,
    match_category_from_raw,
    remove_category_line,
)
from jobrelay.summarize.client import GenerationError, TextGenerationClient
from jobrelay.summarize.format import apply_fallback_section, build_apply_context, build_fallback, build_job_header
from jobrelay.summarize.prompts import SUMMARY_MARKER, build_prompt, merge_prompt_config, template_for
from jobrelay.summarize.retry import RetryPolicy
from jobrelay.utils.text import strip_markdown

logger = logging.getLogger(__name__)


def clean_generated(text: str) -> str:
    cleaned = strip_markdown(text)
    start = cleaned.find(SUMMARY_MARKER)
    if start > 0:
        cleaned = cleaned[start:]
    return cleaned.strip()


class Summarizer:
    def __init__(
        self,
        client: TextGenerationClient | None,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        template_overrides: Mapping[str, str] | None = None,
        config_overrides: Mapping[str, Mapping[str, object]] | None = None,
    ) -> None:
        self.client = client
        self.policy = policy or RetryPolicy()
        self.sleep = sleep
        self.template_overrides = dict(template_overrides or {})
        self.config_overrides = dict(config_overrides or {})

    def summarize(self, job: ProcessedJob, plugin: SourcePlugin) -> SummaryResult:
        config = merge_prompt_config(plugin.prompt, self.config_overrides.get(plugin.name))
        category_known = bool(job.category)
        prompt = build_prompt(
            template_for(plugin.family, self.template_overrides),
            job.description,
            config,
            apply_context=build_apply_context(job) if config.include_how_to_apply else "",
            category_choices=None if category_known else categories_for(job.source),
        )

        generated = self._generate(prompt, job)
        used_fallback = generated is None
        if generated is None:
            raw = build_fallback(job)
        else:
            raw = f"{build_job_header(job)}\n\n{generated}"

        if category_known:
            category = match_category_from_raw([job.category or ""], job.source) or job.category or ""
        else:
            category = extract_category(raw, job.source) or classify_by_keywords(job.title, job.description, job.source)

        summary = remove_category_line(raw)
        if not used_fallback and not config.include_how_to_apply and config.apply_fallback:
            summary += apply_fallback_section(config.apply_fallback)
        return SummaryResult(summary=summary, category=category, used_fallback=used_fallback)

    def _generate(self, prompt: str, job: ProcessedJob) -> str | None:
        if self.client is None:
            logger.info("summary_fallback", extra={"extra_fields": {"link": job.link, "reason": "no_client"}})
            return None

        def attempt() -> str:
            text = clean_generated(self.client.generate(prompt))
            if not text:
                raise GenerationError("empty text after cleanup")
            return text

        outcome = self.policy.execute(attempt, sleep=self.sleep)
        if outcome.exhausted:
            logger.warning(
                "summary_fallback",
                extra={"extra_fields": {"link": job.link, "attempts": outcome.attempts, "errors": outcome.errors}},
            )
            return None
        return outcome.value
