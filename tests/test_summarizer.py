from __future__ import annotations

import json

import httpx
import pytest

from conftest import StubPlugin, mock_client
from jobrelay.core.models import ProcessedJob
from jobrelay.summarize.categories import OTHER, classify_by_keywords, extract_category, remove_category_line
from jobrelay.summarize.client import GenerationError, TextGenerationClient, extract_generated_text
from jobrelay.summarize.format import UNSPECIFIED, VISIT_LINK, build_fallback, build_job_header, format_arabic_date
from jobrelay.summarize.prompts import (
    APPLY_HEADING,
    ARABIC,
    ENGLISH,
    TEMPLATES,
    PromptConfig,
    build_prompt,
    merge_prompt_config,
    render_template,
    template_for,
)
from jobrelay.summarize.retry import RetryDecision, RetryPolicy, RetryState
from jobrelay.summarize.service import Summarizer, clean_generated

MODEL_REPLY = "Sure! Here is the summary:\n📋 الوصف الوظيفي:\nوظيفة **محاسب** في عدن.\n🏷️ الفئة: محاسبة ومالية"


class FakeClient:
    def __init__(self, replies: list) -> None:
        self.replies = replies
        self.prompts: list[str] = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def make_job(**kwargs) -> ProcessedJob:
    values = {
        "title": "Accountant",
        "company": "Acme",
        "link": "https://yemenhr.com/jobs/accountant-1",
        "description": "Prepare monthly financial reports.",
        "source": "yemenhr",
        "location": "Aden",
        "deadline": "03-02-2026",
    }
    values.update(kwargs)
    return ProcessedJob(**values)


def arabic_plugin() -> StubPlugin:
    return StubPlugin("yemenhr", family=ARABIC)


def english_plugin() -> StubPlugin:
    return StubPlugin(
        "reliefweb",
        family=ENGLISH,
        prompt=PromptConfig(include_how_to_apply=True, source_hint="Humanitarian board", apply_fallback=None),
    )


def test_generated_summary_gets_deterministic_header() -> None:
    sleeps: list[float] = []
    summarizer = Summarizer(FakeClient([MODEL_REPLY]), sleep=sleeps.append)

    result = summarizer.summarize(make_job(), arabic_plugin())

    assert not result.used_fallback
    assert result.summary.startswith("📋 المسمى الوظيفي:\nAccountant\n\n🏢 الجهة:\nAcme")
    assert "03 فبراير 2026" in result.summary
    assert "Sure!" not in result.summary
    assert "**" not in result.summary
    assert "🏷️" not in result.summary
    assert result.category == "محاسبة ومالية"
    assert result.summary.endswith(f"{APPLY_HEADING}\nراجع رابط الوظيفة أدناه")
    assert sleeps == []


def test_retries_with_exponential_backoff_then_succeeds() -> None:
    sleeps: list[float] = []
    client = FakeClient([GenerationError("timeout"), "   ", MODEL_REPLY])

    result = Summarizer(client, sleep=sleeps.append).summarize(make_job(), arabic_plugin())

    assert len(client.prompts) == 3
    assert sleeps == [2.0, 4.0]
    assert not result.used_fallback


def test_exhausted_retries_use_content_fallback() -> None:
    sleeps: list[float] = []
    client = FakeClient([GenerationError("a"), GenerationError("b"), GenerationError("c")])

    result = Summarizer(client, sleep=sleeps.append).summarize(make_job(), arabic_plugin())

    assert len(client.prompts) == 3
    assert sleeps == [2.0, 4.0]
    assert result.used_fallback
    assert "Prepare monthly financial reports." in result.summary
    assert "راجع رابط الوظيفة" not in result.summary
    assert result.category == "محاسبة ومالية"


def test_missing_client_falls_back_immediately() -> None:
    result = Summarizer(None).summarize(make_job(description=""), arabic_plugin())
    assert result.used_fallback
    assert VISIT_LINK in result.summary


def test_known_category_is_translated_and_not_requested() -> None:
    client = FakeClient(["📋 الوصف الوظيفي:\nدعم فني."])

    result = Summarizer(client).summarize(make_job(category="Computers/IT"), arabic_plugin())

    assert "🏷️ الفئة" not in client.prompts[0]
    assert result.category == "تقنية معلومات"


def test_unknown_category_is_requested_from_the_model() -> None:
    client = FakeClient(["📋 الوصف الوظيفي:\nدعم فني."])
    result = Summarizer(client).summarize(make_job(title="Driver", description="Drive the team"), arabic_plugin())
    assert "🏷️ الفئة: [اختر واحدة فقط من:" in client.prompts[0]
    assert result.category == OTHER


def test_english_source_prompt_carries_apply_context() -> None:
    client = FakeClient(["📋 الوصف الوظيفي:\nمنسق مشاريع.\n\n📧 كيفية التقديم:\n🔗 https://apply.test/1"])
    job = make_job(source="reliefweb", application_links=("https://apply.test/1",), how_to_apply="Apply online")

    result = Summarizer(client).summarize(job, english_plugin())

    prompt = client.prompts[0]
    assert "translate it to Arabic" in prompt
    assert "SOURCE CONTEXT: Humanitarian board" in prompt
    assert "https://apply.test/1" in prompt
    assert "MAXIMUM 250 characters" in prompt
    assert result.summary.count(APPLY_HEADING) == 1


def test_template_override_replaces_family_template() -> None:
    client = FakeClient(["📋 الوصف الوظيفي:\nنص."])
    summarizer = Summarizer(client, template_overrides={ARABIC: "CUSTOM {{description}}{{unknown}}"})
    summarizer.summarize(make_job(), arabic_plugin())
    assert client.prompts == ["CUSTOM Prepare monthly financial reports."]


def test_stored_source_override_replaces_prompt_settings() -> None:
    client = FakeClient([MODEL_REPLY])
    summarizer = Summarizer(
        client,
        config_overrides={"yemenhr": {"source_hint": "Aden bank postings", "apply_fallback": "راسلنا", "unknown": 1}},
    )

    result = summarizer.summarize(make_job(), arabic_plugin())

    assert "SOURCE CONTEXT: Aden bank postings" in client.prompts[0]
    assert "راسلنا" in result.summary


def test_merge_prompt_config_keeps_unset_fields() -> None:
    base = PromptConfig(include_how_to_apply=True, source_hint="hint", apply_fallback=None)
    assert merge_prompt_config(base, None) is base
    merged = merge_prompt_config(base, {"include_how_to_apply": False, "other": "x"})
    assert merged == PromptConfig(include_how_to_apply=False, source_hint="hint", apply_fallback=None)


def test_clean_generated_drops_preamble_and_markdown() -> None:
    assert clean_generated("Okay.\n📋 **نص** [رابط](https://a.test)") == "📋 نص رابط: https://a.test"
    assert clean_generated("no marker here") == "no marker here"


def test_build_prompt_limits_depend_on_apply_section() -> None:
    without = build_prompt(TEMPLATES[ARABIC], "desc", PromptConfig())
    assert "MAXIMUM 350 characters" in without
    assert "MAXIMUM 380 characters" in without
    assert "DO NOT include any how-to-apply section" in without
    assert APPLY_HEADING not in without

    with_apply = build_prompt(TEMPLATES[ENGLISH], "desc", PromptConfig(include_how_to_apply=True), apply_context="\nCTX")
    assert "MAXIMUM 400 characters" in with_apply
    assert APPLY_HEADING in with_apply
    assert "CTX" in with_apply


def test_render_and_template_lookup() -> None:
    assert render_template("{{a}}-{{b}}", {"a": "x"}) == "x-"
    assert template_for("unknown") == TEMPLATES[ARABIC]
    assert template_for(ENGLISH, {ENGLISH: ""}) == TEMPLATES[ENGLISH]


def test_retry_policy_decisions() -> None:
    policy = RetryPolicy(max_attempts=3, base_delay_seconds=2.0)
    error = GenerationError("x")
    assert policy.decide(0, error) is RetryDecision.RETRY
    assert policy.decide(1, error) is RetryDecision.RETRY
    assert policy.decide(2, error) is RetryDecision.FALLBACK
    assert [policy.delay_for(n) for n in range(3)] == [2.0, 4.0, 8.0]

    outcome = policy.execute(lambda: "done", sleep=lambda seconds: None)
    assert outcome.state is RetryState.SUCCEEDED
    assert outcome.attempts == 1


def test_client_posts_chat_completion() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "نص"}}]})

    client = TextGenerationClient("https://ai.test/v1/", "key", "model-x", client=mock_client(handler))

    assert client.generate("hello") == "نص"
    assert seen["url"] == "https://ai.test/v1/chat/completions"
    assert seen["auth"] == "Bearer key"
    assert seen["body"]["model"] == "model-x"
    assert seen["body"]["messages"][-1] == {"role": "user", "content": "hello"}


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"error": "boom"}),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, json={"choices": [{"message": {"content": ""}}]}),
    ],
)
def test_client_raises_on_unusable_response(response: httpx.Response) -> None:
    client = TextGenerationClient("https://ai.test/v1", "key", "m", client=mock_client(lambda request: response))
    with pytest.raises(GenerationError):
        client.generate("hello")


def test_extract_generated_text_accepts_known_shapes() -> None:
    assert extract_generated_text({"response": "a"}) == "a"
    assert extract_generated_text({"output_text": "b"}) == "b"
    assert extract_generated_text({"output": [{"content": [{"type": "output_text", "text": "c"}]}]}) == "c"
    assert extract_generated_text({"unexpected": True}) is None
    assert extract_generated_text(["not", "a", "dict"]) is None


def test_arabic_dates_and_header() -> None:
    assert format_arabic_date("03-02-2026") == "03 فبراير 2026"
    assert format_arabic_date("22 Feb, 26") == "22 فبراير 2026"
    assert format_arabic_date(None) == UNSPECIFIED
    assert format_arabic_date("open until filled") == "open until filled"
    header = build_job_header(make_job(location=None))
    assert f"📍 الموقع:\n{UNSPECIFIED}" in header


def test_fallback_lists_contacts_by_kind() -> None:
    job = make_job(application_links=("https://forms.gle/x", "hr@acme.org", "+967777123456"))
    text = build_fallback(job)
    assert "🔗 رابط: https://forms.gle/x" in text
    assert "📩 إيميل: hr@acme.org" in text
    assert "📱 واتساب/هاتف: +967777123456" in text


def test_category_helpers() -> None:
    assert extract_category("🏷️ الفئة: هندسة", "yemenhr") == "هندسة"
    assert extract_category("🏷️ الفئة: هندسة مدنية", "yemenhr") == "هندسة"
    assert extract_category("🏷️ الفئة: طيران", "yemenhr") == OTHER
    assert extract_category("no line", "yemenhr") == ""
    assert extract_category("🏷️ الفئة:   \n📋 الوصف", "yemenhr") == OTHER
    assert remove_category_line("a\n🏷️ الفئة: هندسة\nb") == "a\nb"
    assert classify_by_keywords("WASH Officer", "", "reliefweb") == "مياه وصرف صحي"
    assert classify_by_keywords("Staff Nurse", "") == "رعاية صحية"
