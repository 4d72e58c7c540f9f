"""Prompt templates for the Arabic job summary.

Two template families exist because sources differ in input language:
``english`` sources need a full translation instruction, ``arabic`` sources
(Arabic listings with English fragments) only need summarizing into Arabic.
Operators can override a family's template through the ``settings`` table
under ``prompt_template:<family>``, and a single source's hint, apply fallback and
how-to-apply flag through that source's stored prompt override.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Mapping

from jobrelay.utils.config import SECTION_SEPARATOR

ENGLISH = "english"
ARABIC = "arabic"

SETTING_KEY_PREFIX = "prompt_template:"

SUMMARY_MARKER = "📋"
APPLY_HEADING = "📧 كيفية التقديم:"


@dataclass(slots=True, frozen=True)
class PromptConfig:
    include_how_to_apply: bool = False
    source_hint: str | None = None
    apply_fallback: str | None = "راجع رابط الوظيفة أدناه"


DEFAULT_PROMPT_CONFIG = PromptConfig()
PROMPT_FIELDS = ("include_how_to_apply", "source_hint", "apply_fallback")


def merge_prompt_config(base: PromptConfig, override: Mapping[str, object] | None) -> PromptConfig:
    """Apply an operator override on top of a source's built-in prompt settings.

    Only keys named in ``PROMPT_FIELDS`` are honoured; anything else in the
    stored override is ignored.
    """
    if not override:
        return base
    changes = {key: value for key, value in override.items() if key in PROMPT_FIELDS}
    if "include_how_to_apply" in changes:
        changes["include_how_to_apply"] = bool(changes["include_how_to_apply"])
    return replace(base, **changes)

_OUTPUT_FORMAT = """Output ONLY this format (nothing else):

📋 الوصف الوظيفي:
[ملخص مختصر للوظيفة في 2-3 جمل بالعربية]
{{category_section}}{{apply_output_template}}"""

_RULES = """CRITICAL RULES:
- DO NOT include any introduction or preamble
- Respond ONLY in Arabic
- BE CONCISE - description section: MAXIMUM {{desc_limit}} characters, whole answer: MAXIMUM {{total_limit}} characters{{apply_limit_line}}
- NO markdown formatting (no **, no _, no []())
- Use plain text only
- PRESERVE all URLs, email addresses, and phone numbers EXACTLY as-is{{no_apply_rule}}"""

TEMPLATES: dict[str, str] = {
    ENGLISH: (
        "Translate this English job posting to Arabic and summarize it concisely.\n"
        "{{source_hint}}\n"
        "Job Description (in English):\n"
        "{{description}}{{apply_context}}\n\n"
        "- The content is in ENGLISH - translate it to Arabic\n"
        + _RULES
        + "\n\n"
        + _OUTPUT_FORMAT
    ),
    ARABIC: (
        "Summarize this job posting in Arabic. Parts of it may already be in Arabic; "
        "keep Arabic wording where it is already correct and translate the rest.\n"
        "{{source_hint}}\n"
        "Job Description:\n"
        "{{description}}{{apply_context}}\n\n"
        + _RULES
        + "\n\n"
        + _OUTPUT_FORMAT
    ),
}

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def render_template(template: str, values: Mapping[str, str]) -> str:
    """Replace ``{{name}}`` placeholders; unknown placeholders render empty."""
    return _PLACEHOLDER.sub(lambda match: values.get(match.group(1), ""), template)


def template_for(family: str, overrides: Mapping[str, str] | None = None) -> str:
    if overrides and overrides.get(family):
        return overrides[family]
    return TEMPLATES.get(family, TEMPLATES[ARABIC])


def build_prompt(
    template: str,
    description: str,
    config: PromptConfig,
    apply_context: str = "",
    category_choices: list[str] | None = None,
) -> str:
    include_apply = config.include_how_to_apply
    category_section = ""
    if category_choices:
        category_section = f"\n🏷️ الفئة: [اختر واحدة فقط من: {'، '.join(category_choices)}]\n"
    apply_output = ""
    if include_apply:
        apply_output = (
            f"\n\n{SECTION_SEPARATOR}\n\n{APPLY_HEADING}\n"
            "[معلومات التقديم فقط - لا تتجاوز 120 حرف:]\n📩 [إيميل] 🔗 [رابط] 📱 [واتساب]"
        )
    values = {
        "source_hint": f"\nSOURCE CONTEXT: {config.source_hint}\n" if config.source_hint else "",
        "description": description,
        "apply_context": apply_context if include_apply else "",
        "desc_limit": "250" if include_apply else "350",
        "total_limit": "400" if include_apply else "380",
        "apply_limit_line": "\n- How to apply section: MAXIMUM 120 characters total" if include_apply else "",
        "no_apply_rule": ""
        if include_apply
        else "\n- DO NOT include any how-to-apply section, contact information, emails, phone numbers, or application links",
        "category_section": category_section,
        "apply_output_template": apply_output,
    }
    return render_template(template, values)
