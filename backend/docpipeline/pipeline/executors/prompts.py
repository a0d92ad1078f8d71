"""
Prompts for every operation.

All prompt text is centralised here so it can be iterated on without
touching executor logic.  Every prompt asks for a single JSON object;
paragraphs are numbered from 0 inside the batch and the model refers
back to them through `paragraphIndex`.
"""

from __future__ import annotations

import json

from docpipeline.core.constants import AdaptStyle
from docpipeline.documents.structure import Batch, Paragraph


def number_paragraphs(paragraphs: list[Paragraph]) -> str:
    return "\n\n".join(f"[{i}] {p.text}" for i, p in enumerate(paragraphs))


# ═══════════════════════════════════════════════════════════
#  Adjust
# ═══════════════════════════════════════════════════════════

def _creativity_note(creativity: int) -> str:
    if creativity < 3:
        return "(Conservative - apply instructions with minimal changes, stay as close as possible to the original text)"
    if creativity < 7:
        return "(Moderate - apply instructions with some flexibility in rephrasing, but ONLY make changes related to the instructions)"
    return "(Creative - apply instructions with freedom to rephrase significantly, but ONLY make changes that fulfill the instructions)"


def adjust_prompt(batch: Batch, instructions: str, creativity: int) -> str:
    return f"""You are an expert document editor. You have been given the following instructions by the user:

INSTRUCTIONS:
{instructions}

SECTION: "{batch.section.title}"

PARAGRAPHS:
{number_paragraphs(batch.paragraphs)}

TASK:
Analyze the paragraphs and suggest adjustments that follow the user's instructions EXACTLY AND ONLY. Do NOT suggest improvements, clarifications, or changes that are not explicitly requested in the instructions above.

Creativity level: {creativity}/10
{_creativity_note(creativity)}

Return your response as JSON in this exact format:
{{
  "adjustments": [
    {{
      "paragraphIndex": 0,
      "originalText": "exact original text",
      "adjustedText": "your adjusted version that addresses the instructions",
      "reason": "why this change was made to fulfill the instructions",
      "instructionReference": "which part of the instructions this addresses"
    }}
  ]
}}

CRITICAL RULES:
- ONLY make changes that directly address the user's instructions
- Only include paragraphs that need adjustment to fulfill the instructions
- Match the originalText EXACTLY as it appears
- The creativity level controls HOW you apply the instructions, NOT whether to make additional improvements
"""


# ═══════════════════════════════════════════════════════════
#  Improve
# ═══════════════════════════════════════════════════════════

IMPROVE_CATEGORIES = ("grammar", "clarity", "coherence", "style", "conciseness")


def improve_context_prompt(section_titles: list[str], sample: str) -> str:
    outline = "\n".join(f"- {title}" for title in section_titles if title) or "(no headings)"
    return f"""You are reviewing a long document before suggesting writing improvements.

OUTLINE:
{outline}

OPENING TEXT:
{sample}

Describe the document so later reviewers of individual sections keep a consistent voice.
Respond with ONLY a JSON object:
{{
  "summary": "two or three sentences on what the document is about",
  "tone": "the prevailing tone and register",
  "audience": "who the document is written for",
  "key_terms": ["terms that must be kept as they are"]
}}"""


def improve_prompt(batch: Batch, global_context: dict) -> str:
    categories = ", ".join(f'"{c}"' for c in IMPROVE_CATEGORIES)
    return f"""You are an experienced editor improving a document's writing quality.

DOCUMENT CONTEXT:
{json.dumps(global_context, ensure_ascii=False, indent=2)}

SECTION: "{batch.section.title}"

PARAGRAPHS:
{number_paragraphs(batch.paragraphs)}

Suggest improvements to grammar, clarity, coherence, style and concision that keep the
document's tone and key terms. Skip paragraphs that are already good.

Respond with ONLY a JSON object:
{{
  "improvements": [
    {{
      "paragraphIndex": 0,
      "originalText": "exact original text",
      "improvedText": "improved version",
      "reason": "what the change fixes",
      "category": one of {categories}
    }}
  ]
}}

Match the originalText EXACTLY as it appears."""


# ═══════════════════════════════════════════════════════════
#  Adapt
# ═══════════════════════════════════════════════════════════

ADAPTATION_TYPES = ("style", "tone", "terminology", "structure")

_STYLE_DESCRIPTIONS = {
    AdaptStyle.ACADEMIC: "formal academic style with precise terminology, citations, and scholarly tone",
    AdaptStyle.PROFESSIONAL: "professional business style with clear, concise language suitable for corporate environments",
    AdaptStyle.SIMPLIFIED: "simplified language accessible to general audiences, avoiding jargon and complex terms",
}


def adapt_prompt(
    batch: Batch,
    style: AdaptStyle,
    target_audience: str | None,
    custom_instructions: str | None,
) -> str:
    if style == AdaptStyle.CUSTOM:
        description = custom_instructions or target_audience or "general audience"
    else:
        description = _STYLE_DESCRIPTIONS[style]
    audience = f" for {target_audience}" if target_audience else ""
    types = ", ".join(f'"{t}"' for t in ADAPTATION_TYPES)

    return f"""You are a document adaptation expert. Analyze the following text from section "{batch.section.title}" and suggest adaptations to {description}{audience}.

For each paragraph that needs adaptation, provide:
- paragraphIndex: the number in brackets
- originalText: the exact original text (unchanged)
- adaptedText: the adapted version in the target style
- reason: brief explanation of the adaptation
- adaptationType: one of: {types}

Focus on paragraphs that would significantly benefit from adaptation. Skip paragraphs that are already appropriate for the target style.

Paragraphs to analyze:
{number_paragraphs(batch.paragraphs)}

Respond with ONLY a JSON object in this format:
{{
  "suggestions": [
    {{
      "paragraphIndex": 0,
      "originalText": "...",
      "adaptedText": "...",
      "reason": "...",
      "adaptationType": "..."
    }}
  ]
}}"""


# ═══════════════════════════════════════════════════════════
#  Update (legal norms)
# ═══════════════════════════════════════════════════════════

NORM_STATUSES = ("vigente", "alterada", "revogada", "substituida")


def detect_norms_prompt(batch: Batch) -> str:
    return f"""You are a legal analyst. Find every reference to a law, decree, regulation,
normative instruction or other legal norm in the paragraphs below.

PARAGRAPHS:
{number_paragraphs(batch.paragraphs)}

Respond with ONLY a JSON object:
{{
  "references": [
    {{
      "paragraphIndex": 0,
      "text": "the reference exactly as written, e.g. Lei nº 8.666/1993",
      "type": "lei | decreto | resolucao | portaria | instrucao_normativa | outro",
      "number": "8.666",
      "year": "1993"
    }}
  ]
}}

Return an empty list when there are no references."""


def verify_norms_prompt(references: list[dict]) -> str:
    listing = "\n".join(
        f"[{i}] {ref.get('text', '')} (context: {ref.get('context', '')[:300]})"
        for i, ref in enumerate(references)
    )
    statuses = ", ".join(f'"{s}"' for s in NORM_STATUSES)
    return f"""You are a legal analyst checking whether cited norms are still in force.

REFERENCES:
{listing}

For each reference decide its current status: {statuses}.
When the norm was amended, revoked or replaced, give the text that should replace the
citation in the document. When you are not certain, set "manualReview" to true.

Respond with ONLY a JSON object:
{{
  "results": [
    {{
      "index": 0,
      "status": "vigente",
      "updatedText": "replacement citation, or null",
      "explanation": "short justification",
      "manualReview": false
    }}
  ]
}}"""


# ═══════════════════════════════════════════════════════════
#  Translate
# ═══════════════════════════════════════════════════════════

def translate_prompt(batch: Batch, source_language: str | None, target_language: str) -> str:
    source = source_language or "the source language (detect it)"
    items = json.dumps(
        [{"index": i, "text": p.text} for i, p in enumerate(batch.paragraphs)],
        ensure_ascii=False,
        indent=2,
    )
    return f"""Translate each text below from {source} into {target_language}.

Keep meaning, tone, numbering, citations and proper names. Do not merge or split items.

TEXTS:
{items}

Respond with ONLY a JSON object:
{{
  "translations": [
    {{"index": 0, "text": "translated text"}}
  ]
}}"""
