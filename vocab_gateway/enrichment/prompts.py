"""Prompt templates for the AI text service."""

import json

from vocab_gateway.enrichment.parsing import ALLOWED_POS

LANGUAGE_NAMES = {
    "en": "English",
    "vi": "Vietnamese",
    "fr": "French",
    "de": "German",
    "es": "Spanish",
    "ja": "Japanese",
    "ko": "Korean",
    "zh": "Chinese",
}

DIALECTS = {
    "US": "American English (US)",
    "UK": "British English (UK)",
}


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code.lower(), code)


def meaning_prompt(word: str, context: str, source: str, target: str) -> str:
    src, dst = language_name(source), language_name(target)
    lines = [
        f"You are a bilingual {src}→{dst} dictionary assistant.",
        f"Task: Given a selected term and an optional {src} context sentence, propose several "
        f"{dst} meanings (glosses) and a part of speech for each meaning.",
        "The meanings must fit the context when a context sentence is provided.",
        "",
        f'Selected term: "{word}"',
    ]
    if context:
        lines.append(f'Context sentence ({src}): "{context}"')
    lines += [
        "",
        "Output MUST be valid JSON only (no markdown, no commentary).",
        "Schema:",
        "{",
        '  "meaningSuggested": string,',
        '  "candidates": [',
        f'    {{ "vi": string, "pos": one of {json.dumps(ALLOWED_POS)}, "back": string[] }}',
        "  ]",
        "}",
        "Rules:",
        "- Provide 3 to 7 candidates if possible.",
        f"- Each candidate.vi is a short {dst} gloss, not a full sentence.",
        f"- back: short {src} hints or synonyms (0-5 items).",
        "- meaningSuggested must exactly equal one of candidates[i].vi (best for the context).",
        '- If the selected term is a multi-word expression, use pos="Phrase".',
    ]
    return "\n".join(lines) + "\n"


def translation_prompt(text: str, source: str, target: str) -> str:
    return (
        f"Translate the following text from {source} to {target}.\n"
        "Rules:\n"
        "- Output ONLY the translation, no extra commentary.\n"
        "- Preserve paragraph breaks and punctuation.\n"
        "- Keep names, numbers, and symbols unchanged unless they must be localized.\n"
        f"\nTEXT:\n<<<\n{text}\n>>>"
    )


def ipa_prompt(word: str, dialect: str) -> str:
    return (
        "You are a pronunciation helper.\n"
        f'Task: Provide the IPA pronunciation for the English word: "{word}" in {DIALECTS[dialect]}.\n'
        "Rules:\n"
        "- Output ONLY the IPA in slashes, e.g. /həˈloʊ/.\n"
        "- One line only. No extra text.\n"
        "- If multiple variants exist, choose the most common one.\n"
    )


def example_sentence_prompt(word: str, meaning: str, pos: str, context: str) -> str:
    lines = [
        "You are an English teacher writing a memorable example sentence for a vocabulary flashcard.",
        f'Task: Write exactly ONE natural English sentence that uses the word "{word}" correctly.',
    ]
    if meaning:
        lines.append(f'Meaning (Vietnamese gloss): "{meaning}"')
    if pos:
        lines.append(f'Part of speech: "{pos}"')
    if context:
        lines.append(f'Optional context (English): "{context}"')
    lines += [
        "Rules:",
        "- Output ONLY the single sentence (no quotes, no numbering, no explanation).",
        "- Keep it short, vivid, and easy to remember.",
        f'- It MUST contain the exact word "{word}" (case-insensitive is ok).',
    ]
    return "\n".join(lines) + "\n"
