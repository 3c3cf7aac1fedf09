"""Parsing and cleanup of raw model output.

Models wrap JSON in code fences, prefix answers with labels, number
their lines and repeat themselves. Everything here turns that into the
shapes callers expect, or raises MalformedResponse when nothing usable
is left.
"""

import json
import re
import unicodedata

from vocab_gateway.enrichment.models import Candidate
from vocab_gateway.errors import MalformedResponse

ALLOWED_POS = [
    "Noun",
    "Verb",
    "Adjective",
    "Adverb",
    "Pronoun",
    "Preposition",
    "Conjunction",
    "Determiner",
    "Interjection",
    "Phrase",
    "Other",
]

_POS_ALIASES = {
    "NOUN": "Noun",
    "VERB": "Verb",
    "ADJECTIVE": "Adjective",
    "ADJ": "Adjective",
    "ADVERB": "Adverb",
    "ADV": "Adverb",
    "PRONOUN": "Pronoun",
    "PRON": "Pronoun",
    "PREPOSITION": "Preposition",
    "PREP": "Preposition",
    "CONJUNCTION": "Conjunction",
    "CONJ": "Conjunction",
    "DETERMINER": "Determiner",
    "DET": "Determiner",
    "INTERJECTION": "Interjection",
    "INT": "Interjection",
    "PHRASE": "Phrase",
    "OTHER": "Other",
}

MAX_BACK_HINTS = 8

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```\s*$")
_IPA_PREFIX = re.compile(r"^\s*(IPA\s*[:\-]|/IPA/\s*[:\-])\s*", re.IGNORECASE)
_BULLET = re.compile(r"^\s*[-*]\s+")
_NUMBERING = re.compile(r"^\s*\d+\s*[).]\s+")
_SLASHED_IPA = re.compile(r"/[^/\r\n]{1,64}/")
_IPA_EXTRA_CHARS = set("ˈˌː.-()[]{}/")


def strip_code_fences(text: str) -> str:
    t = text.strip()
    return _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", t)).strip()


def parse_json_object(text: str) -> dict | None:
    """Return the outermost {...} object in `text`, or None."""
    t = strip_code_fences(text)
    start, end = t.find("{"), t.rfind("}")
    if start < 0 or end <= start:
        return None
    try:
        obj = json.loads(t[start:end + 1])
    except json.JSONDecodeError:
        return None
    return obj if isinstance(obj, dict) else None


def normalize_for_match(text: str) -> str:
    t = text.lower()
    t = re.sub("[‘’“”]", '"', t)
    t = re.sub(r"[^\w\s]+|_", " ", t)
    return re.sub(r"\s+", " ", t).strip()


def normalize_pos(pos: str) -> str:
    raw = pos.strip()
    if not raw:
        return ""
    if raw.upper() in _POS_ALIASES:
        return _POS_ALIASES[raw.upper()]
    return raw if raw in ALLOWED_POS else ""


def dedupe_candidates(items) -> list[Candidate]:
    """Drop empty and duplicate glosses, keeping first occurrence order."""
    out: list[Candidate] = []
    seen = set()
    for item in items if isinstance(items, list) else []:
        if not isinstance(item, dict):
            continue
        vi = str(item.get("vi") or "").strip()
        key = normalize_for_match(vi)
        if not key or key in seen:
            continue
        seen.add(key)
        raw_pos = str(item.get("pos") or "")
        back = item.get("back")
        out.append(Candidate(
            vi=vi,
            pos=normalize_pos(raw_pos) or raw_pos.strip(),
            back=[str(b).strip() for b in back if str(b or "").strip()][:MAX_BACK_HINTS]
            if isinstance(back, list) else [],
        ))
    return out


def parse_meaning(raw: str) -> tuple[list[Candidate], str]:
    """Parse the meaning JSON into ranked candidates and the model's suggested meaning.

    The suggested meaning is ranked first when it matches a candidate. It
    is returned on its own so a reply with an empty candidate list still
    yields something to show.
    """
    obj = parse_json_object(raw)
    if obj is None:
        raise MalformedResponse("AI service returned no JSON object for meaning candidates")

    candidates = dedupe_candidates(obj.get("candidates"))
    suggested_text = str(obj.get("meaningSuggested") or "").strip()
    suggested = normalize_for_match(suggested_text)
    if suggested:
        for i, candidate in enumerate(candidates):
            if normalize_for_match(candidate.vi) == suggested:
                candidates.insert(0, candidates.pop(i))
                break
    return candidates, suggested_text


def _first_line(text: str) -> str:
    for line in text.splitlines():
        if line.strip():
            return line.strip()
    return ""


def sanitize_ipa(raw: str) -> str:
    out = _first_line(raw.strip().strip('"'))
    out = _IPA_PREFIX.sub("", out)
    out = _NUMBERING.sub("", _BULLET.sub("", out)).strip()

    match = _SLASHED_IPA.search(out)
    if match:
        return match.group(0)

    kept = "".join(
        c for c in out
        if unicodedata.category(c)[0] in "LM" or c.isspace() or c in _IPA_EXTRA_CHARS
    )
    core = kept.strip().strip("/").strip()
    return f"/{core}/" if core else ""


def clean_sentence(raw: str) -> str:
    out = _first_line(raw).strip('"').strip()
    out = _NUMBERING.sub("", _BULLET.sub("", out)).strip()
    return out.strip('"').strip()
