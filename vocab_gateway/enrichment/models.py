"""Result types returned by the enrichment service."""

from dataclasses import dataclass, field


@dataclass
class Candidate:
    vi: str
    pos: str = ""
    back: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"vi": self.vi, "pos": self.pos, "back": list(self.back)}


@dataclass
class EnrichmentResult:
    """Auto-meaning outcome. candidates are ranked, most likely first."""

    request_id: str
    word: str
    context_sentence_vi: str = ""
    candidates: list[Candidate] = field(default_factory=list)
    fallback_meaning: str = ""

    @property
    def meaning_suggested(self) -> str:
        # Always the top candidate when there is one
        if self.candidates:
            return self.candidates[0].vi
        return self.fallback_meaning

    def to_dict(self) -> dict:
        return {
            "requestId": self.request_id,
            "word": self.word,
            "meaningSuggested": self.meaning_suggested,
            "contextSentenceVi": self.context_sentence_vi,
            "candidates": [c.to_dict() for c in self.candidates],
        }
