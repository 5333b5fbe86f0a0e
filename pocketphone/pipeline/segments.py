"""Model reply parsing into a mood tag and chat bubbles."""

import re

from pocketphone.models import SegmentedReply
from pocketphone.prompts import MIN_FRAGMENTS, SPLIT_TOKEN

_LEADING_STATUS = re.compile(r"^\s*\[STATUS:\s*(.*?)\]")
_ANY_STATUS = re.compile(r"\[STATUS:.*?\]")

# A run of terminators ends one sentence: "真的吗？！" stays one bubble.
# Western .!? only count before whitespace, another terminator or the end,
# so "3.5" and "example.com" stay whole.
_TERMINATORS = re.compile(r"((?:[。！？\n]|[.!?](?=[\s.!?。！？]|$))+)")


def extract_mood(text: str) -> str | None:
    """Return the `[STATUS: ...]` mood at the start of the reply, if any."""
    match = _LEADING_STATUS.match(text)
    if not match:
        return None
    return match.group(1).strip() or None


def split_sentences(text: str) -> list[str]:
    """Split on sentence terminators, keeping each terminator on its sentence."""
    pieces = _TERMINATORS.split(text)
    sentences: list[str] = []
    for i in range(0, len(pieces), 2):
        terminator = pieces[i + 1] if i + 1 < len(pieces) else ""
        sentences.append((pieces[i] + terminator).strip())
    return [s for s in sentences if len(s) >= 2]


def segment(raw: str) -> SegmentedReply:
    """Parse a raw reply into a mood and an ordered list of fragments.

    Format: [STATUS: mood] [MSG_SPLIT] part [MSG_SPLIT] part ...
    When the model produced fewer than MIN_FRAGMENTS parts, the parts are
    re-joined and re-split on sentence terminators instead. Empty output is
    an empty fragment list, not an error.
    """
    mood = extract_mood(raw)
    cleaned = _ANY_STATUS.sub("", raw).strip()

    parts = [p.strip() for p in cleaned.split(SPLIT_TOKEN)]
    parts = [p for p in parts if p]

    if len(parts) < MIN_FRAGMENTS:
        parts = split_sentences(" ".join(parts))

    return SegmentedReply(mood=mood, fragments=parts)
