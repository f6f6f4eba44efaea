"""Revision alignment detection.

Judges whether a revision touched what the student's chosen next step asked
for. The answer is deliberately coarse: ``aligned`` when the changed text
shares vocabulary with the step, ``uncertain`` otherwise.
"""
from __future__ import annotations

import difflib
import re
from typing import Optional, Protocol

from lara.models import DetectionResult, NextStep

_WORD = re.compile(r"[a-z0-9']+")
_STOPWORDS = frozenset(
    "the a an and or of to in on for with your you this that is are be it as at by from more".split()
)


class AlignmentDetector(Protocol):
    def detect(self, previous: str, current: str, step: NextStep) -> Optional[DetectionResult]: ...


def _words(text: str) -> set[str]:
    return {word for word in _WORD.findall(text.lower()) if len(word) > 2 and word not in _STOPWORDS}


def changed_text(previous: str, current: str) -> str:
    """Text present in ``current`` that was inserted or replaced since ``previous``."""
    matcher = difflib.SequenceMatcher(a=previous, b=current, autojunk=False)
    return " ".join(
        current[j1:j2] for tag, _, _, j1, j2 in matcher.get_opcodes() if tag in ("insert", "replace")
    )


class KeywordAlignmentDetector:
    def __init__(self, min_change_ratio: float = 0.02):
        self.min_change_ratio = min_change_ratio

    def detect(self, previous: str, current: str, step: NextStep) -> Optional[DetectionResult]:
        if previous.strip() == current.strip():
            return "uncertain"
        similarity = difflib.SequenceMatcher(a=previous, b=current, autojunk=False).ratio()
        if 1 - similarity < self.min_change_ratio:
            return "uncertain"

        added = _words(changed_text(previous, current))
        step_terms = _words(" ".join(filter(None, [step.target, step.success_indicator, step.action_verb])))
        return "aligned" if added & step_terms else "uncertain"
