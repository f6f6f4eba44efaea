"""Quality checks run over generated feedback before a teacher reviews it."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from lara.models import Feedback, FeedbackItem

STRONG = "strong"
SOFT = "soft"

ABILITY_PRAISE_PATTERNS = [
    re.compile(r"you('re| are) (so |very |really )?(smart|brilliant|talented|gifted|clever|genius)", re.I),
    re.compile(r"such a (smart|brilliant|talented|gifted|clever) (student|writer|thinker)", re.I),
    re.compile(r"natural (talent|ability|gift)", re.I),
    re.compile(r"born to (write|learn|succeed)", re.I),
    re.compile(r"you('re| are) a natural", re.I),
]

PEER_COMPARISON_PATTERNS = [
    re.compile(r"better than (other|most|many|your) (students|classmates|peers)", re.I),
    re.compile(r"top (student|performer|of the class)", re.I),
    re.compile(r"ahead of (your |the )?(class|peers|others)", re.I),
    re.compile(r"one of the best", re.I),
    re.compile(r"compared to (other|your) (students|classmates)", re.I),
    re.compile(r"outperform(ed|ing|s)? (your |other )?(peers|classmates)", re.I),
]

VAGUE_COMMENT_PATTERNS = [
    re.compile(r"^good (job|work|effort)\.?$", re.I),
    re.compile(r"^(nice|great|excellent) (work|job|effort)\.?$", re.I),
    re.compile(r"^well done\.?$", re.I),
    re.compile(r"add more detail", re.I),
    re.compile(r"needs (more )?work", re.I),
    re.compile(r"try harder", re.I),
    re.compile(r"be more specific", re.I),
    re.compile(r"could be better", re.I),
    re.compile(r"needs improvement", re.I),
]

INVENTED_CRITERIA_PATTERNS = [
    re.compile(r"you (should|need to|must) (have |also )?(include|add|mention)", re.I),
    re.compile(r"missing (a |the )?(key |important |critical )?(element|component|aspect)", re.I),
    re.compile(r"didn't (include|add|mention|address)", re.I),
]


@dataclass
class FeedbackWarning:
    id: str
    type: str
    severity: str
    title: str
    location: Optional[str] = None
    matched_text: Optional[str] = None

    def __str__(self) -> str:
        where = f" ({self.location})" if self.location else ""
        return f"{self.type}: {self.title}{where}"


def _first_match(text: str, patterns: Iterable[re.Pattern]) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(0)
    return None


def _located_items(feedback: Feedback) -> list[tuple[FeedbackItem, str]]:
    return [(item, f"Strength #{i + 1}") for i, item in enumerate(feedback.strengths)] + [
        (item, f"Growth Area #{i + 1}") for i, item in enumerate(feedback.growth_areas)
    ]


def _slug(location: str) -> str:
    return re.sub(r"[^a-z0-9]", "-", location.lower())


def _pattern_check(
    feedback: Feedback, patterns: list[re.Pattern], kind: str, severity: str, title: str
) -> list[FeedbackWarning]:
    warnings = []
    for item, location in _located_items(feedback):
        matched = _first_match(item.text, patterns)
        if matched:
            warnings.append(
                FeedbackWarning(f"{kind}-{_slug(location)}", kind, severity, title, location, matched)
            )
    return warnings


def check_missing_feedback_types(feedback: Feedback) -> list[FeedbackWarning]:
    types = {item.type for item in feedback.strengths + feedback.growth_areas}
    if {"task", "process", "self_reg"} <= types:
        return []
    return [FeedbackWarning("missing-feedback-types", "missing_feedback_types", SOFT, "Incomplete Feedback Balance")]


def check_anchors(feedback: Feedback) -> list[FeedbackWarning]:
    warnings = []
    items = _located_items(feedback)
    unanchored = [(item, location) for item, location in items if not item.anchors]
    for _, location in unanchored:
        warnings.append(
            FeedbackWarning(f"missing-anchors-{_slug(location)}", "missing_anchors", SOFT, "Missing Evidence", location)
        )
    if items and (len(items) - len(unanchored)) / len(items) < 0.5:
        warnings.append(FeedbackWarning("low-specificity", "low_specificity", SOFT, "Low Specificity"))
    return warnings


def check_counts(feedback: Feedback) -> list[FeedbackWarning]:
    warnings = []
    if len(feedback.strengths) > 3:
        warnings.append(FeedbackWarning("excessive-strengths", "excessive_feedback_count", SOFT, "Too Many Strengths"))
    if len(feedback.growth_areas) > 2:
        warnings.append(
            FeedbackWarning("excessive-growth-areas", "excessive_feedback_count", SOFT, "Too Many Growth Areas")
        )
    if len(feedback.next_steps) > 3:
        warnings.append(FeedbackWarning("excessive-next-steps", "excessive_feedback_count", SOFT, "Too Many Next Steps"))
    if not feedback.strengths:
        warnings.append(FeedbackWarning("no-strengths", "no_strengths", STRONG, "No Strengths Identified"))
    return warnings


def check_next_steps(feedback: Feedback) -> list[FeedbackWarning]:
    warnings = []
    for index, step in enumerate(feedback.next_steps):
        location = f"Next Step #{index + 1}"
        if not step.reflection_prompt:
            warnings.append(
                FeedbackWarning(f"missing-reflection-{index}", "missing_reflection", SOFT, "Missing Reflection Prompt", location)
            )
        if len(step.cta_text) > 40:
            warnings.append(
                FeedbackWarning(f"cta-too-long-{index}", "cta_too_long", SOFT, "CTA Text Too Long", location, step.cta_text)
            )
    return warnings


def check_invented_criteria(feedback: Feedback, success_criteria: list[str]) -> list[FeedbackWarning]:
    """Heuristic: growth areas that demand something no criterion mentions."""
    criteria_words = [[word for word in criterion.lower().split() if len(word) > 3] for criterion in success_criteria]
    warnings = []
    for index, item in enumerate(feedback.growth_areas):
        text = item.text.lower()
        matches_criteria = False
        for words in criteria_words:
            overlap = [word for word in words if word in text]
            if len(overlap) >= 2 or (len(words) <= 2 and overlap):
                matches_criteria = True
                break
        if not matches_criteria and _first_match(item.text, INVENTED_CRITERIA_PATTERNS):
            warnings.append(
                FeedbackWarning(
                    f"invented-criteria-growth-{index}",
                    "invented_criteria",
                    STRONG,
                    "Possible Invented Criteria",
                    f"Growth Area #{index + 1}",
                )
            )
    return warnings


def validate_feedback(feedback: Feedback, success_criteria: Optional[list[str]] = None) -> list[FeedbackWarning]:
    warnings: list[FeedbackWarning] = []
    warnings += _pattern_check(feedback, ABILITY_PRAISE_PATTERNS, "ability_praise", STRONG, "Ability Praise Detected")
    warnings += _pattern_check(feedback, PEER_COMPARISON_PATTERNS, "peer_comparison", STRONG, "Peer Comparison Detected")
    warnings += _pattern_check(feedback, VAGUE_COMMENT_PATTERNS, "vague_comment", SOFT, "Vague Comment")
    warnings += check_missing_feedback_types(feedback)
    warnings += check_anchors(feedback)
    warnings += check_counts(feedback)
    warnings += check_next_steps(feedback)
    if success_criteria:
        warnings += check_invented_criteria(feedback, success_criteria)
    return warnings
