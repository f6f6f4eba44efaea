"""Formative feedback generation through the Anthropic Messages API."""
from __future__ import annotations

import json
import logging
from typing import Any, Optional, Protocol

from anthropic import AsyncAnthropic
from pydantic import ValidationError

from lara.errors import GenerationFailed
from lara.models import Feedback

logger = logging.getLogger(__name__)

MAX_STRENGTHS = 3
MAX_GROWTH_AREAS = 2
MAX_NEXT_STEPS = 2
MAX_CTA_LENGTH = 30

SYSTEM_PROMPT_TEMPLATE = """You are LARA, a formative feedback assistant.

CRITICAL: Respond with ONLY valid JSON. No introductory text, no markdown. Start with {{ and end with }}.

## CORE PRINCIPLES

1. Three Questions Framework. Every response answers:
- "Where am I going?" -> goal (restate the learning objective)
- "How am I going?" -> strengths and growth_areas, with evidence from the work
- "Where to next?" -> next_steps, immediately actionable

2. Focus on the work, not the person. Never praise ability ("you're smart", "natural talent")
and never compare to peers. Item types: task (what was done), process (strategies),
self_reg (metacognition).

3. Be specific. Every strength and growth area quotes the student's work in "anchors".
Avoid vague phrases such as "Good job", "Add more detail", "Be clearer", "Needs work".

4. Concise and high impact: at most 2 strengths, 1-2 growth_areas, 1-2 next_steps.
Keep each text under 100 words and each anchor under 20 words.

5. Emotionally safe: always include at least one genuine strength and frame growth areas
as opportunities.

6. Align to the success criteria. Link each item to a criterion with criterion_ref (0-based
index). Never evaluate against criteria the teacher did not provide.

## TASK CONTEXT

Task Prompt: "{prompt}"

Success Criteria:
{criteria}

## MASTERY DETECTION
Set "mastery_achieved" to true ONLY if the work meets ALL the success criteria. When it is
true, next_steps are optional "challenge yourself" extensions rather than required fixes.

## OUTPUT FORMAT

{{
  "goal": "What success looks like, based on the criteria",
  "mastery_achieved": true,
  "strengths": [
    {{"id": "str-0", "type": "task", "text": "...", "anchors": ["quote"], "criterion_ref": 0}}
  ],
  "growth_areas": [
    {{"id": "grow-0", "type": "process", "text": "...", "anchors": ["quote"], "criterion_ref": 0}}
  ],
  "next_steps": [
    {{
      "id": "next-0",
      "action_verb": "Add|Revise|Define|Explain|Restructure",
      "target": "specific part of the work",
      "success_indicator": "what success looks like",
      "reflection_prompt": "a question for the student",
      "cta_text": "30 characters or fewer",
      "action_type": "revise"
    }}
  ]
}}"""


class FeedbackGenerator(Protocol):
    async def generate(self, prompt: str, criteria: list[str], submission_text: str) -> Feedback: ...


def build_system_prompt(prompt: str, criteria: list[str]) -> str:
    numbered = "\n".join(f"{index}. {criterion}" for index, criterion in enumerate(criteria))
    return SYSTEM_PROMPT_TEMPLATE.format(prompt=prompt, criteria=numbered)


def extract_json_object(text: str) -> str:
    """Return the outermost ``{...}`` block, ignoring code fences and chatter."""
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    cleaned = cleaned.strip()

    start = cleaned.find("{")
    if start == -1:
        raise GenerationFailed(f"Response did not contain JSON. Started with: {cleaned[:50]!r}")

    depth = 0
    for index in range(start, len(cleaned)):
        if cleaned[index] == "{":
            depth += 1
        elif cleaned[index] == "}":
            depth -= 1
            if depth == 0:
                return cleaned[start : index + 1]
    raise GenerationFailed("Response contained incomplete JSON.")


def normalize_feedback(data: dict[str, Any]) -> Feedback:
    """Apply the post-generation limits and defaults, then validate."""
    strengths = list(data.get("strengths") or [])[:MAX_STRENGTHS]
    growth_areas = list(data.get("growth_areas") or [])[:MAX_GROWTH_AREAS]
    next_steps = list(data.get("next_steps") or [])[:MAX_NEXT_STEPS]

    for index, item in enumerate(strengths):
        item["id"] = f"str-{index}"
    for index, item in enumerate(growth_areas):
        item["id"] = f"grow-{index}"
    for index, step in enumerate(next_steps):
        step["id"] = f"next-{index}"
        step["cta_text"] = (step.get("cta_text") or "")[:MAX_CTA_LENGTH] or "Continue"
        step["reflection_prompt"] = step.get("reflection_prompt") or "What will you try differently?"

    if not strengths:
        strengths.append(
            {
                "id": "str-fallback",
                "type": "task",
                "text": "You made an attempt to address the task",
                "anchors": [],
                "criterion_ref": None,
            }
        )

    mastery = data.get("mastery_achieved")
    if not isinstance(mastery, bool):
        mastery = not growth_areas

    try:
        return Feedback(
            goal=data.get("goal") or "",
            mastery_achieved=mastery,
            strengths=strengths,
            growth_areas=growth_areas,
            next_steps=next_steps,
        )
    except ValidationError as exc:
        raise GenerationFailed(f"Feedback did not match the expected shape: {exc.error_count()} errors") from exc


class AnthropicFeedbackGenerator:
    """Calls Claude with the formative feedback prompt and parses its JSON reply."""

    def __init__(self, api_key: Optional[str], model: str, max_tokens: int = 8192):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self._client: Optional[AsyncAnthropic] = None

    @property
    def client(self) -> AsyncAnthropic:
        # Built lazily so the service starts without credentials.
        if self._client is None:
            self._client = AsyncAnthropic(api_key=self.api_key)
        return self._client

    async def generate(self, prompt: str, criteria: list[str], submission_text: str) -> Feedback:
        try:
            message = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=build_system_prompt(prompt, criteria),
                messages=[{"role": "user", "content": submission_text}],
            )
        except Exception as exc:
            raise GenerationFailed(f"Feedback request failed: {exc}") from exc

        if message.stop_reason == "max_tokens":
            logger.error("Feedback response was truncated at %s tokens", self.max_tokens)
            raise GenerationFailed("Response was truncated - feedback too long.")

        text = next((block.text for block in message.content if block.type == "text"), None)
        if not text:
            raise GenerationFailed("No text content in response.")

        raw = extract_json_object(text)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("Could not parse feedback JSON: %s", raw[:500])
            raise GenerationFailed("Failed to parse response as JSON.") from exc
        return normalize_feedback(data)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
