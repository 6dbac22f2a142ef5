"""Coaching advice generation with generic fallbacks."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import openai

from ally.core.config import settings
from ally.observability.tracing import trace
from ally.services.context_engine import ContextualPrompt, UserContext, generate_contextual_prompt

logger = logging.getLogger(__name__)

MIN_NOTE_CHARS = 3
MAX_NOTE_CHARS = 1000

ONBOARDING_ADVICE = (
    "Nice one for starting, you don't need to write loads. Give yourself a score, then do one tiny "
    '"make life easier" action (water, food, fresh air), and that\'s enough for today.'
)

RESPONSE_RULES = """### RULES FOR INTERPRETING INPUT
1. NO PARROTING: if the user's text looks like a typo, fragment or is incoherent, do not quote it directly.
   Describe the feeling instead (e.g. "It sounds like things are a bit unclear or weighing on you right now.").
2. INTERPRET INTENT: if the text is short or unclear, treat the mood score ({score}/10) as the source of truth.
3. OBJECT PERMANENCE: if they mentioned a specific struggle in a previous session and are low again,
   reference that connection.

### OUTPUT FORMAT
- Write 2-3 short, warm sentences.
- Sentence 1 validates their state using their history and current mood.
- Sentence 2 offers a micro-observation or one tiny, frictionless next step.
- Tone: casual and supportive, like a smart friend, not a medical textbook.
- No emojis at the start of sentences. No bullet points."""


@dataclass
class CoachResult:
    advice: str
    source: str  # llm | fallback | onboarding | generic


class CoachConfigurationError(RuntimeError):
    """Raised when the coaching model cannot be called because it is not configured."""


def generic_advice(mood_score: float) -> str:
    if mood_score <= 3:
        return (
            "I'm here with you during this hard moment. Sometimes just showing up to check in is the win, "
            "you did that today. What's one tiny thing that might bring you a moment of comfort right now?"
        )
    if mood_score <= 5:
        return (
            "Thanks for checking in, showing up matters, even when things feel flat. Share what's going on "
            "and I can offer support tailored to your specific situation."
        )
    if mood_score <= 7:
        return (
            "You're in a steadier place right now, that's worth noticing. Tell me what's happening and I can "
            "help you make the most of this energy."
        )
    return (
        "Good to see you feeling good. Share what's contributing to this so we can spot the pattern and "
        "help you recreate it."
    )


def context_aware_generic_advice(ctx: UserContext, mood_score: float) -> str:
    """Advice for check-ins without a usable note, shaped by what we already know."""
    if ctx.total_check_ins == 0:
        return (
            "Good on you for starting this, even a quick check-in counts. If you've got nothing to write today, "
            "just pick one tiny comfort action (water, food, fresh air) and call that a win."
        )
    if mood_score <= 3:
        streak = ctx.current_streak
        streak_bit = ""
        if streak and streak.type == "low_mood" and streak.days >= 2:
            streak_bit = f"This looks like it's been a rough couple of days ({streak.days} in a row). "
        return (
            f"{streak_bit}Keep it frictionless today, do one body-level reset first (drink water, step outside "
            "for 60 seconds), then reassess. Checking in while you feel like this is effort, it still counts."
        )
    if mood_score <= 5:
        baseline_bit = ""
        if ctx.compared_to_baseline == "worse":
            baseline_bit = f"You're a bit below your usual baseline ({ctx.average_mood}/10). "
        return (
            f"{baseline_bit}If you don't have words right now, pick one small task you can finish in under "
            "3 minutes and stop there. Momentum beats motivation on days like this."
        )
    if mood_score <= 7:
        return (
            "You're in a steadier zone today, that's useful. Choose one \"annoying but important\" thing and do "
            "the first 2 minutes only, just to lower the mental barrier."
        )
    return (
        "You're running hot today, nice. Bank it by doing one quick thing Future You will thank you for "
        "(prep tomorrow's first step, clear one tiny admin task), then stop before you burn it all."
    )


def build_coach_prompt(prompt: ContextualPrompt, mood_score: float) -> str:
    score = int(mood_score) if float(mood_score).is_integer() else mood_score
    return "\n\n".join(
        [
            prompt.system_context,
            prompt.current_situation,
            f"STRATEGY:\n{prompt.suggested_approach}",
            RESPONSE_RULES.format(score=score),
            "Now respond:",
        ]
    )


def request_advice(
    prompt_text: str,
    *,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Optional[str]:
    """
    Call the chat completion endpoint and return trimmed advice text.

    Returns None when the call fails or produces no text; raises
    CoachConfigurationError when no API key is configured.
    """
    api_key = settings.openai_api_key
    if not api_key:
        raise CoachConfigurationError("OPENAI_API_KEY is not configured")

    with trace(
        "coach.llm",
        metadata={"llm_input_text": prompt_text[:500], "model": settings.openai_model},
        user_id=user_id,
        request_id=request_id,
    ) as llm_trace:
        try:
            client = openai.OpenAI(api_key=api_key)
            completion = client.chat.completions.create(
                model=settings.openai_model,
                temperature=settings.coach_temperature,
                max_tokens=settings.coach_max_tokens,
                messages=[{"role": "user", "content": prompt_text}],
            )
            content = completion.choices[0].message.content
        except Exception as exc:
            logger.warning("Coach completion failed: %s", exc)
            return None

        advice = content.strip() if isinstance(content, str) else ""
        if llm_trace and advice:
            llm_trace.update(metadata={"llm_output_text": advice[:500]})
        return advice or None


def coach_check_in(
    ctx: UserContext,
    mood_score: float,
    note: str,
    *,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> CoachResult:
    """Pick the advice for a check-in: onboarding, generic, or model-generated."""
    note_text = (note or "").strip()
    if len(note_text) < MIN_NOTE_CHARS:
        if ctx.total_check_ins == 0:
            return CoachResult(advice=ONBOARDING_ADVICE, source="onboarding")
        return CoachResult(advice=context_aware_generic_advice(ctx, mood_score), source="generic")

    prompt = generate_contextual_prompt(ctx, mood_score, note)
    advice = request_advice(
        build_coach_prompt(prompt, mood_score),
        user_id=user_id,
        request_id=request_id,
    )
    if not advice:
        return CoachResult(advice=generic_advice(mood_score), source="fallback")
    return CoachResult(advice=advice, source="llm")
