"""
AI completion client.

Wraps Groq chat completions behind ``generate_text`` and builds the prompts
for reflections, shareable quotes, life insights and monthly reflections.
Response parsing is kept in small pure functions so it can be tested
without the network.
"""

import re
import logging
from typing import Optional, Dict, Any, List, Tuple

import groq

import config
from entries import JournalEntry

logger = logging.getLogger(__name__)


class AIServiceError(Exception):
    """AI call failed; ``status_code`` is what the API should answer with."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


MOOD_LABELS = {
    1: "rough/struggling",
    2: "meh/low",
    3: "okay/neutral",
    4: "good/positive",
    5: "great/joyful",
}


def mood_label(score: Optional[int]) -> str:
    return MOOD_LABELS.get(score, "not tracked")


def is_configured() -> bool:
    return bool(config.GROQ_API_KEY)


# =============================================================================
# Transport
# =============================================================================

def generate_text(system_prompt: str, user_prompt: str, max_tokens: int = 256,
                  temperature: float = 0.7) -> str:
    """Generate text using Groq API with error handling."""
    if not config.GROQ_API_KEY:
        raise AIServiceError("AI service not configured", 503)

    try:
        client = groq.Groq(api_key=config.GROQ_API_KEY, timeout=config.AI_TIMEOUT_SECONDS)

        response = client.chat.completions.create(
            model=config.GROQ_MODEL,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=max_tokens,
            temperature=temperature,
        )
    except groq.RateLimitError as e:
        logger.warning(f"AI rate limit: {e}")
        raise AIServiceError("Rate limit exceeded. Please try again in a moment.", 429)
    except groq.APITimeoutError as e:
        logger.error(f"AI timeout: {e}")
        raise AIServiceError("AI service timed out. Please try again.", 504)
    except groq.APIError as e:
        logger.error(f"AI generation error: {e}")
        raise AIServiceError("AI service temporarily unavailable", 502)

    content = response.choices[0].message.content if response.choices else None
    if not content or not content.strip():
        raise AIServiceError("AI returned an empty response", 502)
    return content.strip()


# =============================================================================
# Reflection
# =============================================================================

REFLECTION_PROMPT = (
    "You are a gentle, encouraging journaling companion. When someone shares something "
    "good that happened to them, respond with a warm, brief reflection (2-3 sentences max) "
    "that acknowledges their moment, celebrates it with them, and offers a small insight or "
    "affirmation. Be genuine, uplifting, and human. Avoid being overly cheerful or generic."
)

REFLECTION_WITH_MOOD_PROMPT = (
    "You are a gentle, encouraging journaling companion. When someone shares something "
    "good that happened to them, respond with: 1) A warm, brief reflection (2-3 sentences max) "
    "that acknowledges their moment, celebrates it with them, and offers a small insight or "
    "affirmation. 2) A mood score from 1-5 based on their entry (1=rough, 2=meh, 3=okay, "
    "4=good, 5=great). Be genuine, uplifting, and human. Format: First the reflection, then "
    'on a new line "MOOD: X" where X is 1-5.'
)

FALLBACK_REFLECTIONS = {
    1: "Thank you for finding something good on a hard day. That takes real strength.",
    2: "Even on a so-so day you noticed something good. That counts.",
    3: "A good thing, noticed and kept. Thank you for pausing to write it down.",
    4: "What a nice moment to hold on to. Keep noticing these.",
    5: "What a wonderful moment! Your joy shines through your words.",
}

_MOOD_LINE = re.compile(r"MOOD:\s*([1-5])")


def fallback_reflection(mood_score: Optional[int]) -> str:
    return FALLBACK_REFLECTIONS.get(mood_score, "Thank you for capturing your good thing today.")


def parse_reflection(full_response: str, mood_score: Optional[int]) -> Tuple[str, Optional[int]]:
    """Split a model reply into reflection text and mood (only when none was given)."""
    reflection = full_response.strip()
    if mood_score is not None:
        return reflection, mood_score

    match = _MOOD_LINE.search(reflection)
    if not match:
        return reflection, None
    reflection = _MOOD_LINE.sub("", reflection).strip()
    return reflection, int(match.group(1))


def generate_reflection(entry_text: str, mood_score: Optional[int] = None) -> Dict[str, Any]:
    needs_mood = mood_score is None
    system_prompt = REFLECTION_WITH_MOOD_PROMPT if needs_mood else REFLECTION_PROMPT

    logger.info(f"Generating reflection (mood provided: {not needs_mood})")
    full = generate_text(system_prompt, f"Today's good thing: {entry_text}", max_tokens=200)
    reflection, mood = parse_reflection(full, mood_score)
    return {"reflection": reflection, "mood_score": mood}


# =============================================================================
# Shareable quote
# =============================================================================

QUOTE_PROMPT = """You are a compassionate writer who transforms personal journal entries into beautiful, shareable quotes.

Your task: Read the user's journal entry and create ONE SHORT, UPLIFTING QUOTE (1-2 sentences max) that captures the essence of their good moment.

Guidelines:
- Keep it under 100 characters if possible
- Make it positive and inspiring
- Use "I" statements to keep it personal
- Make it shareable - something they'd be proud to post
- Don't add quotation marks
- Focus on the emotion and meaning, not just restating facts

Example transformations:
Entry: "Had a great coffee with my sister today, we laughed so much"
Quote: I found joy in the simple moments with someone I love

Entry: "Finally finished that project I've been working on for weeks"
Quote: I did the thing I thought I couldn't do

Now create a shareable quote from the following entry:"""


def clean_quote(raw: str) -> str:
    quote = raw.strip()
    if quote.lower().startswith("quote:"):
        quote = quote[len("quote:"):].strip()
    return quote.strip('"“” ').strip()


def generate_quote(entry_text: str) -> str:
    quote = clean_quote(generate_text(QUOTE_PROMPT, entry_text, max_tokens=100, temperature=0.8))
    if not quote:
        raise AIServiceError("Failed to generate quote", 500)
    return quote


# =============================================================================
# Life insight (last 30 days)
# =============================================================================

LIFE_INSIGHT_PROMPT = """You are analyzing someone's journal entries to provide a deeply personalized, accurate reflection of their life RIGHT NOW.

CRITICAL INSTRUCTIONS:
- Base EVERYTHING on the actual entries provided - mood scores, themes, and specific content
- If mood is "improving", acknowledge their positive momentum
- If mood is "declining", acknowledge challenges with compassion
- If mood is "stable", note their consistency
- Identify SPECIFIC recurring themes from their actual entries
- Reference the ACTUAL emotional state shown in their mood scores (don't assume positivity if moods are low)
- Notice patterns: what activities or moments consistently appear? What brings them joy?

OUTPUT FORMAT:
Write exactly 2-3 warm sentences that describe what's happening in their life, acknowledge their emotional state accurately, highlight recurring themes and end with an uplifting observation about their journey.

TONE: Warm, genuine, and specific to THEIR life. Avoid generic phrases. No advice, no diagnosis, no judgment."""


def build_life_insight_prompt(entries: List[JournalEntry], avg_mood: Optional[float],
                              trend: str, tracked: int) -> str:
    lines = [
        f'{e.date_key}: "{e.text}" [mood: {mood_label(e.mood_score)}]'
        for e in sorted(entries, key=lambda e: e.entry_date, reverse=True)
    ]

    if avg_mood is not None:
        mood_context = (
            f"\n\nMood Statistics:\n- Average mood: {avg_mood}/5\n- Trend: {trend}"
            f"\n- Total entries tracked: {tracked}"
        )
    else:
        mood_context = "\n\nNote: User has not tracked moods yet, focus on entry content themes."

    return (
        "Analyze these recent journal entries and provide a deeply accurate, personalized "
        f"reflection:\n\n{chr(10).join(lines)}{mood_context}\n\n"
        "Provide your warm, insightful reflection (2-3 sentences only):"
    )


def generate_life_insight(entries: List[JournalEntry], avg_mood: Optional[float],
                          trend: str, tracked: int) -> str:
    logger.info(f"Generating life insight for {len(entries)} entries. Avg mood: {avg_mood}, trend: {trend}")
    prompt = build_life_insight_prompt(entries, avg_mood, trend, tracked)
    return generate_text(LIFE_INSIGHT_PROMPT, prompt, max_tokens=250)


# =============================================================================
# Monthly reflection
# =============================================================================

MONTHLY_PROMPT = """You are a compassionate life coach analyzing someone's monthly journal entries. Create a warm, personalized monthly reflection that celebrates their journey and growth.

Your reflection should include:
1. A heartfelt summary (3-4 sentences) that captures the essence of their month
2. 3-5 specific highlights from their entries
3. Patterns and themes you noticed

Be authentic, encouraging, and specific. Reference actual moments from their entries. Use a warm, conversational tone as if you're a supportive friend."""

_SUMMARY_BLOCK = re.compile(r"SUMMARY:\s*(.+?)(?=HIGHLIGHTS:|$)", re.DOTALL)
_HIGHLIGHTS_BLOCK = re.compile(r"HIGHLIGHTS:\s*(.+?)$", re.DOTALL)


def build_monthly_prompt(entries: List[JournalEntry], avg_mood: Optional[float],
                         top_themes: List[Tuple[str, int]]) -> str:
    entries_text = "\n".join(
        f"{e.date_key}: {e.text}" + (f" (mood: {e.mood_score}/5)" if e.mood_score else "")
        for e in entries
    )
    themes_text = ", ".join(f"{tag} ({count} times)" for tag, count in top_themes) or "None tagged"
    mood_text = f"{avg_mood}/5" if avg_mood is not None else "not tracked"

    return f"""Here are the journal entries for this month:
{entries_text}

Statistics:
- Days tracked: {len(entries)}
- Average mood: {mood_text}
- Top themes: {themes_text}

Create a beautiful monthly reflection that celebrates this person's journey. Format your response as:
SUMMARY: [Your warm 3-4 sentence summary]
HIGHLIGHTS:
- [Highlight 1]
- [Highlight 2]
- [Highlight 3]
(etc)"""


def parse_monthly_reflection(text: str) -> Tuple[str, List[str]]:
    """Pull the SUMMARY paragraph and HIGHLIGHTS bullets out of a model reply."""
    summary_match = _SUMMARY_BLOCK.search(text)
    highlights_match = _HIGHLIGHTS_BLOCK.search(text)

    summary = summary_match.group(1).strip() if summary_match else text.strip()
    highlights = []
    if highlights_match:
        for line in highlights_match.group(1).strip().splitlines():
            line = line.strip()
            if line.startswith("-"):
                highlights.append(line.lstrip("-").strip())
    return summary, highlights


def generate_monthly_reflection(entries: List[JournalEntry], avg_mood: Optional[float],
                                top_themes: List[Tuple[str, int]]) -> Tuple[str, List[str]]:
    prompt = build_monthly_prompt(entries, avg_mood, top_themes)
    return parse_monthly_reflection(generate_text(MONTHLY_PROMPT, prompt, max_tokens=500))
