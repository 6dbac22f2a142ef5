"""Lightweight heuristics for extracting signals from free-text check-in notes."""
from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ally.db.types import ensure_utc


@dataclass(frozen=True)
class ThemePattern:
    pattern: "re.Pattern[str]"
    theme: str
    sentiment: str


@dataclass
class RecurringTheme:
    theme: str
    frequency: int
    sentiment: str
    last_mentioned: Optional[datetime]


def _p(expr: str) -> "re.Pattern[str]":
    return re.compile(expr, re.IGNORECASE)


THEME_PATTERNS: Tuple[ThemePattern, ...] = (
    # work and productivity
    ThemePattern(_p(r"work|job|boss|coworker|office|deadline|project|meeting"), "work stress", "negative"),
    ThemePattern(_p(r"productive|accomplished|finished|completed|done"), "productivity wins", "positive"),
    ThemePattern(_p(r"procrastinat|avoid|putting off|can't start"), "procrastination", "negative"),
    ThemePattern(_p(r"overwhelm|too much|swamp|buried"), "feeling overwhelmed", "negative"),
    ThemePattern(_p(r"focus|concentrate|distract"), "focus challenges", "negative"),
    # emotional
    ThemePattern(_p(r"anxi|worry|nervous|stress"), "anxiety", "negative"),
    ThemePattern(_p(r"sad|depress|down|low|hopeless"), "low mood", "negative"),
    ThemePattern(_p(r"happy|joy|excit|great|amazing"), "positive emotions", "positive"),
    ThemePattern(_p(r"frustrat|angry|annoyed|irritat"), "frustration", "negative"),
    ThemePattern(_p(r"reject|rsd|sensitive|hurt"), "rejection sensitivity", "negative"),
    # physical and self-care
    ThemePattern(_p(r"tired|exhaust|fatigue|sleep|insomnia"), "fatigue/sleep issues", "negative"),
    ThemePattern(_p(r"exercise|workout|gym|run|walk"), "physical activity", "positive"),
    ThemePattern(_p(r"eat|food|meal|hungry"), "eating patterns", "neutral"),
    ThemePattern(_p(r"medic|pill|dose|forgot.*med"), "medication", "neutral"),
    # relationships
    ThemePattern(_p(r"friend|social|family|partner|relationship"), "relationships", "neutral"),
    ThemePattern(_p(r"alone|lonely|isolat"), "loneliness", "negative"),
    ThemePattern(_p(r"support|help|understood"), "feeling supported", "positive"),
    # ADHD-specific
    ThemePattern(_p(r"hyperfocus|in the zone|flow"), "hyperfocus", "positive"),
    ThemePattern(_p(r"forget|forgot|memory|remember"), "memory issues", "negative"),
    ThemePattern(_p(r"late|time blind|running behind"), "time management", "negative"),
    ThemePattern(_p(r"impuls|bought|spent|decision"), "impulsivity", "negative"),
)

STOP_WORDS = frozenset(
    {
        "this", "that", "with", "have", "been", "were", "they", "their", "about",
        "would", "could", "should", "really", "today", "feeling", "felt", "just",
        "like", "some", "more", "very", "much", "what", "when", "where", "which", "while",
    }
)

_WORD_RE = re.compile(r"\b[a-z]{4,}\b")
_WHITESPACE_RE = re.compile(r"\s+")

MIN_NOTES_FOR_THEMES = 3
MIN_THEME_MENTIONS = 2
MAX_THEMES = 5
MAX_KEYWORDS = 5


def extract_recurring_themes(entries: Sequence) -> List[RecurringTheme]:
    """Tally theme patterns across notes; entries need ``note`` and ``created_at``."""
    with_notes = [entry for entry in entries if entry.note and entry.note.strip()]
    if len(with_notes) < MIN_NOTES_FOR_THEMES:
        return []

    tallies: Dict[str, RecurringTheme] = {}
    for entry in with_notes:
        note = entry.note.lower()
        mentioned_at = ensure_utc(entry.created_at)
        for theme_pattern in THEME_PATTERNS:
            if not theme_pattern.pattern.search(note):
                continue
            current = tallies.get(theme_pattern.theme)
            if current is None:
                tallies[theme_pattern.theme] = RecurringTheme(
                    theme=theme_pattern.theme,
                    frequency=1,
                    sentiment=theme_pattern.sentiment,
                    last_mentioned=mentioned_at,
                )
                continue
            current.frequency += 1
            if mentioned_at and (current.last_mentioned is None or mentioned_at > current.last_mentioned):
                current.last_mentioned = mentioned_at

    recurring = [theme for theme in tallies.values() if theme.frequency >= MIN_THEME_MENTIONS]
    recurring.sort(key=lambda theme: theme.frequency, reverse=True)
    return recurring[:MAX_THEMES]


def extract_keywords(notes: Iterable[str]) -> List[str]:
    """Most repeated non-trivial words (4+ letters, seen at least twice)."""
    text = " ".join(notes).lower()
    counts = Counter(word for word in _WORD_RE.findall(text) if word not in STOP_WORDS)
    repeated = [(word, count) for word, count in counts.most_common() if count >= 2]
    return [word for word, _ in repeated[:MAX_KEYWORDS]]


def safe_snippet(text: str, max_len: int) -> str:
    """Collapse whitespace and clamp to ``max_len`` characters."""
    cleaned = _WHITESPACE_RE.sub(" ", text or "").strip()
    if len(cleaned) <= max_len:
        return cleaned
    return cleaned[:max_len]
