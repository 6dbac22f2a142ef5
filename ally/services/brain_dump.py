"""Turn a free-text brain dump into task suggestions, with a heuristic fallback."""
from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import openai
from sqlalchemy.orm import Session

from ally.core.config import settings
from ally.db.models.brain_dump import BrainDump
from ally.db.models.task import Task
from ally.db.models.user import User
from ally.observability.tracing import trace
from ally.services import goals as goal_service
from ally.services.activity import record_event
from ally.services.balance import DEFAULT_DOMAINS
from ally.services.inbox import parse_tokens, strip_tokens

logger = logging.getLogger(__name__)

DUMP_SOURCES = ("text", "voice")
MIN_DUMP_CHARS = 3
MAX_DUMP_CHARS = 5000
MAX_TITLE_CHARS = 500
MAX_FRAGMENT_CHARS = 1000
MIN_CREATE_CONFIDENCE = 0.5
DEFAULT_CATEGORY = "Admin"

ACK_ACTIONABLE = "Thanks for sharing. I've saved this. If you want, we can pick one small thing to focus on."
ACK_NEUTRAL = "Got it, I've captured that. Want help turning any of it into a tiny next step?"

EMOTION_KEYWORDS = {
    "overwhelmed": ["overwhelmed", "swamped", "underwater", "too much"],
    "stressed": ["stressed", "anxious", "worried"],
    "burned_out": ["burned out", "burnt out", "exhausted", "tired"],
    "motivated": ["excited", "motivated", "ready"],
}
BLOCKER_KEYWORDS = ["stuck", "blocked", "can't", "cannot", "waiting", "unclear"]
HIGH_PRIORITY_WORDS = ["urgent", "asap", "overdue", "need to", "must", "critical"]
LOW_PRIORITY_WORDS = ["should", "might", "eventually", "when i get to it", "someday"]
FEELING_PREFIXES = ("i feel", "i'm so", "im so", "feeling", "ugh")

CATEGORY_KEYWORDS = {
    "Work": ["work", "boss", "meeting", "email", "client", "report", "deadline", "slides"],
    "Health": ["doctor", "dentist", "gym", "workout", "meds", "medication", "prescription", "run", "walk"],
    "Home": ["clean", "laundry", "dishes", "groceries", "vacuum", "fix", "trash", "plants"],
    "Finance": ["pay", "bill", "rent", "bank", "tax", "budget", "invoice", "refund"],
    "Social": ["friend", "party", "text", "birthday", "dinner with", "hang out"],
    "Personal Growth": ["read", "learn", "course", "practice", "journal", "study"],
    "Family": ["mom", "dad", "kids", "sister", "brother", "family", "grandma"],
}

_SPLIT_RE = re.compile(r"[\n;]+|(?<=[.!?])\s+")
_BULLET_RE = re.compile(r"^\s*(?:[-*•]+|\d+[.)])\s*")
_TRAILING_PUNCT_RE = re.compile(r"[\s.!?,]+$")

PARSE_PROMPT = """You are a task extraction assistant for people with ADHD.

Given a brain dump (stream of consciousness text), extract individual actionable tasks.

Rules:
1. Each task should be a single, clear action item.
2. Keep the user's own wording. "Call vet about Luna" stays as-is.
3. Today is {weekday}, {today}. Resolve natural-language dates to YYYY-MM-DD, or null when none is given.
4. Priority: "urgent", "asap", "must" mean "high"; "should", "eventually" mean "low"; everything else "medium".
5. If something isn't clearly a task (feelings, observations), include it with low confidence.
6. Split compound items: "buy milk and eggs" becomes two tasks.
7. Pick one category from: {categories}.

Return a JSON object with a "tasks" array. Each task:
{{"title": string, "due_date": string | null, "priority": "low" | "medium" | "high",
  "confidence": number (0-1), "category": string, "original_fragment": string}}"""


class DumpParseError(RuntimeError):
    """Raised when the model response cannot be turned into tasks."""


@dataclass
class ParsedTask:
    title: str
    due_date: Optional[str] = None
    priority: str = "medium"
    confidence: float = 0.8
    category: str = DEFAULT_CATEGORY
    original_fragment: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DumpSignals:
    emotional_state: Optional[str] = None
    blockers: List[str] = field(default_factory=list)
    actionable: bool = False


@dataclass
class DumpResult:
    dump: BrainDump
    tasks: List[ParsedTask]
    created_tasks: List[Task]
    signals: DumpSignals
    acknowledgement: str


def _clamp(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return min(max(float(value), 0.0), 1.0)


def split_fragments(text: str) -> List[str]:
    fragments = []
    for part in _SPLIT_RE.split(text):
        cleaned = _BULLET_RE.sub("", part).strip()
        cleaned = _TRAILING_PUNCT_RE.sub("", cleaned)
        if cleaned:
            fragments.append(cleaned)
    return fragments


def detect_emotional_state(lower_text: str) -> Optional[str]:
    for label, keywords in EMOTION_KEYWORDS.items():
        if any(re.search(rf"\b{re.escape(keyword)}\b", lower_text) for keyword in keywords):
            return label.replace("_", " ")
    return None


def extract_signals(text: str) -> DumpSignals:
    fragments = split_fragments(text)
    blockers = [fragment for fragment in fragments if any(word in fragment.lower() for word in BLOCKER_KEYWORDS)]
    return DumpSignals(
        emotional_state=detect_emotional_state(text.lower()),
        blockers=blockers,
        actionable=False,
    )


def guess_category(text: str) -> str:
    lowered = text.lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(re.search(rf"\b{re.escape(keyword)}\b", lowered) for keyword in keywords):
            return category
    return DEFAULT_CATEGORY


def _heuristic_priority(lowered: str, token_priority: Optional[str]) -> str:
    if token_priority:
        return token_priority
    if any(word in lowered for word in HIGH_PRIORITY_WORDS):
        return "high"
    if any(re.search(rf"\b{re.escape(word)}\b", lowered) for word in LOW_PRIORITY_WORDS):
        return "low"
    return "medium"


def _heuristic_due(lowered: str, token_due: Optional[str]) -> Optional[str]:
    if token_due:
        return token_due
    if re.search(r"\btoday\b|\btonight\b", lowered):
        return "today"
    if re.search(r"\btomorrow\b", lowered):
        return "tomorrow"
    if re.search(r"\bthis week\b", lowered):
        return "this_week"
    return None


def heuristic_parse(text: str) -> List[ParsedTask]:
    """One task per line or sentence; feelings come back with low confidence."""
    tasks: List[ParsedTask] = []
    for fragment in split_fragments(text):
        title = strip_tokens(fragment)[:MAX_TITLE_CHARS]
        if len(title) < MIN_DUMP_CHARS:
            continue
        lowered = fragment.lower()
        tokens = parse_tokens(fragment)
        is_feeling = lowered.startswith(FEELING_PREFIXES) or detect_emotional_state(lowered) is not None
        tasks.append(
            ParsedTask(
                title=title,
                due_date=_heuristic_due(lowered, tokens.due),
                priority=_heuristic_priority(lowered, tokens.priority),
                confidence=0.4 if is_feeling else 0.7,
                category=guess_category(fragment),
                original_fragment=fragment[:MAX_FRAGMENT_CHARS],
            )
        )
    return tasks


def _clean_due(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return date.fromisoformat(value[:10]).isoformat()
    except ValueError:
        return None


def sanitize_llm_tasks(items: Sequence[Any]) -> List[ParsedTask]:
    tasks: List[ParsedTask] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        title = str(item.get("title") or "").strip()[:MAX_TITLE_CHARS]
        if not title:
            continue
        priority = item.get("priority")
        category = item.get("category")
        tasks.append(
            ParsedTask(
                title=title,
                due_date=_clean_due(item.get("due_date")),
                priority=priority if priority in ("low", "medium", "high") else "medium",
                confidence=_clamp(item.get("confidence"), 0.8),
                category=category if category in DEFAULT_DOMAINS else DEFAULT_CATEGORY,
                original_fragment=str(item.get("original_fragment") or "").strip()[:MAX_FRAGMENT_CHARS],
            )
        )
    return tasks


def request_task_extraction(
    text: str,
    today: date,
    *,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> List[ParsedTask]:
    prompt = PARSE_PROMPT.format(
        weekday=today.strftime("%A"),
        today=today.isoformat(),
        categories=", ".join(DEFAULT_DOMAINS),
    )
    with trace(
        "brain_dump.llm",
        metadata={"model": settings.openai_model, "text_length": len(text)},
        user_id=user_id,
        request_id=request_id,
    ):
        try:
            client = openai.OpenAI(api_key=settings.openai_api_key)
            completion = client.chat.completions.create(
                model=settings.openai_model,
                temperature=0.3,
                max_tokens=settings.dump_max_tokens,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": prompt},
                    {"role": "user", "content": f"Brain dump:\n{text}"},
                ],
            )
            content = completion.choices[0].message.content or ""
            payload = json.loads(content)
        except Exception as exc:
            raise DumpParseError(str(exc)) from exc

    if not isinstance(payload, dict) or not isinstance(payload.get("tasks"), list):
        raise DumpParseError("Response did not include a tasks array")
    return sanitize_llm_tasks(payload["tasks"])


def parse_dump(
    text: str,
    today: date,
    *,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> tuple[List[ParsedTask], str]:
    """Return ``(tasks, parser)``; parser is ``llm`` or ``heuristic``."""
    if settings.openai_api_key:
        try:
            return request_task_extraction(text, today, user_id=user_id, request_id=request_id), "llm"
        except DumpParseError as exc:
            logger.warning("Brain dump extraction failed, using heuristics: %s", exc)
    return heuristic_parse(text), "heuristic"


def process_dump(
    db: Session,
    user: User,
    *,
    raw_text: str,
    source: str = "text",
    create_tasks: bool = False,
    today: Optional[date] = None,
    request_id: Optional[str] = None,
) -> DumpResult:
    today = today or datetime.now(timezone.utc).date()
    text = raw_text.strip()

    dump = BrainDump(user_id=user.id, raw_text=text, source=source, task_count=0, signals_extracted={})
    db.add(dump)
    db.flush()

    started = time.monotonic()
    tasks, parser = parse_dump(text, today, user_id=str(user.id), request_id=request_id)
    latency_ms = int((time.monotonic() - started) * 1000)

    signals = extract_signals(text)
    signals.actionable = any(task.confidence >= MIN_CREATE_CONFIDENCE for task in tasks)

    dump.task_count = len(tasks)
    dump.parser = parser
    dump.parse_latency_ms = latency_ms
    dump.signals_extracted = asdict(signals)

    created: List[Task] = []
    if create_tasks:
        for parsed in tasks:
            if parsed.confidence < MIN_CREATE_CONFIDENCE:
                continue
            created.append(
                goal_service.create_task(
                    db,
                    user.id,
                    title=parsed.title,
                    due_date=parsed.due_date,
                    priority=parsed.priority,
                    category=parsed.category,
                    metadata={
                        "source": "brain_dump",
                        "brain_dump_id": str(dump.id),
                        "original_fragment": parsed.original_fragment,
                    },
                )
            )

    record_event(
        db,
        user_id=user.id,
        event_type="brain_dump_ingested",
        payload={
            "brain_dump_id": str(dump.id),
            "parser": parser,
            "task_count": len(tasks),
            "created_task_ids": [str(task.id) for task in created],
            "actionable": signals.actionable,
        },
        reason="Brain dump captured",
        request_id=request_id,
    )

    return DumpResult(
        dump=dump,
        tasks=tasks,
        created_tasks=created,
        signals=signals,
        acknowledgement=ACK_ACTIONABLE if signals.actionable else ACK_NEUTRAL,
    )
