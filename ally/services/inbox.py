"""Inbox capture and triage."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ally.db.models.inbox_item import InboxItem
from ally.db.models.task import Task
from ally.db.types import ensure_utc
from ally.services.activity import record_event
from ally.services.context_engine import resolve_zone
from ally.services.errors import NotFoundError, TriageError
from ally.services.goals import get_owned_commitment, get_owned_outcome, sanitize_title

logger = logging.getLogger(__name__)

CAPTURE_SOURCES = ("quick_capture", "mobile", "email_forward", "voice", "other")
TRIAGE_STATUSES = ("pending", "triaged", "discarded")
TRIAGE_ACTIONS = ("do_now", "schedule", "delegate", "park", "drop")
TASK_CREATING_ACTIONS = ("do_now", "schedule", "delegate")

MAX_CAPTURE_CHARS = 1000
DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 100
UNDO_WINDOW = timedelta(seconds=10)

# Minutes after which an untouched capture escalates.
MEDIUM_URGENCY_AGE_MINUTES = 60 * 24
HIGH_URGENCY_AGE_MINUTES = 60 * 24 * 3

_TODAY_RE = re.compile(r"@today\b", re.IGNORECASE)
_THIS_WEEK_RE = re.compile(r"@this_?week\b", re.IGNORECASE)
_HIGH_RE = re.compile(r"!high\b", re.IGNORECASE)
_MEDIUM_RE = re.compile(r"!medium\b", re.IGNORECASE)
_LOW_RE = re.compile(r"!low\b", re.IGNORECASE)
_PROJECT_RE = re.compile(r"#(\w+)")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass
class ParsedTokens:
    due: Optional[str] = None
    priority: Optional[str] = None
    project: Optional[str] = None
    tags: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"tags": list(self.tags)}
        if self.due:
            data["due"] = self.due
        if self.priority:
            data["priority"] = self.priority
        if self.project:
            data["project"] = self.project
        return data


@dataclass
class EnrichedItem:
    item: InboxItem
    tokens: ParsedTokens
    age_minutes: int
    age_display: str
    inferred_urgency: str


@dataclass
class InboxSummary:
    pending_count: int
    oldest_pending_age_minutes: int
    triaged_today_count: int
    streak_days: int


@dataclass
class TriageResult:
    item: InboxItem
    task: Optional[Task]


def parse_tokens(raw_text: str) -> ParsedTokens:
    """Pull ``@today``/``@this_week``, ``!priority`` and ``#project`` markers out of a capture."""
    tokens = ParsedTokens()
    if _TODAY_RE.search(raw_text):
        tokens.due = "today"
    elif _THIS_WEEK_RE.search(raw_text):
        tokens.due = "this_week"

    if _HIGH_RE.search(raw_text):
        tokens.priority = "high"
    elif _MEDIUM_RE.search(raw_text):
        tokens.priority = "medium"
    elif _LOW_RE.search(raw_text):
        tokens.priority = "low"

    for match in _PROJECT_RE.finditer(raw_text):
        tag = match.group(1)
        if tokens.project is None:
            tokens.project = tag
        tokens.tags.append(tag)
    return tokens


def strip_tokens(raw_text: str) -> str:
    cleaned = raw_text
    for pattern in (_TODAY_RE, _THIS_WEEK_RE, _HIGH_RE, _MEDIUM_RE, _LOW_RE, _PROJECT_RE):
        cleaned = pattern.sub("", cleaned)
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def age_minutes(created_at: datetime, now: Optional[datetime] = None) -> int:
    now = now or datetime.now(timezone.utc)
    delta = now - ensure_utc(created_at)
    return max(0, int(delta.total_seconds() // 60))


def age_display(created_at: datetime, now: Optional[datetime] = None) -> str:
    minutes = age_minutes(created_at, now)
    hours = minutes // 60
    days = hours // 24
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days == 1:
        return "yesterday"
    if days < 7:
        return f"{days}d ago"
    return ensure_utc(created_at).date().isoformat()


def infer_urgency(minutes_old: int, tokens: ParsedTokens) -> str:
    if tokens.priority == "high" or tokens.due == "today":
        return "high"
    if tokens.priority == "low":
        return "low"
    if minutes_old > HIGH_URGENCY_AGE_MINUTES:
        return "high"
    if minutes_old > MEDIUM_URGENCY_AGE_MINUTES:
        return "medium"
    return tokens.priority or "low"


def enrich_item(item: InboxItem, now: Optional[datetime] = None) -> EnrichedItem:
    tokens = parse_tokens(item.raw_text)
    minutes = age_minutes(item.created_at, now)
    return EnrichedItem(
        item=item,
        tokens=tokens,
        age_minutes=minutes,
        age_display=age_display(item.created_at, now),
        inferred_urgency=infer_urgency(minutes, tokens),
    )


def capture(
    db: Session,
    user_id: UUID,
    raw_text: str,
    source: Optional[str] = None,
    *,
    request_id: Optional[str] = None,
) -> InboxItem:
    text = (raw_text or "").strip()
    if not text:
        raise TriageError("Text is required")
    if len(text) > MAX_CAPTURE_CHARS:
        raise TriageError(f"Text too long (max {MAX_CAPTURE_CHARS} chars)")

    item = InboxItem(
        user_id=user_id,
        raw_text=text,
        source=source if source in CAPTURE_SOURCES else "quick_capture",
        status="pending",
        triage_metadata={},
    )
    db.add(item)
    db.flush()
    record_event(
        db,
        user_id=user_id,
        event_type="inbox_captured",
        payload={"inbox_item_id": str(item.id), "source": item.source},
        request_id=request_id,
    )
    return item


def triage_streak_days(triaged_at: List[datetime], today: date, zone: tzinfo = timezone.utc) -> int:
    """Consecutive local days with at least one triage, ending today (or yesterday)."""
    days = {ensure_utc(moment).astimezone(zone).date() for moment in triaged_at if moment is not None}
    cursor = today if today in days else today - timedelta(days=1)
    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def list_items(
    db: Session,
    user_id: UUID,
    *,
    status: str = "pending",
    limit: int = DEFAULT_LIST_LIMIT,
    now: Optional[datetime] = None,
) -> List[EnrichedItem]:
    if status not in TRIAGE_STATUSES:
        raise TriageError("Invalid status")
    limit = max(1, min(limit, MAX_LIST_LIMIT))
    items = (
        db.query(InboxItem)
        .filter(InboxItem.user_id == user_id, InboxItem.status == status)
        .order_by(InboxItem.created_at.asc())
        .limit(limit)
        .all()
    )
    return [enrich_item(item, now) for item in items]


def build_summary(
    db: Session,
    user_id: UUID,
    now: Optional[datetime] = None,
    tz_name: Optional[str] = None,
) -> InboxSummary:
    now = now or datetime.now(timezone.utc)
    zone = resolve_zone(tz_name)
    pending = (
        db.query(InboxItem)
        .filter(InboxItem.user_id == user_id, InboxItem.status == "pending")
        .order_by(InboxItem.created_at.asc())
        .all()
    )
    triaged_at = [
        row.triaged_at
        for row in db.query(InboxItem.triaged_at)
        .filter(InboxItem.user_id == user_id, InboxItem.triaged_at.isnot(None))
        .all()
    ]
    today = ensure_utc(now).astimezone(zone).date()
    triaged_today = sum(1 for moment in triaged_at if ensure_utc(moment).astimezone(zone).date() == today)
    return InboxSummary(
        pending_count=len(pending),
        oldest_pending_age_minutes=age_minutes(pending[0].created_at, now) if pending else 0,
        triaged_today_count=triaged_today,
        streak_days=triage_streak_days(triaged_at, today, zone),
    )


def _owned_item(db: Session, user_id: UUID, item_id: UUID) -> InboxItem:
    item = db.get(InboxItem, item_id)
    if not item or item.user_id != user_id:
        raise NotFoundError("Inbox item not found")
    return item


def _task_from_item(
    db: Session,
    item: InboxItem,
    action: str,
    metadata: Dict[str, Any],
    outcome_id: Optional[UUID],
    commitment_id: Optional[UUID],
) -> Task:
    if commitment_id:
        commitment = get_owned_commitment(db, item.user_id, commitment_id)
        outcome_id = commitment.outcome_id
    elif outcome_id:
        get_owned_outcome(db, item.user_id, outcome_id)

    tokens = parse_tokens(item.raw_text)
    due_date: Optional[str] = None
    if action == "do_now":
        due_date = "today"
    elif action == "schedule" and metadata.get("scheduled_date"):
        due_date = str(metadata["scheduled_date"])[:20]

    task = Task(
        user_id=item.user_id,
        title=sanitize_title(strip_tokens(item.raw_text)) or sanitize_title(item.raw_text),
        status="active" if (outcome_id or commitment_id) else "needs_linking",
        due_date=due_date,
        energy_required="high" if tokens.priority == "high" else None,
        priority=tokens.priority,
        category=tokens.project,
        outcome_id=outcome_id,
        commitment_id=commitment_id,
        metadata_json={"source": "inbox", "inbox_item_id": str(item.id), "tags": tokens.tags},
    )
    db.add(task)
    db.flush()
    return task


def triage(
    db: Session,
    user_id: UUID,
    item_id: UUID,
    action: str,
    *,
    metadata: Optional[Dict[str, Any]] = None,
    outcome_id: Optional[UUID] = None,
    commitment_id: Optional[UUID] = None,
    request_id: Optional[str] = None,
) -> TriageResult:
    if action not in TRIAGE_ACTIONS:
        raise TriageError("Valid action is required")

    item = _owned_item(db, user_id, item_id)
    if item.status != "pending":
        raise TriageError("Item already triaged")

    metadata = dict(metadata or {})
    task = None
    if action in TASK_CREATING_ACTIONS:
        task = _task_from_item(db, item, action, metadata, outcome_id, commitment_id)

    now = datetime.now(timezone.utc)
    item.status = "discarded" if action == "drop" else "triaged"
    item.triage_action = action
    item.triage_metadata = metadata
    item.triaged_at = now
    if task is not None:
        item.proposed_task_id = task.id
        item.converted_at = now

    record_event(
        db,
        user_id=user_id,
        event_type="inbox_item_discarded" if action == "drop" else "inbox_item_triaged",
        payload={
            "inbox_item_id": str(item.id),
            "action": action,
            "task_id": str(task.id) if task else None,
            "capture_to_triage_ms": int((now - ensure_utc(item.created_at)).total_seconds() * 1000),
        },
        undo_available=True,
        request_id=request_id,
    )
    return TriageResult(item=item, task=task)


def undo_triage(
    db: Session,
    user_id: UUID,
    item_id: UUID,
    *,
    now: Optional[datetime] = None,
    request_id: Optional[str] = None,
) -> InboxItem:
    """Revert a triage made within the last ten seconds, deleting any task it produced."""
    item = _owned_item(db, user_id, item_id)
    if item.status == "pending":
        raise TriageError("Item has not been triaged")
    if item.triaged_at is None:
        raise TriageError("No triage timestamp found")

    now = now or datetime.now(timezone.utc)
    if now - ensure_utc(item.triaged_at) > UNDO_WINDOW:
        raise TriageError("Undo window expired (10 seconds)")

    removed_task_id = item.proposed_task_id
    if removed_task_id is not None:
        task = db.get(Task, removed_task_id)
        item.proposed_task_id = None
        db.flush()
        if task is not None:
            db.delete(task)

    previous_action = item.triage_action
    item.status = "pending"
    item.triage_action = None
    item.triage_metadata = {}
    item.triaged_at = None
    item.converted_at = None

    record_event(
        db,
        user_id=user_id,
        event_type="inbox_triage_undone",
        payload={
            "inbox_item_id": str(item.id),
            "action": previous_action,
            "removed_task_id": str(removed_task_id) if removed_task_id else None,
        },
        request_id=request_id,
    )
    return item
