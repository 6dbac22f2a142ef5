"""ORM models exposed for metadata discovery."""
from ally.db.models.activity_event import ActivityEvent
from ally.db.models.auth_session import AuthSession
from ally.db.models.balance import BalanceScore, UserPriority
from ally.db.models.brain_dump import BrainDump
from ally.db.models.daily_checkin import DailyCheckin
from ally.db.models.goal import Commitment, Outcome
from ally.db.models.inbox_item import InboxItem
from ally.db.models.mood import BurnoutLog, MoodEntry
from ally.db.models.task import Task
from ally.db.models.user import User
from ally.db.models.user_stats import UserStats
from ally.db.models.weekly_plan import WeeklyPlan, WeeklyPlanOutcome, WeeklyPlanTask
from ally.db.models.weekly_review import WeeklyReview

__all__ = [
    "ActivityEvent",
    "AuthSession",
    "BalanceScore",
    "BrainDump",
    "BurnoutLog",
    "Commitment",
    "DailyCheckin",
    "InboxItem",
    "MoodEntry",
    "Outcome",
    "Task",
    "User",
    "UserPriority",
    "UserStats",
    "WeeklyPlan",
    "WeeklyPlanOutcome",
    "WeeklyPlanTask",
    "WeeklyReview",
]
