"""Turn a daily check-in into UI adaptations, recommendations and insights."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, TypeVar

HIGH_OVERWHELM = 4
HIGH_ANXIETY = 4
LOW_ENERGY = 2
LOW_CLARITY = 2

MAX_RECOMMENDATIONS = 3
MIN_CHECKINS_FOR_INSIGHTS = 5
DEFAULT_TASK_MINUTES = 30
SPARKLINE_THRESHOLD = 0.5

_PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


@dataclass
class Recommendation:
    id: str
    type: str
    title: str
    description: str
    priority: str
    action_type: Optional[str] = None
    action_path: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AdaptiveState:
    simplified_ui_enabled: bool = False
    reduced_tasks_mode: bool = False
    suggest_low_cognitive_load: bool = False
    prioritize_short_tasks: bool = False
    show_planning_micro_step: bool = False
    triggers: List[str] = field(default_factory=list)
    recommendations: List[Recommendation] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["recommendations"] = [rec.as_dict() for rec in self.recommendations]
        return data


@dataclass
class CorrelationInsight:
    id: str
    title: str
    description: str
    type: str
    confidence: str


def evaluate_triggers(checkin) -> List[str]:
    """``checkin`` needs integer ``overwhelm``, ``anxiety``, ``energy`` and ``clarity``."""
    if checkin is None:
        return []

    triggers: List[str] = []
    if checkin.overwhelm >= HIGH_OVERWHELM:
        triggers.append("high_overwhelm")
    if checkin.anxiety >= HIGH_ANXIETY:
        triggers.append("high_anxiety")
    if checkin.energy <= LOW_ENERGY:
        triggers.append("low_energy")
    if checkin.clarity <= LOW_CLARITY:
        triggers.append("low_clarity")
    if "high_overwhelm" in triggers and ("high_anxiety" in triggers or "low_energy" in triggers):
        triggers.append("combined_stress")
    return triggers


def generate_recommendations(triggers: Sequence[str]) -> List[Recommendation]:
    recommendations: List[Recommendation] = []

    if "high_overwhelm" in triggers or "combined_stress" in triggers:
        recommendations.append(
            Recommendation(
                id="reduce_scope",
                type="action",
                title="Focus on just 1 thing",
                description="When overwhelmed, pick your single most important task. Everything else can wait.",
                priority="high",
                action_type="navigate",
                action_path="/focus?mode=single",
            )
        )
        recommendations.append(
            Recommendation(
                id="brain_dump",
                type="action",
                title="Do a brain dump",
                description="Get everything out of your head and onto paper. You'll feel lighter.",
                priority="high",
                action_type="navigate",
                action_path="/focus",
            )
        )

    if "high_anxiety" in triggers:
        recommendations.append(
            Recommendation(
                id="breathing",
                type="resource",
                title="Take a breathing break",
                description="4-7-8 breathing can help calm your nervous system in just 2 minutes.",
                priority="high",
                action_type="navigate",
                action_path="/brake",
            )
        )
        recommendations.append(
            Recommendation(
                id="simplify_view",
                type="suggestion",
                title="Simplified view enabled",
                description="We've hidden extra UI elements to reduce visual noise.",
                priority="medium",
            )
        )

    if "low_energy" in triggers:
        recommendations.append(
            Recommendation(
                id="quick_wins",
                type="action",
                title="Start with quick wins",
                description="Low energy? Tackle 2-minute tasks first to build momentum.",
                priority="high",
                action_type="enable_feature",
                action_path="sort_by_duration",
            )
        )
        recommendations.append(
            Recommendation(
                id="admin_tasks",
                type="suggestion",
                title="Admin tasks prioritized",
                description="We're showing shorter, simpler tasks that match your energy.",
                priority="medium",
            )
        )

    if "low_clarity" in triggers:
        recommendations.append(
            Recommendation(
                id="planning_step",
                type="action",
                title="Start with planning",
                description="When foggy, spend 5 minutes clarifying before doing.",
                priority="high",
                action_type="navigate",
                action_path="/focus?step=context",
            )
        )
        recommendations.append(
            Recommendation(
                id="ally_check",
                type="resource",
                title="Talk it through",
                description="Sometimes clarity comes from explaining your tasks to your Ally.",
                priority="medium",
                action_type="navigate",
                action_path="/ally",
            )
        )

    # sorted() is stable, so ties keep trigger order.
    recommendations = sorted(recommendations, key=lambda rec: _PRIORITY_ORDER[rec.priority])
    return recommendations[:MAX_RECOMMENDATIONS]


def compute_adaptive_state(checkin) -> AdaptiveState:
    if checkin is None:
        return AdaptiveState()

    triggers = evaluate_triggers(checkin)
    high_stress = "high_overwhelm" in triggers or "high_anxiety" in triggers
    low_energy = "low_energy" in triggers
    return AdaptiveState(
        simplified_ui_enabled=high_stress or "combined_stress" in triggers,
        reduced_tasks_mode=high_stress,
        suggest_low_cognitive_load=high_stress or low_energy,
        prioritize_short_tasks=low_energy,
        show_planning_micro_step="low_clarity" in triggers,
        triggers=triggers,
        recommendations=generate_recommendations(triggers),
    )


T = TypeVar("T")


def filter_tasks_for_state(tasks: Sequence[T], state: AdaptiveState, max_tasks: int = 10) -> List[T]:
    """Trim and reorder tasks; items need ``energy_required`` and ``estimated_minutes``."""
    if state.reduced_tasks_mode:
        max_tasks = min(max_tasks, 3)

    filtered = list(tasks)
    if state.suggest_low_cognitive_load:
        filtered = [task for task in filtered if (task.energy_required or "").lower() != "high"]
    if state.prioritize_short_tasks:
        filtered.sort(key=lambda task: task.estimated_minutes if task.estimated_minutes is not None else DEFAULT_TASK_MINUTES)
    return filtered[:max_tasks]


def correlation_insights(
    *,
    high_overwhelm_avg_untriaged: Optional[float],
    low_overwhelm_avg_untriaged: Optional[float],
    high_energy_tasks_completed: Optional[float],
    low_energy_tasks_completed: Optional[float],
    total_checkins: int,
) -> List[CorrelationInsight]:
    if total_checkins < MIN_CHECKINS_FOR_INSIGHTS:
        return [
            CorrelationInsight(
                id="need_more_data",
                title="Building your pattern library",
                description="Keep checking in daily. After a week, we'll show you personalized insights.",
                type="neutral",
                confidence="low",
            )
        ]

    insights: List[CorrelationInsight] = []
    high_untriaged = high_overwhelm_avg_untriaged or 0
    low_untriaged = low_overwhelm_avg_untriaged or 0
    if high_untriaged > low_untriaged + 3:
        insights.append(
            CorrelationInsight(
                id="overwhelm_untriaged",
                title="Inbox overflow = overwhelm",
                description=(
                    f"High overwhelm days have {round(high_untriaged)} untriaged items on average "
                    f"vs {round(low_untriaged)} on calm days."
                ),
                type="negative",
                confidence="high",
            )
        )

    high_completed = high_energy_tasks_completed or 0
    low_completed = low_energy_tasks_completed or 0
    if high_completed > low_completed * 1.5 and high_completed > 0:
        insights.append(
            CorrelationInsight(
                id="energy_productivity",
                title="Energy drives completion",
                description=(
                    f"You complete {round(high_completed, 2):g} tasks on high-energy days "
                    f"vs {round(low_completed, 2):g} on low-energy days."
                ),
                type="positive",
                confidence="high",
            )
        )

    if insights:
        insights.append(
            CorrelationInsight(
                id="pattern_found",
                title="Patterns are emerging",
                description="Your data is revealing what helps you thrive. Keep tracking!",
                type="positive",
                confidence="medium",
            )
        )
    return insights


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def sparkline_trend(values: Sequence[float]) -> str:
    """Compare the first and second half averages; ``up``, ``down`` or ``stable``."""
    if not values:
        return "stable"
    midpoint = len(values) // 2
    first = _mean(values[:midpoint])
    second = _mean(values[midpoint:])
    if second > first + SPARKLINE_THRESHOLD:
        return "up"
    if second < first - SPARKLINE_THRESHOLD:
        return "down"
    return "stable"


def has_checked_in_today(latest_date: Optional[date], today: date) -> bool:
    return latest_date is not None and latest_date == today
