"""
Strategy evolution engine
Detects stagnation and feedback sentiment and decides how the frontier should grow
"""

import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from typing import List, Optional

from backend.models import TaskGraph, LearningHistory, FrontierNode, CompletedTopic
from backend.readiness import get_ready_nodes
from utils.timeparse import parse_timestamp

logger = logging.getLogger(__name__)

RECENT_DAYS = 7
LOW_ENGAGEMENT_THRESHOLD = 2.5
MIN_AVAILABLE_TASKS = 3

NEGATIVE_KEYWORDS = ("boring", "stuck", "difficult")
POSITIVE_KEYWORDS = ("great", "interesting", "progress")

NO_AVAILABLE_TASKS = "no_available_tasks"
NO_RECENT_PROGRESS = "no_recent_progress"
LOW_ENGAGEMENT = "low_engagement"


@dataclass
class FeedbackAnalysis:
    sentiment: str = "neutral"
    keywords: List[str] = field(default_factory=list)
    original: str = ""


@dataclass
class StrategyAnalysis:
    completed_tasks: int
    total_tasks: int
    available_tasks: int
    stuck_indicators: List[str]
    user_feedback: FeedbackAnalysis
    recommended_evolution: Optional[str] = None

    def to_dict(self):
        return asdict(self)


def recent_completions(history: LearningHistory, now: datetime, days: int = RECENT_DAYS) -> List[CompletedTopic]:
    """Completed topics within the trailing window; unparsable timestamps are skipped"""
    cutoff = now - timedelta(days=days)
    recent = []
    for topic in history.completed_topics:
        completed_at = parse_timestamp(topic.completed_at)
        if completed_at is not None and cutoff <= completed_at <= now:
            recent.append(topic)
    return recent


def detect_stuck_indicators(available_tasks: int, history: LearningHistory, now: datetime) -> List[str]:
    indicators = []

    if available_tasks == 0:
        indicators.append(NO_AVAILABLE_TASKS)

    recent = recent_completions(history, now)
    if not recent:
        indicators.append(NO_RECENT_PROGRESS)
    else:
        # Without recent completions there is nothing to average
        average_energy = sum(t.energy_after for t in recent) / len(recent)
        if average_energy < LOW_ENGAGEMENT_THRESHOLD:
            indicators.append(LOW_ENGAGEMENT)

    return indicators


def analyze_feedback(feedback: Optional[str]) -> FeedbackAnalysis:
    if not feedback:
        return FeedbackAnalysis()

    lowered = feedback.lower()
    sentiment = "neutral"
    if any(word in lowered for word in NEGATIVE_KEYWORDS):
        sentiment = "negative"
    elif any(word in lowered for word in POSITIVE_KEYWORDS):
        sentiment = "positive"

    keywords = [word for word in feedback.split(" ") if len(word) > 3]
    return FeedbackAnalysis(sentiment=sentiment, keywords=keywords, original=feedback)


def determine_evolution_strategy(analysis: StrategyAnalysis) -> str:
    """First matching rule wins"""
    if NO_AVAILABLE_TASKS in analysis.stuck_indicators:
        return "generate_new_tasks"
    if LOW_ENGAGEMENT in analysis.stuck_indicators:
        return "increase_variety_and_interest"
    if analysis.user_feedback.sentiment == "negative":
        return "address_user_concerns"
    if analysis.available_tasks < MIN_AVAILABLE_TASKS:
        return "expand_task_frontier"
    return "optimize_existing_sequence"


def analyze_current_strategy(graph: TaskGraph, history: LearningHistory, feedback: Optional[str],
                             now: datetime, legacy_title_prerequisites: bool = False) -> StrategyAnalysis:
    nodes = graph.frontier_nodes
    available = len(get_ready_nodes(nodes, legacy_title_prerequisites))

    analysis = StrategyAnalysis(
        completed_tasks=sum(1 for n in nodes if n.completed),
        total_tasks=len(nodes),
        available_tasks=available,
        stuck_indicators=detect_stuck_indicators(available, history, now),
        user_feedback=analyze_feedback(feedback),
    )
    analysis.recommended_evolution = determine_evolution_strategy(analysis)

    logger.info(f"[analyze_current_strategy] {analysis.available_tasks} available, "
                f"indicators={analysis.stuck_indicators}, evolution={analysis.recommended_evolution}")
    return analysis


def format_strategy_evolution_response(analysis: StrategyAnalysis, new_tasks: List[FrontierNode],
                                       feedback: Optional[str]) -> str:
    response = "🧠 **Strategy Evolution Complete**\n\n"

    response += "📊 **Current Status**:\n"
    response += f"• Completed tasks: {analysis.completed_tasks}/{analysis.total_tasks}\n"
    response += f"• Available tasks: {analysis.available_tasks}\n"

    if analysis.stuck_indicators:
        response += f"• Detected issues: {', '.join(analysis.stuck_indicators)}\n"

    response += f"\n🎯 **Evolution Strategy**: {analysis.recommended_evolution.replace('_', ' ')}\n"

    if new_tasks:
        response += f"\n✨ **New Tasks Generated** ({len(new_tasks)}):\n"
        for task in new_tasks[:3]:
            response += f"• {task.title} ({task.duration})\n"
        if len(new_tasks) > 3:
            response += f"• ... and {len(new_tasks) - 3} more\n"

    if feedback:
        response += f"\n💬 **Feedback Processed**: {analysis.user_feedback.sentiment} sentiment detected\n"

    response += "\n🚀 **Next Step**: Use `get_next_task` to get your optimal next task"

    return response
