"""
Pacing & reasoning analyzer
Read-only insights over learning history: difficulty fit, energy trend, breakthroughs, velocity and pacing
"""

import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import List, Optional, Dict

from backend.evolution import recent_completions
from backend.models import CompletedTopic, LearningHistory, TaskGraph, ProjectConfig
from utils.timeparse import parse_timestamp

logger = logging.getLogger(__name__)

MIN_PATTERN_SAMPLES = 3
MIN_VELOCITY_SAMPLES = 5
DIFFICULTY_WINDOW = 5
ENERGY_WINDOW = 7

URGENCY_FACTORS = {
    "critical": 2,
    "high": 1.5,
    "medium": 1,
    "low": 0.7,
}

PRIORITY_ICONS = {"high": "🔥", "medium": "⚡", "low": "💡"}


@dataclass
class Deduction:
    type: str
    insight: str
    evidence: List[str] = field(default_factory=list)


@dataclass
class Recommendation:
    type: str
    action: str
    priority: str


@dataclass
class Progress:
    completed: int
    total: int
    percentage: int


@dataclass
class PacingAnalysis:
    status: str
    message: str
    expected_progress: float
    actual_progress: int
    delta: float


@dataclass
class PacingContext:
    urgency_level: str
    days_since_start: int
    progress: Progress
    pacing_analysis: PacingAnalysis
    recommendations: List[str] = field(default_factory=list)


@dataclass
class ReasoningAnalysis:
    deductions: List[Deduction]
    pacing_context: PacingContext
    recommendations: List[Recommendation]
    timestamp: str

    def to_dict(self) -> Dict:
        return asdict(self)


def _mean(values: List[float]) -> float:
    return sum(values) / len(values)


def calculate_trend(values: List[float]) -> float:
    """Ordinary least squares slope of value against index"""
    n = len(values)
    if n < 2:
        return 0.0

    sum_x = n * (n - 1) / 2
    sum_y = sum(values)
    sum_xy = sum(i * v for i, v in enumerate(values))
    sum_x2 = sum(i * i for i in range(n))

    return (n * sum_xy - sum_x * sum_y) / (n * sum_x2 - sum_x * sum_x)


def analyze_difficulty_progression(topics: List[CompletedTopic]) -> Optional[Deduction]:
    if len(topics) < MIN_PATTERN_SAMPLES:
        return None

    recent = topics[-DIFFICULTY_WINDOW:]
    difficulties = [t.difficulty for t in recent]
    ratings = [t.difficulty_rating for t in recent]
    avg_difficulty = _mean(difficulties)
    avg_rating = _mean(ratings)

    comparison = [
        f"Average perceived difficulty: {avg_rating:.1f}",
        f"Average assigned difficulty: {avg_difficulty:.1f}",
    ]

    if avg_rating > avg_difficulty + 1:
        return Deduction("difficulty_pattern", "Tasks are too easy - ready for higher difficulty", comparison)
    if avg_rating < avg_difficulty - 1:
        return Deduction("difficulty_pattern", "Tasks may be too challenging - consider easier tasks", comparison)
    if max(difficulties) - min(difficulties) <= 1:
        return Deduction(
            "difficulty_pattern",
            "Difficulty plateau detected - introduce more challenging tasks",
            [f"Difficulty range: {min(difficulties)}-{max(difficulties)}"],
        )
    return None


def analyze_energy_patterns(topics: List[CompletedTopic]) -> Optional[Deduction]:
    if len(topics) < MIN_PATTERN_SAMPLES:
        return None

    energy = [t.energy_after for t in topics[-ENERGY_WINDOW:]]
    avg_energy = _mean(energy)
    trend = calculate_trend(energy)

    if avg_energy >= 4 and trend > 0:
        return Deduction("energy_pattern", "Learning is energizing - high engagement detected", [
            f"Average energy after tasks: {avg_energy:.1f}/5",
            "Energy trend: increasing",
        ])
    if avg_energy <= 2:
        return Deduction(
            "energy_pattern",
            "Learning may be draining - consider shorter sessions or easier tasks",
            [f"Average energy after tasks: {avg_energy:.1f}/5"],
        )
    if trend < -0.5:
        return Deduction("energy_pattern", "Energy declining over time - may need breaks or variety", [
            "Energy trend: declining",
            f"Latest energy: {energy[-1]}/5",
        ])
    return None


def analyze_breakthrough_patterns(topics: List[CompletedTopic]) -> Optional[Deduction]:
    breakthroughs = [t for t in topics if t.breakthrough]
    if not breakthroughs:
        return None

    rate = len(breakthroughs) / len(topics)
    summary = f"{len(breakthroughs)} breakthroughs in {len(topics)} tasks ({rate * 100:.0f}%)"

    if rate > 0.3:
        deduction = Deduction("breakthrough_pattern", "High breakthrough rate - excellent learning momentum", [summary])
    elif rate > 0.1:
        deduction = Deduction("breakthrough_pattern", "Moderate breakthrough rate - good progress", [summary])
    else:
        return None

    if len(breakthroughs) > 1:
        avg = _mean([b.difficulty for b in breakthroughs])
        deduction.evidence.append(f"Breakthroughs typically occur at difficulty {avg:.1f}")
    return deduction


def analyze_velocity_pattern(history: LearningHistory, now: datetime) -> Optional[Deduction]:
    if len(history.completed_topics) < MIN_VELOCITY_SAMPLES:
        return None

    recent = len(recent_completions(history, now))
    velocity = recent / 7
    evidence = [
        f"{recent} tasks completed in last 7 days",
        f"Average: {velocity:.1f} tasks/day",
    ]

    if velocity >= 1:
        return Deduction("velocity_pattern", "High learning velocity - maintaining excellent pace", evidence)
    if velocity >= 0.5:
        return Deduction("velocity_pattern", "Moderate learning velocity - steady progress", evidence)
    if velocity > 0:
        return Deduction(
            "velocity_pattern",
            "Low learning velocity - consider shorter, easier tasks to build momentum",
            evidence,
        )
    return Deduction("velocity_pattern", "No recent learning activity - time to re-engage",
                     ["No tasks completed in last 7 days"])


def generate_logical_deductions(history: LearningHistory, now: datetime) -> List[Deduction]:
    topics = history.completed_topics
    if not topics:
        return [Deduction("insufficient_data", "Need more completed tasks for pattern analysis")]

    candidates = [
        analyze_difficulty_progression(topics),
        analyze_energy_patterns(topics),
        analyze_breakthrough_patterns(topics),
        analyze_velocity_pattern(history, now),
    ]
    return [d for d in candidates if d is not None]


def calculate_progress(graph: Optional[TaskGraph]) -> Progress:
    nodes = graph.frontier_nodes if graph else []
    completed = sum(1 for n in nodes if n.completed)
    total = len(nodes)
    percentage = round(completed / total * 100) if total else 0
    return Progress(completed=completed, total=total, percentage=percentage)


def calculate_expected_progress(urgency_level: str, days_since_start: int) -> float:
    factor = URGENCY_FACTORS.get(urgency_level, URGENCY_FACTORS["medium"])
    return min(100, days_since_start * factor)


def analyze_pacing(urgency_level: str, days_since_start: int, progress: Progress) -> PacingAnalysis:
    expected = calculate_expected_progress(urgency_level, days_since_start)
    delta = progress.percentage - expected

    if delta > 10:
        status, message = "ahead", f"Ahead of schedule by {delta:.0f} percentage points"
    elif delta < -20:
        status, message = "behind", f"Behind schedule by {abs(delta):.0f} percentage points"
    elif delta < -10:
        status, message = "slightly_behind", "Slightly behind expected pace"
    else:
        status, message = "on_track", f"Progress aligned with {urgency_level} urgency level"

    return PacingAnalysis(
        status=status,
        message=message,
        expected_progress=expected,
        actual_progress=progress.percentage,
        delta=delta,
    )


def generate_pacing_recommendations(pacing: PacingAnalysis, urgency_level: str) -> List[str]:
    if pacing.status == "behind" and urgency_level == "critical":
        return [
            "Consider daily learning sessions",
            "Focus on shorter, high-impact tasks",
            "Use get_next_task for optimal sequencing",
        ]
    if pacing.status == "ahead":
        return [
            "Explore advanced or optional topics",
            "Consider starting a related learning path",
            "Take time for deep practice and reflection",
        ]
    return []


def generate_pacing_context(config: ProjectConfig, graph: Optional[TaskGraph], now: datetime) -> PacingContext:
    urgency = config.urgency_level or "medium"
    created = parse_timestamp(config.created_at) or now
    days_since_start = max(0, (now - created).days)
    progress = calculate_progress(graph)
    pacing = analyze_pacing(urgency, days_since_start, progress)

    return PacingContext(
        urgency_level=urgency,
        days_since_start=days_since_start,
        progress=progress,
        pacing_analysis=pacing,
        recommendations=generate_pacing_recommendations(pacing, urgency),
    )


def generate_recommendations(deductions: List[Deduction], pacing: PacingContext) -> List[Recommendation]:
    by_type = {d.type: d for d in deductions}
    recommendations = []

    difficulty = by_type.get("difficulty_pattern")
    if difficulty is not None:
        if "too easy" in difficulty.insight:
            recommendations.append(Recommendation(
                "difficulty_adjustment", "Increase task difficulty to maintain challenge", "high"))
        elif "too challenging" in difficulty.insight:
            recommendations.append(Recommendation(
                "difficulty_adjustment", "Reduce task difficulty to build confidence", "high"))

    energy = by_type.get("energy_pattern")
    if energy is not None:
        if "draining" in energy.insight:
            recommendations.append(Recommendation(
                "energy_management", "Take more breaks or try shorter learning sessions", "medium"))
        elif "energizing" in energy.insight:
            recommendations.append(Recommendation(
                "energy_management", "Consider longer sessions to capitalize on high engagement", "low"))

    status = pacing.pacing_analysis.status
    if status == "behind":
        recommendations.append(Recommendation(
            "pacing_adjustment", "Increase learning frequency or focus on easier tasks for momentum", "high"))
    elif status == "ahead":
        recommendations.append(Recommendation(
            "pacing_adjustment", "Consider exploring advanced topics or taking strategic breaks", "low"))

    return recommendations


def analyze_reasoning(config: ProjectConfig, graph: Optional[TaskGraph], history: LearningHistory,
                      now: datetime) -> ReasoningAnalysis:
    deductions = generate_logical_deductions(history, now)
    pacing = generate_pacing_context(config, graph, now)
    analysis = ReasoningAnalysis(
        deductions=deductions,
        pacing_context=pacing,
        recommendations=generate_recommendations(deductions, pacing),
        timestamp=now.isoformat(),
    )
    logger.info(f"[analyze_reasoning] {len(deductions)} deductions, pacing={pacing.pacing_analysis.status}")
    return analysis


def format_reasoning_report(analysis: ReasoningAnalysis, detailed: bool = True) -> str:
    report = "🧠 **Reasoning Analysis Report**\n\n"

    report += "📊 **Key Insights**:\n"
    for deduction in analysis.deductions:
        report += f"• {deduction.insight}\n"
        if detailed:
            for evidence in deduction.evidence:
                report += f"  📈 {evidence}\n"

    pacing = analysis.pacing_context
    report += "\n⏱️ **Pacing Analysis**:\n"
    report += f"• {pacing.pacing_analysis.message}\n"
    report += f"• Days since start: {pacing.days_since_start}\n"
    report += f"• Current progress: {pacing.progress.percentage}%\n"

    if detailed and pacing.recommendations:
        for line in pacing.recommendations:
            report += f"• {line}\n"

    if analysis.recommendations:
        report += "\n💡 **Recommendations**:\n"
        for rec in analysis.recommendations:
            report += f"{PRIORITY_ICONS.get(rec.priority, '💡')} {rec.action}\n"

    return report
