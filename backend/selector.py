"""
Task selector
Scores ready nodes against energy, time and context and picks the best one
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from backend.models import FrontierNode
from utils.config import ScoringWeights
from utils.timeparse import parse_time_to_minutes

logger = logging.getLogger(__name__)

BREAKTHROUGH_AMPLIFICATION = "breakthrough_amplification"
MIN_KEYWORD_LENGTH = 4


@dataclass
class ScoredTask:
    node: FrontierNode
    score: float


def is_context_relevant(node: FrontierNode, context: str) -> bool:
    """Any context word longer than three letters appears in the node's title or description"""
    if not context:
        return False
    task_text = f"{node.title} {node.description}".lower()
    keywords = [word for word in context.lower().split(" ") if len(word) >= MIN_KEYWORD_LENGTH]
    return any(keyword in task_text for keyword in keywords)


def calculate_task_score(node: FrontierNode, energy_level: int, time_minutes: int,
                         context: str = "", weights: ScoringWeights = None) -> float:
    weights = weights or ScoringWeights()

    score = node.priority if node.priority is not None else weights.default_priority

    difficulty = node.difficulty or weights.default_difficulty
    energy_match = 5 - abs(energy_level - difficulty)
    score += energy_match * weights.energy_weight

    if node.duration_minutes <= time_minutes:
        score += weights.time_fit_bonus
    else:
        score += weights.time_miss_penalty

    if context and is_context_relevant(node, context):
        score += weights.context_bonus

    if node.opportunity_type == BREAKTHROUGH_AMPLIFICATION:
        score += weights.breakthrough_bonus

    if node.generated:
        score += weights.generated_bonus

    return score


def rank_tasks(ready: List[FrontierNode], energy_level: int, time_available,
               context: str = "", weights: ScoringWeights = None) -> List[ScoredTask]:
    """All ready nodes, best first; equal scores keep their original order"""
    time_minutes = parse_time_to_minutes(time_available)
    scored = [
        ScoredTask(node, calculate_task_score(node, energy_level, time_minutes, context, weights))
        for node in ready
    ]
    # list.sort is stable
    scored.sort(key=lambda s: s.score, reverse=True)
    return scored


def select_optimal_task(ready: List[FrontierNode], energy_level: int, time_available,
                        context: str = "", weights: ScoringWeights = None) -> Optional[ScoredTask]:
    """Highest-scoring ready node, or None when nothing is ready"""
    if not ready:
        return None
    ranked = rank_tasks(ready, energy_level, time_available, context, weights)
    best = ranked[0]
    logger.info(f"[select_optimal_task] Selected '{best.node.id}' with score {best.score} "
                f"out of {len(ranked)} ready tasks")
    return best


def get_energy_match_text(task_difficulty: int, energy_level: int) -> str:
    diff = abs(task_difficulty - energy_level)
    if diff <= 1:
        return "Excellent match"
    if diff <= 2:
        return "Good match"
    return "Consider adjusting energy or task difficulty"


def get_time_match_text(task_duration, time_available) -> str:
    task_minutes = parse_time_to_minutes(task_duration)
    available_minutes = parse_time_to_minutes(time_available)

    if task_minutes <= available_minutes:
        return "Perfect fit"
    if task_minutes <= available_minutes * 1.2:
        return "Close fit"
    return "May need more time"


def format_task_response(node: FrontierNode, energy_level: int, time_available) -> str:
    stars = "⭐" * (node.difficulty or 1)

    response = "🎯 **Next Recommended Task**\n\n"
    response += f"**{node.title}**\n"
    response += f"{node.description or 'No description available'}\n\n"
    response += f"⏱️ **Duration**: {node.duration}\n"
    response += f"{stars} **Difficulty**: {node.difficulty}/5\n"
    response += f"🎯 **Branch**: {node.branch}\n"

    if node.learning_outcome:
        response += f"📈 **Learning Outcome**: {node.learning_outcome}\n"

    response += f"\n⚡ **Energy Match**: {get_energy_match_text(node.difficulty, energy_level)}\n"
    response += f"⏰ **Time Match**: {get_time_match_text(node.duration, time_available)}\n"

    response += (f"\n✅ Task id: \"{node.id}\". Once it is on today's schedule, "
                 f"use `complete_block` with its block id when finished")

    return response
