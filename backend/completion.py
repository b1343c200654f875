"""
Completion processor
Applies a finished block to the day, the learning history and the task graph
"""

import logging
from typing import List, Optional, Dict

from backend.models import (
    TimeBlock, DaySchedule, TaskGraph, FrontierNode, LearningHistory, OpportunityContext,
    CompletedTopic, Insight, KnowledgeGap, SkillProgression, DEFAULT_ENGAGEMENT, DEFAULT_PRIORITY,
    unique_node_id
)
from backend.opportunity import OpportunityAnalysis, get_path_recommendation_text
from backend.selector import BREAKTHROUGH_AMPLIFICATION

logger = logging.getLogger(__name__)

MAX_FOLLOW_UPS = 2
FOLLOW_UP_ID_OFFSET = 1000
OPPORTUNITY_ID_OFFSET = 2000
BREAKTHROUGH_FOLLOW_UP_PRIORITY = 250


def split_questions(text: str) -> List[str]:
    """Sentences of a free-text "next questions" field"""
    if not text:
        return []
    return [q.strip() for q in text.split(".") if q.strip()]


def apply_completion(block: TimeBlock, completed_at: str, outcome: str, learned: str = "",
                     next_questions: str = "", energy_level: int = 3, difficulty_rating: int = 3,
                     breakthrough: bool = False,
                     opportunity_context: Optional[OpportunityContext] = None) -> TimeBlock:
    """Mark the block completed and record how it went"""
    block.completed = True
    block.completed_at = completed_at
    block.outcome = outcome
    block.learned = learned or ""
    block.next_questions = next_questions or ""
    block.energy_after = energy_level
    block.difficulty_rating = difficulty_rating
    block.breakthrough = breakthrough

    if opportunity_context is not None and opportunity_context.has_signals():
        block.opportunity_context = opportunity_context
    else:
        block.opportunity_context = None

    return block


def has_learning_content(block: TimeBlock) -> bool:
    return bool(block.learned or block.next_questions or block.breakthrough)


def update_learning_history(history: LearningHistory, block: TimeBlock) -> LearningHistory:
    """Append the topic record, plus insight, knowledge gaps and skill progression where they apply"""
    history.completed_topics.append(CompletedTopic(
        topic=block.title,
        description=block.description,
        completed_at=block.completed_at,
        outcome=block.outcome,
        learned=block.learned,
        difficulty=block.difficulty or 3,
        difficulty_rating=block.difficulty_rating or 3,
        energy_after=block.energy_after or 3,
        breakthrough=block.breakthrough,
        block_id=block.id,
        task_id=block.task_id,
        branch=block.branch,
    ))

    if block.breakthrough and block.learned:
        history.insights.append(Insight(
            insight=block.learned,
            topic=block.title,
            timestamp=block.completed_at,
            context=block.outcome,
        ))

    for question in split_questions(block.next_questions):
        history.knowledge_gaps.append(KnowledgeGap(
            question=question,
            related_topic=block.title,
            identified=block.completed_at,
            priority="high" if block.breakthrough else "medium",
        ))

    if block.branch:
        engagement = DEFAULT_ENGAGEMENT
        if block.opportunity_context is not None:
            engagement = block.opportunity_context.engagement_level
        progression = history.skill_progression.setdefault(block.branch, SkillProgression())
        progression.record(engagement)

    return history


def generate_follow_up_tasks(block: TimeBlock, graph: TaskGraph) -> List[FrontierNode]:
    """Up to two exploration nodes from the block's open questions"""
    taken = graph.node_ids()
    number = len(graph.frontier_nodes) + FOLLOW_UP_ID_OFFSET
    prerequisites = [block.task_id] if block.task_id else []

    tasks = []
    for question in split_questions(block.next_questions)[:MAX_FOLLOW_UPS]:
        node_id, number = unique_node_id("followup", number, taken)
        tasks.append(FrontierNode(
            id=node_id,
            title=f"Explore: {question}",
            description=f"Investigation stemming from {block.title}",
            branch=block.branch or "exploration",
            difficulty=max(1, (block.difficulty_rating or 3) - 1),
            duration="20 minutes",
            prerequisites=list(prerequisites),
            learning_outcome=f"Understanding of {question}",
            priority=BREAKTHROUGH_FOLLOW_UP_PRIORITY if block.breakthrough else DEFAULT_PRIORITY,
            generated=True,
            source_block=block.id,
        ))
    return tasks


def generate_opportunity_tasks(block: TimeBlock, graph: TaskGraph) -> List[FrontierNode]:
    context = block.opportunity_context
    if context is None:
        return []

    taken = graph.node_ids()
    number = len(graph.frontier_nodes) + OPPORTUNITY_ID_OFFSET
    tasks = []

    if context.engagement_level >= 8:
        node_id, number = unique_node_id("breakthrough", number, taken)
        tasks.append(FrontierNode(
            id=node_id,
            title=f"Amplify: {block.title} Success",
            description=f"Build on the breakthrough momentum from {block.title}",
            branch=block.branch or "opportunity",
            difficulty=min(5, (block.difficulty_rating or 3) + 1),
            duration="45 minutes",
            prerequisites=[block.task_id] if block.task_id else [],
            learning_outcome="Amplified skills and deeper mastery",
            priority=350,
            opportunity_type=BREAKTHROUGH_AMPLIFICATION,
            source_block=block.id,
        ))

    if context.positive_feedback:
        node_id, number = unique_node_id("network", number, taken)
        tasks.append(FrontierNode(
            id=node_id,
            title="Follow Up: External Interest",
            description=f"Connect with people who showed interest in your {block.title} work",
            branch="networking",
            difficulty=2,
            duration="30 minutes",
            learning_outcome="Professional connections and feedback",
            priority=300,
            opportunity_type="networking",
            source_block=block.id,
        ))

    if context.viral_potential:
        node_id, number = unique_node_id("viral", number, taken)
        tasks.append(FrontierNode(
            id=node_id,
            title="Leverage: Viral Momentum",
            description=f"Capitalize on the viral potential of your {block.title} work",
            branch="marketing",
            difficulty=3,
            duration="60 minutes",
            learning_outcome="Understanding of viral content and audience building",
            priority=320,
            opportunity_type="viral_leverage",
            source_block=block.id,
        ))

    return tasks


def evolve_graph_from_learning(graph: TaskGraph, block: TimeBlock, now: str) -> List[FrontierNode]:
    """
    Mutate the task graph after a completion.

    The linked node is marked completed and follow-ups are generated when the
    block carries learning content; opportunity nodes are generated whenever
    an opportunity context is attached. Returns the appended nodes.
    """
    appended: List[FrontierNode] = []

    if has_learning_content(block):
        if block.task_id:
            node = graph.find_node(block.task_id)
            if node is None:
                logger.warning(f"[evolve_graph_from_learning] Block '{block.id}' links unknown node '{block.task_id}'")
            else:
                node.completed = True
                node.completed_at = block.completed_at
                node.actual_difficulty = block.difficulty_rating
                node.actual_duration = block.duration

        appended += graph.append_nodes(generate_follow_up_tasks(block, graph))

    if block.opportunity_context is not None:
        appended += graph.append_nodes(generate_opportunity_tasks(block, graph))

    graph.last_updated = now
    if appended:
        logger.info(f"[evolve_graph_from_learning] Appended {len(appended)} nodes: "
                    f"{', '.join(n.id for n in appended)}")
    return appended


def suggest_next_action(schedule: DaySchedule) -> Dict:
    next_block = schedule.next_incomplete()
    if next_block is not None:
        return {
            "type": "continue_schedule",
            "message": f"Next: {next_block.title} at {next_block.start_time}",
            "block_id": next_block.id,
        }
    return {
        "type": "day_complete",
        "message": "All blocks completed! Consider reviewing progress or planning tomorrow.",
        "suggestion": "Use analyze_reasoning to extract insights from today's learning",
    }


def format_completion_response(block: TimeBlock, analysis: Optional[OpportunityAnalysis],
                               new_nodes: Optional[List[FrontierNode]] = None) -> str:
    response = f"✅ **Block Completed**: {block.title}\n\n"
    response += f"**Outcome**: {block.outcome}\n"

    if block.learned:
        response += f"**Learned**: {block.learned}\n"

    response += f"**Energy After**: {block.energy_after}/5\n"
    response += f"**Difficulty**: {block.difficulty_rating}/5\n"

    if block.breakthrough:
        response += "\n🎉 **BREAKTHROUGH DETECTED!** 🎉\n"

    if analysis is not None and analysis.detected:
        response += "\n🌟 **OPPORTUNITY ANALYSIS**:\n"
        for opportunity in analysis.opportunities:
            response += f"• {opportunity.message}\n"
            response += f"  💡 {opportunity.action}\n"
        response += f"\n🎯 **Recommended Path**: {get_path_recommendation_text(analysis.recommended_path)}\n"

    if new_nodes:
        response += f"\n🌱 **New Tasks Added** ({len(new_nodes)}):\n"
        for node in new_nodes:
            response += f"• {node.title} ({node.duration})\n"

    if block.next_questions:
        response += f"\n❓ **Next Questions**: {block.next_questions}\n"

    return response
