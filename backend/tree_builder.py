"""
Tree builder
Builds or extends the task graph of a learning path from generated branches and nodes
"""

import logging
from typing import List, Optional, Tuple

from backend.generators import ContentGenerator
from backend.models import FrontierNode, StrategicBranch, TaskGraph, ProjectConfig

logger = logging.getLogger(__name__)


def sort_nodes_by_sequence(nodes: List[FrontierNode], knowledge_level: int) -> List[FrontierNode]:
    """Priority first, then closeness of difficulty to what the learner is ready for"""
    ideal = min(knowledge_level + 1, 4)
    return sorted(nodes, key=lambda n: (-n.priority, abs(n.difficulty - ideal)))


def merge_branches(existing: List[StrategicBranch], generated: List[StrategicBranch]) -> List[StrategicBranch]:
    merged = list(existing)
    known = {b.id for b in existing}
    for branch in generated:
        if branch.id not in known:
            merged.append(branch)
            known.add(branch.id)
    return merged


def generate_frontier_nodes(generator: ContentGenerator, branches: List[StrategicBranch], interests: List[str],
                            learning_style: str, knowledge_level: int,
                            completed_ids: List[str]) -> List[FrontierNode]:
    nodes: List[FrontierNode] = []
    next_id = 1
    for branch in branches:
        branch_nodes = generator.generate_branch_nodes(
            branch, interests, learning_style, knowledge_level, completed_ids, next_id
        )
        nodes.extend(branch_nodes)
        next_id += len(branch_nodes)
    return sort_nodes_by_sequence(nodes, knowledge_level)


def build_task_graph(config: ProjectConfig, path_name: str, learning_style: str, focus_areas: List[str],
                     existing: Optional[TaskGraph], generator: ContentGenerator,
                     now: str) -> Tuple[TaskGraph, List[FrontierNode]]:
    """
    Build the path's graph, or extend the existing one.

    Existing nodes are never replaced or removed; generated nodes whose ids
    are already taken are skipped. Returns the graph and the nodes it gained.
    """
    interests = config.path_interests(path_name)
    knowledge_level = config.knowledge_level or 1

    branches = generator.design_branches(config.goal, path_name, focus_areas, knowledge_level)
    completed_ids = [n.id for n in existing.frontier_nodes if n.completed] if existing else []
    nodes = generate_frontier_nodes(generator, branches, interests, learning_style, knowledge_level, completed_ids)

    if existing is None:
        graph = TaskGraph(
            project_id=config.id,
            path_name=path_name,
            goal=config.goal,
            created=now,
        )
    else:
        graph = existing
        graph.goal = config.goal or graph.goal

    graph.strategic_branches = merge_branches(graph.strategic_branches, branches)
    added = graph.append_nodes(nodes)
    skipped = len(nodes) - len(added)
    if skipped:
        logger.info(f"[build_task_graph] Kept {skipped} existing nodes for '{path_name}'")

    graph.learning_style = learning_style
    graph.focus_areas = list(focus_areas)
    graph.knowledge_level = knowledge_level
    graph.last_updated = now
    return graph, added


def format_build_response(graph: TaskGraph, added: List[FrontierNode]) -> str:
    return (
        f"🌳 Task tree built successfully for \"{graph.path_name}\" path!\n\n"
        f"**Strategic Branches**: {len(graph.strategic_branches)}\n"
        f"**Frontier Nodes**: {len(graph.frontier_nodes)} ({len(added)} new)\n"
        f"**Learning Style**: {graph.learning_style}\n"
        f"**Focus Areas**: {', '.join(graph.focus_areas) or 'General exploration'}\n\n"
        f"✅ Ready to start learning with intelligent task sequencing!"
    )
