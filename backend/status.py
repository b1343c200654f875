"""
Status reporting for a learning path
"""

import logging
from datetime import datetime
from typing import Dict, List, Any

from backend.evolution import recent_completions, RECENT_DAYS
from backend.models import TaskGraph, LearningHistory
from backend.readiness import get_ready_nodes, diagnose_graph
from backend.reasoning import calculate_progress

logger = logging.getLogger(__name__)

MAX_READY_SHOWN = 5


def branch_status_icon(manual_completed: bool, completed: int, total: int) -> str:
    if manual_completed or (total > 0 and completed == total):
        return "✅"
    if completed > 0:
        return "🔄"
    return "⏳"


def branch_progress(graph: TaskGraph) -> List[Dict[str, Any]]:
    rows = []
    for branch in graph.strategic_branches:
        nodes = [n for n in graph.frontier_nodes if n.branch == branch.id]
        completed = sum(1 for n in nodes if n.completed)
        rows.append({
            "id": branch.id,
            "title": branch.title,
            "completed": completed,
            "total": len(nodes),
            "percentage": round(completed / len(nodes) * 100) if nodes else 0,
            "icon": branch_status_icon(branch.completed, completed, len(nodes)),
        })
    return rows


def get_completion_velocity(history: LearningHistory, now: datetime) -> float:
    """Completions per day over the trailing week"""
    return len(recent_completions(history, now)) / RECENT_DAYS


def build_status(graph: TaskGraph, history: LearningHistory, now: datetime,
                 legacy_title_prerequisites: bool = False) -> Dict[str, Any]:
    ready = get_ready_nodes(graph.frontier_nodes, legacy_title_prerequisites, report_orphans=False)
    diagnostics = diagnose_graph(graph.frontier_nodes, legacy_title_prerequisites)
    progress = calculate_progress(graph)

    return {
        "path": graph.path_name,
        "goal": graph.goal,
        "learning_style": graph.learning_style,
        "progress": {"completed": progress.completed, "total": progress.total, "percentage": progress.percentage},
        "branches": branch_progress(graph),
        "ready_tasks": [n.model_dump(mode="json") for n in ready],
        "diagnostics": diagnostics.describe(),
        "velocity": get_completion_velocity(history, now),
        "last_updated": graph.last_evolution or graph.last_updated,
    }


def _ready_line(node: Dict) -> str:
    stars = "⭐" * (node.get("difficulty") or 1)
    return f"• **{node['title']}** {stars} ({node.get('duration') or '30 minutes'})"


def format_status_report(status: Dict[str, Any]) -> str:
    progress = status["progress"]
    report = f"🌳 **Task Tree Status - {status['path']} Path**\n\n"
    report += f"**Goal**: {status['goal'] or 'Not specified'}\n"
    report += f"**Progress**: {progress['percentage']}% ({progress['completed']}/{progress['total']} tasks)\n"
    report += f"**Learning Style**: {status['learning_style']}\n"
    report += f"**Velocity**: {status['velocity']:.1f} tasks/day (last {RECENT_DAYS} days)\n\n"

    report += f"📊 **Strategic Branches** ({len(status['branches'])}):\n"
    for row in status["branches"]:
        report += f"{row['icon']} **{row['title']}** - {row['percentage']}% ({row['completed']}/{row['total']})\n"

    ready = status["ready_tasks"]
    report += f"\n🎯 **Ready Tasks** ({len(ready)}):\n"
    if not ready:
        report += "• No tasks ready - check prerequisites or build new tasks\n"
    else:
        for node in ready[:MAX_READY_SHOWN]:
            report += _ready_line(node) + "\n"
        if len(ready) > MAX_READY_SHOWN:
            report += f"• ... and {len(ready) - MAX_READY_SHOWN} more tasks\n"

    if status["diagnostics"]:
        report += "\n⚠️ **Graph Issues**:\n"
        for line in status["diagnostics"]:
            report += f"• {line}\n"

    report += "\n🚀 **Next Actions**:\n"
    if ready:
        report += "• Use `get_next_task` to get the optimal next task\n"
        report += "• Use `generate_daily_schedule` for comprehensive planning\n"
    else:
        report += "• Use `evolve_strategy` to generate new tasks\n"
        report += "• Use `build_tree` to rebuild the learning path\n"

    return report
