"""
Forest operations
The exposed planning operations: each takes an explicit SessionContext, runs a
load -> compute -> save cycle against the document store and returns a ToolResult
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional, Any, Dict

from pydantic import ValidationError

from backend.completion import (
    apply_completion, update_learning_history, evolve_graph_from_learning, has_learning_content,
    suggest_next_action, format_completion_response
)
from backend.db import DocumentStore
from backend.errors import ForestError, NotFound
from backend.evolution import analyze_current_strategy, format_strategy_evolution_response
from backend.generators import ContentGenerator, create_content_generator
from backend.models import (
    SessionContext, ToolResult, ProjectConfig, TaskGraph, OpportunityContext, DEFAULT_ENGAGEMENT,
    rekey_taken_ids
)
from backend.opportunity import detect_opportunities
from backend.readiness import get_ready_nodes
from backend.reasoning import analyze_reasoning, format_reasoning_report
from backend.scheduler import build_day_schedule, format_schedule_for_display
from backend.selector import (
    select_optimal_task, format_task_response, get_energy_match_text, get_time_match_text
)
from backend.status import build_status, format_status_report
from backend.tree_builder import build_task_graph, format_build_response
from components.graph_viz import create_task_graph
from utils.config import DEFAULT_PATH, get_scoring_weights

logger = logging.getLogger(__name__)


class Forest:
    """Planning operations over one document store"""

    def __init__(self, store: Optional[DocumentStore] = None,
                 generator_factory: Callable[[], ContentGenerator] = create_content_generator,
                 clock: Callable[[], datetime] = datetime.now):
        self.store = store or DocumentStore()
        self.generator_factory = generator_factory
        self.clock = clock

    # ------------------------------------------------------------------

    def _run(self, operation: str, doing: str, inputs: Dict[str, Any], func: Callable[[], ToolResult]) -> ToolResult:
        try:
            return func()
        except ForestError as e:
            self.store.log_error(operation, e, inputs)
            return ToolResult(success=False, summary=f"Error {doing}: {e}")
        except Exception as e:
            self.store.log_error(operation, e, inputs)
            raise

    def _resolve_path(self, ctx: SessionContext, path_name: Optional[str] = None):
        config = self.store.load_project_config(ctx.project_id)
        path = path_name or ctx.path_name or config.active_path or DEFAULT_PATH
        if not config.has_path(path):
            raise NotFound(f'Learning path "{path}" not found in project configuration')
        return config, path

    def _require_graph(self, config: ProjectConfig, path: str) -> TaskGraph:
        graph = self.store.load_task_graph(config.id, path)
        if graph is None:
            raise NotFound(f'No task tree found for "{path}" path. Use `build_tree` first.')
        return graph

    @staticmethod
    def _saved(ok: bool, what: str):
        if not ok:
            raise ForestError(f"Could not save {what}")

    # ------------------------------------------------------------------

    def build_tree(self, ctx: SessionContext, path_name: Optional[str] = None, learning_style: str = "mixed",
                   focus_areas: Optional[List[str]] = None) -> ToolResult:
        focus_areas = list(focus_areas or [])

        def run():
            config, path = self._resolve_path(ctx, path_name)
            now = self.clock().isoformat()
            with self.store.path_lock(config.id, path):
                existing = self.store.load_task_graph(config.id, path)
                graph, added = build_task_graph(
                    config, path, learning_style, focus_areas, existing, self.generator_factory(), now
                )
                self._saved(self.store.save_task_graph(config.id, path, graph), "task graph")

            config.active_path = path
            self._saved(self.store.save_project_config(config), "project configuration")

            return ToolResult(
                success=True,
                summary=format_build_response(graph, added),
                data={
                    "task_graph": graph.model_dump(mode="json"),
                    "active_path": path,
                    "added_nodes": [n.id for n in added],
                },
            )

        return self._run("build_tree", "building task tree",
                         {"path_name": path_name, "learning_style": learning_style, "focus_areas": focus_areas}, run)

    def get_status(self, ctx: SessionContext, include_graph: bool = False) -> ToolResult:
        def run():
            config, path = self._resolve_path(ctx)
            graph = self._require_graph(config, path)
            history = self.store.load_learning_history(config.id, path)
            status = build_status(graph, history, self.clock(), config.legacy_title_prerequisites)

            if include_graph:
                status["graph_source"] = create_task_graph(graph, config.legacy_title_prerequisites).source

            return ToolResult(success=True, summary=format_status_report(status), data={"status": status})

        return self._run("get_status", "getting status", {"include_graph": include_graph}, run)

    def get_next_task(self, ctx: SessionContext, context: str = "", energy_level: int = 3,
                      time_available: str = "30 minutes") -> ToolResult:
        def run():
            config, path = self._resolve_path(ctx)
            graph = self._require_graph(config, path)
            ready = get_ready_nodes(graph.frontier_nodes, config.legacy_title_prerequisites)
            best = select_optimal_task(ready, energy_level, time_available, context,
                                       get_scoring_weights(config.scoring_weights))

            if best is None:
                return ToolResult(
                    success=True,
                    summary="🎯 No tasks are ready right now.\n\n"
                            "Use `evolve_strategy` to generate new tasks or `get_status` to inspect the tree.",
                    data={"selected_task": None},
                )

            node = best.node
            return ToolResult(
                success=True,
                summary=format_task_response(node, energy_level, time_available),
                data={
                    "selected_task": node.model_dump(mode="json"),
                    "score": best.score,
                    "energy_match": get_energy_match_text(node.difficulty, energy_level),
                    "time_match": get_time_match_text(node.duration, time_available),
                },
            )

        return self._run("get_next_task", "getting next task",
                         {"context": context, "energy_level": energy_level, "time_available": time_available}, run)

    def complete_block(self, ctx: SessionContext, block_id: str, outcome: str, learned: str = "",
                       next_questions: str = "", energy_level: int = 3, difficulty_rating: int = 3,
                       breakthrough: bool = False, engagement_level: int = DEFAULT_ENGAGEMENT,
                       unexpected_results: Optional[List[str]] = None,
                       new_skills_revealed: Optional[List[str]] = None,
                       external_feedback: Optional[List[Any]] = None,
                       social_reactions: Optional[List[str]] = None,
                       viral_potential: bool = False,
                       industry_connections: Optional[List[str]] = None,
                       serendipitous_events: Optional[List[str]] = None,
                       date: Optional[str] = None) -> ToolResult:
        def run():
            config = self.store.load_project_config(ctx.project_id)
            now = self.clock()
            day = date or now.date().isoformat()

            try:
                opportunity = OpportunityContext(
                    engagement_level=engagement_level,
                    unexpected_results=unexpected_results or [],
                    new_skills_revealed=new_skills_revealed or [],
                    external_feedback=external_feedback or [],
                    social_reactions=social_reactions or [],
                    viral_potential=viral_potential,
                    industry_connections=industry_connections or [],
                    serendipitous_events=serendipitous_events or [],
                )
            except ValidationError as e:
                raise ForestError(f"Invalid opportunity details: {e.errors()[0]['msg']}")

            with self.store.day_lock(config.id, day):
                schedule = self.store.load_day_schedule(config.id, day)
                if schedule is None:
                    raise NotFound(f"No schedule found for {day}")
                block = schedule.find_block(block_id)
                if block is None:
                    raise NotFound(f"Block {block_id} not found in the schedule for {day}")

                path = ctx.path_name or schedule.active_path or config.active_path
                if not config.has_path(path):
                    raise NotFound(f'Learning path "{path}" not found in project configuration')

                with self.store.path_lock(config.id, path):
                    apply_completion(block, now.isoformat(), outcome, learned, next_questions,
                                     energy_level, difficulty_rating, breakthrough, opportunity)
                    self._saved(self.store.save_day_schedule(config.id, schedule), "day schedule")
                    new_nodes = self._record_completion(config, path, block, now.isoformat())

            analysis = detect_opportunities(block.opportunity_context)
            return ToolResult(
                success=True,
                summary=format_completion_response(block, analysis, new_nodes),
                data={
                    "block_completed": block.model_dump(mode="json"),
                    "opportunity_analysis": analysis.to_dict() if analysis else None,
                    "next_suggested_action": suggest_next_action(schedule),
                    "new_nodes": [n.id for n in new_nodes],
                },
            )

        return self._run("complete_block", "completing block",
                         {"block_id": block_id, "outcome": outcome, "date": date}, run)

    def _record_completion(self, config: ProjectConfig, path: str, block, now: str):
        """History and graph updates that follow a saved block; failures here are partial writes"""
        persisted = ["day schedule"]
        new_nodes = []
        try:
            history = self.store.load_learning_history(config.id, path)
            update_learning_history(history, block)
            self._saved(self.store.save_learning_history(config.id, path, history), "learning history")
            persisted.append("learning history")

            if has_learning_content(block) or block.opportunity_context is not None:
                graph = self.store.load_task_graph(config.id, path)
                if graph is None:
                    logger.warning(f"[complete_block] No task graph for '{path}'; graph left unchanged")
                else:
                    new_nodes = evolve_graph_from_learning(graph, block, now)
                    self._saved(self.store.save_task_graph(config.id, path, graph), "task graph")
        except Exception as e:
            logger.error(f"[complete_block] Partial write for block '{block.id}': "
                         f"{', '.join(persisted)} saved before {type(e).__name__}: {e}")
            raise
        return new_nodes

    def evolve_strategy(self, ctx: SessionContext, feedback: str = "") -> ToolResult:
        def run():
            config, path = self._resolve_path(ctx)
            now = self.clock()
            with self.store.path_lock(config.id, path):
                graph = self.store.load_task_graph(config.id, path)
                if graph is None:
                    graph = TaskGraph(project_id=config.id, path_name=path, goal=config.goal,
                                      created=now.isoformat())
                history = self.store.load_learning_history(config.id, path)
                analysis = analyze_current_strategy(graph, history, feedback, now,
                                                    config.legacy_title_prerequisites)

                new_tasks = self.generator_factory().generate_tasks(config, graph, analysis.to_dict())
                new_tasks = rekey_taken_ids(new_tasks, graph.node_ids(), "evolved", len(graph.frontier_nodes) + 1)
                added = graph.append_nodes(new_tasks)
                if added:
                    graph.last_evolution = now.isoformat()
                    self._saved(self.store.save_task_graph(config.id, path, graph), "task graph")

            return ToolResult(
                success=True,
                summary=format_strategy_evolution_response(analysis, added, feedback),
                data={
                    "strategy_analysis": analysis.to_dict(),
                    "new_tasks": [n.model_dump(mode="json") for n in added],
                    "feedback_processed": feedback or "none",
                },
            )

        return self._run("evolve_strategy", "evolving strategy", {"feedback": feedback}, run)

    def generate_daily_schedule(self, ctx: SessionContext, date: Optional[str] = None, energy_level: int = 3,
                                available_hours=None, focus_type: str = "mixed",
                                context: str = "User requested schedule") -> ToolResult:
        def run():
            config, path = self._resolve_path(ctx)
            now = self.clock()
            day = date or now.date().isoformat()

            graph = self.store.load_task_graph(config.id, path)
            ready = get_ready_nodes(graph.frontier_nodes, config.legacy_title_prerequisites) if graph else []

            schedule = build_day_schedule(
                day, config.id, path, config.life_structure_preferences, ready,
                energy_level=energy_level, available_hours=available_hours,
                focus_type=focus_type, context=context, generated=now.isoformat(),
            )
            with self.store.day_lock(config.id, day):
                self._saved(self.store.save_day_schedule(config.id, schedule), "day schedule")

            summary = (
                f"📅 **Daily Schedule Generated - {day}**\n\n{format_schedule_for_display(schedule)}\n\n"
                f"🎯 **Focus**: {focus_type}\n"
                f"⚡ **Energy Level**: {energy_level}/5\n"
                f"📋 **Total Blocks**: {len(schedule.blocks)}\n\n"
                f"✅ Ready to start your structured day!"
            )
            return ToolResult(
                success=True,
                summary=summary,
                data={"daily_schedule": schedule.model_dump(mode="json"), "date": day},
            )

        return self._run("generate_daily_schedule", "generating schedule",
                         {"date": date, "energy_level": energy_level, "focus_type": focus_type}, run)

    def analyze_reasoning(self, ctx: SessionContext, detailed: bool = True) -> ToolResult:
        def run():
            config, path = self._resolve_path(ctx)
            graph = self.store.load_task_graph(config.id, path)
            history = self.store.load_learning_history(config.id, path)
            analysis = analyze_reasoning(config, graph, history, self.clock())
            return ToolResult(
                success=True,
                summary=format_reasoning_report(analysis, detailed),
                data={"reasoning_analysis": analysis.to_dict()},
            )

        return self._run("analyze_reasoning", "analyzing reasoning", {"detailed": detailed}, run)
