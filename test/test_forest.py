"""
End-to-end tests for the Forest operations
Each test runs against a fresh SQLite store with a fixed clock and fallback content.
"""
import sys
import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.db import DocumentStore
from backend.errors import ProviderUnavailable
from backend.forest import Forest
from backend.generators import FallbackContentGenerator, ResilientContentGenerator
from backend.models import ProjectConfig, LearningPath, SessionContext

TODAY = "2024-03-04"


def fixed_clock():
    return datetime(2024, 3, 4, 9, 0, 0)


class ForestTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = DocumentStore(Path(self.tmp.name) / "forest.db")
        self.forest = Forest(store=self.store, generator_factory=FallbackContentGenerator, clock=fixed_clock)
        self.ctx = SessionContext(project_id="proj")
        self.store.save_project_config(ProjectConfig(
            id="proj",
            goal="Automate my reports with Python",
            learning_paths=[LearningPath(path_name="python", interests=["pandas"])],
            created_at="2024-02-20T09:00:00",
        ))

    def tearDown(self):
        self.tmp.cleanup()

    def first_learning_block(self):
        schedule = self.store.load_day_schedule("proj", TODAY)
        return next(b for b in schedule.blocks if b.type == "learning")


class TestBuildTree(ForestTestCase):
    def test_build_sets_active_path(self):
        result = self.forest.build_tree(self.ctx, "python", "hands-on", ["Pandas"])
        self.assertTrue(result.success, result.summary)
        self.assertEqual(result.data["active_path"], "python")
        self.assertEqual(len(result.data["added_nodes"]), 15)

        self.assertEqual(self.store.load_project_config("proj").active_path, "python")
        self.assertEqual(len(self.store.load_task_graph("proj", "python").frontier_nodes), 15)
        self.assertIsNone(self.store.load_task_graph("proj", "general"))

    def test_unknown_path(self):
        result = self.forest.build_tree(self.ctx, "rust")
        self.assertFalse(result.success)
        self.assertIn('Error building task tree: Learning path "rust" not found', result.summary)
        self.assertEqual(self.store.get_error_log()[0]["operation"], "build_tree")

    def test_missing_project(self):
        result = self.forest.build_tree(SessionContext(project_id=None))
        self.assertFalse(result.success)
        self.assertIn("No active project", result.summary)

    def test_provider_failure_uses_fallback(self):
        primary = MagicMock()
        for operation in ("design_branches", "generate_branch_nodes", "generate_tasks"):
            getattr(primary, operation).side_effect = ProviderUnavailable("timed out")
        forest = Forest(
            store=self.store,
            generator_factory=lambda: ResilientContentGenerator(primary, FallbackContentGenerator()),
            clock=fixed_clock,
        )
        result = forest.build_tree(self.ctx)
        self.assertTrue(result.success)
        self.assertEqual(len(result.data["added_nodes"]), 12)

    def test_unexpected_errors_are_logged_and_raised(self):
        def broken():
            raise RuntimeError("generator exploded")

        forest = Forest(store=self.store, generator_factory=broken, clock=fixed_clock)
        with self.assertRaises(RuntimeError):
            forest.build_tree(self.ctx)
        self.assertEqual(self.store.get_error_log()[0]["error"], "RuntimeError: generator exploded")


class TestStatusAndNextTask(ForestTestCase):
    def test_status_requires_tree(self):
        result = self.forest.get_status(self.ctx)
        self.assertFalse(result.success)
        self.assertIn('No task tree found for "general" path', result.summary)

    def test_status(self):
        self.forest.build_tree(self.ctx)
        result = self.forest.get_status(self.ctx, include_graph=True)
        self.assertTrue(result.success)
        status = result.data["status"]
        self.assertEqual(status["progress"]["total"], 12)
        self.assertEqual(len(status["ready_tasks"]), 4)
        self.assertIn("digraph", status["graph_source"])
        self.assertIn("Task Tree Status - general Path", result.summary)

    def test_next_task(self):
        self.forest.build_tree(self.ctx)
        result = self.forest.get_next_task(self.ctx, energy_level=1, time_available="20 minutes")
        self.assertTrue(result.success)
        self.assertEqual(result.data["selected_task"]["difficulty"], 1)
        self.assertEqual(result.data["energy_match"], "Excellent match")
        self.assertEqual(result.data["time_match"], "Perfect fit")

    def test_next_task_none_ready(self):
        self.forest.build_tree(self.ctx)
        graph = self.store.load_task_graph("proj", "general")
        for node in graph.frontier_nodes:
            node.completed = True
        self.store.save_task_graph("proj", "general", graph)

        result = self.forest.get_next_task(self.ctx)
        self.assertTrue(result.success)
        self.assertIsNone(result.data["selected_task"])
        self.assertIn("evolve_strategy", result.summary)

    def test_session_path_overrides_active_path(self):
        self.forest.build_tree(self.ctx, "python")
        self.forest.build_tree(SessionContext("proj", "general"))
        result = self.forest.get_status(SessionContext("proj", "python"))
        self.assertEqual(result.data["status"]["path"], "python")


    def test_malformed_graph_is_reported(self):
        self.store.save_document("proj", "hta", {"frontier_nodes": [{"id": "a"}]}, path_name="general")
        result = self.forest.get_status(self.ctx)
        self.assertFalse(result.success)
        self.assertIn("Error getting status: Document 'hta' of project 'proj' is malformed", result.summary)
        self.assertEqual(self.store.get_error_log()[0]["operation"], "get_status")


class TestScheduleAndCompletion(ForestTestCase):
    def setUp(self):
        super().setUp()
        self.forest.build_tree(self.ctx)
        self.schedule_result = self.forest.generate_daily_schedule(self.ctx, energy_level=3)

    def test_schedule_saved(self):
        self.assertTrue(self.schedule_result.success)
        self.assertEqual(self.schedule_result.data["date"], TODAY)
        schedule = self.store.load_day_schedule("proj", TODAY)
        self.assertEqual(schedule.active_path, "general")
        self.assertIn("Daily Schedule Generated - 2024-03-04", self.schedule_result.summary)

    def test_complete_block_updates_everything(self):
        block = self.first_learning_block()
        result = self.forest.complete_block(
            self.ctx, block.id, "Finished the exercises",
            learned="Loops are easy", next_questions="How do generators work. What is yield",
            breakthrough=True, energy_level=4, difficulty_rating=2, engagement_level=9,
        )
        self.assertTrue(result.success, result.summary)
        self.assertTrue(result.data["block_completed"]["completed"])
        self.assertEqual(result.data["opportunity_analysis"]["recommended_path"], "breakthrough_deepening_path")
        self.assertEqual(result.data["next_suggested_action"]["type"], "continue_schedule")

        schedule = self.store.load_day_schedule("proj", TODAY)
        self.assertTrue(schedule.find_block(block.id).completed)

        history = self.store.load_learning_history("proj", "general")
        self.assertEqual(len(history.completed_topics), 1)
        self.assertEqual(len(history.insights), 1)
        self.assertEqual(len(history.knowledge_gaps), 2)

        graph = self.store.load_task_graph("proj", "general")
        self.assertTrue(graph.find_node(block.task_id).completed)
        new_ids = result.data["new_nodes"]
        self.assertEqual(len(new_ids), 3)
        self.assertTrue(all(graph.find_node(i) is not None for i in new_ids))

    def test_complete_without_learning_leaves_graph(self):
        block = self.first_learning_block()
        result = self.forest.complete_block(self.ctx, block.id, "Skimmed it")
        self.assertTrue(result.success)
        self.assertIsNone(result.data["opportunity_analysis"])
        self.assertFalse(self.store.load_task_graph("proj", "general").find_node(block.task_id).completed)

    def test_unknown_block(self):
        result = self.forest.complete_block(self.ctx, "task_999", "done")
        self.assertFalse(result.success)
        self.assertIn("Error completing block: Block task_999 not found", result.summary)

    def test_missing_schedule(self):
        result = self.forest.complete_block(self.ctx, "task_1", "done", date="2024-03-05")
        self.assertFalse(result.success)
        self.assertIn("No schedule found for 2024-03-05", result.summary)

    def test_invalid_engagement(self):
        block = self.first_learning_block()
        result = self.forest.complete_block(self.ctx, block.id, "done", engagement_level=11)
        self.assertFalse(result.success)
        self.assertIn("Invalid opportunity details", result.summary)
        self.assertFalse(self.store.load_day_schedule("proj", TODAY).find_block(block.id).completed)

    def test_day_document_for_another_date_is_rejected(self):
        block = self.first_learning_block()
        body = self.store.load_document("proj", "day_2024-03-04")
        self.store.save_document("proj", "day_2024-03-03", body)

        result = self.forest.complete_block(self.ctx, block.id, "done", date="2024-03-03")
        self.assertFalse(result.success)
        self.assertIn("holds the schedule for 2024-03-04, expected 2024-03-03", result.summary)
        self.assertFalse(self.store.load_day_schedule("proj", TODAY).find_block(block.id).completed)

    def test_partial_write_is_logged_and_raised(self):
        block = self.first_learning_block()
        self.store.save_learning_history = MagicMock(side_effect=RuntimeError("disk full"))
        with self.assertLogs("backend.forest", level="ERROR") as captured:
            with self.assertRaises(RuntimeError):
                self.forest.complete_block(self.ctx, block.id, "done", learned="x")
        self.assertIn("day schedule saved", captured.output[0])
        self.assertTrue(self.store.load_day_schedule("proj", TODAY).find_block(block.id).completed)


class TestEvolveAndReasoning(ForestTestCase):
    def test_evolve_without_tree(self):
        result = self.forest.evolve_strategy(self.ctx, "this is boring")
        self.assertTrue(result.success)
        self.assertEqual(result.data["strategy_analysis"]["recommended_evolution"], "generate_new_tasks")
        self.assertEqual(len(result.data["new_tasks"]), 2)

        graph = self.store.load_task_graph("proj", "general")
        self.assertEqual(graph.last_evolution, fixed_clock().isoformat())
        self.assertEqual(len(graph.frontier_nodes), 2)

    def test_evolve_appends(self):
        self.forest.build_tree(self.ctx)
        result = self.forest.evolve_strategy(self.ctx, "this is so boring and I feel stuck")
        self.assertEqual(result.data["strategy_analysis"]["recommended_evolution"], "address_user_concerns")
        self.assertEqual(len(self.store.load_task_graph("proj", "general").frontier_nodes), 14)

    def test_evolve_rekeys_taken_ids(self):
        self.forest.build_tree(self.ctx)
        existing = self.store.load_task_graph("proj", "general").frontier_nodes[:2]
        generator = MagicMock()
        generator.generate_tasks.return_value = [n.model_copy(update={"completed": False}) for n in existing]
        forest = Forest(store=self.store, generator_factory=lambda: generator, clock=fixed_clock)

        result = forest.evolve_strategy(self.ctx)
        self.assertTrue(result.success)
        self.assertEqual([t["id"] for t in result.data["new_tasks"]], ["evolved_13", "evolved_14"])

        graph = self.store.load_task_graph("proj", "general")
        self.assertEqual(len(graph.frontier_nodes), 14)
        self.assertEqual(graph.last_evolution, fixed_clock().isoformat())
        self.assertEqual(graph.find_node(existing[0].id).title, existing[0].title)

    def test_analyze_reasoning(self):
        self.forest.build_tree(self.ctx)
        result = self.forest.analyze_reasoning(self.ctx, detailed=False)
        self.assertTrue(result.success)
        analysis = result.data["reasoning_analysis"]
        self.assertEqual(analysis["deductions"][0]["type"], "insufficient_data")
        self.assertEqual(analysis["pacing_context"]["days_since_start"], 13)
        self.assertEqual(analysis["pacing_context"]["pacing_analysis"]["status"], "slightly_behind")


if __name__ == "__main__":
    unittest.main()
