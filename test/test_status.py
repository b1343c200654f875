# Unit tests for status module and graph rendering
import sys
import unittest
from datetime import datetime
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.models import FrontierNode, StrategicBranch, TaskGraph, LearningHistory, CompletedTopic
from backend.status import build_status, format_status_report, branch_status_icon, get_completion_velocity
from components.graph_viz import create_task_graph, node_state

NOW = datetime(2024, 3, 10, 12, 0, 0)


def make_graph():
    return TaskGraph(
        path_name="python",
        goal="Learn Python",
        strategic_branches=[
            StrategicBranch(id="basics", title="Basics"),
            StrategicBranch(id="projects", title="Projects"),
            StrategicBranch(id="extras", title="Extras", completed=True),
        ],
        frontier_nodes=[
            FrontierNode(id="basics_1", title="Syntax", branch="basics", completed=True),
            FrontierNode(id="basics_2", title="Functions", branch="basics", prerequisites=["basics_1"]),
            FrontierNode(id="projects_1", title="CLI tool", branch="projects", prerequisites=["basics_x"]),
        ],
    )


class TestStatus(unittest.TestCase):
    def test_branch_icons(self):
        self.assertEqual(branch_status_icon(True, 0, 3), "✅")
        self.assertEqual(branch_status_icon(False, 3, 3), "✅")
        self.assertEqual(branch_status_icon(False, 1, 3), "🔄")
        self.assertEqual(branch_status_icon(False, 0, 0), "⏳")

    def test_build_status(self):
        status = build_status(make_graph(), LearningHistory(), NOW)
        self.assertEqual(status["progress"], {"completed": 1, "total": 3, "percentage": 33})
        self.assertEqual([n["id"] for n in status["ready_tasks"]], ["basics_2"])
        self.assertEqual([b["icon"] for b in status["branches"]], ["🔄", "⏳", "✅"])
        self.assertTrue(any("did you mean 'basics_1'" in line for line in status["diagnostics"]))

    def test_velocity(self):
        history = LearningHistory(completed_topics=[
            CompletedTopic(topic="t", completed_at="2024-03-09T10:00:00") for _ in range(7)
        ])
        self.assertEqual(get_completion_velocity(history, NOW), 1.0)

    def test_report(self):
        report = format_status_report(build_status(make_graph(), LearningHistory(), NOW))
        self.assertIn("Task Tree Status - python Path", report)
        self.assertIn("**Progress**: 33% (1/3 tasks)", report)
        self.assertIn("Graph Issues", report)


class TestGraphViz(unittest.TestCase):
    def test_node_states(self):
        graph = make_graph()
        ready = {"basics_2"}
        self.assertEqual([node_state(n, ready) for n in graph.frontier_nodes], ["completed", "ready", "blocked"])

    def test_source(self):
        source = create_task_graph(make_graph()).source
        self.assertIn("cluster_basics", source)
        self.assertIn("basics_1 -> basics_2", source)
        self.assertIn("missing: basics_x", source)


if __name__ == "__main__":
    unittest.main()
