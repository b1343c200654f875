# Unit tests for scheduler module
import sys
import unittest
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.models import FrontierNode, LifeStructurePreferences
from backend.scheduler import (
    build_day_schedule, create_time_blocks, calculate_task_duration, select_task_for_time_slot,
    parse_priority_hours, get_meal_type, get_break_duration, generate_habit_block, sort_by_priority,
    format_schedule_for_display
)
from utils.config import MAX_SCHEDULE_BLOCKS
from utils.timeparse import parse_clock


def task(node_id, difficulty=2, duration="30 minutes", priority=200):
    return FrontierNode(id=node_id, title=f"Task {node_id}", difficulty=difficulty,
                        duration=duration, priority=priority)


def assert_contiguous(test, blocks, wake):
    test.assertEqual(blocks[0].start_minutes, wake)
    for previous, current in zip(blocks, blocks[1:]):
        test.assertEqual(current.start_minutes, previous.end_minutes)


class TestScenario(unittest.TestCase):
    def setUp(self):
        self.preferences = LifeStructurePreferences(
            wake_time="7:00 AM", sleep_time="10:00 PM", meal_times=["12:00 PM"]
        )
        self.schedule = build_day_schedule(
            "2024-03-04", "proj", "general", self.preferences, [task("t1")], energy_level=3
        )
        self.blocks = self.schedule.blocks

    def test_learning_block_then_break(self):
        first, second = self.blocks[0], self.blocks[1]
        self.assertEqual(first.type, "learning")
        self.assertEqual(first.task_id, "t1")
        self.assertEqual(first.start_time, "7:00 AM")
        self.assertEqual(first.duration, 30)
        self.assertEqual(second.type, "break")
        self.assertEqual(second.start_minutes, first.end_minutes)

    def test_meal_in_window(self):
        meals = [b for b in self.blocks if b.type == "meal"]
        self.assertEqual(len(meals), 1)
        self.assertTrue(parse_clock("11:45 AM") <= meals[0].start_minutes <= parse_clock("12:15 PM"))
        self.assertEqual(meals[0].duration, 45)
        self.assertEqual(meals[0].title, "Lunch")

    def test_task_not_reused(self):
        learning = [b for b in self.blocks if b.type == "learning"]
        self.assertEqual(len(learning), 1)

    def test_fills_until_sleep(self):
        assert_contiguous(self, self.blocks, parse_clock("7:00 AM"))
        self.assertGreaterEqual(self.blocks[-1].end_minutes, parse_clock("10:00 PM"))
        self.assertLessEqual(len(self.blocks), MAX_SCHEDULE_BLOCKS)

    def test_block_ids_unique(self):
        ids = [b.id for b in self.blocks]
        self.assertEqual(len(ids), len(set(ids)))
        self.assertEqual(ids[0], "task_1")
        self.assertEqual(ids[1], "break_2")

    def test_metadata(self):
        self.assertEqual(self.schedule.date, "2024-03-04")
        self.assertEqual(self.schedule.active_path, "general")
        self.assertEqual(self.schedule.energy_level, 3)


class TestPackerInvariants(unittest.TestCase):
    def test_block_cap(self):
        tasks = [task(f"t{i}", duration="15 minutes") for i in range(80)]
        blocks = create_time_blocks(parse_clock("5:00 AM"), parse_clock("11:00 PM"), [], tasks, 3,
                                    LifeStructurePreferences(break_preferences="5 min"))
        self.assertEqual(len(blocks), MAX_SCHEDULE_BLOCKS)
        assert_contiguous(self, blocks, parse_clock("5:00 AM"))

    def test_no_overlap_and_no_duplicates(self):
        tasks = [task(f"t{i}", difficulty=(i % 5) + 1) for i in range(12)]
        schedule = build_day_schedule("2024-03-04", "proj", "general", LifeStructurePreferences(), tasks)
        assert_contiguous(self, schedule.blocks, parse_clock("7:00 AM"))
        task_ids = [b.task_id for b in schedule.blocks if b.type == "learning"]
        self.assertEqual(len(task_ids), len(set(task_ids)))

    def test_no_break_close_to_sleep(self):
        blocks = create_time_blocks(parse_clock("9:00 PM"), parse_clock("10:00 PM"), [],
                                    [task("t1", duration="45 minutes")], 3, LifeStructurePreferences())
        self.assertEqual([b.type for b in blocks], ["learning", "habit"])

    def test_sleep_after_midnight(self):
        preferences = LifeStructurePreferences(wake_time="8:00 PM", sleep_time="1:00 AM", meal_times=[])
        schedule = build_day_schedule("2024-03-04", "proj", "general", preferences, [task("t1")])
        blocks = schedule.blocks
        assert_contiguous(self, blocks, parse_clock("8:00 PM"))
        self.assertGreaterEqual(blocks[-1].end_minutes, parse_clock("1:00 AM") + 24 * 60)
        self.assertEqual(blocks[-1].start_time, "12:30 AM")

    def test_priority_hours_restrict_learning(self):
        preferences = LifeStructurePreferences(meal_times=[])
        schedule = build_day_schedule("2024-03-04", "proj", "general", preferences, [task("t1")],
                                      available_hours="14")
        learning = [b for b in schedule.blocks if b.type == "learning"]
        self.assertEqual(len(learning), 1)
        self.assertEqual(learning[0].start_minutes // 60, 14)

    def test_highest_priority_first(self):
        tasks = [task("low", priority=100), task("high", priority=300)]
        schedule = build_day_schedule("2024-03-04", "proj", "general",
                                      LifeStructurePreferences(meal_times=[]), tasks)
        self.assertEqual(schedule.blocks[0].task_id, "high")

    def test_display(self):
        schedule = build_day_schedule("2024-03-04", "proj", "general", LifeStructurePreferences(), [task("t1")])
        display = format_schedule_for_display(schedule)
        self.assertIn("📚 **7:00 AM** - Task t1 (30min)", display)


class TestDurations(unittest.TestCase):
    def test_energy_multiplier(self):
        preferences = LifeStructurePreferences()
        self.assertEqual(calculate_task_duration(task("a"), preferences, 3), 30)
        self.assertEqual(calculate_task_duration(task("a"), preferences, 4), 45)
        self.assertEqual(calculate_task_duration(task("a"), preferences, 1), 21)

    def test_rounds_half_up(self):
        self.assertEqual(calculate_task_duration(task("a", duration="15 minutes"), LifeStructurePreferences(), 4), 23)

    def test_clamped(self):
        preferences = LifeStructurePreferences()
        self.assertEqual(calculate_task_duration(task("a", duration="3 hours"), preferences, 3), 120)
        self.assertEqual(calculate_task_duration(task("a", duration="10 minutes"), preferences, 1), 15)

    def test_focus_preferences(self):
        self.assertEqual(calculate_task_duration(
            task("a"), LifeStructurePreferences(focus_duration="25 minute pomodoro"), 5), 25)
        self.assertEqual(calculate_task_duration(
            task("a"), LifeStructurePreferences(focus_duration="1 hour blocks"), 1), 60)
        self.assertEqual(calculate_task_duration(
            task("a"), LifeStructurePreferences(focus_duration="2 hour deep work"), 1), 120)


class TestSlotSelection(unittest.TestCase):
    def test_high_energy_morning_needs_harder_task(self):
        pool = [task("easy", difficulty=1), task("hard", difficulty=4)]
        self.assertEqual(select_task_for_time_slot(pool, parse_clock("10:00 AM"), 5).id, "hard")
        self.assertEqual(select_task_for_time_slot(pool, parse_clock("3:00 PM"), 5).id, "easy")

    def test_low_energy_prefers_easy(self):
        pool = [task("hard", difficulty=4), task("easy", difficulty=2)]
        self.assertEqual(select_task_for_time_slot(pool, parse_clock("10:00 AM"), 1).id, "easy")

    def test_falls_back_to_pool(self):
        pool = [task("hard", difficulty=5)]
        self.assertEqual(select_task_for_time_slot(pool, parse_clock("3:00 PM"), 1).id, "hard")
        self.assertIsNone(select_task_for_time_slot([], 600, 3))


class TestHelpers(unittest.TestCase):
    def test_parse_priority_hours(self):
        self.assertEqual(parse_priority_hours(None), [])
        self.assertEqual(parse_priority_hours(9), [9])
        self.assertEqual(parse_priority_hours("9, 10,x"), [9, 10])
        self.assertEqual(parse_priority_hours([14, "15"]), [14, 15])

    def test_meal_type(self):
        self.assertEqual(get_meal_type(parse_clock("8:00 AM")), "Breakfast")
        self.assertEqual(get_meal_type(parse_clock("12:30 PM")), "Lunch")
        self.assertEqual(get_meal_type(parse_clock("4:00 PM")), "Snack")
        self.assertEqual(get_meal_type(parse_clock("6:00 PM")), "Dinner")

    def test_break_duration(self):
        self.assertEqual(get_break_duration(LifeStructurePreferences(break_preferences="10 minutes")), 10)
        self.assertEqual(get_break_duration(LifeStructurePreferences(break_preferences="short")), 15)

    def test_habit_block(self):
        self.assertEqual(generate_habit_block(parse_clock("7:00 AM"))["duration"], 30)
        self.assertEqual(generate_habit_block(parse_clock("1:00 PM"))["duration"], 15)
        self.assertEqual(generate_habit_block(parse_clock("8:00 PM"))["title"], "Evening Wind-down")

    def test_sort_by_priority_is_stable(self):
        ordered = sort_by_priority([task("a"), task("b", priority=300), task("c")])
        self.assertEqual([t.id for t in ordered], ["b", "a", "c"])

    def test_zero_priority_sorts_last(self):
        ordered = sort_by_priority([task("zero", priority=0), task("low", priority=10)])
        self.assertEqual([t.id for t in ordered], ["low", "zero"])


if __name__ == "__main__":
    unittest.main()
