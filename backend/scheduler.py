"""
Schedule packer
Lays out a gap-free day of meal, learning, break and habit blocks from wake to sleep time
"""

import logging
import math
from typing import List, Optional, Union

from backend.models import (
    FrontierNode, TimeBlock, DaySchedule, LifeStructurePreferences, DEFAULT_PRIORITY
)
from utils.config import MAX_SCHEDULE_BLOCKS
from utils.timeparse import parse_clock, format_clock, parse_time_to_minutes

logger = logging.getLogger(__name__)

MEAL_DURATION = 45
MEAL_WINDOW = 15
DEFAULT_BREAK = 15
BREAK_CUTOFF = 30  # no break this close to sleep time
MIN_TASK_MINUTES = 15
MAX_TASK_MINUTES = 120
HIGH_ENERGY_HOURS = range(9, 12)

BLOCK_ICONS = {
    "learning": "📚",
    "meal": "🍽️",
    "break": "☕",
    "habit": "🔄",
}

BLOCK_ID_PREFIX = {
    "learning": "task",
    "meal": "meal",
    "break": "break",
    "habit": "habit",
}


def parse_priority_hours(available_hours: Union[int, str, List, None]) -> List[int]:
    """Hours to favour for learning; accepts an int, a list, or "9,10,14". Empty means no restriction"""
    if available_hours is None or isinstance(available_hours, bool):
        return []
    if isinstance(available_hours, int):
        return [available_hours]
    if isinstance(available_hours, str):
        candidates = available_hours.split(",")
    else:
        candidates = list(available_hours)

    hours = []
    for candidate in candidates:
        try:
            hours.append(int(str(candidate).strip()))
        except ValueError:
            logger.debug(f"[parse_priority_hours] dropping non-integer hour '{candidate}'")
    return hours


def is_meal_time(minutes: int, meal_times: List[int]) -> bool:
    return any(abs(minutes - meal) <= MEAL_WINDOW for meal in meal_times)


def get_meal_type(minutes: int) -> str:
    hour = minutes // 60
    if hour <= 10:
        return "Breakfast"
    if hour <= 14:
        return "Lunch"
    if hour <= 16:
        return "Snack"
    return "Dinner"


def get_break_duration(preferences: LifeStructurePreferences) -> int:
    preference = preferences.break_preferences or ""
    for minutes in ("15", "10", "5"):
        if minutes in preference:
            return int(minutes)
    return DEFAULT_BREAK


def generate_habit_block(minutes: int) -> dict:
    """Filler sized by time of day"""
    hour = (minutes // 60) % 24
    if hour < 9:
        return {"title": "Morning Routine", "duration": 30}
    if hour >= 19:
        return {"title": "Evening Wind-down", "duration": 45}
    return {"title": "Mindful Transition", "duration": 15}


def calculate_task_duration(node: FrontierNode, preferences: LifeStructurePreferences, energy_level: int) -> int:
    base = parse_time_to_minutes(node.duration)
    focus = preferences.focus_duration or "flexible"

    if "25" in focus:
        return 25  # pomodoro
    if "1 hour" in focus:
        return 60
    if "2 hour" in focus:
        return 120

    if energy_level >= 4:
        multiplier = 1.5
    elif energy_level <= 2:
        multiplier = 0.7
    else:
        multiplier = 1.0

    # round half up
    scaled = math.floor(base * multiplier + 0.5)
    return max(MIN_TASK_MINUTES, min(MAX_TASK_MINUTES, scaled))


def select_task_for_time_slot(pool: List[FrontierNode], minutes: int, energy_level: int) -> Optional[FrontierNode]:
    """First (highest-priority) task in the difficulty band for this energy and hour"""
    if not pool:
        return None

    hour = (minutes // 60) % 24
    high_energy_time = hour in HIGH_ENERGY_HOURS

    if energy_level >= 4 and high_energy_time:
        suitable = [t for t in pool if t.difficulty >= 2]
    elif energy_level <= 2:
        suitable = [t for t in pool if t.difficulty <= 2]
    else:
        suitable = [t for t in pool if t.difficulty <= 3]

    return (suitable or pool)[0]


def create_time_blocks(wake: int, sleep: int, meal_times: List[int], ready_tasks: List[FrontierNode],
                       energy_level: int, preferences: LifeStructurePreferences,
                       priority_hours: Optional[List[int]] = None) -> List[TimeBlock]:
    """
    Walk a cursor from wake to sleep, choosing meal, then learning, then habit at each step.

    Tasks are taken from a copy of ready_tasks (highest priority first) and
    never reused. At most MAX_SCHEDULE_BLOCKS blocks are produced.
    """
    priority_hours = priority_hours or []
    pool = list(ready_tasks)
    blocks: List[TimeBlock] = []
    counter = 0

    def add(block_type: str, title: str, start: int, duration: int, **extra) -> TimeBlock:
        nonlocal counter
        counter += 1
        block = TimeBlock(
            id=f"{BLOCK_ID_PREFIX[block_type]}_{counter}",
            type=block_type,
            title=title,
            start_time=format_clock(start),
            start_minutes=start,
            duration=duration,
            **extra,
        )
        blocks.append(block)
        return block

    cursor = wake
    while cursor < sleep and len(blocks) < MAX_SCHEDULE_BLOCKS:
        hour = (cursor // 60) % 24
        learning_hour = not priority_hours or hour in priority_hours

        if is_meal_time(cursor, meal_times):
            add("meal", get_meal_type(cursor), cursor, MEAL_DURATION)
            cursor += MEAL_DURATION

        elif learning_hour and pool:
            task = select_task_for_time_slot(pool, cursor, energy_level)
            duration = calculate_task_duration(task, preferences, energy_level)
            add("learning", task.title, cursor, duration,
                description=task.description,
                task_id=task.id,
                branch=task.branch,
                difficulty=task.difficulty)
            pool.remove(task)
            cursor += duration

            if cursor < sleep - BREAK_CUTOFF and len(blocks) < MAX_SCHEDULE_BLOCKS:
                break_minutes = get_break_duration(preferences)
                add("break", "Break & Reflection", cursor, break_minutes)
                cursor += break_minutes

        else:
            habit = generate_habit_block(cursor)
            add("habit", habit["title"], cursor, habit["duration"])
            cursor += habit["duration"]

    if cursor < sleep:
        logger.warning(f"[create_time_blocks] Stopped at {MAX_SCHEDULE_BLOCKS} blocks, "
                       f"{format_clock(cursor)} before sleep time {format_clock(sleep)}")

    return blocks


def sort_by_priority(nodes: List[FrontierNode]) -> List[FrontierNode]:
    return sorted(nodes, key=lambda n: n.priority if n.priority is not None else DEFAULT_PRIORITY, reverse=True)


def build_day_schedule(date: str, project_id: str, active_path: str, preferences: LifeStructurePreferences,
                       ready_tasks: List[FrontierNode], energy_level: int = 3,
                       available_hours=None, focus_type: str = "mixed", context: str = "",
                       generated: Optional[str] = None) -> DaySchedule:
    """Full day schedule for the ready tasks of the active path"""
    wake = parse_clock(preferences.wake_time, default=parse_clock("7:00 AM"))
    sleep = parse_clock(preferences.sleep_time, default=parse_clock("10:00 PM"))
    if sleep <= wake:
        # sleeping after midnight
        sleep += 24 * 60
    meal_times = [parse_clock(t) for t in preferences.meal_times]

    blocks = create_time_blocks(
        wake, sleep, meal_times, sort_by_priority(ready_tasks), energy_level,
        preferences, parse_priority_hours(available_hours),
    )

    logger.info(f"[build_day_schedule] {date}: {len(blocks)} blocks, "
                f"{sum(1 for b in blocks if b.type == 'learning')} learning")

    return DaySchedule(
        date=date,
        project_id=project_id,
        active_path=active_path,
        energy_level=energy_level,
        focus_type=focus_type,
        context=context,
        blocks=blocks,
        generated=generated,
    )


def format_schedule_for_display(schedule: DaySchedule) -> str:
    lines = []
    for block in schedule.blocks:
        icon = BLOCK_ICONS.get(block.type, "📋")
        lines.append(f"{icon} **{block.start_time}** - {block.title} ({block.duration}min)")
    return "\n".join(lines)
