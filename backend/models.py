"""
Data models for Forest
Contains the persisted documents (pydantic) and per-call value types (dataclasses)
"""

from dataclasses import dataclass, field
from typing import List, Dict, Optional, Literal, Any

from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator, model_validator

from utils.config import (
    DEFAULT_PATH, DEFAULT_WAKE_TIME, DEFAULT_SLEEP_TIME, DEFAULT_MEAL_TIMES
)
from utils.timeparse import parse_time_to_minutes

DEFAULT_ENGAGEMENT = 5
DEFAULT_PRIORITY = 200

BlockType = Literal["learning", "meal", "break", "habit"]
Sentiment = Literal["positive", "negative", "neutral"]


def _clamp_difficulty(value):
    if value is None:
        return value
    return max(1, min(5, int(value)))


class FrontierNode(BaseModel):
    """A candidate unit of work in a learning path"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    title: str
    description: str = ""
    branch: str = DEFAULT_PATH
    difficulty: int = 3
    duration: str = "30 minutes"
    prerequisites: List[str] = Field(default_factory=list)
    priority: int = DEFAULT_PRIORITY
    completed: bool = False
    completed_at: Optional[str] = Field(default=None, validation_alias=AliasChoices("completed_at", "completedAt"))
    actual_difficulty: Optional[int] = None
    actual_duration: Optional[int] = None
    opportunity_type: Optional[str] = Field(default=None, validation_alias=AliasChoices("opportunity_type", "opportunityType"))
    generated: bool = False
    learning_outcome: str = Field(default="", validation_alias=AliasChoices("learning_outcome", "learningOutcome"))
    source_block: Optional[str] = None

    @field_validator("difficulty", mode="before")
    @classmethod
    def clamp_difficulty(cls, value):
        return _clamp_difficulty(value if value is not None else 3)

    @field_validator("duration", mode="before")
    @classmethod
    def normalize_duration(cls, value):
        # Numeric durations are minutes
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return f"{int(value)} minutes"
        return value or "30 minutes"

    @property
    def duration_minutes(self) -> int:
        return parse_time_to_minutes(self.duration)


class StrategicBranch(BaseModel):
    """Thematic grouping of frontier nodes"""
    model_config = ConfigDict(extra="allow")

    id: str
    title: str
    description: str = ""
    priority: str = "medium"
    completed: bool = False


class TaskGraph(BaseModel):
    """The strategic branches and frontier nodes of one learning path"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    project_id: Optional[str] = None
    path_name: str = DEFAULT_PATH
    goal: str = ""
    strategic_branches: List[StrategicBranch] = Field(
        default_factory=list, validation_alias=AliasChoices("strategic_branches", "strategicBranches", "branches"))
    frontier_nodes: List[FrontierNode] = Field(
        default_factory=list, validation_alias=AliasChoices("frontier_nodes", "frontierNodes"))
    learning_style: str = "mixed"
    focus_areas: List[str] = Field(default_factory=list)
    knowledge_level: int = 1
    created: Optional[str] = None
    last_updated: Optional[str] = None
    last_evolution: Optional[str] = None

    def find_node(self, node_id: str) -> Optional[FrontierNode]:
        for node in self.frontier_nodes:
            if node.id == node_id:
                return node
        return None

    def node_ids(self) -> set:
        return {node.id for node in self.frontier_nodes}

    def append_nodes(self, nodes: List[FrontierNode]) -> List[FrontierNode]:
        """Append nodes whose ids are not taken yet; returns what was appended"""
        existing = self.node_ids()
        appended = []
        for node in nodes:
            if node.id in existing:
                continue
            self.frontier_nodes.append(node)
            existing.add(node.id)
            appended.append(node)
        return appended


class FeedbackItem(BaseModel):
    """One piece of external feedback on completed work"""
    source: str = ""
    content: str = ""
    sentiment: Sentiment = "neutral"

    @model_validator(mode="before")
    @classmethod
    def accept_plain_text(cls, value):
        if isinstance(value, str):
            return {"content": value}
        return value


class OpportunityContext(BaseModel):
    """Post-completion signals that can open up new opportunities"""
    engagement_level: int = Field(default=DEFAULT_ENGAGEMENT, ge=1, le=10)
    unexpected_results: List[str] = Field(default_factory=list)
    new_skills_revealed: List[str] = Field(default_factory=list)
    external_feedback: List[FeedbackItem] = Field(default_factory=list)
    social_reactions: List[str] = Field(default_factory=list)
    viral_potential: bool = False
    industry_connections: List[str] = Field(default_factory=list)
    serendipitous_events: List[str] = Field(default_factory=list)

    def has_signals(self) -> bool:
        """Whether this context is worth attaching to a block"""
        if self.engagement_level != DEFAULT_ENGAGEMENT:
            return True
        return any([
            self.unexpected_results,
            self.new_skills_revealed,
            self.external_feedback,
            self.social_reactions,
            self.industry_connections,
            self.serendipitous_events,
        ])

    @property
    def positive_feedback(self) -> List[FeedbackItem]:
        return [f for f in self.external_feedback if f.sentiment == "positive"]


class TimeBlock(BaseModel):
    """A scheduled slot in one day"""
    model_config = ConfigDict(extra="allow")

    id: str
    type: BlockType
    title: str
    description: str = ""
    start_time: str
    start_minutes: int
    duration: int
    task_id: Optional[str] = None
    branch: Optional[str] = None
    difficulty: Optional[int] = None
    completed: bool = False
    completed_at: Optional[str] = None
    outcome: Optional[str] = None
    learned: str = ""
    next_questions: str = ""
    energy_after: Optional[int] = None
    difficulty_rating: Optional[int] = None
    breakthrough: bool = False
    opportunity_context: Optional[OpportunityContext] = None

    @property
    def end_minutes(self) -> int:
        return self.start_minutes + self.duration


class DaySchedule(BaseModel):
    """All blocks of one day, persisted as a single document"""
    model_config = ConfigDict(extra="allow")

    date: str
    project_id: Optional[str] = None
    active_path: str = DEFAULT_PATH
    energy_level: int = 3
    focus_type: str = "mixed"
    context: str = ""
    blocks: List[TimeBlock] = Field(default_factory=list)
    generated: Optional[str] = None

    def find_block(self, block_id: str) -> Optional[TimeBlock]:
        for block in self.blocks:
            if block.id == block_id:
                return block
        return None

    def next_incomplete(self) -> Optional[TimeBlock]:
        for block in self.blocks:
            if not block.completed:
                return block
        return None


class CompletedTopic(BaseModel):
    topic: str
    description: str = ""
    completed_at: str
    outcome: Optional[str] = None
    learned: str = ""
    difficulty: int = 3
    difficulty_rating: int = 3
    energy_after: int = 3
    breakthrough: bool = False
    block_id: Optional[str] = None
    task_id: Optional[str] = None
    branch: Optional[str] = None


class Insight(BaseModel):
    insight: str
    topic: str
    timestamp: str
    context: Optional[str] = None


class KnowledgeGap(BaseModel):
    question: str
    related_topic: str
    identified: str
    priority: Literal["high", "medium", "low"] = "medium"


class SkillProgression(BaseModel):
    level: int = 1
    completed_tasks: int = 0
    total_engagement: int = 0

    def record(self, engagement: int):
        self.completed_tasks += 1
        self.total_engagement += engagement
        self.level = min(10, 1 + self.completed_tasks // 3)


class LearningHistory(BaseModel):
    """Append-only log of what happened on one learning path"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    project_id: Optional[str] = None
    path_name: str = DEFAULT_PATH
    completed_topics: List[CompletedTopic] = Field(
        default_factory=list, validation_alias=AliasChoices("completed_topics", "completedTopics"))
    insights: List[Insight] = Field(default_factory=list)
    knowledge_gaps: List[KnowledgeGap] = Field(
        default_factory=list, validation_alias=AliasChoices("knowledge_gaps", "knowledgeGaps"))
    skill_progression: Dict[str, SkillProgression] = Field(
        default_factory=dict, validation_alias=AliasChoices("skill_progression", "skillProgression"))


class LearningPath(BaseModel):
    model_config = ConfigDict(extra="allow")

    path_name: str
    interests: List[str] = Field(default_factory=list)
    priority: str = "medium"


class LifeStructurePreferences(BaseModel):
    model_config = ConfigDict(extra="allow")

    wake_time: str = DEFAULT_WAKE_TIME
    sleep_time: str = DEFAULT_SLEEP_TIME
    meal_times: List[str] = Field(default_factory=lambda: list(DEFAULT_MEAL_TIMES))
    focus_duration: str = "flexible"
    break_preferences: str = "every hour"


class ProjectConfig(BaseModel):
    """Project-level configuration document (owned by the project manager)"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    goal: str = ""
    specific_interests: List[str] = Field(default_factory=list)
    learning_paths: List[LearningPath] = Field(default_factory=list)
    active_path: str = Field(default=DEFAULT_PATH, validation_alias=AliasChoices("active_path", "activePath"))
    knowledge_level: int = 1
    life_structure_preferences: LifeStructurePreferences = Field(default_factory=LifeStructurePreferences)
    urgency_level: Literal["critical", "high", "medium", "low"] = "medium"
    created_at: Optional[str] = None
    legacy_title_prerequisites: bool = False
    scoring_weights: Dict[str, float] = Field(default_factory=dict)

    def has_path(self, path_name: str) -> bool:
        if path_name == DEFAULT_PATH:
            return True
        return any(p.path_name == path_name for p in self.learning_paths)

    def path_interests(self, path_name: str) -> List[str]:
        for path in self.learning_paths:
            if path.path_name == path_name and path.interests:
                return path.interests
        return self.specific_interests


@dataclass
class SessionContext:
    """Explicit per-call context: which project, and optionally which path"""
    project_id: Optional[str]
    path_name: Optional[str] = None


@dataclass
class ToolResult:
    """Structured result of an exposed operation plus its readable summary"""
    success: bool
    summary: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "summary": self.summary, **self.data}


def unique_node_id(prefix: str, number: int, taken: set) -> tuple:
    """First free "<prefix>_<n>" at or above number; reserves it in taken and returns (id, next n)"""
    while f"{prefix}_{number}" in taken:
        number += 1
    node_id = f"{prefix}_{number}"
    taken.add(node_id)
    return node_id, number + 1


def rekey_taken_ids(nodes: List[FrontierNode], taken: set, prefix: str, number: int) -> List[FrontierNode]:
    """Copies of nodes with ids already in taken (or repeated within nodes) renamed to free "<prefix>_<n>" ids"""
    rekeyed = []
    for node in nodes:
        if node.id in taken:
            node_id, number = unique_node_id(prefix, number, taken)
            node = node.model_copy(update={"id": node_id})
        else:
            taken.add(node.id)
        rekeyed.append(node)
    return rekeyed
